"""
Mission Workflow Routes

Staff-facing endpoints for the 8-step mission workflow. Every action response
carries the per-step saga report and the notifications emitted while it ran.

Error mapping:
- InvalidTransition          -> 409
- ContractNotApplicableError -> 409
- AssignmentValidationError  -> 400
- mission/assignment missing -> 404
- WorkflowGatewayError       -> 502 (404/409/410 from the store pass through)
"""

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from typing import Awaitable, List, Optional, Dict, Set
import logging

from database.supabase import get_database
from services.auth_deps import get_current_user
from services.repository import WorkflowRepository
from services.workflow_gateway import WorkflowGatewayError
from services.workflow_manager import MissionWorkflowManager, MissionNotFoundError
from services.mission_state import InvalidTransition, allowed_events, MANUAL_EVENTS
from services.assignment_service import (
    AssignmentValidationError,
    AssignmentNotFoundError,
    ContractNotApplicableError,
)
from services.notifications import Notifier
from models.mission import MissionEvent
from models.quote import QuoteItemCreate
from models.invoice import SupplierInvoiceCreate, SupplierInvoiceStatusUpdate
from models.workflow import MissionAggregate, WorkflowProgress, SagaReport
from models.user import SessionUser

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/missions", tags=["workflow"])

# Running actions per mission, shared by the managers of concurrent requests.
# Only missions with an action in flight have an entry.
_running_actions: Dict[str, Set[str]] = {}

WORKFLOW_ERRORS = (
    InvalidTransition,
    AssignmentValidationError,
    AssignmentNotFoundError,
    ContractNotApplicableError,
    MissionNotFoundError,
    WorkflowGatewayError,
)

PASS_THROUGH_GATEWAY_STATUSES = {404, 409, 410}


class QuoteCreateRequest(BaseModel):
    client_id: str
    items: List[QuoteItemCreate] = []
    fee_pct: Optional[float] = Field(default=None, ge=0)
    currency: Optional[str] = None


class MissionWorkflowResponse(BaseModel):
    aggregate: MissionAggregate
    progress: WorkflowProgress
    allowed_events: List[MissionEvent]
    failed_reads: List[str] = []


def http_error(error: Exception) -> HTTPException:
    """Map a workflow exception to its HTTP status"""
    if isinstance(error, (InvalidTransition, ContractNotApplicableError)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(error))
    if isinstance(error, AssignmentValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
    if isinstance(error, (MissionNotFoundError, AssignmentNotFoundError)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, WorkflowGatewayError):
        if error.status_code in PASS_THROUGH_GATEWAY_STATUSES:
            return HTTPException(status_code=error.status_code, detail=str(error))
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(error))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Unexpected workflow error")


def build_manager(
    mission_id: str,
    repository: WorkflowRepository,
    current_user: SessionUser,
    track_actions: bool = True
) -> MissionWorkflowManager:
    """Managers built for actions share the mission's running-action set; read-only ones get their own"""
    loading = _running_actions.setdefault(mission_id, set()) if track_actions else set()
    return MissionWorkflowManager(
        repository,
        mission_id,
        access_token=current_user.access_token,
        notifier=Notifier(),
        loading=loading,
    )


def release_actions(manager: MissionWorkflowManager):
    """Drop the mission's entry once nothing runs for it"""
    loading = _running_actions.get(manager.mission_id)
    if loading is manager.loading and not loading:
        del _running_actions[manager.mission_id]


def saga_response(report: Optional[SagaReport], manager: MissionWorkflowManager) -> SagaReport:
    """Busy actions answer 409; failed sagas answer with the report as detail"""
    if report is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="This action is already running for the mission"
        )
    if not report.succeeded:
        error = http_error(manager.last_error)
        raise HTTPException(status_code=error.status_code, detail=report.model_dump(mode="json"))
    return report


async def run_action(manager: MissionWorkflowManager, action: Awaitable[Optional[SagaReport]]) -> SagaReport:
    try:
        report = await action
    except WORKFLOW_ERRORS as e:
        raise http_error(e)
    finally:
        release_actions(manager)
    return saga_response(report, manager)


@router.get("/{mission_id}/workflow", response_model=MissionWorkflowResponse)
async def get_mission_workflow(
    mission_id: str,
    current_user: SessionUser = Depends(get_current_user),
    repository: WorkflowRepository = Depends(get_database)
):
    """
    Loaded records, derived steps and the events staff can trigger next.

    A failed read still renders the partial view with its error notification;
    404 only when the mission read succeeded and found nothing.
    """
    manager = build_manager(mission_id, repository, current_user, track_actions=False)
    aggregate = await manager.load()

    if aggregate.mission is None and "mission" not in manager.failed_reads:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Mission not found"
        )

    events = allowed_events(aggregate.mission.status) if aggregate.mission else []
    return MissionWorkflowResponse(
        aggregate=aggregate,
        progress=manager.progress(),
        allowed_events=[e for e in events if e in MANUAL_EVENTS],
        failed_reads=manager.failed_reads,
    )


@router.post("/{mission_id}/workflow/quote", response_model=SagaReport)
async def create_quote(
    mission_id: str,
    request: QuoteCreateRequest,
    current_user: SessionUser = Depends(get_current_user),
    repository: WorkflowRepository = Depends(get_database)
):
    """Create the quote and its items, then mint the client approval link"""
    manager = build_manager(mission_id, repository, current_user)
    return await run_action(
        manager,
        manager.create_quote(request.client_id, request.items, request.fee_pct, request.currency)
    )


@router.post("/{mission_id}/workflow/contracts", response_model=SagaReport)
async def generate_contracts(
    mission_id: str,
    current_user: SessionUser = Depends(get_current_user),
    repository: WorkflowRepository = Depends(get_database)
):
    manager = build_manager(mission_id, repository, current_user)
    return await run_action(manager, manager.generate_contracts())


@router.post("/{mission_id}/workflow/validation", response_model=SagaReport)
async def final_validation(
    mission_id: str,
    current_user: SessionUser = Depends(get_current_user),
    repository: WorkflowRepository = Depends(get_database)
):
    """Validate a completed mission and issue the final assignment letter"""
    manager = build_manager(mission_id, repository, current_user)
    return await run_action(manager, manager.final_validation())


@router.post("/{mission_id}/workflow/validation/reject", response_model=SagaReport)
async def reject_validation(
    mission_id: str,
    current_user: SessionUser = Depends(get_current_user),
    repository: WorkflowRepository = Depends(get_database)
):
    manager = build_manager(mission_id, repository, current_user)
    return await run_action(manager, manager.reject_validation())


@router.post("/{mission_id}/workflow/events/{event}", response_model=SagaReport)
async def apply_mission_event(
    mission_id: str,
    event: MissionEvent,
    current_user: SessionUser = Depends(get_current_user),
    repository: WorkflowRepository = Depends(get_database)
):
    """Finance/owner approval, owner rejection, start and completion"""
    manager = build_manager(mission_id, repository, current_user)
    return await run_action(manager, manager.apply_event(event))


@router.post("/{mission_id}/workflow/invoices", response_model=SagaReport)
async def upload_supplier_invoice(
    mission_id: str,
    invoice_data: SupplierInvoiceCreate,
    current_user: SessionUser = Depends(get_current_user),
    repository: WorkflowRepository = Depends(get_database)
):
    manager = build_manager(mission_id, repository, current_user)
    return await run_action(manager, manager.upload_invoice(invoice_data))


@router.patch("/{mission_id}/workflow/invoices/{invoice_id}", response_model=SagaReport)
async def process_supplier_invoice(
    mission_id: str,
    invoice_id: str,
    update: SupplierInvoiceStatusUpdate,
    current_user: SessionUser = Depends(get_current_user),
    repository: WorkflowRepository = Depends(get_database)
):
    """Approve or reject an uploaded invoice; decided invoices answer 409"""
    manager = build_manager(mission_id, repository, current_user)
    return await run_action(manager, manager.process_invoice(invoice_id, update.status))
