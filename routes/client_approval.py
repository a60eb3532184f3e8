"""
Client Approval Routes - public, token-addressed

No staff session: the approval token in the query string is the only
credential. Closed links answer:
- 404 invalid token
- 410 expired token
- 409 already approved or rejected
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from typing import Optional, Dict, Any
import logging

from database.supabase import get_database
from services.repository import WorkflowRepository
from services.client_approval import ClientApprovalService, ClientApprovalView, ApprovalClosedError, ApprovalState
from services.mission_state import InvalidTransition
from services.workflow_gateway import WorkflowGatewayError
from services.notifications import Notifier
from routes.workflow import http_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/client-approval", tags=["client-approval"])

CLOSED_STATUS_CODES = {
    ApprovalState.INVALID: status.HTTP_404_NOT_FOUND,
    ApprovalState.EXPIRED: status.HTTP_410_GONE,
}


def approval_payload(view: ClientApprovalView, notifier: Notifier) -> Dict[str, Any]:
    return {
        **view.model_dump(mode="json"),
        "can_respond": view.can_respond,
        "notifications": [n.model_dump(mode="json") for n in notifier.notifications],
    }


@router.get("")
async def get_client_approval(
    token: Optional[str] = Query(None),
    repository: WorkflowRepository = Depends(get_database)
):
    """Quote summary for the client; invalid and expired links still answer 200 with their state"""
    notifier = Notifier()
    service = ClientApprovalService(repository, notifier)
    view = await service.load(token)
    return approval_payload(view, notifier)


async def _respond(token: Optional[str], repository: WorkflowRepository, approve: bool) -> Dict[str, Any]:
    notifier = Notifier()
    service = ClientApprovalService(repository, notifier)
    try:
        view = await (service.approve(token) if approve else service.reject(token))
    except ApprovalClosedError as e:
        raise HTTPException(
            status_code=CLOSED_STATUS_CODES.get(e.state, status.HTTP_409_CONFLICT),
            detail=str(e)
        )
    except (InvalidTransition, WorkflowGatewayError) as e:
        raise http_error(e)

    logger.info(f"Client {'approved' if approve else 'rejected'} quote for mission {view.mission.id if view.mission else '?'}")
    return approval_payload(view, notifier)


@router.post("/approve")
async def approve_quote(
    token: Optional[str] = Query(None),
    repository: WorkflowRepository = Depends(get_database)
):
    return await _respond(token, repository, approve=True)


@router.post("/reject")
async def reject_quote(
    token: Optional[str] = Query(None),
    repository: WorkflowRepository = Depends(get_database)
):
    return await _respond(token, repository, approve=False)
