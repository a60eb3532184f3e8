"""
Mission Execution Routes

Read-only view: day schedule and payment progress derived from assignments
and supplier invoices.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from typing import Optional
import logging

from database.supabase import get_database
from services.auth_deps import get_current_user
from services.repository import WorkflowRepository
from services.assignment_service import CrewAssignmentPanel
from services.execution_service import ExecutionView, DemoPaymentSource, build_execution_view
from services.workflow_gateway import WorkflowGatewayError
from services.notifications import Notifier
from models.user import SessionUser
from routes.workflow import http_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/missions", tags=["execution"])


@router.get("/{mission_id}/execution", response_model=ExecutionView)
async def get_mission_execution(
    mission_id: str,
    demo: bool = Query(False, description="Use pseudo-random paid amounts"),
    seed: Optional[int] = Query(None, description="Seed for demo payments"),
    current_user: SessionUser = Depends(get_current_user),
    repository: WorkflowRepository = Depends(get_database)
):
    notifier = Notifier()
    panel = CrewAssignmentPanel(repository, mission_id, current_user.access_token, notifier)
    assignments = await panel.load()
    if notifier.errors:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=notifier.errors[0].message
        )

    try:
        invoices = await repository.get_supplier_invoices(
            [a.id for a in assignments], current_user.access_token
        ) if assignments else []
    except WorkflowGatewayError as e:
        raise http_error(e)

    payment_source = DemoPaymentSource(seed) if demo else None
    return build_execution_view(mission_id, assignments, invoices, payment_source)
