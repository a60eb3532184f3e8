"""Crew Assignment Routes for CrewTech"""

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from typing import List
import logging

from database.supabase import get_database
from services.auth_deps import get_current_user
from services.repository import WorkflowRepository
from services.assignment_service import CrewAssignmentPanel, AssignmentNotFoundError, ContractNotApplicableError
from services.workflow_gateway import WorkflowGatewayError
from services.notifications import Notifier
from models.assignment import AssignmentCreate, AssignmentView, Engagement, POSITIONS
from models.document import Document
from models.workflow import Notification, SagaReport
from models.user import SessionUser
from routes.workflow import build_manager, http_error, run_action

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/missions", tags=["assignments"])


class AssignmentPanelResponse(BaseModel):
    assignments: List[AssignmentView]
    total_cost: float
    positions: List[str]
    engagements: List[Engagement]
    notifications: List[Notification] = []


@router.get("/{mission_id}/assignments", response_model=AssignmentPanelResponse)
async def get_mission_assignments(
    mission_id: str,
    current_user: SessionUser = Depends(get_current_user),
    repository: WorkflowRepository = Depends(get_database)
):
    """Assignments with crew details, contract flags and costs"""
    notifier = Notifier()
    panel = CrewAssignmentPanel(repository, mission_id, current_user.access_token, notifier)
    await panel.load()

    if notifier.errors:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=notifier.errors[0].message
        )

    return AssignmentPanelResponse(
        assignments=panel.assignments,
        total_cost=panel.total_cost,
        positions=POSITIONS,
        engagements=list(Engagement),
        notifications=notifier.notifications,
    )


@router.post("/{mission_id}/assignments", response_model=SagaReport)
async def assign_crew_member(
    mission_id: str,
    assignment_data: AssignmentCreate,
    current_user: SessionUser = Depends(get_current_user),
    repository: WorkflowRepository = Depends(get_database)
):
    """Assign (or re-assign) a crew member; same user on the same mission updates in place"""
    manager = build_manager(mission_id, repository, current_user)
    return await run_action(manager, manager.assign_crew(assignment_data))


@router.post("/{mission_id}/assignments/{assignment_id}/contract", response_model=Document)
async def generate_zero_hour_contract(
    mission_id: str,
    assignment_id: str,
    current_user: SessionUser = Depends(get_current_user),
    repository: WorkflowRepository = Depends(get_database)
):
    panel = CrewAssignmentPanel(repository, mission_id, current_user.access_token)
    await panel.load()

    try:
        document = await panel.generate_zero_hour_contract(assignment_id)
    except (AssignmentNotFoundError, ContractNotApplicableError, WorkflowGatewayError) as e:
        raise http_error(e)

    logger.info(f"Zero hour contract {document.id} created for assignment {assignment_id}")
    return document
