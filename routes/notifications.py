"""Notification feed written by the stored procedures (approvals, validations)"""

from fastapi import APIRouter, Depends
from typing import List, Dict, Any

from database.supabase import get_database
from services.auth_deps import get_current_user
from services.repository import WorkflowRepository
from services.workflow_gateway import WorkflowGatewayError
from models.user import SessionUser
from routes.workflow import http_error

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("", response_model=List[Dict[str, Any]])
async def list_notifications(
    current_user: SessionUser = Depends(get_current_user),
    repository: WorkflowRepository = Depends(get_database)
):
    """Newest first"""
    try:
        return await repository.get_notifications(current_user.access_token)
    except WorkflowGatewayError as e:
        raise http_error(e)
