"""Client Routes for CrewTech"""

from fastapi import APIRouter, Depends
from typing import List
import logging

from database.supabase import get_database
from services.auth_deps import get_current_user
from services.repository import WorkflowRepository
from services.workflow_gateway import WorkflowGatewayError
from models.client import Client
from models.user import SessionUser
from routes.workflow import http_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/clients", tags=["clients"])


@router.get("", response_model=List[Client])
async def list_clients(
    current_user: SessionUser = Depends(get_current_user),
    repository: WorkflowRepository = Depends(get_database)
):
    """Clients available for quotes, sorted by name"""
    try:
        return await repository.get_clients(current_user.access_token)
    except WorkflowGatewayError as e:
        raise http_error(e)
