"""
User Management Routes for CrewTech
Invitations, metadata updates and edge-function diagnostics (admin only)
go through the hosted edge functions
"""

from fastapi import APIRouter, Body, Depends, HTTPException, status
from typing import Dict, Any, Optional
import logging

from config import get_settings
from services.auth_deps import get_current_user
from services.edge_functions import EdgeFunctionClient
from services.workflow_gateway import WorkflowGatewayError
from models.user import SessionUser, InviteUserRequest, UserRole
from routes.workflow import http_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])


async def get_edge_functions():
    settings = get_settings()
    client = EdgeFunctionClient(
        settings.edge_functions_base_url,
        settings.supabase_anon_key,
        timeout=settings.request_timeout_seconds
    )
    try:
        yield client
    finally:
        await client.aclose()


def require_admin(current_user: SessionUser):
    if current_user.role != UserRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )


@router.post("/invite")
async def invite_user(
    request: InviteUserRequest,
    current_user: SessionUser = Depends(get_current_user),
    edge_functions: EdgeFunctionClient = Depends(get_edge_functions)
):
    """Send an invitation email for a new staff member or freelancer"""
    require_admin(current_user)
    try:
        return await edge_functions.invite_user(request, current_user.access_token)
    except WorkflowGatewayError as e:
        raise http_error(e)


@router.put("/{user_id}/metadata")
async def update_user_metadata(
    user_id: str,
    user_metadata: Optional[Dict[str, Any]] = Body(None),
    app_metadata: Optional[Dict[str, Any]] = Body(None),
    current_user: SessionUser = Depends(get_current_user),
    edge_functions: EdgeFunctionClient = Depends(get_edge_functions)
):
    require_admin(current_user)
    if user_metadata is None and app_metadata is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Nothing to update"
        )
    try:
        return await edge_functions.update_user_metadata(
            user_id, user_metadata, current_user.access_token, app_metadata=app_metadata
        )
    except WorkflowGatewayError as e:
        raise http_error(e)


@router.get("/functions/health")
async def edge_functions_health(
    current_user: SessionUser = Depends(get_current_user),
    edge_functions: EdgeFunctionClient = Depends(get_edge_functions)
):
    """Reachability of the edge-function server behind invitations"""
    require_admin(current_user)
    try:
        return await edge_functions.health_check()
    except WorkflowGatewayError as e:
        raise http_error(e)


@router.get("/functions/secrets")
async def edge_functions_secrets_status(
    current_user: SessionUser = Depends(get_current_user),
    edge_functions: EdgeFunctionClient = Depends(get_edge_functions)
):
    """Which server-side secrets are configured; values are never returned"""
    require_admin(current_user)
    try:
        return await edge_functions.secrets_status()
    except WorkflowGatewayError as e:
        raise http_error(e)
