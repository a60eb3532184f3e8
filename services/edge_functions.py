"""
Edge Function Client

Calls the hosted edge-function server (mounted under make-server-9fd39b98):
- GET  /health
- GET  /secrets/status
- POST /invite-user
- PUT  /users/{id}/metadata

Same failure semantics as the REST gateway: non-2xx raises WorkflowGatewayError.
"""

import httpx
import logging
from typing import Dict, Any, Optional

from models.user import InviteUserRequest
from services.workflow_gateway import WorkflowGatewayError

logger = logging.getLogger(__name__)


class EdgeFunctionClient:

    def __init__(
        self,
        base_url: str,
        anon_key: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0
    ):
        self.base_url = base_url.rstrip("/")
        self.anon_key = anon_key
        self.client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def aclose(self):
        await self.client.aclose()

    def _headers(self, access_token: Optional[str] = None) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {access_token or self.anon_key}",
            "apikey": self.anon_key,
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    async def _call(
        self,
        operation: str,
        method: str,
        path: str,
        json: Any = None,
        access_token: Optional[str] = None
    ) -> Dict[str, Any]:
        try:
            response = await self.client.request(method, path, json=json, headers=self._headers(access_token))
        except httpx.HTTPError as e:
            logger.error(f"Edge function {path} unreachable: {e}")
            raise WorkflowGatewayError(f"Failed to {operation}: {e}") from e

        if not response.is_success:
            logger.error(f"Edge function {path} returned {response.status_code}: {response.text[:200]}")
            raise WorkflowGatewayError(
                f"Failed to {operation}: {response.status_code}",
                status_code=response.status_code
            )
        return response.json() if response.content else {}

    async def health_check(self) -> Dict[str, Any]:
        return await self._call("check edge function health", "GET", "/health")

    async def secrets_status(self) -> Dict[str, Any]:
        """Which server-side secrets are configured (values are never returned)"""
        return await self._call("read secrets status", "GET", "/secrets/status")

    async def invite_user(self, request: InviteUserRequest, access_token: str) -> Dict[str, Any]:
        logger.info(f"Sending invitation to {request.email} as {request.role.value}")
        return await self._call(
            "invite user",
            "POST",
            "/invite-user",
            json=request.model_dump(mode="json"),
            access_token=access_token
        )

    async def update_user_metadata(
        self,
        user_id: str,
        user_metadata: Optional[Dict[str, Any]],
        access_token: str,
        app_metadata: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Admin only on the server side; a non-admin token gets a 403"""
        payload: Dict[str, Any] = {}
        if user_metadata is not None:
            payload["user_metadata"] = user_metadata
        if app_metadata is not None:
            payload["app_metadata"] = app_metadata
        return await self._call(
            "update user metadata",
            "PUT",
            f"/users/{user_id}/metadata",
            json=payload,
            access_token=access_token
        )
