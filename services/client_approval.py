"""
Client Approval Service

Backs the public, token-addressed approval page (no login). The token is the
only credential; it expires after a fixed window and can be answered once.

States:
- invalid:  no token, unknown token, or the token could not be loaded
- expired:  expires_at is in the past; no action offered
- pending:  approve / reject offered while the mission awaits the client
- approved, rejected: terminal, no undo
"""

import asyncio
import logging
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel

from models.client import Client, ClientApprovalToken, ApprovalTokenStatus
from models.mission import Mission, MissionStatus
from models.quote import Quote, QuoteItem
from services.repository import WorkflowRepository
from services.workflow_gateway import WorkflowGatewayError
from services.notifications import Notifier

logger = logging.getLogger(__name__)


class ApprovalState(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"
    INVALID = "invalid"


class ClientApprovalView(BaseModel):
    state: ApprovalState
    error: Optional[str] = None
    expires_at: Optional[datetime] = None
    mission: Optional[Mission] = None
    quote: Optional[Quote] = None
    quote_items: List[QuoteItem] = []
    client: Optional[Client] = None

    @property
    def can_respond(self) -> bool:
        return (
            self.state == ApprovalState.PENDING
            and self.mission is not None
            and self.mission.status == MissionStatus.PENDING_CLIENT_APPROVAL
        )


class ApprovalClosedError(Exception):
    """Raised when approve/reject is attempted on a token that is not pending"""

    def __init__(self, state: ApprovalState, message: Optional[str] = None):
        self.state = state
        super().__init__(message or f"Approval link is {state.value}")


TOKEN_STATES = {
    ApprovalTokenStatus.PENDING: ApprovalState.PENDING,
    ApprovalTokenStatus.APPROVED: ApprovalState.APPROVED,
    ApprovalTokenStatus.REJECTED: ApprovalState.REJECTED,
}


class ClientApprovalService:

    def __init__(self, repository: WorkflowRepository, notifier: Optional[Notifier] = None):
        self.repository = repository
        self.notifier = notifier or Notifier()

    async def load(self, token: Optional[str], now: Optional[datetime] = None) -> ClientApprovalView:
        if not token:
            return ClientApprovalView(state=ApprovalState.INVALID, error="Invalid approval link - no token provided")

        try:
            approval = await self.repository.get_client_approval(token)
        except WorkflowGatewayError as e:
            logger.error(f"Error loading approval token: {e}")
            return ClientApprovalView(state=ApprovalState.INVALID, error="Failed to load quote information")

        if approval is None:
            return ClientApprovalView(state=ApprovalState.INVALID, error="Invalid approval link")

        if approval.is_expired(now):
            return ClientApprovalView(
                state=ApprovalState.EXPIRED,
                error="This approval link has expired",
                expires_at=approval.expires_at,
            )

        return await self._with_details(approval)

    async def _with_details(self, approval: ClientApprovalToken) -> ClientApprovalView:
        try:
            mission, quote, client, items = await asyncio.gather(
                self.repository.get_mission(approval.mission_id),
                self.repository.get_mission_quote(approval.mission_id),
                self.repository.get_client(approval.client_id),
                self.repository.get_quote_items(approval.quote_id),
            )
        except WorkflowGatewayError as e:
            logger.error(f"Error loading quote data for mission {approval.mission_id}: {e}")
            return ClientApprovalView(state=ApprovalState.INVALID, error="Failed to load quote information")

        if quote is not None and quote.id != approval.quote_id:
            # a newer quote replaced the one this link was issued for
            quote = None

        state = TOKEN_STATES[approval.status]
        error = None
        if state == ApprovalState.PENDING and (mission is None or mission.status != MissionStatus.PENDING_CLIENT_APPROVAL):
            error = "This quote is no longer awaiting your approval"

        return ClientApprovalView(
            state=state,
            error=error,
            expires_at=approval.expires_at,
            mission=mission,
            quote=quote,
            quote_items=items,
            client=client,
        )

    async def approve(self, token: Optional[str]) -> ClientApprovalView:
        return await self._respond(token, approve=True)

    async def reject(self, token: Optional[str]) -> ClientApprovalView:
        return await self._respond(token, approve=False)

    async def _respond(self, token: Optional[str], approve: bool) -> ClientApprovalView:
        view = await self.load(token)
        if not view.can_respond:
            raise ApprovalClosedError(view.state, view.error)

        try:
            if approve:
                await self.repository.client_approve_quote(token)
            else:
                await self.repository.client_reject_quote(token)
        except WorkflowGatewayError:
            self.notifier.error("Failed to approve quote" if approve else "Failed to reject quote")
            raise

        view.state = ApprovalState.APPROVED if approve else ApprovalState.REJECTED
        if view.quote is not None:
            view.quote.client_approved = approve
        self.notifier.success("Quote approved successfully!" if approve else "Quote rejected")
        return view
