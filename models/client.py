"""Client and client approval token models"""

from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime, timezone
from enum import Enum


class Client(BaseModel):
    id: str
    name: str
    contact_name: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None


class ApprovalTokenStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ClientApprovalToken(BaseModel):
    """Opaque, time-limited credential for the public approval link"""
    token: str
    mission_id: str
    quote_id: str
    client_id: str
    status: ApprovalTokenStatus = ApprovalTokenStatus.PENDING
    expires_at: datetime
    used_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Compare against naive UTC; stored timestamps may carry an offset"""
        expires_at = self.expires_at
        if expires_at.tzinfo is not None:
            expires_at = expires_at.astimezone(timezone.utc).replace(tzinfo=None)
        return expires_at < (now or datetime.utcnow())
