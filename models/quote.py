"""Quote Models for CrewTech"""

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from enum import Enum


class QuoteStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class QuoteItemCreate(BaseModel):
    """Line item sent with a new quote"""
    kind: str
    description: str
    qty: float = Field(default=1, gt=0)
    unit_price: float = Field(default=0, ge=0)

    @property
    def total(self) -> float:
        return self.qty * self.unit_price


class QuoteItem(QuoteItemCreate):
    """Stored quote line item"""
    id: str
    quote_id: str


class Quote(BaseModel):
    """Priced proposal sent to a client for a mission"""
    id: str
    mission_id: str
    client_id: str
    fee_pct: float = 0
    currency: str = "EUR"
    total_amount: float = 0
    client_approved: bool = False
    status: QuoteStatus = QuoteStatus.PENDING
    expires_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_active(self) -> bool:
        return self.status != QuoteStatus.REJECTED


def compute_quote_total(items: List[QuoteItemCreate], fee_pct: float) -> float:
    """Sum of line items plus the service fee percentage"""
    subtotal = sum(item.total for item in items)
    return round(subtotal * (1 + fee_pct / 100), 2)
