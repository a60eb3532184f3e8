"""Crew Assignment Models for CrewTech"""

from pydantic import BaseModel, Field
from typing import Optional
from datetime import date
from enum import Enum


class Engagement(str, Enum):
    """How a crew member is contracted for a mission"""
    INTERNAL = "internal"
    FREELANCE = "freelance"
    FREELANCE_WITH_INVOICE = "freelance_with_invoice"

    @property
    def is_freelance(self) -> bool:
        return self != Engagement.INTERNAL


POSITIONS = [
    "Pilot in Command",
    "Co-Pilot",
    "Flight Attendant",
    "Flight Engineer",
    "Ground Handler",
]


class CrewMember(BaseModel):
    id: str
    name: str
    email: Optional[str] = None
    role: str = "freelancer"  # admin, internal, freelancer


class AssignmentCreate(BaseModel):
    """Assignment form submitted by staff; required fields are checked by the panel"""
    user_id: Optional[str] = None
    position: Optional[str] = None
    engagement: Engagement = Engagement.INTERNAL
    day_rate: Optional[float] = Field(default=None, ge=0)  # settings.default_day_rate when omitted
    currency: str = "EUR"
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class Assignment(BaseModel):
    """Binding of one crew member to one mission"""
    id: str
    mission_id: str
    user_id: str
    position: str
    engagement: Engagement = Engagement.INTERNAL
    day_rate: float = 0
    currency: str = "EUR"
    start_date: date
    end_date: date
    status: str = "assigned"


class AssignmentView(Assignment):
    """Assignment enriched for the assignment panel"""
    user: Optional[CrewMember] = None
    has_zero_hour_contract: bool = False
    duration_days: int = 1
    total_cost: float = 0
