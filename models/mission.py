"""
Mission Model

A mission is one chartered flight engagement requiring crew and aircraft.

Collection: missions

RULES:
- status only changes through services.mission_state.transition()
- validation_status is tracked separately from status
"""

from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime, date
from enum import Enum


class MissionStatus(str, Enum):
    """Lifecycle status of a mission"""
    PENDING_FINANCE_REVIEW = "pending_finance_review"
    WAITING_OWNER_APPROVAL = "waiting_owner_approval"
    PENDING_CLIENT_APPROVAL = "pending_client_approval"
    APPROVED = "approved"
    CLIENT_REJECTED = "client_rejected"
    OWNER_REJECTED = "owner_rejected"
    PENDING_EXECUTION = "pending_execution"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class ValidationStatus(str, Enum):
    """Final validation status of a mission"""
    PENDING = "pending"
    VALIDATED = "validated"
    REJECTED = "rejected"


class MissionEvent(str, Enum):
    """Manual and server-side actions that move a mission forward"""
    FINANCE_APPROVE = "finance_approve"
    OWNER_APPROVE = "owner_approve"
    OWNER_REJECT = "owner_reject"
    CLIENT_APPROVE = "client_approve"
    CLIENT_REJECT = "client_reject"
    ASSIGN_CREW = "assign_crew"
    START = "start"
    COMPLETE = "complete"


STATUS_LABELS = {
    MissionStatus.PENDING_FINANCE_REVIEW: "Pending Finance Review",
    MissionStatus.WAITING_OWNER_APPROVAL: "Waiting Owner Approval",
    MissionStatus.PENDING_CLIENT_APPROVAL: "Pending Client Approval",
    MissionStatus.APPROVED: "Approved",
    MissionStatus.CLIENT_REJECTED: "Client Rejected",
    MissionStatus.OWNER_REJECTED: "Owner Rejected",
    MissionStatus.PENDING_EXECUTION: "Pending Execution",
    MissionStatus.IN_PROGRESS: "In Progress",
    MissionStatus.COMPLETED: "Completed",
}


class Mission(BaseModel):
    """Mission record as stored in the hosted database"""
    id: str
    mission_number: Optional[str] = None
    status: MissionStatus = MissionStatus.PENDING_FINANCE_REVIEW
    validation_status: ValidationStatus = ValidationStatus.PENDING
    aircraft_id: Optional[str] = None
    aircraft_type: Optional[str] = None
    client_id: Optional[str] = None
    departure_airport: Optional[str] = None
    arrival_airport: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
