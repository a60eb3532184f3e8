"""
Workflow Models

Derived, read-only views of a mission's progress. Nothing here is persisted:
the step list is recomputed from the loaded records on every request.
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum

from models.mission import Mission
from models.quote import Quote, QuoteItem
from models.assignment import Assignment
from models.invoice import SupplierInvoice
from models.client import Client


class StepStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class WorkflowStep(BaseModel):
    id: str
    title: str
    description: str
    status: StepStatus = StepStatus.PENDING


class MissionAggregate(BaseModel):
    """Everything the step derivation needs for one mission"""
    mission: Optional[Mission] = None
    quote: Optional[Quote] = None
    quote_items: List[QuoteItem] = []
    assignments: List[Assignment] = []
    invoices: List[SupplierInvoice] = []
    clients: List[Client] = []
    workflow_status: Optional[Dict[str, Any]] = None


class NotificationLevel(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"


class Notification(BaseModel):
    """User-visible transient message"""
    level: NotificationLevel
    message: str
    created_at: datetime = Field(default_factory=datetime.utcnow)


class WorkflowProgress(BaseModel):
    mission_id: str
    steps: List[WorkflowStep]
    completed_steps: int
    total_steps: int
    progress_pct: float
    mission_status: Optional[str] = None
    validation_status: Optional[str] = None
    workflow_status: Optional[Dict[str, Any]] = None
    notifications: List[Notification] = []


class SagaStepState(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class SagaStepOutcome(BaseModel):
    name: str
    state: SagaStepState = SagaStepState.PENDING
    error: Optional[str] = None
    result: Optional[Any] = None


class SagaReport(BaseModel):
    """Per-step record of a multi-step workflow action"""
    action: str
    steps: List[SagaStepOutcome] = []
    succeeded: bool = False
    failed_step: Optional[str] = None
    notifications: List[Notification] = []
