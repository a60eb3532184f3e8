"""
Mission Execution Panel

Synthetic execution view derived from assignment date ranges. Nothing here is
persisted; the view is recomputed on every request.

- Mission days: earliest assignment start -> latest assignment end, inclusive
  past = completed, today = active, future = planned
- Expected payment per assignment = day_rate x duration
- Paid amount comes from a PaymentSource
- Payment progress = sum(paid) / sum(expected) x 100
"""

import random
from abc import ABC, abstractmethod
from datetime import date, timedelta
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel

from models.assignment import Assignment
from models.invoice import SupplierInvoice, SupplierInvoiceStatus
from services.assignment_service import assignment_cost


class DayStatus(str, Enum):
    PLANNED = "planned"
    ACTIVE = "active"
    COMPLETED = "completed"


class PaymentState(str, Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    COMPLETED = "completed"


class MissionDay(BaseModel):
    day: date
    status: DayStatus
    crew_present: List[str] = []
    crew_absent: List[str] = []
    notes: str = ""


class PaymentStatus(BaseModel):
    assignment_id: str
    user_id: str
    user_name: str = "Unknown"
    position: str
    engagement: str
    expected_amount: float
    paid_amount: float
    currency: str
    payment_status: PaymentState
    invoice_status: Optional[str] = None  # none, uploaded, approved, rejected (freelance only)
    invoice_id: Optional[str] = None


class ExecutionView(BaseModel):
    mission_id: str
    days: List[MissionDay]
    payments: List[PaymentStatus]
    total_expected: float
    total_paid: float
    payment_progress_pct: int


# ============================================================
# PAYMENT SOURCES
# ============================================================

class PaymentSource(ABC):
    """Where paid amounts come from"""

    @abstractmethod
    def paid_amount(self, assignment: Assignment, expected_amount: float) -> float:
        ...


class InvoicePaymentSource(PaymentSource):
    """Paid = sum of the assignment's approved supplier invoices"""

    def __init__(self, invoices: List[SupplierInvoice]):
        self.invoices = invoices

    def paid_amount(self, assignment: Assignment, expected_amount: float) -> float:
        return sum(
            invoice.amount
            for invoice in self.invoices
            if invoice.assignment_id == assignment.id and invoice.status == SupplierInvoiceStatus.APPROVED
        )


class DemoPaymentSource(PaymentSource):
    """Pseudo-random payments for demonstrations; seed it for repeatable output"""

    def __init__(self, seed: Optional[int] = None):
        self.random = random.Random(seed)

    def paid_amount(self, assignment: Assignment, expected_amount: float) -> float:
        if self.random.random() > 0.5:
            return expected_amount
        return self.random.random() * expected_amount


# ============================================================
# DERIVATIONS
# ============================================================

def generate_mission_days(
    assignments: List[Assignment],
    today: Optional[date] = None
) -> List[MissionDay]:
    if not assignments:
        return []
    today = today or date.today()
    start = min(a.start_date for a in assignments)
    end = max(a.end_date for a in assignments)

    days = []
    current = start
    while current <= end:
        if current < today:
            status = DayStatus.COMPLETED
        elif current == today:
            status = DayStatus.ACTIVE
        else:
            status = DayStatus.PLANNED
        # Every assigned crew member is assumed present; no attendance is recorded
        present = [a.user_id for a in assignments if a.start_date <= current <= a.end_date]
        days.append(MissionDay(day=current, status=status, crew_present=present))
        current += timedelta(days=1)
    return days


def payment_state(expected_amount: float, paid_amount: float) -> PaymentState:
    if paid_amount >= expected_amount and expected_amount > 0:
        return PaymentState.COMPLETED
    if paid_amount > 0:
        return PaymentState.PARTIAL
    return PaymentState.PENDING


def _latest_invoice(assignment_id: str, invoices: List[SupplierInvoice]) -> Optional[SupplierInvoice]:
    matching = [i for i in invoices if i.assignment_id == assignment_id]
    if not matching:
        return None
    return max(matching, key=lambda i: i.created_at)


def calculate_payment_status(
    assignments: List[Assignment],
    payment_source: PaymentSource,
    invoices: Optional[List[SupplierInvoice]] = None
) -> List[PaymentStatus]:
    invoices = invoices or []
    statuses = []
    for assignment in assignments:
        expected = assignment_cost(assignment.day_rate, assignment.start_date, assignment.end_date)
        paid = payment_source.paid_amount(assignment, expected)

        invoice_status = None
        invoice_id = None
        if assignment.engagement.is_freelance:
            invoice = _latest_invoice(assignment.id, invoices)
            invoice_status = invoice.status.value if invoice else "none"
            invoice_id = invoice.id if invoice else None

        user = getattr(assignment, "user", None)
        statuses.append(PaymentStatus(
            assignment_id=assignment.id,
            user_id=assignment.user_id,
            user_name=user.name if user else "Unknown",
            position=assignment.position,
            engagement=assignment.engagement.value,
            expected_amount=expected,
            paid_amount=paid,
            currency=assignment.currency,
            payment_status=payment_state(expected, paid),
            invoice_status=invoice_status,
            invoice_id=invoice_id,
        ))
    return statuses


def payment_progress(payments: List[PaymentStatus]) -> int:
    expected = sum(p.expected_amount for p in payments)
    if expected <= 0:
        return 0
    paid = sum(p.paid_amount for p in payments)
    return round(paid / expected * 100)


def build_execution_view(
    mission_id: str,
    assignments: List[Assignment],
    invoices: List[SupplierInvoice],
    payment_source: Optional[PaymentSource] = None,
    today: Optional[date] = None
) -> ExecutionView:
    payment_source = payment_source or InvoicePaymentSource(invoices)
    payments = calculate_payment_status(assignments, payment_source, invoices)
    return ExecutionView(
        mission_id=mission_id,
        days=generate_mission_days(assignments, today),
        payments=payments,
        total_expected=sum(p.expected_amount for p in payments),
        total_paid=sum(p.paid_amount for p in payments),
        payment_progress_pct=payment_progress(payments),
    )
