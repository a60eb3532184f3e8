"""
Mission State Machine

Explicit transition tables for the three status fields that workflow actions
mutate: mission status, mission validation status and supplier invoice status.

RULES:
- Every status change goes through one of the transition functions below
- An event that is not in the table raises InvalidTransition
- Terminal states have no outgoing transitions
"""

import logging
from typing import Dict, Tuple, List

from models.mission import MissionStatus, MissionEvent, ValidationStatus
from models.invoice import SupplierInvoiceStatus

logger = logging.getLogger(__name__)


class InvalidTransition(Exception):
    """Raised when an event is not allowed from the current state"""

    def __init__(self, current: str, event: str, message: str = None):
        self.current = current
        self.event = event
        super().__init__(message or f"Cannot apply '{event}' to a record in state '{current}'")


# ============================================================
# MISSION STATUS
# ============================================================

MISSION_TRANSITIONS: Dict[Tuple[MissionStatus, MissionEvent], MissionStatus] = {
    (MissionStatus.PENDING_FINANCE_REVIEW, MissionEvent.FINANCE_APPROVE): MissionStatus.WAITING_OWNER_APPROVAL,
    (MissionStatus.WAITING_OWNER_APPROVAL, MissionEvent.OWNER_APPROVE): MissionStatus.PENDING_CLIENT_APPROVAL,
    (MissionStatus.WAITING_OWNER_APPROVAL, MissionEvent.OWNER_REJECT): MissionStatus.OWNER_REJECTED,
    (MissionStatus.PENDING_CLIENT_APPROVAL, MissionEvent.CLIENT_APPROVE): MissionStatus.APPROVED,
    (MissionStatus.PENDING_CLIENT_APPROVAL, MissionEvent.CLIENT_REJECT): MissionStatus.CLIENT_REJECTED,
    (MissionStatus.APPROVED, MissionEvent.ASSIGN_CREW): MissionStatus.PENDING_EXECUTION,
    (MissionStatus.PENDING_EXECUTION, MissionEvent.START): MissionStatus.IN_PROGRESS,
    (MissionStatus.IN_PROGRESS, MissionEvent.COMPLETE): MissionStatus.COMPLETED,
}

TERMINAL_MISSION_STATUSES = {
    MissionStatus.CLIENT_REJECTED,
    MissionStatus.OWNER_REJECTED,
    MissionStatus.COMPLETED,
}

# Events staff can trigger directly; client events only come through the approval token
MANUAL_EVENTS = {
    MissionEvent.FINANCE_APPROVE,
    MissionEvent.OWNER_APPROVE,
    MissionEvent.OWNER_REJECT,
    MissionEvent.START,
    MissionEvent.COMPLETE,
}


def transition(current: MissionStatus, event: MissionEvent) -> MissionStatus:
    """Return the status reached by applying event to current"""
    current = MissionStatus(current)
    event = MissionEvent(event)
    new_status = MISSION_TRANSITIONS.get((current, event))
    if new_status is None:
        raise InvalidTransition(current.value, event.value)
    logger.debug(f"Mission transition {current.value} --{event.value}--> {new_status.value}")
    return new_status


def allowed_events(current: MissionStatus) -> List[MissionEvent]:
    """Events that can be applied from current, in table order"""
    current = MissionStatus(current)
    return [event for (status, event) in MISSION_TRANSITIONS if status == current]


def is_terminal(status: MissionStatus) -> bool:
    return MissionStatus(status) in TERMINAL_MISSION_STATUSES


# ============================================================
# VALIDATION STATUS
# ============================================================

VALIDATION_TRANSITIONS = {
    (ValidationStatus.PENDING, "validate"): ValidationStatus.VALIDATED,
    (ValidationStatus.PENDING, "reject"): ValidationStatus.REJECTED,
}


def transition_validation(
    current: ValidationStatus,
    action: str,
    mission_status: MissionStatus
) -> ValidationStatus:
    """Final validation is only possible once the mission is completed"""
    current = ValidationStatus(current)
    if MissionStatus(mission_status) != MissionStatus.COMPLETED:
        raise InvalidTransition(
            current.value,
            action,
            f"Mission must be completed before final validation (status: {MissionStatus(mission_status).value})"
        )
    new_status = VALIDATION_TRANSITIONS.get((current, action))
    if new_status is None:
        raise InvalidTransition(current.value, action)
    return new_status


# ============================================================
# SUPPLIER INVOICE STATUS
# ============================================================

INVOICE_TRANSITIONS = {
    SupplierInvoiceStatus.UPLOADED: {SupplierInvoiceStatus.APPROVED, SupplierInvoiceStatus.REJECTED},
    SupplierInvoiceStatus.APPROVED: set(),
    SupplierInvoiceStatus.REJECTED: set(),
}


def transition_invoice(
    current: SupplierInvoiceStatus,
    target: SupplierInvoiceStatus
) -> SupplierInvoiceStatus:
    """approved and rejected are terminal"""
    current = SupplierInvoiceStatus(current)
    target = SupplierInvoiceStatus(target)
    if target not in INVOICE_TRANSITIONS[current]:
        raise InvalidTransition(current.value, target.value)
    return target
