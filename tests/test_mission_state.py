"""
Test Mission State Machine

Tests for:
- Mission status transitions (happy path, rejections, terminal states)
- Final validation requires a completed mission
- Supplier invoice decisions are terminal
"""

import pytest

from models.mission import MissionStatus, MissionEvent, ValidationStatus
from models.invoice import SupplierInvoiceStatus
from services.mission_state import (
    InvalidTransition,
    MISSION_TRANSITIONS,
    allowed_events,
    is_terminal,
    transition,
    transition_invoice,
    transition_validation,
)


class TestMissionTransitions:
    """Explicit transition table for mission status"""

    def test_happy_path_reaches_completed(self):
        status = MissionStatus.PENDING_FINANCE_REVIEW
        for event in [
            MissionEvent.FINANCE_APPROVE,
            MissionEvent.OWNER_APPROVE,
            MissionEvent.CLIENT_APPROVE,
            MissionEvent.ASSIGN_CREW,
            MissionEvent.START,
            MissionEvent.COMPLETE,
        ]:
            status = transition(status, event)
        assert status == MissionStatus.COMPLETED

    def test_rejections(self):
        assert transition(MissionStatus.WAITING_OWNER_APPROVAL, MissionEvent.OWNER_REJECT) == MissionStatus.OWNER_REJECTED
        assert transition(MissionStatus.PENDING_CLIENT_APPROVAL, MissionEvent.CLIENT_REJECT) == MissionStatus.CLIENT_REJECTED

    def test_accepts_raw_values(self):
        assert transition("pending_finance_review", "finance_approve") == MissionStatus.WAITING_OWNER_APPROVAL

    def test_event_not_in_table_raises(self):
        with pytest.raises(InvalidTransition) as exc:
            transition(MissionStatus.PENDING_FINANCE_REVIEW, MissionEvent.COMPLETE)
        assert exc.value.current == "pending_finance_review"
        assert exc.value.event == "complete"

    @pytest.mark.parametrize("status", [
        MissionStatus.CLIENT_REJECTED,
        MissionStatus.OWNER_REJECTED,
        MissionStatus.COMPLETED,
    ])
    def test_terminal_states_have_no_outgoing_events(self, status):
        assert is_terminal(status)
        assert allowed_events(status) == []
        for event in MissionEvent:
            with pytest.raises(InvalidTransition):
                transition(status, event)

    def test_every_non_terminal_state_has_an_exit(self):
        for status in MissionStatus:
            if not is_terminal(status):
                assert allowed_events(status), f"{status.value} has no outgoing transition"

    def test_unknown_status_rejected(self):
        with pytest.raises(ValueError):
            transition("blocked", MissionEvent.START)

    def test_table_targets_are_known_statuses(self):
        for target in MISSION_TRANSITIONS.values():
            assert isinstance(target, MissionStatus)


class TestValidationTransitions:

    def test_validate_completed_mission(self):
        result = transition_validation(ValidationStatus.PENDING, "validate", MissionStatus.COMPLETED)
        assert result == ValidationStatus.VALIDATED

    def test_reject_completed_mission(self):
        result = transition_validation(ValidationStatus.PENDING, "reject", MissionStatus.COMPLETED)
        assert result == ValidationStatus.REJECTED

    def test_mission_must_be_completed(self):
        with pytest.raises(InvalidTransition) as exc:
            transition_validation(ValidationStatus.PENDING, "validate", MissionStatus.IN_PROGRESS)
        assert "completed" in str(exc.value)

    def test_cannot_validate_twice(self):
        with pytest.raises(InvalidTransition):
            transition_validation(ValidationStatus.VALIDATED, "validate", MissionStatus.COMPLETED)


class TestInvoiceTransitions:

    @pytest.mark.parametrize("target", [SupplierInvoiceStatus.APPROVED, SupplierInvoiceStatus.REJECTED])
    def test_uploaded_invoice_can_be_decided(self, target):
        assert transition_invoice(SupplierInvoiceStatus.UPLOADED, target) == target

    @pytest.mark.parametrize("current", [SupplierInvoiceStatus.APPROVED, SupplierInvoiceStatus.REJECTED])
    @pytest.mark.parametrize("target", list(SupplierInvoiceStatus))
    def test_decided_invoice_is_terminal(self, current, target):
        with pytest.raises(InvalidTransition):
            transition_invoice(current, target)

    def test_cannot_reset_to_uploaded(self):
        with pytest.raises(InvalidTransition):
            transition_invoice(SupplierInvoiceStatus.UPLOADED, SupplierInvoiceStatus.UPLOADED)
