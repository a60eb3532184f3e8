"""
Test Mission Workflow Manager

Tests for:
- WorkflowSaga: ordered steps, stop on first failure, skipped remainder, resume
- Parallel load tolerates failed reads
- Per-action loading flags
- Quote creation, crew assignment, contracts, invoices, final validation
- Status events go through the transition table
"""

import asyncio
from datetime import date

import pytest

from conftest import (
    run, set_status, freelance_assignment, internal_assignment,
    MISSION_ID, CLIENT_ID, FREELANCER_ID,
)
from config import Settings
from database.local_store import LocalWorkflowStore
from models.assignment import AssignmentCreate
from models.document import ZERO_HOUR_CONTRACT, TEMP_ASSIGNMENT_LETTER, FINAL_ASSIGNMENT_LETTER
from models.invoice import SupplierInvoiceCreate, SupplierInvoiceStatus
from models.mission import MissionEvent, MissionStatus, ValidationStatus
from models.quote import QuoteItemCreate, QuoteStatus
from models.workflow import SagaStepState, StepStatus
from services.assignment_service import AssignmentNotFoundError, AssignmentValidationError
from services.mission_state import InvalidTransition
from services.workflow_gateway import WorkflowGatewayError
from services.workflow_manager import MissionNotFoundError, MissionWorkflowManager, WorkflowSaga

QUOTE_ITEMS = [QuoteItemCreate(kind="crew", description="Crew day rate", qty=2, unit_price=500)]


class FlakyStore(LocalWorkflowStore):
    """Local store with switchable failures"""

    def __init__(self, **kwargs):
        super().__init__(seed=True, **kwargs)
        self.failing = set()

    def _maybe_fail(self, operation):
        if operation in self.failing:
            raise WorkflowGatewayError(f"Failed to {operation}: 500", status_code=500)

    async def get_clients(self, access_token=None):
        self._maybe_fail("fetch clients")
        return await super().get_clients(access_token)

    async def create_mission_quote_items(self, quote_id, items, access_token=None):
        self._maybe_fail("create mission quote items")
        return await super().create_mission_quote_items(quote_id, items, access_token)

    async def generate_client_approval(self, mission_id, quote_id, client_id, access_token=None):
        self._maybe_fail("generate client approval")
        return await super().generate_client_approval(mission_id, quote_id, client_id, access_token)


def approve_quote(store, manager):
    """Drive the mission to approved through quote + client approval"""
    set_status(store, MissionStatus.PENDING_CLIENT_APPROVAL)
    report = run(manager.create_quote(CLIENT_ID, QUOTE_ITEMS))
    token = report.steps[2].result["token"]
    run(store.client_approve_quote(token))
    run(manager.load())
    return report


# ============================================================
# SAGA
# ============================================================

class TestWorkflowSaga:

    def test_steps_receive_earlier_results(self):
        async def first(results):
            return 2

        async def second(results):
            return results["first"] * 10

        report = run(WorkflowSaga("demo").step("first", first).step("second", second).run())

        assert report.succeeded is True
        assert report.failed_step is None
        assert [s.result for s in report.steps] == [2, 20]

    def test_failure_stops_and_skips_the_rest(self):
        calls = []

        async def ok(results):
            calls.append("ok")

        async def boom(results):
            raise WorkflowGatewayError("Failed to do thing: 500", status_code=500)

        async def never(results):
            calls.append("never")

        saga = WorkflowSaga("demo").step("ok", ok).step("boom", boom).step("never", never)
        report = run(saga.run())

        assert report.succeeded is False
        assert report.failed_step == "boom"
        assert [s.state for s in report.steps] == [
            SagaStepState.SUCCEEDED,
            SagaStepState.FAILED,
            SagaStepState.SKIPPED,
        ]
        assert report.steps[1].error == "Failed to do thing: 500"
        assert calls == ["ok"]
        assert isinstance(saga.error, WorkflowGatewayError)

    def test_resume_reruns_from_first_unfinished_step(self):
        calls = []
        state = {"fail": True}

        async def ok(results):
            calls.append("ok")
            return "done"

        async def flaky(results):
            calls.append("flaky")
            if state["fail"]:
                raise WorkflowGatewayError("Failed to flake")
            return results["ok"] + "!"

        saga = WorkflowSaga("demo").step("ok", ok).step("flaky", flaky)
        run(saga.run())
        state["fail"] = False
        report = run(saga.resume())

        assert report.succeeded is True
        assert calls == ["ok", "flaky", "flaky"], "Succeeded steps are not rerun"
        assert report.steps[1].result == "done!"

    def test_unexpected_errors_propagate(self):
        async def broken(results):
            raise ValueError("bug")

        with pytest.raises(ValueError):
            run(WorkflowSaga("demo").step("broken", broken).run())


# ============================================================
# LOAD
# ============================================================

class TestLoad:

    def test_load_fresh_mission(self, manager):
        aggregate = run(manager.load())

        assert aggregate.mission.id == MISSION_ID
        assert aggregate.quote is None
        assert aggregate.assignments == []
        assert [c.id for c in aggregate.clients] == [CLIENT_ID]
        assert aggregate.workflow_status["mission_id"] == MISSION_ID
        assert manager.progress().progress_pct == 12.5

    def test_failed_read_defaults_to_empty(self, settings):
        store = FlakyStore()
        store.failing.add("fetch clients")
        manager = MissionWorkflowManager(store, MISSION_ID, settings=settings)

        aggregate = run(manager.load())

        assert aggregate.mission is not None, "Other reads still succeed"
        assert aggregate.clients == []
        assert [n.message for n in manager.notifier.errors] == ["Failed to load workflow data"]

    def test_failed_reads_are_listed(self, settings):
        store = FlakyStore()
        store.failing.add("fetch clients")
        manager = MissionWorkflowManager(store, MISSION_ID, settings=settings)

        run(manager.load())

        assert manager.failed_reads == ["clients"]

    def test_unknown_mission(self, make_manager):
        manager = make_manager("mission-missing")
        run(manager.load())
        assert manager.mission is None
        assert [s.status for s in manager.steps()] == [StepStatus.PENDING] * 8
        with pytest.raises(MissionNotFoundError):
            run(manager.apply_event(MissionEvent.FINANCE_APPROVE))


# ============================================================
# LOADING FLAGS
# ============================================================

class TestLoadingFlags:

    def test_busy_action_is_ignored(self, manager):
        manager.loading.add("quote")
        assert run(manager.create_quote(CLIENT_ID, QUOTE_ITEMS)) is None
        assert manager.is_loading("quote")

    def test_concurrent_same_action(self, settings):
        store = LocalWorkflowStore(latency_ms=5, seed=True)
        manager = MissionWorkflowManager(store, MISSION_ID, settings=settings)

        async def both():
            return await asyncio.gather(
                manager.create_quote(CLIENT_ID, QUOTE_ITEMS),
                manager.create_quote(CLIENT_ID, QUOTE_ITEMS),
            )

        first, second = run(both())

        assert first.succeeded is True
        assert second is None
        assert len(store.quotes) == 1
        assert not manager.is_loading("quote"), "Flag is cleared afterwards"

    def test_flag_cleared_after_error(self, manager):
        with pytest.raises(AssignmentValidationError):
            run(manager.assign_crew(AssignmentCreate()))
        assert not manager.is_loading("assignment")


# ============================================================
# QUOTE
# ============================================================

class TestCreateQuote:

    def test_create_quote(self, store, manager):
        report = run(manager.create_quote(CLIENT_ID, QUOTE_ITEMS))

        assert report.succeeded is True
        assert [s.name for s in report.steps] == ["create_quote", "create_quote_items", "generate_client_approval"]
        quote = report.steps[0].result
        assert quote.total_amount == 1150.0
        assert quote.fee_pct == 15.0
        assert quote.currency == "EUR"

        link = report.steps[2].result
        assert link["approval_url"] == f"https://app.crewtech.test/client-approval?token={link['token']}"
        assert link["token"] in store.approvals

        assert manager.quote.id == quote.id
        assert len(manager.aggregate.quote_items) == 1
        assert report.notifications[-1].message == "Quote created and sent to client"

    def test_single_active_quote(self, store, manager):
        run(manager.create_quote(CLIENT_ID, QUOTE_ITEMS))
        with pytest.raises(InvalidTransition):
            run(manager.create_quote(CLIENT_ID, QUOTE_ITEMS))

    def test_new_quote_after_rejection(self, store, manager):
        run(manager.create_quote(CLIENT_ID, QUOTE_ITEMS))
        next(iter(store.quotes.values())).status = QuoteStatus.REJECTED
        run(manager.load())

        report = run(manager.create_quote(CLIENT_ID, QUOTE_ITEMS, fee_pct=10))
        assert report.succeeded is True
        assert report.steps[0].result.total_amount == 1100.0

    def test_partial_failure_reports_skipped_steps(self, settings):
        store = FlakyStore()
        store.failing.add("create mission quote items")
        manager = MissionWorkflowManager(store, MISSION_ID, settings=settings)

        report = run(manager.create_quote(CLIENT_ID, QUOTE_ITEMS))

        assert report.succeeded is False
        assert report.failed_step == "create_quote_items"
        assert report.steps[2].state == SagaStepState.SKIPPED
        assert len(store.quotes) == 1, "The quote row written before the failure stays"
        assert store.approvals == {}
        assert report.notifications[-1].message == "Failed to create quote"
        assert isinstance(manager.last_error, WorkflowGatewayError)

    def test_resume_after_failure(self, settings):
        store = FlakyStore()
        store.failing.add("generate client approval")
        manager = MissionWorkflowManager(store, MISSION_ID, settings=settings)
        run(manager.create_quote(CLIENT_ID, QUOTE_ITEMS))

        store.failing.clear()
        report = run(manager.resume("quote"))

        assert report.succeeded is True
        assert len(store.quotes) == 1
        assert len(store.quote_items) == 1
        assert len(store.approvals) == 1

    def test_resume_unknown_action(self, manager):
        assert run(manager.resume("quote")) is None

    def test_retry_completes_quote_left_without_items(self, settings):
        store = FlakyStore()
        store.failing.add("create mission quote items")
        run(MissionWorkflowManager(store, MISSION_ID, settings=settings).create_quote(CLIENT_ID, QUOTE_ITEMS))

        store.failing.clear()
        report = run(MissionWorkflowManager(store, MISSION_ID, settings=settings).create_quote(CLIENT_ID, QUOTE_ITEMS))

        assert report.succeeded is True
        assert len(store.quotes) == 1, "The existing quote is reused"
        assert report.steps[0].result.id == next(iter(store.quotes))
        assert len(store.quote_items) == 1
        assert len(store.approvals) == 1

    def test_retry_keeps_items_already_written(self, settings):
        store = FlakyStore()
        store.failing.add("generate client approval")
        run(MissionWorkflowManager(store, MISSION_ID, settings=settings).create_quote(CLIENT_ID, QUOTE_ITEMS))

        store.failing.clear()
        report = run(MissionWorkflowManager(store, MISSION_ID, settings=settings).create_quote(CLIENT_ID, QUOTE_ITEMS))

        assert report.succeeded is True
        assert len(store.quote_items) == 1, "Items are not duplicated"
        assert report.steps[2].result["token"] in store.approvals

    def test_retry_with_different_items_is_refused(self, settings):
        store = FlakyStore()
        store.failing.add("create mission quote items")
        run(MissionWorkflowManager(store, MISSION_ID, settings=settings).create_quote(CLIENT_ID, QUOTE_ITEMS))

        store.failing.clear()
        other_items = [QuoteItemCreate(kind="crew", description="Crew day rate", qty=3, unit_price=500)]
        with pytest.raises(InvalidTransition):
            run(MissionWorkflowManager(store, MISSION_ID, settings=settings).create_quote(CLIENT_ID, other_items))
        assert store.quote_items == {}
        assert store.approvals == {}


# ============================================================
# ASSIGNMENTS & CONTRACTS
# ============================================================

class TestAssignCrew:

    def test_assign_moves_approved_mission_to_pending_execution(self, store, manager):
        approve_quote(store, manager)
        report = run(manager.assign_crew(freelance_assignment()))

        assert report.succeeded is True
        assert [s.name for s in report.steps] == ["upsert_assignment", "update_mission_status"]
        assert store.missions[MISSION_ID].status == MissionStatus.PENDING_EXECUTION
        assert len(manager.assignments) == 1

    def test_assign_before_approval_keeps_status(self, store, manager):
        report = run(manager.assign_crew(internal_assignment()))

        assert [s.name for s in report.steps] == ["upsert_assignment"]
        assert store.missions[MISSION_ID].status == MissionStatus.PENDING_FINANCE_REVIEW

    def test_missing_fields(self, store, manager):
        with pytest.raises(AssignmentValidationError):
            run(manager.assign_crew(AssignmentCreate(user_id=FREELANCER_ID)))
        assert store.assignments == {}

    def test_day_rate_defaults_from_settings(self, store):
        settings = Settings(default_day_rate=650)
        manager = MissionWorkflowManager(store, MISSION_ID, settings=settings)
        data = internal_assignment()
        data.day_rate = None

        run(manager.assign_crew(data))

        assert next(iter(store.assignments.values())).day_rate == 650


class TestGenerateContracts:

    def test_contracts_and_temp_letter(self, store, manager):
        approve_quote(store, manager)
        run(manager.assign_crew(freelance_assignment()))
        run(manager.assign_crew(internal_assignment()))

        report = run(manager.generate_contracts())

        assert report.succeeded is True
        assert [s.name for s in report.steps] == [f"zero_hour_contract:{FREELANCER_ID}", "temp_assignment_letter"]
        documents = {d.type: d for d in store.documents.values()}
        assert documents[ZERO_HOUR_CONTRACT].storage_path == f"/contracts/{MISSION_ID}/{FREELANCER_ID}.pdf"
        assert documents[TEMP_ASSIGNMENT_LETTER].storage_path == f"/assignments/{MISSION_ID}/temp_letter.pdf"
        assert len(documents[TEMP_ASSIGNMENT_LETTER].metadata["assignments"]) == 2

    def test_existing_contract_not_duplicated(self, store, manager):
        run(manager.assign_crew(freelance_assignment()))
        run(manager.generate_contracts())
        report = run(manager.generate_contracts())

        assert report.steps[0].result is None
        contracts = [d for d in store.documents.values() if d.type == ZERO_HOUR_CONTRACT]
        assert len(contracts) == 1

    def test_no_temp_letter_without_approved_quote(self, store, manager):
        run(manager.assign_crew(freelance_assignment()))
        report = run(manager.generate_contracts())
        assert "temp_assignment_letter" not in [s.name for s in report.steps]


# ============================================================
# SUPPLIER INVOICES
# ============================================================

class TestInvoices:

    def upload(self, manager):
        run(manager.assign_crew(freelance_assignment()))
        assignment_id = manager.assignments[0].id
        report = run(manager.upload_invoice(SupplierInvoiceCreate(
            assignment_id=assignment_id,
            invoice_number="INV-2024-001",
            amount=1500,
        )))
        return report.steps[0].result

    def test_upload_and_approve(self, store, manager):
        invoice = self.upload(manager)
        report = run(manager.process_invoice(invoice.id, SupplierInvoiceStatus.APPROVED))

        assert report.succeeded is True
        assert store.invoices[invoice.id].status == SupplierInvoiceStatus.APPROVED
        assert report.notifications[-1].message == "Invoice approved"
        steps = {s.id: s for s in manager.steps()}
        assert steps["invoicing"].status == StepStatus.COMPLETED

    @pytest.mark.parametrize("first, second", [
        (SupplierInvoiceStatus.APPROVED, SupplierInvoiceStatus.APPROVED),
        (SupplierInvoiceStatus.APPROVED, SupplierInvoiceStatus.REJECTED),
        (SupplierInvoiceStatus.REJECTED, SupplierInvoiceStatus.APPROVED),
    ])
    def test_decided_invoice_is_final(self, store, manager, first, second):
        invoice = self.upload(manager)
        run(manager.process_invoice(invoice.id, first))

        with pytest.raises(InvalidTransition):
            run(manager.process_invoice(invoice.id, second))
        assert store.invoices[invoice.id].status == first

    def test_store_guards_terminal_invoice_too(self, store, manager):
        invoice = self.upload(manager)
        run(store.update_supplier_invoice_status(invoice.id, SupplierInvoiceStatus.REJECTED))
        with pytest.raises(InvalidTransition):
            run(store.update_supplier_invoice_status(invoice.id, SupplierInvoiceStatus.APPROVED))

    def test_upload_for_foreign_assignment(self, manager):
        run(manager.load())
        with pytest.raises(AssignmentNotFoundError):
            run(manager.upload_invoice(SupplierInvoiceCreate(
                assignment_id="other-mission-assignment",
                invoice_number="INV-X",
                amount=10,
            )))

    def test_unknown_invoice(self, manager):
        with pytest.raises(WorkflowGatewayError) as exc:
            run(manager.process_invoice("missing", SupplierInvoiceStatus.APPROVED))
        assert exc.value.status_code == 404


# ============================================================
# STATUS EVENTS & VALIDATION
# ============================================================

class TestStatusEvents:

    def test_manual_events(self, store, manager):
        run(manager.apply_event(MissionEvent.FINANCE_APPROVE))
        report = run(manager.apply_event(MissionEvent.OWNER_APPROVE))

        assert report.succeeded is True
        assert store.missions[MISSION_ID].status == MissionStatus.PENDING_CLIENT_APPROVAL
        assert report.notifications[-1].message == "Mission status updated: Pending Client Approval"

    def test_client_events_are_not_manual(self, store, manager):
        set_status(store, MissionStatus.PENDING_CLIENT_APPROVAL)
        with pytest.raises(InvalidTransition):
            run(manager.apply_event(MissionEvent.CLIENT_APPROVE))
        assert store.missions[MISSION_ID].status == MissionStatus.PENDING_CLIENT_APPROVAL

    def test_illegal_event(self, store, manager):
        with pytest.raises(InvalidTransition):
            run(manager.apply_event(MissionEvent.COMPLETE))
        assert store.missions[MISSION_ID].status == MissionStatus.PENDING_FINANCE_REVIEW

    def test_rejected_mission_cannot_be_approved(self, store, manager):
        set_status(store, MissionStatus.OWNER_REJECTED)
        with pytest.raises(InvalidTransition):
            run(manager.apply_event(MissionEvent.OWNER_APPROVE))


class TestFinalValidation:

    def test_requires_completed_mission(self, store, manager):
        set_status(store, MissionStatus.IN_PROGRESS)
        with pytest.raises(InvalidTransition):
            run(manager.final_validation())
        assert store.missions[MISSION_ID].validation_status == ValidationStatus.PENDING

    def test_validate_completed_mission(self, store, manager):
        set_status(store, MissionStatus.COMPLETED)
        report = run(manager.final_validation())

        assert report.succeeded is True
        assert store.missions[MISSION_ID].validation_status == ValidationStatus.VALIDATED
        letters = [d for d in store.documents.values() if d.type == FINAL_ASSIGNMENT_LETTER]
        assert letters[0].metadata == {"validation_complete": True}
        assert report.notifications[-1].message == "Mission validated and final documents generated"

        steps = {s.id: s for s in manager.steps()}
        assert steps["validation"].status == StepStatus.COMPLETED
        assert steps["execution"].status == StepStatus.COMPLETED

    def test_cannot_validate_twice(self, store, manager):
        set_status(store, MissionStatus.COMPLETED)
        run(manager.final_validation())
        with pytest.raises(InvalidTransition):
            run(manager.final_validation())

    def test_reject_validation(self, store, manager):
        set_status(store, MissionStatus.COMPLETED)
        report = run(manager.reject_validation())

        assert report.succeeded is True
        assert store.missions[MISSION_ID].validation_status == ValidationStatus.REJECTED
        assert not [d for d in store.documents.values() if d.type == FINAL_ASSIGNMENT_LETTER]
        assert report.notifications[-1].message == "Mission validation rejected"
        with pytest.raises(InvalidTransition):
            run(manager.final_validation())

    def test_reject_requires_completed_mission(self, store, manager):
        set_status(store, MissionStatus.IN_PROGRESS)
        with pytest.raises(InvalidTransition):
            run(manager.reject_validation())


class TestFullLifecycle:

    def test_progress_reaches_100(self, store, manager):
        run(manager.apply_event(MissionEvent.FINANCE_APPROVE))
        run(manager.apply_event(MissionEvent.OWNER_APPROVE))
        approve_quote(store, manager)
        run(manager.assign_crew(freelance_assignment(start=date(2024, 2, 15))))
        run(manager.generate_contracts())
        run(manager.apply_event(MissionEvent.START))
        invoice = run(manager.upload_invoice(SupplierInvoiceCreate(
            assignment_id=manager.assignments[0].id,
            invoice_number="INV-1",
            amount=1500,
        ))).steps[0].result
        run(manager.process_invoice(invoice.id, SupplierInvoiceStatus.APPROVED))
        run(manager.apply_event(MissionEvent.COMPLETE))
        run(manager.final_validation())

        progress = manager.progress()
        assert progress.progress_pct == 100.0
        assert progress.mission_status == "completed"
        assert progress.validation_status == "validated"
