"""
Mission Workflow Manager

Orchestrates the 8-step workflow of one mission: loads the related records,
derives the step list and runs the staff actions.

RULES:
- Reads run in parallel; a failed read is logged, listed in failed_reads and
  treated as "nothing exists"
- One active quote per mission; a quote left without an approval link by a
  failed run is completed on the next create_quote
- Each action runs under a loading flag; a second call of the same action
  while the flag is set is ignored
- Multi-step actions run as a WorkflowSaga: steps run in order, the first
  failure stops the run and the remaining steps are marked skipped
- Status changes are checked against services.mission_state before any write
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple

from config import Settings, get_settings
from models.assignment import Assignment, AssignmentCreate
from models.client import Client
from models.document import FINAL_ASSIGNMENT_LETTER, TEMP_ASSIGNMENT_LETTER, ZERO_HOUR_CONTRACT
from models.invoice import SupplierInvoice, SupplierInvoiceCreate, SupplierInvoiceStatus
from models.mission import Mission, MissionEvent, MissionStatus, STATUS_LABELS
from models.quote import Quote, QuoteItemCreate, compute_quote_total
from models.workflow import (
    MissionAggregate,
    SagaReport,
    SagaStepOutcome,
    SagaStepState,
    WorkflowProgress,
    WorkflowStep,
)
from services.assignment_service import AssignmentNotFoundError, AssignmentValidationError, validate_assignment
from services.mission_state import (
    InvalidTransition,
    MANUAL_EVENTS,
    transition,
    transition_invoice,
    transition_validation,
)
from services.notifications import Notifier
from services.repository import WorkflowRepository
from services.workflow_gateway import WorkflowGatewayError
from services.workflow_steps import build_progress, compute_workflow_steps

logger = logging.getLogger(__name__)

# Errors a saga step records as a failure; anything else propagates
SAGA_ERRORS = (WorkflowGatewayError, InvalidTransition)

StepFunc = Callable[[Dict[str, Any]], Awaitable[Any]]


class MissionNotFoundError(Exception):
    pass


# ============================================================
# SAGA
# ============================================================

class WorkflowSaga:
    """
    Ordered list of named async steps.

    Each step receives a dict of the results of the steps that already
    succeeded, keyed by step name.
    """

    def __init__(self, action: str):
        self.action = action
        self.steps: List[Tuple[str, StepFunc]] = []
        self.results: Dict[str, Any] = {}
        self.error: Optional[Exception] = None
        self.report = SagaReport(action=action)

    def step(self, name: str, func: StepFunc) -> "WorkflowSaga":
        self.steps.append((name, func))
        self.report.steps.append(SagaStepOutcome(name=name))
        return self

    async def run(self) -> SagaReport:
        return await self._run_from(0)

    async def resume(self) -> SagaReport:
        """Rerun from the first step that did not succeed"""
        start = next(
            (i for i, outcome in enumerate(self.report.steps) if outcome.state != SagaStepState.SUCCEEDED),
            len(self.steps)
        )
        return await self._run_from(start)

    async def _run_from(self, start: int) -> SagaReport:
        self.error = None
        self.report.failed_step = None

        for index, (name, func) in enumerate(self.steps):
            if index < start:
                continue
            outcome = self.report.steps[index]

            if self.report.failed_step is not None:
                outcome.state = SagaStepState.SKIPPED
                continue

            try:
                result = await func(self.results)
            except SAGA_ERRORS as e:
                logger.error(f"[{self.action}] step '{name}' failed: {e}")
                outcome.state = SagaStepState.FAILED
                outcome.error = str(e)
                self.error = e
                self.report.failed_step = name
                continue

            self.results[name] = result
            outcome.state = SagaStepState.SUCCEEDED
            outcome.error = None
            outcome.result = result

        self.report.succeeded = self.report.failed_step is None
        return self.report


# ============================================================
# MANAGER
# ============================================================

class MissionWorkflowManager:

    def __init__(
        self,
        repository: WorkflowRepository,
        mission_id: str,
        access_token: Optional[str] = None,
        notifier: Optional[Notifier] = None,
        settings: Optional[Settings] = None,
        loading: Optional[Set[str]] = None
    ):
        self.repository = repository
        self.mission_id = mission_id
        self.access_token = access_token
        self.notifier = notifier or Notifier()
        self.settings = settings or get_settings()
        # Shared between managers of the same mission to guard concurrent requests
        self.loading: Set[str] = loading if loading is not None else set()

        self.aggregate = MissionAggregate()
        self.loaded = False
        self.failed_reads: List[str] = []
        self.sagas: Dict[str, WorkflowSaga] = {}
        self.last_error: Optional[Exception] = None

    # ============ DATA ============

    @property
    def mission(self) -> Optional[Mission]:
        return self.aggregate.mission

    @property
    def quote(self) -> Optional[Quote]:
        return self.aggregate.quote

    @property
    def assignments(self) -> List[Assignment]:
        return self.aggregate.assignments

    @property
    def invoices(self) -> List[SupplierInvoice]:
        return self.aggregate.invoices

    @property
    def clients(self) -> List[Client]:
        return self.aggregate.clients

    async def _gather(self, reads: Dict[str, Awaitable[Any]]) -> Tuple[Dict[str, Any], List[str]]:
        """Run reads in parallel; failed reads come back as None"""
        names = list(reads)
        results = await asyncio.gather(*reads.values(), return_exceptions=True)
        values: Dict[str, Any] = {}
        failed: List[str] = []
        for name, result in zip(names, results):
            if isinstance(result, WorkflowGatewayError):
                logger.error(f"Error loading {name} for mission {self.mission_id}: {result}")
                failed.append(name)
                values[name] = None
            elif isinstance(result, BaseException):
                raise result
            else:
                values[name] = result
        return values, failed

    async def load(self) -> MissionAggregate:
        token = self.access_token
        values, failed = await self._gather({
            "mission": self.repository.get_mission(self.mission_id, token),
            "quote": self.repository.get_mission_quote(self.mission_id, token),
            "assignments": self.repository.get_mission_assignments(self.mission_id, token),
            "clients": self.repository.get_clients(token),
            "workflow_status": self.repository.get_mission_workflow_status(token),
        })

        assignments = values["assignments"] or []
        quote = values["quote"]

        follow_up: Dict[str, Awaitable[Any]] = {}
        if assignments:
            follow_up["invoices"] = self.repository.get_supplier_invoices([a.id for a in assignments], token)
        if quote is not None:
            follow_up["quote_items"] = self.repository.get_quote_items(quote.id, token)
        extra, extra_failed = await self._gather(follow_up)
        failed.extend(extra_failed)

        workflow_status = next(
            (row for row in values["workflow_status"] or [] if row.get("mission_id") == self.mission_id),
            None
        )

        self.aggregate = MissionAggregate(
            mission=values["mission"],
            quote=quote,
            quote_items=extra.get("quote_items") or [],
            assignments=assignments,
            invoices=extra.get("invoices") or [],
            clients=values["clients"] or [],
            workflow_status=workflow_status,
        )
        self.loaded = True
        self.failed_reads = failed

        if failed:
            self.notifier.error("Failed to load workflow data")
        return self.aggregate

    async def _ensure_loaded(self):
        if not self.loaded:
            await self.load()

    def _require_mission(self) -> Mission:
        if self.mission is None:
            raise MissionNotFoundError(f"Mission {self.mission_id} not found")
        return self.mission

    def steps(self) -> List[WorkflowStep]:
        return compute_workflow_steps(self.aggregate)

    def progress(self) -> WorkflowProgress:
        progress = build_progress(self.mission_id, self.aggregate)
        progress.notifications = list(self.notifier.notifications)
        return progress

    # ============ ACTION PLUMBING ============

    def _begin(self, action: str) -> bool:
        if action in self.loading:
            logger.warning(f"Action '{action}' already running for mission {self.mission_id}, ignoring")
            return False
        self.loading.add(action)
        return True

    def _end(self, action: str):
        self.loading.discard(action)

    def is_loading(self, action: str) -> bool:
        return action in self.loading

    async def _execute(self, saga: WorkflowSaga, success_message: str, failure_message: str) -> SagaReport:
        self.sagas[saga.action] = saga
        report = await saga.run()
        return await self._complete(saga, report, success_message, failure_message)

    async def _complete(
        self,
        saga: WorkflowSaga,
        report: SagaReport,
        success_message: str,
        failure_message: str
    ) -> SagaReport:
        await self.load()
        self.last_error = saga.error
        if report.succeeded:
            self.notifier.success(success_message)
        else:
            self.notifier.error(failure_message)
        report.notifications = list(self.notifier.notifications)
        return report

    async def resume(self, action: str) -> Optional[SagaReport]:
        """Rerun the last saga of an action from its first unfinished step"""
        saga = self.sagas.get(action)
        if saga is None or not self._begin(action):
            return None
        try:
            report = await saga.resume()
            return await self._complete(saga, report, f"{action} completed", f"{action} failed")
        finally:
            self._end(action)

    # ============ QUOTE ============

    async def create_quote(
        self,
        client_id: str,
        items: Optional[List[QuoteItemCreate]] = None,
        fee_pct: Optional[float] = None,
        currency: Optional[str] = None
    ) -> Optional[SagaReport]:
        """
        Create the quote, its line items and the client approval link.

        An active quote that never got an approval link (an earlier run failed
        part-way) is completed instead of duplicated: its missing items are
        created from this request and the link is minted.
        """
        if not self._begin("quote"):
            return None
        try:
            await self._ensure_loaded()
            self._require_mission()
            token = self.access_token
            items = items or []

            unfinished = await self._unfinished_quote()
            if unfinished is not None:
                fee_pct = unfinished.fee_pct
                currency = unfinished.currency
                client_id = unfinished.client_id
            else:
                fee_pct = self.settings.default_fee_pct if fee_pct is None else fee_pct
                currency = currency or self.settings.default_currency
            total = compute_quote_total(items, fee_pct)
            existing_items = self.aggregate.quote_items if unfinished is not None else []

            if unfinished is not None and not existing_items and items and total != unfinished.total_amount:
                raise InvalidTransition(
                    unfinished.status.value,
                    "create_quote",
                    f"Quote {unfinished.id} was created for {unfinished.total_amount}, these items total {total}"
                )

            async def create(results):
                if unfinished is not None:
                    return unfinished
                rows = await self.repository.create_mission_quote(
                    self.mission_id, client_id, fee_pct, currency, total, token
                )
                if not rows:
                    raise WorkflowGatewayError("Failed to create mission quote: no row returned")
                return rows[0]

            async def create_items(results):
                if existing_items:
                    return existing_items
                if not items:
                    return []
                return await self.repository.create_mission_quote_items(results["create_quote"].id, items, token)

            async def approval_link(results):
                approval_token = await self.repository.generate_client_approval(
                    self.mission_id, results["create_quote"].id, client_id, token
                )
                return {
                    "token": approval_token,
                    "approval_url": self.settings.client_approval_url(approval_token),
                }

            saga = (
                WorkflowSaga("quote")
                .step("create_quote", create)
                .step("create_quote_items", create_items)
                .step("generate_client_approval", approval_link)
            )
            return await self._execute(saga, "Quote created and sent to client", "Failed to create quote")
        finally:
            self._end("quote")

    async def _unfinished_quote(self) -> Optional[Quote]:
        """The active quote when it has no approval link yet; a quote already sent blocks a new one"""
        if self.quote is None or not self.quote.is_active:
            return None
        if self.quote.client_approved or await self.repository.get_quote_approvals(self.quote.id, self.access_token):
            raise InvalidTransition(
                self.quote.status.value,
                "create_quote",
                f"Mission {self.mission_id} already has an active quote"
            )
        self.notifier.info(f"Completing quote {self.quote.id}: no approval link was sent yet")
        return self.quote

    # ============ ASSIGNMENTS ============

    async def assign_crew(self, data: AssignmentCreate) -> Optional[SagaReport]:
        """Upsert an assignment; an approved mission moves to pending_execution"""
        if not self._begin("assignment"):
            return None
        try:
            try:
                validate_assignment(data)
            except AssignmentValidationError:
                self.notifier.error("Please fill all required fields")
                raise

            await self._ensure_loaded()
            mission = self._require_mission()
            token = self.access_token
            day_rate = self.settings.default_day_rate if data.day_rate is None else data.day_rate

            async def upsert(results):
                return await self.repository.upsert_assignment(
                    self.mission_id,
                    data.user_id,
                    data.position,
                    data.engagement,
                    day_rate,
                    data.currency,
                    data.start_date,
                    data.end_date,
                    access_token=token,
                )

            saga = WorkflowSaga("assignment").step("upsert_assignment", upsert)

            if mission.status == MissionStatus.APPROVED:
                new_status = transition(mission.status, MissionEvent.ASSIGN_CREW)

                async def start_execution_phase(results):
                    return await self.repository.update_mission_status(self.mission_id, new_status, token)

                saga.step("update_mission_status", start_execution_phase)

            return await self._execute(saga, "Crew member assigned", "Failed to assign crew member")
        finally:
            self._end("assignment")

    # ============ CONTRACTS ============

    async def generate_contracts(self) -> Optional[SagaReport]:
        """Zero-hour contracts for uncovered freelancers, then the temporary assignment letter"""
        if not self._begin("contracts"):
            return None
        try:
            await self._ensure_loaded()
            self._require_mission()
            token = self.access_token
            saga = WorkflowSaga("contracts")

            for assignment in self.assignments:
                if not assignment.engagement.is_freelance:
                    continue

                async def zero_hour_contract(results, assignment=assignment):
                    if await self.repository.user_has_zero_hour_contract(assignment.user_id, token):
                        return None
                    return await self.repository.create_document(
                        ZERO_HOUR_CONTRACT,
                        self.mission_id,
                        assignment.user_id,
                        f"/contracts/{self.mission_id}/{assignment.user_id}.pdf",
                        f"Zero Hour Contract - {assignment.user_id}",
                        {"assignment_id": assignment.id},
                        access_token=token,
                    )

                saga.step(f"zero_hour_contract:{assignment.user_id}", zero_hour_contract)

            if self.quote is not None and self.quote.client_approved:
                assignment_ids = [a.id for a in self.assignments]

                async def temp_letter(results):
                    return await self.repository.create_document(
                        TEMP_ASSIGNMENT_LETTER,
                        self.mission_id,
                        None,
                        f"/assignments/{self.mission_id}/temp_letter.pdf",
                        "Temporary Assignment Letter",
                        {"assignments": assignment_ids},
                        access_token=token,
                    )

                saga.step("temp_assignment_letter", temp_letter)

            return await self._execute(saga, "Contracts and orders generated", "Failed to generate contracts")
        finally:
            self._end("contracts")

    # ============ SUPPLIER INVOICES ============

    def _require_assignment(self, assignment_id: str) -> Assignment:
        for assignment in self.assignments:
            if assignment.id == assignment_id:
                return assignment
        raise AssignmentNotFoundError(f"Assignment {assignment_id} not found on mission {self.mission_id}")

    async def upload_invoice(self, data: SupplierInvoiceCreate) -> Optional[SagaReport]:
        if not self._begin("invoice"):
            return None
        try:
            await self._ensure_loaded()
            self._require_assignment(data.assignment_id)
            token = self.access_token

            async def create(results):
                return await self.repository.create_supplier_invoice(
                    data.assignment_id,
                    data.invoice_number,
                    data.amount,
                    data.currency,
                    data.pdf_path,
                    token,
                )

            saga = WorkflowSaga("invoice").step("create_supplier_invoice", create)
            return await self._execute(saga, "Invoice uploaded", "Failed to upload invoice")
        finally:
            self._end("invoice")

    async def process_invoice(self, invoice_id: str, status: SupplierInvoiceStatus) -> Optional[SagaReport]:
        """Approve or reject an uploaded invoice; decided invoices stay as they are"""
        if not self._begin("invoice"):
            return None
        try:
            await self._ensure_loaded()
            invoice = await self.repository.get_supplier_invoice(invoice_id, self.access_token)
            if invoice is None:
                raise WorkflowGatewayError(f"Failed to process invoice: invoice {invoice_id} not found", status_code=404)
            self._require_assignment(invoice.assignment_id)
            target = transition_invoice(invoice.status, status)

            async def update(results):
                return await self.repository.update_supplier_invoice_status(invoice_id, target, self.access_token)

            saga = WorkflowSaga("invoice").step("update_supplier_invoice_status", update)
            return await self._execute(saga, f"Invoice {target.value}", "Failed to process invoice")
        finally:
            self._end("invoice")

    # ============ VALIDATION ============

    async def final_validation(self) -> Optional[SagaReport]:
        """Validate a completed mission, trigger client invoicing, issue the final letter"""
        if not self._begin("validation"):
            return None
        try:
            await self._ensure_loaded()
            mission = self._require_mission()
            transition_validation(mission.validation_status, "validate", mission.status)
            token = self.access_token

            async def validate(results):
                return await self.repository.validate_and_invoice(self.mission_id, token)

            async def final_letter(results):
                return await self.repository.create_document(
                    FINAL_ASSIGNMENT_LETTER,
                    self.mission_id,
                    None,
                    f"/assignments/{self.mission_id}/final_letter.pdf",
                    "Final Assignment Letter",
                    {"validation_complete": True},
                    access_token=token,
                )

            saga = (
                WorkflowSaga("validation")
                .step("validate_and_invoice", validate)
                .step("final_assignment_letter", final_letter)
            )
            return await self._execute(
                saga,
                "Mission validated and final documents generated",
                "Failed to validate mission"
            )
        finally:
            self._end("validation")

    async def reject_validation(self) -> Optional[SagaReport]:
        """Refuse final validation of a completed mission; no client invoice is raised"""
        if not self._begin("validation"):
            return None
        try:
            await self._ensure_loaded()
            mission = self._require_mission()
            new_status = transition_validation(mission.validation_status, "reject", mission.status)

            async def update(results):
                return await self.repository.update_mission_validation_status(
                    self.mission_id, new_status, self.access_token
                )

            saga = WorkflowSaga("validation").step("update_validation_status", update)
            return await self._execute(saga, "Mission validation rejected", "Failed to reject mission validation")
        finally:
            self._end("validation")

    # ============ STATUS ============

    async def apply_event(self, event: MissionEvent) -> Optional[SagaReport]:
        """Staff-triggered lifecycle events (finance/owner approval, start, complete)"""
        if not self._begin("status"):
            return None
        try:
            event = MissionEvent(event)
            await self._ensure_loaded()
            mission = self._require_mission()
            if event not in MANUAL_EVENTS:
                raise InvalidTransition(
                    mission.status.value,
                    event.value,
                    f"'{event.value}' cannot be triggered manually"
                )
            new_status = transition(mission.status, event)

            async def update(results):
                return await self.repository.update_mission_status(self.mission_id, new_status, self.access_token)

            saga = WorkflowSaga("status").step("update_mission_status", update)
            return await self._execute(
                saga,
                f"Mission status updated: {STATUS_LABELS[new_status]}",
                "Failed to update mission status"
            )
        finally:
            self._end("status")
