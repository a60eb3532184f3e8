"""
Workflow Step Derivation

Computes the 8-step mission workflow from the loaded records. Each step is
evaluated independently from the presence of related entities; there is no
stored "current step".

- absent record            -> pending
- partially satisfied      -> in_progress
- satisfied                -> completed
"""

from typing import List

from models.mission import MissionStatus, ValidationStatus
from models.invoice import SupplierInvoiceStatus
from models.workflow import MissionAggregate, WorkflowStep, StepStatus, WorkflowProgress

TOTAL_STEPS = 8

EXECUTION_STATUSES = {MissionStatus.IN_PROGRESS, MissionStatus.COMPLETED}


def compute_workflow_steps(aggregate: MissionAggregate) -> List[WorkflowStep]:
    mission = aggregate.mission
    quote = aggregate.quote
    assignments = aggregate.assignments
    invoices = aggregate.invoices

    quote_approved = quote is not None and quote.client_approved is True
    approved_invoices = [i for i in invoices if i.status == SupplierInvoiceStatus.APPROVED]

    if quote is None:
        quote_status = StepStatus.PENDING
    elif quote_approved:
        quote_status = StepStatus.COMPLETED
    else:
        quote_status = StepStatus.IN_PROGRESS

    if not invoices:
        invoicing_status = StepStatus.PENDING
    elif len(approved_invoices) == len(invoices):
        invoicing_status = StepStatus.COMPLETED
    else:
        invoicing_status = StepStatus.IN_PROGRESS

    return [
        WorkflowStep(
            id="request",
            title="Mission Request",
            description="Mission request created",
            status=StepStatus.COMPLETED if mission else StepStatus.PENDING,
        ),
        WorkflowStep(
            id="quote",
            title="Quote",
            description="Quote created and sent to client" if quote else "Create quote for client approval",
            status=quote_status,
        ),
        WorkflowStep(
            id="approval",
            title="Client Approval",
            description="Client approved the quote" if quote_approved else "Waiting for client approval",
            # same derivation as the quote step: both hinge on client_approved
            status=quote_status,
        ),
        WorkflowStep(
            id="assignments",
            title="Crew Assignments",
            description=f"{len(assignments)} crew member(s) assigned",
            status=StepStatus.COMPLETED if assignments else StepStatus.PENDING,
        ),
        WorkflowStep(
            id="contracts",
            title="Contracts & Orders",
            description="Generate mission orders and zero-hour contracts",
            status=StepStatus.COMPLETED if quote_approved and assignments else StepStatus.PENDING,
        ),
        WorkflowStep(
            id="execution",
            title="Mission Ongoing",
            description="Mission execution and monitoring",
            status=(
                StepStatus.COMPLETED
                if mission is not None and mission.status in EXECUTION_STATUSES
                else StepStatus.PENDING
            ),
        ),
        WorkflowStep(
            id="invoicing",
            title="Freelance Invoices",
            description=f"{len(approved_invoices)}/{len(invoices)} invoices processed",
            status=invoicing_status,
        ),
        WorkflowStep(
            id="validation",
            title="Final Validation",
            description="Final mission validation and client invoicing",
            status=(
                StepStatus.COMPLETED
                if mission is not None and mission.validation_status == ValidationStatus.VALIDATED
                else StepStatus.PENDING
            ),
        ),
    ]


def progress_percentage(steps: List[WorkflowStep]) -> float:
    if not steps:
        return 0.0
    completed = sum(1 for step in steps if step.status == StepStatus.COMPLETED)
    return completed / len(steps) * 100


def build_progress(mission_id: str, aggregate: MissionAggregate) -> WorkflowProgress:
    steps = compute_workflow_steps(aggregate)
    mission = aggregate.mission
    return WorkflowProgress(
        mission_id=mission_id,
        steps=steps,
        completed_steps=sum(1 for step in steps if step.status == StepStatus.COMPLETED),
        total_steps=len(steps),
        progress_pct=progress_percentage(steps),
        mission_status=mission.status.value if mission else None,
        validation_status=mission.validation_status.value if mission else None,
        workflow_status=aggregate.workflow_status,
    )
