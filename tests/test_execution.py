"""
Test Mission Execution Panel

Tests for:
- Day schedule spans earliest start to latest end, classified against "today"
- Payment status per assignment from approved invoices
- Aggregate payment progress
- Demo payment source is repeatable with a seed
"""

from datetime import date, datetime

import pytest

from models.assignment import Assignment, Engagement
from models.invoice import SupplierInvoice, SupplierInvoiceStatus
from services.execution_service import (
    DayStatus,
    DemoPaymentSource,
    InvoicePaymentSource,
    PaymentState,
    build_execution_view,
    calculate_payment_status,
    generate_mission_days,
    payment_progress,
    payment_state,
)


def assignment(id, user_id, start, end, engagement=Engagement.FREELANCE, day_rate=500):
    return Assignment(
        id=id,
        mission_id="mission-1",
        user_id=user_id,
        position="Co-Pilot",
        engagement=engagement,
        day_rate=day_rate,
        start_date=start,
        end_date=end,
    )


def invoice(id, assignment_id, amount, status, created_at=datetime(2024, 1, 10)):
    return SupplierInvoice(
        id=id,
        assignment_id=assignment_id,
        invoice_number=id.upper(),
        amount=amount,
        status=status,
        created_at=created_at,
    )


@pytest.fixture
def assignments():
    return [
        assignment("a1", "freelancer-001", date(2024, 1, 1), date(2024, 1, 2)),
        assignment("a2", "internal-001", date(2024, 1, 2), date(2024, 1, 4), Engagement.INTERNAL, 800),
    ]


class TestMissionDays:

    def test_span_and_classification(self, assignments):
        days = generate_mission_days(assignments, today=date(2024, 1, 2))

        assert [d.day for d in days] == [date(2024, 1, d) for d in range(1, 5)]
        assert [d.status for d in days] == [
            DayStatus.COMPLETED,
            DayStatus.ACTIVE,
            DayStatus.PLANNED,
            DayStatus.PLANNED,
        ]

    def test_crew_present_follows_assignment_dates(self, assignments):
        days = generate_mission_days(assignments, today=date(2024, 1, 1))
        assert days[0].crew_present == ["freelancer-001"]
        assert days[1].crew_present == ["freelancer-001", "internal-001"]
        assert days[3].crew_present == ["internal-001"]

    def test_no_assignments_no_days(self):
        assert generate_mission_days([]) == []


class TestPayments:

    @pytest.mark.parametrize("expected, paid, state", [
        (1000, 0, PaymentState.PENDING),
        (1000, 400, PaymentState.PARTIAL),
        (1000, 1000, PaymentState.COMPLETED),
        (0, 0, PaymentState.PENDING),
    ])
    def test_payment_state(self, expected, paid, state):
        assert payment_state(expected, paid) == state

    def test_paid_amount_from_approved_invoices_only(self, assignments):
        invoices = [
            invoice("i1", "a1", 600, SupplierInvoiceStatus.APPROVED, datetime(2024, 1, 5)),
            invoice("i2", "a1", 400, SupplierInvoiceStatus.UPLOADED, datetime(2024, 1, 6)),
        ]
        payments = calculate_payment_status(assignments, InvoicePaymentSource(invoices), invoices)

        freelance, internal = payments
        assert freelance.expected_amount == 1000
        assert freelance.paid_amount == 600
        assert freelance.payment_status == PaymentState.PARTIAL
        assert freelance.invoice_status == "uploaded", "Latest invoice status is reported"
        assert freelance.invoice_id == "i2"

        assert internal.expected_amount == 2400
        assert internal.invoice_status is None, "Internal staff have no invoice status"

    def test_freelancer_without_invoice(self, assignments):
        payments = calculate_payment_status(assignments, InvoicePaymentSource([]))
        assert payments[0].invoice_status == "none"

    def test_progress(self, assignments):
        invoices = [invoice("i1", "a1", 1000, SupplierInvoiceStatus.APPROVED)]
        view = build_execution_view("mission-1", assignments, invoices, today=date(2024, 1, 1))

        assert view.total_expected == 3400
        assert view.total_paid == 1000
        assert view.payment_progress_pct == round(1000 / 3400 * 100)
        assert view.payments[0].payment_status == PaymentState.COMPLETED

    def test_progress_with_nothing_expected(self):
        assert payment_progress([]) == 0


class TestDemoPaymentSource:

    def test_seeded_source_is_repeatable(self, assignments):
        first = calculate_payment_status(assignments, DemoPaymentSource(seed=42))
        second = calculate_payment_status(assignments, DemoPaymentSource(seed=42))
        assert [p.paid_amount for p in first] == [p.paid_amount for p in second]

    def test_paid_never_exceeds_expected(self, assignments):
        source = DemoPaymentSource(seed=7)
        for _ in range(20):
            for payment in calculate_payment_status(assignments, source):
                assert 0 <= payment.paid_amount <= payment.expected_amount
