"""
Test suite for the upcoming payments view
"""

import pytest
from datetime import date

from cardplan.amortization import PlanTerms
from cardplan.models import PaymentType, PaymentStatus
from cardplan.exceptions import ValidationError


INSTALLMENT_3 = PlanTerms(payment_type=PaymentType.INSTALLMENT, total_installments=3, installment_fee_rate="0.01")


@pytest.fixture
def two_plans(engine, card, add_transaction):
    """Plan A due on the 5th (Feb-Apr), plan B due on the 20th (Jan 20 start gives Feb-Apr)"""
    add_transaction("txn-a", 1200000, transaction_date=date(2024, 1, 5))
    add_transaction("txn-b", 600000, transaction_date=date(2024, 1, 20))
    a = engine.create_plan("txn-a", INSTALLMENT_3)
    b = engine.create_plan("txn-b", INSTALLMENT_3)
    return a, b


class TestGetUpcoming:
    """Window selection and ordering"""

    def test_window_selects_due_payments(self, engine, two_plans):
        a, b = two_plans
        rows = engine.upcoming.get_upcoming(30, today=date(2024, 1, 10))

        assert [r.payment_id for r in rows] == [a.payments[0].id]
        row = rows[0]
        assert row.plan_id == a.plan.id
        assert row.payment_number == 1
        assert row.total_installments == 3
        assert row.transaction_ids == ["txn-a"]
        assert row.account_id == "card-1"
        assert row.payment_type == PaymentType.INSTALLMENT
        assert row.status == PaymentStatus.PENDING
        assert row.days_until_due == 26

    def test_ordering_across_plans(self, engine, two_plans):
        a, b = two_plans
        rows = engine.upcoming.get_upcoming(60, today=date(2024, 1, 10))
        assert [r.payment_id for r in rows] == [
            a.payments[0].id, b.payments[0].id, a.payments[1].id
        ]
        assert [r.due_date for r in rows] == sorted(r.due_date for r in rows)

    def test_overdue_included_regardless_of_window(self, engine, two_plans):
        a, b = two_plans
        rows = engine.upcoming.get_upcoming(0, today=date(2024, 2, 10))

        assert [r.payment_id for r in rows] == [a.payments[0].id]
        assert rows[0].status == PaymentStatus.OVERDUE
        assert rows[0].days_until_due == -5
        assert rows[0].is_overdue

    def test_paid_and_inactive_plans_excluded(self, engine, two_plans):
        a, b = two_plans
        engine.mark_payment_as_paid(a.plan.id, a.payments[0].id)
        engine.cancel_plan(b.plan.id)

        rows = engine.upcoming.get_upcoming(60, today=date(2024, 1, 10))
        assert [r.payment_id for r in rows] == [a.payments[1].id]

    def test_default_window_from_config(self, engine, two_plans, clock):
        """Default window is 7 days; Feb 5 is within it on Jan 30"""
        clock.advance(days=20)
        rows = engine.get_upcoming()
        assert [r.payment_number for r in rows] == [1]

    def test_negative_window_rejected(self, engine):
        with pytest.raises(ValidationError):
            engine.get_upcoming(-1)

    def test_read_is_idempotent_and_writes_nothing(self, engine, two_plans):
        before = {
            "plans": engine.storage.load_all("credit_card_plans"),
            "payments": engine.storage.load_all("credit_card_payments"),
        }
        first = engine.upcoming.get_upcoming(90, today=date(2024, 3, 1))
        second = engine.upcoming.get_upcoming(90, today=date(2024, 3, 1))

        assert first == second
        assert engine.storage.load_all("credit_card_plans") == before["plans"]
        assert engine.storage.load_all("credit_card_payments") == before["payments"]

    def test_overdue_shortcut(self, engine, two_plans):
        a, b = two_plans
        overdue = engine.upcoming.get_overdue(today=date(2024, 3, 6))
        assert [r.payment_id for r in overdue] == [a.payments[0].id, b.payments[0].id, a.payments[1].id]
