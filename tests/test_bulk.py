"""
Test suite for bulk plan creation

Tests per-item isolation, input-order reporting and total-failure cases.
"""

import pytest
from unittest.mock import patch

from cardplan.amortization import PlanTerms
from cardplan.models import PaymentType
from cardplan.audit import AuditEventType
from cardplan.exceptions import ValidationError, InfrastructureError


INSTALLMENT_3 = PlanTerms(payment_type=PaymentType.INSTALLMENT, total_installments=3, installment_fee_rate="0.01")


class TestBulkCreation:
    """Partial success across several transactions"""

    def test_all_succeed(self, engine, card, add_transaction):
        ids = [f"txn-{i}" for i in range(6)]
        for transaction_id in ids:
            add_transaction(transaction_id, 1200000)

        result = engine.create_plans_bulk(ids, INSTALLMENT_3)

        assert result.total_requested == 6
        assert result.success_count == 6
        assert result.failed_count == 0
        assert [d.plan.transaction_ids for d in result.succeeded] == [[i] for i in ids]
        assert engine.storage.count("credit_card_plans") == 6

    def test_one_already_planned(self, engine, card, add_transaction):
        """N transactions with one already planned give N-1 plans and one conflict"""
        for i in range(4):
            add_transaction(f"txn-{i}", 1200000)
        engine.create_plan("txn-2", INSTALLMENT_3)

        result = engine.create_plans_bulk([f"txn-{i}" for i in range(4)], INSTALLMENT_3)

        assert result.success_count == 3
        assert result.failed_count == 1
        error = result.errors[0]
        assert error.transaction_id == "txn-2"
        assert error.error_kind == "conflict_error"
        assert "already has a payment plan" in error.reason

    def test_mixed_failures_reported_in_input_order(self, engine, card, add_transaction):
        add_transaction("ok-1", 1000000)
        add_transaction("ok-2", 1000000)

        result = engine.create_plans_bulk(["missing-a", "ok-1", "missing-b", "ok-2"], INSTALLMENT_3)

        assert [e.transaction_id for e in result.errors] == ["missing-a", "missing-b"]
        assert all(e.error_kind == "not_found" for e in result.errors)
        assert [d.plan.transaction_ids[0] for d in result.succeeded] == ["ok-1", "ok-2"]

    def test_duplicate_id_yields_one_plan(self, engine, card, add_transaction):
        add_transaction("txn-1", 1000000)
        result = engine.create_plans_bulk(["txn-1", "txn-1"], INSTALLMENT_3)
        assert result.success_count == 1
        assert result.failed_count == 1
        assert result.errors[0].error_kind == "conflict_error"

    def test_summary_audit_event(self, engine, card, add_transaction):
        add_transaction("txn-1", 1000000)
        engine.create_plans_bulk(["txn-1", "missing"], INSTALLMENT_3)

        batches = engine.audit_trail.get_events_by_type(AuditEventType.BULK_PLANS_REQUESTED)
        assert len(batches) == 1
        assert batches[0].metadata["success_count"] == 1
        assert batches[0].metadata["failed_count"] == 1


class TestBulkTotalFailure:
    """Whole-request failures"""

    def test_empty_input(self, engine):
        with pytest.raises(ValidationError):
            engine.create_plans_bulk([], INSTALLMENT_3)

    def test_invalid_shared_terms(self, engine, card, add_transaction):
        add_transaction("txn-1", 1000000)
        bad = PlanTerms(payment_type=PaymentType.INSTALLMENT, total_installments=99)
        with pytest.raises(ValidationError):
            engine.create_plans_bulk(["txn-1"], bad)
        assert engine.storage.count("credit_card_plans") == 0

    def test_too_many_transactions(self, engine):
        ids = [f"txn-{i}" for i in range(engine.config.bulk_max_transactions + 1)]
        with pytest.raises(ValidationError):
            engine.create_plans_bulk(ids, INSTALLMENT_3)

    def test_infrastructure_error_propagates_after_join(self, engine, card, add_transaction):
        add_transaction("txn-1", 1000000)
        add_transaction("txn-2", 1000000)
        original = engine.factory.create_plan

        def flaky(transaction_id, terms, start_date=None):
            if transaction_id == "txn-2":
                raise InfrastructureError("database is locked")
            return original(transaction_id, terms, start_date)

        with patch.object(engine.factory, "create_plan", side_effect=flaky):
            with pytest.raises(InfrastructureError):
                engine.create_plans_bulk(["txn-1", "txn-2"], INSTALLMENT_3)

        # The healthy item still committed on its own
        assert engine.repository.get_link("txn-1") is not None
