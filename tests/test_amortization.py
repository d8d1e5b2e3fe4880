"""
Test suite for amortization module

Tests installment and revolving schedule generation, due-date arithmetic and
parameter validation. Totals must close exactly at the currency minor unit.
"""

import pytest
from decimal import Decimal
from datetime import date

from cardplan.currency import Money, Currency
from cardplan.models import PaymentType
from cardplan.exceptions import ValidationError
from cardplan.amortization import (
    PlanTerms, ScheduleEntry, calculate_schedule, calculate_installment_schedule,
    calculate_revolving_schedule, add_months, first_billing_date, due_date_for,
    MAX_REVOLVING_MONTHS
)


def vnd(amount) -> Money:
    return Money(Decimal(str(amount)), Currency.VND)


def installment_terms(n=3, fee_rate="0.01") -> PlanTerms:
    return PlanTerms(
        payment_type=PaymentType.INSTALLMENT,
        total_installments=n,
        installment_fee_rate=fee_rate
    )


def revolving_terms(monthly_payment="100000", annual_rate="0.24") -> PlanTerms:
    return PlanTerms(
        payment_type=PaymentType.REVOLVING,
        monthly_payment=monthly_payment,
        annual_interest_rate=annual_rate
    )


class TestDueDates:
    """Test month arithmetic for due dates"""

    def test_add_months_clamps_to_month_end(self):
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
        assert add_months(date(2023, 1, 31), 1) == date(2023, 2, 28)
        assert add_months(date(2024, 11, 15), 3) == date(2025, 2, 15)

    def test_due_dates_return_to_start_day_after_short_month(self):
        """Each due date is computed from the start date, not the previous due date"""
        dates = [due_date_for(date(2024, 1, 31), n) for n in range(1, 4)]
        assert dates == [date(2024, 2, 29), date(2024, 3, 31), date(2024, 4, 30)]

    def test_first_billing_date_is_strictly_after_start(self):
        assert first_billing_date(date(2024, 1, 10), 15) == date(2024, 1, 15)
        assert first_billing_date(date(2024, 1, 15), 15) == date(2024, 2, 15)
        assert first_billing_date(date(2024, 1, 20), 15) == date(2024, 2, 15)

    def test_billing_day_clamped_in_short_months(self):
        dates = [due_date_for(date(2024, 1, 31), n, billing_day=31) for n in range(1, 4)]
        assert dates == [date(2024, 2, 29), date(2024, 3, 31), date(2024, 4, 30)]

    def test_billing_day_anchors_schedule(self):
        schedule = calculate_schedule(vnd(1200000), installment_terms(), date(2024, 1, 20), billing_day=15)
        assert [e.due_date for e in schedule.entries] == [
            date(2024, 2, 15), date(2024, 3, 15), date(2024, 4, 15)
        ]


class TestInstallmentSchedule:
    """Test fixed installment plans"""

    def test_reference_example(self):
        """1,200,000 over 3 installments at 1% per installment"""
        schedule = calculate_schedule(vnd(1200000), installment_terms(), date(2024, 1, 5))

        assert schedule.payment_type == PaymentType.INSTALLMENT
        assert schedule.total_fee == vnd(36000)
        assert schedule.total_amount_with_fee == vnd(1236000)
        assert schedule.amount_per_installment == vnd(412000)
        assert schedule.months == 3

        assert [e.total_amount for e in schedule.entries] == [vnd(412000)] * 3
        assert [e.principal_amount for e in schedule.entries] == [vnd(400000)] * 3
        assert [e.fee_amount for e in schedule.entries] == [vnd(12000)] * 3
        assert [e.remaining_after for e in schedule.entries] == [vnd(824000), vnd(412000), vnd(0)]
        assert [e.due_date for e in schedule.entries] == [
            date(2024, 2, 5), date(2024, 3, 5), date(2024, 4, 5)
        ]

    def test_rounding_residue_lands_in_final_period(self):
        schedule = calculate_schedule(vnd(1000000), installment_terms(fee_rate="0"), date(2024, 1, 5))

        assert schedule.amount_per_installment == vnd(333333)
        assert [e.total_amount for e in schedule.entries] == [vnd(333333), vnd(333333), vnd(333334)]
        assert schedule.entries[-1].principal_amount == vnd(333334)
        assert schedule.entries[-1].remaining_after.is_zero()

    def test_closure_properties(self):
        """Totals sum to the plan total and principals to the principal"""
        principal = Money(Decimal('1234.57'), Currency.USD)
        terms = installment_terms(n=7, fee_rate="0.015")
        schedule = calculate_schedule(principal, terms, date(2024, 3, 31))

        assert Money.sum((e.total_amount for e in schedule.entries), Currency.USD) == schedule.total_amount_with_fee
        assert Money.sum((e.principal_amount for e in schedule.entries), Currency.USD) == principal
        assert schedule.entries[-1].remaining_after.is_zero()
        for entry in schedule.entries:
            assert entry.principal_amount + entry.fee_amount + entry.interest_amount == entry.total_amount
            assert not entry.fee_amount.is_negative()

        numbers = [e.payment_number for e in schedule.entries]
        assert numbers == list(range(1, 8))
        dates = [e.due_date for e in schedule.entries]
        assert dates == sorted(dates) and len(set(dates)) == len(dates)

    def test_fee_rate_defaults_to_zero(self):
        terms = PlanTerms(payment_type=PaymentType.INSTALLMENT, total_installments=2)
        schedule = calculate_schedule(vnd(500000), terms, date(2024, 1, 5))
        assert schedule.total_fee.is_zero()
        assert schedule.total_amount_with_fee == vnd(500000)

    @pytest.mark.parametrize("fee_rate", ["0", "0.01", "0.1"])
    def test_small_amount_over_many_installments(self, fee_rate):
        """Per-period rounding never pushes a component negative"""
        schedule = calculate_schedule(vnd(1000), installment_terms(n=60, fee_rate=fee_rate), date(2024, 1, 5))

        assert schedule.months == 60
        assert Money.sum((e.total_amount for e in schedule.entries), Currency.VND) == schedule.total_amount_with_fee
        assert Money.sum((e.principal_amount for e in schedule.entries), Currency.VND) == vnd(1000)
        assert Money.sum((e.fee_amount for e in schedule.entries), Currency.VND) == schedule.total_fee
        for entry in schedule.entries:
            assert not entry.principal_amount.is_negative()
            assert not entry.fee_amount.is_negative()
            assert not entry.remaining_after.is_negative()
        assert schedule.entries[-1].remaining_after.is_zero()

    def test_rounded_up_installment_falls_back_to_rounding_down(self):
        """1,000 / 60 rounds to 17, which would overshoot; 16 per period leaves 56 for the last"""
        schedule = calculate_schedule(vnd(1000), installment_terms(n=60, fee_rate="0"), date(2024, 1, 5))
        assert schedule.amount_per_installment == vnd(16)
        assert schedule.entries[-1].total_amount == vnd(56)

    def test_amount_too_small_to_split(self):
        with pytest.raises(ValidationError):
            calculate_installment_schedule(vnd(1), 3, Decimal('0'), date(2024, 1, 5))


class TestRevolvingSchedule:
    """Test declining-balance revolving plans"""

    def test_reference_example(self):
        """1,000,000 at 100,000/month and 24% APR"""
        schedule = calculate_schedule(vnd(1000000), revolving_terms(), date(2024, 1, 5))
        first = schedule.entries[0]

        assert first.interest_amount == vnd(20000)
        assert first.principal_amount == vnd(80000)
        assert first.total_amount == vnd(100000)
        assert first.remaining_after == vnd(920000)
        assert schedule.months == 12
        assert schedule.months < MAX_REVOLVING_MONTHS

    def test_final_row_closes_balance(self):
        schedule = calculate_schedule(vnd(1000000), revolving_terms(), date(2024, 1, 5))
        last = schedule.entries[-1]

        assert last.remaining_after.is_zero()
        assert last.total_amount <= vnd(100000)
        assert last.total_amount == last.principal_amount + last.interest_amount
        assert Money.sum((e.principal_amount for e in schedule.entries), Currency.VND) == vnd(1000000)
        assert schedule.total_amount_with_fee == vnd(1000000) + schedule.total_interest
        assert schedule.total_fee.is_zero()

    def test_zero_interest(self):
        schedule = calculate_schedule(vnd(250000), revolving_terms(annual_rate="0"), date(2024, 1, 5))
        assert [e.total_amount for e in schedule.entries] == [vnd(100000), vnd(100000), vnd(50000)]
        assert schedule.total_interest.is_zero()

    def test_payment_equal_to_interest_rejected(self):
        with pytest.raises(ValidationError, match="does not cover interest"):
            calculate_schedule(vnd(1000000), revolving_terms(monthly_payment="20000"), date(2024, 1, 5))

    def test_payment_that_cannot_finish_in_120_months_rejected(self):
        with pytest.raises(ValidationError):
            calculate_schedule(vnd(1000000), revolving_terms(monthly_payment="20001"), date(2024, 1, 5))

    def test_direct_call_rejects_non_positive_payment(self):
        with pytest.raises(ValidationError):
            calculate_revolving_schedule(vnd(1000), vnd(0), Decimal('0.1'), date(2024, 1, 5))


class TestPlanTerms:
    """Test parameter validation"""

    @pytest.mark.parametrize("n", [1, 61, 0])
    def test_installment_count_bounds(self, n):
        with pytest.raises(ValidationError):
            installment_terms(n=n).validate()

    def test_installment_count_required(self):
        with pytest.raises(ValidationError):
            PlanTerms(payment_type=PaymentType.INSTALLMENT).validate()

    def test_fee_rate_bounds(self):
        installment_terms(fee_rate="0.10").validate()
        with pytest.raises(ValidationError):
            installment_terms(fee_rate="0.11").validate()
        with pytest.raises(ValidationError):
            installment_terms(fee_rate="-0.01").validate()

    def test_revolving_requires_payment_and_rate(self):
        with pytest.raises(ValidationError, match="Monthly payment"):
            PlanTerms(payment_type=PaymentType.REVOLVING, annual_interest_rate="0.2").validate()
        with pytest.raises(ValidationError, match="Interest rate"):
            PlanTerms(payment_type=PaymentType.REVOLVING, monthly_payment="100").validate()

    def test_interest_rate_bounds(self):
        with pytest.raises(ValidationError):
            revolving_terms(annual_rate="0.31").validate()

    def test_payment_type_from_string(self):
        assert PlanTerms(payment_type="revolving").payment_type == PaymentType.REVOLVING
        with pytest.raises(ValidationError):
            PlanTerms(payment_type="LAYAWAY")

    def test_non_numeric_rate(self):
        with pytest.raises(ValidationError):
            PlanTerms(payment_type=PaymentType.INSTALLMENT, total_installments=3, installment_fee_rate="abc")

    @pytest.mark.parametrize("value", ["NaN", "Infinity", "-Infinity", Decimal("NaN")])
    def test_non_finite_values_rejected(self, value):
        with pytest.raises(ValidationError, match="finite"):
            PlanTerms(payment_type=PaymentType.REVOLVING, monthly_payment=value, annual_interest_rate="0.24")
        with pytest.raises(ValidationError, match="finite"):
            installment_terms(fee_rate=value)

    def test_oversized_monthly_payment_rejected(self):
        """1e30 VND cannot be represented at the Decimal context precision"""
        with pytest.raises(ValidationError, match="too large"):
            calculate_schedule(vnd(1000000), revolving_terms(monthly_payment="1e30"), date(2024, 1, 5))

    def test_principal_must_be_positive(self):
        with pytest.raises(ValidationError):
            calculate_schedule(vnd(0), installment_terms(), date(2024, 1, 5))

    def test_billing_day_range(self):
        with pytest.raises(ValidationError):
            calculate_schedule(vnd(1000), installment_terms(), date(2024, 1, 5), billing_day=32)


class TestScheduleEntry:
    """Test entry consistency check"""

    def test_components_must_sum_to_total(self):
        with pytest.raises(ValueError):
            ScheduleEntry(
                payment_number=1,
                due_date=date(2024, 2, 5),
                principal_amount=vnd(100),
                fee_amount=vnd(1),
                interest_amount=vnd(0),
                total_amount=vnd(100),
                remaining_after=vnd(0)
            )
