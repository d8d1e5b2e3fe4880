"""
Amortization Module

Pure schedule computation for credit card payment plans: fixed installments
with a flat per-period fee, and revolving declining-balance repayment. The
same functions back the creation preview and the persisted schedule.

All amounts are Money (Decimal, round-half-up to the currency minor unit);
rounding residue always lands in the final period.
"""

from decimal import Decimal, InvalidOperation, ROUND_DOWN
from datetime import date
from dataclasses import dataclass, field
from typing import List, Optional
import calendar

from .currency import Money, Currency
from .exceptions import ValidationError
from .models import PaymentType


MIN_INSTALLMENTS = 2
MAX_INSTALLMENTS = 60
MAX_INSTALLMENT_FEE_RATE = Decimal('0.10')
MAX_ANNUAL_INTEREST_RATE = Decimal('0.30')
MAX_REVOLVING_MONTHS = 120  # 10 years


def _to_decimal(value, name: str) -> Optional[Decimal]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a number")
    if not isinstance(value, Decimal):
        try:
            value = Decimal(str(value))
        except ArithmeticError:
            raise ValidationError(f"{name} must be a number")
    if not value.is_finite():
        raise ValidationError(f"{name} must be a finite number")
    return value


@dataclass
class PlanTerms:
    """Repayment parameters chosen by the card holder"""
    payment_type: PaymentType
    total_installments: Optional[int] = None      # INSTALLMENT
    installment_fee_rate: Optional[Decimal] = None  # INSTALLMENT, e.g. 0.01 for 1% per installment
    monthly_payment: Optional[Decimal] = None     # REVOLVING, in the plan currency
    annual_interest_rate: Optional[Decimal] = None  # REVOLVING, e.g. 0.24 for 24% APR

    def __post_init__(self):
        if isinstance(self.payment_type, str):
            try:
                self.payment_type = PaymentType(self.payment_type.upper())
            except ValueError:
                raise ValidationError(f"Invalid payment type: {self.payment_type}")
        self.installment_fee_rate = _to_decimal(self.installment_fee_rate, "Installment fee rate")
        self.monthly_payment = _to_decimal(self.monthly_payment, "Monthly payment")
        self.annual_interest_rate = _to_decimal(self.annual_interest_rate, "Annual interest rate")

    @property
    def fee_rate(self) -> Decimal:
        return self.installment_fee_rate if self.installment_fee_rate is not None else Decimal('0')

    @property
    def monthly_rate(self) -> Decimal:
        return (self.annual_interest_rate or Decimal('0')) / Decimal('12')

    def validate(self) -> None:
        """Check parameter bounds; raises ValidationError"""
        if self.payment_type == PaymentType.INSTALLMENT:
            n = self.total_installments
            if n is None:
                raise ValidationError("Total installments is required for an installment plan")
            if isinstance(n, bool) or not isinstance(n, int):
                raise ValidationError("Total installments must be an integer")
            if not MIN_INSTALLMENTS <= n <= MAX_INSTALLMENTS:
                raise ValidationError(
                    f"Total installments must be between {MIN_INSTALLMENTS} and {MAX_INSTALLMENTS}"
                )
            if not Decimal('0') <= self.fee_rate <= MAX_INSTALLMENT_FEE_RATE:
                raise ValidationError(
                    f"Installment fee rate must be between 0 and {MAX_INSTALLMENT_FEE_RATE}"
                )
        elif self.payment_type == PaymentType.REVOLVING:
            if self.monthly_payment is None or self.monthly_payment <= Decimal('0'):
                raise ValidationError("Monthly payment is required for revolving plan and must be positive")
            if self.annual_interest_rate is None:
                raise ValidationError("Interest rate is required for revolving plan")
            if not Decimal('0') <= self.annual_interest_rate <= MAX_ANNUAL_INTEREST_RATE:
                raise ValidationError(
                    f"Annual interest rate must be between 0 and {MAX_ANNUAL_INTEREST_RATE}"
                )
        else:
            raise ValidationError(f"Invalid payment type: {self.payment_type}")


@dataclass
class ScheduleEntry:
    """Single period of a computed schedule"""
    payment_number: int
    due_date: date
    principal_amount: Money
    fee_amount: Money
    interest_amount: Money
    total_amount: Money
    remaining_after: Money

    def __post_init__(self):
        calculated = self.principal_amount + self.fee_amount + self.interest_amount
        if calculated != self.total_amount:
            raise ValueError(f"Payment {self.payment_number} total {self.total_amount.to_string()} "
                             f"does not equal its components {calculated.to_string()}")


@dataclass
class AmortizationSchedule:
    """Full computed schedule plus the plan-level totals derived from it"""
    payment_type: PaymentType
    principal: Money
    entries: List[ScheduleEntry] = field(default_factory=list)
    total_fee: Money = None
    total_interest: Money = None
    total_amount_with_fee: Money = None
    amount_per_installment: Optional[Money] = None

    @property
    def currency(self) -> Currency:
        return self.principal.currency

    @property
    def months(self) -> int:
        return len(self.entries)

    @property
    def first_due_date(self) -> Optional[date]:
        return self.entries[0].due_date if self.entries else None


def add_months(start_date: date, months: int) -> date:
    """Add months to a date, clamping the day to the end of shorter months"""
    month = start_date.month - 1 + months
    year = start_date.year + month // 12
    month = month % 12 + 1
    day = min(start_date.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def _on_billing_day(any_day_in_month: date, billing_day: int) -> date:
    last_day = calendar.monthrange(any_day_in_month.year, any_day_in_month.month)[1]
    return any_day_in_month.replace(day=min(billing_day, last_day))


def first_billing_date(start_date: date, billing_day: int) -> date:
    """Next occurrence of the card's billing day strictly after start_date"""
    candidate = _on_billing_day(start_date, billing_day)
    if candidate <= start_date:
        candidate = _on_billing_day(add_months(start_date.replace(day=1), 1), billing_day)
    return candidate


def due_date_for(start_date: date, payment_number: int, billing_day: Optional[int] = None) -> date:
    """
    Due date of the 1-based `payment_number`.

    Without a billing day the start day-of-month is reused (clamped), always
    computed from start_date so a 31st start returns to the 31st after a
    short month.
    """
    if billing_day is None:
        return add_months(start_date, payment_number)
    first = first_billing_date(start_date, billing_day)
    return _on_billing_day(add_months(first.replace(day=1), payment_number - 1), billing_day)


def _check_billing_day(billing_day: Optional[int]) -> None:
    if billing_day is not None and not 1 <= billing_day <= 31:
        raise ValidationError("Billing day must be between 1 and 31")


def calculate_installment_schedule(
    principal: Money,
    total_installments: int,
    fee_rate: Decimal,
    start_date: date,
    billing_day: Optional[int] = None
) -> AmortizationSchedule:
    """
    Equal installments with a flat fee of principal x fee_rate charged every period.

    Example: 1,200,000 over 3 installments at 1% gives a fee of 12,000 per
    installment, 1,236,000 in total and 412,000 per period.
    """
    currency = principal.currency
    zero = Money.zero(currency)
    n = total_installments

    fee_per_installment = principal * fee_rate
    total_fee = fee_per_installment * n
    total_amount_with_fee = principal + total_fee
    amount_per_installment = total_amount_with_fee / n
    if amount_per_installment * (n - 1) > total_amount_with_fee:
        # Rounding up would leave the final period negative; round down and
        # let the final period absorb the remainder
        amount_per_installment = Money(
            (total_amount_with_fee.amount / n).quantize(currency.minor_unit, rounding=ROUND_DOWN),
            currency
        )

    if not amount_per_installment.is_positive():
        raise ValidationError(
            f"Amount {principal.to_string()} is too small to split into {n} installments"
        )

    entries = []
    principal_scheduled = zero
    for i in range(1, n + 1):
        if i < n:
            total = amount_per_installment
            # Principal to date follows the running total; each period takes the difference
            principal_to_date = Money(
                amount_per_installment.amount * i * principal.amount / total_amount_with_fee.amount,
                currency
            )
            principal_part = principal_to_date - principal_scheduled
            remaining = total_amount_with_fee - amount_per_installment * i
        else:
            total = total_amount_with_fee - amount_per_installment * (n - 1)
            principal_part = principal - principal_scheduled
            remaining = zero

        fee_part = total - principal_part
        principal_scheduled = principal_scheduled + principal_part

        entries.append(ScheduleEntry(
            payment_number=i,
            due_date=due_date_for(start_date, i, billing_day),
            principal_amount=principal_part,
            fee_amount=fee_part,
            interest_amount=zero,
            total_amount=total,
            remaining_after=remaining
        ))

    return AmortizationSchedule(
        payment_type=PaymentType.INSTALLMENT,
        principal=principal,
        entries=entries,
        total_fee=total_fee,
        total_interest=zero,
        total_amount_with_fee=total_amount_with_fee,
        amount_per_installment=amount_per_installment
    )


def calculate_revolving_schedule(
    principal: Money,
    monthly_payment: Money,
    annual_interest_rate: Decimal,
    start_date: date,
    billing_day: Optional[int] = None
) -> AmortizationSchedule:
    """
    Fixed monthly payment against a declining balance, interest on the
    remaining balance each month. The final month pays exactly what is left.
    """
    currency = principal.currency
    zero = Money.zero(currency)
    monthly_rate = annual_interest_rate / Decimal('12')

    if not monthly_payment.is_positive():
        raise ValidationError("Monthly payment must be positive")
    if monthly_payment.amount <= principal.amount * monthly_rate:
        raise ValidationError("Monthly payment does not cover interest")

    entries = []
    total_interest = zero
    remaining = principal
    for month in range(1, MAX_REVOLVING_MONTHS + 1):
        interest = remaining * monthly_rate

        if remaining + interest <= monthly_payment:
            # Final payment closes the balance
            principal_part = remaining
            total = remaining + interest
            remaining = zero
        else:
            principal_part = monthly_payment - interest
            total = monthly_payment
            remaining = remaining - principal_part

        total_interest = total_interest + interest
        entries.append(ScheduleEntry(
            payment_number=month,
            due_date=due_date_for(start_date, month, billing_day),
            principal_amount=principal_part,
            fee_amount=zero,
            interest_amount=interest,
            total_amount=total,
            remaining_after=remaining
        ))

        if remaining.is_zero():
            break

    if not remaining.is_zero():
        raise ValidationError(
            f"Monthly payment {monthly_payment.to_string()} does not repay "
            f"{principal.to_string()} within {MAX_REVOLVING_MONTHS} months"
        )

    return AmortizationSchedule(
        payment_type=PaymentType.REVOLVING,
        principal=principal,
        entries=entries,
        total_fee=zero,
        total_interest=total_interest,
        total_amount_with_fee=principal + total_interest
    )


def calculate_schedule(
    principal: Money,
    terms: PlanTerms,
    start_date: date,
    billing_day: Optional[int] = None
) -> AmortizationSchedule:
    """
    Compute the schedule for `terms`.

    Raises:
        ValidationError: invalid terms, non-positive principal, or a revolving
            payment that cannot amortize the balance within 120 months
    """
    if not principal.amount.is_finite() or not principal.is_positive():
        raise ValidationError("Principal must be positive")
    terms.validate()
    _check_billing_day(billing_day)

    # Amounts beyond the Decimal context precision cannot be quantized
    try:
        if terms.payment_type == PaymentType.INSTALLMENT:
            return calculate_installment_schedule(
                principal, terms.total_installments, terms.fee_rate, start_date, billing_day
            )
        return calculate_revolving_schedule(
            principal,
            Money(terms.monthly_payment, principal.currency),
            terms.annual_interest_rate,
            start_date,
            billing_day
        )
    except InvalidOperation:
        raise ValidationError("Amount is too large to schedule")
