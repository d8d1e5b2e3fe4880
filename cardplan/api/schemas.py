"""
Pydantic schemas for API requests and responses
"""

from decimal import Decimal
from datetime import date
from enum import Enum
from typing import List, Optional, Type, TypeVar
from pydantic import BaseModel, Field

from ..currency import Money, Currency
from ..amortization import PlanTerms, AmortizationSchedule, ScheduleEntry
from ..models import PaymentPlan, ScheduledPayment, PlanDetail
from ..repository import PlanPage
from ..bulk import BulkResult
from ..upcoming import UpcomingPayment
from ..exceptions import ValidationError


E = TypeVar('E', bound=Enum)


def parse_date(value: Optional[str], name: str) -> Optional[date]:
    """ISO date string to date; ValidationError on bad input"""
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO date (YYYY-MM-DD)")


def parse_enum(enum_cls: Type[E], value: Optional[str], name: str) -> Optional[E]:
    if value is None:
        return None
    try:
        return enum_cls(value.upper())
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"Invalid {name}: {value} (expected one of {allowed})")


class MoneyModel(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")
    currency: str = Field(..., description="Currency code (VND, USD, etc.)")

    def to_money(self) -> Money:
        try:
            currency = Currency.from_code(self.currency)
        except ValueError:
            raise ValidationError(f"Unsupported currency: {self.currency}")
        try:
            amount = Decimal(self.amount)
            if not amount.is_finite():
                raise ValidationError(f"Invalid amount: {self.amount}")
            return Money(amount, currency)
        except ArithmeticError:
            raise ValidationError(f"Invalid amount: {self.amount}")

    @classmethod
    def from_money(cls, money: Optional[Money]) -> Optional['MoneyModel']:
        if money is None:
            return None
        return cls(amount=str(money.amount), currency=money.currency.code)


# Request schemas

class PlanTermsModel(BaseModel):
    payment_type: str = Field(..., description="INSTALLMENT or REVOLVING")
    total_installments: Optional[int] = None
    installment_fee_rate: Optional[str] = None  # Decimal as string, e.g. "0.01"
    monthly_payment: Optional[str] = None  # Decimal amount in the plan currency
    annual_interest_rate: Optional[str] = None  # Decimal as string, e.g. "0.24"

    def to_plan_terms(self) -> PlanTerms:
        return PlanTerms(
            payment_type=self.payment_type,
            total_installments=self.total_installments,
            installment_fee_rate=self.installment_fee_rate,
            monthly_payment=self.monthly_payment,
            annual_interest_rate=self.annual_interest_rate
        )


class CreatePlanRequest(PlanTermsModel):
    transaction_ids: List[str]
    start_date: Optional[str] = None  # ISO date string


class PreviewPlanRequest(PlanTermsModel):
    amount: MoneyModel
    start_date: Optional[str] = None
    billing_day: Optional[int] = None


class MarkPaidRequest(BaseModel):
    payment_date: Optional[str] = None  # ISO date string


# Response schemas

class ScheduleEntryResponse(BaseModel):
    payment_number: int
    due_date: date
    principal_amount: MoneyModel
    fee_amount: MoneyModel
    interest_amount: MoneyModel
    total_amount: MoneyModel
    remaining_after: MoneyModel

    @classmethod
    def from_entry(cls, entry: ScheduleEntry) -> 'ScheduleEntryResponse':
        return cls(
            payment_number=entry.payment_number,
            due_date=entry.due_date,
            principal_amount=MoneyModel.from_money(entry.principal_amount),
            fee_amount=MoneyModel.from_money(entry.fee_amount),
            interest_amount=MoneyModel.from_money(entry.interest_amount),
            total_amount=MoneyModel.from_money(entry.total_amount),
            remaining_after=MoneyModel.from_money(entry.remaining_after)
        )


class PreviewResponse(BaseModel):
    payment_type: str
    principal: MoneyModel
    total_fee: MoneyModel
    total_interest: MoneyModel
    total_amount_with_fee: MoneyModel
    amount_per_installment: Optional[MoneyModel] = None
    months: int
    entries: List[ScheduleEntryResponse]

    @classmethod
    def from_schedule(cls, schedule: AmortizationSchedule) -> 'PreviewResponse':
        return cls(
            payment_type=schedule.payment_type.value,
            principal=MoneyModel.from_money(schedule.principal),
            total_fee=MoneyModel.from_money(schedule.total_fee),
            total_interest=MoneyModel.from_money(schedule.total_interest),
            total_amount_with_fee=MoneyModel.from_money(schedule.total_amount_with_fee),
            amount_per_installment=MoneyModel.from_money(schedule.amount_per_installment),
            months=schedule.months,
            entries=[ScheduleEntryResponse.from_entry(e) for e in schedule.entries]
        )


class PaymentResponse(BaseModel):
    id: str
    plan_id: str
    payment_number: int
    due_date: date
    principal_amount: MoneyModel
    fee_amount: MoneyModel
    interest_amount: MoneyModel
    total_amount: MoneyModel
    remaining_after: MoneyModel
    status: str
    payment_date: Optional[date] = None

    @classmethod
    def from_payment(cls, payment: ScheduledPayment, status: Optional[str] = None) -> 'PaymentResponse':
        return cls(
            id=payment.id,
            plan_id=payment.plan_id,
            payment_number=payment.payment_number,
            due_date=payment.due_date,
            principal_amount=MoneyModel.from_money(payment.principal_amount),
            fee_amount=MoneyModel.from_money(payment.fee_amount),
            interest_amount=MoneyModel.from_money(payment.interest_amount),
            total_amount=MoneyModel.from_money(payment.total_amount),
            remaining_after=MoneyModel.from_money(payment.remaining_after),
            status=status or payment.status.value,
            payment_date=payment.payment_date
        )


class PlanResponse(BaseModel):
    id: str
    account_id: str
    transaction_ids: List[str]
    currency: str
    payment_type: str
    status: str
    original_amount: MoneyModel
    total_amount_with_fee: MoneyModel
    remaining_amount: MoneyModel
    total_installments: int
    completed_installments: int
    start_date: date
    next_payment_date: Optional[date] = None
    installment_amount: Optional[MoneyModel] = None
    installment_fee_rate: Optional[str] = None
    monthly_payment: Optional[MoneyModel] = None
    annual_interest_rate: Optional[str] = None
    completed_at: Optional[str] = None
    cancelled_at: Optional[str] = None
    created_at: str
    version: int

    @classmethod
    def from_plan(cls, plan: PaymentPlan) -> 'PlanResponse':
        return cls(
            id=plan.id,
            account_id=plan.account_id,
            transaction_ids=list(plan.transaction_ids),
            currency=plan.currency.code,
            payment_type=plan.payment_type.value,
            status=plan.status.value,
            original_amount=MoneyModel.from_money(plan.original_amount),
            total_amount_with_fee=MoneyModel.from_money(plan.total_amount_with_fee),
            remaining_amount=MoneyModel.from_money(plan.remaining_amount),
            total_installments=plan.total_installments,
            completed_installments=plan.completed_installments,
            start_date=plan.start_date,
            next_payment_date=plan.next_payment_date,
            installment_amount=MoneyModel.from_money(plan.installment_amount),
            installment_fee_rate=str(plan.installment_fee_rate) if plan.installment_fee_rate is not None else None,
            monthly_payment=MoneyModel.from_money(plan.monthly_payment),
            annual_interest_rate=str(plan.annual_interest_rate) if plan.annual_interest_rate is not None else None,
            completed_at=plan.completed_at.isoformat() if plan.completed_at else None,
            cancelled_at=plan.cancelled_at.isoformat() if plan.cancelled_at else None,
            created_at=plan.created_at.isoformat(),
            version=plan.version
        )


class PlanDetailResponse(PlanResponse):
    payments: List[PaymentResponse] = []

    @classmethod
    def from_detail(cls, detail: PlanDetail) -> 'PlanDetailResponse':
        base = PlanResponse.from_plan(detail.plan)
        return cls(
            **base.model_dump(),
            payments=[
                PaymentResponse.from_payment(p, detail.payment_status(p).value)
                for p in detail.payments
            ]
        )


class PlanPageResponse(BaseModel):
    items: List[PlanResponse]
    total: int
    page: int
    size: int
    pages: int

    @classmethod
    def from_page(cls, page: PlanPage) -> 'PlanPageResponse':
        return cls(
            items=[PlanResponse.from_plan(p) for p in page.items],
            total=page.total,
            page=page.page,
            size=page.size,
            pages=page.pages
        )


class BulkErrorResponse(BaseModel):
    transaction_id: str
    error: str
    reason: str


class BulkResponse(BaseModel):
    total_requested: int
    success_count: int
    failed_count: int
    plans: List[PlanDetailResponse]
    errors: List[BulkErrorResponse]

    @classmethod
    def from_result(cls, result: BulkResult) -> 'BulkResponse':
        return cls(
            total_requested=result.total_requested,
            success_count=result.success_count,
            failed_count=result.failed_count,
            plans=[PlanDetailResponse.from_detail(d) for d in result.succeeded],
            errors=[
                BulkErrorResponse(transaction_id=e.transaction_id, error=e.error_kind, reason=e.reason)
                for e in result.errors
            ]
        )


class UpcomingPaymentResponse(BaseModel):
    payment_id: str
    plan_id: str
    payment_type: str
    account_id: str
    transaction_ids: List[str]
    payment_number: int
    total_installments: int
    total_amount: MoneyModel
    currency: str
    due_date: date
    status: str
    days_until_due: int

    @classmethod
    def from_upcoming(cls, row: UpcomingPayment) -> 'UpcomingPaymentResponse':
        return cls(
            payment_id=row.payment_id,
            plan_id=row.plan_id,
            payment_type=row.payment_type.value,
            account_id=row.account_id,
            transaction_ids=list(row.transaction_ids),
            payment_number=row.payment_number,
            total_installments=row.total_installments,
            total_amount=MoneyModel.from_money(row.total_amount),
            currency=row.currency.code,
            due_date=row.due_date,
            status=row.status.value,
            days_until_due=row.days_until_due
        )
