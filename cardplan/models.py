"""
Plan and Payment Records

Dataclass records for credit card payment plans and their scheduled payments,
with their storage serialization and the derived OVERDUE rule.
"""

from decimal import Decimal
from datetime import datetime, date
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from enum import Enum

from .currency import Money, Currency
from .storage import StorageRecord


class PaymentType(Enum):
    """How a plan repays its principal"""
    INSTALLMENT = "INSTALLMENT"  # Equal payments with a flat per-period fee
    REVOLVING = "REVOLVING"      # Fixed monthly payment against a declining balance


class PlanStatus(Enum):
    """Plan lifecycle states"""
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"   # Every payment is PAID
    CANCELLED = "CANCELLED"   # Terminal; history retained


class PaymentStatus(Enum):
    """Scheduled payment states; OVERDUE is derived from the due date"""
    PENDING = "PENDING"
    OVERDUE = "OVERDUE"
    PAID = "PAID"


def _money_to_dict(result: Dict[str, Any], name: str, value: Optional[Money]) -> None:
    result[name] = str(value.amount) if value is not None else None


def _money_from_dict(data: Dict[str, Any], name: str, currency: Currency) -> Optional[Money]:
    raw = data.get(name)
    if raw is None:
        return None
    return Money(Decimal(raw), currency)


def _date_from_dict(data: Dict[str, Any], name: str) -> Optional[date]:
    raw = data.get(name)
    return date.fromisoformat(raw) if raw else None


def _datetime_from_dict(data: Dict[str, Any], name: str) -> Optional[datetime]:
    raw = data.get(name)
    return datetime.fromisoformat(raw) if raw else None


@dataclass
class ScheduledPayment(StorageRecord):
    """One period of a plan's repayment schedule"""
    plan_id: str
    payment_number: int
    due_date: date
    principal_amount: Money
    fee_amount: Money
    interest_amount: Money
    total_amount: Money
    remaining_after: Money
    status: PaymentStatus = PaymentStatus.PENDING
    payment_date: Optional[date] = None

    @property
    def currency(self) -> Currency:
        return self.total_amount.currency

    @property
    def is_paid(self) -> bool:
        return self.status == PaymentStatus.PAID

    def is_past_due(self, today: date) -> bool:
        return not self.is_paid and self.due_date < today

    def effective_status(self, today: date, plan_status: PlanStatus) -> PaymentStatus:
        """
        Status as observed at `today`.

        Depends only on (due_date, stored status, today, plan status). Payments
        of a cancelled plan keep whatever status they had when it was cancelled.
        """
        if self.is_paid:
            return PaymentStatus.PAID
        if plan_status == PlanStatus.CANCELLED:
            return self.status
        if self.due_date < today:
            return PaymentStatus.OVERDUE
        return PaymentStatus.PENDING

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
            'plan_id': self.plan_id,
            'payment_number': self.payment_number,
            'due_date': self.due_date.isoformat(),
            'currency': self.currency.code,
            'principal_amount': str(self.principal_amount.amount),
            'fee_amount': str(self.fee_amount.amount),
            'interest_amount': str(self.interest_amount.amount),
            'total_amount': str(self.total_amount.amount),
            'remaining_after': str(self.remaining_after.amount),
            'status': self.status.value,
            'payment_date': self.payment_date.isoformat() if self.payment_date else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ScheduledPayment':
        currency = Currency[data['currency']]
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            plan_id=data['plan_id'],
            payment_number=data['payment_number'],
            due_date=date.fromisoformat(data['due_date']),
            principal_amount=_money_from_dict(data, 'principal_amount', currency),
            fee_amount=_money_from_dict(data, 'fee_amount', currency),
            interest_amount=_money_from_dict(data, 'interest_amount', currency),
            total_amount=_money_from_dict(data, 'total_amount', currency),
            remaining_after=_money_from_dict(data, 'remaining_after', currency),
            status=PaymentStatus(data['status']),
            payment_date=_date_from_dict(data, 'payment_date'),
        )


@dataclass
class PaymentPlan(StorageRecord):
    """A credit card payment plan built from one or more expense transactions"""
    account_id: str
    transaction_ids: List[str]
    currency: Currency
    payment_type: PaymentType
    original_amount: Money
    total_amount_with_fee: Money
    remaining_amount: Money
    start_date: date
    total_installments: int
    completed_installments: int = 0
    status: PlanStatus = PlanStatus.ACTIVE
    next_payment_date: Optional[date] = None

    # INSTALLMENT parameters
    installment_amount: Optional[Money] = None
    installment_fee_rate: Optional[Decimal] = None

    # REVOLVING parameters
    monthly_payment: Optional[Money] = None
    annual_interest_rate: Optional[Decimal] = None

    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    version: int = 1

    def __post_init__(self):
        if self.original_amount.currency != self.currency:
            raise ValueError("Plan amounts must use the plan currency")

    @property
    def transaction_id(self) -> str:
        """First originating transaction"""
        return self.transaction_ids[0]

    @property
    def is_active(self) -> bool:
        return self.status == PlanStatus.ACTIVE

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'id': self.id,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
            'account_id': self.account_id,
            'transaction_ids': list(self.transaction_ids),
            'currency': self.currency.code,
            'payment_type': self.payment_type.value,
            'start_date': self.start_date.isoformat(),
            'total_installments': self.total_installments,
            'completed_installments': self.completed_installments,
            'status': self.status.value,
            'next_payment_date': self.next_payment_date.isoformat() if self.next_payment_date else None,
            'installment_fee_rate': str(self.installment_fee_rate) if self.installment_fee_rate is not None else None,
            'annual_interest_rate': str(self.annual_interest_rate) if self.annual_interest_rate is not None else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'cancelled_at': self.cancelled_at.isoformat() if self.cancelled_at else None,
            'version': self.version,
        }
        for name in ['original_amount', 'total_amount_with_fee', 'remaining_amount',
                     'installment_amount', 'monthly_payment']:
            _money_to_dict(result, name, getattr(self, name))
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PaymentPlan':
        currency = Currency[data['currency']]

        def get_rate(name: str) -> Optional[Decimal]:
            raw = data.get(name)
            return Decimal(raw) if raw is not None else None

        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            account_id=data['account_id'],
            transaction_ids=list(data['transaction_ids']),
            currency=currency,
            payment_type=PaymentType(data['payment_type']),
            original_amount=_money_from_dict(data, 'original_amount', currency),
            total_amount_with_fee=_money_from_dict(data, 'total_amount_with_fee', currency),
            remaining_amount=_money_from_dict(data, 'remaining_amount', currency),
            start_date=date.fromisoformat(data['start_date']),
            total_installments=data['total_installments'],
            completed_installments=data.get('completed_installments', 0),
            status=PlanStatus(data['status']),
            next_payment_date=_date_from_dict(data, 'next_payment_date'),
            installment_amount=_money_from_dict(data, 'installment_amount', currency),
            installment_fee_rate=get_rate('installment_fee_rate'),
            monthly_payment=_money_from_dict(data, 'monthly_payment', currency),
            annual_interest_rate=get_rate('annual_interest_rate'),
            completed_at=_datetime_from_dict(data, 'completed_at'),
            cancelled_at=_datetime_from_dict(data, 'cancelled_at'),
            version=data.get('version', 1),
        )


@dataclass
class PlanDetail:
    """A plan together with its ordered payments, as observed on `as_of`"""
    plan: PaymentPlan
    payments: List[ScheduledPayment] = field(default_factory=list)
    as_of: Optional[date] = None

    def payment_status(self, payment: ScheduledPayment) -> PaymentStatus:
        if self.as_of is None:
            return payment.status
        return payment.effective_status(self.as_of, self.plan.status)

    @property
    def overdue_payments(self) -> List[ScheduledPayment]:
        return [p for p in self.payments if self.payment_status(p) == PaymentStatus.OVERDUE]
