"""
Upcoming Payments View

Read-only projection of unpaid payments across active plans, due within a
window from today. Overdue payments are always included.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import List, Optional

from .currency import Money, Currency
from .models import PaymentType, PaymentStatus, PlanStatus
from .repository import PlanRepository
from .clock import Clock
from .exceptions import ValidationError


@dataclass
class UpcomingPayment:
    """One unpaid payment with enough plan context to act on it"""
    payment_id: str
    plan_id: str
    payment_type: PaymentType
    account_id: str
    transaction_ids: List[str]
    payment_number: int
    total_installments: int
    total_amount: Money
    due_date: date
    status: PaymentStatus
    days_until_due: int  # Negative when overdue

    @property
    def currency(self) -> Currency:
        return self.total_amount.currency

    @property
    def is_overdue(self) -> bool:
        return self.status == PaymentStatus.OVERDUE


class UpcomingPaymentsView:
    """Windowed view of upcoming and overdue payments"""

    def __init__(self, repository: PlanRepository, clock: Clock):
        self.repository = repository
        self.clock = clock

    def get_upcoming(self, window_days: int, today: Optional[date] = None) -> List[UpcomingPayment]:
        """
        Unpaid payments of active plans due on or before today + window_days

        Ordered by (due_date, plan_id, payment_number). Never writes.
        """
        if isinstance(window_days, bool) or not isinstance(window_days, int) or window_days < 0:
            raise ValidationError("Window days must be a non-negative integer")

        today = today or self.clock.today()
        horizon = today + timedelta(days=window_days)

        rows = []
        for plan in self.repository.find_plans(PlanStatus.ACTIVE):
            for payment in self.repository.get_payments(plan.id):
                if payment.is_paid or payment.due_date > horizon:
                    continue
                rows.append(UpcomingPayment(
                    payment_id=payment.id,
                    plan_id=plan.id,
                    payment_type=plan.payment_type,
                    account_id=plan.account_id,
                    transaction_ids=list(plan.transaction_ids),
                    payment_number=payment.payment_number,
                    total_installments=plan.total_installments,
                    total_amount=payment.total_amount,
                    due_date=payment.due_date,
                    status=payment.effective_status(today, plan.status),
                    days_until_due=(payment.due_date - today).days
                ))

        rows.sort(key=lambda r: (r.due_date, r.plan_id, r.payment_number))
        return rows

    def get_overdue(self, today: Optional[date] = None) -> List[UpcomingPayment]:
        """Unpaid payments of active plans whose due date has passed"""
        return [row for row in self.get_upcoming(0, today) if row.is_overdue]
