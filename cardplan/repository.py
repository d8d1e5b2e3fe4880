"""
Plan Repository

Persistence for plans, their scheduled payments and the transaction links
that keep a transaction in at most one live plan. Plans and payments are
never deleted.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
import math

from .storage import StorageInterface
from .clock import Clock, SystemClock
from .models import PaymentPlan, ScheduledPayment, PlanStatus, PaymentType
from .exceptions import ConflictError, NotFoundError, ValidationError


MAX_PAGE_SIZE = 100

_SORT_KEYS: Dict[str, Callable[[PaymentPlan], Any]] = {
    'created_at': lambda plan: plan.created_at,
    'start_date': lambda plan: plan.start_date,
    'next_payment_date': lambda plan: plan.next_payment_date,
    'original_amount': lambda plan: plan.original_amount.amount,
    'remaining_amount': lambda plan: plan.remaining_amount.amount,
}


@dataclass
class PlanPage:
    """One page of a plan listing"""
    items: List[PaymentPlan] = field(default_factory=list)
    total: int = 0
    page: int = 1
    size: int = 20

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.size) if self.total else 0


class PlanRepository:
    """Storage access for plans, payments and transaction links"""

    def __init__(self, storage: StorageInterface, clock: Optional[Clock] = None):
        self.storage = storage
        self.clock = clock or SystemClock()

        self.plans_table = "credit_card_plans"
        self.payments_table = "credit_card_payments"
        self.links_table = "plan_transaction_links"

    def plan_lock(self, plan_id: str):
        """Single-writer lock for one plan; take it before `storage.atomic()`"""
        return self.storage.row_lock(self.plans_table, plan_id)

    # Plans

    def save_plan(self, plan: PaymentPlan, expected_version: Optional[int] = None) -> PaymentPlan:
        """
        Persist a plan.

        Without `expected_version` the plan is inserted as new. With it, the
        stored version must still equal `expected_version`; the saved plan
        then carries the next version.
        """
        if expected_version is None:
            if self.storage.exists(self.plans_table, plan.id):
                raise ConflictError(f"Plan {plan.id} already exists")
        else:
            stored = self.storage.load(self.plans_table, plan.id)
            if stored is None:
                raise NotFoundError(f"Plan {plan.id} not found")
            stored_version = stored.get('version', 1)
            if stored_version != expected_version:
                raise ConflictError(
                    f"Plan {plan.id} was modified concurrently "
                    f"(expected version {expected_version}, found {stored_version})"
                )
            plan.version = expected_version + 1
            plan.updated_at = self.clock.now()

        self.storage.save(self.plans_table, plan.id, plan.to_dict())
        return plan

    def get_plan(self, plan_id: str) -> Optional[PaymentPlan]:
        data = self.storage.load(self.plans_table, plan_id)
        if data:
            return PaymentPlan.from_dict(data)
        return None

    def require_plan(self, plan_id: str) -> PaymentPlan:
        plan = self.get_plan(plan_id)
        if plan is None:
            raise NotFoundError(f"Plan {plan_id} not found")
        return plan

    def find_plans(self, status: Optional[PlanStatus] = None) -> List[PaymentPlan]:
        filters = {'status': status.value} if status else {}
        return [PaymentPlan.from_dict(data) for data in self.storage.find(self.plans_table, filters)]

    def list_plans(
        self,
        status: Optional[PlanStatus] = None,
        payment_type: Optional[PaymentType] = None,
        account_id: Optional[str] = None,
        sort_by: str = "created_at",
        descending: bool = False,
        page: int = 1,
        size: int = 20
    ) -> PlanPage:
        """
        Filter, sort and page plans.

        Plans with no value for the sort key (e.g. a finished plan's
        next_payment_date) are listed last in either direction.
        """
        if sort_by not in _SORT_KEYS:
            raise ValidationError(
                f"Cannot sort by {sort_by}; expected one of {', '.join(sorted(_SORT_KEYS))}"
            )
        if page < 1:
            raise ValidationError("Page must be at least 1")
        if size < 1 or size > MAX_PAGE_SIZE:
            raise ValidationError(f"Page size must be between 1 and {MAX_PAGE_SIZE}")

        filters: Dict[str, Any] = {}
        if status:
            filters['status'] = status.value
        if payment_type:
            filters['payment_type'] = payment_type.value
        if account_id:
            filters['account_id'] = account_id

        plans = [PaymentPlan.from_dict(data) for data in self.storage.find(self.plans_table, filters)]

        key = _SORT_KEYS[sort_by]
        with_value = [p for p in plans if key(p) is not None]
        without_value = [p for p in plans if key(p) is None]
        with_value.sort(key=lambda p: (key(p), p.id), reverse=descending)
        without_value.sort(key=lambda p: p.id)
        ordered = with_value + without_value

        start = (page - 1) * size
        return PlanPage(items=ordered[start:start + size], total=len(ordered), page=page, size=size)

    # Payments

    def save_payment(self, payment: ScheduledPayment) -> None:
        self.storage.save(self.payments_table, payment.id, payment.to_dict())

    def get_payment(self, payment_id: str) -> Optional[ScheduledPayment]:
        data = self.storage.load(self.payments_table, payment_id)
        if data:
            return ScheduledPayment.from_dict(data)
        return None

    def get_payments(self, plan_id: str) -> List[ScheduledPayment]:
        """Payments of a plan ordered by payment number"""
        payments = [
            ScheduledPayment.from_dict(data)
            for data in self.storage.find(self.payments_table, {'plan_id': plan_id})
        ]
        payments.sort(key=lambda p: p.payment_number)
        return payments

    # Transaction links

    def get_link(self, transaction_id: str) -> Optional[str]:
        """Plan currently holding a transaction, if any"""
        data = self.storage.load(self.links_table, transaction_id)
        return data['plan_id'] if data else None

    def save_link(self, transaction_id: str, plan_id: str) -> None:
        self.storage.save(self.links_table, transaction_id, {
            'id': transaction_id,
            'transaction_id': transaction_id,
            'plan_id': plan_id,
            'linked_at': self.clock.now().isoformat(),
        })

    def remove_link(self, transaction_id: str) -> bool:
        return self.storage.delete(self.links_table, transaction_id)
