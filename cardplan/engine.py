"""
Payment Plan Engine

Wires storage, collaborators and the plan components together and exposes
the operations callers use.
"""

from datetime import date
from typing import List, Optional, Sequence, Union

from .config import PlanEngineConfig, get_config
from .currency import Money
from .storage import StorageInterface, create_storage
from .clock import Clock, SystemClock
from .lookups import TransactionLookup, AccountLookup, StorageTransactionLookup, StorageAccountLookup
from .amortization import PlanTerms, AmortizationSchedule, calculate_schedule
from .models import PaymentPlan, ScheduledPayment, PlanDetail, PlanStatus, PaymentType
from .repository import PlanRepository, PlanPage
from .factory import PlanFactory
from .bulk import BulkPlanOrchestrator, BulkResult
from .ledger import PaymentLedger
from .upcoming import UpcomingPaymentsView, UpcomingPayment
from .sweep import OverdueSweep
from .audit import AuditTrail
from .events import EventDispatcher
from .exceptions import NotFoundError


class PlanEngine:
    """Credit card payment plan engine with all components initialized"""

    def __init__(
        self,
        storage: Optional[StorageInterface] = None,
        config: Optional[PlanEngineConfig] = None,
        clock: Optional[Clock] = None,
        transactions: Optional[TransactionLookup] = None,
        accounts: Optional[AccountLookup] = None
    ):
        self.config = config or get_config()
        self.storage = storage or create_storage(self.config.database_url)
        self.clock = clock or SystemClock()

        self.audit_trail = AuditTrail(self.storage, enabled=self.config.enable_audit_logging)
        self.events = EventDispatcher()
        self.repository = PlanRepository(self.storage, self.clock)

        # Collaborators default to tables in the engine's own storage
        self.transactions = transactions or StorageTransactionLookup(self.storage)
        self.accounts = accounts or StorageAccountLookup(self.storage)

        self.factory = PlanFactory(
            self.repository, self.transactions, self.accounts,
            self.audit_trail, self.events, self.clock
        )
        self.bulk = BulkPlanOrchestrator(
            self.factory, self.audit_trail,
            max_workers=self.config.bulk_max_workers,
            max_transactions=self.config.bulk_max_transactions
        )
        self.ledger = PaymentLedger(
            self.repository, self.transactions, self.audit_trail, self.events, self.clock
        )
        self.upcoming = UpcomingPaymentsView(self.repository, self.clock)
        self.sweep = OverdueSweep(
            self.repository, self.upcoming, self.audit_trail, self.events, self.clock,
            reminder_days_ahead=self.config.reminder_days_ahead
        )

    # Creation

    def create_plan(
        self,
        transaction_ids: Union[str, Sequence[str]],
        terms: PlanTerms,
        start_date: Optional[date] = None
    ) -> PlanDetail:
        return self.factory.create_plan(transaction_ids, terms, start_date)

    def create_plans_bulk(
        self,
        transaction_ids: Sequence[str],
        terms: PlanTerms,
        start_date: Optional[date] = None
    ) -> BulkResult:
        return self.bulk.create_plans_bulk(transaction_ids, terms, start_date)

    def preview(
        self,
        amount: Money,
        terms: PlanTerms,
        start_date: Optional[date] = None,
        billing_day: Optional[int] = None
    ) -> AmortizationSchedule:
        """Schedule a plan would get, without storing anything"""
        return calculate_schedule(amount, terms, start_date or self.clock.today(), billing_day)

    # Read side

    def get_plan(self, plan_id: str) -> PlanDetail:
        """Plan with its payments ordered by number, statuses as of today"""
        plan = self.repository.get_plan(plan_id)
        if plan is None:
            raise NotFoundError(f"Plan {plan_id} not found")
        return PlanDetail(
            plan=plan,
            payments=self.repository.get_payments(plan_id),
            as_of=self.clock.today()
        )

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
        return self.repository.list_plans(
            status=status, payment_type=payment_type, account_id=account_id,
            sort_by=sort_by, descending=descending, page=page, size=size
        )

    def get_upcoming(self, window_days: Optional[int] = None) -> List[UpcomingPayment]:
        if window_days is None:
            window_days = self.config.upcoming_default_days
        return self.upcoming.get_upcoming(window_days)

    # Mutations

    def mark_payment_as_paid(
        self,
        plan_id: str,
        payment_id: str,
        payment_date: Optional[date] = None
    ) -> ScheduledPayment:
        return self.ledger.mark_payment_as_paid(plan_id, payment_id, payment_date)

    def cancel_plan(self, plan_id: str) -> PaymentPlan:
        return self.ledger.cancel_plan(plan_id)

    def close(self) -> None:
        self.storage.close()
