"""
Plan Factory

Turns one or more credit card expense transactions into a persisted payment
plan. Everything is checked before any write; the plan, its payments, the
transaction links and the ledger write-back are then stored in one atomic
block, so a failure leaves no partial plan behind.
"""

from datetime import date, datetime
from typing import List, Optional, Sequence, Union
import uuid

from .currency import Money
from .amortization import PlanTerms, AmortizationSchedule, calculate_schedule
from .models import PaymentPlan, ScheduledPayment, PaymentType, PlanStatus, PlanDetail
from .repository import PlanRepository
from .lookups import TransactionLookup, AccountLookup, TransactionRecord, AccountRecord, TransactionType
from .audit import AuditTrail, AuditEventType
from .events import EventDispatcher, EventPayload, DomainEvent
from .clock import Clock
from .exceptions import ValidationError, ConflictError, NotFoundError
from .logging_config import get_logger, log_action


class PlanFactory:
    """
    Validates plan requests and materializes plans with their schedules
    """

    def __init__(
        self,
        repository: PlanRepository,
        transactions: TransactionLookup,
        accounts: AccountLookup,
        audit_trail: AuditTrail,
        events: EventDispatcher,
        clock: Clock
    ):
        self.repository = repository
        self.storage = repository.storage
        self.transactions = transactions
        self.accounts = accounts
        self.audit_trail = audit_trail
        self.events = events
        self.clock = clock
        self.logger = get_logger("cardplan.factory")

    def create_plan(
        self,
        transaction_ids: Union[str, Sequence[str]],
        terms: PlanTerms,
        start_date: Optional[date] = None
    ) -> PlanDetail:
        """
        Create a payment plan for one or more transactions

        Args:
            transaction_ids: A single transaction ID or several; all must be
                EXPENSE transactions of the same credit card account and currency
            terms: Repayment parameters
            start_date: Schedule start; defaults to the latest transaction date

        Returns:
            PlanDetail with the new plan and its ordered payments

        Raises:
            ValidationError: bad terms or request shape
            NotFoundError: unknown transaction or account
            ConflictError: wrong account or transaction type, mixed currency or
                account, or a transaction already in a live plan
        """
        ids = self._normalize_ids(transaction_ids)
        terms.validate()

        records = [self._load_plannable(transaction_id) for transaction_id in ids]
        transactions = [txn for txn, _ in records]
        account = records[0][1]

        currencies = {txn.currency for txn in transactions}
        if len(currencies) > 1:
            raise ConflictError(
                "Transactions use mixed currencies: "
                + ", ".join(sorted(c.code for c in currencies))
            )
        if len({txn.account_id for txn in transactions}) > 1:
            raise ConflictError("Transactions belong to different accounts")

        currency = transactions[0].currency
        principal = Money.sum((txn.amount for txn in transactions), currency)
        if start_date is None:
            start_date = self._default_start_date(transactions)

        schedule = calculate_schedule(principal, terms, start_date, account.billing_day)

        now = self.clock.now()
        plan = self._build_plan(account, ids, terms, schedule, start_date, now)
        payments = self._build_payments(plan, schedule, now)

        with self.storage.atomic():
            # Another writer may have planned a transaction since the checks above
            for transaction_id in ids:
                self._ensure_not_planned(transaction_id, None)

            self.repository.save_plan(plan)
            for payment in payments:
                self.repository.save_payment(payment)
            for transaction_id in ids:
                self.repository.save_link(transaction_id, plan.id)
                self.transactions.link_plan(transaction_id, plan.id)

            self.audit_trail.log_event(
                event_type=AuditEventType.PLAN_CREATED,
                entity_type="plan",
                entity_id=plan.id,
                metadata={
                    "account_id": plan.account_id,
                    "transaction_ids": plan.transaction_ids,
                    "payment_type": plan.payment_type.value,
                    "original_amount": plan.original_amount.to_string(),
                    "total_amount_with_fee": plan.total_amount_with_fee.to_string(),
                    "total_installments": plan.total_installments,
                    "start_date": plan.start_date.isoformat()
                }
            )

        log_action(
            self.logger, "info", "Payment plan created",
            action="create_plan",
            resource=f"plan:{plan.id}",
            extra={
                "transaction_ids": plan.transaction_ids,
                "payment_type": plan.payment_type.value,
                "installments": plan.total_installments,
                "total": plan.total_amount_with_fee.to_string()
            }
        )
        self.events.publish(EventPayload(
            event_type=DomainEvent.PLAN_CREATED,
            entity_type="plan",
            entity_id=plan.id,
            data={
                "account_id": plan.account_id,
                "transaction_ids": plan.transaction_ids,
                "payment_type": plan.payment_type.value,
                "total_amount_with_fee": plan.total_amount_with_fee.to_string(),
                "total_installments": plan.total_installments
            }
        ))

        return PlanDetail(plan=plan, payments=payments, as_of=self.clock.today())

    @staticmethod
    def _normalize_ids(transaction_ids: Union[str, Sequence[str]]) -> List[str]:
        if isinstance(transaction_ids, str):
            transaction_ids = [transaction_ids]
        ids = list(transaction_ids or [])
        if not ids:
            raise ValidationError("At least one transaction is required")
        if any(not isinstance(i, str) or not i.strip() for i in ids):
            raise ValidationError("Transaction IDs must be non-empty strings")
        if len(set(ids)) != len(ids):
            raise ValidationError("Duplicate transaction IDs in request")
        return ids

    def _load_plannable(self, transaction_id: str):
        """Load a transaction and its account, checking it may be put in a plan"""
        txn = self.transactions.get_transaction(transaction_id)
        if txn is None:
            raise NotFoundError(f"Transaction {transaction_id} not found")

        account = self.accounts.get_account(txn.account_id)
        if account is None:
            raise NotFoundError(f"Account {txn.account_id} not found")
        if not account.is_credit_card:
            raise ConflictError("Transaction must be from a credit card account")
        if txn.type != TransactionType.EXPENSE:
            raise ConflictError("Only expense transactions can have payment plans")
        if not txn.amount.is_positive():
            raise ValidationError(f"Transaction {transaction_id} amount must be positive")

        self._ensure_not_planned(transaction_id, txn.plan_id)
        return txn, account

    def _ensure_not_planned(self, transaction_id: str, hinted_plan_id: Optional[str]) -> None:
        """Raise ConflictError if the transaction belongs to a plan that is not cancelled"""
        for plan_id in {self.repository.get_link(transaction_id), hinted_plan_id}:
            if plan_id is None:
                continue
            plan = self.repository.get_plan(plan_id)
            if plan is not None and plan.status != PlanStatus.CANCELLED:
                raise ConflictError(f"Transaction {transaction_id} already has a payment plan")

    def _default_start_date(self, transactions: List[TransactionRecord]) -> date:
        dates = [txn.transaction_date for txn in transactions if txn.transaction_date]
        return max(dates) if dates else self.clock.today()

    @staticmethod
    def _build_plan(
        account: AccountRecord,
        transaction_ids: List[str],
        terms: PlanTerms,
        schedule: AmortizationSchedule,
        start_date: date,
        now: datetime
    ) -> PaymentPlan:
        plan = PaymentPlan(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            account_id=account.id,
            transaction_ids=list(transaction_ids),
            currency=schedule.currency,
            payment_type=terms.payment_type,
            original_amount=schedule.principal,
            total_amount_with_fee=schedule.total_amount_with_fee,
            remaining_amount=schedule.total_amount_with_fee,
            start_date=start_date,
            total_installments=schedule.months,
            next_payment_date=schedule.first_due_date
        )
        if terms.payment_type == PaymentType.INSTALLMENT:
            plan.installment_amount = schedule.amount_per_installment
            plan.installment_fee_rate = terms.fee_rate
        else:
            plan.monthly_payment = Money(terms.monthly_payment, schedule.currency)
            plan.annual_interest_rate = terms.annual_interest_rate
        return plan

    @staticmethod
    def _build_payments(plan: PaymentPlan, schedule: AmortizationSchedule, now: datetime) -> List[ScheduledPayment]:
        return [
            ScheduledPayment(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                plan_id=plan.id,
                payment_number=entry.payment_number,
                due_date=entry.due_date,
                principal_amount=entry.principal_amount,
                fee_amount=entry.fee_amount,
                interest_amount=entry.interest_amount,
                total_amount=entry.total_amount,
                remaining_after=entry.remaining_after
            )
            for entry in schedule.entries
        ]
