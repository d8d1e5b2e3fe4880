"""
Payment Ledger

State changes of an existing plan: marking scheduled payments paid (with the
plan completion cascade) and cancelling a plan. Each change reloads state
under the plan's row lock and commits in one atomic block with a version check.
"""

from datetime import date
from typing import List, Optional

from .currency import Money
from .models import PaymentPlan, ScheduledPayment, PlanStatus, PaymentStatus
from .repository import PlanRepository
from .lookups import TransactionLookup
from .audit import AuditTrail, AuditEventType
from .events import EventDispatcher, EventPayload, DomainEvent
from .clock import Clock
from .exceptions import NotFoundError, InvalidStateError
from .logging_config import get_logger, log_action


class PaymentLedger:
    """Records payments against plans and cancels plans"""

    def __init__(
        self,
        repository: PlanRepository,
        transactions: TransactionLookup,
        audit_trail: AuditTrail,
        events: EventDispatcher,
        clock: Clock
    ):
        self.repository = repository
        self.storage = repository.storage
        self.transactions = transactions
        self.audit_trail = audit_trail
        self.events = events
        self.clock = clock
        self.logger = get_logger("cardplan.ledger")

    def mark_payment_as_paid(
        self,
        plan_id: str,
        payment_id: str,
        payment_date: Optional[date] = None
    ) -> ScheduledPayment:
        """
        Mark one scheduled payment PAID

        Payments may be paid in any order. Paying the last unpaid payment
        completes the plan in the same unit of work.

        Raises:
            NotFoundError: plan missing, or payment missing or not of this plan
            InvalidStateError: plan cancelled or completed, payment already paid
        """
        with self.repository.plan_lock(plan_id):
            with self.storage.atomic():
                plan = self.repository.require_plan(plan_id)
                payment = self.repository.get_payment(payment_id)
                if payment is None or payment.plan_id != plan_id:
                    raise NotFoundError(f"Payment {payment_id} not found in plan {plan_id}")

                if plan.status == PlanStatus.CANCELLED:
                    raise InvalidStateError("Cannot mark payment on a cancelled plan")
                if plan.status == PlanStatus.COMPLETED:
                    raise InvalidStateError("Cannot mark payment on a completed plan")
                if payment.is_paid:
                    raise InvalidStateError(f"Payment {payment.payment_number} is already paid")

                now = self.clock.now()
                payment.status = PaymentStatus.PAID
                payment.payment_date = payment_date or self.clock.today()
                payment.updated_at = now
                self.repository.save_payment(payment)

                expected_version = plan.version
                plan.remaining_amount = (plan.remaining_amount - payment.total_amount).max_zero()
                plan.completed_installments = min(plan.completed_installments + 1, plan.total_installments)

                unpaid = [p for p in self.repository.get_payments(plan_id) if not p.is_paid]
                plan.next_payment_date = unpaid[0].due_date if unpaid else None
                completed = not unpaid
                if completed:
                    plan.status = PlanStatus.COMPLETED
                    plan.completed_at = now
                    plan.remaining_amount = Money.zero(plan.currency)

                self.repository.save_plan(plan, expected_version)

                self.audit_trail.log_event(
                    event_type=AuditEventType.PAYMENT_MARKED_PAID,
                    entity_type="payment",
                    entity_id=payment.id,
                    metadata={
                        "plan_id": plan.id,
                        "payment_number": payment.payment_number,
                        "total_amount": payment.total_amount.to_string(),
                        "payment_date": payment.payment_date.isoformat(),
                        "remaining_amount": plan.remaining_amount.to_string()
                    }
                )
                if completed:
                    self.audit_trail.log_event(
                        event_type=AuditEventType.PLAN_COMPLETED,
                        entity_type="plan",
                        entity_id=plan.id,
                        metadata={"completed_installments": plan.completed_installments}
                    )

        log_action(
            self.logger, "info", "Payment marked as paid",
            action="mark_payment_as_paid",
            resource=f"plan:{plan.id}",
            extra={
                "payment_id": payment.id,
                "payment_number": payment.payment_number,
                "remaining_amount": plan.remaining_amount.to_string(),
                "completed": completed
            }
        )
        self.events.publish(EventPayload(
            event_type=DomainEvent.PAYMENT_PAID,
            entity_type="payment",
            entity_id=payment.id,
            data={
                "plan_id": plan.id,
                "payment_number": payment.payment_number,
                "total_amount": payment.total_amount.to_string(),
                "remaining_amount": plan.remaining_amount.to_string()
            }
        ))
        if completed:
            self.events.publish(EventPayload(
                event_type=DomainEvent.PLAN_COMPLETED,
                entity_type="plan",
                entity_id=plan.id,
                data={"transaction_ids": plan.transaction_ids}
            ))

        return payment

    def cancel_plan(self, plan_id: str) -> PaymentPlan:
        """
        Cancel a plan

        Payment rows are kept as they are. The plan's transactions are
        released so they can be planned again.

        Raises:
            NotFoundError: plan missing
            InvalidStateError: plan already completed or cancelled
        """
        with self.repository.plan_lock(plan_id):
            with self.storage.atomic():
                plan = self.repository.require_plan(plan_id)
                if plan.status == PlanStatus.COMPLETED:
                    raise InvalidStateError("Cannot cancel a completed plan")
                if plan.status == PlanStatus.CANCELLED:
                    raise InvalidStateError("Plan is already cancelled")

                expected_version = plan.version
                plan.status = PlanStatus.CANCELLED
                plan.cancelled_at = self.clock.now()
                plan.next_payment_date = None

                released = self._release_transactions(plan)
                self.repository.save_plan(plan, expected_version)

                self.audit_trail.log_event(
                    event_type=AuditEventType.PLAN_CANCELLED,
                    entity_type="plan",
                    entity_id=plan.id,
                    metadata={
                        "released_transactions": released,
                        "remaining_amount": plan.remaining_amount.to_string(),
                        "completed_installments": plan.completed_installments
                    }
                )

        log_action(
            self.logger, "info", "Payment plan cancelled",
            action="cancel_plan",
            resource=f"plan:{plan.id}",
            extra={"released_transactions": released}
        )
        self.events.publish(EventPayload(
            event_type=DomainEvent.PLAN_CANCELLED,
            entity_type="plan",
            entity_id=plan.id,
            data={"transaction_ids": plan.transaction_ids}
        ))
        return plan

    def _release_transactions(self, plan: PaymentPlan) -> List[str]:
        released = []
        for transaction_id in plan.transaction_ids:
            if self.repository.get_link(transaction_id) == plan.id:
                self.repository.remove_link(transaction_id)
                self.transactions.link_plan(transaction_id, None)
                released.append(transaction_id)
        return released
