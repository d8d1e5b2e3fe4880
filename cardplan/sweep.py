"""
Overdue Sweep and Reminders

Batch jobs meant to run daily: refresh the stored OVERDUE status of unpaid
payments, and raise due-soon and overdue events for notification handlers.
Reads never depend on the sweep having run; it only caches the same rule.
"""

from datetime import date
from typing import Dict, List, Optional, Set, Tuple

from .models import PaymentStatus, PlanStatus, ScheduledPayment
from .repository import PlanRepository
from .upcoming import UpcomingPaymentsView, UpcomingPayment
from .audit import AuditTrail, AuditEventType
from .events import EventDispatcher, EventPayload, DomainEvent
from .clock import Clock
from .logging_config import get_logger, log_action


class OverdueSweep:
    """Daily overdue marking and reminder publication"""

    def __init__(
        self,
        repository: PlanRepository,
        view: UpcomingPaymentsView,
        audit_trail: AuditTrail,
        events: EventDispatcher,
        clock: Clock,
        reminder_days_ahead: int = 3
    ):
        self.repository = repository
        self.storage = repository.storage
        self.view = view
        self.audit_trail = audit_trail
        self.events = events
        self.clock = clock
        self.reminder_days_ahead = reminder_days_ahead
        self.logger = get_logger("cardplan.sweep")

    def mark_overdue(self, today: Optional[date] = None) -> int:
        """
        Bring the stored status of unpaid payments in line with their due dates

        Returns the number of payments whose stored status changed; running
        it again on the same day returns 0. Payments that just became overdue
        get a PAYMENT_OVERDUE event.
        """
        changed, _ = self._refresh_statuses(today or self.clock.today())
        return changed

    def _refresh_statuses(self, today: date) -> Tuple[int, List[ScheduledPayment]]:
        changed = 0
        newly_overdue: List[ScheduledPayment] = []

        for candidate in self.repository.find_plans(PlanStatus.ACTIVE):
            with self.repository.plan_lock(candidate.id):
                with self.storage.atomic():
                    plan = self.repository.get_plan(candidate.id)
                    if plan is None or not plan.is_active:
                        continue
                    for payment in self.repository.get_payments(plan.id):
                        if payment.is_paid:
                            continue
                        derived = payment.effective_status(today, plan.status)
                        if derived == payment.status:
                            continue
                        payment.status = derived
                        payment.updated_at = self.clock.now()
                        self.repository.save_payment(payment)
                        changed += 1
                        if derived == PaymentStatus.OVERDUE:
                            newly_overdue.append(payment)

        if changed:
            self.audit_trail.log_event(
                event_type=AuditEventType.OVERDUE_SWEEP,
                entity_type="payment",
                entity_id=today.isoformat(),
                metadata={
                    "changed": changed,
                    "newly_overdue": [p.id for p in newly_overdue]
                }
            )

        for payment in newly_overdue:
            self.events.publish(EventPayload(
                event_type=DomainEvent.PAYMENT_OVERDUE,
                entity_type="payment",
                entity_id=payment.id,
                data={
                    "plan_id": payment.plan_id,
                    "payment_number": payment.payment_number,
                    "days_overdue": (today - payment.due_date).days
                }
            ))

        log_action(
            self.logger, "info", f"Marked {len(newly_overdue)} payments as overdue",
            action="mark_overdue",
            extra={"changed": changed, "as_of": today.isoformat()}
        )
        return changed, newly_overdue

    def send_due_reminders(self, days_ahead: Optional[int] = None) -> List[UpcomingPayment]:
        """Publish PAYMENT_DUE_SOON for pending payments due between today and today + days_ahead"""
        if days_ahead is None:
            days_ahead = self.reminder_days_ahead

        due_soon = [
            row for row in self.view.get_upcoming(days_ahead)
            if row.status == PaymentStatus.PENDING
        ]
        for row in due_soon:
            self.events.publish(EventPayload(
                event_type=DomainEvent.PAYMENT_DUE_SOON,
                entity_type="payment",
                entity_id=row.payment_id,
                data={
                    "plan_id": row.plan_id,
                    "payment_number": row.payment_number,
                    "total_amount": row.total_amount.to_string(),
                    "due_date": row.due_date.isoformat(),
                    "days_until_due": row.days_until_due
                }
            ))

        self.logger.info(f"Sent {len(due_soon)} payment reminders")
        return due_soon

    def notify_overdue(self, exclude: Optional[Set[str]] = None) -> List[UpcomingPayment]:
        """Publish PAYMENT_OVERDUE for every currently overdue payment not in `exclude`"""
        exclude = exclude or set()
        overdue = [row for row in self.view.get_overdue() if row.payment_id not in exclude]
        for row in overdue:
            self.events.publish(EventPayload(
                event_type=DomainEvent.PAYMENT_OVERDUE,
                entity_type="payment",
                entity_id=row.payment_id,
                data={
                    "plan_id": row.plan_id,
                    "payment_number": row.payment_number,
                    "total_amount": row.total_amount.to_string(),
                    "days_overdue": -row.days_until_due
                }
            ))

        self.logger.info(f"Notified {len(overdue)} overdue payments")
        return overdue

    def run(self) -> Dict[str, int]:
        """
        Run all daily jobs in order

        Each overdue payment is notified once per run: the ones that just
        became overdue by the status refresh, the rest by notify_overdue.
        """
        changed, newly_overdue = self._refresh_statuses(self.clock.today())
        reminded = self.send_due_reminders()
        notified = self.notify_overdue(exclude={p.id for p in newly_overdue})
        return {
            "marked": changed,
            "reminded": len(reminded),
            "overdue_notified": len(newly_overdue) + len(notified),
        }
