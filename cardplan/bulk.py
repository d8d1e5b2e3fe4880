"""
Bulk Plan Creation

Creates one plan per transaction with shared terms. Items run on a bounded
thread pool; each item commits or fails on its own and the caller gets a
per-item report.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Sequence
import uuid

from .amortization import PlanTerms
from .factory import PlanFactory
from .models import PlanDetail
from .audit import AuditTrail, AuditEventType
from .exceptions import PlanEngineError, InfrastructureError, ValidationError
from .logging_config import get_logger, log_action


@dataclass
class BulkError:
    """Why one transaction of a bulk request got no plan"""
    transaction_id: str
    error_kind: str
    reason: str


@dataclass
class BulkResult:
    """Outcome of a bulk request, in input order"""
    total_requested: int
    succeeded: List[PlanDetail] = field(default_factory=list)
    errors: List[BulkError] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @property
    def failed_count(self) -> int:
        return len(self.errors)


class BulkPlanOrchestrator:
    """Fans a bulk request out to PlanFactory, one item per transaction"""

    def __init__(
        self,
        factory: PlanFactory,
        audit_trail: AuditTrail,
        max_workers: int = 4,
        max_transactions: int = 200
    ):
        self.factory = factory
        self.audit_trail = audit_trail
        self.max_workers = max(1, max_workers)
        self.max_transactions = max_transactions
        self.logger = get_logger("cardplan.bulk")

    def create_plans_bulk(
        self,
        transaction_ids: Sequence[str],
        terms: PlanTerms,
        start_date: Optional[date] = None
    ) -> BulkResult:
        """
        Create a separate plan for each transaction

        An empty request or invalid shared terms fail the whole call with
        ValidationError. Per-item failures are reported in `errors`; an
        InfrastructureError from any item is raised once all items finished.
        """
        ids = list(transaction_ids or [])
        if not ids:
            raise ValidationError("At least one transaction is required")
        if len(ids) > self.max_transactions:
            raise ValidationError(f"At most {self.max_transactions} transactions per bulk request")
        terms.validate()

        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(ids))) as executor:
            futures = [
                executor.submit(self.factory.create_plan, transaction_id, terms, start_date)
                for transaction_id in ids
            ]

        result = BulkResult(total_requested=len(ids))
        infrastructure_error: Optional[InfrastructureError] = None

        for transaction_id, future in zip(ids, futures):
            try:
                result.succeeded.append(future.result())
            except InfrastructureError as e:
                self.logger.error(f"Bulk item {transaction_id} failed on storage: {e.reason}")
                if infrastructure_error is None:
                    infrastructure_error = e
            except PlanEngineError as e:
                log_action(
                    self.logger, "warning", "Bulk plan item failed",
                    action="create_plans_bulk",
                    resource=f"transaction:{transaction_id}",
                    extra={"error": e.kind, "reason": e.reason}
                )
                result.errors.append(BulkError(
                    transaction_id=transaction_id,
                    error_kind=e.kind,
                    reason=e.reason
                ))

        if infrastructure_error is not None:
            raise infrastructure_error

        self.audit_trail.log_event(
            event_type=AuditEventType.BULK_PLANS_REQUESTED,
            entity_type="batch",
            entity_id=str(uuid.uuid4()),
            metadata={
                "transaction_ids": ids,
                "total_requested": result.total_requested,
                "success_count": result.success_count,
                "failed_count": result.failed_count,
                "plan_ids": [detail.plan.id for detail in result.succeeded]
            }
        )
        log_action(
            self.logger, "info", "Bulk plan request finished",
            action="create_plans_bulk",
            extra={
                "total_requested": result.total_requested,
                "success_count": result.success_count,
                "failed_count": result.failed_count
            }
        )
        return result
