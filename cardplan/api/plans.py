"""
Payment plan endpoints
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status

from .dependencies import get_engine
from .schemas import (
    CreatePlanRequest, PreviewPlanRequest, MarkPaidRequest,
    PlanDetailResponse, PlanPageResponse, PlanResponse, PaymentResponse,
    PreviewResponse, BulkResponse, UpcomingPaymentResponse,
    parse_date, parse_enum
)
from ..engine import PlanEngine
from ..models import PlanStatus, PaymentType


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED, response_model=PlanDetailResponse)
async def create_plan(
    request: CreatePlanRequest,
    engine: PlanEngine = Depends(get_engine)
):
    """Create one payment plan covering the given transactions"""
    detail = engine.create_plan(
        request.transaction_ids,
        request.to_plan_terms(),
        parse_date(request.start_date, "start_date")
    )
    return PlanDetailResponse.from_detail(detail)


@router.post("/bulk", response_model=BulkResponse)
async def create_plans_bulk(
    request: CreatePlanRequest,
    engine: PlanEngine = Depends(get_engine)
):
    """Create a separate plan for each transaction; failures are reported per item"""
    result = engine.create_plans_bulk(
        request.transaction_ids,
        request.to_plan_terms(),
        parse_date(request.start_date, "start_date")
    )
    return BulkResponse.from_result(result)


@router.post("/preview", response_model=PreviewResponse)
async def preview_plan(
    request: PreviewPlanRequest,
    engine: PlanEngine = Depends(get_engine)
):
    """Compute a schedule without creating a plan"""
    schedule = engine.preview(
        request.amount.to_money(),
        request.to_plan_terms(),
        parse_date(request.start_date, "start_date"),
        request.billing_day
    )
    return PreviewResponse.from_schedule(schedule)


@router.get("/upcoming", response_model=List[UpcomingPaymentResponse])
async def get_upcoming_payments(
    days: Optional[int] = None,
    engine: PlanEngine = Depends(get_engine)
):
    """Unpaid payments due within `days`, overdue ones included"""
    rows = engine.get_upcoming(days)
    return [UpcomingPaymentResponse.from_upcoming(row) for row in rows]


@router.get("", response_model=PlanPageResponse)
async def list_plans(
    status: Optional[str] = None,
    payment_type: Optional[str] = None,
    account_id: Optional[str] = None,
    sort_by: str = "created_at",
    descending: bool = False,
    page: int = Query(1),
    size: int = Query(20),
    engine: PlanEngine = Depends(get_engine)
):
    """List plans with optional filters"""
    result = engine.list_plans(
        status=parse_enum(PlanStatus, status, "status"),
        payment_type=parse_enum(PaymentType, payment_type, "payment_type"),
        account_id=account_id,
        sort_by=sort_by,
        descending=descending,
        page=page,
        size=size
    )
    return PlanPageResponse.from_page(result)


@router.get("/{plan_id}", response_model=PlanDetailResponse)
async def get_plan(
    plan_id: str,
    engine: PlanEngine = Depends(get_engine)
):
    """Get plan details with its payments"""
    return PlanDetailResponse.from_detail(engine.get_plan(plan_id))


@router.post("/{plan_id}/payments/{payment_id}/pay", response_model=PaymentResponse)
async def mark_payment_as_paid(
    plan_id: str,
    payment_id: str,
    request: Optional[MarkPaidRequest] = None,
    engine: PlanEngine = Depends(get_engine)
):
    """Mark a scheduled payment as paid"""
    payment_date = parse_date(request.payment_date, "payment_date") if request else None
    payment = engine.mark_payment_as_paid(plan_id, payment_id, payment_date)
    return PaymentResponse.from_payment(payment)


@router.post("/{plan_id}/cancel", response_model=PlanResponse)
async def cancel_plan(
    plan_id: str,
    engine: PlanEngine = Depends(get_engine)
):
    """Cancel an active plan"""
    return PlanResponse.from_plan(engine.cancel_plan(plan_id))
