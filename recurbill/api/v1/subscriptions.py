"""
Subscription API endpoints
"""
from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, field_validator

from recurbill.api.deps import get_facade
from recurbill.application.billing_run import run_due_billing
from recurbill.application.queries import SubscriptionFilter
from recurbill.application.subscriptions import OperationResult, SubscriptionFacade
from recurbill.config import get_settings
from recurbill.domain.errors import (
    InvalidTransitionError,
    SubscriptionNotActiveError,
    SubscriptionNotFoundError,
)
from recurbill.domain.subscription import Subscription, to_payload
from recurbill.utils.validation import validate_and_normalize_amount


router = APIRouter(prefix="/api/v1/subscriptions", tags=["subscriptions"])

MAX_FORECAST_COUNT = 120


# === Request/Response models ===

class CreateSubscriptionRequest(BaseModel):
    customer_ref: str
    plan: str
    amount: str  # Decimal as string
    cadence: str = "monthly"  # weekly, monthly, quarterly, yearly
    anchor_date: date | None = None
    last_charge_date: date | None = None
    status: str | None = None
    auto_renew: bool = True
    customer_id: str | None = None
    notes: str = ""

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: str) -> str:
        """Normalize separator, at most 2 decimal places"""
        return validate_and_normalize_amount(v, max_decimal_places=2)


class UpdateSubscriptionRequest(BaseModel):
    customer_ref: str | None = None
    plan: str | None = None
    amount: str | None = None
    cadence: str | None = None
    anchor_date: date | None = None
    auto_renew: bool | None = None
    customer_id: str | None = None
    notes: str | None = None

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: str | None) -> str | None:
        if v is None:
            return v
        return validate_and_normalize_amount(v, max_decimal_places=2)


class BillRequest(BaseModel):
    billing_date: date | None = None


class SubscriptionResponse(BaseModel):
    subscription_id: str
    customer_ref: str
    customer_id: str | None
    plan: str
    amount: str  # Decimal as string
    cadence: str
    anchor_date: date
    last_charge_date: date | None
    next_charge_date: date | None
    status: str
    auto_renew: bool
    notes: str
    created_at: str
    updated_at: str


class MetricsResponse(BaseModel):
    active_count: int
    paused_count: int
    cancelled_count: int
    due_count: int
    mrr: str
    currency: str


class DueResponse(BaseModel):
    count: int
    summary: list[str]
    subscriptions: list[SubscriptionResponse]


class BillingRunResponse(BaseModel):
    billing_date: date
    processed: list[str]
    failed: dict[str, list[str]]


# === Helper functions ===

def _to_response(sub: Subscription) -> SubscriptionResponse:
    return SubscriptionResponse(**to_payload(sub))


def _unwrap(result: OperationResult) -> SubscriptionResponse:
    """Return the subscription of a successful result or raise the matching HTTP error"""
    if result.success:
        return _to_response(result.subscription)

    if isinstance(result.error, SubscriptionNotFoundError):
        raise HTTPException(status_code=404, detail=str(result.error))
    if isinstance(result.error, (InvalidTransitionError, SubscriptionNotActiveError)):
        raise HTTPException(status_code=409, detail=str(result.error))
    raise HTTPException(status_code=422, detail=result.errors)


def _get_or_404(facade: SubscriptionFacade, subscription_id: str) -> Subscription:
    sub = facade.get_subscription(subscription_id)
    if sub is None:
        raise HTTPException(status_code=404, detail="Subscription not found")
    return sub


# === Endpoints ===

@router.post("/", response_model=SubscriptionResponse, status_code=201)
def create_subscription(
    req: CreateSubscriptionRequest,
    facade: SubscriptionFacade = Depends(get_facade)
):
    """Create a subscription; next charge date is derived from the anchor date"""
    data = req.model_dump(exclude_none=True)
    return _unwrap(facade.create_subscription(data))


@router.get("/", response_model=list[SubscriptionResponse])
def list_subscriptions(
    status: str | None = None,
    customer: str | None = None,
    plan: str | None = None,
    cadence: str | None = None,
    billing_due: bool = False,
    sort_by: str | None = None,
    descending: bool = False,
    facade: SubscriptionFacade = Depends(get_facade)
):
    """List subscriptions (all filters combined with AND)"""
    try:
        criteria = SubscriptionFilter(
            status=status.lower() if status else None,
            customer=customer,
            plan=plan,
            cadence=cadence.lower() if cadence else None,
            billing_due=billing_due,
        )
        subs = facade.list_subscriptions(criteria, sort_by=sort_by, ascending=not descending)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return [_to_response(s) for s in subs]


@router.get("/metrics", response_model=MetricsResponse)
def get_metrics(facade: SubscriptionFacade = Depends(get_facade)):
    """Status counts, due count and monthly recurring revenue"""
    m = facade.metrics()
    return MetricsResponse(
        active_count=m.active_count,
        paused_count=m.paused_count,
        cancelled_count=m.cancelled_count,
        due_count=m.due_count,
        mrr=str(m.mrr),
        currency=get_settings().CURRENCY,
    )


@router.get("/due", response_model=DueResponse)
def list_due(facade: SubscriptionFacade = Depends(get_facade)):
    """Subscriptions due for billing today"""
    due = facade.due_for_billing()
    return DueResponse(
        count=len(due),
        summary=facade.due_summary(),
        subscriptions=[_to_response(s) for s in due],
    )


@router.post("/billing-run", response_model=BillingRunResponse)
def billing_run(
    req: BillRequest | None = None,
    facade: SubscriptionFacade = Depends(get_facade)
):
    """Bill every due subscription now (same job the scheduler runs daily)"""
    report = run_due_billing(facade, req.billing_date if req else None)
    return BillingRunResponse(
        billing_date=report.billing_date,
        processed=report.processed,
        failed=report.failed,
    )


@router.get("/{subscription_id}", response_model=SubscriptionResponse)
def get_subscription(
    subscription_id: str,
    facade: SubscriptionFacade = Depends(get_facade)
):
    return _to_response(_get_or_404(facade, subscription_id))


@router.patch("/{subscription_id}", response_model=SubscriptionResponse)
def update_subscription(
    subscription_id: str,
    req: UpdateSubscriptionRequest,
    facade: SubscriptionFacade = Depends(get_facade)
):
    """Partial update; only fields present in the body are changed"""
    changes = req.model_dump(exclude_unset=True)
    return _unwrap(facade.update_subscription(subscription_id, **changes))


@router.delete("/{subscription_id}")
def delete_subscription(
    subscription_id: str,
    facade: SubscriptionFacade = Depends(get_facade)
):
    """Delete permanently"""
    _unwrap(facade.delete_subscription(subscription_id))
    return {"status": "deleted"}


@router.post("/{subscription_id}/pause", response_model=SubscriptionResponse)
def pause_subscription(
    subscription_id: str,
    facade: SubscriptionFacade = Depends(get_facade)
):
    return _unwrap(facade.pause_subscription(subscription_id))


@router.post("/{subscription_id}/resume", response_model=SubscriptionResponse)
def resume_subscription(
    subscription_id: str,
    facade: SubscriptionFacade = Depends(get_facade)
):
    return _unwrap(facade.resume_subscription(subscription_id))


@router.post("/{subscription_id}/cancel", response_model=SubscriptionResponse)
def cancel_subscription(
    subscription_id: str,
    facade: SubscriptionFacade = Depends(get_facade)
):
    return _unwrap(facade.cancel_subscription(subscription_id))


@router.post("/{subscription_id}/bill", response_model=SubscriptionResponse)
def bill_subscription(
    subscription_id: str,
    req: BillRequest | None = None,
    facade: SubscriptionFacade = Depends(get_facade)
):
    """Record a successful charge (default: today) and schedule the next one"""
    billing_date = req.billing_date if req else None
    return _unwrap(facade.process_billing(subscription_id, billing_date))


@router.get("/{subscription_id}/forecast", response_model=list[date])
def forecast(
    subscription_id: str,
    count: int = Query(3, ge=0, le=MAX_FORECAST_COUNT),
    facade: SubscriptionFacade = Depends(get_facade)
):
    """Upcoming charge dates"""
    _get_or_404(facade, subscription_id)
    return facade.forecast(subscription_id, count)


@router.get("/{subscription_id}/invoice")
def draft_invoice(
    subscription_id: str,
    tax_rate: Decimal | None = None,
    facade: SubscriptionFacade = Depends(get_facade)
):
    """Invoice draft for the next charge (not stored)"""
    invoice = facade.draft_invoice(subscription_id, tax_rate)
    if invoice is None:
        raise HTTPException(status_code=404, detail="Subscription not found")
    return invoice.to_dict()
