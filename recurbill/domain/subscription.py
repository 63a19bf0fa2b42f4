"""
Subscription domain entity

A subscription is an immutable record; every operation returns a new
instance (dataclasses.replace). Raw input is coerced here and checked by
validate_subscription before anything is committed.
"""
import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Mapping

from recurbill.domain.billing_cycle import calculate_next
from recurbill.domain.enums import Cadence, SubscriptionStatus
from recurbill.domain.errors import CHARGE_DATE_OUT_OF_RANGE, ChargeDateOutOfRangeError
from recurbill.utils.validation import parse_date, parse_decimal


DEFAULT_CADENCE = Cadence.MONTHLY

# Fields an update may touch; everything else is derived or owned by the engine
UPDATABLE_FIELDS = (
    "customer_ref", "customer_id", "plan", "amount",
    "cadence", "anchor_date", "auto_renew", "notes",
)
DERIVED_FIELDS = (
    "id", "status", "last_charge_date", "next_charge_date",
    "created_at", "updated_at",
)


@dataclass(frozen=True)
class Subscription:
    """
    Recurring charge agreement between the provider and a customer.

    next_charge_date is always derived from last_charge_date (or anchor_date
    when never billed) via calculate_next, never set by a caller.
    """
    id: str
    customer_ref: str
    plan: str
    amount: Decimal
    cadence: Cadence
    anchor_date: date
    created_at: datetime
    updated_at: datetime
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    auto_renew: bool = True
    last_charge_date: date | None = None
    next_charge_date: date | None = None
    customer_id: str | None = None
    notes: str = ""

    @property
    def billing_base_date(self) -> date:
        """Date the next charge is computed from."""
        return self.last_charge_date or self.anchor_date


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)


def generate_subscription_id() -> str:
    return uuid.uuid4().hex


def touch(previous: datetime, now: datetime) -> datetime:
    """updated_at stamp that never moves backwards."""
    return now if now >= previous else previous


def _schedule(cadence, anchor_date, last_charge_date) -> date | None:
    """None when the inputs are invalid or the date runs off the calendar."""
    base = last_charge_date or anchor_date
    if Cadence.parse(cadence) is None or not isinstance(base, date):
        return None
    try:
        return calculate_next(cadence, base)
    except ChargeDateOutOfRangeError:
        return None


def _coerce_text(value) -> str:
    if value is None:
        return ""
    return str(value).strip()


def create_subscription(data: Mapping[str, Any], now: datetime, today: date) -> Subscription:
    """
    Build a new subscription from raw input.

    Defaults: status=active, auto_renew=True, cadence=monthly,
    anchor_date=today. Values that cannot be coerced (unknown cadence,
    non-numeric amount, bad date) are kept as given so that
    validate_subscription reports them.

    Args:
        data: raw fields (customer_ref, plan, amount, cadence, anchor_date,
            last_charge_date, status, auto_renew, customer_id, notes, id)
        now: creation timestamp
        today: fallback anchor date

    Returns:
        Subscription (not validated)
    """
    raw_cadence = data.get("cadence") or DEFAULT_CADENCE
    cadence = Cadence.parse(raw_cadence) or raw_cadence

    raw_status = data.get("status") or SubscriptionStatus.ACTIVE
    status = SubscriptionStatus.parse(raw_status) or raw_status

    raw_amount = data.get("amount")
    amount = parse_decimal(raw_amount)
    if amount is None:
        amount = raw_amount

    raw_anchor = data.get("anchor_date")
    anchor_date = today if raw_anchor is None else (parse_date(raw_anchor) or raw_anchor)
    raw_last = data.get("last_charge_date")
    last_charge_date = None if raw_last in (None, "") else (parse_date(raw_last) or raw_last)

    auto_renew = data.get("auto_renew")
    if auto_renew is None:
        auto_renew = True
    if status == SubscriptionStatus.CANCELLED:
        auto_renew = False

    next_charge_date = None
    if status != SubscriptionStatus.CANCELLED:
        next_charge_date = _schedule(cadence, anchor_date, last_charge_date)

    return Subscription(
        id=str(data.get("id") or generate_subscription_id()),
        customer_ref=_coerce_text(data.get("customer_ref")),
        customer_id=data.get("customer_id") or None,
        plan=_coerce_text(data.get("plan")),
        amount=amount,
        cadence=cadence,
        anchor_date=anchor_date,
        last_charge_date=last_charge_date,
        next_charge_date=next_charge_date,
        status=status,
        auto_renew=auto_renew,
        notes=_coerce_text(data.get("notes")),
        created_at=now,
        updated_at=now,
    )


def validate_subscription(subscription: Subscription | None) -> ValidationResult:
    """Check field constraints; never raises."""
    errors: list[str] = []

    if subscription is None:
        return ValidationResult(valid=False, errors=["Subscription object is required"])

    if not isinstance(subscription.customer_ref, str) or not subscription.customer_ref.strip():
        errors.append("Customer is required")

    if not isinstance(subscription.plan, str) or not subscription.plan.strip():
        errors.append("Plan is required")

    amount = subscription.amount
    if not isinstance(amount, Decimal) or not amount.is_finite() or amount <= 0:
        errors.append("Amount must be greater than 0")

    if not isinstance(subscription.cadence, Cadence):
        errors.append("Invalid billing cycle")

    if not isinstance(subscription.status, SubscriptionStatus):
        errors.append("Invalid status")

    if not isinstance(subscription.anchor_date, date):
        errors.append("Invalid anchor date")

    last_charge = subscription.last_charge_date
    if last_charge is not None and not isinstance(last_charge, date):
        errors.append("Invalid last charge date")

    if not isinstance(subscription.auto_renew, bool):
        errors.append("Auto-renew must be true or false")

    schedulable = (
        isinstance(subscription.cadence, Cadence)
        and isinstance(subscription.anchor_date, date)
        and (last_charge is None or isinstance(last_charge, date))
    )
    if schedulable and subscription.status != SubscriptionStatus.CANCELLED and subscription.next_charge_date is None:
        errors.append(CHARGE_DATE_OUT_OF_RANGE)

    return ValidationResult(valid=not errors, errors=errors)


def apply_changes(subscription: Subscription, changes: Mapping[str, Any], now: datetime) -> Subscription:
    """
    Build the update candidate.

    Raises:
        ValueError: a derived or unknown field was passed, or auto-renew was
            re-enabled on a cancelled subscription. The candidate itself is
            not validated here.
    """
    forbidden = [k for k in changes if k in DERIVED_FIELDS]
    if forbidden:
        raise ValueError(f"Field(s) cannot be set directly: {', '.join(sorted(forbidden))}")
    unknown = [k for k in changes if k not in UPDATABLE_FIELDS]
    if unknown:
        raise ValueError(f"Unknown field(s): {', '.join(sorted(unknown))}")

    values: Dict[str, Any] = {}
    if "customer_ref" in changes:
        values["customer_ref"] = _coerce_text(changes["customer_ref"])
    if "customer_id" in changes:
        values["customer_id"] = changes["customer_id"] or None
    if "plan" in changes:
        values["plan"] = _coerce_text(changes["plan"])
    if "notes" in changes:
        values["notes"] = _coerce_text(changes["notes"])
    if "amount" in changes:
        amount = parse_decimal(changes["amount"])
        values["amount"] = changes["amount"] if amount is None else amount
    if "cadence" in changes:
        values["cadence"] = Cadence.parse(changes["cadence"]) or changes["cadence"]
    if "anchor_date" in changes:
        values["anchor_date"] = parse_date(changes["anchor_date"]) or changes["anchor_date"]
    if "auto_renew" in changes:
        auto_renew = changes["auto_renew"]
        if auto_renew is True and subscription.status == SubscriptionStatus.CANCELLED:
            raise ValueError("Cannot enable auto-renew on a cancelled subscription")
        values["auto_renew"] = auto_renew

    candidate = replace(subscription, **values, updated_at=touch(subscription.updated_at, now))

    reschedule = "cadence" in values or "anchor_date" in values
    if reschedule and candidate.status != SubscriptionStatus.CANCELLED:
        candidate = replace(
            candidate,
            next_charge_date=_schedule(candidate.cadence, candidate.anchor_date, candidate.last_charge_date),
        )
    return candidate


def _iso(value) -> str | None:
    return value.isoformat() if value is not None else None


def to_payload(subscription: Subscription) -> Dict[str, Any]:
    """JSON-safe representation (event payloads, event log, API)."""
    return {
        "subscription_id": subscription.id,
        "customer_ref": subscription.customer_ref,
        "customer_id": subscription.customer_id,
        "plan": subscription.plan,
        "amount": str(subscription.amount),
        "cadence": subscription.cadence.value,
        "anchor_date": _iso(subscription.anchor_date),
        "last_charge_date": _iso(subscription.last_charge_date),
        "next_charge_date": _iso(subscription.next_charge_date),
        "status": subscription.status.value,
        "auto_renew": subscription.auto_renew,
        "notes": subscription.notes,
        "created_at": _iso(subscription.created_at),
        "updated_at": _iso(subscription.updated_at),
    }


def billed_payload(
    previous: Subscription,
    billed: Subscription,
) -> Dict[str, Any]:
    """Payload of the subscription_billed event."""
    return {
        "subscription_id": billed.id,
        "amount": str(billed.amount),
        "cadence": billed.cadence.value,
        "billing_date": _iso(billed.last_charge_date),
        "previous_next_charge_date": _iso(previous.next_charge_date),
        "next_charge_date": _iso(billed.next_charge_date),
        "billed_at": _iso(billed.updated_at),
    }
