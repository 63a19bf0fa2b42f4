"""
Subscription facade — the single entry point for changing subscriptions.

Every mutating call runs validation, applies the domain rules, persists the
whole collection through the store and then emits a domain event. The
in-memory collection is only replaced after the store accepted the write, so
a PersistenceError leaves the facade exactly as it was.

Expected failures (validation, unknown id, disallowed transition, billing a
non-active subscription) come back as OperationResult(success=False);
store failures propagate.
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Mapping

from sqlalchemy.orm import Session

from recurbill.application.events import (
    EventDispatcher,
    EVENT_BILLED,
    EVENT_CANCELLED,
    EVENT_CREATED,
    EVENT_DELETED,
    EVENT_PAUSED,
    EVENT_RESUMED,
    EVENT_UPDATED,
)
from recurbill.application.queries import (
    SortKey,
    SubscriptionFilter,
    filter_subscriptions,
    sort_subscriptions,
)
from recurbill.config import get_settings
from recurbill.domain import lifecycle
from recurbill.domain.billing import process_billing
from recurbill.domain.billing_cycle import is_due, upcoming_charge_dates
from recurbill.domain.enums import LifecycleAction, SubscriptionStatus
from recurbill.domain.errors import (
    ChargeDateOutOfRangeError,
    InvalidTransitionError,
    SubscriptionError,
    SubscriptionNotActiveError,
    SubscriptionNotFoundError,
    SubscriptionValidationError,
)
from recurbill.domain.invoice import InvoiceDraft, build_invoice_draft
from recurbill.domain.revenue import calculate_mrr
from recurbill.domain.subscription import (
    Subscription,
    apply_changes,
    billed_payload,
    create_subscription,
    to_payload,
    validate_subscription,
)
from recurbill.infrastructure.clock import Clock, SystemClock
from recurbill.infrastructure.eventlog.repository import EventLogSink
from recurbill.infrastructure.store import SqlSubscriptionStore, SubscriptionStore
from recurbill.utils.money import format_money, to_money
from recurbill.utils.validation import parse_date

logger = logging.getLogger(__name__)

# Derived/engine-owned fields a caller may not pass to create
_CREATE_FORBIDDEN = ("next_charge_date", "created_at", "updated_at")

_LIFECYCLE_EVENTS = {
    LifecycleAction.PAUSE: EVENT_PAUSED,
    LifecycleAction.RESUME: EVENT_RESUMED,
    LifecycleAction.CANCEL: EVENT_CANCELLED,
}


@dataclass(frozen=True)
class OperationResult:
    success: bool
    subscription: Subscription | None = None
    errors: list[str] = field(default_factory=list)
    error: SubscriptionError | None = None

    @classmethod
    def ok(cls, subscription: Subscription | None = None) -> "OperationResult":
        return cls(success=True, subscription=subscription)

    @classmethod
    def fail(cls, error: SubscriptionError) -> "OperationResult":
        if isinstance(error, SubscriptionValidationError):
            errors = list(error.errors)
        else:
            errors = [str(error)]
        return cls(success=False, errors=errors, error=error)


@dataclass(frozen=True)
class SubscriptionMetrics:
    active_count: int
    paused_count: int
    cancelled_count: int
    due_count: int
    mrr: Decimal


class SubscriptionFacade:
    """
    Owns the subscription collection of one process.

    Args:
        store: persistence collaborator (load once here, save per mutation)
        events: dispatcher receiving subscription_* events
        clock: source of now()/today()
    """

    def __init__(
        self,
        store: SubscriptionStore,
        events: EventDispatcher | None = None,
        clock: Clock | None = None,
    ):
        self.store = store
        self.events = events or EventDispatcher()
        self.clock = clock or SystemClock()
        self._subscriptions: List[Subscription] = list(store.load())

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def get_subscription(self, subscription_id: str) -> Subscription | None:
        for sub in self._subscriptions:
            if sub.id == subscription_id:
                return sub
        return None

    def all_subscriptions(self) -> List[Subscription]:
        return list(self._subscriptions)

    def list_subscriptions(
        self,
        criteria: SubscriptionFilter | None = None,
        sort_by: SortKey | str | None = None,
        ascending: bool = True,
    ) -> List[Subscription]:
        """Filtered view in collection order, or sorted when sort_by is given."""
        result = filter_subscriptions(self._subscriptions, criteria, self.clock.today())
        if sort_by is not None:
            result = sort_subscriptions(result, sort_by, ascending)
        return result

    def due_for_billing(self) -> List[Subscription]:
        return self.list_subscriptions(SubscriptionFilter(billing_due=True))

    def is_due(self, subscription_id: str) -> bool:
        sub = self.get_subscription(subscription_id)
        return sub is not None and is_due(sub, self.clock.today())

    def monthly_recurring_revenue(self) -> Decimal:
        return calculate_mrr(self._subscriptions)

    def metrics(self) -> SubscriptionMetrics:
        today = self.clock.today()
        by_status = {s: 0 for s in SubscriptionStatus}
        for sub in self._subscriptions:
            by_status[sub.status] += 1
        return SubscriptionMetrics(
            active_count=by_status[SubscriptionStatus.ACTIVE],
            paused_count=by_status[SubscriptionStatus.PAUSED],
            cancelled_count=by_status[SubscriptionStatus.CANCELLED],
            due_count=sum(1 for s in self._subscriptions if is_due(s, today)),
            mrr=to_money(calculate_mrr(self._subscriptions)),
        )

    def due_summary(self, currency: str | None = None) -> List[str]:
        """Human-readable lines for the "due for billing" notice."""
        currency = currency or get_settings().CURRENCY
        due = self.due_for_billing()
        if not due:
            return ["No subscriptions due for billing"]
        noun = "subscription" if len(due) == 1 else "subscriptions"
        lines = [f"{len(due)} {noun} due for billing:"]
        for s in due:
            lines.append(f"- {s.customer_ref} - {s.plan} ({format_money(s.amount, currency)})")
        return lines

    def forecast(self, subscription_id: str, count: int = 3) -> List[date]:
        """Upcoming charge dates, starting with the scheduled one."""
        sub = self.get_subscription(subscription_id)
        if sub is None or sub.next_charge_date is None or count <= 0:
            return []
        if sub.status == SubscriptionStatus.CANCELLED:
            return []
        return [sub.next_charge_date] + upcoming_charge_dates(sub.cadence, sub.next_charge_date, count - 1)

    def draft_invoice(self, subscription_id: str, tax_rate: Decimal | None = None) -> InvoiceDraft | None:
        sub = self.get_subscription(subscription_id)
        if sub is None:
            return None
        if tax_rate is None:
            tax_rate = get_settings().DEFAULT_TAX_RATE
        return build_invoice_draft(sub, today=self.clock.today(), tax_rate=tax_rate)

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------

    def create_subscription(self, data: Mapping[str, Any] | None = None, **fields: Any) -> OperationResult:
        """
        Create and persist a subscription.

        Accepts a mapping and/or keyword fields (customer_ref, plan, amount,
        cadence, anchor_date, last_charge_date, status, auto_renew,
        customer_id, notes, id).
        """
        raw: Dict[str, Any] = {**(data or {}), **fields}

        forbidden = [k for k in _CREATE_FORBIDDEN if k in raw]
        if forbidden:
            return self._reject("create", SubscriptionValidationError(
                [f"Field(s) cannot be set directly: {', '.join(forbidden)}"]
            ))

        sub = create_subscription(raw, now=self.clock.now(), today=self.clock.today())

        errors = list(validate_subscription(sub).errors)
        if self.get_subscription(sub.id) is not None:
            errors.append("Subscription id already exists")
        if errors:
            return self._reject("create", SubscriptionValidationError(errors))

        self._commit(self._subscriptions + [sub], EVENT_CREATED, to_payload(sub))
        logger.info(
            "Subscription %s created: %s / %s, %s %s, next charge %s",
            sub.id, sub.customer_ref, sub.plan, sub.amount, sub.cadence.value, sub.next_charge_date,
        )
        return OperationResult.ok(sub)

    def update_subscription(self, subscription_id: str, **changes: Any) -> OperationResult:
        """Apply field changes; the whole update is rejected if any field is invalid."""
        current = self.get_subscription(subscription_id)
        if current is None:
            return self._reject("update", SubscriptionNotFoundError(subscription_id))

        try:
            candidate = apply_changes(current, changes, self.clock.now())
        except ValueError as e:
            return self._reject("update", SubscriptionValidationError([str(e)]))

        result = validate_subscription(candidate)
        if not result.valid:
            return self._reject("update", SubscriptionValidationError(result.errors))

        payload = to_payload(candidate)
        payload["changed_fields"] = sorted(changes)
        self._commit(self._replaced(candidate), EVENT_UPDATED, payload)
        logger.info("Subscription %s updated: %s", subscription_id, ", ".join(sorted(changes)))
        return OperationResult.ok(candidate)

    def delete_subscription(self, subscription_id: str) -> OperationResult:
        """Remove permanently. There is no undo."""
        current = self.get_subscription(subscription_id)
        if current is None:
            return self._reject("delete", SubscriptionNotFoundError(subscription_id))

        remaining = [s for s in self._subscriptions if s.id != subscription_id]
        payload = to_payload(current)
        payload["deleted_at"] = self.clock.now().isoformat()
        self._commit(remaining, EVENT_DELETED, payload)
        logger.info("Subscription %s deleted", subscription_id)
        return OperationResult.ok(current)

    def pause_subscription(self, subscription_id: str) -> OperationResult:
        return self._transition(subscription_id, LifecycleAction.PAUSE)

    def resume_subscription(self, subscription_id: str) -> OperationResult:
        return self._transition(subscription_id, LifecycleAction.RESUME)

    def cancel_subscription(self, subscription_id: str) -> OperationResult:
        return self._transition(subscription_id, LifecycleAction.CANCEL)

    def process_billing(self, subscription_id: str, billing_date: date | str | None = None) -> OperationResult:
        """
        Record a successful charge and schedule the next one.

        Args:
            subscription_id: subscription to bill
            billing_date: charge date (date or ISO string); defaults to today
        """
        current = self.get_subscription(subscription_id)
        if current is None:
            return self._reject("bill", SubscriptionNotFoundError(subscription_id))

        if billing_date is None:
            charge_date = self.clock.today()
        else:
            charge_date = parse_date(billing_date)
            if charge_date is None:
                return self._reject("bill", SubscriptionValidationError(["Invalid billing date"]))

        try:
            billed = process_billing(current, charge_date, self.clock.now())
        except (SubscriptionNotActiveError, ChargeDateOutOfRangeError) as e:
            return self._reject("bill", e)

        self._commit(self._replaced(billed), EVENT_BILLED, billed_payload(current, billed))
        logger.info(
            "Subscription %s billed on %s, next charge %s (was %s)",
            subscription_id, charge_date, billed.next_charge_date, current.next_charge_date,
        )
        return OperationResult.ok(billed)

    # ------------------------------------------------------------------

    def _transition(self, subscription_id: str, action: LifecycleAction) -> OperationResult:
        current = self.get_subscription(subscription_id)
        if current is None:
            return self._reject(action.value, SubscriptionNotFoundError(subscription_id))

        try:
            updated = lifecycle.transition(current, action, self.clock.now())
        except InvalidTransitionError as e:
            return self._reject(action.value, e)

        payload = to_payload(updated)
        payload["previous_status"] = current.status.value
        self._commit(self._replaced(updated), _LIFECYCLE_EVENTS[action], payload)
        logger.info(
            "Subscription %s %s: %s -> %s",
            subscription_id, action.value, current.status.value, updated.status.value,
        )
        return OperationResult.ok(updated)

    def _replaced(self, updated: Subscription) -> List[Subscription]:
        return [updated if s.id == updated.id else s for s in self._subscriptions]

    def _commit(self, subscriptions: List[Subscription], event_type: str, payload: Dict[str, Any]) -> None:
        # Store first: a failed write must not leave memory ahead of the store
        self.store.save(subscriptions)
        self._subscriptions = subscriptions
        self.events.emit(event_type, payload)

    @staticmethod
    def _reject(operation: str, error: SubscriptionError) -> OperationResult:
        logger.debug("Subscription %s rejected: %s", operation, error)
        return OperationResult.fail(error)


def build_facade(
    db: Session,
    clock: Clock | None = None,
    events: EventDispatcher | None = None,
) -> SubscriptionFacade:
    """Facade over the SQL store with every event recorded in event_log."""
    events = events or EventDispatcher()
    events.subscribe_all(EventLogSink(db))
    return SubscriptionFacade(SqlSubscriptionStore(db), events=events, clock=clock)
