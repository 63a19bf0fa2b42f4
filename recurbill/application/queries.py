"""
Filtering and sorting over the subscription collection (reporting views,
bulk export). Pure functions; input order is preserved wherever the
operation does not define another one.
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Iterable

from recurbill.domain.billing_cycle import is_due
from recurbill.domain.enums import Cadence, SubscriptionStatus
from recurbill.domain.subscription import Subscription


class SortKey(str, Enum):
    NEXT_CHARGE_DATE = "next_charge_date"
    CUSTOMER_REF = "customer_ref"
    PLAN = "plan"
    AMOUNT = "amount"


@dataclass(frozen=True)
class SubscriptionFilter:
    """Conjunctive criteria; None / False means "don't filter on this"."""
    status: SubscriptionStatus | None = None
    customer: str | None = None
    plan: str | None = None
    cadence: Cadence | None = None
    billing_due: bool = False

    def __post_init__(self):
        # Reject unknown values here instead of silently matching nothing
        if self.status is not None:
            object.__setattr__(self, "status", SubscriptionStatus(self.status))
        if self.cadence is not None:
            object.__setattr__(self, "cadence", Cadence(self.cadence))


def _contains(haystack: str | None, needle: str) -> bool:
    return needle.casefold() in (haystack or "").casefold()


def matches(subscription: Subscription, criteria: SubscriptionFilter, today: date) -> bool:
    if criteria.status is not None and subscription.status != criteria.status:
        return False
    if criteria.customer and not _contains(subscription.customer_ref, criteria.customer):
        return False
    if criteria.plan and not _contains(subscription.plan, criteria.plan):
        return False
    if criteria.cadence is not None and subscription.cadence != criteria.cadence:
        return False
    if criteria.billing_due and not is_due(subscription, today):
        return False
    return True


def filter_subscriptions(
    subscriptions: Iterable[Subscription],
    criteria: SubscriptionFilter | None = None,
    today: date | None = None,
) -> list[Subscription]:
    """Subscriptions matching every given criterion, in input order."""
    criteria = criteria or SubscriptionFilter()
    if today is None:
        today = date.today()
    return [s for s in subscriptions if matches(s, criteria, today)]


def _sort_value(subscription: Subscription, key: SortKey):
    if key is SortKey.NEXT_CHARGE_DATE:
        # Unscheduled subscriptions go first in ascending order
        return subscription.next_charge_date or date.min
    if key is SortKey.CUSTOMER_REF:
        return (subscription.customer_ref or "").casefold()
    if key is SortKey.PLAN:
        return (subscription.plan or "").casefold()
    return subscription.amount or Decimal("0")


def sort_subscriptions(
    subscriptions: Iterable[Subscription],
    key: SortKey | str = SortKey.NEXT_CHARGE_DATE,
    ascending: bool = True,
) -> list[Subscription]:
    """
    Stable sort: subscriptions with equal keys keep their relative order
    in both directions.

    Raises:
        ValueError: unknown sort key
    """
    key = SortKey(key)
    return sorted(subscriptions, key=lambda s: _sort_value(s, key), reverse=not ascending)


def active_subscriptions(subscriptions: Iterable[Subscription]) -> list[Subscription]:
    return filter_subscriptions(subscriptions, SubscriptionFilter(status=SubscriptionStatus.ACTIVE))


def due_for_billing(subscriptions: Iterable[Subscription], today: date) -> list[Subscription]:
    return filter_subscriptions(subscriptions, SubscriptionFilter(billing_due=True), today)
