"""
Revenue aggregator - Monthly Recurring Revenue (MRR)
"""
from decimal import Decimal
from typing import Iterable

from recurbill.domain.enums import Cadence, SubscriptionStatus
from recurbill.domain.subscription import Subscription


# Average weeks per month; kept at 4.33 for compatibility with existing reports
WEEKS_PER_MONTH = Decimal("4.33")


def monthly_equivalent(subscription: Subscription) -> Decimal:
    """Amount normalized to one month for the subscription's cadence."""
    amount = subscription.amount
    if subscription.cadence == Cadence.WEEKLY:
        return amount * WEEKS_PER_MONTH
    if subscription.cadence == Cadence.MONTHLY:
        return amount
    if subscription.cadence == Cadence.QUARTERLY:
        return amount / 3
    if subscription.cadence == Cadence.YEARLY:
        return amount / 12
    raise ValueError(f"unhandled cadence: {subscription.cadence}")


def calculate_mrr(subscriptions: Iterable[Subscription]) -> Decimal:
    """Sum of monthly equivalents over active subscriptions only."""
    return sum(
        (monthly_equivalent(s) for s in subscriptions if s.status == SubscriptionStatus.ACTIVE),
        Decimal("0"),
    )
