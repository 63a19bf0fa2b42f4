"""
Billing processor - advances billing state on a confirmed payment.

No money is moved here; callers decide whether to draft an invoice.
"""
from dataclasses import replace
from datetime import date, datetime

from recurbill.domain.billing_cycle import calculate_next
from recurbill.domain.enums import SubscriptionStatus
from recurbill.domain.errors import SubscriptionNotActiveError
from recurbill.domain.subscription import Subscription, touch


def process_billing(subscription: Subscription, billing_date: date, now: datetime) -> Subscription:
    """
    Record a charge on ``billing_date`` and schedule the next one.

    Raises:
        SubscriptionNotActiveError: subscription is paused or cancelled
        ChargeDateOutOfRangeError: the next charge would fall after year 9999
    """
    if subscription.status != SubscriptionStatus.ACTIVE:
        raise SubscriptionNotActiveError(subscription.status.value)
    if isinstance(billing_date, datetime):
        billing_date = billing_date.date()

    return replace(
        subscription,
        last_charge_date=billing_date,
        next_charge_date=calculate_next(subscription.cadence, billing_date),
        updated_at=touch(subscription.updated_at, now),
    )
