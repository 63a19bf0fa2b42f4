"""
Billing cycle calculator.

Pure date arithmetic (date only, no timezone):
- WEEKLY: +7 days
- MONTHLY: +1 calendar month
- QUARTERLY: +3 calendar months
- YEARLY: +1 calendar year

Month-end policy: the day is clipped to the last day of the target month,
so Jan 31 + 1 month = Feb 28 (Feb 29 in leap years) and
Feb 29 + 1 year = Feb 28.
"""
import calendar
from datetime import date, datetime, timedelta

from recurbill.domain.enums import Cadence, SubscriptionStatus
from recurbill.domain.errors import ChargeDateOutOfRangeError


_MONTHS_PER_CYCLE = {
    Cadence.MONTHLY: 1,
    Cadence.QUARTERLY: 3,
    Cadence.YEARLY: 12,
}


def last_day_of_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def add_months(d: date, n: int) -> date:
    month = d.month - 1 + n
    year = d.year + month // 12
    month = month % 12 + 1
    last = last_day_of_month(year, month)
    day = min(d.day, last)
    return date(year, month, day)


def calculate_next(cadence: Cadence | str, from_date: date) -> date:
    """
    Next charge date strictly after ``from_date``.

    Raises:
        ValueError: unknown cadence
        ChargeDateOutOfRangeError: the next date would be after date.max
    """
    parsed = Cadence.parse(cadence)
    if parsed is None:
        raise ValueError(f"invalid cadence: {cadence}")
    if isinstance(from_date, datetime):
        from_date = from_date.date()
    try:
        if parsed is Cadence.WEEKLY:
            return from_date + timedelta(days=7)
        return add_months(from_date, _MONTHS_PER_CYCLE[parsed])
    except (OverflowError, ValueError) as e:
        raise ChargeDateOutOfRangeError() from e


def upcoming_charge_dates(cadence: Cadence | str, from_date: date, count: int) -> list[date]:
    """
    Project the next ``count`` charge dates by chaining calculate_next.

    The projection stops early at the end of the calendar (year 9999).
    """
    if count < 0:
        raise ValueError("count must be >= 0")
    out: list[date] = []
    d = from_date
    for _ in range(count):
        try:
            d = calculate_next(cadence, d)
        except ChargeDateOutOfRangeError:
            break
        out.append(d)
    return out


def is_due(subscription, today: date) -> bool:
    """True iff the subscription is active and its next charge date has arrived."""
    if subscription.status != SubscriptionStatus.ACTIVE:
        return False
    if subscription.next_charge_date is None:
        return False
    if isinstance(today, datetime):
        today = today.date()
    return today >= subscription.next_charge_date
