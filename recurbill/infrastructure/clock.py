"""
Clocks - the only source of "now" for the engine
"""
from datetime import date, datetime, timedelta, timezone
from typing import Protocol
from zoneinfo import ZoneInfo

from recurbill.config import get_settings


class Clock(Protocol):
    def now(self) -> datetime: ...

    def today(self) -> date: ...


class SystemClock:
    """
    Wall clock.

    now() is naive UTC (what the database stores); today() is the calendar
    date in the configured TIMEZONE, which decides when a charge is due.
    """

    def __init__(self, tz_name: str | None = None):
        self.tz = ZoneInfo(tz_name or get_settings().TIMEZONE)

    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None)

    def today(self) -> date:
        return datetime.now(self.tz).date()


class FixedClock:
    """Manually driven clock for tests and replays."""

    def __init__(self, current: datetime):
        self.current = current

    def now(self) -> datetime:
        return self.current

    def today(self) -> date:
        return self.current.date()

    def advance(self, **delta) -> None:
        self.current = self.current + timedelta(**delta)
