"""
Closed value sets of the subscription engine.

Raw strings are parsed once at the boundary (``Cadence.parse``); everything
past that point works with the enum members.
"""
from enum import Enum


class _ParseableEnum(str, Enum):

    @classmethod
    def parse(cls, value):
        """Return the member for ``value`` (case-insensitive), or None if unknown."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None

    @classmethod
    def values(cls) -> list[str]:
        return [m.value for m in cls]


class Cadence(_ParseableEnum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"

    @property
    def label(self) -> str:
        return self.value.capitalize()


class SubscriptionStatus(_ParseableEnum):
    ACTIVE = "active"
    PAUSED = "paused"
    CANCELLED = "cancelled"


class LifecycleAction(_ParseableEnum):
    PAUSE = "pause"
    RESUME = "resume"
    CANCEL = "cancel"
