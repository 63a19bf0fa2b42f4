"""
Subscription status lifecycle (finite state machine)

    active  --pause-->  paused
    paused  --resume--> active
    active  --cancel--> cancelled
    paused  --cancel--> cancelled

cancelled is terminal. Transitions never touch charge dates.
"""
from dataclasses import replace
from datetime import datetime

from recurbill.domain.enums import LifecycleAction, SubscriptionStatus
from recurbill.domain.errors import InvalidTransitionError
from recurbill.domain.subscription import Subscription, touch


TRANSITIONS: dict[tuple[LifecycleAction, SubscriptionStatus], SubscriptionStatus] = {
    (LifecycleAction.PAUSE, SubscriptionStatus.ACTIVE): SubscriptionStatus.PAUSED,
    (LifecycleAction.RESUME, SubscriptionStatus.PAUSED): SubscriptionStatus.ACTIVE,
    (LifecycleAction.CANCEL, SubscriptionStatus.ACTIVE): SubscriptionStatus.CANCELLED,
    (LifecycleAction.CANCEL, SubscriptionStatus.PAUSED): SubscriptionStatus.CANCELLED,
}


def can_transition(status: SubscriptionStatus, action: LifecycleAction) -> bool:
    return (LifecycleAction(action), SubscriptionStatus(status)) in TRANSITIONS


def allowed_actions(status: SubscriptionStatus) -> list[LifecycleAction]:
    """Actions available from ``status``, in declaration order."""
    return [a for a in LifecycleAction if can_transition(status, a)]


def transition(subscription: Subscription, action: LifecycleAction, now: datetime) -> Subscription:
    """
    Apply a lifecycle action.

    Raises:
        InvalidTransitionError: action is not allowed from the current status
    """
    action = LifecycleAction(action)
    target = TRANSITIONS.get((action, subscription.status))
    if target is None:
        raise InvalidTransitionError(action.value, subscription.status.value)

    changes = {"status": target, "updated_at": touch(subscription.updated_at, now)}
    if target is SubscriptionStatus.CANCELLED:
        changes["auto_renew"] = False
    return replace(subscription, **changes)


def pause(subscription: Subscription, now: datetime) -> Subscription:
    return transition(subscription, LifecycleAction.PAUSE, now)


def resume(subscription: Subscription, now: datetime) -> Subscription:
    return transition(subscription, LifecycleAction.RESUME, now)


def cancel(subscription: Subscription, now: datetime) -> Subscription:
    return transition(subscription, LifecycleAction.CANCEL, now)
