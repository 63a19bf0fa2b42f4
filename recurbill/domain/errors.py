"""
Domain errors for the subscription engine
"""

CHARGE_DATE_OUT_OF_RANGE = "Next charge date out of range"


class SubscriptionError(Exception):
    """Base class for all subscription engine errors"""
    pass


class SubscriptionValidationError(SubscriptionError, ValueError):
    """One or more field constraints are violated"""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "Invalid subscription")


class SubscriptionNotFoundError(SubscriptionError):
    def __init__(self, subscription_id: str):
        self.subscription_id = subscription_id
        super().__init__("Subscription not found")


class InvalidTransitionError(SubscriptionError):
    """Lifecycle action is not allowed from the current status"""

    def __init__(self, action: str, status: str):
        self.action = action
        self.status = status
        super().__init__(f"Cannot {action} a subscription that is {status}")


class SubscriptionNotActiveError(SubscriptionError):
    def __init__(self, status: str):
        self.status = status
        super().__init__("Cannot bill a non-active subscription")


class PersistenceError(SubscriptionError):
    """Store write failed; in-memory state was not changed"""
    pass


class ChargeDateOutOfRangeError(SubscriptionError, ValueError):
    """Next charge date would fall after date.max"""

    def __init__(self):
        super().__init__(CHARGE_DATE_OUT_OF_RANGE)
