"""
FastAPI dependencies (DB session, subscription facade)
"""
from fastapi import Depends
from sqlalchemy.orm import Session

from recurbill.application.subscriptions import SubscriptionFacade, build_facade
from recurbill.infrastructure.db.session import get_db as _get_db


# Re-export get_db for routers
get_db = _get_db


def get_facade(db: Session = Depends(get_db)) -> SubscriptionFacade:
    """
    Facade bound to the request's session; every event lands in event_log.

    Usage:
        @router.get("/")
        def list_subscriptions(facade: SubscriptionFacade = Depends(get_facade)):
            ...
    """
    return build_facade(db)
