"""
Pytest fixtures for testing
"""
import pytest
from datetime import datetime
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from recurbill.application.events import EventDispatcher
from recurbill.application.subscriptions import SubscriptionFacade, build_facade
from recurbill.infrastructure.clock import FixedClock
from recurbill.infrastructure.db import models  # noqa: F401
from recurbill.infrastructure.db.session import Base
from recurbill.infrastructure.store import InMemoryStore


NOW = datetime(2024, 1, 15, 9, 0, 0)


@pytest.fixture
def db_engine():
    """In-memory SQLite engine shared across threads (TestClient runs routes in a threadpool)"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine) -> Session:
    """Create database session for tests"""
    SessionLocal = sessionmaker(bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def clock():
    """Clock frozen at 2024-01-15 09:00 (naive UTC)"""
    return FixedClock(NOW)


class EventRecorder:
    """Collects (event_type, payload) pairs emitted by a dispatcher"""

    def __init__(self):
        self.events = []

    def __call__(self, event_type, payload):
        self.events.append((event_type, payload))

    @property
    def types(self):
        return [t for t, _ in self.events]

    def last(self):
        return self.events[-1]


@pytest.fixture
def events():
    return EventDispatcher()


@pytest.fixture
def recorder(events):
    rec = EventRecorder()
    events.subscribe_all(rec)
    return rec


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def facade(store, events, recorder, clock) -> SubscriptionFacade:
    """Facade over an in-memory store; all events go to ``recorder``"""
    return SubscriptionFacade(store, events=events, clock=clock)


@pytest.fixture
def sql_facade(db_session, events, recorder, clock) -> SubscriptionFacade:
    """Facade over the SQL store with the event log attached"""
    return build_facade(db_session, clock=clock, events=events)


@pytest.fixture
def make_subscription(facade):
    """Create a valid subscription through the facade; keyword overrides"""
    def _make(**overrides):
        data = {
            "customer_ref": "Acme Corp",
            "plan": "Pro",
            "amount": "100.00",
            "cadence": "monthly",
            "anchor_date": "2024-01-15",
        }
        data.update(overrides)
        result = facade.create_subscription(data)
        assert result.success, result.errors
        return result.subscription

    return _make
