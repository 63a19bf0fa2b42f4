"""
Event Log Repository - append-only history of subscription events
"""
import logging
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from recurbill.infrastructure.db.models import EventLog

logger = logging.getLogger(__name__)


class EventLogRepository:
    """
    Repository for the event_log table
    """

    def __init__(self, db: Session):
        self.db = db

    def append_event(
        self,
        event_type: str,
        payload: Dict[str, Any],
        occurred_at: Optional[datetime] = None,
        idempotency_key: Optional[str] = None,
    ) -> int:
        """
        Append an event to the log

        Args:
            event_type: event name, e.g. "subscription_created"
            payload: JSON-serializable event data
            occurred_at: when it happened (default: now, naive UTC)
            idempotency_key: optional unique key

        Returns:
            event_id of the new row (flushed, not committed)

        Raises:
            IntegrityError: idempotency_key already exists

        Example:
            >>> repo = EventLogRepository(db)
            >>> event_id = repo.append_event(
            ...     event_type="subscription_billed",
            ...     payload={"subscription_id": "ab12", "next_charge_date": "2024-03-15"},
            ... )
        """
        if occurred_at is None:
            occurred_at = datetime.now(timezone.utc).replace(tzinfo=None)

        event = EventLog(
            event_type=event_type,
            subscription_id=payload.get("subscription_id"),
            payload_json=payload,
            occurred_at=occurred_at,
            idempotency_key=idempotency_key,
        )

        self.db.add(event)
        self.db.flush()

        return event.id

    def list_events_since(
        self,
        after_id: int = 0,
        limit: int = 200,
        event_types: Optional[List[str]] = None,
        subscription_id: Optional[str] = None,
    ) -> List[EventLog]:
        """
        Events with id > after_id, oldest first

        Args:
            after_id: checkpoint (last seen event id)
            limit: page size
            event_types: optional event type filter
            subscription_id: optional subscription filter

        Returns:
            List of EventLog rows sorted by id ASC
        """
        query = self.db.query(EventLog).filter(EventLog.id > after_id)

        if event_types:
            query = query.filter(EventLog.event_type.in_(event_types))
        if subscription_id:
            query = query.filter(EventLog.subscription_id == subscription_id)

        query = query.order_by(EventLog.id.asc()).limit(limit)

        return query.all()


class EventLogSink:
    """
    Event listener that records every dispatched event in the event log.

    Subscribe it with EventDispatcher.subscribe_all(EventLogSink(db)).
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = EventLogRepository(db)

    def __call__(self, event_type: str, payload: Dict[str, Any]) -> None:
        try:
            self.repo.append_event(event_type=event_type, payload=payload)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
