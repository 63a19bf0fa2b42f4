"""
Event log API endpoints (read-only)
"""
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from recurbill.api.deps import get_db
from recurbill.infrastructure.eventlog.repository import EventLogRepository


router = APIRouter(prefix="/api/v1/events", tags=["events"])


class EventResponse(BaseModel):
    event_id: int
    event_type: str
    subscription_id: str | None
    payload: dict[str, Any]
    occurred_at: datetime


@router.get("/", response_model=list[EventResponse])
def list_events(
    after_id: int = Query(0, ge=0),
    limit: int = Query(200, ge=1, le=1000),
    event_type: list[str] | None = Query(None),
    subscription_id: str | None = None,
    db: Session = Depends(get_db)
):
    """Events after the ``after_id`` checkpoint, oldest first"""
    rows = EventLogRepository(db).list_events_since(
        after_id=after_id,
        limit=limit,
        event_types=event_type,
        subscription_id=subscription_id,
    )
    return [
        EventResponse(
            event_id=row.id,
            event_type=row.event_type,
            subscription_id=row.subscription_id,
            payload=row.payload_json,
            occurred_at=row.occurred_at,
        )
        for row in rows
    ]
