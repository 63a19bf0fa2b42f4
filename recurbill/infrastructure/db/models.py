"""
SQLAlchemy ORM models
"""
from datetime import date as date_type, datetime
from decimal import Decimal
from sqlalchemy import JSON, Boolean, Date, DateTime, Integer, Numeric, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from recurbill.infrastructure.db.session import Base


class EventLog(Base):
    """
    Event log - append-only record of every subscription event
    """
    __tablename__ = "event_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    event_type: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    subscription_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    payload_json: Mapped[dict] = mapped_column(JSON, nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    idempotency_key: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), nullable=False)


class SubscriptionModel(Base):
    """Recurring billing agreement (one row per subscription)"""
    __tablename__ = "subscriptions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)

    customer_ref: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    plan: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    cadence: Mapped[str] = mapped_column(String(16), nullable=False)

    anchor_date: Mapped[date_type] = mapped_column(Date, nullable=False)
    last_charge_date: Mapped[date_type | None] = mapped_column(Date, nullable=True)
    next_charge_date: Mapped[date_type | None] = mapped_column(Date, nullable=True, index=True)

    status: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    auto_renew: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
