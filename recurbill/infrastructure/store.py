"""
Subscription stores - persistence of the whole subscription collection.

Both implementations follow the same contract: load() returns every
subscription, save(list) replaces the stored collection with the given one.
A failed save raises PersistenceError and leaves the stored data as it was.
"""
import logging
from decimal import Decimal
from typing import Iterable, List, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from recurbill.domain.enums import Cadence, SubscriptionStatus
from recurbill.domain.errors import PersistenceError
from recurbill.domain.subscription import Subscription
from recurbill.infrastructure.db.models import SubscriptionModel
from recurbill.utils.money import CENT

logger = logging.getLogger(__name__)


class SubscriptionStore(Protocol):
    def load(self) -> List[Subscription]: ...

    def save(self, subscriptions: Iterable[Subscription]) -> None: ...


class InMemoryStore:
    """Process-local store; used when embedding the engine without a database."""

    def __init__(self, subscriptions: Iterable[Subscription] = ()):
        self._items: List[Subscription] = list(subscriptions)

    def load(self) -> List[Subscription]:
        return list(self._items)

    def save(self, subscriptions: Iterable[Subscription]) -> None:
        self._items = list(subscriptions)


def _normalize_amount(value) -> Decimal:
    """Strip the column scale padding (50.000000 -> 50.00)."""
    amount = Decimal(value)
    cents = amount.quantize(CENT)
    return cents if cents == amount else amount.normalize()


def model_to_subscription(row: SubscriptionModel) -> Subscription:
    return Subscription(
        id=row.id,
        customer_ref=row.customer_ref,
        customer_id=row.customer_id,
        plan=row.plan,
        amount=_normalize_amount(row.amount),
        cadence=Cadence(row.cadence),
        anchor_date=row.anchor_date,
        last_charge_date=row.last_charge_date,
        next_charge_date=row.next_charge_date,
        status=SubscriptionStatus(row.status),
        auto_renew=bool(row.auto_renew),
        notes=row.notes or "",
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _copy_to_model(sub: Subscription, row: SubscriptionModel) -> None:
    row.customer_ref = sub.customer_ref
    row.customer_id = sub.customer_id
    row.plan = sub.plan
    row.amount = sub.amount
    row.cadence = sub.cadence.value
    row.anchor_date = sub.anchor_date
    row.last_charge_date = sub.last_charge_date
    row.next_charge_date = sub.next_charge_date
    row.status = sub.status.value
    row.auto_renew = sub.auto_renew
    row.notes = sub.notes or None
    row.created_at = sub.created_at
    row.updated_at = sub.updated_at


class SqlSubscriptionStore:
    """
    SQLAlchemy-backed store.

    save() synchronizes the table with the given collection (insert, update,
    delete) inside one transaction; on failure the transaction is rolled back
    and PersistenceError is raised.
    """

    def __init__(self, db: Session):
        self.db = db

    def load(self) -> List[Subscription]:
        rows = self.db.query(SubscriptionModel).order_by(
            SubscriptionModel.created_at.asc(),
            SubscriptionModel.id.asc(),
        ).all()
        return [model_to_subscription(r) for r in rows]

    def save(self, subscriptions: Iterable[Subscription]) -> None:
        try:
            existing = {row.id: row for row in self.db.query(SubscriptionModel).all()}
            keep: set[str] = set()

            for sub in subscriptions:
                row = existing.get(sub.id)
                if row is None:
                    row = SubscriptionModel(id=sub.id)
                    self.db.add(row)
                _copy_to_model(sub, row)
                keep.add(sub.id)

            for sub_id, row in existing.items():
                if sub_id not in keep:
                    self.db.delete(row)

            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Saving subscriptions failed: %s", e)
            raise PersistenceError(f"Failed to save subscriptions: {e}") from e
