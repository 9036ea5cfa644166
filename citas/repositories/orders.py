"""
Order repository: reads `orders` rows and hands out OrderRecord values.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from citas.core.errors import DataStoreUnavailableError
from citas.models.order import Order
from citas.repositories.records import OrderRecord, as_utc, normalize_email

_SOURCE = "order"


def _split_tags(raw) -> list:
    if not raw:
        return []
    if isinstance(raw, str):
        # Shop platforms export tags as one comma-separated string.
        return raw.split(",")
    return list(raw)


def _clean_tags(raw: list) -> tuple[str, ...]:
    return tuple(t.strip() for t in raw if isinstance(t, str) and t.strip())


def to_record(row: Order) -> OrderRecord:
    raw_tags = _split_tags(row.tags)
    return OrderRecord(
        id=row.id,
        customer_email=normalize_email(row.customer_email),
        created_at=as_utc(row.created_at),
        tags=_clean_tags(raw_tags),
        raw_tag_count=len(raw_tags),
        total_price=Decimal(row.total_price or 0),
        order_number=row.order_number,
        currency=row.currency,
    )


class OrderRepository:
    def __init__(self, db: Session):
        self.db = db

    def created_between(self, start: datetime, end: datetime) -> list[OrderRecord]:
        """Orders with start <= created_at <= end, oldest first."""
        try:
            rows = (
                self.db.query(Order)
                .filter(Order.created_at >= as_utc(start), Order.created_at <= as_utc(end))
                .order_by(Order.created_at, Order.id)
                .all()
            )
        except SQLAlchemyError as exc:
            raise DataStoreUnavailableError(_SOURCE, reason=exc.__class__.__name__) from exc
        return [to_record(r) for r in rows]
