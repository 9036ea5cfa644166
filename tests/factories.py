"""
In-memory record builders for the pure service tests (no DB), plus a
helper that seeds Appointment / Order rows for endpoint tests.
"""
from datetime import datetime, timezone
from decimal import Decimal
from itertools import count
from typing import Optional

from citas.repositories.records import AppointmentCategory, AppointmentRecord, OrderRecord
from citas.services.ingest import build_appointment, build_order, derive_time_fields

_ids = count(1)


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def make_appt(
    at: datetime,
    category: Optional[AppointmentCategory] = AppointmentCategory.measurement,
    cancelled: bool = False,
    store: str = "Madrid",
    email: str = "",
    id: Optional[int] = None,
) -> AppointmentRecord:
    fields = derive_time_fields(at)
    return AppointmentRecord(
        id=id if id is not None else next(_ids),
        customer_email=email,
        scheduled_at=at,
        store_city=store,
        category=category,
        is_cancelled=cancelled,
        year=fields.year,
        month=fields.month,
        day_of_week=fields.day_of_week,
        hour=fields.hour,
    )


def make_order(
    at: datetime,
    tags=("Tienda",),
    email: str = "",
    total: str = "100.00",
    id: Optional[int] = None,
) -> OrderRecord:
    order_id = id if id is not None else next(_ids)
    return OrderRecord(
        id=order_id,
        customer_email=email,
        created_at=at,
        tags=tuple(tags),
        total_price=Decimal(total),
        order_number=f"#{order_id}",
    )


def seed_appointment(db, at: datetime, appointment_type: str = "medicion", **kwargs):
    row = build_appointment(
        at,
        kwargs.pop("store", "Madrid"),
        appointment_type,
        kwargs.pop("email", ""),
        kwargs.pop("cancelled", False),
        **kwargs,
    )
    db.add(row)
    db.commit()
    return row


def seed_order(db, number: str, at: datetime, tags=None, email: Optional[str] = None, total="100.00"):
    row = build_order(number, at, customer_email=email, tags=tags, total_price=total)
    db.add(row)
    db.commit()
    return row
