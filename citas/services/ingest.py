"""
Ingestion helpers: turn raw booking / shop rows into Appointment and Order rows.

The analytics core only reads; these helpers are what the sync jobs (and the
test fixtures) use to write rows with their derived fields filled in.

Public API
----------
derive_time_fields(scheduled_at)          → TimeFields      (UTC; 0=Sunday)
parse_event_type_name(name)               → EventTypeInfo
build_appointment(...)                    → Appointment     (not added to session)
build_order(...)                          → Order           (not added to session)
ingest_appointments(rows, db)             → IngestStats     (per-row savepoints)
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from citas.models.appointment import Appointment
from citas.models.order import Order
from citas.repositories.records import AppointmentCategory, as_utc, normalize_email

logger = logging.getLogger(__name__)

_CITY_ALIASES: dict[str, str] = {
    "madrid": "Madrid",
    "barcelona": "Barcelona",
    "sevilla": "Sevilla",
    "seville": "Sevilla",
    "málaga": "Málaga",
    "malaga": "Málaga",
    "bilbao": "Bilbao",
    "valencia": "Valencia",
    "murcia": "Murcia",
    "zaragoza": "Zaragoza",
    "cdmx": "CDMX",
    "méxico": "CDMX",
    "mexico": "CDMX",
    "polanco": "CDMX",
    "granada": "Granada",
    "córdoba": "Córdoba",
    "cordoba": "Córdoba",
    "salamanca": "Salamanca",
    "almería": "Almería",
    "almeria": "Almería",
    "a coruña": "A Coruña",
    "coruña": "A Coruña",
    "el puerto": "El Puerto de Santa María",
    "sta. maría": "El Puerto de Santa María",
    "santa maría": "El Puerto de Santa María",
}
# Longest alias first so "a coruña" is tried before "coruña".
_CITY_LOOKUP = sorted(_CITY_ALIASES, key=len, reverse=True)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TimeFields:
    year: int
    month: int
    day_of_week: int     # 0=Sunday .. 6=Saturday
    hour: int


@dataclass(frozen=True)
class EventTypeInfo:
    store_city: Optional[str]
    category: AppointmentCategory
    event_category: str


@dataclass
class RawAppointment:
    """One row as exported by the booking platform."""
    event_type_name: str
    customer_email: str
    scheduled_at: datetime
    is_cancelled: bool = False
    customer_name: Optional[str] = None
    external_id: Optional[str] = None


@dataclass
class IngestStats:
    processed: int = 0
    inserted: int = 0
    skipped: int = 0
    by_city: dict[str, int] = field(default_factory=dict)
    errors: list[dict] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Derivations
# ---------------------------------------------------------------------------

def derive_time_fields(scheduled_at: datetime) -> TimeFields:
    at = as_utc(scheduled_at)
    return TimeFields(
        year=at.year,
        month=at.month,
        day_of_week=(at.weekday() + 1) % 7,
        hour=at.hour,
    )


def parse_event_type_name(name: Optional[str]) -> EventTypeInfo:
    """
    Extract store city, category and event category from a booking event name
    such as "[Madrid] Fitting" or "Bundtour Sevilla - Medición".
    A missing name or one with no known city yields store_city=None.
    """
    if not name:
        return EventTypeInfo(store_city=None, category=AppointmentCategory.measurement, event_category="regular")

    text = name.strip().lower()
    category = AppointmentCategory.fitting if "fitting" in text else AppointmentCategory.measurement

    if "tour" in text:          # also matches "bundtour"
        event_category = "tour"
    elif "videoconsulta" in text:
        event_category = "videoconsulta"
    elif "ponte traje" in text or "viste a medida" in text:
        event_category = "ponte_traje"
    else:
        event_category = "regular"

    city = next((_CITY_ALIASES[alias] for alias in _CITY_LOOKUP if alias in text), None)
    return EventTypeInfo(store_city=city, category=category, event_category=event_category)


# ---------------------------------------------------------------------------
# Row builders
# ---------------------------------------------------------------------------

def build_appointment(
    scheduled_at: datetime,
    store_city: str,
    appointment_type: str = AppointmentCategory.measurement.value,
    customer_email: str = "",
    is_cancelled: bool = False,
    *,
    customer_name: Optional[str] = None,
    event_category: str = "regular",
    event_type_name: Optional[str] = None,
    external_id: Optional[str] = None,
) -> Appointment:
    at = as_utc(scheduled_at)
    fields = derive_time_fields(at)
    return Appointment(
        external_id=external_id,
        customer_name=customer_name,
        customer_email=normalize_email(customer_email),
        scheduled_at=at,
        store_city=store_city,
        appointment_type=appointment_type,
        event_category=event_category,
        event_type_name=event_type_name,
        is_cancelled=is_cancelled,
        year=fields.year,
        month=fields.month,
        day_of_week=fields.day_of_week,
        hour=fields.hour,
    )


def build_order(
    order_number: str,
    created_at: datetime,
    customer_email: Optional[str] = None,
    tags: Optional[list[str]] = None,
    total_price: Decimal | str | int = Decimal("0"),
    *,
    customer_name: Optional[str] = None,
    currency: str = "EUR",
) -> Order:
    return Order(
        order_number=order_number,
        created_at=as_utc(created_at),
        customer_email=normalize_email(customer_email) or None,
        customer_name=customer_name,
        tags=list(tags) if tags else None,
        total_price=Decimal(str(total_price)),
        currency=currency,
    )


# ---------------------------------------------------------------------------
# Public: batch
# ---------------------------------------------------------------------------

def ingest_appointments(rows: Iterable[RawAppointment], db: Session) -> IngestStats:
    """
    Insert booking rows using one savepoint per row.
    Rows whose event name carries no known city are skipped; a failed insert
    does not cancel the others.
    """
    stats = IngestStats()
    for i, row in enumerate(rows):
        stats.processed += 1
        info = parse_event_type_name(row.event_type_name)
        if info.store_city is None:
            stats.skipped += 1
            stats.errors.append({"index": i, "reason": "unknown city", "event": row.event_type_name})
            continue

        savepoint = db.begin_nested()
        try:
            db.add(build_appointment(
                row.scheduled_at,
                info.store_city,
                info.category.value,
                row.customer_email,
                row.is_cancelled,
                customer_name=row.customer_name,
                event_category=info.event_category,
                event_type_name=row.event_type_name,
                external_id=row.external_id,
            ))
            db.flush()
            savepoint.commit()
        except SQLAlchemyError as exc:
            savepoint.rollback()
            stats.skipped += 1
            stats.errors.append({"index": i, "reason": str(exc), "event": row.event_type_name})
            continue

        stats.inserted += 1
        stats.by_city[info.store_city] = stats.by_city.get(info.store_city, 0) + 1

    db.commit()
    logger.info(
        "Ingested %d/%d appointments (%d skipped)",
        stats.inserted, stats.processed, stats.skipped,
    )
    return stats
