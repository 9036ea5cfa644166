"""
Appointment repository: the only place that reads `appointments` rows.

Public API
----------
find(filters)                                   -> list[AppointmentRecord]
for_years(years, stores)                        -> list[AppointmentRecord]
for_customers(emails, start, end)               -> list[AppointmentRecord]  (non-cancelled)

Any SQLAlchemyError is re-raised as DataStoreUnavailableError so callers
can decide whether to propagate (single period) or isolate (per year).
"""
from __future__ import annotations

from datetime import datetime, time, timedelta, timezone
from typing import Iterable, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session

from citas.core.errors import DataStoreUnavailableError
from citas.models.appointment import Appointment
from citas.repositories.records import (
    AppointmentCategory,
    AppointmentRecord,
    HistoricalFilters,
    as_utc,
    normalize_email,
)

_SOURCE = "appointment"


def to_record(row: Appointment) -> AppointmentRecord:
    return AppointmentRecord(
        id=row.id,
        customer_email=normalize_email(row.customer_email),
        scheduled_at=as_utc(row.scheduled_at),
        store_city=row.store_city,
        category=AppointmentCategory.parse(row.appointment_type),
        is_cancelled=bool(row.is_cancelled),
        year=row.year,
        month=row.month,
        day_of_week=row.day_of_week,
        hour=row.hour,
        event_category=row.event_category or "regular",
    )


def _category_filter(category: AppointmentCategory):
    # Same normalization as AppointmentCategory.parse, so filtered and
    # unfiltered reads agree on which rows belong to a category.
    stored = func.lower(func.trim(Appointment.appointment_type))
    return stored.in_(category.aliases)


class AppointmentRepository:
    def __init__(self, db: Session):
        self.db = db

    def _run(self, q: Query) -> list[AppointmentRecord]:
        try:
            rows = q.order_by(Appointment.scheduled_at, Appointment.id).all()
        except SQLAlchemyError as exc:
            raise DataStoreUnavailableError(_SOURCE, reason=exc.__class__.__name__) from exc
        return [to_record(r) for r in rows]

    def find(self, filters: HistoricalFilters) -> list[AppointmentRecord]:
        q = self.db.query(Appointment)
        if filters.has_date_range:
            start = datetime.combine(filters.start_date, time.min, tzinfo=timezone.utc)
            end = datetime.combine(filters.end_date + timedelta(days=1), time.min, tzinfo=timezone.utc)
            q = q.filter(Appointment.scheduled_at >= start, Appointment.scheduled_at < end)
        elif filters.year is not None and filters.month is not None:
            q = q.filter(Appointment.year == filters.year, Appointment.month == filters.month)
        elif filters.year is not None:
            q = q.filter(Appointment.year == filters.year)

        if filters.store_city:
            q = q.filter(Appointment.store_city == filters.store_city)
        if filters.appointment_type is not None:
            q = q.filter(_category_filter(filters.appointment_type))
        return self._run(q)

    def for_years(
        self,
        years: Iterable[int],
        stores: Optional[Iterable[str]] = None,
    ) -> list[AppointmentRecord]:
        q = self.db.query(Appointment).filter(Appointment.year.in_(list(years)))
        store_list = list(stores) if stores else []
        if store_list:
            q = q.filter(Appointment.store_city.in_(store_list))
        return self._run(q)

    def for_customers(
        self,
        emails: Iterable[str],
        start: datetime,
        end: datetime,
    ) -> list[AppointmentRecord]:
        """Non-cancelled appointments of the given customers within [start, end]."""
        wanted = sorted({normalize_email(e) for e in emails if e})
        if not wanted:
            return []
        q = (
            self.db.query(Appointment)
            .filter(
                func.lower(Appointment.customer_email).in_(wanted),
                Appointment.scheduled_at >= as_utc(start),
                Appointment.scheduled_at <= as_utc(end),
                Appointment.is_cancelled == False,  # noqa: E712
            )
        )
        return self._run(q)
