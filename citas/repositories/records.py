"""
Typed, ORM-free records handed from the repositories to the services.

Services never see SQLAlchemy rows: the repositories convert each row once,
normalizing emails, timezones and category spellings on the way out.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional


# Stored spellings accepted for each category.
CATEGORY_ALIASES: dict[str, tuple[str, ...]] = {
    "medicion": ("medicion", "medición", "measurement"),
    "fitting": ("fitting",),
}


class AppointmentCategory(str, enum.Enum):
    """Serialized as "medicion" / "fitting" everywhere (DB, API)."""
    measurement = "medicion"
    fitting = "fitting"

    @classmethod
    def parse(cls, raw: Optional[str]) -> Optional["AppointmentCategory"]:
        """Map a stored category string to the enum; None if unrecognized."""
        if raw is None:
            return None
        value = raw.strip().lower()
        for member in cls:
            if value in CATEGORY_ALIASES[member.value]:
                return member
        return None

    @property
    def aliases(self) -> tuple[str, ...]:
        return CATEGORY_ALIASES[self.value]


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (e.g. read back from SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


@dataclass(frozen=True)
class AppointmentRecord:
    id: int
    customer_email: str
    scheduled_at: datetime          # tz-aware, UTC
    store_city: str
    category: Optional[AppointmentCategory]  # None = unrecognized stored value
    is_cancelled: bool
    year: int
    month: int
    day_of_week: int                # 0=Sunday .. 6=Saturday
    hour: int
    event_category: str = "regular"

    @property
    def calendar_date(self) -> date:
        return self.scheduled_at.date()


@dataclass(frozen=True)
class OrderRecord:
    id: int
    customer_email: str
    created_at: datetime            # tz-aware, UTC
    tags: tuple[str, ...] = field(default_factory=tuple)
    total_price: Decimal = Decimal("0")
    order_number: str = ""
    currency: str = "EUR"
    # Length of the stored tag list before blank tags were dropped. The
    # channel follows the stored list: a blank tag still marks a store order.
    raw_tag_count: Optional[int] = None

    @property
    def is_online(self) -> bool:
        count = len(self.tags) if self.raw_tag_count is None else self.raw_tag_count
        return count == 0

    @property
    def is_store_order(self) -> bool:
        return not self.is_online


@dataclass(frozen=True)
class HistoricalFilters:
    """
    Appointment selection as consumed by the aggregator.

    Precedence: a full date range wins, then year + month, then year alone.
    Inputs are assumed validated (see citas/schemas/historical.py).
    """
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    year: Optional[int] = None
    month: Optional[int] = None
    store_city: Optional[str] = None
    appointment_type: Optional[AppointmentCategory] = None

    @property
    def has_date_range(self) -> bool:
        return self.start_date is not None and self.end_date is not None

    def period_label(self) -> str:
        if self.has_date_range:
            return f"{self.start_date.isoformat()}_{self.end_date.isoformat()}"
        if self.year is not None and self.month is not None:
            return f"{self.year}-{self.month:02d}"
        if self.year is not None:
            return str(self.year)
        return "custom"
