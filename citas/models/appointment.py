"""
Appointment: one scheduled in-person visit, as written by the sync jobs.

Read-only for the analytics core. `year`, `month`, `day_of_week` and `hour`
are derived from `scheduled_at` (UTC) at ingestion time, see
citas/services/ingest.py, and are never recomputed on read.

appointment_type values:
  "medicion"    first visit (measurement)
  "fitting"     follow-up / adjustment visit
Older rows synced from the booking platform may carry "medición"; the
repository adapter maps both spellings to the same category.
"""
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, SmallInteger, String, func
from sqlalchemy.orm import Mapped, mapped_column

from citas.db.base import Base


class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        Index("ix_appointments_year_month", "year", "month"),
        Index("ix_appointments_email_scheduled", "customer_email", "scheduled_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    external_id: Mapped[str | None] = mapped_column(String(64), nullable=True, unique=True)
    customer_name: Mapped[str | None] = mapped_column(String(256), nullable=True)
    customer_email: Mapped[str] = mapped_column(String(320), nullable=False, default="")
    scheduled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    store_city: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    appointment_type: Mapped[str] = mapped_column(
        String(16), nullable=False, index=True,
        comment='"medicion" or "fitting"',
    )
    event_category: Mapped[str] = mapped_column(
        String(32), nullable=False, default="regular",
        comment='"regular" | "tour" | "videoconsulta" | "ponte_traje"',
    )
    event_type_name: Mapped[str | None] = mapped_column(String(256), nullable=True)
    is_cancelled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Derived at ingestion (UTC)
    year: Mapped[int] = mapped_column(SmallInteger, nullable=False, index=True)
    month: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    day_of_week: Mapped[int] = mapped_column(
        SmallInteger, nullable=False,
        comment="0=Sunday .. 6=Saturday",
    )
    hour: Mapped[int] = mapped_column(SmallInteger, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
