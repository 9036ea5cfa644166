"""
Order: one commerce order synced from the shop platform.

An order with no tags was placed online; any tag means it was rung up in a
physical store and is a candidate for appointment reconciliation.
"""
from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, DateTime, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from citas.db.base import Base


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    order_number: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    customer_email: Mapped[str | None] = mapped_column(String(320), nullable=True, index=True)
    customer_name: Mapped[str | None] = mapped_column(String(256), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    tags: Mapped[list | None] = mapped_column(
        JSON, nullable=True,
        comment="Free-text tags in shop order; empty or null means online order",
    )
    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="EUR")
    synced_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
