"""
Order ↔ appointment reconciliation.

Attributes every in-store order (one or more tags) to the appointment
category that produced it.

Matching rule
-------------
For each store order, look at the same customer's non-cancelled appointments
with  order_at - LOOKBACK_DAYS <= scheduled_at <= order_at  and take the most
recent one. Exact datetime ties go to the greater appointment id, so the
choice is stable across calls.

  * match found with a recognized category → provenance "matched-appointment"
  * no match, or unrecognized category     → classifier on the order's tags,
                                             provenance "inferred-from-tags"

Online orders (no tags) never reach this module: build_orders_breakdown()
splits them off, and reconcile_orders() rejects them.

Public API
----------
reconcile_orders(orders, appointments, lookback_days)   -> ReconciliationResult   (pure)
build_orders_breakdown(db, start, end)                  -> OrdersBreakdown
"""
from __future__ import annotations

import enum
import logging
from bisect import bisect_right
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from sqlalchemy.orm import Session

from citas.core.config import settings
from citas.repositories.appointments import AppointmentRepository
from citas.repositories.orders import OrderRepository
from citas.repositories.records import AppointmentCategory, AppointmentRecord, OrderRecord
from citas.services.classifier import explain

logger = logging.getLogger(__name__)


class MatchProvenance(str, enum.Enum):
    matched_appointment = "matched-appointment"
    inferred_from_tags = "inferred-from-tags"


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ReconciliationMatch:
    order: OrderRecord
    category: AppointmentCategory
    provenance: MatchProvenance
    appointment_id: Optional[int] = None
    appointment_at: Optional[datetime] = None
    rule_name: Optional[str] = None   # classifier rule, only when inferred


@dataclass
class ReconciliationResult:
    matches: list[ReconciliationMatch] = field(default_factory=list)

    @property
    def matched_count(self) -> int:
        return sum(1 for m in self.matches if m.provenance is MatchProvenance.matched_appointment)

    @property
    def inferred_count(self) -> int:
        return sum(1 for m in self.matches if m.provenance is MatchProvenance.inferred_from_tags)

    def count_for(self, category: AppointmentCategory) -> int:
        return sum(1 for m in self.matches if m.category is category)

    def revenue_for(self, category: AppointmentCategory) -> Decimal:
        return sum((m.order.total_price for m in self.matches if m.category is category), Decimal("0"))


@dataclass
class OrdersBreakdown:
    period_start: date
    period_end: date
    total_orders: int
    online_orders: int
    store_orders: int
    from_measurement: int
    from_fitting: int
    matched: int
    inferred: int
    online_revenue: Decimal
    measurement_revenue: Decimal
    fitting_revenue: Decimal
    matches: list[ReconciliationMatch]


# ---------------------------------------------------------------------------
# Pure matching
# ---------------------------------------------------------------------------

class _CustomerTimeline:
    """One customer's appointments sorted by (scheduled_at, id)."""

    def __init__(self, appointments: list[AppointmentRecord]):
        self.appointments = sorted(appointments, key=lambda a: (a.scheduled_at, a.id))
        self.times = [a.scheduled_at for a in self.appointments]

    def latest_between(self, earliest: datetime, latest: datetime) -> Optional[AppointmentRecord]:
        idx = bisect_right(self.times, latest)
        if idx == 0:
            return None
        candidate = self.appointments[idx - 1]
        if candidate.scheduled_at < earliest:
            return None
        return candidate


def _index_by_customer(appointments: Iterable[AppointmentRecord]) -> dict[str, _CustomerTimeline]:
    grouped: dict[str, list[AppointmentRecord]] = defaultdict(list)
    for appt in appointments:
        if appt.is_cancelled or not appt.customer_email:
            continue
        grouped[appt.customer_email].append(appt)
    return {email: _CustomerTimeline(items) for email, items in grouped.items()}


def find_qualifying_appointment(
    order: OrderRecord,
    timelines: dict[str, _CustomerTimeline],
    lookback_days: int,
) -> Optional[AppointmentRecord]:
    if not order.customer_email:
        return None
    timeline = timelines.get(order.customer_email)
    if timeline is None:
        return None
    return timeline.latest_between(
        earliest=order.created_at - timedelta(days=lookback_days),
        latest=order.created_at,
    )


def reconcile_orders(
    orders: Sequence[OrderRecord],
    appointments: Iterable[AppointmentRecord],
    lookback_days: int = settings.LOOKBACK_DAYS,
) -> ReconciliationResult:
    """Attribute each store order to medicion / fitting. One match per order, input order kept."""
    timelines = _index_by_customer(appointments)
    result = ReconciliationResult()

    for order in orders:
        if order.is_online:
            raise ValueError(f"order {order.id} has no tags; online orders are not reconciled")

        appt = find_qualifying_appointment(order, timelines, lookback_days)
        if appt is not None and appt.category is not None:
            result.matches.append(ReconciliationMatch(
                order=order,
                category=appt.category,
                provenance=MatchProvenance.matched_appointment,
                appointment_id=appt.id,
                appointment_at=appt.scheduled_at,
            ))
            continue

        inferred = explain(order.tags)
        result.matches.append(ReconciliationMatch(
            order=order,
            category=inferred.category,
            provenance=MatchProvenance.inferred_from_tags,
            appointment_id=appt.id if appt is not None else None,
            appointment_at=appt.scheduled_at if appt is not None else None,
            rule_name=inferred.rule_name,
        ))

    return result


def split_online(orders: Iterable[OrderRecord]) -> tuple[list[OrderRecord], list[OrderRecord]]:
    """Return (online, store) orders. No tags ⇒ online."""
    online: list[OrderRecord] = []
    store: list[OrderRecord] = []
    for order in orders:
        (online if order.is_online else store).append(order)
    return online, store


# ---------------------------------------------------------------------------
# Period service
# ---------------------------------------------------------------------------

def appointment_search_window(
    period_start: date,
    period_end: date,
    lookback_days: int = settings.LOOKBACK_DAYS,
    forward_buffer_days: int = settings.FORWARD_BUFFER_DAYS,
) -> tuple[datetime, datetime]:
    start = datetime.combine(period_start, time.min, tzinfo=timezone.utc) - timedelta(days=lookback_days)
    end = datetime.combine(period_end, time.max, tzinfo=timezone.utc) + timedelta(days=forward_buffer_days)
    return start, end


def build_orders_breakdown(
    db: Session,
    period_start: date,
    period_end: date,
    lookback_days: int = settings.LOOKBACK_DAYS,
    forward_buffer_days: int = settings.FORWARD_BUFFER_DAYS,
) -> OrdersBreakdown:
    """
    Load the period's orders, split online vs store, reconcile the store ones.
    Repository errors propagate (DataStoreUnavailableError).
    """
    orders = OrderRepository(db).created_between(
        datetime.combine(period_start, time.min, tzinfo=timezone.utc),
        datetime.combine(period_end, time.max, tzinfo=timezone.utc),
    )
    online, store = split_online(orders)

    appointments: list[AppointmentRecord] = []
    emails = {o.customer_email for o in store if o.customer_email}
    if emails:
        search_start, search_end = appointment_search_window(
            period_start, period_end, lookback_days, forward_buffer_days,
        )
        appointments = AppointmentRepository(db).for_customers(emails, search_start, search_end)

    result = reconcile_orders(store, appointments, lookback_days)
    logger.info(
        "Reconciled %d store orders for %s..%s: matched=%d inferred=%d (online=%d)",
        len(store), period_start, period_end,
        result.matched_count, result.inferred_count, len(online),
    )

    return OrdersBreakdown(
        period_start=period_start,
        period_end=period_end,
        total_orders=len(orders),
        online_orders=len(online),
        store_orders=len(store),
        from_measurement=result.count_for(AppointmentCategory.measurement),
        from_fitting=result.count_for(AppointmentCategory.fitting),
        matched=result.matched_count,
        inferred=result.inferred_count,
        online_revenue=sum((o.total_price for o in online), Decimal("0")),
        measurement_revenue=result.revenue_for(AppointmentCategory.measurement),
        fitting_revenue=result.revenue_for(AppointmentCategory.fitting),
        matches=result.matches,
    )
