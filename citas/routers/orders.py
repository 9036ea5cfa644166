"""
Orders router.

GET /orders/breakdown    Online vs in-store orders, store orders by appointment category
"""
from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from citas.db.base import get_db
from citas.schemas.common import STORE_ERROR_RESPONSES
from citas.schemas.historical import check_range
from citas.schemas.orders import OrderMatchResponse, OrdersBreakdownResponse
from citas.services.reconciler import OrdersBreakdown, ReconciliationMatch, build_orders_breakdown

router = APIRouter(prefix="/orders", tags=["orders"])


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------

def _match_to_response(m: ReconciliationMatch) -> OrderMatchResponse:
    return OrderMatchResponse(
        order_id=m.order.id,
        order_number=m.order.order_number,
        customer_email=m.order.customer_email,
        created_at=m.order.created_at,
        total_price=m.order.total_price,
        category=m.category,
        provenance=m.provenance,
        appointment_id=m.appointment_id,
        appointment_at=m.appointment_at,
        rule_name=m.rule_name,
    )


def _breakdown_to_response(b: OrdersBreakdown, include_matches: bool) -> OrdersBreakdownResponse:
    return OrdersBreakdownResponse(
        period_start=b.period_start,
        period_end=b.period_end,
        total_orders=b.total_orders,
        online_orders=b.online_orders,
        store_orders=b.store_orders,
        from_measurement=b.from_measurement,
        from_fitting=b.from_fitting,
        matched=b.matched,
        inferred=b.inferred,
        online_revenue=b.online_revenue,
        measurement_revenue=b.measurement_revenue,
        fitting_revenue=b.fitting_revenue,
        matches=[_match_to_response(m) for m in b.matches] if include_matches else None,
    )


# ---------------------------------------------------------------------------
# GET /orders/breakdown
# ---------------------------------------------------------------------------

@router.get(
    "/breakdown",
    response_model=OrdersBreakdownResponse,
    response_model_exclude_none=True,
    summary="Orders split by channel and appointment category",
    responses=STORE_ERROR_RESPONSES,
)
def orders_breakdown(
    start_date: date = Query(description="First day (inclusive).", examples=["2025-10-01"]),
    end_date: date = Query(description="Last day (inclusive).", examples=["2025-10-31"]),
    include_matches: bool = Query(default=False, description="Include per-order attribution detail."),
    db: Session = Depends(get_db),
):
    """
    Orders created in the period, split into online (no tags) and in-store
    (one or more tags).

    Each in-store order is attributed to **medicion** or **fitting**:
    1. The customer's most recent non-cancelled appointment within the
       previous 90 days decides, when its category is known.
    2. Otherwise the order's tags decide (new-customer / recurrent markers
       and purchase motives).
    """
    check_range("start_date", start_date, "end_date", end_date)
    result = build_orders_breakdown(db, start_date, end_date)
    return _breakdown_to_response(result, include_matches)
