"""
Order breakdown schemas.

GET /orders/breakdown → OrdersBreakdownResponse
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from citas.repositories.records import AppointmentCategory
from citas.services.reconciler import MatchProvenance


class OrderMatchResponse(BaseModel):
    """How one in-store order was attributed."""
    model_config = ConfigDict(from_attributes=True)

    order_id: int
    order_number: str
    customer_email: str
    created_at: datetime
    total_price: Decimal
    category: AppointmentCategory = Field(description='"medicion" or "fitting".')
    provenance: MatchProvenance = Field(
        description='"matched-appointment" when a prior appointment decided it, '
                    'otherwise "inferred-from-tags".'
    )
    appointment_id: Optional[int] = Field(
        default=None, description="Appointment found in the lookback window, if any."
    )
    appointment_at: Optional[datetime] = None
    rule_name: Optional[str] = Field(
        default=None, description="Tag rule that decided the category (inferred only)."
    )


class OrdersBreakdownResponse(BaseModel):
    """Online vs in-store orders for a period, store orders split by category."""
    model_config = ConfigDict(from_attributes=True)

    period_start: date
    period_end: date
    total_orders: int
    online_orders: int = Field(description="Orders without tags.")
    store_orders: int = Field(description="Orders with at least one tag.")
    from_measurement: int
    from_fitting: int
    matched: int = Field(description="Store orders attributed through an appointment.")
    inferred: int = Field(description="Store orders attributed from their tags.")
    online_revenue: Decimal
    measurement_revenue: Decimal
    fitting_revenue: Decimal
    matches: Optional[list[OrderMatchResponse]] = Field(
        default=None, description="Per-order detail; only with include_matches=true."
    )
