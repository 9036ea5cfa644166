"""
Historical appointment schemas.

GET /citas/historical                   → HistoricalResponse
GET /citas/historical/compare           → YearComparisonResponse
GET /citas/historical/compare-periods   → PeriodComparisonResponse
GET /citas/historical/annual-totals     → YearComparisonResponse
GET /citas/historical/by-store          → ByStoreResponse
GET /citas/historical/patterns          → PatternsResponse
GET /citas/historical/insights          → InsightsResponse

Also holds the query-string parsing that turns raw parameters into
HistoricalFilters / year and month lists.
"""
from __future__ import annotations

from datetime import date
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from citas.core.errors import InvalidFilterError
from citas.repositories.records import AppointmentCategory, HistoricalFilters
from citas.services.comparator import StoreGrouping
from citas.services.insights import InsightCategory, InsightType
from citas.services.patterns import PatternType

MIN_YEAR = 2000
MAX_YEAR = 2100


# ---------------------------------------------------------------------------
# Query parsing
# ---------------------------------------------------------------------------

def parse_int_list(field: str, raw: Optional[str], low: int, high: int) -> list[int]:
    """Parse "2025,2024" into [2025, 2024]; blanks ignored, duplicates dropped."""
    if raw is None:
        return []
    values: list[int] = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            value = int(part)
        except ValueError:
            raise InvalidFilterError(field, raw, f"'{part}' is not an integer")
        if not low <= value <= high:
            raise InvalidFilterError(field, raw, f"{value} is outside {low}..{high}")
        if value not in values:
            values.append(value)
    return values


def parse_years(raw: Optional[str], required: bool = True) -> list[int]:
    years = parse_int_list("years", raw, MIN_YEAR, MAX_YEAR)
    if required and not years:
        raise InvalidFilterError("years", raw, "at least one year is required")
    return years


def parse_months(raw: Optional[str]) -> list[int]:
    return parse_int_list("months", raw, 1, 12)


def parse_str_list(raw: Optional[str]) -> list[str]:
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


def check_range(start_field: str, start: date, end_field: str, end: date) -> None:
    if start > end:
        raise InvalidFilterError(start_field, start, f"must not be after {end_field} ({end})")


def build_filters(
    start_date: Optional[date],
    end_date: Optional[date],
    year: Optional[int],
    month: Optional[int],
    store_city: Optional[str],
    appointment_type: Optional[AppointmentCategory],
) -> HistoricalFilters:
    if (start_date is None) != (end_date is None):
        missing = "end_date" if end_date is None else "start_date"
        raise InvalidFilterError(missing, None, "start_date and end_date must be given together")
    if start_date is not None and end_date is not None:
        check_range("start_date", start_date, "end_date", end_date)
    if month is not None and year is None and start_date is None:
        raise InvalidFilterError("month", month, "month requires year")
    return HistoricalFilters(
        start_date=start_date,
        end_date=end_date,
        year=year,
        month=month,
        store_city=store_city or None,
        appointment_type=appointment_type,
    )


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------

class StoreMetricsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    store_city: str
    total: int
    medicion: int
    fitting: int
    cancelled: int
    cancellation_rate: float = Field(description="Percent, 0–100.")
    cancelled_medicion: int
    cancelled_fitting: int
    cancellation_rate_medicion: float
    cancellation_rate_fitting: float


class PeriodMetricsResponse(BaseModel):
    """Counts for one period. total = medicion + fitting + cancelled."""
    model_config = ConfigDict(from_attributes=True)

    period: str = Field(examples=["2025-10"])
    total: int
    medicion: int = Field(description="Non-cancelled measurement appointments.")
    fitting: int = Field(description="Non-cancelled fitting appointments.")
    cancelled: int = Field(description="Cancelled appointments of any category.")
    cancellation_rate: float = Field(description="Percent, 0–100.", examples=[10.0])
    avg_per_day: float = Field(description="total / distinct calendar days with appointments.")
    by_store: list[StoreMetricsResponse]


class DayBucketResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    day: int = Field(description="0=Sunday .. 6=Saturday.")
    day_name: str
    total: int
    medicion: int
    fitting: int
    cancelled: int


class HourBucketResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    hour: int
    total: int
    medicion: int
    fitting: int
    cancelled: int


class PatternDataResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    by_day_of_week: list[DayBucketResponse]
    by_hour: list[HourBucketResponse]
    heatmap: list[list[int]] = Field(
        description="heatmap[day_of_week][hour]; counts every scheduled appointment, cancelled included."
    )


class MonthBucketResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    year: int
    month: int
    total: int
    medicion: int
    fitting: int
    cancelled: int


class AppliedFilters(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    start_date: Optional[date] = None
    end_date: Optional[date] = None
    year: Optional[int] = None
    month: Optional[int] = None
    store_city: Optional[str] = None
    appointment_type: Optional[AppointmentCategory] = None


class HistoricalResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    filters: AppliedFilters
    metrics: PeriodMetricsResponse
    patterns: Optional[PatternDataResponse] = None
    by_month: Optional[list[MonthBucketResponse]] = None


# ---------------------------------------------------------------------------
# Comparisons
# ---------------------------------------------------------------------------

class YearComparisonResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    month: Optional[int] = Field(default=None, description="None for annual totals.")
    years: list[int] = Field(description="Requested years, most recent first.")
    store_city: Optional[str] = None
    metrics: dict[int, PeriodMetricsResponse] = Field(
        description="Per-year metrics. Years whose data could not be read are absent."
    )
    failed_years: list[int] = Field(default_factory=list)


class ChangeMetricResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    value: float
    percent: float = Field(description="0 when the comparative value is 0.")
    is_better: bool = Field(description="For cancellations a decrease is better.")


class PeriodComparisonResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    current: PeriodMetricsResponse
    comparative: PeriodMetricsResponse
    change: dict[str, ChangeMetricResponse]


class ByStoreResponse(BaseModel):
    years: list[int]
    months: Optional[list[int]] = None
    grouping: StoreGrouping
    stores: dict[str, dict[str, StoreMetricsResponse]] = Field(
        description='Store → period ("YYYY" or "YYYY-MM") → metrics, busiest store first.'
    )


# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

class SeasonalBucketResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    month: int
    day_of_week: int
    total: int
    medicion: int
    fitting: int
    cancelled: int
    avg_per_day: float


class SlotCountResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    day_of_week: int
    hour: int
    count: int


class StorePatternResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    store: str
    preferred_days: list[int]
    preferred_hours: list[int]
    peak_day: int
    peak_hour: int
    total: int
    medicion: int
    fitting: int
    cancelled: int
    day_distribution: dict[int, int]
    hour_distribution: dict[int, int]


class CancellationSlotResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    day_of_week: Optional[int] = None
    hour: Optional[int] = None
    total: int
    cancelled: int
    cancellation_rate: float
    severity: Optional[str] = Field(default=None, examples=["medium"])


class CancellationPatternsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    by_day: list[CancellationSlotResponse]
    by_hour: list[CancellationSlotResponse]
    heatmap: list[CancellationSlotResponse]


class PeaksAndValleysResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    avg_per_slot: float
    peaks: list[SlotCountResponse]
    valleys: list[SlotCountResponse]
    total_slots: int
    total_appointments: int


class GrowthPointResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    key: int = Field(description="day_of_week or hour.")
    growth: float
    current_count: int
    previous_count: int


class GrowthTrendResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    comparison: str = Field(examples=["2025 vs 2024"])
    current_year: int
    previous_year: int
    by_day: list[GrowthPointResponse]
    by_hour: list[GrowthPointResponse]


class PatternsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    years: list[int]
    stores: Optional[list[str]] = None
    pattern_type: PatternType
    seasonal: Optional[list[SeasonalBucketResponse]] = None
    weekly: Optional[dict[int, list[DayBucketResponse]]] = None
    hourly: Optional[dict[int, list[HourBucketResponse]]] = None
    day_hour_heatmap: Optional[list[SlotCountResponse]] = None
    store_patterns: Optional[list[StorePatternResponse]] = None
    cancellation_patterns: Optional[CancellationPatternsResponse] = None
    peaks_and_valleys: Optional[PeaksAndValleysResponse] = None
    growth_trends: Optional[list[GrowthTrendResponse]] = None


# ---------------------------------------------------------------------------
# Insights
# ---------------------------------------------------------------------------

class InsightResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    type: InsightType
    category: InsightCategory
    message: str = Field(examples=["Saturday: busiest day"])
    detail: str
    data: dict[str, Any] = Field(default_factory=dict)


class InsightsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    years: list[int]
    stores: Optional[list[str]] = None
    categories: list[InsightCategory]
    total: int
    insights: list[InsightResponse]
