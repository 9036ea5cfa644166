"""
Historical appointments router.

GET /citas/historical                    Period metrics (+ patterns / monthly breakdown)
GET /citas/historical/compare            Same month across several years
GET /citas/historical/compare-periods    Two arbitrary date ranges with change
GET /citas/historical/annual-totals      Whole-year metrics per year
GET /citas/historical/by-store           Per-store metrics by year or year-month
GET /citas/historical/patterns           Advanced pattern analysis
GET /citas/historical/insights           Rule-based textual insights
"""
from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from citas.core.cache import ReadCache, get_cache
from citas.core.errors import InvalidFilterError
from citas.db.base import get_db
from citas.repositories.records import AppointmentCategory
from citas.schemas.common import STORE_ERROR_RESPONSES
from citas.schemas.historical import (
    ByStoreResponse,
    HistoricalResponse,
    InsightsResponse,
    PatternsResponse,
    PeriodComparisonResponse,
    StoreMetricsResponse,
    YearComparisonResponse,
    build_filters,
    check_range,
    parse_months,
    parse_str_list,
    parse_years,
)
from citas.services.comparator import StoreGrouping, annual_totals, by_store, compare_periods, compare_years
from citas.services.historical import AggregateBy, get_historical_stats
from citas.services.insights import InsightCategory, get_insights
from citas.services.patterns import PatternType, get_patterns

router = APIRouter(prefix="/citas/historical", tags=["historical"])


def _parse_insight_types(raw: Optional[str]) -> Optional[list[InsightCategory]]:
    names = parse_str_list(raw)
    if not names or "all" in names:
        return None
    categories = []
    for name in names:
        try:
            categories.append(InsightCategory(name))
        except ValueError:
            raise InvalidFilterError("insight_types", raw, f"unknown insight type '{name}'")
    return categories


# ---------------------------------------------------------------------------
# GET /citas/historical
# ---------------------------------------------------------------------------

@router.get(
    "",
    response_model=HistoricalResponse,
    response_model_exclude_none=True,
    summary="Historical appointment metrics for a period",
    responses=STORE_ERROR_RESPONSES,
)
def historical(
    start_date: Optional[date] = Query(default=None, description="First day (inclusive). Requires end_date."),
    end_date: Optional[date] = Query(default=None, description="Last day (inclusive). Requires start_date."),
    year: Optional[int] = Query(default=None, ge=2000, le=2100, examples=[2025]),
    month: Optional[int] = Query(default=None, ge=1, le=12, description="Requires year.", examples=[10]),
    store_city: Optional[str] = Query(default=None, examples=["Madrid"]),
    appointment_type: Optional[AppointmentCategory] = Query(default=None),
    include_patterns: bool = Query(default=False, description="Add day / hour buckets and the 7×24 heatmap."),
    aggregate_by: Optional[AggregateBy] = Query(default=None),
    db: Session = Depends(get_db),
):
    """
    Totals, category split, cancellation rate, average per day and per-store
    breakdown for the selected appointments.

    Selection precedence: a date range wins, then `year` + `month`, then `year`.
    Cancelled appointments count only in `cancelled`; `medicion` and `fitting`
    are non-cancelled counts.
    """
    filters = build_filters(start_date, end_date, year, month, store_city, appointment_type)
    stats = get_historical_stats(db, filters, include_patterns=include_patterns, aggregate_by=aggregate_by)
    return HistoricalResponse.model_validate(stats)


# ---------------------------------------------------------------------------
# GET /citas/historical/compare
# ---------------------------------------------------------------------------

@router.get(
    "/compare",
    response_model=YearComparisonResponse,
    summary="Compare one month across several years",
    responses=STORE_ERROR_RESPONSES,
)
def compare(
    years: str = Query(description="Comma-separated years.", examples=["2025,2024,2023"]),
    month: int = Query(ge=1, le=12, examples=[10]),
    store_city: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    cache: ReadCache = Depends(get_cache),
):
    """
    Period metrics for `month` in each requested year, most recent first.

    A year whose data cannot be read is left out of `metrics` and listed in
    `failed_years`; the remaining years are still returned.
    """
    result = compare_years(db, month, parse_years(years), store_city or None, cache=cache)
    return YearComparisonResponse.model_validate(result)


# ---------------------------------------------------------------------------
# GET /citas/historical/compare-periods
# ---------------------------------------------------------------------------

@router.get(
    "/compare-periods",
    response_model=PeriodComparisonResponse,
    summary="Compare two date ranges",
    responses=STORE_ERROR_RESPONSES,
)
def compare_date_ranges(
    current_start: date = Query(examples=["2025-10-01"]),
    current_end: date = Query(examples=["2025-10-31"]),
    comparative_start: date = Query(examples=["2024-10-01"]),
    comparative_end: date = Query(examples=["2024-10-31"]),
    store_city: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
):
    """Metrics for both ranges plus absolute and percent change per metric."""
    check_range("current_start", current_start, "current_end", current_end)
    check_range("comparative_start", comparative_start, "comparative_end", comparative_end)
    result = compare_periods(
        db, (current_start, current_end), (comparative_start, comparative_end), store_city or None,
    )
    return PeriodComparisonResponse.model_validate(result)


# ---------------------------------------------------------------------------
# GET /citas/historical/annual-totals
# ---------------------------------------------------------------------------

@router.get(
    "/annual-totals",
    response_model=YearComparisonResponse,
    summary="Whole-year metrics per year",
    responses=STORE_ERROR_RESPONSES,
)
def annual(
    years: str = Query(description="Comma-separated years.", examples=["2025,2024"]),
    store_city: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
):
    result = annual_totals(db, parse_years(years), store_city or None)
    return YearComparisonResponse.model_validate(result)


# ---------------------------------------------------------------------------
# GET /citas/historical/by-store
# ---------------------------------------------------------------------------

@router.get(
    "/by-store",
    response_model=ByStoreResponse,
    summary="Per-store metrics",
    responses=STORE_ERROR_RESPONSES,
)
def store_breakdown(
    years: str = Query(description="Comma-separated years.", examples=["2025,2024"]),
    months: Optional[str] = Query(default=None, description="Comma-separated months (1–12).", examples=["9,10"]),
    grouping: StoreGrouping = Query(default=StoreGrouping.monthly),
    db: Session = Depends(get_db),
):
    year_list = parse_years(years)
    month_list = parse_months(months) or None
    result = by_store(db, year_list, month_list, grouping)
    return ByStoreResponse(
        years=year_list,
        months=month_list,
        grouping=grouping,
        stores={
            city: {key: StoreMetricsResponse.model_validate(m) for key, m in periods.items()}
            for city, periods in result.items()
        },
    )


# ---------------------------------------------------------------------------
# GET /citas/historical/patterns
# ---------------------------------------------------------------------------

@router.get(
    "/patterns",
    response_model=PatternsResponse,
    response_model_exclude_none=True,
    summary="Advanced appointment patterns",
    responses=STORE_ERROR_RESPONSES,
)
def patterns(
    years: str = Query(description="Comma-separated years.", examples=["2025,2024"]),
    stores: Optional[str] = Query(default=None, description="Comma-separated store cities.", examples=["Madrid,Sevilla"]),
    pattern_type: PatternType = Query(default=PatternType.all),
    db: Session = Depends(get_db),
    cache: ReadCache = Depends(get_cache),
):
    """
    Seasonality, weekly / hourly distributions, per-store preferences,
    cancellation hot spots, peaks and valleys, and year-over-year growth.
    Results are cached for a few minutes per filter combination.
    """
    report = get_patterns(db, parse_years(years), parse_str_list(stores) or None, pattern_type, cache=cache)
    return PatternsResponse.model_validate(report)


# ---------------------------------------------------------------------------
# GET /citas/historical/insights
# ---------------------------------------------------------------------------

@router.get(
    "/insights",
    response_model=InsightsResponse,
    summary="Rule-based insights",
    responses=STORE_ERROR_RESPONSES,
)
def insights(
    years: str = Query(description="Comma-separated years.", examples=["2025,2024"]),
    stores: Optional[str] = Query(default=None, description="Comma-separated store cities."),
    insight_types: Optional[str] = Query(
        default=None,
        description="Comma-separated subset of day, hour, cancellation, growth, anomaly (default: all).",
        examples=["day,cancellation"],
    ),
    db: Session = Depends(get_db),
    cache: ReadCache = Depends(get_cache),
):
    """At most two insights per type, warnings first."""
    report = get_insights(
        db,
        parse_years(years),
        parse_str_list(stores) or None,
        _parse_insight_types(insight_types),
        cache=cache,
    )
    return InsightsResponse.model_validate(report)
