"""
Side-by-side metrics across years and periods.

The comparator itself aggregates nothing: it fans out to the historical
service once per year (or period) and assembles the results.

Failure isolation
-----------------
For multi-year requests a data-store failure on one year is logged and that
year is left out of the result; the other years are still returned. The
session is rolled back after such a failure so the next year's query does
not run inside an aborted transaction.

Public API
----------
compare_years(db, month, years, store_city)          -> MultiYearComparison
annual_totals(db, years, store_city)                 -> MultiYearComparison (month=None)
compare_periods(db, current, comparative, store)     -> PeriodComparison
by_store(db, years, months, grouping)                -> dict[store, dict[period_key, StoreMetrics]]
"""
from __future__ import annotations

import enum
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from citas.core.cache import NullCache, ReadCache, cache_key
from citas.core.errors import DataStoreUnavailableError
from citas.repositories.appointments import AppointmentRepository
from citas.repositories.records import HistoricalFilters
from citas.services.aggregator import PeriodMetrics, StoreMetrics, Tally, store_metrics
from citas.services.historical import get_period_metrics

logger = logging.getLogger(__name__)

MetricsFetcher = Callable[[HistoricalFilters], PeriodMetrics]

# Metrics where a decrease is the good direction.
_LOWER_IS_BETTER = frozenset({"cancelled", "cancellation_rate"})
_COMPARED_FIELDS = ("total", "medicion", "fitting", "cancelled", "cancellation_rate", "avg_per_day")


class StoreGrouping(str, enum.Enum):
    monthly = "monthly"
    annual = "annual"


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class MultiYearComparison:
    month: Optional[int]
    years: list[int]                               # requested years, descending
    store_city: Optional[str]
    metrics: dict[int, PeriodMetrics] = field(default_factory=dict)
    failed_years: list[int] = field(default_factory=list)


@dataclass
class ChangeMetric:
    value: float
    percent: float
    is_better: bool


@dataclass
class PeriodComparison:
    current: PeriodMetrics
    comparative: PeriodMetrics
    change: dict[str, ChangeMetric]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _default_fetcher(db: Session) -> MetricsFetcher:
    return lambda filters: get_period_metrics(db, filters)


def _collect_per_year(
    db: Optional[Session],
    fetch: MetricsFetcher,
    years: Iterable[int],
    make_filters: Callable[[int], HistoricalFilters],
    result: MultiYearComparison,
) -> None:
    for year in years:
        try:
            result.metrics[year] = fetch(make_filters(year))
        except (DataStoreUnavailableError, SQLAlchemyError):
            logger.exception("Skipping year %s: could not load appointment data", year)
            result.failed_years.append(year)
            if db is not None:
                db.rollback()


def change_between(field_name: str, current: float, previous: float) -> ChangeMetric:
    value = current - previous
    percent = value * 100 / previous if previous else 0.0
    if field_name in _LOWER_IS_BETTER:
        is_better = value < 0
    else:
        is_better = value > 0
    return ChangeMetric(value=value, percent=percent, is_better=is_better)


# ---------------------------------------------------------------------------
# Public
# ---------------------------------------------------------------------------

def compare_years(
    db: Optional[Session],
    month: int,
    years: Iterable[int],
    store_city: Optional[str] = None,
    *,
    fetch: Optional[MetricsFetcher] = None,
    cache: ReadCache = NullCache(),
) -> MultiYearComparison:
    """Same calendar month across several years. Failed years are omitted, not raised."""
    ordered = sorted(set(years), reverse=True)
    key = cache_key("compare", month=month, years=ordered, store=store_city)
    cached = cache.get(key)
    if cached is not None:
        return cached

    result = MultiYearComparison(month=month, years=ordered, store_city=store_city)
    _collect_per_year(
        db,
        fetch or _default_fetcher(db),
        ordered,
        lambda year: HistoricalFilters(year=year, month=month, store_city=store_city),
        result,
    )
    if not result.failed_years:
        cache.set(key, result)
    return result


def annual_totals(
    db: Optional[Session],
    years: Iterable[int],
    store_city: Optional[str] = None,
    *,
    fetch: Optional[MetricsFetcher] = None,
) -> MultiYearComparison:
    ordered = sorted(set(years), reverse=True)
    result = MultiYearComparison(month=None, years=ordered, store_city=store_city)
    _collect_per_year(
        db,
        fetch or _default_fetcher(db),
        ordered,
        lambda year: HistoricalFilters(year=year, store_city=store_city),
        result,
    )
    return result


def compare_periods(
    db: Session,
    current: tuple[date, date],
    comparative: tuple[date, date],
    store_city: Optional[str] = None,
) -> PeriodComparison:
    """Two arbitrary date ranges with absolute / percent change per metric."""
    current_metrics = get_period_metrics(
        db, HistoricalFilters(start_date=current[0], end_date=current[1], store_city=store_city),
    )
    comparative_metrics = get_period_metrics(
        db, HistoricalFilters(start_date=comparative[0], end_date=comparative[1], store_city=store_city),
    )
    change = {
        name: change_between(name, getattr(current_metrics, name), getattr(comparative_metrics, name))
        for name in _COMPARED_FIELDS
    }
    return PeriodComparison(current=current_metrics, comparative=comparative_metrics, change=change)


def by_store(
    db: Session,
    years: Iterable[int],
    months: Optional[Iterable[int]] = None,
    grouping: StoreGrouping = StoreGrouping.monthly,
) -> dict[str, dict[str, StoreMetrics]]:
    """
    Per-store metrics keyed by "YYYY" (annual) or "YYYY-MM" (monthly).
    Stores are ordered by their overall total, descending.
    """
    wanted_months = set(months) if months else None
    appointments = AppointmentRepository(db).for_years(years)

    tallies: dict[str, dict[str, Tally]] = defaultdict(lambda: defaultdict(Tally))
    for appt in appointments:
        if wanted_months is not None and appt.month not in wanted_months:
            continue
        if grouping is StoreGrouping.annual:
            period_key = str(appt.year)
        else:
            period_key = f"{appt.year}-{appt.month:02d}"
        tallies[appt.store_city][period_key].add(appt)

    def overall(item: tuple[str, dict[str, Tally]]) -> tuple[int, str]:
        city, periods = item
        return (-sum(t.total for t in periods.values()), city)

    return {
        city: {key: store_metrics(city, periods[key]) for key in sorted(periods)}
        for city, periods in sorted(tallies.items(), key=overall)
    }
