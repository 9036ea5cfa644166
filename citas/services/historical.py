"""
Historical appointment statistics: repository fetch + aggregation.

Single-period requests are strict: a DataStoreUnavailableError from the
repository propagates to the caller (HTTP 503).
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from citas.repositories.appointments import AppointmentRepository
from citas.repositories.records import HistoricalFilters
from citas.services.aggregator import (
    MonthBucket,
    PatternData,
    PeriodMetrics,
    compute_monthly_breakdown,
    compute_pattern_data,
    compute_period_metrics,
)


class AggregateBy(str, enum.Enum):
    day_of_week = "day_of_week"
    hour = "hour"
    month = "month"


@dataclass
class HistoricalStats:
    filters: HistoricalFilters
    metrics: PeriodMetrics
    patterns: Optional[PatternData] = None
    by_month: Optional[list[MonthBucket]] = None


def get_period_metrics(db: Session, filters: HistoricalFilters) -> PeriodMetrics:
    appointments = AppointmentRepository(db).find(filters)
    return compute_period_metrics(appointments, filters.period_label())


def get_historical_stats(
    db: Session,
    filters: HistoricalFilters,
    include_patterns: bool = False,
    aggregate_by: Optional[AggregateBy] = None,
) -> HistoricalStats:
    appointments = AppointmentRepository(db).find(filters)
    stats = HistoricalStats(
        filters=filters,
        metrics=compute_period_metrics(appointments, filters.period_label()),
    )

    needs_patterns = include_patterns or aggregate_by in (AggregateBy.day_of_week, AggregateBy.hour)
    if needs_patterns:
        stats.patterns = compute_pattern_data(appointments)
    if aggregate_by is AggregateBy.month:
        stats.by_month = compute_monthly_breakdown(appointments)
    return stats
