"""
Advanced appointment patterns across years and stores.

Pattern types
-------------
  temporal        seasonality: (month, day_of_week) buckets
  weekly          per year, per day_of_week buckets
  hourly          per year, per hour buckets + business-hours day×hour heatmap
  store           per store preferred days / hours and peak slot
  cancellation    cancellation rate by day, by hour, and a Mon–Sat × 8–23 grid
  peak            busiest / quietest populated (day, hour) slots
  growth          consecutive-year growth by day and by hour
  all             everything above

Pure computations live in the top half; get_patterns() adds the repository
fetch and the read cache.
"""
from __future__ import annotations

import enum
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

from sqlalchemy.orm import Session

from citas.core.cache import NullCache, ReadCache, cache_key
from citas.repositories.appointments import AppointmentRepository
from citas.repositories.records import AppointmentRecord
from citas.services.aggregator import DAY_NAMES, DayBucket, HourBucket, Tally, rate

BUSINESS_HOURS = range(8, 24)
WORKING_DAYS = range(1, 7)   # Monday..Saturday
PEAK_FACTOR = 1.5
VALLEY_FACTOR = 0.5
MAX_PEAKS = 10


class PatternType(str, enum.Enum):
    temporal = "temporal"
    weekly = "weekly"
    hourly = "hourly"
    store = "store"
    cancellation = "cancellation"
    peak = "peak"
    growth = "growth"
    all = "all"


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class SeasonalBucket:
    month: int
    day_of_week: int
    total: int
    medicion: int
    fitting: int
    cancelled: int
    avg_per_day: float


@dataclass
class SlotCount:
    day_of_week: int
    hour: int
    count: int


@dataclass
class StorePattern:
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


@dataclass
class CancellationSlot:
    total: int
    cancelled: int
    cancellation_rate: float
    day_of_week: Optional[int] = None
    hour: Optional[int] = None
    severity: Optional[str] = None


@dataclass
class CancellationPatterns:
    by_day: list[CancellationSlot]
    by_hour: list[CancellationSlot]
    heatmap: list[CancellationSlot]


@dataclass
class PeaksAndValleys:
    avg_per_slot: float
    peaks: list[SlotCount]
    valleys: list[SlotCount]
    total_slots: int
    total_appointments: int


@dataclass
class GrowthPoint:
    key: int                 # day_of_week or hour
    growth: float
    current_count: int
    previous_count: int


@dataclass
class GrowthTrend:
    current_year: int
    previous_year: int
    by_day: list[GrowthPoint]
    by_hour: list[GrowthPoint]

    @property
    def comparison(self) -> str:
        return f"{self.current_year} vs {self.previous_year}"


@dataclass
class PatternsReport:
    years: list[int]
    stores: Optional[list[str]]
    pattern_type: PatternType
    seasonal: Optional[list[SeasonalBucket]] = None
    weekly: Optional[dict[int, list[DayBucket]]] = None
    hourly: Optional[dict[int, list[HourBucket]]] = None
    day_hour_heatmap: Optional[list[SlotCount]] = None
    store_patterns: Optional[list[StorePattern]] = None
    cancellation_patterns: Optional[CancellationPatterns] = None
    peaks_and_valleys: Optional[PeaksAndValleys] = None
    growth_trends: Optional[list[GrowthTrend]] = field(default=None)


# ---------------------------------------------------------------------------
# Pure computations
# ---------------------------------------------------------------------------

def severity_for(cancellation_rate: float) -> str:
    if cancellation_rate > 40:
        return "critical"
    if cancellation_rate > 25:
        return "high"
    if cancellation_rate > 15:
        return "medium"
    return "low"


def growth_percent(current: int, previous: int) -> float:
    return (current - previous) * 100 / previous if previous > 0 else 0.0


def _top_keys(counts: dict[int, int], n: int) -> list[int]:
    return [k for k, _ in sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))[:n]]


def seasonal(appointments: Sequence[AppointmentRecord]) -> list[SeasonalBucket]:
    tallies: dict[tuple[int, int], Tally] = defaultdict(Tally)
    dates: dict[tuple[int, int], set] = defaultdict(set)
    for appt in appointments:
        key = (appt.month, appt.day_of_week)
        tallies[key].add(appt)
        dates[key].add(appt.calendar_date)
    return [
        SeasonalBucket(
            month=month, day_of_week=dow, total=t.total,
            medicion=t.medicion, fitting=t.fitting, cancelled=t.cancelled,
            avg_per_day=t.total / len(dates[(month, dow)]),
        )
        for (month, dow), t in sorted(tallies.items())
    ]


def weekly_by_year(appointments: Sequence[AppointmentRecord]) -> dict[int, list[DayBucket]]:
    tallies: dict[int, dict[int, Tally]] = defaultdict(lambda: defaultdict(Tally))
    for appt in appointments:
        tallies[appt.year][appt.day_of_week].add(appt)
    return {
        year: [
            DayBucket(
                day=d, day_name=DAY_NAMES[d], total=t.total,
                medicion=t.medicion, fitting=t.fitting, cancelled=t.cancelled,
            )
            for d, t in sorted(days.items())
        ]
        for year, days in sorted(tallies.items())
    }


def hourly_by_year(appointments: Sequence[AppointmentRecord]) -> dict[int, list[HourBucket]]:
    tallies: dict[int, dict[int, Tally]] = defaultdict(lambda: defaultdict(Tally))
    for appt in appointments:
        tallies[appt.year][appt.hour].add(appt)
    return {
        year: [
            HourBucket(hour=h, total=t.total, medicion=t.medicion, fitting=t.fitting, cancelled=t.cancelled)
            for h, t in sorted(hours.items())
        ]
        for year, hours in sorted(tallies.items())
    }


def business_heatmap(appointments: Sequence[AppointmentRecord]) -> list[SlotCount]:
    """All 7 days × business hours; every appointment counts, cancelled included."""
    counts: dict[tuple[int, int], int] = defaultdict(int)
    for appt in appointments:
        counts[(appt.day_of_week, appt.hour)] += 1
    return [
        SlotCount(day_of_week=day, hour=hour, count=counts.get((day, hour), 0))
        for day in range(7)
        for hour in BUSINESS_HOURS
    ]


def store_patterns(appointments: Sequence[AppointmentRecord]) -> list[StorePattern]:
    per_store: dict[str, list[AppointmentRecord]] = defaultdict(list)
    for appt in appointments:
        per_store[appt.store_city].append(appt)

    patterns = []
    for store, appts in per_store.items():
        days: dict[int, int] = defaultdict(int)
        hours: dict[int, int] = defaultdict(int)
        t = Tally()
        for appt in appts:
            t.add(appt)
            if not appt.is_cancelled:
                days[appt.day_of_week] += 1
                hours[appt.hour] += 1
        top_days = _top_keys(days, 3)
        top_hours = _top_keys(hours, 3)
        patterns.append(StorePattern(
            store=store,
            preferred_days=top_days,
            preferred_hours=top_hours,
            peak_day=top_days[0] if top_days else 0,
            peak_hour=top_hours[0] if top_hours else 0,
            total=t.total,
            medicion=t.medicion,
            fitting=t.fitting,
            cancelled=t.cancelled,
            day_distribution=dict(sorted(days.items())),
            hour_distribution=dict(sorted(hours.items())),
        ))
    patterns.sort(key=lambda p: (-p.total, p.store))
    return patterns


def cancellation_patterns(appointments: Sequence[AppointmentRecord]) -> CancellationPatterns:
    by_day: dict[int, list[int]] = defaultdict(lambda: [0, 0])
    by_hour: dict[int, list[int]] = defaultdict(lambda: [0, 0])
    by_slot: dict[tuple[int, int], list[int]] = defaultdict(lambda: [0, 0])
    for appt in appointments:
        for bucket in (by_day[appt.day_of_week], by_hour[appt.hour], by_slot[(appt.day_of_week, appt.hour)]):
            bucket[0] += 1
            if appt.is_cancelled:
                bucket[1] += 1

    heatmap = []
    for day in WORKING_DAYS:
        for hour in BUSINESS_HOURS:
            total, cancelled = by_slot.get((day, hour), (0, 0))
            slot_rate = rate(cancelled, total)
            heatmap.append(CancellationSlot(
                day_of_week=day, hour=hour, total=total, cancelled=cancelled,
                cancellation_rate=slot_rate, severity=severity_for(slot_rate),
            ))

    return CancellationPatterns(
        by_day=[
            CancellationSlot(day_of_week=d, total=tot, cancelled=c, cancellation_rate=rate(c, tot))
            for d, (tot, c) in sorted(by_day.items())
        ],
        by_hour=[
            CancellationSlot(hour=h, total=tot, cancelled=c, cancellation_rate=rate(c, tot))
            for h, (tot, c) in sorted(by_hour.items())
        ],
        heatmap=heatmap,
    )


def peaks_and_valleys(appointments: Sequence[AppointmentRecord]) -> PeaksAndValleys:
    """Average is taken over populated slots only; cancelled appointments are ignored."""
    slots: dict[tuple[int, int], int] = defaultdict(int)
    for appt in appointments:
        if not appt.is_cancelled:
            slots[(appt.day_of_week, appt.hour)] += 1

    counted = [SlotCount(day_of_week=d, hour=h, count=c) for (d, h), c in sorted(slots.items())]
    active = sum(s.count for s in counted)
    avg = active / len(counted) if counted else 0.0

    peaks = sorted(
        (s for s in counted if s.count > avg * PEAK_FACTOR),
        key=lambda s: (-s.count, s.day_of_week, s.hour),
    )[:MAX_PEAKS]
    valleys = sorted(
        (s for s in counted if 0 < s.count < avg * VALLEY_FACTOR),
        key=lambda s: (s.count, s.day_of_week, s.hour),
    )[:MAX_PEAKS]

    return PeaksAndValleys(
        avg_per_slot=avg,
        peaks=peaks,
        valleys=valleys,
        total_slots=len(counted),
        total_appointments=active,
    )


def growth_trends(appointments: Sequence[AppointmentRecord], years: Iterable[int]) -> list[GrowthTrend]:
    ordered = sorted(set(years))
    if len(ordered) < 2:
        return []

    by_day: dict[tuple[int, int], int] = defaultdict(int)
    by_hour: dict[tuple[int, int], int] = defaultdict(int)
    for appt in appointments:
        if appt.is_cancelled:
            continue
        by_day[(appt.year, appt.day_of_week)] += 1
        by_hour[(appt.year, appt.hour)] += 1

    trends = []
    for previous, current in zip(ordered, ordered[1:]):
        trends.append(GrowthTrend(
            current_year=current,
            previous_year=previous,
            by_day=[
                GrowthPoint(
                    key=d,
                    growth=growth_percent(by_day[(current, d)], by_day[(previous, d)]),
                    current_count=by_day[(current, d)],
                    previous_count=by_day[(previous, d)],
                )
                for d in range(7)
            ],
            by_hour=[
                GrowthPoint(
                    key=h,
                    growth=growth_percent(by_hour[(current, h)], by_hour[(previous, h)]),
                    current_count=by_hour[(current, h)],
                    previous_count=by_hour[(previous, h)],
                )
                for h in range(24)
            ],
        ))
    return trends


def build_patterns_report(
    appointments: Sequence[AppointmentRecord],
    years: Iterable[int],
    stores: Optional[list[str]] = None,
    pattern_type: PatternType = PatternType.all,
) -> PatternsReport:
    years = sorted(set(years))
    report = PatternsReport(years=years, stores=stores, pattern_type=pattern_type)

    def wants(kind: PatternType) -> bool:
        return pattern_type in (kind, PatternType.all)

    if wants(PatternType.temporal):
        report.seasonal = seasonal(appointments)
    if wants(PatternType.weekly):
        report.weekly = weekly_by_year(appointments)
    if wants(PatternType.hourly):
        report.hourly = hourly_by_year(appointments)
        report.day_hour_heatmap = business_heatmap(appointments)
    if wants(PatternType.store):
        report.store_patterns = store_patterns(appointments)
    if wants(PatternType.cancellation):
        report.cancellation_patterns = cancellation_patterns(appointments)
    if wants(PatternType.peak):
        report.peaks_and_valleys = peaks_and_valleys(appointments)
    if wants(PatternType.growth):
        report.growth_trends = growth_trends(appointments, years)
    return report


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

def get_patterns(
    db: Session,
    years: Iterable[int],
    stores: Optional[Iterable[str]] = None,
    pattern_type: PatternType = PatternType.all,
    cache: ReadCache = NullCache(),
) -> PatternsReport:
    years = sorted(set(years))
    store_list = sorted(set(stores)) if stores else None
    key = cache_key("patterns", years=years, stores=store_list, type=pattern_type.value)
    cached = cache.get(key)
    if cached is not None:
        return cached

    appointments = AppointmentRepository(db).for_years(years, store_list)
    report = build_patterns_report(appointments, years, store_list, pattern_type)
    cache.set(key, report)
    return report
