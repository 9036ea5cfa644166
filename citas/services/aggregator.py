"""
Historical statistics over an already-filtered appointment set.

Counting rules
--------------
  medicion / fitting    NON-cancelled appointments of that category
  cancelled             cancelled appointments of any category
  total                 medicion + fitting + cancelled
  cancellation_rate     cancelled * 100 / total   (0 when total == 0)
  avg_per_day           total / distinct UTC calendar days in the set (0 if none)

Pattern buckets apply the same rules per day-of-week / hour. The heatmap is
different on purpose: each cell counts every scheduled appointment in that
(day_of_week, hour) slot, cancelled or not.

Everything here is a pure function of its input; no DB access.
"""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from citas.repositories.records import AppointmentCategory, AppointmentRecord

DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")


# ---------------------------------------------------------------------------
# Result types (plain dataclasses, no ORM)
# ---------------------------------------------------------------------------

@dataclass
class Tally:
    medicion: int = 0
    fitting: int = 0
    cancelled: int = 0
    cancelled_medicion: int = 0
    cancelled_fitting: int = 0

    @property
    def total(self) -> int:
        return self.medicion + self.fitting + self.cancelled

    def add(self, appt: AppointmentRecord) -> None:
        if appt.is_cancelled:
            self.cancelled += 1
            if appt.category is AppointmentCategory.measurement:
                self.cancelled_medicion += 1
            elif appt.category is AppointmentCategory.fitting:
                self.cancelled_fitting += 1
        elif appt.category is AppointmentCategory.measurement:
            self.medicion += 1
        elif appt.category is AppointmentCategory.fitting:
            self.fitting += 1


@dataclass
class StoreMetrics:
    store_city: str
    total: int
    medicion: int
    fitting: int
    cancelled: int
    cancellation_rate: float
    cancelled_medicion: int
    cancelled_fitting: int
    cancellation_rate_medicion: float
    cancellation_rate_fitting: float


@dataclass
class PeriodMetrics:
    period: str
    total: int
    medicion: int
    fitting: int
    cancelled: int
    cancellation_rate: float
    avg_per_day: float
    by_store: list[StoreMetrics] = field(default_factory=list)


@dataclass
class DayBucket:
    day: int
    day_name: str
    total: int
    medicion: int
    fitting: int
    cancelled: int


@dataclass
class HourBucket:
    hour: int
    total: int
    medicion: int
    fitting: int
    cancelled: int


@dataclass
class PatternData:
    by_day_of_week: list[DayBucket]
    by_hour: list[HourBucket]
    heatmap: list[list[int]]          # heatmap[day_of_week][hour]


@dataclass
class MonthBucket:
    year: int
    month: int
    total: int
    medicion: int
    fitting: int
    cancelled: int


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def rate(part: int, whole: int) -> float:
    return part * 100 / whole if whole > 0 else 0.0


def tally(appointments: Iterable[AppointmentRecord]) -> Tally:
    t = Tally()
    for appt in appointments:
        t.add(appt)
    return t


def store_metrics(store_city: str, t: Tally) -> StoreMetrics:
    return StoreMetrics(
        store_city=store_city,
        total=t.total,
        medicion=t.medicion,
        fitting=t.fitting,
        cancelled=t.cancelled,
        cancellation_rate=rate(t.cancelled, t.total),
        cancelled_medicion=t.cancelled_medicion,
        cancelled_fitting=t.cancelled_fitting,
        cancellation_rate_medicion=rate(t.cancelled_medicion, t.medicion + t.cancelled_medicion),
        cancellation_rate_fitting=rate(t.cancelled_fitting, t.fitting + t.cancelled_fitting),
    )


# ---------------------------------------------------------------------------
# Public
# ---------------------------------------------------------------------------

def compute_period_metrics(
    appointments: Sequence[AppointmentRecord],
    period: str = "custom",
) -> PeriodMetrics:
    overall = Tally()
    per_store: dict[str, Tally] = defaultdict(Tally)
    days = set()
    for appt in appointments:
        overall.add(appt)
        per_store[appt.store_city].add(appt)
        days.add(appt.calendar_date)

    by_store = [store_metrics(city, t) for city, t in per_store.items()]
    by_store.sort(key=lambda s: (-s.total, s.store_city))

    return PeriodMetrics(
        period=period,
        total=overall.total,
        medicion=overall.medicion,
        fitting=overall.fitting,
        cancelled=overall.cancelled,
        cancellation_rate=rate(overall.cancelled, overall.total),
        avg_per_day=overall.total / len(days) if days else 0.0,
        by_store=by_store,
    )


def compute_pattern_data(appointments: Sequence[AppointmentRecord]) -> PatternData:
    """Day-of-week and hour distributions plus the 7×24 heatmap. Buckets are always complete."""
    day_tallies = [Tally() for _ in range(7)]
    hour_tallies = [Tally() for _ in range(24)]
    heatmap = [[0] * 24 for _ in range(7)]

    for appt in appointments:
        day_tallies[appt.day_of_week].add(appt)
        hour_tallies[appt.hour].add(appt)
        heatmap[appt.day_of_week][appt.hour] += 1

    return PatternData(
        by_day_of_week=[
            DayBucket(
                day=d, day_name=DAY_NAMES[d], total=t.total,
                medicion=t.medicion, fitting=t.fitting, cancelled=t.cancelled,
            )
            for d, t in enumerate(day_tallies)
        ],
        by_hour=[
            HourBucket(
                hour=h, total=t.total,
                medicion=t.medicion, fitting=t.fitting, cancelled=t.cancelled,
            )
            for h, t in enumerate(hour_tallies)
        ],
        heatmap=heatmap,
    )


def compute_monthly_breakdown(appointments: Sequence[AppointmentRecord]) -> list[MonthBucket]:
    per_month: dict[tuple[int, int], Tally] = defaultdict(Tally)
    for appt in appointments:
        per_month[(appt.year, appt.month)].add(appt)
    return [
        MonthBucket(
            year=year, month=month, total=t.total,
            medicion=t.medicion, fitting=t.fitting, cancelled=t.cancelled,
        )
        for (year, month), t in sorted(per_month.items())
    ]

