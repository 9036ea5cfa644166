"""
Rule-based insights over historical appointments.

Each rule inspects one dimension and emits zero or more Insight items. The
final list keeps at most MAX_PER_TYPE items per insight type, ordered
warning → peak → growth → trend → info, so one noisy dimension cannot crowd
out the others.

Sundays and hours outside 08:00–23:59 are left out of day / hour rules:
the stores are closed then and stray bookings only add noise.
"""
from __future__ import annotations

import enum
from collections import defaultdict
from dataclasses import dataclass, field
from statistics import fmean, pstdev
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy.orm import Session

from citas.core.cache import NullCache, ReadCache, cache_key
from citas.repositories.appointments import AppointmentRepository
from citas.repositories.records import AppointmentCategory, AppointmentRecord
from citas.services.aggregator import DAY_NAMES, rate
from citas.services.patterns import BUSINESS_HOURS, WORKING_DAYS, growth_percent

MAX_PER_TYPE = 2

BUSIEST_DAY_FACTOR = 1.15
QUIETEST_DAY_FACTOR = 0.7
CATEGORY_PREFERENCE_HIGH = 70
CATEGORY_PREFERENCE_LOW = 30
SHIFT_PREFERENCE_FACTOR = 1.3
DAY_CANCELLATION_FACTOR = 1.5
HOUR_CANCELLATION_CRITICAL = 35
HOUR_CANCELLATION_MIN_SAMPLE = 10
YEAR_GROWTH_THRESHOLD = 15
SHIFT_GROWTH_THRESHOLD = 25
HOUR_ANOMALY_MIN_COUNT = 50

MORNING = range(8, 14)
AFTERNOON = range(14, 20)


class InsightType(str, enum.Enum):
    warning = "warning"
    peak = "peak"
    growth = "growth"
    trend = "trend"
    info = "info"


class InsightCategory(str, enum.Enum):
    day = "day"
    hour = "hour"
    cancellation = "cancellation"
    growth = "growth"
    anomaly = "anomaly"


_TYPE_ORDER = (InsightType.warning, InsightType.peak, InsightType.growth, InsightType.trend, InsightType.info)


@dataclass
class Insight:
    type: InsightType
    category: InsightCategory
    message: str
    detail: str
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class InsightsReport:
    years: list[int]
    stores: Optional[list[str]]
    categories: list[InsightCategory]
    insights: list[Insight]

    @property
    def total(self) -> int:
        return len(self.insights)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _active(appointments: Iterable[AppointmentRecord]) -> list[AppointmentRecord]:
    return [a for a in appointments if not a.is_cancelled]


def _counts_by(appointments: Iterable[AppointmentRecord], attr: str, allowed: range) -> dict[int, int]:
    counts: dict[int, int] = defaultdict(int)
    for appt in appointments:
        key = getattr(appt, attr)
        if key in allowed:
            counts[key] += 1
    return dict(counts)


def _in_shift(appointments: Iterable[AppointmentRecord], shift: range) -> int:
    return sum(1 for a in appointments if a.hour in shift)


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

def day_insights(appointments: Sequence[AppointmentRecord]) -> list[Insight]:
    active = _active(appointments)
    counts = _counts_by(active, "day_of_week", WORKING_DAYS)
    if not counts:
        return []
    avg = fmean(counts.values())
    out: list[Insight] = []

    busiest_day, busiest = max(counts.items(), key=lambda kv: (kv[1], -kv[0]))
    if busiest > avg * BUSIEST_DAY_FACTOR:
        out.append(Insight(
            InsightType.peak, InsightCategory.day,
            f"{DAY_NAMES[busiest_day]}: busiest day",
            f"{busiest} appointments (+{(busiest - avg) * 100 / avg:.0f}% vs average)",
            {"day": busiest_day, "count": busiest, "avg_per_day": avg},
        ))

    quietest_day, quietest = min(counts.items(), key=lambda kv: (kv[1], kv[0]))
    if quietest < avg * QUIETEST_DAY_FACTOR:
        out.append(Insight(
            InsightType.info, InsightCategory.day,
            f"{DAY_NAMES[quietest_day]}: promotion opportunity",
            f"Only {quietest} appointments (-{(avg - quietest) * 100 / avg:.0f}% vs average)",
            {"day": quietest_day, "count": quietest, "avg_per_day": avg},
        ))

    per_day: dict[int, list[int]] = defaultdict(lambda: [0, 0])
    # Sundays count here; only the busiest / quietest comparison skips them.
    for appt in active:
        if appt.category is AppointmentCategory.measurement:
            per_day[appt.day_of_week][0] += 1
        elif appt.category is AppointmentCategory.fitting:
            per_day[appt.day_of_week][1] += 1
    for day, (medicion, fitting) in sorted(per_day.items()):
        if medicion + fitting == 0:
            continue
        share = rate(medicion, medicion + fitting)
        data = {"day": day, "medicion_percent": share, "medicion": medicion, "fitting": fitting}
        if share > CATEGORY_PREFERENCE_HIGH:
            out.append(Insight(
                InsightType.info, InsightCategory.day,
                f"{DAY_NAMES[day]}: measurement preference",
                f"{share:.0f}% of appointments are measurements", data,
            ))
        elif share < CATEGORY_PREFERENCE_LOW:
            out.append(Insight(
                InsightType.info, InsightCategory.day,
                f"{DAY_NAMES[day]}: fitting preference",
                f"{100 - share:.0f}% of appointments are fittings", data,
            ))
    return out


def hour_insights(appointments: Sequence[AppointmentRecord]) -> list[Insight]:
    active = _active(appointments)
    counts = _counts_by(active, "hour", BUSINESS_HOURS)
    out: list[Insight] = []

    top = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))[:3]
    if top:
        out.append(Insight(
            InsightType.peak, InsightCategory.hour,
            "Peak hours: " + ", ".join(f"{h}:00" for h, _ in top),
            f"{top[0][1]} appointments in the busiest hour",
            {"top_hours": [{"hour": h, "count": c} for h, c in top]},
        ))

    morning = _in_shift(active, MORNING)
    afternoon = _in_shift(active, AFTERNOON)
    data = {"morning": morning, "afternoon": afternoon}
    if morning > afternoon * SHIFT_PREFERENCE_FACTOR:
        out.append(Insight(
            InsightType.trend, InsightCategory.hour, "Morning preference",
            f"{rate(morning, morning + afternoon):.0f}% of appointments before 14:00", data,
        ))
    elif afternoon > morning * SHIFT_PREFERENCE_FACTOR:
        out.append(Insight(
            InsightType.trend, InsightCategory.hour, "Afternoon preference",
            f"{rate(afternoon, morning + afternoon):.0f}% of appointments after 14:00", data,
        ))
    return out


def cancellation_insights(appointments: Sequence[AppointmentRecord]) -> list[Insight]:
    overall = rate(sum(1 for a in appointments if a.is_cancelled), len(appointments))
    out: list[Insight] = []

    per_day: dict[int, list[int]] = defaultdict(lambda: [0, 0])
    per_hour: dict[int, list[int]] = defaultdict(lambda: [0, 0])
    for appt in appointments:
        if appt.day_of_week in WORKING_DAYS:
            per_day[appt.day_of_week][0] += 1
            per_day[appt.day_of_week][1] += appt.is_cancelled
        if appt.hour in BUSINESS_HOURS:
            per_hour[appt.hour][0] += 1
            per_hour[appt.hour][1] += appt.is_cancelled

    for day, (total, cancelled) in sorted(per_day.items()):
        day_rate = rate(cancelled, total)
        if day_rate > overall * DAY_CANCELLATION_FACTOR:
            out.append(Insight(
                InsightType.warning, InsightCategory.cancellation,
                f"{DAY_NAMES[day]}: high cancellation rate",
                f"{day_rate:.1f}% cancelled (vs {overall:.1f}% average)",
                {"day": day, "rate": day_rate, "cancelled": cancelled, "total": total},
            ))

    for hour, (total, cancelled) in sorted(per_hour.items()):
        hour_rate = rate(cancelled, total)
        if hour_rate > HOUR_CANCELLATION_CRITICAL and total > HOUR_CANCELLATION_MIN_SAMPLE:
            out.append(Insight(
                InsightType.warning, InsightCategory.cancellation,
                f"{hour}:00 - {hour + 1}:00: critical",
                f"{hour_rate:.1f}% cancellation rate",
                {"hour": hour, "rate": hour_rate, "cancelled": cancelled, "total": total},
            ))
    return out


def growth_insights(appointments: Sequence[AppointmentRecord], years: Iterable[int]) -> list[Insight]:
    ordered = sorted(set(years))
    if len(ordered) < 2:
        return []
    active = _active(appointments)
    per_year: dict[int, list[AppointmentRecord]] = defaultdict(list)
    for appt in active:
        per_year[appt.year].append(appt)

    out: list[Insight] = []
    for previous, current in zip(ordered, ordered[1:]):
        cur, prev = per_year[current], per_year[previous]
        if prev:
            growth = growth_percent(len(cur), len(prev))
            if abs(growth) > YEAR_GROWTH_THRESHOLD:
                direction = "growth" if growth > 0 else "decline"
                out.append(Insight(
                    InsightType.growth if growth > 0 else InsightType.warning,
                    InsightCategory.growth,
                    f"{current} vs {previous}: {direction} {abs(growth):.0f}%",
                    f"{len(cur)} appointments ({len(cur) - len(prev):+,})",
                    {
                        "current_year": current, "previous_year": previous, "growth": growth,
                        "current_total": len(cur), "previous_total": len(prev),
                    },
                ))

        for label, shift in (("morning", MORNING), ("afternoon", AFTERNOON)):
            before = _in_shift(prev, shift)
            if before == 0:
                continue
            shift_growth = growth_percent(_in_shift(cur, shift), before)
            if shift_growth > SHIFT_GROWTH_THRESHOLD:
                out.append(Insight(
                    InsightType.growth, InsightCategory.growth,
                    f"{label.capitalize()} growth: +{shift_growth:.0f}%",
                    f"{shift.start}:00-{shift.stop}:00 appointments increased in {current}",
                    {"segment": label, "growth": shift_growth, "year": current},
                ))
    return out


def anomaly_insights(appointments: Sequence[AppointmentRecord]) -> list[Insight]:
    active = _active(appointments)
    out: list[Insight] = []

    day_counts = _counts_by(active, "day_of_week", WORKING_DAYS)
    if day_counts:
        mean, std = fmean(day_counts.values()), pstdev(day_counts.values())
        for day, count in sorted(day_counts.items()):
            if count > mean + 2 * std:
                out.append(Insight(
                    InsightType.info, InsightCategory.anomaly,
                    f"{DAY_NAMES[day]}: exceptional activity",
                    f"{count} appointments (well above average)",
                    {"day": day, "count": count, "avg": mean, "std": std},
                ))

    hour_counts = _counts_by(active, "hour", BUSINESS_HOURS)
    if hour_counts:
        mean, std = fmean(hour_counts.values()), pstdev(hour_counts.values())
        for hour, count in sorted(hour_counts.items()):
            if count > mean + 2 * std and count > HOUR_ANOMALY_MIN_COUNT:
                out.append(Insight(
                    InsightType.peak, InsightCategory.anomaly,
                    f"{hour}:00: exceptional demand",
                    f"{count} appointments (positive anomaly)",
                    {"hour": hour, "count": count, "avg": mean, "std": std},
                ))
    return out


def diversify(insights: Iterable[Insight], per_type: int = MAX_PER_TYPE) -> list[Insight]:
    grouped: dict[InsightType, list[Insight]] = defaultdict(list)
    for insight in insights:
        grouped[insight.type].append(insight)
    return [i for kind in _TYPE_ORDER for i in grouped[kind][:per_type]]


def build_insights(
    appointments: Sequence[AppointmentRecord],
    years: Iterable[int],
    categories: Optional[Iterable[InsightCategory]] = None,
) -> list[Insight]:
    wanted = set(categories) if categories else set(InsightCategory)
    years = list(years)
    raw: list[Insight] = []
    if InsightCategory.day in wanted:
        raw += day_insights(appointments)
    if InsightCategory.hour in wanted:
        raw += hour_insights(appointments)
    if InsightCategory.cancellation in wanted:
        raw += cancellation_insights(appointments)
    if InsightCategory.growth in wanted:
        raw += growth_insights(appointments, years)
    if InsightCategory.anomaly in wanted:
        raw += anomaly_insights(appointments)
    return diversify(raw)


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

def get_insights(
    db: Session,
    years: Iterable[int],
    stores: Optional[Iterable[str]] = None,
    categories: Optional[Iterable[InsightCategory]] = None,
    cache: ReadCache = NullCache(),
) -> InsightsReport:
    years = sorted(set(years))
    store_list = sorted(set(stores)) if stores else None
    category_list = sorted(set(categories), key=lambda c: c.value) if categories else list(InsightCategory)
    key = cache_key("insights", years=years, stores=store_list, categories=[c.value for c in category_list])
    cached = cache.get(key)
    if cached is not None:
        return cached

    appointments = AppointmentRepository(db).for_years(years, store_list)
    report = InsightsReport(
        years=years,
        stores=store_list,
        categories=category_list,
        insights=build_insights(appointments, years, category_list),
    )
    cache.set(key, report)
    return report
