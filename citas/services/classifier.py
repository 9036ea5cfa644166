"""
Tag-based appointment category classifier.

Used when a store order cannot be matched to a real appointment: the shop
staff tag each in-store order with the customer profile and purchase motive,
and those tags are enough to guess which visit produced the sale.

Decision table (first matching row wins)
----------------------------------------
  1. new_customer                          → medicion
  2. recurrent + recurrent motive          → fitting
  3. recurrent + first-purchase motive     → medicion   (new garment, new measurement)
  4. recurrent                             → fitting    (most likely an adjustment)
  5. default                               → medicion   (first step, majority of visits)

"new customer" overrides every recurrence signal, even contradictory ones.
All matching is case-insensitive substring matching over every tag.
Pure functions only; no DB, no I/O.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Sequence

from citas.repositories.records import AppointmentCategory

# Spanish literals are what the shop actually writes; English kept for imports.
NEW_CUSTOMER_MARKERS = ("new customer", "nuevo cliente")
RECURRENT_MARKERS = ("recurrent",)  # also matches "recurrente"
FIRST_PURCHASE_MOTIVES = (
    "own wedding",
    "su propia boda",
    "work-related",
    "laboral",
    "someone else's wedding",
    "boda o celebración ajena",
)
RECURRENT_PURCHASE_MOTIVES = (
    "daily for pleasure",
    "diario por gusto",
    "occasional for leisure",
    "ocasional para ocio",
)


@dataclass(frozen=True)
class TagSignals:
    is_new_customer: bool
    is_recurrent: bool
    has_first_purchase_motive: bool
    has_recurrent_purchase_motive: bool


@dataclass(frozen=True)
class ClassificationRule:
    name: str
    applies: Callable[[TagSignals], bool]
    category: AppointmentCategory


@dataclass(frozen=True)
class Classification:
    category: AppointmentCategory
    rule_name: str


RULES: tuple[ClassificationRule, ...] = (
    ClassificationRule(
        "new_customer",
        lambda s: s.is_new_customer,
        AppointmentCategory.measurement,
    ),
    ClassificationRule(
        "recurrent_with_recurrent_motive",
        lambda s: s.is_recurrent and s.has_recurrent_purchase_motive,
        AppointmentCategory.fitting,
    ),
    ClassificationRule(
        "recurrent_with_first_purchase_motive",
        lambda s: s.is_recurrent and s.has_first_purchase_motive,
        AppointmentCategory.measurement,
    ),
    ClassificationRule(
        "recurrent",
        lambda s: s.is_recurrent,
        AppointmentCategory.fitting,
    ),
)

DEFAULT_RULE_NAME = "default"
DEFAULT_CATEGORY = AppointmentCategory.measurement


def _contains_any(tags: Sequence[str], needles: Iterable[str]) -> bool:
    return any(needle in tag for tag in tags for needle in needles)


def extract_signals(tags: Optional[Iterable[str]]) -> TagSignals:
    lowered = [t.lower() for t in (tags or ()) if t]
    return TagSignals(
        is_new_customer=_contains_any(lowered, NEW_CUSTOMER_MARKERS),
        is_recurrent=_contains_any(lowered, RECURRENT_MARKERS),
        has_first_purchase_motive=_contains_any(lowered, FIRST_PURCHASE_MOTIVES),
        has_recurrent_purchase_motive=_contains_any(lowered, RECURRENT_PURCHASE_MOTIVES),
    )


def explain(
    tags: Optional[Iterable[str]],
    rules: Sequence[ClassificationRule] = RULES,
) -> Classification:
    """Return the inferred category together with the name of the rule that fired."""
    signals = extract_signals(tags)
    for rule in rules:
        if rule.applies(signals):
            return Classification(category=rule.category, rule_name=rule.name)
    return Classification(category=DEFAULT_CATEGORY, rule_name=DEFAULT_RULE_NAME)


def classify_tags(tags: Optional[Iterable[str]]) -> AppointmentCategory:
    """Best-guess appointment category for an order's tags. Never fails."""
    return explain(tags).category
