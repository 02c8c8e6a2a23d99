from __future__ import annotations

"""Occupancy multiplier helpers.

A multiplier template turns a base-occupancy price into a price for any
adult/child combination. The combination table stored on a template lets
operators pin (override) or disable individual combinations; everything
not in the table is computed from the adult and child multiplier maps.
"""

import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from itertools import product
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from rate_engine.domain.pricing_models import (
    ChildAgeGroup,
    CombinationEntry,
    CombinationKey,
    MultiplierTemplate,
)

# Upper bound on generated table rows; beyond it only stored rows are returned.
MAX_GENERATED_COMBINATIONS = 2000


@dataclass(frozen=True)
class MultiplierResult:
    multiplier: float
    source: str  # "table_override" | "table" | "calculated"
    is_active: bool = True


def _round2(value: float) -> float:
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def _half_up(value: float, step: int) -> float:
    scaled = Decimal(str(value)) / Decimal(step)
    return float(scaled.quantize(Decimal("1"), rounding=ROUND_HALF_UP) * step)


def apply_rounding(value: float, rule: Optional[str]) -> float:
    """Apply a template rounding rule to a per-night price.

    ``none`` returns the value untouched; ``up``/``down`` go to the next
    whole unit; ``nearest`` goes to the nearest whole unit and
    ``nearest5``/``nearest10`` to the nearest multiple of 5/10 (half up).
    """
    if rule == "up":
        return float(math.ceil(round(value, 6)))
    if rule == "down":
        return float(math.floor(round(value, 6)))
    if rule == "nearest":
        return _half_up(value, 1)
    if rule == "nearest5":
        return _half_up(value, 5)
    if rule == "nearest10":
        return _half_up(value, 10)
    return value


def compute_multiplier(template: MultiplierTemplate, key: CombinationKey) -> float:
    """Algorithmic multiplier: adult factor times each child's factor.

    Missing map entries default to 1.0 so an unconfigured child never
    discounts the price.
    """
    multiplier = template.adult_multipliers.get(key.adults, 1.0)
    for order, group in key.children:
        multiplier *= template.child_multipliers.get(order, {}).get(group, 1.0)
    return _round2(multiplier)


def calculate_combination_multiplier(
    template: MultiplierTemplate,
    key: CombinationKey,
) -> MultiplierResult:
    entry = template.lookup(key)
    if entry is not None:
        if not entry.is_active:
            return MultiplierResult(multiplier=0.0, source="table", is_active=False)
        if entry.override_multiplier is not None:
            return MultiplierResult(multiplier=entry.override_multiplier, source="table_override")
        return MultiplierResult(multiplier=entry.calculated_multiplier, source="table")
    return MultiplierResult(multiplier=compute_multiplier(template, key), source="calculated")


def generate_default_adult_multipliers(
    max_adults: int,
    base_occupancy: int,
    min_adults: int = 1,
) -> Dict[int, float]:
    """1.0 at base occupancy, 0.2 up or down per adult away from it."""
    return {
        adults: _round2(1.0 + (adults - base_occupancy) * 0.2)
        for adults in range(max(1, min_adults), max_adults + 1)
    }


def generate_default_child_multipliers(
    max_children: int,
    age_groups: Sequence[ChildAgeGroup],
) -> Dict[int, Dict[str, float]]:
    return {order: {g.code: 1.0 for g in age_groups} for order in range(1, max_children + 1)}


def combination_name(
    key: CombinationKey,
    age_groups: Sequence[ChildAgeGroup] = (),
    locale: str = "en",
) -> str:
    if not key.children:
        if key.adults == 1:
            return "Single"
        if key.adults == 2:
            return "Double"
        return f"{key.adults} Adults"
    labels = {g.code: g.label(locale) for g in age_groups}
    groups = ", ".join(labels.get(group, group) for _, group in key.children)
    return f"{key.adults}+{key.child_count} ({groups})"


def iter_combination_keys(
    min_adults: int,
    max_adults: int,
    max_children: int,
    age_group_codes: Sequence[str],
) -> Iterable[CombinationKey]:
    for adults in range(max(1, min_adults), max_adults + 1):
        yield CombinationKey(adults=adults)
        if not age_group_codes:
            continue
        for count in range(1, max_children + 1):
            for groups in product(age_group_codes, repeat=count):
                yield CombinationKey(adults=adults, children=tuple(enumerate(groups, start=1)))


def build_combination_table(
    template: MultiplierTemplate,
    *,
    min_adults: int,
    max_adults: int,
    max_children: int,
    age_groups: Sequence[ChildAgeGroup],
) -> List[CombinationEntry]:
    """Regenerate the full table for the given occupancy limits.

    Calculated multipliers are refreshed from the maps; operator overrides
    and deactivations already stored on the template are kept.
    """
    stored: Mapping[CombinationKey, CombinationEntry] = {e.key: e for e in template.combination_table}
    table: List[CombinationEntry] = []
    keys = iter_combination_keys(min_adults, max_adults, max_children, [g.code for g in age_groups])
    for key in keys:
        if len(table) >= MAX_GENERATED_COMBINATIONS:
            break
        previous = stored.get(key)
        table.append(
            CombinationEntry(
                key=key,
                calculated_multiplier=compute_multiplier(template, key),
                override_multiplier=previous.override_multiplier if previous else None,
                is_active=previous.is_active if previous else True,
            )
        )
    return table
