from __future__ import annotations

"""Per-stay base price for one room and one occupancy.

Three models are supported:

- unit: flat room price adjusted by single supplement / extra adults,
  plus per-child prices;
- per_person without multipliers: direct lookup in the rate's
  occupancy price map, plus per-child prices;
- per_person with multipliers: base-occupancy price times the
  combination multiplier, rounded by the template rule.

No commercial markup is applied here.
"""

import logging
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from rate_engine.config import DEFAULT_CHILD_AGE_GROUP
from rate_engine.domain.pricing_models import (
    Child,
    ChildAgeGroup,
    CombinationKey,
    DailyRate,
    HotelPricingConfig,
    MarketPricingOverride,
    RoomTypePricingConfig,
    SeasonPricingOverride,
    normalize_children,
)
from rate_engine.schemas_pricing import OccupancyPrice, PriceLineItem
from rate_engine.services.pricing.multipliers import apply_rounding, calculate_combination_multiplier
from rate_engine.services.pricing.override_resolver import EffectiveSettings, resolve_effective_settings
from rate_engine.utils import round_money

logger = logging.getLogger(__name__)

COMBINATION_INACTIVE = "COMBINATION_INACTIVE"


def resolve_child_age_group(child: Child, age_groups: Sequence[ChildAgeGroup]) -> str:
    if child.age_group:
        return child.age_group
    if child.age is not None:
        for group in age_groups:
            if group.contains(child.age):
                return group.code
    return DEFAULT_CHILD_AGE_GROUP


def build_combination_key(
    adults: int,
    children: Iterable[Any],
    age_groups: Sequence[ChildAgeGroup] = (),
) -> CombinationKey:
    pairs = [
        (order, resolve_child_age_group(child, age_groups))
        for order, child in enumerate(normalize_children(children), start=1)
    ]
    return CombinationKey.build(adults, pairs)


def price_child(rate: DailyRate, order: int, child: Child) -> Tuple[float, str]:
    """Price one child by position, then age tier, then flat fallback."""
    index = order - 1
    if index < len(rate.child_order_pricing):
        return rate.child_order_pricing[index], "child_order"
    if child.age is not None:
        for tier in rate.child_pricing:
            if tier.min_age <= child.age <= tier.max_age:
                return tier.price, "age_tier"
    return rate.extra_child, "extra_child"


def _child_items(rate: DailyRate, children: List[Child]) -> List[PriceLineItem]:
    items: List[PriceLineItem] = []
    for order, child in enumerate(children, start=1):
        amount, source = price_child(rate, order, child)
        items.append(
            PriceLineItem(
                type="child",
                description=f"Child {order}" + (f" (age {child.age})" if child.age is not None else ""),
                amount=round_money(amount),
                child_order=order,
                age=child.age,
                source=source,
            )
        )
    return items


def _unit_price(rate: DailyRate, adults: int, base_occupancy: int) -> List[PriceLineItem]:
    items = [PriceLineItem(type="base", description="Room price", amount=round_money(rate.price_per_night))]
    if adults < base_occupancy and rate.single_supplement:
        # once per room, not per missing adult
        items.append(
            PriceLineItem(
                type="single_supplement",
                description="Reduced occupancy",
                amount=-round_money(rate.single_supplement),
            )
        )
    elif adults > base_occupancy:
        extra = adults - base_occupancy
        items.append(
            PriceLineItem(
                type="extra_adult",
                description=f"{extra} extra adult(s)",
                amount=round_money(rate.extra_adult),
                quantity=extra,
            )
        )
    return items


def _per_person_price(rate: DailyRate, adults: int, warnings: List[str]) -> List[PriceLineItem]:
    price = rate.occupancy_pricing.get(adults)
    if price is None:
        logger.warning(
            "Rate %s has no occupancy price for %s adult(s) on %s",
            rate.id,
            adults,
            rate.date.isoformat(),
        )
        warnings.append(f"MISSING_OCCUPANCY_PRICE_{adults}")
        price = 0.0
    return [PriceLineItem(type="base", description=f"{adults} adult(s)", amount=round_money(price))]


def _multiplier_price(
    rate: DailyRate,
    adults: int,
    children: List[Child],
    settings: EffectiveSettings,
    nights: int,
) -> OccupancyPrice:
    base = rate.occupancy_pricing.get(settings.base_occupancy)
    base_source = "occupancy_pricing"
    if base is None:
        base, base_source = rate.price_per_night, "price_per_night"

    template = settings.multiplier_template
    key = build_combination_key(adults, children, settings.child_age_groups)
    result = calculate_combination_multiplier(template, key)

    common = dict(
        pricing_type="per_person",
        used_multipliers=True,
        nights=nights,
        combination_key=key.code,
        rounding_rule=template.rounding_rule,
    )
    if not result.is_active:
        return OccupancyPrice(is_available=False, reason=COMBINATION_INACTIVE, multiplier_source=result.source, **common)

    raw = base * result.multiplier
    per_night = round_money(apply_rounding(raw, template.rounding_rule))
    items = [
        PriceLineItem(type="base", description=f"Base occupancy ({settings.base_occupancy})", amount=round_money(base), source=base_source),
        PriceLineItem(
            type="multiplier",
            description=f"Combination {key.code} x{result.multiplier}",
            amount=round_money(raw - base),
            source=result.source,
        ),
    ]
    adjustment = round_money(per_night - round_money(base) - round_money(raw - base))
    if adjustment:
        items.append(PriceLineItem(type="rounding", description=f"Rounding ({template.rounding_rule})", amount=adjustment))

    return OccupancyPrice(
        base_price=round_money(base),
        adult_price=per_night,
        child_price=0.0,
        per_night_price=per_night,
        total_price=round_money(per_night * nights),
        multiplier=result.multiplier,
        multiplier_source=result.source,
        line_items=items,
        **common,
    )


def calculate_occupancy_price(
    rate: DailyRate,
    adults: int,
    children: Optional[Iterable[Any]] = None,
    nights: int = 1,
    settings: Optional[EffectiveSettings] = None,
    *,
    room_type: Optional[RoomTypePricingConfig] = None,
    market: Optional[MarketPricingOverride] = None,
    season: Optional[SeasonPricingOverride] = None,
    hotel: Optional[HotelPricingConfig] = None,
) -> OccupancyPrice:
    """Price ``adults`` + ``children`` for ``nights`` nights on ``rate``.

    Either pass pre-resolved ``settings`` or the configuration layers
    (``room_type`` is then required).
    """
    if settings is None:
        if room_type is None:
            raise ValueError("room_type is required when settings are not supplied")
        settings = resolve_effective_settings(room_type, market, season, rate, hotel)

    adults = max(1, int(adults))
    nights = max(1, int(nights))
    kids = normalize_children(children)

    if settings.pricing_type == "per_person" and settings.use_multipliers:
        return _multiplier_price(rate, adults, kids, settings, nights)

    warnings: List[str] = []
    if settings.pricing_type == "per_person":
        adult_items = _per_person_price(rate, adults, warnings)
    else:
        adult_items = _unit_price(rate, adults, settings.base_occupancy)
    child_items = _child_items(rate, kids)

    adult_price = round_money(sum(i.amount * i.quantity for i in adult_items))
    child_price = round_money(sum(i.amount for i in child_items))
    per_night = round_money(adult_price + child_price)

    return OccupancyPrice(
        pricing_type="per_person" if settings.pricing_type == "per_person" else "unit",
        base_price=adult_items[0].amount,
        adult_price=adult_price,
        child_price=child_price,
        per_night_price=per_night,
        nights=nights,
        total_price=round_money(per_night * nights),
        line_items=adult_items + child_items,
        warnings=warnings,
    )
