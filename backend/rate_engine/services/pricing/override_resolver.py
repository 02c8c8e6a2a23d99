from __future__ import annotations

"""Effective pricing settings for a room type.

Configuration is layered, lowest priority first:

    room type -> hotel -> market -> season -> daily rate

Each layer is turned into a ``SettingsLayer`` holding only the groups it
actually overrides (``None`` means "inherit"). ``merge_layers`` folds the
chain into one ``EffectiveSettings`` and records which layer supplied each
group, so the resolution order can be inspected without touching any
document shapes.

Layer rules:
- market: per-room-type entries apply only where their ``use_*_override``
  flag is set; market commercial values are the commercial base; child age
  groups replace the hotel's when the market does not inherit from it.
- season: per-room-type entries as for the market; commercial settings and
  child age groups apply only when the season does not inherit from the
  market.
- daily rate: only the multiplier template, and only when explicitly
  enabled. A rate never changes the pricing model or minimum adults.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from rate_engine.config import (
    DEFAULT_AGENCY_COMMISSION,
    DEFAULT_AGENCY_MARGIN_SHARE,
    DEFAULT_COMMISSION_RATE,
    DEFAULT_CURRENCY,
    DEFAULT_WORKING_MODE,
)
from rate_engine.domain.pricing_models import (
    ChildAgeGroup,
    CommercialPatch,
    CommercialSettings,
    DailyRate,
    HotelPricingConfig,
    MarketPricingOverride,
    MultiplierTemplate,
    MultiplierTemplatePatch,
    NonRefundableSettings,
    RoomTypeOverride,
    RoomTypePricingConfig,
    SeasonPricingOverride,
)

SETTINGS_GROUPS = ("pricing_type", "min_adults", "multiplier_template", "commercial", "child_age_groups")


@dataclass(frozen=True)
class SettingsLayer:
    tag: str
    pricing_type: Optional[str] = None
    min_adults: Optional[int] = None
    multiplier_template: Optional[MultiplierTemplatePatch] = None
    commercial: Optional[CommercialPatch] = None
    child_age_groups: Optional[Tuple[ChildAgeGroup, ...]] = None


@dataclass(frozen=True)
class EffectiveSettings:
    pricing_type: str = "unit"
    min_adults: int = 1
    use_multipliers: bool = False
    multiplier_template: MultiplierTemplate = field(default_factory=MultiplierTemplate)
    commercial: CommercialSettings = field(default_factory=CommercialSettings)
    child_age_groups: Tuple[ChildAgeGroup, ...] = ()
    base_occupancy: int = 2
    currency: str = DEFAULT_CURRENCY
    non_refundable: NonRefundableSettings = field(default_factory=NonRefundableSettings)
    sources: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        template = self.multiplier_template
        return {
            "pricing_type": self.pricing_type,
            "min_adults": self.min_adults,
            "use_multipliers": self.use_multipliers,
            "base_occupancy": self.base_occupancy,
            "currency": self.currency,
            "multiplier_template": {
                "adult_multipliers": {str(k): v for k, v in template.adult_multipliers.items()},
                "child_multipliers": {str(k): dict(v) for k, v in template.child_multipliers.items()},
                "combination_table": [e.to_doc() for e in template.combination_table],
                "rounding_rule": template.rounding_rule,
            },
            "commercial": {
                "working_mode": self.commercial.working_mode,
                "commission_rate": self.commercial.commission_rate,
                "markup": {"b2c": self.commercial.markup_b2c, "b2b": self.commercial.markup_b2b},
                "agency_commission": self.commercial.agency_commission,
                "agency_margin_share": self.commercial.agency_margin_share,
            },
            "child_age_groups": [
                {"code": g.code, "min_age": g.min_age, "max_age": g.max_age} for g in self.child_age_groups
            ],
            "non_refundable": {
                "enabled": self.non_refundable.enabled,
                "discount_percent": self.non_refundable.discount_percent,
            },
            "sources": dict(self.sources),
        }


DEFAULT_COMMERCIAL = CommercialSettings(
    working_mode=DEFAULT_WORKING_MODE,
    commission_rate=DEFAULT_COMMISSION_RATE,
    markup_b2c=0.0,
    markup_b2b=0.0,
    agency_commission=DEFAULT_AGENCY_COMMISSION,
    agency_margin_share=DEFAULT_AGENCY_MARGIN_SHARE,
)


# ---------------------------------------------------------------------------
# Layer builders
# ---------------------------------------------------------------------------


def room_type_layer(room_type: RoomTypePricingConfig) -> SettingsLayer:
    return SettingsLayer(
        tag="room_type",
        pricing_type=room_type.pricing_type,
        min_adults=room_type.min_adults,
        multiplier_template=room_type.multiplier_template if room_type.use_multipliers else None,
    )


def hotel_layer(hotel: HotelPricingConfig) -> SettingsLayer:
    return SettingsLayer(tag="hotel", child_age_groups=hotel.child_age_groups or None)


def _room_override_fields(entry: Optional[RoomTypeOverride]) -> Dict[str, Any]:
    if entry is None:
        return {}
    out: Dict[str, Any] = {}
    if entry.use_pricing_type_override and entry.pricing_type:
        out["pricing_type"] = entry.pricing_type
    if entry.use_min_adults_override and entry.min_adults:
        out["min_adults"] = entry.min_adults
    if entry.use_multiplier_override and entry.multiplier_override is not None:
        out["multiplier_template"] = entry.multiplier_override
    return out


def market_layer(market: MarketPricingOverride, room_type_id: str) -> SettingsLayer:
    child_groups = None
    if not market.child_age_inherit_from_hotel and market.child_age_groups:
        child_groups = market.child_age_groups
    return SettingsLayer(
        tag="market",
        commercial=market.commercial,
        child_age_groups=child_groups,
        **_room_override_fields(market.override_for(room_type_id)),
    )


def season_layer(season: SeasonPricingOverride, room_type_id: str) -> SettingsLayer:
    child_groups = None
    if not season.child_age_inherit_from_market and season.child_age_groups:
        child_groups = season.child_age_groups
    return SettingsLayer(
        tag="season",
        commercial=None if season.sales_inherit_from_market else season.sales_override,
        child_age_groups=child_groups,
        **_room_override_fields(season.override_for(room_type_id)),
    )


def rate_layer(rate: DailyRate) -> SettingsLayer:
    template = rate.multiplier_override if rate.use_multiplier_override else None
    return SettingsLayer(tag="rate", multiplier_template=template)


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


def merge_layers(layers: Sequence[SettingsLayer], **extra: Any) -> EffectiveSettings:
    """Fold layers (lowest priority first) into effective settings."""
    pricing_type = "unit"
    min_adults = 1
    template: Optional[MultiplierTemplate] = None
    commercial = DEFAULT_COMMERCIAL
    child_groups: Tuple[ChildAgeGroup, ...] = ()
    sources: Dict[str, str] = {group: "default" for group in SETTINGS_GROUPS}

    for layer in layers:
        if layer.pricing_type is not None:
            pricing_type = layer.pricing_type
            sources["pricing_type"] = layer.tag
        if layer.min_adults is not None:
            min_adults = layer.min_adults
            sources["min_adults"] = layer.tag
        if layer.multiplier_template is not None:
            template = layer.multiplier_template.apply_to(template)
            sources["multiplier_template"] = layer.tag
        if layer.commercial is not None:
            commercial = layer.commercial.apply_to(commercial)
            sources["commercial"] = layer.tag
        if layer.child_age_groups is not None:
            child_groups = tuple(layer.child_age_groups)
            sources["child_age_groups"] = layer.tag

    return EffectiveSettings(
        pricing_type=pricing_type,
        min_adults=max(1, int(min_adults)),
        use_multipliers=template is not None,
        multiplier_template=template or MultiplierTemplate(),
        commercial=commercial,
        child_age_groups=child_groups,
        sources=sources,
        **extra,
    )


def build_layers(
    room_type: RoomTypePricingConfig,
    market: Optional[MarketPricingOverride] = None,
    season: Optional[SeasonPricingOverride] = None,
    rate: Optional[DailyRate] = None,
    hotel: Optional[HotelPricingConfig] = None,
) -> List[SettingsLayer]:
    layers = [room_type_layer(room_type)]
    if hotel is not None:
        layers.append(hotel_layer(hotel))
    if market is not None:
        layers.append(market_layer(market, room_type.id))
    if season is not None:
        layers.append(season_layer(season, room_type.id))
    if rate is not None:
        layers.append(rate_layer(rate))
    return layers


def resolve_effective_settings(
    room_type: RoomTypePricingConfig,
    market: Optional[MarketPricingOverride] = None,
    season: Optional[SeasonPricingOverride] = None,
    rate: Optional[DailyRate] = None,
    hotel: Optional[HotelPricingConfig] = None,
) -> EffectiveSettings:
    currency = (rate.currency if rate and rate.currency else None) or (market.currency if market else None)
    return merge_layers(
        build_layers(room_type, market, season, rate, hotel),
        base_occupancy=room_type.base_occupancy,
        currency=currency or DEFAULT_CURRENCY,
        non_refundable=market.non_refundable if market else NonRefundableSettings(),
    )
