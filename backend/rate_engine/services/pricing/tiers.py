from __future__ import annotations

"""Commercial tiers: hotel cost, B2C price and B2B price.

net mode
    The stored price is the hotel's net. Cost is the price itself and both
    channels add their markup on top.

commission mode
    The stored price is gross and already contains the commission:
    ``gross = cost * (1 + commission_rate/100)``. The real margin inside the
    gross price is ``commission_rate / (100 + commission_rate)``; resellers
    get ``agency_margin_share`` percent of that margin as a discount off
    gross. Because the discount is a share of the real margin (never of
    the commission rate), the B2B price cannot drop below cost.

Each figure is rounded to 2 decimals on its own.
"""

from typing import Any, Mapping, Optional, Union

from rate_engine.domain.pricing_models import CommercialSettings, MarketPricingOverride, SeasonPricingOverride
from rate_engine.schemas_pricing import TierPricing
from rate_engine.services.pricing.override_resolver import DEFAULT_COMMERCIAL, market_layer, merge_layers, season_layer
from rate_engine.utils import round_money, to_float


def _margin_percent(price: float, cost: float) -> float:
    if price <= 0:
        return 0.0
    return round_money((price - cost) / price * 100)


def commercial_from_mapping(data: Mapping[str, Any]) -> CommercialSettings:
    """Build settings from an API-shaped dict (``markup: {b2c, b2b}``)."""
    markup = data.get("markup") or {}
    base = DEFAULT_COMMERCIAL

    def pick(value: Any, fallback: float) -> float:
        return fallback if value is None else to_float(value, fallback)

    return CommercialSettings(
        working_mode=data.get("working_mode") or base.working_mode,
        commission_rate=pick(data.get("commission_rate"), base.commission_rate),
        markup_b2c=pick(markup.get("b2c"), base.markup_b2c),
        markup_b2b=pick(markup.get("b2b"), base.markup_b2b),
        agency_commission=pick(data.get("agency_commission"), base.agency_commission),
        agency_margin_share=pick(data.get("agency_margin_share"), base.agency_margin_share),
    )


def get_effective_sales_settings(
    market: Optional[MarketPricingOverride],
    season: Optional[SeasonPricingOverride] = None,
    room_type_id: str = "",
) -> CommercialSettings:
    layers = []
    if market is not None:
        layers.append(market_layer(market, room_type_id))
    if season is not None:
        layers.append(season_layer(season, room_type_id))
    return merge_layers(layers).commercial


def calculate_tier_pricing(
    base_price: float,
    settings: Union[CommercialSettings, Mapping[str, Any]],
) -> TierPricing:
    if not isinstance(settings, CommercialSettings):
        settings = commercial_from_mapping(settings)

    base = to_float(base_price)
    markup_b2c = settings.markup_b2c or 0.0
    markup_b2b = settings.markup_b2b or 0.0
    b2c = base * (1 + markup_b2c / 100)

    if settings.working_mode == "commission":
        rate = max(0.0, settings.commission_rate)
        share = min(100.0, max(0.0, settings.agency_margin_share))
        real_margin = rate / (100 + rate) * 100
        agency_discount = real_margin * share / 100

        cost = base / (1 + rate / 100)
        b2b = cost + (base - cost) * (100 - share) / 100

        hotel_cost = round_money(cost)
        b2c_price = round_money(b2c)
        b2b_price = round_money(b2b)

        return TierPricing(
            working_mode="commission",
            base_price=round_money(base),
            hotel_cost=hotel_cost,
            b2c_price=b2c_price,
            b2b_price=b2b_price,
            commission_rate=rate,
            markup_b2c=markup_b2c,
            markup_b2b=markup_b2b,
            agency_commission=settings.agency_commission,
            agency_margin_share=share,
            real_margin_percent=round_money(real_margin),
            agency_discount_percent=round_money(agency_discount),
            b2c_profit=round_money(b2c - cost),
            b2b_profit=round_money(b2b - cost),
            agency_profit=round_money(base - b2b),
            real_b2c_margin_percent=_margin_percent(b2c, cost),
            real_b2b_margin_percent=_margin_percent(b2b, cost),
        )

    b2b = base * (1 + markup_b2b / 100)
    return TierPricing(
        working_mode="net",
        base_price=round_money(base),
        hotel_cost=round_money(base),
        b2c_price=round_money(b2c),
        b2b_price=round_money(b2b),
        commission_rate=settings.commission_rate,
        markup_b2c=markup_b2c,
        markup_b2b=markup_b2b,
        agency_commission=settings.agency_commission,
        agency_margin_share=settings.agency_margin_share,
        b2c_profit=round_money(b2c - base),
        b2b_profit=round_money(b2b - base),
        real_b2c_margin_percent=_margin_percent(b2c, base),
        real_b2b_margin_percent=_margin_percent(b2b, base),
    )
