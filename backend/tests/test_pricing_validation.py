from __future__ import annotations

import logging
from datetime import date

import pytest

from rate_engine.errors import PricingError
from rate_engine.schemas_pricing import PriceResult, PricingSummary
from rate_engine.services.pricing.tiers import calculate_tier_pricing
from rate_engine.services.pricing.validation import validate_pricing_result


def _result(**overrides) -> PriceResult:
    params = dict(
        hotel_id="hotel_1",
        room_type_id="std",
        meal_plan_id="bb",
        market_id="market_eu",
        check_in=date(2026, 5, 10),
        check_out=date(2026, 5, 12),
        nights=2,
        adults=2,
    )
    params.update(overrides)
    return PriceResult(**params)


def _summary(original: float, discount: float, final: float) -> PricingSummary:
    return PricingSummary(
        currency="EUR",
        nights=2,
        original_total=original,
        total_discount=discount,
        final_total=final,
        average_per_night=final / 2,
        tiers=calculate_tier_pricing(final, {}),
    )


def test_consistent_result_passes():
    result = _result(pricing=_summary(200, 20, 180))
    assert validate_pricing_result(result) is result


def test_failed_result_raises_with_reason():
    with pytest.raises(PricingError) as exc:
        validate_pricing_result(_result(success=False, error="BELOW_MIN_ADULTS"), {"room_index": 0})
    assert exc.value.code == "PRICING_CALCULATION_FAILED"
    assert exc.value.details["error"] == "BELOW_MIN_ADULTS"
    assert exc.value.details["room_index"] == 0


def test_missing_pricing_raises():
    with pytest.raises(PricingError) as exc:
        validate_pricing_result(_result())
    assert exc.value.code == "MISSING_PRICING_DATA"


def test_inconsistent_totals_only_warn(caplog):
    with caplog.at_level(logging.WARNING, logger="rate_engine.services.pricing.validation"):
        validate_pricing_result(_result(pricing=_summary(200, 20, 150)))
    assert "Pricing inconsistency" in caplog.text
