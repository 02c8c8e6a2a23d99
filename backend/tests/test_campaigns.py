from __future__ import annotations

from datetime import date, timedelta

import pytest

from pricing_fakes import campaign_doc
from rate_engine.domain.pricing_models import CampaignRule
from rate_engine.schemas_pricing import DailyPrice
from rate_engine.services.pricing.campaigns import apply_campaigns, select_applicable_campaigns

# 2026-05-10 is a Sunday
CHECK_IN = date(2026, 5, 10)


def _daily(*prices: float):
    return [
        DailyPrice(date=CHECK_IN + timedelta(days=i), rate_id=f"r{i}", currency="EUR", price=p, final_price=p)
        for i, p in enumerate(prices)
    ]


def _campaign(campaign_id: str, **overrides) -> CampaignRule:
    return CampaignRule.from_doc(campaign_doc(campaign_id, **overrides))


def _select(campaigns, **kwargs):
    params = dict(
        check_in=CHECK_IN,
        check_out=CHECK_IN + timedelta(days=3),
        booking_date=date(2026, 4, 1),
        room_type_id="std",
        meal_plan_id="bb",
        market_id="market_eu",
    )
    params.update(kwargs)
    return select_applicable_campaigns(campaigns, **params)


# ---- application ----


def test_combinable_campaigns_stack_in_priority_order():
    p10 = _campaign("p10", priority=10, discount={"type": "percentage", "value": 10})
    p5 = _campaign("p5", priority=5, discount={"type": "percentage", "value": 5})

    outcome = apply_campaigns([p5, p10], _daily(100, 100, 100))

    assert [a.code for a in outcome.applied] == ["P10", "P5"]
    assert outcome.original_total == 300
    assert outcome.total_discount == 45
    assert outcome.final_total == 255
    assert outcome.daily[0].applied_campaigns == ["P10", "P5"]


def test_non_combinable_campaign_suppresses_lower_priorities():
    p10 = _campaign("p10", priority=10, discount={"type": "percentage", "value": 10})
    p8 = _campaign("p8", priority=8, combinable=False, discount={"type": "percentage", "value": 20})
    p5 = _campaign("p5", priority=5, discount={"type": "percentage", "value": 5})

    outcome = apply_campaigns([p5, p8, p10], _daily(100, 100, 100))

    assert [a.code for a in outcome.applied] == ["P10", "P8"]
    assert outcome.total_discount == 90
    assert outcome.final_total == 210


def test_input_breakdown_is_not_mutated():
    daily = _daily(100, 100)
    apply_campaigns([_campaign("p10")], daily)
    assert daily[0].final_price == 100
    assert daily[0].applied_campaigns == []


def test_sequential_percentage_applies_to_discounted_price():
    first = _campaign("first", priority=2, discount={"type": "percentage", "value": 10})
    second = _campaign("second", priority=1, calculation_type="sequential", discount={"type": "percentage", "value": 10})

    outcome = apply_campaigns([first, second], _daily(100))
    assert outcome.final_total == 81


def test_discounts_never_push_price_negative():
    fixed = _campaign("big", priority=10, discount={"type": "fixed", "value": 150})
    pct = _campaign("pct", priority=5, discount={"type": "percentage", "value": 50})

    outcome = apply_campaigns([fixed, pct], _daily(100, 60))

    assert outcome.final_total == 0
    assert outcome.total_discount == outcome.original_total == 160
    assert all(d.final_price == 0 for d in outcome.daily)
    # nothing was left for the second campaign
    assert [a.code for a in outcome.applied] == ["BIG"]


def test_fixed_discount_is_per_night():
    outcome = apply_campaigns([_campaign("fix", discount={"type": "fixed", "value": 15})], _daily(100, 100))
    assert outcome.total_discount == 30


def test_free_nights_zero_the_cheapest_nights():
    free = _campaign("stay3pay2", discount={"type": "free_nights", "free_nights": {"stay_nights": 3, "free_nights": 1}})

    outcome = apply_campaigns([free], _daily(100, 80, 120))

    assert outcome.total_discount == 80
    assert outcome.final_total == 220
    assert [d.is_free for d in outcome.daily] == [False, True, False]
    assert outcome.applied[0].free_nights == 1


def test_free_nights_need_enough_nights():
    free = _campaign("stay3pay2", discount={"type": "free_nights", "free_nights": {"stay_nights": 3, "free_nights": 1}})
    outcome = apply_campaigns([free], _daily(100, 80))
    assert outcome.applied == []
    assert outcome.final_total == 180


def test_weekday_filter_limits_discounted_nights():
    monday = _campaign("monday", conditions={"applicable_days": {"monday": True, "friday": False}})
    outcome = apply_campaigns([monday], _daily(100, 100, 100))

    assert [d.discount for d in outcome.daily] == [0, 10, 0]
    assert outcome.applied[0].applied_nights == 1


def test_non_combinable_that_discounts_nothing_does_not_block():
    out_of_window = _campaign(
        "late",
        priority=9,
        combinable=False,
        discount={"type": "free_nights", "free_nights": {"stay_nights": 7, "free_nights": 1}},
    )
    p5 = _campaign("p5", priority=5)

    outcome = apply_campaigns([out_of_window, p5], _daily(100, 100))
    assert [a.code for a in outcome.applied] == ["P5"]


# ---- selection ----


def test_selection_orders_by_priority_descending():
    campaigns = [_campaign("low", priority=1), _campaign("high", priority=20), _campaign("mid", priority=7)]
    assert [c.code for c in _select(campaigns)] == ["HIGH", "MID", "LOW"]


@pytest.mark.parametrize(
    "overrides",
    [
        {"status": "paused"},
        {"booking_window": {"start_date": "2026-04-02", "end_date": "2026-04-30"}},
        {"booking_window": {"start_date": "2026-01-01", "end_date": "2026-03-31"}},
        {"stay_window": {"start_date": "2026-05-13", "end_date": "2026-05-31"}},
        {"stay_window": {"start_date": "2026-04-01", "end_date": "2026-05-09"}},
        {"conditions": {"min_nights": 4}},
        {"conditions": {"max_nights": 2}},
        {"conditions": {"applicable_room_types": ["suite"]}},
        {"conditions": {"applicable_meal_plans": ["ai"]}},
        {"conditions": {"applicable_markets": ["market_us"]}},
        {"application_type": "checkin", "stay_window": {"start_date": "2026-05-11", "end_date": "2026-05-31"}},
    ],
)
def test_selection_filters_out_non_matching_campaigns(overrides):
    assert _select([_campaign("c", **overrides)]) == []


def test_stay_window_overlap_is_enough():
    partial = _campaign("partial", stay_window={"start_date": "2026-05-12", "end_date": "2026-05-31"})
    assert [c.code for c in _select([partial])] == ["PARTIAL"]

    outcome = apply_campaigns([partial], _daily(100, 100, 100))
    # only the night inside the stay window is discounted
    assert [d.discount for d in outcome.daily] == [0, 0, 10]


def test_channel_visibility():
    b2c_only = _campaign("web", visibility={"b2c": True, "b2b": False})
    assert _select([b2c_only], channel="b2c") == [b2c_only]
    assert _select([b2c_only], channel="b2b") == []
    assert _select([b2c_only], channel=None) == [b2c_only]


def test_scoped_campaign_matches_listed_room_type():
    scoped = _campaign("std_only", conditions={"applicable_room_types": ["std", "fam"]})
    assert _select([scoped]) == [scoped]
