from __future__ import annotations

"""Campaign selection and discount application.

Selection keeps campaigns whose booking window covers the booking date,
whose stay window overlaps the stay and whose night bounds, scope and
channel visibility match. Application walks the survivors by priority
(highest first): combinable campaigns stack; the first non-combinable
campaign that actually discounts something is applied to what is left
and ends the walk.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, List, Optional, Sequence

from rate_engine.domain.pricing_models import WEEKDAYS, CampaignRule
from rate_engine.schemas_pricing import AppliedCampaign, DailyPrice
from rate_engine.utils import DayLike, parse_day, round_money, today_utc


@dataclass
class CampaignOutcome:
    daily: List[DailyPrice]
    applied: List[AppliedCampaign] = field(default_factory=list)
    original_total: float = 0.0
    total_discount: float = 0.0
    final_total: float = 0.0


def _in_scope(allowed: Sequence[str], value: Optional[str]) -> bool:
    return not allowed or (value is not None and value in allowed)


def is_campaign_applicable(
    campaign: CampaignRule,
    *,
    check_in: date,
    check_out: date,
    booking_date: date,
    room_type_id: Optional[str] = None,
    meal_plan_id: Optional[str] = None,
    market_id: Optional[str] = None,
    channel: Optional[str] = None,
) -> bool:
    if campaign.status != "active":
        return False

    if campaign.booking_start and booking_date < campaign.booking_start:
        return False
    if campaign.booking_end and booking_date > campaign.booking_end:
        return False

    last_night = date.fromordinal(check_out.toordinal() - 1)
    if campaign.application_type == "checkin":
        if campaign.stay_start and check_in < campaign.stay_start:
            return False
        if campaign.stay_end and check_in > campaign.stay_end:
            return False
    else:
        if campaign.stay_start and last_night < campaign.stay_start:
            return False
        if campaign.stay_end and check_in > campaign.stay_end:
            return False

    nights = (check_out - check_in).days
    if campaign.min_nights and nights < campaign.min_nights:
        return False
    if campaign.max_nights and nights > campaign.max_nights:
        return False

    if not _in_scope(campaign.room_type_ids, room_type_id):
        return False
    if not _in_scope(campaign.meal_plan_ids, meal_plan_id):
        return False
    if not _in_scope(campaign.market_ids, market_id):
        return False

    if channel == "b2c" and not campaign.visible_b2c:
        return False
    if channel == "b2b" and not campaign.visible_b2b:
        return False
    return True


def select_applicable_campaigns(
    campaigns: Iterable[CampaignRule],
    *,
    check_in: DayLike,
    check_out: DayLike,
    booking_date: Optional[DayLike] = None,
    room_type_id: Optional[str] = None,
    meal_plan_id: Optional[str] = None,
    market_id: Optional[str] = None,
    channel: Optional[str] = None,
) -> List[CampaignRule]:
    """Return matching campaigns ordered by priority, highest first."""
    start, end = parse_day(check_in), parse_day(check_out)
    booked_on = parse_day(booking_date) if booking_date is not None else today_utc()
    matched = [
        c
        for c in campaigns
        if is_campaign_applicable(
            c,
            check_in=start,
            check_out=end,
            booking_date=booked_on,
            room_type_id=room_type_id,
            meal_plan_id=meal_plan_id,
            market_id=market_id,
            channel=channel,
        )
    ]
    return sorted(matched, key=lambda c: c.priority, reverse=True)


def _night_eligible(campaign: CampaignRule, night: date) -> bool:
    if campaign.application_type != "checkin":
        if campaign.stay_start and night < campaign.stay_start:
            return False
        if campaign.stay_end and night > campaign.stay_end:
            return False
    days = campaign.applicable_days
    if days and any(days.values()):
        return bool(days.get(WEEKDAYS[night.weekday()]))
    return True


def apply_campaign_to_breakdown(campaign: CampaignRule, daily: List[DailyPrice]) -> Optional[AppliedCampaign]:
    """Discount ``daily`` in place; return what was applied or None."""
    eligible = [d for d in daily if d.final_price > 0 and _night_eligible(campaign, d.date)]
    if not eligible:
        return None

    discounts: dict[int, float] = {}
    free_count: Optional[int] = None

    if campaign.discount_type == "free_nights":
        stay_nights = campaign.stay_nights or 0
        free = campaign.free_nights or 0
        if free <= 0 or stay_nights <= 0 or len(eligible) < stay_nights:
            return None
        cheapest = sorted(eligible, key=lambda d: (d.final_price, d.date))[:free]
        for night in cheapest:
            discounts[id(night)] = night.final_price
            night.is_free = True
        free_count = len(cheapest)
    elif campaign.discount_type == "fixed":
        for night in eligible:
            discounts[id(night)] = min(campaign.discount_value, night.final_price)
    else:
        percent = campaign.discount_value / 100
        for night in eligible:
            basis = night.final_price if campaign.calculation_type == "sequential" else night.price
            discounts[id(night)] = min(round_money(basis * percent), night.final_price)

    applied_nights = 0
    total = 0.0
    for night in eligible:
        amount = round_money(discounts.get(id(night), 0.0))
        if amount <= 0:
            continue
        night.discount = round_money(night.discount + amount)
        night.final_price = round_money(max(0.0, night.final_price - amount))
        night.applied_campaigns.append(campaign.code or campaign.id)
        applied_nights += 1
        total += amount

    if applied_nights == 0:
        return None
    return AppliedCampaign(
        campaign_id=campaign.id,
        code=campaign.code,
        name=campaign.name,
        discount_type=campaign.discount_type,
        discount_value=campaign.discount_value,
        calculation_type=campaign.calculation_type,
        application_type=campaign.application_type,
        priority=campaign.priority,
        combinable=campaign.combinable,
        discount_amount=round_money(total),
        applied_nights=applied_nights,
        free_nights=free_count,
    )


def apply_campaigns(campaigns: Sequence[CampaignRule], daily: Sequence[DailyPrice]) -> CampaignOutcome:
    """Apply ``campaigns`` (any order) to a copy of ``daily``."""
    nights = [d.model_copy(deep=True) for d in daily]
    applied: List[AppliedCampaign] = []

    for campaign in sorted(campaigns, key=lambda c: c.priority, reverse=True):
        result = apply_campaign_to_breakdown(campaign, nights)
        if result is None:
            continue
        applied.append(result)
        if not campaign.combinable:
            break

    original = round_money(sum(d.price for d in nights))
    discount = round_money(min(original, sum(a.discount_amount for a in applied)))
    return CampaignOutcome(
        daily=nights,
        applied=applied,
        original_total=original,
        total_discount=discount,
        final_total=max(0.0, round_money(original - discount)),
    )
