from __future__ import annotations

"""Pricing service: loads configuration and runs the pricing pipeline.

Every entry point fetches its documents concurrently, resolves effective
settings, and returns a pydantic result. Business-rule declines come back
as ``success=False`` results; missing documents raise ``NotFoundError``.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence

from rate_engine.config import MAX_BULK_QUERIES
from rate_engine.domain.pricing_models import (
    CampaignRule,
    DailyRate,
    HotelPricingConfig,
    MarketPricingOverride,
    MultiplierTemplate,
    RoomTypePricingConfig,
    SeasonPricingOverride,
)
from rate_engine.errors import AppError, BadRequestError, NotFoundError
from rate_engine.schemas_pricing import (
    AvailabilityDate,
    AvailabilityIssue,
    AvailabilityRequest,
    AvailabilityResult,
    AvailabilitySummary,
    BookingPriceQuery,
    BookingPriceResult,
    BulkPriceItem,
    BulkPriceResult,
    CampaignOut,
    CampaignSummary,
    DailyPrice,
    MultiRoomPriceResult,
    MultiRoomRequest,
    NonRefundablePricing,
    PriceQuery,
    PriceResult,
    PricingSummary,
)
from rate_engine.services.price_cache import (
    CACHE_TTL,
    PriceCache,
    availability_key,
    campaigns_key,
    price_key,
)
from rate_engine.services.pricing.campaigns import apply_campaigns, select_applicable_campaigns
from rate_engine.services.pricing.multipliers import (
    build_combination_table,
    combination_name,
    generate_default_adult_multipliers,
)
from rate_engine.services.pricing.multi_room import calculate_multi_room_booking_price
from rate_engine.services.pricing.occupancy import COMBINATION_INACTIVE, calculate_occupancy_price
from rate_engine.services.pricing.override_resolver import EffectiveSettings, resolve_effective_settings
from rate_engine.services.pricing.restrictions import check_restrictions
from rate_engine.services.pricing.tiers import calculate_tier_pricing
from rate_engine.utils import iter_stay_dates, parse_day, round_money, today_utc

logger = logging.getLogger(__name__)

NO_RATE_MESSAGE = "No rate defined for this date"


@dataclass(frozen=True)
class PricingContext:
    hotel: HotelPricingConfig
    room_type: RoomTypePricingConfig
    market: MarketPricingOverride
    meal_plan: Dict[str, Any]


@dataclass(frozen=True)
class EffectiveRate:
    rate: DailyRate
    context: PricingContext
    season: Optional[SeasonPricingOverride]
    settings: EffectiveSettings


class PricingService:
    def __init__(
        self,
        repo,
        cache: Optional[PriceCache] = None,
        *,
        today: Callable[[], date] = today_utc,
    ) -> None:
        self.repo = repo
        self.cache = cache
        self._today = today

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------
    async def _season(self, hotel_id: str, market_id: str, day: date) -> Optional[SeasonPricingOverride]:
        doc = await self.repo.find_season(hotel_id, market_id, day)
        return SeasonPricingOverride.from_doc(doc) if doc else None

    async def load_context(
        self,
        hotel_id: str,
        room_type_id: str,
        market_id: str,
        meal_plan_id: Optional[str] = None,
    ) -> PricingContext:
        hotel_doc, room_type_doc, market_doc, meal_plan_doc = await asyncio.gather(
            self.repo.get_hotel(hotel_id),
            self.repo.get_room_type(hotel_id, room_type_id),
            self.repo.get_market(hotel_id, market_id),
            self.repo.get_meal_plan(hotel_id, meal_plan_id) if meal_plan_id else _none(),
        )
        if not hotel_doc:
            raise NotFoundError("HOTEL_NOT_FOUND", {"hotel_id": hotel_id})
        if not room_type_doc:
            raise NotFoundError("ROOM_TYPE_NOT_FOUND", {"room_type_id": room_type_id})
        if not market_doc:
            raise NotFoundError("MARKET_NOT_FOUND", {"market_id": market_id})
        if meal_plan_id and not meal_plan_doc:
            raise NotFoundError("MEAL_PLAN_NOT_FOUND", {"meal_plan_id": meal_plan_id})
        return PricingContext(
            hotel=HotelPricingConfig.from_doc(hotel_doc),
            room_type=RoomTypePricingConfig.from_doc(room_type_doc),
            market=MarketPricingOverride.from_doc(market_doc),
            meal_plan=meal_plan_doc or {},
        )

    def _settings(
        self,
        ctx: PricingContext,
        season: Optional[SeasonPricingOverride],
        rate: Optional[DailyRate] = None,
    ) -> EffectiveSettings:
        return resolve_effective_settings(ctx.room_type, ctx.market, season, rate, ctx.hotel)

    async def get_effective_rate(
        self,
        hotel_id: str,
        room_type_id: str,
        meal_plan_id: str,
        market_id: str,
        day: Any,
    ) -> EffectiveRate:
        target = parse_day(day)
        rate_doc, ctx, season = await asyncio.gather(
            self.repo.find_rate(hotel_id, room_type_id, meal_plan_id, market_id, target),
            self.load_context(hotel_id, room_type_id, market_id, meal_plan_id),
            self._season(hotel_id, market_id, target),
        )
        if not rate_doc:
            raise NotFoundError("RATE_NOT_FOUND", {"date": target.isoformat()})
        rate = DailyRate.from_doc(rate_doc)
        return EffectiveRate(rate=rate, context=ctx, season=season, settings=self._settings(ctx, season, rate))

    async def _cached(self, key: str, category: str, model, compute):
        """Run ``compute`` through the cache, storing JSON and returning ``model``."""
        if self.cache is None:
            return await compute()

        async def _compute_json() -> Dict[str, Any]:
            return (await compute()).model_dump(mode="json")

        data = await self.cache.get_or_set(key, _compute_json, CACHE_TTL[category])
        return model.model_validate(data)

    # ------------------------------------------------------------------
    # Single date
    # ------------------------------------------------------------------
    async def calculate_booking_price(self, hotel_id: str, query: BookingPriceQuery) -> BookingPriceResult:
        booking_date = query.booking_date or self._today()
        key = price_key(
            hotel_id,
            query.room_type_id,
            query.meal_plan_id,
            query.market_id,
            kind="booking",
            date=query.date,
            nights=query.nights,
            adults=query.adults,
            children=[c.model_dump() for c in query.children],
            rooms=query.rooms,
            booking_date=booking_date,
        )

        async def compute() -> BookingPriceResult:
            eff = await self.get_effective_rate(
                hotel_id, query.room_type_id, query.meal_plan_id, query.market_id, query.date
            )
            restrictions = check_restrictions(
                eff.rate,
                adults=query.adults,
                check_in=query.date,
                check_out=query.date + timedelta(days=query.nights),
                booking_date=booking_date,
                required_rooms=query.rooms,
                min_adults=eff.settings.min_adults,
            )
            base = dict(date=query.date, rate_id=eff.rate.id, currency=eff.settings.currency)
            if not restrictions.is_bookable:
                return BookingPriceResult(
                    success=False,
                    error="NOT_BOOKABLE",
                    message="; ".join(restrictions.messages),
                    restrictions=restrictions,
                    **base,
                )

            occupancy = calculate_occupancy_price(
                eff.rate, query.adults, query.children, query.nights, eff.settings
            )
            if not occupancy.is_available:
                return BookingPriceResult(
                    success=False,
                    error=COMBINATION_INACTIVE,
                    message=f"Occupancy {occupancy.combination_key} is not sellable",
                    occupancy=occupancy,
                    restrictions=restrictions,
                    **base,
                )
            return BookingPriceResult(
                occupancy=occupancy,
                tiers=calculate_tier_pricing(occupancy.total_price, eff.settings.commercial),
                restrictions=restrictions,
                **base,
            )

        return await self._cached(key, "price", BookingPriceResult, compute)

    async def bulk_calculate_prices(
        self,
        hotel_id: str,
        queries: Sequence[BookingPriceQuery],
    ) -> BulkPriceResult:
        if len(queries) > MAX_BULK_QUERIES:
            raise BadRequestError("MAX_100_QUERIES", {"max": MAX_BULK_QUERIES, "received": len(queries)})

        async def run(query: BookingPriceQuery) -> BulkPriceItem:
            payload = query.model_dump(mode="json")
            try:
                result = await self.calculate_booking_price(hotel_id, query)
            except AppError as e:
                return BulkPriceItem(success=False, query=payload, error=e.code)
            except Exception:
                logger.warning("Bulk price query failed for hotel=%s: %s", hotel_id, payload, exc_info=True)
                return BulkPriceItem(success=False, query=payload, error="PRICING_CALCULATION_FAILED")
            return BulkPriceItem(success=result.success, query=payload, result=result, error=result.error)

        items = list(await asyncio.gather(*(run(q) for q in queries)))
        succeeded = sum(1 for i in items if i.success)
        return BulkPriceResult(total=len(items), succeeded=succeeded, failed=len(items) - succeeded, items=items)

    # ------------------------------------------------------------------
    # Date range
    # ------------------------------------------------------------------
    @staticmethod
    def _check_range(check_in: date, check_out: date) -> int:
        nights = (check_out - check_in).days
        if nights <= 0:
            raise BadRequestError(
                "INVALID_DATE_RANGE",
                {"check_in": check_in.isoformat(), "check_out": check_out.isoformat(), "nights": nights},
            )
        return nights

    async def _seasons_by_date(self, hotel_id: str, market_id: str, dates: List[date]) -> Dict[date, Optional[SeasonPricingOverride]]:
        docs = await self.repo.find_seasons(hotel_id, market_id)
        seasons = sorted((SeasonPricingOverride.from_doc(d) for d in docs), key=lambda s: s.priority, reverse=True)
        return {d: next((s for s in seasons if s.contains(d)), None) for d in dates}

    async def _campaign_rules(self, hotel_id: str) -> List[CampaignRule]:
        docs = await self.repo.find_campaigns(hotel_id)
        return [CampaignRule.from_doc(d) for d in docs]

    async def calculate_price_with_campaigns(
        self,
        hotel_id: str,
        query: PriceQuery,
        channel: Optional[str] = None,
    ) -> PriceResult:
        nights = self._check_range(query.check_in, query.check_out)
        booking_date = query.booking_date or self._today()
        key = price_key(
            hotel_id,
            query.room_type_id,
            query.meal_plan_id,
            query.market_id,
            kind="stay",
            check_in=query.check_in,
            check_out=query.check_out,
            adults=query.adults,
            children=[c.model_dump() for c in query.children],
            rooms=query.rooms,
            booking_date=booking_date,
            include_campaigns=query.include_campaigns,
            channel=channel,
        )

        async def compute() -> PriceResult:
            return await self._price_stay(hotel_id, query, nights, booking_date, channel)

        return await self._cached(key, "price", PriceResult, compute)

    async def _price_stay(
        self,
        hotel_id: str,
        query: PriceQuery,
        nights: int,
        booking_date: date,
        channel: Optional[str],
    ) -> PriceResult:
        dates = list(iter_stay_dates(query.check_in, query.check_out))
        ctx, rate_docs, seasons, campaigns = await asyncio.gather(
            self.load_context(hotel_id, query.room_type_id, query.market_id, query.meal_plan_id),
            self.repo.find_rates_in_range(
                hotel_id, query.room_type_id, query.meal_plan_id, query.market_id, query.check_in, query.check_out
            ),
            self._seasons_by_date(hotel_id, query.market_id, dates),
            self._campaign_rules(hotel_id) if query.include_campaigns else _empty(),
        )
        if not rate_docs:
            raise NotFoundError(
                "NO_RATES_FOUND",
                {"check_in": query.check_in.isoformat(), "check_out": query.check_out.isoformat()},
            )
        rates = {r.date: r for r in (DailyRate.from_doc(d) for d in rate_docs)}

        header = dict(
            hotel_id=hotel_id,
            room_type_id=query.room_type_id,
            meal_plan_id=query.meal_plan_id,
            market_id=query.market_id,
            check_in=query.check_in,
            check_out=query.check_out,
            nights=nights,
            adults=query.adults,
            children=query.children,
        )

        arrival_settings = self._settings(ctx, seasons[dates[0]], rates.get(dates[0]))
        if query.adults < arrival_settings.min_adults:
            return PriceResult(
                success=False,
                error="BELOW_MIN_ADULTS",
                message=f"Minimum {arrival_settings.min_adults} adult(s) required",
                availability=AvailabilitySummary(is_available=False, all_dates_bookable=False),
                **header,
            )

        daily: List[DailyPrice] = []
        issues: List[AvailabilityIssue] = []
        first_occupancy = None
        for day in dates:
            rate = rates.get(day)
            if rate is None:
                issues.append(AvailabilityIssue(date=day, messages=[NO_RATE_MESSAGE]))
                continue
            settings = self._settings(ctx, seasons[day], rate)
            restrictions = check_restrictions(
                rate,
                adults=query.adults,
                check_in=query.check_in,
                check_out=query.check_out,
                booking_date=booking_date,
                required_rooms=query.rooms,
                min_adults=settings.min_adults,
                is_check_in=day == dates[0],
                is_check_out=day == dates[-1],
            )
            occupancy = calculate_occupancy_price(rate, query.adults, query.children, 1, settings)
            if not occupancy.is_available:
                return PriceResult(
                    success=False,
                    error=COMBINATION_INACTIVE,
                    message=f"Occupancy {occupancy.combination_key} is not sellable",
                    pricing_type=occupancy.pricing_type,
                    combination_key=occupancy.combination_key,
                    availability=AvailabilitySummary(
                        is_available=False,
                        all_dates_bookable=False,
                        issues=[AvailabilityIssue(date=day, messages=["Occupancy combination not available"])],
                    ),
                    **header,
                )
            if first_occupancy is None:
                first_occupancy = occupancy
            if not restrictions.is_bookable:
                issues.append(AvailabilityIssue(date=day, messages=restrictions.messages))
            daily.append(
                DailyPrice(
                    date=day,
                    rate_id=rate.id,
                    currency=settings.currency,
                    price=occupancy.per_night_price,
                    final_price=occupancy.per_night_price,
                    available=rate.available,
                    line_items=occupancy.line_items,
                    restrictions=restrictions,
                )
            )

        applicable = select_applicable_campaigns(
            campaigns,
            check_in=query.check_in,
            check_out=query.check_out,
            booking_date=booking_date,
            room_type_id=query.room_type_id,
            meal_plan_id=query.meal_plan_id,
            market_id=query.market_id,
            channel=channel,
        )
        outcome = apply_campaigns(applicable, daily)

        commercial = arrival_settings.commercial
        pricing = PricingSummary(
            currency=arrival_settings.currency,
            nights=nights,
            original_total=outcome.original_total,
            total_discount=outcome.total_discount,
            final_total=outcome.final_total,
            average_per_night=round_money(outcome.final_total / nights),
            tiers=calculate_tier_pricing(outcome.final_total, commercial),
        )

        non_refundable = None
        nr = arrival_settings.non_refundable
        if nr.enabled and nr.discount_percent > 0:
            nr_total = round_money(outcome.final_total * (1 - nr.discount_percent / 100))
            non_refundable = NonRefundablePricing(
                discount_percent=nr.discount_percent,
                final_total=nr_total,
                tiers=calculate_tier_pricing(nr_total, commercial),
            )

        known = [d.available for d in outcome.daily if d.available is not None]
        all_bookable = not issues
        return PriceResult(
            pricing_type=first_occupancy.pricing_type if first_occupancy else None,
            combination_key=first_occupancy.combination_key if first_occupancy else None,
            multiplier=first_occupancy.multiplier if first_occupancy else None,
            daily_breakdown=outcome.daily,
            pricing=pricing,
            campaigns=CampaignSummary(applied=outcome.applied, total_discount=outcome.total_discount),
            availability=AvailabilitySummary(
                is_available=all_bookable and len(outcome.daily) == nights,
                all_dates_bookable=all_bookable,
                min_available=min(known) if known else None,
                issues=issues,
            ),
            non_refundable=non_refundable,
            **header,
        )

    async def check_availability(self, hotel_id: str, req: AvailabilityRequest) -> AvailabilityResult:
        self._check_range(req.check_in, req.check_out)
        booking_date = req.booking_date or self._today()
        key = availability_key(
            hotel_id,
            req.room_type_id,
            req.meal_plan_id,
            req.market_id,
            check_in=req.check_in,
            check_out=req.check_out,
            adults=req.adults,
            rooms=req.rooms,
            booking_date=booking_date,
        )

        async def compute() -> AvailabilityResult:
            dates = list(iter_stay_dates(req.check_in, req.check_out))
            ctx, rate_docs, seasons = await asyncio.gather(
                self.load_context(hotel_id, req.room_type_id, req.market_id, req.meal_plan_id),
                self.repo.find_rates_in_range(
                    hotel_id, req.room_type_id, req.meal_plan_id, req.market_id, req.check_in, req.check_out
                ),
                self._seasons_by_date(hotel_id, req.market_id, dates),
            )
            rates = {r.date: r for r in (DailyRate.from_doc(d) for d in rate_docs)}
            out: List[AvailabilityDate] = []
            for day in dates:
                rate = rates.get(day)
                if rate is None:
                    out.append(AvailabilityDate(date=day, has_rate=False, is_bookable=False, messages=[NO_RATE_MESSAGE]))
                    continue
                result = check_restrictions(
                    rate,
                    adults=req.adults,
                    check_in=req.check_in,
                    check_out=req.check_out,
                    booking_date=booking_date,
                    required_rooms=req.rooms,
                    min_adults=self._settings(ctx, seasons[day], rate).min_adults,
                    is_check_in=day == dates[0],
                    is_check_out=day == dates[-1],
                )
                out.append(
                    AvailabilityDate(
                        date=day,
                        has_rate=True,
                        is_bookable=result.is_bookable,
                        available=rate.available,
                        messages=result.messages,
                    )
                )
            unavailable = [d.date for d in out if not d.is_bookable]
            return AvailabilityResult(
                hotel_id=hotel_id,
                room_type_id=req.room_type_id,
                meal_plan_id=req.meal_plan_id,
                market_id=req.market_id,
                check_in=req.check_in,
                check_out=req.check_out,
                is_available=not unavailable,
                unavailable_dates=unavailable,
                dates=out,
            )

        return await self._cached(key, "availability", AvailabilityResult, compute)

    # ------------------------------------------------------------------
    # Campaigns
    # ------------------------------------------------------------------
    async def get_applicable_campaigns(
        self,
        hotel_id: str,
        *,
        check_in: date,
        check_out: date,
        room_type_id: Optional[str] = None,
        meal_plan_id: Optional[str] = None,
        market_id: Optional[str] = None,
        booking_date: Optional[date] = None,
        channel: Optional[str] = None,
    ) -> List[CampaignOut]:
        self._check_range(check_in, check_out)
        booking_date = booking_date or self._today()
        key = campaigns_key(
            hotel_id,
            check_in=check_in,
            check_out=check_out,
            room_type_id=room_type_id,
            meal_plan_id=meal_plan_id,
            market_id=market_id,
            booking_date=booking_date,
            channel=channel,
        )

        async def compute() -> List[Dict[str, Any]]:
            rules = select_applicable_campaigns(
                await self._campaign_rules(hotel_id),
                check_in=check_in,
                check_out=check_out,
                booking_date=booking_date,
                room_type_id=room_type_id,
                meal_plan_id=meal_plan_id,
                market_id=market_id,
                channel=channel,
            )
            return [_campaign_out(r).model_dump(mode="json") for r in rules]

        if self.cache is None:
            data = await compute()
        else:
            data = await self.cache.get_or_set(key, compute, CACHE_TTL["campaigns"])
        return [CampaignOut.model_validate(item) for item in data]

    # ------------------------------------------------------------------
    # Multi-room
    # ------------------------------------------------------------------
    async def calculate_multi_room_booking_price(self, hotel_id: str, request: MultiRoomRequest) -> MultiRoomPriceResult:
        return await calculate_multi_room_booking_price(self, hotel_id, request)

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------
    async def get_effective_settings(
        self,
        hotel_id: str,
        room_type_id: str,
        market_id: str,
        day: date,
        meal_plan_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        ctx, season, rate_doc = await asyncio.gather(
            self.load_context(hotel_id, room_type_id, market_id, meal_plan_id),
            self._season(hotel_id, market_id, day),
            self.repo.find_rate(hotel_id, room_type_id, meal_plan_id, market_id, day) if meal_plan_id else _none(),
        )
        rate = DailyRate.from_doc(rate_doc) if rate_doc else None
        settings = self._settings(ctx, season, rate)
        return {
            "date": day.isoformat(),
            "season_id": season.id if season else None,
            "rate_id": rate.id if rate else None,
            "settings": settings.to_dict(),
        }

    async def get_combination_table(
        self,
        hotel_id: str,
        room_type_id: str,
        market_id: str,
        day: date,
        locale: str = "en",
    ) -> Dict[str, Any]:
        ctx, season = await asyncio.gather(
            self.load_context(hotel_id, room_type_id, market_id),
            self._season(hotel_id, market_id, day),
        )
        settings = self._settings(ctx, season)
        room_type = ctx.room_type
        template = settings.multiplier_template
        if not template.adult_multipliers:
            template = MultiplierTemplate(
                adult_multipliers=generate_default_adult_multipliers(
                    room_type.max_adults, room_type.base_occupancy, settings.min_adults
                ),
                child_multipliers=template.child_multipliers,
                combination_table=template.combination_table,
                rounding_rule=template.rounding_rule,
            )
        table = build_combination_table(
            template,
            min_adults=settings.min_adults,
            max_adults=room_type.max_adults,
            max_children=room_type.max_children,
            age_groups=settings.child_age_groups,
        )
        return {
            "room_type_id": room_type.id,
            "use_multipliers": settings.use_multipliers,
            "rounding_rule": template.rounding_rule,
            "combinations": [
                {
                    **entry.to_doc(),
                    "name": combination_name(entry.key, settings.child_age_groups, locale),
                    "effective_multiplier": entry.effective_multiplier,
                }
                for entry in table
            ],
        }


def _campaign_out(rule: CampaignRule) -> CampaignOut:
    return CampaignOut(
        campaign_id=rule.id,
        code=rule.code,
        name=rule.name,
        discount_type=rule.discount_type,
        discount_value=rule.discount_value,
        application_type=rule.application_type,
        calculation_type=rule.calculation_type,
        combinable=rule.combinable,
        priority=rule.priority,
        stay_nights=rule.stay_nights,
        free_nights=rule.free_nights,
        visible_b2c=rule.visible_b2c,
        visible_b2b=rule.visible_b2b,
    )


async def _none() -> None:
    return None


async def _empty() -> List[Any]:
    return []
