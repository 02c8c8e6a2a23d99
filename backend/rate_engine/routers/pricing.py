from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query

from rate_engine.db import get_db
from rate_engine.repositories.pricing_repository import PricingRepository
from rate_engine.schemas_pricing import (
    AvailabilityRequest,
    AvailabilityResult,
    BookingPriceQuery,
    BookingPriceResult,
    BulkPriceRequest,
    BulkPriceResult,
    CacheClearRequest,
    CampaignOut,
    MultiRoomPriceResult,
    MultiRoomRequest,
    PriceQuery,
    PriceResult,
    SalesChannel,
    TierPreviewRequest,
    TierPricing,
)
from rate_engine.services.price_cache import PriceCache, get_price_cache
from rate_engine.services.pricing.engine import PricingService
from rate_engine.services.pricing.tiers import calculate_tier_pricing

router = APIRouter(prefix="/api/pricing", tags=["pricing"])


async def get_pricing_service() -> PricingService:
    db = await get_db()
    return PricingService(PricingRepository(db), await get_price_cache())


@router.post("/hotels/{hotel_id}/calculate", response_model=PriceResult)
async def calculate_price(
    hotel_id: str,
    payload: PriceQuery,
    channel: Optional[SalesChannel] = Query(default=None),
    service: PricingService = Depends(get_pricing_service),
) -> PriceResult:
    """Campaign-adjusted price for one room over a date range."""
    return await service.calculate_price_with_campaigns(hotel_id, payload, channel)


@router.post("/hotels/{hotel_id}/booking-price", response_model=BookingPriceResult)
async def booking_price(
    hotel_id: str,
    payload: BookingPriceQuery,
    service: PricingService = Depends(get_pricing_service),
) -> BookingPriceResult:
    return await service.calculate_booking_price(hotel_id, payload)


@router.post("/hotels/{hotel_id}/bulk", response_model=BulkPriceResult)
async def bulk_prices(
    hotel_id: str,
    payload: BulkPriceRequest,
    service: PricingService = Depends(get_pricing_service),
) -> BulkPriceResult:
    return await service.bulk_calculate_prices(hotel_id, payload.queries)


@router.post("/hotels/{hotel_id}/multi-room", response_model=MultiRoomPriceResult)
async def multi_room_price(
    hotel_id: str,
    payload: MultiRoomRequest,
    service: PricingService = Depends(get_pricing_service),
) -> MultiRoomPriceResult:
    return await service.calculate_multi_room_booking_price(hotel_id, payload)


@router.post("/hotels/{hotel_id}/availability", response_model=AvailabilityResult)
async def availability(
    hotel_id: str,
    payload: AvailabilityRequest,
    service: PricingService = Depends(get_pricing_service),
) -> AvailabilityResult:
    return await service.check_availability(hotel_id, payload)


@router.get("/hotels/{hotel_id}/effective-settings")
async def effective_settings(
    hotel_id: str,
    room_type_id: str,
    market_id: str,
    day: date = Query(alias="date"),
    meal_plan_id: Optional[str] = None,
    service: PricingService = Depends(get_pricing_service),
) -> Dict[str, Any]:
    """Resolved settings for a room type on a day, with the layer each group came from."""
    return await service.get_effective_settings(hotel_id, room_type_id, market_id, day, meal_plan_id)


@router.get("/hotels/{hotel_id}/combination-table")
async def combination_table(
    hotel_id: str,
    room_type_id: str,
    market_id: str,
    day: date = Query(alias="date"),
    locale: str = "en",
    service: PricingService = Depends(get_pricing_service),
) -> Dict[str, Any]:
    return await service.get_combination_table(hotel_id, room_type_id, market_id, day, locale)


@router.get("/hotels/{hotel_id}/campaigns", response_model=List[CampaignOut])
async def applicable_campaigns(
    hotel_id: str,
    check_in: date,
    check_out: date,
    room_type_id: Optional[str] = None,
    meal_plan_id: Optional[str] = None,
    market_id: Optional[str] = None,
    booking_date: Optional[date] = None,
    channel: Optional[SalesChannel] = None,
    service: PricingService = Depends(get_pricing_service),
) -> List[CampaignOut]:
    return await service.get_applicable_campaigns(
        hotel_id,
        check_in=check_in,
        check_out=check_out,
        room_type_id=room_type_id,
        meal_plan_id=meal_plan_id,
        market_id=market_id,
        booking_date=booking_date,
        channel=channel,
    )


@router.post("/tiers/preview", response_model=TierPricing)
async def tiers_preview(payload: TierPreviewRequest) -> TierPricing:
    return calculate_tier_pricing(payload.base_price, payload.model_dump())


@router.get("/cache/stats")
async def cache_stats(cache: PriceCache = Depends(get_price_cache)) -> Dict[str, Any]:
    return await cache.get_stats()


@router.post("/cache/clear")
async def cache_clear(
    payload: Optional[CacheClearRequest] = None,
    cache: PriceCache = Depends(get_price_cache),
) -> Dict[str, Any]:
    prefix = payload.prefix if payload else None
    removed = await cache.invalidate_prefix(prefix) if prefix else await cache.clear()
    return {"ok": True, "prefix": prefix, "removed": removed}
