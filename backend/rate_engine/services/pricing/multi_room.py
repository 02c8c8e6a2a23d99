from __future__ import annotations

"""Multi-room booking totals.

Each room runs the full stay pipeline concurrently and independently;
totals are summed only after every room has settled. With
``throw_on_error`` the error of the first failing room (in room order) is
raised once every room has settled; otherwise failures are reported per
room and the remaining rooms are still priced.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

from rate_engine.config import DEFAULT_CURRENCY
from rate_engine.errors import AppError, BadRequestError, NotFoundError, PricingError
from rate_engine.schemas_pricing import (
    MultiRoomPriceResult,
    MultiRoomRequest,
    MultiRoomTotals,
    PriceQuery,
    PriceResult,
    RoomError,
    RoomPriceResult,
    RoomRequest,
)
from rate_engine.services.pricing.validation import validate_pricing_result
from rate_engine.utils import round_money

logger = logging.getLogger(__name__)


def select_channel_price(result: PriceResult, channel: str, rate_type: str) -> float:
    """B2C or B2B price, switching to the non-refundable tier when requested."""
    tiers = result.pricing.tiers
    if rate_type == "non_refundable" and result.non_refundable is not None:
        tiers = result.non_refundable.tiers
    return tiers.b2b_price if channel == "b2b" else tiers.b2c_price


async def _price_room(
    service,
    hotel_id: str,
    request: MultiRoomRequest,
    index: int,
    room: RoomRequest,
) -> Tuple[RoomPriceResult, Optional[RoomError]]:
    base: Dict[str, Any] = dict(
        room_index=index,
        room_type_id=room.room_type_id,
        meal_plan_id=room.meal_plan_id,
        rate_type=room.rate_type,
        adults=room.adults,
        children=room.children,
    )
    context = {"room_index": index, "room_type_id": room.room_type_id}
    query = PriceQuery(
        room_type_id=room.room_type_id,
        meal_plan_id=room.meal_plan_id,
        market_id=request.market_id,
        check_in=request.check_in,
        check_out=request.check_out,
        adults=room.adults,
        children=room.children,
        booking_date=request.booking_date,
        include_campaigns=request.include_campaigns,
    )

    try:
        result = await service.calculate_price_with_campaigns(hotel_id, query, request.channel)
        validate_pricing_result(result, context)
    except AppError as e:
        if request.throw_on_error:
            raise
        details = e.details or {}
        message = details.get("message") or e.message
        logger.warning("Room %s pricing failed: %s (%s)", index, e.code, message)
        code = details.get("error") or e.code
        return (
            RoomPriceResult(success=False, error=code, message=message, **base),
            RoomError(room_index=index, room_type_id=room.room_type_id, code=code, message=message),
        )
    except Exception as e:
        if request.throw_on_error:
            raise
        logger.warning("Room %s pricing failed unexpectedly", index, exc_info=True)
        return (
            RoomPriceResult(success=False, error="PRICING_CALCULATION_FAILED", message=str(e), **base),
            RoomError(room_index=index, room_type_id=room.room_type_id, code="PRICING_CALCULATION_FAILED", message=str(e)),
        )

    error: Optional[RoomError] = None
    if not result.availability.is_available:
        messages = [f"{i.date.isoformat()}: {', '.join(i.messages)}" for i in result.availability.issues]
        if request.throw_on_error:
            raise PricingError("ROOM_NOT_AVAILABLE", {**context, "issues": messages})
        error = RoomError(
            room_index=index,
            room_type_id=room.room_type_id,
            code="ROOM_NOT_AVAILABLE",
            message="; ".join(messages) or "Room not available",
        )

    return (
        RoomPriceResult(
            success=error is None,
            error=error.code if error else None,
            message=error.message if error else None,
            channel_price=select_channel_price(result, request.channel, room.rate_type),
            price=result,
            **base,
        ),
        error,
    )


async def calculate_multi_room_booking_price(service, hotel_id: str, request: MultiRoomRequest) -> MultiRoomPriceResult:
    if not request.rooms:
        raise PricingError("NO_ROOMS_PROVIDED")
    nights = (request.check_out - request.check_in).days
    if nights <= 0:
        raise BadRequestError(
            "INVALID_DATE_RANGE",
            {"check_in": request.check_in.isoformat(), "check_out": request.check_out.isoformat(), "nights": nights},
        )

    market = await service.repo.get_market(hotel_id, request.market_id)
    if not market:
        raise NotFoundError("MARKET_NOT_FOUND", {"market_id": request.market_id})

    settled = await asyncio.gather(
        *(_price_room(service, hotel_id, request, i, room) for i, room in enumerate(request.rooms)),
        return_exceptions=True,
    )
    for outcome in settled:
        if isinstance(outcome, BaseException):
            raise outcome

    rooms: List[RoomPriceResult] = []
    errors: List[RoomError] = []
    original = discount = final = channel_total = 0.0
    for room_result, error in settled:
        rooms.append(room_result)
        if error is not None:
            errors.append(error)
        if room_result.price is not None and room_result.price.pricing is not None:
            pricing = room_result.price.pricing
            original += pricing.original_total
            discount += pricing.total_discount
            final += pricing.final_total
            channel_total += room_result.channel_price or 0.0

    currency = market.get("currency") or DEFAULT_CURRENCY
    return MultiRoomPriceResult(
        success=not errors,
        hotel_id=hotel_id,
        market_id=request.market_id,
        channel=request.channel,
        check_in=request.check_in,
        check_out=request.check_out,
        nights=nights,
        room_count=len(request.rooms),
        rooms=rooms,
        totals=MultiRoomTotals(
            currency=currency,
            original_total=round_money(original),
            total_discount=round_money(discount),
            final_total=round_money(final),
            channel_total=round_money(channel_total),
        ),
        errors=errors,
    )
