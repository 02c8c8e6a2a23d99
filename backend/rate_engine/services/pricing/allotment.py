from __future__ import annotations

"""Allotment hook for the booking layer.

The pricing engine only reads allotment. Booking persistence calls these
helpers to move the sold counter; each date is updated with a single
conditional write so two bookings cannot both take the last room.
"""

import logging
from datetime import date
from typing import Any, Dict, List, Sequence

from rate_engine.domain.pricing_models import DailyRate
from rate_engine.errors import BadRequestError
from rate_engine.utils import DayLike, parse_day

logger = logging.getLogger(__name__)


async def reserve_allotment(
    repo,
    hotel_id: str,
    room_type_id: str,
    meal_plan_id: str,
    market_id: str,
    dates: Sequence[DayLike],
    rooms: int = 1,
) -> Dict[str, Any]:
    """Take ``rooms`` on every date, or none of them.

    Per-date failures are collected (``RATE_NOT_FOUND``,
    ``INSUFFICIENT_ALLOTMENT``); when any date fails the dates already
    reserved are released again.
    """
    if not dates:
        raise BadRequestError("DATES_REQUIRED")
    reserved: List[date] = []
    errors: List[Dict[str, Any]] = []
    keys = (hotel_id, room_type_id, meal_plan_id, market_id)

    for raw in dates:
        day = parse_day(raw)
        updated = await repo.increment_sold(*keys, day, rooms)
        if updated is not None:
            reserved.append(day)
            continue
        existing = await repo.find_rate(*keys, day)
        if existing is None:
            errors.append({"date": day.isoformat(), "code": "RATE_NOT_FOUND"})
        else:
            available = DailyRate.from_doc(existing).available
            errors.append(
                {"date": day.isoformat(), "code": "INSUFFICIENT_ALLOTMENT", "available": available, "requested": rooms}
            )

    if errors and reserved:
        logger.warning(
            "Allotment reservation failed for hotel=%s room_type=%s on %s; releasing %s reserved date(s)",
            hotel_id,
            room_type_id,
            [e["date"] for e in errors],
            len(reserved),
        )
        for day in reserved:
            await repo.decrement_sold(*keys, day, rooms)
        reserved = []

    return {
        "success": not errors,
        "rooms": rooms,
        "reserved_dates": [d.isoformat() for d in reserved],
        "errors": errors,
    }


async def release_allotment(
    repo,
    hotel_id: str,
    room_type_id: str,
    meal_plan_id: str,
    market_id: str,
    dates: Sequence[DayLike],
    rooms: int = 1,
) -> Dict[str, Any]:
    if not dates:
        raise BadRequestError("DATES_REQUIRED")
    released: List[str] = []
    errors: List[Dict[str, Any]] = []
    for raw in dates:
        day = parse_day(raw)
        updated = await repo.decrement_sold(hotel_id, room_type_id, meal_plan_id, market_id, day, rooms)
        if updated is None:
            logger.warning("Allotment release skipped: no rate for %s/%s on %s", hotel_id, room_type_id, day)
            errors.append({"date": day.isoformat(), "code": "RATE_NOT_FOUND"})
        else:
            released.append(day.isoformat())
    return {"success": not errors, "rooms": rooms, "released_dates": released, "errors": errors}


async def get_allotment_status(
    repo,
    hotel_id: str,
    room_type_id: str,
    meal_plan_id: str,
    market_id: str,
    dates: Sequence[DayLike],
) -> List[Dict[str, Any]]:
    out: List[Dict[str, Any]] = []
    for raw in dates:
        day = parse_day(raw)
        doc = await repo.find_rate(hotel_id, room_type_id, meal_plan_id, market_id, day)
        if doc is None:
            out.append({"date": day.isoformat(), "has_rate": False})
            continue
        rate = DailyRate.from_doc(doc)
        out.append(
            {
                "date": day.isoformat(),
                "has_rate": True,
                "allotment": rate.allotment,
                "sold": rate.sold,
                "available": rate.available,
                "stop_sale": rate.stop_sale,
            }
        )
    return out
