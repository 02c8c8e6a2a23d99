from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, ReturnDocument

from rate_engine.domain.pricing_models import SeasonPricingOverride
from rate_engine.repositories.base_repository import get_collection, ref_filter
from rate_engine.utils import DayLike, now_utc, parse_day

ACTIVE = {"status": {"$ne": "inactive"}}


class PricingRepository:
    """Read access to pricing configuration plus the allotment counters.

    Dates are stored as ``YYYY-MM-DD`` strings so range filters compare
    lexicographically.
    """

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db
        self._hotels = get_collection(db, "hotels")
        self._room_types = get_collection(db, "room_types")
        self._meal_plans = get_collection(db, "meal_plans")
        self._markets = get_collection(db, "markets")
        self._seasons = get_collection(db, "seasons")
        self._rates = get_collection(db, "rates")
        self._campaigns = get_collection(db, "campaigns")

    # ------------------------------------------------------------------
    # Configuration documents
    # ------------------------------------------------------------------
    async def get_hotel(self, hotel_id: str) -> Optional[Dict[str, Any]]:
        return await self._hotels.find_one(ref_filter(_id=hotel_id))

    async def get_room_type(self, hotel_id: str, room_type_id: str) -> Optional[Dict[str, Any]]:
        return await self._room_types.find_one(ref_filter(_id=room_type_id, hotel_id=hotel_id))

    async def get_meal_plan(self, hotel_id: str, meal_plan_id: str) -> Optional[Dict[str, Any]]:
        # Meal plans may be shared across hotels (hotel_id absent)
        query = ref_filter(_id=meal_plan_id)
        query["$or"] = [ref_filter(hotel_id=hotel_id), {"hotel_id": None}]
        return await self._meal_plans.find_one(query)

    async def get_market(self, hotel_id: str, market_id: str) -> Optional[Dict[str, Any]]:
        return await self._markets.find_one(ref_filter(_id=market_id, hotel_id=hotel_id))

    async def find_seasons(self, hotel_id: str, market_id: str) -> List[Dict[str, Any]]:
        """Active seasons of a market; date-range matching is left to the caller."""
        query = {**ref_filter(hotel_id=hotel_id, market_id=market_id), **ACTIVE}
        return await self._seasons.find(query).to_list(length=500)

    async def find_season(self, hotel_id: str, market_id: str, day: DayLike) -> Optional[Dict[str, Any]]:
        """Season whose date ranges contain ``day``; highest priority wins."""
        target = parse_day(day)
        docs = await self.find_seasons(hotel_id, market_id)
        matching = [d for d in docs if SeasonPricingOverride.from_doc(d).contains(target)]
        if not matching:
            return None
        return max(matching, key=lambda d: int(d.get("priority") or 0))

    async def find_rate(
        self,
        hotel_id: str,
        room_type_id: str,
        meal_plan_id: str,
        market_id: str,
        day: DayLike,
    ) -> Optional[Dict[str, Any]]:
        query = self._rate_filter(hotel_id, room_type_id, meal_plan_id, market_id)
        query["date"] = parse_day(day).isoformat()
        return await self._rates.find_one(query)

    async def find_rates_in_range(
        self,
        hotel_id: str,
        room_type_id: str,
        meal_plan_id: str,
        market_id: str,
        start: DayLike,
        end: DayLike,
    ) -> List[Dict[str, Any]]:
        """Rates for ``start`` <= date < ``end`` ordered by date."""
        query = self._rate_filter(hotel_id, room_type_id, meal_plan_id, market_id)
        query["date"] = {"$gte": parse_day(start).isoformat(), "$lt": parse_day(end).isoformat()}
        cursor = self._rates.find(query).sort("date", ASCENDING)
        return await cursor.to_list(length=1000)

    async def find_campaigns(self, hotel_id: str) -> List[Dict[str, Any]]:
        query = {**ref_filter(hotel_id=hotel_id), "status": "active"}
        return await self._campaigns.find(query).to_list(length=500)

    # ------------------------------------------------------------------
    # Allotment counters
    # ------------------------------------------------------------------
    async def increment_sold(
        self,
        hotel_id: str,
        room_type_id: str,
        meal_plan_id: str,
        market_id: str,
        day: date,
        rooms: int,
    ) -> Optional[Dict[str, Any]]:
        """Atomically add ``rooms`` to sold when enough allotment is left.

        A rate without allotment is unlimited. Returns the updated rate, or
        None when the rate is missing or the remaining allotment is smaller
        than ``rooms``.
        """
        query = self._rate_filter(hotel_id, room_type_id, meal_plan_id, market_id)
        query["date"] = parse_day(day).isoformat()
        query["$or"] = [
            {"allotment": None},
            {"$expr": {"$gte": [{"$subtract": ["$allotment", {"$ifNull": ["$sold", 0]}]}, rooms]}},
        ]
        return await self._rates.find_one_and_update(
            query,
            {"$inc": {"sold": rooms}, "$set": {"updated_at": now_utc()}},
            return_document=ReturnDocument.AFTER,
        )

    async def decrement_sold(
        self,
        hotel_id: str,
        room_type_id: str,
        meal_plan_id: str,
        market_id: str,
        day: date,
        rooms: int,
    ) -> Optional[Dict[str, Any]]:
        """Subtract ``rooms`` from sold, never going below zero."""
        query = self._rate_filter(hotel_id, room_type_id, meal_plan_id, market_id)
        query["date"] = parse_day(day).isoformat()
        pipeline = [
            {
                "$set": {
                    "sold": {"$max": [0, {"$subtract": [{"$ifNull": ["$sold", 0]}, rooms]}]},
                    "updated_at": now_utc(),
                }
            }
        ]
        return await self._rates.find_one_and_update(query, pipeline, return_document=ReturnDocument.AFTER)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _rate_filter(hotel_id: str, room_type_id: str, meal_plan_id: str, market_id: str) -> Dict[str, Any]:
        return {
            **ref_filter(
                hotel_id=hotel_id,
                room_type_id=room_type_id,
                meal_plan_id=meal_plan_id,
                market_id=market_id,
            ),
            **ACTIVE,
        }
