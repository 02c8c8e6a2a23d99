"""In-memory stand-in for PricingRepository plus document builders.

Documents use the same field names as the Mongo collections, so the
domain ``from_doc`` constructors are exercised exactly as in production.
"""

from __future__ import annotations

import copy
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Set

from rate_engine.domain.pricing_models import SeasonPricingOverride
from rate_engine.utils import DayLike, parse_day

HOTEL_ID = "hotel_1"
MARKET_ID = "market_eu"
MEAL_PLAN_ID = "bb"

AGE_GROUPS = [
    {"code": "infant", "min_age": 0, "max_age": 2, "name": {"en": "Infant", "tr": "Bebek"}},
    {"code": "child", "min_age": 3, "max_age": 11, "name": {"en": "Child", "tr": "Cocuk"}},
]


class FakePricingRepository:
    def __init__(self) -> None:
        self.hotels: Dict[str, Dict[str, Any]] = {}
        self.room_types: Dict[str, Dict[str, Any]] = {}
        self.meal_plans: Dict[str, Dict[str, Any]] = {}
        self.markets: Dict[str, Dict[str, Any]] = {}
        self.seasons: List[Dict[str, Any]] = []
        self.rates: List[Dict[str, Any]] = []
        self.campaigns: List[Dict[str, Any]] = []
        self.broken_room_types: Set[str] = set()
        self.calls: Dict[str, int] = {}

    def _count(self, name: str) -> None:
        self.calls[name] = self.calls.get(name, 0) + 1

    # ---- configuration ----

    async def get_hotel(self, hotel_id: str) -> Optional[Dict[str, Any]]:
        self._count("get_hotel")
        return copy.deepcopy(self.hotels.get(hotel_id))

    async def get_room_type(self, hotel_id: str, room_type_id: str) -> Optional[Dict[str, Any]]:
        self._count("get_room_type")
        if room_type_id in self.broken_room_types:
            raise RuntimeError(f"storage failure reading room type {room_type_id}")
        doc = self.room_types.get(room_type_id)
        if doc is None or doc.get("hotel_id") != hotel_id:
            return None
        return copy.deepcopy(doc)

    async def get_meal_plan(self, hotel_id: str, meal_plan_id: str) -> Optional[Dict[str, Any]]:
        doc = self.meal_plans.get(meal_plan_id)
        if doc is None or doc.get("hotel_id") not in (hotel_id, None):
            return None
        return copy.deepcopy(doc)

    async def get_market(self, hotel_id: str, market_id: str) -> Optional[Dict[str, Any]]:
        doc = self.markets.get(market_id)
        if doc is None or doc.get("hotel_id") != hotel_id:
            return None
        return copy.deepcopy(doc)

    async def find_seasons(self, hotel_id: str, market_id: str) -> List[Dict[str, Any]]:
        self._count("find_seasons")
        return copy.deepcopy(
            [
                s
                for s in self.seasons
                if s.get("hotel_id") == hotel_id and s.get("market_id") == market_id and s.get("status") != "inactive"
            ]
        )

    async def find_season(self, hotel_id: str, market_id: str, day: DayLike) -> Optional[Dict[str, Any]]:
        target = parse_day(day)
        matching = [s for s in await self.find_seasons(hotel_id, market_id) if SeasonPricingOverride.from_doc(s).contains(target)]
        if not matching:
            return None
        return max(matching, key=lambda s: int(s.get("priority") or 0))

    def _rate_matches(self, doc, hotel_id, room_type_id, meal_plan_id, market_id) -> bool:
        return (
            doc["hotel_id"] == hotel_id
            and doc["room_type_id"] == room_type_id
            and doc["meal_plan_id"] == meal_plan_id
            and doc["market_id"] == market_id
            and doc.get("status") != "inactive"
        )

    def _find(self, hotel_id, room_type_id, meal_plan_id, market_id, day) -> Optional[Dict[str, Any]]:
        key = parse_day(day).isoformat()
        for doc in self.rates:
            if self._rate_matches(doc, hotel_id, room_type_id, meal_plan_id, market_id) and doc["date"] == key:
                return doc
        return None

    async def find_rate(self, hotel_id, room_type_id, meal_plan_id, market_id, day) -> Optional[Dict[str, Any]]:
        return copy.deepcopy(self._find(hotel_id, room_type_id, meal_plan_id, market_id, day))

    async def find_rates_in_range(self, hotel_id, room_type_id, meal_plan_id, market_id, start, end) -> List[Dict[str, Any]]:
        self._count("find_rates_in_range")
        lo, hi = parse_day(start).isoformat(), parse_day(end).isoformat()
        docs = [
            d
            for d in self.rates
            if self._rate_matches(d, hotel_id, room_type_id, meal_plan_id, market_id) and lo <= d["date"] < hi
        ]
        return copy.deepcopy(sorted(docs, key=lambda d: d["date"]))

    async def find_campaigns(self, hotel_id: str) -> List[Dict[str, Any]]:
        self._count("find_campaigns")
        return copy.deepcopy([c for c in self.campaigns if c.get("hotel_id") == hotel_id and c.get("status") == "active"])

    # ---- allotment ----

    async def increment_sold(self, hotel_id, room_type_id, meal_plan_id, market_id, day, rooms) -> Optional[Dict[str, Any]]:
        doc = self._find(hotel_id, room_type_id, meal_plan_id, market_id, day)
        if doc is None:
            return None
        allotment = doc.get("allotment")
        if allotment is not None and allotment - doc.get("sold", 0) < rooms:
            return None
        doc["sold"] = doc.get("sold", 0) + rooms
        return copy.deepcopy(doc)

    async def decrement_sold(self, hotel_id, room_type_id, meal_plan_id, market_id, day, rooms) -> Optional[Dict[str, Any]]:
        doc = self._find(hotel_id, room_type_id, meal_plan_id, market_id, day)
        if doc is None:
            return None
        doc["sold"] = max(0, doc.get("sold", 0) - rooms)
        return copy.deepcopy(doc)


# ---- document builders ----


def room_type_doc(room_type_id: str, **overrides: Any) -> Dict[str, Any]:
    doc: Dict[str, Any] = {
        "_id": room_type_id,
        "hotel_id": HOTEL_ID,
        "code": room_type_id.upper(),
        "name": {"en": room_type_id.title()},
        "pricing_type": "unit",
        "occupancy": {"base_occupancy": 2, "max_adults": 3, "max_children": 2, "min_adults": 1},
        "use_multipliers": False,
    }
    doc.update(overrides)
    return doc


def market_doc(market_id: str = MARKET_ID, **overrides: Any) -> Dict[str, Any]:
    doc: Dict[str, Any] = {
        "_id": market_id,
        "hotel_id": HOTEL_ID,
        "code": "EU",
        "currency": "EUR",
        "working_mode": "net",
        "commission_rate": 10,
        "markup": {"b2c": 20, "b2b": 10},
        "agency_margin_share": 50,
        "child_age_settings": {"inherit_from_hotel": True},
        "pricing_overrides": [],
    }
    doc.update(overrides)
    return doc


def rate_doc(room_type_id: str, day: DayLike, meal_plan_id: str = MEAL_PLAN_ID, **fields: Any) -> Dict[str, Any]:
    target = parse_day(day)
    doc: Dict[str, Any] = {
        "_id": f"rate_{room_type_id}_{meal_plan_id}_{target.isoformat()}",
        "hotel_id": HOTEL_ID,
        "room_type_id": room_type_id,
        "meal_plan_id": meal_plan_id,
        "market_id": MARKET_ID,
        "date": target.isoformat(),
        "price_per_night": 100.0,
        "single_supplement": 20.0,
        "extra_adult": 30.0,
        "extra_child": 15.0,
        "allotment": 10,
        "sold": 0,
        "status": "active",
    }
    doc.update(fields)
    return doc


def add_rates(repo: FakePricingRepository, room_type_id: str, start: date, nights: int, **fields: Any) -> None:
    for offset in range(nights):
        repo.rates.append(rate_doc(room_type_id, start + timedelta(days=offset), **fields))


def campaign_doc(campaign_id: str, **overrides: Any) -> Dict[str, Any]:
    doc: Dict[str, Any] = {
        "_id": campaign_id,
        "hotel_id": HOTEL_ID,
        "code": campaign_id.upper(),
        "name": {"en": campaign_id},
        "status": "active",
        "discount": {"type": "percentage", "value": 10},
        "application_type": "stay",
        "calculation_type": "cumulative",
        "conditions": {},
        "combinable": True,
        "priority": 0,
        "visibility": {"b2c": True, "b2b": True},
    }
    doc.update(overrides)
    return doc


FAMILY_TEMPLATE = {
    "adult_multipliers": {"1": 0.8, "2": 1.0, "3": 1.3},
    "child_multipliers": {"1": {"infant": 1.0, "child": 0.5}, "2": {"infant": 1.0, "child": 0.4}},
    "combination_table": [],
    "rounding_rule": "none",
}


def seed_standard_hotel(repo: FakePricingRepository) -> None:
    """Hotel with a unit room (std), a multiplier room (fam) and an OBP room (obp)."""
    repo.hotels[HOTEL_ID] = {"_id": HOTEL_ID, "name": "Test Hotel", "child_age_groups": copy.deepcopy(AGE_GROUPS)}
    repo.markets[MARKET_ID] = market_doc()
    repo.meal_plans[MEAL_PLAN_ID] = {"_id": MEAL_PLAN_ID, "hotel_id": None, "code": "BB"}
    repo.room_types["std"] = room_type_doc("std")
    repo.room_types["fam"] = room_type_doc(
        "fam",
        pricing_type="per_person",
        occupancy={"base_occupancy": 2, "max_adults": 3, "max_children": 2, "min_adults": 1},
        use_multipliers=True,
        multiplier_template=copy.deepcopy(FAMILY_TEMPLATE),
    )
    repo.room_types["obp"] = room_type_doc("obp", pricing_type="per_person")
