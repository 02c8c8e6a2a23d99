"""Configuration entities read by the pricing engine.

These are read-only snapshots of documents authored elsewhere (admin CRUD,
bulk import). Each entity is built from a raw Mongo document with
``from_doc`` and never written back by the engine.

Document field names are snake_case. Reference ids may be stored as
ObjectId, str or an embedded ``{"_id": ...}`` sub-document.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, List, Literal, Mapping, Optional, Tuple

from rate_engine.config import DEFAULT_BASE_OCCUPANCY
from rate_engine.utils import id_str, parse_day, to_float

PricingType = Literal["unit", "per_person"]
RoundingRule = Literal["none", "up", "down", "nearest", "nearest5", "nearest10"]
WorkingMode = Literal["net", "commission"]
SalesChannel = Literal["b2c", "b2b"]

PRICING_TYPES = ("unit", "per_person")
ROUNDING_RULES = ("none", "up", "down", "nearest", "nearest5", "nearest10")
WORKING_MODES = ("net", "commission")
WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def _opt_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _opt_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _opt_day(value: Any) -> Optional[date]:
    if value in (None, ""):
        return None
    return parse_day(value)


# ---------------------------------------------------------------------------
# Occupancy building blocks
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChildAgeGroup:
    code: str
    min_age: int
    max_age: int
    name: Any = field(default=None, compare=False)

    def contains(self, age: int) -> bool:
        return self.min_age <= age <= self.max_age

    def label(self, locale: str = "en") -> str:
        # name is either a plain string or a {locale: text} map
        if isinstance(self.name, Mapping):
            return str(self.name.get(locale) or self.name.get("en") or self.code)
        return str(self.name or self.code)

    @classmethod
    def from_doc(cls, doc: Mapping[str, Any]) -> "ChildAgeGroup":
        return cls(
            code=str(doc.get("code") or ""),
            min_age=int(doc.get("min_age") or 0),
            max_age=int(doc.get("max_age") if doc.get("max_age") is not None else 17),
            name=doc.get("name"),
        )


def age_groups_from_docs(docs: Optional[Iterable[Mapping[str, Any]]]) -> Tuple[ChildAgeGroup, ...]:
    return tuple(ChildAgeGroup.from_doc(d) for d in (docs or []))


@dataclass(frozen=True)
class Child:
    age: Optional[int] = None
    age_group: Optional[str] = None


def normalize_children(children: Optional[Iterable[Any]]) -> List[Child]:
    """Accept ``[5, 10]``, ``[{"age": 5}]`` or ``Child`` items."""
    out: List[Child] = []
    for item in children or []:
        if isinstance(item, Child):
            out.append(item)
        elif isinstance(item, Mapping):
            out.append(Child(age=_opt_int(item.get("age")), age_group=item.get("age_group") or None))
        elif hasattr(item, "age"):
            out.append(Child(age=_opt_int(getattr(item, "age")), age_group=getattr(item, "age_group", None) or None))
        else:
            out.append(Child(age=_opt_int(item)))
    return out


@dataclass(frozen=True, order=True)
class CombinationKey:
    """Canonical identity of an occupancy: adult count plus ordered children.

    ``children`` holds ``(order, age_group)`` pairs sorted by order, so two
    keys built from the same occupancy always compare and hash equal.
    """

    adults: int
    children: Tuple[Tuple[int, str], ...] = ()

    @classmethod
    def build(cls, adults: int, children: Iterable[Any] = ()) -> "CombinationKey":
        pairs: List[Tuple[int, str]] = []
        for index, child in enumerate(children, start=1):
            if isinstance(child, Mapping):
                order = int(child.get("order") or index)
                group = str(child.get("age_group") or "")
            else:
                order, group = int(child[0]), str(child[1])
            pairs.append((order, group))
        return cls(adults=int(adults), children=tuple(sorted(pairs)))

    @classmethod
    def parse(cls, code: str) -> Optional["CombinationKey"]:
        """Parse the display form ``"2"`` / ``"2+2_infant_first"``."""
        code = (code or "").strip()
        if not code:
            return None
        adults_part, _, rest = code.partition("+")
        try:
            adults = int(adults_part)
        except ValueError:
            return None
        if not rest:
            return cls(adults=adults)
        count_part, _, groups_part = rest.partition("_")
        try:
            count = int(count_part)
        except ValueError:
            return None
        groups = groups_part.split("_") if groups_part else []
        if len(groups) != count:
            return None
        return cls(adults=adults, children=tuple((i, g) for i, g in enumerate(groups, start=1)))

    @property
    def child_count(self) -> int:
        return len(self.children)

    @property
    def code(self) -> str:
        if not self.children:
            return str(self.adults)
        groups = "_".join(group for _, group in self.children)
        return f"{self.adults}+{len(self.children)}_{groups}"


@dataclass(frozen=True)
class CombinationEntry:
    key: CombinationKey
    calculated_multiplier: float = 1.0
    override_multiplier: Optional[float] = None
    is_active: bool = True

    @property
    def effective_multiplier(self) -> float:
        if self.override_multiplier is not None:
            return self.override_multiplier
        return self.calculated_multiplier

    @classmethod
    def from_doc(cls, doc: Mapping[str, Any]) -> Optional["CombinationEntry"]:
        key: Optional[CombinationKey] = None
        if doc.get("adults") is not None:
            key = CombinationKey.build(int(doc["adults"]), doc.get("children") or [])
        elif doc.get("key"):
            key = CombinationKey.parse(str(doc["key"]))
        if key is None:
            return None
        return cls(
            key=key,
            calculated_multiplier=to_float(doc.get("calculated_multiplier"), 1.0),
            override_multiplier=_opt_float(doc.get("override_multiplier")),
            is_active=doc.get("is_active", True) is not False,
        )

    def to_doc(self) -> Dict[str, Any]:
        return {
            "key": self.key.code,
            "adults": self.key.adults,
            "children": [{"order": o, "age_group": g} for o, g in self.key.children],
            "calculated_multiplier": self.calculated_multiplier,
            "override_multiplier": self.override_multiplier,
            "is_active": self.is_active,
        }


# ---------------------------------------------------------------------------
# Multiplier template
# ---------------------------------------------------------------------------


def _adult_map(raw: Any) -> Optional[Dict[int, float]]:
    if raw is None:
        return None
    out: Dict[int, float] = {}
    for k, v in dict(raw).items():
        count, value = _opt_int(k), _opt_float(v)
        if count is not None and value is not None:
            out[count] = value
    return out


def _child_map(raw: Any) -> Optional[Dict[int, Dict[str, float]]]:
    if raw is None:
        return None
    out: Dict[int, Dict[str, float]] = {}
    for k, groups in dict(raw).items():
        order = _opt_int(k)
        if order is None or not isinstance(groups, Mapping):
            continue
        out[order] = {str(g): float(v) for g, v in groups.items() if _opt_float(v) is not None}
    return out


def _combination_table(raw: Any) -> Optional[Tuple[CombinationEntry, ...]]:
    if raw is None:
        return None
    entries = (CombinationEntry.from_doc(d) for d in raw if isinstance(d, Mapping))
    return tuple(e for e in entries if e is not None)


@dataclass(frozen=True)
class MultiplierTemplate:
    adult_multipliers: Dict[int, float] = field(default_factory=dict)
    child_multipliers: Dict[int, Dict[str, float]] = field(default_factory=dict)
    combination_table: Tuple[CombinationEntry, ...] = ()
    rounding_rule: str = "none"

    def lookup(self, key: CombinationKey) -> Optional[CombinationEntry]:
        for entry in self.combination_table:
            if entry.key == key:
                return entry
        return None


@dataclass(frozen=True)
class MultiplierTemplatePatch:
    """A partial template: unset fields fall through to the layer below."""

    adult_multipliers: Optional[Dict[int, float]] = None
    child_multipliers: Optional[Dict[int, Dict[str, float]]] = None
    combination_table: Optional[Tuple[CombinationEntry, ...]] = None
    rounding_rule: Optional[str] = None

    @classmethod
    def from_doc(cls, doc: Optional[Mapping[str, Any]]) -> Optional["MultiplierTemplatePatch"]:
        if not doc:
            return None
        rounding = doc.get("rounding_rule")
        return cls(
            adult_multipliers=_adult_map(doc.get("adult_multipliers")),
            child_multipliers=_child_map(doc.get("child_multipliers")),
            combination_table=_combination_table(doc.get("combination_table")),
            rounding_rule=str(rounding) if rounding else None,
        )

    def apply_to(self, base: Optional[MultiplierTemplate]) -> MultiplierTemplate:
        base = base or MultiplierTemplate()
        return MultiplierTemplate(
            adult_multipliers=self.adult_multipliers if self.adult_multipliers is not None else base.adult_multipliers,
            child_multipliers=self.child_multipliers if self.child_multipliers is not None else base.child_multipliers,
            combination_table=self.combination_table if self.combination_table is not None else base.combination_table,
            rounding_rule=self.rounding_rule or base.rounding_rule,
        )


# ---------------------------------------------------------------------------
# Commercial settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CommercialSettings:
    working_mode: str = "net"
    commission_rate: float = 10.0
    markup_b2c: float = 0.0
    markup_b2b: float = 0.0
    agency_commission: float = 10.0
    agency_margin_share: float = 50.0


@dataclass(frozen=True)
class CommercialPatch:
    working_mode: Optional[str] = None
    commission_rate: Optional[float] = None
    markup_b2c: Optional[float] = None
    markup_b2b: Optional[float] = None
    agency_commission: Optional[float] = None
    agency_margin_share: Optional[float] = None

    @classmethod
    def from_doc(cls, doc: Optional[Mapping[str, Any]]) -> "CommercialPatch":
        doc = doc or {}
        markup = doc.get("markup") or {}
        return cls(
            working_mode=doc.get("working_mode") or None,
            commission_rate=_opt_float(doc.get("commission_rate")),
            markup_b2c=_opt_float(markup.get("b2c")),
            markup_b2b=_opt_float(markup.get("b2b")),
            agency_commission=_opt_float(doc.get("agency_commission")),
            agency_margin_share=_opt_float(doc.get("agency_margin_share")),
        )

    def apply_to(self, base: CommercialSettings) -> CommercialSettings:
        def pick(value: Any, fallback: Any) -> Any:
            return fallback if value is None else value

        return CommercialSettings(
            working_mode=pick(self.working_mode, base.working_mode),
            commission_rate=pick(self.commission_rate, base.commission_rate),
            markup_b2c=pick(self.markup_b2c, base.markup_b2c),
            markup_b2b=pick(self.markup_b2b, base.markup_b2b),
            agency_commission=pick(self.agency_commission, base.agency_commission),
            agency_margin_share=pick(self.agency_margin_share, base.agency_margin_share),
        )


@dataclass(frozen=True)
class NonRefundableSettings:
    enabled: bool = False
    discount_percent: float = 0.0

    @classmethod
    def from_doc(cls, doc: Optional[Mapping[str, Any]]) -> "NonRefundableSettings":
        doc = doc or {}
        return cls(enabled=bool(doc.get("enabled")), discount_percent=to_float(doc.get("discount_percent")))


# ---------------------------------------------------------------------------
# Configuration layers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class HotelPricingConfig:
    id: str
    child_age_groups: Tuple[ChildAgeGroup, ...] = ()

    @classmethod
    def from_doc(cls, doc: Mapping[str, Any]) -> "HotelPricingConfig":
        return cls(id=id_str(doc.get("_id")), child_age_groups=age_groups_from_docs(doc.get("child_age_groups")))


@dataclass(frozen=True)
class RoomTypePricingConfig:
    id: str
    hotel_id: str = ""
    code: str = ""
    name: Any = None
    pricing_type: str = "unit"
    base_occupancy: int = DEFAULT_BASE_OCCUPANCY
    max_adults: int = DEFAULT_BASE_OCCUPANCY
    max_children: int = 0
    min_adults: int = 1
    use_multipliers: bool = False
    multiplier_template: Optional[MultiplierTemplatePatch] = None

    @classmethod
    def from_doc(cls, doc: Mapping[str, Any]) -> "RoomTypePricingConfig":
        occupancy = doc.get("occupancy") or {}
        base_occupancy = _opt_int(occupancy.get("base_occupancy")) or DEFAULT_BASE_OCCUPANCY
        return cls(
            id=id_str(doc.get("_id")),
            hotel_id=id_str(doc.get("hotel_id")),
            code=str(doc.get("code") or ""),
            name=doc.get("name"),
            pricing_type=doc.get("pricing_type") or "unit",
            base_occupancy=base_occupancy,
            max_adults=_opt_int(occupancy.get("max_adults")) or base_occupancy,
            max_children=_opt_int(occupancy.get("max_children")) or 0,
            min_adults=_opt_int(occupancy.get("min_adults")) or 1,
            use_multipliers=bool(doc.get("use_multipliers")),
            multiplier_template=MultiplierTemplatePatch.from_doc(doc.get("multiplier_template")),
        )


@dataclass(frozen=True)
class RoomTypeOverride:
    """One embedded per-room-type override entry on a market or season."""

    room_type_id: str
    use_pricing_type_override: bool = False
    pricing_type: Optional[str] = None
    use_min_adults_override: bool = False
    min_adults: Optional[int] = None
    use_multiplier_override: bool = False
    multiplier_override: Optional[MultiplierTemplatePatch] = None

    @classmethod
    def from_doc(cls, doc: Mapping[str, Any]) -> "RoomTypeOverride":
        return cls(
            room_type_id=id_str(doc.get("room_type_id")),
            use_pricing_type_override=bool(doc.get("use_pricing_type_override")),
            pricing_type=doc.get("pricing_type") or None,
            use_min_adults_override=bool(doc.get("use_min_adults_override")),
            min_adults=_opt_int(doc.get("min_adults")),
            use_multiplier_override=bool(doc.get("use_multiplier_override")),
            multiplier_override=MultiplierTemplatePatch.from_doc(doc.get("multiplier_override")),
        )


def _overrides(raw: Any) -> Tuple[RoomTypeOverride, ...]:
    return tuple(RoomTypeOverride.from_doc(d) for d in (raw or []) if isinstance(d, Mapping))


@dataclass(frozen=True)
class MarketPricingOverride:
    id: str
    hotel_id: str = ""
    code: str = ""
    name: Any = None
    currency: Optional[str] = None
    commercial: CommercialPatch = field(default_factory=CommercialPatch)
    room_type_overrides: Tuple[RoomTypeOverride, ...] = ()
    child_age_inherit_from_hotel: bool = True
    child_age_groups: Tuple[ChildAgeGroup, ...] = ()
    non_refundable: NonRefundableSettings = field(default_factory=NonRefundableSettings)

    def override_for(self, room_type_id: str) -> Optional[RoomTypeOverride]:
        for entry in self.room_type_overrides:
            if entry.room_type_id == room_type_id:
                return entry
        return None

    @classmethod
    def from_doc(cls, doc: Mapping[str, Any]) -> "MarketPricingOverride":
        child_settings = doc.get("child_age_settings") or {}
        return cls(
            id=id_str(doc.get("_id")),
            hotel_id=id_str(doc.get("hotel_id")),
            code=str(doc.get("code") or ""),
            name=doc.get("name"),
            currency=doc.get("currency") or None,
            commercial=CommercialPatch.from_doc(doc),
            room_type_overrides=_overrides(doc.get("pricing_overrides")),
            child_age_inherit_from_hotel=child_settings.get("inherit_from_hotel", True) is not False,
            child_age_groups=age_groups_from_docs(child_settings.get("child_age_groups")),
            non_refundable=NonRefundableSettings.from_doc(doc.get("non_refundable")),
        )


@dataclass(frozen=True)
class SeasonPricingOverride:
    id: str
    hotel_id: str = ""
    market_id: str = ""
    code: str = ""
    name: Any = None
    priority: int = 0
    date_ranges: Tuple[Tuple[date, date], ...] = ()
    room_type_overrides: Tuple[RoomTypeOverride, ...] = ()
    sales_inherit_from_market: bool = True
    sales_override: CommercialPatch = field(default_factory=CommercialPatch)
    child_age_inherit_from_market: bool = True
    child_age_groups: Tuple[ChildAgeGroup, ...] = ()

    def contains(self, day: date) -> bool:
        return any(start <= day <= end for start, end in self.date_ranges)

    def override_for(self, room_type_id: str) -> Optional[RoomTypeOverride]:
        for entry in self.room_type_overrides:
            if entry.room_type_id == room_type_id:
                return entry
        return None

    @classmethod
    def from_doc(cls, doc: Mapping[str, Any]) -> "SeasonPricingOverride":
        sales = doc.get("sales_settings_override") or {}
        child_settings = doc.get("child_age_settings") or {}
        ranges = []
        for r in doc.get("date_ranges") or []:
            start, end = _opt_day(r.get("start_date")), _opt_day(r.get("end_date"))
            if start and end:
                ranges.append((start, end))
        return cls(
            id=id_str(doc.get("_id")),
            hotel_id=id_str(doc.get("hotel_id")),
            market_id=id_str(doc.get("market_id")),
            code=str(doc.get("code") or ""),
            name=doc.get("name"),
            priority=int(doc.get("priority") or 0),
            date_ranges=tuple(ranges),
            room_type_overrides=_overrides(doc.get("pricing_overrides")),
            sales_inherit_from_market=sales.get("inherit_from_market", True) is not False,
            sales_override=CommercialPatch.from_doc(sales),
            child_age_inherit_from_market=child_settings.get("inherit_from_market", True) is not False,
            child_age_groups=age_groups_from_docs(child_settings.get("child_age_groups")),
        )


# ---------------------------------------------------------------------------
# Daily rate
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChildPriceTier:
    min_age: int
    max_age: int
    price: float


@dataclass(frozen=True)
class DailyRate:
    """One rate per (hotel, room type, meal plan, market, date)."""

    id: str
    hotel_id: str
    room_type_id: str
    meal_plan_id: str
    market_id: str
    date: date
    currency: Optional[str] = None
    price_per_night: float = 0.0
    single_supplement: float = 0.0
    extra_adult: float = 0.0
    extra_child: float = 0.0
    extra_infant: float = 0.0
    child_order_pricing: Tuple[float, ...] = ()
    child_pricing: Tuple[ChildPriceTier, ...] = ()
    occupancy_pricing: Dict[int, float] = field(default_factory=dict)
    allotment: Optional[int] = None
    sold: int = 0
    min_stay: Optional[int] = None
    max_stay: Optional[int] = None
    release_days: int = 0
    closed_to_arrival: bool = False
    closed_to_departure: bool = False
    single_stop: bool = False
    stop_sale: bool = False
    use_multiplier_override: bool = False
    multiplier_override: Optional[MultiplierTemplatePatch] = None
    status: str = "active"

    @property
    def available(self) -> Optional[int]:
        if self.allotment is None:
            return None
        return self.allotment - self.sold

    @classmethod
    def from_doc(cls, doc: Mapping[str, Any]) -> "DailyRate":
        tiers = tuple(
            ChildPriceTier(min_age=int(t.get("min_age") or 0), max_age=int(t.get("max_age") or 0), price=to_float(t.get("price")))
            for t in (doc.get("child_pricing") or [])
        )
        return cls(
            id=id_str(doc.get("_id")),
            hotel_id=id_str(doc.get("hotel_id")),
            room_type_id=id_str(doc.get("room_type_id")),
            meal_plan_id=id_str(doc.get("meal_plan_id")),
            market_id=id_str(doc.get("market_id")),
            date=parse_day(doc["date"]),
            currency=doc.get("currency") or None,
            price_per_night=to_float(doc.get("price_per_night")),
            single_supplement=to_float(doc.get("single_supplement")),
            extra_adult=to_float(doc.get("extra_adult")),
            extra_child=to_float(doc.get("extra_child")),
            extra_infant=to_float(doc.get("extra_infant")),
            child_order_pricing=tuple(to_float(p) for p in (doc.get("child_order_pricing") or [])),
            child_pricing=tuple(sorted(tiers, key=lambda t: t.min_age)),
            occupancy_pricing=_adult_map(doc.get("occupancy_pricing")) or {},
            allotment=_opt_int(doc.get("allotment")),
            sold=max(0, _opt_int(doc.get("sold")) or 0),
            min_stay=_opt_int(doc.get("min_stay")),
            max_stay=_opt_int(doc.get("max_stay")),
            release_days=_opt_int(doc.get("release_days")) or 0,
            closed_to_arrival=bool(doc.get("closed_to_arrival")),
            closed_to_departure=bool(doc.get("closed_to_departure")),
            single_stop=bool(doc.get("single_stop")),
            stop_sale=bool(doc.get("stop_sale")),
            use_multiplier_override=bool(doc.get("use_multiplier_override")),
            multiplier_override=MultiplierTemplatePatch.from_doc(doc.get("multiplier_override")),
            status=str(doc.get("status") or "active"),
        )


# ---------------------------------------------------------------------------
# Campaigns
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CampaignRule:
    id: str
    hotel_id: str = ""
    code: str = ""
    name: Any = None
    type: str = "promotion"
    status: str = "active"
    discount_type: str = "percentage"
    discount_value: float = 0.0
    stay_nights: Optional[int] = None
    free_nights: Optional[int] = None
    booking_start: Optional[date] = None
    booking_end: Optional[date] = None
    stay_start: Optional[date] = None
    stay_end: Optional[date] = None
    application_type: str = "stay"
    calculation_type: str = "cumulative"
    min_nights: Optional[int] = None
    max_nights: Optional[int] = None
    room_type_ids: Tuple[str, ...] = ()
    meal_plan_ids: Tuple[str, ...] = ()
    market_ids: Tuple[str, ...] = ()
    applicable_days: Dict[str, bool] = field(default_factory=dict)
    combinable: bool = False
    priority: int = 0
    visible_b2c: bool = True
    visible_b2b: bool = True

    @classmethod
    def from_doc(cls, doc: Mapping[str, Any]) -> "CampaignRule":
        discount = doc.get("discount") or {}
        free = discount.get("free_nights") or {}
        booking = doc.get("booking_window") or {}
        stay = doc.get("stay_window") or {}
        conditions = doc.get("conditions") or {}
        visibility = doc.get("visibility") or {}
        return cls(
            id=id_str(doc.get("_id")),
            hotel_id=id_str(doc.get("hotel_id")),
            code=str(doc.get("code") or ""),
            name=doc.get("name"),
            type=str(doc.get("type") or "promotion"),
            status=str(doc.get("status") or "active"),
            discount_type=str(discount.get("type") or "percentage"),
            discount_value=to_float(discount.get("value")),
            stay_nights=_opt_int(free.get("stay_nights")),
            free_nights=_opt_int(free.get("free_nights")),
            booking_start=_opt_day(booking.get("start_date")),
            booking_end=_opt_day(booking.get("end_date")),
            stay_start=_opt_day(stay.get("start_date")),
            stay_end=_opt_day(stay.get("end_date")),
            application_type=str(doc.get("application_type") or "stay"),
            calculation_type=str(doc.get("calculation_type") or "cumulative"),
            min_nights=_opt_int(conditions.get("min_nights")),
            max_nights=_opt_int(conditions.get("max_nights")),
            room_type_ids=tuple(id_str(x) for x in conditions.get("applicable_room_types") or []),
            meal_plan_ids=tuple(id_str(x) for x in conditions.get("applicable_meal_plans") or []),
            market_ids=tuple(id_str(x) for x in conditions.get("applicable_markets") or []),
            applicable_days={str(k): bool(v) for k, v in (conditions.get("applicable_days") or {}).items()},
            combinable=bool(doc.get("combinable")),
            priority=int(doc.get("priority") or 0),
            visible_b2c=visibility.get("b2c", True) is not False,
            visible_b2b=visibility.get("b2b", True) is not False,
        )
