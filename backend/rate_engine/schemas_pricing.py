from __future__ import annotations

from datetime import date
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator


PricingType = Literal["unit", "per_person"]
WorkingMode = Literal["net", "commission"]
SalesChannel = Literal["b2c", "b2b"]
RateType = Literal["refundable", "non_refundable"]


def _coerce_children(value: Any) -> Any:
    # Children may be sent as bare ages: [5, 10]
    if isinstance(value, list):
        return [{"age": item} if isinstance(item, (int, float)) else item for item in value]
    return value


# ---- Requests ----


class ChildIn(BaseModel):
    age: int = Field(ge=0, le=17)
    age_group: Optional[str] = None


class PriceQuery(BaseModel):
    room_type_id: str
    meal_plan_id: str
    market_id: str
    check_in: date
    check_out: date
    adults: int = Field(default=2, ge=1, le=20)
    children: list[ChildIn] = Field(default_factory=list)
    rooms: int = Field(default=1, ge=1, le=50)
    booking_date: Optional[date] = None
    include_campaigns: bool = True

    @field_validator("children", mode="before")
    @classmethod
    def coerce_children(cls, value: Any) -> Any:
        return _coerce_children(value)


class BookingPriceQuery(BaseModel):
    room_type_id: str
    meal_plan_id: str
    market_id: str
    date: date
    nights: int = Field(default=1, ge=1, le=365)
    adults: int = Field(default=2, ge=1, le=20)
    children: list[ChildIn] = Field(default_factory=list)
    rooms: int = Field(default=1, ge=1, le=50)
    booking_date: Optional[date] = None

    @field_validator("children", mode="before")
    @classmethod
    def coerce_children(cls, value: Any) -> Any:
        return _coerce_children(value)


class BulkPriceRequest(BaseModel):
    queries: list[BookingPriceQuery] = Field(default_factory=list)


class RoomRequest(BaseModel):
    room_type_id: str
    meal_plan_id: str
    adults: int = Field(default=2, ge=1, le=20)
    children: list[ChildIn] = Field(default_factory=list)
    rate_type: RateType = "refundable"

    @field_validator("children", mode="before")
    @classmethod
    def coerce_children(cls, value: Any) -> Any:
        return _coerce_children(value)


class MultiRoomRequest(BaseModel):
    market_id: str
    check_in: date
    check_out: date
    rooms: list[RoomRequest] = Field(default_factory=list)
    channel: SalesChannel = "b2c"
    booking_date: Optional[date] = None
    include_campaigns: bool = True
    throw_on_error: bool = False


class AvailabilityRequest(BaseModel):
    room_type_id: str
    meal_plan_id: str
    market_id: str
    check_in: date
    check_out: date
    adults: int = Field(default=2, ge=1, le=20)
    rooms: int = Field(default=1, ge=1, le=50)
    booking_date: Optional[date] = None


class MarkupIn(BaseModel):
    b2c: float = Field(default=0.0, ge=0)
    b2b: float = Field(default=0.0, ge=0)


class TierPreviewRequest(BaseModel):
    base_price: float = Field(ge=0)
    working_mode: WorkingMode = "net"
    commission_rate: float = Field(default=10.0, ge=0, le=100)
    markup: MarkupIn = Field(default_factory=MarkupIn)
    agency_commission: float = Field(default=10.0, ge=0, le=100)
    agency_margin_share: float = Field(default=50.0, ge=0, le=100)


class CacheClearRequest(BaseModel):
    prefix: Optional[str] = None


# ---- Occupancy ----


class PriceLineItem(BaseModel):
    type: str  # base | single_supplement | extra_adult | child | multiplier | rounding
    description: str
    amount: float
    quantity: int = 1
    child_order: Optional[int] = None
    age: Optional[int] = None
    source: Optional[str] = None


class OccupancyPrice(BaseModel):
    is_available: bool = True
    reason: Optional[str] = None
    pricing_type: PricingType = "unit"
    used_multipliers: bool = False
    base_price: float = 0.0
    adult_price: float = 0.0
    child_price: float = 0.0
    per_night_price: float = 0.0
    nights: int = 1
    total_price: float = 0.0
    multiplier: Optional[float] = None
    multiplier_source: Optional[str] = None
    combination_key: Optional[str] = None
    rounding_rule: Optional[str] = None
    line_items: list[PriceLineItem] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


# ---- Tiers ----


class TierPricing(BaseModel):
    working_mode: WorkingMode
    base_price: float
    hotel_cost: float
    b2c_price: float
    b2b_price: float
    commission_rate: float = 0.0
    markup_b2c: float = 0.0
    markup_b2b: float = 0.0
    agency_commission: float = 0.0
    agency_margin_share: float = 0.0
    real_margin_percent: float = 0.0
    agency_discount_percent: float = 0.0
    b2c_profit: float = 0.0
    b2b_profit: float = 0.0
    agency_profit: float = 0.0
    real_b2c_margin_percent: float = 0.0
    real_b2b_margin_percent: float = 0.0


# ---- Restrictions ----


class RestrictionFlags(BaseModel):
    stop_sale: bool = False
    below_min_adults: bool = False
    single_stop: bool = False
    no_availability: bool = False
    insufficient_allotment: bool = False
    release_days: bool = False
    min_stay: bool = False
    max_stay: bool = False
    closed_to_arrival: bool = False
    closed_to_departure: bool = False


class RestrictionResult(BaseModel):
    is_bookable: bool = True
    restrictions: RestrictionFlags = Field(default_factory=RestrictionFlags)
    messages: list[str] = Field(default_factory=list)


# ---- Stay pricing ----


class DailyPrice(BaseModel):
    date: date
    rate_id: str
    currency: str
    price: float
    discount: float = 0.0
    final_price: float
    is_free: bool = False
    applied_campaigns: list[str] = Field(default_factory=list)
    available: Optional[int] = None
    line_items: list[PriceLineItem] = Field(default_factory=list)
    restrictions: RestrictionResult = Field(default_factory=RestrictionResult)


class AppliedCampaign(BaseModel):
    campaign_id: str
    code: str
    name: Any = None
    discount_type: str
    discount_value: float
    calculation_type: str = "cumulative"
    application_type: str = "stay"
    priority: int = 0
    combinable: bool = False
    discount_amount: float
    applied_nights: int = 0
    free_nights: Optional[int] = None


class CampaignSummary(BaseModel):
    applied: list[AppliedCampaign] = Field(default_factory=list)
    total_discount: float = 0.0


class AvailabilityIssue(BaseModel):
    date: date
    messages: list[str] = Field(default_factory=list)


class AvailabilitySummary(BaseModel):
    is_available: bool = True
    all_dates_bookable: bool = True
    min_available: Optional[int] = None
    issues: list[AvailabilityIssue] = Field(default_factory=list)


class PricingSummary(BaseModel):
    currency: str
    nights: int
    original_total: float
    total_discount: float
    final_total: float
    average_per_night: float
    tiers: TierPricing


class NonRefundablePricing(BaseModel):
    discount_percent: float
    final_total: float
    tiers: TierPricing


class PriceResult(BaseModel):
    success: bool = True
    error: Optional[str] = None
    message: Optional[str] = None
    hotel_id: str
    room_type_id: str
    meal_plan_id: str
    market_id: str
    check_in: date
    check_out: date
    nights: int
    adults: int
    children: list[ChildIn] = Field(default_factory=list)
    pricing_type: Optional[PricingType] = None
    combination_key: Optional[str] = None
    multiplier: Optional[float] = None
    daily_breakdown: list[DailyPrice] = Field(default_factory=list)
    pricing: Optional[PricingSummary] = None
    campaigns: CampaignSummary = Field(default_factory=CampaignSummary)
    availability: AvailabilitySummary = Field(default_factory=AvailabilitySummary)
    non_refundable: Optional[NonRefundablePricing] = None


class BookingPriceResult(BaseModel):
    success: bool = True
    error: Optional[str] = None
    message: Optional[str] = None
    date: date
    rate_id: Optional[str] = None
    currency: Optional[str] = None
    occupancy: Optional[OccupancyPrice] = None
    tiers: Optional[TierPricing] = None
    restrictions: RestrictionResult = Field(default_factory=RestrictionResult)


class BulkPriceItem(BaseModel):
    success: bool
    query: dict[str, Any]
    result: Optional[BookingPriceResult] = None
    error: Optional[str] = None


class BulkPriceResult(BaseModel):
    total: int
    succeeded: int
    failed: int
    items: list[BulkPriceItem] = Field(default_factory=list)


class AvailabilityDate(BaseModel):
    date: date
    has_rate: bool
    is_bookable: bool
    available: Optional[int] = None
    messages: list[str] = Field(default_factory=list)


class AvailabilityResult(BaseModel):
    hotel_id: str
    room_type_id: str
    meal_plan_id: str
    market_id: str
    check_in: date
    check_out: date
    is_available: bool
    unavailable_dates: list[date] = Field(default_factory=list)
    dates: list[AvailabilityDate] = Field(default_factory=list)


# ---- Multi-room ----


class RoomPriceResult(BaseModel):
    room_index: int
    room_type_id: str
    meal_plan_id: str
    rate_type: RateType = "refundable"
    adults: int
    children: list[ChildIn] = Field(default_factory=list)
    success: bool
    error: Optional[str] = None
    message: Optional[str] = None
    channel_price: Optional[float] = None
    price: Optional[PriceResult] = None


class RoomError(BaseModel):
    room_index: int
    room_type_id: str
    code: str
    message: str


class MultiRoomTotals(BaseModel):
    currency: Optional[str] = None
    original_total: float = 0.0
    total_discount: float = 0.0
    final_total: float = 0.0
    channel_total: float = 0.0


class MultiRoomPriceResult(BaseModel):
    success: bool
    hotel_id: str
    market_id: str
    channel: SalesChannel
    check_in: date
    check_out: date
    nights: int
    room_count: int
    rooms: list[RoomPriceResult] = Field(default_factory=list)
    totals: MultiRoomTotals = Field(default_factory=MultiRoomTotals)
    errors: list[RoomError] = Field(default_factory=list)


# ---- Campaign listing ----


class CampaignOut(BaseModel):
    campaign_id: str
    code: str
    name: Any = None
    discount_type: str
    discount_value: float
    application_type: str
    calculation_type: str
    combinable: bool
    priority: int
    stay_nights: Optional[int] = None
    free_nights: Optional[int] = None
    visible_b2c: bool = True
    visible_b2b: bool = True
