from __future__ import annotations

from datetime import date
from typing import Optional

from rate_engine.domain.pricing_models import DailyRate
from rate_engine.schemas_pricing import RestrictionFlags, RestrictionResult
from rate_engine.utils import DayLike, parse_day, today_utc


def check_restrictions(
    rate: DailyRate,
    *,
    adults: int = 2,
    check_in: Optional[DayLike] = None,
    check_out: Optional[DayLike] = None,
    booking_date: Optional[DayLike] = None,
    required_rooms: int = 1,
    min_adults: int = 1,
    is_check_in: bool = True,
    is_check_out: bool = True,
) -> RestrictionResult:
    """Evaluate whether ``rate`` can be sold for the given booking.

    Business-rule failures never raise; every violated rule sets its flag
    and adds a human readable message. ``is_check_in``/``is_check_out``
    say whether the rate's date is the arrival night / the last night of
    the stay, which is where arrival and departure blocks apply.
    """
    flags = RestrictionFlags()
    messages: list[str] = []

    if rate.stop_sale:
        flags.stop_sale = True
        messages.append("Stop sale active")

    if adults < min_adults:
        flags.below_min_adults = True
        messages.append(f"Minimum {min_adults} adult(s) required")

    if rate.single_stop and adults == 1:
        flags.single_stop = True
        messages.append("Single occupancy not available")

    available = rate.available
    if available is not None and available < required_rooms:
        flags.insufficient_allotment = True
        if available <= 0:
            flags.no_availability = True
            messages.append("No rooms available")
        else:
            messages.append(f"Only {available} room(s) available, {required_rooms} required")

    arrival: Optional[date] = parse_day(check_in) if check_in is not None else None
    departure: Optional[date] = parse_day(check_out) if check_out is not None else None

    if rate.release_days > 0 and arrival is not None:
        booked_on = parse_day(booking_date) if booking_date is not None else today_utc()
        if (arrival - booked_on).days < rate.release_days:
            flags.release_days = True
            messages.append(f"Minimum {rate.release_days} days advance booking required")

    if arrival is not None and departure is not None:
        nights = (departure - arrival).days
        if rate.min_stay and nights < rate.min_stay:
            flags.min_stay = True
            messages.append(f"Minimum {rate.min_stay} night stay required")
        if rate.max_stay and nights > rate.max_stay:
            flags.max_stay = True
            messages.append(f"Maximum {rate.max_stay} night stay allowed")

    if rate.closed_to_arrival and is_check_in:
        flags.closed_to_arrival = True
        messages.append("Arrival not allowed on this date")

    if rate.closed_to_departure and is_check_out:
        flags.closed_to_departure = True
        messages.append("Departure not allowed on this date")

    is_bookable = not any(flags.model_dump().values())
    return RestrictionResult(is_bookable=is_bookable, restrictions=flags, messages=messages)
