from __future__ import annotations

from pymongo import ASCENDING, DESCENDING
from pymongo.errors import OperationFailure
import logging

logger = logging.getLogger(__name__)


async def ensure_pricing_indexes(db):
    """Ensure indexes for the pricing collections.

    Index option conflicts with an existing index are logged and skipped so
    startup never fails on a legacy index.
    """

    async def _safe_create(collection, *args, **kwargs):
        try:
            await collection.create_index(*args, **kwargs)
        except OperationFailure as e:
            msg = str(e).lower()
            if (
                "indexoptionsconflict" in msg
                or "indexkeyspecsconflict" in msg
                or "already exists" in msg
            ):
                logger.warning(
                    "[pricing_indexes] Keeping legacy index for %s (name=%s): %s",
                    collection.name,
                    kwargs.get("name"),
                    msg,
                )
                return
            raise

    # One rate per hotel / room type / meal plan / market / day
    await _safe_create(
        db.rates,
        [
            ("hotel_id", ASCENDING),
            ("room_type_id", ASCENDING),
            ("meal_plan_id", ASCENDING),
            ("market_id", ASCENDING),
            ("date", ASCENDING),
        ],
        name="rates_unique_day",
        unique=True,
    )

    await _safe_create(
        db.seasons,
        [("hotel_id", ASCENDING), ("market_id", ASCENDING), ("priority", DESCENDING)],
        name="seasons_hotel_market_priority",
    )

    await _safe_create(
        db.campaigns,
        [("hotel_id", ASCENDING), ("status", ASCENDING), ("priority", DESCENDING)],
        name="campaigns_hotel_status_priority",
    )

    await _safe_create(
        db.markets,
        [("hotel_id", ASCENDING), ("code", ASCENDING)],
        name="markets_hotel_code",
    )

    await _safe_create(
        db.room_types,
        [("hotel_id", ASCENDING), ("code", ASCENDING)],
        name="room_types_hotel_code",
    )

    # Price cache entries: lookup by key, Mongo removes them once expired
    await _safe_create(db.app_cache, [("key", ASCENDING)], name="app_cache_key", unique=True)
    await _safe_create(db.app_cache, [("expires_at", ASCENDING)], name="app_cache_ttl", expireAfterSeconds=0)
