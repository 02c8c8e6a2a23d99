from __future__ import annotations

import asyncio
import logging

from rate_engine.config import PRICE_CACHE_SWEEP_SECONDS
from rate_engine.services.price_cache import get_price_cache

logger = logging.getLogger("price_cache_worker")


async def price_cache_sweep_loop(interval_seconds: int = PRICE_CACHE_SWEEP_SECONDS) -> None:
    """Background loop removing expired price cache entries periodically."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            cache = await get_price_cache()
            removed = await cache.sweep()
            if removed:
                logger.info("Price cache sweep removed %s expired entries", removed)
        except Exception as e:  # pragma: no cover
            logger.error("Price cache sweep loop error: %s", e, exc_info=True)
