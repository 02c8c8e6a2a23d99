"""Price cache: get-or-compute memoization with TTL and prefix invalidation.

The cache is an injected capability. ``PriceCache`` holds the statistics
and the per-key compute lock; the actual storage is a ``CacheStore``:

- ``InMemoryCacheStore``: process-local dict with an injectable clock.
- ``MongoCacheStore``: shared ``app_cache`` collection with a TTL index.

Cache never blocks pricing: a failing store is logged and treated as a
miss, and the value is computed as if nothing was cached.
"""
from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import re
import time
import uuid
import weakref
from datetime import timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Tuple

from rate_engine.config import (
    AVAILABILITY_CACHE_TTL_SECONDS,
    CAMPAIGN_CACHE_TTL_SECONDS,
    PRICE_CACHE_BACKEND,
    PRICE_CACHE_ENABLED,
    PRICE_CACHE_TTL_SECONDS,
)
from rate_engine.utils import now_utc

logger = logging.getLogger(__name__)

CACHE_PREFIXES: Dict[str, str] = {
    "price": "price:",
    "campaigns": "campaigns:",
    "availability": "availability:",
    "rate": "rate:",
}

CACHE_TTL: Dict[str, int] = {
    "price": PRICE_CACHE_TTL_SECONDS,
    "campaigns": CAMPAIGN_CACHE_TTL_SECONDS,
    "availability": AVAILABILITY_CACHE_TTL_SECONDS,
    "rate": PRICE_CACHE_TTL_SECONDS,
}


def _digest(params: Dict[str, Any]) -> str:
    raw = json.dumps(params, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:32]


def generate_key(category: str, *scope: Any, **params: Any) -> str:
    """``<prefix><scope...>:<hash of params>``.

    Scope ids stay readable so prefix invalidation can target a hotel or a
    room type; everything else is folded into the hash.
    """
    prefix = CACHE_PREFIXES[category]
    parts = [str(s) for s in scope if s is not None]
    return prefix + ":".join(parts + [_digest(params)])


def price_key(hotel_id: str, room_type_id: str, meal_plan_id: str, market_id: str, **params: Any) -> str:
    return generate_key("price", hotel_id, room_type_id, meal_plan_id, market_id, **params)


def campaigns_key(hotel_id: str, **params: Any) -> str:
    return generate_key("campaigns", hotel_id, **params)


def availability_key(hotel_id: str, room_type_id: str, meal_plan_id: str, market_id: str, **params: Any) -> str:
    return generate_key("availability", hotel_id, room_type_id, meal_plan_id, market_id, **params)


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


class CacheStore(Protocol):
    async def get(self, key: str) -> Optional[Any]: ...

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None: ...

    async def delete(self, key: str) -> bool: ...

    async def delete_prefix(self, prefix: str) -> int: ...

    async def clear(self) -> int: ...

    async def sweep(self) -> int: ...

    async def size(self) -> int: ...


class InMemoryCacheStore:
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._data: Dict[str, Tuple[Any, float]] = {}

    async def get(self, key: str) -> Optional[Any]:
        item = self._data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at <= self._clock():
            self._data.pop(key, None)
            return None
        return value

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        self._data[key] = (value, self._clock() + ttl_seconds)

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    async def delete_prefix(self, prefix: str) -> int:
        keys = [k for k in self._data if k.startswith(prefix)]
        for k in keys:
            del self._data[k]
        return len(keys)

    async def clear(self) -> int:
        count = len(self._data)
        self._data.clear()
        return count

    async def sweep(self) -> int:
        now = self._clock()
        expired = [k for k, (_, expires_at) in self._data.items() if expires_at <= now]
        for k in expired:
            del self._data[k]
        return len(expired)

    async def size(self) -> int:
        return len(self._data)


class MongoCacheStore:
    """Read-through cache entries in the ``app_cache`` collection."""

    def __init__(self, db, collection: str = "app_cache", clock: Callable[[], Any] = now_utc) -> None:
        self._col = db[collection]
        self._clock = clock

    async def get(self, key: str) -> Optional[Any]:
        doc = await self._col.find_one({"key": key})
        if not doc:
            return None
        expires_at = doc.get("expires_at")
        if expires_at is not None and expires_at.tzinfo is None:
            # Motor returns naive UTC datetimes by default
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        if expires_at is not None and expires_at < self._clock():
            return None
        return doc.get("value")

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        now = self._clock()
        await self._col.update_one(
            {"key": key},
            {
                "$set": {
                    "value": value,
                    "expires_at": now + timedelta(seconds=ttl_seconds),
                    "updated_at": now,
                },
                "$setOnInsert": {
                    "_id": str(uuid.uuid4()),
                    "key": key,
                    "created_at": now,
                },
            },
            upsert=True,
        )

    async def delete(self, key: str) -> bool:
        res = await self._col.delete_many({"key": key})
        return res.deleted_count > 0

    async def delete_prefix(self, prefix: str) -> int:
        res = await self._col.delete_many({"key": {"$regex": "^" + re.escape(prefix)}})
        return res.deleted_count

    async def clear(self) -> int:
        res = await self._col.delete_many({})
        return res.deleted_count

    async def sweep(self) -> int:
        res = await self._col.delete_many({"expires_at": {"$lt": self._clock()}})
        return res.deleted_count

    async def size(self) -> int:
        return await self._col.count_documents({})


# ---------------------------------------------------------------------------
# Cache front
# ---------------------------------------------------------------------------


class PriceCache:
    def __init__(self, store: CacheStore, *, enabled: bool = True, default_ttl: int = PRICE_CACHE_TTL_SECONDS) -> None:
        self.store = store
        self.enabled = enabled
        self.default_ttl = default_ttl
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()
        self.hits = 0
        self.misses = 0
        self.sets = 0
        self.deletes = 0
        self.errors = 0

    async def get(self, key: str) -> Optional[Any]:
        if not self.enabled:
            return None
        try:
            value = await self.store.get(key)
        except Exception as e:
            self.errors += 1
            logger.warning("Price cache read failed for %s: %s", key, e)
            return None
        if value is None:
            self.misses += 1
        else:
            self.hits += 1
        return value

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        if not self.enabled:
            return
        try:
            await self.store.set(key, value, ttl_seconds or self.default_ttl)
            self.sets += 1
        except Exception as e:
            self.errors += 1
            logger.warning("Price cache write failed for %s: %s", key, e)

    async def delete(self, key: str) -> bool:
        try:
            deleted = await self.store.delete(key)
        except Exception as e:
            self.errors += 1
            logger.warning("Price cache delete failed for %s: %s", key, e)
            return False
        if deleted:
            self.deletes += 1
        return deleted

    async def get_or_set(
        self,
        key: str,
        compute: Callable[[], Awaitable[Any]],
        ttl_seconds: Optional[int] = None,
    ) -> Any:
        """Return the cached value or compute, store and return it.

        Concurrent callers for the same key compute once. ``None`` results
        are returned but never stored.
        """
        if not self.enabled:
            return await compute()

        cached = await self.get(key)
        if cached is not None:
            return cached

        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        async with lock:
            try:
                cached = await self.store.get(key)
            except Exception:
                cached = None
            if cached is not None:
                self.hits += 1
                return cached
            value = await compute()
            if value is not None:
                await self.set(key, value, ttl_seconds)
            return value

    async def invalidate_prefix(self, prefix: str) -> int:
        try:
            count = await self.store.delete_prefix(prefix)
        except Exception as e:
            self.errors += 1
            logger.warning("Price cache prefix invalidation failed for %s: %s", prefix, e)
            return 0
        self.deletes += count
        if count:
            logger.info("Price cache invalidated %s entries with prefix %s", count, prefix)
        return count

    async def clear(self) -> int:
        try:
            count = await self.store.clear()
        except Exception as e:
            self.errors += 1
            logger.warning("Price cache clear failed: %s", e)
            return 0
        self.deletes += count
        logger.info("Price cache cleared (%s entries)", count)
        return count

    async def sweep(self) -> int:
        try:
            count = await self.store.sweep()
        except Exception as e:
            self.errors += 1
            logger.warning("Price cache sweep failed: %s", e)
            return 0
        logger.debug("Price cache sweep removed %s expired entries", count)
        return count

    async def invalidate_entity(
        self,
        kind: str,
        hotel_id: str,
        room_type_id: Optional[str] = None,
    ) -> int:
        """Drop cached values computed from a mutated configuration entity.

        ``kind`` is one of hotel, market, season, room_type, rate, campaign.
        """
        if kind in ("room_type", "rate") and room_type_id:
            scope = f"{hotel_id}:{room_type_id}:"
            prefixes = [CACHE_PREFIXES[c] + scope for c in ("price", "availability", "rate")]
        elif kind == "campaign":
            prefixes = [CACHE_PREFIXES["campaigns"] + f"{hotel_id}:", CACHE_PREFIXES["price"] + f"{hotel_id}:"]
        else:
            prefixes = [p + f"{hotel_id}:" for p in CACHE_PREFIXES.values()]

        total = 0
        for prefix in prefixes:
            total += await self.invalidate_prefix(prefix)
        return total

    async def get_stats(self) -> Dict[str, Any]:
        lookups = self.hits + self.misses
        try:
            size = await self.store.size()
        except Exception:
            size = None
        return {
            "enabled": self.enabled,
            "backend": type(self.store).__name__,
            "size": size,
            "hits": self.hits,
            "misses": self.misses,
            "sets": self.sets,
            "deletes": self.deletes,
            "errors": self.errors,
            "hit_rate": round(self.hits / lookups * 100, 2) if lookups else 0.0,
        }

    def reset_stats(self) -> None:
        self.hits = self.misses = self.sets = self.deletes = self.errors = 0


def build_price_cache(db=None, *, backend: str = "memory", enabled: bool = True) -> PriceCache:
    if backend == "mongo" and db is not None:
        return PriceCache(MongoCacheStore(db), enabled=enabled)
    return PriceCache(InMemoryCacheStore(), enabled=enabled)


_price_cache: Optional[PriceCache] = None


async def get_price_cache() -> PriceCache:
    """Process-wide cache configured from ``PRICE_CACHE_*`` settings."""
    global _price_cache

    if _price_cache is None:
        db = None
        if PRICE_CACHE_BACKEND == "mongo":
            from rate_engine.db import get_db

            db = await get_db()
        _price_cache = build_price_cache(db, backend=PRICE_CACHE_BACKEND, enabled=PRICE_CACHE_ENABLED)
    return _price_cache
