from __future__ import annotations

"""Application-level configuration for the rate engine.

All values are read from the environment once at import time. Boolean
flags accept "0/false/off/no" and "1/true/on/yes" (case-insensitive);
anything else falls back to the default.
"""

import os


def _env_flag(name: str, default: bool = True) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in {"0", "false", "off", "no"}:
        return False
    if value in {"1", "true", "on", "yes"}:
        return True
    return default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


# Application constants
API_PREFIX = "/api"
APP_NAME = "Rate Engine API"
APP_VERSION = "1.0.0"
CORS_ORIGINS = ["*"]

# Price cache
PRICE_CACHE_ENABLED: bool = _env_flag("PRICE_CACHE_ENABLED", default=True)
PRICE_CACHE_BACKEND: str = os.environ.get("PRICE_CACHE_BACKEND", "memory").strip().lower()
PRICE_CACHE_TTL_SECONDS: int = _env_int("PRICE_CACHE_TTL_SECONDS", 5 * 60)
CAMPAIGN_CACHE_TTL_SECONDS: int = _env_int("CAMPAIGN_CACHE_TTL_SECONDS", 10 * 60)
AVAILABILITY_CACHE_TTL_SECONDS: int = _env_int("AVAILABILITY_CACHE_TTL_SECONDS", 60)
PRICE_CACHE_SWEEP_SECONDS: int = _env_int("PRICE_CACHE_SWEEP_SECONDS", 5 * 60)

# Pricing
DEFAULT_CURRENCY: str = os.environ.get("DEFAULT_CURRENCY", "EUR").strip().upper()
PRICING_CONSISTENCY_TOLERANCE: float = _env_float("PRICING_CONSISTENCY_TOLERANCE", 0.01)
MAX_BULK_QUERIES: int = _env_int("MAX_BULK_QUERIES", 100)

# Commercial defaults used when a market leaves a value unset
DEFAULT_WORKING_MODE = "net"
DEFAULT_COMMISSION_RATE = 10.0
DEFAULT_AGENCY_COMMISSION = 10.0
DEFAULT_AGENCY_MARGIN_SHARE = 50.0
DEFAULT_BASE_OCCUPANCY = 2
DEFAULT_CHILD_AGE_GROUP = "first"
