"""Shared test configuration and fixtures for the rate engine tests.

Key principles:
- No Mongo required: the pricing service runs against an in-memory
  repository with the same method surface as PricingRepository.
- HTTP calls go through the local ASGI app with httpx.AsyncClient.
- AnyIO is the single async runner via pytest-anyio (@pytest.mark.anyio).
"""

from typing import AsyncGenerator, Any

import sys
from datetime import date
from pathlib import Path

import pytest
import httpx
from httpx import ASGITransport

# Ensure backend root is on sys.path so that `server` module is importable
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from pricing_fakes import FakePricingRepository, seed_standard_hotel  # noqa: E402
from rate_engine.services.price_cache import InMemoryCacheStore, PriceCache  # noqa: E402
from rate_engine.services.pricing.engine import PricingService  # noqa: E402

BOOKING_DATE = date(2026, 1, 1)


class FakeClock:
    """Manually advanced monotonic clock for TTL tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Force pytest-anyio to use asyncio event loop."""

    return "asyncio"


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def repo() -> FakePricingRepository:
    """Repository seeded with one hotel, market, meal plan and room types."""

    repo = FakePricingRepository()
    seed_standard_hotel(repo)
    return repo


@pytest.fixture
def price_cache(fake_clock: FakeClock) -> PriceCache:
    return PriceCache(InMemoryCacheStore(clock=fake_clock))


@pytest.fixture
def pricing_service(repo: FakePricingRepository) -> PricingService:
    """Uncached service with a fixed 'today' so release days are deterministic."""

    return PricingService(repo, None, today=lambda: BOOKING_DATE)


@pytest.fixture
def cached_pricing_service(repo: FakePricingRepository, price_cache: PriceCache) -> PricingService:
    return PricingService(repo, price_cache, today=lambda: BOOKING_DATE)


@pytest.fixture(scope="function")
async def async_client(
    pricing_service: PricingService,
    price_cache: PriceCache,
) -> AsyncGenerator[httpx.AsyncClient, None]:
    """ASGI client whose pricing dependencies point at the in-memory fakes."""

    from server import app
    from rate_engine.routers.pricing import get_pricing_service
    from rate_engine.services.price_cache import get_price_cache

    async def override_service() -> Any:
        return pricing_service

    async def override_cache() -> Any:
        return price_cache

    app.dependency_overrides[get_pricing_service] = override_service
    app.dependency_overrides[get_price_cache] = override_cache
    transport = ASGITransport(app=app)
    try:
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
    finally:
        app.dependency_overrides.clear()
