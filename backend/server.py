from __future__ import annotations

import asyncio
import os
import logging
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

ROOT_DIR = Path(__file__).parent

# Load .env only if exists (development fallback)
env_path = ROOT_DIR / ".env"
if env_path.exists():
    load_dotenv(env_path)

from rate_engine.cache_worker import price_cache_sweep_loop  # noqa: E402
from rate_engine.config import APP_NAME, APP_VERSION, PRICE_CACHE_ENABLED  # noqa: E402
from rate_engine.db import close_mongo, connect_mongo, get_db, ping_mongo  # noqa: E402
from rate_engine.exception_handlers import register_exception_handlers  # noqa: E402
from rate_engine.indexes.pricing_indexes import ensure_pricing_indexes  # noqa: E402
from rate_engine.routers.pricing import router as pricing_router  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("rate-engine")

app = FastAPI(title=APP_NAME, version=APP_VERSION)

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=os.environ.get("CORS_ORIGINS", "*").split(","),
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Routers (/api prefix is on each router)
app.include_router(pricing_router)


@app.get("/api/health")
async def health() -> dict[str, Any]:
    """Main health check with database ping"""
    ok = await ping_mongo()
    return {"ok": ok, "service": "rate-engine"}


@app.get("/health")
@app.get("/health/")
async def deployment_health() -> dict[str, Any]:
    """Simple health check for deployment platforms"""
    return {"ok": True, "service": "rate-engine", "status": "healthy"}


@app.on_event("startup")
async def _startup() -> None:
    await connect_mongo()
    db = await get_db()
    await ensure_pricing_indexes(db)
    logger.info("Startup complete")

    if PRICE_CACHE_ENABLED:
        asyncio.create_task(price_cache_sweep_loop())


@app.on_event("shutdown")
async def _shutdown() -> None:
    await close_mongo()
    logger.info("Shutdown complete")
