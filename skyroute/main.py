"""FastAPI application setup for the SkyRoute weather router."""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from skyroute.api import get_weather_service, router as api_router
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Run the in-memory cache sweeper for the lifetime of the app."""
    cache = app.dependency_overrides.get(get_weather_service, get_weather_service)().cache
    sweeping = hasattr(cache, "start_background_sweep")
    if sweeping:
        cache.start_background_sweep()
        logger.info("Cache sweeper started", extra={"cache": type(cache).__name__})
    try:
        yield
    finally:
        if sweeping:
            cache.stop_background_sweep()
            logger.info("Cache sweeper stopped")


app = FastAPI(title="SkyRoute Weather Router", lifespan=lifespan)

# API routes
app.include_router(api_router, prefix="/v1")
