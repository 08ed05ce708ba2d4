"""HTTP API for the SkyRoute weather router."""

import hmac
from functools import lru_cache
from typing import Any, Dict, List, Optional

import redis
from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from pydantic import BaseModel, Field

from skyroute.check_ollama import get_ollama_status
from skyroute.config import settings
from skyroute.data_sources import GeoLocation
from skyroute.domain import ParsedQuery
from skyroute.errors import RateLimitExceededError, WeatherQueryError
from skyroute.weather_service import QueryOptions, WeatherQueryResult, WeatherQueryService, build_weather_service
from utils.logging_utils import get_tagged_logger, mask_url_credentials, preview_text

logger = get_tagged_logger(__name__, tag="api")

# Optional Redis set of API keys; the static key still works alongside it
_redis_client = None
if settings.api_key_redis_url:
    _redis_client = redis.Redis.from_url(settings.api_key_redis_url)
    logger.info(
        "API key checks will use Redis backend",
        extra={"redis_url": mask_url_credentials(settings.api_key_redis_url)},
    )


def require_api_key(x_api_key: str | None = Header(default=None)):
    """
    Validate X-API-Key against the Redis key set (if configured) or the static api_key setting.
    """
    # No key configured anywhere: open access (dev/default mode)
    if not settings.api_key and not _redis_client:
        return

    if not x_api_key:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing API key")

    if _redis_client:
        try:
            if _redis_client.sismember(settings.api_key_redis_set, x_api_key):
                return
        except redis.RedisError as e:
            logger.warning("Redis API key lookup error; falling back to static key", extra={"error": str(e)})

    if settings.api_key and hmac.compare_digest(str(x_api_key), str(settings.api_key)):
        return

    logger.debug("Invalid API key provided")
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")


@lru_cache(maxsize=1)
def get_weather_service() -> WeatherQueryService:
    """Process-wide service built on first use; tests swap it via dependency_overrides."""
    return build_weather_service(settings)


router = APIRouter(dependencies=[Depends(require_api_key)])


class QueryRequest(BaseModel):
    """Incoming weather question."""
    query: str
    context: Optional[str] = None
    options: Optional[QueryOptions] = None


class ParseRequest(BaseModel):
    query: str
    context: Optional[str] = None


class LocationsResponse(BaseModel):
    query: str
    results: List[GeoLocation] = Field(default_factory=list)


class HealthResponse(BaseModel):
    status: str
    rate_limit_remaining: int
    cache: Dict[str, Any]
    endpoint_health: Dict[str, Any]
    parser: Optional[Dict[str, Any]] = None


def _to_http_error(err: WeatherQueryError) -> HTTPException:
    """Map a typed query error onto its HTTP status and JSON payload."""
    headers = None
    if isinstance(err, RateLimitExceededError):
        headers = {"Retry-After": str(max(1, int(err.retry_after_seconds)))}
    log = logger.warning if err.http_status >= 500 else logger.info
    log("Query failed", extra={"code": err.code.value, "status": err.http_status, "error": err.message})
    return HTTPException(status_code=err.http_status, detail=err.to_payload(), headers=headers)


@router.post("/query", response_model=WeatherQueryResult)
async def query_weather(req: QueryRequest, service: WeatherQueryService = Depends(get_weather_service)):
    """Answer a free-text weather question."""
    logger.info("Query received", extra={"query": preview_text(req.query)})
    try:
        return await service.query_weather(req.query, req.context, req.options)
    except WeatherQueryError as err:
        raise _to_http_error(err) from err


@router.post("/parse", response_model=ParsedQuery)
async def parse_query(req: ParseRequest, service: WeatherQueryService = Depends(get_weather_service)):
    """Parse a question without calling any weather provider."""
    try:
        return await service.parse(req.query, req.context)
    except WeatherQueryError as err:
        raise _to_http_error(err) from err


@router.get("/locations", response_model=LocationsResponse)
async def search_locations(
    q: str = Query(..., min_length=1, max_length=200),
    language: Optional[str] = None,
    service: WeatherQueryService = Depends(get_weather_service),
):
    """Look up places by name."""
    try:
        results = await service.search_locations(q, language)
    except WeatherQueryError as err:
        raise _to_http_error(err) from err
    return LocationsResponse(query=q, results=results)


@router.get("/health", response_model=HealthResponse)
def health(service: WeatherQueryService = Depends(get_weather_service)):
    """Cache, limiter and endpoint health; includes the Ollama probe when a parser is configured."""
    stats = service.stats()
    parser_status = None
    overall = "ok"
    if service.settings.parser_enabled:
        parser_status = get_ollama_status([service.settings.ollama_model], service.settings.ollama_base_url)
        if not parser_status["ok"]:
            overall = "degraded"
    if any(not h["available"] for h in stats["endpoint_health"].values()):
        overall = "degraded"
    return HealthResponse(status=overall, parser=parser_status, **stats)
