"""End-to-end weather query service.

``query_weather`` runs the whole pipeline for one free-text question:
rate limit, parse, resolve the location, cache lookup, endpoint selection,
concurrent per-section fetches with provider fallback, then a cache write.
Every collaborator is passed in, so tests build a service around fakes and
``build_weather_service`` wires the production defaults from settings.
"""

from __future__ import annotations

import asyncio
import datetime as dt
import math
import time
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field, ValidationError

from skyroute import config
from skyroute.api_scorer import APIScorer, EndpointHealthTracker
from skyroute.cache import (
    CacheStore,
    TTLClass,
    build_cache_store,
    build_location_cache_key,
    build_weather_cache_key,
    classify_ttl,
    ttl_seconds_from_settings,
)
from skyroute.data_sources import (
    CurrentWeather,
    DailyWeather,
    GeoLocation,
    HourlyWeather,
    WeatherDataSource,
    build_data_source,
)
from skyroute.domain import (
    EndpointDescriptor,
    Intent,
    ParsedQuery,
    ParsingSource,
    RoutingContext,
    Section,
    SelectionResult,
    Units,
)
from skyroute.errors import (
    ErrorCode,
    LocationNotFoundError,
    LocationNotSpecifiedError,
    QueryValidationError,
    RateLimitExceededError,
    UpstreamError,
    UpstreamErrorKind,
)
from skyroute.fallback import FallbackOrchestrator
from skyroute.llm_parser import build_query_parser
from skyroute.rate_limiter import FixedWindowRateLimiter
from utils.logging_utils import get_tagged_logger, preview_text

logger = get_tagged_logger(__name__, tag="weather_service")

NEAR_LIMIT_THRESHOLD = 100
# provider failures that will not clear up on their own
DISABLING_KINDS = frozenset({UpstreamErrorKind.UNAUTHORIZED, UpstreamErrorKind.QUOTA_EXCEEDED})


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class QueryOptions(BaseModel):
    """Per-request overrides; `units`/`language` replace the parsed values."""

    units: Optional[Units] = None
    language: Optional[str] = None
    include_forecast: bool = True
    include_hourly: bool = False
    forecast_days: Optional[int] = Field(default=None, ge=1, le=16)
    hourly_hours: Optional[int] = Field(default=None, ge=1, le=168)


class QueryWarning(BaseModel):
    code: ErrorCode
    message: str


class QueryMetadata(BaseModel):
    sources: List[str] = Field(default_factory=list)
    confidence: float = 0.0
    parsing_confidence: float = 0.0
    selection_confidence: Optional[float] = None
    cached: bool = False
    parsing_source: ParsingSource = ParsingSource.RULES_ONLY
    intent: Intent = Intent.CURRENT
    selected_api: Optional[str] = None
    ttl_seconds: int = 0
    timestamp: dt.datetime
    warnings: List[QueryWarning] = Field(default_factory=list)


class WeatherQueryResult(BaseModel):
    location: GeoLocation
    current: Optional[CurrentWeather] = None
    daily: Optional[List[DailyWeather]] = None
    hourly: Optional[List[HourlyWeather]] = None
    historical: Optional[List[DailyWeather]] = None
    metadata: QueryMetadata


@dataclass(frozen=True)
class FetchPlan:
    """Everything a section fetcher needs for one query."""
    latitude: float
    longitude: float
    units: str
    forecast_days: int
    hourly_hours: int
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None


def plan_sections(intent: Intent, options: QueryOptions) -> List[Section]:
    """Result sections to fetch for an intent, main section first."""
    if intent == Intent.HISTORICAL:
        return [Section.HISTORICAL]
    if intent == Intent.CURRENT:
        sections = [Section.CURRENT]
        if options.include_forecast:
            sections.append(Section.DAILY)
    else:
        sections = [Section.DAILY, Section.CURRENT]
    if options.include_hourly:
        sections.append(Section.HOURLY)
    return sections


def completeness_confidence(sections: Dict[Section, Any]) -> float:
    score = 0.5
    if sections.get(Section.CURRENT) is not None:
        score += 0.3
    if sections.get(Section.DAILY) or sections.get(Section.HISTORICAL):
        score += 0.2
    if sections.get(Section.HOURLY):
        score += 0.1
    return round(min(1.0, score), 4)


class WeatherQueryService:
    def __init__(
        self,
        settings: config.Settings,
        orchestrator: FallbackOrchestrator,
        scorer: APIScorer,
        cache: CacheStore,
        limiter: FixedWindowRateLimiter,
        data_source: WeatherDataSource,
        health: Optional[EndpointHealthTracker] = None,
        *,
        clock: Callable[[], dt.datetime] = utcnow,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ) -> None:
        self.settings = settings
        self.orchestrator = orchestrator
        self.scorer = scorer
        self.cache = cache
        self.limiter = limiter
        self.data_source = data_source
        self.health = health or EndpointHealthTracker(endpoint_ids=[e.id for e in scorer.registry])
        self._clock = clock
        self._sleep = sleep
        self.ttl_seconds = ttl_seconds_from_settings(settings)

        self._section_fetchers: Dict[Tuple[str, Section], Callable[[FetchPlan], Any]] = {
            ("open_meteo_current", Section.CURRENT): self._fetch_current,
            ("open_meteo_hourly", Section.CURRENT): self._current_from_hourly,
            ("open_meteo_daily", Section.DAILY): self._fetch_daily,
            ("open_meteo_hourly", Section.HOURLY): self._fetch_hourly,
            ("open_meteo_archive", Section.HISTORICAL): self._fetch_historical,
        }
        self._place_lookups: Dict[str, Callable[..., List[GeoLocation]]] = {
            "open_meteo_geocoding": self.data_source.geocode,
            "nominatim_places": self.data_source.search_places,
        }

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def parse(self, text: str, context: Optional[str] = None) -> ParsedQuery:
        """Parse only; no rate limiting and no upstream calls."""
        return await self.orchestrator.parse(text, context)

    async def query_weather(
        self,
        text: str,
        context: Optional[str] = None,
        options: Optional[QueryOptions] = None,
    ) -> WeatherQueryResult:
        options = options or QueryOptions()
        self._acquire()

        parsed = await self.orchestrator.parse(text, context)
        overrides: Dict[str, Any] = {}
        if options.units is not None:
            overrides["units"] = options.units
        if options.language:
            overrides["language"] = options.language
        if overrides:
            parsed = parsed.model_copy(update=overrides)

        logger.info(
            "Weather query parsed",
            extra={
                "query": preview_text(text),
                "location": parsed.location.name,
                "intent": parsed.intent.primary.value,
                "parsing_source": parsed.parsing_source.value,
                "confidence": parsed.overall_confidence,
            },
        )

        location, location_cached = await self._resolve_location(parsed)

        if parsed.intent.primary == Intent.LOCATION_SEARCH:
            return self._location_result(parsed, location, location_cached)

        plan = self._fetch_plan(parsed, location, options)
        cache_key = build_weather_cache_key(
            location.coordinates,
            units=plan.units,
            language=parsed.language,
            include_forecast=options.include_forecast or parsed.intent.primary in (Intent.FORECAST, Intent.ADVICE),
            include_hourly=options.include_hourly,
            time_kind=parsed.time_scope.kind.value,
            start_date=plan.start_date,
            end_date=plan.end_date,
            precision=self.settings.cache_coordinate_precision,
        )

        hit = self._cached_result(cache_key, parsed)
        if hit is not None:
            return hit

        selection = self.scorer.select(parsed, self._routing_context())
        sections = plan_sections(parsed.intent.primary, options)
        fetched, sources, failures = await self._fetch_sections(sections, selection, plan)

        if not fetched:
            logger.error(
                "All sections failed",
                extra={"cache_key": cache_key, "errors": [str(exc) for exc in failures]},
            )
            raise failures[0]

        ttl = self.ttl_seconds[classify_ttl(parsed)]
        warnings = self._warnings(parsed, failures)
        result = WeatherQueryResult(
            location=location,
            current=fetched.get(Section.CURRENT),
            daily=fetched.get(Section.DAILY),
            hourly=fetched.get(Section.HOURLY),
            historical=fetched.get(Section.HISTORICAL),
            metadata=QueryMetadata(
                sources=sources,
                confidence=completeness_confidence(fetched),
                parsing_confidence=parsed.overall_confidence,
                selection_confidence=selection.confidence,
                cached=False,
                parsing_source=parsed.parsing_source,
                intent=parsed.intent.primary,
                selected_api=selection.primary.id,
                ttl_seconds=ttl,
                timestamp=self._clock(),
                warnings=warnings,
            ),
        )
        self.cache.set(cache_key, result.model_dump(mode="json"), ttl)
        logger.info(
            "Weather query answered",
            extra={"cache_key": cache_key, "sources": sources, "failed_sections": len(failures)},
        )
        return result

    async def search_locations(self, query: str, language: Optional[str] = None) -> List[GeoLocation]:
        """Geocoding matches for a place name, best first."""
        if not query or not query.strip():
            raise QueryValidationError("Location query must not be empty")
        self._acquire()
        results, _ = await self._geocode(query.strip(), language or self.settings.default_language)
        return results

    def stats(self) -> dict:
        return {
            "rate_limit_remaining": self.limiter.remaining(),
            "cache": self.cache.stats().as_dict(),
            "endpoint_health": {eid: asdict(h) for eid, h in self.health.snapshot().items()},
        }

    # ------------------------------------------------------------------
    # Pipeline steps
    # ------------------------------------------------------------------

    def _acquire(self) -> None:
        if not self.limiter.try_acquire():
            retry_after = self.limiter.retry_after_seconds()
            raise RateLimitExceededError(math.ceil(retry_after))

    def _routing_context(self) -> RoutingContext:
        threshold = min(NEAR_LIMIT_THRESHOLD, max(1, math.ceil(self.limiter.max_requests * 0.1)))
        return RoutingContext(
            endpoint_health=self.health.snapshot(),
            rate_limit_remaining=self.limiter.remaining(),
            near_rate_limit_threshold=threshold,
        )

    async def _resolve_location(self, parsed: ParsedQuery) -> Tuple[GeoLocation, bool]:
        info = parsed.location
        if info.coordinates is not None:
            lat, lon = info.coordinates
            return GeoLocation(
                name=info.name or f"{lat:.4f},{lon:.4f}",
                latitude=lat,
                longitude=lon,
                source=info.source or "query",
            ), False
        if not info.name:
            raise LocationNotSpecifiedError("No location found in the query", language=parsed.language)
        matches, cached = await self._geocode(info.name, parsed.language)
        if not matches:
            raise LocationNotFoundError(info.name, language=parsed.language)
        return matches[0], cached

    async def _geocode(self, name: str, language: str) -> Tuple[List[GeoLocation], bool]:
        key = build_location_cache_key(name, language)
        cached = self.cache.get(key)
        if cached is not None:
            try:
                return [GeoLocation(**item) for item in cached], True
            except TypeError:
                logger.warning("Discarding unreadable cached location", extra={"cache_key": key})
                self.cache.delete(key)

        errors: List[UpstreamError] = []
        answered = False
        for endpoint in self._providers(Section.LOCATION):
            lookup = self._place_lookups.get(endpoint.id)
            if lookup is None:
                continue
            try:
                results = await self._call_with_retry(endpoint.id, lookup, name, language=language)
            except UpstreamError as exc:
                errors.append(exc)
                continue
            answered = True
            if results:
                self.cache.set(key, [asdict(r) for r in results], self.ttl_seconds[TTLClass.LOCATION])
                logger.debug("Location resolved", extra={"location": name, "source": endpoint.id})
                return list(results), False
        if errors and not answered:
            raise errors[0]
        return [], False

    def _location_result(self, parsed: ParsedQuery, location: GeoLocation, cached: bool) -> WeatherQueryResult:
        return WeatherQueryResult(
            location=location,
            metadata=QueryMetadata(
                sources=[location.source],
                confidence=parsed.location.confidence,
                parsing_confidence=parsed.overall_confidence,
                cached=cached,
                parsing_source=parsed.parsing_source,
                intent=parsed.intent.primary,
                selected_api=location.source,
                ttl_seconds=self.ttl_seconds[TTLClass.LOCATION],
                timestamp=self._clock(),
                warnings=self._warnings(parsed, []),
            ),
        )

    def _fetch_plan(self, parsed: ParsedQuery, location: GeoLocation, options: QueryOptions) -> FetchPlan:
        start_date = end_date = None
        if parsed.intent.primary == Intent.HISTORICAL:
            scope = parsed.time_scope
            if scope.start_time is not None and scope.end_time is not None:
                start_date, end_date = scope.start_time.date(), scope.end_time.date()
            else:
                start_date = end_date = self._clock().date() - dt.timedelta(days=1)
        return FetchPlan(
            latitude=location.latitude,
            longitude=location.longitude,
            units=parsed.units.value,
            forecast_days=options.forecast_days or self.settings.forecast_days,
            hourly_hours=options.hourly_hours or self.settings.hourly_hours,
            start_date=start_date,
            end_date=end_date,
        )

    def _cached_result(self, key: str, parsed: ParsedQuery) -> Optional[WeatherQueryResult]:
        cached = self.cache.get(key)
        if cached is None:
            return None
        try:
            result = WeatherQueryResult.model_validate(cached)
        except ValidationError as exc:
            logger.warning(
                "Discarding invalid cached result",
                extra={"cache_key": key, "errors": exc.error_count()},
            )
            self.cache.delete(key)
            return None
        result.metadata = result.metadata.model_copy(
            update={
                "cached": True,
                "parsing_confidence": parsed.overall_confidence,
                "parsing_source": parsed.parsing_source,
                "warnings": self._warnings(parsed, []),
            }
        )
        logger.info("Serving cached result", extra={"cache_key": key})
        return result

    def _warnings(self, parsed: ParsedQuery, failures: Sequence[UpstreamError]) -> List[QueryWarning]:
        warnings = []
        if self.orchestrator.is_degraded(parsed):
            warnings.append(
                QueryWarning(
                    code=ErrorCode.PARSING_DEGRADED,
                    message="The question was understood with reduced confidence; results may not match it exactly",
                )
            )
        for exc in failures:
            warnings.append(QueryWarning(code=ErrorCode.UPSTREAM_ERROR, message=str(exc)))
        return warnings

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    def _providers(self, section: Section, selection: Optional[SelectionResult] = None) -> List[EndpointDescriptor]:
        """Endpoints able to fill `section`: ranked ones first, unusable ones last."""
        ranked = selection.ranked_ids() if selection is not None else []
        scores = {c.endpoint.id: c.score for c in selection.candidates} if selection is not None else {}
        health = self.health.snapshot()
        capable = self.scorer.endpoints_for_section(section)

        def position(item: Tuple[int, EndpointDescriptor]) -> int:
            index, endpoint = item
            return ranked.index(endpoint.id) if endpoint.id in ranked else len(ranked) + index

        ordered = [endpoint for _, endpoint in sorted(enumerate(capable), key=position)]

        def unusable(endpoint: EndpointDescriptor) -> bool:
            state = health.get(endpoint.id)
            return scores.get(endpoint.id) == 0.0 or (state is not None and not state.available)

        return [e for e in ordered if not unusable(e)] + [e for e in ordered if unusable(e)]

    async def _fetch_sections(
        self,
        sections: Sequence[Section],
        selection: SelectionResult,
        plan: FetchPlan,
    ) -> Tuple[Dict[Section, Any], List[str], List[UpstreamError]]:
        outcomes = await asyncio.gather(
            *(self._fetch_section(section, selection, plan) for section in sections),
            return_exceptions=True,
        )
        fetched: Dict[Section, Any] = {}
        sources: List[str] = []
        failures: List[UpstreamError] = []
        for section, outcome in zip(sections, outcomes):
            if isinstance(outcome, UpstreamError):
                logger.warning(
                    "Section unavailable",
                    extra={"section": section.value, "error": str(outcome), "kind": outcome.kind.value},
                )
                failures.append(outcome)
                continue
            if isinstance(outcome, BaseException):
                raise outcome
            endpoint_id, value = outcome
            fetched[section] = value
            if endpoint_id not in sources:
                sources.append(endpoint_id)
        return fetched, sources, failures

    async def _fetch_section(self, section: Section, selection: SelectionResult, plan: FetchPlan) -> Tuple[str, Any]:
        errors: List[UpstreamError] = []
        for endpoint in self._providers(section, selection):
            fetcher = self._section_fetchers.get((endpoint.id, section))
            if fetcher is None:
                continue
            try:
                return endpoint.id, await self._call_with_retry(endpoint.id, fetcher, plan)
            except UpstreamError as exc:
                logger.warning(
                    "Provider failed; trying next",
                    extra={"section": section.value, "endpoint": endpoint.id, "kind": exc.kind.value},
                )
                errors.append(exc)
        if errors:
            raise errors[0]
        raise UpstreamError(
            UpstreamErrorKind.INVALID_REQUEST,
            f"No provider can supply {section.value} data",
        )

    async def _call_with_retry(self, endpoint_id: str, func: Callable[..., Any], *args, **kwargs) -> Any:
        """Run a blocking provider call off the event loop, backing off on retryable errors."""
        attempt = 0
        while True:
            started = time.monotonic()
            try:
                result = await asyncio.to_thread(func, *args, **kwargs)
            except UpstreamError as exc:
                self._record_failure(endpoint_id, exc)
                if not exc.retryable or attempt >= self.settings.upstream_retries:
                    raise
                delay = self.settings.upstream_backoff_seconds * (2 ** attempt)
                logger.info(
                    "Retrying provider call",
                    extra={"endpoint": endpoint_id, "attempt": attempt + 1, "delay": delay, "kind": exc.kind.value},
                )
                await self._sleep(delay)
                attempt += 1
                continue
            except Exception as exc:
                logger.exception("Unexpected provider failure", extra={"endpoint": endpoint_id})
                error = UpstreamError(
                    UpstreamErrorKind.SERVER_ERROR,
                    f"Unexpected failure from {endpoint_id}: {exc}",
                    endpoint=endpoint_id,
                )
                self._record_failure(endpoint_id, error)
                raise error from exc
            self.health.record_success(endpoint_id, (time.monotonic() - started) * 1000)
            self.health.mark_available(endpoint_id)
            return result

    def _record_failure(self, endpoint_id: str, exc: UpstreamError) -> None:
        self.health.record_failure(endpoint_id)
        if exc.kind in DISABLING_KINDS:
            self.health.mark_unavailable(endpoint_id)

    # section fetchers; each runs in a worker thread

    def _fetch_current(self, plan: FetchPlan) -> CurrentWeather:
        return self.data_source.fetch_current(plan.latitude, plan.longitude, units=plan.units)

    def _current_from_hourly(self, plan: FetchPlan) -> CurrentWeather:
        hours = self.data_source.fetch_hourly(plan.latitude, plan.longitude, units=plan.units, hours=1)
        if not hours:
            raise UpstreamError(
                UpstreamErrorKind.SERVER_ERROR,
                "Hourly forecast returned no data",
                endpoint="open_meteo_hourly",
            )
        first = hours[0]
        return CurrentWeather(
            time=first.time,
            temperature=first.temperature,
            humidity=first.humidity,
            precipitation=first.precipitation,
            wind_speed=first.wind_speed,
            visibility=first.visibility,
            uv_index=first.uv_index,
            weather_code=first.weather_code,
            description=first.description,
            units=dict(first.units),
        )

    def _fetch_daily(self, plan: FetchPlan) -> List[DailyWeather]:
        return self.data_source.fetch_daily(plan.latitude, plan.longitude, units=plan.units, days=plan.forecast_days)

    def _fetch_hourly(self, plan: FetchPlan) -> List[HourlyWeather]:
        return self.data_source.fetch_hourly(plan.latitude, plan.longitude, units=plan.units, hours=plan.hourly_hours)

    def _fetch_historical(self, plan: FetchPlan) -> List[DailyWeather]:
        return self.data_source.fetch_historical(
            plan.latitude,
            plan.longitude,
            start_date=plan.start_date,
            end_date=plan.end_date,
            units=plan.units,
        )


def build_weather_service(settings: Optional[config.Settings] = None) -> WeatherQueryService:
    """Wire the production collaborators from settings."""
    settings = settings or config.settings
    scorer = APIScorer()
    orchestrator = FallbackOrchestrator.from_settings(settings, parser=build_query_parser(settings))
    service = WeatherQueryService(
        settings,
        orchestrator,
        scorer,
        build_cache_store(settings),
        FixedWindowRateLimiter(settings.rate_limit_max_requests, settings.rate_limit_window_seconds),
        build_data_source(settings),
        EndpointHealthTracker(endpoint_ids=[e.id for e in scorer.registry]),
    )
    logger.info(
        "Weather service ready",
        extra={
            "parser_backend": settings.parser_backend,
            "cache": type(service.cache).__name__,
            "data_source": settings.data_source,
        },
    )
    return service
