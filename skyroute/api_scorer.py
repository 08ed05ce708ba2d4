"""Multi-factor scoring of upstream endpoints for a parsed query.

Every candidate gets six component scores in [0, 1] that are combined with
fixed weights; the top entry is the primary and the next three are fallbacks.
Scores are recomputed on every call from the static registry plus the live
health snapshot, so nothing here is cached.
"""

from __future__ import annotations

import threading
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from skyroute.domain import (
    EndpointCategory,
    EndpointDescriptor,
    EndpointHealth,
    Intent,
    ParsedQuery,
    RoutingContext,
    ScoreBreakdown,
    ScoredCandidate,
    Section,
    SelectionResult,
    TimeKind,
)
from skyroute.errors import NoSuitableApiError
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="api_scorer")


BASE_WEIGHTS: Dict[str, float] = {
    "intent_match": 0.35,
    "coverage": 0.07,
    "freshness": 0.10,
    "reliability": 0.20,
    "latency": 0.18,
    "cost": 0.10,
}

FACTOR_LABELS = {
    "intent_match": "intent match",
    "coverage": "coverage",
    "freshness": "data freshness",
    "reliability": "reliability",
    "latency": "latency",
    "cost": "cost",
}

RELATED_INTENTS: Dict[Intent, Tuple[Intent, ...]] = {
    Intent.CURRENT: (Intent.FORECAST,),
    Intent.FORECAST: (Intent.CURRENT, Intent.ADVICE),
    Intent.ADVICE: (Intent.FORECAST, Intent.CURRENT),
    Intent.HISTORICAL: (Intent.CURRENT,),
    Intent.LOCATION_SEARCH: (),
}

MAX_FALLBACKS = 3
NORMAL_COST_SCALE = 0.0005
NEAR_LIMIT_COST_SCALE = 0.001


DEFAULT_REGISTRY: Tuple[EndpointDescriptor, ...] = (
    EndpointDescriptor(
        id="open_meteo_current",
        name="Open-Meteo current conditions",
        category=EndpointCategory.WEATHER,
        supported_intents=frozenset({Intent.CURRENT, Intent.ADVICE}),
        sections=(Section.CURRENT,),
        time_scope_fit={TimeKind.CURRENT: 1.0, TimeKind.FORECAST: 0.4, TimeKind.HISTORICAL: 0.1},
        nominal_latency_ms=180.0,
        nominal_reliability=0.97,
        cost_per_call=0.0001,
    ),
    EndpointDescriptor(
        id="open_meteo_daily",
        name="Open-Meteo daily forecast",
        category=EndpointCategory.WEATHER,
        supported_intents=frozenset({Intent.FORECAST, Intent.ADVICE}),
        sections=(Section.DAILY,),
        time_scope_fit={TimeKind.CURRENT: 0.6, TimeKind.FORECAST: 1.0, TimeKind.HISTORICAL: 0.1},
        nominal_latency_ms=250.0,
        nominal_reliability=0.96,
        cost_per_call=0.0001,
    ),
    EndpointDescriptor(
        id="open_meteo_hourly",
        name="Open-Meteo hourly forecast",
        category=EndpointCategory.WEATHER,
        supported_intents=frozenset({Intent.CURRENT, Intent.FORECAST, Intent.ADVICE}),
        sections=(Section.HOURLY, Section.CURRENT),
        time_scope_fit={TimeKind.CURRENT: 0.8, TimeKind.FORECAST: 0.9, TimeKind.HISTORICAL: 0.1},
        nominal_latency_ms=320.0,
        nominal_reliability=0.95,
        cost_per_call=0.0002,
    ),
    EndpointDescriptor(
        id="open_meteo_archive",
        name="Open-Meteo historical archive",
        category=EndpointCategory.WEATHER,
        supported_intents=frozenset({Intent.HISTORICAL}),
        sections=(Section.HISTORICAL,),
        time_scope_fit={TimeKind.CURRENT: 0.2, TimeKind.FORECAST: 0.1, TimeKind.HISTORICAL: 1.0},
        nominal_latency_ms=600.0,
        nominal_reliability=0.94,
        cost_per_call=0.0003,
        requests_per_day=5000,
    ),
    EndpointDescriptor(
        id="open_meteo_geocoding",
        name="Open-Meteo geocoding",
        category=EndpointCategory.GEOCODING,
        supported_intents=frozenset({Intent.LOCATION_SEARCH}),
        sections=(Section.LOCATION,),
        nominal_latency_ms=150.0,
        nominal_reliability=0.97,
        cost_per_call=0.0001,
    ),
    EndpointDescriptor(
        id="nominatim_places",
        name="OpenStreetMap Nominatim places",
        category=EndpointCategory.PLACES,
        supported_intents=frozenset({Intent.LOCATION_SEARCH}),
        sections=(Section.LOCATION,),
        nominal_latency_ms=700.0,
        nominal_reliability=0.9,
        cost_per_call=0.0,
        requests_per_minute=60,
        requests_per_day=2000,
    ),
)


def latency_score(latency_ms: float) -> float:
    if latency_ms < 200:
        return 1.0
    if latency_ms < 500:
        return 0.8
    if latency_ms < 1000:
        return 0.6
    if latency_ms < 2000:
        return 0.3
    return 0.1


class APIScorer:
    """Rank registry endpoints for a parsed query."""

    def __init__(self, registry: Sequence[EndpointDescriptor] = DEFAULT_REGISTRY) -> None:
        self.registry: Tuple[EndpointDescriptor, ...] = tuple(registry)
        self._by_id = {endpoint.id: endpoint for endpoint in self.registry}

    def get(self, endpoint_id: str) -> EndpointDescriptor:
        return self._by_id[endpoint_id]

    def endpoints_for_section(self, section: Section) -> List[EndpointDescriptor]:
        return [endpoint for endpoint in self.registry if section in endpoint.sections]

    def candidates(self, intent: Intent) -> Tuple[List[EndpointDescriptor], bool]:
        """Exact-intent endpoints, else related-intent ones (flagged True)."""
        exact = [endpoint for endpoint in self.registry if intent in endpoint.supported_intents]
        if exact:
            return exact, False
        related = set(RELATED_INTENTS.get(intent, ()))
        return [endpoint for endpoint in self.registry if endpoint.supported_intents & related], True

    def select(self, parsed: ParsedQuery, context: Optional[RoutingContext] = None) -> SelectionResult:
        context = context or RoutingContext()
        intent = parsed.intent.primary
        candidates, related_only = self.candidates(intent)
        if not candidates:
            logger.warning("No endpoint can serve intent", extra={"intent": intent.value})
            raise NoSuitableApiError(
                f"No data source can answer a '{intent.value}' query",
                language=parsed.language,
            )

        weights = self._weights(context)
        scored = [self._score(endpoint, parsed, context, weights, related_only) for endpoint in candidates]
        # sorted() is stable, so ties keep registry order
        ranked = sorted(scored, key=lambda c: c.score, reverse=True)

        primary = ranked[0]
        result = SelectionResult(
            primary=primary.endpoint,
            fallbacks=[c.endpoint for c in ranked[1 : 1 + MAX_FALLBACKS]],
            confidence=primary.score,
            reasoning=primary.reasoning,
            candidates=ranked,
        )
        logger.info(
            "Selected endpoint",
            extra={
                "intent": intent.value,
                "primary": primary.endpoint.id,
                "score": primary.score,
                "fallbacks": [e.id for e in result.fallbacks],
                "near_rate_limit": context.near_rate_limit,
            },
        )
        return result

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    @staticmethod
    def _weights(context: RoutingContext) -> Dict[str, float]:
        weights = dict(BASE_WEIGHTS)
        if context.near_rate_limit:
            weights["cost"] *= 2
            total = sum(weights.values())
            weights = {name: value / total for name, value in weights.items()}
        return weights

    def _score(
        self,
        endpoint: EndpointDescriptor,
        parsed: ParsedQuery,
        context: RoutingContext,
        weights: Dict[str, float],
        related_only: bool,
    ) -> ScoredCandidate:
        health = context.endpoint_health.get(endpoint.id)
        breakdown = ScoreBreakdown(
            intent_match=self._intent_score(endpoint, parsed.intent.primary),
            coverage=self._coverage_score(endpoint, parsed),
            freshness=endpoint.time_scope_fit.get(parsed.time_scope.kind, 0.5),
            reliability=self._reliability_score(endpoint, health),
            latency=self._latency_score(endpoint, health),
            cost=self._cost_score(endpoint, context),
        )
        contributions = {name: weights[name] * getattr(breakdown, name) for name in weights}

        if health is not None and not health.available:
            score = 0.0
            reasoning = f"{endpoint.name} is currently unavailable"
        else:
            score = round(min(1.0, max(0.0, sum(contributions.values()))), 4)
            top = sorted(contributions.items(), key=lambda item: item[1], reverse=True)[:2]
            reasoning = f"{endpoint.name}: strongest factors are " + " and ".join(
                f"{FACTOR_LABELS[name]} ({value:.2f})" for name, value in top
            )
            if related_only:
                reasoning += "; chosen via a related intent"

        return ScoredCandidate(
            endpoint=endpoint,
            score=score,
            breakdown=breakdown,
            reasoning=reasoning,
            related_only=related_only,
        )

    @staticmethod
    def _intent_score(endpoint: EndpointDescriptor, intent: Intent) -> float:
        if intent in endpoint.supported_intents:
            return 1.0
        if endpoint.supported_intents & set(RELATED_INTENTS.get(intent, ())):
            return 0.55
        return 0.1

    @staticmethod
    def _coverage_score(endpoint: EndpointDescriptor, parsed: ParsedQuery) -> float:
        if not parsed.location.found:
            return 0.8
        if "global" in endpoint.coverage:
            return 1.0
        name = (parsed.location.name or "").lower()
        if name and any(region.lower() in name or name in region.lower() for region in endpoint.coverage):
            return 0.9
        return 0.3

    @staticmethod
    def _reliability_score(endpoint: EndpointDescriptor, health: Optional[EndpointHealth]) -> float:
        if health is None:
            return endpoint.nominal_reliability
        if not health.available:
            return 0.0
        return max(endpoint.nominal_reliability - min(2 * health.error_rate, 0.5), 0.1)

    @staticmethod
    def _latency_score(endpoint: EndpointDescriptor, health: Optional[EndpointHealth]) -> float:
        if health is not None and health.latency_ms is not None:
            return latency_score(health.latency_ms)
        return latency_score(endpoint.nominal_latency_ms)

    @staticmethod
    def _cost_score(endpoint: EndpointDescriptor, context: RoutingContext) -> float:
        if context.near_rate_limit:
            return 1.0 - min(endpoint.cost_per_call / NEAR_LIMIT_COST_SCALE, 1.0)
        return 1.0 - min(endpoint.cost_per_call / NORMAL_COST_SCALE, 0.8)


class EndpointHealthTracker:
    """Exponentially-weighted error rate and latency per endpoint; thread-safe."""

    def __init__(self, alpha: float = 0.3, endpoint_ids: Iterable[str] = ()) -> None:
        if not 0 < alpha <= 1:
            raise ValueError("alpha must be in (0, 1]")
        self.alpha = alpha
        self._lock = threading.Lock()
        self._health: Dict[str, EndpointHealth] = {eid: EndpointHealth() for eid in endpoint_ids}

    def _current(self, endpoint_id: str) -> EndpointHealth:
        return self._health.get(endpoint_id) or EndpointHealth()

    def record_success(self, endpoint_id: str, latency_ms: float) -> None:
        with self._lock:
            current = self._current(endpoint_id)
            latency = latency_ms if current.latency_ms is None else (
                self.alpha * latency_ms + (1 - self.alpha) * current.latency_ms
            )
            self._health[endpoint_id] = EndpointHealth(
                available=current.available,
                error_rate=(1 - self.alpha) * current.error_rate,
                latency_ms=latency,
            )

    def record_failure(self, endpoint_id: str) -> None:
        with self._lock:
            current = self._current(endpoint_id)
            self._health[endpoint_id] = EndpointHealth(
                available=current.available,
                error_rate=self.alpha + (1 - self.alpha) * current.error_rate,
                latency_ms=current.latency_ms,
            )
        logger.debug("Recorded endpoint failure", extra={"endpoint": endpoint_id})

    def mark_unavailable(self, endpoint_id: str) -> None:
        with self._lock:
            current = self._current(endpoint_id)
            self._health[endpoint_id] = EndpointHealth(False, current.error_rate, current.latency_ms)
        logger.warning("Endpoint marked unavailable", extra={"endpoint": endpoint_id})

    def mark_available(self, endpoint_id: str) -> None:
        with self._lock:
            current = self._current(endpoint_id)
            self._health[endpoint_id] = EndpointHealth(True, current.error_rate, current.latency_ms)

    def snapshot(self) -> Dict[str, EndpointHealth]:
        with self._lock:
            return dict(self._health)
