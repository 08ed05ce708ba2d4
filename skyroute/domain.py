"""Domain vocabulary and strict schemas for parsed weather queries.

This module defines the contract shared by the rule classifier, the
language-model fallback, the API scorer and the query service: enums, the
immutable ``ParsedQuery`` and the scoring/selection records. No parsing or
scoring logic lives here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class _StrictBaseModel(BaseModel):
    """Base model with strict extra handling."""

    model_config = ConfigDict(extra="forbid")


class _FrozenModel(BaseModel):
    """Strict, immutable model; derive new values with ``model_copy``."""

    model_config = ConfigDict(extra="forbid", frozen=True)


class Intent(str, Enum):
    """Primary intent of a weather query."""
    CURRENT = "current"
    FORECAST = "forecast"
    HISTORICAL = "historical"
    ADVICE = "advice"
    LOCATION_SEARCH = "location_search"


DEFAULT_INTENT = Intent.CURRENT


class TimeKind(str, Enum):
    """Which part of the timeline a query is about."""
    CURRENT = "current"
    FORECAST = "forecast"
    HISTORICAL = "historical"


class Metric(str, Enum):
    """Weather quantities a query can ask about (declaration order is output order)."""
    TEMPERATURE = "temperature"
    HUMIDITY = "humidity"
    PRECIPITATION = "precipitation"
    WIND = "wind"
    PRESSURE = "pressure"
    VISIBILITY = "visibility"
    UV_INDEX = "uv_index"
    AIR_QUALITY = "air_quality"
    CONDITIONS = "conditions"
    FEELS_LIKE = "feels_like"
    DEW_POINT = "dew_point"


DEFAULT_METRICS: Tuple[Metric, ...] = (Metric.TEMPERATURE, Metric.CONDITIONS, Metric.PRECIPITATION)


class Units(str, Enum):
    """Unit system requested by the caller."""
    METRIC = "metric"
    IMPERIAL = "imperial"


class ParsingSource(str, Enum):
    """How a ParsedQuery was produced."""
    RULES_ONLY = "rules_only"
    RULES_FALLBACK = "rules_fallback"
    RULES_WITH_FALLBACK = "rules_with_fallback"
    FALLBACK_ONLY = "fallback_only"
    RULES_FALLBACK_ON_ERROR = "rules_fallback_on_error"


SUPPORTED_LANGUAGES: FrozenSet[str] = frozenset({"en", "zh", "zh-TW", "zh-CN", "ja", "ko", "ar", "hi"})


def sort_metrics(metrics) -> List[Metric]:
    """Unique metrics in declaration order."""
    wanted = {Metric(m) for m in metrics}
    return [m for m in Metric if m in wanted]


class LocationInfo(_FrozenModel):
    """Location extracted from a query; ``name`` is None when nothing was found."""
    name: Optional[str] = None
    coordinates: Optional[Tuple[float, float]] = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    source: Optional[str] = None

    @property
    def found(self) -> bool:
        return bool(self.name) or self.coordinates is not None


class IntentInfo(_FrozenModel):
    primary: Intent = DEFAULT_INTENT
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)


class TimeScope(_FrozenModel):
    kind: TimeKind = TimeKind.CURRENT
    period: Optional[str] = None
    duration: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)


class ParsedQuery(_FrozenModel):
    """Structured extraction of location/intent/time/metrics from free text."""
    original_text: str
    location: LocationInfo = Field(default_factory=LocationInfo)
    intent: IntentInfo = Field(default_factory=IntentInfo)
    time_scope: TimeScope = Field(default_factory=TimeScope)
    metrics: List[Metric] = Field(default_factory=lambda: list(DEFAULT_METRICS))
    activities: List[str] = Field(default_factory=list)
    language: str = "en"
    units: Units = Units.METRIC
    context: Optional[str] = None
    overall_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    parsing_source: ParsingSource = ParsingSource.RULES_ONLY


# ---------------------------------------------------------------------------
# Endpoint registry and scoring records
# ---------------------------------------------------------------------------


class EndpointCategory(str, Enum):
    WEATHER = "weather"
    GEOCODING = "geocoding"
    PLACES = "places"


class Section(str, Enum):
    """Result section an endpoint can fill."""
    CURRENT = "current"
    DAILY = "daily"
    HOURLY = "hourly"
    HISTORICAL = "historical"
    LOCATION = "location"


@dataclass(frozen=True)
class EndpointDescriptor:
    """Static description of one upstream capability."""
    id: str
    name: str
    category: EndpointCategory
    supported_intents: FrozenSet[Intent]
    sections: Tuple[Section, ...]
    coverage: Tuple[str, ...] = ("global",)
    time_scope_fit: Dict[TimeKind, float] = field(default_factory=dict)
    nominal_latency_ms: float = 500.0
    nominal_reliability: float = 0.95
    cost_per_call: float = 0.0002
    requests_per_minute: int = 600
    requests_per_day: int = 10000


@dataclass(frozen=True)
class EndpointHealth:
    """Live health signal for one endpoint."""
    available: bool = True
    error_rate: float = 0.0
    latency_ms: Optional[float] = None


@dataclass(frozen=True)
class RoutingContext:
    """Inputs to API selection beyond the parsed query."""
    endpoint_health: Dict[str, EndpointHealth] = field(default_factory=dict)
    rate_limit_remaining: Optional[int] = None
    near_rate_limit_threshold: int = 100

    @property
    def near_rate_limit(self) -> bool:
        return self.rate_limit_remaining is not None and self.rate_limit_remaining < self.near_rate_limit_threshold


class ScoreBreakdown(_StrictBaseModel):
    intent_match: float
    coverage: float
    freshness: float
    reliability: float
    latency: float
    cost: float


class ScoredCandidate(_StrictBaseModel):
    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    endpoint: EndpointDescriptor
    score: float
    breakdown: ScoreBreakdown
    reasoning: str = ""
    related_only: bool = False


class SelectionResult(_StrictBaseModel):
    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    primary: EndpointDescriptor
    fallbacks: List[EndpointDescriptor] = Field(default_factory=list)
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str
    candidates: List[ScoredCandidate] = Field(default_factory=list)

    def ranked_ids(self) -> List[str]:
        return [c.endpoint.id for c in self.candidates]
