"""Language-model query parser used when the rule classifier is not confident."""

from __future__ import annotations

from typing import Any, List, Optional, Protocol

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from skyroute.domain import Intent, Metric
from skyroute.errors import ParserResponseError
from skyroute.ollama_client import OllamaClient
from skyroute.parser_prompt import build_parser_messages, extract_json_object
from utils.logging_utils import get_tagged_logger, preview_text

logger = get_tagged_logger(__name__, tag="llm_parser")

INTENT_LABELS = {
    "CURRENT_WEATHER": Intent.CURRENT,
    "WEATHER_FORECAST": Intent.FORECAST,
    "HISTORICAL_WEATHER": Intent.HISTORICAL,
    "WEATHER_ADVICE": Intent.ADVICE,
    "LOCATION_SEARCH": Intent.LOCATION_SEARCH,
}


def _clamp(value: Any) -> float:
    if value is None:
        return 0.0
    return max(0.0, min(1.0, float(value)))


class ParserOutput(BaseModel):
    """Validated reply of an external parser."""

    model_config = ConfigDict(extra="ignore")

    location: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    location_confidence: float = 0.0
    intent: Intent
    intent_confidence: float = 0.0
    time_period: Optional[str] = None
    time_confidence: float = 0.0
    metrics: List[Metric] = []
    language: Optional[str] = None
    confidence: float

    @field_validator("intent", mode="before")
    @classmethod
    def map_intent_label(cls, v):
        """Accept CURRENT_WEATHER-style labels as well as the enum values."""
        if isinstance(v, str):
            label = v.strip()
            if label.upper() in INTENT_LABELS:
                return INTENT_LABELS[label.upper()]
            return label.lower()
        return v

    @field_validator("metrics", mode="before")
    @classmethod
    def drop_unknown_metrics(cls, v):
        if v is None:
            return []
        known = {m.value for m in Metric}
        return [str(m).strip().lower() for m in v if str(m).strip().lower() in known]

    @field_validator("location_confidence", "intent_confidence", "time_confidence", "confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v):
        return _clamp(v)

    @field_validator("location", "time_period", "language", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def coordinates(self) -> Optional[tuple[float, float]]:
        if self.latitude is None or self.longitude is None:
            return None
        return self.latitude, self.longitude


class QueryParser(Protocol):
    """Anything with `parse(text, context)`; may be sync or async."""

    def parse(self, text: str, context: Optional[str] = None) -> Any:
        ...


class OllamaQueryParser:
    """Ask a local Ollama model for a structured parse."""

    def __init__(self, client: OllamaClient, *, timeout: Optional[float] = None) -> None:
        self.client = client
        self.timeout = timeout

    def parse(self, text: str, context: Optional[str] = None) -> ParserOutput:
        raw = self.client.chat(build_parser_messages(text, context), response_format="json", timeout=self.timeout)
        payload = extract_json_object(raw)
        try:
            output = ParserOutput.model_validate_json(payload)
        except ValidationError as exc:
            logger.warning(
                "Parser reply failed validation",
                extra={"query": preview_text(text), "reply": preview_text(raw, 200)},
            )
            raise ParserResponseError(f"Invalid parser reply: {exc.error_count()} validation error(s)") from exc
        logger.debug(
            "Parser reply accepted",
            extra={"query": preview_text(text), "intent": output.intent.value, "confidence": output.confidence},
        )
        return output


def build_query_parser(settings) -> Optional[QueryParser]:
    """The configured parser, or None when no parser backend is enabled."""
    if not settings.parser_enabled:
        logger.info("No language-model parser configured; rule classifier only")
        return None
    if settings.parser_backend == "ollama":
        logger.info("Using Ollama query parser", extra={"model": settings.ollama_model})
        return OllamaQueryParser(OllamaClient.from_settings(settings), timeout=settings.parser_timeout_seconds)
    raise ValueError(f"Unknown parser backend '{settings.parser_backend}'")
