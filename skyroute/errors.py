"""Typed errors for each boundary of the query pipeline.

Request errors (``WeatherQueryError`` subclasses) are what callers see; every
one carries a machine-readable code, a plain-language message and at least
one suggestion. Language-model errors (``ParserError``) never leave the
fallback orchestrator.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    LOCATION_NOT_SPECIFIED = "LOCATION_NOT_SPECIFIED"
    LOCATION_NOT_FOUND = "LOCATION_NOT_FOUND"
    NO_SUITABLE_API = "NO_SUITABLE_API"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"
    PARSING_DEGRADED = "PARSING_DEGRADED"


class UpstreamErrorKind(str, Enum):
    """Provider failure classes; the retry policy only looks at `retryable`."""
    NOT_FOUND = "not_found"
    INVALID_REQUEST = "invalid_request"
    UNAUTHORIZED = "unauthorized"
    QUOTA_EXCEEDED = "quota_exceeded"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    NETWORK_ERROR = "network_error"

    @property
    def retryable(self) -> bool:
        return self in _RETRYABLE_KINDS


_RETRYABLE_KINDS = frozenset({
    UpstreamErrorKind.RATE_LIMITED,
    UpstreamErrorKind.SERVER_ERROR,
    UpstreamErrorKind.NETWORK_ERROR,
})


DEFAULT_SUGGESTIONS: Dict[str, Dict[ErrorCode, List[str]]] = {
    "en": {
        ErrorCode.VALIDATION_ERROR: [
            "Shorten the question and remove very long words or links",
            "Ask a plain weather question, e.g. 'Will it rain in Tokyo tomorrow?'",
        ],
        ErrorCode.LOCATION_NOT_SPECIFIED: [
            "Specify a location, e.g. 'weather in Taipei'",
            "Add a city name to your question",
        ],
        ErrorCode.LOCATION_NOT_FOUND: [
            "Check the spelling of the location",
            "Try a nearby major city",
        ],
        ErrorCode.NO_SUITABLE_API: [
            "Ask for current conditions, a forecast or past weather instead",
        ],
        ErrorCode.RATE_LIMIT_EXCEEDED: [
            "Wait a moment and try again",
        ],
        ErrorCode.UPSTREAM_ERROR: [
            "The weather provider is having trouble; try again shortly",
            "Try a nearby major city",
        ],
        ErrorCode.PARSING_DEGRADED: [
            "Include a city name and a time such as 'today' or 'tomorrow'",
        ],
    },
    "zh-TW": {
        ErrorCode.VALIDATION_ERROR: ["請縮短問題內容，並移除過長的字詞或連結"],
        ErrorCode.LOCATION_NOT_SPECIFIED: ["請指定地點，例如「台北天氣」"],
        ErrorCode.LOCATION_NOT_FOUND: ["請確認地點名稱是否正確", "可以改查附近的主要城市"],
        ErrorCode.NO_SUITABLE_API: ["請改查目前天氣、天氣預報或歷史天氣"],
        ErrorCode.RATE_LIMIT_EXCEEDED: ["請稍候再試"],
        ErrorCode.UPSTREAM_ERROR: ["天氣服務暫時無法回應，請稍後再試"],
        ErrorCode.PARSING_DEGRADED: ["請在問題中加入城市名稱與時間，例如「今天」或「明天」"],
    },
}


def default_suggestions(code: ErrorCode, language: str | None = None) -> List[str]:
    """Suggestions for `code` in `language`, falling back to English."""
    lang = language or "en"
    if lang.startswith("zh"):
        lang = "zh-TW"
    table = DEFAULT_SUGGESTIONS.get(lang) or DEFAULT_SUGGESTIONS["en"]
    return list(table.get(code) or DEFAULT_SUGGESTIONS["en"][code])


class WeatherQueryError(Exception):
    """Base class for errors surfaced to callers of the query service."""

    code: ErrorCode = ErrorCode.UPSTREAM_ERROR
    http_status: int = 500
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        details: Optional[str] = None,
        suggestions: Optional[List[str]] = None,
        language: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details
        self.suggestions = suggestions or default_suggestions(self.code, language)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
            "suggestions": self.suggestions,
            "retryable": self.retryable,
        }
        return payload


class QueryValidationError(WeatherQueryError):
    code = ErrorCode.VALIDATION_ERROR
    http_status = 400


class LocationNotSpecifiedError(WeatherQueryError):
    code = ErrorCode.LOCATION_NOT_SPECIFIED
    http_status = 400


class LocationNotFoundError(WeatherQueryError):
    code = ErrorCode.LOCATION_NOT_FOUND
    http_status = 404

    def __init__(self, location: str, **kwargs) -> None:
        kwargs.setdefault("details", f"No geocoding match for '{location}'; this location is not supported")
        super().__init__(f"Could not find location: {location}", **kwargs)
        self.location = location


class NoSuitableApiError(WeatherQueryError):
    code = ErrorCode.NO_SUITABLE_API
    http_status = 422


class RateLimitExceededError(WeatherQueryError):
    code = ErrorCode.RATE_LIMIT_EXCEEDED
    http_status = 429
    retryable = True

    def __init__(self, retry_after_seconds: float, **kwargs) -> None:
        kwargs.setdefault("details", f"Retry after {retry_after_seconds:.0f} seconds")
        super().__init__("Too many requests. Please try again later.", **kwargs)
        self.retry_after_seconds = retry_after_seconds

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload["retry_after_seconds"] = self.retry_after_seconds
        return payload


class UpstreamError(WeatherQueryError):
    """A provider call failed; `kind` decides whether it is worth retrying."""
    code = ErrorCode.UPSTREAM_ERROR

    def __init__(
        self,
        kind: UpstreamErrorKind,
        message: str,
        *,
        endpoint: Optional[str] = None,
        status_code: Optional[int] = None,
        **kwargs,
    ) -> None:
        super().__init__(message, **kwargs)
        self.kind = kind
        self.endpoint = endpoint
        self.status_code = status_code

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        return self.kind.retryable

    @property
    def http_status(self) -> int:  # type: ignore[override]
        return 503 if self.retryable else 502

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload["kind"] = self.kind.value
        payload["endpoint"] = self.endpoint
        return payload


# ---------------------------------------------------------------------------
# Language-model parser boundary
# ---------------------------------------------------------------------------


class ParserError(Exception):
    """The external parser could not produce a usable result."""


class ParserTimeoutError(ParserError):
    pass


class ParserTransportError(ParserError):
    pass


class ParserResponseError(ParserError):
    """The parser answered, but with invalid JSON or missing fields."""
