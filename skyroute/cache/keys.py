"""Cache key construction and TTL classes."""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Optional, Tuple

from skyroute.domain import Intent, ParsedQuery, TimeKind


class TTLClass(str, Enum):
    """The four TTL categories; default lifetimes live in `DEFAULT_TTL_SECONDS`."""
    CURRENT = "current"
    FORECAST = "forecast"
    HISTORICAL = "historical"
    LOCATION = "location"


DEFAULT_TTL_SECONDS = {
    TTLClass.CURRENT: 300,
    TTLClass.FORECAST: 1800,
    TTLClass.HISTORICAL: 86400,
    TTLClass.LOCATION: 604800,
}


def ttl_seconds_from_settings(settings) -> dict:
    """TTL table with the configured overrides applied."""
    return {
        TTLClass.CURRENT: settings.ttl_current_seconds,
        TTLClass.FORECAST: settings.ttl_forecast_seconds,
        TTLClass.HISTORICAL: settings.ttl_historical_seconds,
        TTLClass.LOCATION: settings.ttl_location_seconds,
    }


def classify_ttl(parsed: ParsedQuery) -> TTLClass:
    if parsed.intent.primary == Intent.HISTORICAL:
        return TTLClass.HISTORICAL
    if parsed.intent.primary == Intent.LOCATION_SEARCH:
        return TTLClass.LOCATION
    if parsed.time_scope.kind == TimeKind.FORECAST:
        return TTLClass.FORECAST
    return TTLClass.CURRENT


def _date_part(value: Optional[datetime | date]) -> str:
    if value is None:
        return "-"
    if isinstance(value, datetime):
        return value.date().isoformat()
    return value.isoformat()


def build_weather_cache_key(
    coordinates: Tuple[float, float],
    *,
    units: str,
    language: str,
    include_forecast: bool,
    include_hourly: bool,
    time_kind: str = TimeKind.CURRENT.value,
    start_date: Optional[datetime | date] = None,
    end_date: Optional[datetime | date] = None,
    precision: int = 4,
) -> str:
    """Key every option that changes the response, so distinct requests never collide.

    >>> build_weather_cache_key((25.033, 121.5654), units="metric", language="en",
    ...                         include_forecast=True, include_hourly=False)
    'weather:25.0330,121.5654:metric:en:current:-:-:forecast:no-hourly'
    """
    lat, lon = coordinates
    return ":".join(
        [
            "weather",
            f"{lat:.{precision}f},{lon:.{precision}f}",
            str(units),
            str(language),
            str(time_kind),
            _date_part(start_date),
            _date_part(end_date),
            "forecast" if include_forecast else "no-forecast",
            "hourly" if include_hourly else "no-hourly",
        ]
    )


def build_location_cache_key(name: str, language: str | None = None) -> str:
    normalized = " ".join(name.lower().split())
    return f"location:{language or '-'}:{normalized}"
