"""Factory helpers for choosing a weather data source at startup."""

from __future__ import annotations

from functools import partial

from skyroute import config
from skyroute.data_sources import nominatim_client, open_meteo_client
from skyroute.data_sources.base import CallableWeatherDataSource, WeatherDataSource
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="data_sources/factory")


DEFAULT_SOURCE_NAME = "open_meteo"


def build_data_source(settings: config.Settings | None = None) -> WeatherDataSource:
    """Instantiate the configured weather data source."""
    settings = settings or config.settings
    source = (settings.data_source or DEFAULT_SOURCE_NAME).lower()

    if source == "open_meteo":
        session = open_meteo_client.build_session(
            settings.http_cache_path,
            expire_after=settings.http_cache_expire_seconds,
        )
        timeout = settings.upstream_timeout_seconds
        logger.info(
            "Using Open-Meteo data source",
            extra={"http_cache_path": settings.http_cache_path, "timeout": timeout},
        )
        return CallableWeatherDataSource(
            current=partial(open_meteo_client.fetch_current, session=session, timeout=timeout),
            daily=partial(open_meteo_client.fetch_daily, session=session, timeout=timeout),
            hourly=partial(open_meteo_client.fetch_hourly, session=session, timeout=timeout),
            historical=partial(open_meteo_client.fetch_historical, session=session, timeout=timeout),
            geocoder=partial(open_meteo_client.geocode, session=session, timeout=timeout),
            places=partial(
                nominatim_client.search_places,
                user_agent=settings.nominatim_user_agent,
                session=session,
                timeout=timeout,
            ),
        )

    raise ValueError(f"Unknown data source '{source}'")
