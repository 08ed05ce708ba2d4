"""Interfaces and helpers for weather data sources."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Callable, List, Protocol

from skyroute.data_sources.open_meteo_client import CurrentWeather, DailyWeather, GeoLocation, HourlyWeather


class WeatherDataSource(Protocol):
    """Interface for anything that can provide weather and place data."""

    def fetch_current(self, latitude: float, longitude: float, *, units: str = "metric") -> CurrentWeather:
        """Return the current observation."""
        ...

    def fetch_daily(self, latitude: float, longitude: float, *, units: str = "metric", days: int = 7) -> List[DailyWeather]:
        """Return daily forecast entries."""
        ...

    def fetch_hourly(self, latitude: float, longitude: float, *, units: str = "metric", hours: int = 24) -> List[HourlyWeather]:
        """Return hourly forecast entries."""
        ...

    def fetch_historical(
        self,
        latitude: float,
        longitude: float,
        *,
        start_date: dt.date,
        end_date: dt.date,
        units: str = "metric",
    ) -> List[DailyWeather]:
        """Return daily archive entries for an inclusive range."""
        ...

    def geocode(self, name: str, *, language: str = "en") -> List[GeoLocation]:
        """Resolve a place name via the primary geocoder."""
        ...

    def search_places(self, query: str, *, language: str = "en") -> List[GeoLocation]:
        """Resolve a place name via the places fallback."""
        ...


@dataclass
class CallableWeatherDataSource(WeatherDataSource):
    """Wrap six callables so they can be swapped for different backends."""

    current: Callable[..., CurrentWeather]
    daily: Callable[..., List[DailyWeather]]
    hourly: Callable[..., List[HourlyWeather]]
    historical: Callable[..., List[DailyWeather]]
    geocoder: Callable[..., List[GeoLocation]]
    places: Callable[..., List[GeoLocation]]

    def fetch_current(self, *args, **kwargs) -> CurrentWeather:
        return self.current(*args, **kwargs)

    def fetch_daily(self, *args, **kwargs) -> List[DailyWeather]:
        return self.daily(*args, **kwargs)

    def fetch_hourly(self, *args, **kwargs) -> List[HourlyWeather]:
        return self.hourly(*args, **kwargs)

    def fetch_historical(self, *args, **kwargs) -> List[DailyWeather]:
        return self.historical(*args, **kwargs)

    def geocode(self, *args, **kwargs) -> List[GeoLocation]:
        return self.geocoder(*args, **kwargs)

    def search_places(self, *args, **kwargs) -> List[GeoLocation]:
        return self.places(*args, **kwargs)
