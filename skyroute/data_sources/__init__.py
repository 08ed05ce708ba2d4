"""Data source factories for plugging different weather backends."""

from .base import CallableWeatherDataSource, WeatherDataSource
from .factory import build_data_source
from .open_meteo_client import (
    CurrentWeather,
    DailyWeather,
    GeoLocation,
    HourlyWeather,
    fetch_current,
    fetch_daily,
    fetch_historical,
    fetch_hourly,
    geocode,
)
from .nominatim_client import search_places

__all__ = [
    "build_data_source",
    "WeatherDataSource",
    "CallableWeatherDataSource",
    "CurrentWeather",
    "DailyWeather",
    "GeoLocation",
    "HourlyWeather",
    "fetch_current",
    "fetch_daily",
    "fetch_historical",
    "fetch_hourly",
    "geocode",
    "search_places",
]
