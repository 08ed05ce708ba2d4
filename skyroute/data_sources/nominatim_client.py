"""OpenStreetMap Nominatim place search, used when Open-Meteo geocoding has no match."""
from __future__ import annotations

from typing import List, Optional

import requests

from skyroute.data_sources.open_meteo_client import DEFAULT_TIMEOUT_SECONDS, GeoLocation, get_json
from skyroute.errors import UpstreamError, UpstreamErrorKind
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="nominatim_client")

NOMINATIM_SEARCH_URL = "https://nominatim.openstreetmap.org/search"
DEFAULT_USER_AGENT = "skyroute-weather-router/0.1"


def search_places(
    query: str,
    *,
    language: str = "en",
    limit: int = 5,
    user_agent: str = DEFAULT_USER_AGENT,
    session: Optional[requests.Session] = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> List[GeoLocation]:
    """Free-text place search; Nominatim's usage policy requires a User-Agent."""
    params = {
        "q": query,
        "format": "jsonv2",
        "limit": limit,
        "addressdetails": 1,
        "accept-language": language or "en",
    }
    data = get_json(
        NOMINATIM_SEARCH_URL,
        params,
        endpoint="nominatim_places",
        session=session,
        timeout=timeout,
        headers={"User-Agent": user_agent},
    )
    if not isinstance(data, list):
        raise UpstreamError(
            UpstreamErrorKind.SERVER_ERROR,
            "nominatim_places returned an unexpected payload",
            endpoint="nominatim_places",
        )

    out: List[GeoLocation] = []
    for item in data:
        try:
            lat = float(item["lat"])
            lon = float(item["lon"])
        except (KeyError, TypeError, ValueError):
            continue
        address = item.get("address") or {}
        name = item.get("name") or (item.get("display_name") or query).split(",")[0].strip()
        out.append(
            GeoLocation(
                name=name,
                latitude=lat,
                longitude=lon,
                country=address.get("country"),
                region=address.get("state") or address.get("region"),
                source="nominatim_places",
            )
        )
    logger.debug("Nominatim search", extra={"query": query, "results": len(out)})
    return out
