"""
Heimursaga API — Mapbox Geocoding
===================================

What:  Forward (place → coordinates) and reverse (coordinates → country)
       lookups against the Mapbox Geocoding v5 API.
How:   One short-lived `httpx.AsyncClient` per call. Every failure is
       logged and reported as `None`; geocoding never fails a request.
Who:   Entry creation/update fills `country_code` from lat/lon.
"""

import logging
from typing import Dict, Optional
from urllib.parse import quote

import httpx

from saga.config import settings

logger = logging.getLogger(__name__)

GEOCODING_TIMEOUT = 5.0


async def _get_feature(url: str, params: Dict[str, str]) -> Optional[dict]:
    try:
        async with httpx.AsyncClient(timeout=GEOCODING_TIMEOUT) as client:
            response = await client.get(url, params=params)
    except httpx.HTTPError as e:
        logger.warning("Mapbox request failed: %s", e)
        return None

    if response.status_code != 200:
        logger.warning("Mapbox returned %d for %s", response.status_code, url)
        return None

    features = response.json().get("features") or []
    return features[0] if features else None


async def geocode_place(place: str) -> Optional[Dict[str, float]]:
    """Return `{"lat", "lon"}` for a free-text place, or None."""
    if not settings.mapbox_token or not place or not place.strip():
        return None

    url = f"{settings.mapbox_geocoding_url}/{quote(place.strip())}.json"
    feature = await _get_feature(url, {"limit": "1", "access_token": settings.mapbox_token})
    center = (feature or {}).get("center")
    if not center or len(center) < 2:
        return None
    # Mapbox orders coordinates [lon, lat]
    return {"lat": float(center[1]), "lon": float(center[0])}


async def get_country_code(lat: float, lon: float) -> Optional[str]:
    """Return the ISO country code (upper-case) at a coordinate, or None."""
    if not settings.mapbox_token or lat is None or lon is None:
        return None

    url = f"{settings.mapbox_geocoding_url}/{lon},{lat}.json"
    feature = await _get_feature(
        url, {"types": "country", "access_token": settings.mapbox_token}
    )
    short_code = ((feature or {}).get("properties") or {}).get("short_code")
    return short_code.upper() if short_code else None
