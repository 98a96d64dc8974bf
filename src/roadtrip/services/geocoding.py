"""Reverse geocoding: GPS fix to a coarse place name.

Clues are chosen around the car's position, so Professor Jones is told the
nearest city, county and state. When the lookup fails the game carries on
with the raw coordinates.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, runtime_checkable

import httpx

from ..core.game_state import Location

logger = logging.getLogger(__name__)

NOMINATIM_URL = "https://nominatim.openstreetmap.org"
USER_AGENT = "ISpyRoadTrip/1.0 (educational-game)"


class GeocodingError(Exception):
    def __init__(self, status_code: Optional[int], message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"Geocoding error {status_code}: {message}")


@dataclass
class Place:
    city: str = ""
    county: str = ""
    state: str = ""
    country: str = ""
    display_name: str = ""

    @classmethod
    def from_nominatim(cls, data: Dict[str, Any]) -> "Place":
        address = data.get("address") or {}
        city = (
            address.get("city")
            or address.get("town")
            or address.get("village")
            or address.get("hamlet")
            or ""
        )
        return cls(
            city=city,
            county=address.get("county", ""),
            state=address.get("state", ""),
            country=address.get("country", ""),
            display_name=data.get("display_name", ""),
        )

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "Place":
        return cls(
            city=data.get("city") or "",
            county=data.get("county") or "",
            state=data.get("state") or "",
            country=data.get("country") or "",
            display_name=data.get("displayName") or "",
        )

    def to_wire(self) -> Dict[str, str]:
        return {
            "city": self.city,
            "county": self.county,
            "state": self.state,
            "country": self.country,
            "displayName": self.display_name,
        }


@runtime_checkable
class Geocoder(Protocol):
    async def reverse(self, latitude: float, longitude: float) -> Place:
        ...


class NominatimGeocoder:
    """OpenStreetMap Nominatim at city granularity (``zoom=10``)."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        base_url: str = NOMINATIM_URL,
        timeout: float = 10.0,
    ):
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self.base_url = base_url.rstrip("/")

    async def reverse(self, latitude: float, longitude: float) -> Place:
        try:
            response = await self.client.get(
                f"{self.base_url}/reverse",
                params={"lat": latitude, "lon": longitude, "format": "json", "zoom": 10},
                headers={"User-Agent": USER_AGENT},
            )
        except httpx.HTTPError as e:
            raise GeocodingError(None, str(e)) from e
        if response.status_code != 200:
            raise GeocodingError(response.status_code, response.text[:200])
        return Place.from_nominatim(response.json())

    async def close(self) -> None:
        await self.client.aclose()


class ProxyGeocoder:
    """Uses the game's own ``/api/geocode`` handler."""

    def __init__(self, base_url: str, client: Optional[httpx.AsyncClient] = None, timeout: float = 10.0):
        self.url = base_url.rstrip("/") + "/api/geocode"
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def reverse(self, latitude: float, longitude: float) -> Place:
        try:
            response = await self.client.get(self.url, params={"lat": latitude, "lon": longitude})
        except httpx.HTTPError as e:
            raise GeocodingError(None, str(e)) from e
        if response.status_code != 200:
            raise GeocodingError(response.status_code, response.text[:200])
        return Place.from_wire(response.json())

    async def close(self) -> None:
        await self.client.aclose()


async def locate(geocoder: Optional[Geocoder], latitude: float, longitude: float) -> Location:
    """Location for a GPS fix; names are left blank when the lookup fails."""
    location = Location(latitude=latitude, longitude=longitude)
    if geocoder is None:
        return location
    try:
        place = await geocoder.reverse(latitude, longitude)
    except GeocodingError as e:
        logger.warning(f"Reverse geocoding failed, using raw coordinates: {e}")
        return location
    location.city = place.city
    location.county = place.county
    location.region = place.state
    return location
