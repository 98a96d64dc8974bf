"""Tests for reverse geocoding."""

import asyncio

import httpx
import pytest
from src.roadtrip.services.geocoding import (
    USER_AGENT,
    GeocodingError,
    NominatimGeocoder,
    Place,
    ProxyGeocoder,
    locate,
)

NOMINATIM_REPLY = {
    "display_name": "Sausalito, Marin County, California, United States",
    "address": {
        "town": "Sausalito",
        "county": "Marin County",
        "state": "California",
        "country": "United States",
    },
}


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_nominatim_reverse():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=NOMINATIM_REPLY)

    geocoder = NominatimGeocoder(client=_client(handler))
    place = asyncio.run(geocoder.reverse(37.859, -122.485))

    assert place.city == "Sausalito"
    assert place.county == "Marin County"
    assert place.state == "California"
    request = seen[0]
    assert request.url.path == "/reverse"
    assert request.url.params["zoom"] == "10"
    assert request.url.params["format"] == "json"
    assert request.headers["User-Agent"] == USER_AGENT


def test_nominatim_error_status():
    geocoder = NominatimGeocoder(client=_client(lambda request: httpx.Response(429, text="slow down")))

    with pytest.raises(GeocodingError) as excinfo:
        asyncio.run(geocoder.reverse(0.0, 0.0))

    assert excinfo.value.status_code == 429


def test_proxy_geocoder_reads_wire_format():
    def handler(request):
        assert request.url.path == "/api/geocode"
        return httpx.Response(200, json=Place(city="Keystone", state="South Dakota").to_wire())

    geocoder = ProxyGeocoder("http://localhost:8000/", client=_client(handler))
    place = asyncio.run(geocoder.reverse(43.88, -103.46))

    assert place.city == "Keystone"
    assert place.state == "South Dakota"


def test_place_city_fallbacks():
    assert Place.from_nominatim({"address": {"village": "Wall"}}).city == "Wall"
    assert Place.from_nominatim({"address": {"hamlet": "Interior"}}).city == "Interior"
    assert Place.from_nominatim({}).city == ""


class TestLocate:
    def test_names_from_geocoder(self):
        geocoder = NominatimGeocoder(client=_client(lambda request: httpx.Response(200, json=NOMINATIM_REPLY)))

        location = asyncio.run(locate(geocoder, 37.859, -122.485))

        assert location.city == "Sausalito"
        assert location.region == "California"
        assert location.describe() == "Sausalito, Marin County, California"

    def test_failure_keeps_coordinates(self):
        geocoder = NominatimGeocoder(client=_client(lambda request: httpx.Response(500)))

        location = asyncio.run(locate(geocoder, 37.85912, -122.48533))

        assert location.city == ""
        assert location.describe() == "37.8591, -122.4853"

    def test_without_geocoder(self):
        location = asyncio.run(locate(None, 1.0, 2.0))

        assert location.has_fix
        assert location.region == ""
