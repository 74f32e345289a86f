from __future__ import annotations

import asyncio

import httpx
import pytest

from conftest import RecordingTransport, json_response
from services.weather import (
    FORECAST_URL,
    GEOCODE_URL,
    WeatherClient,
    WeatherLookupError,
    WeatherReport,
)

FORECAST = {"current": {"temperature_2m": 0.0, "precipitation": 1.2, "wind_speed_10m": 10.0}}
GEOCODED = {"results": [{"latitude": 40.44, "longitude": -99.37, "name": "Holdrege", "country_code": "US"}]}


def _lookup(handler, **kwargs) -> WeatherReport:
    transport = RecordingTransport(handler)

    async def scenario() -> WeatherReport:
        async with transport.client() as http:
            return await WeatherClient(http).lookup(**kwargs)

    return asyncio.run(scenario())


def _happy(request: httpx.Request) -> httpx.Response:
    url = str(request.url)
    if url.startswith("https://api.zippopotam.us/us/68949"):
        return json_response({"places": [{"place name": "Holdrege", "state abbreviation": "NE"}]})
    if url.startswith(GEOCODE_URL):
        return json_response(GEOCODED)
    if url.startswith(FORECAST_URL):
        return json_response(FORECAST)
    return httpx.Response(404)


def test_place_name_lookup_strips_state_suffix() -> None:
    transport = RecordingTransport(_happy)

    async def scenario() -> WeatherReport:
        async with transport.client() as http:
            return await WeatherClient(http).lookup(query="Holdrege, NE")

    report = asyncio.run(scenario())

    geocode = transport.requests[0]
    assert geocode.url.params["name"] == "Holdrege"
    assert geocode.url.params["countryCode"] == "US"
    forecast = transport.requests[1]
    assert forecast.url.params["timezone"] == "America/Chicago"
    assert report.to_dict() == {
        "location": "Holdrege, US",
        "latitude": 40.44,
        "longitude": -99.37,
        "temperature_f": 32.0,
        "precipitation_mm": 1.2,
        "wind_mph": 22.4,
    }


def test_zip_code_is_resolved_first() -> None:
    transport = RecordingTransport(_happy)

    async def scenario() -> WeatherReport:
        async with transport.client() as http:
            return await WeatherClient(http).lookup(zip_code="68949")

    report = asyncio.run(scenario())

    assert str(transport.requests[0].url) == "https://api.zippopotam.us/us/68949"
    assert transport.requests[1].url.params["name"] == "Holdrege"
    assert report.location == "Holdrege, US"


def test_default_location_is_used_without_query() -> None:
    report = _lookup(_happy)

    assert report.location == "Holdrege, US"


def test_unknown_location_is_not_found() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return json_response({"results": []})

    with pytest.raises(WeatherLookupError) as excinfo:
        _lookup(handler, query="Atlantis")

    assert excinfo.value.status_code == 404
    assert excinfo.value.to_dict() == {"error": "Location not found", "query": "Atlantis"}


def test_missing_current_block_is_bad_gateway() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if str(request.url).startswith(GEOCODE_URL):
            return json_response(GEOCODED)
        return json_response({"hourly": {}})

    with pytest.raises(WeatherLookupError) as excinfo:
        _lookup(handler, query="Holdrege")

    assert excinfo.value.status_code == 502
    assert excinfo.value.message == "Weather data unavailable"


def test_geocoder_outage_is_bad_gateway() -> None:
    with pytest.raises(WeatherLookupError) as excinfo:
        _lookup(lambda request: httpx.Response(503), query="Holdrege")

    assert excinfo.value.status_code == 502


def test_forecast_requests_wind_in_meters_per_second() -> None:
    transport = RecordingTransport(_happy)

    async def scenario() -> WeatherReport:
        async with transport.client() as http:
            return await WeatherClient(http).lookup(query="Holdrege")

    report = asyncio.run(scenario())

    forecast = transport.requests[-1]
    assert forecast.url.params["wind_speed_unit"] == "ms"
    assert report.wind_mph == 22.4


def test_non_json_body_is_bad_gateway() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>gateway</html>")

    with pytest.raises(WeatherLookupError) as excinfo:
        _lookup(handler, zip_code="68949")

    assert excinfo.value.status_code == 502
    assert excinfo.value.to_dict() == {"error": "Geocoding service unavailable", "query": "68949"}


def test_forecast_non_json_body_is_bad_gateway() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if str(request.url).startswith(GEOCODE_URL):
            return json_response(GEOCODED)
        return httpx.Response(200, text="<html>gateway</html>")

    with pytest.raises(WeatherLookupError) as excinfo:
        _lookup(handler, query="Holdrege")

    assert excinfo.value.message == "Weather data unavailable"


def test_geocode_result_without_coordinates_is_bad_gateway() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return json_response({"results": [{"name": "Holdrege"}]})

    with pytest.raises(WeatherLookupError) as excinfo:
        _lookup(handler, query="Holdrege")

    assert excinfo.value.status_code == 502
