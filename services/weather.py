"""Current-weather lookup backed by Open-Meteo and zippopotam.us."""

from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)

ZIP_LOOKUP_URL = "https://api.zippopotam.us/us/{zip_code}"
GEOCODE_URL = "https://geocoding-api.open-meteo.com/v1/search"
FORECAST_URL = "https://api.open-meteo.com/v1/forecast"

_ZIP_RE = re.compile(r"^\d{5}$")
_STATE_SUFFIX_RE = re.compile(r"(?:,\s*[A-Z]{2})+\s*$")


class WeatherLookupError(Exception):
    """Raised when a location cannot be resolved or weather is unavailable."""

    def __init__(self, status_code: int, message: str, query: Optional[str] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.query = query

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message}
        if self.query:
            payload["query"] = self.query
        return payload


@dataclass(frozen=True)
class WeatherReport:
    location: str
    latitude: float
    longitude: float
    temperature_f: Optional[float]
    precipitation_mm: Optional[float]
    wind_mph: Optional[float]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _fahrenheit(celsius: Optional[float]) -> Optional[float]:
    return None if celsius is None else round(celsius * 9 / 5 + 32, 1)


def _decode(response: httpx.Response, message: str, query: Optional[str] = None) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError as exc:
        raise WeatherLookupError(502, message, query) from exc
    if not isinstance(data, dict):
        raise WeatherLookupError(502, message, query)
    return data


def _mph(meters_per_second: Optional[float]) -> Optional[float]:
    return None if meters_per_second is None else round(meters_per_second * 2.23694, 1)


class WeatherClient:
    def __init__(
        self,
        http_client: httpx.AsyncClient,
        default_location: str = "Holdrege, NE",
        timezone: str = "America/Chicago",
    ) -> None:
        self._client = http_client
        self.default_location = default_location
        self.timezone = timezone

    async def lookup(
        self, query: Optional[str] = None, zip_code: Optional[str] = None
    ) -> WeatherReport:
        search = (zip_code or "").strip() or (query or "").strip() or self.default_location
        location_query = search
        if _ZIP_RE.match(search):
            location_query = await self._resolve_zip(search) or search

        place = _STATE_SUFFIX_RE.sub("", location_query).strip() or location_query
        latitude, longitude, name, country = await self._geocode(place, location_query)
        current = await self._current(latitude, longitude)

        report = WeatherReport(
            location=f"{name}, {country}",
            latitude=latitude,
            longitude=longitude,
            temperature_f=_fahrenheit(current.get("temperature_2m")),
            precipitation_mm=current.get("precipitation"),
            wind_mph=_mph(current.get("wind_speed_10m")),
        )
        logger.info("Resolved weather", extra={"reason": report.location})
        return report

    async def _resolve_zip(self, zip_code: str) -> Optional[str]:
        try:
            response = await self._client.get(ZIP_LOOKUP_URL.format(zip_code=zip_code))
        except httpx.HTTPError as exc:
            logger.warning("ZIP lookup failed", extra={"reason": str(exc)})
            return None
        if not response.is_success:
            logger.warning("ZIP lookup failed", extra={"status_code": response.status_code})
            return None
        try:
            places = response.json().get("places") or []
        except (ValueError, AttributeError):
            logger.warning("ZIP lookup failed", extra={"reason": "invalid JSON body"})
            return None
        if not places:
            return None
        place = places[0]
        return f"{place.get('place name')}, {place.get('state abbreviation')}"

    async def _geocode(self, place: str, original: str) -> tuple[float, float, str, str]:
        params = {
            "name": place,
            "count": 1,
            "language": "en",
            "format": "json",
            "countryCode": "US",
        }
        try:
            response = await self._client.get(GEOCODE_URL, params=params)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise WeatherLookupError(502, "Geocoding service unavailable", original) from exc
        results = _decode(response, "Geocoding service unavailable", original).get("results") or []
        if not results:
            raise WeatherLookupError(404, "Location not found", original)
        try:
            best = results[0]
            return (
                float(best["latitude"]),
                float(best["longitude"]),
                str(best.get("name") or place),
                str(best.get("country_code") or ""),
            )
        except (IndexError, KeyError, TypeError, ValueError, AttributeError) as exc:
            raise WeatherLookupError(502, "Geocoding service unavailable", original) from exc

    async def _current(self, latitude: float, longitude: float) -> Dict[str, Any]:
        params = {
            "latitude": latitude,
            "longitude": longitude,
            "current": "temperature_2m,precipitation,wind_speed_10m",
            "wind_speed_unit": "ms",
            "timezone": self.timezone,
        }
        try:
            response = await self._client.get(FORECAST_URL, params=params)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise WeatherLookupError(502, "Weather data unavailable") from exc
        current = _decode(response, "Weather data unavailable").get("current")
        if not current or not isinstance(current, dict):
            raise WeatherLookupError(502, "Weather data unavailable")
        return current
