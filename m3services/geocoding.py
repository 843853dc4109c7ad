"""Address lookup and reverse geocoding through a maps geocoding API."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import requests

from .errors import ServiceError, bad_request, internal_server_error

log = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://maps.googleapis.com"
GEOCODE_PATH = "/maps/api/geocode/json"

ERR_DOWNSTREAM = internal_server_error("MAP_ERROR", "Unable to connect to map provider")
ERR_NO_RESULTS = bad_request("NO_RESULTS", "Unable to geocode address, no results found")
ERR_MISSING_LATITUDE = bad_request("MISSING_LATITUDE", "Missing latitude")
ERR_MISSING_LONGITUDE = bad_request("MISSING_LONGITUDE", "Missing longitude")


def _fresh(error: ServiceError) -> ServiceError:
    return ServiceError(error.id, error.code, error.detail, error.status)


class MapsError(Exception):
    """Raised when the maps provider cannot be reached or reports an error."""


@dataclass
class Address:
    line_one: str = ""
    line_two: str = ""
    city: str = ""
    postcode: str = ""
    country: str = ""


@dataclass
class Location:
    latitude: float = 0.0
    longitude: float = 0.0


class MapsClient:
    """Minimal client for the geocoding JSON endpoint."""

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        session: requests.Session | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def _request(self, params: dict[str, str]) -> list[dict]:
        try:
            resp = self.session.get(
                self.base_url + GEOCODE_PATH,
                params={**params, "key": self.api_key},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise MapsError(str(exc)) from exc
        if resp.status_code != 200:
            raise MapsError(f"unexpected HTTP status {resp.status_code}")
        try:
            body = resp.json()
        except ValueError as exc:
            raise MapsError("invalid JSON response") from exc
        if not isinstance(body, dict):
            raise MapsError("invalid response body")
        status = body.get("status")
        if status == "ZERO_RESULTS":
            return []
        if status != "OK":
            raise MapsError(f"maps API error: {status} {body.get('error_message', '')}".strip())
        results = body.get("results") or []
        if not isinstance(results, list):
            raise MapsError("invalid results")
        return results

    def geocode(self, address: str) -> list[dict]:
        """Geocode a free-form address."""
        return self._request({"address": address})

    def reverse_geocode(self, latitude: float, longitude: float) -> list[dict]:
        """Find addresses at a coordinate."""
        return self._request({"latlng": f"{latitude:f},{longitude:f}"})


def lookup_string(
    address: str = "", city: str = "", postcode: str = "", country: str = ""
) -> str:
    """Join the non-blank, trimmed address parts with commas."""
    parts = (part.strip() for part in (address, city, postcode, country))
    return ", ".join(part for part in parts if part)


def serialize_result(result: dict[str, Any]) -> tuple[Address, Location]:
    """Turn a geocoding result into an address and a location."""
    address = Address()
    street = number = ""
    for component in result.get("address_components") or []:
        name = component.get("long_name", "")
        for kind in component.get("types") or []:
            if kind == "street_number":
                number = name
            elif kind == "route":
                street = name
            elif kind == "neighborhood":
                address.line_two = name
            elif kind == "country":
                address.country = name
            elif kind == "postal_code":
                address.postcode = name
            elif kind == "postal_town":
                address.city = name
    address.line_one = f"{number} {street}"
    coords = (result.get("geometry") or {}).get("location") or {}
    location = Location(
        latitude=float(coords.get("lat", 0.0)),
        longitude=float(coords.get("lng", 0.0)),
    )
    return address, location


class Geocoding:
    """Normalises addresses and resolves coordinates."""

    def __init__(self, maps: MapsClient) -> None:
        self.maps = maps

    def _first(self, query) -> tuple[Address, Location]:
        try:
            results = query()
        except MapsError as exc:
            log.error("Error geocoding: %s", exc)
            raise _fresh(ERR_DOWNSTREAM) from exc
        if not results:
            raise _fresh(ERR_NO_RESULTS)
        return serialize_result(results[0])

    def lookup(
        self, address: str = "", city: str = "", postcode: str = "", country: str = ""
    ) -> tuple[Address, Location]:
        """Look up an address and return its normalised form and coordinates."""
        text = lookup_string(address, city, postcode, country)
        return self._first(lambda: self.maps.geocode(text))

    def reverse(self, latitude: float, longitude: float) -> tuple[Address, Location]:
        """Reverse geocode coordinates to an address."""
        if latitude == 0.0:
            raise _fresh(ERR_MISSING_LATITUDE)
        if longitude == 0.0:
            raise _fresh(ERR_MISSING_LONGITUDE)
        return self._first(lambda: self.maps.reverse_geocode(latitude, longitude))