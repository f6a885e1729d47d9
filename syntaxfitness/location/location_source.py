"""
Single-shot "current location" providers. Every call to `request_current_fix()` resolves exactly once:
either with a `Fix`, or by raising a `LocationAcquisitionError`. Sources never retry internally; retrying is
a user decision made through the RunTracker.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from enum import StrEnum, unique
from itertools import cycle
from typing import TYPE_CHECKING, Any

import httpx
import questionary

from syntaxfitness.geo.geo_math import parse_coordinate, validate_coordinates
from syntaxfitness.location.fix import Fix
from syntaxfitness.utils.exceptions import AppConfigException, LocationAcquisitionError

if TYPE_CHECKING:
    from syntaxfitness.config.app_settings import AppSettings

_LOGGER = logging.getLogger(__name__)

_LATITUDE_KEYS = ("latitude", "lat")
_LONGITUDE_KEYS = ("longitude", "lon", "lng")


@unique
class LocationProvider(StrEnum):
    STATIC = "static"
    HTTP = "http"
    PROMPT = "prompt"


class LocationSource(ABC):
    """Base class for anything which can resolve the device's current location once, on request."""

    @abstractmethod
    async def request_current_fix(self) -> Fix:
        """Resolves with the current fix, or raises `LocationAcquisitionError`."""

    async def aclose(self) -> None:
        """Releases any resources held by the source. No-op by default."""
        return None


class StaticLocationSource(LocationSource):
    """
    Demo / testing provider which cycles through a fixed list of fixes, optionally waiting `delay_seconds`
    before resolving each one to mimic a real GPS acquisition.
    """

    def __init__(self, fixes: Sequence[Fix], delay_seconds: float = 0.0):
        if len(fixes) == 0:
            raise ValueError("StaticLocationSource requires at least one fix.")
        self._fixes = list(fixes)
        self._fix_iter = cycle(self._fixes)
        self._delay_seconds = delay_seconds

    async def request_current_fix(self) -> Fix:
        if self._delay_seconds > 0:
            await asyncio.sleep(self._delay_seconds)
        fix = next(self._fix_iter)
        _LOGGER.debug(f"StaticLocationSource resolved fix {fix}")
        return fix


def parse_fix_payload(payload: Any) -> Fix:
    """
    Builds a `Fix` from a JSON object of the form `{"latitude": .., "longitude": ..}`. The short keys
    `lat` / `lon` / `lng` are accepted too. Raises `LocationAcquisitionError` for anything else.
    """
    if not isinstance(payload, dict):
        raise LocationAcquisitionError(f"Location payload must be a JSON object. Got: {type(payload).__name__}")
    raw_lat = next((payload[k] for k in _LATITUDE_KEYS if k in payload), None)
    raw_lon = next((payload[k] for k in _LONGITUDE_KEYS if k in payload), None)
    lat = parse_coordinate(None if raw_lat is None else str(raw_lat))
    lon = parse_coordinate(None if raw_lon is None else str(raw_lon))
    if lat is None or lon is None or not validate_coordinates(lat, lon):
        raise LocationAcquisitionError(f"Location payload has missing or invalid coordinates: {payload}")
    return Fix(latitude=lat, longitude=lon)


class HttpLocationSource(LocationSource):
    """Fetches the current fix from a JSON location endpoint, e.g. a phone-side GPS relay or gpsd bridge."""

    def __init__(self, url: str, timeout_seconds: float, client: httpx.AsyncClient | None = None):
        self._url = url
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds, follow_redirects=True)

    async def request_current_fix(self) -> Fix:
        try:
            response = await self._client.get(self._url)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as ex:
            _LOGGER.warning(f"Location endpoint returned status {ex.response.status_code}")
            raise LocationAcquisitionError(f"Location endpoint returned status {ex.response.status_code}") from ex
        except httpx.HTTPError as ex:
            _LOGGER.warning(f"Location request to {self._url} failed: {ex!r}")
            raise LocationAcquisitionError(f"Location request failed: {ex!r}") from ex
        except ValueError as ex:
            raise LocationAcquisitionError("Location endpoint returned a non-JSON body.") from ex
        return parse_fix_payload(payload)

    async def aclose(self) -> None:
        await self._client.aclose()


def parse_fix_text(text: str) -> Fix | None:
    """Parses user input of the form `"lat, lon"`. Returns None if the text is not a valid coordinate pair."""
    parts = text.split(",")
    if len(parts) != 2:
        return None
    lat, lon = parse_coordinate(parts[0].strip()), parse_coordinate(parts[1].strip())
    if lat is None or lon is None or not validate_coordinates(lat, lon):
        return None
    return Fix(latitude=lat, longitude=lon)


class PromptLocationSource(LocationSource):
    """Asks the user to type in their current position. Intended for the interactive `track` CLI command."""

    def __init__(self, message: str = "Current position (lat, lon):"):
        self._message = message

    async def request_current_fix(self) -> Fix:
        answer = await questionary.text(
            self._message,
            validate=lambda text: parse_fix_text(text) is not None or "Enter a position like: 52.5200, 13.4050",
        ).ask_async()
        if answer is None:
            raise LocationAcquisitionError("Position prompt was cancelled.")
        fix = parse_fix_text(answer)
        if fix is None:
            raise LocationAcquisitionError(f"Invalid position: '{answer}'")
        return fix


def get_location_source(app_settings: AppSettings) -> LocationSource:
    """Builds the location source selected by the `location.provider` config setting."""
    location_conf = app_settings.location
    match LocationProvider(location_conf.provider):
        case LocationProvider.STATIC:
            return StaticLocationSource(
                fixes=location_conf.static.fixes, delay_seconds=location_conf.static.delay_seconds
            )
        case LocationProvider.HTTP:
            if location_conf.http is None:
                raise AppConfigException("location.http must be set when location.provider is 'http'.")
            return HttpLocationSource(url=location_conf.http.url, timeout_seconds=location_conf.http.timeout_seconds)
        case LocationProvider.PROMPT:
            return PromptLocationSource()
    raise AppConfigException(f"Unsupported location provider: {location_conf.provider}")  # pragma: no cover
