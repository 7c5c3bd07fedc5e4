"""
Address geocoding.

``GeocodingResolver.resolve`` turns free-text into a single coordinate. It
performs exactly one lookup per call and takes the first candidate the service
returns. There is no retry: network errors, empty results and malformed
payloads all surface as :class:`AddressNotFound` and the caller decides
whether to search again.

Usage:
    resolver = GeocodingResolver(NominatimGeocodingService())
    result = await resolver.resolve("1600 Pennsylvania Ave NW, Washington, DC")
    print(result.coordinate)
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from urllib.parse import quote

import requests

from ..core.config import Settings, settings as default_settings
from ..core.coordinates import Coordinate
from ..core.exceptions import AddressNotFound, ProviderUnavailable
from ..utils.logging_config import get_logger
from ..utils.validation import ValidationError, validate_address, validate_coordinates

logger = get_logger(__name__)


@dataclass
class GeocodeResult:
    """Best match for an address."""

    coordinate: Coordinate
    formatted_address: str
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    def to_dict(self) -> dict:
        return {
            "coordinate": [self.coordinate.lng, self.coordinate.lat],
            "formatted_address": self.formatted_address,
        }


class GeocodingService(ABC):
    """
    Blocking address lookup.

    ``query`` returns the first match or None when the service has no
    results. Transport failures propagate as ``requests`` exceptions and
    malformed payloads as KeyError/ValueError/TypeError.
    """

    name = "geocoder"

    @abstractmethod
    def query(self, text: str) -> Optional[GeocodeResult]:
        ...


class NominatimGeocodingService(GeocodingService):
    """OpenStreetMap Nominatim search API."""

    name = "nominatim"

    def __init__(
        self,
        base_url: Optional[str] = None,
        user_agent: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url or default_settings.nominatim_url
        self.timeout = timeout or default_settings.http_timeout_s
        self._session = session or requests.Session()
        self._session.headers.update({
            "User-Agent": user_agent or default_settings.user_agent,
        })

    def query(self, text: str) -> Optional[GeocodeResult]:
        resp = self._session.get(
            self.base_url,
            params={"q": text, "format": "json", "limit": 1},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        results = resp.json()

        if not results:
            return None

        first = results[0]
        return GeocodeResult(
            coordinate=Coordinate.from_lat_lon(first["lat"], first["lon"]),
            formatted_address=first.get("display_name", text),
            raw=first,
        )


class MapboxGeocodingService(GeocodingService):
    """Mapbox forward geocoding (``mapbox.places``)."""

    name = "mapbox"

    def __init__(
        self,
        access_token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.access_token = access_token or default_settings.mapbox_token
        if not self.access_token:
            raise ProviderUnavailable("mapbox", ValueError("ROOFLINE_MAPBOX_TOKEN is not set"))
        self.base_url = (base_url or default_settings.mapbox_geocoding_url).rstrip("/")
        self.timeout = timeout or default_settings.http_timeout_s
        self._session = session or requests.Session()

    def query(self, text: str) -> Optional[GeocodeResult]:
        resp = self._session.get(
            f"{self.base_url}/{quote(text, safe='')}.json",
            params={"access_token": self.access_token, "limit": 1},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        features = resp.json().get("features", [])

        if not features:
            return None

        first = features[0]
        lng, lat = first["center"][:2]
        return GeocodeResult(
            coordinate=Coordinate(float(lng), float(lat)),
            formatted_address=first.get("place_name", text),
            raw=first,
        )


def build_geocoding_service(config: Optional[Settings] = None) -> GeocodingService:
    """Service selected by ``ROOFLINE_GEOCODER``."""
    config = config or default_settings
    if config.geocoder == "mapbox":
        return MapboxGeocodingService(
            access_token=config.mapbox_token,
            base_url=config.mapbox_geocoding_url,
            timeout=config.http_timeout_s,
        )
    return NominatimGeocodingService(
        base_url=config.nominatim_url,
        user_agent=config.user_agent,
        timeout=config.http_timeout_s,
    )


class GeocodingResolver:
    """Async front for a blocking :class:`GeocodingService`."""

    def __init__(self, service: GeocodingService):
        self.service = service

    async def resolve(self, address: str) -> GeocodeResult:
        """
        Resolve ``address`` to its first-ranked match.

        Raises:
            AddressNotFound: invalid input, network error, no results or
                malformed response
        """
        try:
            cleaned = validate_address(address)
        except ValidationError as e:
            raise AddressNotFound(address or "", reason=str(e)) from e

        loop = asyncio.get_running_loop()
        try:
            result = await loop.run_in_executor(None, self.service.query, cleaned)
        except requests.exceptions.JSONDecodeError as e:
            logger.warning(f"Geocoding response is not JSON: {e}", extra={"address": cleaned})
            raise AddressNotFound(cleaned, reason="malformed response") from e
        except requests.exceptions.RequestException as e:
            logger.warning(f"Geocoding request failed: {e}", extra={"address": cleaned})
            raise AddressNotFound(cleaned, reason=f"network error: {e}") from e
        except (KeyError, ValueError, TypeError, IndexError) as e:
            logger.warning(f"Malformed geocoding response: {e}", extra={"address": cleaned})
            raise AddressNotFound(cleaned, reason="malformed response") from e

        if result is None:
            logger.info("No geocoding results", extra={"address": cleaned})
            raise AddressNotFound(cleaned, reason="no results")

        try:
            validate_coordinates(result.coordinate.lng, result.coordinate.lat)
        except ValidationError as e:
            raise AddressNotFound(cleaned, reason="malformed response") from e

        logger.debug(
            f"Geocoded to ({result.coordinate.lng:.6f}, {result.coordinate.lat:.6f})",
            extra={"address": cleaned},
        )
        return result
