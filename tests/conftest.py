"""
Pytest configuration and fixtures for Roofline tests.

Provides reusable test fixtures for:
- Building footprints around a known address
- Footprint providers and detectors
- Headless map surfaces and a manual clock
- A scripted geocoding service
"""

import asyncio
import sys
from pathlib import Path
from typing import Dict, List, Optional

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from roofline.core.config import Settings
from roofline.core.coordinates import Coordinate
from roofline.editing.debounce import ManualScheduler
from roofline.geo.footprint_detector import FootprintDetector
from roofline.geo.geocoder import GeocodeResult, GeocodingResolver, GeocodingService
from roofline.geo.providers import StaticFootprintProvider
from roofline.surface.headless import HeadlessSurface


WHITE_HOUSE = Coordinate(-77.0365, 38.8977)
WHITE_HOUSE_ADDRESS = "1600 Pennsylvania Ave NW, Washington, DC"


def rectangle(west: float, south: float, east: float, north: float) -> List[List[float]]:
    """Closed counter-clockwise ring."""
    return [[west, south], [east, south], [east, north], [west, north], [west, south]]


def make_feature(ring: List[List[float]], **properties) -> dict:
    return {
        "type": "Feature",
        "geometry": {"type": "Polygon", "coordinates": [ring]},
        "properties": properties,
    }


# =============================================================================
# FOOTPRINT FIXTURES
# =============================================================================

@pytest.fixture
def main_building() -> dict:
    """Large building containing the White House coordinate (~7,700 m²)."""
    return make_feature(rectangle(-77.0370, 38.8973, -77.0360, 38.8981), name="main")


@pytest.fixture
def annex_building() -> dict:
    """Small structure also containing the coordinate (~100 m²)."""
    return make_feature(rectangle(-77.03655, 38.89765, -77.03645, 38.89775), name="annex")


@pytest.fixture
def nearby_building() -> dict:
    """Building ~35 m east of the coordinate, not containing it."""
    return make_feature(rectangle(-77.03615, 38.8976, -77.03605, 38.8978), name="nearby")


@pytest.fixture
def feature_collection(main_building, annex_building) -> dict:
    return {"type": "FeatureCollection", "features": [main_building, annex_building]}


@pytest.fixture
def provider(main_building) -> StaticFootprintProvider:
    return StaticFootprintProvider([main_building])


@pytest.fixture
def empty_provider() -> StaticFootprintProvider:
    return StaticFootprintProvider([])


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def detector(provider, settings) -> FootprintDetector:
    return FootprintDetector(provider, config=settings)


# =============================================================================
# SURFACE FIXTURES
# =============================================================================

@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def surface() -> HeadlessSurface:
    return HeadlessSurface(center=WHITE_HOUSE, zoom=15, name="primary")


@pytest.fixture
def overlay() -> HeadlessSurface:
    return HeadlessSurface(name="overlay")


@pytest.fixture
def triangle() -> List[Coordinate]:
    return [Coordinate(0, 0), Coordinate(0, 1), Coordinate(1, 0)]


@pytest.fixture
def square_ring() -> List[Coordinate]:
    """~11 m square near the equator."""
    return [
        Coordinate(0.0, 0.0),
        Coordinate(0.0001, 0.0),
        Coordinate(0.0001, 0.0001),
        Coordinate(0.0, 0.0001),
    ]


# =============================================================================
# GEOCODING FIXTURES
# =============================================================================

class FakeGeocodingService(GeocodingService):
    """Answers from a fixed address book."""

    name = "fake"

    def __init__(self, places: Optional[Dict[str, Coordinate]] = None, error: Optional[Exception] = None):
        self.places = places or {}
        self.error = error
        self.calls: List[str] = []

    def query(self, text: str) -> Optional[GeocodeResult]:
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        coordinate = self.places.get(text)
        if coordinate is None:
            return None
        return GeocodeResult(coordinate=coordinate, formatted_address=text)


class GatedResolver(GeocodingResolver):
    """Resolver that holds chosen addresses until their gate is opened."""

    def __init__(self, service: GeocodingService, gates: Dict[str, asyncio.Event]):
        super().__init__(service)
        self.gates = gates

    async def resolve(self, address: str) -> GeocodeResult:
        gate = self.gates.get(address)
        if gate is not None:
            await gate.wait()
        return await super().resolve(address)


@pytest.fixture
def geocoding_service() -> FakeGeocodingService:
    return FakeGeocodingService({
        WHITE_HOUSE_ADDRESS: WHITE_HOUSE,
        "Slow Street 1": WHITE_HOUSE,
        "Empty Lot 9": Coordinate(-77.0500, 38.9100),
    })


@pytest.fixture
def resolver(geocoding_service) -> GeocodingResolver:
    return GeocodingResolver(geocoding_service)
