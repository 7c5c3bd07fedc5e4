"""Geocoding, footprint providers and footprint detection."""

from .geocoder import (
    GeocodeResult,
    GeocodingResolver,
    GeocodingService,
    MapboxGeocodingService,
    NominatimGeocodingService,
    build_geocoding_service,
)
from .providers import (
    FootprintProvider,
    OverpassFootprintProvider,
    StaticFootprintProvider,
    coordinate_to_quadkey,
    quadkey_bounds,
)
from .footprint_detector import (
    DetectionOptions,
    FootprintDetector,
    confidence_by_distance,
    dedupe_key,
    rank_candidates,
    search_grid,
)

__all__ = [
    "GeocodeResult",
    "GeocodingResolver",
    "GeocodingService",
    "MapboxGeocodingService",
    "NominatimGeocodingService",
    "build_geocoding_service",
    "FootprintProvider",
    "OverpassFootprintProvider",
    "StaticFootprintProvider",
    "coordinate_to_quadkey",
    "quadkey_bounds",
    "DetectionOptions",
    "FootprintDetector",
    "confidence_by_distance",
    "dedupe_key",
    "rank_candidates",
    "search_grid",
]
