"""
Footprint normalizer.

Raw footprints arrive in several shapes depending on the provider:

- GeoJSON geometry or Feature mappings (``Polygon`` / ``MultiPolygon``)
- shapely geometries
- a bare ring: ``[[lng, lat], ...]``
- a ring list (outer ring plus holes): ``[[[lng, lat], ...], ...]``
- Overpass ``out geom`` node lists: ``[{"lat": .., "lon": ..}, ...]``
  or a whole Overpass element carrying such a ``geometry`` list

Everything is classified once into a :class:`RawGeometry` tagged as
``POLYGON``, ``MULTIPOLYGON`` or ``INVALID`` and normalized immediately.
Holes are dropped. For multi-part geometries only the part with the largest
area is kept.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from shapely.errors import GEOSException
from shapely.geometry import MultiPolygon as ShapelyMultiPolygon
from shapely.geometry import Polygon as ShapelyPolygon
from shapely.geometry import shape
from shapely.geometry.base import BaseGeometry

from ..core.coordinates import Coordinate
from ..core.exceptions import InvalidGeometry
from ..core.models import Polygon, PolygonSource, SlopeClass
from ..utils.logging_config import get_logger
from .polygon_ops import collapse_consecutive_duplicates, ring_area

logger = get_logger(__name__)


class GeometryKind(str, Enum):
    POLYGON = "Polygon"
    MULTIPOLYGON = "MultiPolygon"
    INVALID = "Invalid"


@dataclass
class RawGeometry:
    """Classified geometry. ``parts`` holds one outer ring per polygon part."""

    kind: GeometryKind
    parts: List[List[Coordinate]] = field(default_factory=list)
    reason: str = ""

    @classmethod
    def invalid(cls, reason: str) -> "RawGeometry":
        return cls(GeometryKind.INVALID, [], reason)


# =============================================================================
# CLASSIFICATION
# =============================================================================

def _to_coordinate(value: Any) -> Optional[Coordinate]:
    try:
        if isinstance(value, dict):
            point = Coordinate.from_any(value)
        else:
            if len(value) < 2:
                return None
            point = Coordinate(float(value[0]), float(value[1]))
    except (TypeError, ValueError, KeyError, IndexError):
        return None
    if not (math.isfinite(point.lng) and math.isfinite(point.lat)):
        return None
    return point


def _to_ring(values: Sequence[Any]) -> Optional[List[Coordinate]]:
    ring = []
    for value in values:
        point = _to_coordinate(value)
        if point is None:
            return None
        ring.append(point)
    return ring


def _is_position(value: Any) -> bool:
    if isinstance(value, dict):
        return "lat" in value and ("lon" in value or "lng" in value)
    return (
        isinstance(value, (list, tuple))
        and len(value) >= 2
        and all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in value[:2])
    )


def _depth(value: Any) -> int:
    """Nesting depth of a coordinate array; a position has depth 0."""
    depth = 0
    while isinstance(value, (list, tuple)) and value and not _is_position(value):
        value = value[0]
        depth += 1
    if not _is_position(value):
        return -1
    return depth


def _from_shapely(geom: BaseGeometry) -> RawGeometry:
    if geom.is_empty:
        return RawGeometry.invalid("empty geometry")
    if isinstance(geom, ShapelyPolygon):
        return RawGeometry(GeometryKind.POLYGON, [_to_ring(geom.exterior.coords)])
    if isinstance(geom, ShapelyMultiPolygon):
        parts = [_to_ring(part.exterior.coords) for part in geom.geoms if not part.is_empty]
        if not parts:
            return RawGeometry.invalid("empty multipolygon")
        return RawGeometry(GeometryKind.MULTIPOLYGON, parts)
    return RawGeometry.invalid(f"unsupported geometry type {geom.geom_type}")


def _from_array(values: Sequence[Any]) -> RawGeometry:
    depth = _depth(values)
    if depth == 1:
        ring = _to_ring(values)
        if ring is None:
            return RawGeometry.invalid("non-numeric coordinate")
        return RawGeometry(GeometryKind.POLYGON, [ring])
    if depth == 2:
        ring = _to_ring(values[0])
        if ring is None:
            return RawGeometry.invalid("non-numeric coordinate")
        return RawGeometry(GeometryKind.POLYGON, [ring])
    if depth == 3:
        parts = []
        for polygon in values:
            if not polygon:
                continue
            ring = _to_ring(polygon[0])
            if ring is None:
                return RawGeometry.invalid("non-numeric coordinate")
            parts.append(ring)
        if not parts:
            return RawGeometry.invalid("empty multipolygon")
        return RawGeometry(GeometryKind.MULTIPOLYGON, parts)
    return RawGeometry.invalid("unrecognized coordinate nesting")


def classify_geometry(raw: Any) -> RawGeometry:
    """Tag an arbitrary provider geometry. Never raises."""
    if raw is None:
        return RawGeometry.invalid("no geometry")

    if isinstance(raw, BaseGeometry):
        return _from_shapely(raw)

    if isinstance(raw, dict):
        geo_type = raw.get("type")
        if geo_type == "Feature":
            return classify_geometry(raw.get("geometry"))
        if geo_type in ("Polygon", "MultiPolygon"):
            try:
                return _from_shapely(shape(raw))
            except (ValueError, TypeError, KeyError, IndexError, AttributeError, GEOSException) as exc:
                return RawGeometry.invalid(f"malformed {geo_type}: {exc}")
        if "geometry" in raw:
            # Overpass element or untyped feature
            return classify_geometry(raw["geometry"])
        if "coordinates" in raw:
            return classify_geometry(raw["coordinates"])
        return RawGeometry.invalid(f"unsupported geometry type {geo_type!r}")

    if isinstance(raw, (list, tuple)):
        if not raw:
            return RawGeometry.invalid("empty coordinate list")
        return _from_array(raw)

    return RawGeometry.invalid(f"unsupported input {type(raw).__name__}")


# =============================================================================
# NORMALIZATION
# =============================================================================

def _clean(ring: Sequence[Coordinate]) -> List[Coordinate]:
    return collapse_consecutive_duplicates(ring)


def extract_ring(raw: Any) -> Optional[List[Coordinate]]:
    """
    Outer ring of the largest part, cleaned, or None if it cannot form a
    polygon (fewer than three distinct vertices or zero area).
    """
    classified = raw if isinstance(raw, RawGeometry) else classify_geometry(raw)
    if classified.kind is GeometryKind.INVALID:
        logger.debug(f"Skipping invalid geometry: {classified.reason}")
        return None

    rings = [_clean(part) for part in classified.parts if part]
    rings = [ring for ring in rings if len(ring) >= 3]
    if not rings:
        return None

    best = max(rings, key=ring_area)
    if ring_area(best) <= 0:
        return None
    return best


def normalize(
    raw: Any,
    source: PolygonSource = PolygonSource.DETECTED,
    confidence: float = 1.0,
    properties: Optional[Dict[str, Any]] = None,
    polygon_id: Optional[str] = None,
) -> Optional[Polygon]:
    """Canonical Polygon for ``raw``, or None when it is degenerate."""
    ring = extract_ring(raw)
    if ring is None:
        return None
    return Polygon(
        ring,
        polygon_id=polygon_id,
        slope_class=SlopeClass.FLAT,
        source=source,
        confidence=confidence,
        properties=properties,
    )


def normalize_or_raise(raw: Any, **kwargs: Any) -> Polygon:
    """Like :func:`normalize` but raises InvalidGeometry instead of returning None."""
    polygon = normalize(raw, **kwargs)
    if polygon is None:
        classified = raw if isinstance(raw, RawGeometry) else classify_geometry(raw)
        reason = classified.reason or "fewer than 3 distinct vertices or zero area"
        raise InvalidGeometry(f"Cannot build polygon: {reason}")
    return polygon
