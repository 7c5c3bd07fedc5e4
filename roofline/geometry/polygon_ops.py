"""
Polygon math on WGS84 rings.

Area and centroid share one local planar projection: degree deltas are
scaled to meters with a constant meters-per-degree of latitude and a
cos(latitude)-corrected meters-per-degree of longitude, using the ring's mean
latitude as reference. Keeping both on the same projection means the label
marker sits at the center of the area being priced.

All functions are total. Degenerate rings (fewer than three distinct
vertices) give zero area and a best-effort centroid instead of raising.
"""

from __future__ import annotations

import math
from typing import List, Optional, Sequence, Tuple

from pyproj import Geod

from ..core.coordinates import Bounds, Coordinate

EARTH_RADIUS_KM = 6371.0
METERS_PER_DEGREE_LAT = 111_320.0
SQ_M_TO_SQ_FT = 10.7639

_GEOD = Geod(ellps="WGS84")


# =============================================================================
# RING CLEANUP
# =============================================================================

def strip_closing_vertex(ring: Sequence[Coordinate]) -> List[Coordinate]:
    """Drop an explicit closing vertex; rings are closed implicitly."""
    points = list(ring)
    while len(points) > 1 and points[0] == points[-1]:
        points.pop()
    return points


def collapse_consecutive_duplicates(ring: Sequence[Coordinate]) -> List[Coordinate]:
    """Remove repeated consecutive vertices, including across the closing edge."""
    cleaned: List[Coordinate] = []
    for point in ring:
        if not cleaned or cleaned[-1] != point:
            cleaned.append(point)
    return strip_closing_vertex(cleaned)


# =============================================================================
# PROJECTION
# =============================================================================

def _project(ring: Sequence[Coordinate]) -> Tuple[List[Tuple[float, float]], Coordinate, float, float]:
    """Project a ring to local meters relative to its first vertex."""
    origin = ring[0]
    ref_lat = sum(p.lat for p in ring) / len(ring)
    kx = METERS_PER_DEGREE_LAT * math.cos(math.radians(ref_lat))
    ky = METERS_PER_DEGREE_LAT
    points = [((p.lng - origin.lng) * kx, (p.lat - origin.lat) * ky) for p in ring]
    return points, origin, kx, ky


def meters_to_degrees(lat: float, meters: float) -> Tuple[float, float]:
    """Convert a distance in meters to (delta_lng, delta_lat) at ``lat``."""
    dlat = meters / METERS_PER_DEGREE_LAT
    cos_lat = math.cos(math.radians(lat))
    dlng = meters / (METERS_PER_DEGREE_LAT * cos_lat) if cos_lat > 1e-12 else 180.0
    return dlng, dlat


def box_around(center: Coordinate, radius_m: float) -> Bounds:
    """Square bounding box extending ``radius_m`` in each direction."""
    dlng, dlat = meters_to_degrees(center.lat, radius_m)
    return Bounds(
        north=center.lat + dlat,
        south=center.lat - dlat,
        east=center.lng + dlng,
        west=center.lng - dlng,
    )


# =============================================================================
# AREA AND CENTROID
# =============================================================================

def signed_ring_area(ring: Sequence[Coordinate]) -> float:
    """Signed area in square meters. Positive for counter-clockwise rings."""
    points = strip_closing_vertex(ring)
    if len(points) < 3:
        return 0.0
    projected, _, _, _ = _project(points)
    total = 0.0
    n = len(projected)
    for i in range(n):
        x1, y1 = projected[i]
        x2, y2 = projected[(i + 1) % n]
        total += x1 * y2 - x2 * y1
    return total / 2.0


def ring_area(ring: Sequence[Coordinate]) -> float:
    """Area in square meters, independent of winding order."""
    return abs(signed_ring_area(ring))


def square_feet(square_meters: float) -> float:
    return square_meters * SQ_M_TO_SQ_FT


def ring_centroid(ring: Sequence[Coordinate]) -> Coordinate:
    """
    Area-weighted centroid of an implicitly closed ring.

    Falls back to the vertex average when the ring has no area (collinear or
    fewer than three points) and to (0, 0) for an empty ring.
    """
    points = strip_closing_vertex(ring)
    if not points:
        return Coordinate(0.0, 0.0)

    vertex_average = Coordinate(
        sum(p.lng for p in points) / len(points),
        sum(p.lat for p in points) / len(points),
    )
    if len(points) < 3:
        return vertex_average

    projected, origin, kx, ky = _project(points)
    area2 = 0.0
    cx = 0.0
    cy = 0.0
    n = len(projected)
    for i in range(n):
        x1, y1 = projected[i]
        x2, y2 = projected[(i + 1) % n]
        cross = x1 * y2 - x2 * y1
        area2 += cross
        cx += (x1 + x2) * cross
        cy += (y1 + y2) * cross

    if abs(area2) < 1e-9 or kx == 0:
        return vertex_average

    cx /= 3.0 * area2
    cy /= 3.0 * area2
    return Coordinate(origin.lng + cx / kx, origin.lat + cy / ky)


def bounding_box(ring: Sequence[Coordinate]) -> Optional[Bounds]:
    """Min/max over both axes, or None for an empty ring."""
    return Bounds.from_coordinates(ring)


# =============================================================================
# CONTAINMENT AND DISTANCE
# =============================================================================

def contains_point(ring: Sequence[Coordinate], point: Coordinate) -> bool:
    """Ray-casting point-in-polygon test."""
    points = strip_closing_vertex(ring)
    if len(points) < 3:
        return False

    inside = False
    j = len(points) - 1
    for i in range(len(points)):
        xi, yi = points[i]
        xj, yj = points[j]
        if (yi > point.lat) != (yj > point.lat):
            x_cross = (xj - xi) * (point.lat - yi) / (yj - yi) + xi
            if point.lng < x_cross:
                inside = not inside
        j = i
    return inside


def haversine_km(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance in kilometers."""
    phi1, phi2 = math.radians(a.lat), math.radians(b.lat)
    dphi = math.radians(b.lat - a.lat)
    dlambda = math.radians(b.lng - a.lng)

    h = (math.sin(dphi / 2) ** 2 +
         math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2)
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def perimeter_m(ring: Sequence[Coordinate]) -> float:
    """Length of the closed boundary in meters."""
    points = strip_closing_vertex(ring)
    if len(points) < 2:
        return 0.0
    total = 0.0
    for i in range(len(points)):
        total += haversine_km(points[i], points[(i + 1) % len(points)])
    return total * 1000.0


# =============================================================================
# CONSTRUCTION
# =============================================================================

def square_ring(center: Coordinate, side_m: float) -> List[Coordinate]:
    """
    Four-point square centered on ``center``, ``side_m`` meters per side.

    Corners are ordered NW, NE, SE, SW. Offsets are measured on the WGS84
    ellipsoid so the square keeps its size at any latitude.
    """
    half = side_m / 2.0
    east_lng, _, _ = _GEOD.fwd(center.lng, center.lat, 90.0, half)
    _, north_lat, _ = _GEOD.fwd(center.lng, center.lat, 0.0, half)
    dlng = east_lng - center.lng
    dlat = north_lat - center.lat
    return [
        Coordinate(center.lng - dlng, center.lat + dlat),
        Coordinate(center.lng + dlng, center.lat + dlat),
        Coordinate(center.lng + dlng, center.lat - dlat),
        Coordinate(center.lng - dlng, center.lat - dlat),
    ]
