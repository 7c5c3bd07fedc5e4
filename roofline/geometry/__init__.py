"""
Geometry Module - polygon math on WGS84 rings.

- Area and area-weighted centroid on one consistent local projection
- Bounding boxes, ray-casting containment, great-circle distance
- Geodesic fallback squares

The footprint normalizer lives in ``roofline.geometry.normalizer``.
"""

from .polygon_ops import (
    SQ_M_TO_SQ_FT,
    bounding_box,
    box_around,
    collapse_consecutive_duplicates,
    contains_point,
    haversine_km,
    meters_to_degrees,
    perimeter_m,
    ring_area,
    ring_centroid,
    signed_ring_area,
    square_ring,
    strip_closing_vertex,
)

__all__ = [
    'SQ_M_TO_SQ_FT',
    'bounding_box',
    'box_around',
    'collapse_consecutive_duplicates',
    'contains_point',
    'haversine_km',
    'meters_to_degrees',
    'perimeter_m',
    'ring_area',
    'ring_centroid',
    'signed_ring_area',
    'square_ring',
    'strip_closing_vertex',
]
