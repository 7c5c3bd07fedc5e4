"""
Data model for roof outlines, detection candidates and editing state.

Polygons are created by the normalizer (detected footprints) or by the edit
controller (user drawing). Derived fields are recomputed every time the ring
is replaced, so ``area``, ``centroid`` and ``bounds`` never go stale.
"""

from __future__ import annotations

import itertools
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from ..geometry.polygon_ops import (
    bounding_box,
    collapse_consecutive_duplicates,
    perimeter_m,
    ring_area,
    ring_centroid,
    square_feet,
)
from .coordinates import Bounds, Coordinate
from .exceptions import InvalidGeometry


# =============================================================================
# ENUMS
# =============================================================================


class SlopeClass(str, Enum):
    FLAT = "Flat"
    SHALLOW = "Shallow"
    MEDIUM = "Medium"
    STEEP = "Steep"


class EditMode(str, Enum):
    IDLE = "idle"
    DRAWING = "drawing"
    EDITING = "editing"


class PolygonSource(str, Enum):
    DETECTED = "detected"
    DRAWN = "drawn"
    FALLBACK = "fallback"


class DetectionStrategy(str, Enum):
    POINT = "point"
    BOX = "box"
    SOURCE = "source"


# =============================================================================
# IDS
# =============================================================================

_fallback_counter = itertools.count(1)


def new_polygon_id(prefix: str = "roof") -> str:
    """Fresh polygon id. Ids are never reused within a process."""
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def fallback_polygon_id() -> str:
    """Timestamp-seeded id for synthetic fallback footprints."""
    return f"fallback_{time.time_ns()}_{next(_fallback_counter)}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# POLYGON
# =============================================================================


@dataclass(frozen=True)
class RoofArea:
    square_meters: float
    square_feet: float

    @classmethod
    def from_square_meters(cls, square_meters: float) -> "RoofArea":
        return cls(square_meters=square_meters, square_feet=square_feet(square_meters))

    @property
    def formatted(self) -> str:
        return f"{self.square_feet:.2f}"


class Polygon:
    """
    Canonical roof polygon.

    The ring is an implicitly closed sequence of at least three coordinates
    with no two consecutive vertices equal. Only the edit controller replaces
    it after creation.
    """

    def __init__(
        self,
        ring: Sequence[Coordinate],
        polygon_id: Optional[str] = None,
        label: str = "",
        slope_class: SlopeClass = SlopeClass.FLAT,
        source: PolygonSource = PolygonSource.DETECTED,
        confidence: float = 1.0,
        properties: Optional[Dict[str, Any]] = None,
    ):
        self.id = polygon_id or new_polygon_id()
        self.label = label
        self.label_overridden = False
        self.slope_class = slope_class
        self.included = True
        self.source = source
        self.confidence = confidence
        self.properties: Dict[str, Any] = dict(properties or {})
        self.created_at = _utcnow()
        self.updated_at = self.created_at
        self._set_ring(ring)

    def _set_ring(self, ring: Sequence[Coordinate]) -> None:
        cleaned = collapse_consecutive_duplicates(Coordinate(*p) for p in ring)
        if len(cleaned) < 3:
            raise InvalidGeometry(
                f"Polygon needs at least 3 distinct vertices, got {len(cleaned)}"
            )
        square_meters = ring_area(cleaned)
        if square_meters <= 0:
            raise InvalidGeometry("Polygon has zero area (vertices are collinear)")
        self._ring = tuple(cleaned)
        self.area = RoofArea.from_square_meters(square_meters)
        self.centroid = ring_centroid(self._ring)
        self.bounds: Bounds = bounding_box(self._ring)

    @property
    def ring(self) -> tuple:
        return self._ring

    @property
    def perimeter_m(self) -> float:
        return perimeter_m(self._ring)

    def touch(self) -> None:
        self.updated_at = _utcnow()

    def replace_ring(self, ring: Sequence[Coordinate]) -> None:
        """Swap the ring and recompute derived fields. Raises InvalidGeometry."""
        self._set_ring(ring)
        self.touch()

    def rename(self, label: str, manual: bool = True) -> None:
        self.label = label
        if manual:
            self.label_overridden = True
        self.touch()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ring": [[p.lng, p.lat] for p in self._ring],
            "area": {
                "square_meters": self.area.square_meters,
                "square_feet": self.area.square_feet,
                "formatted": self.area.formatted,
            },
            "centroid": [self.centroid.lng, self.centroid.lat],
            "bounds": {
                "north": self.bounds.north,
                "south": self.bounds.south,
                "east": self.bounds.east,
                "west": self.bounds.west,
            },
            "label": self.label,
            "slope_class": self.slope_class.value,
            "included": self.included,
            "source": self.source.value,
            "confidence": self.confidence,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    def __repr__(self) -> str:
        return (
            f"Polygon(id={self.id!r}, label={self.label!r}, vertices={len(self._ring)}, "
            f"area_sqft={self.area.square_feet:.1f})"
        )


# =============================================================================
# DETECTION
# =============================================================================


@dataclass
class DetectionCandidate:
    """Unvalidated footprint returned by a detection strategy."""

    ring: List[Coordinate]
    source_properties: Dict[str, Any] = field(default_factory=dict)
    distance_from_query_point: float = 0.0  # km, query point to centroid
    approximate_area: float = 0.0  # m²
    strategy: DetectionStrategy = DetectionStrategy.POINT
    contains_query_point: bool = False
    key: str = ""


@dataclass
class DetectionResult:
    """Outcome of one detection run."""

    query_point: Coordinate
    candidates: List[DetectionCandidate]
    selected: Optional[DetectionCandidate]
    polygon: Polygon
    is_fallback: bool = False
    confidence: float = 0.0
    search_bounds: Optional[Bounds] = None
    processing_time_s: float = 0.0

    @property
    def found(self) -> bool:
        return not self.is_fallback


# =============================================================================
# VIEW AND SESSION STATE
# =============================================================================


@dataclass(frozen=True)
class ViewState:
    center: Coordinate
    zoom: float
    bearing: float = 0.0

    def differs_from(
        self,
        other: Optional["ViewState"],
        center_eps: float = 1e-6,
        zoom_eps: float = 0.01,
        bearing_eps: float = 0.1,
    ) -> bool:
        if other is None:
            return True
        return (
            abs(self.center.lng - other.center.lng) > center_eps
            or abs(self.center.lat - other.center.lat) > center_eps
            or abs(self.zoom - other.zoom) > zoom_eps
            or abs(self.bearing - other.bearing) > bearing_eps
        )


@dataclass
class EditSession:
    """Edit controller state. At most one polygon is selected."""

    polygons: List[Polygon] = field(default_factory=list)
    selected_polygon_id: Optional[str] = None
    mode: EditMode = EditMode.IDLE
    drawing_ring: List[Coordinate] = field(default_factory=list)

    def find(self, polygon_id: str) -> Optional[Polygon]:
        for polygon in self.polygons:
            if polygon.id == polygon_id:
                return polygon
        return None

    @property
    def selected(self) -> Optional[Polygon]:
        if self.selected_polygon_id is None:
            return None
        return self.find(self.selected_polygon_id)
