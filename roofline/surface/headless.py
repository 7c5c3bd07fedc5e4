"""
In-memory map surface.

Keeps camera and shapes as plain state and exposes gesture helpers
(``click``, ``drag_vertex``, ...) that emit the same events a real map would.
Used by the CLI and the test suite.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..core.coordinates import Bounds, Coordinate
from ..core.models import ViewState
from .base import MapSurface, zoom_for_bounds
from .events import Disposer, EventEmitter, SurfaceEvent


@dataclass
class Shape:
    polygon_id: str
    ring: List[Coordinate]
    editable: bool = False


@dataclass
class SurfaceStats:
    jump_count: int = 0
    camera_events: int = 0
    views: List[ViewState] = field(default_factory=list)


class HeadlessSurface(MapSurface):
    """A :class:`MapSurface` with no rendering."""

    def __init__(
        self,
        center: Coordinate = Coordinate(0.0, 0.0),
        zoom: float = 2.0,
        bearing: float = 0.0,
        name: str = "surface",
    ):
        self.name = name
        self._view = ViewState(center=center, zoom=zoom, bearing=bearing)
        self._pan_enabled = True
        self._shapes: Dict[str, Shape] = {}
        self._events = EventEmitter()
        self.stats = SurfaceStats()

    def __repr__(self) -> str:
        return f"HeadlessSurface({self.name!r}, shapes={len(self._shapes)})"

    # -------------------------------------------------------------------------
    # Camera
    # -------------------------------------------------------------------------

    def get_view(self) -> ViewState:
        return self._view

    def jump_to(
        self,
        center: Optional[Coordinate] = None,
        zoom: Optional[float] = None,
        bearing: Optional[float] = None,
    ) -> None:
        self.stats.jump_count += 1
        self._set_view(ViewState(
            center=Coordinate(*center) if center is not None else self._view.center,
            zoom=zoom if zoom is not None else self._view.zoom,
            bearing=bearing if bearing is not None else self._view.bearing,
        ))

    def fit_bounds(self, bounds: Bounds) -> None:
        self.jump_to(center=bounds.center, zoom=zoom_for_bounds(bounds))

    def _set_view(self, view: ViewState) -> None:
        self._view = view
        self.stats.views.append(view)
        self.stats.camera_events += 1
        self._events.emit(SurfaceEvent.CAMERA_CHANGED, view)

    def set_pan_enabled(self, enabled: bool) -> None:
        self._pan_enabled = bool(enabled)

    @property
    def pan_enabled(self) -> bool:
        return self._pan_enabled

    # -------------------------------------------------------------------------
    # Shapes
    # -------------------------------------------------------------------------

    def add_shape(self, polygon_id: str, ring: Sequence[Coordinate], editable: bool = False) -> None:
        self._shapes[polygon_id] = Shape(polygon_id, list(ring), editable)

    def remove_shape(self, polygon_id: str) -> None:
        self._shapes.pop(polygon_id, None)

    def update_shape(self, polygon_id: str, ring: Sequence[Coordinate]) -> None:
        shape = self._require(polygon_id)
        shape.ring = list(ring)

    def set_shape_editable(self, polygon_id: str, editable: bool) -> None:
        self._require(polygon_id).editable = editable

    def is_shape_editable(self, polygon_id: str) -> bool:
        shape = self._shapes.get(polygon_id)
        return bool(shape and shape.editable)

    def shape(self, polygon_id: str) -> Optional[Shape]:
        return self._shapes.get(polygon_id)

    @property
    def shape_ids(self) -> List[str]:
        return list(self._shapes)

    def editable_shape_ids(self) -> List[str]:
        return [pid for pid, shape in self._shapes.items() if shape.editable]

    def _require(self, polygon_id: str) -> Shape:
        try:
            return self._shapes[polygon_id]
        except KeyError:
            raise KeyError(f"No shape {polygon_id!r} on {self.name}") from None

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    def on(self, event: str, handler: Callable[[Any], None]) -> Disposer:
        return self._events.on(event, handler)

    def listener_count(self, event: Optional[str] = None) -> int:
        return self._events.listener_count(event)

    # -------------------------------------------------------------------------
    # Gestures
    # -------------------------------------------------------------------------

    def pan_to(self, center: Coordinate, zoom: Optional[float] = None, bearing: Optional[float] = None) -> None:
        """User camera gesture. Ignored while panning is disabled."""
        if not self._pan_enabled:
            return
        self._set_view(ViewState(
            center=Coordinate(*center),
            zoom=zoom if zoom is not None else self._view.zoom,
            bearing=bearing if bearing is not None else self._view.bearing,
        ))

    def click(self, coordinate: Coordinate) -> None:
        self._events.emit(SurfaceEvent.CLICK, {"coordinate": Coordinate(*coordinate)})

    def click_shape(self, polygon_id: str) -> None:
        self._events.emit(SurfaceEvent.SHAPE_CLICK, {"polygon_id": polygon_id})

    def right_click_shape(self, polygon_id: str) -> None:
        self._events.emit(SurfaceEvent.SHAPE_RIGHT_CLICK, {"polygon_id": polygon_id})

    def start_vertex_drag(self, polygon_id: str) -> None:
        self._events.emit(SurfaceEvent.VERTEX_DRAG_START, {"polygon_id": polygon_id})

    def end_vertex_drag(self, polygon_id: str) -> None:
        self._events.emit(SurfaceEvent.VERTEX_DRAG_END, {"polygon_id": polygon_id})

    def move_vertex(self, polygon_id: str, index: int, coordinate: Coordinate) -> None:
        """Edit gesture on an editable shape: set vertex ``index``."""
        shape = self._require(polygon_id)
        if not shape.editable:
            return
        shape.ring[index] = Coordinate(*coordinate)
        self._events.emit(SurfaceEvent.PATH_SET_AT, {
            "polygon_id": polygon_id, "index": index, "coordinate": Coordinate(*coordinate),
        })

    def drag_vertex(self, polygon_id: str, index: int, coordinate: Coordinate) -> None:
        """Full drag: start, move, release."""
        self.start_vertex_drag(polygon_id)
        try:
            self.move_vertex(polygon_id, index, coordinate)
        finally:
            self.end_vertex_drag(polygon_id)

    def insert_vertex(self, polygon_id: str, index: int, coordinate: Coordinate) -> None:
        shape = self._require(polygon_id)
        if not shape.editable:
            return
        shape.ring.insert(index, Coordinate(*coordinate))
        self._events.emit(SurfaceEvent.PATH_INSERT_AT, {
            "polygon_id": polygon_id, "index": index, "coordinate": Coordinate(*coordinate),
        })

    def remove_vertex(self, polygon_id: str, index: int) -> None:
        shape = self._require(polygon_id)
        if not shape.editable:
            return
        del shape.ring[index]
        self._events.emit(SurfaceEvent.PATH_REMOVE_AT, {"polygon_id": polygon_id, "index": index})
