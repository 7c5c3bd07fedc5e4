"""
Map surface contract.

A surface is anything that can show a camera, draw polygon shapes and report
user gestures. The engine never talks to a rendering library directly; the
edit controller and view bridge only use the methods below.

Event payloads (see :class:`~roofline.surface.events.SurfaceEvent`):

=====================  ====================================================
camera_changed         :class:`~roofline.core.models.ViewState`
click                  ``{"coordinate": Coordinate}``
shape_click            ``{"polygon_id": str}``
shape_right_click      ``{"polygon_id": str}``
vertex_drag_start      ``{"polygon_id": str}``
vertex_drag_end        ``{"polygon_id": str}``
path_set_at            ``{"polygon_id": str, "index": int, "coordinate": Coordinate}``
path_insert_at         ``{"polygon_id": str, "index": int, "coordinate": Coordinate}``
path_remove_at         ``{"polygon_id": str, "index": int}``
=====================  ====================================================
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, Optional, Sequence

from ..core.coordinates import Bounds, Coordinate
from ..core.models import ViewState
from .events import Disposer


def zoom_for_bounds(bounds: Bounds) -> float:
    """Coarse zoom level that fits ``bounds``."""
    span = max(bounds.width, bounds.height)
    if span > 0.01:
        return 15.0
    elif span > 0.001:
        return 17.0
    elif span > 0.0001:
        return 19.0
    return 21.0


class MapSurface(ABC):
    """Camera, shapes and gesture events of one map."""

    # Camera

    @abstractmethod
    def get_view(self) -> ViewState:
        ...

    @abstractmethod
    def jump_to(
        self,
        center: Optional[Coordinate] = None,
        zoom: Optional[float] = None,
        bearing: Optional[float] = None,
    ) -> None:
        """Move the camera immediately, without animation."""

    @abstractmethod
    def fit_bounds(self, bounds: Bounds) -> None:
        ...

    @abstractmethod
    def set_pan_enabled(self, enabled: bool) -> None:
        ...

    @property
    @abstractmethod
    def pan_enabled(self) -> bool:
        ...

    # Shapes

    @abstractmethod
    def add_shape(self, polygon_id: str, ring: Sequence[Coordinate], editable: bool = False) -> None:
        ...

    @abstractmethod
    def remove_shape(self, polygon_id: str) -> None:
        ...

    @abstractmethod
    def update_shape(self, polygon_id: str, ring: Sequence[Coordinate]) -> None:
        ...

    @abstractmethod
    def set_shape_editable(self, polygon_id: str, editable: bool) -> None:
        ...

    @abstractmethod
    def is_shape_editable(self, polygon_id: str) -> bool:
        ...

    # Events

    @abstractmethod
    def on(self, event: str, handler: Callable[[Any], None]) -> Disposer:
        """Register a handler. Calling the returned disposer unregisters it."""
