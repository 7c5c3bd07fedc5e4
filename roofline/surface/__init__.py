"""Map surface contract, event plumbing and the headless surface."""

from .events import Disposer, DisposerBag, EventEmitter, SurfaceEvent
from .base import MapSurface, zoom_for_bounds
from .headless import HeadlessSurface, Shape

__all__ = [
    "Disposer",
    "DisposerBag",
    "EventEmitter",
    "SurfaceEvent",
    "MapSurface",
    "zoom_for_bounds",
    "HeadlessSurface",
    "Shape",
]
