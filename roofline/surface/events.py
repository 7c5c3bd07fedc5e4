"""
Event registration with scoped release.

Every ``on(event, handler)`` returns a :class:`Disposer`. Owners collect
disposers in a :class:`DisposerBag` and release them together, so listeners
never outlive the polygon or bridge that registered them.
"""

from __future__ import annotations

from collections import defaultdict
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from ..utils.logging_config import get_logger

logger = get_logger(__name__)

Handler = Callable[[Any], None]


class SurfaceEvent(str, Enum):
    CAMERA_CHANGED = "camera_changed"
    CLICK = "click"
    SHAPE_CLICK = "shape_click"
    SHAPE_RIGHT_CLICK = "shape_right_click"
    VERTEX_DRAG_START = "vertex_drag_start"
    VERTEX_DRAG_END = "vertex_drag_end"
    PATH_SET_AT = "path_set_at"
    PATH_INSERT_AT = "path_insert_at"
    PATH_REMOVE_AT = "path_remove_at"


def _key(event: Any) -> str:
    return event.value if isinstance(event, SurfaceEvent) else str(event)


class Disposer:
    """Idempotent release callback."""

    def __init__(self, release: Callable[[], None], label: str = ""):
        self._release = release
        self.label = label
        self.disposed = False

    def __call__(self) -> None:
        if self.disposed:
            return
        self.disposed = True
        self._release()

    def __repr__(self) -> str:
        state = "disposed" if self.disposed else "active"
        return f"Disposer({self.label!r}, {state})"


class DisposerBag:
    """
    Collection of disposers released atomically.

    ``dispose()`` runs every disposer (last registered first) even if some
    raise, then re-raises the first error.
    """

    def __init__(self) -> None:
        self._disposers: List[Disposer] = []

    def add(self, disposer: Disposer) -> Disposer:
        self._disposers.append(disposer)
        return disposer

    def __len__(self) -> int:
        return sum(1 for d in self._disposers if not d.disposed)

    def dispose(self) -> None:
        disposers, self._disposers = self._disposers, []
        first_error: Optional[BaseException] = None
        for disposer in reversed(disposers):
            try:
                disposer()
            except Exception as exc:
                logger.error(f"Listener release failed for {disposer.label}: {exc}")
                if first_error is None:
                    first_error = exc
        if first_error is not None:
            raise first_error

    def __enter__(self) -> "DisposerBag":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.dispose()
        return False


class EventEmitter:
    """Synchronous event dispatch keyed by event name."""

    def __init__(self) -> None:
        self._handlers: Dict[str, List[Handler]] = defaultdict(list)

    def on(self, event: str, handler: Handler) -> Disposer:
        key = _key(event)
        self._handlers[key].append(handler)

        def release() -> None:
            handlers = self._handlers.get(key, [])
            if handler in handlers:
                handlers.remove(handler)

        return Disposer(release, label=key)

    def emit(self, event: str, payload: Any = None) -> None:
        key = _key(event)
        for handler in list(self._handlers.get(key, [])):
            handler(payload)

    def listener_count(self, event: Optional[str] = None) -> int:
        if event is None:
            return sum(len(handlers) for handlers in self._handlers.values())
        key = _key(event)
        return len(self._handlers.get(key, []))
