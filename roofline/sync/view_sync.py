"""
Primary to secondary camera mirroring.

The secondary surface (a read-only overlay) follows every camera change of
the primary surface via ``jump_to``. While a mirrored move is in flight the
``sync_in_progress`` flag is set; it is cleared only after a grace delay, and
camera events from the secondary received in that window are dropped. This
keeps the overlay's own move events from echoing back.

Changes smaller than the epsilons (1e-6 deg center, 0.01 zoom, 0.1 deg
bearing) are not mirrored.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..core.config import Settings, settings as default_settings
from ..core.models import ViewState
from ..editing.debounce import LoopScheduler, Scheduler, TimerHandle
from ..surface.base import MapSurface
from ..surface.events import DisposerBag, SurfaceEvent
from ..utils.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class SyncStats:
    mirrored: int = 0
    skipped_small: int = 0
    ignored_secondary: int = 0


class ViewSyncBridge:
    """Keeps ``secondary``'s camera locked to ``primary``'s."""

    def __init__(
        self,
        primary: MapSurface,
        secondary: MapSurface,
        scheduler: Optional[Scheduler] = None,
        config: Optional[Settings] = None,
        center_eps: float = 1e-6,
        zoom_eps: float = 0.01,
        bearing_eps: float = 0.1,
        initial_sync: bool = True,
    ):
        config = config or default_settings
        self.primary = primary
        self.secondary = secondary
        self.grace_s = config.sync_grace_s
        self.center_eps = center_eps
        self.zoom_eps = zoom_eps
        self.bearing_eps = bearing_eps
        self.stats = SyncStats()
        self.sync_in_progress = False
        self.closed = False

        self._scheduler = scheduler or LoopScheduler()
        self._grace_handle: Optional[TimerHandle] = None
        self._last_synced: Optional[ViewState] = None
        self._listeners = DisposerBag()
        self._listeners.add(primary.on(SurfaceEvent.CAMERA_CHANGED, self._on_primary))
        self._listeners.add(secondary.on(SurfaceEvent.CAMERA_CHANGED, self._on_secondary))

        if initial_sync:
            self.sync_now()

    def sync_now(self) -> None:
        """Mirror the primary's current view."""
        self._on_primary(self.primary.get_view())

    def _on_primary(self, view: ViewState) -> None:
        if self.closed:
            return
        if not view.differs_from(
            self._last_synced, self.center_eps, self.zoom_eps, self.bearing_eps
        ):
            self.stats.skipped_small += 1
            return

        self.sync_in_progress = True
        self._last_synced = view
        try:
            self.secondary.jump_to(center=view.center, zoom=view.zoom, bearing=view.bearing)
        finally:
            self.stats.mirrored += 1
            self._restart_grace()

    def _on_secondary(self, view: ViewState) -> None:
        # Secondary is display-only; its own moves never propagate.
        if not self.sync_in_progress:
            logger.debug("Ignoring camera change authored by secondary surface")
        self.stats.ignored_secondary += 1

    def _restart_grace(self) -> None:
        if self._grace_handle is not None:
            self._grace_handle.cancel()
        self._grace_handle = self._scheduler.call_later(self.grace_s, self._end_grace)

    def _end_grace(self) -> None:
        self._grace_handle = None
        self.sync_in_progress = False

    def close(self) -> None:
        """Unsubscribe from both surfaces and cancel the grace timer."""
        if self.closed:
            return
        self.closed = True
        if self._grace_handle is not None:
            self._grace_handle.cancel()
            self._grace_handle = None
        self.sync_in_progress = False
        self._listeners.dispose()

    def __enter__(self) -> "ViewSyncBridge":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
