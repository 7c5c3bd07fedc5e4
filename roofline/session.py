"""
Roof outline session.

Wires the pipeline together for one address-search interaction:

    address -> GeocodingResolver -> FootprintDetector -> EditController
            -> RoofSectionAggregator -> on_polygons_change listeners

and exposes the imperative commands the surrounding application calls:
``search``, ``clear_all``, ``delete_selected``, ``toggle_drawing`` and
``fit_to_polygons``.

Every search takes a new request token. A result that arrives after a newer
search (or a ``clear_all``) has started is dropped, and the superseded task is
cancelled. Failures are reported through a single ``current_error`` value
that is cleared when the next search begins.
"""

from __future__ import annotations

import asyncio
from typing import Callable, List, Optional, Union

from .core.config import Settings, settings as default_settings
from .core.coordinates import Bounds
from .core.exceptions import ProviderUnavailable, RooflineError
from .core.lifecycle import ProviderState, ProviderStatus
from .core.models import DetectionResult, EditMode, Polygon
from .editing.controller import ConfirmDelete, EditController
from .editing.debounce import Scheduler
from .geo.footprint_detector import DetectionOptions, FootprintDetector
from .geo.geocoder import GeocodeResult, GeocodingResolver
from .sections.aggregator import RoofSectionAggregator
from .surface.base import MapSurface
from .surface.events import Disposer, DisposerBag, EventEmitter
from .sync.view_sync import ViewSyncBridge
from .utils.logging_config import get_logger

logger = get_logger(__name__)

DetectionOutcome = Union[DetectionResult, RooflineError]

_POLYGONS = "polygons"
_DETECTION = "detection"


class RoofSession:
    """One search-and-edit interaction over a primary (and optional overlay) surface."""

    def __init__(
        self,
        resolver: GeocodingResolver,
        detector: FootprintDetector,
        surface: MapSurface,
        overlay: Optional[MapSurface] = None,
        scheduler: Optional[Scheduler] = None,
        confirm_delete: Optional[ConfirmDelete] = None,
        config: Optional[Settings] = None,
    ):
        self.config = config or default_settings
        self.resolver = resolver
        self.detector = detector
        self.surface = surface
        self.controller = EditController(
            surface, scheduler=scheduler, confirm_delete=confirm_delete, config=self.config
        )
        self.aggregator = RoofSectionAggregator()
        self.bridge = (
            ViewSyncBridge(surface, overlay, scheduler=scheduler, config=self.config)
            if overlay is not None
            else None
        )

        self.current_error: Optional[RooflineError] = None
        self.last_geocode: Optional[GeocodeResult] = None
        self.last_result: Optional[DetectionResult] = None

        self._events = EventEmitter()
        self._request_token = 0
        self._task: Optional[asyncio.Task] = None
        self._listeners = DisposerBag()
        self._listeners.add(self.controller.on_polygons_change(self._on_polygons))

    # -------------------------------------------------------------------------
    # Outbound notifications
    # -------------------------------------------------------------------------

    def on_polygons_change(self, listener: Callable[[List[Polygon]], None]) -> Disposer:
        """Called with the labelled polygons after each settled change."""
        return self._events.on(_POLYGONS, listener)

    def on_detection_result(self, listener: Callable[[DetectionOutcome], None]) -> Disposer:
        """Called with each non-stale DetectionResult or error."""
        return self._events.on(_DETECTION, listener)

    def _on_polygons(self, polygons: List[Polygon]) -> None:
        self.aggregator.sync(polygons)
        self._events.emit(_POLYGONS, self.aggregator.polygons)

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def provider_state(self) -> ProviderState:
        return self.detector.provider.state

    @property
    def request_token(self) -> int:
        return self._request_token

    @property
    def polygons(self) -> List[Polygon]:
        return self.aggregator.polygons

    @property
    def mode(self) -> EditMode:
        return self.controller.mode

    def _is_stale(self, token: int) -> bool:
        return token != self._request_token

    def _supersede(self) -> int:
        """Invalidate any in-flight search and return a fresh token."""
        self._request_token += 1
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        return self._request_token

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    async def search(
        self,
        address: str,
        options: Optional[DetectionOptions] = None,
    ) -> Optional[DetectionResult]:
        """
        Geocode ``address``, detect its footprint and seed the editor.

        Returns the DetectionResult, or None when the search failed (see
        ``current_error``) or was superseded by a newer one.
        """
        self.current_error = None
        token = self._supersede()
        self.controller.clear_all()

        if self.provider_state.status is ProviderStatus.FAILED:
            self._fail(token, ProviderUnavailable(self.provider_state.name, self.provider_state.error))
            return None

        task = asyncio.ensure_future(self._run_search(address, token, options))
        self._task = task
        try:
            return await task
        except asyncio.CancelledError:
            if self._is_stale(token):
                logger.debug("Search superseded", extra={"request_id": token})
                return None
            raise
        finally:
            if self._task is task:
                self._task = None

    async def _run_search(
        self,
        address: str,
        token: int,
        options: Optional[DetectionOptions],
    ) -> Optional[DetectionResult]:
        try:
            geocode = await self.resolver.resolve(address)
            if self._is_stale(token):
                return None
            self.last_geocode = geocode
            self.surface.jump_to(center=geocode.coordinate, zoom=self.config.default_zoom)

            result = await self.detector.detect(geocode.coordinate, options)
            if self._is_stale(token):
                logger.debug("Dropping stale detection result", extra={"request_id": token})
                return None
        except RooflineError as e:
            self._fail(token, e)
            return None

        self.last_result = result
        self.controller.seed([result.polygon])
        self.fit_to_polygons()
        logger.info(
            f"Search complete ({'fallback' if result.is_fallback else 'detected'}, "
            f"{len(result.candidates)} candidates)",
            extra={"request_id": token, "address": address},
        )
        self._events.emit(_DETECTION, result)
        return result

    def _fail(self, token: int, error: RooflineError) -> None:
        if self._is_stale(token):
            return
        self.current_error = error
        logger.warning(f"Search failed: {error}", extra={"request_id": token})
        self._events.emit(_DETECTION, error)

    def clear_all(self) -> None:
        """Reset the session: cancel the search in flight and drop all polygons."""
        self._supersede()
        self.current_error = None
        self.last_result = None
        self.controller.clear_all()

    def delete_selected(self) -> Optional[Polygon]:
        return self.controller.delete_selected()

    def toggle_drawing(self) -> EditMode:
        return self.controller.toggle_drawing()

    def fit_to_polygons(self) -> Optional[Bounds]:
        """Fit the primary camera to all polygons. None when there are none."""
        polygons = self.controller.polygons
        if not polygons:
            return None
        bounds = polygons[0].bounds
        for polygon in polygons[1:]:
            bounds = bounds.union(polygon.bounds)
        self.surface.fit_bounds(bounds)
        return bounds

    def move_section(self, polygon_id: str, new_index: int) -> None:
        self.controller.reorder(polygon_id, new_index)

    def save_changes(self) -> List[Polygon]:
        self.controller.save_changes()
        return self.aggregator.polygons

    async def reinitialize(self) -> None:
        """Full re-initialization of the footprint provider after a failure."""
        state = self.provider_state
        if state.status in (ProviderStatus.FAILED, ProviderStatus.READY):
            state.reset()
        await self.detector.provider.load()
        self.current_error = None

    def close(self) -> None:
        """Cancel work and release every listener the session holds."""
        self._supersede()
        try:
            self._listeners.dispose()
            self.controller.close()
        finally:
            if self.bridge is not None:
                self.bridge.close()
