"""
Interactive edit controller.

State machine over an :class:`EditSession`::

    IDLE ──toggle_drawing──▶ DRAWING ──complete_drawing──▶ EDITING
      ▲  ◀──toggle_drawing───┘                               │
      │                                                      │
      └──────── click_map / deselect / delete ◀──────────────┘
    IDLE ──click_polygon──▶ EDITING ──click_polygon(other)──▶ EDITING

The controller is the only writer of polygon rings and of shape
editability on the surface. At most one shape is editable at any time:
selecting a polygon always makes the previous one non-editable first.

Listeners registered on the surface for a polygon are kept in that
polygon's :class:`DisposerBag` and released when it is deleted or the
session is cleared.

Vertex edits are reported through one :class:`Debouncer`; structural
changes (add, delete, clear, reorder) are reported immediately.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from ..core.config import Settings, settings as default_settings
from ..core.coordinates import Coordinate
from ..core.exceptions import InvalidEditState, InvalidGeometry
from ..core.models import EditMode, EditSession, Polygon, PolygonSource
from ..geometry.normalizer import normalize_or_raise
from ..surface.base import MapSurface
from ..surface.events import Disposer, DisposerBag, EventEmitter, SurfaceEvent
from ..utils.logging_config import get_logger
from .debounce import Debouncer, LoopScheduler, Scheduler

logger = get_logger(__name__)

POLYGONS_CHANGED = "polygons_changed"
SELECTION_CHANGED = "selection_changed"
MODE_CHANGED = "mode_changed"

MIN_VERTICES = 3

ConfirmDelete = Callable[[Polygon], bool]


class EditController:
    """Creation, selection, mutation and deletion of roof polygons."""

    def __init__(
        self,
        surface: MapSurface,
        scheduler: Optional[Scheduler] = None,
        confirm_delete: Optional[ConfirmDelete] = None,
        config: Optional[Settings] = None,
    ):
        config = config or default_settings
        self.surface = surface
        self.session = EditSession()
        self.confirm_delete = confirm_delete
        self._events = EventEmitter()
        self._debouncer = Debouncer(
            self._emit_polygons, config.debounce_s, scheduler or LoopScheduler()
        )
        self._polygon_listeners: Dict[str, DisposerBag] = {}
        self._surface_listeners = DisposerBag()
        self._dragging_id: Optional[str] = None
        self._pan_before_drag: Optional[bool] = None

        self._surface_listeners.add(
            surface.on(SurfaceEvent.CLICK, lambda e: self.click_map(e["coordinate"]))
        )

    # -------------------------------------------------------------------------
    # Read access
    # -------------------------------------------------------------------------

    @property
    def mode(self) -> EditMode:
        return self.session.mode

    @property
    def polygons(self) -> List[Polygon]:
        return list(self.session.polygons)

    @property
    def selected(self) -> Optional[Polygon]:
        return self.session.selected

    @property
    def selected_polygon_id(self) -> Optional[str]:
        return self.session.selected_polygon_id

    @property
    def drawing_ring(self) -> List[Coordinate]:
        return list(self.session.drawing_ring)

    @property
    def is_dragging(self) -> bool:
        return self._dragging_id is not None

    def editable_ids(self) -> List[str]:
        return [p.id for p in self.session.polygons if self.surface.is_shape_editable(p.id)]

    def listener_count(self, polygon_id: str) -> int:
        bag = self._polygon_listeners.get(polygon_id)
        return len(bag) if bag else 0

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def on_polygons_change(self, listener: Callable[[List[Polygon]], None]) -> Disposer:
        return self._events.on(POLYGONS_CHANGED, listener)

    def on_selection_change(self, listener: Callable[[Optional[Polygon]], None]) -> Disposer:
        return self._events.on(SELECTION_CHANGED, listener)

    def on_mode_change(self, listener: Callable[[EditMode], None]) -> Disposer:
        return self._events.on(MODE_CHANGED, listener)

    def _emit_polygons(self) -> None:
        self._events.emit(POLYGONS_CHANGED, self.polygons)

    def _notify_debounced(self) -> None:
        self._debouncer.trigger()

    def _notify_now(self) -> None:
        self._debouncer.cancel()
        self._emit_polygons()

    def flush(self) -> None:
        """Deliver a pending debounced notification immediately."""
        self._debouncer.flush()

    def _set_mode(self, mode: EditMode) -> None:
        if self.session.mode is not mode:
            logger.debug(f"Edit mode {self.session.mode.value} -> {mode.value}")
            self.session.mode = mode
            self._events.emit(MODE_CHANGED, mode)

    # -------------------------------------------------------------------------
    # Loading polygons
    # -------------------------------------------------------------------------

    def seed(self, polygons: Iterable[Polygon]) -> None:
        """Replace the session with detector output. Nothing is selected."""
        self._reset(notify=False)
        for polygon in polygons:
            self._attach(polygon)
        self._notify_now()

    def add_polygon(self, polygon: Polygon, select: bool = False) -> Polygon:
        if self.session.find(polygon.id) is not None:
            raise ValueError(f"Polygon {polygon.id} already in session")
        self._attach(polygon)
        if select:
            self.select(polygon.id)
        self._notify_now()
        return polygon

    def _attach(self, polygon: Polygon) -> None:
        self.session.polygons.append(polygon)
        self.surface.add_shape(polygon.id, polygon.ring, editable=False)

        pid = polygon.id
        bag = DisposerBag()

        def only(handler: Callable[[Dict[str, Any]], None]) -> Callable[[Dict[str, Any]], None]:
            def filtered(event: Dict[str, Any]) -> None:
                if event.get("polygon_id") == pid:
                    handler(event)
            return filtered

        surface = self.surface
        bag.add(surface.on(SurfaceEvent.SHAPE_CLICK, only(lambda e: self.click_polygon(pid))))
        bag.add(surface.on(SurfaceEvent.SHAPE_RIGHT_CLICK, only(lambda e: self.request_delete(pid))))
        bag.add(surface.on(SurfaceEvent.VERTEX_DRAG_START, only(lambda e: self.begin_vertex_drag(pid))))
        bag.add(surface.on(SurfaceEvent.VERTEX_DRAG_END, only(lambda e: self.end_vertex_drag(pid))))
        bag.add(surface.on(SurfaceEvent.PATH_SET_AT, only(self._on_path_set)))
        bag.add(surface.on(SurfaceEvent.PATH_INSERT_AT, only(self._on_path_insert)))
        bag.add(surface.on(SurfaceEvent.PATH_REMOVE_AT, only(self._on_path_remove)))
        self._polygon_listeners[pid] = bag

    def _detach(self, polygon: Polygon) -> None:
        bag = self._polygon_listeners.pop(polygon.id, None)
        try:
            if bag is not None:
                bag.dispose()
        finally:
            self.surface.remove_shape(polygon.id)

    # -------------------------------------------------------------------------
    # Selection
    # -------------------------------------------------------------------------

    def click_polygon(self, polygon_id: str) -> None:
        """Select on click. Ignored while drawing."""
        if self.session.mode is EditMode.DRAWING:
            logger.debug("Polygon click ignored while drawing", extra={"polygon_id": polygon_id})
            return
        self.select(polygon_id)

    def click_map(self, coordinate: Coordinate) -> None:
        """Map background click: add a vertex while drawing, otherwise deselect."""
        if self.session.mode is EditMode.DRAWING:
            self.add_vertex(coordinate)
        else:
            self.deselect()

    def select(self, polygon_id: str) -> Polygon:
        polygon = self._require(polygon_id)
        if self.session.selected_polygon_id == polygon_id:
            return polygon

        self.deselect()
        # explicit selection abandons a drawing in progress
        self.session.drawing_ring = []
        self.session.selected_polygon_id = polygon_id
        self.surface.set_shape_editable(polygon_id, True)
        self._set_mode(EditMode.EDITING)
        logger.debug("Polygon selected", extra={"polygon_id": polygon_id})
        self._events.emit(SELECTION_CHANGED, polygon)
        return polygon

    def deselect(self) -> None:
        previous = self.session.selected_polygon_id
        if previous is None:
            return
        self._end_drag()
        if self.session.find(previous) is not None:
            self.surface.set_shape_editable(previous, False)
        self.session.selected_polygon_id = None
        if self.session.mode is EditMode.EDITING:
            self._set_mode(EditMode.IDLE)
        self._events.emit(SELECTION_CHANGED, None)

    # -------------------------------------------------------------------------
    # Drawing
    # -------------------------------------------------------------------------

    def toggle_drawing(self) -> EditMode:
        """Enter drawing mode, or cancel the drawing in progress."""
        if self.session.mode is EditMode.DRAWING:
            self.session.drawing_ring = []
            self._set_mode(EditMode.IDLE)
        else:
            self.deselect()
            self.session.drawing_ring = []
            self._set_mode(EditMode.DRAWING)
        return self.session.mode

    def add_vertex(self, coordinate: Coordinate) -> None:
        self._require_mode(EditMode.DRAWING, "add_vertex")
        self.session.drawing_ring.append(Coordinate(*coordinate))

    def undo_vertex(self) -> Optional[Coordinate]:
        self._require_mode(EditMode.DRAWING, "undo_vertex")
        if not self.session.drawing_ring:
            return None
        return self.session.drawing_ring.pop()

    def complete_drawing(self) -> Polygon:
        """
        Close the drawn ring into a polygon, select it and switch to EDITING.

        Raises:
            InvalidGeometry: fewer than three distinct vertices; drawing
                continues with the ring untouched
        """
        self._require_mode(EditMode.DRAWING, "complete_drawing")
        polygon = normalize_or_raise(self.session.drawing_ring, source=PolygonSource.DRAWN)

        self.session.drawing_ring = []
        self._attach(polygon)
        self.select(polygon.id)
        logger.info(
            f"Drawn polygon added ({polygon.area.square_feet:.1f} sq ft)",
            extra={"polygon_id": polygon.id},
        )
        self._notify_now()
        return polygon

    # -------------------------------------------------------------------------
    # Vertex editing (selected polygon only)
    # -------------------------------------------------------------------------

    def _editable(self, polygon_id: Optional[str] = None) -> Polygon:
        selected = self.session.selected
        if selected is None or (polygon_id is not None and polygon_id != selected.id):
            raise InvalidEditState("Only the selected polygon can be edited")
        return selected

    def _apply_ring(self, polygon: Polygon, ring: Sequence[Coordinate]) -> None:
        try:
            polygon.replace_ring(ring)
        finally:
            self.surface.update_shape(polygon.id, polygon.ring)
        self._notify_debounced()

    @staticmethod
    def _check_index(polygon: Polygon, index: int, upper: int) -> None:
        if not 0 <= index <= upper:
            raise InvalidEditState(
                f"Vertex index {index} out of range for {len(polygon.ring)} vertices"
            )

    def move_vertex(self, index: int, coordinate: Coordinate) -> None:
        polygon = self._editable()
        self._check_index(polygon, index, len(polygon.ring) - 1)
        ring = list(polygon.ring)
        ring[index] = Coordinate(*coordinate)
        self._apply_ring(polygon, ring)

    def insert_vertex(self, index: int, coordinate: Coordinate) -> None:
        polygon = self._editable()
        self._check_index(polygon, index, len(polygon.ring))
        ring = list(polygon.ring)
        ring.insert(index, Coordinate(*coordinate))
        self._apply_ring(polygon, ring)

    def remove_vertex(self, index: int) -> None:
        polygon = self._editable()
        self._check_index(polygon, index, len(polygon.ring) - 1)
        if len(polygon.ring) <= MIN_VERTICES:
            self.surface.update_shape(polygon.id, polygon.ring)
            raise InvalidGeometry(f"A polygon needs at least {MIN_VERTICES} vertices")
        ring = list(polygon.ring)
        del ring[index]
        self._apply_ring(polygon, ring)

    def replace_ring(self, ring: Sequence[Coordinate]) -> None:
        self._apply_ring(self._editable(), [Coordinate(*p) for p in ring])

    def _on_path_set(self, event: Dict[str, Any]) -> None:
        self._path_edit(event, lambda: self.move_vertex(event["index"], event["coordinate"]))

    def _on_path_insert(self, event: Dict[str, Any]) -> None:
        self._path_edit(event, lambda: self.insert_vertex(event["index"], event["coordinate"]))

    def _on_path_remove(self, event: Dict[str, Any]) -> None:
        self._path_edit(event, lambda: self.remove_vertex(event["index"]))

    def _path_edit(self, event: Dict[str, Any], apply: Callable[[], None]) -> None:
        """Surface-originated edit. Rejected edits are rolled back on the surface."""
        pid = event["polygon_id"]
        try:
            if self.session.selected_polygon_id != pid:
                raise InvalidEditState("Only the selected polygon can be edited")
            apply()
        except (InvalidEditState, InvalidGeometry) as e:
            logger.warning(f"Edit rejected: {e}", extra={"polygon_id": pid})
            polygon = self.session.find(pid)
            if polygon is not None:
                self.surface.update_shape(pid, polygon.ring)

    # -------------------------------------------------------------------------
    # Drag and pan suppression
    # -------------------------------------------------------------------------

    def begin_vertex_drag(self, polygon_id: str) -> None:
        """Disable surface panning while the selected polygon is dragged."""
        if polygon_id != self.session.selected_polygon_id or self._dragging_id is not None:
            return
        self._dragging_id = polygon_id
        self._pan_before_drag = self.surface.pan_enabled
        self.surface.set_pan_enabled(False)

    def end_vertex_drag(self, polygon_id: Optional[str] = None) -> None:
        if polygon_id is not None and polygon_id != self._dragging_id:
            return
        self._end_drag()

    def _end_drag(self) -> None:
        if self._dragging_id is None:
            return
        self.surface.set_pan_enabled(True if self._pan_before_drag is None else self._pan_before_drag)
        self._dragging_id = None
        self._pan_before_drag = None

    # -------------------------------------------------------------------------
    # Deletion and reset
    # -------------------------------------------------------------------------

    def request_delete(self, polygon_id: str) -> bool:
        """Alternate-click delete. Asks ``confirm_delete`` in any mode."""
        polygon = self._require(polygon_id)
        if self.confirm_delete is not None and not self.confirm_delete(polygon):
            return False
        self.delete_polygon(polygon_id)
        return True

    def delete_polygon(self, polygon_id: str) -> Polygon:
        polygon = self._require(polygon_id)
        if self.session.selected_polygon_id == polygon_id:
            self.deselect()
        self.session.polygons.remove(polygon)
        self._detach(polygon)
        logger.info("Polygon deleted", extra={"polygon_id": polygon_id})
        self._notify_now()
        return polygon

    def delete_selected(self) -> Optional[Polygon]:
        if self.session.selected_polygon_id is None:
            return None
        return self.delete_polygon(self.session.selected_polygon_id)

    def clear_all(self) -> None:
        self._reset(notify=True)

    def _reset(self, notify: bool) -> None:
        self._debouncer.cancel()
        self._end_drag()
        had_selection = self.session.selected_polygon_id is not None
        polygons, self.session.polygons = self.session.polygons, []
        self.session.selected_polygon_id = None
        self.session.drawing_ring = []
        self._set_mode(EditMode.IDLE)

        errors: List[BaseException] = []
        for polygon in polygons:
            try:
                self._detach(polygon)
            except Exception as exc:
                errors.append(exc)
        if had_selection:
            self._events.emit(SELECTION_CHANGED, None)
        if notify:
            self._emit_polygons()
        if errors:
            raise errors[0]

    def reorder(self, polygon_id: str, new_index: int) -> None:
        polygon = self._require(polygon_id)
        self.session.polygons.remove(polygon)
        new_index = max(0, min(new_index, len(self.session.polygons)))
        self.session.polygons.insert(new_index, polygon)
        self._notify_now()

    def save_changes(self) -> List[Polygon]:
        """Finish editing: deselect and deliver any pending notification."""
        self.deselect()
        if self._debouncer.pending:
            self._debouncer.flush()
        else:
            self._emit_polygons()
        return self.polygons

    def close(self) -> None:
        """Release every listener this controller registered."""
        try:
            self._reset(notify=False)
        finally:
            self._surface_listeners.dispose()

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _require(self, polygon_id: str) -> Polygon:
        polygon = self.session.find(polygon_id)
        if polygon is None:
            raise KeyError(f"Unknown polygon: {polygon_id}")
        return polygon

    def _require_mode(self, mode: EditMode, operation: str) -> None:
        if self.session.mode is not mode:
            raise InvalidEditState(
                f"{operation} requires {mode.value} mode (current: {self.session.mode.value})"
            )
