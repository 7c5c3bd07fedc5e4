"""
Roof section aggregation.

Holds the ordered list of accepted polygons ("sections"), names them by
position and totals their area for pricing:

    index 0 -> "Main Roof"
    index 1 -> "Second Roof"
    index 2 -> "Third Roof"
    index n -> "(n+1)th Roof"

A label set by the user is sticky: it survives additions, removals and
reordering, while auto-labelled sections renumber. Sections can be excluded
from the totals without being deleted.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Union

from ..core.models import Polygon, SlopeClass
from ..surface.events import Disposer, EventEmitter
from ..utils.logging_config import get_logger

logger = get_logger(__name__)

_CHANGED = "sections_changed"

_NAMED_ORDINALS = {0: "Main Roof", 1: "Second Roof", 2: "Third Roof"}


def ordinal_label(index: int) -> str:
    """Automatic label for the section at ``index``."""
    return _NAMED_ORDINALS.get(index, f"{index + 1}th Roof")


@dataclass(frozen=True)
class SectionSummary:
    index: int
    polygon_id: str
    label: str
    slope_class: SlopeClass
    square_meters: float
    square_feet: float
    formatted_area: str
    included: bool

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "polygon_id": self.polygon_id,
            "label": self.label,
            "slope_class": self.slope_class.value,
            "square_meters": self.square_meters,
            "square_feet": self.square_feet,
            "formatted_area": self.formatted_area,
            "included": self.included,
        }


class RoofSectionAggregator:
    """Ordered roof sections with sticky labels and area totals."""

    def __init__(self, polygons: Iterable[Polygon] = ()):
        self._polygons: List[Polygon] = []
        self._events = EventEmitter()
        self.sync(polygons)

    # -------------------------------------------------------------------------
    # Collection
    # -------------------------------------------------------------------------

    @property
    def polygons(self) -> List[Polygon]:
        return list(self._polygons)

    def __len__(self) -> int:
        return len(self._polygons)

    def get(self, polygon_id: str) -> Polygon:
        for polygon in self._polygons:
            if polygon.id == polygon_id:
                return polygon
        raise KeyError(f"Unknown section: {polygon_id}")

    def sync(self, polygons: Iterable[Polygon]) -> None:
        """Replace the collection (edit controller output) and relabel."""
        self._polygons = list(polygons)
        self._relabel()
        self._changed()

    def add(self, polygon: Polygon) -> None:
        self._polygons.append(polygon)
        self._relabel()
        self._changed()

    def remove(self, polygon_id: str) -> Polygon:
        polygon = self.get(polygon_id)
        self._polygons.remove(polygon)
        self._relabel()
        self._changed()
        return polygon

    def move(self, polygon_id: str, new_index: int) -> None:
        """Reorder a section. Auto labels follow the new positions."""
        polygon = self.get(polygon_id)
        self._polygons.remove(polygon)
        new_index = max(0, min(new_index, len(self._polygons)))
        self._polygons.insert(new_index, polygon)
        self._relabel()
        self._changed()

    def clear(self) -> None:
        self._polygons = []
        self._changed()

    # -------------------------------------------------------------------------
    # Labels
    # -------------------------------------------------------------------------

    def _relabel(self) -> None:
        for index, polygon in enumerate(self._polygons):
            if polygon.label_overridden:
                continue
            label = ordinal_label(index)
            if polygon.label != label:
                polygon.rename(label, manual=False)

    def rename(self, polygon_id: str, label: str) -> None:
        """Set a user label. It is kept regardless of position from now on."""
        label = label.strip()
        if not label:
            raise ValueError("Section label cannot be empty")
        self.get(polygon_id).rename(label, manual=True)
        logger.debug(f"Section renamed to {label!r}", extra={"polygon_id": polygon_id})
        self._changed()

    def reset_label(self, polygon_id: str) -> None:
        """Drop a user label and return to automatic numbering."""
        self.get(polygon_id).label_overridden = False
        self._relabel()
        self._changed()

    # -------------------------------------------------------------------------
    # Per-section attributes
    # -------------------------------------------------------------------------

    def set_included(self, polygon_id: str, included: bool) -> None:
        polygon = self.get(polygon_id)
        if polygon.included != included:
            polygon.included = included
            polygon.touch()
            self._changed()

    def set_slope_class(self, polygon_id: str, slope_class: Union[SlopeClass, str]) -> None:
        polygon = self.get(polygon_id)
        slope_class = SlopeClass(slope_class)
        if polygon.slope_class is not slope_class:
            polygon.slope_class = slope_class
            polygon.touch()
            self._changed()

    # -------------------------------------------------------------------------
    # Totals
    # -------------------------------------------------------------------------

    def total_square_feet(self) -> float:
        return sum(p.area.square_feet for p in self._polygons if p.included)

    def total_square_meters(self) -> float:
        return sum(p.area.square_meters for p in self._polygons if p.included)

    def totals_by_slope(self) -> Dict[SlopeClass, float]:
        """Included square feet per slope class."""
        totals: Dict[SlopeClass, float] = {slope: 0.0 for slope in SlopeClass}
        for polygon in self._polygons:
            if polygon.included:
                totals[polygon.slope_class] += polygon.area.square_feet
        return totals

    def sections(self) -> List[SectionSummary]:
        return [
            SectionSummary(
                index=index,
                polygon_id=polygon.id,
                label=polygon.label,
                slope_class=polygon.slope_class,
                square_meters=polygon.area.square_meters,
                square_feet=polygon.area.square_feet,
                formatted_area=polygon.area.formatted,
                included=polygon.included,
            )
            for index, polygon in enumerate(self._polygons)
        ]

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def on_change(self, listener: Callable[["RoofSectionAggregator"], None]) -> Disposer:
        return self._events.on(_CHANGED, listener)

    def _changed(self) -> None:
        self._events.emit(_CHANGED, self)
