"""
Building footprint providers.

A provider answers three kinds of query, each returning raw GeoJSON-like
features (``{"type": "Feature", "geometry": ..., "properties": ...}``) whose
geometry may be anything the normalizer understands:

- ``query_point``: features under the coordinate
- ``query_box``: features intersecting a geographic box
- ``scan_source``: every feature in the source tile containing the coordinate

Query methods block; the detector runs them in an executor. Readiness is
tracked per instance with a :class:`ProviderState`.

Providers:
- :class:`StaticFootprintProvider`: in-memory FeatureCollection (offline use, tests)
- :class:`OverpassFootprintProvider`: OpenStreetMap buildings via Overpass
"""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
import math
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from shapely.errors import GEOSException
from shapely.geometry import Point, box, shape
from shapely.prepared import prep

from ..core.config import settings
from ..core.coordinates import Bounds, Coordinate
from ..core.exceptions import ProviderUnavailable
from ..core.lifecycle import ProviderState, ProviderStatus
from ..geometry.polygon_ops import meters_to_degrees
from ..utils.logging_config import get_logger
from ..utils.retry import RetryableRequest, RetryConfig

logger = get_logger(__name__)

Feature = Dict[str, Any]


# =============================================================================
# SOURCE TILES
# =============================================================================

def coordinate_to_quadkey(point: Coordinate, level: int) -> str:
    """Bing/Web-Mercator quadkey of the tile containing ``point``."""
    x = (point.lng + 180.0) / 360.0
    sin_lat = math.sin(math.radians(point.lat))
    y = 0.5 - math.log((1 + sin_lat) / (1 - sin_lat)) / (4 * math.pi)
    y = max(0.0, min(1.0, y))

    map_size = 1 << level
    tile_x = max(0, min(map_size - 1, int(x * map_size)))
    tile_y = max(0, min(map_size - 1, int(y * map_size)))

    digits = []
    for i in range(level, 0, -1):
        mask = 1 << (i - 1)
        digit = 0
        if tile_x & mask:
            digit += 1
        if tile_y & mask:
            digit += 2
        digits.append(str(digit))
    return "".join(digits)


def quadkey_bounds(quadkey: str) -> Bounds:
    """Geographic extent of a quadkey tile."""
    level = len(quadkey)
    tile_x = 0
    tile_y = 0
    for i, char in enumerate(quadkey):
        mask = 1 << (level - i - 1)
        digit = int(char)
        if digit & 1:
            tile_x |= mask
        if digit & 2:
            tile_y |= mask

    map_size = 1 << level
    west = tile_x / map_size * 360.0 - 180.0
    east = (tile_x + 1) / map_size * 360.0 - 180.0
    south = math.degrees(math.atan(math.sinh(math.pi * (1 - 2 * (tile_y + 1) / map_size))))
    north = math.degrees(math.atan(math.sinh(math.pi * (1 - 2 * tile_y / map_size))))
    return Bounds(north=north, south=south, east=east, west=west)


# =============================================================================
# BASE
# =============================================================================

class FootprintProvider(ABC):
    """Base class: readiness signalling plus the three query strategies."""

    name = "footprints"

    def __init__(self, state: Optional[ProviderState] = None, ready: bool = True):
        self.state = state or ProviderState(self.name)
        self._loaded = asyncio.Event()
        self.state.subscribe(self._on_status)
        if self.state.is_ready:
            self._loaded.set()
        elif ready and self.state.status is ProviderStatus.UNINITIALIZED:
            self.state.begin_loading()
            self.state.mark_ready()

    def _on_status(self, status: ProviderStatus) -> None:
        if status in (ProviderStatus.READY, ProviderStatus.FAILED):
            self._loaded.set()
        else:
            self._loaded.clear()

    def _open(self) -> None:
        """Provider-specific loading, run by :meth:`load`."""

    async def load(self) -> None:
        """Initialize the source. Raises ProviderUnavailable on failure."""
        loop = asyncio.get_running_loop()
        await self.state.initialize(lambda: loop.run_in_executor(None, self._open))

    def is_source_loaded(self) -> bool:
        return self.state.is_ready

    async def wait_until_loaded(self) -> None:
        """
        Block until the source is ready. No timeout here; callers wrap this in
        ``asyncio.wait_for``.
        """
        if self.state.status is ProviderStatus.FAILED:
            raise ProviderUnavailable(self.name, self.state.error)
        await self._loaded.wait()
        self.state.require_ready()

    @abstractmethod
    def query_point(self, point: Coordinate) -> List[Feature]:
        ...

    def query_points(self, points: List[Coordinate]) -> List[Feature]:
        """Point query at several locations, results in point order."""
        features: List[Feature] = []
        for point in points:
            features.extend(self.query_point(point))
        return features

    @abstractmethod
    def query_box(self, bounds: Bounds) -> List[Feature]:
        ...

    @abstractmethod
    def scan_source(self, point: Coordinate) -> List[Feature]:
        ...


# =============================================================================
# STATIC
# =============================================================================

class StaticFootprintProvider(FootprintProvider):
    """
    Footprints from an in-memory GeoJSON FeatureCollection.

    Features whose geometry shapely cannot parse are kept: they are returned
    by :meth:`scan_source` so the detector's normalizer can reject them, but
    never match spatial queries.
    """

    name = "static"

    def __init__(
        self,
        features: Iterable[Feature] = (),
        state: Optional[ProviderState] = None,
        ready: bool = True,
        point_tolerance_m: float = 0.5,
        tile_level: Optional[int] = None,
        path: Optional[Path] = None,
    ):
        self.point_tolerance_m = point_tolerance_m
        self.tile_level = tile_level or settings.source_tile_level
        self.path = Path(path) if path else None
        self._features: List[Feature] = []
        self._shapes: List[Any] = []
        self.set_features(features)
        super().__init__(state=state, ready=ready)

    @classmethod
    def from_geojson(cls, data: Dict[str, Any], **kwargs: Any) -> "StaticFootprintProvider":
        if data.get("type") == "FeatureCollection":
            features = data.get("features", [])
        elif data.get("type") == "Feature":
            features = [data]
        else:
            features = [{"type": "Feature", "geometry": data, "properties": {}}]
        return cls(features, **kwargs)

    @classmethod
    def from_file(cls, path: Path | str, **kwargs: Any) -> "StaticFootprintProvider":
        """Provider that reads ``path`` when :meth:`load` is awaited."""
        kwargs.setdefault("ready", False)
        return cls(path=Path(path), **kwargs)

    def _open(self) -> None:
        if self.path is None:
            return
        data = json.loads(self.path.read_text())
        features = data.get("features", []) if isinstance(data, dict) else []
        self.set_features(features)
        logger.info(f"Loaded {len(self._features)} footprints from {self.path}")

    def set_features(self, features: Iterable[Feature]) -> None:
        self._features = list(features)
        self._shapes = []
        for feature in self._features:
            geometry = feature.get("geometry") if isinstance(feature, dict) else None
            try:
                self._shapes.append(prep(shape(geometry)) if geometry else None)
            except (ValueError, TypeError, KeyError, IndexError, AttributeError, GEOSException):
                self._shapes.append(None)

    def __len__(self) -> int:
        return len(self._features)

    def _matching(self, target: Any) -> List[Feature]:
        return [
            feature
            for feature, prepared in zip(self._features, self._shapes)
            if prepared is not None and prepared.intersects(target)
        ]

    def query_point(self, point: Coordinate) -> List[Feature]:
        dlng, dlat = meters_to_degrees(point.lat, self.point_tolerance_m)
        target = Point(point.lng, point.lat).buffer(max(dlng, dlat))
        return self._matching(target)

    def query_box(self, bounds: Bounds) -> List[Feature]:
        return self._matching(box(*bounds.to_tuple()))

    def scan_source(self, point: Coordinate) -> List[Feature]:
        tile = quadkey_bounds(coordinate_to_quadkey(point, self.tile_level))
        target = box(*tile.to_tuple())
        return [
            feature
            for feature, prepared in zip(self._features, self._shapes)
            if prepared is None or prepared.intersects(target)
        ]


# =============================================================================
# OVERPASS
# =============================================================================

class OverpassFootprintProvider(FootprintProvider):
    """
    OpenStreetMap building footprints from the Overpass API.

    Ways become Polygon features with their node list as geometry; relations
    become MultiPolygon features built from their outer members.
    """

    name = "overpass"

    RETRY_CONFIG = RetryConfig(max_retries=2, base_delay=1.0, max_delay=8.0)

    def __init__(
        self,
        url: Optional[str] = None,
        user_agent: Optional[str] = None,
        timeout: Optional[float] = None,
        tile_level: Optional[int] = None,
        http: Optional[RetryableRequest] = None,
        state: Optional[ProviderState] = None,
        ready: bool = True,
    ):
        self.url = url or settings.overpass_url
        self.timeout = timeout or settings.http_timeout_s
        self.tile_level = tile_level or settings.source_tile_level
        self._http = http or RetryableRequest(
            self.RETRY_CONFIG,
            headers={"User-Agent": user_agent or settings.user_agent},
            timeout=self.timeout,
        )
        super().__init__(state=state, ready=ready)

    def close(self) -> None:
        self._http.close()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def _server_timeout(self) -> int:
        return max(1, int(self.timeout) - 2)

    def query_point(self, point: Coordinate) -> List[Feature]:
        return self.query_points([point])

    def query_points(self, points: List[Coordinate]) -> List[Feature]:
        """All points in one round trip."""
        clauses = "\n".join(
            f'way["building"](around:1,{p.lat},{p.lng});\n'
            f'relation["building"](around:1,{p.lat},{p.lng});'
            for p in points
        )
        query = f"""
        [out:json][timeout:{self._server_timeout()}];
        (
        {clauses}
        );
        out geom;
        """
        return self._execute(query)

    def query_box(self, bounds: Bounds) -> List[Feature]:
        bbox = bounds.to_overpass_bbox()
        query = f"""
        [out:json][timeout:{self._server_timeout()}];
        (
            way["building"]({bbox});
            relation["building"]({bbox});
        );
        out geom;
        """
        return self._execute(query)

    def scan_source(self, point: Coordinate) -> List[Feature]:
        tile = quadkey_bounds(coordinate_to_quadkey(point, self.tile_level))
        return self.query_box(tile)

    def _execute(self, query: str) -> List[Feature]:
        """Run a query. Transport errors propagate to the caller."""
        resp = self._http.post(self.url, data={"data": query})
        resp.raise_for_status()
        elements = resp.json().get("elements", [])
        return [feature for feature in map(self.element_to_feature, elements) if feature]

    # -------------------------------------------------------------------------
    # Conversion
    # -------------------------------------------------------------------------

    @staticmethod
    def element_to_feature(element: Dict[str, Any]) -> Optional[Feature]:
        """Overpass element to a raw feature, or None if it has no geometry."""
        tags = element.get("tags", {})
        properties = dict(tags)
        properties["osm_id"] = f"{element.get('type', 'way')}/{element.get('id')}"

        if element.get("type") == "relation":
            parts: List[List[Tuple[float, float]]] = []
            for member in element.get("members", []):
                if member.get("role") != "outer" or not member.get("geometry"):
                    continue
                parts.append([(node["lon"], node["lat"]) for node in member["geometry"]])
            if not parts:
                return None
            return {
                "type": "Feature",
                "geometry": {"type": "MultiPolygon", "coordinates": [[ring] for ring in parts]},
                "properties": properties,
            }

        if not element.get("geometry"):
            return None
        return {
            "type": "Feature",
            "geometry": element["geometry"],
            "properties": properties,
        }
