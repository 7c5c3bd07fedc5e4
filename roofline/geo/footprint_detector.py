"""
Multi-strategy footprint detector.

Finds the building under a coordinate by combining three provider queries:

1. Point query at the coordinate and at an N x N grid around it
2. Bounding-box query over ``search_radius_m`` in each direction
3. Source scan of the provider tile containing the coordinate

Candidates from all strategies are merged, deduplicated on their first three
vertices and ranked:

- candidates whose ring contains the coordinate come first, largest area
  first (main structure over an outbuilding)
- otherwise, with ``include_nearby``, the nearest candidate within
  ``max_distance_km`` is selected
- if nothing can be selected a synthetic square footprint is returned so the
  user always has something to edit

Ranking is deterministic: ties are broken by the dedupe key. Only the
fallback polygon id varies between calls.

Usage:
    detector = FootprintDetector(StaticFootprintProvider(features))
    result = await detector.detect(Coordinate(-77.0365, 38.8977))
    print(result.polygon.area.square_feet, result.confidence)
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

import numpy as np
from shapely.geometry import Polygon as ShapelyPolygon
from shapely.geometry import box

from ..core.config import Settings, settings as default_settings
from ..core.coordinates import Bounds, Coordinate
from ..core.exceptions import DetectionTimeout, NoFootprintFound, ProviderUnavailable
from ..core.models import (
    DetectionCandidate,
    DetectionResult,
    DetectionStrategy,
    Polygon,
    PolygonSource,
    fallback_polygon_id,
)
from ..geometry.normalizer import extract_ring, normalize
from ..geometry.polygon_ops import (
    box_around,
    contains_point,
    haversine_km,
    meters_to_degrees,
    ring_area,
    ring_centroid,
    square_ring,
)
from ..utils.logging_config import get_logger
from ..utils.validation import validate_coordinates, validate_positive
from .providers import Feature, FootprintProvider

logger = get_logger(__name__)

FALLBACK_CONFIDENCE = 0.1
CONTAINING_CONFIDENCE = 0.95
NEARBY_CONFIDENCE_FACTOR = 0.8


@dataclass(frozen=True)
class DetectionOptions:
    """Per-call detection parameters. Defaults come from settings."""

    search_radius_m: float = 50.0
    max_results: int = 10
    include_nearby: bool = True
    max_distance_km: float = 0.15
    grid_size: int = 5
    timeout_s: float = 10.0
    dedupe_precision: int = 6
    fallback_side_m: float = 11.0
    strategies: Tuple[DetectionStrategy, ...] = (
        DetectionStrategy.POINT,
        DetectionStrategy.BOX,
        DetectionStrategy.SOURCE,
    )

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None, **overrides: Any) -> "DetectionOptions":
        config = config or default_settings
        options = cls(
            search_radius_m=config.search_radius_m,
            max_results=config.max_results,
            max_distance_km=config.max_distance_km,
            grid_size=config.search_grid_size,
            timeout_s=config.source_load_timeout_s,
            dedupe_precision=config.dedupe_precision,
            fallback_side_m=config.fallback_side_m,
        )
        return replace(options, **overrides) if overrides else options


# =============================================================================
# HELPERS
# =============================================================================

def search_grid(center: Coordinate, radius_m: float, grid_size: int) -> List[Coordinate]:
    """
    Center point followed by an evenly spaced ``grid_size`` x ``grid_size``
    grid spanning ``radius_m`` in each direction (center cell not repeated).
    """
    points = [center]
    if grid_size < 2:
        return points

    dlng, dlat = meters_to_degrees(center.lat, radius_m)
    lats = np.linspace(center.lat - dlat, center.lat + dlat, grid_size)
    lngs = np.linspace(center.lng - dlng, center.lng + dlng, grid_size)
    mid = grid_size // 2

    for i, lat in enumerate(lats):
        for j, lng in enumerate(lngs):
            if grid_size % 2 == 1 and i == mid and j == mid:
                continue
            points.append(Coordinate(float(lng), float(lat)))
    return points


def dedupe_key(ring: Sequence[Coordinate], precision: int = 6) -> str:
    """Content key built from the first three vertices."""
    return "|".join(f"{p.lng:.{precision}f},{p.lat:.{precision}f}" for p in ring[:3])


def confidence_by_distance(distance_m: float) -> float:
    """Confidence degrades with distance from the query point."""
    if distance_m < 5:
        return 1.0
    elif distance_m < 15:
        return 0.90
    elif distance_m < 30:
        return 0.75
    elif distance_m < 50:
        return 0.60
    else:
        return 0.45


def rank_candidates(candidates: Iterable[DetectionCandidate]) -> List[DetectionCandidate]:
    """Containing candidates by area (desc), then the rest by distance (asc)."""
    containing = [c for c in candidates if c.contains_query_point]
    others = [c for c in candidates if not c.contains_query_point]
    containing.sort(key=lambda c: (-c.approximate_area, c.key))
    others.sort(key=lambda c: (c.distance_from_query_point, c.key))
    return containing + others


def fallback_polygon(point: Coordinate, side_m: float) -> Polygon:
    """Four-point square centered on ``point``, tagged low confidence."""
    return Polygon(
        square_ring(point, side_m),
        polygon_id=fallback_polygon_id(),
        source=PolygonSource.FALLBACK,
        confidence=FALLBACK_CONFIDENCE,
        properties={"fallback": True},
    )


# =============================================================================
# DETECTOR
# =============================================================================

class FootprintDetector:
    """Runs the detection strategies against one provider."""

    def __init__(
        self,
        provider: FootprintProvider,
        config: Optional[Settings] = None,
    ):
        self.provider = provider
        self.config = config or default_settings

    def default_options(self, **overrides: Any) -> DetectionOptions:
        return DetectionOptions.from_settings(self.config, **overrides)

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def detect(
        self,
        point: Coordinate,
        options: Optional[DetectionOptions] = None,
    ) -> DetectionResult:
        """
        Detect the building footprint at ``point``.

        Raises:
            DetectionTimeout: provider source not ready within ``timeout_s``
            ProviderUnavailable: provider failed to initialize
            ValidationError: invalid coordinate or options
        """
        options = options or self.default_options()
        point = Coordinate(*validate_coordinates(point.lng, point.lat))
        validate_positive(options.search_radius_m, "search_radius_m")
        started = time.perf_counter()

        await self._wait_for_source(options.timeout_s)

        bounds = box_around(point, options.search_radius_m)
        batches = await self._run_strategies(point, bounds, options)
        candidates = self._build_candidates(point, bounds, batches, options.dedupe_precision)
        ranked = rank_candidates(candidates)[: options.max_results]

        selected, confidence = self._select(ranked, options)
        polygon = None
        if selected is not None:
            polygon = normalize(
                selected.ring,
                source=PolygonSource.DETECTED,
                confidence=confidence,
                properties=selected.source_properties,
            )

        is_fallback = polygon is None
        if is_fallback:
            reason = NoFootprintFound(
                f"No footprint selectable among {len(ranked)} candidates"
            )
            logger.info(f"{reason}; using fallback square")
            polygon = fallback_polygon(point, options.fallback_side_m)
            selected = None
            confidence = FALLBACK_CONFIDENCE
        else:
            logger.info(
                f"Selected footprint ({polygon.area.square_meters:.1f} m², "
                f"confidence {confidence:.2f}) from {len(ranked)} candidates",
                extra={"polygon_id": polygon.id, "strategy": selected.strategy.value},
            )

        return DetectionResult(
            query_point=point,
            candidates=ranked,
            selected=selected,
            polygon=polygon,
            is_fallback=is_fallback,
            confidence=confidence,
            search_bounds=bounds,
            processing_time_s=time.perf_counter() - started,
        )

    async def detect_in_area(
        self,
        bounds: Bounds,
        max_results: Optional[int] = None,
        timeout_s: Optional[float] = None,
    ) -> List[DetectionCandidate]:
        """All buildings intersecting ``bounds``, largest first."""
        await self._wait_for_source(
            timeout_s if timeout_s is not None else self.config.source_load_timeout_s
        )
        loop = asyncio.get_running_loop()
        features = await loop.run_in_executor(None, self.provider.query_box, bounds)

        candidates = self._build_candidates(
            bounds.center,
            bounds,
            [(DetectionStrategy.BOX, features)],
            self.config.dedupe_precision,
        )
        candidates.sort(key=lambda c: (-c.approximate_area, c.key))
        limit = max_results if max_results is not None else self.config.max_results
        return candidates[:limit]

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _wait_for_source(self, timeout_s: float) -> None:
        try:
            await asyncio.wait_for(self.provider.wait_until_loaded(), timeout=timeout_s)
        except asyncio.TimeoutError:
            logger.error(f"Footprint source {self.provider.name!r} not ready after {timeout_s:g}s")
            raise DetectionTimeout(timeout_s, self.provider.name) from None

    async def _run_strategies(
        self,
        point: Coordinate,
        bounds: Bounds,
        options: DetectionOptions,
    ) -> List[Tuple[DetectionStrategy, List[Feature]]]:
        loop = asyncio.get_running_loop()
        calls = {
            DetectionStrategy.POINT: (
                self.provider.query_points,
                search_grid(point, options.search_radius_m, options.grid_size),
            ),
            DetectionStrategy.BOX: (self.provider.query_box, bounds),
            DetectionStrategy.SOURCE: (self.provider.scan_source, point),
        }
        strategies = [s for s in calls if s in options.strategies]
        results = await asyncio.gather(
            *(loop.run_in_executor(None, *calls[s]) for s in strategies),
            return_exceptions=True,
        )

        batches = []
        for strategy, result in zip(strategies, results):
            if isinstance(result, ProviderUnavailable):
                raise result
            if isinstance(result, BaseException):
                logger.warning(
                    f"Detection strategy failed: {result}",
                    extra={"strategy": strategy.value},
                )
                continue
            logger.debug(
                f"{len(result)} raw features", extra={"strategy": strategy.value}
            )
            batches.append((strategy, result))
        return batches

    def _build_candidates(
        self,
        point: Coordinate,
        bounds: Bounds,
        batches: List[Tuple[DetectionStrategy, List[Feature]]],
        precision: int,
    ) -> List[DetectionCandidate]:
        seen: Set[str] = set()
        candidates: List[DetectionCandidate] = []
        search_area = box(*bounds.to_tuple())

        for strategy, features in batches:
            for feature in features:
                ring = extract_ring(feature)
                if ring is None:
                    continue
                if strategy is DetectionStrategy.SOURCE and not search_area.intersects(ShapelyPolygon(ring)):
                    continue
                key = dedupe_key(ring, precision)
                if key in seen:
                    continue
                seen.add(key)

                properties: Dict[str, Any] = {}
                if isinstance(feature, dict):
                    properties = dict(feature.get("properties") or {})
                candidates.append(DetectionCandidate(
                    ring=ring,
                    source_properties=properties,
                    distance_from_query_point=haversine_km(point, ring_centroid(ring)),
                    approximate_area=ring_area(ring),
                    strategy=strategy,
                    contains_query_point=contains_point(ring, point),
                    key=key,
                ))
        return candidates

    def _select(
        self,
        ranked: List[DetectionCandidate],
        options: DetectionOptions,
    ) -> Tuple[Optional[DetectionCandidate], float]:
        if not ranked:
            return None, 0.0

        best = ranked[0]
        if best.contains_query_point:
            return best, CONTAINING_CONFIDENCE

        if options.include_nearby and best.distance_from_query_point <= options.max_distance_km:
            distance_m = best.distance_from_query_point * 1000.0
            return best, confidence_by_distance(distance_m) * NEARBY_CONFIDENCE_FACTOR

        return None, 0.0
