"""
Tests for the multi-strategy footprint detector.
"""

import asyncio

import pytest
import requests

from roofline.core.coordinates import Bounds, Coordinate
from roofline.core.exceptions import DetectionTimeout, ProviderUnavailable
from roofline.core.models import DetectionStrategy, PolygonSource
from roofline.geo.footprint_detector import (
    CONTAINING_CONFIDENCE,
    FALLBACK_CONFIDENCE,
    DetectionOptions,
    FootprintDetector,
    confidence_by_distance,
    dedupe_key,
    search_grid,
)
from roofline.geo.providers import StaticFootprintProvider
from roofline.geometry.polygon_ops import contains_point
from roofline.utils.validation import ValidationError

from conftest import WHITE_HOUSE, make_feature, rectangle


class TestHelpers:
    """Tests for grid, dedupe key and confidence helpers."""

    def test_search_grid_center_first(self):
        points = search_grid(WHITE_HOUSE, 50.0, 5)
        assert points[0] == WHITE_HOUSE
        assert len(points) == 25
        assert len(set(points)) == 25

    def test_search_grid_even_size(self):
        assert len(search_grid(WHITE_HOUSE, 50.0, 4)) == 17

    def test_search_grid_single(self):
        assert search_grid(WHITE_HOUSE, 50.0, 1) == [WHITE_HOUSE]

    def test_dedupe_key(self):
        ring = [Coordinate(1.23456789, 2.0), Coordinate(3.0, 4.0), Coordinate(5.0, 6.0), Coordinate(7.0, 8.0)]
        assert dedupe_key(ring) == "1.234568,2.000000|3.000000,4.000000|5.000000,6.000000"

    @pytest.mark.parametrize("distance_m,expected", [
        (0, 1.0), (4.9, 1.0), (10, 0.90), (20, 0.75), (40, 0.60), (100, 0.45),
    ])
    def test_confidence_by_distance(self, distance_m, expected):
        assert confidence_by_distance(distance_m) == expected

    def test_options_from_settings(self, settings):
        options = DetectionOptions.from_settings(settings, search_radius_m=75.0)
        assert options.search_radius_m == 75.0
        assert options.grid_size == settings.search_grid_size
        assert options.timeout_s == settings.source_load_timeout_s


class TestDetect:
    """Tests for FootprintDetector.detect."""

    @pytest.mark.asyncio
    async def test_building_containing_point(self, detector):
        """A footprint under the coordinate is selected with high confidence."""
        result = await detector.detect(WHITE_HOUSE)

        assert not result.is_fallback
        assert result.found
        assert result.polygon.area.square_meters > 0
        assert contains_point(result.polygon.ring, WHITE_HOUSE)
        assert result.polygon.source == PolygonSource.DETECTED
        assert result.confidence == CONTAINING_CONFIDENCE
        assert result.selected.contains_query_point
        assert result.polygon.properties["name"] == "main"

    @pytest.mark.asyncio
    async def test_duplicates_across_strategies_merged(self, detector):
        """The same building found by all strategies is one candidate."""
        result = await detector.detect(WHITE_HOUSE)
        assert len(result.candidates) == 1
        assert result.candidates[0].strategy == DetectionStrategy.POINT

    @pytest.mark.asyncio
    async def test_largest_containing_wins(self, main_building, annex_building, settings):
        provider = StaticFootprintProvider([annex_building, main_building])
        result = await FootprintDetector(provider, settings).detect(WHITE_HOUSE)

        assert [c.source_properties["name"] for c in result.candidates] == ["main", "annex"]
        assert result.polygon.properties["name"] == "main"

    @pytest.mark.asyncio
    async def test_nearby_building_selected(self, nearby_building, settings):
        """Without a containing footprint the nearest one is used."""
        provider = StaticFootprintProvider([nearby_building])
        result = await FootprintDetector(provider, settings).detect(WHITE_HOUSE)

        assert not result.is_fallback
        assert not result.selected.contains_query_point
        assert result.selected.distance_from_query_point == pytest.approx(0.0346, abs=0.002)
        assert result.confidence == pytest.approx(0.60 * 0.8)

    @pytest.mark.asyncio
    async def test_nearby_beyond_max_distance(self, nearby_building, settings):
        provider = StaticFootprintProvider([nearby_building])
        options = DetectionOptions(max_distance_km=0.01)
        result = await FootprintDetector(provider, settings).detect(WHITE_HOUSE, options)

        assert result.is_fallback
        assert len(result.candidates) == 1

    @pytest.mark.asyncio
    async def test_nearby_disabled(self, nearby_building, settings):
        provider = StaticFootprintProvider([nearby_building])
        options = DetectionOptions(include_nearby=False)
        result = await FootprintDetector(provider, settings).detect(WHITE_HOUSE, options)
        assert result.is_fallback

    @pytest.mark.asyncio
    async def test_fallback_square(self, empty_provider, settings):
        """No footprint gives a low-confidence square centered on the point."""
        result = await FootprintDetector(empty_provider, settings).detect(WHITE_HOUSE)

        assert result.is_fallback
        assert result.candidates == []
        assert result.selected is None
        assert result.confidence == FALLBACK_CONFIDENCE
        polygon = result.polygon
        assert polygon.source == PolygonSource.FALLBACK
        assert polygon.id.startswith("fallback_")
        assert len(polygon.ring) == 4
        assert polygon.centroid.lng == pytest.approx(WHITE_HOUSE.lng, abs=1e-7)
        assert polygon.centroid.lat == pytest.approx(WHITE_HOUSE.lat, abs=1e-7)
        assert polygon.area.square_meters == pytest.approx(121.0, rel=0.02)

    @pytest.mark.asyncio
    async def test_fallback_ids_unique(self, empty_provider, settings):
        detector = FootprintDetector(empty_provider, settings)
        first = await detector.detect(WHITE_HOUSE)
        second = await detector.detect(WHITE_HOUSE)
        assert first.polygon.id != second.polygon.id

    @pytest.mark.asyncio
    async def test_deterministic(self, main_building, annex_building, nearby_building, settings):
        """Repeated detection ranks and selects identically."""
        provider = StaticFootprintProvider([nearby_building, annex_building, main_building])
        detector = FootprintDetector(provider, settings)

        first = await detector.detect(WHITE_HOUSE)
        second = await detector.detect(WHITE_HOUSE)

        assert [c.key for c in first.candidates] == [c.key for c in second.candidates]
        assert first.selected.key == second.selected.key
        assert first.polygon.ring == second.polygon.ring
        assert first.confidence == second.confidence

    @pytest.mark.asyncio
    async def test_invalid_geometry_skipped(self, main_building, settings):
        broken = {
            "type": "Feature",
            "geometry": {"type": "Polygon", "coordinates": [[[-77.0365, 38.8977], [-77.0365, 38.8977]]]},
            "properties": {"name": "broken"},
        }
        provider = StaticFootprintProvider([broken, {"type": "Feature", "geometry": None}, main_building])
        result = await FootprintDetector(provider, settings).detect(WHITE_HOUSE)

        assert [c.source_properties["name"] for c in result.candidates] == ["main"]

    @pytest.mark.asyncio
    async def test_max_results_cap(self, settings):
        features = [
            make_feature(rectangle(
                WHITE_HOUSE.lng + k * 0.00003,
                WHITE_HOUSE.lat + 0.0002,
                WHITE_HOUSE.lng + k * 0.00003 + 0.00001,
                WHITE_HOUSE.lat + 0.00021,
            ), k=k)
            for k in range(1, 16)
        ]
        provider = StaticFootprintProvider(features)
        result = await FootprintDetector(provider, settings).detect(WHITE_HOUSE)

        assert len(result.candidates) == 10
        distances = [c.distance_from_query_point for c in result.candidates]
        assert distances == sorted(distances)
        assert result.selected.source_properties["k"] == 1

    @pytest.mark.asyncio
    async def test_failing_strategy_skipped(self, main_building, settings):
        class FlakyProvider(StaticFootprintProvider):
            def query_box(self, bounds):
                raise requests.ConnectionError("boom")

        provider = FlakyProvider([main_building])
        result = await FootprintDetector(provider, settings).detect(WHITE_HOUSE)
        assert not result.is_fallback

    @pytest.mark.asyncio
    async def test_provider_unavailable_from_strategy(self, main_building, settings):
        class BrokenProvider(StaticFootprintProvider):
            def scan_source(self, point):
                raise ProviderUnavailable(self.name)

        detector = FootprintDetector(BrokenProvider([main_building]), settings)
        with pytest.raises(ProviderUnavailable):
            await detector.detect(WHITE_HOUSE)

    @pytest.mark.asyncio
    async def test_strategy_subset(self, main_building, settings):
        provider = StaticFootprintProvider([main_building])
        options = DetectionOptions(strategies=(DetectionStrategy.BOX,))
        result = await FootprintDetector(provider, settings).detect(WHITE_HOUSE, options)
        assert result.candidates[0].strategy == DetectionStrategy.BOX

    @pytest.mark.asyncio
    async def test_source_scan_keeps_enclosing_footprint(self, settings):
        """A footprint larger than the search box has no vertex inside it but still contains the point."""
        campus = make_feature(rectangle(-77.0388, 38.8959, -77.0342, 38.8995), name="campus")
        provider = StaticFootprintProvider([campus])
        options = DetectionOptions(strategies=(DetectionStrategy.SOURCE,))

        result = await FootprintDetector(provider, settings).detect(WHITE_HOUSE, options)
        assert not result.is_fallback
        assert len(result.candidates) == 1
        assert result.candidates[0].strategy == DetectionStrategy.SOURCE
        assert result.confidence == CONTAINING_CONFIDENCE
        assert result.polygon.properties["name"] == "campus"

    @pytest.mark.asyncio
    async def test_source_scan_keeps_crossing_footprint(self, settings):
        """A long building whose edges cross the search box is a nearby candidate."""
        row = make_feature(rectangle(-77.0400, 38.8979, -77.0330, 38.89795), name="row")
        provider = StaticFootprintProvider([row])
        options = DetectionOptions(strategies=(DetectionStrategy.SOURCE,))

        result = await FootprintDetector(provider, settings).detect(WHITE_HOUSE, options)
        assert not result.is_fallback
        assert [c.strategy for c in result.candidates] == [DetectionStrategy.SOURCE]

    @pytest.mark.asyncio
    async def test_source_timeout(self, main_building, settings):
        """A source that never loads times out."""
        provider = StaticFootprintProvider([main_building], ready=False)
        detector = FootprintDetector(provider, settings)

        with pytest.raises(DetectionTimeout) as exc_info:
            await detector.detect(WHITE_HOUSE, DetectionOptions(timeout_s=0.05))
        assert exc_info.value.timeout_s == 0.05

    @pytest.mark.asyncio
    async def test_waits_for_loading_source(self, main_building, settings):
        provider = StaticFootprintProvider([main_building], ready=False)
        detector = FootprintDetector(provider, settings)

        task = asyncio.ensure_future(detector.detect(WHITE_HOUSE, DetectionOptions(timeout_s=5)))
        await asyncio.sleep(0)
        assert not task.done()

        await provider.load()
        result = await task
        assert not result.is_fallback

    @pytest.mark.asyncio
    async def test_failed_source(self, tmp_path, settings):
        provider = StaticFootprintProvider.from_file(tmp_path / "missing.geojson")
        with pytest.raises(ProviderUnavailable):
            await provider.load()

        with pytest.raises(ProviderUnavailable):
            await FootprintDetector(provider, settings).detect(WHITE_HOUSE)

    @pytest.mark.asyncio
    async def test_invalid_coordinate(self, detector):
        with pytest.raises(ValidationError):
            await detector.detect(Coordinate(200.0, 0.0))


class TestDetectInArea:
    """Tests for FootprintDetector.detect_in_area."""

    @pytest.mark.asyncio
    async def test_largest_first(self, main_building, annex_building, nearby_building, settings):
        provider = StaticFootprintProvider([annex_building, nearby_building, main_building])
        bounds = Bounds(north=38.8982, south=38.8972, east=-77.0359, west=-77.0371)
        candidates = await FootprintDetector(provider, settings).detect_in_area(bounds)

        names = [c.source_properties["name"] for c in candidates]
        assert names[0] == "main"
        assert set(names) == {"main", "annex", "nearby"}
        areas = [c.approximate_area for c in candidates]
        assert areas == sorted(areas, reverse=True)

    @pytest.mark.asyncio
    async def test_max_results(self, main_building, annex_building, settings):
        provider = StaticFootprintProvider([annex_building, main_building])
        bounds = Bounds(north=38.8982, south=38.8972, east=-77.0359, west=-77.0371)
        candidates = await FootprintDetector(provider, settings).detect_in_area(bounds, max_results=1)
        assert len(candidates) == 1
