"""
Tests for footprint providers and provider lifecycle state.
"""

import json
from unittest.mock import Mock

import pytest

from roofline.core.coordinates import Bounds, Coordinate
from roofline.core.exceptions import ProviderUnavailable
from roofline.core.lifecycle import ProviderState, ProviderStatus
from roofline.geo.providers import (
    FootprintProvider,
    OverpassFootprintProvider,
    StaticFootprintProvider,
    coordinate_to_quadkey,
    quadkey_bounds,
)

from conftest import WHITE_HOUSE


# =============================================================================
# LIFECYCLE
# =============================================================================

class TestProviderState:
    """Tests for the provider state machine."""

    def test_initial_state(self):
        state = ProviderState("test")
        assert state.status == ProviderStatus.UNINITIALIZED
        assert not state.is_ready
        with pytest.raises(ProviderUnavailable):
            state.require_ready()

    def test_listeners_see_transitions(self):
        state = ProviderState("test")
        seen = []
        dispose = state.subscribe(seen.append)
        state.begin_loading()
        state.mark_ready()
        dispose()
        state.reset()
        assert seen == [ProviderStatus.LOADING, ProviderStatus.READY]

    def test_invalid_transition(self):
        state = ProviderState("test")
        with pytest.raises(RuntimeError):
            state.mark_ready()

    @pytest.mark.asyncio
    async def test_initialize_sync_loader(self):
        state = ProviderState("test")
        calls = []
        await state.initialize(lambda: calls.append(1))
        assert state.is_ready
        assert calls == [1]

    @pytest.mark.asyncio
    async def test_initialize_async_loader(self):
        state = ProviderState("test")

        async def loader():
            return None

        await state.initialize(loader)
        assert state.status == ProviderStatus.READY

    @pytest.mark.asyncio
    async def test_initialize_twice_is_noop(self):
        state = ProviderState("test")
        await state.initialize()
        await state.initialize()
        assert state.is_ready

    @pytest.mark.asyncio
    async def test_failure_is_sticky_until_reset(self):
        """A failed provider stays failed until reset and re-initialized."""
        state = ProviderState("test")

        def broken():
            raise OSError("disk on fire")

        with pytest.raises(ProviderUnavailable) as exc_info:
            await state.initialize(broken)
        assert state.status == ProviderStatus.FAILED
        assert isinstance(exc_info.value.cause, OSError)

        with pytest.raises(ProviderUnavailable):
            await state.initialize(lambda: None)
        assert state.status == ProviderStatus.FAILED

        state.reset()
        await state.initialize(lambda: None)
        assert state.is_ready
        assert state.error is None


# =============================================================================
# QUADKEYS
# =============================================================================

class TestQuadkeys:
    """Tests for source tile math."""

    def test_level_one_corners(self):
        assert coordinate_to_quadkey(Coordinate(-179.9, 85.0), 1) == "0"
        assert coordinate_to_quadkey(Coordinate(179.9, -85.0), 1) == "3"

    def test_tile_contains_point(self):
        quadkey = coordinate_to_quadkey(WHITE_HOUSE, 17)
        assert len(quadkey) == 17
        assert quadkey_bounds(quadkey).contains(WHITE_HOUSE)

    def test_child_inside_parent(self):
        child = coordinate_to_quadkey(WHITE_HOUSE, 12)
        parent = quadkey_bounds(child[:-1])
        tile = quadkey_bounds(child)
        assert parent.west <= tile.west and tile.east <= parent.east
        assert parent.south <= tile.south and tile.north <= parent.north


# =============================================================================
# STATIC PROVIDER
# =============================================================================

class TestStaticFootprintProvider:
    """Tests for the in-memory provider."""

    def test_base_class_is_abstract(self):
        with pytest.raises(TypeError):
            FootprintProvider()

        class PointOnly(FootprintProvider):
            def query_point(self, point):
                return []

        with pytest.raises(TypeError):
            PointOnly()

    def test_ready_by_default(self, provider):
        assert provider.is_source_loaded()
        assert len(provider) == 1

    def test_query_point(self, provider):
        assert len(provider.query_point(WHITE_HOUSE)) == 1
        assert provider.query_point(Coordinate(-77.0400, 38.8977)) == []

    def test_query_points_in_order(self, main_building, nearby_building):
        provider = StaticFootprintProvider([main_building, nearby_building])
        features = provider.query_points([Coordinate(-77.0361, 38.8977), WHITE_HOUSE])
        names = [f["properties"]["name"] for f in features]
        assert names == ["main", "nearby", "main"]

    def test_query_box(self, main_building, nearby_building):
        provider = StaticFootprintProvider([main_building, nearby_building])
        bounds = Bounds(north=38.8979, south=38.8975, east=-77.0360, west=-77.0362)
        names = {f["properties"]["name"] for f in provider.query_box(bounds)}
        assert names == {"main", "nearby"}

    def test_scan_source_includes_unparseable(self, main_building):
        broken = {"type": "Feature", "geometry": None, "properties": {"name": "broken"}}
        provider = StaticFootprintProvider([main_building, broken])
        names = [f["properties"]["name"] for f in provider.scan_source(WHITE_HOUSE)]
        assert names == ["main", "broken"]
        assert [f["properties"]["name"] for f in provider.query_point(WHITE_HOUSE)] == ["main"]

    def test_from_geojson(self, feature_collection):
        provider = StaticFootprintProvider.from_geojson(feature_collection)
        assert len(provider) == 2

    @pytest.mark.asyncio
    async def test_from_file(self, tmp_path, feature_collection):
        path = tmp_path / "buildings.geojson"
        path.write_text(json.dumps(feature_collection))

        provider = StaticFootprintProvider.from_file(path)
        assert not provider.is_source_loaded()
        await provider.load()
        assert provider.is_source_loaded()
        assert len(provider) == 2

    @pytest.mark.asyncio
    async def test_missing_file_fails(self, tmp_path):
        provider = StaticFootprintProvider.from_file(tmp_path / "missing.geojson")
        with pytest.raises(ProviderUnavailable):
            await provider.load()
        assert provider.state.status == ProviderStatus.FAILED
        with pytest.raises(ProviderUnavailable):
            await provider.wait_until_loaded()


# =============================================================================
# OVERPASS PROVIDER
# =============================================================================

def _overpass_http(elements):
    http = Mock()
    response = Mock()
    response.json.return_value = {"elements": elements}
    http.post.return_value = response
    return http


WAY = {
    "type": "way",
    "id": 42,
    "tags": {"building": "yes"},
    "geometry": [
        {"lat": 38.8973, "lon": -77.0370},
        {"lat": 38.8973, "lon": -77.0360},
        {"lat": 38.8981, "lon": -77.0360},
        {"lat": 38.8981, "lon": -77.0370},
        {"lat": 38.8973, "lon": -77.0370},
    ],
}


class TestOverpassFootprintProvider:
    """Tests for the Overpass provider (HTTP mocked)."""

    def test_way_to_feature(self):
        feature = OverpassFootprintProvider.element_to_feature(WAY)
        assert feature["properties"] == {"building": "yes", "osm_id": "way/42"}
        assert feature["geometry"] == WAY["geometry"]

    def test_relation_to_feature(self):
        relation = {
            "type": "relation",
            "id": 7,
            "members": [
                {"role": "outer", "geometry": WAY["geometry"]},
                {"role": "inner", "geometry": WAY["geometry"][:3]},
            ],
        }
        feature = OverpassFootprintProvider.element_to_feature(relation)
        assert feature["geometry"]["type"] == "MultiPolygon"
        assert len(feature["geometry"]["coordinates"]) == 1
        assert feature["properties"]["osm_id"] == "relation/7"

    def test_element_without_geometry(self):
        assert OverpassFootprintProvider.element_to_feature({"type": "way", "id": 1}) is None
        assert OverpassFootprintProvider.element_to_feature({"type": "relation", "members": []}) is None

    def test_query_points_single_request(self):
        """All grid points go out in one union query."""
        http = _overpass_http([WAY])
        provider = OverpassFootprintProvider(http=http)
        features = provider.query_points([WHITE_HOUSE, Coordinate(-77.0366, 38.8978)])

        assert len(features) == 1
        assert http.post.call_count == 1
        query = http.post.call_args.kwargs["data"]["data"]
        assert query.count("around:1") == 4
        assert "out geom;" in query

    def test_query_box_uses_overpass_bbox(self):
        http = _overpass_http([])
        provider = OverpassFootprintProvider(http=http)
        bounds = Bounds(north=2.0, south=1.0, east=4.0, west=3.0)
        assert provider.query_box(bounds) == []
        assert "(1.0,3.0,2.0,4.0)" in http.post.call_args.kwargs["data"]["data"]

    def test_close(self):
        http = _overpass_http([])
        OverpassFootprintProvider(http=http).close()
        http.close.assert_called_once()
