"""
Tests for roof section labels and area totals.
"""

from unittest.mock import Mock

import pytest

from roofline.core.coordinates import Coordinate
from roofline.core.models import Polygon, SlopeClass
from roofline.geometry.polygon_ops import square_ring
from roofline.sections.aggregator import RoofSectionAggregator, ordinal_label


def _section(polygon_id, side_m=10.0):
    return Polygon(square_ring(Coordinate(-77.0365, 38.8977), side_m), polygon_id=polygon_id)


@pytest.fixture
def aggregator():
    return RoofSectionAggregator([_section("A", 10), _section("B", 20), _section("C", 30)])


class TestLabels:
    """Tests for automatic and manual labels."""

    @pytest.mark.parametrize("index,label", [
        (0, "Main Roof"), (1, "Second Roof"), (2, "Third Roof"), (3, "4th Roof"), (10, "11th Roof"),
    ])
    def test_ordinal_label(self, index, label):
        assert ordinal_label(index) == label

    def test_labels_follow_position(self, aggregator):
        assert [s.label for s in aggregator.sections()] == ["Main Roof", "Second Roof", "Third Roof"]

        aggregator.remove("A")
        assert [s.label for s in aggregator.sections()] == ["Main Roof", "Second Roof"]
        assert aggregator.get("B").label == "Main Roof"

    def test_manual_label_sticky(self, aggregator):
        """A renamed section keeps its label while others renumber."""
        aggregator.rename("B", "Garage")

        aggregator.add(_section("D"))
        aggregator.remove("A")
        aggregator.add(_section("E"))
        aggregator.move("B", 3)

        assert aggregator.get("B").label == "Garage"
        labels = {s.polygon_id: s.label for s in aggregator.sections()}
        assert labels == {
            "C": "Main Roof",
            "D": "Second Roof",
            "E": "Third Roof",
            "B": "Garage",
        }

    def test_reset_label(self, aggregator):
        aggregator.rename("C", "Porch")
        aggregator.reset_label("C")
        assert aggregator.get("C").label == "Third Roof"
        assert not aggregator.get("C").label_overridden

    def test_empty_label_rejected(self, aggregator):
        with pytest.raises(ValueError):
            aggregator.rename("A", "   ")

    def test_sync_relabels(self, aggregator):
        polygons = aggregator.polygons
        aggregator.sync(list(reversed(polygons)))
        assert aggregator.get("C").label == "Main Roof"
        assert aggregator.get("A").label == "Third Roof"

    def test_unknown_section(self, aggregator):
        with pytest.raises(KeyError):
            aggregator.get("missing")


class TestTotals:
    """Tests for area totals."""

    def test_total_is_sum_of_included(self, aggregator):
        expected = sum(p.area.square_feet for p in aggregator.polygons)
        assert aggregator.total_square_feet() == pytest.approx(expected)

        aggregator.set_included("C", False)
        expected -= aggregator.get("C").area.square_feet
        assert aggregator.total_square_feet() == pytest.approx(expected)
        assert aggregator.sections()[2].included is False

    def test_removed_section_leaves_total(self, aggregator):
        removed = aggregator.remove("B")
        assert aggregator.total_square_feet() == pytest.approx(
            aggregator.get("A").area.square_feet + aggregator.get("C").area.square_feet
        )
        assert removed.id == "B"

    def test_square_meters(self, aggregator):
        assert aggregator.total_square_meters() == pytest.approx(
            aggregator.total_square_feet() / 10.7639
        )

    def test_totals_by_slope(self, aggregator):
        aggregator.set_slope_class("A", "Steep")
        aggregator.set_slope_class("B", SlopeClass.MEDIUM)

        totals = aggregator.totals_by_slope()
        assert totals[SlopeClass.STEEP] == pytest.approx(aggregator.get("A").area.square_feet)
        assert totals[SlopeClass.MEDIUM] == pytest.approx(aggregator.get("B").area.square_feet)
        assert totals[SlopeClass.FLAT] == pytest.approx(aggregator.get("C").area.square_feet)
        assert totals[SlopeClass.SHALLOW] == 0.0

    def test_invalid_slope_class(self, aggregator):
        with pytest.raises(ValueError):
            aggregator.set_slope_class("A", "Vertical")

    def test_empty(self):
        aggregator = RoofSectionAggregator()
        assert aggregator.total_square_feet() == 0
        assert aggregator.sections() == []
        assert len(aggregator) == 0

    def test_section_summary(self, aggregator):
        summary = aggregator.sections()[0].to_dict()
        assert summary["label"] == "Main Roof"
        assert summary["slope_class"] == "Flat"
        assert summary["formatted_area"] == aggregator.get("A").area.formatted


class TestChangeListener:
    """Tests for change notifications."""

    def test_on_change(self, aggregator):
        listener = Mock()
        dispose = aggregator.on_change(listener)

        aggregator.set_included("A", False)
        aggregator.set_included("A", False)
        listener.assert_called_once_with(aggregator)

        dispose()
        aggregator.clear()
        listener.assert_called_once()
