"""Export of roof polygons."""

from .geojson import (
    GeoJSONExporter,
    feature_to_polygon,
    load_polygons,
    polygon_to_feature,
    polygons_to_feature_collection,
)

__all__ = [
    "GeoJSONExporter",
    "feature_to_polygon",
    "load_polygons",
    "polygon_to_feature",
    "polygons_to_feature_collection",
]
