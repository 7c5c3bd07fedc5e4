"""
GeoJSON import/export of roof polygons.

Exported features carry the section label, slope class, inclusion flag and
area so the pricing side can consume a single FeatureCollection.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from rich.console import Console
from shapely.geometry import Polygon as ShapelyPolygon
from shapely.geometry import mapping

from ..core.models import Polygon, PolygonSource, SlopeClass
from ..geometry.normalizer import normalize
from ..utils.logging_config import get_logger

console = Console()
logger = get_logger(__name__)


def polygon_to_feature(polygon: Polygon) -> Dict[str, Any]:
    geometry = mapping(ShapelyPolygon([(p.lng, p.lat) for p in polygon.ring]))
    return {
        "type": "Feature",
        "id": polygon.id,
        "geometry": json.loads(json.dumps(geometry)),
        "properties": {
            "label": polygon.label,
            "slope_class": polygon.slope_class.value,
            "included": polygon.included,
            "source": polygon.source.value,
            "confidence": polygon.confidence,
            "area_sq_m": round(polygon.area.square_meters, 2),
            "area_sq_ft": round(polygon.area.square_feet, 2),
            "centroid": [polygon.centroid.lng, polygon.centroid.lat],
            "updated_at": polygon.updated_at.isoformat(),
        },
    }


def polygons_to_feature_collection(polygons: Iterable[Polygon]) -> Dict[str, Any]:
    return {
        "type": "FeatureCollection",
        "features": [polygon_to_feature(p) for p in polygons],
    }


def feature_to_polygon(feature: Dict[str, Any]) -> Optional[Polygon]:
    """Rebuild a Polygon from an exported (or any GeoJSON) feature."""
    properties = dict(feature.get("properties") or {})
    try:
        source = PolygonSource(properties.get("source", PolygonSource.DETECTED.value))
    except ValueError:
        source = PolygonSource.DETECTED

    polygon = normalize(
        feature,
        source=source,
        confidence=float(properties.get("confidence", 1.0)),
        properties=properties,
        polygon_id=str(feature["id"]) if feature.get("id") is not None else None,
    )
    if polygon is None:
        return None

    if properties.get("label"):
        polygon.rename(str(properties["label"]), manual=True)
    if properties.get("slope_class"):
        try:
            polygon.slope_class = SlopeClass(properties["slope_class"])
        except ValueError:
            logger.warning(f"Unknown slope class {properties['slope_class']!r}; using Flat")
    if "included" in properties:
        polygon.included = bool(properties["included"])
    return polygon


def load_polygons(data: Dict[str, Any]) -> List[Polygon]:
    """Polygons from a FeatureCollection, skipping invalid features."""
    if data.get("type") == "FeatureCollection":
        features = data.get("features", [])
    else:
        features = [data]

    polygons = []
    for index, feature in enumerate(features):
        polygon = feature_to_polygon(feature)
        if polygon is None:
            logger.warning(f"Skipping feature {index}: not a valid polygon")
            continue
        polygons.append(polygon)
    return polygons


class GeoJSONExporter:
    """Write roof polygons as a GeoJSON FeatureCollection."""

    def __init__(self, pretty: bool = True):
        self.pretty = pretty

    def export(self, polygons: Iterable[Polygon], output_path: Path | str) -> Path:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        data = polygons_to_feature_collection(polygons)

        with open(output_path, "w", encoding="utf-8") as f:
            if self.pretty:
                json.dump(data, f, indent=2, ensure_ascii=False)
            else:
                json.dump(data, f, ensure_ascii=False)

        console.print(f"[green]Exported GeoJSON: {output_path}[/green]")
        return output_path

    @staticmethod
    def read(path: Path | str) -> List[Polygon]:
        with open(path, encoding="utf-8") as f:
            return load_polygons(json.load(f))
