"""
Coordinate primitives.

Everything inside Roofline is ``(longitude, latitude)`` in WGS84 decimal
degrees. Providers that speak ``(lat, lon)`` (Nominatim, Overpass) convert at
the boundary with :meth:`Coordinate.from_lat_lon`.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, NamedTuple, Sequence


class Coordinate(NamedTuple):
    """A WGS84 position, longitude first."""

    lng: float
    lat: float

    @classmethod
    def from_lat_lon(cls, lat: float, lon: float) -> "Coordinate":
        return cls(float(lon), float(lat))

    @classmethod
    def from_any(cls, value: Sequence[float] | dict) -> "Coordinate":
        """
        Build from a ``[lng, lat]`` pair or a mapping with lat/lon keys.

        Mappings accept ``lng``/``lon`` and ``lat`` keys, matching both
        Overpass node geometry and the map surface event payloads.
        """
        if isinstance(value, dict):
            lng = value.get("lng", value.get("lon"))
            return cls(float(lng), float(value["lat"]))
        return cls(float(value[0]), float(value[1]))

    def as_lat_lon(self) -> tuple[float, float]:
        return (self.lat, self.lng)

    def rounded(self, precision: int) -> tuple[float, float]:
        return (round(self.lng, precision), round(self.lat, precision))


Ring = list[Coordinate]


@dataclass(frozen=True)
class Bounds:
    """Geographic bounding box in degrees."""

    north: float
    south: float
    east: float
    west: float

    @classmethod
    def from_coordinates(cls, coords: Iterable[Coordinate]) -> "Bounds | None":
        coords = list(coords)
        if not coords:
            return None
        lngs = [c.lng for c in coords]
        lats = [c.lat for c in coords]
        return cls(north=max(lats), south=min(lats), east=max(lngs), west=min(lngs))

    @property
    def center(self) -> Coordinate:
        return Coordinate((self.east + self.west) / 2, (self.north + self.south) / 2)

    @property
    def width(self) -> float:
        return self.east - self.west

    @property
    def height(self) -> float:
        return self.north - self.south

    def contains(self, point: Coordinate) -> bool:
        return self.west <= point.lng <= self.east and self.south <= point.lat <= self.north

    def expand_meters(self, meters: float) -> "Bounds":
        """Grow the box by ``meters`` on every side."""
        dlat = meters / 111_320.0
        cos_lat = math.cos(math.radians(self.center.lat))
        dlng = meters / (111_320.0 * cos_lat) if cos_lat > 1e-12 else 180.0
        return Bounds(
            north=self.north + dlat,
            south=self.south - dlat,
            east=self.east + dlng,
            west=self.west - dlng,
        )

    def union(self, other: "Bounds") -> "Bounds":
        return Bounds(
            north=max(self.north, other.north),
            south=min(self.south, other.south),
            east=max(self.east, other.east),
            west=min(self.west, other.west),
        )

    def to_tuple(self) -> tuple[float, float, float, float]:
        """Return as (west, south, east, north)."""
        return (self.west, self.south, self.east, self.north)

    def to_overpass_bbox(self) -> str:
        """Format for Overpass QL (south,west,north,east)."""
        return f"{self.south},{self.west},{self.north},{self.east}"
