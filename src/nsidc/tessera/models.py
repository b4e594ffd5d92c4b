"""
Data models for the tessera package.

This module contains the immutable GeoJSON-like value types shared by every
spatial operation: geometries, features, feature collections and bounding
boxes. Operations never mutate these; they always build new values.
"""

import dataclasses
import math
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterable, Iterator, Mapping, Optional, Sequence, Tuple

from shapely.geometry import mapping, shape

from nsidc.tessera.errors import InvalidParameter

Position = Tuple[float, ...]


class GeometryType(Enum):
    """GeoJSON geometry type names."""

    POINT = "Point"
    MULTI_POINT = "MultiPoint"
    LINE_STRING = "LineString"
    MULTI_LINE_STRING = "MultiLineString"
    POLYGON = "Polygon"
    MULTI_POLYGON = "MultiPolygon"


def _position(values) -> Position:
    if len(values) not in (2, 3):
        raise InvalidParameter(f"A position needs 2 or 3 values, got {len(values)}")
    position = tuple(float(v) for v in values)
    if not all(math.isfinite(v) for v in position):
        raise InvalidParameter(f"Position values must be finite: {position}")
    return position


def _positions(values) -> Tuple[Position, ...]:
    return tuple(_position(p) for p in values)


def _line(values) -> Tuple[Position, ...]:
    line = _positions(values)
    if len(line) < 2:
        raise InvalidParameter("A line string needs at least 2 positions")
    return line


def _ring(values) -> Tuple[Position, ...]:
    ring = list(_positions(values))
    # Rings are closed on construction
    if ring and ring[0] != ring[-1]:
        ring.append(ring[0])
    if len(ring) < 4:
        raise InvalidParameter("A polygon ring needs at least 4 positions")
    return tuple(ring)


def _polygon(values) -> Tuple[Tuple[Position, ...], ...]:
    rings = tuple(_ring(r) for r in values)
    if not rings:
        raise InvalidParameter("A polygon needs an exterior ring")
    return rings


_NORMALIZERS = {
    GeometryType.POINT: _position,
    GeometryType.MULTI_POINT: _positions,
    GeometryType.LINE_STRING: _line,
    GeometryType.MULTI_LINE_STRING: lambda values: tuple(_line(v) for v in values),
    GeometryType.POLYGON: _polygon,
    GeometryType.MULTI_POLYGON: lambda values: tuple(_polygon(v) for v in values),
}


def _as_lists(coordinates):
    if coordinates and isinstance(coordinates[0], float):
        return list(coordinates)
    return [_as_lists(c) for c in coordinates]


@dataclasses.dataclass(frozen=True)
class Geometry:
    """
    A GeoJSON geometry with its coordinates held as nested tuples.

    Polygon rings are closed when the geometry is built, so every ring's
    first position equals its last.
    """

    type: GeometryType
    coordinates: tuple

    def __post_init__(self):
        try:
            geometry_type = GeometryType(self.type)
        except ValueError:
            raise InvalidParameter(f"Unsupported geometry type: {self.type}")
        object.__setattr__(self, "type", geometry_type)
        object.__setattr__(
            self, "coordinates", _NORMALIZERS[geometry_type](self.coordinates)
        )

    def positions(self) -> Iterator[Position]:
        """Yield every position of the geometry, depth first."""
        if self.type == GeometryType.POINT:
            yield self.coordinates
            return
        stack = [self.coordinates]
        while stack:
            item = stack.pop()
            if item and isinstance(item[0], float):
                yield item
            else:
                stack.extend(reversed(item))

    def to_geojson(self) -> dict:
        return {"type": self.type.value, "coordinates": _as_lists(self.coordinates)}

    @classmethod
    def from_geojson(cls, value: Mapping) -> "Geometry":
        if "coordinates" not in value:
            raise InvalidParameter(f"Not a GeoJSON geometry: {value.get('type')}")
        return cls(value["type"], value["coordinates"])


@dataclasses.dataclass(frozen=True)
class Feature:
    """A geometry plus an opaque, read-only property mapping."""

    geometry: Geometry
    properties: Mapping[str, Any] = dataclasses.field(default_factory=dict)
    id: Optional[Any] = None

    def __post_init__(self):
        object.__setattr__(
            self, "properties", MappingProxyType(dict(self.properties or {}))
        )

    def with_properties(self, updates: Mapping[str, Any]) -> "Feature":
        """Return a copy of this feature with ``updates`` merged into its properties."""
        return Feature(self.geometry, {**self.properties, **updates}, self.id)

    def to_geojson(self) -> dict:
        value = {
            "type": "Feature",
            "geometry": self.geometry.to_geojson(),
            "properties": dict(self.properties),
        }
        if self.id is not None:
            value["id"] = self.id
        return value

    @classmethod
    def from_geojson(cls, value: Mapping) -> "Feature":
        if value.get("type") != "Feature":
            return cls(Geometry.from_geojson(value))
        if value.get("geometry") is None:
            raise InvalidParameter("Features without a geometry are not supported")
        return cls(
            Geometry.from_geojson(value["geometry"]),
            value.get("properties") or {},
            value.get("id"),
        )


@dataclasses.dataclass(frozen=True)
class FeatureCollection:
    """An ordered, immutable sequence of features."""

    features: Tuple[Feature, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "features", tuple(self.features))

    def __iter__(self) -> Iterator[Feature]:
        return iter(self.features)

    def __len__(self) -> int:
        return len(self.features)

    def __getitem__(self, index) -> Feature:
        return self.features[index]

    def positions(self) -> Iterator[Position]:
        for feature in self.features:
            yield from feature.geometry.positions()

    def to_geojson(self) -> dict:
        return {
            "type": "FeatureCollection",
            "features": [f.to_geojson() for f in self.features],
        }

    @classmethod
    def from_geojson(cls, value: Mapping) -> "FeatureCollection":
        if value.get("type") == "FeatureCollection":
            return cls(Feature.from_geojson(f) for f in value.get("features", []))
        return cls([Feature.from_geojson(value)])


@dataclasses.dataclass(frozen=True)
class BoundingBox:
    """An axis aligned box; zero width or height is allowed."""

    min_x: float
    min_y: float
    max_x: float
    max_y: float

    def __post_init__(self):
        values = [float(v) for v in (self.min_x, self.min_y, self.max_x, self.max_y)]
        if not all(math.isfinite(v) for v in values):
            raise InvalidParameter(f"Bounding box values must be finite: {values}")
        if values[0] > values[2] or values[1] > values[3]:
            raise InvalidParameter(f"Bounding box minimums exceed maximums: {values}")
        for name, value in zip(("min_x", "min_y", "max_x", "max_y"), values):
            object.__setattr__(self, name, value)

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    def contains(self, position: Sequence[float], epsilon: float = 0.0) -> bool:
        x, y = position[0], position[1]
        return (
            self.min_x - epsilon <= x <= self.max_x + epsilon
            and self.min_y - epsilon <= y <= self.max_y + epsilon
        )

    def to_list(self) -> list:
        return [self.min_x, self.min_y, self.max_x, self.max_y]

    @classmethod
    def from_list(cls, values: Sequence[float]) -> "BoundingBox":
        if len(values) != 4:
            raise InvalidParameter(
                f"A bounding box needs [minX, minY, maxX, maxY], got {list(values)}"
            )
        return cls(*values)

    @classmethod
    def of(cls, positions: Iterable[Sequence[float]]) -> "BoundingBox":
        positions = list(positions)
        if not positions:
            raise InvalidParameter("Cannot compute the bounding box of nothing")
        xs = [p[0] for p in positions]
        ys = [p[1] for p in positions]
        return cls(min(xs), min(ys), max(xs), max(ys))


def feature(geometry_type, coordinates, properties=None, id=None) -> Feature:
    """Build a Feature from a geometry type name and raw coordinates."""
    return Feature(Geometry(geometry_type, coordinates), properties or {}, id)


def as_feature_collection(value) -> FeatureCollection:
    """
    Coerce a FeatureCollection, Feature, Geometry or GeoJSON mapping into a
    FeatureCollection.
    """
    if isinstance(value, FeatureCollection):
        return value
    if isinstance(value, Feature):
        return FeatureCollection([value])
    if isinstance(value, Geometry):
        return FeatureCollection([Feature(value)])
    if isinstance(value, Mapping):
        return FeatureCollection.from_geojson(value)
    return FeatureCollection(value)


def to_shapely(geometry: Geometry):
    """Convert a Geometry into the equivalent shapely geometry."""
    return shape(geometry.to_geojson())


def from_shapely(geom) -> Geometry:
    """Convert a shapely geometry into a Geometry."""
    return Geometry.from_geojson(mapping(geom))
