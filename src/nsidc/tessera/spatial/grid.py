"""
Regular lattices of points or polygon cells over a bounding box.

Supported topologies:

- point: grid points, emitted while they fall inside the closed box
- square: square cells whose origin falls in ``[min, max)`` on each axis
- triangle: each square cell split into two triangles along an alternating
  diagonal
- hex: flat-topped hexagons in an "odd-q" layout, optionally split into six
  triangles around the center

Output is always row-major: rows ascending in y, columns ascending in x.
"""

import logging
import math
from typing import Iterator, Mapping, Optional, Tuple

from nsidc.tessera import constants
from nsidc.tessera.errors import InvalidParameter
from nsidc.tessera.models import (
    BoundingBox,
    Feature,
    FeatureCollection,
    Geometry,
    GeometryType,
    to_shapely,
)

from .spatial_utils import centroid, covers, resolve_epsilon

logger = logging.getLogger(__name__)

TOPOLOGIES = (constants.POINT, constants.SQUARE, constants.HEX, constants.TRIANGLE)

Cell = Tuple[GeometryType, tuple, Tuple[float, float]]


def as_bbox(bbox) -> BoundingBox:
    if isinstance(bbox, BoundingBox):
        return bbox
    return BoundingBox.from_list(bbox)


def validate_cell_size(cell_size) -> float:
    try:
        value = float(cell_size)
    except (TypeError, ValueError):
        raise InvalidParameter(f"Cell size must be a number, got {cell_size!r}")
    if not math.isfinite(value) or value <= 0:
        raise InvalidParameter(f"Cell size must be greater than 0, got {cell_size}")
    return value


def validate_topology(topology) -> str:
    value = str(topology).lower()
    if value not in TOPOLOGIES:
        raise InvalidParameter(
            f"Unknown grid topology {topology!r}, expected one of {', '.join(TOPOLOGIES)}"
        )
    return value


def as_mask(mask) -> Optional[Geometry]:
    """Accept a Geometry, Feature or GeoJSON mapping as a Polygon/MultiPolygon mask."""
    if mask is None:
        return None
    if isinstance(mask, Feature):
        geometry = mask.geometry
    elif isinstance(mask, Geometry):
        geometry = mask
    else:
        geometry = Feature.from_geojson(mask).geometry
    if geometry.type not in (GeometryType.POLYGON, GeometryType.MULTI_POLYGON):
        raise InvalidParameter(
            f"A grid mask must be a Polygon or MultiPolygon, got {geometry.type.value}"
        )
    return geometry


def _origins(low: float, high: float, step: float, eps: float, inclusive: bool) -> list:
    """Lattice coordinates from ``low`` towards ``high``, without padding."""
    origins = []
    i = 0
    while True:
        value = low + i * step
        past_end = value > high + eps if inclusive else value >= high - eps
        if past_end:
            break
        origins.append(value)
        i += 1
    return origins


def _point_cells(bbox: BoundingBox, size: float, eps: float) -> Iterator[Cell]:
    xs = _origins(bbox.min_x, bbox.max_x, size, eps, inclusive=True)
    for y in _origins(bbox.min_y, bbox.max_y, size, eps, inclusive=True):
        for x in xs:
            yield GeometryType.POINT, (x, y), (x, y)


def _square_cells(bbox: BoundingBox, size: float, eps: float) -> Iterator[Cell]:
    xs = _origins(bbox.min_x, bbox.max_x, size, eps, inclusive=False)
    for y in _origins(bbox.min_y, bbox.max_y, size, eps, inclusive=False):
        for x in xs:
            ring = [(x, y), (x + size, y), (x + size, y + size), (x, y + size), (x, y)]
            yield GeometryType.POLYGON, [ring], (x + size / 2, y + size / 2)


def _triangle_cells(bbox: BoundingBox, size: float, eps: float) -> Iterator[Cell]:
    xs = _origins(bbox.min_x, bbox.max_x, size, eps, inclusive=False)
    for row, y in enumerate(_origins(bbox.min_y, bbox.max_y, size, eps, inclusive=False)):
        for column, x in enumerate(xs):
            bl, br = (x, y), (x + size, y)
            tr, tl = (x + size, y + size), (x, y + size)
            if (row + column) % 2 == 0:
                triangles = ([bl, br, tr], [bl, tr, tl])
            else:
                triangles = ([bl, br, tl], [br, tr, tl])
            for triangle in triangles:
                yield GeometryType.POLYGON, [triangle + [triangle[0]]], centroid(triangle)


def _hex_cells(
    bbox: BoundingBox, radius: float, eps: float, triangles: bool
) -> Iterator[Cell]:
    height = math.sqrt(3) * radius
    xs = _origins(bbox.min_x, bbox.max_x, 1.5 * radius, eps, inclusive=True)
    offsets = [
        (radius * math.cos(math.radians(60 * k)), radius * math.sin(math.radians(60 * k)))
        for k in range(6)
    ]
    for row_y in _origins(bbox.min_y, bbox.max_y, height, eps, inclusive=True):
        for q, cx in enumerate(xs):
            # odd-q: odd columns sit half a cell higher
            cy = row_y + height / 2 if q % 2 else row_y
            if cy > bbox.max_y + eps:
                continue
            corners = [(cx + dx, cy + dy) for dx, dy in offsets]
            if not triangles:
                yield GeometryType.POLYGON, [corners + [corners[0]]], (cx, cy)
                continue
            for k in range(6):
                triangle = [(cx, cy), corners[k], corners[(k + 1) % 6]]
                yield GeometryType.POLYGON, [triangle + [triangle[0]]], centroid(triangle)


def generate(
    bbox,
    cell_size: float,
    topology: str = constants.POINT,
    mask=None,
    triangles: bool = False,
    properties: Optional[Mapping] = None,
    epsilon: Optional[float] = None,
) -> FeatureCollection:
    """
    Generate a lattice of points or cells over a bounding box.

    Args:
        bbox: BoundingBox or ``[minX, minY, maxX, maxY]``
        cell_size: Distance between points, or the side of the cells; for hex
                   grids the hexagon circumradius. Must be greater than 0.
        topology: One of 'point', 'square', 'hex' or 'triangle'
        mask: Optional Polygon/MultiPolygon; cells are kept only when their
              representative point is inside or on its boundary
        triangles: Split each hexagon into six triangles (hex only)
        properties: Properties copied onto every generated feature
        epsilon: Coordinate tolerance, defaults to the package tolerance

    Returns:
        FeatureCollection of Point or Polygon features in row-major order

    Raises:
        InvalidParameter: For a non-positive cell size, unknown topology or
                          non-areal mask
    """
    bbox = as_bbox(bbox)
    size = validate_cell_size(cell_size)
    topology = validate_topology(topology)
    mask_geometry = as_mask(mask)
    mask_shape = None if mask_geometry is None else to_shapely(mask_geometry)
    eps = resolve_epsilon(epsilon)

    if topology == constants.POINT:
        cells = _point_cells(bbox, size, eps)
    elif topology == constants.SQUARE:
        cells = _square_cells(bbox, size, eps)
    elif topology == constants.TRIANGLE:
        cells = _triangle_cells(bbox, size, eps)
    else:
        cells = _hex_cells(bbox, size, eps, triangles)

    features = []
    skipped = 0
    for geometry_type, coordinates, representative in cells:
        if mask_shape is not None and not covers(mask_shape, representative, eps):
            skipped += 1
            continue
        features.append(Feature(Geometry(geometry_type, coordinates), properties or {}))

    logger.debug(
        f"Generated {len(features)} {topology} cells over {bbox.to_list()}"
        f" ({skipped} masked out)"
    )
    return FeatureCollection(features)
