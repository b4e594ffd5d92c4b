"""
Voronoi cells clipped to a bounding box.

Each cell starts as the bounding box and is intersected with the
perpendicular bisector half-plane of every Delaunay neighbour of its point.
When the points cannot be triangulated (fewer than three, or all collinear)
every other point is used instead.
"""

import logging
import math
from typing import Optional

from shapely.geometry import Polygon

from nsidc.tessera.errors import (
    DegenerateInput,
    DuplicatePoint,
    InsufficientData,
    InvalidParameter,
)
from nsidc.tessera.models import (
    Feature,
    FeatureCollection,
    Geometry,
    GeometryType,
    as_feature_collection,
    from_shapely,
    to_shapely,
)

from .grid import as_bbox
from .spatial_utils import ensure_counter_clockwise, merge_vertices, resolve_epsilon
from .triangulation import delaunay

logger = logging.getLogger(__name__)


def clip_half_plane(cell: Polygon, point, other) -> Polygon:
    """
    Intersect a convex cell with the half-plane of points at least as close
    to ``point`` as to ``other``.
    """
    minx, miny, maxx, maxy = cell.bounds
    reach = 2.0 * (maxx - minx + maxy - miny) + math.dist(point[:2], other[:2])
    nx, ny = other[0] - point[0], other[1] - point[1]
    length = math.hypot(nx, ny)
    nx, ny = nx / length * reach, ny / length * reach
    mx, my = (point[0] + other[0]) / 2.0, (point[1] + other[1]) / 2.0
    half_plane = Polygon(
        [
            (mx - ny, my + nx),
            (mx + ny, my - nx),
            (mx + ny - nx, my - nx - ny),
            (mx - ny - nx, my + nx - ny),
        ]
    )
    return cell.intersection(half_plane)


def _neighbours(positions, eps):
    try:
        triangulation = delaunay(positions, eps)
    except DegenerateInput:
        logger.debug("Points cannot be triangulated, clipping against all points")
        return {i: [j for j in range(len(positions)) if j != i] for i in range(len(positions))}
    adjacency = triangulation.neighbours()
    source = triangulation.source_index
    return {
        source[v]: sorted(source[w] for w in adjacency[v]) for v in range(len(source))
    }


def build(points, bbox, epsilon: Optional[float] = None) -> FeatureCollection:
    """
    Build one Voronoi cell per point, in input order.

    Each cell keeps its point's properties and takes the point's input
    index as its feature id.

    Raises:
        InsufficientData: When there are no points
        DuplicatePoint: When two points coincide within epsilon
        InvalidParameter: For non-Point input, a point outside the bounding
                          box, or a bounding box with no area
    """
    collection = as_feature_collection(points)
    box = as_bbox(bbox)
    eps = resolve_epsilon(epsilon)
    if len(collection) == 0:
        raise InsufficientData("Voronoi diagram needs at least one point")
    if box.width <= 0 or box.height <= 0:
        raise InvalidParameter(f"Voronoi bounding box has no area: {box.to_list()}")

    positions = []
    for index, f in enumerate(collection):
        if f.geometry.type != GeometryType.POINT:
            raise InvalidParameter(f"Voronoi input must be Points, got {f.geometry.type.value}")
        position = f.geometry.coordinates[:2]
        if not box.contains(position, eps):
            raise InvalidParameter(f"Point {index} {position} is outside {box.to_list()}")
        positions.append(position)

    ids, vertices = merge_vertices(positions, eps)
    if len(vertices) < len(positions):
        seen = {}
        for index, vertex in enumerate(ids):
            if vertex in seen:
                raise DuplicatePoint(f"Points {seen[vertex]} and {index} coincide")
            seen[vertex] = index

    neighbours = _neighbours(positions, eps)
    frame = to_shapely(
        Geometry(
            GeometryType.POLYGON,
            [[
                (box.min_x, box.min_y),
                (box.max_x, box.min_y),
                (box.max_x, box.max_y),
                (box.min_x, box.max_y),
            ]],
        )
    )
    features = []
    for index, f in enumerate(collection):
        cell = frame
        for other in neighbours[index]:
            cell = clip_half_plane(cell, positions[index], positions[other])
        if cell.geom_type != "Polygon" or cell.is_empty:
            raise DegenerateInput(f"Voronoi cell of point {index} has no area")
        features.append(
            Feature(from_shapely(ensure_counter_clockwise(cell)), f.properties, index)
        )

    logger.debug(f"Built {len(features)} Voronoi cells")
    return FeatureCollection(features)
