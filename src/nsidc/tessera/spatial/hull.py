"""
Convex and concave hulls of point sets.

``convex_hull`` uses Andrew's monotone chain and can optionally dig the hull
inwards towards interior points. ``concave_hull`` keeps the Delaunay
triangles whose edges are all no longer than a maximum length and dissolves
them into one or more polygons.
"""

import logging
import math
from collections import Counter, deque
from typing import List, Optional

from nsidc.tessera.errors import (
    DegenerateInput,
    InsufficientData,
    InvalidParameter,
)
from nsidc.tessera.models import (
    Feature,
    Geometry,
    GeometryType,
    as_feature_collection,
)

from .spatial_utils import (
    assemble_polygons,
    cross,
    distance,
    merge_vertices,
    orientation,
    resolve_epsilon,
    segments_intersect,
    trace_rings,
)
from .triangulation import delaunay

logger = logging.getLogger(__name__)


def _positions(features) -> list:
    return [(p[0], p[1]) for p in as_feature_collection(features).positions()]


def monotone_chain(points: List[tuple]) -> List[tuple]:
    """Counter-clockwise hull of distinct points, without collinear vertices."""
    points = sorted(points)

    def half(sequence):
        chain = []
        for p in sequence:
            while len(chain) >= 2 and cross(chain[-2], chain[-1], p) <= 0:
                chain.pop()
            chain.append(p)
        return chain

    lower = half(points)
    upper = half(reversed(points))
    return lower[:-1] + upper[:-1]


def _segment_distance(p, a, b) -> float:
    dx, dy = b[0] - a[0], b[1] - a[1]
    length_sq = dx * dx + dy * dy
    if length_sq == 0:
        return distance(p, a)
    t = max(0.0, min(1.0, ((p[0] - a[0]) * dx + (p[1] - a[1]) * dy) / length_sq))
    return distance(p, (a[0] + t * dx, a[1] + t * dy))


def _crosses_hull(hull: List[tuple], a, b, skip) -> bool:
    for k, start in enumerate(hull):
        end = hull[(k + 1) % len(hull)]
        if start in skip or end in skip:
            continue
        if segments_intersect(a, b, start, end, 0.0):
            return True
    return False


def dig(hull: List[tuple], interior: List[tuple], concavity: float) -> List[tuple]:
    """
    Push hull edges inwards towards nearby interior points.

    An edge a-b is replaced by a-p-b, where p is the interior point closest
    to it, as long as p is closer to a or b than ``|ab| / concavity``, p is
    closer to a-b than to the neighbouring edges, and the new edges do not
    cross the hull.
    """
    hull = list(hull)
    remaining = set(interior)
    queue = deque(zip(hull, hull[1:] + hull[:1]))
    while queue and remaining:
        a, b = queue.popleft()
        if a not in hull or b not in hull:
            continue
        i = hull.index(a)
        if hull[(i + 1) % len(hull)] != b:
            continue
        before = hull[i - 1]
        after = hull[(i + 2) % len(hull)]
        limit = distance(a, b) / concavity

        candidates = sorted(
            (p for p in remaining if orientation(a, b, p) > 0),
            key=lambda p: (_segment_distance(p, a, b), p),
        )
        for p in candidates:
            reach = _segment_distance(p, a, b)
            if reach >= _segment_distance(p, before, a) or reach >= _segment_distance(p, b, after):
                continue
            if min(distance(p, a), distance(p, b)) > limit:
                continue
            if _crosses_hull(hull, a, p, {a}) or _crosses_hull(hull, p, b, {b}):
                continue
            hull.insert(i + 1, p)
            remaining.discard(p)
            queue.extend([(a, p), (p, b)])
            break
    return hull


def convex_hull(features, concavity: Optional[float] = None, epsilon: Optional[float] = None) -> Feature:
    """
    Smallest convex polygon containing every position of ``features``.

    Args:
        features: Any features; all of their positions are used
        concavity: Optional; when finite, the hull is dug inwards (1 gives
                   a very concave hull, larger values approach the convex
                   hull). None or infinity keeps it convex.

    Raises:
        InsufficientData: For fewer than 3 distinct positions
        DegenerateInput: When all positions are collinear
        InvalidParameter: For a concavity that is not greater than 0
    """
    eps = resolve_epsilon(epsilon)
    _, points = merge_vertices(_positions(features), eps)
    if len(points) < 3:
        raise InsufficientData(f"Convex hull needs 3 distinct points, got {len(points)}")

    hull = monotone_chain(points)
    if len(hull) < 3:
        raise DegenerateInput("All points are collinear")

    if concavity is not None and not math.isinf(concavity):
        if not concavity > 0:
            raise InvalidParameter(f"Concavity must be greater than 0, got {concavity}")
        on_hull = set(hull)
        hull = dig(hull, [p for p in points if p not in on_hull], concavity)

    logger.debug(f"Hull of {len(points)} points has {len(hull)} vertices")
    return Feature(Geometry(GeometryType.POLYGON, [hull + [hull[0]]]))


def concave_hull(points, max_edge: float, epsilon: Optional[float] = None) -> Optional[Feature]:
    """
    Polygon (or MultiPolygon) covering the Delaunay triangles whose edges
    are all no longer than ``max_edge``.

    Returns:
        The hull feature, or None when there are not enough points to
        triangulate, they are collinear, or every triangle is too large

    Raises:
        InvalidParameter: When ``max_edge`` is not greater than 0
    """
    try:
        max_edge = float(max_edge)
    except (TypeError, ValueError):
        raise InvalidParameter(f"Maximum edge must be a number, got {max_edge!r}")
    if math.isnan(max_edge) or max_edge <= 0:
        raise InvalidParameter(f"Maximum edge must be greater than 0, got {max_edge}")

    eps = resolve_epsilon(epsilon)
    try:
        triangulation = delaunay(_positions(points), eps)
    except DegenerateInput as e:
        logger.debug(f"No concave hull: {e}")
        return None

    vertices = triangulation.vertices
    directed = Counter()
    kept = 0
    for triangle in triangulation.triangles:
        edges = [(triangle[k], triangle[(k + 1) % 3]) for k in range(3)]
        if any(distance(vertices[u], vertices[v]) > max_edge for u, v in edges):
            continue
        kept += 1
        directed.update(edges)
    if not kept:
        logger.debug(f"Every triangle has an edge longer than {max_edge}")
        return None

    boundary = [edge for edge in directed if (edge[1], edge[0]) not in directed]
    rings = [[vertices[v] for v in ring] for ring in trace_rings(vertices, boundary)]
    polygons = assemble_polygons(rings, eps)
    if not polygons:
        return None
    if len(polygons) == 1:
        return Feature(Geometry(GeometryType.POLYGON, polygons[0]))
    return Feature(Geometry(GeometryType.MULTI_POLYGON, polygons))
