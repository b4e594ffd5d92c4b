"""
Delaunay triangulation of scattered points (triangulated irregular network).

Points are merged within the coordinate tolerance and inserted in ``(x, y,
input index)`` order. Each new point lies outside the hull built so far, so
it is joined to every hull edge it can see. Lawson edge flips then restore
the empty-circumcircle property. Co-circular configurations never flip, so
the output is reproducible for a given input.
"""

import dataclasses
import logging
from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Set, Tuple

from nsidc.tessera import constants
from nsidc.tessera.errors import DegenerateInput, InvalidParameter
from nsidc.tessera.models import (
    Feature,
    FeatureCollection,
    Geometry,
    GeometryType,
    as_feature_collection,
)

from .interpolation import sample_value
from .spatial_utils import incircle, merge_vertices, orientation, resolve_epsilon

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class Triangulation:
    """
    Result of ``delaunay``.

    ``vertices`` are the merged input positions, ``source_index`` the input
    index each vertex came from, ``triangles`` counter-clockwise vertex
    index triples, and ``hull`` the counter-clockwise hull vertex indices.
    """

    vertices: Tuple[Tuple[float, float], ...]
    triangles: Tuple[Tuple[int, int, int], ...]
    source_index: Tuple[int, ...]
    hull: Tuple[int, ...]

    def edges(self) -> Set[Tuple[int, int]]:
        """Undirected edges as ``(low, high)`` vertex index pairs."""
        edges = set()
        for triangle in self.triangles:
            for k in range(3):
                u, v = triangle[k], triangle[(k + 1) % 3]
                edges.add((min(u, v), max(u, v)))
        return edges

    def neighbours(self) -> Dict[int, Set[int]]:
        adjacency = defaultdict(set)
        for u, v in self.edges():
            adjacency[u].add(v)
            adjacency[v].add(u)
        return adjacency


class _Mesh:
    """Triangles with a directed edge index for flipping."""

    def __init__(self, points):
        self.points = points
        self.triangles: List[Tuple[int, int, int]] = []
        self.edge_owner: Dict[Tuple[int, int], int] = {}

    def add(self, a, b, c) -> None:
        if orientation(self.points[a], self.points[b], self.points[c]) < 0:
            b, c = c, b
        self._store(len(self.triangles), (a, b, c))

    def _store(self, index, triangle) -> None:
        if index == len(self.triangles):
            self.triangles.append(triangle)
        else:
            self.triangles[index] = triangle
        for k in range(3):
            self.edge_owner[(triangle[k], triangle[(k + 1) % 3])] = index

    def _unlink(self, index) -> None:
        triangle = self.triangles[index]
        for k in range(3):
            self.edge_owner.pop((triangle[k], triangle[(k + 1) % 3]), None)

    @staticmethod
    def _opposite(triangle, u, v) -> int:
        return next(w for w in triangle if w != u and w != v)

    def legalize(self, limit: int) -> int:
        """
        Flip edges until every interior edge is locally Delaunay.

        Raises:
            DegenerateInput: When more than ``limit`` flips do not settle
        """
        stack = list(self.edge_owner)
        flips = 0
        while stack:
            u, v = stack.pop()
            first = self.edge_owner.get((u, v))
            second = self.edge_owner.get((v, u))
            if first is None or second is None:
                continue
            a = self._opposite(self.triangles[first], u, v)
            b = self._opposite(self.triangles[second], u, v)
            pu, pv, pa, pb = (self.points[w] for w in (u, v, a, b))
            if incircle(pu, pv, pa, pb) <= 0:
                continue
            if orientation(pu, pb, pa) <= 0 or orientation(pb, pv, pa) <= 0:
                continue
            self._unlink(first)
            self._unlink(second)
            self._store(first, (u, b, a))
            self._store(second, (b, v, a))
            stack.extend([(u, b), (b, v), (v, a), (a, u)])
            flips += 1
            if flips > limit:
                raise DegenerateInput(f"Edge flipping did not settle after {flips} flips")
        return flips


def _flip_limit(count: int) -> int:
    return 50 * (count + 10) ** 2


def _first_non_collinear(points, order) -> int:
    origin, second = points[order[0]], points[order[1]]
    for k in range(2, len(order)):
        if orientation(origin, second, points[order[k]]) != 0:
            return k
    raise DegenerateInput("All points are collinear")


def _insert(mesh: _Mesh, hull: List[int], p: int) -> List[int]:
    points = mesh.points
    n = len(hull)
    visible = [
        orientation(points[hull[i]], points[hull[(i + 1) % n]], points[p]) < 0
        for i in range(n)
    ]
    start = next(i for i in range(n) if visible[i] and not visible[i - 1])
    rotated = hull[start:] + hull[:start]
    run = 0
    while run < n and visible[(start + run) % n]:
        mesh.add(rotated[(run + 1) % n], rotated[run], p)
        run += 1
    return [rotated[0], p] + rotated[run:]


def delaunay(positions: Sequence, epsilon: Optional[float] = None) -> Triangulation:
    """
    Triangulate positions so that no vertex lies strictly inside any
    triangle's circumcircle.

    Raises:
        DegenerateInput: For fewer than 3 distinct positions or collinear
                         positions, or when edge flipping does not settle
    """
    eps = resolve_epsilon(epsilon)
    planar = [(float(p[0]), float(p[1])) for p in positions]
    ids, points = merge_vertices(planar, eps)
    if len(points) < 3:
        raise DegenerateInput(f"Triangulation needs 3 distinct points, got {len(points)}")

    source_index = [None] * len(points)
    for index, vertex in enumerate(ids):
        if source_index[vertex] is None:
            source_index[vertex] = index

    order = sorted(range(len(points)), key=lambda k: (points[k][0], points[k][1], k))
    first = _first_non_collinear(points, order)
    apex = order[first]
    chain = order[:first]

    mesh = _Mesh(points)
    for u, v in zip(chain, chain[1:]):
        mesh.add(u, v, apex)
    if orientation(points[chain[0]], points[chain[1]], points[apex]) > 0:
        hull = chain + [apex]
    else:
        hull = [chain[0], apex] + chain[:0:-1]

    for p in order[first + 1 :]:
        hull = _insert(mesh, hull, p)

    flips = mesh.legalize(_flip_limit(len(points)))
    logger.debug(
        f"Triangulated {len(points)} vertices into {len(mesh.triangles)} triangles"
        f" ({len(positions) - len(points)} merged, {flips} flips)"
    )
    return Triangulation(
        tuple(points), tuple(mesh.triangles), tuple(source_index), tuple(hull)
    )


def triangulate(
    points, value_property: Optional[str] = None, epsilon: Optional[float] = None
) -> FeatureCollection:
    """
    Build a TIN from Point features.

    Args:
        points: Point features
        value_property: When given, each triangle gets the values of its
                        corners (in ring order) under 'a', 'b' and 'c'
        epsilon: Tolerance used to merge coincident points

    Returns:
        FeatureCollection of counter-clockwise triangular Polygons

    Raises:
        DegenerateInput: For fewer than 3 distinct points or collinear input
    """
    collection = as_feature_collection(points)
    for f in collection:
        if f.geometry.type != GeometryType.POINT:
            raise InvalidParameter(
                f"Triangulation input must be Points, got {f.geometry.type.value}"
            )
    triangulation = delaunay([f.geometry.coordinates for f in collection], epsilon)

    features = []
    for triangle in triangulation.triangles:
        corners = [collection[triangulation.source_index[v]] for v in triangle]
        ring = [c.geometry.coordinates for c in corners]
        properties = {}
        if value_property:
            properties = {
                key: sample_value(corner, value_property)
                for key, corner in zip(constants.TIN_CORNER_KEYS, corners)
            }
        features.append(
            Feature(Geometry(GeometryType.POLYGON, [ring + [ring[0]]]), properties)
        )
    return FeatureCollection(features)
