"""
Utility functions for spatial geometry operations.

This module contains the predicates and helpers shared by the grid, contour,
hull, triangulation, polygonize and tesselate modules. Coordinate equality
everywhere in the engine goes through ``coords_equal`` / ``merge_vertices``
so that every component applies the same tolerance. Orientation and
containment of finished polygons go through shapely.
"""

import logging
import math
from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from scipy.spatial import cKDTree
from shapely.geometry import Point, Polygon
from shapely.geometry.polygon import orient

from nsidc.tessera import constants

logger = logging.getLogger(__name__)

TWO_PI = 2.0 * math.pi


def resolve_epsilon(epsilon: Optional[float] = None) -> float:
    """Return ``epsilon``, or the package default when it is None."""
    return constants.DEFAULT_EPSILON if epsilon is None else float(epsilon)


def coords_equal(a, b, epsilon: Optional[float] = None) -> bool:
    """
    Compare two positions in the plane within a tolerance.

    Two positions are equal when both their x and y differ by no more than
    ``epsilon``. Any third coordinate is ignored.
    """
    eps = resolve_epsilon(epsilon)
    return abs(a[0] - b[0]) <= eps and abs(a[1] - b[1]) <= eps


def cross(o, a, b) -> float:
    """Z component of the cross product (a - o) x (b - o)."""
    return (a[0] - o[0]) * (b[1] - o[1]) - (a[1] - o[1]) * (b[0] - o[0])


def orientation(a, b, c) -> int:
    """1 when a, b, c turn left, -1 when they turn right, 0 when collinear."""
    value = cross(a, b, c)
    if value > 0:
        return 1
    if value < 0:
        return -1
    return 0


def incircle(a, b, c, d) -> float:
    """
    Positive when ``d`` lies strictly inside the circumcircle of the
    counter-clockwise triangle ``a, b, c``; zero when co-circular.
    """
    adx, ady = a[0] - d[0], a[1] - d[1]
    bdx, bdy = b[0] - d[0], b[1] - d[1]
    cdx, cdy = c[0] - d[0], c[1] - d[1]
    return (
        (adx * adx + ady * ady) * (bdx * cdy - cdx * bdy)
        - (bdx * bdx + bdy * bdy) * (adx * cdy - cdx * ady)
        + (cdx * cdx + cdy * cdy) * (adx * bdy - bdx * ady)
    )


def distance(a, b) -> float:
    return math.hypot(a[0] - b[0], a[1] - b[1])


def open_ring(ring: Sequence) -> list:
    """Return the ring's positions without the closing repeat."""
    ring = list(ring)
    if len(ring) > 1 and tuple(ring[0]) == tuple(ring[-1]):
        ring.pop()
    return ring


def ring_signed_area(ring: Sequence) -> float:
    """Shoelace area; positive for counter-clockwise rings."""
    points = open_ring(ring)
    area = 0.0
    for i, p in enumerate(points):
        q = points[(i + 1) % len(points)]
        area += p[0] * q[1] - q[0] * p[1]
    return area / 2.0


def ensure_counter_clockwise(polygon: Polygon) -> Polygon:
    """
    Return the polygon with a counter-clockwise exterior and clockwise holes.
    """
    return orient(polygon, sign=1.0)


def centroid(positions: Sequence) -> Tuple[float, float]:
    """Mean of the distinct vertices of a ring or position list."""
    points = open_ring(positions)
    n = len(points)
    return (sum(p[0] for p in points) / n, sum(p[1] for p in points) / n)


def point_on_segment(p, a, b, epsilon: Optional[float] = None) -> bool:
    """True when ``p`` is within ``epsilon`` of the closed segment a-b."""
    eps = resolve_epsilon(epsilon)
    dx, dy = b[0] - a[0], b[1] - a[1]
    length_sq = dx * dx + dy * dy
    if length_sq == 0:
        return coords_equal(p, a, eps)
    t = ((p[0] - a[0]) * dx + (p[1] - a[1]) * dy) / length_sq
    t = max(0.0, min(1.0, t))
    return distance(p, (a[0] + t * dx, a[1] + t * dy)) <= eps


def segments_intersect(a, b, c, d, epsilon: Optional[float] = None) -> bool:
    """
    True when the closed segments a-b and c-d cross or touch, including an
    endpoint lying within ``epsilon`` of the other segment.
    """
    d1, d2 = orientation(c, d, a), orientation(c, d, b)
    d3, d4 = orientation(a, b, c), orientation(a, b, d)
    if d1 * d2 < 0 and d3 * d4 < 0:
        return True
    return (
        point_on_segment(a, c, d, epsilon)
        or point_on_segment(b, c, d, epsilon)
        or point_on_segment(c, a, b, epsilon)
        or point_on_segment(d, a, b, epsilon)
    )


def covers(geom, p, epsilon: Optional[float] = None) -> bool:
    """
    True when ``p`` lies inside the shapely geometry ``geom`` or within
    ``epsilon`` of its boundary.
    """
    return geom.distance(Point(p[0], p[1])) <= resolve_epsilon(epsilon)


def merge_vertices(
    positions: Sequence, epsilon: Optional[float] = None
) -> Tuple[List[int], List[tuple]]:
    """
    Merge positions that are equal within ``epsilon`` into shared vertices.

    Uses a KD-tree with the Chebyshev metric so the result agrees with
    ``coords_equal``. Clusters are formed transitively and each takes the
    coordinates of its first member.

    Returns:
        Tuple of (vertex id for each input position, vertex positions) where
        vertices are numbered in order of first appearance.
    """
    if len(positions) == 0:
        return [], []

    eps = resolve_epsilon(epsilon)
    parent = list(range(len(positions)))

    def find(i):
        while parent[i] != i:
            parent[i] = parent[parent[i]]
            i = parent[i]
        return i

    tree = cKDTree(np.asarray([(p[0], p[1]) for p in positions], dtype=float))
    for i, j in sorted(tree.query_pairs(r=eps, p=np.inf)):
        root_i, root_j = find(i), find(j)
        if root_i != root_j:
            parent[max(root_i, root_j)] = min(root_i, root_j)

    ids = []
    vertices = []
    vertex_of_root: Dict[int, int] = {}
    for i in range(len(positions)):
        root = find(i)
        if root not in vertex_of_root:
            vertex_of_root[root] = len(vertices)
            vertices.append(tuple(positions[root]))
        ids.append(vertex_of_root[root])
    return ids, vertices


def split_ring(ring: Sequence[int]) -> List[List[int]]:
    """
    Split a ring of vertex ids wherever it passes through a vertex more than
    once, so that each returned ring visits every vertex at most once.
    """
    rings = []
    stack = []
    depth = {}
    for v in ring:
        if v not in depth:
            depth[v] = len(stack)
            stack.append(v)
            continue
        start = depth[v]
        rings.append(stack[start:])
        for w in stack[start + 1 :]:
            del depth[w]
        del stack[start + 1 :]
    rings.append(stack)
    return rings


def trace_rings(vertices: Sequence, edges: Sequence[Tuple[int, int]]) -> List[List[int]]:
    """
    Trace closed rings through a set of directed edges.

    Arriving at a vertex along ``u -> v``, the ring continues on the outgoing
    edge that comes next in clockwise order from ``v -> u``: the sharpest
    left turn. With the region on the left of every edge this yields
    minimal faces and keeps regions that touch at a single vertex apart.

    A face whose boundary pinches at a vertex, such as a hole touching the
    exterior, is walked as one ring; those walks are cut apart with
    ``split_ring`` so exteriors and holes come back as separate rings.

    Returns:
        List of rings as vertex id lists (not closed).
    """
    angles = [
        math.atan2(vertices[v][1] - vertices[u][1], vertices[v][0] - vertices[u][0])
        for u, v in edges
    ]
    outgoing = defaultdict(list)
    for index, (u, _) in enumerate(edges):
        outgoing[u].append(index)

    next_edge = {}
    for index, (u, v) in enumerate(edges):
        reverse = angles[index] + math.pi
        best, best_turn = None, None
        for candidate in outgoing[v]:
            turn = (reverse - angles[candidate]) % TWO_PI
            if turn <= 1e-15 or edges[candidate][1] == u and turn >= TWO_PI - 1e-15:
                turn = TWO_PI
            if best_turn is None or turn < best_turn:
                best, best_turn = candidate, turn
        next_edge[index] = best

    used = [False] * len(edges)
    rings = []
    for start in range(len(edges)):
        if used[start]:
            continue
        ring = []
        index = start
        while True:
            used[index] = True
            ring.append(edges[index][0])
            index = next_edge[index]
            if index == start:
                rings.extend(split_ring(ring))
                break
            if index is None or used[index]:
                logger.debug(f"Dropping open chain of {len(ring)} edges")
                break
    return rings


def remove_collinear(ring: Sequence) -> list:
    """
    Drop repeated and exactly collinear vertices from an open ring.
    """
    points = []
    for p in open_ring(ring):
        while len(points) >= 2 and cross(points[-2], points[-1], p) == 0:
            points.pop()
        if not points or tuple(points[-1]) != tuple(p):
            points.append(p)
    while len(points) > 3 and cross(points[-2], points[-1], points[0]) == 0:
        points.pop()
    while len(points) > 3 and cross(points[-1], points[0], points[1]) == 0:
        points.pop(0)
    return points


def assemble_polygons(
    rings: Sequence[Sequence], epsilon: Optional[float] = None
) -> List[List[list]]:
    """
    Group traced rings into polygons.

    Counter-clockwise rings are exteriors and clockwise rings are holes.
    Each hole goes to the smallest exterior that covers all of its
    vertices. Rings with no area are discarded.

    Returns:
        List of polygons, each a list of closed rings with the exterior
        first (counter-clockwise) and its holes after (clockwise).
    """
    exteriors = []
    holes = []
    for ring in rings:
        points = remove_collinear(ring)
        if len(points) < 3:
            continue
        area = ring_signed_area(points)
        if area > 0:
            exteriors.append((area, Polygon(points)))
        elif area < 0:
            holes.append(points)

    interiors = [[] for _ in exteriors]
    for hole in holes:
        owner, owner_area = None, None
        for index, (area, shell) in enumerate(exteriors):
            if owner_area is not None and area >= owner_area:
                continue
            if all(covers(shell, p, epsilon) for p in hole):
                owner, owner_area = index, area
        if owner is None:
            logger.debug(f"Discarding hole with {len(hole)} vertices and no exterior")
            continue
        interiors[owner].append(hole)

    polygons = []
    for (_, shell), shell_holes in zip(exteriors, interiors):
        polygon = ensure_counter_clockwise(Polygon(shell.exterior.coords, shell_holes))
        polygons.append(
            [list(polygon.exterior.coords)] + [list(ring.coords) for ring in polygon.interiors]
        )
    return polygons
