"""
Triangles covering a polygon, by ear clipping.

Holes are joined to the exterior through a bridge to a mutually visible
vertex, turning the polygon into a single weakly simple ring that is then
clipped one ear at a time. Holes may touch each other or the exterior at a
vertex, so the ring can pass through the same point more than once; ring
entries are told apart by their position in the ring, never by their
coordinates alone.
"""

import logging
import math
from typing import List

from nsidc.tessera.errors import InvalidParameter, InvalidTopology
from nsidc.tessera.models import (
    Feature,
    FeatureCollection,
    Geometry,
    GeometryType,
    to_shapely,
)

from .spatial_utils import (
    TWO_PI,
    distance,
    ensure_counter_clockwise,
    open_ring,
    orientation,
    point_on_segment,
    remove_collinear,
)

logger = logging.getLogger(__name__)


def _as_polygon(polygon) -> Feature:
    if isinstance(polygon, Feature):
        value = polygon
    elif isinstance(polygon, Geometry):
        value = Feature(polygon)
    else:
        value = Feature.from_geojson(polygon)
    if value.geometry.type != GeometryType.POLYGON:
        raise InvalidParameter(f"Tesselation needs a Polygon, got {value.geometry.type.value}")
    return value


def _planar(ring) -> List[tuple]:
    return [(p[0], p[1]) for p in remove_collinear(open_ring(ring))]


def split_at_touches(rings: List[List[tuple]]) -> List[List[tuple]]:
    """
    Insert every vertex that lies inside an edge of any ring into that edge,
    so rings only ever touch at shared vertices.
    """
    vertices = {p for ring in rings for p in ring}
    result = []
    for ring in rings:
        split = []
        for k, start in enumerate(ring):
            end = ring[(k + 1) % len(ring)]
            split.append(start)
            inside = [
                p
                for p in vertices
                if p != start and p != end and point_on_segment(p, start, end, 0.0)
            ]
            split.extend(sorted(inside, key=lambda p: distance(start, p)))
        result.append(split)
    return result


def _locally_inside(vertex, target, rings: List[List[tuple]]) -> bool:
    """
    True when the segment from ``vertex`` towards ``target`` starts into the
    polygon.

    Every ring edge meeting ``vertex`` is considered, from all the rings
    that pass through it. The polygon lies to the left of each edge, so the
    answer is decided by the first edge clockwise from the segment: inside
    when that edge leaves ``vertex``, outside when it arrives there.
    """
    heading = math.atan2(target[1] - vertex[1], target[0] - vertex[0])
    best = None
    for ring in rings:
        for k, start in enumerate(ring):
            end = ring[(k + 1) % len(ring)]
            if start == end:
                continue
            if start == vertex:
                other, leaving = end, True
            elif end == vertex:
                other, leaving = start, False
            else:
                continue
            angle = math.atan2(other[1] - vertex[1], other[0] - vertex[0])
            offset = (heading - angle) % TWO_PI
            if offset == 0:
                return False
            key = (offset, not leaving)
            if best is None or key < best[0]:
                best = (key, leaving)
    return best is not None and best[1]


def _blocked(a, b, rings: List[List[tuple]]) -> bool:
    """True when segment a-b meets a ring edge anywhere but at a or b."""
    for ring in rings:
        for k, start in enumerate(ring):
            end = ring[(k + 1) % len(ring)]
            if (
                orientation(a, b, start) * orientation(a, b, end) < 0
                and orientation(start, end, a) * orientation(start, end, b) < 0
            ):
                return True
            for p in (start, end):
                if p != a and p != b and point_on_segment(p, a, b, 0.0):
                    return True
    return False


def _opens_into(ring: List[tuple], k: int, p) -> bool:
    """True when the direction from ``ring[k]`` to ``p`` is strictly inside the corner."""
    vertex, before, after = ring[k], ring[k - 1], ring[(k + 1) % len(ring)]

    def angle(q):
        return math.atan2(q[1] - vertex[1], q[0] - vertex[0])

    span = (angle(before) - angle(after)) % TWO_PI
    offset = (angle(p) - angle(after)) % TWO_PI
    return 0 < offset < span


def bridge_holes(exterior: List[tuple], holes: List[List[tuple]]) -> List[tuple]:
    """
    Merge clockwise holes into a counter-clockwise exterior, rightmost hole
    first.

    A hole is joined through the nearest ring vertex it can see. A hole that
    can see none, because it touches the ring at its anchor vertex, is
    spliced in at that shared vertex instead.
    """
    ring = list(exterior)
    pending = sorted(holes, key=lambda hole: max(p[0] for p in hole), reverse=True)
    while pending:
        hole = pending.pop(0)
        m = max(range(len(hole)), key=lambda k: (hole[k][0], hole[k][1]))
        anchor = hole[m]
        rings = [ring, hole] + pending
        candidates = sorted(
            range(len(ring)),
            key=lambda k: ((ring[k][0] - anchor[0]) ** 2 + (ring[k][1] - anchor[1]) ** 2, k),
        )
        for k in candidates:
            if ring[k] == anchor:
                continue
            if not _locally_inside(ring[k], anchor, rings):
                continue
            if not _locally_inside(anchor, ring[k], rings):
                continue
            if _blocked(ring[k], anchor, rings):
                continue
            ring = ring[: k + 1] + hole[m:] + hole[: m + 1] + ring[k:]
            break
        else:
            shared = next(
                (
                    k
                    for k in candidates
                    if ring[k] == anchor
                    and _opens_into(ring, k, hole[m - 1])
                    and _opens_into(ring, k, hole[(m + 1) % len(hole)])
                ),
                None,
            )
            if shared is None:
                raise InvalidTopology("Hole is not inside the polygon exterior")
            ring = ring[:shared] + hole[m:] + hole[:m] + ring[shared:]
    return ring


def _inside_triangle(p, a, b, c) -> bool:
    return orientation(a, b, p) >= 0 and orientation(b, c, p) >= 0 and orientation(c, a, p) >= 0


def _enters(corner, towards, triangle) -> bool:
    """True when an edge from a corner of the triangle heads into its interior."""
    a, b, c = triangle
    sides = [(s, e) for s, e in ((a, b), (b, c), (c, a)) if corner in (s, e)]
    return all(orientation(s, e, towards) > 0 for s, e in sides)


def _is_ear(ring: List[tuple], remaining: List[int], k: int) -> bool:
    n = len(remaining)
    corners = ((k - 1) % n, k, (k + 1) % n)
    triangle = tuple(ring[remaining[j]] for j in corners)
    if orientation(*triangle) <= 0:
        return False
    for j in range(n):
        if j in corners:
            continue
        p = ring[remaining[j]]
        if p in triangle:
            neighbours = (ring[remaining[j - 1]], ring[remaining[(j + 1) % n]])
            if any(_enters(p, q, triangle) for q in neighbours):
                return False
        elif _inside_triangle(p, *triangle):
            return False
    return True


def _is_spike(a, b, c) -> bool:
    """True when ``b`` repeats ``a`` or the ring doubles back on itself at ``b``."""
    if b == a:
        return True
    folded = (a[0] - b[0]) * (c[0] - b[0]) + (a[1] - b[1]) * (c[1] - b[1]) > 0
    return orientation(a, b, c) == 0 and folded


def _drop_spikes(ring: List[tuple], remaining: List[int]) -> None:
    k = 0
    while len(remaining) > 2 and k < len(remaining):
        n = len(remaining)
        a, b, c = (ring[remaining[j]] for j in (k - 1, k, (k + 1) % n))
        if _is_spike(a, b, c):
            del remaining[k]
            k = 0
        else:
            k += 1


def ear_clip(ring: List[tuple]) -> List[tuple]:
    """Triangles of a counter-clockwise, weakly simple ring."""
    remaining = list(range(len(ring)))
    triangles = []
    while True:
        _drop_spikes(ring, remaining)
        n = len(remaining)
        if n <= 3:
            break
        ear = next((k for k in range(n) if _is_ear(ring, remaining, k)), None)
        if ear is None:
            degenerate = next(
                (
                    k
                    for k in range(n)
                    if orientation(*(ring[remaining[j]] for j in (k - 1, k, (k + 1) % n))) == 0
                ),
                None,
            )
            if degenerate is None:
                raise InvalidTopology("Polygon is not simple and cannot be tesselated")
            del remaining[degenerate]
            continue
        triangles.append(tuple(ring[remaining[j]] for j in (ear - 1, ear, (ear + 1) % n)))
        del remaining[ear]
    if len(remaining) == 3:
        last = tuple(ring[v] for v in remaining)
        if orientation(*last) > 0:
            triangles.append(last)
    return triangles


def tesselate(polygon) -> FeatureCollection:
    """
    Split a Polygon, holes included, into counter-clockwise triangles whose
    areas add up to the polygon's area. Each triangle keeps the polygon's
    properties.

    Raises:
        InvalidParameter: When the input is not a Polygon
        InvalidTopology: When the polygon is not simple
    """
    source = _as_polygon(polygon)
    outline = ensure_counter_clockwise(to_shapely(source.geometry))
    exterior = _planar(outline.exterior.coords)
    holes = [_planar(ring.coords) for ring in outline.interiors]
    rings = split_at_touches([exterior] + [hole for hole in holes if len(hole) >= 3])

    triangles = ear_clip(bridge_holes(rings[0], rings[1:]))
    logger.debug(f"Tesselated polygon with {len(rings) - 1} hole(s) into {len(triangles)} triangles")
    return FeatureCollection(
        Feature(Geometry(GeometryType.POLYGON, [list(t) + [t[0]]]), source.properties)
        for t in triangles
    )
