"""
Polygons from a set of noded line segments.

The lines are turned into a planar graph: endpoints that agree within the
coordinate tolerance become shared vertices, and zero-length or repeated
segments collapse. Dangling edges are pruned, bridges (edges whose removal
disconnects the graph) are set aside, and the faces of what remains are
traced by always taking the sharpest left turn. Counter-clockwise faces are
the bounded ones and each becomes an independent polygon.
"""

import logging
from collections import defaultdict, deque
from typing import Dict, List, Optional, Sequence, Set, Tuple

from nsidc.tessera.errors import InvalidParameter, InvalidTopology
from nsidc.tessera.models import (
    Feature,
    FeatureCollection,
    Geometry,
    GeometryType,
    as_feature_collection,
)

from .spatial_utils import (
    merge_vertices,
    point_on_segment,
    resolve_epsilon,
    ring_signed_area,
    segments_intersect,
    trace_rings,
)

logger = logging.getLogger(__name__)

Edge = Tuple[int, int]


class PlanarGraph:
    """Merged vertices and undirected edges, addressed by index."""

    def __init__(self, vertices: Sequence[tuple], edges: Sequence[Edge]):
        self.vertices = list(vertices)
        self.edges = list(edges)

    @classmethod
    def from_lines(cls, lines: Sequence[Sequence], epsilon: Optional[float] = None) -> "PlanarGraph":
        positions = [(p[0], p[1]) for line in lines for p in line]
        ids, vertices = merge_vertices(positions, epsilon)

        edges = []
        seen = set()
        offset = 0
        for line in lines:
            line_ids = ids[offset : offset + len(line)]
            offset += len(line)
            for u, v in zip(line_ids, line_ids[1:]):
                key = (min(u, v), max(u, v))
                if u == v or key in seen:
                    continue
                seen.add(key)
                edges.append(key)
        return cls(vertices, edges)

    def check_noding(self, epsilon: Optional[float] = None) -> None:
        """
        Raises:
            InvalidTopology: When two edges cross, an edge passes through a
                             vertex, or two edges overlap
        """
        eps = resolve_epsilon(epsilon)
        vertices = self.vertices

        def x_range(edge):
            xs = (vertices[edge[0]][0], vertices[edge[1]][0])
            return min(xs), max(xs)

        order = sorted(range(len(self.edges)), key=lambda k: x_range(self.edges[k]))
        for n, k in enumerate(order):
            u, v = self.edges[k]
            high = x_range(self.edges[k])[1]
            for m in order[n + 1 :]:
                if x_range(self.edges[m])[0] > high + eps:
                    break
                s, t = self.edges[m]
                shared = {u, v} & {s, t}
                a, b, c, d = vertices[u], vertices[v], vertices[s], vertices[t]
                if not shared:
                    if segments_intersect(a, b, c, d, eps):
                        raise InvalidTopology(f"Edges {a}-{b} and {c}-{d} are not noded")
                    continue
                # Sharing one vertex, the segments only overlap when collinear
                far = (v if u in shared else u), (t if s in shared else s)
                p, q = vertices[far[0]], vertices[far[1]]
                if point_on_segment(p, c, d, eps) or point_on_segment(q, a, b, eps):
                    raise InvalidTopology(f"Edges {a}-{b} and {c}-{d} overlap")

    def adjacency(self, edges: Optional[Set[int]] = None) -> Dict[int, List[Tuple[int, int]]]:
        """Vertex -> [(neighbour, edge index)], optionally restricted to ``edges``."""
        adjacency = defaultdict(list)
        for index, (u, v) in enumerate(self.edges):
            if edges is None or index in edges:
                adjacency[u].append((v, index))
                adjacency[v].append((u, index))
        return adjacency

    def prune_dangles(self) -> Set[int]:
        """Indices of the edges left after repeatedly removing degree one vertices."""
        alive = set(range(len(self.edges)))
        adjacency = self.adjacency()
        degree = {v: len(adjacent) for v, adjacent in adjacency.items()}
        queue = deque(v for v, d in degree.items() if d == 1)
        while queue:
            v = queue.popleft()
            if degree[v] != 1:
                continue
            for w, index in adjacency[v]:
                if index in alive:
                    alive.discard(index)
                    degree[v] -= 1
                    degree[w] -= 1
                    if degree[w] == 1:
                        queue.append(w)
                    break
        return alive

    def bridges(self, edges: Set[int]) -> Set[int]:
        """Bridges among ``edges``, found with an iterative Tarjan search."""
        adjacency = self.adjacency(edges)
        discovered: Dict[int, int] = {}
        low: Dict[int, int] = {}
        bridges = set()
        timer = 0
        for root in sorted(adjacency):
            if root in discovered:
                continue
            discovered[root] = low[root] = timer
            timer += 1
            stack = [(root, None, iter(adjacency[root]))]
            while stack:
                v, parent_edge, neighbours = stack[-1]
                descended = False
                for w, index in neighbours:
                    if index == parent_edge:
                        continue
                    if w not in discovered:
                        discovered[w] = low[w] = timer
                        timer += 1
                        stack.append((w, index, iter(adjacency[w])))
                        descended = True
                        break
                    low[v] = min(low[v], discovered[w])
                if descended:
                    continue
                stack.pop()
                if stack:
                    parent = stack[-1][0]
                    low[parent] = min(low[parent], low[v])
                    if low[v] > discovered[parent]:
                        bridges.add(parent_edge)
        return bridges


def _lines(collection) -> List[Sequence]:
    lines = []
    for f in collection:
        if f.geometry.type == GeometryType.LINE_STRING:
            lines.append(f.geometry.coordinates)
        elif f.geometry.type == GeometryType.MULTI_LINE_STRING:
            lines.extend(f.geometry.coordinates)
        else:
            raise InvalidParameter(
                f"Polygonize input must be LineStrings, got {f.geometry.type.value}"
            )
    return lines


def polygonize(lines, epsilon: Optional[float] = None) -> FeatureCollection:
    """
    Build polygons from the faces enclosed by noded line segments.

    Args:
        lines: LineString or MultiLineString features
        epsilon: Tolerance used to merge segment endpoints

    Returns:
        FeatureCollection of Polygons, one per enclosed face, without holes

    Raises:
        InvalidParameter: For other geometry types
        InvalidTopology: When the segments are not noded
    """
    eps = resolve_epsilon(epsilon)
    graph = PlanarGraph.from_lines(_lines(as_feature_collection(lines)), eps)
    graph.check_noding(eps)

    alive = graph.prune_dangles()
    bridges = graph.bridges(alive)
    ring_edges = sorted(alive - bridges)
    directed = []
    for index in ring_edges:
        u, v = graph.edges[index]
        directed.extend([(u, v), (v, u)])

    features = []
    for ring in trace_rings(graph.vertices, directed):
        positions = [graph.vertices[v] for v in ring]
        if len(positions) < 3 or ring_signed_area(positions) <= 0:
            continue
        features.append(
            Feature(Geometry(GeometryType.POLYGON, [positions + [positions[0]]]))
        )

    logger.debug(
        f"Polygonized {len(graph.edges)} edges: {len(graph.edges) - len(alive)} dangles,"
        f" {len(bridges)} bridges, {len(features)} faces"
    )
    return FeatureCollection(features)
