"""
Isolines and isobands from a regular lattice of scalar-valued points.

Isolines use marching squares: each cell corner is classified as above a
break when its value is greater than or equal to the break, crossings are
interpolated linearly along the cell edges, and saddle cells are resolved by
the mean of the four corners. Segments are then chained into line strings by
merging endpoints that agree within the coordinate tolerance.

Isobands are built per cell. Cells entirely inside a band are taken whole and
cells entirely outside are skipped. Partially covered cells are split into
four triangles around the cell center (valued at the corner mean) and each
triangle is clipped to the band by walking its edges and inserting the
interpolated crossings of both thresholds. The cell pieces are dissolved by
cancelling shared edges, and what remains is traced into rings: exteriors
counter-clockwise, holes clockwise.

Crossing points are always interpolated from the lower lattice key to the
higher one so that neighbouring cells compute identical coordinates.
"""

import logging
import math
from collections import Counter, defaultdict
from typing import List, Mapping, Optional, Sequence

import numpy as np

from nsidc.tessera import constants
from nsidc.tessera.errors import InvalidBreaks, InvalidParameter, IrregularGrid, MissingValue
from nsidc.tessera.models import (
    Feature,
    FeatureCollection,
    Geometry,
    GeometryType,
    as_feature_collection,
)

from .interpolation import sample_value
from .spatial_utils import assemble_polygons, merge_vertices, resolve_epsilon, trace_rings

logger = logging.getLogger(__name__)

# Marching squares segments keyed by corner bits tl=8, tr=4, br=2, bl=1.
# Edges: b = bottom, r = right, t = top, l = left. Saddles (5, 10) are
# resolved separately.
_LINE_CASES = {
    1: (("l", "b"),),
    2: (("b", "r"),),
    3: (("l", "r"),),
    4: (("r", "t"),),
    6: (("b", "t"),),
    7: (("l", "t"),),
    8: (("l", "t"),),
    9: (("b", "t"),),
    11: (("r", "t"),),
    12: (("l", "r"),),
    13: (("b", "r"),),
    14: (("l", "b"),),
}
_SADDLE_CASES = {
    # (center above, center below)
    5: ((("b", "r"), ("l", "t")), (("l", "b"), ("r", "t"))),
    10: ((("l", "b"), ("r", "t")), (("l", "t"), ("b", "r"))),
}


class _Lattice:
    """
    A regular grid of values. Keys are ``(i, j, 0)`` for the corner at
    column i and row j, and ``(i, j, 1)`` for the center of the cell whose
    lower left corner is ``(i, j)``.
    """

    def __init__(self, xs: Sequence[float], ys: Sequence[float], z: np.ndarray):
        self.xs = list(xs)
        self.ys = list(ys)
        self.z = z

    @property
    def columns(self) -> int:
        return len(self.xs)

    @property
    def rows(self) -> int:
        return len(self.ys)

    def position(self, key):
        i, j, center = key
        if center:
            return (
                (self.xs[i] + self.xs[i + 1]) / 2.0,
                (self.ys[j] + self.ys[j + 1]) / 2.0,
            )
        return (self.xs[i], self.ys[j])

    def value(self, key) -> float:
        i, j, center = key
        if center:
            return float(self.z[j : j + 2, i : i + 2].mean())
        return float(self.z[j, i])

    def crossing(self, a, b, level: float):
        """Point on the segment a-b where the linear field equals ``level``."""
        if b < a:
            a, b = b, a
        va, vb = self.value(a), self.value(b)
        pa, pb = self.position(a), self.position(b)
        t = (level - va) / (vb - va)
        if t <= 0.0:
            return pa
        if t >= 1.0:
            return pb
        return (pa[0] + t * (pb[0] - pa[0]), pa[1] + t * (pb[1] - pa[1]))


def validate_breaks(breaks, minimum: int = 1) -> List[float]:
    """
    Check that breaks are finite and strictly ascending.

    Raises:
        InvalidBreaks: For too few, non-numeric, unsorted or duplicate breaks
    """
    try:
        values = [float(b) for b in breaks]
    except (TypeError, ValueError):
        raise InvalidBreaks(f"Breaks must be numbers, got {breaks!r}")
    if len(values) < minimum:
        raise InvalidBreaks(f"At least {minimum} break(s) required, got {len(values)}")
    if not all(math.isfinite(v) for v in values):
        raise InvalidBreaks(f"Breaks must be finite, got {values}")
    for low, high in zip(values, values[1:]):
        if not low < high:
            raise InvalidBreaks(f"Breaks must be strictly ascending, got {values}")
    return values


def _axis(values: Sequence[float], eps: float):
    """Merge coordinate values within eps; return (rank of each value, sorted uniques)."""
    ids, uniques = merge_vertices([(v, 0.0) for v in values], eps)
    order = sorted(range(len(uniques)), key=lambda k: uniques[k][0])
    rank = {k: r for r, k in enumerate(order)}
    return [rank[i] for i in ids], [uniques[k][0] for k in order]


def _is_uniform(axis: Sequence[float], eps: float) -> bool:
    steps = np.diff(np.asarray(axis, dtype=float))
    tolerance = max(eps, 1e-6 * float(np.abs(steps).max()))
    return float(steps.max() - steps.min()) <= tolerance


def build_lattice(grid, z_property: Optional[str], epsilon: Optional[float] = None) -> _Lattice:
    """
    Infer the row/column structure of a point grid.

    Raises:
        IrregularGrid: When the points do not form a complete, evenly spaced
                       rectangular lattice of at least 2 x 2 points
        MissingValue: When a point has no value
    """
    eps = resolve_epsilon(epsilon)
    positions = []
    values = []
    for feature in as_feature_collection(grid):
        if feature.geometry.type != GeometryType.POINT:
            raise IrregularGrid(
                f"Contour grids must contain only Points, got {feature.geometry.type.value}"
            )
        positions.append(feature.geometry.coordinates)
        values.append(sample_value(feature, z_property))

    if not positions:
        raise IrregularGrid("Contour grid is empty")

    column_of, xs = _axis([p[0] for p in positions], eps)
    row_of, ys = _axis([p[1] for p in positions], eps)
    if len(xs) < 2 or len(ys) < 2:
        raise IrregularGrid(f"Contour grid needs at least 2 x 2 points, got {len(xs)} x {len(ys)}")
    if len(positions) != len(xs) * len(ys):
        raise IrregularGrid(
            f"{len(positions)} points do not fill a {len(xs)} x {len(ys)} lattice"
        )
    if not (_is_uniform(xs, eps) and _is_uniform(ys, eps)):
        raise IrregularGrid("Contour grid spacing is not uniform")

    z = np.full((len(ys), len(xs)), np.nan)
    for column, row, value in zip(column_of, row_of, values):
        if not np.isnan(z[row, column]):
            raise IrregularGrid(f"Duplicate grid point at column {column}, row {row}")
        z[row, column] = value

    logger.debug(f"Contour lattice is {len(xs)} columns x {len(ys)} rows")
    return _Lattice(xs, ys, z)


def _chain_segments(vertices: Sequence, edges: Sequence) -> List[List[int]]:
    """Chain undirected edges into polylines, open ends first, then loops."""
    adjacency = defaultdict(list)
    for index, (u, v) in enumerate(edges):
        adjacency[u].append(index)
        adjacency[v].append(index)

    used = [False] * len(edges)
    odd = [v for v in range(len(vertices)) if len(adjacency[v]) % 2 == 1]
    lines = []
    for start in odd + list(range(len(vertices))):
        while any(not used[e] for e in adjacency[start]):
            line = [start]
            current = start
            while True:
                edge = next((e for e in adjacency[current] if not used[e]), None)
                if edge is None:
                    break
                used[edge] = True
                u, v = edges[edge]
                current = v if u == current else u
                line.append(current)
            lines.append(line)
    return lines


def _isoline(lattice: _Lattice, level: float, eps: float) -> list:
    points = []
    for j in range(lattice.rows - 1):
        for i in range(lattice.columns - 1):
            bl, br = (i, j, 0), (i + 1, j, 0)
            tr, tl = (i + 1, j + 1, 0), (i, j + 1, 0)
            case = (
                8 * (lattice.value(tl) >= level)
                + 4 * (lattice.value(tr) >= level)
                + 2 * (lattice.value(br) >= level)
                + (lattice.value(bl) >= level)
            )
            if case in (0, 15):
                continue
            if case in _SADDLE_CASES:
                center_above = lattice.value((i, j, 1)) >= level
                pairs = _SADDLE_CASES[case][0 if center_above else 1]
            else:
                pairs = _LINE_CASES[case]
            sides = {"b": (bl, br), "r": (br, tr), "t": (tl, tr), "l": (bl, tl)}
            for first, second in pairs:
                points.append(lattice.crossing(*sides[first], level))
                points.append(lattice.crossing(*sides[second], level))

    ids, vertices = merge_vertices(points, eps)
    edges = []
    seen = set()
    for k in range(0, len(ids), 2):
        u, v = ids[k], ids[k + 1]
        if u == v or (min(u, v), max(u, v)) in seen:
            continue
        seen.add((min(u, v), max(u, v)))
        edges.append((u, v))

    return [[list(vertices[v]) for v in line] for line in _chain_segments(vertices, edges)]


def _band_class(value: float, low: float, high: float) -> int:
    if value < low:
        return 0
    if value < high:
        return 1
    return 2


def _clip_to_band(lattice: _Lattice, keys: Sequence, low: float, high: float) -> list:
    """
    Clip a convex counter-clockwise polygon of lattice keys to ``[low, high)``
    of the linearly interpolated field.
    """
    polygon = []
    for k, a in enumerate(keys):
        b = keys[(k + 1) % len(keys)]
        va, vb = lattice.value(a), lattice.value(b)
        ca, cb = _band_class(va, low, high), _band_class(vb, low, high)
        if ca == 1:
            polygon.append(lattice.position(a))
        if ca == cb:
            continue
        if va < vb:
            levels = [lv for lv, hit in ((low, ca == 0), (high, cb == 2)) if hit]
        else:
            levels = [lv for lv, hit in ((high, ca == 2), (low, cb == 0)) if hit]
        polygon.extend(lattice.crossing(a, b, level) for level in levels)
    return polygon


def _isoband(lattice: _Lattice, low: float, high: float, eps: float) -> list:
    z = lattice.z
    corners = np.stack([z[:-1, :-1], z[:-1, 1:], z[1:, 1:], z[1:, :-1]])
    cell_min = corners.min(axis=0)
    cell_max = corners.max(axis=0)

    pieces = []
    for j in range(lattice.rows - 1):
        for i in range(lattice.columns - 1):
            if cell_max[j, i] < low or cell_min[j, i] >= high:
                continue
            square = [(i, j, 0), (i + 1, j, 0), (i + 1, j + 1, 0), (i, j + 1, 0)]
            if cell_min[j, i] >= low and cell_max[j, i] < high:
                pieces.append([lattice.position(k) for k in square])
                continue
            center = (i, j, 1)
            for k in range(4):
                triangle = [square[k], square[(k + 1) % 4], center]
                piece = _clip_to_band(lattice, triangle, low, high)
                if len(piece) >= 3:
                    pieces.append(piece)

    points = [p for piece in pieces for p in piece]
    ids, vertices = merge_vertices(points, eps)

    directed = Counter()
    offset = 0
    for piece in pieces:
        piece_ids = ids[offset : offset + len(piece)]
        offset += len(piece)
        ring = [v for n, v in enumerate(piece_ids) if v != piece_ids[n - 1]]
        if len(set(ring)) < 3:
            continue
        for n, u in enumerate(ring):
            directed[(u, ring[(n + 1) % len(ring)])] += 1

    boundary = []
    for (u, v), count in directed.items():
        remaining = count - directed.get((v, u), 0)
        boundary.extend([(u, v)] * max(0, remaining))

    rings = [[vertices[v] for v in ring] for ring in trace_rings(vertices, boundary)]
    polygons = assemble_polygons(rings, eps)
    return [[[list(p) for p in ring] for ring in polygon] for polygon in polygons]


def _properties(
    index: int,
    common_properties: Optional[Mapping],
    breaks_properties: Optional[Sequence[Mapping]],
) -> dict:
    properties = dict(common_properties or {})
    if breaks_properties and index < len(breaks_properties):
        properties.update(breaks_properties[index] or {})
    return properties


def extract(
    grid,
    breaks: Sequence[float],
    mode: str = constants.LINES,
    z_property: Optional[str] = constants.DEFAULT_Z_PROPERTY,
    common_properties: Optional[Mapping] = None,
    breaks_properties: Optional[Sequence[Mapping]] = None,
    epsilon: Optional[float] = None,
) -> FeatureCollection:
    """
    Derive isolines or isobands from a regular point grid.

    Args:
        grid: Point features on a regular rectangular lattice
        breaks: Strictly ascending thresholds
        mode: 'lines' for one MultiLineString per break, 'bands' for one
              MultiPolygon per interval ``[breaks[i], breaks[i + 1])``
        z_property: Point property holding the value; falls back to the
                    third coordinate
        common_properties: Properties merged into every output feature
        breaks_properties: Per break (or band) properties; these win over
                           ``common_properties``
        epsilon: Coordinate tolerance used to merge segment endpoints

    Raises:
        IrregularGrid: When the grid is not a regular lattice
        InvalidBreaks: When breaks are empty, unsorted or duplicated
        InvalidParameter: When mode is neither 'lines' nor 'bands'
        MissingValue: When a grid point has no value
    """
    if mode not in (constants.LINES, constants.BANDS):
        raise InvalidParameter(f"Unknown contour mode {mode!r}")
    values = validate_breaks(breaks, 1 if mode == constants.LINES else 2)
    eps = resolve_epsilon(epsilon)
    lattice = build_lattice(grid, z_property, eps)
    key = z_property or "value"

    features = []
    if mode == constants.LINES:
        for index, level in enumerate(values):
            lines = _isoline(lattice, level, eps)
            properties = _properties(index, common_properties, breaks_properties)
            properties[key] = level
            features.append(
                Feature(Geometry(GeometryType.MULTI_LINE_STRING, lines), properties)
            )
            logger.debug(f"Isoline {level}: {len(lines)} line(s)")
    else:
        for index, (low, high) in enumerate(zip(values, values[1:])):
            polygons = _isoband(lattice, low, high, eps)
            properties = _properties(index, common_properties, breaks_properties)
            properties[key] = f"{low:g}-{high:g}"
            features.append(
                Feature(Geometry(GeometryType.MULTI_POLYGON, polygons), properties)
            )
            logger.debug(f"Isoband {low}-{high}: {len(polygons)} polygon(s)")

    return FeatureCollection(features)


def isolines(grid, breaks, z_property=constants.DEFAULT_Z_PROPERTY, **options) -> FeatureCollection:
    """Shorthand for ``extract(grid, breaks, 'lines', ...)``."""
    return extract(grid, breaks, constants.LINES, z_property, **options)


def isobands(grid, breaks, z_property=constants.DEFAULT_Z_PROPERTY, **options) -> FeatureCollection:
    """Shorthand for ``extract(grid, breaks, 'bands', ...)``."""
    return extract(grid, breaks, constants.BANDS, z_property, **options)
