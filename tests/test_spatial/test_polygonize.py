"""
Tests for the polygonize module.
"""

import pytest
from shapely.geometry import shape

from nsidc.tessera.errors import InvalidParameter, InvalidTopology
from nsidc.tessera.models import FeatureCollection, feature
from nsidc.tessera.spatial.polygonize import PlanarGraph, polygonize
from nsidc.tessera.spatial.spatial_utils import ring_signed_area


def lines(*coordinates):
    return FeatureCollection([feature("LineString", c) for c in coordinates])


def areas(collection):
    return sorted(shape(f.geometry.to_geojson()).area for f in collection)


def square(x, y, size=1):
    return [(x, y), (x + size, y), (x + size, y + size), (x, y + size), (x, y)]


class TestPlanarGraph:
    """Test suite for building and inspecting the planar graph."""

    def test_shared_endpoints_merge(self):
        """Test endpoints within the tolerance become one vertex."""
        graph = PlanarGraph.from_lines([[(0, 0), (1, 0)], [(1, 1e-12), (1, 1)]])
        assert len(graph.vertices) == 3
        assert graph.edges == [(0, 1), (1, 2)]

    def test_repeated_and_empty_segments_collapse(self):
        """Test repeated and zero-length segments are dropped."""
        graph = PlanarGraph.from_lines([[(0, 0), (1, 0), (1, 0)], [(1, 0), (0, 0)]])
        assert graph.edges == [(0, 1)]

    def test_prune_dangles(self):
        """Test a tail hanging off a ring is pruned edge by edge."""
        graph = PlanarGraph.from_lines([square(0, 0), [(1, 1), (2, 2), (3, 3)]])
        alive = graph.prune_dangles()
        assert len(alive) == 4

    def test_bridges(self):
        """Test the edge joining two rings is a bridge."""
        graph = PlanarGraph.from_lines([square(0, 0), square(3, 0), [(1, 0), (3, 0)]])
        bridges = graph.bridges(graph.prune_dangles())
        assert [graph.edges[k] for k in bridges] == [(1, 4)]

    def test_ring_has_no_bridges(self):
        """Test a cycle has no bridges."""
        graph = PlanarGraph.from_lines([square(0, 0)])
        assert graph.bridges(set(range(len(graph.edges)))) == set()

    def test_noded_input_passes(self):
        """Test segments meeting only at endpoints are accepted."""
        PlanarGraph.from_lines([square(0, 0), square(1, 0)]).check_noding()

    @pytest.mark.parametrize("segments", [
        [[(0, 0), (2, 2)], [(0, 2), (2, 0)]],
        [[(0, 0), (2, 0)], [(1, 0), (1, 1)]],
        [[(0, 0), (2, 0)], [(1, 0), (3, 0)]],
        [[(0, 0), (2, 0)], [(0, 0), (1, 0)]],
    ])
    def test_unnoded_input_fails(self, segments):
        """Test crossings, T-junctions and overlaps are rejected."""
        with pytest.raises(InvalidTopology):
            PlanarGraph.from_lines(segments).check_noding()


class TestPolygonize:
    """Test suite for polygonizing line work."""

    def test_triangle_edges(self):
        """Test the three edges of a triangle give one polygon."""
        result = polygonize(lines([(0, 0), (4, 0)], [(4, 0), (0, 4)], [(0, 4), (0, 0)]))
        assert len(result) == 1
        ring = result[0].geometry.coordinates[0]
        assert len(ring) == 4
        assert ring_signed_area(ring) == pytest.approx(8.0)

    def test_single_segment(self):
        """Test a lone segment encloses nothing."""
        assert len(polygonize(lines([(0, 0), (1, 1)]))) == 0

    def test_empty_input(self):
        """Test no lines give no polygons."""
        assert len(polygonize([])) == 0

    def test_adjacent_faces(self):
        """Test two squares sharing an edge give two polygons."""
        result = polygonize(lines(square(0, 0), [(1, 0), (2, 0), (2, 1), (1, 1)]))
        assert areas(result) == [pytest.approx(1.0), pytest.approx(1.0)]

    def test_dangle_is_ignored(self):
        """Test a dangling line does not change the face."""
        result = polygonize(lines(square(0, 0), [(1, 1), (2, 2)]))
        assert areas(result) == [pytest.approx(1.0)]

    def test_bridge_is_ignored(self):
        """Test rings joined by a bridge give one polygon each."""
        result = polygonize(lines(square(0, 0), square(3, 0), [(1, 0), (3, 0)]))
        assert areas(result) == [pytest.approx(1.0), pytest.approx(1.0)]

    def test_nested_rings_have_no_holes(self):
        """Test a ring inside another gives two independent polygons."""
        result = polygonize(lines(square(0, 0, 4), square(1, 1, 2)))
        assert areas(result) == [pytest.approx(4.0), pytest.approx(16.0)]
        assert all(len(f.geometry.coordinates) == 1 for f in result)

    def test_multi_line_string(self):
        """Test MultiLineString features are split into their lines."""
        result = polygonize([
            feature("MultiLineString", [[(0, 0), (4, 0), (0, 4)], [(0, 4), (0, 0)]])
        ])
        assert len(result) == 1

    def test_repeated_lines(self):
        """Test repeating every line does not add faces."""
        edges = [[(0, 0), (4, 0)], [(4, 0), (0, 4)], [(0, 4), (0, 0)]]
        assert len(polygonize(lines(*edges, *edges))) == 1

    def test_idempotent(self):
        """Test polygonizing the output's boundaries gives the same polygons."""
        first = polygonize(lines(square(0, 0), [(1, 0), (2, 0), (2, 1), (1, 1)]))
        boundaries = FeatureCollection([
            feature("LineString", f.geometry.coordinates[0]) for f in first
        ])
        second = polygonize(boundaries)
        assert len(second) == len(first)
        for f in second:
            polygon = shape(f.geometry.to_geojson())
            assert any(polygon.equals(shape(g.geometry.to_geojson())) for g in first)

    def test_crossing_lines(self):
        """Test crossing lines are rejected."""
        with pytest.raises(InvalidTopology):
            polygonize(lines([(0, 0), (2, 2)], [(0, 2), (2, 0)], [(0, 0), (0, 2)]))

    def test_non_lines(self):
        """Test non-line input is rejected."""
        with pytest.raises(InvalidParameter):
            polygonize([feature("Point", (0, 0))])
