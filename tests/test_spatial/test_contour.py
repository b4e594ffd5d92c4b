"""
Tests for the contour module.
"""

import numpy as np
import pytest
from shapely.geometry import shape

from nsidc.tessera.errors import InvalidBreaks, InvalidParameter, IrregularGrid, MissingValue
from nsidc.tessera.models import FeatureCollection, feature
from nsidc.tessera.spatial import contour
from nsidc.tessera.spatial.spatial_utils import ring_signed_area


def lattice(values, z_property="elevation", spacing=1.0):
    """Point grid from a row-major list of rows, rows ascending in y."""
    return FeatureCollection([
        feature("Point", (i * spacing, j * spacing), {z_property: value})
        for j, row in enumerate(values)
        for i, value in enumerate(row)
    ])


@pytest.fixture
def ramp():
    """A 3x3 grid whose value equals its x coordinate."""
    return lattice([[0, 1, 2], [0, 1, 2], [0, 1, 2]])


@pytest.fixture
def peak():
    """A 5x5 grid of zeros with a single peak in the middle."""
    values = [[0] * 5 for _ in range(5)]
    values[2][2] = 10
    return lattice(values)


class TestLattice:
    """Test suite for inferring the grid structure."""

    def test_unordered_points(self, ramp):
        """Test points may arrive in any order."""
        shuffled = FeatureCollection(list(reversed(list(ramp))))
        result = contour.build_lattice(shuffled, "elevation")
        assert result.xs == [0.0, 1.0, 2.0]
        assert result.z[0].tolist() == [0.0, 1.0, 2.0]

    def test_missing_point(self, ramp):
        """Test a grid with a hole is rejected."""
        with pytest.raises(IrregularGrid):
            contour.build_lattice(FeatureCollection(list(ramp)[:-1]), "elevation")

    def test_duplicate_point(self, ramp):
        """Test a repeated point is rejected."""
        points = list(ramp)
        points[-1] = points[0]
        with pytest.raises(IrregularGrid):
            contour.build_lattice(FeatureCollection(points), "elevation")

    def test_uneven_spacing(self):
        """Test unevenly spaced columns are rejected."""
        points = [feature("Point", (x, y), {"elevation": 1}) for y in (0, 1) for x in (0, 1, 3)]
        with pytest.raises(IrregularGrid):
            contour.build_lattice(points, "elevation")

    def test_single_row(self):
        """Test a grid needs at least two rows."""
        with pytest.raises(IrregularGrid):
            contour.build_lattice(lattice([[0, 1, 2]]), "elevation")

    def test_non_point_features(self):
        """Test non-Point features are rejected."""
        with pytest.raises(IrregularGrid):
            contour.build_lattice([feature("LineString", [(0, 0), (1, 1)])], "elevation")

    def test_missing_value(self):
        """Test points without a value are rejected."""
        points = [feature("Point", (x, y)) for y in (0, 1) for x in (0, 1)]
        with pytest.raises(MissingValue):
            contour.build_lattice(points, "elevation")

    def test_third_coordinate(self):
        """Test the third coordinate is used when the property is missing."""
        points = [feature("Point", (x, y, x + y)) for y in (0, 1) for x in (0, 1)]
        result = contour.build_lattice(points, "elevation")
        assert result.z.tolist() == [[0.0, 1.0], [1.0, 2.0]]


class TestBreaks:
    """Test suite for break validation."""

    @pytest.mark.parametrize("breaks", [[], [2, 1], [1, 1], [1, float("nan")], ["a"]])
    def test_invalid(self, ramp, breaks):
        """Test empty, unsorted, duplicate or non-numeric breaks fail."""
        with pytest.raises(InvalidBreaks):
            contour.isolines(ramp, breaks)

    def test_bands_need_two_breaks(self, ramp):
        """Test bands need at least one interval."""
        with pytest.raises(InvalidBreaks):
            contour.isobands(ramp, [1])

    def test_invalid_breaks_is_invalid_parameter(self, ramp):
        """Test break errors are also ValueErrors."""
        with pytest.raises(ValueError):
            contour.isolines(ramp, [])

    def test_unknown_mode(self, ramp):
        """Test an unknown mode is a parameter error, not a breaks error."""
        with pytest.raises(InvalidParameter) as excinfo:
            contour.extract(ramp, [1], "surfaces")
        assert not isinstance(excinfo.value, InvalidBreaks)


class TestIsolines:
    """Test suite for isolines."""

    def test_straight_line(self, ramp):
        """Test a ramp gives one straight line through both rows of cells."""
        result = contour.isolines(ramp, [0.5])
        assert len(result) == 1
        lines = result[0].geometry.coordinates
        assert len(lines) == 1
        assert [p[0] for p in lines[0]] == [0.5, 0.5, 0.5]
        assert sorted(p[1] for p in lines[0]) == [0.0, 1.0, 2.0]

    def test_one_feature_per_break(self, ramp):
        """Test every break gives a feature, even without crossings."""
        result = contour.isolines(ramp, [0.5, 1.5, 5])
        assert len(result) == 3
        assert [f.properties["elevation"] for f in result] == [0.5, 1.5, 5.0]
        assert result[2].geometry.coordinates == ()

    def test_closed_ring_around_peak(self, peak):
        """Test the isoline around a peak closes on itself."""
        result = contour.isolines(peak, [5])
        lines = result[0].geometry.coordinates
        assert len(lines) == 1
        assert lines[0][0] == lines[0][-1]
        assert len(lines[0]) == 5

    def test_corner_equal_to_break_is_above(self):
        """Test a corner equal to the break is in the upper class."""
        result = contour.isolines(lattice([[1, 1], [1, 1]]), [1])
        assert result[0].geometry.coordinates == ()

    def test_saddle_resolved_by_center(self):
        """Test a saddle cell joins the corners the center agrees with."""
        def joins(lines, x, y):
            return any(
                any(p[0] == x for p in line) and any(p[1] == y for p in line)
                for line in lines
            )

        high_center = contour.isolines(lattice([[1, 0], [0, 1]]), [0.4])[0].geometry.coordinates
        low_center = contour.isolines(lattice([[1, 0], [0, 1]]), [0.6])[0].geometry.coordinates
        assert len(high_center) == 2
        assert len(low_center) == 2
        # center above: the bottom crossing joins the right edge
        assert joins(high_center, 1.0, 0.0)
        # center below: the bottom crossing joins the left edge
        assert joins(low_center, 0.0, 0.0)

    def test_properties(self, ramp):
        """Test common and per-break properties are merged, breaks winning."""
        result = contour.isolines(
            ramp,
            [0.5, 1.5],
            common_properties={"source": "ramp", "stroke": "black"},
            breaks_properties=[{"stroke": "red"}],
        )
        assert dict(result[0].properties) == {"source": "ramp", "stroke": "red", "elevation": 0.5}
        assert dict(result[1].properties) == {"source": "ramp", "stroke": "black", "elevation": 1.5}

    def test_custom_z_property(self):
        """Test the value can come from another property."""
        result = contour.isolines(lattice([[0, 1], [0, 1]], "depth"), [0.5], z_property="depth")
        assert result[0].properties["depth"] == 0.5


class TestIsobands:
    """Test suite for isobands."""

    def test_ramp_band(self, ramp):
        """Test a ramp band is a rectangle covering the band's range."""
        result = contour.isobands(ramp, [0.5, 1.5])
        assert len(result) == 1
        assert result[0].properties["elevation"] == "0.5-1.5"
        polygons = result[0].geometry.coordinates
        assert len(polygons) == 1
        geometry = shape(result[0].geometry.to_geojson())
        assert geometry.is_valid
        assert geometry.area == pytest.approx(2.0)
        assert geometry.bounds == pytest.approx((0.5, 0.0, 1.5, 2.0))

    def test_exteriors_counter_clockwise(self, ramp):
        """Test exterior rings wind counter-clockwise."""
        result = contour.isobands(ramp, [0.5, 1.5])
        exterior = result[0].geometry.coordinates[0][0]
        assert ring_signed_area(exterior) > 0

    def test_peak_makes_a_hole(self, peak):
        """Test the band below a peak has a clockwise hole."""
        result = contour.isobands(peak, [-1, 1, 20])
        low, high = result
        assert len(low.geometry.coordinates) == 1
        rings = low.geometry.coordinates[0]
        assert len(rings) == 2
        assert ring_signed_area(rings[0]) > 0
        assert ring_signed_area(rings[1]) < 0
        assert len(high.geometry.coordinates) == 1
        assert len(high.geometry.coordinates[0]) == 1

    def test_bands_cover_without_overlap(self, peak):
        """Test adjacent bands tile the grid without overlapping."""
        low, high = (shape(f.geometry.to_geojson()) for f in contour.isobands(peak, [-1, 1, 20]))
        assert low.is_valid and high.is_valid
        assert low.intersection(high).area == pytest.approx(0.0, abs=1e-9)
        assert low.area + high.area == pytest.approx(16.0)

    def test_saddle_bands_do_not_overlap(self):
        """Test bands through a saddle cell stay disjoint."""
        result = contour.isobands(lattice([[1, 0], [0, 1]]), [0, 0.5, 1.01])
        low, high = (shape(f.geometry.to_geojson()) for f in result)
        assert low.intersection(high).area == pytest.approx(0.0, abs=1e-9)
        assert low.area + high.area == pytest.approx(1.0)

    def test_lower_bound_inclusive(self):
        """Test values equal to the lower break are inside the band."""
        result = contour.isobands(lattice([[1, 1], [1, 1]]), [1, 2])
        assert shape(result[0].geometry.to_geojson()).area == pytest.approx(1.0)

    def test_upper_bound_exclusive(self):
        """Test values equal to the upper break are outside the band."""
        result = contour.isobands(lattice([[1, 1], [1, 1]]), [0, 1])
        assert result[0].geometry.coordinates == ()

    def test_empty_band(self, ramp):
        """Test a band with no coverage gives an empty MultiPolygon."""
        result = contour.isobands(ramp, [10, 20])
        assert result[0].geometry.type.value == "MultiPolygon"
        assert result[0].geometry.coordinates == ()

    def test_breaks_properties(self, ramp):
        """Test per-band properties are merged."""
        result = contour.isobands(ramp, [0, 1, 2], breaks_properties=[{"fill": "blue"}, {"fill": "red"}])
        assert [f.properties["fill"] for f in result] == ["blue", "red"]

    @pytest.mark.parametrize("seed", range(20))
    def test_integer_grid_bands_are_valid(self, seed):
        """Test grids full of ties at the breaks still give valid bands that tile the grid."""
        values = np.random.default_rng(seed).integers(0, 4, (6, 6)).tolist()
        result = contour.isobands(lattice(values), [0, 1, 2, 3, 4])
        shapes = [shape(f.geometry.to_geojson()) for f in result if f.geometry.coordinates]
        assert all(s.is_valid for s in shapes)
        assert sum(s.area for s in shapes) == pytest.approx(25.0)
