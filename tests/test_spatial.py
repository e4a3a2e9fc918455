"""
Tests for mycoshift.formulas.spatial.

Cell area on a geographic grid varies with latitude; a uniform value would
bias overlap areas toward high-latitude ranges.
"""

import numpy as np
import pytest
from rasterio.transform import from_bounds, from_origin

from mycoshift.formulas.spatial import (
    EARTH_RADIUS_KM,
    cell_area_km2,
    cell_centres,
    to_lonlat,
)


class TestCellCentres:

    def test_centres_of_one_degree_grid(self):
        transform = from_bounds(-120, 40, -116, 44, 4, 4)
        lons, lats = cell_centres(transform, 4, 4)
        assert lons.shape == (4, 4)
        np.testing.assert_allclose(lons[0], [-119.5, -118.5, -117.5, -116.5])
        np.testing.assert_allclose(lats[:, 0], [43.5, 42.5, 41.5, 40.5])

    def test_rows_share_latitude(self):
        transform = from_bounds(0, 0, 10, 5, 10, 5)
        _, lats = cell_centres(transform, 10, 5)
        assert np.all(lats == lats[:, [0]])


class TestCellArea:

    def test_global_grid_sums_to_sphere_area(self):
        """A 1° global grid tiles the sphere: total = 4πR²."""
        transform = from_bounds(-180, -90, 180, 90, 360, 180)
        area = cell_area_km2(transform, 360, 180)
        assert area.sum() == pytest.approx(4 * np.pi * EARTH_RADIUS_KM ** 2, rel=1e-9)

    def test_equatorial_cell(self):
        transform = from_bounds(0, 0, 1, 1, 1, 1)
        area = cell_area_km2(transform, 1, 1)
        expected = EARTH_RADIUS_KM ** 2 * np.deg2rad(1) * np.sin(np.deg2rad(1))
        assert area[0, 0] == pytest.approx(expected)
        assert area[0, 0] == pytest.approx(12364, rel=1e-3)

    def test_area_shrinks_poleward(self):
        transform = from_bounds(-120, 30, -110, 70, 10, 40)
        area = cell_area_km2(transform, 10, 40)
        row_area = area[:, 0]
        # Row 0 is the northernmost row.
        assert np.all(np.diff(row_area) > 0)

    def test_area_constant_along_row(self):
        transform = from_bounds(-120, 30, -110, 70, 10, 40)
        area = cell_area_km2(transform, 10, 40)
        assert np.all(area == area[:, [0]])

    def test_projected_grid_is_uniform(self):
        """Metre-based CRS: 1000 m cells are 1 km² each."""
        transform = from_origin(0, 5000, 1000, 1000)
        area = cell_area_km2(transform, 5, 5, crs="EPSG:5070")
        np.testing.assert_allclose(area, 1.0)

    def test_rotated_transform_rejected(self):
        from affine import Affine

        rotated = Affine(1, 0.1, 0, 0.1, -1, 0)
        with pytest.raises(ValueError, match="Rotated"):
            cell_area_km2(rotated, 2, 2)


class TestToLonLat:

    def test_geographic_passthrough(self):
        lons, lats = to_lonlat([-119.5, -117.5], [43.5, 40.5], "EPSG:4326")
        np.testing.assert_array_equal(lons, [-119.5, -117.5])
        np.testing.assert_array_equal(lats, [43.5, 40.5])

    def test_web_mercator_to_degrees(self):
        """One degree of longitude at the equator is 111319.49 m in EPSG:3857."""
        lons, lats = to_lonlat([0.0, 111_319.490793], [0.0, 0.0], "EPSG:3857")
        np.testing.assert_allclose(lons, [0.0, 1.0], atol=1e-6)
        np.testing.assert_allclose(lats, [0.0, 0.0], atol=1e-6)

    def test_shape_preserved(self):
        xs, ys = cell_centres(from_origin(-2_000_000, 2_400_000, 100_000, 100_000), 3, 2)
        lons, lats = to_lonlat(xs, ys, "EPSG:5070")
        assert lons.shape == lats.shape == (2, 3)

    def test_empty(self):
        lons, lats = to_lonlat([], [], "EPSG:5070")
        assert lons.size == 0 and lats.size == 0


class TestAffineOperators:

    def test_centres_and_bounds_use_matmul(self):
        """Coordinate transforms must not go through the deprecated ``*``."""
        import warnings

        from conftest import GEOMETRY

        with warnings.catch_warnings():
            warnings.simplefilter("error", PendingDeprecationWarning)
            warnings.simplefilter("error", DeprecationWarning)
            cell_centres(GEOMETRY.transform, GEOMETRY.width, GEOMETRY.height)
            assert GEOMETRY.bounds == (-120.0, 40.0, -116.0, 44.0)
