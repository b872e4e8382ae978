"""
Tests for CRS normalization.
"""

import pytest
import numpy as np

from corridor_earthwork.core.crs import CrsNormalizer, pyproj_transform
from corridor_earthwork.core.validation import TransformFailure, UnsupportedCrsError


def shift_transform(point, source_crs, target_crs):
    """Fake projection: translate by a fixed offset."""
    x, y, z = point
    return (x + 1000.0, y + 2000.0, z)


class TestCrsNormalizer:
    """Tests with an injected transform."""

    def test_transforms_points(self):
        """Test each point goes through the transform."""
        normalizer = CrsNormalizer("GRID", transform=shift_transform)
        out = normalizer.normalize_points([(0, 0, 5), (1, 2, 6)], "LOCAL")

        np.testing.assert_allclose(out, [(1000, 2000, 5), (1001, 2002, 6)])

    def test_same_crs_passes_through(self):
        """Test inputs already in the target CRS are untouched."""
        def fail(*args):
            raise AssertionError("transform should not be called")

        normalizer = CrsNormalizer("GRID", transform=fail)
        out = normalizer.normalize_points([(1, 2, 3)], "GRID")
        np.testing.assert_allclose(out, [(1, 2, 3)])

    def test_missing_crs_passes_through(self):
        """Test inputs with no declared CRS are taken as already normalized."""
        normalizer = CrsNormalizer("GRID", transform=shift_transform)
        np.testing.assert_allclose(normalizer.normalize_xy([(1, 2)], None), [(1, 2)])

    def test_normalize_xy(self):
        """Test plan vertices are transformed and returned as Nx2."""
        normalizer = CrsNormalizer("GRID", transform=shift_transform)
        out = normalizer.normalize_xy([(0, 0), (5, 5)], "LOCAL")

        assert out.shape == (2, 2)
        np.testing.assert_allclose(out, [(1000, 2000), (1005, 2005)])

    def test_input_not_modified(self):
        """Test normalization returns a new array."""
        points = np.array([(1.0, 2.0, 3.0)])
        CrsNormalizer("GRID", transform=shift_transform).normalize_points(points, "LOCAL")
        np.testing.assert_allclose(points, [(1.0, 2.0, 3.0)])

    def test_transform_errors_wrapped(self):
        """Test arbitrary transform errors become TransformFailure."""
        def broken(point, source_crs, target_crs):
            raise RuntimeError("projection blew up")

        normalizer = CrsNormalizer("GRID", transform=broken)
        with pytest.raises(TransformFailure, match="projection blew up"):
            normalizer.normalize_points([(0, 0, 0)], "LOCAL")

    def test_crs_errors_propagate(self):
        """Test CRS errors from the transform keep their type."""
        def unknown(point, source_crs, target_crs):
            raise UnsupportedCrsError(f"unknown CRS {source_crs}")

        normalizer = CrsNormalizer("GRID", transform=unknown)
        with pytest.raises(UnsupportedCrsError):
            normalizer.normalize_points([(0, 0, 0)], "MARS:1")

    def test_empty_target_raises(self):
        """Test a target CRS is required."""
        with pytest.raises(UnsupportedCrsError):
            CrsNormalizer("")


@pytest.mark.requires_pyproj
class TestPyprojTransform:
    """Tests for the default pyproj-backed transform."""

    def test_geographic_to_utm(self):
        """Test WGS84 to UTM zone 10N."""
        x, y, z = pyproj_transform((-122.0, 37.0, 10.0), "EPSG:4326", "EPSG:32610")

        assert 500000.0 < x < 700000.0
        assert 4000000.0 < y < 4200000.0
        assert z == pytest.approx(10.0)

    def test_unknown_crs(self):
        """Test an unrecognised CRS raises UnsupportedCrsError."""
        with pytest.raises(UnsupportedCrsError):
            pyproj_transform((0.0, 0.0, 0.0), "EPSG:999999", "EPSG:4326")

    def test_normalizer_default(self):
        """Test the normalizer uses pyproj by default."""
        normalizer = CrsNormalizer("EPSG:32610")
        out = normalizer.normalize_points([(-123.0, 0.0, 0.0)], "EPSG:4326")

        assert out[0, 0] == pytest.approx(500000.0)
        assert out[0, 1] == pytest.approx(0.0, abs=1e-6)
