"""
Tests for cross-section sampling.
"""

import pytest
import numpy as np

from conftest import plane_points
from corridor_earthwork.core.cross_section import offsets_for, sample
from corridor_earthwork.core.surface import Surface
from corridor_earthwork.core.validation import InvalidIntervalError, StationOutOfRangeError


class TestOffsets:
    """Tests for the offset grid."""

    def test_even_division(self):
        """Test offsets when the step divides the half-width."""
        np.testing.assert_allclose(offsets_for(10.0, 5.0), [-5, 0, 5])

    def test_edges_clamped(self):
        """Test a final offset is added at the corridor edge."""
        np.testing.assert_allclose(offsets_for(10.0, 3.0), [-5, -3, 0, 3, 5])

    def test_centre_always_present(self):
        """Test offset 0 is always sampled exactly."""
        offsets = offsets_for(7.3, 0.7)
        assert 0.0 in offsets
        assert offsets[0] == pytest.approx(-3.65)
        assert offsets[-1] == pytest.approx(3.65)
        assert np.all(np.diff(offsets) > 0)

    def test_step_wider_than_corridor(self):
        """Test a step larger than the half-width gives centre and edges."""
        np.testing.assert_allclose(offsets_for(4.0, 10.0), [-2, 0, 2])

    @pytest.mark.parametrize("width,step", [(0, 1), (-10, 1), (10, 0), (10, -1)])
    def test_non_positive_raises(self, width, step):
        """Test zero or negative width and step raise InvalidIntervalError."""
        with pytest.raises(InvalidIntervalError):
            offsets_for(width, step)


class TestSample:
    """Tests for sampling both surfaces across the alignment."""

    def test_flat_surfaces(self, straight_alignment, design_surface, cut_ground_surface):
        """Test differences between two flat surfaces."""
        section = sample(straight_alignment, 50.0, 20.0, 5.0, design_surface, cut_ground_surface)

        assert section.station == 50.0
        np.testing.assert_allclose(section.offsets, [-10, -5, 0, 5, 10])
        np.testing.assert_allclose(section.design, 100.0)
        np.testing.assert_allclose(section.ground, 102.0)
        np.testing.assert_allclose(section.difference, 2.0)
        assert not section.has_gap

    def test_left_offsets_positive(self, straight_alignment, design_surface):
        """Test positive offsets sample the left (+Y) side."""
        tilted = Surface.build(plane_points(lambda x, y: 100.0 + 0.1 * y))
        section = sample(straight_alignment, 20.0, 20.0, 10.0, design_surface, tilted)

        np.testing.assert_allclose(section.ground, [99.0, 100.0, 101.0])

    def test_missing_samples_recorded(self, straight_alignment, design_surface, cut_ground_surface):
        """Test offsets outside a surface are NaN and counted, not fatal."""
        section = sample(straight_alignment, 50.0, 60.0, 5.0, design_surface, cut_ground_surface)

        assert len(section.offsets) == 13
        assert section.has_gap
        assert section.missing_design == 4
        assert section.missing_ground == 4
        assert np.isnan(section.design[0]) and np.isnan(section.design[-1])
        assert int(np.sum(section.valid)) == 9

    def test_samples_use_none_for_missing(self, straight_alignment, design_surface, cut_ground_surface):
        """Test the per-offset view marks missing data with None."""
        section = sample(straight_alignment, 50.0, 60.0, 10.0, design_surface, cut_ground_surface)
        samples = section.samples

        assert samples[0].design is None
        assert samples[0].difference is None
        assert samples[3].offset == 0.0
        assert samples[3].difference == pytest.approx(2.0)

    def test_station_out_of_range(self, straight_alignment, design_surface, cut_ground_surface):
        """Test sampling beyond the alignment raises StationOutOfRangeError."""
        with pytest.raises(StationOutOfRangeError):
            sample(straight_alignment, 120.0, 20.0, 5.0, design_surface, cut_ground_surface)

    def test_to_dict(self, straight_alignment, design_surface, cut_ground_surface):
        """Test dictionary conversion."""
        section = sample(straight_alignment, 0.0, 10.0, 5.0, design_surface, cut_ground_surface)
        data = section.to_dict()

        assert data["station"] == 0.0
        assert len(data["samples"]) == 3
        assert data["samples"][1] == {"offset": 0.0, "design": pytest.approx(100.0), "ground": pytest.approx(102.0)}
