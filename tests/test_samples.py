"""Tests for PositionSamples."""

import numpy as np
import pytest
from numpy.testing import assert_allclose, assert_array_equal

from arenazones import PositionSamples


class TestConstruction:
    def test_defaults(self):
        s = PositionSamples.from_arrays([1.0, 2.0, 3.0], [0.0, 0.0, 0.0])
        assert_array_equal(s.frames, [0, 1, 2])
        assert s.valid.all()
        assert len(s) == s.n_samples == 3

    def test_arrays_are_read_only_copies(self):
        x = np.array([1.0, 2.0])
        s = PositionSamples.from_arrays(x, [0.0, 0.0])
        x[0] = 99.0
        assert s.x[0] == 1.0
        for arr in (s.frames, s.x, s.y, s.valid):
            assert not arr.flags.writeable

    def test_non_finite_coordinates_invalid(self):
        s = PositionSamples.from_arrays([1.0, np.nan, 3.0, np.inf], [0.0, 0.0, np.nan, 0.0])
        assert_array_equal(s.valid, [True, False, False, False])
        assert s.n_valid == 1

    def test_invalid_rows_get_nan(self):
        """An explicit invalid flag hides the stored coordinates."""
        s = PositionSamples.from_arrays([1.0, 2.0], [1.0, 2.0], valid=[True, False])
        assert np.isnan(s.points[1]).all()
        assert_allclose(s.points[0], [1.0, 1.0])

    def test_length_mismatch(self):
        with pytest.raises(ValueError, match="same length"):
            PositionSamples(frames=[0, 1], x=[0.0], y=[0.0, 1.0], valid=[True, True])

    @pytest.mark.parametrize("frames", [[0, 2, 1], [0, 1, 1]])
    def test_frames_strictly_increasing(self, frames):
        with pytest.raises(ValueError, match="strictly increasing"):
            PositionSamples.from_arrays([0.0] * 3, [0.0] * 3, frames=frames)

    def test_frame_gaps_allowed(self):
        s = PositionSamples.from_arrays([0.0] * 3, [0.0] * 3, frames=[10, 11, 20])
        assert_array_equal(s.frames, [10, 11, 20])

    def test_empty(self):
        s = PositionSamples.empty()
        assert len(s) == 0
        assert s.n_valid == 0
        assert s.points.shape == (0, 2)


class TestConfidence:
    """Low-confidence detections become invalid."""

    def test_min_confidence(self):
        s = PositionSamples.from_arrays(
            [1.0, 2.0, 3.0],
            [1.0, 2.0, 3.0],
            confidence=[0.99, 0.5, np.nan],
            min_confidence=0.9,
        )
        assert_array_equal(s.valid, [True, False, False])

    def test_combined_with_explicit_flag(self):
        s = PositionSamples.from_arrays(
            [1.0, 2.0],
            [1.0, 2.0],
            valid=[False, True],
            confidence=[1.0, 1.0],
            min_confidence=0.5,
        )
        assert_array_equal(s.valid, [False, True])

    def test_requires_confidence(self):
        with pytest.raises(ValueError, match="confidence"):
            PositionSamples.from_arrays([1.0], [1.0], min_confidence=0.5)

    def test_confidence_length(self):
        with pytest.raises(ValueError, match="length"):
            PositionSamples.from_arrays(
                [1.0, 2.0], [1.0, 2.0], confidence=[1.0], min_confidence=0.5
            )


class TestTimes:
    def test_relative_to_first_frame(self):
        s = PositionSamples.from_arrays([0.0] * 3, [0.0] * 3, frames=[50, 51, 75])
        assert_allclose(s.times(25.0), [0.0, 0.04, 1.0])

    def test_empty(self):
        assert PositionSamples.empty().times(30.0).shape == (0,)

    @pytest.mark.parametrize("rate", [0.0, -25.0, np.inf])
    def test_invalid_frame_rate(self, rate):
        with pytest.raises(ValueError, match="frame_rate"):
            PositionSamples.empty().times(rate)
