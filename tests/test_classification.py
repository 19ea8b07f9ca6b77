"""Tests for tri-state point classification."""

import numpy as np
import pandas as pd
import pytest
from numpy.testing import assert_array_equal

from arenazones import PositionSamples
from arenazones.classification import (
    Membership,
    ZoneMembership,
    classify,
    classify_points,
)
from arenazones.resolver import ResolvedBox, ResolvedCircle

IN, OUT, UND = Membership.INSIDE, Membership.OUTSIDE, Membership.UNDEFINED


class TestClassifyPoints:
    """Single-zone classification."""

    def test_rectangle_boundary(self):
        """(10, 10) is inside [0, 10]^2; (10.01, 5) is outside."""
        box = ResolvedBox("A", "A", 0.0, 10.0, 0.0, 10.0)
        assert_array_equal(classify_points(box, [[10.0, 10.0], [10.01, 5.0]]), [IN, OUT])

    def test_circle_boundary(self):
        circle = ResolvedCircle("c", "c", (0.0, 0.0), 5.0)
        codes = classify_points(circle, [[5.0, 0.0], [5.0 + 1e-9, 0.0]])
        assert_array_equal(codes, [IN, OUT])

    def test_invalid_is_undefined_not_outside(self):
        box = ResolvedBox("A", "A", 0.0, 10.0, 0.0, 10.0)
        codes = classify_points(box, [[5.0, 5.0], [5.0, 5.0], [np.nan, 1.0]], valid=[True, False, True])
        assert_array_equal(codes, [IN, UND, UND])
        assert codes.dtype == np.int8

    def test_valid_length_mismatch(self):
        box = ResolvedBox("A", "A", 0.0, 10.0, 0.0, 10.0)
        with pytest.raises(ValueError, match="valid"):
            classify_points(box, [[1.0, 1.0]], valid=[True, True])

    def test_membership_str(self):
        assert str(Membership.UNDEFINED) == "undefined"


class TestClassify:
    """Whole-trial classification against every zone."""

    @pytest.fixture
    def samples(self):
        return PositionSamples.from_arrays(
            [50.0, 10.0, np.nan, 200.0, 30.0],
            [50.0, 10.0, 5.0, 200.0, 50.0],
        )

    def test_overlap_is_legal(self, open_field_arena, samples):
        membership = classify(samples, open_field_arena.resolve())
        assert membership.zone_ids == ("floor", "center", "periphery")
        assert membership.zones_at(0) == {"floor", "center"}
        assert membership.zones_at(1) == {"floor", "periphery"}
        assert membership.zones_at(2) == frozenset()
        assert membership.zones_at(3) == frozenset()

    def test_undefined_for_every_zone(self, open_field_arena, samples):
        membership = classify(samples, open_field_arena.resolve())
        assert (membership.codes[2] == UND).all()
        assert_array_equal(membership.valid, [True, True, False, True, True])

    def test_states(self, open_field_arena, samples):
        membership = classify(samples, open_field_arena.resolve())
        assert_array_equal(membership.states("center"), [IN, OUT, UND, OUT, IN])

    def test_zone_subset_and_order(self, open_field_arena, samples):
        membership = classify(samples, open_field_arena.resolve(), zone_ids=["center", "floor"])
        assert membership.zone_ids == ("center", "floor")
        assert membership.codes.shape == (5, 2)

    def test_unknown_zone(self, open_field_arena, samples):
        with pytest.raises(KeyError, match="nest"):
            classify(samples, open_field_arena.resolve(), zone_ids=["nest"])
        membership = classify(samples, open_field_arena.resolve())
        with pytest.raises(KeyError, match="Available zones"):
            membership.states("nest")

    def test_empty_samples(self, open_field_arena):
        membership = classify(PositionSamples.empty(), open_field_arena.resolve())
        assert membership.codes.shape == (0, 3)
        assert membership.primary_labels().shape == (0,)


class TestPrimaryLabels:
    """Single label per frame for the transition matrix."""

    def _membership(self):
        codes = np.array(
            [
                [IN, IN],
                [IN, OUT],
                [OUT, IN],
                [OUT, OUT],
                [UND, UND],
            ],
            dtype=np.int8,
        )
        return ZoneMembership(frames=np.arange(5), zone_ids=("a", "b"), codes=codes)

    def test_first_listed_zone_wins(self):
        m = self._membership()
        assert m.primary_labels().tolist() == ["a", "a", "b", "outside", "undefined"]
        assert m.primary_labels(["b", "a"]).tolist() == ["b", "a", "b", "outside", "undefined"]

    def test_subset(self):
        m = self._membership()
        assert m.primary_labels(["b"]).tolist() == ["b", "outside", "b", "outside", "undefined"]

    def test_overlap_frames(self):
        m = self._membership()
        assert_array_equal(m.overlap_frames(), [0])
        assert m.overlap_frames(["a"]).size == 0

    def test_validation(self):
        m = self._membership()
        with pytest.raises(ValueError, match="duplicates"):
            m.primary_labels(["a", "a"])
        with pytest.raises(KeyError):
            m.primary_labels(["zz"])

    def test_valid_derived_from_codes(self):
        assert_array_equal(self._membership().valid, [True, True, True, True, False])


class TestMembershipDataFrame:
    def test_long_form(self):
        codes = np.array([[IN, OUT], [UND, UND]], dtype=np.int8)
        m = ZoneMembership(frames=[7, 8], zone_ids=("a", "b"), codes=codes)
        df = m.to_dataframe()
        assert list(df.columns) == ["frame", "zone_id", "state"]
        assert df["frame"].tolist() == [7, 7, 8, 8]
        assert df["zone_id"].tolist() == ["a", "b", "a", "b"]
        assert df["state"].tolist() == ["inside", "outside", "undefined", "undefined"]
        assert isinstance(df["state"].dtype, pd.CategoricalDtype)
