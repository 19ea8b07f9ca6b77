"""Tests for the zone-to-zone transition matrix."""

import numpy as np
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st
from numpy.testing import assert_array_equal

from arenazones.behavior.transitions import (
    TransitionMatrix,
    label_runs,
    transition_matrix,
)

ZONES = ["open", "closed", "center"]


class TestLabelRuns:
    def test_runs(self):
        values, starts, lengths = label_runs(["a", "a", "b", "b", "b", "a"])
        assert values.tolist() == ["a", "b", "a"]
        assert starts.tolist() == [0, 2, 5]
        assert lengths.tolist() == [2, 3, 1]

    def test_empty(self):
        values, starts, lengths = label_runs([])
        assert len(values) == len(starts) == len(lengths) == 0


class TestTransitionCounts:
    def test_labels_always_include_outside_and_undefined(self):
        tm = transition_matrix([], ZONES)
        assert tm.labels == ("open", "closed", "center", "outside", "undefined")
        assert tm.counts.shape == (5, 5)
        assert tm.n_transitions == 0

    def test_collapses_repeats(self):
        labels = ["open"] * 3 + ["center"] * 2 + ["closed"] * 4 + ["center"]
        tm = transition_matrix(labels, ZONES)
        assert tm["open", "center"] == 1
        assert tm["center", "closed"] == 1
        assert tm["closed", "center"] == 1
        assert tm.n_transitions == 3
        assert_array_equal(np.diag(tm.counts), 0)

    def test_undefined_round_trip_counts_twice(self):
        """zone -> undefined -> same zone is two transitions, not zero."""
        tm = transition_matrix(["open", "undefined", "undefined", "open"], ZONES)
        assert tm["open", "undefined"] == 1
        assert tm["undefined", "open"] == 1
        assert tm.n_transitions == 2

    def test_min_dwell_removes_short_zone_runs(self):
        labels = ["open"] * 5 + ["center"] + ["open"] * 5
        tm = transition_matrix(labels, ZONES, min_dwell_frames=2)
        assert tm.n_transitions == 0

    def test_min_dwell_keeps_outside_and_undefined(self):
        labels = ["open"] * 5 + ["undefined"] + ["open"] * 5
        tm = transition_matrix(labels, ZONES, min_dwell_frames=3)
        assert tm.n_transitions == 2

    def test_min_dwell_bridges_to_next_kept_run(self):
        labels = ["open"] * 3 + ["center"] + ["closed"] * 3
        tm = transition_matrix(labels, ZONES, min_dwell_frames=2)
        assert tm["open", "closed"] == 1
        assert tm["open", "center"] == 0

    def test_unknown_label(self):
        with pytest.raises(ValueError, match="Unknown labels"):
            transition_matrix(["open", "kitchen"], ZONES)

    @given(
        st.lists(st.sampled_from(ZONES + ["outside", "undefined"]), max_size=80),
        st.integers(min_value=0, max_value=6),
    )
    @settings(max_examples=50, deadline=5000)
    def test_row_and_column_balance(self, labels, k):
        """Property: out-degree and in-degree differ by at most one per label."""
        tm = transition_matrix(labels, ZONES, min_dwell_frames=k)
        out_deg = tm.counts.sum(axis=1)
        in_deg = tm.counts.sum(axis=0)
        assert np.abs(out_deg - in_deg).max(initial=0) <= 1
        assert_array_equal(np.diag(tm.counts), 0)


class TestTransitionTables:
    @pytest.fixture
    def tm(self):
        return transition_matrix(["open", "outside", "closed", "open"], ["open", "closed"])

    def test_square_dataframe(self, tm):
        df = tm.to_dataframe()
        assert df.index.name == "from_zone"
        assert df.columns.name == "to_zone"
        assert list(df.index) == ["open", "closed", "outside", "undefined"]
        assert df.loc["open", "outside"] == 1
        assert df.loc["closed", "open"] == 1

    def test_long_form_has_nonzero_cells(self, tm):
        long = tm.to_long()
        assert list(long.columns) == ["from_zone", "to_zone", "n_transitions"]
        assert set(zip(long.from_zone, long.to_zone)) == {
            ("open", "outside"),
            ("outside", "closed"),
            ("closed", "open"),
        }
        assert (long.n_transitions == 1).all()

    def test_unknown_label_lookup(self, tm):
        with pytest.raises(KeyError, match="Unknown transition label"):
            tm["open", "kitchen"]

    def test_shape_checked(self):
        with pytest.raises(ValueError, match="shape"):
            TransitionMatrix(labels=("a", "b"), counts=np.zeros((3, 3)))
