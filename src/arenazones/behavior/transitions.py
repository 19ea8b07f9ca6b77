"""Zone-to-zone transition counts.

Transitions are counted over one label per frame, as produced by
:meth:`arenazones.classification.ZoneMembership.primary_labels`: a primary
zone id, ``"outside"`` or ``"undefined"``. Missing data is its own state, so
``A -> undefined -> A`` counts as two transitions rather than none.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
import pandas as pd
from numpy.typing import ArrayLike, NDArray

from arenazones.classification import OUTSIDE_LABEL, UNDEFINED_LABEL

__all__ = ["TransitionMatrix", "label_runs", "transition_matrix"]


def label_runs(
    labels: ArrayLike,
) -> tuple[NDArray[np.object_], NDArray[np.int64], NDArray[np.int64]]:
    """Run-length encode a label sequence.

    Returns
    -------
    values : NDArray[np.object_]
        Label of each run.
    starts : NDArray[np.int64]
        Row index where each run starts.
    lengths : NDArray[np.int64]
        Number of frames in each run.

    Examples
    --------
    >>> values, starts, lengths = label_runs(["a", "a", "b", "a"])
    >>> values.tolist(), starts.tolist(), lengths.tolist()
    (['a', 'b', 'a'], [0, 2, 3], [2, 1, 1])
    """
    arr = np.asarray(labels, dtype=object).reshape(-1)
    if len(arr) == 0:
        empty = np.zeros(0, dtype=np.int64)
        return arr, empty, empty
    change = np.flatnonzero(arr[1:] != arr[:-1]) + 1
    starts = np.concatenate(([0], change)).astype(np.int64)
    lengths = np.diff(np.concatenate((starts, [len(arr)]))).astype(np.int64)
    return arr[starts], starts, lengths


@dataclass(frozen=True, eq=False)
class TransitionMatrix:
    """Square count matrix ``counts[i, j]`` = transitions ``labels[i] -> labels[j]``.

    Attributes
    ----------
    labels : tuple of str
        Primary zone ids followed by ``"outside"`` and ``"undefined"``.
    counts : NDArray[np.int64], shape (n_labels, n_labels)
        Transition counts. The diagonal is always zero.

    Examples
    --------
    >>> tm = transition_matrix(["a", "a", "outside", "b"], zone_labels=["a", "b"])
    >>> tm["a", "outside"], tm["outside", "b"], tm.n_transitions
    (1, 1, 2)
    """

    labels: tuple[str, ...]
    counts: NDArray[np.int64]

    def __post_init__(self) -> None:
        labels = tuple(self.labels)
        counts = np.array(self.counts, dtype=np.int64)
        if counts.shape != (len(labels), len(labels)):
            raise ValueError(
                f"counts must have shape {(len(labels), len(labels))}, "
                f"got {counts.shape}."
            )
        counts.setflags(write=False)
        object.__setattr__(self, "labels", labels)
        object.__setattr__(self, "counts", counts)

    def _index(self, label: str) -> int:
        try:
            return self.labels.index(label)
        except ValueError:
            raise KeyError(
                f"Unknown transition label '{label}'. Labels: {list(self.labels)}"
            ) from None

    def __getitem__(self, key: tuple[str, str]) -> int:
        source, target = key
        return int(self.counts[self._index(source), self._index(target)])

    @property
    def n_transitions(self) -> int:
        return int(self.counts.sum())

    def to_dataframe(self) -> pd.DataFrame:
        """Labelled square table (rows: ``from_zone``, columns: ``to_zone``)."""
        return pd.DataFrame(
            self.counts,
            index=pd.Index(self.labels, name="from_zone"),
            columns=pd.Index(self.labels, name="to_zone"),
        )

    def to_long(self) -> pd.DataFrame:
        """Nonzero cells as rows ``from_zone``, ``to_zone``, ``n_transitions``."""
        rows, cols = np.nonzero(self.counts)
        return pd.DataFrame(
            {
                "from_zone": [self.labels[i] for i in rows],
                "to_zone": [self.labels[j] for j in cols],
                "n_transitions": self.counts[rows, cols].astype(np.int64),
            }
        )


def transition_matrix(
    labels: ArrayLike,
    zone_labels: Sequence[str],
    *,
    min_dwell_frames: int = 0,
) -> TransitionMatrix:
    """Count transitions between per-frame labels.

    Parameters
    ----------
    labels : array-like of str, shape (n_frames,)
        One label per frame: a member of ``zone_labels``, ``"outside"`` or
        ``"undefined"``.
    zone_labels : sequence of str
        Primary zone ids; fixes the row/column order.
    min_dwell_frames : int, default=0
        Zone runs shorter than this are removed before counting, so a brief
        visit neither leaves its neighbours nor arrives anywhere. Runs of
        ``"outside"`` and ``"undefined"`` are never removed.

    Returns
    -------
    TransitionMatrix

    Raises
    ------
    ValueError
        If a label is not a zone label, ``"outside"`` or ``"undefined"``.

    Examples
    --------
    Missing data between two visits to the same zone is visible:

    >>> tm = transition_matrix(["a", "undefined", "a"], zone_labels=["a"])
    >>> tm["a", "undefined"], tm["undefined", "a"]
    (1, 1)
    """
    all_labels = tuple(zone_labels) + (OUTSIDE_LABEL, UNDEFINED_LABEL)
    index = {label: i for i, label in enumerate(all_labels)}
    counts = np.zeros((len(all_labels), len(all_labels)), dtype=np.int64)

    values, _, lengths = label_runs(labels)
    unknown = sorted({str(v) for v in values} - set(index))
    if unknown:
        raise ValueError(
            f"Unknown labels {unknown}; expected one of {list(all_labels)}."
        )

    zone_set = set(zone_labels)
    kept = [
        v
        for v, n in zip(values, lengths)
        if not (v in zone_set and n < min_dwell_frames)
    ]
    # Removing a short run can leave equal neighbours; collapse them
    collapsed = [v for i, v in enumerate(kept) if i == 0 or v != kept[i - 1]]
    for source, target in zip(collapsed[:-1], collapsed[1:]):
        counts[index[source], index[target]] += 1

    return TransitionMatrix(labels=all_labels, counts=counts)
