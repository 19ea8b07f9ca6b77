"""Position samples for a single tracked point.

A :class:`PositionSamples` holds one trial's positions as parallel arrays:
frame indices, x, y and an explicit validity flag. Validity is the only
carrier of "missing": downstream code classifies invalid rows as
*undefined* for every zone rather than reading NaN coordinates.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from numpy.typing import ArrayLike, NDArray

from arenazones.validation import validate_frame_rate

__all__ = ["PositionSamples"]


def _readonly(arr: NDArray) -> NDArray:
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True)
class PositionSamples:
    """Ordered positions of one tracked point during one trial.

    Parameters
    ----------
    frames : array-like of int, shape (n_samples,)
        Frame indices, strictly increasing. Gaps are allowed.
    x, y : array-like of float, shape (n_samples,)
        Coordinates. Values on invalid rows are ignored.
    valid : array-like of bool, shape (n_samples,)
        False where the tracker reported no detection.

    Attributes
    ----------
    n_samples : int
        Number of frames.
    n_valid : int
        Number of valid frames.

    Notes
    -----
    The arrays are copied and flagged read-only on construction, so a
    ``PositionSamples`` can be shared between analyses without defensive
    copies. Rows whose coordinates are not finite are marked invalid
    regardless of the supplied flag.

    Examples
    --------
    >>> s = PositionSamples.from_arrays([1.0, np.nan, 3.0], [0.0, 0.0, 1.0])
    >>> s.valid
    array([ True, False,  True])
    >>> s.times(frame_rate=10.0)
    array([0. , 0.1, 0.2])
    """

    frames: NDArray[np.int64]
    x: NDArray[np.float64]
    y: NDArray[np.float64]
    valid: NDArray[np.bool_]

    def __post_init__(self) -> None:
        frames = np.array(self.frames, dtype=np.int64).reshape(-1)
        x = np.array(self.x, dtype=np.float64).reshape(-1)
        y = np.array(self.y, dtype=np.float64).reshape(-1)
        valid = np.array(self.valid, dtype=bool).reshape(-1)

        n = len(frames)
        if not (len(x) == len(y) == len(valid) == n):
            raise ValueError(
                "frames, x, y and valid must have the same length. "
                f"Got {n}, {len(x)}, {len(y)} and {len(valid)}."
            )
        if n > 1 and np.any(np.diff(frames) <= 0):
            bad = int(np.flatnonzero(np.diff(frames) <= 0)[0])
            raise ValueError(
                f"WHAT: frame indices must be strictly increasing; frame "
                f"{frames[bad + 1]} follows {frames[bad]} at position {bad + 1}.\n"
                "WHY: Entries, exits and latency are defined over time order.\n"
                "HOW: Sort samples by frame and drop duplicates before analysis."
            )

        valid = valid & np.isfinite(x) & np.isfinite(y)
        x[~valid] = np.nan
        y[~valid] = np.nan

        object.__setattr__(self, "frames", _readonly(frames))
        object.__setattr__(self, "x", _readonly(x))
        object.__setattr__(self, "y", _readonly(y))
        object.__setattr__(self, "valid", _readonly(valid))

    @classmethod
    def from_arrays(
        cls,
        x: ArrayLike,
        y: ArrayLike,
        *,
        frames: ArrayLike | None = None,
        valid: ArrayLike | None = None,
        confidence: ArrayLike | None = None,
        min_confidence: float | None = None,
    ) -> PositionSamples:
        """Build samples from coordinate arrays.

        Parameters
        ----------
        x, y : array-like, shape (n_samples,)
            Coordinates; NaN marks a missing detection.
        frames : array-like of int, optional
            Frame indices. Defaults to ``0 .. n_samples - 1``.
        valid : array-like of bool, optional
            Explicit detection flag. Defaults to all True.
        confidence : array-like of float, optional
            Per-frame tracker confidence (e.g. DeepLabCut likelihood).
        min_confidence : float, optional
            Frames with ``confidence < min_confidence`` become invalid.
            Requires ``confidence``.

        Returns
        -------
        PositionSamples
        """
        x_arr = np.asarray(x, dtype=np.float64).reshape(-1)
        n = len(x_arr)
        frames_arr = (
            np.arange(n, dtype=np.int64) if frames is None else np.asarray(frames)
        )
        valid_arr = (
            np.ones(n, dtype=bool) if valid is None else np.asarray(valid, dtype=bool)
        )

        if min_confidence is not None:
            if confidence is None:
                raise ValueError("min_confidence requires a confidence array.")
            conf = np.asarray(confidence, dtype=np.float64).reshape(-1)
            if len(conf) != n:
                raise ValueError(
                    f"confidence has length {len(conf)}, expected {n}."
                )
            with np.errstate(invalid="ignore"):
                valid_arr = valid_arr & (conf >= min_confidence)

        return cls(frames=frames_arr, x=x_arr, y=y, valid=valid_arr)

    @classmethod
    def empty(cls) -> PositionSamples:
        """Samples with zero frames."""
        return cls(frames=[], x=[], y=[], valid=[])

    def __len__(self) -> int:
        return int(self.frames.shape[0])

    @property
    def n_samples(self) -> int:
        return len(self)

    @property
    def n_valid(self) -> int:
        return int(np.count_nonzero(self.valid))

    @property
    def points(self) -> NDArray[np.float64]:
        """Coordinates as an ``(n_samples, 2)`` array (NaN on invalid rows)."""
        return np.column_stack([self.x, self.y])

    def times(self, frame_rate: float) -> NDArray[np.float64]:
        """Seconds since the first frame of the trial.

        Parameters
        ----------
        frame_rate : float
            Frames per second.
        """
        rate = validate_frame_rate(frame_rate)
        if len(self) == 0:
            return np.zeros(0, dtype=np.float64)
        return (self.frames - self.frames[0]) / rate
