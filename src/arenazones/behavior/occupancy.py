"""Per-zone occupancy, entries, exits, dwell duration and latency.

Each zone is reduced independently from its own tri-state sequence
(:class:`~arenazones.classification.Membership` codes), so overlapping zones
never influence each other's statistics.

Definitions
-----------
dwell
    Maximal run of consecutive ``INSIDE`` frames. Runs shorter than the
    minimum dwell are discarded entirely: they are neither entries nor exits.
entry
    A dwell that does not start on the first frame of the trial. A trial
    that starts inside the zone is an initial placement, not an entry.
exit
    A dwell followed by an ``OUTSIDE`` or ``UNDEFINED`` frame. A dwell that
    runs to the end of the trial is unterminated and has no exit.
occupancy
    Number of ``INSIDE`` frames. Percentages use the number of valid
    (not ``UNDEFINED``) frames as denominator.
latency
    Seconds from the first frame to the first counted entry, or
    :data:`NEVER`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

import numpy as np
from numpy.typing import ArrayLike, NDArray

from arenazones.classification import Membership
from arenazones.validation import validate_frame_rate

__all__ = [
    "NEVER",
    "Dwell",
    "Never",
    "ZoneSummary",
    "detect_dwells",
    "latency_to_first_entry",
    "summarize_zone",
    "zone_occupancy",
]


class Never:
    """Sentinel for a zone that was never entered.

    Falsy, and distinct from ``0``, ``None`` and ``NaN``. There is a single
    instance, :data:`NEVER`; test with ``latency is NEVER``.
    """

    _instance: Never | None = None

    def __new__(cls) -> Never:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NEVER"

    def __str__(self) -> str:
        return "never"

    def __reduce__(self) -> str:
        return "NEVER"


NEVER = Never()

Latency = Union[float, Never]


@dataclass(frozen=True)
class Dwell:
    """One uninterrupted stay inside a zone.

    Attributes
    ----------
    start : int
        Row index of the first frame inside.
    stop : int
        Row index one past the last frame inside.
    entered : bool
        True if the dwell began with an entry (``start > 0``).
    exited : bool
        True if the dwell ended with an exit (``stop < n_frames``).
    """

    start: int
    stop: int
    entered: bool
    exited: bool

    @property
    def n_frames(self) -> int:
        return self.stop - self.start

    @property
    def is_complete(self) -> bool:
        """Both an entry and an exit were observed."""
        return self.entered and self.exited

    def duration(self, frame_rate: float) -> float:
        """Length in seconds (``n_frames / frame_rate``)."""
        return self.n_frames / frame_rate


def _inside(states: ArrayLike) -> NDArray[np.bool_]:
    return np.asarray(states).reshape(-1) == Membership.INSIDE


def detect_dwells(states: ArrayLike, *, min_dwell_frames: int = 0) -> list[Dwell]:
    """Find runs of ``INSIDE`` frames.

    Parameters
    ----------
    states : array-like of int, shape (n_frames,)
        Membership codes of one zone.
    min_dwell_frames : int, default=0
        Runs with fewer frames are dropped.

    Returns
    -------
    list[Dwell]
        Dwells in time order.

    Notes
    -----
    Run boundaries come from the first difference of the padded inside
    mask: +1 marks a run start, -1 the position one past its end.

    Examples
    --------
    >>> dwells = detect_dwells([1, 1, 0, 1, 0, -1, 1, 1])
    >>> [(d.start, d.stop, d.entered, d.exited) for d in dwells]
    [(0, 2, False, True), (3, 4, True, True), (6, 8, True, False)]
    >>> len(detect_dwells([1, 1, 0, 1, 0, -1, 1, 1], min_dwell_frames=2))
    2
    """
    inside = _inside(states)
    n = len(inside)
    if n == 0:
        return []
    edges = np.diff(np.concatenate(([0], inside.astype(np.int8), [0])))
    starts = np.flatnonzero(edges == 1)
    stops = np.flatnonzero(edges == -1)
    return [
        Dwell(start=int(a), stop=int(b), entered=bool(a > 0), exited=bool(b < n))
        for a, b in zip(starts, stops)
        if b - a >= min_dwell_frames
    ]


def zone_occupancy(
    states: ArrayLike, frame_rate: float
) -> tuple[int, float, float | None]:
    """Frames, seconds and percentage of valid frames spent inside.

    Parameters
    ----------
    states : array-like of int, shape (n_frames,)
        Membership codes of one zone.
    frame_rate : float
        Frames per second.

    Returns
    -------
    n_inside : int
        Number of ``INSIDE`` frames.
    time_s : float
        ``n_inside / frame_rate``.
    percentage : float or None
        ``100 * n_inside / n_valid``; None when there are no valid frames.

    Examples
    --------
    >>> zone_occupancy([0, 1, 1, -1, 0], frame_rate=2.0)
    (2, 1.0, 50.0)
    >>> zone_occupancy([-1, -1], frame_rate=2.0)
    (0, 0.0, None)
    """
    rate = validate_frame_rate(frame_rate)
    codes = np.asarray(states).reshape(-1)
    n_inside = int(np.count_nonzero(codes == Membership.INSIDE))
    n_valid = int(np.count_nonzero(codes != Membership.UNDEFINED))
    percentage = 100.0 * n_inside / n_valid if n_valid else None
    return n_inside, n_inside / rate, percentage


def latency_to_first_entry(
    dwells: list[Dwell], frames: ArrayLike, frame_rate: float
) -> tuple[Latency, int | None]:
    """Seconds until the first counted entry, and its frame index.

    Returns ``(NEVER, None)`` when no dwell starts with an entry.
    """
    for dwell in dwells:
        if dwell.entered:
            frames = np.asarray(frames)
            first = int(frames[dwell.start])
            return (first - int(frames[0])) / frame_rate, first
    return NEVER, None


@dataclass(frozen=True)
class ZoneSummary:
    """Statistics of one zone over one trial.

    Attributes
    ----------
    zone_id : str
    n_frames : int
        Frames inside the zone.
    time_s : float
        Seconds inside (``n_frames / frame_rate``).
    percentage : float or None
        Percent of valid frames inside; None without valid frames.
    n_entries : int
        Counted entries (after the minimum-dwell filter).
    mean_dwell_s : float or None
        Mean duration of dwells with both an entry and an exit.
    n_exits : int
        Counted exits.
    latency_s : float or NEVER
        Seconds from the first frame to the first counted entry.
    first_entry_frame : int or None
        Frame index of the first counted entry.
    dwells : tuple of Dwell
        Dwells that survived the minimum-dwell filter.
    """

    zone_id: str
    n_frames: int
    time_s: float
    percentage: float | None
    n_entries: int
    mean_dwell_s: float | None
    n_exits: int
    latency_s: Latency
    first_entry_frame: int | None
    dwells: tuple[Dwell, ...] = field(default=(), repr=False)

    @property
    def entered(self) -> bool:
        return self.n_entries > 0


def summarize_zone(
    zone_id: str,
    states: ArrayLike,
    frames: ArrayLike,
    frame_rate: float,
    *,
    min_dwell_frames: int = 0,
) -> ZoneSummary:
    """Reduce one zone's membership sequence to a :class:`ZoneSummary`.

    Parameters
    ----------
    zone_id : str
        Zone id, copied to the summary.
    states : array-like of int, shape (n_frames,)
        Membership codes of the zone.
    frames : array-like of int, shape (n_frames,)
        Frame indices, used for latency.
    frame_rate : float
        Frames per second.
    min_dwell_frames : int, default=0
        Dwells shorter than this are ignored for entries, exits, dwell
        durations and latency. Occupancy counts every inside frame.

    Returns
    -------
    ZoneSummary

    Examples
    --------
    >>> s = summarize_zone(
    ...     "A", [0, 0, 1, 1, 1, 0, 0, 1, 1, 0], np.arange(10), frame_rate=25.0
    ... )
    >>> s.time_s, s.n_entries, s.n_exits, s.latency_s
    (0.2, 2, 2, 0.08)
    """
    rate = validate_frame_rate(frame_rate)
    codes = np.asarray(states).reshape(-1)
    frames = np.asarray(frames).reshape(-1)
    if len(frames) != len(codes):
        raise ValueError(
            f"states and frames must have the same length. "
            f"Got {len(codes)} and {len(frames)}."
        )

    n_inside, time_s, percentage = zone_occupancy(codes, rate)
    dwells = detect_dwells(codes, min_dwell_frames=min_dwell_frames)

    complete = [d.duration(rate) for d in dwells if d.is_complete]
    latency, first_frame = latency_to_first_entry(dwells, frames, rate)

    return ZoneSummary(
        zone_id=zone_id,
        n_frames=n_inside,
        time_s=time_s,
        percentage=percentage,
        n_entries=sum(d.entered for d in dwells),
        mean_dwell_s=float(np.mean(complete)) if complete else None,
        n_exits=sum(d.exited for d in dwells),
        latency_s=latency,
        first_entry_frame=first_frame,
        dwells=tuple(dwells),
    )
