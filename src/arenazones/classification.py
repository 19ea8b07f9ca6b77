"""Tri-state zone classification of position samples.

Every (frame, zone) pair is classified as one of three :class:`Membership`
codes. ``UNDEFINED`` is reserved for frames without a valid position and is
reported for *every* zone on such frames, so missing data is never mistaken
for "outside".

Zones may overlap: a frame can be ``INSIDE`` several zones at once. Per-zone
statistics use each zone's own column; a single label per frame (needed for
the transition matrix) is derived from an ordered set of primary zones via
:meth:`ZoneMembership.primary_labels`.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import IntEnum
from typing import TYPE_CHECKING

import numpy as np
import pandas as pd
from numpy.typing import ArrayLike, NDArray

from arenazones.ops.geometry import as_points

if TYPE_CHECKING:
    from arenazones.resolver import ResolvedGeometry
    from arenazones.samples import PositionSamples

__all__ = [
    "OUTSIDE_LABEL",
    "UNDEFINED_LABEL",
    "Membership",
    "ZoneMembership",
    "classify",
    "classify_points",
]

OUTSIDE_LABEL = "outside"
UNDEFINED_LABEL = "undefined"


class Membership(IntEnum):
    """Classification of one position against one zone."""

    UNDEFINED = -1
    OUTSIDE = 0
    INSIDE = 1

    def __str__(self) -> str:
        return self.name.lower()


def classify_points(
    geometry: ResolvedGeometry,
    points: ArrayLike,
    valid: ArrayLike | None = None,
) -> NDArray[np.int8]:
    """Classify points against one resolved zone.

    Parameters
    ----------
    geometry : ResolvedGeometry
        Any resolved zone (polygon, circle, box, exclusion).
    points : array-like, shape (n_points, 2)
        Positions in the same coordinate frame as ``geometry``.
    valid : array-like of bool, shape (n_points,), optional
        Validity flags. Rows with non-finite coordinates are invalid
        regardless.

    Returns
    -------
    NDArray[np.int8], shape (n_points,)
        :class:`Membership` codes.

    Examples
    --------
    >>> from arenazones.resolver import ResolvedBox
    >>> box = ResolvedBox("a", "a", 0.0, 10.0, 0.0, 10.0)
    >>> classify_points(box, [[10, 10], [10.01, 5], [np.nan, 0]]).tolist()
    [1, 0, -1]
    """
    pts = as_points(points)
    ok = np.isfinite(pts).all(axis=1)
    if valid is not None:
        valid = np.asarray(valid, dtype=bool).reshape(-1)
        if len(valid) != len(pts):
            raise ValueError(
                f"valid has length {len(valid)} but there are {len(pts)} points."
            )
        ok &= valid

    codes = np.full(len(pts), Membership.UNDEFINED, dtype=np.int8)
    if ok.any():
        inside = geometry.contains(pts[ok])
        codes[ok] = np.where(inside, Membership.INSIDE, Membership.OUTSIDE)
    return codes


@dataclass(frozen=True, eq=False)
class ZoneMembership:
    """Per-frame, per-zone classification of one trial.

    Attributes
    ----------
    frames : NDArray[np.int64], shape (n_frames,)
        Frame indices of the classified samples.
    zone_ids : tuple of str
        Column order of ``codes``.
    codes : NDArray[np.int8], shape (n_frames, n_zones)
        :class:`Membership` codes.
    valid : NDArray[np.bool_], shape (n_frames,)
        Sample validity. Derived from ``codes`` when omitted.
    """

    frames: NDArray[np.int64]
    zone_ids: tuple[str, ...]
    codes: NDArray[np.int8]
    valid: NDArray[np.bool_] | None = None

    def __post_init__(self) -> None:
        frames = np.array(self.frames, dtype=np.int64).reshape(-1)
        zone_ids = tuple(self.zone_ids)
        codes = np.array(self.codes, dtype=np.int8).reshape(len(frames), len(zone_ids))
        if self.valid is None:
            valid = (codes != Membership.UNDEFINED).all(axis=1)
        else:
            valid = np.array(self.valid, dtype=bool).reshape(-1)
            if len(valid) != len(frames):
                raise ValueError(
                    f"valid has length {len(valid)}, expected {len(frames)}."
                )
        for arr in (frames, codes, valid):
            arr.setflags(write=False)
        object.__setattr__(self, "frames", frames)
        object.__setattr__(self, "zone_ids", zone_ids)
        object.__setattr__(self, "codes", codes)
        object.__setattr__(self, "valid", valid)

    @property
    def n_frames(self) -> int:
        return int(self.codes.shape[0])

    def _column(self, zone_id: str) -> int:
        try:
            return self.zone_ids.index(zone_id)
        except ValueError:
            raise KeyError(
                f"Zone '{zone_id}' was not classified. "
                f"Available zones: {list(self.zone_ids)}"
            ) from None

    def states(self, zone_id: str) -> NDArray[np.int8]:
        """Membership codes of one zone, one per frame."""
        return self.codes[:, self._column(zone_id)]

    def zones_at(self, index: int) -> frozenset[str]:
        """Zones containing the point at row ``index`` (empty if undefined)."""
        row = self.codes[index]
        return frozenset(z for z, c in zip(self.zone_ids, row) if c == Membership.INSIDE)

    def _primary_columns(self, primary_zones: Sequence[str] | None) -> list[int]:
        if primary_zones is None:
            return list(range(len(self.zone_ids)))
        primary_zones = list(primary_zones)
        if len(set(primary_zones)) != len(primary_zones):
            raise ValueError(f"primary_zones contains duplicates: {primary_zones}")
        reserved = {OUTSIDE_LABEL, UNDEFINED_LABEL} & set(primary_zones)
        if reserved:
            raise ValueError(
                f"Zone ids {sorted(reserved)} clash with the reserved transition "
                "labels; rename the zones to use them as primary zones."
            )
        return [self._column(z) for z in primary_zones]

    def primary_labels(self, primary_zones: Sequence[str] | None = None) -> NDArray[np.object_]:
        """One label per frame from an ordered set of primary zones.

        Parameters
        ----------
        primary_zones : sequence of str, optional
            Zone ids in priority order. Defaults to every classified zone in
            column order.

        Returns
        -------
        NDArray[np.object_], shape (n_frames,)
            The first primary zone containing the point, ``"outside"`` for
            valid frames in none of them, ``"undefined"`` for invalid frames.

        See Also
        --------
        overlap_frames : Frames inside more than one primary zone.
        """
        cols = self._primary_columns(primary_zones)
        labels = np.full(self.n_frames, OUTSIDE_LABEL, dtype=object)
        labels[~self.valid] = UNDEFINED_LABEL
        # Assign lowest priority first so earlier zones overwrite later ones
        for col in reversed(cols):
            labels[self.codes[:, col] == Membership.INSIDE] = self.zone_ids[col]
        return labels

    def overlap_frames(self, primary_zones: Sequence[str] | None = None) -> NDArray[np.int64]:
        """Row indices where the point is inside several primary zones."""
        cols = self._primary_columns(primary_zones)
        if not cols:
            return np.zeros(0, dtype=np.int64)
        n_inside = (self.codes[:, cols] == Membership.INSIDE).sum(axis=1)
        return np.flatnonzero(n_inside > 1)

    def to_dataframe(self) -> pd.DataFrame:
        """Long-form table with columns ``frame``, ``zone_id``, ``state``.

        ``state`` is a categorical of ``"inside"``, ``"outside"`` and
        ``"undefined"``, suitable for trajectory and heatmap renderers.
        """
        n_zones = len(self.zone_ids)
        names = {int(m): str(m) for m in Membership}
        states = [names[int(c)] for c in self.codes.reshape(-1)]
        return pd.DataFrame(
            {
                "frame": np.repeat(self.frames, n_zones),
                "zone_id": np.tile(np.array(self.zone_ids, dtype=object), self.n_frames),
                "state": pd.Categorical(
                    states, categories=[str(m) for m in Membership]
                ),
            }
        )


def classify(
    samples: PositionSamples,
    zones: Mapping[str, ResolvedGeometry],
    zone_ids: Sequence[str] | None = None,
) -> ZoneMembership:
    """Classify every sample against every zone.

    Parameters
    ----------
    samples : PositionSamples
        Positions in the same coordinate frame as the zones.
    zones : Mapping[str, ResolvedGeometry]
        Usually a :class:`~arenazones.resolver.ResolvedArena`.
    zone_ids : sequence of str, optional
        Subset and column order. Defaults to every zone in mapping order.

    Returns
    -------
    ZoneMembership

    Raises
    ------
    KeyError
        If a requested zone id is not in ``zones``.
    """
    ids = tuple(zones) if zone_ids is None else tuple(zone_ids)
    missing = [z for z in ids if z not in zones]
    if missing:
        raise KeyError(f"Unknown zone ids {missing}. Available zones: {list(zones)}")

    points = samples.points
    codes = np.empty((len(samples), len(ids)), dtype=np.int8)
    for j, zone_id in enumerate(ids):
        codes[:, j] = classify_points(zones[zone_id], points, samples.valid)
    return ZoneMembership(
        frames=samples.frames, zone_ids=ids, codes=codes, valid=samples.valid
    )
