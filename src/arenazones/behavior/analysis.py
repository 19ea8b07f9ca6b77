"""Trial and session analysis.

Ties the pipeline together::

    Arena ──resolve──▶ ResolvedArena ──(transform)──▶ zones in physical frame
    PositionSamples ──(transform)──▶ samples in physical frame
                         │
                         ▼
                   classify ──▶ ZoneMembership
                         │
             ┌───────────┴────────────┐
             ▼                        ▼
    summarize_zone (per zone)   transition_matrix (primary zones)
             └───────────┬────────────┘
                         ▼
                  AnalysisResult ──▶ pandas tables

Every call is independent and side-effect free; trials can be processed in
parallel by the caller.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Union

import pandas as pd

from arenazones.arena import Arena
from arenazones.behavior.occupancy import NEVER, ZoneSummary, summarize_zone
from arenazones.behavior.transitions import TransitionMatrix, transition_matrix
from arenazones.classification import (
    OUTSIDE_LABEL,
    UNDEFINED_LABEL,
    ZoneMembership,
    classify,
)
from arenazones.ops.transforms import Affine2D, CoordinateTransform
from arenazones.resolver import ResolvedArena, ResolvedGeometry
from arenazones.samples import PositionSamples
from arenazones.validation import validate_frame_rate, validate_min_dwell

__all__ = [
    "SUMMARY_COLUMNS",
    "AnalysisResult",
    "analyze_session",
    "analyze_trial",
    "session_to_dataframe",
]

logger = logging.getLogger("arenazones.analysis")

SUMMARY_COLUMNS = (
    "zone_id",
    "n_frames",
    "time_s",
    "percentage",
    "n_entries",
    "mean_dwell_s",
    "n_exits",
    "latency_s",
    "first_entry_frame",
)

ArenaLike = Union[Arena, ResolvedArena, Mapping[str, ResolvedGeometry]]


@dataclass(frozen=True, eq=False)
class AnalysisResult:
    """Zone statistics and transitions of one tracked point in one trial.

    Attributes
    ----------
    zones : dict[str, ZoneSummary]
        Per-zone statistics in arena declaration order.
    transitions : TransitionMatrix
        Counts between primary zones, ``"outside"`` and ``"undefined"``.
    frame_rate : float
        Frames per second used for every time value.
    n_frames : int
        Number of samples in the trial.
    n_valid_frames : int
        Number of samples with a valid position.
    min_dwell_frames : int
        Minimum dwell applied to entries, exits and transitions.
    membership : ZoneMembership
        Per-frame classification, for renderers.
    body_part : str or None
        Tracked point name when produced by :func:`analyze_session`.
    """

    zones: dict[str, ZoneSummary]
    transitions: TransitionMatrix
    frame_rate: float
    n_frames: int
    n_valid_frames: int
    min_dwell_frames: int = 0
    membership: ZoneMembership | None = field(default=None, repr=False)
    body_part: str | None = None

    def __getitem__(self, zone_id: str) -> ZoneSummary:
        try:
            return self.zones[zone_id]
        except KeyError:
            raise KeyError(
                f"Zone '{zone_id}' not analyzed. Available zones: {list(self.zones)}"
            ) from None

    @property
    def zone_ids(self) -> tuple[str, ...]:
        return tuple(self.zones)

    def to_dataframe(self) -> pd.DataFrame:
        """One row per zone.

        Columns are ``zone_id``, ``n_frames``, ``time_s``, ``percentage``,
        ``n_entries``, ``mean_dwell_s``, ``n_exits``, ``latency_s`` and
        ``first_entry_frame``. Undefined values (no valid frames, no complete
        dwell, never entered) are ``pd.NA`` in nullable columns.
        """
        summaries = list(self.zones.values())

        def _nullable(values: list, dtype: str) -> pd.api.extensions.ExtensionArray:
            return pd.array(
                [pd.NA if v is None or v is NEVER else v for v in values], dtype=dtype
            )

        return pd.DataFrame(
            {
                "zone_id": pd.Series([s.zone_id for s in summaries], dtype=object),
                "n_frames": pd.Series([s.n_frames for s in summaries], dtype="int64"),
                "time_s": pd.Series([s.time_s for s in summaries], dtype="float64"),
                "percentage": _nullable([s.percentage for s in summaries], "Float64"),
                "n_entries": pd.Series([s.n_entries for s in summaries], dtype="int64"),
                "mean_dwell_s": _nullable(
                    [s.mean_dwell_s for s in summaries], "Float64"
                ),
                "n_exits": pd.Series([s.n_exits for s in summaries], dtype="int64"),
                "latency_s": _nullable([s.latency_s for s in summaries], "Float64"),
                "first_entry_frame": _nullable(
                    [s.first_entry_frame for s in summaries], "Int64"
                ),
            },
            columns=list(SUMMARY_COLUMNS),
        )


def _as_coordinate_transform(
    transform: Affine2D | CoordinateTransform,
) -> CoordinateTransform:
    if isinstance(transform, CoordinateTransform):
        return transform
    if isinstance(transform, Affine2D):
        return CoordinateTransform((("affine", transform),))
    raise TypeError(
        "transform must be an Affine2D or CoordinateTransform, "
        f"got {type(transform).__name__}."
    )


def _prepare_zones(
    arena: ArenaLike, transform: CoordinateTransform | None
) -> Mapping[str, ResolvedGeometry]:
    if isinstance(arena, Arena):
        zones: Mapping[str, ResolvedGeometry] = arena.resolve()
    elif isinstance(arena, Mapping):
        zones = arena
    else:
        raise TypeError(
            "arena must be an Arena, a ResolvedArena or a mapping of resolved "
            f"zones, got {type(arena).__name__}."
        )
    if transform is None:
        return zones
    if isinstance(zones, ResolvedArena):
        return zones.transformed(transform)
    return {zone_id: geom.transformed(transform) for zone_id, geom in zones.items()}


def _analyze(
    samples: PositionSamples,
    zones: Mapping[str, ResolvedGeometry],
    frame_rate: float,
    *,
    primary_zones: Sequence[str] | None,
    min_dwell_frames: int,
    body_part: str | None = None,
) -> AnalysisResult:
    membership = classify(samples, zones)

    summaries = {
        zone_id: summarize_zone(
            zone_id,
            membership.states(zone_id),
            samples.frames,
            frame_rate,
            min_dwell_frames=min_dwell_frames,
        )
        for zone_id in membership.zone_ids
    }

    if primary_zones is None:
        # Zones named like the reserved labels can only come from a bare mapping
        primary = tuple(
            z for z in membership.zone_ids if z not in (OUTSIDE_LABEL, UNDEFINED_LABEL)
        )
    else:
        primary = tuple(primary_zones)
    overlap = membership.overlap_frames(primary)
    if len(overlap):
        logger.warning(
            "%d frame(s)%s inside more than one primary zone, first at frame %d; "
            "labelled by the first matching zone in %s",
            len(overlap),
            f" of '{body_part}'" if body_part else "",
            int(membership.frames[overlap[0]]),
            list(primary),
        )
    transitions = transition_matrix(
        membership.primary_labels(primary),
        primary,
        min_dwell_frames=min_dwell_frames,
    )

    logger.debug(
        "Analyzed %d frames (%d valid)%s across %d zones",
        len(samples),
        samples.n_valid,
        f" of '{body_part}'" if body_part else "",
        len(summaries),
    )
    return AnalysisResult(
        zones=summaries,
        transitions=transitions,
        frame_rate=frame_rate,
        n_frames=len(samples),
        n_valid_frames=samples.n_valid,
        min_dwell_frames=min_dwell_frames,
        membership=membership,
        body_part=body_part,
    )


def analyze_trial(
    samples: PositionSamples,
    arena: ArenaLike,
    frame_rate: float,
    *,
    transform: Affine2D | CoordinateTransform | None = None,
    primary_zones: Sequence[str] | None = None,
    min_dwell_frames: int | None = None,
    min_dwell: float | None = None,
) -> AnalysisResult:
    """Zone occupancy, entries, exits, latency and transitions for one trial.

    Parameters
    ----------
    samples : PositionSamples
        Positions of one tracked point.
    arena : Arena, ResolvedArena or mapping of resolved zones
        Zones to analyze. An :class:`Arena` is resolved (once, cached).
    frame_rate : float
        Frames per second.
    transform : Affine2D or CoordinateTransform, optional
        Raw-to-physical transform. When given, both the samples and the
        resolved zones are mapped before classification, so zones defined
        in raw coordinates stay aligned with the samples.
    primary_zones : sequence of str, optional
        Zones for the transition matrix, in priority order (a frame inside
        several of them is labelled by the first). Defaults to every zone
        whose id is not a reserved label (``"outside"``, ``"undefined"``).
    min_dwell_frames : int, optional
        Dwells shorter than this many frames are ignored for entries,
        exits, dwell durations, latency and transitions.
    min_dwell : float, optional
        Same filter in seconds, converted with ``ceil(min_dwell * frame_rate)``.
        Mutually exclusive with ``min_dwell_frames``.

    Returns
    -------
    AnalysisResult

    Raises
    ------
    ValueError
        For an invalid frame rate or minimum dwell.
    KeyError
        If a primary zone is not a zone of the arena.
    InvalidGeometryError
        If the transform cannot map a circle zone (non-uniform scale).

    Notes
    -----
    Missing or low-confidence samples never raise: they are classified as
    undefined, excluded from occupancy percentages, break dwells and appear
    as the ``"undefined"`` state of the transition matrix.

    Examples
    --------
    >>> import numpy as np
    >>> from arenazones import Arena, PositionSamples, RectangleZone
    >>> arena = Arena("box", zones=[RectangleZone("A", 0, 10, 0, 10)])
    >>> x = np.array([20, 20, 5, 5, 5, 20, 20, 5, 5, 20], dtype=float)
    >>> samples = PositionSamples.from_arrays(x, np.full(10, 5.0))
    >>> result = analyze_trial(samples, arena, frame_rate=25.0)
    >>> result["A"].n_entries, result["A"].latency_s
    (2, 0.08)
    """
    rate = validate_frame_rate(frame_rate)
    k = validate_min_dwell(rate, min_dwell_frames=min_dwell_frames, min_dwell=min_dwell)
    pipeline = None if transform is None else _as_coordinate_transform(transform)

    zones = _prepare_zones(arena, pipeline)
    if pipeline is not None:
        samples = pipeline.apply(samples)
    return _analyze(samples, zones, rate, primary_zones=primary_zones, min_dwell_frames=k)


def analyze_session(
    samples_by_point: Mapping[str, PositionSamples],
    arena: ArenaLike,
    frame_rate: float,
    *,
    transform: Affine2D | CoordinateTransform | None = None,
    primary_zones: Sequence[str] | None = None,
    min_dwell_frames: int | None = None,
    min_dwell: float | None = None,
) -> dict[str, AnalysisResult]:
    """Analyze several tracked points (body parts) of one trial.

    Parameters are those of :func:`analyze_trial`; zones are resolved and
    transformed once and shared by every point.

    Parameters
    ----------
    samples_by_point : Mapping[str, PositionSamples]
        Positions keyed by body-part name (e.g. ``"nose"``, ``"centroid"``).

    Returns
    -------
    dict[str, AnalysisResult]
        Results keyed like ``samples_by_point``, each with ``body_part`` set.

    See Also
    --------
    session_to_dataframe : Stack the per-zone tables of all points.
    """
    rate = validate_frame_rate(frame_rate)
    k = validate_min_dwell(rate, min_dwell_frames=min_dwell_frames, min_dwell=min_dwell)
    pipeline = None if transform is None else _as_coordinate_transform(transform)
    zones = _prepare_zones(arena, pipeline)

    results: dict[str, AnalysisResult] = {}
    for body_part, samples in samples_by_point.items():
        if pipeline is not None:
            samples = pipeline.apply(samples)
        results[body_part] = _analyze(
            samples,
            zones,
            rate,
            primary_zones=primary_zones,
            min_dwell_frames=k,
            body_part=body_part,
        )
    return results


def session_to_dataframe(results: Mapping[str, AnalysisResult]) -> pd.DataFrame:
    """Concatenate per-zone tables with a leading ``body_part`` column."""
    columns = ["body_part", *SUMMARY_COLUMNS]
    frames = []
    for body_part, result in results.items():
        table = result.to_dataframe()
        table.insert(0, "body_part", body_part)
        frames.append(table)
    if not frames:
        return pd.DataFrame(columns=columns)
    return pd.concat(frames, ignore_index=True)[columns]
