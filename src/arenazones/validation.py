"""Error types and argument validators for arenazones.

Configuration problems (bad zone definitions, broken references, cyclic
zone dependencies) raise :class:`ConfigurationError`. Degenerate geometry
(coincident calibration points, collapsed polygons, transforms that cannot
carry a zone into the physical frame) raises :class:`InvalidGeometryError`.

Both inherit from ``ValueError`` so callers that already catch
``ValueError`` keep working. Every message carries a bracketed error code
followed by WHAT / WHY / HOW guidance.

Error Codes
-----------
E2001  duplicate zone id
E2002  duplicate or malformed reference point
E2003  zone references an undefined point
E2004  zone references an undefined parent or excluded zone
E2005  cyclic zone dependency
E2006  invalid numeric parameter
E2007  unknown zone type or malformed zone definition
E2008  zone id reserved for a transition-matrix label
E2009  physical radius given for an arena without calibration
E3001  coincident calibration points
E3002  polygon with fewer than three distinct vertices, or a flat rectangle
E3003  transform cannot map a circle zone
E3004  non-invertible transform
"""

from __future__ import annotations

import math

import numpy as np


class ConfigurationError(ValueError):
    """Raised when an arena or zone configuration is invalid.

    Parameters
    ----------
    message : str
        Human readable description (WHAT / WHY / HOW).
    zone_id : str or None, optional
        Offending zone id, if the problem is tied to a zone.
    field : str or None, optional
        Name of the offending field (``"parent_zone"``, ``"radius"``, ...).
    rule : str or None, optional
        Short identifier of the broken rule (``"unique_id"``, ``"acyclic"``, ...).
    error_code : str, optional
        Error code prefixed to the message. Default is "E2000".

    Examples
    --------
    >>> err = ConfigurationError(
    ...     "duplicate zone id", zone_id="center", field="id", rule="unique_id"
    ... )
    >>> err.zone_id
    'center'
    """

    def __init__(
        self,
        message: str,
        *,
        zone_id: str | None = None,
        field: str | None = None,
        rule: str | None = None,
        error_code: str = "E2000",
    ) -> None:
        prefix = f"[{error_code}] "
        if zone_id is not None:
            prefix += f"Zone '{zone_id}': "
        super().__init__(prefix + message)
        self.zone_id = zone_id
        self.field = field
        self.rule = rule
        self.error_code = error_code


class InvalidGeometryError(ValueError):
    """Raised when geometry or transform inputs are degenerate.

    Parameters
    ----------
    message : str
        Human readable description (WHAT / WHY / HOW).
    zone_id : str or None, optional
        Offending zone id, if any.
    field : str or None, optional
        Offending field name, if any.
    error_code : str, optional
        Error code prefixed to the message. Default is "E3000".
    """

    def __init__(
        self,
        message: str,
        *,
        zone_id: str | None = None,
        field: str | None = None,
        error_code: str = "E3000",
    ) -> None:
        prefix = f"[{error_code}] "
        if zone_id is not None:
            prefix += f"Zone '{zone_id}': "
        super().__init__(prefix + message)
        self.zone_id = zone_id
        self.field = field
        self.error_code = error_code


def validate_frame_rate(frame_rate: float) -> float:
    """Validate a frame rate in Hz.

    Parameters
    ----------
    frame_rate : float
        Sampling rate of the tracking data (frames per second).

    Returns
    -------
    float
        The frame rate as a Python float.

    Raises
    ------
    ValueError
        If the frame rate is not a finite positive number.

    Examples
    --------
    >>> validate_frame_rate(25)
    25.0
    """
    try:
        rate = float(frame_rate)
    except (TypeError, ValueError) as e:
        raise ValueError(
            f"frame_rate must be a number (got {frame_rate!r})."
        ) from e
    if not math.isfinite(rate) or rate <= 0.0:
        raise ValueError(
            f"WHAT: frame_rate must be a finite positive number (got {frame_rate}).\n"
            "WHY: Frame counts are converted to seconds by dividing by the frame rate.\n"
            "HOW: Pass the acquisition rate of the tracking video in Hz."
        )
    return rate


def validate_min_dwell(
    frame_rate: float,
    *,
    min_dwell_frames: int | None = None,
    min_dwell: float | None = None,
) -> int:
    """Resolve the minimum-dwell filter to a whole number of frames.

    Parameters
    ----------
    frame_rate : float
        Frame rate in Hz, used to convert ``min_dwell`` seconds to frames.
    min_dwell_frames : int or None, optional
        Minimum dwell length in frames.
    min_dwell : float or None, optional
        Minimum dwell length in seconds. Converted with
        ``ceil(min_dwell * frame_rate)``.

    Returns
    -------
    int
        Minimum dwell in frames (0 disables filtering).

    Raises
    ------
    ValueError
        If both forms are given, or either is negative.

    Examples
    --------
    >>> validate_min_dwell(25.0, min_dwell=0.1)
    3
    >>> validate_min_dwell(25.0)
    0
    """
    if min_dwell_frames is not None and min_dwell is not None:
        raise ValueError(
            "Specify the minimum dwell either in frames (min_dwell_frames) "
            "or in seconds (min_dwell), not both."
        )
    if min_dwell is not None:
        if not np.isfinite(min_dwell) or min_dwell < 0:
            raise ValueError(f"min_dwell must be non-negative (got {min_dwell}).")
        # Guard against 0.1 * 30 = 3.0000000000000004 rounding up to 4
        return int(math.ceil(round(float(min_dwell) * frame_rate, 9)))
    if min_dwell_frames is None:
        return 0
    if int(min_dwell_frames) != min_dwell_frames or min_dwell_frames < 0:
        raise ValueError(
            f"min_dwell_frames must be a non-negative integer (got {min_dwell_frames})."
        )
    return int(min_dwell_frames)
