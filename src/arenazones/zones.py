"""Declarative zone definitions.

A zone is one of four closed kinds, each a frozen dataclass carrying only
its own parameters:

PolygonZone
    Ordered vertices, each a reference-point name or an ``(x, y)`` literal.
CircleZone
    Center (point name or literal) and a positive radius, in raw units or
    in the units of the arena calibration.
RectangleZone
    Axis-aligned bounds ``x_min < x_max``, ``y_min < y_max``, or two
    opposite corners.
ProportionalZone
    Fractional sub-box ``(fx_min, fy_min, fx_max, fy_max)`` of a parent
    zone's bounding box, optionally minus an excluded sibling zone.

Definitions are validated field by field on construction. Cross-references
(point names, parent zones) are checked by :class:`arenazones.arena.Arena`,
and turned into concrete geometry by :mod:`arenazones.resolver`.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, ClassVar, Union

import numpy as np

from arenazones.validation import ConfigurationError

__all__ = [
    "CircleZone",
    "PointRef",
    "PolygonZone",
    "ProportionalZone",
    "RectangleZone",
    "ReferencePoint",
    "Zone",
    "ZONE_TYPES",
    "zone_from_dict",
]

PointRef = Union[str, tuple[float, float]]


def _as_point_ref(value: Any, *, zone_id: str, field_name: str) -> PointRef:
    """Normalize a point reference to a name or a float 2-tuple."""
    if isinstance(value, str):
        if not value:
            raise ConfigurationError(
                "point reference names must be non-empty strings.",
                zone_id=zone_id,
                field=field_name,
                rule="point_ref",
                error_code="E2007",
            )
        return value
    arr = np.asarray(value, dtype=np.float64)
    if arr.shape != (2,) or not np.all(np.isfinite(arr)):
        raise ConfigurationError(
            f"WHAT: '{field_name}' entry {value!r} is neither a point name "
            "nor a finite (x, y) pair.\n"
            "WHY: Zone vertices and centers must resolve to 2D coordinates.\n"
            "HOW: Use a reference point name or a literal [x, y].",
            zone_id=zone_id,
            field=field_name,
            rule="point_ref",
            error_code="E2007",
        )
    return (float(arr[0]), float(arr[1]))


def _finite(value: Any, *, zone_id: str, field_name: str) -> float:
    try:
        out = float(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            f"'{field_name}' must be a number (got {value!r}).",
            zone_id=zone_id,
            field=field_name,
            rule="numeric",
            error_code="E2006",
        ) from e
    if not math.isfinite(out):
        raise ConfigurationError(
            f"'{field_name}' must be finite (got {value!r}).",
            zone_id=zone_id,
            field=field_name,
            rule="numeric",
            error_code="E2006",
        )
    return out


def _check_id(zone_id: Any) -> None:
    if not isinstance(zone_id, str) or not zone_id:
        raise ConfigurationError(
            f"zone id must be a non-empty string (got {zone_id!r}).",
            field="id",
            rule="zone_id",
            error_code="E2007",
        )


def _ref_to_json(ref: PointRef) -> str | list[float]:
    return ref if isinstance(ref, str) else [ref[0], ref[1]]


@dataclass(frozen=True)
class ReferencePoint:
    """Named landmark in raw (pre-transform) arena coordinates.

    Attributes
    ----------
    name : str
        Unique name within the arena (e.g. ``"top_left"``).
    x, y : float
        Raw coordinates, typically video pixels.
    """

    name: str
    x: float
    y: float

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name:
            raise ConfigurationError(
                f"reference point names must be non-empty strings (got {self.name!r}).",
                field="points",
                rule="point_name",
                error_code="E2002",
            )
        for attr in ("x", "y"):
            value = getattr(self, attr)
            try:
                coord = float(value)
            except (TypeError, ValueError) as e:
                raise ConfigurationError(
                    f"reference point '{self.name}' has non-numeric {attr}={value!r}.",
                    field="points",
                    rule="point_coords",
                    error_code="E2002",
                ) from e
            if not math.isfinite(coord):
                raise ConfigurationError(
                    f"reference point '{self.name}' has non-finite {attr}={value!r}.",
                    field="points",
                    rule="point_coords",
                    error_code="E2002",
                )
            object.__setattr__(self, attr, coord)

    @property
    def coords(self) -> tuple[float, float]:
        """The point as an ``(x, y)`` tuple."""
        return (self.x, self.y)


@dataclass(frozen=True)
class PolygonZone:
    """Closed polygon through ordered vertices.

    Vertex count is checked at resolution time, after point names have been
    looked up and repeated vertices dropped.

    Examples
    --------
    >>> zone = PolygonZone("open_arm", vertices=("a", "b", (10.0, 0.0)))
    >>> zone.point_names
    ('a', 'b')
    """

    id: str
    vertices: tuple[PointRef, ...]
    name: str | None = None

    type: ClassVar[str] = "polygon"

    def __post_init__(self) -> None:
        _check_id(self.id)
        if isinstance(self.vertices, (str, bytes)) or not isinstance(
            self.vertices, Sequence
        ):
            raise ConfigurationError(
                "'vertices' must be a sequence of point names or (x, y) pairs.",
                zone_id=self.id,
                field="vertices",
                rule="vertices",
                error_code="E2007",
            )
        verts = tuple(
            _as_point_ref(v, zone_id=self.id, field_name="vertices")
            for v in self.vertices
        )
        object.__setattr__(self, "vertices", verts)
        if self.name is None:
            object.__setattr__(self, "name", self.id)

    @property
    def point_names(self) -> tuple[str, ...]:
        """Reference-point names used by this zone, in vertex order."""
        return tuple(v for v in self.vertices if isinstance(v, str))

    @property
    def depends_on(self) -> tuple[str, ...]:
        return ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "vertices": [_ref_to_json(v) for v in self.vertices],
        }


@dataclass(frozen=True)
class CircleZone:
    """Disc around ``center`` (boundary inclusive).

    The radius is given either in raw units (``radius``) or in the physical
    units of the arena calibration (``physical_radius``); the latter is
    converted to raw units at resolution time as
    ``physical_radius / units_per_raw``.

    Examples
    --------
    >>> CircleZone("cup", center="hub", physical_radius=5.0).radius is None
    True
    """

    id: str
    center: PointRef
    radius: float | None = None
    name: str | None = None
    physical_radius: float | None = None

    type: ClassVar[str] = "circle"

    def __post_init__(self) -> None:
        _check_id(self.id)
        object.__setattr__(
            self, "center", _as_point_ref(self.center, zone_id=self.id, field_name="center")
        )
        if (self.radius is None) == (self.physical_radius is None):
            raise ConfigurationError(
                "WHAT: circle zone needs exactly one of 'radius' or 'physical_radius'.\n"
                "WHY: The radius is either in raw units or in calibrated units, "
                "not both.\n"
                "HOW: Give 'radius' in reference-point units, or "
                "'physical_radius' (e.g. cm) for a calibrated arena.",
                zone_id=self.id,
                field="radius",
                rule="radius_form",
                error_code="E2007",
            )
        field_name = "radius" if self.radius is not None else "physical_radius"
        radius = _finite(getattr(self, field_name), zone_id=self.id, field_name=field_name)
        if radius <= 0.0:
            raise ConfigurationError(
                f"WHAT: {field_name} must be positive (got {radius}).\n"
                "WHY: A circle zone with non-positive radius contains no points.\n"
                "HOW: Give a positive radius.",
                zone_id=self.id,
                field=field_name,
                rule="positive_radius",
                error_code="E2006",
            )
        object.__setattr__(self, field_name, radius)
        if self.name is None:
            object.__setattr__(self, "name", self.id)

    @property
    def point_names(self) -> tuple[str, ...]:
        return (self.center,) if isinstance(self.center, str) else ()

    @property
    def depends_on(self) -> tuple[str, ...]:
        return ()

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "center": _ref_to_json(self.center),
        }
        if self.radius is not None:
            out["radius"] = self.radius
        else:
            out["physical_radius"] = self.physical_radius
        return out


_BOUND_NAMES = ("x_min", "x_max", "y_min", "y_max")


@dataclass(frozen=True)
class RectangleZone:
    """Axis-aligned rectangle ``[x_min, x_max] x [y_min, y_max]``.

    Either the four bounds are given, or ``corners``: two opposite corners
    (point names or literals) whose coordinates span the rectangle once
    looked up.

    Examples
    --------
    >>> RectangleZone("nest", corners=("nest_a", "nest_b")).point_names
    ('nest_a', 'nest_b')
    """

    id: str
    x_min: float | None = None
    x_max: float | None = None
    y_min: float | None = None
    y_max: float | None = None
    name: str | None = None
    corners: tuple[PointRef, PointRef] | None = None

    type: ClassVar[str] = "rectangle"

    def __post_init__(self) -> None:
        _check_id(self.id)
        given = [attr for attr in _BOUND_NAMES if getattr(self, attr) is not None]
        if self.corners is not None:
            if given:
                raise ConfigurationError(
                    "WHAT: rectangle has both 'corners' and explicit bounds.\n"
                    "WHY: The two forms could disagree.\n"
                    "HOW: Keep either the corner points or x_min/x_max/y_min/y_max.",
                    zone_id=self.id,
                    field="corners",
                    rule="rectangle_form",
                    error_code="E2007",
                )
            self._set_corners()
        else:
            if len(given) != len(_BOUND_NAMES):
                missing = [attr for attr in _BOUND_NAMES if attr not in given]
                raise ConfigurationError(
                    f"WHAT: rectangle is missing {missing}.\n"
                    "WHY: A rectangle needs all four bounds or two corner points.\n"
                    "HOW: Give x_min, x_max, y_min and y_max, or 'corners'.",
                    zone_id=self.id,
                    field=missing[0],
                    rule="rectangle_form",
                    error_code="E2007",
                )
            self._set_bounds()
        if self.name is None:
            object.__setattr__(self, "name", self.id)

    def _set_corners(self) -> None:
        corners = self.corners
        try:
            n_corners = len(corners)
        except TypeError:
            n_corners = 0
        if isinstance(corners, (str, bytes)) or n_corners != 2:
            raise ConfigurationError(
                f"'corners' must be two opposite corners (got {corners!r}).",
                zone_id=self.id,
                field="corners",
                rule="rectangle_form",
                error_code="E2007",
            )
        object.__setattr__(
            self,
            "corners",
            tuple(_as_point_ref(c, zone_id=self.id, field_name="corners") for c in corners),
        )

    def _set_bounds(self) -> None:
        for attr in _BOUND_NAMES:
            object.__setattr__(
                self, attr, _finite(getattr(self, attr), zone_id=self.id, field_name=attr)
            )
        for lo, hi in (("x_min", "x_max"), ("y_min", "y_max")):
            if not getattr(self, lo) < getattr(self, hi):
                raise ConfigurationError(
                    f"WHAT: {lo} ({getattr(self, lo)}) must be less than "
                    f"{hi} ({getattr(self, hi)}).\n"
                    "WHY: Inverted or empty bounds describe no region.\n"
                    f"HOW: Swap or correct the {lo}/{hi} values.",
                    zone_id=self.id,
                    field=lo,
                    rule="ordered_bounds",
                    error_code="E2006",
                )

    @property
    def bounds(self) -> tuple[float, float, float, float] | None:
        """``(x_min, y_min, x_max, y_max)``, shapely ordering; None for corner form."""
        if self.corners is not None:
            return None
        return (self.x_min, self.y_min, self.x_max, self.y_max)

    @property
    def point_names(self) -> tuple[str, ...]:
        if self.corners is None:
            return ()
        return tuple(c for c in self.corners if isinstance(c, str))

    @property
    def depends_on(self) -> tuple[str, ...]:
        return ()

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"id": self.id, "name": self.name, "type": self.type}
        if self.corners is not None:
            out["corners"] = [_ref_to_json(c) for c in self.corners]
        else:
            out.update({attr: getattr(self, attr) for attr in _BOUND_NAMES})
        return out


@dataclass(frozen=True)
class ProportionalZone:
    """Fractional sub-box of another zone's bounding box.

    Attributes
    ----------
    id : str
        Zone id.
    parent_zone : str
        Id of the zone whose bounding box the fractions apply to. The parent
        may itself be proportional.
    fraction : tuple of float
        ``(fx_min, fy_min, fx_max, fy_max)``, each in [0, 1], measured from
        the parent's ``(x_min, y_min)`` corner.
    exclude : str or None
        Optional sibling zone subtracted from the box. The effective region
        is then "inside own box AND NOT inside ``exclude``", which is not a
        rectangle in general.
    name : str or None
        Display name, defaults to ``id``.

    Examples
    --------
    Open-field periphery as floor minus center:

    >>> center = ProportionalZone("center", "floor", (0.25, 0.25, 0.75, 0.75))
    >>> periphery = ProportionalZone(
    ...     "periphery", "floor", (0.0, 0.0, 1.0, 1.0), exclude="center"
    ... )
    >>> periphery.depends_on
    ('floor', 'center')
    """

    id: str
    parent_zone: str
    fraction: tuple[float, float, float, float]
    exclude: str | None = None
    name: str | None = None

    type: ClassVar[str] = "proportional"

    def __post_init__(self) -> None:
        _check_id(self.id)
        if not isinstance(self.parent_zone, str) or not self.parent_zone:
            raise ConfigurationError(
                "'parent_zone' must name another zone.",
                zone_id=self.id,
                field="parent_zone",
                rule="parent_zone",
                error_code="E2007",
            )
        if self.exclude is not None and (
            not isinstance(self.exclude, str) or not self.exclude
        ):
            raise ConfigurationError(
                "'exclude' must name another zone or be omitted.",
                zone_id=self.id,
                field="exclude",
                rule="exclude",
                error_code="E2007",
            )
        if isinstance(self.fraction, (str, bytes)) or len(self.fraction) != 4:
            raise ConfigurationError(
                f"WHAT: 'fraction' must have 4 values, got {self.fraction!r}.\n"
                "WHY: A proportional zone is a sub-box (fx_min, fy_min, fx_max, fy_max).\n"
                "HOW: Give fractions of the parent's bounding box, e.g. "
                "(0.25, 0.25, 0.75, 0.75).",
                zone_id=self.id,
                field="fraction",
                rule="fraction_length",
                error_code="E2006",
            )
        frac = tuple(
            _finite(f, zone_id=self.id, field_name="fraction") for f in self.fraction
        )
        if any(f < 0.0 or f > 1.0 for f in frac):
            raise ConfigurationError(
                f"fractions must lie in [0, 1] (got {frac}).",
                zone_id=self.id,
                field="fraction",
                rule="fraction_range",
                error_code="E2006",
            )
        if not (frac[0] < frac[2] and frac[1] < frac[3]):
            raise ConfigurationError(
                f"WHAT: fraction {frac} is inverted or empty.\n"
                "WHY: fx_min < fx_max and fy_min < fy_max are required.\n"
                "HOW: Order the fractions as (fx_min, fy_min, fx_max, fy_max).",
                zone_id=self.id,
                field="fraction",
                rule="ordered_bounds",
                error_code="E2006",
            )
        object.__setattr__(self, "fraction", frac)
        if self.name is None:
            object.__setattr__(self, "name", self.id)

    @property
    def point_names(self) -> tuple[str, ...]:
        return ()

    @property
    def depends_on(self) -> tuple[str, ...]:
        """Zone ids that must be resolved before this one."""
        if self.exclude is None:
            return (self.parent_zone,)
        return (self.parent_zone, self.exclude)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "parent_zone": self.parent_zone,
            "fraction": list(self.fraction),
        }
        if self.exclude is not None:
            out["exclude"] = self.exclude
        return out


Zone = Union[PolygonZone, CircleZone, RectangleZone, ProportionalZone]

ZONE_TYPES: dict[str, type] = {
    "polygon": PolygonZone,
    "circle": CircleZone,
    "rectangle": RectangleZone,
    "proportional": ProportionalZone,
}

# Tags used by older arena definition files
_TYPE_ALIASES = {"points": "polygon", "proportion": "proportional"}
_KEY_ALIASES = {
    "polygon": {"point_names": "vertices"},
    "circle": {"center_point": "center", "radius_cm": "physical_radius"},
    "rectangle": {"point_names": "corners"},
    "proportional": {"proportion": "fraction"},
}


def zone_from_dict(data: Mapping[str, Any]) -> Zone:
    """Build a zone from its dictionary form.

    Parameters
    ----------
    data : Mapping
        Must contain ``id`` and ``type``; the remaining keys are the fields
        of the zone class for that type. ``type: points`` / ``point_names``
        and ``type: proportion`` / ``proportion`` are accepted as aliases,
        as are ``point_names`` for the two corners of a rectangle and
        ``center_point`` / ``radius_cm`` for circles.

    Returns
    -------
    Zone
        The zone definition.

    Raises
    ------
    ConfigurationError
        If the type is unknown or required fields are missing.

    Examples
    --------
    >>> zone_from_dict({"id": "c", "type": "circle", "center": [0, 0], "radius": 5})
    CircleZone(id='c', center=(0.0, 0.0), radius=5.0, name='c', physical_radius=None)
    """
    if not isinstance(data, Mapping):
        raise ConfigurationError(
            f"zone definitions must be mappings (got {type(data).__name__}).",
            rule="zone_mapping",
            error_code="E2007",
        )
    zone_id = data.get("id")
    raw_type = data.get("type")
    zone_type = _TYPE_ALIASES.get(raw_type, raw_type)
    if zone_type not in ZONE_TYPES:
        raise ConfigurationError(
            f"WHAT: unknown zone type {raw_type!r}.\n"
            f"WHY: Zones must be one of {sorted(ZONE_TYPES)}.\n"
            "HOW: Set 'type' to a supported zone kind.",
            zone_id=zone_id if isinstance(zone_id, str) else None,
            field="type",
            rule="zone_type",
            error_code="E2007",
        )
    aliases = _KEY_ALIASES.get(zone_type, {})
    kwargs = {
        aliases.get(key, key): value
        for key, value in data.items()
        if key != "type"
    }
    cls = ZONE_TYPES[zone_type]
    try:
        return cls(**kwargs)
    except TypeError as e:
        raise ConfigurationError(
            f"WHAT: malformed {zone_type} zone definition ({e}).\n"
            f"WHY: Fields must match {cls.__name__}.\n"
            f"HOW: Check the keys of the '{zone_id}' entry.",
            zone_id=zone_id if isinstance(zone_id, str) else None,
            field="type",
            rule="zone_fields",
            error_code="E2007",
        ) from e
