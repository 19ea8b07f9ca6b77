"""Arena model: reference points, zone definitions and calibration.

An :class:`Arena` is pure data. Constructing one validates every rule that
can be checked without computing geometry (unique ids and names, defined
references, acyclic zone dependencies, calibration references), so an
arena that exists is guaranteed to resolve unless a polygon collapses to
fewer than three distinct vertices or two rectangle corners share an axis.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from functools import cached_property
from types import MappingProxyType
from typing import Any

import networkx as nx

from arenazones.classification import OUTSIDE_LABEL, UNDEFINED_LABEL
from arenazones.ops.transforms import CoordinateTransform, build_transform
from arenazones.ops.transforms import units_per_raw as _units_per_raw
from arenazones.resolver import (
    ResolvedArena,
    resolution_order,
    resolve_zones,
    zone_dependency_graph,
)
from arenazones.validation import ConfigurationError
from arenazones.zones import (
    CircleZone,
    PointRef,
    ProportionalZone,
    ReferencePoint,
    Zone,
    zone_from_dict,
)

__all__ = ["Arena", "Calibration"]

_RESERVED_ZONE_IDS = frozenset({OUTSIDE_LABEL, UNDEFINED_LABEL})
_POINT_FIELDS = {"polygon": "vertices", "circle": "center", "rectangle": "corners"}


@dataclass(frozen=True)
class Calibration:
    """Two raw-coordinate points a known physical distance apart.

    Attributes
    ----------
    point1, point2 : str or tuple of float
        Reference-point names or literal ``(x, y)`` pairs.
    real_distance : float
        Physical distance between the points.
    units : str, default="cm"
        Label of the physical unit.
    """

    point1: PointRef
    point2: PointRef
    real_distance: float
    units: str = "cm"

    def __post_init__(self) -> None:
        for attr in ("point1", "point2"):
            value = getattr(self, attr)
            if not isinstance(value, str):
                object.__setattr__(self, attr, (float(value[0]), float(value[1])))
        object.__setattr__(self, "real_distance", float(self.real_distance))

    def to_dict(self) -> dict[str, Any]:
        def _ref(ref: PointRef) -> str | list[float]:
            return ref if isinstance(ref, str) else [ref[0], ref[1]]

        return {
            "point1": _ref(self.point1),
            "point2": _ref(self.point2),
            "real_distance": self.real_distance,
            "units": self.units,
        }


def _points_mapping(points: Any) -> dict[str, ReferencePoint]:
    """Normalize reference points given as a mapping or a sequence."""
    if points is None:
        return {}
    if isinstance(points, Mapping):
        items: Iterable[ReferencePoint] = (
            p if isinstance(p, ReferencePoint) else ReferencePoint(name, *p)
            for name, p in points.items()
        )
    else:
        items = points

    out: dict[str, ReferencePoint] = {}
    for p in items:
        if not isinstance(p, ReferencePoint):
            raise ConfigurationError(
                f"reference points must be ReferencePoint objects (got {p!r}).",
                field="points",
                rule="point_type",
                error_code="E2002",
            )
        if p.name in out:
            raise ConfigurationError(
                f"WHAT: reference point '{p.name}' is defined more than once.\n"
                "WHY: Zones refer to points by name.\n"
                "HOW: Rename or remove the duplicate point.",
                field="points",
                rule="unique_point_name",
                error_code="E2002",
            )
        out[p.name] = p
    return out


def _zones_mapping(zones: Sequence[Zone] | Mapping[str, Zone] | None) -> dict[str, Zone]:
    if zones is None:
        return {}
    items = zones.values() if isinstance(zones, Mapping) else zones
    out: dict[str, Zone] = {}
    for zone in items:
        if zone.id in out:
            raise ConfigurationError(
                f"WHAT: zone id '{zone.id}' is used more than once.\n"
                "WHY: Zone ids key results and parent_zone references.\n"
                "HOW: Give every zone of the arena a distinct id.",
                zone_id=zone.id,
                field="id",
                rule="unique_id",
                error_code="E2001",
            )
        if zone.id in _RESERVED_ZONE_IDS:
            raise ConfigurationError(
                f"WHAT: zone id '{zone.id}' is reserved.\n"
                f"WHY: {sorted(_RESERVED_ZONE_IDS)} label frames outside every "
                "primary zone and frames without a valid position in the "
                "transition matrix.\n"
                "HOW: Rename the zone, e.g. 'outer_ring'.",
                zone_id=zone.id,
                field="id",
                rule="reserved_id",
                error_code="E2008",
            )
        out[zone.id] = zone
    return out


@dataclass(frozen=True)
class Arena:
    """Declarative arena: named points, zones and optional calibration.

    Parameters
    ----------
    id : str
        Arena identifier (e.g. ``"epm"``, ``"open_field"``).
    points : mapping or sequence, optional
        Reference points, either ``{name: (x, y)}`` or a sequence of
        :class:`ReferencePoint`. Stored as a read-only
        ``{name: ReferencePoint}`` mapping.
    zones : sequence of Zone, optional
        Zone definitions. Declaration order is kept and used for result
        tables and to break ties in the resolution order. Stored as a
        read-only ``{zone_id: Zone}`` mapping.
    calibration : Calibration or None, optional
        Raw-to-physical scale reference.
    metadata : dict, optional
        Free-form information (apparatus, room, ...), carried through
        :meth:`to_dict`.

    Raises
    ------
    ConfigurationError
        If ids or names collide, a zone references an undefined point or
        zone, a zone references itself, zone dependencies form a cycle, or
        a zone id is one of the reserved labels ``"outside"`` and
        ``"undefined"``.

    Examples
    --------
    >>> from arenazones import CircleZone, PolygonZone
    >>> arena = Arena(
    ...     "ymaze",
    ...     points={"a": (0, 0), "b": (10, 0), "c": (5, 8)},
    ...     zones=[
    ...         PolygonZone("hub", ("a", "b", "c")),
    ...         CircleZone("cup", center="c", radius=2.0),
    ...     ],
    ... )
    >>> arena.zone_ids
    ('hub', 'cup')
    """

    id: str
    points: Mapping[str, ReferencePoint] = field(default_factory=dict)
    zones: Mapping[str, Zone] = field(default_factory=dict)
    calibration: Calibration | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Read-only views; the resolved geometry is cached
        object.__setattr__(self, "points", MappingProxyType(_points_mapping(self.points)))
        object.__setattr__(self, "zones", MappingProxyType(_zones_mapping(self.zones)))
        object.__setattr__(self, "metadata", dict(self.metadata or {}))
        self._check_point_references()
        self._check_zone_references()
        self._check_calibration()

    # ---- validation --------------------------------------------------
    def _check_point_references(self) -> None:
        for zone in self.zones.values():
            for name in zone.point_names:
                if name not in self.points:
                    raise ConfigurationError(
                        f"WHAT: references undefined point '{name}'.\n"
                        "WHY: Polygon vertices, circle centers and rectangle "
                        "corners given by name must be reference points of the "
                        "arena.\n"
                        f"HOW: Define point '{name}' or use a literal (x, y). "
                        f"Defined points: {sorted(self.points)}",
                        zone_id=zone.id,
                        field=_POINT_FIELDS[zone.type],
                        rule="defined_point",
                        error_code="E2003",
                    )

    def _check_zone_references(self) -> None:
        for zone in self.zones.values():
            if not isinstance(zone, ProportionalZone):
                continue
            for field_name, target in (
                ("parent_zone", zone.parent_zone),
                ("exclude", zone.exclude),
            ):
                if target == zone.id:
                    raise ConfigurationError(
                        f"WHAT: {field_name} refers to the zone itself.\n"
                        "WHY: A zone cannot be derived from its own geometry.\n"
                        "HOW: Point it at another zone of the arena.",
                        zone_id=zone.id,
                        field=field_name,
                        rule="acyclic",
                        error_code="E2005",
                    )
        # Undefined references (E2004) and cycles (E2005)
        resolution_order(zone_dependency_graph(self.zones.values()))

    def _check_calibration(self) -> None:
        if self.calibration is None:
            for zone in self.zones.values():
                if isinstance(zone, CircleZone) and zone.physical_radius is not None:
                    raise ConfigurationError(
                        f"WHAT: physical_radius {zone.physical_radius} needs a "
                        "calibrated arena.\n"
                        "WHY: The radius is converted to raw units with the "
                        "calibration scale.\n"
                        "HOW: Add a calibration or give 'radius' in raw units.",
                        zone_id=zone.id,
                        field="physical_radius",
                        rule="calibration_required",
                        error_code="E2009",
                    )
            return
        for attr in ("point1", "point2"):
            ref = getattr(self.calibration, attr)
            if isinstance(ref, str) and ref not in self.points:
                raise ConfigurationError(
                    f"calibration {attr} references undefined point '{ref}'.",
                    field=f"calibration.{attr}",
                    rule="defined_point",
                    error_code="E2003",
                )
        if not self.calibration.real_distance > 0:
            raise ConfigurationError(
                "calibration real_distance must be positive "
                f"(got {self.calibration.real_distance}).",
                field="calibration.real_distance",
                rule="positive_distance",
                error_code="E2006",
            )

    # ---- lookup ------------------------------------------------------
    def point(self, name: str) -> ReferencePoint:
        """Reference point by name.

        Raises
        ------
        KeyError
            If no point of that name exists.
        """
        try:
            return self.points[name]
        except KeyError:
            raise KeyError(
                f"Point '{name}' not found. Available points: {list(self.points)}"
            ) from None

    def zone(self, zone_id: str) -> Zone:
        """Zone definition by id.

        Raises
        ------
        KeyError
            If no zone of that id exists.
        """
        try:
            return self.zones[zone_id]
        except KeyError:
            raise KeyError(
                f"Zone '{zone_id}' not found. Available zones: {list(self.zones)}"
            ) from None

    @property
    def zone_ids(self) -> tuple[str, ...]:
        """Zone ids in declaration order."""
        return tuple(self.zones)

    def dependency_graph(self) -> nx.DiGraph:
        """Zone dependency graph, edge ``child -> dependency``.

        See Also
        --------
        arenazones.resolver.zone_dependency_graph
        """
        return zone_dependency_graph(self.zones.values())

    # ---- calibration -------------------------------------------------
    def _coords(self, ref: PointRef) -> tuple[float, float]:
        return self.point(ref).coords if isinstance(ref, str) else ref

    @property
    def units_per_raw(self) -> float | None:
        """Physical units per raw unit from the calibration, or None.

        Raises
        ------
        InvalidGeometryError
            If the calibration points coincide.
        """
        if self.calibration is None:
            return None
        return _units_per_raw(
            self._coords(self.calibration.point1),
            self._coords(self.calibration.point2),
            self.calibration.real_distance,
        )

    def default_transform(
        self, *, flip_y: bool = False, flip_height: float = 0.0
    ) -> CoordinateTransform:
        """Calibration scale, optionally followed by a y-axis flip.

        Parameters
        ----------
        flip_y : bool, default=False
            Invert the y-axis after scaling.
        flip_height : float, default=0.0
            Reflection offset in physical units (``y' = flip_height - y``).

        Returns
        -------
        CoordinateTransform
            Pipeline usable for both samples and resolved geometry. Without
            calibration the scale stage is omitted.

        Examples
        --------
        >>> import numpy as np
        >>> from arenazones import Calibration
        >>> arena = Arena(
        ...     "oft",
        ...     points={"p1": (0, 0), "p2": (100, 0)},
        ...     calibration=Calibration("p1", "p2", real_distance=20.0),
        ... )
        >>> arena.default_transform()(np.array([[100.0, 0.0]]))
        array([[20.,  0.]])
        """
        return build_transform(
            scale=self.units_per_raw, flip=flip_y, flip_height=flip_height
        )

    # ---- resolution --------------------------------------------------
    @cached_property
    def _resolved(self) -> ResolvedArena:
        return resolve_zones(self)

    def resolve(self) -> ResolvedArena:
        """Resolve zones to concrete geometry (computed once, then cached).

        See Also
        --------
        arenazones.resolver.resolve_zones
        """
        return self._resolved

    # ---- serialization -----------------------------------------------
    def to_dict(self) -> dict[str, Any]:
        """JSON-compatible representation (inverse of :meth:`from_dict`)."""
        out: dict[str, Any] = {
            "id": self.id,
            "points": {name: [p.x, p.y] for name, p in self.points.items()},
            "zones": [zone.to_dict() for zone in self.zones.values()],
        }
        if self.calibration is not None:
            out["calibration"] = self.calibration.to_dict()
        if self.metadata:
            out["metadata"] = dict(self.metadata)
        return out

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Arena:
        """Build an arena from its dictionary form.

        Parameters
        ----------
        data : Mapping
            Keys ``id``, ``points`` (``{name: [x, y]}``), ``zones`` (list of
            zone dicts, see :func:`arenazones.zones.zone_from_dict`) and
            optionally ``calibration`` and ``metadata``.

        Raises
        ------
        ConfigurationError
            For any invalid zone or reference.
        """
        if "id" not in data:
            raise ConfigurationError(
                "arena definitions need an 'id'.",
                field="id",
                rule="arena_id",
                error_code="E2007",
            )
        points = data.get("points") or {}
        if not isinstance(points, Mapping):
            raise ConfigurationError(
                "'points' must map point names to [x, y] pairs.",
                field="points",
                rule="point_mapping",
                error_code="E2002",
            )
        point_objs = []
        for name, coords in points.items():
            try:
                x, y = coords
            except (TypeError, ValueError) as e:
                raise ConfigurationError(
                    f"reference point '{name}' must be an [x, y] pair (got {coords!r}).",
                    field="points",
                    rule="point_coords",
                    error_code="E2002",
                ) from e
            point_objs.append(ReferencePoint(name, x, y))

        calibration = data.get("calibration")
        if calibration is not None and not isinstance(calibration, Calibration):
            try:
                calibration = Calibration(**calibration)
            except TypeError as e:
                raise ConfigurationError(
                    f"malformed calibration ({e}).",
                    field="calibration",
                    rule="calibration_fields",
                    error_code="E2007",
                ) from e

        return cls(
            id=data["id"],
            points=point_objs,
            zones=[zone_from_dict(z) for z in data.get("zones") or []],
            calibration=calibration,
            metadata=dict(data.get("metadata") or {}),
        )
