"""Zone geometry resolution.

Turns declarative zone definitions into concrete, dependency-free geometry
that can answer point-membership queries.

Proportional zones are defined relative to another zone's bounding box and
may subtract a sibling zone, so zones depend on one another. Dependencies
are made explicit as a :class:`networkx.DiGraph` (edge ``child -> dependency``)
and resolved in topological order; a cycle is a configuration error, never
an infinite loop.

Resolved geometry kinds
-----------------------
ResolvedPolygon
    Closed vertex list; crossing-number membership.
ResolvedCircle
    Center and radius; boundary inclusive.
ResolvedBox
    Box (rectangle zones and plain proportional zones); boundary
    inclusive, also after rotation.
ResolvedExclusion
    Proportional zone with ``exclude``: inside its own box AND NOT inside
    the excluded zone. The effective region is not a rectangle, so the
    membership test evaluates both operands rather than box arithmetic.

All resolved objects are frozen and their arrays read-only. Mapping them
into another coordinate frame (:meth:`transformed`) returns new objects.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar, Union

import networkx as nx
import numpy as np
from numpy.typing import ArrayLike, NDArray

from arenazones.ops.geometry import (
    as_points,
    bounding_box,
    points_in_box,
    points_in_circle,
    points_in_polygon,
)
from arenazones.ops.transforms import Affine2D, CoordinateTransform, identity
from arenazones.validation import ConfigurationError, InvalidGeometryError
from arenazones.zones import (
    CircleZone,
    PointRef,
    PolygonZone,
    ProportionalZone,
    RectangleZone,
    Zone,
)

if TYPE_CHECKING:
    import shapely

    from arenazones.arena import Arena

__all__ = [
    "ResolvedArena",
    "ResolvedBox",
    "ResolvedCircle",
    "ResolvedExclusion",
    "ResolvedGeometry",
    "ResolvedPolygon",
    "resolution_order",
    "resolve_zones",
    "zone_dependency_graph",
]

logger = logging.getLogger("arenazones.resolver")

TransformLike = Union[Affine2D, CoordinateTransform]


def _as_affine(transform: TransformLike) -> Affine2D:
    if isinstance(transform, CoordinateTransform):
        return transform.matrix
    if isinstance(transform, Affine2D):
        return transform
    raise TypeError(
        "transform must be an Affine2D or CoordinateTransform, "
        f"got {type(transform).__name__}."
    )


def _frozen_vertices(vertices: ArrayLike) -> NDArray[np.float64]:
    verts = np.array(vertices, dtype=np.float64).reshape(-1, 2)
    verts.setflags(write=False)
    return verts


# ---------------------------------------------------------------------
# Resolved geometry
# ---------------------------------------------------------------------
@dataclass(frozen=True, eq=False)
class ResolvedPolygon:
    """Polygon with concrete vertices (closing edge implicit)."""

    zone_id: str
    name: str
    vertices: NDArray[np.float64]

    kind: ClassVar[str] = "polygon"

    def __post_init__(self) -> None:
        object.__setattr__(self, "vertices", _frozen_vertices(self.vertices))

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        """``(x_min, y_min, x_max, y_max)`` of the vertices."""
        return bounding_box(self.vertices)

    def contains(self, points: ArrayLike) -> NDArray[np.bool_]:
        return points_in_polygon(points, self.vertices)

    def transformed(self, transform: TransformLike) -> ResolvedPolygon:
        return ResolvedPolygon(
            self.zone_id, self.name, _as_affine(transform)(self.vertices)
        )

    def to_shapely(self) -> shapely.Polygon:
        from shapely.geometry import Polygon

        return Polygon(self.vertices)


@dataclass(frozen=True, eq=False)
class ResolvedCircle:
    """Disc around ``center`` (boundary inclusive)."""

    zone_id: str
    name: str
    center: tuple[float, float]
    radius: float

    kind: ClassVar[str] = "circle"

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        """Center ± radius on each axis."""
        cx, cy = self.center
        r = self.radius
        return (cx - r, cy - r, cx + r, cy + r)

    def contains(self, points: ArrayLike) -> NDArray[np.bool_]:
        return points_in_circle(points, self.center, self.radius)

    def transformed(self, transform: TransformLike) -> ResolvedCircle:
        """Map center and radius; requires a shape-preserving transform.

        Raises
        ------
        InvalidGeometryError
            If the transform scales axes differently or shears, which would
            turn the circle into an ellipse.
        """
        affine = _as_affine(transform)
        scale = affine.uniform_scale
        if scale is None:
            raise InvalidGeometryError(
                "WHAT: transform does not scale both axes equally.\n"
                "WHY: A circle zone would become an ellipse in the target frame.\n"
                "HOW: Use a uniform scale (rotation, translation and flips are fine).",
                zone_id=self.zone_id,
                field="radius",
                error_code="E3003",
            )
        cx, cy = affine(np.asarray(self.center, dtype=np.float64))
        return ResolvedCircle(
            self.zone_id, self.name, (float(cx), float(cy)), self.radius * scale
        )

    def to_shapely(self) -> shapely.Polygon:
        """Polygonal approximation of the disc (for rendering)."""
        from shapely.geometry import Point

        return Point(self.center).buffer(self.radius)


# Relative slack for framed boxes; absorbs the round-off of mapping a point
# through a rotation and back.
_FRAME_TOLERANCE = 1e-9


@dataclass(frozen=True, eq=False)
class ResolvedBox:
    """Box ``[x_min, x_max] x [y_min, y_max]`` (boundary inclusive).

    Without ``frame`` the box is axis-aligned in the current coordinates.
    After a rotation the bounds stay in the box's own axes and ``frame``
    maps query points into them, so membership keeps the inclusive box rule
    whatever the orientation.

    Attributes
    ----------
    frame : Affine2D or None
        Map from current coordinates to the box's own axes.
    """

    zone_id: str
    name: str
    x_min: float
    x_max: float
    y_min: float
    y_max: float
    frame: Affine2D | None = None

    kind: ClassVar[str] = "box"

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        if self.frame is None:
            return (self.x_min, self.y_min, self.x_max, self.y_max)
        return bounding_box(self.corners)

    @property
    def corners(self) -> NDArray[np.float64]:
        """Corners counter-clockwise from ``(x_min, y_min)``, in current coordinates."""
        local = np.array(
            [
                [self.x_min, self.y_min],
                [self.x_max, self.y_min],
                [self.x_max, self.y_max],
                [self.x_min, self.y_max],
            ]
        )
        if self.frame is None:
            return local
        return self.frame.inverse()(local)

    def contains(self, points: ArrayLike) -> NDArray[np.bool_]:
        if self.frame is None:
            return points_in_box(points, self.x_min, self.y_min, self.x_max, self.y_max)
        local = self.frame(as_points(points))
        tol = _FRAME_TOLERANCE * max(self.x_max - self.x_min, self.y_max - self.y_min)
        return points_in_box(
            local, self.x_min - tol, self.y_min - tol, self.x_max + tol, self.y_max + tol
        )

    def transformed(self, transform: TransformLike) -> ResolvedBox:
        """Map the box; under rotation the bounds are kept in a local frame."""
        affine = _as_affine(transform)
        if self.frame is None and affine.is_axis_aligned:
            x_min, y_min, x_max, y_max = bounding_box(affine(self.corners))
            return ResolvedBox(self.zone_id, self.name, x_min, x_max, y_min, y_max)
        frame = (self.frame or identity()) @ affine.inverse()
        return ResolvedBox(
            self.zone_id,
            self.name,
            self.x_min,
            self.x_max,
            self.y_min,
            self.y_max,
            frame=frame,
        )

    def to_shapely(self) -> shapely.Polygon:
        if self.frame is not None:
            from shapely.geometry import Polygon

            return Polygon(self.corners)

        from shapely.geometry import box

        return box(self.x_min, self.y_min, self.x_max, self.y_max)


@dataclass(frozen=True, eq=False)
class ResolvedExclusion:
    """Own region minus an excluded zone's region.

    A point belongs to the zone when ``base.contains(point)`` and not
    ``excluded.contains(point)``; points on the excluded zone's boundary are
    therefore outside (the excluded zone's boundary is inclusive).
    """

    zone_id: str
    name: str
    base: ResolvedBox
    excluded: ResolvedGeometry

    kind: ClassVar[str] = "exclusion"

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        return self.base.bounds

    def contains(self, points: ArrayLike) -> NDArray[np.bool_]:
        return self.base.contains(points) & ~self.excluded.contains(points)

    def transformed(self, transform: TransformLike) -> ResolvedExclusion:
        return ResolvedExclusion(
            self.zone_id,
            self.name,
            self.base.transformed(transform),
            self.excluded.transformed(transform),
        )

    def to_shapely(self) -> shapely.Geometry:
        return self.base.to_shapely().difference(self.excluded.to_shapely())


ResolvedGeometry = Union[ResolvedPolygon, ResolvedCircle, ResolvedBox, ResolvedExclusion]


class ResolvedArena(Mapping):
    """Read-only mapping ``zone_id -> resolved geometry``.

    Iteration follows the arena's declaration order; the order in which
    zones were resolved is kept in :attr:`resolution_order`.

    Parameters
    ----------
    geometries : Mapping[str, ResolvedGeometry]
        Resolved zones in declaration order.
    resolution_order : tuple of str
        Zone ids in dependency order.
    arena_id : str or None
        Id of the source arena.
    """

    def __init__(
        self,
        geometries: Mapping[str, ResolvedGeometry],
        resolution_order: Iterable[str] = (),
        arena_id: str | None = None,
    ) -> None:
        self._geometries = dict(geometries)
        self.resolution_order = tuple(resolution_order) or tuple(self._geometries)
        self.arena_id = arena_id

    def __getitem__(self, zone_id: str) -> ResolvedGeometry:
        try:
            return self._geometries[zone_id]
        except KeyError:
            raise KeyError(
                f"Zone '{zone_id}' not found. Available zones: {list(self._geometries)}"
            ) from None

    def __iter__(self) -> Iterator[str]:
        return iter(self._geometries)

    def __len__(self) -> int:
        return len(self._geometries)

    def __repr__(self) -> str:
        kinds = ", ".join(f"{k}={g.kind}" for k, g in self._geometries.items())
        return f"ResolvedArena(arena_id={self.arena_id!r}, {kinds})"

    @property
    def zone_ids(self) -> tuple[str, ...]:
        return tuple(self._geometries)

    def transformed(self, transform: TransformLike) -> ResolvedArena:
        """Map every zone into another coordinate frame.

        Parameters
        ----------
        transform : Affine2D or CoordinateTransform
            Typically the same transform applied to the position samples.

        Returns
        -------
        ResolvedArena
            New mapping; this one is unchanged.
        """
        return ResolvedArena(
            {zid: geom.transformed(transform) for zid, geom in self._geometries.items()},
            self.resolution_order,
            self.arena_id,
        )

    def to_shapely(self) -> dict[str, shapely.Geometry]:
        """Shapely geometry per zone, for plotting and area calculations."""
        return {zid: geom.to_shapely() for zid, geom in self._geometries.items()}


# ---------------------------------------------------------------------
# Dependency graph
# ---------------------------------------------------------------------
def zone_dependency_graph(zones: Iterable[Zone]) -> nx.DiGraph:
    """Build the zone dependency graph.

    Parameters
    ----------
    zones : iterable of Zone
        Zone definitions, ids assumed unique.

    Returns
    -------
    nx.DiGraph
        One node per zone (attribute ``zone``); an edge ``child -> dependency``
        for every ``parent_zone`` and ``exclude`` reference (attribute
        ``relation``).

    Raises
    ------
    ConfigurationError
        If a zone references an id that is not defined (E2004).
    """
    zones = list(zones)
    graph = nx.DiGraph()
    for zone in zones:
        graph.add_node(zone.id, zone=zone)

    for zone in zones:
        if not isinstance(zone, ProportionalZone):
            continue
        relations = [("parent_zone", zone.parent_zone)]
        if zone.exclude is not None:
            relations.append(("exclude", zone.exclude))
        for field_name, target in relations:
            if target not in graph:
                raise ConfigurationError(
                    f"WHAT: {field_name} '{target}' is not defined in this arena.\n"
                    "WHY: Proportional zones are derived from other zones of the "
                    "same arena.\n"
                    f"HOW: Define zone '{target}' or fix the reference. "
                    f"Defined zones: {[z.id for z in zones]}",
                    zone_id=zone.id,
                    field=field_name,
                    rule="defined_reference",
                    error_code="E2004",
                )
            graph.add_edge(zone.id, target, relation=field_name)
    return graph


def resolution_order(graph: nx.DiGraph) -> list[str]:
    """Zone ids ordered so every zone follows its dependencies.

    Ties are broken by declaration order (node insertion order).

    Raises
    ------
    ConfigurationError
        If the graph contains a cycle (E2005). The message names the cycle.

    Examples
    --------
    >>> from arenazones.zones import ProportionalZone, RectangleZone
    >>> zones = [
    ...     ProportionalZone("inner", "middle", (0.25, 0.25, 0.75, 0.75)),
    ...     ProportionalZone("middle", "floor", (0.1, 0.1, 0.9, 0.9)),
    ...     RectangleZone("floor", 0, 100, 0, 100),
    ... ]
    >>> resolution_order(zone_dependency_graph(zones))
    ['floor', 'middle', 'inner']
    """
    try:
        cycle = nx.find_cycle(graph)
    except nx.NetworkXNoCycle:
        cycle = None
    if cycle:
        path = [u for u, _ in cycle] + [cycle[0][0]]
        raise ConfigurationError(
            f"WHAT: cyclic zone dependency {' -> '.join(path)}.\n"
            "WHY: A zone cannot be derived, directly or transitively, from itself.\n"
            "HOW: Break the cycle by changing a parent_zone or exclude reference.",
            zone_id=cycle[0][0],
            field=graph.edges[cycle[0][0], cycle[0][1]].get("relation", "parent_zone"),
            rule="acyclic",
            error_code="E2005",
        )
    position = {node: i for i, node in enumerate(graph.nodes)}
    return list(
        nx.lexicographical_topological_sort(graph.reverse(copy=True), key=position.get)
    )


# ---------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------
def _lookup(arena: Arena, ref: PointRef, *, zone_id: str, field_name: str) -> tuple[float, float]:
    if not isinstance(ref, str):
        return ref
    try:
        return arena.point(ref).coords
    except KeyError:
        raise ConfigurationError(
            f"references undefined point '{ref}' in '{field_name}'.",
            zone_id=zone_id,
            field=field_name,
            rule="defined_point",
            error_code="E2003",
        ) from None


def _resolve_polygon(zone: PolygonZone, arena: Arena) -> ResolvedPolygon:
    coords = [
        _lookup(arena, v, zone_id=zone.id, field_name="vertices") for v in zone.vertices
    ]
    # Drop repeated consecutive vertices, including an explicit closing vertex
    distinct: list[tuple[float, float]] = []
    for c in coords:
        if not distinct or c != distinct[-1]:
            distinct.append(c)
    if len(distinct) > 1 and distinct[0] == distinct[-1]:
        distinct.pop()
    if len(distinct) < 3:
        raise InvalidGeometryError(
            f"WHAT: polygon has {len(distinct)} distinct vertices after point "
            f"resolution (declared {len(zone.vertices)}).\n"
            "WHY: A polygon needs at least 3 vertices to enclose an area.\n"
            "HOW: Add vertices or use a circle/rectangle zone.",
            zone_id=zone.id,
            field="vertices",
            error_code="E3002",
        )
    return ResolvedPolygon(zone.id, zone.name, distinct)


def _resolve_corners(zone: RectangleZone, arena: Arena) -> ResolvedBox:
    (x1, y1), (x2, y2) = (
        _lookup(arena, c, zone_id=zone.id, field_name="corners") for c in zone.corners
    )
    if x1 == x2 or y1 == y2:
        raise InvalidGeometryError(
            f"WHAT: rectangle corners ({x1}, {y1}) and ({x2}, {y2}) share an "
            "x or y coordinate.\n"
            "WHY: The corners must be opposite, so the rectangle has an area.\n"
            "HOW: Name two diagonally opposite corner points.",
            zone_id=zone.id,
            field="corners",
            error_code="E3002",
        )
    return ResolvedBox(
        zone.id, zone.name, min(x1, x2), max(x1, x2), min(y1, y2), max(y1, y2)
    )


def _raw_radius(zone: CircleZone, arena: Arena) -> float:
    if zone.radius is not None:
        return zone.radius
    # Arena construction guarantees a calibration here
    return zone.physical_radius / arena.units_per_raw


def _resolve_proportional(
    zone: ProportionalZone, resolved: Mapping[str, ResolvedGeometry]
) -> ResolvedBox | ResolvedExclusion:
    bx_min, by_min, bx_max, by_max = resolved[zone.parent_zone].bounds
    width = bx_max - bx_min
    height = by_max - by_min
    fx_min, fy_min, fx_max, fy_max = zone.fraction
    box = ResolvedBox(
        zone.id,
        zone.name,
        x_min=bx_min + fx_min * width,
        x_max=bx_min + fx_max * width,
        y_min=by_min + fy_min * height,
        y_max=by_min + fy_max * height,
    )
    if zone.exclude is None:
        return box
    return ResolvedExclusion(zone.id, zone.name, box, resolved[zone.exclude])


def _resolve_zone(
    zone: Zone, arena: Arena, resolved: Mapping[str, ResolvedGeometry]
) -> ResolvedGeometry:
    if isinstance(zone, PolygonZone):
        return _resolve_polygon(zone, arena)
    if isinstance(zone, CircleZone):
        center = _lookup(arena, zone.center, zone_id=zone.id, field_name="center")
        return ResolvedCircle(zone.id, zone.name, center, _raw_radius(zone, arena))
    if isinstance(zone, RectangleZone):
        if zone.corners is not None:
            return _resolve_corners(zone, arena)
        return ResolvedBox(
            zone.id, zone.name, zone.x_min, zone.x_max, zone.y_min, zone.y_max
        )
    if isinstance(zone, ProportionalZone):
        return _resolve_proportional(zone, resolved)
    raise TypeError(f"Unsupported zone definition: {type(zone).__name__}")


def resolve_zones(arena: Arena) -> ResolvedArena:
    """Resolve every zone of an arena to concrete geometry.

    Parameters
    ----------
    arena : Arena
        Validated arena definition.

    Returns
    -------
    ResolvedArena
        Mapping zone id → resolved geometry, in raw arena coordinates.
        Use :meth:`ResolvedArena.transformed` to map into physical units.

    Raises
    ------
    ConfigurationError
        For undefined references or cyclic dependencies.
    InvalidGeometryError
        For polygons with fewer than three distinct vertices, or rectangle
        corners that do not span an area.

    Notes
    -----
    Resolution stops at the first error; no partially resolved arena is
    returned. Prefer ``arena.resolve()``, which caches the result.

    Examples
    --------
    >>> from arenazones import Arena, ProportionalZone, RectangleZone
    >>> arena = Arena(
    ...     "oft",
    ...     zones=[
    ...         RectangleZone("floor", 0, 100, 0, 100),
    ...         ProportionalZone("center", "floor", (0.25, 0.25, 0.75, 0.75)),
    ...     ],
    ... )
    >>> resolve_zones(arena)["center"].bounds
    (25.0, 25.0, 75.0, 75.0)
    """
    order = resolution_order(zone_dependency_graph(arena.zones.values()))
    logger.debug("Resolving zones of arena '%s' in order %s", arena.id, order)

    resolved: dict[str, ResolvedGeometry] = {}
    for zone_id in order:
        resolved[zone_id] = _resolve_zone(arena.zones[zone_id], arena, resolved)

    return ResolvedArena(
        {zone_id: resolved[zone_id] for zone_id in arena.zones},
        resolution_order=order,
        arena_id=arena.id,
    )
