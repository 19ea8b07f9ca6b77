"""Tests for dependency-ordered zone resolution and resolved geometry."""

import logging

import numpy as np
import pytest
from numpy.testing import assert_allclose, assert_array_equal

from arenazones import (
    Arena,
    CircleZone,
    ConfigurationError,
    InvalidGeometryError,
    PolygonZone,
    ProportionalZone,
    RectangleZone,
)
from arenazones.ops.transforms import build_transform, rotate, scale_2d
from arenazones.resolver import (
    ResolvedArena,
    ResolvedBox,
    ResolvedCircle,
    ResolvedExclusion,
    ResolvedPolygon,
    resolution_order,
    resolve_zones,
    zone_dependency_graph,
)


class TestResolutionOrder:
    """Topological ordering of zone dependencies."""

    def test_dependencies_first(self):
        zones = [
            ProportionalZone("inner", "middle", (0.25, 0.25, 0.75, 0.75)),
            ProportionalZone("middle", "floor", (0.1, 0.1, 0.9, 0.9)),
            RectangleZone("floor", 0, 100, 0, 100),
        ]
        assert resolution_order(zone_dependency_graph(zones)) == [
            "floor",
            "middle",
            "inner",
        ]

    def test_ties_follow_declaration_order(self):
        zones = [
            CircleZone("b", (0, 0), 1.0),
            RectangleZone("a", 0, 1, 0, 1),
            CircleZone("c", (0, 0), 2.0),
        ]
        assert resolution_order(zone_dependency_graph(zones)) == ["b", "a", "c"]

    def test_cycle_names_the_cycle(self):
        zones = [
            RectangleZone("floor", 0, 1, 0, 1),
            ProportionalZone("A", "B", (0, 0, 1, 1)),
            ProportionalZone("B", "C", (0, 0, 1, 1)),
            ProportionalZone("C", "A", (0, 0, 1, 1)),
        ]
        with pytest.raises(ConfigurationError) as exc_info:
            resolution_order(zone_dependency_graph(zones))
        err = exc_info.value
        assert err.rule == "acyclic"
        assert err.error_code == "E2005"
        for zone_id in ("A", "B", "C"):
            assert zone_id in str(err)
        assert "floor" not in str(err).split("cyclic zone dependency")[1].split(".")[0]

    def test_undefined_reference(self):
        with pytest.raises(ConfigurationError) as exc_info:
            zone_dependency_graph([ProportionalZone("p", "ghost", (0, 0, 1, 1))])
        assert exc_info.value.error_code == "E2004"


class TestProportionalResolution:
    """Proportional zones derived from parent bounding boxes."""

    def test_center_of_square(self, open_field_arena):
        """(0.25, 0.25, 0.75, 0.75) of [0, 100]^2 resolves to [25, 75]^2."""
        center = open_field_arena.resolve()["center"]
        assert isinstance(center, ResolvedBox)
        assert center.bounds == (25.0, 25.0, 75.0, 75.0)

    def test_nested_proportional(self):
        arena = Arena(
            "nest",
            zones=[
                RectangleZone("floor", 0, 100, 0, 200),
                ProportionalZone("half", "floor", (0.0, 0.0, 0.5, 1.0)),
                ProportionalZone("quarter", "half", (0.0, 0.5, 1.0, 1.0)),
            ],
        )
        assert arena.resolve()["quarter"].bounds == (0.0, 100.0, 50.0, 200.0)

    def test_parent_circle_uses_center_plus_radius(self):
        arena = Arena(
            "c",
            zones=[
                CircleZone("dish", (10.0, 10.0), 10.0),
                ProportionalZone("left", "dish", (0.0, 0.0, 0.5, 1.0)),
            ],
        )
        assert arena.resolve()["left"].bounds == (0.0, 0.0, 10.0, 20.0)

    def test_parent_polygon_uses_vertex_bounds(self):
        arena = Arena(
            "p",
            zones=[
                PolygonZone("tri", ((0, 0), (40, 0), (20, 20))),
                ProportionalZone("top", "tri", (0.0, 0.5, 1.0, 1.0)),
            ],
        )
        assert arena.resolve()["top"].bounds == (0.0, 10.0, 40.0, 20.0)

    def test_exclusion_is_not_a_box(self, open_field_arena):
        """Periphery = floor minus center: a ring, not a rectangle."""
        periphery = open_field_arena.resolve()["periphery"]
        assert isinstance(periphery, ResolvedExclusion)
        assert periphery.bounds == (0.0, 0.0, 100.0, 100.0)
        pts = np.array([[5.0, 5.0], [50.0, 50.0], [25.0, 50.0], [24.9, 50.0]])
        assert_array_equal(periphery.contains(pts), [True, False, False, True])

    def test_exclusion_as_parent_uses_own_box(self, open_field_arena):
        arena = Arena(
            "x",
            zones=[
                *open_field_arena.zones.values(),
                ProportionalZone("left_edge", "periphery", (0.0, 0.0, 0.1, 1.0)),
            ],
        )
        assert arena.resolve()["left_edge"].bounds == (0.0, 0.0, 10.0, 100.0)


class TestPolygonResolution:
    """Point lookup and vertex checks for polygons."""

    def test_named_and_literal_vertices(self):
        arena = Arena(
            "p",
            points={"a": (0, 0), "b": (10, 0)},
            zones=[PolygonZone("tri", ("a", "b", (5.0, 8.0)))],
        )
        tri = arena.resolve()["tri"]
        assert isinstance(tri, ResolvedPolygon)
        assert_allclose(tri.vertices, [[0, 0], [10, 0], [5, 8]])
        assert not tri.vertices.flags.writeable

    def test_duplicate_vertices_dropped(self):
        arena = Arena(
            "p",
            points={"a": (0, 0), "b": (10, 0), "c": (5, 8)},
            zones=[PolygonZone("tri", ("a", "a", "b", "c", "a"))],
        )
        assert arena.resolve()["tri"].vertices.shape == (3, 2)

    def test_too_few_distinct_vertices(self):
        """Three declared vertices, two distinct after point lookup."""
        arena = Arena(
            "p",
            points={"a": (0, 0), "b": (10, 0), "a2": (0, 0)},
            zones=[PolygonZone("sliver", ("a", "a2", "b"))],
        )
        with pytest.raises(InvalidGeometryError) as exc_info:
            arena.resolve()
        assert exc_info.value.zone_id == "sliver"
        assert exc_info.value.error_code == "E3002"

    def test_circle_center_lookup(self, plus_maze_arena):
        hub = plus_maze_arena.resolve()["center"]
        assert isinstance(hub, ResolvedCircle)
        assert hub.center == (0.0, 0.0)
        assert hub.radius == 5.0


class TestRectangleCorners:
    """Rectangles spanned by two named corner points."""

    @pytest.mark.parametrize("corners", [("p1", "p2"), ("p2", "p1"), ("q1", "q2")])
    def test_any_opposite_corners(self, corners):
        """Either diagonal, in either order, spans the same box."""
        arena = Arena(
            "r",
            points={"p1": (0, 0), "p2": (10, 20), "q1": (0, 20), "q2": (10, 0)},
            zones=[RectangleZone("nest", corners=corners)],
        )
        nest = arena.resolve()["nest"]
        assert isinstance(nest, ResolvedBox)
        assert nest.bounds == (0.0, 0.0, 10.0, 20.0)
        assert_array_equal(nest.contains([[10.0, 20.0], [10.1, 5.0]]), [True, False])

    def test_corners_on_one_axis(self):
        arena = Arena(
            "r",
            points={"p1": (0, 0), "p2": (10, 0)},
            zones=[RectangleZone("flat", corners=("p1", "p2"))],
        )
        with pytest.raises(InvalidGeometryError) as exc_info:
            arena.resolve()
        assert exc_info.value.zone_id == "flat"
        assert exc_info.value.error_code == "E3002"

    def test_undefined_corner(self):
        with pytest.raises(ConfigurationError) as exc_info:
            Arena(
                "r",
                points={"p1": (0, 0)},
                zones=[RectangleZone("n", corners=("p1", "p9"))],
            )
        assert exc_info.value.field == "corners"
        assert "'p9'" in str(exc_info.value)


class TestCalibratedRadius:
    """Circle radii given in physical units."""

    def test_radius_converted_to_raw_units(self, open_field_arena):
        """0.2 cm per raw unit: 5 cm is 25 raw units."""
        arena = Arena(
            "dish",
            points=open_field_arena.points,
            zones=[CircleZone("well", "origin", physical_radius=5.0)],
            calibration=open_field_arena.calibration,
        )
        well = arena.resolve()["well"]
        assert isinstance(well, ResolvedCircle)
        assert well.radius == pytest.approx(25.0)
        assert_array_equal(well.contains([[25.0, 0.0], [25.5, 0.0]]), [True, False])

    def test_round_trips_to_physical_frame(self, open_field_arena):
        arena = Arena(
            "dish",
            points=open_field_arena.points,
            zones=[CircleZone("well", "origin", physical_radius=5.0)],
            calibration=open_field_arena.calibration,
        )
        well = arena.resolve().transformed(arena.default_transform())["well"]
        assert well.radius == pytest.approx(5.0)

    def test_requires_calibration(self):
        with pytest.raises(ConfigurationError) as exc_info:
            Arena("dish", zones=[CircleZone("well", (0, 0), physical_radius=5.0)])
        err = exc_info.value
        assert err.zone_id == "well"
        assert err.rule == "calibration_required"
        assert "[E2009]" in str(err)


class TestResolvedArena:
    """Mapping behavior and logging of the resolved arena."""

    def test_mapping_in_declaration_order(self, open_field_arena):
        resolved = open_field_arena.resolve()
        assert isinstance(resolved, ResolvedArena)
        assert list(resolved) == ["floor", "center", "periphery"]
        assert len(resolved) == 3
        assert resolved.arena_id == "open_field"

    def test_unknown_zone(self, open_field_arena):
        with pytest.raises(KeyError, match="Available zones"):
            open_field_arena.resolve()["nest"]

    def test_resolution_order_logged(self, open_field_arena, caplog):
        with caplog.at_level(logging.DEBUG, logger="arenazones.resolver"):
            resolve_zones(open_field_arena)
        assert "Resolving zones of arena 'open_field'" in caplog.text

    def test_to_shapely_areas(self, open_field_arena):
        shapes = open_field_arena.resolve().to_shapely()
        assert shapes["floor"].area == pytest.approx(10_000.0)
        assert shapes["center"].area == pytest.approx(2_500.0)
        assert shapes["periphery"].area == pytest.approx(7_500.0)

    def test_circle_to_shapely_approximates_disc(self):
        disc = ResolvedCircle("c", "c", (0.0, 0.0), 10.0).to_shapely()
        assert disc.area == pytest.approx(np.pi * 100.0, rel=0.01)


class TestTransformedGeometry:
    """Mapping resolved zones into the physical frame."""

    def test_scale_maps_all_kinds(self, open_field_arena, plus_maze_arena):
        transform = build_transform(scale=0.2)
        field = open_field_arena.resolve().transformed(transform)
        assert field["center"].bounds == pytest.approx((5.0, 5.0, 15.0, 15.0))
        assert isinstance(field["periphery"], ResolvedExclusion)
        assert field["periphery"].excluded.bounds == pytest.approx(
            (5.0, 5.0, 15.0, 15.0)
        )

        maze = plus_maze_arena.resolve().transformed(transform)
        assert maze["center"].radius == pytest.approx(1.0)
        assert_allclose(maze["open_arm"].vertices[1], [9.0, -1.0])

    def test_original_unchanged(self, open_field_arena):
        resolved = open_field_arena.resolve()
        resolved.transformed(scale_2d(2.0))
        assert resolved["center"].bounds == (25.0, 25.0, 75.0, 75.0)

    def test_flip_keeps_box_ordered(self):
        box = ResolvedBox("b", "b", 0.0, 10.0, 0.0, 5.0)
        flipped = box.transformed(build_transform(flip=True, flip_height=5.0))
        assert isinstance(flipped, ResolvedBox)
        assert flipped.bounds == pytest.approx((0.0, 0.0, 10.0, 5.0))

    def test_rotation_keeps_box(self):
        box = ResolvedBox("b", "b", 0.0, 10.0, 0.0, 10.0)
        rotated = box.transformed(rotate(45.0))
        assert isinstance(rotated, ResolvedBox)
        assert rotated.contains([[0.0, 7.0], [7.0, 0.0]]).tolist() == [True, False]
        assert rotated.bounds == pytest.approx(
            (-50.0**0.5, 0.0, 50.0**0.5, 200.0**0.5)
        )
        assert rotated.to_shapely().area == pytest.approx(100.0)

    @pytest.mark.parametrize("angle", [30.0, 45.0, 90.0, 180.0, 270.0])
    def test_rotated_boundary_stays_inclusive(self, angle):
        """Edges and the (10, 10) corner of [0, 10]^2 stay inside under rotation."""
        box = ResolvedBox("b", "b", 0.0, 10.0, 0.0, 10.0)
        edge_points = np.array(
            [[10.0, 5.0], [5.0, 10.0], [0.0, 5.0], [5.0, 0.0], [10.0, 10.0], [0.0, 0.0]]
        )
        assert box.contains(edge_points).all()

        transform = build_transform(rotation_deg=angle)
        rotated = box.transformed(transform)
        assert rotated.contains(transform(edge_points)).all()
        outside = transform(np.array([[10.01, 5.0], [5.0, -0.01]]))
        assert not rotated.contains(outside).any()

    def test_rotation_then_scale_composes(self):
        box = ResolvedBox("b", "b", 0.0, 10.0, 0.0, 10.0)
        moved = box.transformed(rotate(90.0)).transformed(scale_2d(2.0))
        assert moved.contains([[-20.0, 20.0], [-10.0, 10.0]]).tolist() == [True, True]
        assert moved.contains([[-20.5, 10.0]]).tolist() == [False]

    def test_circle_rejects_anisotropic_scale(self):
        circle = ResolvedCircle("c", "c", (0.0, 0.0), 1.0)
        with pytest.raises(InvalidGeometryError) as exc_info:
            circle.transformed(scale_2d(1.0, 2.0))
        assert exc_info.value.error_code == "E3003"

    def test_circle_rotation_allowed(self):
        circle = ResolvedCircle("c", "c", (10.0, 0.0), 2.0)
        moved = circle.transformed(rotate(90.0))
        assert moved.center == pytest.approx((0.0, 10.0))
        assert moved.radius == pytest.approx(2.0)
