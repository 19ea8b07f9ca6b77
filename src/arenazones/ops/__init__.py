"""
Low-level operations for power users.

Submodules
----------
geometry : Vectorized point-in-polygon, circle and box tests, bounding boxes
transforms : Affine transforms, calibration, transform pipelines
"""

from arenazones.ops.geometry import (
    as_points,
    bounding_box,
    points_in_box,
    points_in_circle,
    points_in_polygon,
)
from arenazones.ops.transforms import (
    Affine2D,
    CoordinateTransform,
    SpatialTransform,
    build_transform,
    flip_y,
    identity,
    rotate,
    scale_2d,
    translate,
    units_per_raw,
)

__all__ = [
    "Affine2D",
    "CoordinateTransform",
    "SpatialTransform",
    "as_points",
    "bounding_box",
    "build_transform",
    "flip_y",
    "identity",
    "points_in_box",
    "points_in_circle",
    "points_in_polygon",
    "rotate",
    "scale_2d",
    "translate",
    "units_per_raw",
]
