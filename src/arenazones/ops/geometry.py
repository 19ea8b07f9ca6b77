"""Vectorized point-membership primitives.

All functions take an ``(n_points, 2)`` array and return a boolean array of
length ``n_points``. Rows containing NaN are reported as ``False``; callers
that need a three-valued answer (inside / outside / undefined) mask invalid
rows themselves, see :func:`arenazones.classification.classify_points`.

Boundary conventions
--------------------
- Boxes and circles are boundary inclusive.
- Polygons use the crossing-number (even-odd) rule with half-open edges:
  an edge from ``(x_i, y_i)`` to ``(x_j, y_j)`` is crossed by the
  rightward ray from ``(x, y)`` only when ``min(y_i, y_j) <= y < max(y_i, y_j)``.
  Shared vertices are therefore counted exactly once and horizontal edges
  never, which keeps the answer deterministic at boundaries shared by
  adjacent zones.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import ArrayLike, NDArray

__all__ = [
    "as_points",
    "bounding_box",
    "points_in_box",
    "points_in_circle",
    "points_in_polygon",
]


def as_points(points: ArrayLike) -> NDArray[np.float64]:
    """Coerce input to a float ``(n_points, 2)`` array.

    A single ``(x, y)`` pair is promoted to shape ``(1, 2)``.

    Raises
    ------
    ValueError
        If the trailing dimension is not 2.
    """
    pts = np.asarray(points, dtype=np.float64)
    if pts.ndim == 1 and pts.shape[0] == 2:
        pts = pts.reshape(1, 2)
    if pts.ndim != 2 or pts.shape[1] != 2:
        raise ValueError(
            f"Expected points with shape (n_points, 2), got {pts.shape}."
        )
    return pts


def bounding_box(vertices: ArrayLike) -> tuple[float, float, float, float]:
    """Axis-aligned bounds of a vertex array.

    Parameters
    ----------
    vertices : array-like, shape (n_vertices, 2)

    Returns
    -------
    tuple of float
        ``(x_min, y_min, x_max, y_max)``.

    Examples
    --------
    >>> bounding_box([[0, 0], [4, 1], [2, 3]])
    (0.0, 0.0, 4.0, 3.0)
    """
    verts = as_points(vertices)
    if len(verts) == 0:
        raise ValueError("Cannot compute the bounding box of zero vertices.")
    x_min, y_min = verts.min(axis=0)
    x_max, y_max = verts.max(axis=0)
    return (float(x_min), float(y_min), float(x_max), float(y_max))


def points_in_box(
    points: ArrayLike,
    x_min: float,
    y_min: float,
    x_max: float,
    y_max: float,
) -> NDArray[np.bool_]:
    """Test ``x_min <= x <= x_max`` and ``y_min <= y <= y_max``.

    Examples
    --------
    >>> points_in_box([[10, 10], [10.01, 5]], 0, 0, 10, 10)
    array([ True, False])
    """
    pts = as_points(points)
    x = pts[:, 0]
    y = pts[:, 1]
    return np.asarray(
        (x >= x_min) & (x <= x_max) & (y >= y_min) & (y <= y_max), dtype=bool
    )


def points_in_circle(
    points: ArrayLike,
    center: ArrayLike,
    radius: float,
) -> NDArray[np.bool_]:
    """Test Euclidean distance to ``center`` is at most ``radius``.

    Squared distances are compared so that points exactly ``radius`` away
    (with representable coordinates) land inside.

    Examples
    --------
    >>> points_in_circle([[3, 4], [3, 4.001]], center=(0, 0), radius=5)
    array([ True, False])
    """
    pts = as_points(points)
    cx, cy = np.asarray(center, dtype=np.float64).reshape(2)
    dx = pts[:, 0] - cx
    dy = pts[:, 1] - cy
    return np.asarray(dx * dx + dy * dy <= float(radius) ** 2, dtype=bool)


def points_in_polygon(
    points: ArrayLike,
    vertices: ArrayLike,
) -> NDArray[np.bool_]:
    """Crossing-number point-in-polygon test.

    Parameters
    ----------
    points : array-like, shape (n_points, 2)
        Query points.
    vertices : array-like, shape (n_vertices, 2)
        Polygon vertices in order. The closing edge from the last vertex
        back to the first is implicit; an explicit repeat of the first
        vertex is harmless.

    Returns
    -------
    NDArray[np.bool_], shape (n_points,)
        True where the rightward ray from the point crosses the boundary an
        odd number of times.

    Notes
    -----
    Loops over edges and vectorizes over points, so the cost is
    ``O(n_vertices * n_points)`` with small constant factors for the
    handful of vertices arena zones typically have.

    Examples
    --------
    >>> square = [[0, 0], [10, 0], [10, 10], [0, 10]]
    >>> points_in_polygon([[5, 5], [15, 5]], square)
    array([ True, False])
    """
    pts = as_points(points)
    verts = as_points(vertices)
    x = pts[:, 0]
    y = pts[:, 1]
    inside = np.zeros(len(pts), dtype=bool)

    n_vertices = len(verts)
    for i in range(n_vertices):
        x1, y1 = verts[i]
        x2, y2 = verts[(i + 1) % n_vertices]
        if y1 == y2:
            continue
        spans = (y1 <= y) & (y < y2) | (y2 <= y) & (y < y1)
        with np.errstate(invalid="ignore"):
            x_cross = x1 + (y - y1) * (x2 - x1) / (y2 - y1)
        inside ^= spans & (x < x_cross)

    return inside
