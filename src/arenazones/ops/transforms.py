"""Coordinate transforms and calibration (ops/transforms.py).
=============================================================

Maps raw tracking coordinates (usually video pixels) into the arena's
physical frame before zone classification.

Two complementary APIs
----------------------
1.  *Composable objects* (`Affine2D`, `CoordinateTransform`)
    Build a transform once, reuse it for every trial of an arena, keep the
    stage-by-stage provenance.
2.  *Quick helpers* (`units_per_raw`, `build_transform`)
    One-liners for the common scale / rotate / translate / flip recipe.

Coordinate Flow
---------------
The default stage order is::

    raw (video px, y-down)
        │  scale_2d(units_per_raw)
        ▼
    scaled (cm, y-down)
        │  rotate(angle, pivot)
        ▼
    rotated
        │  translate(-origin)
        ▼
    centred
        │  flip_y(height)
        ▼
    physical (cm, y-up)

Each stage is a pure ``(x, y) -> (x', y')`` map; callers may pass any
order through ``build_transform(order=...)``.
"""

# ruff: noqa: N806  - uppercase matrix names (A, R) follow mathematical convention
from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import numpy as np
from numpy.typing import ArrayLike, NDArray

from arenazones.validation import InvalidGeometryError

if TYPE_CHECKING:
    from arenazones.samples import PositionSamples

__all__ = [
    "Affine2D",
    "CoordinateTransform",
    "SpatialTransform",
    "build_transform",
    "flip_y",
    "identity",
    "rotate",
    "scale_2d",
    "translate",
    "units_per_raw",
]

STAGE_NAMES = ("scale", "rotate", "translate", "flip")


# ---------------------------------------------------------------------
# 1.  Composable transform objects
# ---------------------------------------------------------------------
@runtime_checkable
class SpatialTransform(Protocol):
    """Callable that maps an (N, 2) array of points → (N, 2) array."""

    def __call__(self, pts: NDArray[np.float64]) -> NDArray[np.float64]: ...


@dataclass(frozen=True)
class Affine2D:
    """2-D affine transform expressed as a 3 × 3 homogeneous matrix *A* such that

        [x', y', 1]^T  =  A @ [x, y, 1]^T

    Attributes
    ----------
    A : NDArray[np.float64], shape (3, 3)
        Homogeneous transformation matrix. Encodes rotation, scaling,
        translation, reflection and shear. The bottom row is [0, 0, 1].

    Examples
    --------
    Create a transform that scales then translates:

    >>> import numpy as np
    >>> transform = translate(10, 20) @ scale_2d(2.0)
    >>> transform(np.array([[0, 0], [1, 1]]))
    array([[10., 20.],
           [12., 22.]])
    """

    A: NDArray[np.float64]

    def __post_init__(self) -> None:
        """Validate transformation matrix shape."""
        A = np.array(self.A, dtype=np.float64)
        if A.shape != (3, 3):
            raise ValueError(f"Affine2D matrix must have shape (3, 3), got {A.shape}")
        A.setflags(write=False)
        object.__setattr__(self, "A", A)

    # ---- core --------------------------------------------------------
    def __call__(self, pts: ArrayLike) -> NDArray[np.float64]:
        """Apply transformation to points.

        Parameters
        ----------
        pts : array-like, shape (..., 2)
            2D points to transform. NaN rows stay NaN.

        Returns
        -------
        NDArray[np.float64], shape (..., 2)
            Transformed points.
        """
        pts = np.asanyarray(pts, dtype=float)
        if pts.shape[-1] != 2:
            raise ValueError(
                f"Transform is 2D but points have shape {pts.shape}. "
                "Expected shape (..., 2)."
            )
        pts_h = np.c_[pts.reshape(-1, 2), np.ones((pts.size // 2, 1))]
        out = pts_h @ self.A.T
        out = out[:, :2] / out[:, 2:3]
        return np.asarray(out.reshape(pts.shape), dtype=np.float64)

    # ---- helpers -----------------------------------------------------
    @property
    def linear(self) -> NDArray[np.float64]:
        """The 2 × 2 linear part (rotation, scale, reflection, shear)."""
        return self.A[:2, :2]

    @property
    def is_axis_aligned(self) -> bool:
        """True if axes map onto axes (no rotation other than 0/180 deg, no shear)."""
        L = self.linear
        return bool(np.isclose(L[0, 1], 0.0) and np.isclose(L[1, 0], 0.0))

    @property
    def uniform_scale(self) -> float | None:
        """Isotropic scale factor, or None if the map distorts shapes.

        A similarity transform (rotation, reflection, uniform scale,
        translation) scales every length by the same factor; that factor is
        returned. Anisotropic scaling or shear gives None.
        """
        L = self.linear
        gram = L.T @ L
        s2 = float(gram[0, 0])
        if s2 <= 0.0:
            return None
        if not np.isclose(gram[1, 1], s2) or abs(gram[0, 1]) > 1e-9 * s2:
            return None
        return math.sqrt(s2)

    def inverse(self) -> Affine2D:
        """Compute the inverse transformation.

        Raises
        ------
        InvalidGeometryError
            If the matrix is singular (e.g. a zero scale factor).
        """
        try:
            inv = np.linalg.inv(self.A)
        except np.linalg.LinAlgError as e:
            raise InvalidGeometryError(
                "WHAT: transform matrix is singular.\n"
                "WHY: A zero scale collapses the plane and cannot be undone.\n"
                "HOW: Check calibration distances and scale factors.",
                error_code="E3004",
            ) from e
        return Affine2D(inv)

    def compose(self, other: Affine2D) -> Affine2D:
        """Compose this transformation with another.

        Parameters
        ----------
        other : Affine2D
            Transformation to compose with (applied first).

        Returns
        -------
        Affine2D
            New transformation representing ``self ∘ other``.

        Notes
        -----
        Composition order matters: ``a.compose(b)`` ≠ ``b.compose(a)`` in general.
        """
        return Affine2D(self.A @ other.A)

    # Pythonic shorthand:  t3 = t1 @ t2
    def __matmul__(self, other: Affine2D) -> Affine2D:
        """Compose transformations using @ operator."""
        return self.compose(other)


def identity() -> Affine2D:
    """Return the identity transform."""
    return Affine2D(np.eye(3))


# Factory helpers for the most common ops ---------------------------------
def scale_2d(sx: float = 1.0, sy: float | None = None) -> Affine2D:
    """Create uniform or anisotropic scaling transformation.

    Parameters
    ----------
    sx : float, default=1.0
        Scale factor for x-axis.
    sy : float or None, default=None
        Scale factor for y-axis. If None, uses `sx` for uniform scaling.

    Examples
    --------
    >>> scale_2d(0.2)(np.array([[100.0, 0.0]]))
    array([[20.,  0.]])
    """
    sy = sx if sy is None else sy
    return Affine2D(np.array([[sx, 0.0, 0.0], [0.0, sy, 0.0], [0.0, 0.0, 1.0]]))


def translate(tx: float = 0.0, ty: float = 0.0) -> Affine2D:
    """Create translation transformation.

    Examples
    --------
    >>> translate(10, 20)(np.array([[0, 0], [1, 1]]))
    array([[10., 20.],
           [11., 21.]])
    """
    return Affine2D(np.array([[1.0, 0.0, tx], [0.0, 1.0, ty], [0.0, 0.0, 1.0]]))


def rotate(angle_deg: float, pivot: tuple[float, float] = (0.0, 0.0)) -> Affine2D:
    """Counter-clockwise rotation by ``angle_deg`` degrees about ``pivot``.

    Examples
    --------
    >>> out = rotate(90.0)(np.array([[1.0, 0.0]]))
    >>> np.allclose(out, [[0.0, 1.0]])
    True
    """
    theta = math.radians(angle_deg)
    c, s = math.cos(theta), math.sin(theta)
    R = Affine2D(np.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]]))
    px, py = float(pivot[0]), float(pivot[1])
    return translate(px, py) @ R @ translate(-px, -py)


def flip_y(height: float = 0.0) -> Affine2D:
    """Invert the *y*-axis: ``y' = height - y``.

    With ``height`` set to the frame height in pixels the origin moves from
    the top-left to the bottom-left corner; with the default ``0`` the
    y-axis is simply negated.
    """
    return Affine2D(np.array([[1.0, 0.0, 0.0], [0.0, -1.0, height], [0.0, 0.0, 1.0]]))


# --- Calibration ------------------------------------------------------
def units_per_raw(
    point1: ArrayLike,
    point2: ArrayLike,
    real_distance: float,
) -> float:
    """Scale factor from two calibration points of known separation.

    Parameters
    ----------
    point1, point2 : array-like, shape (2,)
        Calibration points in raw coordinates.
    real_distance : float
        Physical distance between the points (e.g. in cm). Must be positive.

    Returns
    -------
    float
        ``real_distance / euclidean_distance(point1, point2)``.

    Raises
    ------
    ValueError
        If ``real_distance`` is not positive.
    InvalidGeometryError
        If the points coincide.

    Examples
    --------
    >>> units_per_raw((0.0, 0.0), (100.0, 0.0), real_distance=20.0)
    0.2
    """
    if not np.isfinite(real_distance) or real_distance <= 0:
        raise ValueError(
            f"WHAT: real_distance must be positive (got {real_distance}).\n"
            f"WHY: A calibration segment must have positive real-world length.\n"
            f"HOW: Provide the measured distance between the two points."
        )
    p1 = np.asarray(point1, dtype=np.float64).reshape(2)
    p2 = np.asarray(point2, dtype=np.float64).reshape(2)
    raw_distance = float(np.hypot(*(p2 - p1)))
    if raw_distance == 0.0:
        raise InvalidGeometryError(
            f"WHAT: calibration points coincide (p1={tuple(p1)}, p2={tuple(p2)}).\n"
            "WHY: Cannot compute a scale from a zero-length segment.\n"
            "HOW: Pick two distinct landmarks a known distance apart.",
            field="calibration",
            error_code="E3001",
        )
    return float(real_distance) / raw_distance


@dataclass(frozen=True)
class CoordinateTransform:
    """Ordered pipeline of named affine stages.

    Parameters
    ----------
    stages : tuple of (str, Affine2D)
        Stages applied first to last. Names are informational
        (``"scale"``, ``"rotate"``, ...).

    Attributes
    ----------
    matrix : Affine2D
        Composite transform equivalent to running every stage in order.

    Examples
    --------
    >>> t = build_transform(scale=0.2)
    >>> t(np.array([[100.0, 0.0]]))
    array([[20.,  0.]])
    >>> [name for name, _ in t.stages]
    ['scale']
    """

    stages: tuple[tuple[str, Affine2D], ...] = ()
    matrix: Affine2D = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        stages = tuple((str(name), stage) for name, stage in self.stages)
        composite = identity()
        for _, stage in stages:
            if not isinstance(stage, Affine2D):
                raise TypeError(
                    f"Transform stages must be Affine2D, got {type(stage).__name__}."
                )
            composite = stage @ composite
        object.__setattr__(self, "stages", stages)
        object.__setattr__(self, "matrix", composite)

    def __call__(self, pts: ArrayLike) -> NDArray[np.float64]:
        return self.matrix(pts)

    def then(self, name: str, stage: Affine2D) -> CoordinateTransform:
        """Return a new pipeline with ``stage`` appended."""
        return CoordinateTransform(self.stages + ((name, stage),))

    @property
    def uniform_scale(self) -> float | None:
        """Length scale factor of the whole pipeline (None if not a similarity)."""
        return self.matrix.uniform_scale

    def apply(self, samples: PositionSamples) -> PositionSamples:
        """Transform position samples into the target frame.

        Invalid samples keep NaN coordinates; frames and validity are
        carried over unchanged. The input is not modified.
        """
        from arenazones.samples import PositionSamples

        xy = self.matrix(samples.points)
        return PositionSamples(
            frames=samples.frames,
            x=xy[:, 0],
            y=xy[:, 1],
            valid=samples.valid,
        )


def build_transform(
    *,
    scale: float | None = None,
    rotation_deg: float | None = None,
    pivot: tuple[float, float] = (0.0, 0.0),
    origin: tuple[float, float] | None = None,
    flip: bool = False,
    flip_height: float = 0.0,
    order: Sequence[str] = STAGE_NAMES,
) -> CoordinateTransform:
    """Build a scale / rotate / translate / flip pipeline.

    Parameters
    ----------
    scale : float or None
        Uniform scale (physical units per raw unit), e.g. from
        :func:`units_per_raw`. Skipped if None.
    rotation_deg : float or None
        Counter-clockwise rotation in degrees about ``pivot``. Skipped if None.
    pivot : tuple of float, default=(0, 0)
        Rotation pivot, in the coordinates reaching the rotate stage.
    origin : tuple of float or None
        Point that becomes the new origin (subtracted), in the coordinates
        reaching the translate stage. Skipped if None.
    flip : bool, default=False
        Invert the y-axis (``y' = flip_height - y``).
    flip_height : float, default=0.0
        Reflection offset for the flip stage.
    order : sequence of str
        Stage order, a permutation of a subset of
        ``("scale", "rotate", "translate", "flip")``.

    Returns
    -------
    CoordinateTransform

    Examples
    --------
    >>> t = build_transform(scale=0.5, origin=(10.0, 10.0))
    >>> t(np.array([[40.0, 20.0]]))
    array([[10.,  0.]])
    """
    order = tuple(order)
    unknown = set(order) - set(STAGE_NAMES)
    if unknown or len(set(order)) != len(order):
        raise ValueError(
            f"order must be distinct stage names from {STAGE_NAMES}, got {order}."
        )
    if scale is not None and (not np.isfinite(scale) or scale <= 0):
        raise ValueError(f"scale must be a positive number (got {scale}).")

    factories = {
        "scale": (lambda: scale_2d(scale)) if scale is not None else None,
        "rotate": (lambda: rotate(rotation_deg, pivot))
        if rotation_deg is not None
        else None,
        "translate": (lambda: translate(-origin[0], -origin[1]))
        if origin is not None
        else None,
        "flip": (lambda: flip_y(flip_height)) if flip else None,
    }
    stages = tuple(
        (name, factories[name]()) for name in order if factories[name] is not None
    )
    return CoordinateTransform(stages)
