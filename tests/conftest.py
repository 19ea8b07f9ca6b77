"""Shared test fixtures for the arenazones test suite.

Fixture Naming Convention
=========================

**Arena fixtures** follow the pattern ``{apparatus}_arena``:
    - open_field_arena: 100 x 100 floor with center and periphery zones
    - plus_maze_arena: elevated plus maze with polygon arms and a circle hub

**Sample fixtures** use ``{purpose}_samples``:
    - scenario_samples: the ten-frame 25 Hz walk in and out of zone "A"
"""

import os

import numpy as np
import pytest
from hypothesis import Phase, Verbosity, settings

from arenazones import (
    Arena,
    Calibration,
    CircleZone,
    PolygonZone,
    PositionSamples,
    ProportionalZone,
    RectangleZone,
)

# =============================================================================
# Hypothesis Configuration for Performance
# =============================================================================
# - "ci": Fast profile for CI pipelines (fewer examples, no deadline)
# - "dev": Standard development profile (moderate examples)
# - "thorough": Full property testing (many examples, for pre-release)

settings.register_profile(
    "ci",
    max_examples=10,
    deadline=None,
    suppress_health_check=[],
    phases=[Phase.explicit, Phase.reuse, Phase.generate],
    verbosity=Verbosity.quiet,
)

settings.register_profile(
    "dev",
    max_examples=25,
    deadline=5000,
    verbosity=Verbosity.normal,
)

settings.register_profile(
    "thorough",
    max_examples=100,
    deadline=None,
    verbosity=Verbosity.verbose,
)

# Set HYPOTHESIS_PROFILE=ci in CI environments for faster tests
_profile = os.environ.get("HYPOTHESIS_PROFILE", "dev")
settings.load_profile(_profile)

# =============================================================================
# Test Configuration Constants
# =============================================================================
FRAME_RATE = 25.0
SCENARIO_SEQUENCE = ["out", "out", "in", "in", "in", "out", "out", "in", "in", "out"]


# =============================================================================
# --- Fixtures ---
# =============================================================================
@pytest.fixture(scope="session")
def open_field_arena() -> Arena:
    """100 x 100 floor, center = middle half, periphery = floor minus center.

    Session-scoped: arenas are immutable.
    """
    return Arena(
        "open_field",
        points={"origin": (0.0, 0.0), "corner": (100.0, 0.0)},
        zones=[
            RectangleZone("floor", 0.0, 100.0, 0.0, 100.0),
            ProportionalZone("center", "floor", (0.25, 0.25, 0.75, 0.75)),
            ProportionalZone(
                "periphery", "floor", (0.0, 0.0, 1.0, 1.0), exclude="center"
            ),
        ],
        calibration=Calibration("origin", "corner", real_distance=20.0),
    )


@pytest.fixture(scope="session")
def plus_maze_arena() -> Arena:
    """Plus maze: circle hub of radius 5 and two polygon arms.

    Arms are 10 units wide and 40 long, along +x (open) and +y (closed).
    """
    return Arena(
        "epm",
        points={
            "hub": (0.0, 0.0),
            "o1": (5.0, -5.0),
            "o2": (45.0, -5.0),
            "o3": (45.0, 5.0),
            "o4": (5.0, 5.0),
            "c1": (-5.0, 5.0),
            "c2": (5.0, 5.0),
            "c3": (5.0, 45.0),
            "c4": (-5.0, 45.0),
        },
        zones=[
            CircleZone("center", center="hub", radius=5.0),
            PolygonZone("open_arm", ("o1", "o2", "o3", "o4")),
            PolygonZone("closed_arm", ("c1", "c2", "c3", "c4")),
        ],
    )


@pytest.fixture
def scenario_samples() -> PositionSamples:
    """Ten frames in and out of rectangle zone "A" = [0, 10] x [0, 10]."""
    x = np.array([20.0 if s == "out" else 5.0 for s in SCENARIO_SEQUENCE])
    return PositionSamples.from_arrays(x, np.full(len(x), 5.0))


@pytest.fixture
def box_arena() -> Arena:
    """Single rectangle zone "A" = [0, 10] x [0, 10]."""
    return Arena("box", zones=[RectangleZone("A", 0.0, 10.0, 0.0, 10.0)])
