"""Zone occupancy and transition analysis for behavioral arenas.

**arenazones** turns a declarative arena description (reference points and
polygon, circle, rectangle or proportional zones) into concrete geometry,
classifies tracked positions against it and derives occupancy, entries,
exits, latency to first entry and zone-to-zone transitions.

Core Classes (Top-Level Exports)
--------------------------------
Arena : Reference points, zones and calibration, validated on construction
    Factory: from_dict. Zones resolve once via ``Arena.resolve()``.
PolygonZone, CircleZone, RectangleZone, ProportionalZone : Zone definitions
ReferencePoint, Calibration : Named landmarks and raw-to-physical scale
PositionSamples : Frames, coordinates and validity of one tracked point
ConfigurationError, InvalidGeometryError : Configuration and geometry errors
NEVER : Latency sentinel for zones that were never entered

Submodule Organization
----------------------
Everything else is accessed via explicit submodule imports.

resolver : Dependency-ordered zone resolution

    >>> from arenazones.resolver import resolve_zones, ResolvedArena

classification : Tri-state point classification

    >>> from arenazones.classification import classify, Membership

behavior : Occupancy, dwells, transitions, trial and session analysis

    >>> from arenazones.behavior import analyze_trial, analyze_session

ops : Geometry primitives and coordinate transforms

    >>> from arenazones.ops import build_transform, units_per_raw
"""

import logging

from arenazones.arena import Arena, Calibration
from arenazones.behavior.occupancy import NEVER
from arenazones.samples import PositionSamples
from arenazones.validation import ConfigurationError, InvalidGeometryError
from arenazones.zones import (
    CircleZone,
    PolygonZone,
    ProportionalZone,
    RectangleZone,
    ReferencePoint,
    zone_from_dict,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "NEVER",
    "Arena",
    "Calibration",
    "CircleZone",
    "ConfigurationError",
    "InvalidGeometryError",
    "PolygonZone",
    "PositionSamples",
    "ProportionalZone",
    "RectangleZone",
    "ReferencePoint",
    "zone_from_dict",
]
