"""
Behavioral analysis of zone membership.

Submodules
----------
occupancy : Occupancy, dwells, entries, exits, latency to first entry
transitions : Zone-to-zone transition matrix
analysis : Trial and multi-body-part session analysis, result tables
"""

from arenazones.behavior.analysis import (
    AnalysisResult,
    analyze_session,
    analyze_trial,
    session_to_dataframe,
)
from arenazones.behavior.occupancy import (
    NEVER,
    Dwell,
    Never,
    ZoneSummary,
    detect_dwells,
    latency_to_first_entry,
    summarize_zone,
    zone_occupancy,
)
from arenazones.behavior.transitions import (
    TransitionMatrix,
    label_runs,
    transition_matrix,
)

__all__ = [
    "NEVER",
    "AnalysisResult",
    "Dwell",
    "Never",
    "TransitionMatrix",
    "ZoneSummary",
    "analyze_session",
    "analyze_trial",
    "detect_dwells",
    "label_runs",
    "latency_to_first_entry",
    "session_to_dataframe",
    "summarize_zone",
    "transition_matrix",
    "zone_occupancy",
]
