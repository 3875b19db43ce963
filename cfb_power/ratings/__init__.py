"""Rating runs: engine orchestration, instrumentation and sanity gates."""

from .engine import PowerRatingEngine, RunResult
from .instrumentation import StageLog, StageStats
from .sanity_gates import GateReport, GateThresholds, SanityGateError, check_sanity_gates

__all__ = [
    "PowerRatingEngine",
    "RunResult",
    "StageLog",
    "StageStats",
    "GateReport",
    "GateThresholds",
    "SanityGateError",
    "check_sanity_gates",
]
