"""Model components package.

Numeric core shared by the engine and the calibration tooling:
- normalization: population z-scores
- indices: weighted offense/defense/talent indices
- sos_adjustment: iterative opponent-strength correction
- shrinkage: confidence/games-sized shrinkage toward a prior
- calibration: scaling into point-spread units, calibration-factor fit
- srs: margin-based Simple Rating System
"""

from .calibration import CalibrationFit, apply_calibration, calibrate, fit_calibration_factor, implied_spread
from .normalization import ZScoreStats, compute_zscore_stats, compute_zscore_table, z_score
from .shrinkage import shrink, shrinkage_factor
from .sos_adjustment import OpponentStrengthIterator, SoSResult, SoSState
from .srs import SRSResult, compute_srs_ratings

__all__ = [
    "CalibrationFit",
    "apply_calibration",
    "calibrate",
    "fit_calibration_factor",
    "implied_spread",
    "ZScoreStats",
    "compute_zscore_stats",
    "compute_zscore_table",
    "z_score",
    "shrink",
    "shrinkage_factor",
    "OpponentStrengthIterator",
    "SoSResult",
    "SoSState",
    "SRSResult",
    "compute_srs_ratings",
]
