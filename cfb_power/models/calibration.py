"""Calibration of index units into point-spread units.

Power ratings come out of the index composer in z-score units. A single
calibration factor from the model configuration scales offense, defense and
talent so power ratings read as points better than average, and differences
between two teams read as a spread.

fit_calibration_factor estimates that factor from history: an OLS of the
market spread on the rating difference and a home-field indicator. The slope
on the rating difference is the calibration factor.
"""

import logging
import math
from dataclasses import dataclass, replace
from typing import Sequence

import numpy as np
from sklearn.linear_model import LinearRegression

from config.model_config import DEFAULT_HFA

logger = logging.getLogger(__name__)


@dataclass
class CalibrationFit:
    """Result of a calibration-factor regression."""

    slope: float  # Calibration factor (points per rating unit)
    intercept: float
    hfa_coef: float  # Points per unit of the home-field column
    rmse: float
    r2: float
    n: int


def calibrate(value: float, factor: float) -> float:
    """Scale a value into point-spread units."""
    return value * factor


def apply_calibration(rating, factor: float):
    """Scale offense, defense and talent of a TeamRating by factor.

    Power is rebuilt from the scaled components, so it stays their sum.
    """
    return replace(
        rating,
        offense_rating=calibrate(rating.offense_rating, factor),
        defense_rating=calibrate(rating.defense_rating, factor),
        talent_component=calibrate(rating.talent_component, factor),
    ).with_power()


def implied_spread(
    home_power: float,
    away_power: float,
    hfa: float = DEFAULT_HFA,
    neutral_site: bool = False,
) -> float:
    """Predicted home margin from two power ratings.

    Positive means the home team is favored. HFA is dropped at neutral sites.
    """
    return home_power - away_power + (0.0 if neutral_site else hfa)


def fit_calibration_factor(
    rating_diffs: Sequence[float],
    hfa_points: Sequence[float],
    market_spreads: Sequence[float],
) -> CalibrationFit:
    """Fit market_spread ~ slope * rating_diff + hfa_coef * hfa + intercept.

    Args:
        rating_diffs: Home minus away power rating, in index units
        hfa_points: Home-field column per game (0 at neutral sites)
        market_spreads: Market home margin (positive = home favored)

    Returns:
        CalibrationFit

    Raises:
        ValueError: If inputs differ in length or have fewer than 3 usable rows
    """
    x_diff = np.asarray(rating_diffs, dtype=float)
    x_hfa = np.asarray(hfa_points, dtype=float)
    y = np.asarray(market_spreads, dtype=float)
    if not (len(x_diff) == len(x_hfa) == len(y)):
        raise ValueError(
            f"Length mismatch: {len(x_diff)} rating diffs, {len(x_hfa)} hfa, {len(y)} spreads"
        )

    mask = np.isfinite(x_diff) & np.isfinite(x_hfa) & np.isfinite(y)
    n = int(mask.sum())
    if n < 3:
        raise ValueError(f"Need at least 3 complete games to fit a calibration factor, got {n}")
    if n < len(y):
        logger.warning(f"Dropped {len(y) - n} games with missing values from calibration fit")

    X = np.column_stack([x_diff[mask], x_hfa[mask]])
    y = y[mask]
    model = LinearRegression()
    model.fit(X, y)

    pred = model.predict(X)
    rmse = float(np.sqrt(np.mean((y - pred) ** 2)))
    ss_tot = float(np.sum((y - y.mean()) ** 2))
    r2 = 1.0 - float(np.sum((y - pred) ** 2)) / ss_tot if ss_tot > 0 else 0.0

    fit = CalibrationFit(
        slope=float(model.coef_[0]),
        intercept=float(model.intercept_),
        hfa_coef=float(model.coef_[1]),
        rmse=rmse,
        r2=r2,
        n=n,
    )
    if not math.isfinite(fit.slope) or fit.slope <= 0:
        logger.warning(f"Fitted calibration slope {fit.slope:.4f} is not positive")
    logger.info(
        f"Calibration fit: slope={fit.slope:.4f}, hfa={fit.hfa_coef:.3f}, "
        f"intercept={fit.intercept:.3f}, rmse={fit.rmse:.3f}, r2={fit.r2:.3f}, n={fit.n}"
    )
    return fit
