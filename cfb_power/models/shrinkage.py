"""Shrinkage of offense/defense ratings toward a prior.

Early-season ratings rest on a handful of games and are noisy, so each team's
offense and defense are pulled toward a prior (league average, 0, by default):

    shrunk = (1 - lambda) * raw + lambda * prior

lambda is sized per team:

    lambda = clamp(base
                   + min(confidence_cap, (1 - confidence) * confidence_weight)
                   + games_term(games_count),
                   min_factor, max_factor)

With the default table, a 2-game team at confidence 0.3 gets
0.12 + 0.15 + 0.18 = 0.45, clamped to 0.42. A team past 8 games at full
confidence sits at the floor, 0.18.
"""

import logging
from typing import Optional

from config.model_config import ShrinkageConfig

logger = logging.getLogger(__name__)


def shrink(raw: float, prior: float, factor: float) -> float:
    """Linear interpolation from raw toward prior. factor is clamped to [0, 1]."""
    if factor <= 0.0:
        return raw
    if factor >= 1.0:
        return prior
    return (1.0 - factor) * raw + factor * prior


def games_term(games_count: int, multipliers: tuple[tuple[int, float], ...]) -> float:
    """Step-table lookup: the term for the first threshold games_count is below."""
    for games_below, term in multipliers:
        if games_count < games_below:
            return term
    return 0.0


def shrinkage_factor(confidence: float, games_count: int, config: ShrinkageConfig) -> float:
    """Per-team shrinkage factor, clamped to the configured band.

    Args:
        confidence: Feature confidence in [0, 1]
        games_count: Games played
        config: Shrinkage parameters

    Returns:
        Factor in [config.min_factor, config.max_factor]
    """
    confidence = min(1.0, max(0.0, confidence))
    confidence_term = min(config.confidence_cap, (1.0 - confidence) * config.confidence_weight)
    factor = config.base_factor + confidence_term + games_term(games_count, config.games_multipliers)
    return min(config.max_factor, max(config.min_factor, factor))


def shrink_ratings(
    offense: float,
    defense: float,
    confidence: float,
    games_count: int,
    config: ShrinkageConfig,
    prior: Optional[tuple[float, float]] = None,
) -> tuple[float, float, float]:
    """Shrink offense and defense independently.

    Args:
        offense: Raw offensive rating
        defense: Raw defensive rating
        confidence: Feature confidence
        games_count: Games played
        config: Shrinkage parameters
        prior: Optional (offense, defense) prior; league average (0, 0) if None

    Returns:
        (shrunk_offense, shrunk_defense, factor). factor is 0 when disabled.
    """
    if not config.enabled:
        return offense, defense, 0.0

    prior_off, prior_def = prior if prior is not None else (0.0, 0.0)
    factor = shrinkage_factor(confidence, games_count, config)
    return shrink(offense, prior_off, factor), shrink(defense, prior_def, factor), factor
