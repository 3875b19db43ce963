"""Weighted-index composition from z-scored features.

    offense = sum(w_i * z_i)
    defense = -sum(w_i * z_i)      (lower allowed is better, so sign flips)
    talent  = sum(w_i * z_i)

Weights come from the model configuration as {metric: weight} mappings.
A team with no defensive yardage metrics at all has its defensive weights
renormalized over the metrics it does have, so it isn't pulled toward zero by
three null-valued yardage terms.
"""

import logging
from typing import Mapping

from config.model_config import DEFENSE_YARDAGE_METRICS
from cfb_power.data.feature_loader import TeamFeatures
from cfb_power.models.normalization import ZScoreStats, z_score

logger = logging.getLogger(__name__)


def _weighted_sum(
    features: TeamFeatures,
    zstats: Mapping[str, ZScoreStats],
    weights: Mapping[str, float],
) -> float:
    total = 0.0
    for metric, weight in weights.items():
        stats = zstats.get(metric)
        if stats is None or weight == 0:
            continue
        total += weight * z_score(getattr(features, metric), stats)
    return total


def offensive_index(
    features: TeamFeatures,
    zstats: Mapping[str, ZScoreStats],
    weights: Mapping[str, float],
) -> float:
    """Weighted sum of offensive z-scores (higher is better)."""
    return _weighted_sum(features, zstats, weights)


def defensive_index(
    features: TeamFeatures,
    zstats: Mapping[str, ZScoreStats],
    weights: Mapping[str, float],
) -> float:
    """Negated weighted sum of defensive z-scores (higher is better).

    If every defensive yardage metric is null but other weighted defensive
    metrics are present, the remaining weights are rescaled to the original
    total so efficiency alone carries the full defensive weight.
    """
    yardage_weighted = [m for m in weights if m in DEFENSE_YARDAGE_METRICS]
    if yardage_weighted and all(getattr(features, m) is None for m in yardage_weighted):
        remaining = {
            m: w
            for m, w in weights.items()
            if m not in DEFENSE_YARDAGE_METRICS and getattr(features, m) is not None
        }
        remaining_total = sum(remaining.values())
        if remaining and remaining_total != 0:
            scale = sum(weights.values()) / remaining_total
            weights = {m: w * scale for m, w in remaining.items()}

    return -_weighted_sum(features, zstats, weights)


def talent_component(
    features: TeamFeatures,
    talent_zstats: Mapping[str, ZScoreStats],
    weights: Mapping[str, float],
) -> float:
    """Weighted sum of talent z-scores. Zero when no talent weights are configured."""
    if not weights:
        return 0.0
    return _weighted_sum(features, talent_zstats, weights)
