"""Population z-score normalization.

Features are put on a common scale by standardizing each metric against the
teams rated in the same run:

    z = (value - mean) / std

where mean and std are computed over the non-null values in the population.
std is the population standard deviation (ddof=0). Stats are recomputed after
every feature change (e.g. each opponent-strength iteration), never cached
across passes.
"""

import logging
import math
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Sequence, Union

import numpy as np

from cfb_power.data.feature_loader import TeamFeatures

logger = logging.getLogger(__name__)

MetricSelector = Union[str, Callable[[TeamFeatures], Optional[float]]]


@dataclass(frozen=True)
class ZScoreStats:
    """Population stats for one metric. std == 0 means no usable variance."""

    metric: str
    mean: float
    std: float
    count: int


def _selector_name(metric: MetricSelector) -> str:
    if isinstance(metric, str):
        return metric
    return getattr(metric, "__name__", "custom")


def _values(features: Iterable[TeamFeatures], metric: MetricSelector) -> np.ndarray:
    getter = (lambda f: getattr(f, metric)) if isinstance(metric, str) else metric
    values = []
    for f in features:
        v = getter(f)
        if v is None:
            continue
        v = float(v)
        if math.isfinite(v):
            values.append(v)
    return np.asarray(values, dtype=float)


def compute_zscore_stats(features: Sequence[TeamFeatures], metric: MetricSelector) -> ZScoreStats:
    """Compute mean and population std of one metric across teams.

    Args:
        features: Team feature records
        metric: TeamFeatures attribute name, or a callable selector

    Returns:
        ZScoreStats. With fewer than 2 samples std is 0.
    """
    values = _values(features, metric)
    count = len(values)
    if count == 0:
        return ZScoreStats(metric=_selector_name(metric), mean=0.0, std=0.0, count=0)

    mean = float(values.mean())
    std = float(values.std(ddof=0)) if count >= 2 else 0.0
    if not math.isfinite(std):
        std = 0.0
    return ZScoreStats(metric=_selector_name(metric), mean=mean, std=std, count=count)


def compute_zscore_table(
    features: Sequence[TeamFeatures], metrics: Iterable[str]
) -> dict[str, ZScoreStats]:
    """ZScoreStats for several metrics at once, keyed by metric name."""
    table = {metric: compute_zscore_stats(features, metric) for metric in metrics}
    for metric, stats in table.items():
        if stats.count > 0 and stats.std == 0.0:
            logger.debug(f"{metric}: no variance across {stats.count} teams, z-scores will be 0")
    return table


def z_score(value: Optional[float], stats: ZScoreStats) -> float:
    """Standardize one value. Null, NaN and zero-variance all map to 0."""
    if value is None:
        return 0.0
    value = float(value)
    if math.isnan(value) or stats.std == 0.0:
        return 0.0
    return (value - stats.mean) / stats.std
