"""Feature loading with a tiered fallback hierarchy.

Each team gets exactly one TeamFeatures record per season, resolved from the
first tier that has data:

    1. game_level        - season aggregate of game-level advanced stats
                           (needs at least min_game_samples usable games)
    2. season_aggregate  - season summary stats
    3. baseline          - static preseason prior features
    4. missing           - all-null record

Tiers are FallbackProvider objects walked in order, so each can be tested on
its own. Talent (roster talent + recruiting commits) is merged onto whatever
tier wins, including missing, which is what lets an early-season team with no
performance data still be rated from talent alone.

Confidence is monotone in tier and games played:
    confidence = tier_floor + tier_span * min(1, games / full_confidence_games)
"""

import logging
import math
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, fields, replace
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Sequence

from config.model_config import DEFENSE_METRICS, OFFENSE_METRICS, TALENT_METRICS
from cfb_power.data.feature_store import FeatureStore

logger = logging.getLogger(__name__)

CORE_METRICS = OFFENSE_METRICS + DEFENSE_METRICS

# Game-level rows must carry at least one of these to count as a usable game
REQUIRED_GAME_METRICS = ("ypp_off", "ypp_def", "success_off", "success_def")


class DataSource(str, Enum):
    """Which fallback tier produced a team's features."""

    GAME_LEVEL = "game_level"
    SEASON_AGGREGATE = "season_aggregate"
    BASELINE = "baseline"
    MISSING = "missing"


# (floor, span) per tier
CONFIDENCE_TIERS: dict[DataSource, tuple[float, float]] = {
    DataSource.GAME_LEVEL: (0.75, 0.25),
    DataSource.SEASON_AGGREGATE: (0.50, 0.20),
    DataSource.BASELINE: (0.30, 0.0),
    DataSource.MISSING: (0.0, 0.0),
}


@dataclass(frozen=True)
class TeamFeatures:
    """Per-team, per-season feature record. Any metric may be None."""

    team_id: str
    season: int

    # Offense
    ypp_off: Optional[float] = None
    pass_ypa_off: Optional[float] = None
    rush_ypc_off: Optional[float] = None
    success_off: Optional[float] = None
    epa_off: Optional[float] = None
    pace_off: Optional[float] = None

    # Defense (values allowed; lower is better)
    ypp_def: Optional[float] = None
    pass_ypa_def: Optional[float] = None
    rush_ypc_def: Optional[float] = None
    success_def: Optional[float] = None
    epa_def: Optional[float] = None
    pace_def: Optional[float] = None

    # Talent
    talent_composite: Optional[float] = None
    blue_chips_pct: Optional[float] = None
    commits_signal: Optional[float] = None

    games_count: int = 0
    confidence: float = 0.0
    data_source: DataSource = DataSource.MISSING
    last_updated: Optional[datetime] = None
    flagged: bool = False  # Store error forced the missing tier

    @property
    def has_core_features(self) -> bool:
        return any(getattr(self, m) is not None for m in CORE_METRICS)


@dataclass
class DataSourceSummary:
    """Counts of loaded teams per fallback tier."""

    game_level: int = 0
    season_aggregate: int = 0
    baseline: int = 0
    missing: int = 0
    flagged: int = 0
    total: int = 0

    def as_dict(self) -> dict[str, int]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def compute_confidence(data_source: DataSource, games_count: int, full_confidence_games: int = 8) -> float:
    """Confidence in [0, 1] from tier and games played."""
    floor, span = CONFIDENCE_TIERS[data_source]
    if full_confidence_games <= 0:
        games_share = 1.0
    else:
        games_share = min(1.0, max(0, games_count) / full_confidence_games)
    return min(1.0, max(0.0, floor + span * games_share))


def compute_commits_signal(commits: Optional[dict]) -> Optional[float]:
    """Weighted star mix of a recruiting class: 5*=5, 4*=4, 3*=3."""
    if not commits:
        return None
    total = _to_float(commits.get("commits_total")) or 0
    if total <= 0:
        return None
    weighted = (
        (_to_float(commits.get("five_star")) or 0) * 5
        + (_to_float(commits.get("four_star")) or 0) * 4
        + (_to_float(commits.get("three_star")) or 0) * 3
    )
    return weighted / total


def _to_float(value: Any) -> Optional[float]:
    """Coerce store values to float; None/NaN/unparseable become None."""
    if value is None:
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def _to_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return None


def _metrics_from_row(row: dict) -> dict[str, Optional[float]]:
    return {m: _to_float(row.get(m)) for m in CORE_METRICS}


# =============================================================================
# FALLBACK PROVIDERS
# =============================================================================


class FallbackProvider(ABC):
    """One tier of the fallback hierarchy."""

    data_source: DataSource

    def __init__(self, store: FeatureStore, full_confidence_games: int = 8):
        self.store = store
        self.full_confidence_games = full_confidence_games

    @abstractmethod
    def provide(self, team_id: str, season: int) -> Optional[TeamFeatures]:
        """Return features for this tier, or None to fall through."""

    def _build(
        self,
        team_id: str,
        season: int,
        metrics: dict[str, Optional[float]],
        games_count: int,
        last_updated: Optional[datetime],
    ) -> Optional[TeamFeatures]:
        if all(v is None for v in metrics.values()):
            return None
        return TeamFeatures(
            team_id=team_id,
            season=season,
            **metrics,
            games_count=games_count,
            confidence=compute_confidence(
                self.data_source, games_count, self.full_confidence_games
            ),
            data_source=self.data_source,
            last_updated=last_updated,
        )


class GameLevelProvider(FallbackProvider):
    """Average of game-level stat rows over the season."""

    data_source = DataSource.GAME_LEVEL

    def __init__(self, store: FeatureStore, min_game_samples: int = 2, full_confidence_games: int = 8):
        super().__init__(store, full_confidence_games)
        self.min_game_samples = min_game_samples

    def provide(self, team_id: str, season: int) -> Optional[TeamFeatures]:
        rows = [
            row
            for row in self.store.get_game_stats(team_id, season)
            if any(_to_float(row.get(m)) is not None for m in REQUIRED_GAME_METRICS)
        ]
        if len(rows) < max(1, self.min_game_samples):
            return None

        # Per-metric mean over the games that report it
        metrics: dict[str, Optional[float]] = {}
        for metric in CORE_METRICS:
            values = [v for v in (_to_float(r.get(metric)) for r in rows) if v is not None]
            metrics[metric] = sum(values) / len(values) if values else None

        updated = [d for d in (_to_datetime(r.get("updated_at")) for r in rows) if d is not None]
        return self._build(team_id, season, metrics, len(rows), max(updated) if updated else None)


class SeasonAggregateProvider(FallbackProvider):
    """Season summary stats row."""

    data_source = DataSource.SEASON_AGGREGATE

    def provide(self, team_id: str, season: int) -> Optional[TeamFeatures]:
        row = self.store.get_season_stats(team_id, season)
        if not row:
            return None
        games = int(_to_float(row.get("games")) or 0)
        return self._build(
            team_id, season, _metrics_from_row(row), games, _to_datetime(row.get("updated_at"))
        )


class BaselineProvider(FallbackProvider):
    """Static preseason prior features."""

    data_source = DataSource.BASELINE

    def provide(self, team_id: str, season: int) -> Optional[TeamFeatures]:
        row = self.store.get_baseline(team_id, season)
        if not row:
            return None
        return self._build(
            team_id, season, _metrics_from_row(row), 0, _to_datetime(row.get("updated_at"))
        )


# =============================================================================
# LOADER
# =============================================================================


class FeatureLoader:
    """Resolve one TeamFeatures per team by walking the fallback providers."""

    def __init__(
        self,
        store: FeatureStore,
        min_game_samples: int = 2,
        full_confidence_games: int = 8,
        providers: Optional[Sequence[FallbackProvider]] = None,
    ):
        """Initialize the loader.

        Args:
            store: Feature store to read from
            min_game_samples: Minimum usable games for the game-level tier
            full_confidence_games: Games at which a tier reaches its max confidence
            providers: Custom provider chain (default: game, season, baseline)
        """
        self.store = store
        if providers is None:
            providers = [
                GameLevelProvider(store, min_game_samples, full_confidence_games),
                SeasonAggregateProvider(store, full_confidence_games),
                BaselineProvider(store, full_confidence_games),
            ]
        self.providers = list(providers)

    def load(self, team_id: str, season: int) -> TeamFeatures:
        """Load features for one team. Never raises for store errors."""
        features: Optional[TeamFeatures] = None
        flagged = False
        try:
            for provider in self.providers:
                features = provider.provide(team_id, season)
                if features is not None:
                    break
        except Exception as e:
            logger.warning(
                f"Feature store error for {team_id} {season}, loading as missing: {e}"
            )
            features = None
            flagged = True

        if features is None:
            features = TeamFeatures(
                team_id=team_id,
                season=season,
                data_source=DataSource.MISSING,
                flagged=flagged,
            )

        return replace(features, **self._load_talent(team_id, season))

    def _load_talent(self, team_id: str, season: int) -> dict[str, Optional[float]]:
        try:
            talent = self.store.get_talent(team_id, season) or {}
            commits = self.store.get_class_commits(team_id, season)
        except Exception as e:
            logger.warning(f"Failed to load talent features for {team_id} {season}: {e}")
            return {m: None for m in TALENT_METRICS}

        return {
            "talent_composite": _to_float(talent.get("talent_composite")),
            "blue_chips_pct": _to_float(talent.get("blue_chips_pct")),
            "commits_signal": compute_commits_signal(commits),
        }

    def load_all(self, team_ids: Sequence[str], season: int, max_workers: int = 8) -> list[TeamFeatures]:
        """Load every team concurrently; results keep the order of team_ids."""
        team_ids = list(team_ids)
        logger.info(f"Loading features for {len(team_ids)} teams ({season})...")
        with ThreadPoolExecutor(max_workers=max(1, max_workers)) as pool:
            features = list(pool.map(lambda t: self.load(t, season), team_ids))

        summary = summarize_sources(features)
        logger.info(
            f"Loaded features: game={summary.game_level}, season={summary.season_aggregate}, "
            f"baseline={summary.baseline}, missing={summary.missing} "
            f"(flagged={summary.flagged}, total={summary.total})"
        )
        return features


def summarize_sources(features: Sequence[TeamFeatures]) -> DataSourceSummary:
    """Bucket loaded teams by data source."""
    summary = DataSourceSummary(total=len(features))
    for f in features:
        if f.data_source == DataSource.GAME_LEVEL:
            summary.game_level += 1
        elif f.data_source == DataSource.SEASON_AGGREGATE:
            summary.season_aggregate += 1
        elif f.data_source == DataSource.BASELINE:
            summary.baseline += 1
        else:
            summary.missing += 1
        if f.flagged:
            summary.flagged += 1
    return summary
