"""Iterative power-rating engine.

Pipeline for one (season, model_version) run:

    1. Load features for every roster team (tiered fallback, concurrent)
    2. Talent component from season-level talent z-scores (computed once)
    3. Opponent-strength iteration over offense/defense indices
    4. Shrink offense and defense toward the prior
    5. Calibrate offense, defense and talent into points
    6. Clear the previous run, upsert each team, read the run back
    7. Sanity gates on the persisted ratings

Every stage appends distribution stats to the run's StageLog. A gate failure
marks the run failed and raises SanityGateError with the RunResult attached;
rows already written stay in place.
"""

import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Mapping, Optional, Sequence

from config.model_config import ModelConfig
from cfb_power.data.feature_loader import (
    DataSourceSummary,
    FeatureLoader,
    TeamFeatures,
    summarize_sources,
)
from cfb_power.data.feature_store import FeatureStore
from cfb_power.data.rating_store import RatingStore, TeamRating
from cfb_power.models.calibration import apply_calibration
from cfb_power.models.indices import talent_component
from cfb_power.models.normalization import compute_zscore_table
from cfb_power.models.shrinkage import shrink_ratings
from cfb_power.models.sos_adjustment import (
    IndexRating,
    OpponentStrengthIterator,
    SoSResult,
    SoSState,
    group_games_by_team,
)
from cfb_power.ratings.instrumentation import StageLog
from cfb_power.ratings.sanity_gates import (
    GateReport,
    GateThresholds,
    SanityGateError,
    check_sanity_gates,
    population_std,
)

logger = logging.getLogger(__name__)

STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"


@dataclass
class RunResult:
    """Everything a rating run produced."""

    season: int
    model_version: str
    status: str
    ratings: list[TeamRating]
    stage_log: StageLog
    source_summary: DataSourceSummary
    sos_state: SoSState
    sos_iterations: int = 0
    max_delta: Optional[float] = None
    upserted: int = 0
    upsert_failures: int = 0
    readback: Optional[list[TeamRating]] = None
    gate_report: Optional[GateReport] = None
    features: dict[str, TeamFeatures] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == STATUS_COMPLETED

    def top(self, n: int = 10) -> list[TeamRating]:
        return sorted(self.ratings, key=lambda r: r.power_rating, reverse=True)[:n]


class PowerRatingEngine:
    """Runs the full rating pipeline for one model configuration."""

    def __init__(
        self,
        store: FeatureStore,
        config: ModelConfig,
        rating_store: Optional[RatingStore] = None,
        thresholds: GateThresholds = GateThresholds(),
        min_game_samples: int = 2,
        full_confidence_games: int = 8,
        loader_workers: int = 8,
        priors: Optional[Mapping[str, tuple[float, float]]] = None,
    ):
        """Initialize the engine.

        Args:
            store: Feature store to read features and games from
            config: Resolved model configuration
            rating_store: Where to persist ratings (None skips persistence and
                the read-back check)
            thresholds: Sanity gate thresholds
            min_game_samples: Minimum games for the game-level feature tier
            full_confidence_games: Games at which confidence saturates
            loader_workers: Thread pool size for feature loading
            priors: Optional team -> (offense, defense) shrinkage prior
        """
        self.store = store
        self.config = config
        self.rating_store = rating_store
        self.thresholds = thresholds
        self.loader = FeatureLoader(store, min_game_samples, full_confidence_games)
        self.loader_workers = loader_workers
        self.priors = priors or {}

    # =========================================================================
    # COMPUTATION
    # =========================================================================

    def _talent_components(self, features: Sequence[TeamFeatures]) -> dict[str, float]:
        weights = self.config.talent_weights
        if not weights:
            return {f.team_id: 0.0 for f in features}
        talent_zstats = compute_zscore_table(features, self.config.talent_metrics)
        return {f.team_id: talent_component(f, talent_zstats, weights) for f in features}

    def _finalize(
        self,
        season: int,
        model_version: str,
        features: Mapping[str, TeamFeatures],
        index_ratings: Mapping[str, IndexRating],
        stage_log: StageLog,
    ) -> list[TeamRating]:
        """Shrink and calibrate index ratings into TeamRatings."""
        shrinkage = self.config.shrinkage
        shrunk: list[TeamRating] = []
        for team_id, rating in index_ratings.items():
            f = features[team_id]
            offense, defense, factor = shrink_ratings(
                rating.offense,
                rating.defense,
                f.confidence,
                f.games_count,
                shrinkage,
                prior=self.priors.get(team_id),
            )
            shrunk.append(
                TeamRating(
                    team_id=team_id,
                    season=season,
                    model_version=model_version,
                    offense_rating=offense,
                    defense_rating=defense,
                    talent_component=rating.talent,
                    confidence=f.confidence,
                    data_source=f.data_source.value,
                    shrinkage_factor=factor,
                    games_count=f.games_count,
                ).with_power()
            )
        stage_log.record("post-shrinkage", [r.power_rating for r in shrunk])

        factor = self.config.calibration_factor
        calibrated = [apply_calibration(r, factor) for r in shrunk]
        stage_log.record("post-calibration", [r.power_rating for r in calibrated])
        return calibrated

    def compute(
        self, season: int, team_ids: Sequence[str], model_version: Optional[str] = None
    ) -> tuple[list[TeamRating], StageLog, SoSResult, dict[str, TeamFeatures]]:
        """Compute final ratings without persisting them.

        Args:
            season: Season year
            team_ids: Roster to rate (fixed for the run)
            model_version: Label for the ratings (default: config version)

        Returns:
            Tuple of (ratings, stage_log, sos_result, features by team)
        """
        model_version = model_version or self.config.version
        stage_log = StageLog()

        features = self.loader.load_all(team_ids, season, max_workers=self.loader_workers)
        by_team = {f.team_id: f for f in features}
        talent = self._talent_components(features)

        def on_iteration(iteration: int, ratings: Mapping[str, IndexRating]) -> None:
            stage = "raw baseline" if iteration == 0 else f"SoS iteration {iteration}"
            stage_log.record(stage, [r.power for r in ratings.values()])

        games = self.store.get_all_games(season)
        games_by_team = group_games_by_team(games, team_ids)
        logger.info(f"Loaded {len(games)} games for {season}")

        iterator = OpponentStrengthIterator(self.config, on_iteration=on_iteration)
        sos_result = iterator.run(features, games_by_team, talent)
        stage_log.record("pre-shrinkage", [r.power for r in sos_result.ratings.values()])

        ratings = self._finalize(season, model_version, by_team, sos_result.ratings, stage_log)
        return ratings, stage_log, sos_result, by_team

    # =========================================================================
    # PERSISTENCE + GATES
    # =========================================================================

    def _persist(self, season: int, model_version: str, ratings: Sequence[TeamRating]) -> tuple[int, int]:
        upserted = 0
        failures = 0
        for rating in ratings:
            try:
                self.rating_store.upsert(season, rating.team_id, model_version, rating)
                upserted += 1
            except sqlite3.Error as e:
                failures += 1
                logger.error(f"Failed to upsert {rating.team_id} ({season}, {model_version}): {e}")
        logger.info(f"Upserted {upserted}/{len(ratings)} ratings ({failures} failed)")
        return upserted, failures

    def run(
        self, season: int, team_ids: Optional[Sequence[str]] = None, model_version: Optional[str] = None
    ) -> RunResult:
        """Run the full pipeline, persist, and check the sanity gates.

        Args:
            season: Season year
            team_ids: Roster to rate (default: the store's roster for the season)
            model_version: Label to persist under (default: config version)

        Returns:
            RunResult with status "completed"

        Raises:
            SanityGateError: If any gate fails (error.result holds the failed run)
        """
        model_version = model_version or self.config.version
        if team_ids is None:
            team_ids = sorted(self.store.get_roster_for_season(season))
        logger.info(f"Rating {len(team_ids)} teams for {season} (model {model_version})")

        ratings, stage_log, sos_result, features = self.compute(season, team_ids, model_version)
        pre_write_std = population_std([r.power_rating for r in ratings])

        result = RunResult(
            season=season,
            model_version=model_version,
            status=STATUS_COMPLETED,
            ratings=ratings,
            stage_log=stage_log,
            source_summary=summarize_sources(list(features.values())),
            sos_state=sos_result.state,
            sos_iterations=sos_result.iterations,
            max_delta=sos_result.max_delta,
            features=features,
        )

        readback = None
        if self.rating_store is not None:
            # Read-back must see only this run's rows
            self.rating_store.delete_run(season, model_version)
            result.upserted, result.upsert_failures = self._persist(season, model_version, ratings)
            readback = self.rating_store.read_back(season, model_version)
            stage_log.record("readback", [r.power_rating for r in readback])
            result.readback = readback

        log_rating_summary(result)

        report = check_sanity_gates(ratings, readback, pre_write_std, self.thresholds)
        result.gate_report = report
        if not report.passed:
            result.status = STATUS_FAILED
            names = ", ".join(g.name for g in report.failures)
            raise SanityGateError(
                f"Run {season}/{model_version} failed sanity gate(s): {names}",
                report=report,
                result=result,
            )

        logger.info(f"Run {season}/{model_version} completed: {len(ratings)} teams rated")
        return result


def log_rating_summary(result: RunResult) -> None:
    """Log averages and the breakdown by data source."""
    ratings = result.ratings
    if not ratings:
        logger.warning("No ratings to summarize")
        return
    n = len(ratings)
    avg_power = sum(r.power_rating for r in ratings) / n
    avg_conf = sum(r.confidence for r in ratings) / n
    avg_shrink = sum(r.shrinkage_factor for r in ratings) / n
    logger.info(
        f"Summary: {n} teams, avg power={avg_power:.3f}, "
        f"avg confidence={avg_conf:.3f}, avg shrinkage={avg_shrink:.3f}"
    )
    s = result.source_summary
    logger.info(
        f"By source: game_level={s.game_level}, season_aggregate={s.season_aggregate}, "
        f"baseline={s.baseline}, missing={s.missing}, flagged={s.flagged}"
    )
    logger.info(
        f"SoS: {result.sos_state.value} after {result.sos_iterations} iteration(s)"
        + (f", max delta {result.max_delta:.5f}" if result.max_delta is not None else "")
    )
