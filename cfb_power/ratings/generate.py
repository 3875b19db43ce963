"""Canonical rating generation.

Every consumer (run_ratings.py, run_srs.py, reports) calls into this module
so that settings, model configuration, roster checks and persistence are
resolved the same way every time.
"""

import logging
import sqlite3
from typing import Optional

from config.model_config import ModelConfig, get_model_config
from config.settings import Settings, get_settings
from cfb_power.data.feature_store import FeatureStore, ParquetFeatureStore
from cfb_power.data.rating_store import RatingStore, TeamRating
from cfb_power.data.validators import validate_games, validate_roster_coverage, validate_season
from cfb_power.models.srs import SRSResult, compute_srs_ratings
from cfb_power.ratings.engine import PowerRatingEngine, RunResult
from cfb_power.ratings.sanity_gates import GateThresholds

logger = logging.getLogger(__name__)

SRS_MODEL_VERSION = "srs"


class SeasonOutOfRangeError(ValueError):
    """Raised when a season falls outside the supported window."""

    pass


def check_season(season: int, settings: Settings) -> None:
    result = validate_season(season, settings.min_season, settings.max_season)
    if not result.is_valid:
        raise SeasonOutOfRangeError(result.message)


def resolve_model_config(
    settings: Settings,
    model_version: Optional[str] = None,
    sos_weight: Optional[float] = None,
    shrinkage_base: Optional[float] = None,
    calibration_factor: Optional[float] = None,
) -> ModelConfig:
    """Look up a model version and apply any overrides.

    Raises:
        ModelConfigError: If the version is unknown or the result is invalid
    """
    version = model_version or settings.model_version
    config = get_model_config(version, settings.model_weights_path)
    return config.with_overrides(
        sos_weight=sos_weight,
        shrinkage_base=shrinkage_base,
        calibration_factor=calibration_factor,
    )


def generate_ratings(
    season: int,
    model_version: Optional[str] = None,
    sos_weight: Optional[float] = None,
    shrinkage_base: Optional[float] = None,
    calibration_factor: Optional[float] = None,
    settings: Optional[Settings] = None,
    store: Optional[FeatureStore] = None,
    rating_store: Optional[RatingStore] = None,
    persist: bool = True,
) -> RunResult:
    """Generate power ratings for a season.

    Resolution order: season window check, model config (fatal if missing),
    roster coverage (fatal on shortfall), then the engine run.

    Args:
        season: Season year
        model_version: Model version label (default: settings.model_version)
        sos_weight: Override for the SoS weight
        shrinkage_base: Override for the shrinkage base factor
        calibration_factor: Override for the calibration factor
        settings: Settings (default: get_settings())
        store: Feature store (default: parquet store at settings.features_dir)
        rating_store: Rating store (default: sqlite at settings.ratings_db_path)
        persist: Write ratings and run the read-back check

    Returns:
        RunResult for a completed run

    Raises:
        SeasonOutOfRangeError: Season outside [min_season, max_season]
        ModelConfigError: Unknown or invalid model configuration
        RosterCoverageError: Roster below the required coverage
        SanityGateError: Ratings failed a sanity gate
    """
    settings = settings or get_settings()
    check_season(season, settings)
    config = resolve_model_config(
        settings, model_version, sos_weight, shrinkage_base, calibration_factor
    )

    if store is None:
        store = ParquetFeatureStore(settings.features_dir)
    if persist and rating_store is None:
        rating_store = RatingStore(settings.ratings_db_path)

    roster = sorted(store.get_roster_for_season(season))
    validate_roster_coverage(roster, settings.expected_roster_size, settings.min_roster_coverage)

    engine = PowerRatingEngine(
        store,
        config,
        rating_store=rating_store if persist else None,
        thresholds=GateThresholds.from_settings(settings),
        min_game_samples=settings.min_game_samples,
        full_confidence_games=settings.full_confidence_games,
        loader_workers=settings.loader_workers,
    )
    return engine.run(season, roster, model_version=config.version)


def srs_to_team_ratings(season: int, srs: SRSResult) -> list[TeamRating]:
    """Wrap SRS ratings as TeamRatings (power only, no off/def split)."""
    return [
        TeamRating(
            team_id=team_id,
            season=season,
            model_version=SRS_MODEL_VERSION,
            offense_rating=0.0,
            defense_rating=0.0,
            power_rating=rating,
            confidence=1.0,
            data_source="game_level",
            games_count=srs.games_played.get(team_id, 0),
        )
        for team_id, rating in sorted(srs.ratings.items(), key=lambda x: -x[1])
    ]


def generate_srs_ratings(
    season: int,
    iterations: Optional[int] = None,
    settings: Optional[Settings] = None,
    store: Optional[FeatureStore] = None,
    rating_store: Optional[RatingStore] = None,
    persist: bool = True,
) -> tuple[SRSResult, int]:
    """Compute margin-based SRS for a season and persist it as model "srs".

    Teams outside the roster are dropped before persisting.

    Returns:
        Tuple of (SRSResult, upsert failure count)
    """
    settings = settings or get_settings()
    check_season(season, settings)
    iterations = iterations if iterations is not None else settings.srs_iterations

    if store is None:
        store = ParquetFeatureStore(settings.features_dir)

    games = store.get_all_games(season)
    roster = store.get_roster_for_season(season)
    logger.info(validate_games(games, roster).message)

    srs = compute_srs_ratings(games, iterations=iterations)
    dropped = sorted(set(srs.ratings) - roster)
    if dropped:
        logger.info(f"SRS: {len(dropped)} team(s) outside the roster not persisted")
        srs.ratings = {t: r for t, r in srs.ratings.items() if t in roster}

    failures = 0
    if persist:
        rating_store = rating_store or RatingStore(settings.ratings_db_path)
        rating_store.delete_run(season, SRS_MODEL_VERSION)
        for rating in srs_to_team_ratings(season, srs):
            try:
                rating_store.upsert(season, rating.team_id, SRS_MODEL_VERSION, rating)
            except sqlite3.Error as e:
                failures += 1
                logger.error(f"Failed to upsert SRS rating for {rating.team_id}: {e}")
        logger.info(f"Persisted {len(srs.ratings) - failures} SRS ratings ({failures} failed)")

    return srs, failures
