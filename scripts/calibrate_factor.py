#!/usr/bin/env python3
"""Fit the calibration factor that maps rating units onto market spreads.

Ratings are computed uncalibrated (factor 1.0) for the season, then

    market_spread ~ slope * (home_power - away_power) + hfa_coef * home_field + intercept

is fit over a CSV of games with market lines. The slope is the calibration
factor to put into the model bundle.

The games CSV needs columns: home_team, away_team, market_spread
(home margin, positive = home favored). An optional neutral_site column
(0/1 or true/false) zeroes the home-field term for that game.

Usage:
    python scripts/calibrate_factor.py --season 2024 --games data/lines_2024.csv
    python scripts/calibrate_factor.py --season 2024 --games lines.csv --model-version v2
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import numpy as np
import pandas as pd

from config.model_config import ModelConfigError
from config.settings import get_settings
from cfb_power.data.feature_store import FeatureStore, ParquetFeatureStore
from cfb_power.models.calibration import CalibrationFit, fit_calibration_factor
from cfb_power.ratings.engine import PowerRatingEngine
from cfb_power.ratings.generate import SeasonOutOfRangeError, check_season, resolve_model_config

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("home_team", "away_team", "market_spread")


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Fit the rating calibration factor")
    parser.add_argument("--season", type=int, required=True, help="Season year")
    parser.add_argument("--games", type=str, required=True, help="CSV of games with market spreads")
    parser.add_argument("--model-version", type=str, default=None, help="Model version")
    parser.add_argument("--data-dir", type=str, default=None, help="Feature parquet directory")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def load_games(path: str | Path) -> pd.DataFrame:
    df = pd.read_csv(path)
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"{path} is missing column(s): {missing}")
    if "neutral_site" not in df.columns:
        df["neutral_site"] = False
    df["neutral_site"] = df["neutral_site"].astype(str).str.lower().isin(["1", "true", "yes"])
    return df


def build_design(games_df: pd.DataFrame, power: dict[str, float]) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Rating differences, home-field indicator and market spreads per game.

    Games involving an unrated team come through as NaN and are dropped by the fit.
    """
    home = games_df["home_team"].map(power).astype(float).to_numpy()
    away = games_df["away_team"].map(power).astype(float).to_numpy()
    hfa = np.where(games_df["neutral_site"].to_numpy(), 0.0, 1.0)
    spreads = games_df["market_spread"].astype(float).to_numpy()
    return home - away, hfa, spreads


def calibrate_season(
    season: int,
    games_df: pd.DataFrame,
    store: FeatureStore,
    model_version: str | None = None,
) -> CalibrationFit:
    """Compute uncalibrated ratings for a season and fit against market spreads."""
    settings = get_settings()
    check_season(season, settings)
    config = resolve_model_config(settings, model_version, calibration_factor=1.0)

    engine = PowerRatingEngine(
        store,
        config,
        min_game_samples=settings.min_game_samples,
        full_confidence_games=settings.full_confidence_games,
        loader_workers=settings.loader_workers,
    )
    roster = sorted(store.get_roster_for_season(season))
    ratings, _, _, _ = engine.compute(season, roster)
    power = {r.team_id: r.power_rating for r in ratings}

    diffs, hfa, spreads = build_design(games_df, power)
    return fit_calibration_factor(diffs, hfa, spreads)


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    settings = get_settings()
    store = ParquetFeatureStore(args.data_dir or settings.features_dir)

    try:
        games_df = load_games(args.games)
        fit = calibrate_season(args.season, games_df, store, args.model_version)
    except (SeasonOutOfRangeError, ModelConfigError, ValueError, FileNotFoundError) as e:
        logger.error(str(e))
        return 2

    print(f"\nCalibration fit for {args.season} ({fit.n} games)")
    print(f"  calibration factor (slope): {fit.slope:.4f}")
    print(f"  home-field coefficient:     {fit.hfa_coef:.3f}")
    print(f"  intercept:                  {fit.intercept:.3f}")
    print(f"  RMSE:                       {fit.rmse:.3f}")
    print(f"  R^2:                        {fit.r2:.3f}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
