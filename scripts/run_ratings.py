#!/usr/bin/env python3
"""
Season power-rating runner.

Loads features for every roster team, runs the opponent-strength loop,
shrinkage and calibration, writes ratings to the ratings database and checks
the sanity gates on what was written.

Usage:
    python scripts/run_ratings.py --season 2025
    python scripts/run_ratings.py --season 2025 --model-version v1
    python scripts/run_ratings.py --season 2025 --sos-weight 0.08 --shrinkage-base 0.10
    python scripts/run_ratings.py --season 2025 --calibration-factor 7.0 --export

Exit codes:
    0  ratings written and all gates passed
    1  sanity gate failure, or more upsert failures than MAX_UPSERT_FAILURES
    2  invalid season, model configuration or roster shortfall
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from config.model_config import ModelConfigError
from config.settings import get_settings
from cfb_power.data.feature_store import FeatureStoreError, ParquetFeatureStore
from cfb_power.data.rating_store import RatingStore
from cfb_power.data.validators import RosterCoverageError
from cfb_power.ratings.engine import RunResult
from cfb_power.ratings.generate import SeasonOutOfRangeError, generate_ratings
from cfb_power.ratings.sanity_gates import SanityGateError
from cfb_power.reports.excel_export import AuditExporter

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_RUN_FAILED = 1
EXIT_BAD_INPUT = 2


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Compute and persist season power ratings"
    )
    parser.add_argument(
        "--season",
        type=int,
        required=True,
        help="Season year",
    )
    parser.add_argument(
        "--model-version",
        type=str,
        default=None,
        help="Model version label (default: MODEL_VERSION setting)",
    )
    parser.add_argument(
        "--sos-weight",
        type=float,
        default=None,
        help="Override the strength-of-schedule weight",
    )
    parser.add_argument(
        "--shrinkage-base",
        type=float,
        default=None,
        help="Override the shrinkage base factor",
    )
    parser.add_argument(
        "--calibration-factor",
        type=float,
        default=None,
        help="Override the calibration factor (points per index unit)",
    )
    parser.add_argument(
        "--db-path",
        type=str,
        default=None,
        help="Ratings SQLite database (default: RATINGS_DB_PATH setting)",
    )
    parser.add_argument(
        "--data-dir",
        type=str,
        default=None,
        help="Feature parquet directory (default: FEATURES_DIR setting)",
    )
    parser.add_argument(
        "--top",
        type=int,
        default=25,
        help="Number of teams to display (default: 25)",
    )
    parser.add_argument(
        "--export",
        action="store_true",
        help="Write an Excel audit workbook and stage-stats CSV",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    return parser.parse_args(argv)


def print_ratings(result: RunResult, top_n: int = 25) -> None:
    """Print the top-N ratings table."""
    print(f"\n{result.season} Power Ratings ({result.model_version}) - top {top_n}")
    print(f"{'Rank':>4}  {'Team':<25} {'Power':>7} {'Off':>7} {'Def':>7} {'Tal':>6} {'Conf':>5}  Source")
    print("-" * 80)
    for i, r in enumerate(result.top(top_n), start=1):
        print(
            f"{i:>4}  {r.team_id:<25} {r.power_rating:>7.2f} {r.offense_rating:>7.2f} "
            f"{r.defense_rating:>7.2f} {r.talent_component:>6.2f} {r.confidence:>5.2f}  {r.data_source}"
        )


def export_audit(result: RunResult) -> None:
    path = AuditExporter().export(result)
    print(f"\nAudit report saved to: {path}")


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    settings = get_settings()
    errors = settings.validate()
    if errors:
        for error in errors:
            logger.error(f"Settings: {error}")
        return EXIT_BAD_INPUT

    store = ParquetFeatureStore(args.data_dir or settings.features_dir)
    rating_store = RatingStore(args.db_path or settings.ratings_db_path)

    try:
        result = generate_ratings(
            args.season,
            model_version=args.model_version,
            sos_weight=args.sos_weight,
            shrinkage_base=args.shrinkage_base,
            calibration_factor=args.calibration_factor,
            settings=settings,
            store=store,
            rating_store=rating_store,
        )
    except (SeasonOutOfRangeError, ModelConfigError, RosterCoverageError, FeatureStoreError) as e:
        logger.error(str(e))
        return EXIT_BAD_INPUT
    except SanityGateError as e:
        logger.error(str(e))
        if args.export and e.result is not None:
            export_audit(e.result)
        print(f"\nRating run FAILED sanity gates: {e}")
        return EXIT_RUN_FAILED

    print_ratings(result, args.top)
    if args.export:
        export_audit(result)

    if result.upsert_failures > settings.max_upsert_failures:
        logger.error(
            f"{result.upsert_failures} upsert failure(s) exceeds the allowed "
            f"{settings.max_upsert_failures}"
        )
        return EXIT_RUN_FAILED

    print(f"\nRated {len(result.ratings)} teams ({result.upserted} written)")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
