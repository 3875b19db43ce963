#!/usr/bin/env python3
"""Compute margin-based SRS ratings for a season and store them as model "srs".

Usage:
    python scripts/run_srs.py --season 2025
    python scripts/run_srs.py --season 2025 --iterations 2000 --top 25
    python scripts/run_srs.py --season 2025 --no-persist
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from config.settings import get_settings
from cfb_power.data.feature_store import FeatureStoreError, ParquetFeatureStore
from cfb_power.data.rating_store import RatingStore
from cfb_power.ratings.generate import SeasonOutOfRangeError, generate_srs_ratings

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Margin-based SRS ratings")
    parser.add_argument("--season", type=int, required=True, help="Season year")
    parser.add_argument(
        "--iterations",
        type=int,
        default=None,
        help="Fixed-point rounds (default: SRS iterations setting)",
    )
    parser.add_argument("--top", type=int, default=10, help="Teams to display (default: 10)")
    parser.add_argument("--db-path", type=str, default=None, help="Ratings SQLite database")
    parser.add_argument("--data-dir", type=str, default=None, help="Feature parquet directory")
    parser.add_argument("--no-persist", action="store_true", help="Compute and display only")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    settings = get_settings()
    store = ParquetFeatureStore(args.data_dir or settings.features_dir)
    rating_store = None if args.no_persist else RatingStore(args.db_path or settings.ratings_db_path)

    try:
        srs, failures = generate_srs_ratings(
            args.season,
            iterations=args.iterations,
            settings=settings,
            store=store,
            rating_store=rating_store,
            persist=not args.no_persist,
        )
    except (SeasonOutOfRangeError, FeatureStoreError) as e:
        logger.error(str(e))
        return 2

    if not srs.ratings:
        print(f"No usable games for {args.season}")
        return 1

    print(f"\n{args.season} SRS ratings - top {args.top} ({srs.games_used} games, {srs.games_skipped} skipped)")
    print(f"{'Rank':>4}  {'Team':<25} {'SRS':>8} {'Games':>6}")
    print("-" * 48)
    for i, (team, rating) in enumerate(srs.top(args.top), start=1):
        print(f"{i:>4}  {team:<25} {rating:>8.2f} {srs.games_played.get(team, 0):>6}")

    if failures > settings.max_upsert_failures:
        logger.error(f"{failures} SRS upsert failure(s) exceeds the allowed {settings.max_upsert_failures}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
