"""Data validation utilities."""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from cfb_power.data.feature_store import GameRecord

logger = logging.getLogger(__name__)


class RosterCoverageError(Exception):
    """Raised when too few eligible teams are present to trust a run."""

    pass


@dataclass
class ValidationResult:
    """Result of a data validation check."""

    is_valid: bool
    message: str
    details: Optional[dict] = None


def validate_season(season: int, min_season: int, max_season: int) -> ValidationResult:
    """Check a season falls inside the supported window."""
    if min_season <= season <= max_season:
        return ValidationResult(is_valid=True, message=f"Season {season} OK")
    return ValidationResult(
        is_valid=False,
        message=f"Season {season} outside supported range {min_season}-{max_season}",
        details={"season": season, "min_season": min_season, "max_season": max_season},
    )


def check_roster_coverage(
    roster: Iterable[str],
    expected_size: int,
    min_coverage: float = 0.95,
) -> ValidationResult:
    """Compare roster size against the expected number of eligible teams.

    Args:
        roster: Eligible team ids for the season
        expected_size: Expected number of eligible teams
        min_coverage: Minimum fraction of expected_size required

    Returns:
        ValidationResult with team counts in details
    """
    count = len(set(roster))
    required = expected_size * min_coverage
    coverage = count / expected_size if expected_size > 0 else 0.0
    details = {
        "teams": count,
        "expected": expected_size,
        "coverage": coverage,
        "min_coverage": min_coverage,
    }

    if count < required:
        return ValidationResult(
            is_valid=False,
            message=(
                f"Roster has {count}/{expected_size} teams ({coverage:.1%}), "
                f"below required {min_coverage:.0%}"
            ),
            details=details,
        )
    return ValidationResult(
        is_valid=True,
        message=f"Roster coverage {count}/{expected_size} ({coverage:.1%})",
        details=details,
    )


def validate_roster_coverage(
    roster: Iterable[str],
    expected_size: int,
    min_coverage: float = 0.95,
) -> ValidationResult:
    """Like check_roster_coverage, but raises on a shortfall.

    Raises:
        RosterCoverageError: If the roster is below min_coverage of expected_size
    """
    result = check_roster_coverage(roster, expected_size, min_coverage)
    if not result.is_valid:
        logger.error(result.message)
        raise RosterCoverageError(result.message)
    logger.info(result.message)
    return result


def validate_games(games: Iterable[GameRecord], roster: Iterable[str]) -> ValidationResult:
    """Report games against opponents outside the roster or lacking yardage.

    Neither is fatal: opponent lookups that miss are skipped, and SRS skips
    games without yards/plays. This only surfaces the counts.
    """
    roster_set = set(roster)
    games = list(games)
    outside = [g for g in games if g.home_team not in roster_set or g.away_team not in roster_set]
    no_stats = [g for g in games if g.home_ypp is None or g.away_ypp is None]
    incomplete = [g for g in games if not g.completed]
    details = {
        "total_games": len(games),
        "outside_roster": len(outside),
        "missing_stats": len(no_stats),
        "incomplete": len(incomplete),
    }

    if outside:
        logger.info(f"{len(outside)} game(s) involve teams outside the roster; they are skipped")

    return ValidationResult(
        is_valid=len(games) > 0,
        message=(
            f"{len(games)} games: {len(outside)} outside roster, "
            f"{len(no_stats)} missing stats, {len(incomplete)} incomplete"
        ),
        details=details,
    )
