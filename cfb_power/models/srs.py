"""Margin-based Simple Rating System (SRS).

Each completed game yields an implied home margin from yardage alone:

    implied_margin = ((home_yards - away_yards) / YARDS_PER_POINT
                      + (home_ypp - away_ypp) / YPP_PER_POINT) / 2

Ratings start at 0 and are iterated a fixed number of rounds:

    r_new[t] = mean over t's games of (signed_margin + r[opponent])

with the margin negated for the away side. After the last round ratings are
zero-centered. No convergence check is made, and every round reads only the
previous vector.

The per-round update is written in matrix form over a sparse team/opponent
incidence matrix:

    r_new = b + M @ r

where b[t] is the team's mean signed margin and M[t, o] is the share of t's
games played against o. Rows of M sum to 1, so any constant shift of the
starting vector survives every round unchanged and is removed by centering.
"""

import logging
from dataclasses import dataclass, field
from typing import Mapping, Optional, Sequence

import numpy as np
from scipy import sparse

from cfb_power.data.feature_store import GameRecord

logger = logging.getLogger(__name__)

YARDS_PER_POINT = 15.0
YPP_PER_POINT = 0.1
DEFAULT_ITERATIONS = 1000


@dataclass
class SRSResult:
    """SRS ratings plus bookkeeping on which games were used."""

    ratings: dict[str, float]
    games_used: int
    games_skipped: int
    iterations: int
    games_played: dict[str, int] = field(default_factory=dict)

    def top(self, n: int = 10) -> list[tuple[str, float]]:
        return sorted(self.ratings.items(), key=lambda x: x[1], reverse=True)[:n]


def implied_margin(game: GameRecord) -> Optional[float]:
    """Implied home margin from yardage and yards-per-play differentials.

    Returns:
        Margin in points (positive = home better), or None if the game is
        missing yards or plays for either side
    """
    if game.home_yards is None or game.away_yards is None:
        return None
    home_ypp = game.home_ypp
    away_ypp = game.away_ypp
    if home_ypp is None or away_ypp is None:
        return None
    yard_term = (game.home_yards - game.away_yards) / YARDS_PER_POINT
    ypp_term = (home_ypp - away_ypp) / YPP_PER_POINT
    return (yard_term + ypp_term) / 2.0


def compute_srs_ratings(
    games: Sequence[GameRecord],
    iterations: int = DEFAULT_ITERATIONS,
    initial: Optional[Mapping[str, float]] = None,
) -> SRSResult:
    """Solve margin-based SRS by fixed-point iteration.

    Args:
        games: Season games (incomplete or stat-less games are skipped)
        iterations: Number of update rounds
        initial: Optional starting ratings (default all 0)

    Returns:
        SRSResult with zero-centered ratings for every team that played
    """
    usable: list[tuple[str, str, float]] = []
    skipped = 0
    for game in games:
        if not game.completed:
            skipped += 1
            continue
        margin = implied_margin(game)
        if margin is None:
            skipped += 1
            continue
        usable.append((game.home_team, game.away_team, margin))

    if skipped:
        logger.info(f"SRS: skipped {skipped} game(s) missing yards/plays or not completed")
    if not usable:
        logger.warning("SRS: no usable games, returning empty ratings")
        return SRSResult(ratings={}, games_used=0, games_skipped=skipped, iterations=0)

    teams = sorted({t for home, away, _ in usable for t in (home, away)})
    index = {team: i for i, team in enumerate(teams)}
    n_teams = len(teams)
    n_games = len(usable)

    # One row per team-game: (team, opponent, signed margin)
    team_idx = np.empty(2 * n_games, dtype=np.int64)
    opp_idx = np.empty(2 * n_games, dtype=np.int64)
    signed = np.empty(2 * n_games, dtype=float)
    for k, (home, away, margin) in enumerate(usable):
        h, a = index[home], index[away]
        team_idx[2 * k], opp_idx[2 * k], signed[2 * k] = h, a, margin
        team_idx[2 * k + 1], opp_idx[2 * k + 1], signed[2 * k + 1] = a, h, -margin

    games_played = np.bincount(team_idx, minlength=n_teams).astype(float)
    weights = 1.0 / games_played[team_idx]

    # Duplicate (team, opp) entries are summed on conversion to CSR
    M = sparse.csr_matrix((weights, (team_idx, opp_idx)), shape=(n_teams, n_teams))
    b = np.bincount(team_idx, weights=signed, minlength=n_teams) / games_played

    r = np.zeros(n_teams)
    if initial:
        r = np.array([float(initial.get(team, 0.0)) for team in teams])

    for _ in range(iterations):
        r = b + M @ r

    r = r - r.mean()

    ratings = {team: float(r[index[team]]) for team in teams}
    logger.info(
        f"SRS: {n_teams} teams from {n_games} games, {iterations} iterations, "
        f"rating std={float(r.std()):.2f}"
    )
    return SRSResult(
        ratings=ratings,
        games_used=n_games,
        games_skipped=skipped,
        iterations=iterations,
        games_played={team: int(games_played[index[team]]) for team in teams},
    )
