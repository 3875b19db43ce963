"""Shared fixtures: a small synthetic season in an in-memory feature store."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from config.settings import Settings
from cfb_power.data.feature_store import GameRecord, InMemoryFeatureStore

SEASON = 2024

# team -> strength (higher is better). Tier each team resolves to:
#   Alpha..Golf    game-level stats (3 games)
#   Hotel          season aggregate only
#   India          preseason baseline only
#   Juliet         nothing but talent
STRENGTH = {
    "Alpha": 7,
    "Bravo": 6,
    "Charlie": 5,
    "Delta": 4,
    "Echo": 3,
    "Foxtrot": 2,
    "Golf": 1,
    "Hotel": 5,
    "India": 3,
    "Juliet": 2,
}
TEAMS = list(STRENGTH)
GAME_LEVEL_TEAMS = TEAMS[:7]


def metric_row(team: str, bump: float = 0.0) -> dict:
    """Feature values that improve with a team's strength."""
    s = STRENGTH[team]
    return {
        "team_id": team,
        "ypp_off": 5.0 + 0.3 * s + bump,
        "pass_ypa_off": 6.0 + 0.4 * s + bump,
        "rush_ypc_off": 4.0 + 0.2 * s + bump,
        "success_off": 0.38 + 0.015 * s,
        "epa_off": 0.05 * s - 0.15,
        "pace_off": 70.0,
        "ypp_def": 6.5 - 0.2 * s + bump,
        "pass_ypa_def": 7.5 - 0.3 * s + bump,
        "rush_ypc_def": 4.8 - 0.15 * s + bump,
        "success_def": 0.45 - 0.01 * s,
        "epa_def": 0.2 - 0.04 * s,
        "pace_def": 70.0,
    }


def game_stat_rows() -> list[dict]:
    rows = []
    for team in GAME_LEVEL_TEAMS:
        for g in range(3):
            row = metric_row(team, bump=0.1 * g)
            row["game_id"] = f"{team}-{g}"
            rows.append(row)
    return rows


def make_game(game_id: str, home: str, away: str, home_yards=None, away_yards=None,
              home_plays=None, away_plays=None, neutral_site=False, completed=True) -> GameRecord:
    return GameRecord(
        game_id=game_id,
        season=SEASON,
        home_team=home,
        away_team=away,
        week=1,
        home_yards=home_yards,
        away_yards=away_yards,
        home_plays=home_plays,
        away_plays=away_plays,
        neutral_site=neutral_site,
        completed=completed,
    )


def season_games() -> list[GameRecord]:
    """Cyclic schedule: each team hosts the next two teams in the list."""
    games = []
    n = len(TEAMS)
    for i, home in enumerate(TEAMS):
        for step in (1, 2):
            away = TEAMS[(i + step) % n]
            diff = STRENGTH[home] - STRENGTH[away]
            games.append(
                make_game(
                    f"g{i}-{step}",
                    home,
                    away,
                    home_yards=380.0 + 25.0 * diff,
                    away_yards=380.0 - 25.0 * diff,
                    home_plays=70.0,
                    away_plays=70.0,
                )
            )
    return games


def talent_rows() -> list[dict]:
    return [
        {
            "team_id": team,
            "talent_composite": 600.0 + 35.0 * s,
            "blue_chips_pct": 0.10 + 0.05 * s,
        }
        for team, s in STRENGTH.items()
    ]


def commit_rows() -> list[dict]:
    return [
        {"team_id": "Alpha", "five_star": 2, "four_star": 10, "three_star": 8, "commits_total": 20},
        {"team_id": "Juliet", "five_star": 1, "four_star": 3, "three_star": 6, "commits_total": 10},
    ]


def build_store() -> InMemoryFeatureStore:
    hotel = metric_row("Hotel")
    hotel["games"] = 6
    return InMemoryFeatureStore(
        team_game_stats=game_stat_rows(),
        team_season_stats=[hotel],
        baselines=[metric_row("India")],
        talent=talent_rows(),
        class_commits=commit_rows(),
        games=season_games(),
        roster=TEAMS,
    )


@pytest.fixture
def season_store() -> InMemoryFeatureStore:
    return build_store()


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        ratings_db_path=str(tmp_path / "ratings.db"),
        features_dir=str(tmp_path / "features"),
        model_weights_path=None,
        model_version="v2",
        expected_roster_size=len(TEAMS),
        loader_workers=4,
        max_upsert_failures=0,
    )
