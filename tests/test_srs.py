"""Tests for margin-based SRS."""

import pytest

from cfb_power.models.srs import compute_srs_ratings, implied_margin

from conftest import make_game


def _margin_game(game_id: str, home: str, away: str, yard_diff: float):
    """Game with equal yards-per-play, so the margin is yard_diff / 15 / 2."""
    home_yards = 300.0 + yard_diff
    away_yards = 300.0
    # Plays chosen so both sides average 5.0 yards per play
    return make_game(game_id, home, away, home_yards, away_yards, home_yards / 5.0, away_yards / 5.0)


def _triangle():
    """A beats B by 5, B beats C by 5, A beats C by 10."""
    return [
        _margin_game("g1", "A", "B", 150.0),
        _margin_game("g2", "B", "C", 150.0),
        _margin_game("g3", "A", "C", 300.0),
    ]


class TestImpliedMargin:
    def test_yardage_and_efficiency_averaged(self):
        # yards: (450 - 300) / 15 = 10; ypp: (6.0 - 5.0) / 0.1 = 10
        game = make_game("g1", "A", "B", 450.0, 300.0, 75.0, 60.0)
        assert implied_margin(game) == pytest.approx(10.0)

    def test_missing_stats(self):
        assert implied_margin(make_game("g1", "A", "B", 400.0, None, 70.0, 60.0)) is None
        assert implied_margin(make_game("g1", "A", "B", 400.0, 300.0, 70.0, None)) is None


class TestComputeSRS:
    def test_consistent_triangle(self):
        result = compute_srs_ratings(_triangle(), iterations=1000)
        assert result.ratings["A"] == pytest.approx(5.0, abs=1e-6)
        assert result.ratings["B"] == pytest.approx(0.0, abs=1e-6)
        assert result.ratings["C"] == pytest.approx(-5.0, abs=1e-6)

    def test_zero_centered(self):
        result = compute_srs_ratings(_triangle(), iterations=50)
        assert sum(result.ratings.values()) == pytest.approx(0.0, abs=1e-9)

    def test_invariant_to_initial_shift(self):
        base = compute_srs_ratings(_triangle(), iterations=25)
        shifted = compute_srs_ratings(
            _triangle(), iterations=25, initial={"A": 7.0, "B": 7.0, "C": 7.0}
        )
        for team in base.ratings:
            assert shifted.ratings[team] == pytest.approx(base.ratings[team], abs=1e-9)

    def test_deterministic(self):
        games = _triangle() + [_margin_game("g4", "C", "A", 30.0)]
        first = compute_srs_ratings(games, iterations=200)
        second = compute_srs_ratings(games, iterations=200)
        assert first.ratings == second.ratings

    def test_skips_unusable_games(self):
        games = _triangle() + [
            make_game("g4", "A", "D"),  # no stats
            make_game("g5", "B", "E", 360.0, 300.0, 72.0, 60.0, completed=False),
        ]
        result = compute_srs_ratings(games, iterations=100)
        assert result.games_used == 3
        assert result.games_skipped == 2
        assert "D" not in result.ratings
        assert "E" not in result.ratings

    def test_games_played_counts(self):
        result = compute_srs_ratings(_triangle(), iterations=10)
        assert result.games_played == {"A": 2, "B": 2, "C": 2}

    def test_top(self):
        result = compute_srs_ratings(_triangle(), iterations=1000)
        assert [team for team, _ in result.top(2)] == ["A", "B"]

    def test_no_games(self):
        result = compute_srs_ratings([], iterations=10)
        assert result.ratings == {}
        assert result.games_used == 0
