"""Tests for the command-line runners."""

from dataclasses import asdict

import numpy as np
import pandas as pd
import polars as pl
import pytest

from cfb_power.data.rating_store import RatingStore
from scripts import calibrate_factor, run_ratings, run_srs

from conftest import SEASON, TEAMS, commit_rows, game_stat_rows, metric_row, season_games, talent_rows


def _write_season(root, season: int = SEASON) -> None:
    """Write the synthetic season as parquet tables under root/<season>/."""
    season_dir = root / str(season)
    season_dir.mkdir(parents=True)
    hotel = metric_row("Hotel")
    hotel["games"] = 6
    tables = {
        "team_game_stats": game_stat_rows(),
        "team_season_stats": [hotel],
        "baselines": [metric_row("India")],
        "talent": talent_rows(),
        "class_commits": commit_rows(),
        "games": [asdict(g) for g in season_games()],
        "roster": [{"team_id": t} for t in TEAMS],
    }
    for name, rows in tables.items():
        pl.DataFrame(rows).write_parquet(season_dir / f"{name}.parquet")


@pytest.fixture
def parquet_dir(tmp_path):
    root = tmp_path / "features"
    _write_season(root)
    return root


class TestRunRatings:
    def test_parse_args(self):
        args = run_ratings.parse_args(["--season", "2024", "--sos-weight", "0.08", "--export"])
        assert args.season == 2024
        assert args.sos_weight == 0.08
        assert args.export
        assert args.model_version is None

    def test_season_out_of_range_exits_2(self, tmp_path):
        code = run_ratings.main([
            "--season", "1990",
            "--db-path", str(tmp_path / "ratings.db"),
            "--data-dir", str(tmp_path / "features"),
        ])
        assert code == 2

    def test_full_run(self, parquet_dir, test_settings, tmp_path, monkeypatch, capsys):
        monkeypatch.setattr(run_ratings, "get_settings", lambda: test_settings)
        db_path = tmp_path / "cli.db"
        code = run_ratings.main([
            "--season", str(SEASON),
            "--db-path", str(db_path),
            "--data-dir", str(parquet_dir),
            "--top", "5",
        ])

        assert code == 0
        assert "Power Ratings (v2)" in capsys.readouterr().out
        assert len(RatingStore(db_path).read_back(SEASON, "v2")) == len(TEAMS)

    def test_gate_failure_exits_1(self, parquet_dir, test_settings, tmp_path, monkeypatch):
        test_settings.gate_min_std = 1e6
        monkeypatch.setattr(run_ratings, "get_settings", lambda: test_settings)
        code = run_ratings.main([
            "--season", str(SEASON),
            "--db-path", str(tmp_path / "cli.db"),
            "--data-dir", str(parquet_dir),
        ])
        assert code == 1

    def test_roster_shortfall_exits_2(self, parquet_dir, test_settings, tmp_path, monkeypatch):
        test_settings.expected_roster_size = 136
        monkeypatch.setattr(run_ratings, "get_settings", lambda: test_settings)
        code = run_ratings.main([
            "--season", str(SEASON),
            "--db-path", str(tmp_path / "cli.db"),
            "--data-dir", str(parquet_dir),
        ])
        assert code == 2


class TestRunSRS:
    def test_persists_srs(self, parquet_dir, test_settings, tmp_path, monkeypatch):
        monkeypatch.setattr(run_srs, "get_settings", lambda: test_settings)
        db_path = tmp_path / "cli.db"
        code = run_srs.main([
            "--season", str(SEASON),
            "--db-path", str(db_path),
            "--data-dir", str(parquet_dir),
        ])
        assert code == 0
        assert len(RatingStore(db_path).read_back(SEASON, "srs")) == len(TEAMS)

    def test_no_games_exits_1(self, test_settings, tmp_path, monkeypatch):
        monkeypatch.setattr(run_srs, "get_settings", lambda: test_settings)
        code = run_srs.main([
            "--season", str(SEASON),
            "--data-dir", str(tmp_path / "empty"),
            "--no-persist",
        ])
        assert code == 1


class TestCalibrateFactor:
    def test_load_games_normalizes_neutral_site(self, tmp_path):
        path = tmp_path / "lines.csv"
        pd.DataFrame({
            "home_team": ["Alpha", "Bravo"],
            "away_team": ["Golf", "Echo"],
            "market_spread": [14.5, 3.0],
            "neutral_site": ["true", "0"],
        }).to_csv(path, index=False)

        df = calibrate_factor.load_games(path)
        assert df["neutral_site"].tolist() == [True, False]

    def test_load_games_missing_column(self, tmp_path):
        path = tmp_path / "lines.csv"
        pd.DataFrame({"home_team": ["Alpha"], "away_team": ["Golf"]}).to_csv(path, index=False)
        with pytest.raises(ValueError, match="market_spread"):
            calibrate_factor.load_games(path)

    def test_build_design(self):
        games = pd.DataFrame({
            "home_team": ["Alpha", "Bravo", "Nowhere"],
            "away_team": ["Golf", "Echo", "Alpha"],
            "market_spread": [14.5, 3.0, -20.0],
            "neutral_site": [False, True, False],
        })
        power = {"Alpha": 10.0, "Bravo": 4.0, "Echo": 1.0, "Golf": -6.0}
        diffs, hfa, spreads = calibrate_factor.build_design(games, power)

        assert diffs[:2].tolist() == [16.0, 3.0]
        assert np.isnan(diffs[2])
        assert hfa.tolist() == [1.0, 0.0, 1.0]
        assert spreads.tolist() == [14.5, 3.0, -20.0]

    def test_calibrate_season_recovers_factor(self, season_store, monkeypatch, test_settings):
        monkeypatch.setattr(calibrate_factor, "get_settings", lambda: test_settings)
        config = calibrate_factor.resolve_model_config(test_settings, "v2", calibration_factor=1.0)
        engine = calibrate_factor.PowerRatingEngine(season_store, config)
        ratings, _, _, _ = engine.compute(SEASON, TEAMS)
        power = {r.team_id: r.power_rating for r in ratings}

        # Lines built from the uncalibrated ratings at 6.5 points per unit
        pairs = [(TEAMS[i], TEAMS[(i + 3) % len(TEAMS)]) for i in range(len(TEAMS))]
        games = pd.DataFrame({
            "home_team": [h for h, _ in pairs],
            "away_team": [a for _, a in pairs],
            "neutral_site": [i % 4 == 0 for i in range(len(pairs))],
        })
        games["market_spread"] = [
            6.5 * (power[h] - power[a]) + (0.0 if n else 2.5)
            for (h, a), n in zip(pairs, games["neutral_site"])
        ]

        fit = calibrate_factor.calibrate_season(SEASON, games, season_store, "v2")
        assert fit.slope == pytest.approx(6.5)
        assert fit.hfa_coef == pytest.approx(2.5)
        assert fit.n == len(TEAMS)
