"""Tests for the SQLite rating store."""

import pytest

from cfb_power.data.rating_store import RatingStore, TeamRating


def _rating(team_id: str, power_off: float = 1.0, version: str = "v2") -> TeamRating:
    return TeamRating(
        team_id=team_id,
        season=2024,
        model_version=version,
        offense_rating=power_off,
        defense_rating=-0.25,
        talent_component=0.5,
        confidence=0.8,
        data_source="game_level",
        shrinkage_factor=0.2,
        games_count=6,
    ).with_power()


@pytest.fixture
def store(tmp_path):
    return RatingStore(tmp_path / "nested" / "ratings.db")


class TestRatingStore:
    def test_creates_database(self, store):
        assert store.db_path.exists()

    def test_round_trip(self, store):
        rating = _rating("Alpha", 3.123456789012)
        store.upsert(2024, "Alpha", "v2", rating)

        [back] = store.read_back(2024, "v2")
        assert back == rating
        assert back.power_rating == pytest.approx(3.123456789012 - 0.25 + 0.5, abs=1e-12)

    def test_upsert_replaces(self, store):
        store.upsert(2024, "Alpha", "v2", _rating("Alpha", 1.0))
        store.upsert(2024, "Alpha", "v2", _rating("Alpha", 4.0))

        rows = store.read_back(2024, "v2")
        assert len(rows) == 1
        assert rows[0].offense_rating == 4.0

    def test_versions_isolated(self, store):
        store.upsert(2024, "Alpha", "v1", _rating("Alpha", 1.0, "v1"))
        store.upsert(2024, "Alpha", "v2", _rating("Alpha", 2.0, "v2"))

        assert store.read_back(2024, "v1")[0].offense_rating == 1.0
        assert store.read_back(2024, "v2")[0].offense_rating == 2.0
        assert store.read_back(2023, "v2") == []

    def test_read_back_ordered_by_team(self, store):
        for team in ["Charlie", "Alpha", "Bravo"]:
            store.upsert(2024, team, "v2", _rating(team))
        assert [r.team_id for r in store.read_back(2024, "v2")] == ["Alpha", "Bravo", "Charlie"]

    def test_get_rating(self, store):
        store.upsert(2024, "Alpha", "v2", _rating("Alpha", 2.5))
        assert store.get_rating(2024, "Alpha", "v2").offense_rating == 2.5
        assert store.get_rating(2024, "Bravo", "v2") is None

    def test_delete_run(self, store):
        store.upsert(2024, "Alpha", "v2", _rating("Alpha"))
        store.upsert(2024, "Bravo", "v2", _rating("Bravo"))
        store.upsert(2024, "Alpha", "v1", _rating("Alpha", version="v1"))

        assert store.delete_run(2024, "v2") == 2
        assert store.read_back(2024, "v2") == []
        assert len(store.read_back(2024, "v1")) == 1


class TestTeamRating:
    def test_with_power_sums_components(self):
        rating = TeamRating("A", 2024, "v2", offense_rating=1.5, defense_rating=-0.5, talent_component=0.25)
        assert rating.power_rating == 0.0
        assert rating.with_power().power_rating == pytest.approx(1.25)

    def test_to_dict(self):
        d = _rating("Alpha").to_dict()
        assert d["team_id"] == "Alpha"
        assert d["data_source"] == "game_level"
