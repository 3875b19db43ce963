"""SQLite-backed storage for computed team ratings.

One row per (season, team_id, model_version). Writes are upserts, so
re-running a season replaces the previous run's rows for that model version.
"""

import logging
import sqlite3
from dataclasses import asdict, dataclass, replace
from datetime import datetime
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class TeamRating:
    """Final (post-shrinkage, post-calibration) rating for one team."""

    team_id: str
    season: int
    model_version: str
    offense_rating: float
    defense_rating: float
    talent_component: float = 0.0
    power_rating: float = 0.0
    confidence: float = 0.0
    data_source: str = "missing"
    shrinkage_factor: float = 0.0
    games_count: int = 0

    def with_power(self) -> "TeamRating":
        """Copy with power_rating rebuilt as offense + defense + talent."""
        return replace(
            self,
            power_rating=self.offense_rating + self.defense_rating + self.talent_component,
        )

    def to_dict(self) -> dict:
        return asdict(self)


class RatingStore:
    """Upsert and read back team ratings in a local SQLite database."""

    def __init__(self, db_path: str | Path):
        """Initialize the store, creating the database file if needed.

        Args:
            db_path: Path to the SQLite database
        """
        self.db_path = Path(db_path)
        self._ensure_db()

    def _ensure_db(self) -> None:
        """Create database and tables if they don't exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS team_ratings (
                    season INTEGER NOT NULL,
                    team_id TEXT NOT NULL,
                    model_version TEXT NOT NULL,
                    offense_rating REAL,
                    defense_rating REAL,
                    talent_component REAL,
                    power_rating REAL,
                    confidence REAL,
                    data_source TEXT,
                    shrinkage_factor REAL,
                    games_count INTEGER,
                    updated_at TEXT,
                    PRIMARY KEY (season, team_id, model_version)
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_ratings_version
                ON team_ratings(season, model_version)
            """)

    def upsert(self, season: int, team_id: str, model_version: str, rating: TeamRating) -> None:
        """Insert or replace one team's rating.

        Raises:
            sqlite3.Error: On any database failure (the caller counts these)
        """
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO team_ratings (
                    season, team_id, model_version,
                    offense_rating, defense_rating, talent_component, power_rating,
                    confidence, data_source, shrinkage_factor, games_count, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(season, team_id, model_version) DO UPDATE SET
                    offense_rating = excluded.offense_rating,
                    defense_rating = excluded.defense_rating,
                    talent_component = excluded.talent_component,
                    power_rating = excluded.power_rating,
                    confidence = excluded.confidence,
                    data_source = excluded.data_source,
                    shrinkage_factor = excluded.shrinkage_factor,
                    games_count = excluded.games_count,
                    updated_at = excluded.updated_at
                """,
                (
                    season,
                    team_id,
                    model_version,
                    rating.offense_rating,
                    rating.defense_rating,
                    rating.talent_component,
                    rating.power_rating,
                    rating.confidence,
                    rating.data_source,
                    rating.shrinkage_factor,
                    rating.games_count,
                    datetime.now().isoformat(),
                ),
            )

    def _row_to_rating(self, row: sqlite3.Row) -> TeamRating:
        """Convert database row to TeamRating."""
        return TeamRating(
            team_id=row["team_id"],
            season=row["season"],
            model_version=row["model_version"],
            offense_rating=row["offense_rating"],
            defense_rating=row["defense_rating"],
            talent_component=row["talent_component"] or 0.0,
            power_rating=row["power_rating"],
            confidence=row["confidence"],
            data_source=row["data_source"],
            shrinkage_factor=row["shrinkage_factor"],
            games_count=row["games_count"] or 0,
        )

    def read_back(self, season: int, model_version: str) -> list[TeamRating]:
        """All persisted ratings for a season and model version, by team_id."""
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            rows = conn.execute(
                """
                SELECT * FROM team_ratings
                WHERE season = ? AND model_version = ?
                ORDER BY team_id
                """,
                (season, model_version),
            ).fetchall()
        return [self._row_to_rating(row) for row in rows]

    def get_rating(self, season: int, team_id: str, model_version: str) -> Optional[TeamRating]:
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            row = conn.execute(
                """
                SELECT * FROM team_ratings
                WHERE season = ? AND team_id = ? AND model_version = ?
                """,
                (season, team_id, model_version),
            ).fetchone()
        return self._row_to_rating(row) if row else None

    def delete_run(self, season: int, model_version: str) -> int:
        """Remove every row for a season and model version. Returns rows deleted."""
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute(
                "DELETE FROM team_ratings WHERE season = ? AND model_version = ?",
                (season, model_version),
            )
            deleted = cursor.rowcount
        logger.info(f"Deleted {deleted} {model_version} rating(s) for {season}")
        return deleted
