"""Feature store adapters.

The engine reads per-team statistics through the FeatureStore interface:
game-level stat rows, season aggregates, preseason baselines, talent,
recruiting commits, the game list and the eligible roster. Two adapters are
provided:

- InMemoryFeatureStore: built from polars/pandas frames or lists of dicts.
- ParquetFeatureStore: reads one directory per season of parquet tables,
  the same on-disk layout the season cache writes.

Parquet season layout (every table optional except where noted):
    {root}/{season}/team_game_stats.parquet   team_id, game_id, <metrics>, updated_at
    {root}/{season}/team_season_stats.parquet team_id, <metrics>, games, updated_at
    {root}/{season}/baselines.parquet         team_id, <metrics>
    {root}/{season}/talent.parquet            team_id, talent_composite, blue_chips_pct
    {root}/{season}/class_commits.parquet     team_id, five_star, four_star, three_star, commits_total
    {root}/{season}/games.parquet             game_id, week, home_team, away_team,
                                              home_yards, away_yards, home_plays, away_plays,
                                              neutral_site, completed
    {root}/{season}/roster.parquet            team_id
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Iterable, Optional, Union

import pandas as pd
import polars as pl

logger = logging.getLogger(__name__)

FrameLike = Union[pl.DataFrame, pd.DataFrame, list[dict], None]

TABLES = (
    "team_game_stats",
    "team_season_stats",
    "baselines",
    "talent",
    "class_commits",
    "games",
    "roster",
)


class FeatureStoreError(Exception):
    """Raised when the underlying store cannot be read."""

    pass


@dataclass(frozen=True)
class GameRecord:
    """One game between two teams (read-only, owned by the store)."""

    game_id: str
    season: int
    home_team: str
    away_team: str
    week: Optional[int] = None
    home_yards: Optional[float] = None
    away_yards: Optional[float] = None
    home_plays: Optional[float] = None
    away_plays: Optional[float] = None
    neutral_site: bool = False
    completed: bool = True

    def involves(self, team_id: str) -> bool:
        return team_id == self.home_team or team_id == self.away_team

    def opponent_of(self, team_id: str) -> str:
        if team_id == self.home_team:
            return self.away_team
        if team_id == self.away_team:
            return self.home_team
        raise ValueError(f"{team_id} did not play in game {self.game_id}")

    @property
    def home_ypp(self) -> Optional[float]:
        if self.home_yards is None or not self.home_plays:
            return None
        return self.home_yards / self.home_plays

    @property
    def away_ypp(self) -> Optional[float]:
        if self.away_yards is None or not self.away_plays:
            return None
        return self.away_yards / self.away_plays

    @classmethod
    def from_row(cls, row: dict[str, Any], season: int) -> "GameRecord":
        def _num(key: str) -> Optional[float]:
            value = row.get(key)
            return None if value is None else float(value)

        completed = row.get("completed")
        neutral = row.get("neutral_site")
        return cls(
            game_id=str(row["game_id"]),
            season=int(row.get("season") or season),
            home_team=str(row["home_team"]),
            away_team=str(row["away_team"]),
            week=None if row.get("week") is None else int(row["week"]),
            home_yards=_num("home_yards"),
            away_yards=_num("away_yards"),
            home_plays=_num("home_plays"),
            away_plays=_num("away_plays"),
            neutral_site=bool(neutral) if neutral is not None else False,
            completed=bool(completed) if completed is not None else True,
        )


class FeatureStore(ABC):
    """Read interface the feature loader and engine consume."""

    @abstractmethod
    def get_game_stats(self, team_id: str, season: int) -> list[dict]:
        """Game-level stat rows for a team (one dict per game)."""

    @abstractmethod
    def get_season_stats(self, team_id: str, season: int) -> Optional[dict]:
        """Season-aggregate summary row, or None."""

    @abstractmethod
    def get_baseline(self, team_id: str, season: int) -> Optional[dict]:
        """Preseason baseline feature row, or None."""

    @abstractmethod
    def get_talent(self, team_id: str, season: int) -> Optional[dict]:
        """Roster talent row, or None."""

    @abstractmethod
    def get_class_commits(self, team_id: str, season: int) -> Optional[dict]:
        """Recruiting class commit counts, or None."""

    @abstractmethod
    def get_all_games(self, season: int) -> list[GameRecord]:
        """Every game in the season."""

    @abstractmethod
    def get_roster_for_season(self, season: int) -> set[str]:
        """Eligible team ids for the season."""

    def get_games_for_team(self, team_id: str, season: int) -> list[GameRecord]:
        """Games the team played in the season."""
        return [g for g in self.get_all_games(season) if g.involves(team_id)]


def _to_polars(frame: FrameLike) -> Optional[pl.DataFrame]:
    if frame is None:
        return None
    if isinstance(frame, pl.DataFrame):
        return frame
    if isinstance(frame, pd.DataFrame):
        # Round-trip through records so pandas NaN becomes null
        return pl.DataFrame(frame.astype(object).where(frame.notna(), None).to_dict("records"))
    return pl.DataFrame(frame)


class _FrameFeatureStore(FeatureStore):
    """Shared query logic over per-season polars tables."""

    def _table(self, name: str, season: int) -> Optional[pl.DataFrame]:
        raise NotImplementedError

    def _rows(self, name: str, team_id: str, season: int) -> list[dict]:
        df = self._table(name, season)
        if df is None or df.height == 0:
            return []
        if "team_id" not in df.columns:
            raise FeatureStoreError(f"Table {name} ({season}) has no team_id column")
        filtered = df.filter(pl.col("team_id") == team_id)
        if "season" in filtered.columns:
            filtered = filtered.filter(pl.col("season") == season)
        return filtered.to_dicts()

    def _single(self, name: str, team_id: str, season: int) -> Optional[dict]:
        rows = self._rows(name, team_id, season)
        if not rows:
            return None
        if len(rows) > 1:
            logger.debug(f"{name}: {len(rows)} rows for {team_id} {season}, using the last")
        return rows[-1]

    def get_game_stats(self, team_id: str, season: int) -> list[dict]:
        return self._rows("team_game_stats", team_id, season)

    def get_season_stats(self, team_id: str, season: int) -> Optional[dict]:
        return self._single("team_season_stats", team_id, season)

    def get_baseline(self, team_id: str, season: int) -> Optional[dict]:
        return self._single("baselines", team_id, season)

    def get_talent(self, team_id: str, season: int) -> Optional[dict]:
        return self._single("talent", team_id, season)

    def get_class_commits(self, team_id: str, season: int) -> Optional[dict]:
        return self._single("class_commits", team_id, season)

    def get_all_games(self, season: int) -> list[GameRecord]:
        df = self._table("games", season)
        if df is None or df.height == 0:
            return []
        if "season" in df.columns:
            df = df.filter(pl.col("season") == season)
        return [GameRecord.from_row(row, season) for row in df.to_dicts()]

    def get_games_for_team(self, team_id: str, season: int) -> list[GameRecord]:
        df = self._table("games", season)
        if df is None or df.height == 0:
            return []
        df = df.filter((pl.col("home_team") == team_id) | (pl.col("away_team") == team_id))
        if "season" in df.columns:
            df = df.filter(pl.col("season") == season)
        return [GameRecord.from_row(row, season) for row in df.to_dicts()]

    def get_roster_for_season(self, season: int) -> set[str]:
        roster = self._table("roster", season)
        if roster is not None and roster.height > 0:
            if "season" in roster.columns:
                roster = roster.filter(pl.col("season") == season)
            return set(roster["team_id"].cast(pl.Utf8).to_list())

        # No roster table: every team with season stats or a game
        teams: set[str] = set()
        for name in ("team_season_stats", "team_game_stats"):
            df = self._table(name, season)
            if df is not None and df.height > 0:
                teams.update(df["team_id"].cast(pl.Utf8).to_list())
        for game in self.get_all_games(season):
            teams.add(game.home_team)
            teams.add(game.away_team)
        logger.warning(f"No roster table for {season}; derived {len(teams)} teams from stats/games")
        return teams


class InMemoryFeatureStore(_FrameFeatureStore):
    """Feature store over in-memory frames.

    Every table may carry a `season` column; tables without one are treated
    as belonging to whichever season is asked for.
    """

    def __init__(
        self,
        team_game_stats: FrameLike = None,
        team_season_stats: FrameLike = None,
        baselines: FrameLike = None,
        talent: FrameLike = None,
        class_commits: FrameLike = None,
        games: Union[FrameLike, Iterable[GameRecord]] = None,
        roster: Optional[Iterable[str]] = None,
    ):
        if games is not None and not isinstance(games, (pl.DataFrame, pd.DataFrame)):
            games = [asdict(g) if isinstance(g, GameRecord) else g for g in games]
        self._tables: dict[str, Optional[pl.DataFrame]] = {
            "team_game_stats": _to_polars(team_game_stats),
            "team_season_stats": _to_polars(team_season_stats),
            "baselines": _to_polars(baselines),
            "talent": _to_polars(talent),
            "class_commits": _to_polars(class_commits),
            "games": _to_polars(games),
            "roster": (
                pl.DataFrame({"team_id": sorted(str(t) for t in roster)})
                if roster is not None
                else None
            ),
        }

    def _table(self, name: str, season: int) -> Optional[pl.DataFrame]:
        return self._tables.get(name)


class ParquetFeatureStore(_FrameFeatureStore):
    """Feature store over a directory of per-season parquet tables."""

    def __init__(self, root_dir: str | Path):
        self.root_dir = Path(root_dir)
        self._frames: dict[tuple[str, int], Optional[pl.DataFrame]] = {}
        self._lock = threading.Lock()
        logger.debug(f"Initialized ParquetFeatureStore at {self.root_dir.absolute()}")

    def _table(self, name: str, season: int) -> Optional[pl.DataFrame]:
        key = (name, season)
        with self._lock:
            if key in self._frames:
                return self._frames[key]

            path = self.root_dir / str(season) / f"{name}.parquet"
            if not path.exists():
                logger.debug(f"No {name} table for {season} at {path}")
                frame = None
            else:
                try:
                    frame = pl.read_parquet(path)
                except Exception as e:
                    raise FeatureStoreError(f"Failed to read {path}: {e}") from e
                logger.debug(f"Loaded {name} for {season} ({frame.height} rows)")
            self._frames[key] = frame
            return frame

    def has_season(self, season: int) -> bool:
        return (self.root_dir / str(season)).is_dir()
