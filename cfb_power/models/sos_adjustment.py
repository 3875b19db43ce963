"""Strength of Schedule adjustment for power ratings.

Iterative opponent-strength correction of team features:

    iteration 0:  rate raw features (z-score -> offense/defense indices)
    iteration k:  for each team, average the previous iteration's ratings of
                  the opponents it played, scale its raw efficiency metrics,
                  re-normalize the whole population and re-rate

    off_factor = 1 + (0 - avg_opp_defense) * sos_weight
    def_factor = 1 + (0 - avg_opp_offense) * sos_weight

A team that faced weak defenses (negative avg_opp_defense) gets its offensive
metrics scaled up less than one that faced strong ones; the same holds for
defense against opponent offenses. Adjustments always start from the raw
features, so they do not compound across iterations.

Every iteration reads an immutable snapshot of the previous ratings and builds
new dicts; nothing is adjusted in place. The loop stops when the largest power
rating change drops below convergence_threshold, or after `iterations` passes.
"""

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Mapping, Optional, Sequence

from config.model_config import ModelConfig
from cfb_power.data.feature_loader import TeamFeatures
from cfb_power.data.feature_store import GameRecord
from cfb_power.models.indices import defensive_index, offensive_index
from cfb_power.models.normalization import compute_zscore_table

logger = logging.getLogger(__name__)

# Raw efficiency metrics scaled by the SoS factors (pace is left alone)
OFFENSE_EFFICIENCY = ("ypp_off", "pass_ypa_off", "rush_ypc_off", "success_off", "epa_off")
DEFENSE_EFFICIENCY = ("ypp_def", "pass_ypa_def", "rush_ypc_def", "success_def", "epa_def")


class SoSState(str, Enum):
    INITIAL = "initial"
    ADJUSTING = "adjusting"
    CONVERGED = "converged"
    ITERATION_CAP_REACHED = "iteration_cap_reached"
    DISABLED = "disabled"


@dataclass(frozen=True)
class IndexRating:
    """Offense/defense/talent indices for one team in one iteration."""

    offense: float
    defense: float
    talent: float = 0.0

    @property
    def power(self) -> float:
        return self.offense + self.defense + self.talent


@dataclass
class SoSResult:
    """Final state of an opponent-strength run."""

    ratings: dict[str, IndexRating]
    adjusted_features: dict[str, TeamFeatures]
    state: SoSState
    iterations: int = 0  # Adjusting passes run (excludes iteration 0)
    max_delta: Optional[float] = None
    deltas: list[float] = field(default_factory=list)
    factors: dict[str, tuple[float, float]] = field(default_factory=dict)

    @property
    def passes(self) -> int:
        """Total rating passes including iteration 0."""
        return self.iterations + 1


IterationCallback = Callable[[int, Mapping[str, IndexRating]], None]


def rate_features(
    features: Sequence[TeamFeatures],
    config: ModelConfig,
    talent: Optional[Mapping[str, float]] = None,
) -> dict[str, IndexRating]:
    """Rate a feature population: fresh z-stats, then weighted indices.

    Args:
        features: One record per team (the whole population)
        config: Model configuration with offense/defense weights
        talent: Optional team -> talent component, carried into each rating

    Returns:
        Dict mapping team_id to IndexRating
    """
    talent = talent or {}
    zstats = compute_zscore_table(features, config.performance_metrics)
    return {
        f.team_id: IndexRating(
            offense=offensive_index(f, zstats, config.offense_weights),
            defense=defensive_index(f, zstats, config.defense_weights),
            talent=talent.get(f.team_id, 0.0),
        )
        for f in features
    }


def opponent_averages(
    team_id: str,
    games: Sequence[GameRecord],
    ratings: Mapping[str, IndexRating],
) -> Optional[tuple[float, float]]:
    """Mean (offense, defense) of the rated opponents a team played.

    Games against unrated opponents (e.g. outside the roster) are skipped.

    Returns:
        (avg_opp_offense, avg_opp_defense), or None with no rated opponents
    """
    offs: list[float] = []
    defs: list[float] = []
    for game in games:
        try:
            opponent = game.opponent_of(team_id)
        except ValueError:
            continue
        opp_rating = ratings.get(opponent)
        if opp_rating is None:
            continue
        offs.append(opp_rating.offense)
        defs.append(opp_rating.defense)

    if not offs:
        return None
    return sum(offs) / len(offs), sum(defs) / len(defs)


def adjust_features(features: TeamFeatures, off_factor: float, def_factor: float) -> TeamFeatures:
    """Return a copy with efficiency metrics scaled by the SoS factors."""
    changes = {}
    for metric in OFFENSE_EFFICIENCY:
        value = getattr(features, metric)
        if value is not None:
            changes[metric] = value * off_factor
    for metric in DEFENSE_EFFICIENCY:
        value = getattr(features, metric)
        if value is not None:
            changes[metric] = value * def_factor
    return replace(features, **changes)


class OpponentStrengthIterator:
    """Iterates opponent adjustment until ratings converge or the cap is hit."""

    def __init__(self, config: ModelConfig, on_iteration: Optional[IterationCallback] = None):
        """Initialize the iterator.

        Args:
            config: Resolved model configuration (weights and sos settings)
            on_iteration: Called with (iteration, ratings) after every pass,
                including iteration 0
        """
        self.config = config
        self.sos = config.sos
        self.on_iteration = on_iteration
        self.state = SoSState.INITIAL

    def _emit(self, iteration: int, ratings: Mapping[str, IndexRating]) -> None:
        if self.on_iteration is not None:
            self.on_iteration(iteration, ratings)

    def run(
        self,
        features: Sequence[TeamFeatures],
        games_by_team: Mapping[str, Sequence[GameRecord]],
        talent: Optional[Mapping[str, float]] = None,
    ) -> SoSResult:
        """Run the opponent-strength loop.

        Args:
            features: Raw features, one per roster team (never modified)
            games_by_team: team_id -> games the team played
            talent: team_id -> talent component (constant across iterations)

        Returns:
            SoSResult with the latest ratings and adjusted features
        """
        self.state = SoSState.INITIAL
        raw = {f.team_id: f for f in features}
        ratings = rate_features(features, self.config, talent)
        self._emit(0, ratings)

        if not self.sos.enabled:
            self.state = SoSState.DISABLED
            logger.info("SoS adjustment disabled; using raw ratings")
            return SoSResult(ratings=ratings, adjusted_features=dict(raw), state=self.state)

        self.state = SoSState.ADJUSTING
        adjusted = dict(raw)
        factors: dict[str, tuple[float, float]] = {}
        deltas: list[float] = []
        max_delta: Optional[float] = None
        iteration = 0

        for iteration in range(1, self.sos.iterations + 1):
            previous = ratings  # read-only snapshot
            adjusted = {}
            factors = {}
            for team_id, team_features in raw.items():
                averages = opponent_averages(team_id, games_by_team.get(team_id, ()), previous)
                if averages is None:
                    adjusted[team_id] = team_features
                    continue
                avg_opp_off, avg_opp_def = averages
                off_factor = 1.0 + (0.0 - avg_opp_def) * self.sos.weight
                def_factor = 1.0 + (0.0 - avg_opp_off) * self.sos.weight
                factors[team_id] = (off_factor, def_factor)
                adjusted[team_id] = adjust_features(team_features, off_factor, def_factor)

            ratings = rate_features(list(adjusted.values()), self.config, talent)
            max_delta = max(
                (abs(ratings[t].power - previous[t].power) for t in ratings if t in previous),
                default=0.0,
            )
            deltas.append(max_delta)
            logger.debug(
                f"SoS iteration {iteration}: max delta = {max_delta:.5f}, "
                f"{len(factors)}/{len(raw)} teams adjusted"
            )
            self._emit(iteration, ratings)

            if max_delta < self.sos.convergence_threshold:
                self.state = SoSState.CONVERGED
                logger.info(f"SoS converged after {iteration} iteration(s) (max delta {max_delta:.5f})")
                break
        else:
            self.state = SoSState.ITERATION_CAP_REACHED
            delta_str = f"{max_delta:.5f}" if max_delta is not None else "n/a"
            logger.warning(
                f"SoS reached iteration cap ({self.sos.iterations}) without converging "
                f"(max delta {delta_str} >= {self.sos.convergence_threshold}); "
                f"accepting last iteration"
            )

        return SoSResult(
            ratings=ratings,
            adjusted_features=adjusted,
            state=self.state,
            iterations=iteration,
            max_delta=max_delta,
            deltas=deltas,
            factors=factors,
        )


def group_games_by_team(games: Sequence[GameRecord], team_ids: Optional[Sequence[str]] = None) -> dict[str, list[GameRecord]]:
    """Index completed games by each participating team.

    Args:
        games: Season games
        team_ids: Optional roster; teams without games still get an empty list

    Returns:
        Dict mapping team_id to the games it played
    """
    by_team: dict[str, list[GameRecord]] = {t: [] for t in (team_ids or ())}
    for game in games:
        if not game.completed:
            continue
        by_team.setdefault(game.home_team, []).append(game)
        by_team.setdefault(game.away_team, []).append(game)
    return by_team
