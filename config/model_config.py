"""Versioned model configuration bundles.

Each model version names a bundle of index weights, strength-of-schedule
settings, shrinkage parameters and a calibration factor. Bundles are resolved
once at orchestration time into a frozen ModelConfig and passed explicitly into
the numeric core; nothing below the engine looks configuration up by itself.

Bundles come from the built-in MODEL_WEIGHTS registry, or from a JSON file with
the same shape (version -> bundle) when MODEL_WEIGHTS_PATH is set. Optional
fields that a bundle leaves out resolve to the defaults below and are logged,
so a silently rescaled run is never mistaken for a configured one.
"""

import json
import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional

logger = logging.getLogger(__name__)


# =============================================================================
# METRIC NAMES
# =============================================================================
# Names must match TeamFeatures attributes. Weight mappings may reference any
# of these; anything else is rejected at load time.

OFFENSE_METRICS = (
    "ypp_off",
    "pass_ypa_off",
    "rush_ypc_off",
    "success_off",
    "epa_off",
    "pace_off",
)
DEFENSE_METRICS = (
    "ypp_def",
    "pass_ypa_def",
    "rush_ypc_def",
    "success_def",
    "epa_def",
    "pace_def",
)
TALENT_METRICS = (
    "talent_composite",
    "blue_chips_pct",
    "commits_signal",
)

# Defensive yardage metrics; when a team has none of them the defensive index
# renormalizes over the remaining weighted metrics.
DEFENSE_YARDAGE_METRICS = ("ypp_def", "pass_ypa_def", "rush_ypc_def")

DEFAULT_OFFENSE_WEIGHTS = {
    "ypp_off": 0.30,
    "pass_ypa_off": 0.20,
    "rush_ypc_off": 0.15,
    "success_off": 0.20,
    "epa_off": 0.15,
}
DEFAULT_DEFENSE_WEIGHTS = {
    "ypp_def": 0.20,
    "pass_ypa_def": 0.20,
    "rush_ypc_def": 0.15,
    "success_def": 0.25,
    "epa_def": 0.20,
}
DEFAULT_TALENT_WEIGHTS: dict[str, float] = {}

DEFAULT_HFA = 2.0
DEFAULT_CALIBRATION_FACTOR = 1.0


class ModelConfigError(Exception):
    """Raised when a model configuration is absent or invalid."""

    pass


@dataclass(frozen=True)
class SoSConfig:
    """Opponent-strength iteration settings."""

    enabled: bool = True
    iterations: int = 3  # Adjusting iterations after iteration 0
    convergence_threshold: float = 0.01  # Max |delta power| to stop early
    weight: float = 0.05  # Factor = 1 + opponent_delta * weight


@dataclass(frozen=True)
class ShrinkageConfig:
    """Shrinkage toward prior, sized by confidence and games played.

    factor = clamp(base + min(confidence_cap, (1 - conf) * confidence_weight)
                   + games_term(games), min_factor, max_factor)

    games_multipliers is a step table of (games_below, term) pairs checked in
    order; once games reaches the last threshold the games term is 0.
    """

    enabled: bool = True
    base_factor: float = 0.12
    confidence_weight: float = 0.5
    confidence_cap: float = 0.15
    games_multipliers: tuple[tuple[int, float], ...] = ((3, 0.18), (6, 0.10), (8, 0.05))
    min_factor: float = 0.18
    max_factor: float = 0.42


@dataclass(frozen=True)
class ModelConfig:
    """Resolved configuration for one model version."""

    version: str
    name: str = ""
    description: str = ""
    hfa: float = DEFAULT_HFA
    offense_weights: Mapping[str, float] = field(
        default_factory=lambda: MappingProxyType(dict(DEFAULT_OFFENSE_WEIGHTS))
    )
    defense_weights: Mapping[str, float] = field(
        default_factory=lambda: MappingProxyType(dict(DEFAULT_DEFENSE_WEIGHTS))
    )
    talent_weights: Mapping[str, float] = field(
        default_factory=lambda: MappingProxyType(dict(DEFAULT_TALENT_WEIGHTS))
    )
    sos: SoSConfig = field(default_factory=SoSConfig)
    shrinkage: ShrinkageConfig = field(default_factory=ShrinkageConfig)
    calibration_factor: float = DEFAULT_CALIBRATION_FACTOR

    @property
    def performance_metrics(self) -> tuple[str, ...]:
        """Metrics the offense/defense indices read (order-stable, deduplicated)."""
        return tuple(dict.fromkeys([*self.offense_weights, *self.defense_weights]))

    @property
    def talent_metrics(self) -> tuple[str, ...]:
        return tuple(self.talent_weights)

    def with_overrides(
        self,
        sos_weight: Optional[float] = None,
        shrinkage_base: Optional[float] = None,
        calibration_factor: Optional[float] = None,
    ) -> "ModelConfig":
        """Return a copy with CLI-style overrides applied."""
        config = self
        if sos_weight is not None:
            logger.info(f"Override: SoS weight {config.sos.weight} -> {sos_weight}")
            config = replace(config, sos=replace(config.sos, weight=sos_weight))
        if shrinkage_base is not None:
            logger.info(
                f"Override: shrinkage base {config.shrinkage.base_factor} -> {shrinkage_base}"
            )
            config = replace(
                config, shrinkage=replace(config.shrinkage, base_factor=shrinkage_base)
            )
        if calibration_factor is not None:
            logger.info(
                f"Override: calibration factor {config.calibration_factor} -> {calibration_factor}"
            )
            config = replace(config, calibration_factor=calibration_factor)
        _validate(config)
        return config


# =============================================================================
# BUILT-IN REGISTRY
# =============================================================================
# v1: plain z-score indices, no SoS, no shrinkage. Carries no calibration
#     factor, so it resolves to 1.0 (z-score units) with a warning.
# v2: SoS-adjusted, shrunk, talent-aware, calibrated to points.

MODEL_WEIGHTS: dict[str, dict[str, Any]] = {
    "v1": {
        "name": "Ratings v1",
        "description": "Weighted z-score indices from season features",
        "hfa": 2.0,
        "offensive_weights": dict(DEFAULT_OFFENSE_WEIGHTS),
        "defensive_weights": dict(DEFAULT_DEFENSE_WEIGHTS),
        "sos": {"enabled": False},
        "shrinkage": {"enabled": False},
    },
    "v2": {
        "name": "Ratings v2",
        "description": "Opponent-adjusted indices with shrinkage and talent",
        "hfa": 2.0,
        "offensive_weights": dict(DEFAULT_OFFENSE_WEIGHTS),
        "defensive_weights": dict(DEFAULT_DEFENSE_WEIGHTS),
        "talent_weights": {
            "talent_composite": 0.30,
            "blue_chips_pct": 0.15,
            "commits_signal": 0.05,
        },
        "sos": {
            "enabled": True,
            "iterations": 3,
            "convergence_threshold": 0.01,
            "weight": 0.05,
        },
        "shrinkage": {
            "base_factor": 0.12,
            "confidence_weight": 0.5,
            "confidence_cap": 0.15,
            "games_multipliers": [[3, 0.18], [6, 0.10], [8, 0.05]],
            "min_factor": 0.18,
            "max_factor": 0.42,
        },
        "calibration_factor": 6.5,
    },
}


def _resolve(
    raw: Mapping[str, Any],
    key: str,
    default: Any,
    version: str,
    loud: bool = False,
    section: Optional[str] = None,
) -> Any:
    """Read an optional field, logging when the default is used.

    section names the nested block (e.g. "sos") so the log reads "sos.weight".
    """
    if key in raw and raw[key] is not None:
        return raw[key]
    name = f"{section}.{key}" if section else key
    msg = f"Model {version}: '{name}' not configured, defaulting to {default!r}"
    if loud:
        logger.warning(msg)
    else:
        logger.info(msg)
    return default


def _check_metrics(weights: Mapping[str, float], allowed: tuple[str, ...], label: str, version: str) -> None:
    unknown = sorted(set(weights) - set(allowed))
    if unknown:
        raise ModelConfigError(
            f"Model {version}: unknown {label} metric(s) {unknown}. Allowed: {list(allowed)}"
        )
    for metric, weight in weights.items():
        try:
            float(weight)
        except (TypeError, ValueError):
            raise ModelConfigError(
                f"Model {version}: weight for {metric} is not numeric: {weight!r}"
            )


def _validate(config: ModelConfig) -> None:
    version = config.version
    if config.sos.iterations < 0:
        raise ModelConfigError(f"Model {version}: sos.iterations must be >= 0")
    if config.sos.convergence_threshold < 0:
        raise ModelConfigError(f"Model {version}: sos.convergence_threshold must be >= 0")
    s = config.shrinkage
    if not 0.0 <= s.min_factor <= s.max_factor <= 1.0:
        raise ModelConfigError(
            f"Model {version}: shrinkage band [{s.min_factor}, {s.max_factor}] must sit inside [0, 1]"
        )
    if config.calibration_factor <= 0:
        raise ModelConfigError(
            f"Model {version}: calibration_factor must be positive, got {config.calibration_factor}"
        )


def parse_model_config(version: str, raw: Mapping[str, Any]) -> ModelConfig:
    """Build a ModelConfig from one raw bundle, applying logged defaults.

    Args:
        version: Model version label
        raw: Bundle dict (registry entry or JSON object)

    Returns:
        Frozen ModelConfig

    Raises:
        ModelConfigError: If a field is malformed
    """
    offense = dict(_resolve(raw, "offensive_weights", DEFAULT_OFFENSE_WEIGHTS, version))
    defense = dict(_resolve(raw, "defensive_weights", DEFAULT_DEFENSE_WEIGHTS, version))
    talent = dict(_resolve(raw, "talent_weights", DEFAULT_TALENT_WEIGHTS, version))
    _check_metrics(offense, OFFENSE_METRICS, "offensive", version)
    _check_metrics(defense, DEFENSE_METRICS, "defensive", version)
    _check_metrics(talent, TALENT_METRICS, "talent", version)

    sos_raw = dict(_resolve(raw, "sos", {}, version))
    shrink_raw = dict(_resolve(raw, "shrinkage", {}, version))

    def sos_field(key: str) -> Any:
        return _resolve(sos_raw, key, getattr(SoSConfig, key), version, section="sos")

    def shrink_field(key: str) -> Any:
        return _resolve(
            shrink_raw, key, getattr(ShrinkageConfig, key), version, section="shrinkage"
        )

    try:
        sos = SoSConfig(
            enabled=bool(sos_field("enabled")),
            iterations=int(sos_field("iterations")),
            convergence_threshold=float(sos_field("convergence_threshold")),
            weight=float(sos_field("weight")),
        )
        shrinkage = ShrinkageConfig(
            enabled=bool(shrink_field("enabled")),
            base_factor=float(shrink_field("base_factor")),
            confidence_weight=float(shrink_field("confidence_weight")),
            confidence_cap=float(shrink_field("confidence_cap")),
            games_multipliers=tuple(
                sorted((int(games), float(term)) for games, term in shrink_field("games_multipliers"))
            ),
            min_factor=float(shrink_field("min_factor")),
            max_factor=float(shrink_field("max_factor")),
        )
        config = ModelConfig(
            version=version,
            name=str(raw.get("name", version)),
            description=str(raw.get("description", "")),
            hfa=float(_resolve(raw, "hfa", DEFAULT_HFA, version)),
            offense_weights=MappingProxyType({k: float(v) for k, v in offense.items()}),
            defense_weights=MappingProxyType({k: float(v) for k, v in defense.items()}),
            talent_weights=MappingProxyType({k: float(v) for k, v in talent.items()}),
            sos=sos,
            shrinkage=shrinkage,
            calibration_factor=float(
                _resolve(raw, "calibration_factor", DEFAULT_CALIBRATION_FACTOR, version, loud=True)
            ),
        )
    except (TypeError, ValueError) as e:
        raise ModelConfigError(f"Model {version}: malformed configuration: {e}") from e

    _validate(config)
    return config


def load_model_weights(path: Optional[str | Path] = None) -> dict[str, dict[str, Any]]:
    """Load the raw version -> bundle mapping.

    Args:
        path: Optional JSON file. None uses the built-in registry.

    Returns:
        Dict of raw bundles keyed by version
    """
    if path is None:
        return MODEL_WEIGHTS

    path = Path(path)
    if not path.exists():
        raise ModelConfigError(f"Model weights file not found: {path}")
    try:
        with open(path, "r") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ModelConfigError(f"Model weights file {path} is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ModelConfigError(f"Model weights file {path} must hold a version -> bundle object")
    logger.info(f"Loaded {len(data)} model bundle(s) from {path}")
    return data


def get_model_config(version: str, weights_path: Optional[str | Path] = None) -> ModelConfig:
    """Resolve the configuration bundle for a model version.

    Raises:
        ModelConfigError: If the version has no bundle (fatal, before any computation)
    """
    registry = load_model_weights(weights_path)
    raw = registry.get(version)
    if raw is None:
        raise ModelConfigError(
            f'Model configuration for version "{version}" not found. '
            f"Available versions: {', '.join(sorted(registry))}"
        )
    config = parse_model_config(version, raw)
    logger.info(
        f"Using model config {config.version} ({config.name}): hfa={config.hfa}, "
        f"sos={'on' if config.sos.enabled else 'off'}, "
        f"shrinkage={'on' if config.shrinkage.enabled else 'off'}, "
        f"calibration={config.calibration_factor}"
    )
    return config
