"""Application settings and configuration."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


@dataclass
class Settings:
    """Application configuration settings."""

    # Storage
    ratings_db_path: str = field(
        default_factory=lambda: os.getenv("RATINGS_DB_PATH", "data/ratings.db")
    )
    features_dir: str = field(
        default_factory=lambda: os.getenv("FEATURES_DIR", "data/features")
    )
    model_weights_path: Optional[str] = field(
        default_factory=lambda: os.getenv("MODEL_WEIGHTS_PATH") or None
    )

    # Model selection
    model_version: str = field(
        default_factory=lambda: os.getenv("MODEL_VERSION", "v2")
    )

    # Valid season window (CLI rejects anything outside)
    min_season: int = 2000
    max_season: int = 2030

    # Roster coverage: refuse to rate a season when fewer than
    # min_roster_coverage * expected_roster_size teams are eligible
    expected_roster_size: int = field(
        default_factory=lambda: int(os.getenv("EXPECTED_ROSTER_SIZE", "136"))
    )
    min_roster_coverage: float = 0.95

    # Feature loading
    min_game_samples: int = 2  # Game-level tier needs at least this many games
    full_confidence_games: int = 8  # Games needed to reach the tier's max confidence
    loader_workers: int = field(
        default_factory=lambda: int(os.getenv("LOADER_WORKERS", "8"))
    )

    # Sanity gates
    gate_min_std: float = 0.5  # Gate A: power rating stddev floor
    gate_max_zero_pct: float = 0.02  # Gate B: ceiling on exactly-zero ratings
    readback_tolerance: float = 1e-6  # Read-after-write stddev tolerance
    gate_top_n: int = 10  # Offenders logged on gate failure

    # Persistence: run fails when more upserts than this fail
    max_upsert_failures: int = field(
        default_factory=lambda: int(os.getenv("MAX_UPSERT_FAILURES", "0"))
    )

    # Margin-based SRS
    srs_iterations: int = 1000

    # Paths
    @property
    def project_root(self) -> Path:
        return Path(__file__).parent.parent

    @property
    def data_dir(self) -> Path:
        return self.project_root / "data"

    @property
    def outputs_dir(self) -> Path:
        return self.data_dir / "outputs"

    def validate(self) -> list[str]:
        """Validate settings. Returns list of errors."""
        errors = []
        if self.min_season > self.max_season:
            errors.append(
                f"min_season ({self.min_season}) is after max_season ({self.max_season})"
            )
        if not 0.0 < self.min_roster_coverage <= 1.0:
            errors.append("min_roster_coverage must be in (0, 1]")
        if self.expected_roster_size <= 0:
            errors.append("EXPECTED_ROSTER_SIZE must be positive")
        if self.loader_workers < 1:
            errors.append("LOADER_WORKERS must be at least 1")
        return errors


# Singleton instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the settings singleton."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
