"""Data access package: feature store adapters, feature loading, rating storage."""

from .feature_loader import DataSource, FeatureLoader, TeamFeatures, summarize_sources
from .feature_store import (
    FeatureStore,
    FeatureStoreError,
    GameRecord,
    InMemoryFeatureStore,
    ParquetFeatureStore,
)
from .rating_store import RatingStore, TeamRating
from .validators import RosterCoverageError, ValidationResult, validate_roster_coverage

__all__ = [
    "DataSource",
    "FeatureLoader",
    "TeamFeatures",
    "summarize_sources",
    "FeatureStore",
    "FeatureStoreError",
    "GameRecord",
    "InMemoryFeatureStore",
    "ParquetFeatureStore",
    "RatingStore",
    "TeamRating",
    "RosterCoverageError",
    "ValidationResult",
    "validate_roster_coverage",
]
