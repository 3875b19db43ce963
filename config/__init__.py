"""Configuration package for the CFB power-rating engine."""

from .settings import Settings, get_settings
from .model_config import (
    ModelConfig,
    ModelConfigError,
    ShrinkageConfig,
    SoSConfig,
    get_model_config,
)

__all__ = [
    "Settings",
    "get_settings",
    "ModelConfig",
    "ModelConfigError",
    "ShrinkageConfig",
    "SoSConfig",
    "get_model_config",
]
