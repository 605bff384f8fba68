"""Configuration loading and validation module."""

from src.config.loader import ConfigLoader, ConfigValidationError, load_engine_config
from src.config.schemas import EngineConfig


__all__ = [
    "ConfigLoader",
    "ConfigValidationError",
    "EngineConfig",
    "load_engine_config",
]
