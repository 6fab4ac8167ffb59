"""Run configuration loading."""

from .loader import SCHEMA_PATH, ConfigError, load_config

__all__ = ["SCHEMA_PATH", "ConfigError", "load_config"]
