"""Configuration models."""

from .config import AppSearchInstanceConfig, Config, LoggingConfig, MigrationConfig

__all__ = ['AppSearchInstanceConfig', 'Config', 'LoggingConfig', 'MigrationConfig']
