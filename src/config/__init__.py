"""Configuration management for the GitHub mirror sync worker.

This module provides type-safe configuration management with support for:
- YAML configuration files with environment variable substitution
- Environment-backed settings for the database, sync engine and GitHub App
- Pydantic-based validation and type safety

Example usage:
    from src.config import load_config

    config = load_config("config.yaml")
    threshold = config.sync.stuck_job_minutes
"""

from .exceptions import (
    ConfigurationError,
    ConfigurationFileError,
    ConfigurationValidationError,
    EnvironmentVariableError,
)
from .loader import ConfigurationLoader, get_config, get_loader, load_config
from .models import Config, LogLevel, SystemConfig, substitute_env_vars
from .settings import GitHubAppSettings, SyncSettings

__all__ = [
    # Exceptions
    "ConfigurationError",
    "ConfigurationFileError",
    "ConfigurationValidationError",
    "EnvironmentVariableError",
    # Loading
    "ConfigurationLoader",
    "get_config",
    "get_loader",
    "load_config",
    # Models
    "Config",
    "GitHubAppSettings",
    "LogLevel",
    "SyncSettings",
    "SystemConfig",
    "substitute_env_vars",
]
