"""Pydantic configuration models for the GitHub mirror sync worker.

The root ``Config`` bundles the settings objects every component reads:

- SystemConfig: logging and environment
- DatabaseConfig: connection and pool settings
- SyncSettings: ledger, sweep and retry tuning
- GitHubAppSettings: App and OAuth client credentials

Environment variables inside configuration files are substituted using the
format ${VAR_NAME} with optional defaults: ${VAR_NAME:default_value}
"""

import os
import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.database.config import DatabaseConfig

from .exceptions import EnvironmentVariableError
from .settings import GitHubAppSettings, SyncSettings

# Pattern: ${VAR_NAME} or ${VAR_NAME:default}
ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::([^}]*))?\}")


class LogLevel(str, Enum):
    """Supported logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


def substitute_env_vars(value: Any) -> Any:
    """Substitute environment variables in string values, recursively.

    Supports formats:
    - ${VAR_NAME} - Required environment variable
    - ${VAR_NAME:default} - Optional with default value

    Raises:
        EnvironmentVariableError: If a required environment variable is missing
    """
    if isinstance(value, str):

        def replacer(match: re.Match[str]) -> str:
            var_name = match.group(1)
            default_value = match.group(2)

            env_value = os.getenv(var_name)
            if env_value is not None:
                return env_value
            if default_value is not None:
                return default_value
            raise EnvironmentVariableError(
                f"Required environment variable '{var_name}' not found",
                variable_name=var_name,
            )

        return ENV_VAR_PATTERN.sub(replacer, value)
    if isinstance(value, dict):
        return {k: substitute_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [substitute_env_vars(item) for item in value]
    return value


class BaseConfigModel(BaseModel):
    """Base configuration model rejecting unknown keys."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)


class SystemConfig(BaseConfigModel):
    """Core system configuration settings."""

    log_level: LogLevel = Field(
        default=LogLevel.INFO, description="System-wide logging level"
    )

    environment: str = Field(
        default="development",
        description="Deployment environment (development, staging, production)",
    )


class Config(BaseConfigModel):
    """Root configuration containing all subsystem configurations."""

    system: SystemConfig = Field(
        default_factory=SystemConfig, description="Core system configuration"
    )

    database: DatabaseConfig = Field(
        default_factory=DatabaseConfig, description="Database configuration"
    )

    sync: SyncSettings = Field(
        default_factory=SyncSettings, description="Sync engine settings"
    )

    github_app: GitHubAppSettings = Field(
        default_factory=GitHubAppSettings,
        description="GitHub App and OAuth client credentials",
    )
