"""Configuration loading.

The loading hierarchy is:
1. Default values from the settings models
2. Environment variables (``DATABASE_``, ``SYNC_``, ``GITHUB_`` prefixes)
3. Configuration file (YAML), after ${VAR} substitution

Each YAML section is passed to its settings model as explicit values, so a
key present in the file wins over the environment and anything the file
leaves out still comes from the environment.
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from src.database.config import DatabaseConfig

from .exceptions import (
    ConfigurationError,
    ConfigurationFileError,
    ConfigurationValidationError,
)
from .models import Config, SystemConfig, substitute_env_vars
from .settings import GitHubAppSettings, SyncSettings

SECTION_MODELS: dict[str, type[Any]] = {
    "system": SystemConfig,
    "database": DatabaseConfig,
    "sync": SyncSettings,
    "github_app": GitHubAppSettings,
}


class ConfigurationLoader:
    """Handles loading and validation of configuration from various sources."""

    def __init__(self) -> None:
        """Initialize configuration loader."""
        self._config: Config | None = None
        self._config_file_path: Path | None = None

    def load_from_file(self, config_path: str | Path) -> Config:
        """Load configuration from a YAML file.

        Args:
            config_path: Path to the YAML configuration file

        Returns:
            Loaded and validated configuration

        Raises:
            ConfigurationFileError: If file cannot be read or parsed
            ConfigurationValidationError: If configuration validation fails
        """
        config_path = Path(config_path)

        if not config_path.exists():
            raise ConfigurationFileError(
                f"Configuration file not found: {config_path}", file_path=str(config_path)
            )

        if not config_path.is_file():
            raise ConfigurationFileError(
                f"Configuration path is not a file: {config_path}",
                file_path=str(config_path),
            )

        try:
            with open(config_path, encoding="utf-8") as f:
                config_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationFileError(
                f"Failed to parse YAML configuration: {e}", file_path=str(config_path)
            ) from e
        except OSError as e:
            raise ConfigurationFileError(
                f"Failed to read configuration file: {e}", file_path=str(config_path)
            ) from e

        if config_data is None:
            config_data = {}
        if not isinstance(config_data, dict):
            raise ConfigurationFileError(
                "Configuration file must contain a mapping at the top level",
                file_path=str(config_path),
            )

        config = self.load_from_dict(config_data)
        self._config_file_path = config_path.resolve()
        return config

    def load_from_dict(self, config_data: dict[str, Any]) -> Config:
        """Load configuration from a dictionary.

        Raises:
            ConfigurationValidationError: If configuration validation fails
        """
        unknown = set(config_data) - set(SECTION_MODELS)
        if unknown:
            raise ConfigurationValidationError(
                f"Unknown configuration sections: {', '.join(sorted(unknown))}",
                validation_errors=sorted(unknown),
            )

        data = substitute_env_vars(config_data)
        sections: dict[str, Any] = {}
        try:
            for name, model in SECTION_MODELS.items():
                section = data.get(name) or {}
                if not isinstance(section, dict):
                    raise ConfigurationValidationError(
                        f"Configuration section '{name}' must be a mapping"
                    )
                sections[name] = model(**section)
            self._config = Config(**sections)
        except ValidationError as e:
            raise ConfigurationValidationError(
                f"Configuration validation failed: {e}",
                validation_errors=e.errors(),
            ) from e

        return self._config

    def load_default(self) -> Config:
        """Load configuration from defaults and environment variables only."""
        return self.load_from_dict({})

    @property
    def config(self) -> Config | None:
        """Get the loaded configuration."""
        return self._config

    @property
    def config_file_path(self) -> Path | None:
        """Get the path to the loaded configuration file."""
        return self._config_file_path

    @property
    def is_loaded(self) -> bool:
        """Check if configuration has been loaded."""
        return self._config is not None


# Global configuration loader instance
_loader = ConfigurationLoader()


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from a file, or from the environment when no path is given.

    Raises:
        ConfigurationError: If configuration cannot be loaded or is invalid
    """
    try:
        if config_path:
            return _loader.load_from_file(config_path)
        return _loader.load_default()
    except (ConfigurationFileError, ConfigurationValidationError) as e:
        raise ConfigurationError(f"Failed to load configuration: {e}") from e


def get_config() -> Config:
    """Get the currently loaded configuration.

    Raises:
        ConfigurationError: If no configuration has been loaded
    """
    if not _loader.is_loaded or _loader.config is None:
        raise ConfigurationError("No configuration loaded. Call load_config() first.")

    return _loader.config


def get_loader() -> ConfigurationLoader:
    """Get the global configuration loader instance."""
    return _loader
