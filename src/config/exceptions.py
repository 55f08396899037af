"""Errors raised while loading worker configuration.

All of them derive from ``ConfigurationError``, which is what
``load_config`` callers and the worker entry point catch.
"""

from typing import Any


class ConfigurationError(Exception):
    """The worker cannot start with the configuration it was given."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.details = details or {}


class ConfigurationFileError(ConfigurationError):
    """The YAML file is missing, unreadable or not a mapping."""

    def __init__(
        self,
        message: str,
        file_path: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.file_path = file_path


class ConfigurationValidationError(ConfigurationError):
    """A section is unknown or fails its settings model.

    ``validation_errors`` holds either the unknown section names or the
    pydantic error list.
    """

    def __init__(
        self,
        message: str,
        validation_errors: list[Any] | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.validation_errors = validation_errors or []


class EnvironmentVariableError(ConfigurationError):
    """A ``${VAR}`` reference has no value and no default."""

    def __init__(
        self,
        message: str,
        variable_name: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.variable_name = variable_name
