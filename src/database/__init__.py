"""Mirror database settings and session management."""

from .config import DatabaseConfig, DatabasePoolConfig, get_database_config
from .connection import DatabaseConnectionManager

__all__ = [
    "DatabaseConfig",
    "DatabasePoolConfig",
    "DatabaseConnectionManager",
    "get_database_config",
]
