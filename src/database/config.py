"""Mirror database settings.

The mirror lives in PostgreSQL in production. Every sync step opens its own
short session, so the pool is sized for many brief checkouts rather than a
few long ones.
"""

from typing import Any
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Local file databases carry no hostname in their URL
HOSTLESS_SCHEMES = ("sqlite", "sqlite+aiosqlite")


class DatabasePoolConfig(BaseModel):
    """Connection pool sizing for the worker process."""

    pool_size: int = Field(default=10, ge=1, description="Connections kept open")
    max_overflow: int = Field(
        default=20, ge=0, description="Extra connections allowed under burst load"
    )
    pool_pre_ping: bool = Field(
        default=True, description="Test connections before handing them out"
    )
    pool_recycle: int = Field(
        default=1800, description="Seconds after which a connection is replaced"
    )
    pool_timeout: int = Field(
        default=30, description="Seconds to wait for a free connection"
    )


class DatabaseConfig(BaseSettings):
    """Mirror database connection settings.

    Environment variables:
    - DATABASE_DATABASE_URL: Full connection URL, wins over the components
    - DATABASE_HOST / DATABASE_PORT / DATABASE_DATABASE: Server and schema
      (defaults: localhost, 5432, github_mirror)
    - DATABASE_USERNAME / DATABASE_PASSWORD: Credentials; a URL is only
      assembled from components once a password is known
    - DATABASE_POOL_SIZE, DATABASE_POOL_MAX_OVERFLOW, DATABASE_POOL_PRE_PING,
      DATABASE_POOL_RECYCLE, DATABASE_POOL_TIMEOUT: Pool sizing
    - DATABASE_ECHO_SQL: Log every statement
    """

    database_url: str | None = Field(
        default=None, description="Complete URL, overrides the components"
    )
    host: str = Field(default="localhost")
    port: int = Field(default=5432)
    database: str = Field(default="github_mirror")
    username: str = Field(default="postgres")
    password: str | None = Field(default=None)

    pool: DatabasePoolConfig = Field(default_factory=DatabasePoolConfig)

    echo_sql: bool = Field(default=False, description="Log SQL statements")
    connect_timeout: int = Field(default=10, description="Connect timeout in seconds")
    command_timeout: int = Field(default=60, description="Statement timeout in seconds")

    model_config = SettingsConfigDict(
        env_prefix="DATABASE_",
        case_sensitive=False,
        env_nested_delimiter="_",
        extra="ignore",
    )

    @field_validator("database_url", mode="before")
    @classmethod
    def validate_database_url(cls, v: Any) -> Any:
        """Reject URLs without a scheme, or without a host for server databases."""
        if v:
            parsed = urlparse(v)
            if not parsed.scheme:
                raise ValueError("Invalid database URL format")
            if parsed.scheme not in HOSTLESS_SCHEMES and not parsed.hostname:
                raise ValueError("Invalid database URL format")
        return v

    @field_validator("pool", mode="before")
    @classmethod
    def validate_pool_config(cls, v: Any) -> Any:
        if isinstance(v, dict):
            return DatabasePoolConfig(**v)
        return v

    @model_validator(mode="after")
    def construct_database_url(self) -> "DatabaseConfig":
        if not self.database_url and self.password:
            self.database_url = (
                f"postgresql+asyncpg://{self.username}:{self.password}"
                f"@{self.host}:{self.port}/{self.database}"
            )
        return self

    @property
    def is_sqlite(self) -> bool:
        return bool(self.database_url and self.database_url.startswith("sqlite"))

    def get_sqlalchemy_url(self) -> str:
        """Async driver URL used by the worker."""
        if not self.database_url:
            raise ValueError(
                "No database URL available - provide either database_url or password"
            )
        return self.database_url

    def get_alembic_url(self) -> str:
        """Sync driver URL used by migrations."""
        return (
            self.get_sqlalchemy_url()
            .replace("+asyncpg", "")
            .replace("+aiosqlite", "")
        )


def get_database_config() -> DatabaseConfig:
    """Settings from the environment alone, for migrations run outside the worker."""
    return DatabaseConfig()
