"""Environment-backed settings for the sync engine and the GitHub App.

Both models follow the same pattern as ``DatabaseConfig``: defaults in the
model, overridden by prefixed environment variables, overridden in turn by
values passed explicitly (for example from a YAML file).
"""

from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SyncSettings(BaseSettings):
    """Sync engine settings.

    Environment variables:
    - SYNC_STUCK_JOB_MINUTES: Minutes without a ledger update before a running
      job counts as stuck (default: 30)
    - SYNC_SWEEP_INTERVAL_SECONDS: Seconds between worker sweeps (default: 300)
    - SYNC_RESTART_STUCK_JOBS: Re-dispatch jobs after marking them stuck
      (default: true)
    - SYNC_MAX_CONCURRENT_PER_INSTALLATION: Running bootstraps allowed per
      installation (default: 25)
    - SYNC_RETRY_BACKOFF_FLOOR_MS / SYNC_RETRY_BACKOFF_CAP_MS: Bounds of the
      exponential retry delay
    - SYNC_MAX_ATTEMPTS: Ledger attempt count (claims and transitions) at
      which a retryable failure fails the job instead (default: 20)
    - SYNC_PERMISSION_STALENESS_HOURS: Age after which permission rows are
      refreshed (default: 6)
    - SYNC_PERMISSION_SYNC_BATCH_SIZE: Users refreshed per sweep (default: 10)
    """

    stuck_job_minutes: int = Field(default=30, ge=1)
    sweep_interval_seconds: int = Field(default=300, ge=1)
    restart_stuck_jobs: bool = Field(default=True)
    max_concurrent_per_installation: int = Field(default=25, ge=1)
    retry_backoff_floor_ms: int = Field(default=30_000, ge=0)
    retry_backoff_cap_ms: int = Field(default=15 * 60 * 1000, ge=0)
    max_attempts: int = Field(default=20, ge=1)
    due_retry_batch_size: int = Field(default=100, ge=1)
    permission_staleness_hours: int = Field(default=6, ge=1)
    permission_sync_batch_size: int = Field(default=10, ge=1)

    model_config = SettingsConfigDict(
        env_prefix="SYNC_",
        case_sensitive=False,
        extra="ignore",
    )


class GitHubAppSettings(BaseSettings):
    """GitHub App and OAuth client credentials.

    Environment variables:
    - GITHUB_APP_ID: Numeric App id
    - GITHUB_PRIVATE_KEY: PEM private key; literal ``\\n`` sequences are
      unfolded so the key fits on one line
    - GITHUB_CLIENT_ID / GITHUB_CLIENT_SECRET: OAuth app credentials used to
      refresh user tokens
    - GITHUB_API_BASE_URL: REST base URL (default: https://api.github.com)
    """

    app_id: str | None = Field(default=None)
    private_key: str | None = Field(default=None)
    client_id: str | None = Field(default=None)
    client_secret: str | None = Field(default=None)
    api_base_url: str = Field(default="https://api.github.com")

    model_config = SettingsConfigDict(
        env_prefix="GITHUB_",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("private_key", mode="before")
    @classmethod
    def unfold_private_key(cls, v: Any) -> Any:
        """Turn escaped newlines into real ones."""
        if isinstance(v, str):
            return v.replace("\\n", "\n")
        return v

    @field_validator("app_id", mode="before")
    @classmethod
    def coerce_app_id(cls, v: Any) -> Any:
        """Accept the App id as a number in YAML."""
        if isinstance(v, int):
            return str(v)
        return v

    @property
    def has_app_credentials(self) -> bool:
        """Whether installation tokens can be minted."""
        return bool(self.app_id and self.private_key)

    @property
    def has_oauth_client(self) -> bool:
        """Whether user OAuth tokens can be refreshed."""
        return bool(self.client_id and self.client_secret)
