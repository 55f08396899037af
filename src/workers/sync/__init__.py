"""Repository mirroring: bootstrap, on-demand sync, recovery and triggers."""

from .bootstrap_workflow import BootstrapOrchestrator, JobSuperseded, compute_retry_delay_ms
from .exceptions import (
    EntityNotFoundError,
    InvalidRepoFormatError,
    RepoAlreadyConnectedError,
    SyncError,
    SyncJobNotFoundError,
)
from .interfaces import (
    AsyncioScheduler,
    GitHubClientProvider,
    NoOpProjectionRefresher,
    ProjectionRefresher,
    RepoContext,
    Scheduler,
)
from .on_demand import OnDemandResult, OnDemandSync
from .pr_files import PrFilesResult, PullRequestFileSync, sync_pr_files
from .recovery import RecoveryResult, StuckJob, StuckJobRecovery
from .triggers import ConnectResult, SyncTriggers, split_full_name
from .webhook_events import WebhookEventWriter, WebhookWriteResult
from .writer import MirrorWriter

__all__ = [
    "AsyncioScheduler",
    "BootstrapOrchestrator",
    "ConnectResult",
    "EntityNotFoundError",
    "GitHubClientProvider",
    "InvalidRepoFormatError",
    "JobSuperseded",
    "MirrorWriter",
    "NoOpProjectionRefresher",
    "OnDemandResult",
    "OnDemandSync",
    "PrFilesResult",
    "ProjectionRefresher",
    "PullRequestFileSync",
    "RecoveryResult",
    "RepoAlreadyConnectedError",
    "RepoContext",
    "Scheduler",
    "StuckJob",
    "StuckJobRecovery",
    "SyncError",
    "SyncJobNotFoundError",
    "SyncTriggers",
    "WebhookEventWriter",
    "WebhookWriteResult",
    "compute_retry_delay_ms",
    "split_full_name",
]
