"""Enums for database models."""

import enum


class SyncJobType(str, enum.Enum):
    """Kind of work a sync job performs."""

    BACKFILL = "backfill"
    RECONCILE = "reconcile"
    REPLAY = "replay"


class SyncScopeType(str, enum.Enum):
    """What a sync job covers."""

    INSTALLATION = "installation"
    REPOSITORY = "repository"
    ENTITY = "entity"


class SyncTriggerReason(str, enum.Enum):
    """Why a sync job was created."""

    INSTALL = "install"
    REPO_ADDED = "repo_added"
    MANUAL = "manual"
    RECONCILE = "reconcile"
    REPLAY = "replay"


class SyncJobState(str, enum.Enum):
    """Sync job lifecycle state."""

    PENDING = "pending"
    RUNNING = "running"
    RETRY = "retry"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Done and failed jobs need an explicit reset to run again."""
        return self in (SyncJobState.DONE, SyncJobState.FAILED)


class PermissionLevel(str, enum.Enum):
    """Repository permission levels, lowest first."""

    PULL = "pull"
    TRIAGE = "triage"
    PUSH = "push"
    MAINTAIN = "maintain"
    ADMIN = "admin"

    @property
    def rank(self) -> int:
        """Position in the pull < triage < push < maintain < admin order."""
        return _PERMISSION_RANKS[self]

    def satisfies(self, required: "PermissionLevel") -> bool:
        """Whether holding this level grants ``required``."""
        return self.rank >= required.rank


_PERMISSION_RANKS = {
    PermissionLevel.PULL: 0,
    PermissionLevel.TRIAGE: 1,
    PermissionLevel.PUSH: 2,
    PermissionLevel.MAINTAIN: 3,
    PermissionLevel.ADMIN: 4,
}


class PullRequestFileStatus(str, enum.Enum):
    """File change status in a pull request."""

    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"
    RENAMED = "renamed"
    COPIED = "copied"
    CHANGED = "changed"
    UNCHANGED = "unchanged"

    @classmethod
    def normalize(cls, value: str | None) -> "PullRequestFileStatus":
        """Map unknown statuses to CHANGED."""
        try:
            return cls(value)
        except ValueError:
            return cls.CHANGED
