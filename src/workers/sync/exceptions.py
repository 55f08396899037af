"""Exceptions raised by the sync engine entry points."""


class SyncError(Exception):
    """Base exception for sync failures."""

    pass


class InvalidRepoFormatError(SyncError):
    """Raised when a repository name is not ``owner/name``."""

    def __init__(self, full_name: str):
        super().__init__(f"Invalid repository format '{full_name}', expected owner/name")
        self.full_name = full_name


class RepoAlreadyConnectedError(SyncError):
    """Raised when connecting a repository that is already mirrored."""

    def __init__(self, full_name: str):
        super().__init__(f"Repository {full_name} is already connected")
        self.full_name = full_name


class EntityNotFoundError(SyncError):
    """Raised when GitHub reports a requested entity as missing."""

    def __init__(self, entity_type: str, full_name: str, number: int | None = None):
        target = f"{full_name}#{number}" if number is not None else full_name
        super().__init__(f"{entity_type} {target} not found on GitHub")
        self.entity_type = entity_type
        self.full_name = full_name
        self.number = number


class SyncJobNotFoundError(SyncError):
    """Raised when no ledger row exists for a repository or lock key."""

    pass
