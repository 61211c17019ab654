"""Error taxonomy for external collaborators and the cache."""

from typing import Optional


class ExternalError(Exception):
    """Base class for failures reported by an external collaborator."""


class TransientExternalError(ExternalError):
    """Network or rate-limit failure that is worth retrying."""

    def __init__(self, message: str, retry_after: Optional[float] = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class FatalExternalError(ExternalError):
    """Credentials or configuration make the collaborator unusable. Aborts the run."""


class PermanentItemError(ExternalError):
    """The collaborator rejected one input. Retrying the same input will not help."""


class CacheCorruptionError(Exception):
    """A cache entry could not be decoded."""
