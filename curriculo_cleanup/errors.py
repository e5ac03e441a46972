"""Exception taxonomy for a cleanup run."""
from __future__ import annotations


class CleanupError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(CleanupError):
    """A required setting is missing or unusable. Fatal before any network call."""


class RemoteError(CleanupError):
    def __init__(self, message: str, *, path: str | None = None, status: int | None = None) -> None:
        super().__init__(message)
        self.path = path
        self.status = status


class NotFoundError(RemoteError):
    """The requested path does not exist on the configured branch."""


class RemoteTransientError(RemoteError):
    """Rate limit, timeout, connection reset or 5xx; worth retrying."""

    def __init__(self, message: str, *, path: str | None = None, status: int | None = None,
                 retry_after: float | None = None) -> None:
        super().__init__(message, path=path, status=status)
        self.retry_after = retry_after


class RemoteWriteConflict(RemoteError):
    """The index changed since it was read; the sha precondition was rejected."""


class IndexFormatError(RemoteError):
    """The index document is not a JSON array."""


class MalformedRecordError(CleanupError):
    def __init__(self, message: str, *, field: str | None = None, raw: object = None) -> None:
        super().__init__(message)
        self.field = field
        self.raw = raw


class InvalidFileUrlError(CleanupError):
    """A stored file URL does not map to a deletable path in the repository."""


class RunCancelled(CleanupError):
    """The run was cancelled or timed out; the index was not written."""
