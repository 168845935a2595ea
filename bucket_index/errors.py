from __future__ import annotations


class StorageError(Exception):
    """Base class for failures reported by a storage backend."""


class PreconditionError(StorageError):
    """The backend refused a conditional fetch."""


class BackendUnavailable(StorageError):
    """The backend failed for a reason other than a missing key."""

    def __init__(self, operation: str, bucket: str, detail: object = None):
        self.operation = operation
        self.bucket = bucket
        self.detail = detail
        message = f"{operation} on bucket {bucket!r} failed"
        if detail is not None:
            message = f"{message}: {detail}"
        super().__init__(message)


class InvalidPath(ValueError):
    """A request path carries percent-escapes that do not decode."""
