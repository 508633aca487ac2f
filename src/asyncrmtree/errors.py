"""Error types raised by tree deletion."""

from pathlib import Path


class RmTreeError(Exception):
    """Base class for every error a tree deletion can end with."""


class OperationFailed(RmTreeError):
    """
    A filesystem operation failed.

    Covers opening an enumerator, fetching a batch, deleting an entry,
    deleting a directory and querying an entry's type. The underlying
    exception is kept on ``cause`` and chained as ``__cause__``.
    """

    def __init__(self, operation: str, path: Path | str, cause: BaseException):
        self.operation = operation
        self.path = Path(path)
        self.cause = cause
        super().__init__(f"{operation} failed for {self.path}: {cause}")


class Cancelled(RmTreeError):
    """The cancellation token was set before an operation was dispatched."""

    def __init__(self, reason: str = "cancelled"):
        self.reason = reason
        super().__init__(f"Operation cancelled: {reason}")
