"""Exception types raised by stores and the sync core."""

from __future__ import annotations


class ReplicaSyncError(Exception):
    """Base class for replica-sync errors."""


class RemoteStoreError(ReplicaSyncError):
    """Error raised by a remote document store client.

    ``code`` drives classification (see ``replica_sync.sync.errors``).
    """

    def __init__(
        self,
        message: str,
        code: str = "unknown",
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status_code = status_code


class NotAuthenticatedError(ReplicaSyncError):
    """An operation needing a session was attempted without one."""

    def __init__(self, message: str = "Not authenticated") -> None:
        super().__init__(message)
        self.code = "unauthenticated"


class LocalStoreError(ReplicaSyncError):
    """Error raised by a local key-value store."""
