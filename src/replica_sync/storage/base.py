"""Abstract interfaces for the stores the sync core talks to."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from replica_sync.core.types import Unsubscribe


class ReadSource(StrEnum):
    """Where a remote read is served from."""

    SERVER = "server"
    """Round-trip to the remote store."""

    CACHE = "cache"
    """The store client's own offline cache (no network)."""


@dataclass(frozen=True)
class DocumentSnapshot:
    """A remote document as delivered by a store client."""

    data: dict[str, Any] | None
    """Document body, or None if the document does not exist."""

    from_cache: bool = False
    has_pending_writes: bool = False

    @property
    def exists(self) -> bool:
        return self.data is not None


SnapshotHandler = Callable[[DocumentSnapshot], None]
ErrorHandler = Callable[[Exception], None]


class LocalStore(ABC):
    """
    Durable string key-value store owned by the current device.

    Implementations may raise on I/O failure; callers decide how
    to degrade.
    """

    @abstractmethod
    def get(self, key: str) -> str | None:
        """
        Read a value.

        Args:
            key: Storage key

        Returns:
            The stored string, or None if the key is absent
        """
        ...

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Write a value, replacing any previous one."""
        ...

    def delete(self, key: str) -> None:  # noqa: B027
        """Remove a key. No-op by default."""


class RemoteStore(ABC):
    """
    Asynchronous remote document store shared across devices.

    Documents are addressed by an opaque key. Errors should be raised as
    ``RemoteStoreError`` with a code so callers can classify them.
    """

    @abstractmethod
    async def fetch(self, key: str, source: ReadSource = ReadSource.SERVER) -> DocumentSnapshot:
        """
        Read a document.

        Args:
            key: Document key
            source: SERVER for a network read, CACHE for a local-cache read

        Returns:
            Snapshot of the document (``data`` is None if it does not exist)
        """
        ...

    @abstractmethod
    async def save(self, key: str, document: dict[str, Any]) -> None:
        """Replace the document stored under *key*."""
        ...

    @abstractmethod
    def subscribe(
        self,
        key: str,
        on_snapshot: SnapshotHandler,
        on_error: ErrorHandler | None = None,
    ) -> Unsubscribe:
        """
        Watch a document for changes.

        The handler is invoked for every change, including changes written by
        this process.

        Returns:
            Function that cancels the subscription
        """
        ...
