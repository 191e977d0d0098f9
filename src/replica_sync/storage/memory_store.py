"""In-memory store implementations for development and testing."""

from __future__ import annotations

import asyncio
import copy
import logging
from collections import defaultdict, deque
from typing import Any

from replica_sync.core.errors import LocalStoreError, RemoteStoreError
from replica_sync.core.types import Unsubscribe
from replica_sync.storage.base import (
    DocumentSnapshot,
    ErrorHandler,
    LocalStore,
    ReadSource,
    RemoteStore,
    SnapshotHandler,
)

logger = logging.getLogger(__name__)


class InMemoryLocalStore(LocalStore):
    """Dict-backed local store.

    Data is lost when the process exits. Set ``fail_writes`` to make every
    ``set`` raise, simulating a full or read-only disk.
    """

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})
        self.fail_writes = False

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if self.fail_writes:
            raise LocalStoreError(f"Write to {key!r} refused")
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class InMemoryRemoteStore(RemoteStore):
    """In-process remote document store with a server/cache split.

    Server reads and writes go to ``_server``; every successful server read
    or write is mirrored into ``_cache``, which serves ``ReadSource.CACHE``
    reads the way a store SDK's offline cache would. Subscribers get the
    current document when they subscribe, then every save, including saves
    made by the subscribing process.

    Fault injection:
        - ``online = False`` makes server reads and writes fail with
          ``unavailable``
        - ``fail_next_fetch`` / ``fail_next_save`` queue errors raised by the
          next server calls, one per call
        - ``save_delay`` suspends every save, to observe overlapping calls
    """

    def __init__(self, *, save_delay: float = 0.0) -> None:
        self._server: dict[str, dict[str, Any]] = {}
        self._cache: dict[str, dict[str, Any]] = {}
        self._subscribers: dict[str, list[tuple[SnapshotHandler, ErrorHandler | None]]] = (
            defaultdict(list)
        )
        self._fetch_errors: deque[Exception] = deque()
        self._save_errors: deque[Exception] = deque()

        self.online = True
        self.save_delay = save_delay

        # Call accounting
        self.fetch_calls: list[tuple[str, ReadSource]] = []
        self.save_calls: list[tuple[str, dict[str, Any]]] = []
        self.active_saves = 0
        self.max_concurrent_saves = 0

    # ── Fault injection ────────────────────────────────────────────

    def fail_next_fetch(self, error: Exception, times: int = 1) -> None:
        self._fetch_errors.extend([error] * times)

    def fail_next_save(self, error: Exception, times: int = 1) -> None:
        self._save_errors.extend([error] * times)

    def _check_online(self) -> None:
        if not self.online:
            raise RemoteStoreError("Failed to reach the store: client is offline", "unavailable")

    # ── RemoteStore ────────────────────────────────────────────────

    async def fetch(self, key: str, source: ReadSource = ReadSource.SERVER) -> DocumentSnapshot:
        self.fetch_calls.append((key, source))

        if source == ReadSource.CACHE:
            cached = self._cache.get(key)
            if cached is None:
                raise RemoteStoreError(f"Document {key!r} is not in the cache", "unavailable")
            return DocumentSnapshot(data=copy.deepcopy(cached), from_cache=True)

        if self._fetch_errors:
            raise self._fetch_errors.popleft()
        self._check_online()

        document = self._server.get(key)
        if document is None:
            return DocumentSnapshot(data=None)

        self._cache[key] = copy.deepcopy(document)
        return DocumentSnapshot(data=copy.deepcopy(document))

    async def save(self, key: str, document: dict[str, Any]) -> None:
        self.save_calls.append((key, copy.deepcopy(document)))
        self.active_saves += 1
        self.max_concurrent_saves = max(self.max_concurrent_saves, self.active_saves)
        try:
            if self.save_delay:
                await asyncio.sleep(self.save_delay)
            if self._save_errors:
                raise self._save_errors.popleft()
            self._check_online()

            self._server[key] = copy.deepcopy(document)
            self._cache[key] = copy.deepcopy(document)
        finally:
            self.active_saves -= 1

        self._notify(key, DocumentSnapshot(data=copy.deepcopy(document)))

    def subscribe(
        self,
        key: str,
        on_snapshot: SnapshotHandler,
        on_error: ErrorHandler | None = None,
    ) -> Unsubscribe:
        entry = (on_snapshot, on_error)
        self._subscribers[key].append(entry)

        # Watchers receive the current document first
        if key in self._server:
            on_snapshot(DocumentSnapshot(data=copy.deepcopy(self._server[key])))

        def unsubscribe() -> None:
            if entry in self._subscribers[key]:
                self._subscribers[key].remove(entry)

        return unsubscribe

    # ── Simulating other devices ───────────────────────────────────

    def put(
        self,
        key: str,
        document: dict[str, Any],
        *,
        from_cache: bool = False,
        has_pending_writes: bool = False,
    ) -> None:
        """Write a document as another device would and notify subscribers."""
        self._server[key] = copy.deepcopy(document)
        self._notify(
            key,
            DocumentSnapshot(
                data=copy.deepcopy(document),
                from_cache=from_cache,
                has_pending_writes=has_pending_writes,
            ),
        )

    def emit_error(self, key: str, error: Exception) -> None:
        """Deliver a subscription error to every watcher of *key*."""
        for _, on_error in list(self._subscribers[key]):
            if on_error is not None:
                on_error(error)

    def document(self, key: str) -> dict[str, Any] | None:
        """Current server copy of a document (test helper)."""
        document = self._server.get(key)
        return copy.deepcopy(document) if document is not None else None

    def subscriber_count(self, key: str) -> int:
        return len(self._subscribers[key])

    def _notify(self, key: str, snapshot: DocumentSnapshot) -> None:
        for on_snapshot, _ in list(self._subscribers[key]):
            try:
                on_snapshot(snapshot)
            except Exception as e:
                logger.warning("Snapshot handler for %s failed: %s", key, e)
