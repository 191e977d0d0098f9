"""Sync coordinator keeping the local and remote replicas consistent."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from replica_sync.core.records import Record
from replica_sync.core.types import Unsubscribe
from replica_sync.sync.fingerprint import fingerprint
from replica_sync.sync.local_replica import LocalReplica
from replica_sync.sync.merge import merge_collections
from replica_sync.sync.protocol import (
    ConflictStrategy,
    StatusListener,
    SyncDirection,
    SyncOutcome,
    SyncStatus,
    SyncStatusInfo,
    UpdateCallback,
)
from replica_sync.sync.realtime import RealtimeFilter
from replica_sync.sync.remote_replica import RemoteReplica
from replica_sync.sync.state import PendingUpload, SyncState
from replica_sync.utils.timeutils import utcnow

if TYPE_CHECKING:
    from replica_sync.storage.base import LocalStore, RemoteStore
    from replica_sync.sync.identity import IdentityProvider
    from replica_sync.utils.config import Config

logger = logging.getLogger(__name__)

NOT_AUTHENTICATED = "Not authenticated"
SYNC_FAILED = "Sync failed"
SYNC_CANCELLED = "Sync cancelled"


class SyncEngine:
    """Orchestrates uploads, downloads and realtime updates for one user.

    Uploads are single-flight: while one runs, further uploads wait in a
    FIFO queue and each caller gets its own outcome once its turn has run.
    Downloads are not queued. All state lives in ``SyncState`` and changes
    only under its lock, which is never held across an await.

    Usage:
        engine = SyncEngine(local, remote, identity)
        engine.on_sync_status_change(lambda status, busy: print(status))
        outcome = await engine.upload_collection(items)
        engine.start_realtime_sync(on_update)
    """

    def __init__(
        self,
        local: LocalReplica,
        remote: RemoteReplica,
        identity: IdentityProvider,
        strategy: ConflictStrategy = ConflictStrategy.LATEST_WINS,
        *,
        drain_delay: float = 0.1,
    ) -> None:
        self._local = local
        self._remote = remote
        self._identity = identity
        self._strategy = ConflictStrategy(strategy)
        self._drain_delay = drain_delay
        self._state = SyncState()
        self._listeners: list[StatusListener] = []
        self._tasks: set[asyncio.Task[None]] = set()

    @classmethod
    def from_stores(
        cls,
        local_store: LocalStore,
        remote_store: RemoteStore,
        identity: IdentityProvider,
        config: Config | None = None,
    ) -> SyncEngine:
        """Wire an engine from raw stores using *config* (or the global one)."""
        from replica_sync.utils.config import get_config

        config = config or get_config()
        local = LocalReplica(local_store, identity, prefix=config.key_prefix)
        remote = RemoteReplica(
            remote_store,
            identity,
            config.retry_policy(),
            collection=config.remote_collection,
        )
        return cls(
            local,
            remote,
            identity,
            config.conflict_strategy,
            drain_delay=config.drain_delay,
        )

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def local(self) -> LocalReplica:
        return self._local

    @property
    def remote(self) -> RemoteReplica:
        return self._remote

    # ── Configuration ──────────────────────────────────────────────

    @property
    def conflict_strategy(self) -> ConflictStrategy:
        return self._strategy

    def set_conflict_strategy(self, strategy: ConflictStrategy | str) -> None:
        """
        Change the strategy used by merging downloads.

        Raises:
            ValueError: If *strategy* is not a known strategy
        """
        try:
            self._strategy = ConflictStrategy(strategy)
        except ValueError:
            raise ValueError(f"Invalid conflict strategy: {strategy}") from None
        logger.info("Conflict strategy set to: %s", self._strategy)

    def set_auto_sync(self, enabled: bool) -> None:
        with self._state.lock:
            self._state.auto_sync_enabled = enabled
        logger.info("Auto-sync %s", "enabled" if enabled else "disabled")

    # ── Status ─────────────────────────────────────────────────────

    def on_sync_status_change(self, listener: StatusListener) -> Unsubscribe:
        """Register a ``(status, is_syncing)`` listener."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, status: SyncStatus, is_syncing: bool) -> None:
        for listener in list(self._listeners):
            try:
                listener(status, is_syncing)
            except Exception as e:
                logger.warning("Sync status listener failed: %s", e)

    def get_sync_status(self) -> SyncStatusInfo:
        with self._state.lock:
            return SyncStatusInfo(
                is_syncing=self._state.in_progress,
                last_sync_time=self._state.last_sync_time,
                auto_sync_enabled=self._state.auto_sync_enabled,
                queued_uploads=self._state.waiting,
                realtime_active=self._state.realtime_unsubscribe is not None,
            )

    # ── Upload ─────────────────────────────────────────────────────

    async def upload_collection(self, items: Sequence[Record]) -> SyncOutcome:
        """
        Replace the remote collection with *items*.

        If another upload is running, this call waits its turn in the queue.

        Returns:
            SyncOutcome with direction ``upload``
        """
        items = list(items)
        if not self._identity.is_authenticated():
            return SyncOutcome.failure(SyncDirection.UPLOAD, NOT_AUTHENTICATED)

        pending: PendingUpload | None = None
        with self._state.lock:
            if self._state.slot_taken:
                pending = PendingUpload(items, asyncio.get_running_loop().create_future())
                self._state.queue.append(pending)
                waiting = self._state.waiting
            else:
                self._state.in_progress = True
                generation = self._state.generation

        if pending is not None:
            logger.info("Sync already in progress, queuing (%d waiting)", waiting)
            return await pending.future

        return await self._run_upload(items, generation)

    async def _run_upload(self, items: list[Record], generation: int) -> SyncOutcome:
        """Run one upload. The caller has already claimed the slot."""
        try:
            self._notify(SyncStatus.SYNCING, True)
            logger.info("Syncing %d records to remote...", len(items))

            new_fingerprint = fingerprint(items)
            result = await self._remote.save(items)

            if not result.success:
                logger.error("Sync to remote failed: %s", result.error)
                self._notify(SyncStatus.ERROR, False)
                return SyncOutcome.failure(SyncDirection.UPLOAD, result.error or SYNC_FAILED)

            with self._state.lock:
                current = self._state.generation == generation
                if current:
                    self._state.mark_synced(new_fingerprint, utcnow())

            if not current:
                logger.info("Sync state was cleared during upload; not mirroring locally")
                return SyncOutcome(success=True, direction=SyncDirection.UPLOAD, items=items)

            self._local.save(items)

            logger.info("Sync to remote successful")
            self._notify(SyncStatus.SUCCESS, False)
            return SyncOutcome(success=True, direction=SyncDirection.UPLOAD, items=items)

        except Exception as e:
            logger.error("Sync to remote failed: %s", e, exc_info=True)
            self._notify(SyncStatus.ERROR, False)
            return SyncOutcome.failure(SyncDirection.UPLOAD, str(e) or SYNC_FAILED)

        finally:
            self._finish_upload(generation)

    def _finish_upload(self, generation: int) -> None:
        """Leave the in-progress state and hand the slot to the next request."""
        with self._state.lock:
            if self._state.generation == generation:
                self._state.in_progress = False
            else:
                self._state.stale_upload = False
            next_upload = self._state.queue.popleft() if self._state.queue else None
            self._state.handoff = next_upload

        if next_upload is None:
            return

        loop = asyncio.get_running_loop()
        loop.call_later(self._drain_delay, self._start_pending, next_upload)

    def _start_pending(self, pending: PendingUpload) -> None:
        task = asyncio.get_running_loop().create_task(self._run_pending(pending))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_pending(self, pending: PendingUpload) -> None:
        authenticated = self._identity.is_authenticated()
        with self._state.lock:
            if self._state.handoff is not pending:
                # Cleared while waiting for its turn
                return
            self._state.handoff = None
            self._state.in_progress = authenticated
            generation = self._state.generation

        if not authenticated:
            _resolve(pending, SyncOutcome.failure(SyncDirection.UPLOAD, NOT_AUTHENTICATED))
            self._finish_upload(generation)
            return

        _resolve(pending, await self._run_upload(pending.items, generation))

    # ── Download ───────────────────────────────────────────────────

    async def download_collection(self, merge_with_local: bool = True) -> SyncOutcome:
        """
        Pull the remote collection into the local replica.

        Args:
            merge_with_local: Merge with a non-empty local collection under the
                current conflict strategy instead of replacing it

        Returns:
            SyncOutcome with direction ``merge`` or ``download``
        """
        direction = SyncDirection.MERGE if merge_with_local else SyncDirection.DOWNLOAD
        if not self._identity.is_authenticated():
            return SyncOutcome.failure(direction, NOT_AUTHENTICATED)

        with self._state.lock:
            generation = self._state.generation

        logger.info("Syncing from remote...")
        try:
            result = await self._remote.fetch()
            if not result.success:
                logger.error("Sync from remote failed: %s", result.error)
                self._notify(SyncStatus.ERROR, False)
                return SyncOutcome.failure(direction, result.error or SYNC_FAILED)

            items = result.items
            if merge_with_local:
                local_items = self._local.load()
                if local_items:
                    merged = merge_collections(local_items, items, self._strategy)
                    if merged.has_conflicts:
                        logger.warning(
                            "%d records differ between replicas; manual resolution needed",
                            len(merged.conflicts),
                        )
                        self._notify(SyncStatus.CONFLICT, False)
                        return SyncOutcome(
                            success=False,
                            direction=direction,
                            items=merged.items,
                            error=f"{len(merged.conflicts)} conflicting records need resolution",
                            from_cache=result.from_cache,
                            conflicts=merged.conflicts,
                        )
                    items = merged.items

            with self._state.lock:
                current = self._state.generation == generation
            if not current:
                logger.info("Sync state was cleared during download; discarding result")
                return SyncOutcome.failure(direction, SYNC_CANCELLED)

            self._local.save(items)
            with self._state.lock:
                self._state.mark_synced(fingerprint(items), utcnow())

            logger.info("Sync from remote successful: %d records", len(items))
            return SyncOutcome(
                success=True,
                direction=direction,
                items=items,
                from_cache=result.from_cache,
            )

        except Exception as e:
            logger.error("Sync from remote failed: %s", e, exc_info=True)
            self._notify(SyncStatus.ERROR, False)
            return SyncOutcome.failure(direction, str(e) or SYNC_FAILED)

    # ── Realtime ───────────────────────────────────────────────────

    def start_realtime_sync(self, on_update: UpdateCallback | None = None) -> Unsubscribe | None:
        """
        Apply remote changes as they happen.

        Returns:
            Function that stops realtime sync, or None when not signed in.
            Calling again while active returns the existing handle.
        """
        if not self._identity.is_authenticated():
            logger.warning("Cannot start realtime sync: %s", NOT_AUTHENTICATED)
            return None

        with self._state.lock:
            existing = self._state.realtime_unsubscribe
        if existing is not None:
            logger.debug("Realtime sync already active")
            return existing

        logger.info("Starting realtime sync...")
        realtime = RealtimeFilter(
            self._state,
            self._local,
            on_update,
            on_error=lambda _error: self._notify(SyncStatus.ERROR, False),
        )
        unsubscribe = self._remote.subscribe(realtime.on_snapshot, realtime.on_error)
        if unsubscribe is None:
            return None

        def stop() -> None:
            with self._state.lock:
                if self._state.realtime_unsubscribe is stop:
                    self._state.realtime_unsubscribe = None
            unsubscribe()

        with self._state.lock:
            self._state.realtime_unsubscribe = stop
        return stop

    def stop_realtime_sync(self) -> None:
        with self._state.lock:
            stop = self._state.realtime_unsubscribe
            self._state.realtime_unsubscribe = None
        if stop is not None:
            logger.info("Stopping realtime sync...")
            stop()

    # ── Lifecycle ──────────────────────────────────────────────────

    def clear_sync_state(self) -> None:
        """Forget everything about the current session (sign-out).

        Stops realtime sync and fails every waiting upload with
        ``Sync cancelled``. An upload already talking to the remote store
        finishes on its own and keeps the slot until then, but neither it nor
        a download in flight writes into the new session.
        """
        logger.info("Clearing sync state...")
        self.stop_realtime_sync()

        with self._state.lock:
            cancelled = self._state.reset()

        for pending in cancelled:
            _resolve(pending, SyncOutcome.failure(SyncDirection.UPLOAD, SYNC_CANCELLED))

    # ── Local pass-throughs ────────────────────────────────────────

    def load_local(self) -> list[Record]:
        return self._local.load()

    def save_local(self, items: Sequence[Record]) -> bool:
        return self._local.save(items)

    async def save_collection(self, items: Sequence[Record]) -> SyncOutcome:
        """Offline-first save: always write locally, upload when possible.

        The upload is skipped when nobody is signed in or auto-sync is off.
        """
        items = list(items)
        saved = self._local.save(items)

        with self._state.lock:
            auto_sync = self._state.auto_sync_enabled

        if self._identity.is_authenticated() and auto_sync:
            return await self.upload_collection(items)

        if not saved:
            return SyncOutcome.failure(SyncDirection.UPLOAD, "Failed to save locally")
        return SyncOutcome(success=True, direction=SyncDirection.UPLOAD, items=items)

    async def load_collection(self) -> list[Record]:
        """Best available collection: merged remote when signed in, else local."""
        if self._identity.is_authenticated():
            outcome = await self.download_collection(merge_with_local=True)
            if outcome.success:
                return outcome.items
        return self._local.load()


def _resolve(pending: PendingUpload, outcome: SyncOutcome) -> None:
    if not pending.future.done():
        pending.future.set_result(outcome)
