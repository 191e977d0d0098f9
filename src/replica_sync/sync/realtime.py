"""Realtime filter: turns subscription snapshots into genuine remote changes."""

from __future__ import annotations

import logging
from collections.abc import Callable

from replica_sync.core.records import Record
from replica_sync.sync.fingerprint import fingerprint
from replica_sync.sync.local_replica import LocalReplica
from replica_sync.sync.protocol import SnapshotMetadata, UpdateCallback
from replica_sync.sync.state import SyncState
from replica_sync.utils.timeutils import utcnow

logger = logging.getLogger(__name__)


class RealtimeFilter:
    """Decides which remote snapshots are news to this device.

    A snapshot is dropped when an upload is in flight (it is most likely the
    upload's own write) or when its fingerprint equals the last synced one
    (an echo of a completed sync, or a change already applied). Anything else
    is written to the local replica, recorded as synced and forwarded.
    """

    def __init__(
        self,
        state: SyncState,
        local: LocalReplica,
        on_update: UpdateCallback | None = None,
        on_error: Callable[[Exception], None] | None = None,
    ) -> None:
        self._state = state
        self._local = local
        self._on_update = on_update
        self._on_error = on_error

    def on_snapshot(self, items: list[Record], metadata: SnapshotMetadata) -> bool:
        """
        Handle one snapshot from the remote subscription.

        Returns:
            True if the snapshot was applied and forwarded
        """
        new_fingerprint = fingerprint(items)

        with self._state.lock:
            if self._state.in_progress:
                logger.debug("Skipping snapshot: sync in progress")
                return False

            if new_fingerprint == self._state.last_synced_fingerprint:
                logger.debug("Skipping snapshot: no changes")
                return False

            self._local.save(items)
            self._state.mark_synced(new_fingerprint, utcnow())

        logger.info(
            "Realtime update received: %d records (from_cache=%s, pending_writes=%s)",
            len(items),
            metadata.from_cache,
            metadata.has_pending_writes,
        )

        if self._on_update is not None:
            try:
                self._on_update(items, metadata)
            except Exception as e:
                logger.warning("Realtime update callback failed: %s", e)
        return True

    def on_error(self, error: Exception) -> None:
        logger.error("Realtime sync error: %s", error)
        if self._on_error is not None:
            self._on_error(error)
