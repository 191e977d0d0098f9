"""Mutable coordinator state shared with the realtime filter."""

from __future__ import annotations

import asyncio
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from replica_sync.core.types import Unsubscribe
from replica_sync.sync.fingerprint import EMPTY_FINGERPRINT
from replica_sync.sync.protocol import SyncOutcome


@dataclass
class PendingUpload:
    """An upload request waiting for the single-flight slot."""

    items: list[dict[str, Any]]
    future: asyncio.Future[SyncOutcome]


@dataclass
class SyncState:
    """State owned by one ``SyncEngine``.

    Every read and write of the fields below goes through ``lock``, held only
    for short sections that never await.
    """

    in_progress: bool = False
    last_synced_fingerprint: str = EMPTY_FINGERPRINT
    last_sync_time: datetime | None = None
    auto_sync_enabled: bool = True
    generation: int = 0
    """Bumped by every reset; work started under an older value is stale."""

    stale_upload: bool = False
    """An upload from before the last reset is still talking to the store."""

    queue: deque[PendingUpload] = field(default_factory=deque)
    handoff: PendingUpload | None = None
    """Request popped from the queue and scheduled to run next."""

    realtime_unsubscribe: Unsubscribe | None = None
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def slot_taken(self) -> bool:
        """Whether a new upload has to wait its turn. Caller holds ``lock``."""
        return (
            self.in_progress
            or self.stale_upload
            or self.handoff is not None
            or bool(self.queue)
        )

    @property
    def waiting(self) -> int:
        """Uploads waiting for the slot. Caller holds ``lock``."""
        return len(self.queue) + (1 if self.handoff is not None else 0)

    def mark_synced(self, fingerprint: str, when: datetime) -> None:
        """Record a completed sync. Caller holds ``lock``."""
        self.last_synced_fingerprint = fingerprint
        self.last_sync_time = when

    def reset(self) -> list[PendingUpload]:
        """Return to the initial state, handing back the drained queue.

        Caller holds ``lock``. The realtime subscription handle is cleared but
        not invoked. A running upload keeps the slot until it finishes, but its
        result no longer counts for the new session.
        """
        drained = list(self.queue)
        if self.handoff is not None:
            drained.insert(0, self.handoff)
        self.queue.clear()
        self.handoff = None
        self.stale_upload = self.stale_upload or self.in_progress
        self.generation += 1
        self.in_progress = False
        self.last_synced_fingerprint = EMPTY_FINGERPRINT
        self.last_sync_time = None
        self.realtime_unsubscribe = None
        return drained
