"""Sync protocol data structures shared by the engine and its callers."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any


class ConflictStrategy(StrEnum):
    """How divergent local/remote edits to the same record are reconciled."""

    SERVER_WINS = "server_wins"
    LOCAL_WINS = "local_wins"
    LATEST_WINS = "latest_wins"
    MERGE = "merge"
    MANUAL = "manual"


class SyncStatus(StrEnum):
    """Sync coordinator status, as broadcast to status listeners."""

    IDLE = "idle"
    SYNCING = "syncing"
    SUCCESS = "success"
    ERROR = "error"
    CONFLICT = "conflict"


class SyncDirection(StrEnum):
    """Which way a sync moved data."""

    UPLOAD = "upload"
    DOWNLOAD = "download"
    MERGE = "merge"


@dataclass(frozen=True)
class SnapshotMetadata:
    """Metadata delivered alongside a realtime snapshot."""

    from_cache: bool = False
    has_pending_writes: bool = False


@dataclass(frozen=True)
class RecordConflict:
    """A record edited differently on both replicas, left for the caller."""

    record_id: Any
    local: dict[str, Any]
    remote: dict[str, Any]


@dataclass(frozen=True)
class MergeResult:
    """Output of the merge engine."""

    items: list[dict[str, Any]]
    strategy: ConflictStrategy
    conflicts: tuple[RecordConflict, ...] = ()

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)


@dataclass(frozen=True)
class SyncOutcome:
    """Result of an upload or download, returned to the caller."""

    success: bool
    direction: SyncDirection
    items: list[dict[str, Any]] = field(default_factory=list)
    error: str | None = None
    from_cache: bool = False
    conflicts: tuple[RecordConflict, ...] = ()

    @classmethod
    def failure(
        cls,
        direction: SyncDirection,
        error: str,
        *,
        conflicts: tuple[RecordConflict, ...] = (),
    ) -> SyncOutcome:
        return cls(success=False, direction=direction, error=error, conflicts=conflicts)


@dataclass(frozen=True)
class SyncStatusInfo:
    """Point-in-time view of the coordinator state."""

    is_syncing: bool
    last_sync_time: datetime | None
    auto_sync_enabled: bool
    queued_uploads: int = 0
    realtime_active: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_syncing": self.is_syncing,
            "last_sync_time": self.last_sync_time.isoformat() if self.last_sync_time else None,
            "auto_sync_enabled": self.auto_sync_enabled,
            "queued_uploads": self.queued_uploads,
            "realtime_active": self.realtime_active,
        }


StatusListener = Callable[[SyncStatus, bool], None]
UpdateCallback = Callable[[list[dict[str, Any]], SnapshotMetadata], None]
