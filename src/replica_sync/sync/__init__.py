"""Replica synchronization: merge, adapters, coordinator and realtime filter."""

from replica_sync.sync.connection import ConnectionMonitor, ConnectionStatus
from replica_sync.sync.errors import (
    ErrorCategory,
    classify_error,
    get_user_friendly_error,
    is_offline_error,
)
from replica_sync.sync.fingerprint import EMPTY_FINGERPRINT, fingerprint
from replica_sync.sync.identity import IdentityProvider, SessionIdentity
from replica_sync.sync.local_replica import LocalReplica
from replica_sync.sync.merge import merge_collections, resolve_conflicts
from replica_sync.sync.protocol import (
    ConflictStrategy,
    MergeResult,
    RecordConflict,
    SnapshotMetadata,
    SyncDirection,
    SyncOutcome,
    SyncStatus,
    SyncStatusInfo,
)
from replica_sync.sync.realtime import RealtimeFilter
from replica_sync.sync.remote_replica import RemoteReplica, RemoteResult
from replica_sync.sync.retry import RetryPolicy, execute_with_retry
from replica_sync.sync.sync_engine import SyncEngine

__all__ = [
    "ConnectionMonitor",
    "ConnectionStatus",
    "ErrorCategory",
    "classify_error",
    "get_user_friendly_error",
    "is_offline_error",
    "EMPTY_FINGERPRINT",
    "fingerprint",
    "IdentityProvider",
    "SessionIdentity",
    "LocalReplica",
    "merge_collections",
    "resolve_conflicts",
    "ConflictStrategy",
    "MergeResult",
    "RecordConflict",
    "SnapshotMetadata",
    "SyncDirection",
    "SyncOutcome",
    "SyncStatus",
    "SyncStatusInfo",
    "RealtimeFilter",
    "RemoteReplica",
    "RemoteResult",
    "RetryPolicy",
    "execute_with_retry",
    "SyncEngine",
]
