"""replica-sync - Keep a local record collection in sync with a shared remote copy."""

from replica_sync.core.records import Collection, Record
from replica_sync.storage import (
    HttpRemoteStore,
    InMemoryLocalStore,
    InMemoryRemoteStore,
    SQLiteLocalStore,
)
from replica_sync.sync import (
    ConflictStrategy,
    SessionIdentity,
    SyncEngine,
    SyncOutcome,
    SyncStatus,
    fingerprint,
    merge_collections,
)

__version__ = "0.1.0"

__all__ = [
    # Data model
    "Collection",
    "Record",
    # Engine
    "SyncEngine",
    "SyncOutcome",
    "SyncStatus",
    "ConflictStrategy",
    "SessionIdentity",
    "fingerprint",
    "merge_collections",
    # Stores
    "HttpRemoteStore",
    "InMemoryLocalStore",
    "InMemoryRemoteStore",
    "SQLiteLocalStore",
    # Version
    "__version__",
]
