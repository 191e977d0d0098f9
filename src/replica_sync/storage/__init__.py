"""Store interfaces and backends for replica-sync."""

from replica_sync.storage.base import (
    DocumentSnapshot,
    LocalStore,
    ReadSource,
    RemoteStore,
)
from replica_sync.storage.http_store import HttpRemoteStore
from replica_sync.storage.memory_store import InMemoryLocalStore, InMemoryRemoteStore
from replica_sync.storage.sqlite_store import SQLiteLocalStore

__all__ = [
    "DocumentSnapshot",
    "LocalStore",
    "ReadSource",
    "RemoteStore",
    "HttpRemoteStore",
    "InMemoryLocalStore",
    "InMemoryRemoteStore",
    "SQLiteLocalStore",
]
