"""Core data types for replica-sync."""

from replica_sync.core.errors import (
    LocalStoreError,
    NotAuthenticatedError,
    RemoteStoreError,
    ReplicaSyncError,
)
from replica_sync.core.records import (
    Collection,
    Record,
    deserialize_collection,
    parse_timestamp_ms,
    record_id,
    serialize_collection,
)
from replica_sync.core.types import Unsubscribe

__all__ = [
    "Collection",
    "Record",
    "deserialize_collection",
    "parse_timestamp_ms",
    "record_id",
    "serialize_collection",
    "Unsubscribe",
    # Errors
    "ReplicaSyncError",
    "RemoteStoreError",
    "NotAuthenticatedError",
    "LocalStoreError",
]
