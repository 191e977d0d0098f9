"""Local replica: the collection as persisted on this device."""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence

from replica_sync.core.records import Record, deserialize_collection, serialize_collection
from replica_sync.storage.base import LocalStore
from replica_sync.sync.identity import IdentityProvider

logger = logging.getLogger(__name__)

DEFAULT_KEY_PREFIX = "replicaSyncCollection"


class LocalReplica:
    """Load and save the collection in a ``LocalStore``, one entry per user.

    Failures never propagate: a missing or unreadable entry loads as an empty
    collection and a failed write returns False. Losing the local copy must
    not break syncing.
    """

    def __init__(
        self,
        store: LocalStore,
        identity: IdentityProvider,
        prefix: str = DEFAULT_KEY_PREFIX,
    ) -> None:
        self._store = store
        self._identity = identity
        self._prefix = prefix

    @property
    def prefix(self) -> str:
        return self._prefix

    def storage_key(self, user_id: str | None = None) -> str:
        """Key for *user_id*, or for the signed-in user, or the anonymous key."""
        user_id = user_id or self._identity.current_user_id()
        return f"{self._prefix}:{user_id}" if user_id else self._prefix

    def load(self, user_id: str | None = None) -> list[Record]:
        key = self.storage_key(user_id)
        try:
            raw = self._store.get(key)
        except Exception as e:
            logger.error("Error reading local collection %s: %s", key, e)
            return []

        if not raw:
            return []

        try:
            items = deserialize_collection(raw)
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning("Discarding corrupt local collection %s: %s", key, e)
            return []

        logger.debug("Loaded %d records from %s", len(items), key)
        return items

    def save(self, items: Sequence[Record], user_id: str | None = None) -> bool:
        key = self.storage_key(user_id)
        try:
            self._store.set(key, serialize_collection(items))
        except Exception as e:
            logger.error("Error saving local collection %s: %s", key, e)
            return False

        logger.debug("Saved %d records to %s", len(items), key)
        return True
