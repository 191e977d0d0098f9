"""Remote replica: the shared collection document in the remote store."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from replica_sync.core.errors import RemoteStoreError
from replica_sync.core.records import Record
from replica_sync.core.types import Unsubscribe
from replica_sync.storage.base import DocumentSnapshot, ReadSource, RemoteStore
from replica_sync.sync.errors import ErrorCategory, classify_error, is_offline_error
from replica_sync.sync.identity import IdentityProvider
from replica_sync.sync.protocol import SnapshotMetadata
from replica_sync.sync.retry import RetryPolicy, Sleeper, execute_with_retry
from replica_sync.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

DEFAULT_COLLECTION = "userCollections"
NOT_AUTHENTICATED = "User not authenticated"

ITEMS_FIELD = "items"
ITEM_COUNT_FIELD = "itemCount"

RemoteSnapshotHandler = Callable[[list[Record], SnapshotMetadata], None]
RemoteErrorHandler = Callable[[Exception], None]


@dataclass(frozen=True)
class RemoteResult:
    """Outcome of a remote replica call. Adapters never raise."""

    success: bool
    items: list[Record] = field(default_factory=list)
    error: str | None = None
    category: ErrorCategory | None = None
    from_cache: bool = False

    @classmethod
    def from_error(cls, error: Exception) -> RemoteResult:
        return cls(
            success=False,
            error=str(error) or type(error).__name__,
            category=classify_error(error),
        )


def build_document(items: Sequence[Record]) -> dict[str, Any]:
    """Wrap a collection in the remote document layout."""
    return {
        ITEMS_FIELD: list(items),
        "updatedAt": utcnow().isoformat() + "Z",
        ITEM_COUNT_FIELD: len(items),
    }


def extract_items(data: dict[str, Any] | None) -> list[Record]:
    """Pull the collection out of a remote document (missing → empty).

    Raises:
        RemoteStoreError: ``invalid-argument`` when the stored collection is
            not a list of objects
    """
    if not data:
        return []
    items = data.get(ITEMS_FIELD)
    if items is None:
        return []
    if not isinstance(items, list):
        raise RemoteStoreError(
            f"Remote document field {ITEMS_FIELD!r} is not a list", "invalid-argument"
        )
    if not all(isinstance(item, dict) for item in items):
        raise RemoteStoreError(
            f"Remote document field {ITEMS_FIELD!r} holds non-object records",
            "invalid-argument",
        )
    return list(items)


class RemoteReplica:
    """
    Fetch, save and watch the collection document of the signed-in user.

    Reads go to the server first, retried with backoff; when the server is
    unreachable, the store client's own cache is tried once before giving up.
    """

    def __init__(
        self,
        store: RemoteStore,
        identity: IdentityProvider,
        retry_policy: RetryPolicy | None = None,
        collection: str = DEFAULT_COLLECTION,
        *,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._store = store
        self._identity = identity
        self._retry_policy = retry_policy or RetryPolicy()
        self._collection = collection
        self._sleep = sleep

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry_policy

    def document_key(self, user_id: str) -> str:
        return f"{self._collection}/{user_id}"

    def _resolve_user(self, user_id: str | None) -> str | None:
        if not self._identity.is_authenticated():
            return None
        return user_id or self._identity.current_user_id()

    async def fetch(self, user_id: str | None = None) -> RemoteResult:
        """
        Read the remote collection.

        Returns:
            RemoteResult with the items (empty if the document does not
            exist) and ``from_cache`` set when served by the client cache
        """
        uid = self._resolve_user(user_id)
        if uid is None:
            return RemoteResult(success=False, error=NOT_AUTHENTICATED, category=ErrorCategory.AUTH)

        key = self.document_key(uid)
        logger.debug("Fetching document: %s", key)

        try:
            snapshot = await self._fetch_with_fallback(key)
        except Exception as e:
            logger.error("Fetch of %s failed: %s", key, e)
            return RemoteResult.from_error(e)

        if not snapshot.exists:
            logger.debug("Document %s does not exist", key)

        try:
            items = extract_items(snapshot.data)
        except RemoteStoreError as e:
            logger.error("Document %s is malformed: %s", key, e)
            return RemoteResult.from_error(e)

        return RemoteResult(success=True, items=items, from_cache=snapshot.from_cache)

    async def _fetch_with_fallback(self, key: str) -> DocumentSnapshot:
        try:
            return await execute_with_retry(
                lambda: self._store.fetch(key, ReadSource.SERVER),
                f"fetch {key} from server",
                self._retry_policy,
                sleep=self._sleep,
            )
        except Exception as server_error:
            if not is_offline_error(server_error):
                raise

            logger.info("Server unavailable, trying cache for %s", key)
            try:
                cached = await self._store.fetch(key, ReadSource.CACHE)
            except Exception as cache_error:
                logger.warning("Cache fetch of %s failed: %s", key, cache_error)
                raise server_error from None

            if not cached.exists:
                raise

            return DocumentSnapshot(
                data=cached.data,
                from_cache=True,
                has_pending_writes=cached.has_pending_writes,
            )

    async def save(self, items: Sequence[Record], user_id: str | None = None) -> RemoteResult:
        """Replace the remote collection with *items*."""
        uid = self._resolve_user(user_id)
        if uid is None:
            return RemoteResult(success=False, error=NOT_AUTHENTICATED, category=ErrorCategory.AUTH)

        key = self.document_key(uid)
        document = build_document(items)
        logger.debug("Saving %d records to %s", len(items), key)

        try:
            await execute_with_retry(
                lambda: self._store.save(key, document),
                f"save {key}",
                self._retry_policy,
                sleep=self._sleep,
            )
        except Exception as e:
            logger.error("Save of %s failed: %s", key, e)
            return RemoteResult.from_error(e)

        return RemoteResult(success=True, items=list(items))

    def subscribe(
        self,
        on_snapshot: RemoteSnapshotHandler,
        on_error: RemoteErrorHandler | None = None,
        user_id: str | None = None,
    ) -> Unsubscribe | None:
        """
        Watch the remote collection.

        Returns:
            Unsubscribe function, or None if no user is signed in
        """
        uid = self._resolve_user(user_id)
        if uid is None:
            logger.warning("Cannot subscribe: %s", NOT_AUTHENTICATED)
            return None

        key = self.document_key(uid)
        logger.debug("Subscribing to %s", key)

        def handle(snapshot: DocumentSnapshot) -> None:
            logger.debug(
                "Snapshot received for %s (exists=%s, from_cache=%s, pending=%s)",
                key,
                snapshot.exists,
                snapshot.from_cache,
                snapshot.has_pending_writes,
            )
            try:
                items = extract_items(snapshot.data)
            except RemoteStoreError as e:
                handle_error(e)
                return
            on_snapshot(
                items,
                SnapshotMetadata(
                    from_cache=snapshot.from_cache,
                    has_pending_writes=snapshot.has_pending_writes,
                ),
            )

        def handle_error(error: Exception) -> None:
            logger.error("Snapshot error for %s: %s", key, error)
            if on_error is not None:
                on_error(error)

        return self._store.subscribe(key, handle, handle_error)
