"""Remote document store client over HTTP, with WebSocket subscriptions."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any
from urllib.parse import quote

import aiohttp

from replica_sync.core.errors import RemoteStoreError
from replica_sync.core.types import Unsubscribe
from replica_sync.storage.base import (
    DocumentSnapshot,
    ErrorHandler,
    ReadSource,
    RemoteStore,
    SnapshotHandler,
)

logger = logging.getLogger(__name__)

_STATUS_CODES = {
    400: "invalid-argument",
    401: "unauthenticated",
    403: "permission-denied",
    404: "not-found",
    408: "deadline-exceeded",
    422: "invalid-argument",
    504: "deadline-exceeded",
}


def status_to_code(status: int) -> str:
    """Map an HTTP status to a store error code."""
    if status in _STATUS_CODES:
        return _STATUS_CODES[status]
    if status >= 500:
        return "unavailable"
    return "unknown"


class HttpRemoteStore(RemoteStore):
    """
    HTTP client for a document server.

    Documents live at ``/documents/{key}``: ``GET`` reads, ``PUT`` replaces.
    Watchers connect to ``/documents/{key}/ws`` and receive
    ``{"type": "snapshot", "data": ..., "has_pending_writes": bool}`` messages.
    Every document read or written through this client is cached, and the
    cache answers ``ReadSource.CACHE`` reads while the server is unreachable.

    Usage:
        async with HttpRemoteStore("http://localhost:8000", api_key="...") as store:
            snapshot = await store.fetch("userCollections/user-1")
    """

    def __init__(
        self,
        server_url: str,
        *,
        api_key: str | None = None,
        timeout: float = 30.0,
        auto_reconnect: bool = True,
        reconnect_delay: float = 1.0,
        max_reconnect_attempts: int = 10,
    ) -> None:
        """
        Initialize the client.

        Args:
            server_url: Base URL of the document server (e.g., "http://localhost:8000")
            api_key: Optional API key sent as a bearer token
            timeout: Request timeout in seconds
            auto_reconnect: Whether watchers reconnect after a dropped socket
            reconnect_delay: Base delay between reconnect attempts (exponential backoff)
            max_reconnect_attempts: Maximum reconnect attempts (0 = unlimited)
        """
        if not server_url.startswith(("http://", "https://")):
            raise ValueError("Invalid server URL scheme: must start with http:// or https://")

        self._server_url = server_url.rstrip("/")
        self._api_key = api_key
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._auto_reconnect = auto_reconnect
        self._reconnect_delay = reconnect_delay
        self._max_reconnect_attempts = max_reconnect_attempts

        self._session: aiohttp.ClientSession | None = None
        self._cache: dict[str, dict[str, Any]] = {}
        self._watch_tasks: set[asyncio.Task[None]] = set()

    @property
    def server_url(self) -> str:
        return self._server_url

    @property
    def is_connected(self) -> bool:
        return self._session is not None

    async def connect(self) -> None:
        """Open the HTTP session."""
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=self._timeout,
                headers=self._get_headers(),
            )

    async def disconnect(self) -> None:
        """Stop all watchers and close the session."""
        for task in list(self._watch_tasks):
            task.cancel()
        if self._watch_tasks:
            await asyncio.gather(*self._watch_tasks, return_exceptions=True)
        self._watch_tasks.clear()

        if self._session:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> HttpRemoteStore:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.disconnect()

    def _get_headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _document_path(self, key: str) -> str:
        return f"/documents/{quote(key, safe='')}"

    def _ws_url(self, key: str) -> str:
        base = self._server_url
        if base.startswith("https://"):
            base = base.replace("https://", "wss://", 1)
        else:
            base = base.replace("http://", "ws://", 1)
        return f"{base}{self._document_path(key)}/ws"

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json_data: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """Make an HTTP request, raising ``RemoteStoreError`` on failure."""
        if not self._session:
            await self.connect()

        assert self._session is not None

        url = f"{self._server_url}{path}"

        try:
            async with self._session.request(method, url, json=json_data) as response:
                if response.status >= 400:
                    text = await response.text()
                    raise RemoteStoreError(
                        f"Server error {response.status}: {text}",
                        code=status_to_code(response.status),
                        status_code=response.status,
                    )
                if response.status == 204:
                    return None
                result: dict[str, Any] | None = await response.json()
                return result
        except aiohttp.ClientError as e:
            raise RemoteStoreError(f"Failed to connect to server: {e}", "unavailable") from e
        except TimeoutError as e:
            raise RemoteStoreError("Request timed out", "deadline-exceeded") from e

    # ── RemoteStore ────────────────────────────────────────────────

    async def fetch(self, key: str, source: ReadSource = ReadSource.SERVER) -> DocumentSnapshot:
        if source == ReadSource.CACHE:
            cached = self._cache.get(key)
            if cached is None:
                raise RemoteStoreError(f"Document {key!r} is not in the cache", "unavailable")
            return DocumentSnapshot(data=dict(cached), from_cache=True)

        try:
            data = await self._request("GET", self._document_path(key))
        except RemoteStoreError as e:
            if e.status_code == 404:
                self._cache.pop(key, None)
                return DocumentSnapshot(data=None)
            raise

        if data is None:
            self._cache.pop(key, None)
            return DocumentSnapshot(data=None)

        self._cache[key] = data
        return DocumentSnapshot(data=dict(data))

    async def save(self, key: str, document: dict[str, Any]) -> None:
        await self._request("PUT", self._document_path(key), json_data=document)
        self._cache[key] = dict(document)

    def subscribe(
        self,
        key: str,
        on_snapshot: SnapshotHandler,
        on_error: ErrorHandler | None = None,
    ) -> Unsubscribe:
        """Watch *key* over a WebSocket. Must be called from a running event loop."""
        task = asyncio.get_running_loop().create_task(self._watch(key, on_snapshot, on_error))
        self._watch_tasks.add(task)
        task.add_done_callback(self._watch_tasks.discard)

        def unsubscribe() -> None:
            if not task.done():
                task.cancel()

        return unsubscribe

    # ── Watching ───────────────────────────────────────────────────

    async def _watch(
        self,
        key: str,
        on_snapshot: SnapshotHandler,
        on_error: ErrorHandler | None,
    ) -> None:
        attempts = 0

        while True:
            try:
                await self._receive_snapshots(key, on_snapshot, on_error)
                attempts = 0
            except (aiohttp.ClientError, OSError) as e:
                logger.warning("Watch on %s failed: %s", key, e)
                if on_error is not None:
                    on_error(RemoteStoreError(f"Subscription to {key} failed: {e}", "unavailable"))

            if not self._auto_reconnect:
                return

            attempts += 1
            if self._max_reconnect_attempts > 0 and attempts > self._max_reconnect_attempts:
                logger.error("Giving up on watch %s after %d attempts", key, attempts - 1)
                return

            # Exponential backoff
            delay = self._reconnect_delay * (2 ** (attempts - 1))
            delay = min(delay, 60.0)  # Cap at 60 seconds
            await asyncio.sleep(delay)

    async def _receive_snapshots(
        self,
        key: str,
        on_snapshot: SnapshotHandler,
        on_error: ErrorHandler | None,
    ) -> None:
        """Stream messages from one socket until it closes."""
        if not self._session:
            await self.connect()

        assert self._session is not None

        ws = await self._session.ws_connect(self._ws_url(key))
        try:
            while True:
                message = await ws.receive()

                if message.type == aiohttp.WSMsgType.TEXT:
                    self._handle_message(key, message.data, on_snapshot, on_error)
                elif message.type in (
                    aiohttp.WSMsgType.CLOSE,
                    aiohttp.WSMsgType.CLOSED,
                    aiohttp.WSMsgType.CLOSING,
                    aiohttp.WSMsgType.ERROR,
                ):
                    logger.debug("Watch socket for %s closed (%s)", key, message.type)
                    return
        finally:
            await ws.close()

    def _handle_message(
        self,
        key: str,
        raw: str,
        on_snapshot: SnapshotHandler,
        on_error: ErrorHandler | None,
    ) -> None:
        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring malformed watch message for %s", key)
            return

        if not isinstance(message, dict):
            return

        message_type = message.get("type")

        if message_type == "snapshot":
            data = message.get("data")
            if isinstance(data, dict):
                self._cache[key] = data
                snapshot = DocumentSnapshot(
                    data=dict(data),
                    has_pending_writes=bool(message.get("has_pending_writes", False)),
                )
            else:
                self._cache.pop(key, None)
                snapshot = DocumentSnapshot(data=None)

            try:
                on_snapshot(snapshot)
            except Exception as e:
                logger.warning("Snapshot handler for %s failed: %s", key, e)

        elif message_type == "error":
            error = RemoteStoreError(
                str(message.get("message") or "Subscription error"),
                str(message.get("code") or "unknown"),
            )
            if on_error is not None:
                on_error(error)
