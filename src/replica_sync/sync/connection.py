"""Connectivity signal: network online and remote store reachability."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import aiohttp

from replica_sync.core.types import Unsubscribe
from replica_sync.storage.base import ReadSource, RemoteStore
from replica_sync.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

PING_URL = "https://www.gstatic.com/generate_204"
CHECK_KEY = ".info/connected"


@dataclass(frozen=True)
class ConnectionStatus:
    """Snapshot of the connectivity flags."""

    is_online: bool
    is_store_reachable: bool
    last_status_change: datetime

    @property
    def is_fully_connected(self) -> bool:
        return self.is_online and self.is_store_reachable

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_online": self.is_online,
            "is_store_reachable": self.is_store_reachable,
            "last_status_change": self.last_status_change.isoformat(),
        }


ConnectionListener = Callable[[ConnectionStatus], None]


class ConnectionMonitor:
    """
    Tracks whether the device is online and the remote store answers.

    The flags are fed from outside (``set_online``) and from the periodic
    store check (``monitor_store``). Listeners fire only on change, plus once
    on registration.
    """

    def __init__(self, online: bool = True, store_reachable: bool = False) -> None:
        self._online = online
        self._store_reachable = store_reachable and online
        self._last_change = utcnow()
        self._listeners: list[ConnectionListener] = []

    def is_online(self) -> bool:
        return self._online

    def is_store_reachable(self) -> bool:
        return self._store_reachable

    def is_fully_connected(self) -> bool:
        return self._online and self._store_reachable

    def get_connection_status(self) -> ConnectionStatus:
        return ConnectionStatus(
            is_online=self._online,
            is_store_reachable=self._store_reachable,
            last_status_change=self._last_change,
        )

    def set_online(self, online: bool) -> None:
        """Update the network flag. Going offline also marks the store unreachable."""
        logger.info("Network is %s", "online" if online else "offline")
        self._update(online, self._store_reachable if online else False)

    def set_store_reachable(self, reachable: bool) -> None:
        logger.info("Remote store %s", "connected" if reachable else "disconnected")
        self._update(self._online, reachable)

    def _update(self, online: bool, store_reachable: bool) -> None:
        if online == self._online and store_reachable == self._store_reachable:
            return

        self._online = online
        self._store_reachable = store_reachable
        self._last_change = utcnow()

        status = self.get_connection_status()
        logger.debug("Connection status changed: %s", status.to_dict())
        for listener in list(self._listeners):
            self._call(listener, status)

    def on_connection_change(self, listener: ConnectionListener) -> Unsubscribe:
        """Register a listener; it is called immediately with the current status."""
        self._listeners.append(listener)
        self._call(listener, self.get_connection_status())

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @staticmethod
    def _call(listener: ConnectionListener, status: ConnectionStatus) -> None:
        try:
            listener(status)
        except Exception as e:
            logger.warning("Connection listener failed: %s", e)

    async def wait_for_connection(self, timeout: float = 30.0) -> ConnectionStatus:
        """
        Wait until both flags are up.

        Raises:
            TimeoutError: If the connection is not established within *timeout*
        """
        if self.is_fully_connected():
            return self.get_connection_status()

        connected = asyncio.Event()

        def on_change(status: ConnectionStatus) -> None:
            if status.is_fully_connected:
                connected.set()

        unsubscribe = self.on_connection_change(on_change)
        try:
            await asyncio.wait_for(connected.wait(), timeout=timeout)
        except TimeoutError:
            raise TimeoutError("Connection timeout") from None
        finally:
            unsubscribe()
        return self.get_connection_status()

    async def ping_test(self, url: str = PING_URL, timeout: float = 5.0) -> bool:
        """Check general internet reachability with a HEAD request."""
        try:
            async with aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=timeout)
            ) as session:
                async with session.head(url) as response:
                    reachable = 200 <= response.status < 400
        except (aiohttp.ClientError, TimeoutError) as e:
            logger.debug("Ping test failed: %s", e)
            return False

        logger.debug("Ping test: %s", "success" if reachable else "failed")
        return reachable

    async def check_store(self, store: RemoteStore, check_key: str = CHECK_KEY) -> bool:
        """Check the store with one server read and record the result."""
        try:
            await store.fetch(check_key, ReadSource.SERVER)
        except Exception as e:
            logger.warning("Store connection check failed: %s", e)
            self.set_store_reachable(False)
            return False

        self.set_store_reachable(True)
        return True

    def monitor_store(
        self,
        store: RemoteStore,
        interval: float = 60.0,
        check_key: str = CHECK_KEY,
    ) -> Unsubscribe:
        """
        Check the store now and then every *interval* seconds.

        Must be called from a running event loop.

        Returns:
            Function that stops monitoring
        """
        logger.info("Starting store connection monitoring")

        async def run() -> None:
            while True:
                await self.check_store(store, check_key)
                await asyncio.sleep(interval)

        task = asyncio.get_running_loop().create_task(run())

        def stop() -> None:
            if not task.done():
                logger.info("Stopping store connection monitoring")
                task.cancel()

        return stop
