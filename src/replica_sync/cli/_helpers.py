"""Shared CLI helpers for configuration, engine wiring, and output formatting."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Coroutine
from contextlib import asynccontextmanager
from typing import Any, TypeVar

import typer

from replica_sync.storage.http_store import HttpRemoteStore
from replica_sync.storage.sqlite_store import SQLiteLocalStore
from replica_sync.sync.identity import SessionIdentity
from replica_sync.sync.local_replica import LocalReplica
from replica_sync.sync.sync_engine import SyncEngine
from replica_sync.unified_config import UnifiedConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


def get_config() -> UnifiedConfig:
    """Get CLI configuration."""
    return UnifiedConfig.load()


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run an async CLI command to completion."""
    return asyncio.run(coro)


def get_identity(config: UnifiedConfig) -> SessionIdentity:
    """Session for the user recorded in the config (anonymous if none)."""
    return SessionIdentity(config.user_id or None)


def open_local(config: UnifiedConfig) -> tuple[LocalReplica, SQLiteLocalStore]:
    """Local replica over the config's database. Caller closes the store."""
    store = SQLiteLocalStore(config.local_db_path)
    store.open()
    replica = LocalReplica(store, get_identity(config), prefix=config.sync.key_prefix)
    return replica, store


def require_server(config: UnifiedConfig) -> None:
    if not config.remote.server_url:
        typer.secho(
            "No server configured. Use 'replica-sync config set-server <url>' first.",
            fg=typer.colors.RED,
        )
        raise typer.Exit(1)


def require_login(config: UnifiedConfig) -> None:
    if not config.user_id:
        typer.secho(
            "Not signed in. Use 'replica-sync login <user>' first.", fg=typer.colors.RED
        )
        raise typer.Exit(1)


@asynccontextmanager
async def open_engine(config: UnifiedConfig) -> AsyncIterator[SyncEngine]:
    """
    Wire a SyncEngine from the config and tear it down afterwards.

    The local SQLite store and the HTTP connection are closed on exit.
    """
    require_server(config)

    local_store = SQLiteLocalStore(config.local_db_path)
    remote_store = HttpRemoteStore(
        config.remote.server_url,
        api_key=config.remote.api_key or None,
        timeout=config.remote.timeout,
    )
    local_store.open()
    try:
        await remote_store.connect()
        engine = SyncEngine.from_stores(
            local_store,
            remote_store,
            get_identity(config),
            config.to_engine_config(),
        )
        engine.set_auto_sync(config.sync.auto_sync)
        yield engine
        engine.clear_sync_state()
    finally:
        await remote_store.disconnect()
        local_store.close()


def output_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, default=str))
