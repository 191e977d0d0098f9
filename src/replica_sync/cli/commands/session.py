"""Sign-in state and status commands."""

from __future__ import annotations

from typing import Annotated, Any

import typer

from replica_sync.cli._helpers import get_config, open_local, output_json, run_async
from replica_sync.cli.tui import render_status
from replica_sync.storage.http_store import HttpRemoteStore
from replica_sync.sync.connection import ConnectionMonitor


def login(
    user_id: Annotated[str, typer.Argument(help="User id to sync as")],
    api_key: Annotated[
        str | None, typer.Option("--api-key", "-k", help="API key for the document server")
    ] = None,
) -> None:
    """Sign in as a user. Later commands sync that user's collection.

    Examples:
        replica-sync login alice@example.com
        replica-sync login alice --api-key mykey
    """
    config = get_config()
    try:
        config.set_user(user_id)
    except ValueError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(1) from None

    if api_key is not None and config.remote.server_url:
        config.set_server(config.remote.server_url, api_key=api_key)

    typer.secho(f"Signed in as {config.user_id}", fg=typer.colors.GREEN)


def logout() -> None:
    """Sign out. The local collection of the user is kept.

    Examples:
        replica-sync logout
    """
    config = get_config()
    if not config.user_id:
        typer.echo("Not signed in.")
        return
    config.set_user("")
    typer.secho("Signed out.", fg=typer.colors.GREEN)


def status(
    check: Annotated[
        bool, typer.Option("--check", "-c", help="Check the document server")
    ] = False,
    json_output: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
) -> None:
    """Show the signed-in user, server and local replica summary.

    Examples:
        replica-sync status
        replica-sync status --check --json
    """
    config = get_config()
    replica, store = open_local(config)
    try:
        local_count = len(replica.load())
    finally:
        store.close()

    info: dict[str, Any] = {
        "user": config.user_id or None,
        "signed_in": bool(config.user_id),
        "server": config.remote.server_url or None,
        "conflict_strategy": config.sync.conflict_strategy.value,
        "auto_sync": config.sync.auto_sync,
        "local_records": local_count,
        "local_db": str(config.local_db_path),
    }

    if check and config.remote.server_url:

        async def _check() -> bool:
            monitor = ConnectionMonitor()
            async with HttpRemoteStore(
                config.remote.server_url,
                api_key=config.remote.api_key or None,
                timeout=config.remote.timeout,
            ) as remote_store:
                return await monitor.check_store(remote_store)

        info["server_reachable"] = run_async(_check())

    if json_output:
        output_json(info)
    else:
        render_status(info)


def register(app: typer.Typer) -> None:
    """Register session commands on the app."""
    app.command()(login)
    app.command()(logout)
    app.command()(status)
