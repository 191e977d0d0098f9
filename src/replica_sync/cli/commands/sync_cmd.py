"""Commands that move the collection between the replicas."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated, Any

import typer

from replica_sync.cli._helpers import (
    get_config,
    open_engine,
    open_local,
    output_json,
    require_login,
    run_async,
)
from replica_sync.cli.tui import STATUS_COLORS, console, render_collection
from replica_sync.core.records import Record, deserialize_collection
from replica_sync.sync.protocol import (
    ConflictStrategy,
    SnapshotMetadata,
    SyncOutcome,
    SyncStatus,
)
from replica_sync.utils.timeutils import utcnow


def _outcome_dict(outcome: SyncOutcome) -> dict[str, Any]:
    return {
        "success": outcome.success,
        "direction": outcome.direction.value,
        "records": len(outcome.items),
        "error": outcome.error,
        "from_cache": outcome.from_cache,
        "conflicts": [str(c.record_id) for c in outcome.conflicts],
    }


def _report(outcome: SyncOutcome, as_json: bool) -> None:
    """Print an outcome and exit non-zero on failure."""
    if as_json:
        output_json(_outcome_dict(outcome))
    elif outcome.success:
        source = " (from cache)" if outcome.from_cache else ""
        label = outcome.direction.value.capitalize()
        typer.secho(
            f"{label} complete: {len(outcome.items)} records{source}", fg=typer.colors.GREEN
        )
    else:
        typer.secho(f"Error: {outcome.error}", fg=typer.colors.RED)
        for conflict in outcome.conflicts:
            typer.secho(f"  conflict: {conflict.record_id}", fg=typer.colors.YELLOW)

    if not outcome.success:
        raise typer.Exit(1)


def push(
    file: Annotated[Path, typer.Argument(help="JSON file holding a list of records")],
    json_output: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
) -> None:
    """Save a collection locally and upload it.

    Without a server or signed-in user the collection is only saved locally.

    Examples:
        replica-sync push invoices.json
    """
    config = get_config()

    try:
        items = deserialize_collection(file.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        typer.secho(f"Cannot read {file}: {e}", fg=typer.colors.RED)
        raise typer.Exit(1) from None

    if not config.remote.server_url or not config.user_id:
        replica, store = open_local(config)
        try:
            saved = replica.save(items)
        finally:
            store.close()
        if not saved:
            typer.secho("Failed to save locally", fg=typer.colors.RED)
            raise typer.Exit(1)
        typer.secho(f"Saved {len(items)} records locally (not uploaded)", fg=typer.colors.YELLOW)
        return

    async def _push() -> SyncOutcome:
        async with open_engine(config) as engine:
            return await engine.save_collection(items)

    _report(run_async(_push()), json_output)


def pull(
    no_merge: Annotated[
        bool, typer.Option("--no-merge", help="Replace the local collection instead of merging")
    ] = False,
    strategy: Annotated[
        str | None,
        typer.Option("--strategy", "-s", help="Conflict strategy for this pull only"),
    ] = None,
    json_output: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
) -> None:
    """Download the remote collection into the local replica.

    Examples:
        replica-sync pull
        replica-sync pull --no-merge
        replica-sync pull --strategy server_wins
    """
    config = get_config()
    require_login(config)

    async def _pull() -> SyncOutcome:
        async with open_engine(config) as engine:
            if strategy is not None:
                engine.set_conflict_strategy(strategy)
            return await engine.download_collection(merge_with_local=not no_merge)

    try:
        outcome = run_async(_pull())
    except ValueError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(1) from None

    _report(outcome, json_output)


def show(
    json_output: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
) -> None:
    """Show the local collection of the signed-in user.

    Examples:
        replica-sync show
        replica-sync show --json
    """
    config = get_config()
    replica, store = open_local(config)
    try:
        items = replica.load()
    finally:
        store.close()

    if json_output:
        output_json(items)
        return
    if not items:
        typer.echo("Local collection is empty.")
        return
    render_collection(items)


def watch(
    duration: Annotated[
        float, typer.Option("--duration", "-d", help="Stop after N seconds (0 = until Ctrl+C)")
    ] = 0.0,
) -> None:
    """Follow remote changes and apply them to the local replica.

    Examples:
        replica-sync watch
        replica-sync watch --duration 60
    """
    config = get_config()
    require_login(config)

    def on_update(items: list[Record], metadata: SnapshotMetadata) -> None:
        cached = " (cached)" if metadata.from_cache else ""
        typer.echo(f"[{utcnow():%H:%M:%S}] remote update: {len(items)} records{cached}")

    def on_status(status: SyncStatus, _is_syncing: bool) -> None:
        color = STATUS_COLORS.get(status.value, "white")
        console.print(f"[{color}]sync {status.value}[/{color}]")

    async def _watch() -> bool:
        async with open_engine(config) as engine:
            engine.on_sync_status_change(on_status)
            stop = engine.start_realtime_sync(on_update)
            if stop is None:
                return False
            typer.echo(f"Watching as {config.user_id}. Press Ctrl+C to stop.")
            try:
                if duration > 0:
                    await asyncio.sleep(duration)
                else:
                    await asyncio.Event().wait()
            finally:
                stop()
            return True

    try:
        started = run_async(_watch())
    except KeyboardInterrupt:
        typer.echo("Stopped.")
        return

    if not started:
        typer.secho("Could not start realtime sync", fg=typer.colors.RED)
        raise typer.Exit(1)


def strategy_cmd(
    name: Annotated[
        str | None,
        typer.Argument(help="server_wins, local_wins, latest_wins, merge or manual"),
    ] = None,
) -> None:
    """Show or set the conflict strategy used by merging pulls.

    Examples:
        replica-sync strategy
        replica-sync strategy merge
    """
    config = get_config()

    if name is None:
        typer.echo(f"Conflict strategy: {config.sync.conflict_strategy.value}")
        return

    try:
        config.set_strategy(name.strip().lower())
    except ValueError:
        choices = ", ".join(s.value for s in ConflictStrategy)
        typer.secho(
            f"Invalid conflict strategy: {name} (choose from {choices})", fg=typer.colors.RED
        )
        raise typer.Exit(1) from None

    typer.secho(
        f"Conflict strategy set to {config.sync.conflict_strategy.value}", fg=typer.colors.GREEN
    )


def register(app: typer.Typer) -> None:
    """Register sync commands on the app."""
    app.command()(push)
    app.command()(pull)
    app.command()(show)
    app.command()(watch)
    app.command(name="strategy")(strategy_cmd)
