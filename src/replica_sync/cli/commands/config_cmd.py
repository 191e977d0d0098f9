"""CLI commands for configuration management."""

from __future__ import annotations

from typing import Annotated

import typer

from replica_sync.cli._helpers import get_config, output_json

config_app = typer.Typer(help="Configuration management")


@config_app.command("show")
def config_show(
    json_output: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
) -> None:
    """Show the current configuration.

    Examples:
        replica-sync config show
    """
    config = get_config()
    remote = config.remote.to_dict()
    if remote["api_key"]:
        remote["api_key"] = "********"

    data = {
        "config_path": str(config.config_path),
        "user_id": config.user_id,
        "remote": remote,
        "sync": config.sync.to_dict(),
        "retry": config.retry.to_dict(),
    }

    if json_output:
        output_json(data)
        return

    typer.echo(f"Config: {data['config_path']}")
    typer.echo(f"User: {config.user_id or '(anonymous)'}")
    for section in ("remote", "sync", "retry"):
        typer.secho(f"\n[{section}]", bold=True)
        for key, value in data[section].items():
            typer.echo(f"  {key} = {value}")


@config_app.command("set-server")
def config_set_server(
    server_url: Annotated[
        str, typer.Argument(help="Document server URL (e.g., http://localhost:8000)")
    ],
    api_key: Annotated[
        str | None, typer.Option("--api-key", "-k", help="API key for authentication")
    ] = None,
) -> None:
    """Point replica-sync at a document server.

    Examples:
        replica-sync config set-server http://localhost:8000
        replica-sync config set-server https://sync.example.com --api-key mykey
    """
    config = get_config()
    try:
        config.set_server(server_url, api_key=api_key)
    except ValueError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(1) from None

    typer.secho("Server configured!", fg=typer.colors.GREEN)
    typer.echo(f"  Server: {config.remote.server_url}")
    if api_key:
        typer.echo(f"  API Key: {'*' * 8}...{api_key[-4:] if len(api_key) > 4 else '****'}")


@config_app.command("auto-sync")
def config_auto_sync(
    state: Annotated[
        str, typer.Argument(help="'on' to upload on every push, 'off' for local only")
    ],
) -> None:
    """Turn automatic upload on push on or off.

    Examples:
        replica-sync config auto-sync off
    """
    value = state.strip().lower()
    if value not in ("on", "off"):
        typer.secho("Expected 'on' or 'off'", fg=typer.colors.RED)
        raise typer.Exit(1)

    config = get_config()
    config.set_auto_sync(value == "on")
    typer.echo(f"Auto-sync {'enabled' if value == 'on' else 'disabled'}")
