"""replica-sync CLI main entry point."""

from __future__ import annotations

import logging
import sys
from typing import Annotated

import typer

from replica_sync.cli.commands import session, sync_cmd
from replica_sync.cli.commands.config_cmd import config_app
from replica_sync.utils.config import get_config

# Main app
app = typer.Typer(
    name="replica-sync",
    help="replica-sync - Offline-first sync of a record collection",
    no_args_is_help=True,
)

app.add_typer(config_app, name="config")

session.register(app)
sync_cmd.register(app)


@app.callback()
def configure(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging")] = False,
) -> None:
    """Set up logging before any command runs (REPLICA_SYNC_DEBUG also enables debug)."""
    debug = verbose or get_config().debug
    logging.basicConfig(
        stream=sys.stderr,
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def version() -> None:
    """Show version information."""
    from replica_sync import __version__

    typer.echo(f"replica-sync v{__version__}")


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
