"""Terminal rendering for replica-sync collections and status."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from replica_sync.core.records import ID_FIELD, LINE_ITEMS_FIELD, UPDATED_AT_FIELD

console = Console()


# =============================================================================
# Color Schemes
# =============================================================================

STATUS_COLORS = {
    "idle": "white",
    "syncing": "cyan",
    "success": "green",
    "error": "red",
    "conflict": "yellow",
}


def _preview(record: dict[str, Any], limit: int = 48) -> str:
    """Short text of the fields that are not shown in their own column."""
    shown = {ID_FIELD, UPDATED_AT_FIELD, LINE_ITEMS_FIELD}
    parts = [f"{k}={v}" for k, v in record.items() if k not in shown]
    text = ", ".join(parts)
    return text if len(text) <= limit else text[: limit - 3] + "..."


# =============================================================================
# Collection
# =============================================================================


def render_collection(items: Sequence[dict[str, Any]], title: str = "Local collection") -> None:
    """Print a collection as a table, one row per record."""
    table = Table(title=f"{title} ({len(items)} records)", show_lines=False)
    table.add_column("id", style="cyan", no_wrap=True)
    table.add_column("updatedAt", style="bright_black")
    table.add_column("lineItems", justify="right")
    table.add_column("fields")

    for record in items:
        line_items = record.get(LINE_ITEMS_FIELD)
        table.add_row(
            str(record.get(ID_FIELD, "")),
            str(record.get(UPDATED_AT_FIELD, "")),
            str(len(line_items)) if isinstance(line_items, list) else "",
            _preview(record),
        )

    console.print(table)


# =============================================================================
# Status
# =============================================================================


def render_status(status: dict[str, Any]) -> None:
    """Print the status summary produced by ``replica-sync status``."""
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("key", style="bold")
    table.add_column("value")

    for key, value in status.items():
        if isinstance(value, bool):
            rendered = "[green]yes[/green]" if value else "[red]no[/red]"
        elif value is None or value == "":
            rendered = "[bright_black]not set[/bright_black]"
        else:
            rendered = str(value)
        table.add_row(key.replace("_", " "), rendered)

    console.print(Panel(table, title="replica-sync", expand=False))
