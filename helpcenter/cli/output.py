"""
Help Center CLI - Rich Output Helpers

Functions:
    print_table       - Print a formatted table
    print_memberships - Print knowledge bases with the active one marked
    print_json        - Print API payloads as highlighted JSON
    print_key_value   - Print aligned key-value pairs
    print_error       - Print error message (stderr)
    print_success     - Print success message
    print_warning     - Print warning message
"""

from __future__ import annotations

import json
from typing import Any, Optional, Sequence

from rich.json import JSON
from rich.table import Table

from helpcenter.cli import console, err_console
from helpcenter.multitenancy.membership import KnowledgeBaseMembership, Role

ACTIVE_MARKER = "*"

ROLE_STYLES = {
    Role.OWNER: "bold magenta",
    Role.ADMIN: "magenta",
    Role.CONTRIBUTOR: "blue",
    Role.VIEWER: "dim",
}


def print_table(
    title: str,
    columns: list[str],
    rows: list[list[str]],
    styles: Optional[list[Optional[str]]] = None,
) -> None:
    """
    Print a rich table. Long cells fold instead of being truncated so
    ids can still be copied.

    Args:
        title: Table title
        columns: Column headers
        rows: Table rows; short rows are padded with blanks
        styles: Optional per-column styles
    """
    table = Table(title=title)

    for i, col in enumerate(columns):
        style = styles[i] if styles and i < len(styles) else None
        table.add_column(col, style=style, overflow="fold")

    for row in rows:
        cells = [str(cell) for cell in row][:len(columns)]
        table.add_row(*cells, *([""] * (len(columns) - len(cells))))

    console.print(table)


def print_memberships(
    memberships: Sequence[KnowledgeBaseMembership],
    active_id: Optional[str],
) -> None:
    if not memberships:
        print_warning("You do not belong to any knowledge base yet")
        return

    table = Table(title="Knowledge Bases")
    table.add_column("", style="green", width=1)
    table.add_column("Name", style="cyan", overflow="fold")
    table.add_column("Role")
    table.add_column("ID", style="dim", overflow="fold")

    for membership in memberships:
        role_style = ROLE_STYLES.get(membership.role, "")
        table.add_row(
            ACTIVE_MARKER if membership.id == active_id else "",
            membership.display_name,
            f"[{role_style}]{membership.role.value}[/{role_style}]" if role_style else membership.role.value,
            membership.id,
        )

    console.print(table)


def print_json(data: Any) -> None:
    # default=str covers datetimes in raw API payloads
    console.print(JSON(json.dumps(data, indent=2, default=str)))


def print_key_value(items: list[tuple[str, Any]], title: Optional[str] = None) -> None:
    if title:
        console.print(f"[bold]{title}[/bold]")
        console.print()

    width = max((len(key) for key, _ in items), default=0)
    for key, value in items:
        console.print(f"  [cyan]{key.ljust(width)}[/cyan]: {value}", soft_wrap=True)


def print_error(message: str, details: Optional[str] = None, hint: Optional[str] = None) -> None:
    err_console.print(f"[bold red]Error:[/bold red] {message}")
    if details:
        err_console.print(f"[dim]{details}[/dim]")
    if hint:
        err_console.print(f"[yellow]Hint:[/yellow] {hint}")


def print_success(message: str) -> None:
    console.print(f"[bold green]Success:[/bold green] {message}", soft_wrap=True)


def print_warning(message: str, details: Optional[str] = None) -> None:
    console.print(f"[bold yellow]Warning:[/bold yellow] {message}")
    if details:
        console.print(f"[dim]{details}[/dim]")
