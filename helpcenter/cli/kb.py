"""
Help Center CLI - Knowledge Base Commands

Every command opens a KnowledgeBaseSession for ``--user``: the
membership list is loaded, the persisted selection is reconciled with
it, and a first knowledge base is created for users who have none.

Commands:
    list       - List accessible knowledge bases
    current    - Show the active knowledge base
    select     - Make a knowledge base active
    articles   - List articles of the active knowledge base
    categories - List categories of the active knowledge base
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

import typer

from helpcenter.cli import kb_app
from helpcenter.cli.output import (
    print_error,
    print_json,
    print_key_value,
    print_memberships,
    print_success,
    print_table,
    print_warning,
)
from helpcenter.client import HelpCenterAPIError
from helpcenter.session import KnowledgeBaseSession, TenantNotReadyError

T = TypeVar("T")


def open_session(user_id: str) -> KnowledgeBaseSession:
    """Build a session from settings for ``user_id``."""
    return KnowledgeBaseSession.from_settings(user_id)


def _run(ctx: typer.Context, action: Callable[[KnowledgeBaseSession], Awaitable[T]]) -> T:
    """Start a session, run ``action`` against it and close it again.

    API and tenant errors are reported and turned into exit code 1.
    """

    async def runner() -> T:
        async with open_session(ctx.obj["user"]) as session:
            return await action(session)

    try:
        return asyncio.run(runner())
    except TenantNotReadyError as exc:
        print_error(str(exc), hint="Run 'helpcenter kb list' to see available knowledge bases.")
        raise typer.Exit(code=1)
    except HelpCenterAPIError as exc:
        print_error(exc.message, details=f"HTTP {exc.status_code} on {exc.path}")
        raise typer.Exit(code=1)


@kb_app.callback()
def kb_main(
    ctx: typer.Context,
    user: str = typer.Option(
        ...,
        "--user",
        "-u",
        envvar="HELPCENTER_USER",
        help="Identity to act as.",
    ),
) -> None:
    """Knowledge base selection and content commands."""
    ctx.obj = {"user": user}


@kb_app.command("list")
def list_knowledge_bases(ctx: typer.Context) -> None:
    """List the knowledge bases you belong to; the active one is marked."""

    async def action(session: KnowledgeBaseSession) -> tuple[list[Any], str | None, Exception | None]:
        resolver = session.resolver
        return list(resolver.memberships), resolver.active_tenant_id, resolver.error

    memberships, active_id, error = _run(ctx, action)
    if error is not None and not memberships:
        print_error("Could not load knowledge bases", details=str(error))
        raise typer.Exit(code=1)

    print_memberships(memberships, active_id)


@kb_app.command("current")
def current(ctx: typer.Context) -> None:
    """Show the active knowledge base."""

    async def action(session: KnowledgeBaseSession) -> Any:
        return session.resolver.get_active_tenant(), session.resolver.error

    active, error = _run(ctx, action)
    if active is None:
        print_warning("No active knowledge base", details=str(error) if error else None)
        raise typer.Exit(code=1)

    print_key_value(
        [
            ("ID", active.selected_id),
            ("Name", active.display_name),
            ("Role", active.role.value if active.role else "-"),
        ],
        title="Active Knowledge Base",
    )


@kb_app.command("select")
def select(
    ctx: typer.Context,
    kb_id: str = typer.Argument(..., help="ID of the knowledge base to activate."),
) -> None:
    """Make a knowledge base active for subsequent commands."""

    async def action(session: KnowledgeBaseSession) -> bool:
        if all(m.id != kb_id for m in session.resolver.memberships):
            return False
        session.select(kb_id)
        return True

    if not _run(ctx, action):
        print_error(
            f"Not a member of knowledge base {kb_id}",
            hint="Run 'helpcenter kb list' to see available knowledge bases.",
        )
        raise typer.Exit(code=1)
    print_success(f"Active knowledge base set to {kb_id}")


@kb_app.command("articles")
def articles(
    ctx: typer.Context,
    as_json: bool = typer.Option(False, "--json", help="Print raw JSON."),
) -> None:
    """List articles of the active knowledge base."""
    items = _run(ctx, lambda session: session.articles())
    if as_json:
        print_json(items)
        return
    print_table(
        "Articles",
        ["Title", "Public", "Updated", "ID"],
        [
            [a["title"], "yes" if a.get("isPublic") else "no", a.get("updatedAt", ""), a["id"]]
            for a in items
        ],
        styles=["cyan", None, None, "dim"],
    )


@kb_app.command("categories")
def categories(
    ctx: typer.Context,
    as_json: bool = typer.Option(False, "--json", help="Print raw JSON."),
) -> None:
    """List categories of the active knowledge base."""
    items = _run(ctx, lambda session: session.categories())
    if as_json:
        print_json(items)
        return
    print_table(
        "Categories",
        ["Name", "Description", "ID"],
        [[c["name"], c.get("description") or "", c["id"]] for c in items],
        styles=["cyan", None, "dim"],
    )
