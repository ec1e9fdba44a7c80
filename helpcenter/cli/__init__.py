"""
Help Center - Command Line Interface

Built with Typer for the command tree and Rich for output. Commands act
through a KnowledgeBaseSession against the API at ``API_BASE_URL``, so
the active knowledge base is resolved and persisted exactly as it is
for any other client.

Usage:
    $ helpcenter --help
    $ helpcenter status
    $ helpcenter kb --user alice list
    $ helpcenter kb --user alice select <kb-id>
    $ helpcenter kb --user alice articles

Sub-command Groups:
    kb - Knowledge base selection and content listing
"""

from __future__ import annotations

import logging

import typer
from rich.console import Console

from helpcenter import __version__

# Create main console for output
console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    name="helpcenter",
    help="Help Center - multi-tenant knowledge base client",
    no_args_is_help=True,
    rich_markup_mode="rich",
    pretty_exceptions_enable=True,
    pretty_exceptions_show_locals=False,
)

kb_app = typer.Typer(
    name="kb",
    help="Knowledge base selection and content commands",
    no_args_is_help=True,
)

app.add_typer(kb_app, name="kb")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"Help Center version {__version__}")
        raise typer.Exit()


def verbose_callback(value: bool) -> None:
    """Set verbose mode."""
    if value:
        logging.basicConfig(level=logging.DEBUG)


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        callback=verbose_callback,
        help="Enable verbose output.",
    ),
) -> None:
    """
    Help Center - multi-tenant knowledge base client

    Use --help on any subcommand for detailed information.
    """


@app.command()
def status(
    as_json: bool = typer.Option(False, "--json", help="Print raw JSON."),
) -> None:
    """
    Show where the CLI points and which knowledge base was last active.

    Reads local configuration only; no API call is made.
    """
    from helpcenter.cli.output import print_json, print_key_value
    from helpcenter.config.settings import settings
    from helpcenter.multitenancy.selection_store import SELECTED_KB_KEY, FileSelectionStore

    data = {
        "apiBaseUrl": settings.API_BASE_URL,
        "selectionFile": str(settings.SELECTION_FILE),
        "selectedKnowledgeBaseId": FileSelectionStore(settings.SELECTION_FILE).get(SELECTED_KB_KEY),
    }
    if as_json:
        print_json(data)
        return
    print_key_value(
        [
            ("API", data["apiBaseUrl"]),
            ("Selection file", data["selectionFile"]),
            ("Last active", data["selectedKnowledgeBaseId"] or "-"),
        ],
        title="Help Center CLI",
    )


# Imported last so the sub-command module can register on kb_app
from helpcenter.cli import kb  # noqa: E402,F401

__all__ = [
    "app",
    "kb_app",
    "console",
    "err_console",
    "__version__",
]


if __name__ == "__main__":
    app()
