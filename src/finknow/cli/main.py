"""finknow CLI entry point."""

from __future__ import annotations

import importlib.metadata
import logging
from typing import Annotated

import typer
from rich.logging import RichHandler

from finknow.cli.add import add_cmd
from finknow.cli.init import init_cmd
from finknow.cli.remove import clear_cmd, remove_cmd
from finknow.cli.search import search_cmd
from finknow.cli.status import status_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("finknow")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"finknow {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="finknow",
    help=(
        "finknow — semantic knowledge retrieval for a personal-finance assistant.\n\n"
        "  finknow add     Chunk, embed and store a piece of knowledge.\n"
        "  finknow search  Similarity search over one pool or all financial pools."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log retrieval activity to stderr."),
    ] = False,
) -> None:
    """finknow — semantic knowledge retrieval CLI."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(show_path=False)],
            force=True,
        )
        # LiteLLM and httpx are chatty at DEBUG
        for name in ("LiteLLM", "httpx", "httpcore"):
            logging.getLogger(name).setLevel(logging.WARNING)


app.command("init")(init_cmd)
app.command("add")(add_cmd)
app.command("search")(search_cmd)
app.command("remove")(remove_cmd)
app.command("clear")(clear_cmd)
app.command("status")(status_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed finknow version."""
    typer.echo(f"finknow {_installed_version()}")


if __name__ == "__main__":
    app()
