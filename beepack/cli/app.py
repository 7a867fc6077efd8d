"""Main Typer application: imports and registers all CLI commands.

Entry point: ``beepack`` (configured via pyproject.toml console_scripts).
"""

from __future__ import annotations

import logging

import typer
from rich.logging import RichHandler

from beepack.cli.commands.build import build_cmd
from beepack.cli.commands.list_cmd import list_cmd
from beepack.cli.commands.pull import pull_cmd
from beepack.config import BeepackConfig

app = typer.Typer(
    name="beepack",
    help="beepack: compile BPF programs and package them as OCI images.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)


@app.callback()
def main_callback(
    log_level: str = typer.Option(
        None, "--log-level", help="Log level (defaults to BEEPACK_LOG_LEVEL or INFO)."
    ),
) -> None:
    """Configure logging for every command."""
    level = (log_level or BeepackConfig().log_level).upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )


# Register subcommands
app.command(name="build", help="Build a BPF program and save it as an OCI image.")(build_cmd)
app.command(name="pull", help="Show a stored BPF program and optionally extract it.")(pull_cmd)
app.command(name="list", help="List BPF programs in the local OCI store.")(list_cmd)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
