"""``beepack list``: list programs tagged in the local OCI store."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from beepack.build.packager import open_store
from beepack.config import BeepackConfig
from beepack.core.errors import BeepackError
from beepack.core.oci_store import StoreError

console = Console()


def list_cmd(
    storage: Path = typer.Option(
        None, "--storage", "-s", help="Directory of the local OCI store."
    ),
) -> None:
    """List stored BPF programs with their digest and platform."""
    storage_dir = storage or BeepackConfig().oci_storage_dir
    try:
        descriptors = open_store(storage_dir).references()
    except (BeepackError, StoreError) as exc:
        console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}")
        raise typer.Exit(code=1)

    if not descriptors:
        console.print(f"[dim]No programs in {escape(str(storage_dir))}.[/dim]")
        return

    table = Table(title=f"OCI store: {escape(str(storage_dir))}")
    table.add_column("Reference", style="cyan")
    table.add_column("Digest", style="green")
    table.add_column("Platform")
    for d in sorted(descriptors, key=lambda d: d.reference_name or ""):
        platform = (
            escape(f"{d.platform.os} {d.platform.os_version} {d.platform.architecture}")
            if d.platform
            else "[dim]unknown[/dim]"
        )
        table.add_row(escape(d.reference_name or ""), d.digest[:19], platform)
    console.print(table)
