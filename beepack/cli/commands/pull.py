"""``beepack pull``: load a packaged program from the local OCI store.

Prints the program's metadata and optionally writes the ELF to a file.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from beepack.build.packager import EbpfPackager, open_store
from beepack.config import BeepackConfig
from beepack.core.errors import BeepackError

console = Console()


def pull_cmd(
    registry_ref: str = typer.Argument(..., help="Reference of the program to load."),
    output_file: Path = typer.Option(
        None, "--output-file", "-o", help="Write the program ELF to this file."
    ),
    storage: Path = typer.Option(
        None, "--storage", "-s", help="Directory of the local OCI store."
    ),
) -> None:
    """Show a stored BPF program and optionally extract it."""
    storage_dir = storage or BeepackConfig().oci_storage_dir
    try:
        package = EbpfPackager().pull(open_store(storage_dir), registry_ref)
    except BeepackError as exc:
        console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}")
        raise typer.Exit(code=1)

    if output_file is not None:
        try:
            output_file.write_bytes(package.program)
        except OSError as exc:
            console.print(f"[bold red]Error:[/bold red] Cannot write {escape(str(output_file))}: {escape(str(exc))}")
            raise typer.Exit(code=1)

    platform = package.platform
    lines = [
        f"[bold]Reference:[/bold]    {escape(registry_ref)}",
        f"[bold]Size:[/bold]         {package.size_bytes} bytes",
        f"[bold]OS:[/bold]           {escape(platform.os) if platform else 'unknown'}",
        f"[bold]OS version:[/bold]   {escape(platform.os_version) if platform else 'unknown'}",
        f"[bold]Architecture:[/bold] {escape(platform.architecture) if platform else 'unknown'}",
    ]
    if package.description:
        lines.append(f"[bold]Description:[/bold]  {escape(package.description)}")
    if package.author:
        lines.append(f"[bold]Author:[/bold]       {escape(package.author)}")
    if output_file is not None:
        lines.append(f"[bold]Written to:[/bold]   {escape(str(output_file))}")
    console.print(Panel("\n".join(lines), title="[bold]BPF program[/bold]", border_style="cyan"))
