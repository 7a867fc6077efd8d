"""``beepack build``: compile a BPF program and save it as an OCI image.

The command has two main parts:

1. Compiling the BPF C program with clang, inside the builder image by
   default or with local tools when ``--local`` is given.
2. Saving the compiled program in the OCI store.

With ``--uber`` it then builds an image containing the bee runner and the
program.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from beepack.config import BeepackConfig
from beepack.core.cancellation import CancelToken, cancel_on_signals
from beepack.core.errors import BeepackError, PipelineCancelledError
from beepack.core.pipeline import BuildPipeline
from beepack.models.config import BuildOptions
from beepack.models.stages import PipelineState, StageTransition

console = Console()

_STAGE_MESSAGES: dict[PipelineState, str] = {
    PipelineState.COMPILING: "Compiling BPF program",
    PipelineState.PACKAGING: "Packaging BPF program",
    PipelineState.DISTRIBUTING: "Copying program into temp OCI store",
    PipelineState.SYNTHESIZING: "Building uber image",
}


def _report(transition: StageTransition) -> None:
    message = _STAGE_MESSAGES.get(transition.to_state)
    if message:
        console.print(f"[yellow]...[/yellow] {message}")


def build_cmd(
    input_file: Path = typer.Argument(..., help="BPF C source file to compile."),
    registry_ref: str = typer.Argument(..., help="Reference to save the program under."),
    build_image: str = typer.Option(
        None, "--build-image", "-i", help="Build image to use when compiling the BPF program."
    ),
    builder: str = typer.Option(
        None, "--builder", "-b", help="Executable to use for docker build/run commands."
    ),
    output_file: Path = typer.Option(
        None, "--output-file", "-o", help="Output file for the BPF ELF. Defaults to <inputfile>.o"
    ),
    local: bool = typer.Option(
        False, "--local", "-l", help="Build the output binary using local tools."
    ),
    uber: bool = typer.Option(
        False, "--uber", help="Build an 'uber' image containing the bee runner and the program."
    ),
    bee_image: str = typer.Option(
        None, "--bee-image", help="Base image to use when building an 'uber' image."
    ),
    bee_tag: str = typer.Option(
        None, "--bee-tag", help="Tag of the base image when building an 'uber' image."
    ),
    uber_image: str = typer.Option(
        None, "--uber-image", help="Image and tag of the 'uber' image. Defaults to bee-<REF>:latest."
    ),
    storage: Path = typer.Option(
        None, "--storage", "-s", help="Directory of the local OCI store."
    ),
    description: str = typer.Option(None, "--description", help="Program description."),
    author: str = typer.Option(None, "--author", help="Program author."),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Print temp paths and builder output."
    ),
) -> None:
    """Build a BPF program and save it to an OCI image representation."""
    config = BeepackConfig()
    options = BuildOptions.from_config(
        config,
        source_path=input_file,
        reference=registry_ref,
        build_image=build_image,
        builder=builder,
        output_path=output_file,
        local=local,
        uber=uber,
        bee_image=bee_image,
        bee_tag=bee_tag,
        uber_image=uber_image,
        storage_dir=storage,
        description=description,
        author=author,
        verbose=verbose or None,
    )

    token = CancelToken()
    pipeline = BuildPipeline(options, cancel=token, on_transition=_report)
    try:
        with cancel_on_signals(token):
            result = pipeline.run()
    except PipelineCancelledError as exc:
        console.print(f"[bold red]Build cancelled[/bold red] during {escape(exc.stage)}: {escape(exc.message)}")
        raise typer.Exit(code=130)
    except BeepackError as exc:
        lines = [
            f"[bold red]Build failed[/bold red] in stage [bold]{escape(exc.stage)}[/bold]",
            "",
            escape(exc.message),
        ]
        if exc.output:
            lines += ["", "[bold]Output:[/bold]", escape(exc.output.rstrip())]
        console.print(Panel("\n".join(lines), border_style="red", padding=(1, 2)))
        raise typer.Exit(code=1)

    platform = (
        f"{result.platform.os} {result.platform.os_version} {result.platform.architecture}"
        if result.platform
        else "unknown"
    )
    lines = [
        "[bold green]BPF program built and saved![/bold green]",
        "",
        f"[bold]Source:[/bold]     {escape(str(result.source_path))}",
        f"[bold]Output:[/bold]     {escape(str(result.output_path))} ({result.program_size} bytes)",
        f"[bold]Reference:[/bold]  {escape(result.reference)}",
        f"[bold]Digest:[/bold]     {result.manifest_digest}",
        f"[bold]Platform:[/bold]   {escape(platform)}",
    ]
    if result.image_tag:
        lines.append(f"[bold]Uber image:[/bold] {escape(result.image_tag)}")
    console.print(Panel("\n".join(lines), title="[bold]beepack[/bold]", border_style="green"))
