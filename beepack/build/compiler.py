"""Compile strategies for BPF C sources.

Two interchangeable backends satisfy the ``Compiler`` protocol:

1. ``ContainerizedCompiler`` runs the build image through the container
   runtime, with the working directory mounted at ``/usr/src/bpf``.
2. ``LocalCompiler`` pipes the bundled build script into a local shell.

The strategy is chosen once, by ``make_compiler``, and the pipeline only
ever talks to the protocol.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol, runtime_checkable

from beepack.build.templates import BUILD_SCRIPT
from beepack.core.cancellation import CancelToken
from beepack.core.errors import CompileError, ProcessFailedError
from beepack.core.process import DEFAULT_KILL_GRACE, DEFAULT_POLL_INTERVAL, run_process
from beepack.models.config import BuildOptions

logger = logging.getLogger(__name__)

CONTAINER_SOURCE_DIR = "/usr/src/bpf"


@runtime_checkable
class Compiler(Protocol):
    """Anything that turns a source file into a BPF object file."""

    name: str

    def compile(
        self,
        source_path: Path,
        output_path: Path,
        *,
        cancel: CancelToken | None = None,
    ) -> str:
        """Compile *source_path* into *output_path*; return the tool output."""
        ...


class _ProcessCompiler:
    """Shared process handling: run argv, translate failures to CompileError."""

    name = "process"

    def __init__(
        self,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        kill_grace: float = DEFAULT_KILL_GRACE,
    ) -> None:
        self._poll_interval = poll_interval
        self._kill_grace = kill_grace

    def _argv(self, source_path: Path, output_path: Path) -> list[str]:
        raise NotImplementedError

    def _stdin(self) -> bytes | None:
        return None

    def compile(
        self,
        source_path: Path,
        output_path: Path,
        *,
        cancel: CancelToken | None = None,
    ) -> str:
        argv = self._argv(source_path, output_path)
        logger.info("Compiling %s with the %s compiler", source_path, self.name)
        try:
            return run_process(
                argv,
                stdin_data=self._stdin(),
                cancel=cancel,
                poll_interval=self._poll_interval,
                kill_grace=self._kill_grace,
            )
        except ProcessFailedError as exc:
            raise CompileError(
                f"Failed to compile {source_path}: {exc}", output=exc.output
            ) from exc
        except OSError as exc:
            raise CompileError(
                f"Could not start {argv[0]!r}: {exc}"
            ) from exc


class ContainerizedCompiler(_ProcessCompiler):
    """Compile inside the builder image via ``<runtime> run``.

    Parameters
    ----------
    build_image:
        Image whose entrypoint takes ``INPUT_FILE OUTPUT_FILE``.
    runtime:
        Container runtime executable (``docker``, ``podman``).
    workdir:
        Directory mounted into the container; defaults to the current
        working directory at compile time.
    """

    name = "containerized"

    def __init__(
        self,
        build_image: str,
        runtime: str = "docker",
        workdir: Path | None = None,
        **kwargs: float,
    ) -> None:
        super().__init__(**kwargs)
        self.build_image = build_image
        self.runtime = runtime
        self.workdir = workdir

    def _argv(self, source_path: Path, output_path: Path) -> list[str]:
        workdir = (self.workdir or Path.cwd()).resolve()
        return [
            self.runtime,
            "run",
            "-v",
            f"{workdir}:{CONTAINER_SOURCE_DIR}",
            self.build_image,
            str(source_path),
            str(output_path),
        ]


class LocalCompiler(_ProcessCompiler):
    """Compile with local tools by streaming the build script into a shell."""

    name = "local"

    def __init__(
        self,
        shell: str = "sh",
        script: bytes = BUILD_SCRIPT,
        **kwargs: float,
    ) -> None:
        super().__init__(**kwargs)
        self.shell = shell
        self.script = script

    def _argv(self, source_path: Path, output_path: Path) -> list[str]:
        return [self.shell, "-s", "--", str(source_path), str(output_path)]

    def _stdin(self) -> bytes:
        return self.script


def make_compiler(options: BuildOptions) -> Compiler:
    """Select the compile strategy for a build."""
    timing = {
        "poll_interval": options.poll_interval_seconds,
        "kill_grace": options.kill_grace_seconds,
    }
    if options.local:
        return LocalCompiler(shell=options.shell, **timing)
    return ContainerizedCompiler(
        build_image=options.build_image, runtime=options.builder, **timing
    )
