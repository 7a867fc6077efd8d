"""Error taxonomy for the build pipeline.

Every stage raises its own subclass of ``BeepackError`` so callers can tell
which stage failed. Errors that originate from an external process carry
the process's combined stdout/stderr in ``output``.
"""

from __future__ import annotations

from collections.abc import Sequence


class BeepackError(RuntimeError):
    """Base class for all pipeline failures."""

    stage: str = "pipeline"

    def __init__(self, message: str, *, output: str = "", stage: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.output = output
        if stage is not None:
            self.stage = stage

    def __str__(self) -> str:
        return f"[{self.stage}] {self.message}"


class CompileError(BeepackError):
    """The compiler process failed or could not be started."""

    stage = "compile"


class PackageError(BeepackError):
    """The store was unavailable or serialization/push failed."""

    stage = "package"


class CopyError(BeepackError):
    """The source reference did not resolve or an allowed entry failed to copy."""

    stage = "distribute"


class SynthesisError(BeepackError):
    """The image builder failed or could not be started."""

    stage = "synthesize"


class WorkspaceError(BeepackError, OSError):
    """Creating or cleaning up a temporary file or directory failed."""

    stage = "workspace"


class PipelineCancelledError(BeepackError):
    """The run was cancelled while waiting on a process or store operation."""

    stage = "cancelled"


class ProcessFailedError(RuntimeError):
    """An external process exited non-zero.

    Stage code wraps this in its own error with ``raise ... from``.
    """

    def __init__(self, argv: Sequence[str], returncode: int, output: str) -> None:
        self.argv = list(argv)
        self.returncode = returncode
        self.output = output
        super().__init__(
            f"{self.argv[0]} exited with status {returncode}"
        )
