"""Scratch workspace for the uber-image branch of a build.

One workspace is created per pipeline run and holds both the scratch OCI
store and the build context handed to the image builder::

    {tmp}/store/        scratch OCI store (copied artifact)
    {tmp}/Dockerfile    build recipe

The directory is removed on every exit path, including cancellation and
unexpected exceptions.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from beepack.core.errors import WorkspaceError

logger = logging.getLogger(__name__)

WORKSPACE_PREFIX = "bee_oci_store"


@dataclass(frozen=True)
class ScratchWorkspace:
    """Paths inside one run's scratch directory."""

    root: Path

    @property
    def store_dir(self) -> Path:
        return self.root / "store"

    @property
    def context_dir(self) -> Path:
        return self.root

    @property
    def recipe_path(self) -> Path:
        return self.root / "Dockerfile"


@contextmanager
def scratch_workspace(parent: Path | None = None) -> Iterator[ScratchWorkspace]:
    """Create a scratch workspace and remove it when the block exits."""
    try:
        root = Path(tempfile.mkdtemp(prefix=WORKSPACE_PREFIX, dir=parent))
        workspace = ScratchWorkspace(root)
        workspace.store_dir.mkdir(mode=0o755)
    except OSError as exc:
        raise WorkspaceError(f"Failed to create scratch workspace: {exc}") from exc
    logger.debug("Scratch workspace: %s", root)
    try:
        yield workspace
    except BaseException:
        # Never mask the original failure with a cleanup failure.
        _remove(root, strict=False)
        raise
    _remove(root, strict=True)


def _remove(root: Path, *, strict: bool) -> None:
    try:
        shutil.rmtree(root)
    except FileNotFoundError:
        return
    except OSError as exc:
        if strict:
            raise WorkspaceError(
                f"Failed to remove scratch workspace {root}: {exc}"
            ) from exc
        logger.error("Failed to remove scratch workspace %s: %s", root, exc)
        return
    logger.debug("Removed scratch workspace %s", root)
