"""Build "uber" images: the bee runner plus one packaged BPF program.

The build context is the run's scratch workspace: the recipe template is
written unmodified next to the scratch store, and the image builder gets
three build args::

    BPF_IMAGE  reference of the program inside the copied store
    BEE_IMAGE  base runner image
    BEE_TAG    base runner tag
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from beepack.build.templates import UBER_DOCKERFILE
from beepack.core.cancellation import CancelToken
from beepack.core.errors import ProcessFailedError, SynthesisError, WorkspaceError
from beepack.core.hasher import sha256_hex
from beepack.core.process import DEFAULT_KILL_GRACE, DEFAULT_POLL_INTERVAL, run_process

logger = logging.getLogger(__name__)

DEFAULT_TAG = "latest"
# Registries reject repository names longer than this.
MAX_NAME_LENGTH = 255
_HASH_SUFFIX_LENGTH = 12

_INVALID_CHARS = re.compile(r"[^a-z0-9._/-]+")
_SEPARATOR_RUN = re.compile(r"[._-]{2,}")
_EDGE_SEPARATORS = re.compile(r"^[._-]+|[._-]+$")


def default_image_tag(reference: str, prefix: str = "bee") -> str:
    """Derive the uber image name for *reference*.

    ``<prefix>-<reference>`` is lower-cased, every character outside
    ``[a-z0-9._/-]`` (notably the reference's own ``:`` and ``@``) becomes
    ``-``, separator runs collapse to one ``-``, and each path component is
    trimmed of leading/trailing separators. The tag is always ``latest``::

        default_image_tag("local/foo:v1", "runner") == "runner-local/foo-v1:latest"

    Names longer than ``MAX_NAME_LENGTH`` are cut short and end in ``-``
    plus the first 12 hex digits of the reference's sha256, so distinct
    long references stay distinct. The result depends only on the
    arguments.
    """
    name = _INVALID_CHARS.sub("-", f"{prefix}-{reference}".lower())
    components = [
        _EDGE_SEPARATORS.sub("", _SEPARATOR_RUN.sub("-", part))
        for part in name.split("/")
    ]
    components = [c for c in components if c]
    if not components:
        raise ValueError(f"Cannot derive an image name from {reference!r}")
    name = "/".join(components)
    if len(name) > MAX_NAME_LENGTH:
        suffix = sha256_hex(reference.encode("utf-8"))[:_HASH_SUFFIX_LENGTH]
        head = name[: MAX_NAME_LENGTH - _HASH_SUFFIX_LENGTH - 1].rstrip("._/-")
        name = f"{head}-{suffix}"
    return f"{name}:{DEFAULT_TAG}"


class ImageSynthesizer:
    """Runs the external image builder over a materialized build context.

    Parameters
    ----------
    builder:
        Image builder executable, invoked as ``<builder> build ...``.
    recipe:
        Recipe template written into the context, unmodified.
    """

    def __init__(
        self,
        builder: str = "docker",
        recipe: bytes = UBER_DOCKERFILE,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        kill_grace: float = DEFAULT_KILL_GRACE,
    ) -> None:
        self.builder = builder
        self.recipe = recipe
        self._poll_interval = poll_interval
        self._kill_grace = kill_grace

    def materialize(self, context_dir: Path) -> Path:
        """Write the recipe into *context_dir* and return its path."""
        recipe_path = context_dir / "Dockerfile"
        try:
            recipe_path.write_bytes(self.recipe)
        except OSError as exc:
            raise WorkspaceError(f"Failed to write {recipe_path}: {exc}") from exc
        return recipe_path

    def build_argv(
        self,
        source_reference: str,
        base_image: str,
        base_tag: str,
        dest_tag: str,
        context_dir: Path,
    ) -> list[str]:
        return [
            self.builder,
            "build",
            "--build-arg",
            f"BPF_IMAGE={source_reference}",
            "--build-arg",
            f"BEE_IMAGE={base_image}",
            "--build-arg",
            f"BEE_TAG={base_tag}",
            str(context_dir),
            "-t",
            dest_tag,
        ]

    def synthesize(
        self,
        source_reference: str,
        base_image: str,
        base_tag: str,
        dest_tag: str,
        context_dir: Path,
        *,
        cancel: CancelToken | None = None,
    ) -> str:
        """Build and tag the uber image; return the builder's output."""
        self.materialize(context_dir)
        argv = self.build_argv(
            source_reference, base_image, base_tag, dest_tag, context_dir
        )
        logger.info("Building uber image %s from %s:%s", dest_tag, base_image, base_tag)
        try:
            return run_process(
                argv,
                cancel=cancel,
                poll_interval=self._poll_interval,
                kill_grace=self._kill_grace,
            )
        except ProcessFailedError as exc:
            raise SynthesisError(
                f"Image build of {dest_tag} failed: {exc}", output=exc.output
            ) from exc
        except OSError as exc:
            raise SynthesisError(f"Could not start {self.builder!r}: {exc}") from exc
