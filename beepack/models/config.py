"""Per-invocation build options."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict

from beepack.config import BeepackConfig


class BuildOptions(BaseModel):
    """Everything one ``build`` invocation needs.

    Tool and image defaults come from ``BeepackConfig``; the source file,
    reference and flags come from the caller.
    """

    model_config = ConfigDict(frozen=True)

    source_path: Path
    reference: str
    output_path: Path | None = None  # defaults to <source>.o
    storage_dir: Path

    # Compile
    local: bool = False
    builder: str = "docker"
    shell: str = "sh"
    build_image: str

    # Uber image
    uber: bool = False
    bee_image: str
    bee_tag: str
    uber_image: str | None = None  # derived from the reference when unset
    uber_tag_prefix: str = "bee"
    scratch_root: Path | None = None

    # Metadata recorded in the config blob
    description: str = ""
    author: str = ""

    verbose: bool = False
    poll_interval_seconds: float = 0.1
    kill_grace_seconds: float = 2.0

    @classmethod
    def from_config(
        cls,
        config: BeepackConfig,
        *,
        source_path: Path,
        reference: str,
        **overrides: Any,
    ) -> BuildOptions:
        """Build options from *config*, letting non-None *overrides* win."""
        values: dict[str, Any] = {
            "storage_dir": config.oci_storage_dir,
            "builder": config.builder,
            "shell": config.shell,
            "build_image": config.build_image,
            "bee_image": config.bee_image,
            "bee_tag": config.bee_tag,
            "uber_tag_prefix": config.uber_tag_prefix,
            "scratch_root": config.scratch_root,
            "verbose": config.verbose,
            "poll_interval_seconds": config.poll_interval_seconds,
            "kill_grace_seconds": config.kill_grace_seconds,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(source_path=source_path, reference=reference, **values)

    def resolved_output_path(self) -> Path:
        """The output file: explicit, or the source with a ``.o`` suffix."""
        if self.output_path is not None:
            return self.output_path
        return self.source_path.with_suffix(".o")
