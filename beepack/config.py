"""Runtime configuration, env-driven.

Centralized config using pydantic-settings. Reads from a .env file and
BEEPACK_* environment variables; CLI flags override per invocation.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from beepack import __version__

DEFAULT_REGISTRY = "ghcr.io/solo-io/bumblebee"


def _default_storage_dir() -> Path:
    return Path.home() / ".bumblebee" / "store"


class BeepackConfig(BaseSettings):
    """Configuration with environment variable overrides.

    Examples
    --------
    Override via environment::

        export BEEPACK_LOG_LEVEL=DEBUG
        export BEEPACK_BUILDER=podman
        export BEEPACK_OCI_STORAGE_DIR=/data/oci

    Or via .env file::

        BEEPACK_BEE_TAG=v0.0.9
        BEEPACK_VERBOSE=true
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="BEEPACK_",
        env_file_encoding="utf-8",
    )

    # Logging
    log_level: str = "INFO"
    verbose: bool = False

    # Local source store
    oci_storage_dir: Path = Field(default_factory=_default_storage_dir)

    # External tools
    builder: str = "docker"
    shell: str = "sh"
    build_image: str = f"{DEFAULT_REGISTRY}/builder:{__version__}"

    # Uber image
    bee_image: str = f"{DEFAULT_REGISTRY}/bee"
    bee_tag: str = __version__
    uber_tag_prefix: str = "bee"
    scratch_root: Path | None = None  # system temp dir when unset

    # Process supervision
    poll_interval_seconds: float = 0.1
    kill_grace_seconds: float = 2.0
