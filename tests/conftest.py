"""Shared test fixtures for beepack."""

from __future__ import annotations

import stat
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from beepack.core.oci_store import OCIStore
from beepack.models.config import BuildOptions


@pytest.fixture
def store(tmp_path: Path) -> OCIStore:
    """Provide a fresh OCI store in a temp directory."""
    return OCIStore(tmp_path / "store")


@pytest.fixture
def make_script(tmp_path: Path) -> Callable[[str, str], Path]:
    """Factory fixture: write an executable ``/bin/sh`` script into tmp_path.

    Used to stand in for docker, the image builder and the platform probe.
    """

    def _factory(name: str, body: str) -> Path:
        bin_dir = tmp_path / "bin"
        bin_dir.mkdir(exist_ok=True)
        path = bin_dir / name
        path.write_text(f"#!/bin/sh\n{body}\n")
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return path

    return _factory


@pytest.fixture
def source_file(tmp_path: Path) -> Path:
    """A placeholder BPF C source."""
    path = tmp_path / "foo.c"
    path.write_text("int prog(void *ctx) { return 0; }\n")
    return path


@pytest.fixture
def make_options(tmp_path: Path, source_file: Path) -> Callable[..., BuildOptions]:
    """Factory fixture: BuildOptions rooted in tmp_path with test defaults."""

    def _factory(**overrides: Any) -> BuildOptions:
        scratch = tmp_path / "scratch"
        scratch.mkdir(exist_ok=True)
        defaults: dict[str, Any] = {
            "source_path": source_file,
            "reference": "local/foo:v1",
            "storage_dir": tmp_path / "oci",
            "build_image": "example/builder:test",
            "bee_image": "runner/base",
            "bee_tag": "v2",
            "scratch_root": scratch,
            "poll_interval_seconds": 0.05,
            "kill_grace_seconds": 1.0,
        }
        defaults.update(overrides)
        return BuildOptions(**defaults)

    return _factory


@pytest.fixture
def fake_build_script() -> bytes:
    """Local build script that writes exactly 4096 bytes to its second arg."""
    return b'echo "building $1"\nhead -c 4096 /dev/zero | tr "\\000" "A" > "$2"\n'
