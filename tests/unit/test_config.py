"""Tests for env-driven config and per-invocation build options."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from beepack import __version__
from beepack.config import DEFAULT_REGISTRY, BeepackConfig
from beepack.models.config import BuildOptions


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for name in ("LOG_LEVEL", "BUILDER", "SHELL", "OCI_STORAGE_DIR", "BEE_TAG", "VERBOSE"):
        monkeypatch.delenv(f"BEEPACK_{name}", raising=False)
    return monkeypatch


class TestBeepackConfig:
    def test_defaults(self, clean_env: pytest.MonkeyPatch):
        config = BeepackConfig(_env_file=None)
        assert config.log_level == "INFO"
        assert config.builder == "docker"
        assert config.shell == "sh"
        assert config.build_image == f"{DEFAULT_REGISTRY}/builder:{__version__}"
        assert config.bee_image == f"{DEFAULT_REGISTRY}/bee"
        assert config.bee_tag == __version__
        assert config.uber_tag_prefix == "bee"
        assert config.scratch_root is None

    def test_default_storage_dir(self, clean_env: pytest.MonkeyPatch):
        config = BeepackConfig(_env_file=None)
        assert config.oci_storage_dir == Path.home() / ".bumblebee" / "store"

    def test_env_overrides(self, clean_env: pytest.MonkeyPatch, tmp_path: Path):
        clean_env.setenv("BEEPACK_BUILDER", "podman")
        clean_env.setenv("BEEPACK_OCI_STORAGE_DIR", str(tmp_path))
        clean_env.setenv("BEEPACK_VERBOSE", "true")
        config = BeepackConfig(_env_file=None)
        assert config.builder == "podman"
        assert config.oci_storage_dir == tmp_path
        assert config.verbose is True


class TestBuildOptions:
    def test_from_config_uses_config_defaults(self, tmp_path: Path):
        config = BeepackConfig(_env_file=None, builder="podman", oci_storage_dir=tmp_path)
        options = BuildOptions.from_config(
            config, source_path=Path("foo.c"), reference="local/foo:v1"
        )
        assert options.builder == "podman"
        assert options.storage_dir == tmp_path
        assert options.bee_tag == config.bee_tag
        assert options.uber is False

    def test_explicit_overrides_win(self, tmp_path: Path):
        config = BeepackConfig(_env_file=None, builder="podman")
        options = BuildOptions.from_config(
            config,
            source_path=Path("foo.c"),
            reference="local/foo:v1",
            builder="nerdctl",
            bee_tag="v9",
            uber=True,
        )
        assert options.builder == "nerdctl"
        assert options.bee_tag == "v9"
        assert options.uber is True

    def test_none_overrides_are_ignored(self):
        config = BeepackConfig(_env_file=None, builder="podman")
        options = BuildOptions.from_config(
            config, source_path=Path("foo.c"), reference="r:1", builder=None
        )
        assert options.builder == "podman"

    def test_default_output_path(self):
        options = BuildOptions.from_config(
            BeepackConfig(_env_file=None),
            source_path=Path("probes/foo.c"),
            reference="r:1",
        )
        assert options.resolved_output_path() == Path("probes/foo.o")

    def test_explicit_output_path(self, tmp_path: Path):
        options = BuildOptions.from_config(
            BeepackConfig(_env_file=None),
            source_path=Path("foo.c"),
            reference="r:1",
            output_path=tmp_path / "out.elf",
        )
        assert options.resolved_output_path() == tmp_path / "out.elf"

    def test_frozen(self):
        options = BuildOptions.from_config(
            BeepackConfig(_env_file=None), source_path=Path("foo.c"), reference="r:1"
        )
        with pytest.raises(ValidationError):
            options.reference = "other:1"
