"""Tests for the compile strategies and their selection."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from beepack.build.compiler import (
    CONTAINER_SOURCE_DIR,
    Compiler,
    ContainerizedCompiler,
    LocalCompiler,
    make_compiler,
)
from beepack.build.templates import BUILD_SCRIPT
from beepack.core.errors import CompileError
from beepack.models.config import BuildOptions


class TestLocalCompiler:
    def test_streams_script_and_passes_paths(
        self, tmp_path: Path, source_file: Path, fake_build_script: bytes
    ):
        output = tmp_path / "foo.o"
        compiler = LocalCompiler(script=fake_build_script)
        log = compiler.compile(source_file, output)
        assert output.stat().st_size == 4096
        assert f"building {source_file}" in log

    def test_argv_uses_stdin_script(self, source_file: Path, tmp_path: Path):
        compiler = LocalCompiler(shell="bash")
        argv = compiler._argv(source_file, tmp_path / "foo.o")
        assert argv == ["bash", "-s", "--", str(source_file), str(tmp_path / "foo.o")]
        assert compiler._stdin() == BUILD_SCRIPT

    def test_failure_surfaces_output(self, source_file: Path, tmp_path: Path):
        compiler = LocalCompiler(script=b'echo "clang: error: bad input" >&2\nexit 1\n')
        with pytest.raises(CompileError) as exc_info:
            compiler.compile(source_file, tmp_path / "foo.o")
        assert "clang: error: bad input" in exc_info.value.output
        assert exc_info.value.stage == "compile"

    def test_missing_shell(self, source_file: Path, tmp_path: Path):
        compiler = LocalCompiler(shell="no-such-shell-xyz")
        with pytest.raises(CompileError, match="Could not start"):
            compiler.compile(source_file, tmp_path / "foo.o")


class TestContainerizedCompiler:
    def test_argv_mounts_workdir(self, tmp_path: Path):
        compiler = ContainerizedCompiler(
            build_image="example/builder:1", runtime="podman", workdir=tmp_path
        )
        argv = compiler._argv(Path("foo.c"), Path("foo.o"))
        assert argv == [
            "podman",
            "run",
            "-v",
            f"{tmp_path.resolve()}:{CONTAINER_SOURCE_DIR}",
            "example/builder:1",
            "foo.c",
            "foo.o",
        ]

    def test_runtime_receives_positional_paths(
        self, make_script: Callable[[str, str], Path], tmp_path: Path
    ):
        args_file = tmp_path / "args.txt"
        runtime = make_script("docker", f'printf "%s\\n" "$@" > {args_file}')
        compiler = ContainerizedCompiler(
            build_image="example/builder:1", runtime=str(runtime), workdir=tmp_path
        )
        compiler.compile(Path("foo.c"), Path("foo.o"))
        recorded = args_file.read_text().splitlines()
        assert recorded[0] == "run"
        assert recorded[-3:] == ["example/builder:1", "foo.c", "foo.o"]

    def test_nonzero_exit_raises_compile_error(
        self, make_script: Callable[[str, str], Path], tmp_path: Path
    ):
        runtime = make_script("docker", 'echo "foo.c:1: syntax error"; exit 2')
        compiler = ContainerizedCompiler(
            build_image="example/builder:1", runtime=str(runtime), workdir=tmp_path
        )
        with pytest.raises(CompileError) as exc_info:
            compiler.compile(Path("foo.c"), Path("foo.o"))
        assert "syntax error" in exc_info.value.output
        assert "status 2" in str(exc_info.value)


class TestMakeCompiler:
    def test_local_flag_selects_local(self, make_options: Callable[..., BuildOptions]):
        compiler = make_compiler(make_options(local=True, shell="bash"))
        assert isinstance(compiler, LocalCompiler)
        assert compiler.shell == "bash"

    def test_default_is_containerized(self, make_options: Callable[..., BuildOptions]):
        compiler = make_compiler(make_options(builder="podman"))
        assert isinstance(compiler, ContainerizedCompiler)
        assert compiler.runtime == "podman"
        assert compiler.build_image == "example/builder:test"

    def test_both_satisfy_protocol(self):
        assert isinstance(LocalCompiler(), Compiler)
        assert isinstance(ContainerizedCompiler(build_image="x"), Compiler)
