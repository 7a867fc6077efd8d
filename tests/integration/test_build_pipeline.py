"""End-to-end tests for BuildPipeline with stand-in external tools.

Compilers, image builders and the container runtime are replaced by small
shell scripts so the full stage sequence runs without docker or clang.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from pathlib import Path

import pytest

from beepack.build.compiler import ContainerizedCompiler, LocalCompiler
from beepack.build.packager import EbpfPackager, PLATFORM_PROBE, parse_platform
from beepack.core.cancellation import CancelToken
from beepack.core.errors import CompileError, PackageError, PipelineCancelledError
from beepack.core.oci_store import OCIStore
from beepack.core.pipeline import BuildPipeline
from beepack.core.process import run_process
from beepack.models.config import BuildOptions
from beepack.models.stages import PipelineState, StageTransition


class TestLocalBuild:
    def test_compile_and_package(
        self,
        make_options: Callable[..., BuildOptions],
        fake_build_script: bytes,
        source_file: Path,
    ):
        options = make_options(local=True, description="demo probe")
        pipeline = BuildPipeline(options, compiler=LocalCompiler(script=fake_build_script))

        result = pipeline.run()

        assert pipeline.state == PipelineState.DONE
        assert result.output_path == source_file.with_suffix(".o")
        assert result.program_size == 4096
        assert result.image_tag is None
        assert result.platform == parse_platform(run_process(list(PLATFORM_PROBE)))

        package = EbpfPackager().pull(OCIStore(options.storage_dir), "local/foo:v1")
        assert package.program == b"A" * 4096
        assert package.description == "demo probe"

    def test_transitions_are_reported(
        self, make_options: Callable[..., BuildOptions], fake_build_script: bytes
    ):
        seen: list[StageTransition] = []
        BuildPipeline(
            make_options(local=True),
            compiler=LocalCompiler(script=fake_build_script),
            on_transition=seen.append,
        ).run()
        assert [t.to_state for t in seen] == [
            PipelineState.COMPILING,
            PipelineState.PACKAGING,
            PipelineState.DONE,
        ]

    def test_unavailable_platform_probe_still_packages(
        self, make_options: Callable[..., BuildOptions], fake_build_script: bytes
    ):
        result = BuildPipeline(
            make_options(local=True),
            compiler=LocalCompiler(script=fake_build_script),
            platform_probe=["no-such-probe-xyz"],
        ).run()
        assert result.platform is None

    def test_empty_output_fails_packaging(
        self, make_options: Callable[..., BuildOptions]
    ):
        pipeline = BuildPipeline(
            make_options(local=True), compiler=LocalCompiler(script=b"true\n")
        )
        with pytest.raises(PackageError):
            pipeline.run()
        assert pipeline.state == PipelineState.FAILED
        assert pipeline.stage_machine.failure.failed_stage == PipelineState.PACKAGING


class TestContainerizedBuild:
    def test_runtime_failure_stops_before_packaging(
        self,
        make_options: Callable[..., BuildOptions],
        make_script: Callable[[str, str], Path],
        tmp_path: Path,
    ):
        runtime = make_script("docker", 'echo "error: foo.c:3: unknown type"; exit 1')
        options = make_options(builder=str(runtime))
        pipeline = BuildPipeline(
            options,
            compiler=ContainerizedCompiler(
                build_image=options.build_image, runtime=str(runtime), workdir=tmp_path
            ),
        )

        with pytest.raises(CompileError) as exc_info:
            pipeline.run()

        assert "unknown type" in exc_info.value.output
        assert pipeline.state == PipelineState.FAILED
        assert pipeline.stage_machine.failure.failed_stage == PipelineState.COMPILING
        assert not options.storage_dir.exists()


class TestUberBuild:
    def test_builds_and_tags_uber_image(
        self,
        make_options: Callable[..., BuildOptions],
        make_script: Callable[[str, str], Path],
        fake_build_script: bytes,
        tmp_path: Path,
    ):
        args_file = tmp_path / "builder-args.txt"
        context_file = tmp_path / "builder-context.txt"
        builder = make_script(
            "docker",
            f'printf "%s\\n" "$@" > {args_file}\n'
            f'ls "$8" "$8/store" > {context_file}',
        )
        options = make_options(
            local=True, uber=True, builder=str(builder), uber_tag_prefix="runner"
        )

        result = BuildPipeline(
            options, compiler=LocalCompiler(script=fake_build_script)
        ).run()

        assert result.image_tag == "runner-local/foo-v1:latest"
        args = args_file.read_text().splitlines()
        assert args[:7] == [
            "build",
            "--build-arg",
            "BPF_IMAGE=local/foo:v1",
            "--build-arg",
            "BEE_IMAGE=runner/base",
            "--build-arg",
            "BEE_TAG=v2",
        ]
        assert args[8:] == ["-t", "runner-local/foo-v1:latest"]
        listing = context_file.read_text()
        assert "Dockerfile" in listing
        assert "index.json" in listing
        assert list(options.scratch_root.iterdir()) == []

    def test_explicit_uber_image(
        self,
        make_options: Callable[..., BuildOptions],
        make_script: Callable[[str, str], Path],
        fake_build_script: bytes,
    ):
        builder = make_script("docker", "exit 0")
        options = make_options(
            local=True, uber=True, builder=str(builder), uber_image="me/probe:dev"
        )
        result = BuildPipeline(
            options, compiler=LocalCompiler(script=fake_build_script)
        ).run()
        assert result.image_tag == "me/probe:dev"

    def test_cancel_during_synthesis(
        self,
        make_options: Callable[..., BuildOptions],
        make_script: Callable[[str, str], Path],
        fake_build_script: bytes,
    ):
        builder = make_script("docker", "exec sleep 30")
        options = make_options(local=True, uber=True, builder=str(builder))
        token = CancelToken()

        def _cancel_when_synthesizing(transition: StageTransition) -> None:
            if transition.to_state == PipelineState.SYNTHESIZING:
                threading.Timer(0.3, token.cancel, args=("test",)).start()

        pipeline = BuildPipeline(
            options,
            compiler=LocalCompiler(script=fake_build_script),
            cancel=token,
            on_transition=_cancel_when_synthesizing,
        )
        started = time.monotonic()
        with pytest.raises(PipelineCancelledError) as exc_info:
            pipeline.run()

        assert time.monotonic() - started < 10
        assert exc_info.value.stage == "synthesize"
        assert pipeline.stage_machine.failure.failed_stage == PipelineState.SYNTHESIZING
        assert list(options.scratch_root.iterdir()) == []

    def test_default_tag_is_stable(
        self,
        make_options: Callable[..., BuildOptions],
        make_script: Callable[[str, str], Path],
        fake_build_script: bytes,
    ):
        builder = make_script("docker", "exit 0")
        options = make_options(local=True, uber=True, builder=str(builder))
        tags = {
            BuildPipeline(options, compiler=LocalCompiler(script=fake_build_script))
            .run()
            .image_tag
            for _ in range(2)
        }
        assert tags == {"bee-local/foo-v1:latest"}
