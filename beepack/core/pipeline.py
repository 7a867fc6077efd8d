"""Build pipeline: the central coordinator for one ``build`` invocation.

Stages run strictly in order on the calling thread::

    Idle -> Compiling -> Packaging -> [Distributing -> Synthesizing] -> Done

The bracketed branch runs only for uber builds. Any exception moves the
run to Failed, tagged with the stage it interrupted, and is re-raised.
Nothing is retried.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from pathlib import Path

from beepack.build import distributor
from beepack.build.compiler import Compiler, make_compiler
from beepack.build.packager import (
    PLATFORM_PROBE,
    EbpfPackager,
    open_store,
    probe_platform,
    read_program,
)
from beepack.build.synthesizer import ImageSynthesizer, default_image_tag
from beepack.core.cancellation import CancelToken
from beepack.core.errors import (
    CopyError,
    PipelineCancelledError,
    SynthesisError,
    WorkspaceError,
)
from beepack.core.oci_store import OCIStore, StoreError
from beepack.core.stage_machine import StageMachine
from beepack.core.workspace import scratch_workspace
from beepack.models.artifacts import ALLOWED_MEDIA_TYPES, Descriptor, EbpfPackage
from beepack.models.config import BuildOptions
from beepack.models.stages import BuildResult, PipelineState, StageTransition

logger = logging.getLogger(__name__)

# Stage names used in error reports, keyed by the state that was active.
_STAGE_NAMES: dict[PipelineState, str] = {
    PipelineState.IDLE: "pipeline",
    PipelineState.COMPILING: "compile",
    PipelineState.PACKAGING: "package",
    PipelineState.DISTRIBUTING: "distribute",
    PipelineState.SYNTHESIZING: "synthesize",
}


class BuildPipeline:
    """Compile, package and optionally wrap one BPF program in an image.

    Parameters
    ----------
    options:
        Per-invocation build options.
    compiler, packager, synthesizer:
        Component overrides; built from *options* when omitted.
    cancel:
        Token checked by every process wait and store operation.
    on_transition:
        Observer for stage transitions (progress output).
    platform_probe:
        Command whose output describes the build host.
    """

    def __init__(
        self,
        options: BuildOptions,
        *,
        compiler: Compiler | None = None,
        packager: EbpfPackager | None = None,
        synthesizer: ImageSynthesizer | None = None,
        cancel: CancelToken | None = None,
        on_transition: Callable[[StageTransition], None] | None = None,
        platform_probe: Sequence[str] = PLATFORM_PROBE,
    ) -> None:
        self.options = options
        self.compiler = compiler or make_compiler(options)
        self.packager = packager or EbpfPackager()
        self.synthesizer = synthesizer or ImageSynthesizer(
            builder=options.builder,
            poll_interval=options.poll_interval_seconds,
            kill_grace=options.kill_grace_seconds,
        )
        self.cancel = cancel or CancelToken()
        self.stage_machine = StageMachine(on_transition)
        self.platform_probe = tuple(platform_probe)

    @property
    def state(self) -> PipelineState:
        return self.stage_machine.state

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------

    def run(self) -> BuildResult:
        """Execute every stage; return what was produced.

        Raises the failing stage's ``BeepackError`` subclass (or
        ``PipelineCancelledError``) after recording the failure.
        """
        try:
            output_path = self._compile()
            store, manifest_desc, package = self._package(output_path)
            image_tag = self._build_uber(store) if self.options.uber else None
            self.stage_machine.advance(PipelineState.DONE)
        except PipelineCancelledError as exc:
            exc.stage = _STAGE_NAMES.get(self.state, exc.stage)
            self.stage_machine.fail(exc)
            raise
        except BaseException as exc:
            if not self.stage_machine.is_terminal:
                self.stage_machine.fail(exc)
            raise

        return BuildResult(
            source_path=self.options.source_path,
            output_path=output_path,
            reference=self.options.reference,
            manifest_digest=manifest_desc.digest,
            program_size=package.size_bytes,
            platform=package.platform,
            image_tag=image_tag,
            transitions=self.stage_machine.history,
        )

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _compile(self) -> Path:
        self.stage_machine.advance(PipelineState.COMPILING)
        source = self.options.source_path
        output_path = self.options.resolved_output_path()

        # Create or truncate up front; the compiler writes through its own
        # handle and packaging reads through a fresh one.
        try:
            open(output_path, "wb").close()
        except OSError as exc:
            raise WorkspaceError(
                f"Cannot create output file {output_path}: {exc}"
            ) from exc

        tool_output = self.compiler.compile(source, output_path, cancel=self.cancel)
        if self.options.verbose and tool_output:
            logger.info("Compiler output:\n%s", tool_output.rstrip())
        logger.info("Compiled %s and wrote it to %s", source, output_path)
        return output_path

    def _package(self, output_path: Path) -> tuple[OCIStore, Descriptor, EbpfPackage]:
        self.stage_machine.advance(PipelineState.PACKAGING)
        program = read_program(output_path)
        platform = probe_platform(self.platform_probe, cancel=self.cancel)
        package = self.packager.build_package(
            program,
            platform=platform,
            description=self.options.description,
            author=self.options.author,
        )
        store = open_store(self.options.storage_dir, cancel=self.cancel)
        manifest_desc = self.packager.push(
            store, self.options.reference, package, cancel=self.cancel
        )
        return store, manifest_desc, package

    def _build_uber(self, store: OCIStore) -> str:
        self.stage_machine.advance(PipelineState.DISTRIBUTING)
        reference = self.options.reference

        with scratch_workspace(self.options.scratch_root) as workspace:
            if self.options.verbose:
                logger.info("Temp dir name: %s", workspace.root)
                logger.info("Temp store: %s", workspace.store_dir)
            try:
                scratch = OCIStore.open_or_create(
                    workspace.store_dir, cancel=self.cancel
                )
            except StoreError as exc:
                raise CopyError(
                    f"Failed to initialize temp OCI store in {workspace.store_dir}: {exc}"
                ) from exc
            distributor.copy(
                store, reference, scratch, ALLOWED_MEDIA_TYPES, cancel=self.cancel
            )

            self.stage_machine.advance(PipelineState.SYNTHESIZING)
            image_tag = self.options.uber_image
            if image_tag is None:
                try:
                    image_tag = default_image_tag(
                        reference, self.options.uber_tag_prefix
                    )
                except ValueError as exc:
                    raise SynthesisError(str(exc)) from exc
            builder_output = self.synthesizer.synthesize(
                reference,
                self.options.bee_image,
                self.options.bee_tag,
                image_tag,
                workspace.context_dir,
                cancel=self.cancel,
            )
            if self.options.verbose and builder_output:
                logger.info("Builder output:\n%s", builder_output.rstrip())

        logger.info("Uber image built and tagged at %s", image_tag)
        return image_tag
