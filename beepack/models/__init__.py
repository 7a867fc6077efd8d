"""beepack data models: Pydantic v2, frozen (immutable)."""

from beepack.models.artifacts import (
    ALLOWED_MEDIA_TYPES,
    CONFIG_MEDIA_TYPE,
    INDEX_MEDIA_TYPE,
    MANIFEST_MEDIA_TYPE,
    PROGRAM_MEDIA_TYPE,
    Descriptor,
    EbpfConfig,
    EbpfPackage,
    ImageIndex,
    Manifest,
    Platform,
)
from beepack.models.config import BuildOptions
from beepack.models.stages import (
    VALID_TRANSITIONS,
    BuildResult,
    PipelineState,
    StageTransition,
)

__all__ = [
    # artifacts
    "ALLOWED_MEDIA_TYPES",
    "CONFIG_MEDIA_TYPE",
    "INDEX_MEDIA_TYPE",
    "MANIFEST_MEDIA_TYPE",
    "PROGRAM_MEDIA_TYPE",
    "Descriptor",
    "EbpfConfig",
    "EbpfPackage",
    "ImageIndex",
    "Manifest",
    "Platform",
    # stages
    "PipelineState",
    "StageTransition",
    "VALID_TRANSITIONS",
    "BuildResult",
    # config
    "BuildOptions",
]
