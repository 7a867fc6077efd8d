"""OCI artifact models for packaged BPF programs (all frozen).

The on-store representation follows the OCI image layout: a manifest that
points at one config blob and one program layer, both addressed by
``sha256:<hex>`` digests.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Media types
# ---------------------------------------------------------------------------

MANIFEST_MEDIA_TYPE = "application/vnd.oci.image.manifest.v1+json"
INDEX_MEDIA_TYPE = "application/vnd.oci.image.index.v1+json"
CONFIG_MEDIA_TYPE = "application/ebpf.oci.image.config.v1+json"
PROGRAM_MEDIA_TYPE = "binary/ebpf.solo.io.v1"

# Entries the distributor ferries into a scratch store for image synthesis.
ALLOWED_MEDIA_TYPES: frozenset[str] = frozenset(
    {MANIFEST_MEDIA_TYPE, CONFIG_MEDIA_TYPE, PROGRAM_MEDIA_TYPE}
)

REF_NAME_ANNOTATION = "org.opencontainers.image.ref.name"
TITLE_ANNOTATION = "org.opencontainers.image.title"

PROGRAM_FILE_NAME = "program.o"


class Platform(BaseModel):
    """Host platform tuple captured from ``uname -srm``."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    os: str
    os_version: str = Field(default="", alias="os.version")
    architecture: str


class Descriptor(BaseModel):
    """An OCI content descriptor.

    Field names follow the JSON wire names (``mediaType``) so that
    ``model_dump(by_alias=True, exclude_none=True)`` yields OCI JSON.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    media_type: str = Field(alias="mediaType")
    digest: str  # "sha256:<hex>"
    size: int
    annotations: dict[str, str] | None = None
    platform: Platform | None = None

    @property
    def reference_name(self) -> str | None:
        """The ref-name annotation, if this descriptor is tagged."""
        if not self.annotations:
            return None
        return self.annotations.get(REF_NAME_ANNOTATION)

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Manifest(BaseModel):
    """OCI image manifest: one config plus an ordered list of layers."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    schema_version: int = Field(default=2, alias="schemaVersion")
    media_type: str = Field(default=MANIFEST_MEDIA_TYPE, alias="mediaType")
    config: Descriptor
    layers: list[Descriptor] = []
    annotations: dict[str, str] | None = None

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ImageIndex(BaseModel):
    """OCI image index: a list of manifest descriptors."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    schema_version: int = Field(default=2, alias="schemaVersion")
    media_type: str = Field(default=INDEX_MEDIA_TYPE, alias="mediaType")
    manifests: list[Descriptor] = []

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class EbpfConfig(BaseModel):
    """Contents of the config blob stored alongside the program layer."""

    model_config = ConfigDict(frozen=True)

    description: str = ""
    author: str = ""
    platform: Platform | None = None


class EbpfPackage(BaseModel):
    """A compiled BPF program plus the metadata it is distributed with.

    Constructed once per build and pushed exactly once. A zero-length
    program is rejected at construction time.
    """

    model_config = ConfigDict(frozen=True)

    program: bytes = Field(min_length=1)
    platform: Platform | None = None
    description: str = ""
    author: str = ""

    @property
    def size_bytes(self) -> int:
        return len(self.program)

    def config(self) -> EbpfConfig:
        return EbpfConfig(
            description=self.description,
            author=self.author,
            platform=self.platform,
        )
