"""Package BPF programs as OCI artifacts.

An ``EbpfPackage`` is stored as three blobs::

    manifest (application/vnd.oci.image.manifest.v1+json)
      config  (application/ebpf.oci.image.config.v1+json)  description, author, platform
      layer   (binary/ebpf.solo.io.v1)                     the ELF object

and the manifest is tagged in the store's index under the caller's
reference, with the platform tuple recorded on the index descriptor.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path

from pydantic import ValidationError

from beepack.core.cancellation import CancelToken
from beepack.core.errors import PackageError, ProcessFailedError
from beepack.core.oci_store import OCIStore, StoreError
from beepack.core.process import run_process
from beepack.models.artifacts import (
    CONFIG_MEDIA_TYPE,
    MANIFEST_MEDIA_TYPE,
    PROGRAM_FILE_NAME,
    PROGRAM_MEDIA_TYPE,
    TITLE_ANNOTATION,
    Descriptor,
    EbpfConfig,
    EbpfPackage,
    Manifest,
    Platform,
)

logger = logging.getLogger(__name__)

PLATFORM_PROBE: tuple[str, ...] = ("uname", "-srm")


def parse_platform(output: str) -> Platform | None:
    """Parse ``uname -srm`` output; anything but three fields is unknown."""
    fields = output.split()
    if len(fields) != 3:
        return None
    os_name, os_version, architecture = fields
    return Platform(os=os_name, os_version=os_version, architecture=architecture)


def probe_platform(
    command: Sequence[str] = PLATFORM_PROBE,
    *,
    cancel: CancelToken | None = None,
) -> Platform | None:
    """Describe the build host, or return None if the probe fails.

    Probe failure is never fatal. Cancellation still propagates.
    """
    try:
        output = run_process(command, cancel=cancel)
    except ProcessFailedError as exc:
        logger.warning("Unable to derive platform info: %s", exc.output.strip() or exc)
        return None
    except OSError as exc:
        logger.warning("Unable to derive platform info: %s", exc)
        return None
    platform = parse_platform(output)
    if platform is None:
        logger.warning("Unable to derive platform info: %r", output.strip())
    return platform


def open_store(root: Path, *, cancel: CancelToken | None = None) -> OCIStore:
    """Open (or create) the store at *root*, as a packaging failure if not."""
    try:
        return OCIStore.open_or_create(root, cancel=cancel)
    except StoreError as exc:
        raise PackageError(f"Failed to initialize OCI store: {exc}") from exc


def read_program(path: Path) -> bytes:
    """Read a compiled program through a freshly opened file."""
    try:
        with open(path, "rb") as fh:
            return fh.read()
    except OSError as exc:
        raise PackageError(f"Cannot read compiled program {path}: {exc}") from exc


class EbpfPackager:
    """Pushes and pulls ``EbpfPackage`` artifacts to and from an OCI store."""

    def build_package(
        self,
        program: bytes,
        *,
        platform: Platform | None = None,
        description: str = "",
        author: str = "",
    ) -> EbpfPackage:
        """Validate and construct a package; empty programs are rejected."""
        try:
            return EbpfPackage(
                program=program,
                platform=platform,
                description=description,
                author=author,
            )
        except ValidationError as exc:
            raise PackageError(
                f"Invalid BPF package ({len(program)} byte program): "
                f"{exc.errors()[0]['msg']}"
            ) from exc

    def push(
        self,
        store: OCIStore,
        reference: str,
        package: EbpfPackage,
        *,
        cancel: CancelToken | None = None,
    ) -> Descriptor:
        """Write *package* into *store* and tag it *reference*.

        The tag is written last, so a failure part-way leaves only
        unreferenced blobs behind and *reference* is never reported as
        pushed.
        """
        if not package.program:
            raise PackageError("Refusing to push an empty BPF program")
        try:
            config_desc = store.push_json(
                package.config().model_dump(mode="json", by_alias=True),
                CONFIG_MEDIA_TYPE,
                cancel=cancel,
            )
            program_desc = store.push_blob(
                package.program,
                PROGRAM_MEDIA_TYPE,
                annotations={TITLE_ANNOTATION: PROGRAM_FILE_NAME},
                cancel=cancel,
            )
            manifest = Manifest(config=config_desc, layers=[program_desc])
            manifest_desc = store.push_json(
                manifest.to_json(), MANIFEST_MEDIA_TYPE, cancel=cancel
            )
            tagged = store.tag(
                manifest_desc, reference, platform=package.platform, cancel=cancel
            )
        except StoreError as exc:
            raise PackageError(f"Failed to save BPF OCI image {reference}: {exc}") from exc

        logger.info(
            "Pushed %s (%d bytes) to %s as %s",
            reference,
            package.size_bytes,
            store.root,
            tagged.digest,
        )
        return tagged

    def pull(
        self,
        store: OCIStore,
        reference: str,
        *,
        cancel: CancelToken | None = None,
    ) -> EbpfPackage:
        """Resolve *reference* in *store* and reassemble the package."""
        try:
            manifest_desc = store.resolve(reference, cancel=cancel)
            manifest = Manifest.model_validate_json(
                store.fetch(manifest_desc, cancel=cancel)
            )
            config = EbpfConfig.model_validate_json(
                store.fetch(manifest.config, cancel=cancel)
            )
            layer = next(
                (d for d in manifest.layers if d.media_type == PROGRAM_MEDIA_TYPE),
                None,
            )
            if layer is None:
                raise PackageError(f"{reference} has no {PROGRAM_MEDIA_TYPE} layer")
            program = store.fetch(layer, cancel=cancel)
        except StoreError as exc:
            raise PackageError(f"Failed to load BPF OCI image {reference}: {exc}") from exc
        except ValidationError as exc:
            raise PackageError(f"Malformed BPF OCI image {reference}: {exc}") from exc

        return self.build_package(
            program,
            platform=manifest_desc.platform or config.platform,
            description=config.description,
            author=config.author,
        )
