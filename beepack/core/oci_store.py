"""Content-addressed OCI image-layout store.

Storage layout (OCI image layout 1.0.0)::

    {root}/oci-layout              {"imageLayoutVersion": "1.0.0"}
    {root}/index.json              tagged manifest descriptors
    {root}/blobs/sha256/{hex}      immutable content

Blobs are immutable: writing the same content twice is a no-op. Blob and
index writes go through a temp file plus ``os.replace`` so readers never
observe a half-written file. A reference is tagged by adding a descriptor
to ``index.json`` annotated with ``org.opencontainers.image.ref.name``;
tagging an existing reference replaces the previous entry.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from beepack.core.cancellation import CancelToken
from beepack.core.hasher import canonical_json_bytes, digest_of, split_digest
from beepack.models.artifacts import (
    INDEX_MEDIA_TYPE,
    MANIFEST_MEDIA_TYPE,
    REF_NAME_ANNOTATION,
    Descriptor,
    ImageIndex,
    Manifest,
    Platform,
)

logger = logging.getLogger(__name__)

OCI_LAYOUT_FILE = "oci-layout"
OCI_LAYOUT_VERSION = "1.0.0"
INDEX_FILE = "index.json"


class StoreError(RuntimeError):
    """Raised when the store cannot be opened, read or written."""


class ReferenceNotFoundError(StoreError, KeyError):
    """Raised when a reference is not tagged in the store."""

    def __str__(self) -> str:
        return RuntimeError.__str__(self)


class BlobIntegrityError(StoreError):
    """Raised when a stored blob's bytes do not match its descriptor."""


def _check_cancelled(cancel: CancelToken | None) -> None:
    if cancel is not None:
        cancel.raise_if_cancelled()


class OCIStore:
    """A local OCI image-layout directory.

    Parameters
    ----------
    root:
        Store directory. Created (with an empty index) if absent.
    """

    def __init__(self, root: Path, *, cancel: CancelToken | None = None) -> None:
        _check_cancelled(cancel)
        self._root = Path(root)
        try:
            self._blob_dir.mkdir(parents=True, exist_ok=True)
            layout = self._root / OCI_LAYOUT_FILE
            if not layout.exists():
                self._atomic_write(
                    layout,
                    canonical_json_bytes({"imageLayoutVersion": OCI_LAYOUT_VERSION}),
                )
            if not (self._root / INDEX_FILE).exists():
                self._write_index(ImageIndex())
        except OSError as exc:
            raise StoreError(f"Cannot open OCI store at {self._root}: {exc}") from exc

    @classmethod
    def open_or_create(
        cls, root: Path, *, cancel: CancelToken | None = None
    ) -> OCIStore:
        return cls(root, cancel=cancel)

    @property
    def root(self) -> Path:
        return self._root

    @property
    def _blob_dir(self) -> Path:
        return self._root / "blobs" / "sha256"

    def blob_path(self, digest: str) -> Path:
        """Storage path for *digest*; rejects malformed digests."""
        try:
            _, hex_part = split_digest(digest)
        except ValueError as exc:
            raise StoreError(str(exc)) from exc
        return self._blob_dir / hex_part

    # ------------------------------------------------------------------
    # Blobs
    # ------------------------------------------------------------------

    def push_blob(
        self,
        data: bytes,
        media_type: str,
        *,
        annotations: dict[str, str] | None = None,
        cancel: CancelToken | None = None,
    ) -> Descriptor:
        """Store *data* and return its descriptor. Idempotent."""
        _check_cancelled(cancel)
        descriptor = Descriptor(
            media_type=media_type,
            digest=digest_of(data),
            size=len(data),
            annotations=annotations or None,
        )
        path = self.blob_path(descriptor.digest)
        if not path.exists():
            try:
                self._atomic_write(path, data)
            except OSError as exc:
                raise StoreError(
                    f"Failed to write blob {descriptor.digest}: {exc}"
                ) from exc
            logger.debug("Wrote blob %s (%d bytes)", descriptor.digest, len(data))
        return descriptor

    def push_json(
        self,
        document: dict[str, Any],
        media_type: str,
        *,
        cancel: CancelToken | None = None,
    ) -> Descriptor:
        """Store a JSON document canonically and return its descriptor."""
        return self.push_blob(
            canonical_json_bytes(document), media_type, cancel=cancel
        )

    def exists(self, digest: str) -> bool:
        return self.blob_path(digest).exists()

    def fetch(
        self, descriptor: Descriptor, *, cancel: CancelToken | None = None
    ) -> bytes:
        """Return the bytes for *descriptor*, verifying size and digest."""
        _check_cancelled(cancel)
        path = self.blob_path(descriptor.digest)
        try:
            data = path.read_bytes()
        except FileNotFoundError as exc:
            raise StoreError(f"Blob not found: {descriptor.digest}") from exc
        except OSError as exc:
            raise StoreError(f"Cannot read blob {descriptor.digest}: {exc}") from exc
        if len(data) != descriptor.size or digest_of(data) != descriptor.digest:
            raise BlobIntegrityError(
                f"Blob {descriptor.digest} failed integrity check"
            )
        return data

    # ------------------------------------------------------------------
    # References
    # ------------------------------------------------------------------

    def references(self, *, cancel: CancelToken | None = None) -> list[Descriptor]:
        """Return every tagged manifest descriptor in the index."""
        _check_cancelled(cancel)
        return [d for d in self._read_index().manifests if d.reference_name]

    def resolve(
        self, reference: str, *, cancel: CancelToken | None = None
    ) -> Descriptor:
        """Return the manifest descriptor tagged *reference*."""
        _check_cancelled(cancel)
        for descriptor in self._read_index().manifests:
            if descriptor.reference_name == reference:
                return descriptor
        raise ReferenceNotFoundError(f"Reference not found: {reference}")

    def tag(
        self,
        descriptor: Descriptor,
        reference: str,
        *,
        platform: Platform | None = None,
        cancel: CancelToken | None = None,
    ) -> Descriptor:
        """Point *reference* at *descriptor*, replacing any previous tag."""
        _check_cancelled(cancel)
        if not self.exists(descriptor.digest):
            raise StoreError(
                f"Cannot tag {reference}: blob {descriptor.digest} not in store"
            )
        annotations = dict(descriptor.annotations or {})
        annotations[REF_NAME_ANNOTATION] = reference
        tagged = descriptor.model_copy(
            update={
                "annotations": annotations,
                "platform": platform if platform is not None else descriptor.platform,
            }
        )
        index = self._read_index()
        manifests = [d for d in index.manifests if d.reference_name != reference]
        manifests.append(tagged)
        self._write_index(index.model_copy(update={"manifests": manifests}))
        logger.debug("Tagged %s -> %s", reference, descriptor.digest)
        return tagged

    # ------------------------------------------------------------------
    # Graph traversal
    # ------------------------------------------------------------------

    @staticmethod
    def successors(descriptor: Descriptor, data: bytes) -> list[Descriptor]:
        """Return the descriptors directly referenced by a fetched node.

        Manifests reference their config then layers; indexes reference
        their manifests. Any other media type is a leaf.
        """
        try:
            if descriptor.media_type == MANIFEST_MEDIA_TYPE:
                manifest = Manifest.model_validate_json(data)
                return [manifest.config, *manifest.layers]
            if descriptor.media_type == INDEX_MEDIA_TYPE:
                return list(ImageIndex.model_validate_json(data).manifests)
        except ValidationError as exc:
            raise StoreError(
                f"Malformed {descriptor.media_type} {descriptor.digest}: {exc}"
            ) from exc
        return []

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _read_index(self) -> ImageIndex:
        path = self._root / INDEX_FILE
        try:
            return ImageIndex.model_validate(json.loads(path.read_bytes()))
        except (OSError, ValueError) as exc:
            raise StoreError(f"Cannot read {path}: {exc}") from exc

    def _write_index(self, index: ImageIndex) -> None:
        try:
            self._atomic_write(
                self._root / INDEX_FILE, canonical_json_bytes(index.to_json())
            )
        except OSError as exc:
            raise StoreError(f"Cannot write index for {self._root}: {exc}") from exc

    def _atomic_write(self, path: Path, data: bytes) -> None:
        """Write *data* next to *path* and rename it into place."""
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".ingest-")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def __repr__(self) -> str:
        return f"<OCIStore root={str(self._root)!r}>"
