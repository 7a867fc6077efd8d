"""Canonical hashing helpers for content addressing.

Blobs are addressed by ``sha256:<hex>`` of their raw bytes. JSON documents
(configs, manifests, index) are serialized canonically first so that the
same content always produces the same digest.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any

DIGEST_ALGORITHM = "sha256"


def canonical_json_bytes(obj: Any) -> bytes:
    """Produce canonical JSON bytes: sorted keys, compact separators, UTF-8."""
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True
    ).encode("utf-8")


def sha256_hex(data: bytes) -> str:
    """Return the SHA-256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def digest_of(data: bytes) -> str:
    """Return the ``sha256:<hex>`` content address of raw bytes."""
    return f"{DIGEST_ALGORITHM}:{sha256_hex(data)}"


def split_digest(digest: str) -> tuple[str, str]:
    """Split ``algorithm:hex`` into its parts.

    Raises ``ValueError`` for anything that is not a well-formed sha256
    digest, so a hostile ``index.json`` cannot point outside the blob dir.
    """
    algorithm, sep, hex_part = digest.partition(":")
    if not sep or algorithm != DIGEST_ALGORITHM:
        raise ValueError(f"Unsupported digest: {digest!r}")
    if len(hex_part) != 64 or any(c not in "0123456789abcdef" for c in hex_part):
        raise ValueError(f"Malformed digest: {digest!r}")
    return algorithm, hex_part
