"""Copy artifacts between OCI stores, breadth-first, by media type.

The graph under a reference is walked one level at a time: the root
manifest first, then everything it references, then everything those
reference. A copy interrupted part-way therefore holds whole levels of
the graph rather than one partial branch.

Entries whose media type is not in the allow-list are neither fetched
nor written. The destination is tagged only after every level has been
copied.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from beepack.core.cancellation import CancelToken
from beepack.core.errors import CopyError
from beepack.core.oci_store import OCIStore, StoreError
from beepack.models.artifacts import ALLOWED_MEDIA_TYPES, Descriptor

logger = logging.getLogger(__name__)


def copy(
    source: OCIStore,
    reference: str,
    dest: OCIStore,
    allowed_media_types: Iterable[str] = ALLOWED_MEDIA_TYPES,
    *,
    cancel: CancelToken | None = None,
) -> Descriptor:
    """Copy *reference* from *source* into *dest*; return the root descriptor.

    Raises ``CopyError`` if the reference does not resolve, the root is
    not an allowed media type, or any allowed entry fails to fetch or
    write. Nothing already written to *dest* is cleaned up.
    """
    allowed = frozenset(allowed_media_types)
    try:
        root = source.resolve(reference, cancel=cancel)
    except StoreError as exc:
        raise CopyError(f"Cannot resolve {reference} in {source.root}: {exc}") from exc
    if root.media_type not in allowed:
        raise CopyError(
            f"Root of {reference} has media type {root.media_type}, "
            f"which is not in the allow-list"
        )

    seen: set[str] = set()
    level: list[Descriptor] = [root]
    depth = 0
    copied = skipped = 0
    while level:
        next_level: list[Descriptor] = []
        for descriptor in level:
            if descriptor.digest in seen:
                continue
            seen.add(descriptor.digest)
            if descriptor.media_type not in allowed:
                logger.debug(
                    "Skipping %s (%s)", descriptor.digest, descriptor.media_type
                )
                skipped += 1
                continue
            try:
                data = source.fetch(descriptor, cancel=cancel)
                dest.push_blob(data, descriptor.media_type, cancel=cancel)
                next_level.extend(OCIStore.successors(descriptor, data))
            except StoreError as exc:
                raise CopyError(
                    f"Failed to copy {descriptor.digest} ({descriptor.media_type}) "
                    f"of {reference} at depth {depth}: {exc}"
                ) from exc
            copied += 1
        level = next_level
        depth += 1

    try:
        tagged = dest.tag(root, reference, platform=root.platform, cancel=cancel)
    except StoreError as exc:
        raise CopyError(f"Failed to tag {reference} in {dest.root}: {exc}") from exc
    logger.info(
        "Copied %s from %s to %s (%d entries, %d skipped)",
        reference,
        source.root,
        dest.root,
        copied,
        skipped,
    )
    return tagged
