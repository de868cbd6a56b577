"""Payload assembly and the incremental-build staleness check.

A cached image is reused when it carries the requested name and was
created no earlier than the newest input file. Any input newer than the
cached image invalidates it, regardless of which input changed.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from pathlib import Path

from ocilot.builds.interfaces import ArtifactResolver, FileStore, ImageCache
from ocilot.errors import BugError, InvalidInputError, OcilotError
from ocilot.types import Build, CachedImage, ImageName, Part, Payload

logger = logging.getLogger(__name__)

# Characters that make a source that is not an existing file a glob pattern
GLOB_MAGIC = re.compile(r"[*?[]")


def build_payload(build: Build, resolver: ArtifactResolver) -> Payload:
    """Resolve every artifact of a build into parts.

    Args:
        build: Build request.
        resolver: Artifact resolver.

    Returns:
        Payload with parts in artifact order.

    Raises:
        InvalidInputError: If an artifact matches no files or is malformed.
        UnexpectedError: If resolution fails on I/O.
    """
    payload = Payload()
    for artifact in build.artifacts:
        paths = resolver.resolve(artifact)
        if not paths:
            raise InvalidInputError(
                f"artifact {str(artifact)!r} matched no files",
                code="no_artifact_match",
            )
        from_pattern = (
            not Path(artifact.source).is_file()
            and GLOB_MAGIC.search(artifact.source) is not None
        )
        payload.extend(
            Part(
                source=path,
                arch=artifact.arch,
                destination=artifact.destination,
                from_pattern=from_pattern,
            )
            for path in paths
        )
    logger.debug(
        "Resolved %d artifact(s) into %d part(s)", len(build.artifacts), len(payload)
    )
    return payload


def freshness_watermark(payload: Payload, files: FileStore) -> datetime | None:
    """Return the newest modification time across all parts.

    Args:
        payload: Resolved payload.
        files: File store used to query modification times.

    Returns:
        Newest modification time, or None for an empty payload.

    Raises:
        BugError: If any part yields no timestamp.
        UnexpectedError: If a file cannot be inspected.
    """
    if not len(payload):
        return None
    times = [files.modified(part.source) for part in payload]
    missing = [str(part.source) for part, t in zip(payload, times) if t is None]
    if missing:
        raise BugError(
            f"no modification time for {len(missing)} of {len(payload)} part(s): "
            f"{', '.join(missing)}",
            code="no_watermark",
        )
    return max(times)


def lookup_cached(
    payload: Payload,
    name: ImageName,
    cache: ImageCache,
    files: FileStore,
) -> CachedImage | None:
    """Find a cached image that is still fresh for a payload.

    A failure to list the cache is logged and treated as an empty cache.

    Args:
        payload: Resolved payload.
        name: Requested image name and tags.
        cache: Image cache.
        files: File store used to compute the watermark.

    Returns:
        First fresh cached image with the requested name, or None.

    Raises:
        BugError: If the watermark cannot be derived.
    """
    watermark = freshness_watermark(payload, files)

    try:
        entries = cache.list()
    except OcilotError as e:
        logger.warning("Cannot list cache, treating it as empty: %s", e)
        entries = []

    for entry in entries:
        if entry.name != name:
            continue
        if watermark is None or entry.created >= watermark:
            logger.debug("Cache entry %s is fresh", entry.digest[:16])
            return entry
        logger.debug(
            "Cache entry %s is stale (created %s, inputs modified %s)",
            entry.digest[:16],
            entry.created.isoformat(),
            watermark.isoformat(),
        )
    return None


__all__ = ["GLOB_MAGIC", "build_payload", "freshness_watermark", "lookup_cached"]
