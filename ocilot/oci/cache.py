"""Content-addressed on-disk image cache.

Layout under the cache root:

    images/<first 3 hex chars of digest>/<remaining hex chars>/
        <bare digest of each layer>   raw layer bytes
        manifest.json                 serialized manifest (or index)
        <bare digest of config>       raw config bytes
        version                       image-layout version marker

Files are written in exactly that order. The version marker is written
last, so its presence means the entry is complete.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from ocilot.errors import BugError, UnexpectedError
from ocilot.oci.models import (
    ANNOTATION_CREATED,
    ANNOTATION_REF_NAME,
    ANNOTATION_TAGS,
    Blob,
    OciModel,
    bare_digest,
)
from ocilot.types import CachedImage, ImageName

if TYPE_CHECKING:
    from ocilot.oci.image import OciImage

logger = logging.getLogger(__name__)

IMAGES_DIR = "images"
DIGEST_PREFIX_LENGTH = 3
MANIFEST_FILE = "manifest.json"
VERSION_FILE = "version"
IMAGE_LAYOUT_VERSION = "1.0.0"


class _StoredDocument(OciModel):
    """Just enough of a stored manifest or index to name the entry."""

    annotations: dict[str, str] | None = None


def version_marker() -> bytes:
    """Return the content of the version marker file."""
    return json.dumps({"imageLayoutVersion": IMAGE_LAYOUT_VERSION}).encode("utf-8")


def naming_annotations(name: ImageName, created: datetime) -> dict[str, str]:
    """Build the annotations that name a cached image.

    Args:
        name: Image name and tags.
        created: Creation time of the image.

    Returns:
        Annotation mapping for the top-level manifest or index.
    """
    return {
        ANNOTATION_REF_NAME: name.image,
        ANNOTATION_TAGS: ",".join(sorted(name.tags)),
        ANNOTATION_CREATED: created.isoformat(),
    }


def _write_file(path: Path, data: bytes) -> None:
    """Create or truncate, write and flush a single file."""
    with path.open("wb") as f:
        f.write(data)
        f.flush()
        os.fsync(f.fileno())


class DirectoryImageCache:
    """Image cache stored as a digest-addressed directory tree."""

    def __init__(self, root: Path) -> None:
        """Initialize the cache.

        Args:
            root: Cache root directory; created on first write.
        """
        self.root = root

    @property
    def images_dir(self) -> Path:
        return self.root / IMAGES_DIR

    def entry_path(self, digest: str) -> Path:
        """Return the directory of the entry for a digest."""
        bare = bare_digest(digest)
        if len(bare) <= DIGEST_PREFIX_LENGTH:
            raise BugError(f"digest too short for cache layout: {digest!r}")
        prefix, remainder = bare[:DIGEST_PREFIX_LENGTH], bare[DIGEST_PREFIX_LENGTH:]
        return self.images_dir / prefix / remainder

    def has(self, digest: str) -> bool:
        """Check whether a fully persisted entry exists for a digest."""
        return (self.entry_path(digest) / VERSION_FILE).is_file()

    def persist(self, image: OciImage) -> Path:
        """Write an image into the cache.

        Multi-architecture images store each per-architecture manifest under
        its own digest, then the index under the image digest.

        Args:
            image: Fetched or constructed image.

        Returns:
            Directory of the image's top-level entry.

        Raises:
            BugError: If the image (or one of its variants) has no manifest.
            UnexpectedError: If writing fails.
        """
        if image.manifest is None:
            raise BugError(
                f"image {image.name} has no manifest to persist",
                code="missing_manifest",
            )

        if image.is_index:
            for variant in image.variants:
                self._write_entry(
                    variant.digest, variant.manifest, variant.config, variant.layers
                )
            path = self._write_entry(image.content_digest, image.manifest, None, [])
        else:
            variant = image.variants[0]
            path = self._write_entry(
                image.content_digest, image.manifest, variant.config, variant.layers
            )

        logger.info("Cached image %s as %s", image.name, image.digest[:16])
        return path

    def _write_entry(
        self,
        digest: str,
        manifest: bytes | None,
        config: Blob | None,
        layers: Sequence[Blob],
    ) -> Path:
        if manifest is None:
            raise BugError(
                f"manifest {digest} is missing at persistence time",
                code="missing_manifest",
            )

        entry = self.entry_path(digest)
        logger.debug("Writing cache entry %s", entry)
        try:
            entry.mkdir(parents=True, exist_ok=True)
            (entry / VERSION_FILE).unlink(missing_ok=True)
            for layer in layers:
                _write_file(entry / bare_digest(layer.digest), layer.data)
            _write_file(entry / MANIFEST_FILE, manifest)
            if config is not None:
                _write_file(entry / bare_digest(config.digest), config.data)
            _write_file(entry / VERSION_FILE, version_marker())
        except OSError as e:
            raise UnexpectedError(
                f"failed to write cache entry {entry}: {e}",
                code="cache_write_error",
                cause=e,
            ) from e
        return entry

    def list(self) -> list[CachedImage]:
        """List named images that are fully persisted.

        Incomplete or malformed entries are skipped.

        Returns:
            Cached image records, ordered by digest.

        Raises:
            UnexpectedError: If the cache directory cannot be read.
        """
        images: list[CachedImage] = []
        try:
            if not self.images_dir.exists():
                return []
            prefixes = sorted(p for p in self.images_dir.iterdir() if p.is_dir())
            for prefix_dir in prefixes:
                for entry in sorted(p for p in prefix_dir.iterdir() if p.is_dir()):
                    try:
                        record = self._read_entry(prefix_dir.name + entry.name, entry)
                    except (OSError, ValueError) as e:
                        logger.warning(
                            "Skipping malformed cache entry %s: %s", entry, e
                        )
                        continue
                    if record is not None:
                        images.append(record)
        except OSError as e:
            raise UnexpectedError(
                f"failed to list cache {self.images_dir}: {e}",
                code="io_error",
                cause=e,
            ) from e
        return images

    def _read_entry(self, digest: str, entry: Path) -> CachedImage | None:
        if not (entry / VERSION_FILE).is_file():
            logger.debug("Skipping incomplete cache entry %s", entry)
            return None

        raw = (entry / MANIFEST_FILE).read_bytes()
        document = _StoredDocument.model_validate_json(raw)
        annotations = document.annotations or {}
        image = annotations.get(ANNOTATION_REF_NAME)
        if not image:
            # Per-architecture child of an index
            return None

        tag_text = annotations.get(ANNOTATION_TAGS, "")
        tags = frozenset(t for t in tag_text.split(",") if t)
        created_text = annotations.get(ANNOTATION_CREATED)
        if not created_text:
            raise ValueError(f"{MANIFEST_FILE} has no creation time")
        created = datetime.fromisoformat(created_text)
        if created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)
        return CachedImage(digest=digest, name=ImageName(image, tags), created=created)


__all__ = [
    "DIGEST_PREFIX_LENGTH",
    "DirectoryImageCache",
    "IMAGES_DIR",
    "IMAGE_LAYOUT_VERSION",
    "MANIFEST_FILE",
    "VERSION_FILE",
    "naming_annotations",
    "version_marker",
]
