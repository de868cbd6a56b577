"""OCI images and construction sessions.

This module handles:
- The in-memory representation of fetched and constructed images
- Layering added files onto each targeted architecture of a base image
- Producing per-architecture manifests and, for several architectures,
  an index sorted by architecture name

A layer built from identical inputs is byte-identical: tar entries carry
no timestamps or ownership, and the gzip header has no mtime.
"""

from __future__ import annotations

import gzip
import io
import json
import logging
import tarfile
from collections.abc import Callable, Collection, Iterable, Mapping
from contextlib import closing
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from ocilot import __version__
from ocilot.errors import BugError, InvalidInputError, UnexpectedError
from ocilot.oci.cache import naming_annotations
from ocilot.oci.models import (
    OCI_CONFIG,
    OCI_LAYER_GZIP,
    OCI_MANIFEST,
    Blob,
    Descriptor,
    ImageIndex,
    ImageManifest,
    ImageVariant,
    Input,
    Platform,
    bare_digest,
    compute_digest,
)
from ocilot.types import Arch, ImageName

if TYPE_CHECKING:
    from ocilot.builds.interfaces import ImageCache

logger = logging.getLogger(__name__)

CREATED_BY = f"ocilot {__version__}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _arch_key(variant: ImageVariant) -> str:
    return variant.arch.value if variant.arch is not None else ""


@dataclass
class _StagedFile:
    arch: Arch | None
    to: str
    data: bytes
    mode: int


def build_layer(entries: Mapping[str, tuple[bytes, int]]) -> tuple[Blob, str]:
    """Create a gzip-compressed tar layer.

    Args:
        entries: Mapping of in-image path to (content, mode), in the order
                 the entries should appear in the archive.

    Returns:
        Tuple of (layer blob, diff id of the uncompressed tar).
    """
    tar_buffer = io.BytesIO()
    with tarfile.open(fileobj=tar_buffer, mode="w", format=tarfile.PAX_FORMAT) as tar:
        for path, (data, mode) in entries.items():
            info = tarfile.TarInfo(name=path.lstrip("/"))
            info.size = len(data)
            info.mode = mode
            info.mtime = 0
            info.uid = info.gid = 0
            info.uname = info.gname = ""
            tar.addfile(info, io.BytesIO(data))
    tar_bytes = tar_buffer.getvalue()

    gz_buffer = io.BytesIO()
    with gzip.GzipFile(filename="", mode="wb", fileobj=gz_buffer, mtime=0) as gz:
        gz.write(tar_bytes)

    return Blob(OCI_LAYER_GZIP, gz_buffer.getvalue()), compute_digest(tar_bytes)


def _load_config(variant: ImageVariant) -> dict[str, Any]:
    try:
        config = json.loads(variant.config.data)
    except ValueError as e:
        raise UnexpectedError(
            f"config {variant.config.digest} is not valid JSON: {e}", cause=e
        ) from e
    if not isinstance(config, dict):
        raise UnexpectedError(f"config {variant.config.digest} is not a JSON object")
    return config


def _platform(variant: ImageVariant) -> Platform:
    config = _load_config(variant)
    architecture = config.get("architecture") or (
        variant.arch.value if variant.arch else "unknown"
    )
    return Platform(architecture=architecture, os=config.get("os") or "linux")


def _index_entry(variant: ImageVariant) -> Descriptor:
    manifest = variant.manifest or b""
    return Descriptor(
        media_type=OCI_MANIFEST,
        digest=variant.digest,
        size=len(manifest),
        platform=_platform(variant),
    )


@dataclass
class OciImage:
    """An image held in memory with all its blobs.

    Attributes:
        name: Image name and tags.
        created: Creation time recorded in the cache.
        variants: Per-architecture images.
        manifest: Top-level document as stored: the index for
                  multi-architecture images, else the variant manifest.
        content_digest: Digest of the top-level document.
        is_index: Whether the top-level document is an index.
        cache: Cache that constructions from this image persist into.
    """

    name: ImageName
    created: datetime
    variants: list[ImageVariant]
    manifest: bytes | None
    content_digest: str
    is_index: bool = False
    cache: ImageCache | None = field(default=None, repr=False, compare=False)

    @property
    def digest(self) -> str:
        return bare_digest(self.content_digest)

    @property
    def architectures(self) -> list[Arch]:
        return sorted(
            (v.arch for v in self.variants if v.arch is not None),
            key=lambda a: a.value,
        )

    def construct_new(self, archs: Collection[Arch] = ()) -> OciConstruction:
        """Open a construction session on top of this image.

        Args:
            archs: Target architectures; empty inherits this image's own.

        Returns:
            A new construction session.
        """
        return OciConstruction(self, archs)


class OciConstruction:
    """Accumulates inputs and finalizes them into a new image.

    Inputs without an architecture apply to every targeted architecture.
    Within one architecture a later input overwrites an earlier one with
    the same destination.
    """

    def __init__(
        self,
        base: OciImage,
        archs: Collection[Arch] = (),
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize a construction session.

        Args:
            base: Image to build upon.
            archs: Target architectures; empty inherits the base's own.
            now: Clock used for creation timestamps.

        Raises:
            InvalidInputError: If the base lacks a requested architecture.
        """
        self._base = base
        self._now = now
        self._staged: list[_StagedFile] = []
        self._finalized = False

        if archs:
            by_arch = {v.arch: v for v in base.variants if v.arch is not None}
            missing = sorted(a.value for a in archs if a not in by_arch)
            if missing:
                raise InvalidInputError(
                    f"base image {base.name} does not provide "
                    f"architecture(s): {', '.join(missing)}",
                    code="unsupported_arch",
                )
            self._targets = [by_arch[a] for a in archs]
        else:
            self._targets = list(base.variants)
        self._targets.sort(key=_arch_key)

    @property
    def architectures(self) -> list[Arch | None]:
        return [v.arch for v in self._targets]

    def _check_open(self) -> None:
        if self._finalized:
            raise BugError("construction session was already finalized")

    def add(self, inputs: Iterable[Input]) -> None:
        """Append a batch of inputs, reading and closing each handle.

        Raises:
            UnexpectedError: If reading an input fails.
        """
        self._check_open()
        for item in inputs:
            with closing(item.reader) as reader:
                try:
                    data = reader.read()
                except OSError as e:
                    raise UnexpectedError(
                        f"failed to read input for {item.to}: {e}",
                        code="io_error",
                        cause=e,
                    ) from e
            self._staged.append(_StagedFile(item.arch, item.to, data, item.mode))
            logger.debug("Staged %s (%d bytes, arch=%s)", item.to, len(data), item.arch)

    def _build_variant(
        self,
        base: ImageVariant,
        created: datetime,
        annotations: dict[str, str] | None,
    ) -> ImageVariant:
        if base.manifest is None:
            raise BugError(
                f"base variant {base.digest} has no manifest", code="missing_manifest"
            )
        try:
            base_manifest = ImageManifest.model_validate_json(base.manifest)
        except ValidationError as e:
            raise UnexpectedError(
                f"base manifest {base.digest} is malformed: {e}", cause=e
            ) from e

        entries: dict[str, tuple[bytes, int]] = {}
        for staged in self._staged:
            if staged.arch is None or staged.arch == base.arch:
                # Re-insert so archive order follows the last write
                entries.pop(staged.to, None)
                entries[staged.to] = (staged.data, staged.mode)

        config = _load_config(base)
        layers = list(base.layers)
        descriptors = list(base_manifest.layers)
        history = config.setdefault("history", [])
        if entries:
            layer, diff_id = build_layer(entries)
            layers.append(layer)
            descriptors.append(layer.descriptor())
            rootfs = config.setdefault("rootfs", {"type": "layers"})
            rootfs.setdefault("diff_ids", []).append(diff_id)
            history.append(
                {
                    "created": created.isoformat(),
                    "created_by": CREATED_BY,
                    "comment": f"added {len(entries)} file(s)",
                }
            )
        else:
            history.append(
                {
                    "created": created.isoformat(),
                    "created_by": CREATED_BY,
                    "empty_layer": True,
                }
            )
        config["created"] = created.isoformat()

        config_blob = Blob(
            OCI_CONFIG, json.dumps(config, separators=(",", ":")).encode("utf-8")
        )
        manifest = ImageManifest(
            config=config_blob.descriptor(),
            layers=descriptors,
            annotations=annotations,
        ).to_json_bytes()
        return ImageVariant(
            arch=base.arch,
            digest=compute_digest(manifest),
            manifest=manifest,
            config=config_blob,
            layers=layers,
        )

    def build(self, name: ImageName) -> OciImage:
        """Finalize the session into a new image and persist it.

        Args:
            name: Name and tags of the new image.

        Returns:
            The constructed image.

        Raises:
            BugError: If the session was already finalized or has no cache.
        """
        self._check_open()
        self._finalized = True
        cache = self._base.cache
        if cache is None:
            raise BugError(f"base image {self._base.name} is not bound to a cache")

        created = self._now()
        annotations = naming_annotations(name, created)

        if len(self._targets) == 1:
            variant = self._build_variant(self._targets[0], created, annotations)
            image = OciImage(
                name=name,
                created=created,
                variants=[variant],
                manifest=variant.manifest,
                content_digest=variant.digest,
                cache=cache,
            )
        else:
            variants = [self._build_variant(t, created, None) for t in self._targets]
            index = ImageIndex(
                manifests=[_index_entry(v) for v in variants],
                annotations=annotations,
            ).to_json_bytes()
            image = OciImage(
                name=name,
                created=created,
                variants=variants,
                manifest=index,
                content_digest=compute_digest(index),
                is_index=True,
                cache=cache,
            )

        logger.info(
            "Constructed %s for %s with %d staged file(s)",
            name,
            ", ".join(_arch_key(v) or "native" for v in image.variants),
            len(self._staged),
        )
        cache.persist(image)
        return image


__all__ = ["CREATED_BY", "OciConstruction", "OciImage", "build_layer", "utcnow"]
