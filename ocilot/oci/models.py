"""OCI document models and in-memory image data.

Descriptors, manifests and indexes are pydantic models using the camelCase
field names of the OCI image spec. Unknown fields are preserved so that
documents read from a registry survive a round-trip.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Any, BinaryIO

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ocilot.types import Arch

# Manifest and index media types
OCI_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
OCI_INDEX = "application/vnd.oci.image.index.v1+json"
DOCKER_MANIFEST = "application/vnd.docker.distribution.manifest.v2+json"
DOCKER_MANIFEST_LIST = "application/vnd.docker.distribution.manifest.list.v2+json"

MANIFEST_MEDIA_TYPES = (OCI_MANIFEST, DOCKER_MANIFEST)
INDEX_MEDIA_TYPES = (OCI_INDEX, DOCKER_MANIFEST_LIST)

# Config media types
OCI_CONFIG = "application/vnd.oci.image.config.v1+json"
DOCKER_CONFIG = "application/vnd.docker.container.image.v1+json"

# Layer media types
DOCKER_LAYER_GZIP = "application/vnd.docker.image.rootfs.diff.tar.gzip"
OCI_LAYER_GZIP = "application/vnd.oci.image.layer.v1.tar+gzip"
OCI_LAYER_TAR = "application/vnd.oci.image.layer.v1.tar"

ACCEPTED_LAYER_MEDIA_TYPES = frozenset(
    {DOCKER_LAYER_GZIP, OCI_LAYER_GZIP, OCI_LAYER_TAR}
)

# Annotations carrying local naming metadata
ANNOTATION_REF_NAME = "org.opencontainers.image.ref.name"
ANNOTATION_CREATED = "org.opencontainers.image.created"
ANNOTATION_TAGS = "dev.ocilot.image.tags"

DIGEST_ALGORITHM = "sha256"


def compute_digest(data: bytes) -> str:
    """Return the 'sha256:<hex>' digest of some bytes."""
    return f"{DIGEST_ALGORITHM}:{hashlib.sha256(data).hexdigest()}"


def bare_digest(digest: str) -> str:
    """Strip the 'sha256:' algorithm prefix from a digest, if present."""
    return digest.removeprefix(f"{DIGEST_ALGORITHM}:")


class OciModel(BaseModel):
    """Base model for OCI JSON documents."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_json_bytes(self) -> bytes:
        """Serialize using OCI field names, omitting unset optionals."""
        return self.model_dump_json(by_alias=True, exclude_none=True).encode("utf-8")


class Platform(OciModel):
    """Platform of a manifest referenced from an index."""

    architecture: str
    os: str
    variant: str | None = None


class Descriptor(OciModel):
    """Reference to a content-addressed blob or manifest."""

    media_type: str
    digest: str
    size: int
    platform: Platform | None = None
    annotations: dict[str, str] | None = None


class ImageManifest(OciModel):
    """Single-architecture image manifest."""

    schema_version: int = 2
    media_type: str | None = OCI_MANIFEST
    config: Descriptor
    layers: list[Descriptor] = Field(default_factory=list)
    annotations: dict[str, str] | None = None


class ImageIndex(OciModel):
    """Index (manifest list) referencing per-architecture manifests."""

    schema_version: int = 2
    media_type: str | None = OCI_INDEX
    manifests: list[Descriptor] = Field(default_factory=list)
    annotations: dict[str, str] | None = None


@dataclass
class Blob:
    """Content-addressed bytes with their media type."""

    media_type: str
    data: bytes
    digest: str = ""

    def __post_init__(self) -> None:
        if not self.digest:
            self.digest = compute_digest(self.data)

    def descriptor(self, **extra: Any) -> Descriptor:
        return Descriptor(
            media_type=self.media_type,
            digest=self.digest,
            size=len(self.data),
            **extra,
        )


@dataclass
class ImageVariant:
    """One architecture-specific image: manifest, config and layers.

    Attributes:
        arch: Architecture of this variant, when it is a known one.
        digest: Digest of the manifest document.
        manifest: Serialized manifest, exactly as stored.
        config: Config blob.
        layers: Layer blobs in stacking order.
    """

    arch: Arch | None
    digest: str
    manifest: bytes | None
    config: Blob
    layers: list[Blob] = field(default_factory=list)


@dataclass
class Input:
    """A file to add to a construction session.

    Attributes:
        reader: Open binary handle; consumed and closed by the session.
        to: Absolute path of the file inside the image.
        arch: Architecture the input is limited to, or None for all.
        mode: Permission bits of the file inside the image.
    """

    reader: BinaryIO
    to: str
    arch: Arch | None = None
    mode: int = 0o644


__all__ = [
    "ACCEPTED_LAYER_MEDIA_TYPES",
    "ANNOTATION_CREATED",
    "ANNOTATION_REF_NAME",
    "ANNOTATION_TAGS",
    "Blob",
    "DOCKER_CONFIG",
    "DOCKER_LAYER_GZIP",
    "DOCKER_MANIFEST",
    "DOCKER_MANIFEST_LIST",
    "Descriptor",
    "INDEX_MEDIA_TYPES",
    "ImageIndex",
    "ImageManifest",
    "ImageVariant",
    "Input",
    "MANIFEST_MEDIA_TYPES",
    "OCI_CONFIG",
    "OCI_INDEX",
    "OCI_LAYER_GZIP",
    "OCI_LAYER_TAR",
    "OCI_MANIFEST",
    "Platform",
    "bare_digest",
    "compute_digest",
]
