"""Capability interfaces consumed by the build orchestrator.

The orchestrator only talks to these protocols. Concrete implementations
(filesystem, HTTP registry, on-disk cache) are injected at the boundary,
and tests substitute in-memory fakes.
"""

from __future__ import annotations

from collections.abc import Collection, Iterable
from datetime import datetime
from pathlib import Path
from typing import Any, BinaryIO, Protocol, runtime_checkable

from ocilot.oci.models import Input
from ocilot.types import Arch, Artifact, CachedImage, ImageName


@runtime_checkable
class ArtifactResolver(Protocol):
    """Expands an artifact into concrete host paths."""

    def resolve(self, artifact: Artifact) -> list[Path]: ...


@runtime_checkable
class FileStore(Protocol):
    """Reads host file content and metadata."""

    def read(self, path: Path) -> BinaryIO: ...

    def modified(self, path: Path) -> datetime: ...

    def mode(self, path: Path) -> int: ...


@runtime_checkable
class Construction(Protocol):
    """A single-use session layering inputs onto a base image."""

    def add(self, inputs: Iterable[Input]) -> None: ...

    def build(self, name: ImageName) -> Image: ...


@runtime_checkable
class Image(Protocol):
    """A fetched, cached or constructed image."""

    @property
    def digest(self) -> str: ...

    @property
    def name(self) -> ImageName: ...

    @property
    def created(self) -> datetime: ...

    def construct_new(self, archs: Collection[Arch] = ()) -> Construction: ...


@runtime_checkable
class Registry(Protocol):
    """Fetches base images from a remote registry."""

    def fetch(self, reference: str, archs: Collection[Arch] = ()) -> Image: ...


@runtime_checkable
class ImageCache(Protocol):
    """Lists and stores images locally."""

    def list(self) -> list[CachedImage]: ...

    def persist(self, image: Any) -> Path: ...


__all__ = [
    "ArtifactResolver",
    "Construction",
    "FileStore",
    "Image",
    "ImageCache",
    "Registry",
]
