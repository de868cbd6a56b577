"""Shared test fixtures for ocilot."""

from __future__ import annotations

import io
import json
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO

import pytest

from ocilot.errors import UnexpectedError
from ocilot.oci.cache import DirectoryImageCache, naming_annotations
from ocilot.oci.image import OciImage, build_layer
from ocilot.oci.models import (
    OCI_CONFIG,
    OCI_MANIFEST,
    Blob,
    Descriptor,
    ImageIndex,
    ImageManifest,
    ImageVariant,
    Platform,
    compute_digest,
)
from ocilot.types import Arch, Artifact, CachedImage, ImageName

BASE_CREATED = datetime(2024, 1, 1, tzinfo=timezone.utc)
BASE_NAME = ImageName("docker.io/library/base", frozenset({"latest"}))


def _base_variant(arch: Arch, annotations: dict[str, str] | None) -> ImageVariant:
    release = f"/etc/{arch.value}-release"
    layer, diff_id = build_layer({release: (b"ID=base\n", 0o644)})
    config = Blob(
        OCI_CONFIG,
        json.dumps(
            {
                "architecture": arch.value,
                "os": "linux",
                "config": {"Env": ["PATH=/usr/bin"]},
                "rootfs": {"type": "layers", "diff_ids": [diff_id]},
            }
        ).encode("utf-8"),
    )
    manifest = ImageManifest(
        config=config.descriptor(),
        layers=[layer.descriptor()],
        annotations=annotations,
    ).to_json_bytes()
    return ImageVariant(
        arch=arch,
        digest=compute_digest(manifest),
        manifest=manifest,
        config=config,
        layers=[layer],
    )


@pytest.fixture
def cache(tmp_path: Path) -> DirectoryImageCache:
    """Provide an empty image cache in a temp directory."""
    return DirectoryImageCache(tmp_path / "cache")


@pytest.fixture
def make_image(
    cache: DirectoryImageCache,
) -> Callable[..., OciImage]:
    """Factory fixture: build an in-memory base image bound to the cache."""

    def _factory(
        archs: Sequence[Arch] = (Arch.AMD64,),
        name: ImageName = BASE_NAME,
        created: datetime = BASE_CREATED,
    ) -> OciImage:
        annotations = naming_annotations(name, created)
        if len(archs) == 1:
            variant = _base_variant(archs[0], annotations)
            return OciImage(
                name=name,
                created=created,
                variants=[variant],
                manifest=variant.manifest,
                content_digest=variant.digest,
                cache=cache,
            )

        variants = [_base_variant(arch, None) for arch in archs]
        index = ImageIndex(
            manifests=[
                Descriptor(
                    media_type=OCI_MANIFEST,
                    digest=v.digest,
                    size=len(v.manifest or b""),
                    platform=Platform(architecture=v.arch.value, os="linux"),
                )
                for v in variants
            ],
            annotations=annotations,
        ).to_json_bytes()
        return OciImage(
            name=name,
            created=created,
            variants=variants,
            manifest=index,
            content_digest=compute_digest(index),
            is_index=True,
            cache=cache,
        )

    return _factory


class FakeResolver:
    """In-memory artifact resolver keyed by artifact source."""

    def __init__(self) -> None:
        self.matches: dict[str, list[Path]] = {}
        self.calls: list[str] = []

    def resolve(self, artifact: Artifact) -> list[Path]:
        self.calls.append(artifact.source)
        return list(self.matches.get(artifact.source, []))


class FakeFileStore:
    """In-memory file store."""

    def __init__(self) -> None:
        self.files: dict[Path, tuple[bytes, datetime | None]] = {}
        self.opened: list[io.BytesIO] = []

    def add(self, path: str, data: bytes, modified: datetime | None) -> Path:
        self.files[Path(path)] = (data, modified)
        return Path(path)

    def read(self, path: Path) -> BinaryIO:
        if path not in self.files:
            raise UnexpectedError(f"failed to open {path}", code="io_error")
        handle = io.BytesIO(self.files[path][0])
        self.opened.append(handle)
        return handle

    def modified(self, path: Path) -> datetime:
        return self.files[path][1]  # type: ignore[return-value]

    def mode(self, path: Path) -> int:
        return 0o644


class FakeImageCache:
    """In-memory image cache."""

    def __init__(self) -> None:
        self.entries: list[CachedImage] = []
        self.persisted: list[object] = []
        self.list_error: Exception | None = None

    def list(self) -> list[CachedImage]:
        if self.list_error is not None:
            raise self.list_error
        return list(self.entries)

    def persist(self, image) -> Path:
        self.persisted.append(image)
        return Path("/dev/null")


class FakeRegistry:
    """Registry returning a prepared image and recording fetches."""

    def __init__(self, image=None) -> None:
        self.image = image
        self.fetched: list[tuple[str, frozenset[Arch]]] = []

    def fetch(self, reference: str, archs=()):
        self.fetched.append((reference, frozenset(archs)))
        if self.image is None:
            raise UnexpectedError(f"no image for {reference}", code="registry_error")
        return self.image


@pytest.fixture
def resolver() -> FakeResolver:
    """Provide an in-memory artifact resolver."""
    return FakeResolver()


@pytest.fixture
def files() -> FakeFileStore:
    """Provide an in-memory file store."""
    return FakeFileStore()


@pytest.fixture
def fake_cache() -> FakeImageCache:
    """Provide an in-memory image cache."""
    return FakeImageCache()


@pytest.fixture
def registry() -> FakeRegistry:
    """Provide a registry without a prepared image."""
    return FakeRegistry()
