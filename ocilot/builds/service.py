"""Build service module.

This module provides the high-level build API:
- Builder.execute(): build with cache awareness
- Opening payload files as construction inputs
- Wiring the concrete filesystem, registry and cache backends

One invocation goes through these states, never re-entering one:

    start -> payload built -> cache hit -> done
                           -> cache miss -> base fetched -> inputs opened
                              -> constructed -> done

Any failure ends the invocation with the originating error.
"""

from __future__ import annotations

import logging
from contextlib import ExitStack
from pathlib import Path
from typing import TYPE_CHECKING

from ocilot.builds.interfaces import ArtifactResolver, FileStore, ImageCache, Registry
from ocilot.builds.payload import build_payload, lookup_cached
from ocilot.files import GlobArtifactResolver, LocalFileStore
from ocilot.oci import DirectoryImageCache, RegistryClient
from ocilot.oci.models import Input
from ocilot.types import Build, BuiltResult, Payload

if TYPE_CHECKING:
    import httpx

    from ocilot.config import Settings

logger = logging.getLogger(__name__)


def open_inputs(
    payload: Payload, files: FileStore, cwd: Path | None = None
) -> list[Input]:
    """Open every part of a payload for reading.

    If any file fails to open, handles opened so far are closed.

    Args:
        payload: Resolved payload.
        files: File store used to open and inspect files.
        cwd: Directory relative sources are laid out from.

    Returns:
        Inputs in payload order.

    Raises:
        UnexpectedError: If a file cannot be opened or inspected.
    """
    with ExitStack() as stack:
        inputs = []
        for part in payload:
            reader = stack.enter_context(files.read(part.source))
            inputs.append(
                Input(
                    reader=reader,
                    to=part.target_path(cwd),
                    arch=part.arch,
                    mode=files.mode(part.source),
                )
            )
        stack.pop_all()
    return inputs


class Builder:
    """Orchestrates one build over injected backends."""

    def __init__(
        self,
        resolver: ArtifactResolver,
        files: FileStore,
        registry: Registry,
        cache: ImageCache,
    ) -> None:
        """Initialize Builder.

        Args:
            resolver: Resolves artifacts to host paths.
            files: Reads host files and their metadata.
            registry: Fetches base images.
            cache: Lists and stores images.
        """
        self.resolver = resolver
        self.files = files
        self.registry = registry
        self.cache = cache

    def execute(self, build: Build) -> BuiltResult:
        """Build an image, reusing a cached one when inputs are unchanged.

        Args:
            build: Build request.

        Returns:
            BuiltResult tagged cached or real, with the image digest.

        Raises:
            InvalidInputError: If the request cannot be satisfied as given.
            UnexpectedError: If the filesystem, registry or cache fails.
            BugError: If an internal invariant is violated.
        """
        logger.info("Building %s from %s", build.image, build.base)

        payload = build_payload(build, self.resolver)

        cached = lookup_cached(payload, build.image, self.cache, self.files)
        if cached is not None:
            logger.info("Reusing cached image %s", cached.digest[:16])
            return BuiltResult.cached(cached.digest)

        base = self.registry.fetch(build.base, build.arch)
        construction = base.construct_new(build.arch)

        inputs = open_inputs(payload, self.files)
        try:
            construction.add(inputs)
        finally:
            for item in inputs:
                item.reader.close()

        image = construction.build(build.image)
        logger.info("Built %s as %s", build.image, image.digest[:16])
        return BuiltResult.real(image.digest)


def create_builder(settings: Settings, client: httpx.Client) -> Builder:
    """Create a Builder over the local filesystem and an HTTP registry.

    Args:
        settings: Application settings.
        client: HTTPX client used for registry access; owned by the caller.

    Returns:
        Configured Builder.
    """
    cache = DirectoryImageCache(settings.cache_dir)
    registry = RegistryClient(
        client,
        cache,
        insecure_registries=settings.insecure_registries,
    )
    return Builder(
        resolver=GlobArtifactResolver(),
        files=LocalFileStore(),
        registry=registry,
        cache=cache,
    )


__all__ = ["Builder", "create_builder", "open_inputs"]
