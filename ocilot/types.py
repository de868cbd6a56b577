"""Shared type definitions for ocilot.

This module contains the immutable request types (Build, Artifact,
ImageName), the per-invocation payload types (Part, Payload) and the
result types shared across subpackages to avoid circular imports.
"""

from __future__ import annotations

import posixpath
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path, PurePosixPath

from ocilot.errors import InvalidInputError

DEFAULT_TAG = "latest"


class Arch(str, Enum):
    """Target CPU architecture, named as in OCI platform descriptors."""

    AMD64 = "amd64"
    ARM64 = "arm64"
    PPC64LE = "ppc64le"
    S390X = "s390x"

    @classmethod
    def parse(cls, value: str) -> Arch:
        """Parse an architecture name, ignoring case.

        Args:
            value: Textual architecture, e.g. 'amd64' or 'ARM64'.

        Returns:
            Matching Arch member.

        Raises:
            InvalidInputError: If the name is not a known architecture.
        """
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise InvalidInputError(
                f"unknown arch: {value}", code="unknown_arch"
            ) from None


class BuildOutcome(str, Enum):
    """How an orchestrated build obtained its image."""

    CACHED = "cached"
    REAL = "real"


@dataclass(frozen=True)
class Artifact:
    """A user-declared mapping of host content to image content.

    Identity is defined over the pattern text as written, so two artifacts
    with the same source string are equal regardless of how the pattern
    would be compiled.

    Attributes:
        source: Literal host path or glob pattern.
        arch: Optional architecture the artifact is limited to.
        destination: Optional path inside the image.
    """

    source: str
    arch: Arch | None = None
    destination: str | None = None

    def __post_init__(self) -> None:
        if not self.source:
            raise InvalidInputError("artifact source must not be empty")

    def __str__(self) -> str:
        text = self.source
        if self.arch is not None:
            text = f"{self.arch.value}:{text}"
        if self.destination is not None:
            text = f"{text}:{self.destination}"
        return text


@dataclass(frozen=True)
class ImageName:
    """Fully-qualified target image identity.

    An empty tag set defaults to {'latest'}.
    """

    image: str
    tags: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        tags = frozenset(t for t in self.tags if t)
        object.__setattr__(self, "tags", tags or frozenset({DEFAULT_TAG}))

    def references(self) -> list[str]:
        """Return 'image:tag' strings in sorted tag order."""
        return [f"{self.image}:{tag}" for tag in sorted(self.tags)]

    def __str__(self) -> str:
        return f"{self.image}:{','.join(sorted(self.tags))}"


@dataclass(frozen=True)
class Build:
    """One build request.

    Artifacts keep their first-seen order with duplicates collapsed; that
    order decides which input wins when destinations collide.

    Attributes:
        base: Source image reference.
        image: Target image name and tags.
        artifacts: Artifacts to layer onto the base image.
        arch: Target architectures; empty means the base image's own.
    """

    base: str
    image: ImageName
    artifacts: tuple[Artifact, ...] = ()
    arch: frozenset[Arch] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        object.__setattr__(self, "artifacts", tuple(dict.fromkeys(self.artifacts)))
        object.__setattr__(self, "arch", frozenset(self.arch))


@dataclass(frozen=True)
class Part:
    """One resolved occurrence of an artifact.

    Attributes:
        source: Concrete host path.
        arch: Architecture inherited from the artifact.
        destination: Destination inherited from the artifact.
        from_pattern: Whether the path came from a glob match.
    """

    source: Path
    arch: Arch | None = None
    destination: str | None = None
    from_pattern: bool = False

    def target_path(self, cwd: Path | None = None) -> str:
        """Compute the path of this part inside the image.

        An explicit destination is used verbatim unless it names a
        directory (trailing '/' or a glob match), in which case the file
        name is appended. Without a destination the source keeps its
        layout relative to the working directory; sources outside it keep
        their absolute path without the anchor.

        Args:
            cwd: Directory relative sources are laid out from.

        Returns:
            Absolute POSIX path inside the image.
        """
        if self.destination:
            dest = PurePosixPath("/") / self.destination
            if self.from_pattern or self.destination.endswith("/"):
                dest = dest / self.source.name
            return posixpath.normpath(dest.as_posix())

        source = self.source
        if not source.is_absolute() and ".." in source.parts:
            source = (cwd or Path.cwd()) / source
        if source.is_absolute():
            base = (cwd or Path.cwd()).resolve()
            resolved = source.resolve()
            try:
                source = resolved.relative_to(base)
            except ValueError:
                source = resolved.relative_to(resolved.anchor)
        return (PurePosixPath("/") / source.as_posix()).as_posix()


@dataclass
class Payload:
    """The resolved input set for one build, in artifact order."""

    parts: list[Part] = field(default_factory=list)

    def extend(self, parts: Iterable[Part]) -> None:
        self.parts.extend(parts)

    def __iter__(self) -> Iterator[Part]:
        return iter(self.parts)

    def __len__(self) -> int:
        return len(self.parts)


@dataclass(frozen=True)
class CachedImage:
    """A record in the local image cache."""

    digest: str
    name: ImageName
    created: datetime


@dataclass(frozen=True)
class BuiltResult:
    """Outcome of one orchestrated build."""

    outcome: BuildOutcome
    digest: str

    @classmethod
    def cached(cls, digest: str) -> BuiltResult:
        return cls(BuildOutcome.CACHED, digest)

    @classmethod
    def real(cls, digest: str) -> BuiltResult:
        return cls(BuildOutcome.REAL, digest)

    @property
    def is_cached(self) -> bool:
        return self.outcome is BuildOutcome.CACHED


__all__ = [
    "Arch",
    "Artifact",
    "Build",
    "BuildOutcome",
    "BuiltResult",
    "CachedImage",
    "DEFAULT_TAG",
    "ImageName",
    "Part",
    "Payload",
]
