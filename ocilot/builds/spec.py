"""Build request parsing from command-line values.

Artifacts use a small colon-separated syntax:

    <from>                 host path or glob, same layout inside the image
    <from>:<to>            host path or glob copied to <to>
    <arch>:<from>:<to>     as above, applied to one architecture only
"""

from __future__ import annotations

from collections.abc import Iterable

from ocilot.errors import InvalidInputError
from ocilot.types import Arch, Artifact, Build, ImageName

ARTIFACT_SEPARATOR = ":"
MAX_ARTIFACT_SEGMENTS = 3


def parse_arch(value: str) -> Arch:
    """Parse an architecture name, ignoring case."""
    return Arch.parse(value)


def parse_artifact_spec(raw: str) -> Artifact:
    """Parse an artifact specification.

    Args:
        raw: Specification such as 'file.txt', 'file.txt:/usr/lib/file.txt'
             or 'amd64:bin/app:/usr/bin/app'.

    Returns:
        Parsed Artifact.

    Raises:
        InvalidInputError: If the specification is malformed or names an
                           unknown architecture.
    """
    segments = raw.split(ARTIFACT_SEPARATOR)
    if len(segments) > MAX_ARTIFACT_SEGMENTS or not all(segments):
        raise InvalidInputError(
            f"invalid format for artifact: {raw!r}", code="invalid_artifact_spec"
        )

    if len(segments) == 1:
        return Artifact(source=segments[0])
    if len(segments) == 2:
        source, destination = segments
        return Artifact(source=source, destination=destination)
    arch, source, destination = segments
    return Artifact(source=source, arch=parse_arch(arch), destination=destination)


def make_build(
    base: str,
    artifacts: Iterable[str],
    image: str,
    tags: Iterable[str] = (),
    archs: Iterable[str] = (),
) -> Build:
    """Assemble a build request from raw command-line values.

    Args:
        base: Base image reference.
        artifacts: Artifact specifications, in order.
        image: Target image name.
        tags: Target tags; empty means 'latest'.
        archs: Target architecture names; empty means the base's own.

    Returns:
        Build request.

    Raises:
        InvalidInputError: If any value is malformed.
    """
    if not base.strip():
        raise InvalidInputError(
            "base image must not be empty", code="invalid_reference"
        )
    if not image.strip():
        raise InvalidInputError(
            "image name must not be empty", code="invalid_image_name"
        )

    return Build(
        base=base.strip(),
        image=ImageName(image.strip(), frozenset(tags)),
        artifacts=tuple(parse_artifact_spec(a) for a in artifacts),
        arch=frozenset(parse_arch(a) for a in archs),
    )


__all__ = ["make_build", "parse_arch", "parse_artifact_spec"]
