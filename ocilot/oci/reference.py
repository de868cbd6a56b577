"""Image reference parsing and short-name normalisation.

Short references follow the common registry conventions:
- no registry component means docker.io
- single-segment repositories on docker.io live under library/
- no tag and no digest means the 'latest' tag
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from ocilot.errors import InvalidInputError
from ocilot.types import DEFAULT_TAG, ImageName

DEFAULT_REGISTRY = "docker.io"
DOCKER_HUB_ALIASES = frozenset({"docker.io", "index.docker.io"})
DOCKER_HUB_API_HOST = "registry-1.docker.io"
DEFAULT_NAMESPACE = "library"

_PATH_COMPONENT = r"[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*"
REPOSITORY_PATTERN = re.compile(rf"^{_PATH_COMPONENT}(?:/{_PATH_COMPONENT})*$")
TAG_PATTERN = re.compile(r"^[\w][\w.-]{0,127}$")
DIGEST_PATTERN = re.compile(r"^sha256:[a-f0-9]{64}$")


@dataclass(frozen=True)
class Reference:
    """A fully-qualified image reference.

    Attributes:
        registry: Registry host (with optional port).
        repository: Repository path inside the registry.
        tag: Tag, when the reference names one.
        digest: Manifest digest, when the reference pins one.
    """

    registry: str
    repository: str
    tag: str | None = None
    digest: str | None = None

    @property
    def api_host(self) -> str:
        """Host serving the distribution API for this registry."""
        if self.registry in DOCKER_HUB_ALIASES:
            return DOCKER_HUB_API_HOST
        return self.registry

    @property
    def image(self) -> str:
        return f"{self.registry}/{self.repository}"

    @property
    def target(self) -> str:
        """Tag or digest used to address the manifest."""
        return self.digest or self.tag or DEFAULT_TAG

    def image_name(self) -> ImageName:
        return ImageName(self.image, frozenset({self.tag or DEFAULT_TAG}))

    def __str__(self) -> str:
        text = self.image
        if self.tag:
            text = f"{text}:{self.tag}"
        if self.digest:
            text = f"{text}@{self.digest}"
        return text


def _is_registry_host(component: str) -> bool:
    return "." in component or ":" in component or component == "localhost"


def parse_reference(text: str) -> Reference:
    """Parse and normalise an image reference.

    Args:
        text: Reference such as 'ubuntu', 'quay.io/org/app:v1' or
              'ghcr.io/org/app@sha256:...'.

    Returns:
        Normalised Reference.

    Raises:
        InvalidInputError: If the reference is malformed.
    """
    remainder = text.strip()
    if not remainder:
        raise InvalidInputError(
            "image reference must not be empty", code="invalid_reference"
        )

    digest: str | None = None
    if "@" in remainder:
        remainder, digest = remainder.split("@", 1)
        if not DIGEST_PATTERN.match(digest):
            raise InvalidInputError(
                f"invalid digest in image reference: {text!r}", code="invalid_reference"
            )

    tag: str | None = None
    last_slash = remainder.rfind("/")
    last_colon = remainder.rfind(":")
    if last_colon > last_slash:
        remainder, tag = remainder[:last_colon], remainder[last_colon + 1 :]
        if not TAG_PATTERN.match(tag):
            raise InvalidInputError(
                f"invalid tag in image reference: {text!r}", code="invalid_reference"
            )

    registry = DEFAULT_REGISTRY
    first, sep, rest = remainder.partition("/")
    if sep and _is_registry_host(first):
        registry, remainder = first, rest
    if registry == "index.docker.io":
        registry = DEFAULT_REGISTRY

    repository = remainder
    if registry in DOCKER_HUB_ALIASES and "/" not in repository:
        repository = f"{DEFAULT_NAMESPACE}/{repository}"
    if not REPOSITORY_PATTERN.match(repository):
        raise InvalidInputError(
            f"invalid repository in image reference: {text!r}", code="invalid_reference"
        )

    if tag is None and digest is None:
        tag = DEFAULT_TAG
    return Reference(registry=registry, repository=repository, tag=tag, digest=digest)


__all__ = [
    "DEFAULT_REGISTRY",
    "DOCKER_HUB_API_HOST",
    "Reference",
    "parse_reference",
]
