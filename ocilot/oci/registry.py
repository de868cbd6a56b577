"""Anonymous pulls from OCI distribution registries.

This module handles:
- Manifest and index retrieval with Bearer token challenges
- Platform selection from multi-architecture indexes
- Blob download with digest verification
- Persisting every fetched image into the local cache before returning it
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable, Collection, Iterable
from datetime import datetime, timezone
from typing import Any, NoReturn

import httpx
from pydantic import ValidationError

from ocilot import __version__
from ocilot.config import Settings
from ocilot.errors import InvalidInputError, UnexpectedError
from ocilot.oci.cache import DirectoryImageCache, naming_annotations
from ocilot.oci.image import OciImage, utcnow
from ocilot.oci.models import (
    ACCEPTED_LAYER_MEDIA_TYPES,
    INDEX_MEDIA_TYPES,
    MANIFEST_MEDIA_TYPES,
    Blob,
    Descriptor,
    ImageIndex,
    ImageManifest,
    ImageVariant,
    compute_digest,
)
from ocilot.oci.reference import Reference, parse_reference
from ocilot.types import Arch

logger = logging.getLogger(__name__)

USER_AGENT = f"ocilot/{__version__}"

# Accept header sent with manifest requests
MANIFEST_ACCEPT = ", ".join((*MANIFEST_MEDIA_TYPES, *INDEX_MEDIA_TYPES))

DIGEST_HEADER = "Docker-Content-Digest"
PLATFORM_OS = "linux"
LOCAL_HOSTS = frozenset({"localhost", "127.0.0.1", "[::1]"})

_CHALLENGE_PARAM = re.compile(r'(\w+)="([^"]*)"')


def create_http_client(settings: Settings) -> httpx.Client:
    """Create the HTTP client used for registry access.

    Args:
        settings: Application settings.

    Returns:
        Configured httpx client; the caller owns and closes it.
    """
    return httpx.Client(
        timeout=settings.fetch_timeout,
        follow_redirects=True,
        headers={"User-Agent": USER_AGENT},
    )


def parse_challenge(header: str) -> dict[str, str] | None:
    """Parse a Bearer WWW-Authenticate challenge.

    Args:
        header: Value of the WWW-Authenticate header.

    Returns:
        Challenge parameters (realm, service, scope), or None when the
        challenge is not a Bearer challenge.
    """
    scheme, _, params = header.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    return dict(_CHALLENGE_PARAM.findall(params))


def _parse_created(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    # Registries commonly emit nanosecond precision
    text = re.sub(r"(\.\d{6})\d+", r"\1", value)
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        created = datetime.fromisoformat(text)
    except ValueError:
        return None
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return created


def _known_arch(value: str | None) -> Arch | None:
    try:
        return Arch(value) if value else None
    except ValueError:
        return None


def _verify(digest: str, data: bytes, what: str) -> None:
    actual = compute_digest(data)
    if actual != digest:
        raise UnexpectedError(
            f"{what} digest mismatch: expected {digest}, got {actual}",
            code="digest_mismatch",
        )


def _annotate(document: bytes, annotations: dict[str, str]) -> bytes:
    content = json.loads(document)
    content["annotations"] = {**(content.get("annotations") or {}), **annotations}
    return json.dumps(content, separators=(",", ":")).encode("utf-8")


class _PullSession:
    """Requests against one repository, sharing a pull token."""

    def __init__(self, client: httpx.Client, reference: Reference, scheme: str) -> None:
        self._client = client
        self._reference = reference
        self._base_url = f"{scheme}://{reference.api_host}/v2/{reference.repository}"
        self._token: str | None = None

    def _headers(self, accept: str | None) -> dict[str, str]:
        headers = {}
        if accept:
            headers["Accept"] = accept
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _authenticate(self, response: httpx.Response) -> bool:
        challenge = parse_challenge(response.headers.get("WWW-Authenticate", ""))
        if not challenge or "realm" not in challenge:
            return False
        params = {
            "scope": challenge.get(
                "scope", f"repository:{self._reference.repository}:pull"
            )
        }
        if "service" in challenge:
            params["service"] = challenge["service"]

        logger.debug("Requesting pull token from %s", challenge["realm"])
        token_response = self._client.get(challenge["realm"], params=params)
        token_response.raise_for_status()
        body = token_response.json()
        token = body.get("token") or body.get("access_token")
        if not token:
            raise UnexpectedError(
                f"token endpoint {challenge['realm']} returned no token",
                code="registry_error",
            )
        self._token = token
        return True

    def get(self, path: str, accept: str | None = None) -> httpx.Response:
        url = f"{self._base_url}/{path}"
        response = self._client.get(url, headers=self._headers(accept))
        if response.status_code == 401 and self._token is None:
            if self._authenticate(response):
                response = self._client.get(url, headers=self._headers(accept))
        response.raise_for_status()
        return response

    def manifest(self, target: str) -> httpx.Response:
        return self.get(f"manifests/{target}", MANIFEST_ACCEPT)

    def blob(self, descriptor: Descriptor) -> Blob:
        response = self.get(f"blobs/{descriptor.digest}")
        _verify(descriptor.digest, response.content, f"blob {descriptor.media_type}")
        return Blob(descriptor.media_type, response.content, descriptor.digest)


class RegistryClient:
    """Registry client that caches everything it pulls.

    The HTTP client is injected and owned by the caller.
    """

    def __init__(
        self,
        client: httpx.Client,
        cache: DirectoryImageCache,
        insecure_registries: Iterable[str] = (),
        accepted_layer_media_types: Collection[str] = ACCEPTED_LAYER_MEDIA_TYPES,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize RegistryClient.

        Args:
            client: HTTPX client instance.
            cache: Cache that fetched images are persisted into.
            insecure_registries: Registry hosts reached over plain HTTP.
            accepted_layer_media_types: Layer media types that may be pulled.
            now: Clock used when an image has no creation time.
        """
        self.client = client
        self.cache = cache
        self.insecure_registries = frozenset(insecure_registries)
        self.accepted_layer_media_types = frozenset(accepted_layer_media_types)
        self._now = now

    def _scheme(self, reference: Reference) -> str:
        host = reference.registry.rsplit(":", 1)[0]
        if (
            reference.registry in self.insecure_registries
            or host in self.insecure_registries
            or host in LOCAL_HOSTS
        ):
            return "http"
        return "https"

    def fetch(self, reference: str, archs: Collection[Arch] = ()) -> OciImage:
        """Pull an image and persist it into the cache.

        Args:
            reference: Possibly-short image reference.
            archs: Architectures to select from an index; empty selects
                   every known Linux architecture.

        Returns:
            The fetched image, already persisted.

        Raises:
            InvalidInputError: If the reference is malformed or no usable
                               architecture is available.
            UnexpectedError: If the registry, the transport or a document
                             fails.
        """
        ref = parse_reference(reference)
        logger.info("Fetching %s", ref)
        session = _PullSession(self.client, ref, self._scheme(ref))

        try:
            image = self._pull(session, ref, frozenset(archs))
        except httpx.HTTPStatusError as e:
            raise UnexpectedError(
                f"HTTP error fetching {ref}: "
                f"{e.response.status_code} {e.response.reason_phrase}",
                code="registry_error",
                cause=e,
            ) from e
        except httpx.TimeoutException as e:
            raise UnexpectedError(
                f"Timeout fetching {ref}", code="timeout", cause=e
            ) from e
        except httpx.RequestError as e:
            raise UnexpectedError(
                f"Network error fetching {ref}: {e}", code="network_error", cause=e
            ) from e
        except (ValidationError, ValueError) as e:
            raise UnexpectedError(
                f"Malformed document fetching {ref}: {e}",
                code="invalid_document",
                cause=e,
            ) from e

        self.cache.persist(image)
        logger.info(
            "Fetched %s (%s) for %s",
            ref,
            image.digest[:16],
            ", ".join(a.value for a in image.architectures) or "unknown arch",
        )
        return image

    def publish(self, reference: str) -> NoReturn:
        """Push an image to a registry. Not supported yet.

        Raises:
            UnexpectedError: Always.
        """
        raise UnexpectedError(
            f"publishing {reference} is not yet implemented", code="not_implemented"
        )

    def _pull(
        self, session: _PullSession, ref: Reference, archs: frozenset[Arch]
    ) -> OciImage:
        response = session.manifest(ref.target)
        body = response.content
        computed = compute_digest(body)
        if ref.digest and computed != ref.digest:
            raise UnexpectedError(
                f"manifest digest mismatch: expected {ref.digest}, got {computed}",
                code="digest_mismatch",
            )
        digest = response.headers.get(DIGEST_HEADER) or computed

        document = json.loads(body)
        if not isinstance(document, dict):
            raise ValueError("manifest is not a JSON object")
        media_type = (
            response.headers.get("Content-Type", "").split(";")[0].strip()
            or document.get("mediaType", "")
        )
        is_index = media_type in INDEX_MEDIA_TYPES or "manifests" in document

        if is_index:
            index = ImageIndex.model_validate(document)
            variants = self._pull_index(session, index, archs)
        else:
            variants = [self._pull_variant(session, body, digest, None)]

        config = json.loads(variants[0].config.data)
        created = _parse_created(config.get("created")) or self._now()
        name = ref.image_name()
        manifest = _annotate(body, naming_annotations(name, created))
        if not is_index:
            variants[0].manifest = manifest

        return OciImage(
            name=name,
            created=created,
            variants=variants,
            manifest=manifest,
            content_digest=digest,
            is_index=is_index,
            cache=self.cache,
        )

    def _pull_index(
        self, session: _PullSession, index: ImageIndex, archs: frozenset[Arch]
    ) -> list[ImageVariant]:
        selected: dict[Arch, Descriptor] = {}
        for descriptor in index.manifests:
            platform = descriptor.platform
            if platform is None or platform.os != PLATFORM_OS:
                continue
            arch = _known_arch(platform.architecture)
            if arch is None or (archs and arch not in archs):
                continue
            selected.setdefault(arch, descriptor)

        missing = sorted(a.value for a in archs if a not in selected)
        if not selected or missing:
            wanted = ", ".join(missing) or "any known architecture"
            raise InvalidInputError(
                f"image index provides no {PLATFORM_OS} manifest for {wanted}",
                code="unsupported_arch",
            )

        variants = []
        for arch in sorted(selected, key=lambda a: a.value):
            descriptor = selected[arch]
            logger.debug("Fetching %s manifest %s", arch.value, descriptor.digest)
            body = session.manifest(descriptor.digest).content
            _verify(descriptor.digest, body, "manifest")
            variants.append(self._pull_variant(session, body, descriptor.digest, arch))
        return variants

    def _pull_variant(
        self,
        session: _PullSession,
        body: bytes,
        digest: str,
        arch: Arch | None,
    ) -> ImageVariant:
        manifest = ImageManifest.model_validate_json(body)
        for layer in manifest.layers:
            if layer.media_type not in self.accepted_layer_media_types:
                raise UnexpectedError(
                    f"unsupported layer media type: {layer.media_type}",
                    code="unsupported_media_type",
                )

        config = session.blob(manifest.config)
        if arch is None:
            arch = _known_arch(json.loads(config.data).get("architecture"))
        layers = []
        for descriptor in manifest.layers:
            logger.debug(
                "Fetching layer %s (%d bytes)", descriptor.digest, descriptor.size
            )
            layers.append(session.blob(descriptor))
        return ImageVariant(
            arch=arch, digest=digest, manifest=body, config=config, layers=layers
        )


__all__ = [
    "MANIFEST_ACCEPT",
    "RegistryClient",
    "USER_AGENT",
    "create_http_client",
    "parse_challenge",
]
