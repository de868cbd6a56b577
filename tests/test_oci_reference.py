"""Tests for image reference parsing."""

import pytest

from ocilot.errors import InvalidInputError
from ocilot.oci.reference import DOCKER_HUB_API_HOST, Reference, parse_reference
from ocilot.types import ImageName

DIGEST = "sha256:" + "a" * 64


class TestParseReference:
    """Tests for parse_reference function."""

    def test_short_name(self) -> None:
        """A bare name should default registry, namespace and tag."""
        ref = parse_reference("ubuntu")
        assert ref == Reference("docker.io", "library/ubuntu", "latest")
        assert str(ref) == "docker.io/library/ubuntu:latest"

    def test_docker_hub_user_repository(self) -> None:
        """Multi-segment Docker Hub names keep their namespace."""
        ref = parse_reference("bitnami/nginx:1.25")
        assert ref.registry == "docker.io"
        assert ref.repository == "bitnami/nginx"
        assert ref.tag == "1.25"

    def test_custom_registry(self) -> None:
        """A host-like first component is the registry."""
        ref = parse_reference("quay.io/org/app:v1")
        assert ref.registry == "quay.io"
        assert ref.repository == "org/app"
        assert ref.api_host == "quay.io"

    def test_registry_with_port(self) -> None:
        """Ports should not be mistaken for tags."""
        ref = parse_reference("localhost:5000/app")
        assert ref.registry == "localhost:5000"
        assert ref.repository == "app"
        assert ref.tag == "latest"

    def test_digest(self) -> None:
        """A digest pins the manifest and suppresses the default tag."""
        ref = parse_reference(f"ghcr.io/org/app@{DIGEST}")
        assert ref.digest == DIGEST
        assert ref.tag is None
        assert ref.target == DIGEST

    def test_docker_hub_api_host(self) -> None:
        """Docker Hub is served from its registry API host."""
        assert parse_reference("alpine").api_host == DOCKER_HUB_API_HOST
        assert parse_reference("index.docker.io/library/alpine").registry == "docker.io"

    def test_image_name(self) -> None:
        """image_name() should carry the tag."""
        assert parse_reference("alpine:3.19").image_name() == ImageName(
            "docker.io/library/alpine", frozenset({"3.19"})
        )

    @pytest.mark.parametrize(
        "text",
        ["", "UPPER/case", "app:bad tag", "app@sha256:xyz", "app::v1"],
    )
    def test_invalid(self, text: str) -> None:
        """Malformed references should be invalid input."""
        with pytest.raises(InvalidInputError) as exc_info:
            parse_reference(text)
        assert exc_info.value.code == "invalid_reference"
