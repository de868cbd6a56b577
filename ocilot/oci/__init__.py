"""OCI image backend.

This module handles:
- Image reference parsing and normalisation
- Anonymous registry pulls
- The content-addressed local image cache
- Multi-architecture image construction
"""

from ocilot.oci.cache import DirectoryImageCache
from ocilot.oci.image import OciConstruction, OciImage, build_layer
from ocilot.oci.models import Blob, ImageVariant, Input
from ocilot.oci.reference import Reference, parse_reference
from ocilot.oci.registry import RegistryClient, create_http_client

__all__ = [
    # Models
    "Blob",
    "ImageVariant",
    "Input",
    # References
    "Reference",
    "parse_reference",
    # Cache
    "DirectoryImageCache",
    # Images
    "OciConstruction",
    "OciImage",
    "build_layer",
    # Registry
    "RegistryClient",
    "create_http_client",
]
