"""Ocilot - build OCI images without a container engine.

This package pulls a base image from a registry, layers host artifacts
onto it for one or more CPU architectures, and keeps the result in a
content-addressed local cache for incremental rebuilds.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
