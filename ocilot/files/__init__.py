"""Host filesystem access.

This module handles:
- Resolving artifact paths and glob patterns to files
- Reading file content, modification times and modes
"""

from ocilot.files.resolver import GlobArtifactResolver
from ocilot.files.store import LocalFileStore

__all__ = ["GlobArtifactResolver", "LocalFileStore"]
