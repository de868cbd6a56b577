"""Artifact resolution against the host filesystem.

An artifact source naming an existing regular file resolves to exactly that
file. Anything else is treated as a glob pattern relative to the working
directory (or anchored at the filesystem root for absolute patterns).
"""

from __future__ import annotations

import logging
from pathlib import Path

from ocilot.errors import InvalidInputError, UnexpectedError
from ocilot.types import Artifact

logger = logging.getLogger(__name__)


def split_pattern(source: str) -> tuple[Path, str]:
    """Split a pattern into a walk root and a relative pattern.

    Args:
        source: Glob pattern as written by the user.

    Returns:
        Tuple of (directory to walk from, pattern relative to it).
    """
    path = Path(source)
    if path.is_absolute():
        return Path(path.anchor), str(path.relative_to(path.anchor))
    return Path(), source


class GlobArtifactResolver:
    """Resolve artifacts to host files using pathlib glob matching."""

    def resolve(self, artifact: Artifact) -> list[Path]:
        """Expand an artifact to the regular files it names.

        Args:
            artifact: Artifact to resolve.

        Returns:
            Matching file paths, sorted; empty when nothing matches.

        Raises:
            InvalidInputError: If the pattern is malformed.
            UnexpectedError: If walking the filesystem fails.
        """
        literal = Path(artifact.source)
        if literal.is_file():
            logger.debug("Artifact %s is a literal file", artifact)
            return [literal]

        root, pattern = split_pattern(artifact.source)
        try:
            matches = sorted(p for p in root.glob(pattern) if p.is_file())
        except (ValueError, NotImplementedError) as e:
            raise InvalidInputError(
                f"malformed pattern {artifact.source!r}: {e}",
                code="malformed_pattern",
                cause=e,
            ) from e
        except OSError as e:
            raise UnexpectedError(
                f"failed to walk {root} for {artifact.source!r}: {e}",
                code="walk_error",
                cause=e,
            ) from e

        logger.debug("Artifact %s matched %d file(s)", artifact, len(matches))
        return matches


__all__ = ["GlobArtifactResolver", "split_pattern"]
