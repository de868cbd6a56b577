"""Local filesystem access for resolved artifact paths."""

from __future__ import annotations

import stat
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO

from ocilot.errors import UnexpectedError


class LocalFileStore:
    """Read content and metadata of host files."""

    def read(self, path: Path) -> BinaryIO:
        """Open a file for reading.

        Raises:
            UnexpectedError: If the file cannot be opened.
        """
        try:
            return path.open("rb")
        except OSError as e:
            raise UnexpectedError(
                f"failed to open {path}: {e}", code="io_error", cause=e
            ) from e

    def modified(self, path: Path) -> datetime:
        """Return the last modification time as an aware UTC datetime.

        Raises:
            UnexpectedError: If the file cannot be inspected.
        """
        try:
            mtime = path.stat().st_mtime
        except OSError as e:
            raise UnexpectedError(
                f"failed to stat {path}: {e}", code="io_error", cause=e
            ) from e
        return datetime.fromtimestamp(mtime, timezone.utc)

    def mode(self, path: Path) -> int:
        """Return the permission bits of a file.

        Raises:
            UnexpectedError: If the file cannot be inspected.
        """
        try:
            return stat.S_IMODE(path.stat().st_mode)
        except OSError as e:
            raise UnexpectedError(
                f"failed to stat {path}: {e}", code="io_error", cause=e
            ) from e


__all__ = ["LocalFileStore"]
