"""Tests for the local file store."""

import os
from datetime import datetime, timezone
from pathlib import Path

import pytest

from ocilot.errors import UnexpectedError
from ocilot.files.store import LocalFileStore


class TestLocalFileStore:
    """Tests for LocalFileStore."""

    def test_read(self, tmp_path: Path) -> None:
        """read() should return an open binary handle."""
        path = tmp_path / "data.bin"
        path.write_bytes(b"\x00\x01payload")

        with LocalFileStore().read(path) as f:
            assert f.read() == b"\x00\x01payload"

    def test_read_missing(self, tmp_path: Path) -> None:
        """Opening a missing file should be an unexpected error."""
        with pytest.raises(UnexpectedError) as exc_info:
            LocalFileStore().read(tmp_path / "missing")
        assert exc_info.value.code == "io_error"

    def test_modified(self, tmp_path: Path) -> None:
        """modified() should return an aware UTC timestamp."""
        path = tmp_path / "data.txt"
        path.write_text("x")
        os.utime(path, (1_700_000_000, 1_700_000_000))

        modified = LocalFileStore().modified(path)

        assert modified == datetime.fromtimestamp(1_700_000_000, timezone.utc)
        assert modified.tzinfo is not None

    def test_modified_missing(self, tmp_path: Path) -> None:
        """Inspecting a missing file should be an unexpected error."""
        with pytest.raises(UnexpectedError):
            LocalFileStore().modified(tmp_path / "missing")

    def test_mode(self, tmp_path: Path) -> None:
        """mode() should return permission bits only."""
        path = tmp_path / "run.sh"
        path.write_text("#!/bin/sh\n")
        path.chmod(0o755)

        assert LocalFileStore().mode(path) == 0o755
