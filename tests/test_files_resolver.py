"""Tests for artifact resolution against the filesystem."""

from pathlib import Path

import pytest

from ocilot.errors import InvalidInputError, UnexpectedError
from ocilot.files.resolver import GlobArtifactResolver, split_pattern
from ocilot.types import Artifact


@pytest.fixture
def workdir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Create a small tree and make it the working directory."""
    (tmp_path / "src" / "pkg").mkdir(parents=True)
    (tmp_path / "src" / "a.py").write_text("a")
    (tmp_path / "src" / "b.py").write_text("b")
    (tmp_path / "src" / "pkg" / "c.py").write_text("c")
    (tmp_path / "src" / "notes.txt").write_text("n")
    (tmp_path / "src" / "dir.py").mkdir()
    monkeypatch.chdir(tmp_path)
    return tmp_path


class TestSplitPattern:
    """Tests for split_pattern function."""

    def test_relative(self) -> None:
        """Relative patterns walk from the working directory."""
        assert split_pattern("src/*.py") == (Path(), "src/*.py")

    def test_absolute(self) -> None:
        """Absolute patterns walk from the filesystem root."""
        root, pattern = split_pattern("/opt/app/*.so")
        assert root == Path("/")
        assert pattern == "opt/app/*.so"


class TestGlobArtifactResolver:
    """Tests for GlobArtifactResolver."""

    def test_literal_file(self, workdir: Path) -> None:
        """An existing file resolves to exactly itself."""
        paths = GlobArtifactResolver().resolve(Artifact(source="src/a.py"))
        assert paths == [Path("src/a.py")]

    def test_glob_matches_files_only(self, workdir: Path) -> None:
        """Glob results exclude directories and are sorted."""
        paths = GlobArtifactResolver().resolve(Artifact(source="src/*.py"))
        assert paths == [Path("src/a.py"), Path("src/b.py")]

    def test_recursive_glob(self, workdir: Path) -> None:
        """'**' should descend into subdirectories."""
        paths = GlobArtifactResolver().resolve(Artifact(source="src/**/*.py"))
        assert Path("src/pkg/c.py") in paths
        assert Path("src/a.py") in paths

    def test_absolute_pattern(self, workdir: Path) -> None:
        """Absolute patterns should resolve to absolute paths."""
        paths = GlobArtifactResolver().resolve(
            Artifact(source=str(workdir / "src" / "*.txt"))
        )
        assert [p.name for p in paths] == ["notes.txt"]
        assert all(p.is_absolute() for p in paths)

    def test_no_match(self, workdir: Path) -> None:
        """A pattern matching nothing yields an empty list."""
        assert GlobArtifactResolver().resolve(Artifact(source="missing/*.bin")) == []

    def test_malformed_pattern(
        self, workdir: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Pattern errors should be reported as invalid input."""

        def broken_glob(self, pattern):
            raise ValueError(f"Invalid pattern: {pattern}")

        monkeypatch.setattr(Path, "glob", broken_glob)
        with pytest.raises(InvalidInputError) as exc_info:
            GlobArtifactResolver().resolve(Artifact(source="src/[*.py"))
        assert exc_info.value.code == "malformed_pattern"

    def test_walk_error(self, workdir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Filesystem errors while walking should be unexpected errors."""

        def failing_glob(self, pattern):
            raise PermissionError("denied")

        monkeypatch.setattr(Path, "glob", failing_glob)
        with pytest.raises(UnexpectedError) as exc_info:
            GlobArtifactResolver().resolve(Artifact(source="src/*.py"))
        assert exc_info.value.code == "walk_error"
