"""Tests for version lookup."""

from __future__ import annotations

from pathlib import Path

from formwork._version import _version_from_pyproject, get_version


class TestVersionLookup:
    """Installed metadata with a pyproject fallback."""

    def test_get_version(self) -> None:
        assert get_version().count(".") >= 2

    def test_reads_project_table(self, tmp_path: Path) -> None:
        path = tmp_path / "pyproject.toml"
        path.write_text('[project]\nname = "formwork"\nversion = "1.2.3"\n', encoding="utf-8")
        assert _version_from_pyproject(path) == "1.2.3"

    def test_other_project_ignored(self, tmp_path: Path) -> None:
        path = tmp_path / "pyproject.toml"
        path.write_text('[project]\nname = "something-else"\nversion = "9.9.9"\n', encoding="utf-8")
        assert _version_from_pyproject(path) is None

    def test_missing_or_broken_file(self, tmp_path: Path) -> None:
        assert _version_from_pyproject(tmp_path / "absent.toml") is None
        broken = tmp_path / "pyproject.toml"
        broken.write_text("[project\n", encoding="utf-8")
        assert _version_from_pyproject(broken) is None
