"""Tests for file utilities."""

from __future__ import annotations

import hashlib
from pathlib import Path

import pytest

from vaultsearch.utils.files import (
    compute_sha256,
    is_indexable_path,
    iter_markdown_paths,
    mtime_ms,
    to_relative_path,
)


class TestIterMarkdownPaths:
    """Test vault enumeration."""

    def test_lists_relative_posix_paths(self, vault: Path) -> None:
        paths = list(iter_markdown_paths(vault))
        assert paths == ["journal/monday.md", "projects/garden.md"]

    def test_skips_hidden_files_and_other_suffixes(self, tmp_path: Path) -> None:
        (tmp_path / ".secret.md").write_text("x")
        (tmp_path / "notes.txt").write_text("x")
        (tmp_path / "keep.md").write_text("x")
        (tmp_path / ".trash").mkdir()
        (tmp_path / ".trash" / "old.md").write_text("x")

        assert list(iter_markdown_paths(tmp_path)) == ["keep.md"]

    def test_empty_directory(self, tmp_path: Path) -> None:
        assert list(iter_markdown_paths(tmp_path)) == []

    def test_nested_directories(self, tmp_path: Path) -> None:
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        (nested / "deep.md").write_text("x")

        assert list(iter_markdown_paths(tmp_path)) == ["a/b/deep.md"]


class TestIsIndexablePath:
    @pytest.mark.parametrize(
        "path, expected",
        [
            ("note.md", True),
            ("folder/note.md", True),
            ("note.txt", False),
            (".obsidian/note.md", False),
            ("folder/.hidden.md", False),
            ("", False),
        ],
    )
    def test_rules(self, path: str, expected: bool) -> None:
        assert is_indexable_path(path) is expected


class TestToRelativePath:
    def test_inside_root(self, tmp_path: Path) -> None:
        assert to_relative_path(tmp_path, tmp_path / "a" / "b.md") == "a/b.md"

    def test_outside_root(self, tmp_path: Path) -> None:
        assert to_relative_path(tmp_path / "vault", tmp_path / "other.md") is None

    def test_missing_file_still_resolves(self, tmp_path: Path) -> None:
        assert to_relative_path(tmp_path, str(tmp_path / "gone.md")) == "gone.md"


class TestComputeSha256:
    def test_matches_hashlib(self) -> None:
        text = "héllo world"
        assert compute_sha256(text) == hashlib.sha256(text.encode("utf-8")).hexdigest()

    def test_different_content_differs(self) -> None:
        assert compute_sha256("a") != compute_sha256("b")


def test_mtime_ms_is_integer_milliseconds(tmp_path: Path) -> None:
    path = tmp_path / "x.md"
    path.write_text("x")
    value = mtime_ms(path)

    assert isinstance(value, int)
    assert abs(value / 1000 - path.stat().st_mtime) < 1
