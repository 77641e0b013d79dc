"""Utility helpers for working with the vault on disk."""

from __future__ import annotations

import hashlib
from pathlib import Path, PurePosixPath
from typing import Iterator

NOTE_SUFFIX = ".md"


def is_indexable_path(relative_path: str) -> bool:
    """Markdown files outside hidden files and directories."""
    parts = PurePosixPath(relative_path).parts
    if not parts or not parts[-1].endswith(NOTE_SUFFIX):
        return False
    return not any(part.startswith(".") for part in parts)


def to_relative_path(root: Path, path: Path | str) -> str | None:
    """Vault-relative POSIX path for ``path``, or ``None`` when it lies outside ``root``."""
    try:
        relative = Path(path).resolve().relative_to(Path(root).resolve())
    except ValueError:
        return None
    return relative.as_posix()


def iter_markdown_paths(root: Path) -> Iterator[str]:
    """Yield vault-relative paths of every indexable note, sorted, skipping dot directories."""
    root = Path(root)
    for child in sorted(root.iterdir(), key=lambda p: p.name):
        if child.name.startswith("."):
            continue
        if child.is_dir():
            for nested in iter_markdown_paths(child):
                yield f"{child.name}/{nested}"
        elif child.is_file() and child.name.endswith(NOTE_SUFFIX):
            yield child.name


def compute_sha256(text: str) -> str:
    """Compute the SHA256 hash of note text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def mtime_ms(path: Path) -> int:
    return int(path.stat().st_mtime_ns // 1_000_000)
