"""Markdown note loading and chunking utilities."""

from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath
from typing import List

from vaultsearch.models import Passage
from vaultsearch.utils.text import make_preview, split_by_headings, split_by_paragraphs, strip_frontmatter

LOGGER = logging.getLogger(__name__)

# Roughly 2000 tokens for the default embedding model.
MAX_PASSAGE_CHARS = 8000


def note_title(relative_path: str) -> str:
    name = PurePosixPath(relative_path).name
    return name[: -len(".md")] if name.endswith(".md") else name


def chunk_document(
    content: str,
    relative_path: str,
    *,
    title: str | None = None,
    max_chars: int = MAX_PASSAGE_CHARS,
) -> List[Passage]:
    """Split a note into heading-aware passages.

    Notes whose body fits in ``max_chars`` become a single passage. Longer notes
    are split at ``## `` headings, and sections that are still too long are
    packed paragraph by paragraph. Every passage text starts with a ``# title``
    header so the embedding knows which note it came from.

    An empty body yields no passages.
    """
    body = strip_frontmatter(content)
    if not body:
        return []

    title = title or note_title(relative_path)
    header = f"# {title}\n\n"

    if len(body) <= max_chars:
        return [Passage(relative_path, 0, header + body, None, make_preview(body))]

    pieces: List[tuple[str | None, str]] = []
    for section in split_by_headings(body):
        text = section.text.strip()
        if not text:
            continue
        if len(text) <= max_chars:
            pieces.append((section.heading, text))
            continue
        for number, part in enumerate(split_by_paragraphs(text, max_chars), start=1):
            heading = f"{section.heading} ({number})" if section.heading else None
            pieces.append((heading, part))

    LOGGER.debug("Split %s into %d passages", relative_path, len(pieces))
    return [
        Passage(relative_path, index, header + text, heading, make_preview(text))
        for index, (heading, text) in enumerate(pieces)
    ]


def load_note(root: Path, relative_path: str) -> str:
    """Read a note as UTF-8 text, replacing undecodable bytes.

    Raises ``FileNotFoundError`` when it is gone.
    """
    return (Path(root) / relative_path).read_text(encoding="utf-8", errors="replace")
