"""Text helpers for Markdown notes: frontmatter, sections, paragraphs, previews."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List

PREVIEW_WORDS = 100

_HEADING_MARKER = re.compile(r"^#+\s+", re.MULTILINE)
_PARAGRAPH_BREAK = re.compile(r"\n\n+")


@dataclass(slots=True)
class Section:
    heading: str | None
    text: str


def strip_frontmatter(content: str) -> str:
    """Return the note body without a leading ``---`` metadata block."""
    body = content
    if content.startswith("---"):
        end = content.find("---", 3)
        if end != -1:
            body = content[end + 3 :]
    return body.strip()


def split_by_headings(body: str) -> List[Section]:
    """Split a body at second-level headings.

    Text before the first ``## `` heading forms a section without a heading.
    The heading line itself stays at the top of its section.
    """
    sections: List[Section] = []
    heading: str | None = None
    lines: List[str] = []

    for line in body.split("\n"):
        if line.startswith("## "):
            if lines:
                sections.append(Section(heading, "\n".join(lines)))
            heading = line[3:].strip()
            lines = [line]
        else:
            lines.append(line)

    if lines:
        sections.append(Section(heading, "\n".join(lines)))
    return sections


def split_by_paragraphs(text: str, max_chars: int) -> List[str]:
    """Greedily pack blank-line separated paragraphs into pieces of at most ``max_chars``.

    A paragraph is never split, so a single oversized paragraph becomes its own piece.
    """
    pieces: List[str] = []
    current = ""

    for paragraph in _PARAGRAPH_BREAK.split(text):
        if current and len(current) + len(paragraph) + 2 > max_chars:
            pieces.append(current)
            current = paragraph
        else:
            current = f"{current}\n\n{paragraph}" if current else paragraph

    if current:
        pieces.append(current)
    return pieces


def make_preview(text: str, *, max_words: int = PREVIEW_WORDS) -> str:
    """Strip heading markers and keep the first ``max_words`` words."""
    cleaned = _HEADING_MARKER.sub("", text).strip()
    words = cleaned.split()
    preview = " ".join(words[:max_words])
    if len(words) > max_words:
        preview += "..."
    return preview
