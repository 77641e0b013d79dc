"""Core vaultsearch data models."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class DocumentRecord:
    """Per-file sync state persisted alongside the passages."""

    path: str
    mtime_ms: int
    content_hash: str
    passage_count: int = 0
    updated_at: str | None = None


@dataclass(slots=True)
class Passage:
    """Bounded slice of a document, the unit of embedding and retrieval."""

    document_path: str
    index: int
    text: str
    heading: str | None
    preview: str


@dataclass(slots=True)
class SearchHit:
    path: str
    score: float
    preview: str
    heading: str | None = None

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "heading": self.heading,
            "score": self.score,
            "preview": self.preview,
        }
