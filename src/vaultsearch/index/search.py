"""Semantic search interface."""

from __future__ import annotations

from typing import Iterable, List

from vaultsearch.embedding.encoder import EmbeddingClient
from vaultsearch.index.storage import SQLiteVectorStore
from vaultsearch.index.sync import SyncState
from vaultsearch.models import SearchHit

MAX_CANDIDATES = 50


def distance_to_score(distance: float) -> float:
    """Map an L2 distance between unit vectors (0..2) to a 0..1 similarity."""
    return max(0.0, min(1.0, 1.0 - distance / 2.0))


def _folder_prefix(folder: str) -> str:
    folder = folder.strip().lstrip("/")
    return folder if folder.endswith("/") else folder + "/"


class Searcher:
    """High-level API to query the vector store."""

    def __init__(
        self,
        embedder: EmbeddingClient,
        store: SQLiteVectorStore,
        state: SyncState | None = None,
    ) -> None:
        self.embedder = embedder
        self.store = store
        self.state = state or SyncState()

    def search_raw(
        self,
        query: str,
        *,
        limit: int = 5,
        folder: str | None = None,
        threshold: float | None = None,
        exclude: Iterable[str] | None = None,
    ) -> List[SearchHit]:
        """Best passage per note, filtered by folder, score threshold and exclusions.

        More neighbours than ``limit`` are fetched so filtering and
        de-duplication still leave enough results.
        """
        if limit <= 0:
            return []
        embedding = self.embedder.embed_query(query)
        rows = self.store.query(embedding, limit=min(limit * 3, MAX_CANDIDATES))

        prefix = _folder_prefix(folder) if folder else None
        excluded = set(exclude or ())
        seen: set[str] = set()
        results: List[SearchHit] = []
        for row in rows:
            if len(results) >= limit:
                break
            path = row["path"]
            if prefix and not path.startswith(prefix):
                continue
            score = distance_to_score(row["distance"])
            if threshold and score < threshold:
                continue
            if path in excluded or path in seen:
                continue
            seen.add(path)
            results.append(
                SearchHit(
                    path=path,
                    heading=row["heading"],
                    score=round(score, 3),
                    preview=row["preview"],
                )
            )
        return results

    def sync_note(self) -> str:
        snapshot = self.state.snapshot()
        if not snapshot["syncing"]:
            return ""
        return f"\n\n*Index syncing ({snapshot['done']}/{snapshot['total']} files)...*"

    def search(
        self,
        query: str,
        *,
        limit: int = 5,
        folder: str | None = None,
        threshold: float | None = None,
    ) -> str:
        """Markdown summary of :meth:`search_raw`, with a progress note while syncing."""
        results = self.search_raw(query, limit=limit, folder=folder, threshold=threshold)
        note = self.sync_note()
        if not results:
            return f"No semantically related notes found.{note}"

        blocks = []
        for hit in results:
            heading = f" > {hit.heading}" if hit.heading else ""
            blocks.append(f"**{hit.path}**{heading} (score: {hit.score})\n{hit.preview}")
        plural = "" if len(results) == 1 else "s"
        return (
            f"Found {len(results)} semantically related note{plural}:\n\n"
            + "\n\n".join(blocks)
            + note
        )
