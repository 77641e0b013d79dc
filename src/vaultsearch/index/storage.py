"""SQLite-backed passage and vector store."""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterator, List, Sequence, Tuple

import numpy as np

from vaultsearch.models import DocumentRecord, Passage

LOGGER = logging.getLogger(__name__)


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class SQLiteVectorStore:
    """Persistence layer for documents, passages and their embeddings.

    Passage rows and vectors live in separate tables keyed by the same passage
    id. Every write runs in a single transaction, so readers see either the
    old or the new passage set of a document, never a mix. The connection is
    shared between threads and serialized with a re-entrant lock.
    """

    def __init__(self, db_path: Path, *, dimension: int) -> None:
        self.db_path = Path(db_path)
        self.dimension = dimension
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute("PRAGMA synchronous=NORMAL;")
        self._conn.execute("PRAGMA foreign_keys=ON;")
        self._ensure_schema()

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                yield self._conn
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise

    def _ensure_schema(self) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    path TEXT PRIMARY KEY,
                    mtime_ms INTEGER NOT NULL,
                    content_hash TEXT NOT NULL,
                    passage_count INTEGER NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS passages (
                    id INTEGER PRIMARY KEY,
                    document_path TEXT NOT NULL,
                    passage_index INTEGER NOT NULL,
                    heading TEXT,
                    preview TEXT NOT NULL,
                    UNIQUE(document_path, passage_index),
                    FOREIGN KEY(document_path) REFERENCES documents(path) ON DELETE CASCADE
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS vectors (
                    passage_id INTEGER PRIMARY KEY,
                    embedding BLOB NOT NULL,
                    FOREIGN KEY(passage_id) REFERENCES passages(id) ON DELETE CASCADE
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_passages_document ON passages(document_path)"
            )
            conn.execute(
                "CREATE TABLE IF NOT EXISTS settings (key TEXT PRIMARY KEY, value TEXT NOT NULL)"
            )

            row = conn.execute("SELECT value FROM settings WHERE key = 'dimension'").fetchone()
            if row is not None and int(row["value"]) != self.dimension:
                # Vectors of another width cannot be compared; start over.
                LOGGER.warning(
                    "Store %s holds %s-dimensional vectors, expected %d; clearing index",
                    self.db_path,
                    row["value"],
                    self.dimension,
                )
                conn.execute("DELETE FROM vectors")
                conn.execute("DELETE FROM passages")
                conn.execute("DELETE FROM documents")
            conn.execute(
                "INSERT OR REPLACE INTO settings(key, value) VALUES ('dimension', ?)",
                (str(self.dimension),),
            )

    def _delete_passages(self, conn: sqlite3.Connection, path: str) -> int:
        ids = [
            row["id"]
            for row in conn.execute("SELECT id FROM passages WHERE document_path = ?", (path,))
        ]
        for passage_id in ids:
            conn.execute("DELETE FROM vectors WHERE passage_id = ?", (passage_id,))
            conn.execute("DELETE FROM passages WHERE id = ?", (passage_id,))
        return len(ids)

    def upsert_document(
        self,
        document: DocumentRecord,
        passages: Sequence[Passage],
        vectors: Sequence[np.ndarray] | np.ndarray,
    ) -> str:
        """Replace every passage of ``document`` in one transaction.

        Returns ``"inserted"`` for a new document and ``"updated"`` otherwise.
        """
        if len(vectors) != len(passages):
            raise ValueError("Embeddings and passages length mismatch")
        blobs = []
        for vector in vectors:
            array = np.asarray(vector, dtype="float32")
            if array.shape != (self.dimension,):
                raise ValueError(
                    f"Expected {self.dimension}-dimensional vector, got shape {array.shape}"
                )
            blobs.append(sqlite3.Binary(array.tobytes()))

        updated_at = document.updated_at or _utcnow()
        with self.transaction() as conn:
            existing = conn.execute(
                "SELECT 1 FROM documents WHERE path = ?", (document.path,)
            ).fetchone()
            self._delete_passages(conn, document.path)
            conn.execute(
                """
                INSERT INTO documents(path, mtime_ms, content_hash, passage_count, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(path) DO UPDATE SET
                    mtime_ms = excluded.mtime_ms,
                    content_hash = excluded.content_hash,
                    passage_count = excluded.passage_count,
                    updated_at = excluded.updated_at
                """,
                (
                    document.path,
                    document.mtime_ms,
                    document.content_hash,
                    len(passages),
                    updated_at,
                ),
            )
            for passage, blob in zip(passages, blobs):
                passage_id = conn.execute(
                    """
                    INSERT INTO passages(document_path, passage_index, heading, preview)
                    VALUES (?, ?, ?, ?)
                    """,
                    (document.path, passage.index, passage.heading, passage.preview),
                ).lastrowid
                conn.execute(
                    "INSERT INTO vectors(passage_id, embedding) VALUES (?, ?)",
                    (passage_id, blob),
                )
        document.passage_count = len(passages)
        document.updated_at = updated_at
        return "updated" if existing else "inserted"

    def touch_document(self, path: str, mtime_ms: int) -> None:
        """Record a new modification time without touching passages or vectors."""
        with self.transaction() as conn:
            conn.execute("UPDATE documents SET mtime_ms = ? WHERE path = ?", (mtime_ms, path))

    def remove_document(self, path: str) -> bool:
        """Delete a document with all its passages and vectors.

        Returns ``False`` when the document was not stored.
        """
        with self.transaction() as conn:
            self._delete_passages(conn, path)
            cursor = conn.execute("DELETE FROM documents WHERE path = ?", (path,))
            return cursor.rowcount > 0

    def query(self, embedding: np.ndarray, *, limit: int = 10) -> List[dict]:
        """Return the ``limit`` passages closest to ``embedding`` by Euclidean distance."""
        if limit <= 0:
            return []
        query = np.asarray(embedding, dtype="float32")
        with self._lock:
            rows = self._conn.execute(
                """
                SELECT
                    p.id AS id,
                    p.document_path AS path,
                    p.passage_index AS passage_index,
                    p.heading AS heading,
                    p.preview AS preview,
                    v.embedding AS embedding
                FROM vectors v
                JOIN passages p ON p.id = v.passage_id
                """
            ).fetchall()

        if not rows:
            return []

        matrix = np.vstack([np.frombuffer(row["embedding"], dtype="float32") for row in rows])
        distances = np.linalg.norm(matrix - query, axis=1)

        if limit < len(distances):
            top = np.argpartition(distances, limit)[:limit]
            top = top[np.argsort(distances[top], kind="stable")]
        else:
            top = np.argsort(distances, kind="stable")

        results: List[dict] = []
        for idx in top:
            row = rows[idx]
            results.append(
                {
                    "id": row["id"],
                    "path": row["path"],
                    "passage_index": row["passage_index"],
                    "heading": row["heading"],
                    "preview": row["preview"],
                    "distance": float(distances[idx]),
                }
            )
        return results

    def get_document(self, path: str) -> DocumentRecord | None:
        with self._lock:
            row = self._conn.execute(
                """
                SELECT path, mtime_ms, content_hash, passage_count, updated_at
                FROM documents WHERE path = ?
                """,
                (path,),
            ).fetchone()
        if row is None:
            return None
        return DocumentRecord(**dict(row))

    def document_states(self) -> Dict[str, Tuple[int, str]]:
        """Map of stored path to ``(mtime_ms, content_hash)``."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT path, mtime_ms, content_hash FROM documents"
            ).fetchall()
        return {row["path"]: (row["mtime_ms"], row["content_hash"]) for row in rows}

    def list_documents(self) -> List[dict]:
        with self._lock:
            rows = self._conn.execute(
                """
                SELECT path, mtime_ms, content_hash, passage_count, updated_at
                FROM documents ORDER BY path
                """
            ).fetchall()
        return [dict(row) for row in rows]

    def get_stats(self) -> Dict[str, int]:
        with self._lock:
            documents = self._conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0]
            passages = self._conn.execute("SELECT COUNT(*) FROM passages").fetchone()[0]
            vectors = self._conn.execute("SELECT COUNT(*) FROM vectors").fetchone()[0]
        return {"document_count": documents, "passage_count": passages, "vector_count": vectors}
