"""Shared fixtures: an in-memory embedding provider and a small vault."""

from __future__ import annotations

import hashlib
import re
import threading
from pathlib import Path
from typing import Any, Dict, List, Sequence

import numpy as np
import pytest

from vaultsearch.embedding.encoder import EmbeddingClient, EmbeddingConfig
from vaultsearch.errors import EmbeddingError
from vaultsearch.index.storage import SQLiteVectorStore

DIMENSION = 16


def fake_vector(text: str, dimension: int = DIMENSION) -> np.ndarray:
    """Bag-of-words hashed into a unit vector, so shared words mean nearby vectors."""
    vector = np.zeros(dimension, dtype="float32")
    for word in re.findall(r"[a-z0-9]+", text.lower()):
        bucket = int(hashlib.md5(word.encode()).hexdigest(), 16) % dimension
        vector[bucket] += 1.0
    norm = np.linalg.norm(vector)
    if norm == 0:
        vector[0] = 1.0
        return vector
    return vector / norm


class FakeProvider:
    """Provider double that records calls and answers in reverse order."""

    def __init__(self, dimension: int = DIMENSION, *, fail_on: Sequence[str] = ()) -> None:
        self.dimension = dimension
        self.fail_on = list(fail_on)
        self.calls: List[List[str]] = []
        self._lock = threading.Lock()

    def embed_batch(self, texts: Sequence[str]) -> List[Dict[str, Any]]:
        with self._lock:
            self.calls.append(list(texts))
        for marker in self.fail_on:
            if any(marker in text for text in texts):
                raise EmbeddingError(f"provider rejected input containing {marker!r}", status=400)
        items = [
            {"index": index, "embedding": fake_vector(text, self.dimension).tolist()}
            for index, text in enumerate(texts)
        ]
        return list(reversed(items))

    @property
    def embedded_texts(self) -> List[str]:
        with self._lock:
            return [text for call in self.calls for text in call]


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def embedder(provider: FakeProvider) -> EmbeddingClient:
    return EmbeddingClient(provider, EmbeddingConfig(batch_size=4), sleep=lambda _: None)


@pytest.fixture
def store(tmp_path: Path):
    db = SQLiteVectorStore(tmp_path / "index.db", dimension=DIMENSION)
    yield db
    db.close()


@pytest.fixture
def vault(tmp_path: Path) -> Path:
    root = tmp_path / "vault"
    (root / "projects").mkdir(parents=True)
    (root / "journal").mkdir()
    (root / ".obsidian").mkdir()
    (root / "projects" / "garden.md").write_text(
        "---\ntype: project\n---\n\nPlanting tomatoes and basil in the garden.",
        encoding="utf-8",
    )
    (root / "journal" / "monday.md").write_text(
        "Went running by the river in the morning.", encoding="utf-8"
    )
    (root / ".obsidian" / "workspace.md").write_text("hidden", encoding="utf-8")
    return root
