"""In-process embedding provider backed by sentence-transformers.

Useful for offline vaults: no credential is needed and the provider is never
rate limited. The model is loaded once and reused for every batch.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Sequence

from sentence_transformers import SentenceTransformer

from vaultsearch.errors import EmbeddingError

DEFAULT_LOCAL_MODEL = "sentence-transformers/all-mpnet-base-v2"

logger = logging.getLogger(__name__)


class SentenceTransformerProvider:
    """Thin wrapper around `SentenceTransformer` speaking the provider protocol."""

    def __init__(
        self,
        model_name: str = DEFAULT_LOCAL_MODEL,
        *,
        device: str | None = None,
        normalize: bool = True,
        batch_size: int = 16,
    ) -> None:
        if model_name.startswith("text-embedding-"):
            # Hosted model names mean nothing locally.
            model_name = DEFAULT_LOCAL_MODEL
        self.model_name = model_name
        self.normalize = normalize
        self.batch_size = batch_size
        self._model = SentenceTransformer(model_name, device=device)
        self.dimension = int(self._model.get_sentence_embedding_dimension())
        logger.info("Loaded local embedding model %s (dimension %d)", model_name, self.dimension)

    def embed_batch(self, texts: Sequence[str]) -> List[Dict[str, Any]]:
        try:
            embeddings = self._model.encode(
                list(texts),
                batch_size=self.batch_size,
                show_progress_bar=False,
                convert_to_numpy=True,
                normalize_embeddings=self.normalize,
            )
        except Exception as exc:
            raise EmbeddingError(f"Local embedding failed: {exc}") from exc
        return [
            {"index": index, "embedding": vector.astype("float32", copy=False)}
            for index, vector in enumerate(embeddings)
        ]
