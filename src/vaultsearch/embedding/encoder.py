"""Embedding providers and the batching client in front of them."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Protocol, Sequence

import httpx
import numpy as np

from vaultsearch.errors import EmbeddingError, RateLimitError

if TYPE_CHECKING:
    from vaultsearch.config import AppConfig

DEFAULT_MODEL = "text-embedding-3-large"
DEFAULT_DIMENSION = 3072
DEFAULT_API_BASE = "https://api.openai.com/v1"
# Provider-imposed ceiling on inputs per request.
DEFAULT_BATCH_SIZE = 100
DEFAULT_MAX_RETRIES = 3

logger = logging.getLogger(__name__)


class EmbeddingProvider(Protocol):
    """Anything that turns one batch of texts into indexed embedding items.

    Each returned item is a mapping with an ``index`` (position in the request)
    and an ``embedding`` (list of floats). Items may come back in any order.
    Implementations raise ``RateLimitError`` when throttled and
    ``EmbeddingError`` for anything else.
    """

    def embed_batch(self, texts: Sequence[str]) -> List[Dict[str, Any]]: ...


class OpenAIEmbeddingProvider:
    """OpenAI-compatible ``/embeddings`` endpoint over HTTP."""

    def __init__(
        self,
        api_key: str,
        *,
        model_name: str = DEFAULT_MODEL,
        api_base: str = DEFAULT_API_BASE,
        timeout: float = 60.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.model_name = model_name
        self._client = httpx.Client(
            base_url=api_base.rstrip("/"),
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def embed_batch(self, texts: Sequence[str]) -> List[Dict[str, Any]]:
        try:
            response = self._client.post(
                "/embeddings", json={"model": self.model_name, "input": list(texts)}
            )
        except httpx.HTTPError as exc:
            raise EmbeddingError(f"Embedding request failed: {exc}") from exc

        if response.status_code == 429:
            raise RateLimitError()
        if response.is_error:
            raise EmbeddingError(
                f"Embedding API error ({response.status_code}): {response.text}",
                status=response.status_code,
            )
        try:
            return list(response.json()["data"])
        except (ValueError, KeyError, TypeError) as exc:
            raise EmbeddingError(f"Malformed embedding response: {exc}") from exc


@dataclass(slots=True)
class EmbeddingConfig:
    batch_size: int = DEFAULT_BATCH_SIZE
    max_retries: int = DEFAULT_MAX_RETRIES
    backoff_base: float = 1.0


class EmbeddingClient:
    """Batches texts, calls the provider and keeps results in caller order.

    Rate-limited batches are retried with exponential backoff
    (``backoff_base * 2**attempt`` seconds, ``max_retries`` times). Any other
    provider failure fails the whole call.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        config: EmbeddingConfig | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.provider = provider
        self.config = config or EmbeddingConfig()
        self._sleep = sleep

    def get_embeddings(self, texts: Sequence[str]) -> List[np.ndarray]:
        """Return one float32 vector per input text, in input order."""
        texts = list(texts)
        vectors: List[np.ndarray] = []
        size = max(self.config.batch_size, 1)
        for start in range(0, len(texts), size):
            vectors.extend(self._embed_with_retry(texts[start : start + size]))
        return vectors

    def embed_query(self, text: str) -> np.ndarray:
        """Convenience wrapper for single-query embedding."""
        return self.get_embeddings([text])[0]

    def _embed_with_retry(self, batch: List[str]) -> List[np.ndarray]:
        attempt = 0
        while True:
            try:
                items = self.provider.embed_batch(batch)
            except RateLimitError:
                if attempt >= self.config.max_retries:
                    raise EmbeddingError(
                        f"Rate limited after {attempt + 1} attempts", status=429
                    ) from None
                delay = self.config.backoff_base * (2**attempt)
                logger.warning("Rate limited, retrying in %.1fs...", delay)
                self._sleep(delay)
                attempt += 1
                continue
            return _order_items(items, len(batch))


def _order_items(items: Sequence[Dict[str, Any]], expected: int) -> List[np.ndarray]:
    if len(items) != expected:
        raise EmbeddingError(f"Expected {expected} embeddings, provider returned {len(items)}")
    ordered = sorted(items, key=lambda item: item["index"])
    return [np.asarray(item["embedding"], dtype="float32") for item in ordered]


def build_provider(config: "AppConfig") -> EmbeddingProvider:
    """Create the provider selected in ``config``."""
    if config.provider == "local":
        from vaultsearch.embedding.local import SentenceTransformerProvider

        return SentenceTransformerProvider(config.model_name)
    if config.provider != "openai":
        raise ValueError(f"Unknown embedding provider: {config.provider}")
    if not config.api_key:
        raise EmbeddingError("No API key configured for the embedding provider")
    return OpenAIEmbeddingProvider(
        config.api_key,
        model_name=config.model_name,
        api_base=config.api_base,
        timeout=config.request_timeout,
    )


def build_client(config: "AppConfig", provider: EmbeddingProvider | None = None) -> EmbeddingClient:
    return EmbeddingClient(
        provider or build_provider(config),
        EmbeddingConfig(
            batch_size=config.embed_batch_size,
            max_retries=config.max_retries,
            backoff_base=config.backoff_base,
        ),
    )
