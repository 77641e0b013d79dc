"""Service facade tying the store, coordinator, watcher and searcher together."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List

from vaultsearch.config import AppConfig
from vaultsearch.embedding.encoder import EmbeddingClient, EmbeddingProvider, build_client
from vaultsearch.errors import IndexUnavailableError, SearchError
from vaultsearch.index.search import Searcher
from vaultsearch.index.storage import SQLiteVectorStore
from vaultsearch.index.sync import SyncCoordinator
from vaultsearch.index.watcher import VaultWatcher
from vaultsearch.models import SearchHit

LOGGER = logging.getLogger(__name__)


class SemanticIndex:
    """Incremental semantic index over one vault.

    ``start()`` opens the store, kicks off background reconciliation and
    subscribes to file changes; queries are answered immediately with whatever
    is indexed so far. ``shutdown()`` tears everything down in reverse order.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        provider: EmbeddingProvider | None = None,
        store: SQLiteVectorStore | None = None,
    ) -> None:
        if config.vault_path is None:
            raise ValueError("A vault path is required")
        self.config = config
        self.vault_path = Path(config.vault_path)
        self._provider = provider
        self._store = store
        self.embedder: EmbeddingClient | None = None
        self.store: SQLiteVectorStore | None = None
        self.coordinator: SyncCoordinator | None = None
        self.searcher: Searcher | None = None
        self.watcher: VaultWatcher | None = None

    @property
    def is_available(self) -> bool:
        """Store open and an embedding provider usable."""
        has_provider = self._provider is not None or self.config.has_credentials
        return self.store is not None and has_provider

    def open(self) -> None:
        """Open the store and wire up the components without starting background work."""
        if self.coordinator is not None:
            return
        if self._provider is None and not self.config.has_credentials:
            LOGGER.warning("OPENAI_API_KEY not set; semantic search disabled")
            return

        self.embedder = build_client(self.config, self._provider)
        if self._store is not None:
            self.store = self._store
        else:
            dimension = getattr(self.embedder.provider, "dimension", None) or self.config.dimension
            db_path = self.config.resolve_db_path(Path.cwd())
            db_path.parent.mkdir(parents=True, exist_ok=True)
            self.store = SQLiteVectorStore(db_path, dimension=int(dimension))
        self.coordinator = SyncCoordinator(
            self.vault_path,
            self.store,
            self.embedder,
            max_passage_chars=self.config.max_passage_chars,
            reindex_batch_size=self.config.reindex_batch_size,
            debounce_seconds=self.config.debounce_seconds,
        )
        self.searcher = Searcher(self.embedder, self.store, self.coordinator.state)

    def start(self, *, sync: bool = True, watch: bool = True) -> None:
        self.open()
        if self.coordinator is None:
            return
        if sync:
            self.coordinator.start_background_sync()
        if watch:
            self.watcher = VaultWatcher(self.vault_path, self.coordinator.notify_change)
            if not self.watcher.start():
                self.watcher = None
        LOGGER.info("Semantic index started for %s", self.vault_path)

    def shutdown(self) -> None:
        if self.coordinator is not None:
            self.coordinator.cancel_timers()
        if self.watcher is not None:
            self.watcher.stop()
            self.watcher = None
        if self.coordinator is not None:
            self.coordinator.shutdown()
            self.coordinator = None
            self.searcher = None
        if self.store is not None:
            if self._store is None:
                self.store.close()
            self.store = None
        if self._provider is None and self.embedder is not None:
            close = getattr(self.embedder.provider, "close", None)
            if callable(close):
                close()
            self.embedder = None

    def __enter__(self) -> "SemanticIndex":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.shutdown()

    def _require(self) -> Searcher:
        if not self.is_available or self.searcher is None:
            raise IndexUnavailableError("Semantic index not available")
        return self.searcher

    def search(
        self,
        query: str,
        *,
        limit: int = 5,
        folder: str | None = None,
        threshold: float | None = None,
    ) -> str:
        searcher = self._require()
        try:
            return searcher.search(query, limit=limit, folder=folder, threshold=threshold)
        except Exception as exc:
            LOGGER.error("Semantic search failed: %s", exc)
            raise SearchError(f"Semantic search failed: {exc}") from exc

    def search_raw(
        self,
        query: str,
        *,
        limit: int = 5,
        folder: str | None = None,
        threshold: float | None = None,
        exclude: Iterable[str] | None = None,
    ) -> List[SearchHit]:
        searcher = self._require()
        try:
            return searcher.search_raw(
                query, limit=limit, folder=folder, threshold=threshold, exclude=exclude
            )
        except Exception as exc:
            LOGGER.error("Semantic search failed: %s", exc)
            raise SearchError(f"Semantic search failed: {exc}") from exc

    def reindex_file(self, path: str) -> str:
        if self.coordinator is None or not self.is_available:
            raise IndexUnavailableError("Semantic index not available")
        return self.coordinator.reindex_file(path)

    def remove_file(self, path: str) -> bool:
        if self.coordinator is None or not self.is_available:
            raise IndexUnavailableError("Semantic index not available")
        return self.coordinator.remove_file(path)

    def status(self) -> dict:
        status: dict = {
            "available": self.is_available,
            "vault": str(self.vault_path),
            "watching": bool(self.watcher and self.watcher.running),
        }
        if self.coordinator is not None:
            status["sync"] = self.coordinator.state.snapshot()
        if self.store is not None:
            status["db"] = str(self.store.db_path)
            status["stats"] = self.store.get_stats()
        return status
