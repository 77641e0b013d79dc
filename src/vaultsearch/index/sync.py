"""Keeps the vector store in step with the notes on disk."""

from __future__ import annotations

import logging
import threading
import weakref
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Set

from vaultsearch.embedding.encoder import EmbeddingClient
from vaultsearch.index.storage import SQLiteVectorStore
from vaultsearch.ingestion.markdown_loader import MAX_PASSAGE_CHARS, chunk_document, load_note
from vaultsearch.models import DocumentRecord
from vaultsearch.utils.files import compute_sha256, is_indexable_path, iter_markdown_paths, mtime_ms

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class SyncState:
    """Progress of the running reconciliation, shared with the query side."""

    syncing: bool = False
    total: int = 0
    done: int = 0
    failed: int = 0
    last_error: str | None = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def begin(self) -> None:
        with self._lock:
            self.syncing = True
            self.total = 0
            self.done = 0
            self.failed = 0

    def set_total(self, total: int) -> None:
        with self._lock:
            self.total = total
            self.done = 0

    def advance(self, count: int, *, failed: int = 0) -> None:
        with self._lock:
            self.done += count
            self.failed += failed

    def finish(self, error: str | None = None) -> None:
        with self._lock:
            self.syncing = False
            if error is not None:
                self.last_error = error

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "syncing": self.syncing,
                "total": self.total,
                "done": self.done,
                "failed": self.failed,
                "last_error": self.last_error,
            }


@dataclass(slots=True)
class ReconcileStats:
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    removed: int = 0
    failed: int = 0
    processed_files: list[str] = field(default_factory=list)

    def increment(self, status: str, path: str) -> None:
        if status == "inserted":
            self.inserted += 1
        elif status == "updated":
            self.updated += 1
        elif status == "skipped":
            self.skipped += 1
        elif status == "removed":
            self.removed += 1
        else:
            self.failed += 1
        self.processed_files.append(path)


class SyncCoordinator:
    """Reconciles the store against the vault and reacts to change events.

    Two activities share the store: a one-off reconciliation pass (run in the
    background at startup) and debounced per-path reindexing driven by
    :meth:`notify_change`. Work on a single path is serialized with a per-path
    lock; different paths proceed independently.
    """

    def __init__(
        self,
        root: Path,
        store: SQLiteVectorStore,
        embedder: EmbeddingClient,
        *,
        max_passage_chars: int = MAX_PASSAGE_CHARS,
        reindex_batch_size: int = 10,
        debounce_seconds: float = 2.0,
    ) -> None:
        self.root = Path(root)
        self.store = store
        self.embedder = embedder
        self.max_passage_chars = max_passage_chars
        self.reindex_batch_size = max(reindex_batch_size, 1)
        self.debounce_seconds = debounce_seconds
        self.state = SyncState()
        self.sync_future: Future | None = None

        self._timers: Dict[str, threading.Timer] = {}
        self._running: Set[threading.Thread] = set()
        self._deferred: Set[str] = set()
        self._timers_lock = threading.Lock()
        # Entries vanish once no thread holds or waits on the lock.
        self._path_locks: weakref.WeakValueDictionary = weakref.WeakValueDictionary()
        self._path_locks_guard = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="vaultsearch-sync")
        self._closed = False

    # -- single documents -------------------------------------------------

    def _path_lock(self, path: str) -> threading.Lock:
        with self._path_locks_guard:
            lock = self._path_locks.get(path)
            if lock is None:
                lock = self._path_locks[path] = threading.Lock()
            return lock

    def reindex_file(self, path: str) -> str:
        """Bring one note up to date.

        Returns ``"inserted"``, ``"updated"``, ``"skipped"`` (content unchanged)
        or ``"removed"`` (file gone or empty). Embedding and store errors
        propagate.
        """
        with self._path_lock(path):
            try:
                content = load_note(self.root, path)
                current_mtime = mtime_ms(self.root / path)
            except FileNotFoundError:
                self.store.remove_document(path)
                return "removed"

            content_hash = compute_sha256(content)
            existing = self.store.get_document(path)
            if existing is not None and existing.content_hash == content_hash:
                if existing.mtime_ms != current_mtime:
                    self.store.touch_document(path, current_mtime)
                return "skipped"

            passages = chunk_document(content, path, max_chars=self.max_passage_chars)
            if not passages:
                LOGGER.debug("Nothing to index in %s", path)
                self.store.remove_document(path)
                return "removed"

            vectors = self.embedder.get_embeddings([passage.text for passage in passages])
            document = DocumentRecord(path=path, mtime_ms=current_mtime, content_hash=content_hash)
            return self.store.upsert_document(document, passages, vectors)

    def remove_file(self, path: str) -> bool:
        with self._path_lock(path):
            return self.store.remove_document(path)

    # -- reconciliation ---------------------------------------------------

    def start_background_sync(self) -> Future:
        """Run :meth:`reconcile` on the coordinator's worker thread."""
        # Flag first so queries issued right after startup see the hint.
        self.state.begin()
        self.sync_future = self._executor.submit(self.reconcile)
        return self.sync_future

    def wait_for_sync(self, timeout: float | None = None) -> ReconcileStats | None:
        if self.sync_future is None:
            return None
        return self.sync_future.result(timeout=timeout)

    def reconcile(self) -> ReconcileStats:
        """Compare the whole vault with the store and repair the differences."""
        self.state.begin()
        error: str | None = None
        try:
            return self._reconcile()
        except Exception as exc:
            error = str(exc)
            LOGGER.error("Semantic index sync failed: %s", exc)
            raise
        finally:
            self._end_sync(error)

    def _reconcile(self) -> ReconcileStats:
        stats = ReconcileStats()
        corpus = list(iter_markdown_paths(self.root))
        indexed = self.store.document_states()

        to_reindex: List[str] = []
        present: Set[str] = set()
        for path in corpus:
            try:
                current = mtime_ms(self.root / path)
            except FileNotFoundError:
                # Vanished since listing; handled with the other deletions.
                continue
            present.add(path)
            record = indexed.get(path)
            if record is None or record[0] != current:
                to_reindex.append(path)

        for path in indexed:
            if path in present:
                continue
            try:
                self.remove_file(path)
                stats.increment("removed", path)
            except Exception as exc:
                LOGGER.error("Failed to remove %s from index: %s", path, exc)
                stats.increment("failed", path)

        if not to_reindex:
            LOGGER.info("Semantic index: up to date")
            return stats

        total = len(to_reindex)
        self.state.set_total(total)
        LOGGER.info("Semantic index: syncing %d files...", total)

        with ThreadPoolExecutor(
            max_workers=self.reindex_batch_size, thread_name_prefix="vaultsearch-index"
        ) as pool:
            for start in range(0, total, self.reindex_batch_size):
                if self._closed:
                    LOGGER.info("Semantic index: sync interrupted by shutdown")
                    break
                batch = to_reindex[start : start + self.reindex_batch_size]
                futures = {pool.submit(self.reindex_file, path): path for path in batch}
                failures = 0
                for future in as_completed(futures):
                    path = futures[future]
                    try:
                        stats.increment(future.result(), path)
                    except Exception as exc:
                        LOGGER.error("Failed to index %s: %s", path, exc)
                        stats.increment("failed", path)
                        failures += 1
                if failures:
                    LOGGER.warning("Semantic index: %d files failed in batch", failures)
                self.state.advance(len(batch), failed=failures)
                snapshot = self.state.snapshot()
                LOGGER.info(
                    "Semantic index: syncing %d/%d files...", snapshot["done"], snapshot["total"]
                )

        LOGGER.info(
            "Semantic index: sync complete (%d inserted, %d updated, %d skipped, %d failed)",
            stats.inserted,
            stats.updated,
            stats.skipped,
            stats.failed,
        )
        return stats

    def _end_sync(self, error: str | None) -> None:
        with self._timers_lock:
            self.state.finish(error)
            deferred = sorted(self._deferred)
            self._deferred.clear()
        if deferred:
            LOGGER.debug("Replaying %d changes seen during sync", len(deferred))
        for path in deferred:
            self.notify_change(path)

    # -- change events ----------------------------------------------------

    def notify_change(self, path: str) -> None:
        """Schedule a debounced reindex of ``path``.

        A new event for the same path cancels the pending timer and starts a
        fresh one. Events that arrive while reconciliation runs are kept and
        replayed when it finishes.
        """
        if self._closed or not is_indexable_path(path):
            return
        with self._timers_lock:
            if self.state.syncing:
                self._deferred.add(path)
                return
            pending = self._timers.pop(path, None)
            if pending is not None:
                pending.cancel()
            timer = threading.Timer(self.debounce_seconds, self._on_timer, args=(path,))
            timer.daemon = True
            self._timers[path] = timer
            timer.start()

    def _on_timer(self, path: str) -> None:
        current = threading.current_thread()
        with self._timers_lock:
            if self._timers.get(path) is current:
                del self._timers[path]
            if self._closed:
                return
            self._running.add(current)
        try:
            if (self.root / path).is_file():
                self.reindex_file(path)
            else:
                self.remove_file(path)
        except Exception as exc:
            LOGGER.error("Watcher reindex error for %s: %s", path, exc)
        finally:
            with self._timers_lock:
                self._running.discard(current)

    @property
    def pending_paths(self) -> List[str]:
        with self._timers_lock:
            return sorted(self._timers)

    def wait_for_pending(self, timeout: float | None = None) -> None:
        """Block until the currently scheduled debounce timers have run."""
        with self._timers_lock:
            timers = list(self._timers.values())
        for timer in timers:
            timer.join(timeout)

    # -- lifecycle --------------------------------------------------------

    def cancel_timers(self) -> None:
        with self._timers_lock:
            for timer in self._timers.values():
                timer.cancel()
            self._timers.clear()
            self._deferred.clear()

    def shutdown(self, *, wait: bool = True) -> None:
        """Stop accepting events and cancel timers; running work finishes.

        With ``wait`` the call also blocks until timer callbacks already past
        the debounce have returned, so the store can be closed afterwards.
        """
        with self._timers_lock:
            self._closed = True
            running = list(self._running)
        self.cancel_timers()
        self._executor.shutdown(wait=wait)
        if wait:
            for thread in running:
                if thread is not threading.current_thread():
                    thread.join()
