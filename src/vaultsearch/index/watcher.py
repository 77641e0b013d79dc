"""File-system watch subscription feeding change events to the sync coordinator."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from vaultsearch.utils.files import is_indexable_path, to_relative_path

LOGGER = logging.getLogger(__name__)


class _VaultEventHandler(FileSystemEventHandler):
    """Translates watchdog events into vault-relative note paths."""

    def __init__(self, root: Path, callback: Callable[[str], None]) -> None:
        super().__init__()
        self.root = root
        self.callback = callback

    def _emit(self, raw_path: Any) -> None:
        if isinstance(raw_path, bytes):
            raw_path = raw_path.decode("utf-8", errors="replace")
        relative = to_relative_path(self.root, raw_path)
        if relative is None or not is_indexable_path(relative):
            return
        try:
            self.callback(relative)
        except Exception as exc:
            LOGGER.error("Change handler failed for %s: %s", relative, exc)

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._emit(event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._emit(event.src_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._emit(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._emit(event.src_path)
            dest_path = getattr(event, "dest_path", None)
            if dest_path:
                self._emit(dest_path)


class VaultWatcher:
    """Recursive watch on the vault root; owns the watchdog observer."""

    def __init__(self, root: Path, callback: Callable[[str], None]) -> None:
        self.root = Path(root)
        self.handler = _VaultEventHandler(self.root, callback)
        self._observer: Any = None

    @property
    def running(self) -> bool:
        return self._observer is not None

    def start(self) -> bool:
        """Start watching. Failures are logged and reported as ``False``."""
        if self._observer is not None:
            return True
        try:
            observer = Observer()
            observer.daemon = True
            observer.schedule(self.handler, str(self.root), recursive=True)
            observer.start()
        except Exception as exc:
            LOGGER.error("Could not start file watcher: %s", exc)
            return False
        self._observer = observer
        LOGGER.debug("Watching %s for changes", self.root)
        return True

    def stop(self, timeout: float = 5.0) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join(timeout=timeout)
        self._observer = None
