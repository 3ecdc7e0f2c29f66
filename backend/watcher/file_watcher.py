"""
LiveCoord File Watcher.

Cross-platform monitoring of the served directory using watchdog.
Requires Python 3.11+.
"""

import fnmatch
import threading
from collections.abc import Callable, Iterable
from pathlib import Path, PurePosixPath
from typing import Any

from watchdog.events import (
    DirCreatedEvent,
    DirDeletedEvent,
    DirModifiedEvent,
    DirMovedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from protocol.messages import ServedFile
from utils.logger import LoggerMixin
from watcher.debouncer import Debouncer


class ServedFileRegistry:
    """
    Served files seen by the HTTP layer, keyed by disk path.

    Lets change events carry the web path and referer a file was
    actually requested with. Written from request handlers, read from
    the observer thread.
    """

    def __init__(self, root_path: Path) -> None:
        self._root = root_path.resolve()
        self._items: dict[Path, ServedFile] = {}
        self._lock = threading.Lock()

    @property
    def root(self) -> Path:
        return self._root

    def register(self, item: ServedFile) -> None:
        key = Path(item.path).resolve()
        with self._lock:
            self._items[key] = item

    def lookup(self, path: Path | str) -> ServedFile | None:
        """Served file for a disk path; built from the root when never served."""
        resolved = Path(path).resolve()
        with self._lock:
            known = self._items.get(resolved)
        if known is not None:
            return known

        try:
            relative = resolved.relative_to(self._root)
        except ValueError:
            return None
        web_path = str(PurePosixPath("/", *relative.parts))
        return ServedFile(path=str(resolved), web_path=web_path)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class ServedFileHandler(FileSystemEventHandler, LoggerMixin):
    """
    Turns watchdog events into served-file changes.

    Directory events and ignored paths are skipped.
    """

    def __init__(
        self,
        registry: ServedFileRegistry,
        on_change: Callable[[ServedFile], Any],
        ignore_patterns: list[str] | None = None,
    ) -> None:
        """
        Initialize the file handler.

        Args:
            registry: Maps disk paths to served files
            on_change: Called once per changed served file
            ignore_patterns: Glob patterns (or path fragments) to ignore
        """
        super().__init__()
        self._registry = registry
        self._on_change = on_change
        self._ignore_patterns = ignore_patterns or []

    def _should_ignore(self, path: str) -> bool:
        """Check if a path should be ignored."""
        parts = Path(path).parts
        for pattern in self._ignore_patterns:
            if pattern in parts or fnmatch.fnmatch(path, pattern):
                return True
        return False

    def _report(self, path: str | bytes, change_type: str) -> None:
        if isinstance(path, bytes):
            path = path.decode("utf-8", errors="surrogateescape")
        if self._should_ignore(path):
            return
        item = self._registry.lookup(path)
        if item is None:
            return
        self.log.debug("file_changed", path=path, web_path=item.web_path, change_type=change_type)
        self._on_change(item)

    def on_created(self, event: FileCreatedEvent | DirCreatedEvent) -> None:
        """Handle file/directory creation."""
        if not event.is_directory:
            self._report(event.src_path, "created")

    def on_modified(self, event: FileModifiedEvent | DirModifiedEvent) -> None:
        """Handle file/directory modification."""
        if not event.is_directory:
            self._report(event.src_path, "modified")

    def on_deleted(self, event: FileDeletedEvent | DirDeletedEvent) -> None:
        """Handle file/directory deletion."""
        if not event.is_directory:
            self._report(event.src_path, "deleted")

    def on_moved(self, event: FileMovedEvent | DirMovedEvent) -> None:
        """Handle file/directory move/rename; the destination counts as changed."""
        if not event.is_directory:
            self._report(event.dest_path, "moved")


class FileWatcher(LoggerMixin):
    """
    Watches the served directory and feeds changes to a debouncer.

    Stopping the watcher discards the batch that is still open.
    """

    def __init__(
        self,
        root_path: Path,
        debouncer: Debouncer,
        ignore_patterns: Iterable[str] | None = None,
        recursive: bool = True,
        registry: ServedFileRegistry | None = None,
    ) -> None:
        """
        Initialize the file watcher.

        Args:
            root_path: Served directory to watch
            debouncer: Receives one event per changed file
            ignore_patterns: Glob patterns to ignore
            recursive: Whether to watch subdirectories
            registry: Shared served-file registry
        """
        self._root_path = root_path
        self._recursive = recursive
        self._ignore_patterns = list(ignore_patterns or [])
        self._debouncer = debouncer
        self._registry = registry or ServedFileRegistry(root_path)

        self._handler = ServedFileHandler(
            registry=self._registry,
            on_change=self._debouncer.debounce,
            ignore_patterns=self._ignore_patterns,
        )

        self._observer: Any = None
        self._running = False

    @property
    def registry(self) -> ServedFileRegistry:
        return self._registry

    def start(self) -> None:
        """Start watching for file changes."""
        if self._running:
            return

        self._observer = Observer()
        self._observer.schedule(
            self._handler,
            str(self._root_path),
            recursive=self._recursive,
        )
        self._observer.start()
        self._running = True

        self.log.info(
            "file_watcher_started",
            path=str(self._root_path),
            recursive=self._recursive,
            ignore_patterns=self._ignore_patterns,
        )

    def stop(self) -> None:
        """Stop watching and drop the open batch."""
        if not self._running:
            return

        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5.0)
            self._observer = None

        self._debouncer.clear()
        self._running = False
        self.log.info("file_watcher_stopped")

    @property
    def is_running(self) -> bool:
        """Check if the watcher is running."""
        return self._running

    def __enter__(self) -> "FileWatcher":
        """Context manager entry."""
        self.start()
        return self

    def __exit__(self, *args: Any) -> None:
        """Context manager exit."""
        self.stop()
