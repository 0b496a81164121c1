"""File system watcher with debouncing.

This module provides:
- DebouncedEventHandler: Coalesces rapid watchdog events per path
- FileWatcher: Watch service emitting add/change/delete WatchEvents
"""

from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from typing import TYPE_CHECKING

from watchdog.events import (
    DirMovedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from permasync.client.sync.ignore import IGNORE_FILE, IgnorePatterns
from permasync.client.sync.types import WatchEvent, WatchEventType

if TYPE_CHECKING:
    from watchdog.observers.api import BaseObserver

    from permasync.client.sync.types import WatchCallback

logger = logging.getLogger(__name__)


def _decode(path: str | bytes) -> str:
    if isinstance(path, bytes):
        return path.decode("utf-8", errors="replace")
    return path


class DebouncedEventHandler(FileSystemEventHandler):
    """Event handler that debounces rapid file system events.

    Events for the same path inside the debounce window collapse into the
    latest one. Pending events are flushed once no new event has arrived for
    ``settle_s`` seconds, so a file still being written is reported once.
    """

    def __init__(
        self,
        base_path: Path,
        callback: WatchCallback,
        settle_s: float = 1.0,
        ignore_patterns: IgnorePatterns | None = None,
    ) -> None:
        """Initialize the debounced handler.

        Args:
            base_path: Base directory being watched.
            callback: Receives each flushed WatchEvent.
            settle_s: Quiet period before pending events are emitted.
            ignore_patterns: Patterns for files to ignore.
        """
        super().__init__()
        self._base_path = base_path
        self._callback = callback
        self._settle_s = settle_s
        self._ignore = ignore_patterns or IgnorePatterns()

        # Pending events keyed by path
        self._pending: dict[str, WatchEvent] = {}
        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None

    def _schedule_flush(self) -> None:
        if self._timer:
            self._timer.cancel()

        self._timer = threading.Timer(self._settle_s, self.flush)
        self._timer.daemon = True
        self._timer.start()

    def flush(self) -> None:
        """Emit pending events now."""
        with self._lock:
            events = list(self._pending.values())
            self._pending.clear()
            self._timer = None

        for event in events:
            try:
                self._callback(event)
            except Exception:
                logger.exception(f"Watch callback failed for {event.path}")

    def _record(self, event_type: WatchEventType, raw_path: str | bytes) -> None:
        path = Path(_decode(raw_path))
        if self._ignore.should_ignore(path, self._base_path):
            return

        with self._lock:
            key = str(path)
            previous = self._pending.get(key)
            # A file created then modified inside the window is still new
            if (
                previous is not None
                and previous.type == WatchEventType.ADD
                and event_type == WatchEventType.CHANGE
            ):
                event_type = WatchEventType.ADD
            self._pending[key] = WatchEvent(type=event_type, path=key, timestamp=time.time())
            self._schedule_flush()

    def on_created(self, event: FileSystemEvent) -> None:
        """Handle created event."""
        if isinstance(event, FileCreatedEvent):
            self._record(WatchEventType.ADD, event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        """Handle modified event."""
        if isinstance(event, FileModifiedEvent):
            self._record(WatchEventType.CHANGE, event.src_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        """Handle deleted event."""
        if isinstance(event, FileDeletedEvent):
            self._record(WatchEventType.DELETE, event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        """Handle moved event as a delete of the source and an add of the target."""
        if isinstance(event, DirMovedEvent):
            return
        if isinstance(event, FileMovedEvent):
            self._record(WatchEventType.DELETE, event.src_path)
            self._record(WatchEventType.ADD, event.dest_path)

    def stop(self) -> None:
        """Stop any pending timers and drop pending events."""
        with self._lock:
            if self._timer:
                self._timer.cancel()
                self._timer = None
            self._pending.clear()


class FileWatcher:
    """Watch service for a sync folder.

    Satisfies the WatchService protocol: ``subscribe`` starts a watchdog
    observer on the folder and ``unsubscribe`` tears it down.
    """

    def __init__(
        self,
        settle_s: float = 1.0,
        ignore_patterns: list[str] | None = None,
    ) -> None:
        """Initialize the file watcher.

        Args:
            settle_s: Quiet period before pending events are emitted.
            ignore_patterns: Additional patterns to ignore.
        """
        self._settle_s = settle_s
        self._extra_patterns = ignore_patterns
        self._handler: DebouncedEventHandler | None = None
        self._observer: BaseObserver | None = None
        self._watch_path: Path | None = None

    @property
    def watch_path(self) -> Path | None:
        """Get the watched directory path."""
        return self._watch_path

    @property
    def is_running(self) -> bool:
        """Check if the watcher is running."""
        return self._observer is not None

    def subscribe(self, folder: Path, callback: WatchCallback) -> None:
        """Start watching a folder.

        Args:
            folder: Directory to watch recursively.
            callback: Receives add/change/delete WatchEvents.

        Raises:
            ValueError: If the folder is not a directory.
        """
        if self._observer is not None:
            self.unsubscribe()

        watch_path = Path(folder).resolve()
        if not watch_path.is_dir():
            raise ValueError(f"Watch path must be a directory: {folder}")

        ignore = IgnorePatterns(self._extra_patterns)
        ignore.load_from_file(watch_path / IGNORE_FILE)

        self._handler = DebouncedEventHandler(
            base_path=watch_path,
            callback=callback,
            settle_s=self._settle_s,
            ignore_patterns=ignore,
        )
        self._observer = Observer()
        self._observer.schedule(self._handler, str(watch_path), recursive=True)
        self._observer.start()
        self._watch_path = watch_path
        logger.info(f"Watching {watch_path}")

    def unsubscribe(self) -> None:
        """Stop watching; idempotent."""
        if self._observer is None:
            return

        if self._handler:
            self._handler.stop()
        self._observer.stop()
        self._observer.join(timeout=5.0)
        self._observer = None
        self._handler = None
        logger.info(f"Stopped watching {self._watch_path}")
        self._watch_path = None
