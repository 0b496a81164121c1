"""Progress event broadcasting.

This module provides:
- ProgressKind, ProgressEvent: Messages sent to observers
- ProgressBroadcaster: Buffered observer channel

Emitters never run observer code: events go into a queue and a dispatcher
thread delivers them. Having no observers is not an error.
"""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class ProgressKind(str, Enum):
    """Kind of progress event."""

    SNAPSHOT = "snapshot"  # payload: SyncSnapshotState
    UPLOAD_QUEUE = "upload_queue"  # payload: list[PendingUpload]
    UPLOAD_PROGRESS = "upload_progress"  # payload: UploadProgressRecord
    DOWNLOAD_QUEUE = "download_queue"  # payload: list[FileDownload]


@dataclass(frozen=True)
class ProgressEvent:
    """A message delivered to observers."""

    kind: ProgressKind
    drive_id: str
    payload: Any = field(default=None, compare=False)


Observer = Callable[[ProgressEvent], None]


class _FlushMarker:
    """Queued behind pending events; set once they were delivered."""

    def __init__(self) -> None:
        self.done = threading.Event()


class ProgressBroadcaster:
    """Fan-out of progress events to registered observers.

    Usage:
        broadcaster = ProgressBroadcaster()
        unsubscribe = broadcaster.subscribe(print)
        broadcaster.emit(ProgressEvent(ProgressKind.SNAPSHOT, drive_id, state))
        broadcaster.close()

    With ``synchronous=True`` events are delivered on the emitting thread,
    which keeps tests deterministic.
    """

    def __init__(self, synchronous: bool = False, max_buffer: int = 10_000) -> None:
        self._observers: list[Observer] = []
        self._lock = threading.Lock()
        self._synchronous = synchronous
        self._queue: queue.Queue[ProgressEvent | _FlushMarker | None] = queue.Queue(
            maxsize=max_buffer
        )
        self._thread: threading.Thread | None = None
        self._closed = False
        self._dropped = 0

    @property
    def observer_count(self) -> int:
        """Get number of registered observers."""
        with self._lock:
            return len(self._observers)

    @property
    def dropped_count(self) -> int:
        """Get number of events dropped because the buffer was full."""
        return self._dropped

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register an observer.

        Returns:
            A function that unregisters the observer.
        """
        with self._lock:
            self._observers.append(observer)
            if not self._synchronous and self._thread is None and not self._closed:
                self._thread = threading.Thread(
                    target=self._dispatch_loop, name="ProgressBroadcaster", daemon=True
                )
                self._thread.start()

        def unsubscribe() -> None:
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return unsubscribe

    def emit(self, event: ProgressEvent) -> None:
        """Broadcast an event without blocking the caller."""
        if self._closed:
            return
        if self._synchronous:
            self._deliver(event)
            return
        with self._lock:
            if not self._observers:
                return
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            with self._lock:
                self._dropped += 1
            logger.warning(f"Progress buffer full, dropped {event.kind.value} event")

    def flush(self, timeout: float = 5.0) -> None:
        """Wait until every queued event has been delivered."""
        if self._synchronous or self._thread is None:
            return
        marker = _FlushMarker()
        try:
            self._queue.put(marker, timeout=timeout)
        except queue.Full:
            return
        marker.done.wait(timeout)

    def close(self) -> None:
        """Stop the dispatcher; later events are ignored."""
        self._closed = True
        if self._thread is not None:
            self._queue.put(None)
            self._thread.join(timeout=5.0)
            self._thread = None

    def _dispatch_loop(self) -> None:
        while True:
            event = self._queue.get()
            if event is None:
                break
            if isinstance(event, _FlushMarker):
                event.done.set()
                continue
            self._deliver(event)

    def _deliver(self, event: ProgressEvent) -> None:
        with self._lock:
            observers = list(self._observers)
        for observer in observers:
            try:
                observer(event)
            except Exception:
                logger.exception(f"Progress observer failed on {event.kind.value} event")
