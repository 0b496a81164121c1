"""Tests for the debounced file watcher."""

import threading
import time
from collections.abc import Generator
from pathlib import Path

import pytest
from watchdog.events import (
    DirMovedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
)

from permasync.client.sync.ignore import IgnorePatterns
from permasync.client.sync.types import WatchEvent, WatchEventType
from permasync.client.sync.watcher import DebouncedEventHandler, FileWatcher


@pytest.fixture
def events() -> list[WatchEvent]:
    return []


@pytest.fixture
def handler(
    tmp_path: Path, events: list[WatchEvent]
) -> Generator[DebouncedEventHandler, None, None]:
    """Handler with a settle time long enough that tests flush by hand."""
    h = DebouncedEventHandler(tmp_path, events.append, settle_s=60.0)
    yield h
    h.stop()


class TestDebouncedEventHandler:
    """Tests for event coalescing."""

    def test_created_file_is_add(
        self, handler: DebouncedEventHandler, events: list[WatchEvent], tmp_path: Path
    ) -> None:
        """Should report a created file as an add."""
        handler.on_created(FileCreatedEvent(str(tmp_path / "a.txt")))
        handler.flush()

        assert [(e.type, e.path) for e in events] == [
            (WatchEventType.ADD, str(tmp_path / "a.txt"))
        ]

    def test_rapid_events_collapse(
        self, handler: DebouncedEventHandler, events: list[WatchEvent], tmp_path: Path
    ) -> None:
        """Should emit one event per path inside the window."""
        path = str(tmp_path / "a.txt")
        handler.on_modified(FileModifiedEvent(path))
        handler.on_modified(FileModifiedEvent(path))
        handler.on_modified(FileModifiedEvent(path))
        handler.flush()

        assert len(events) == 1
        assert events[0].type == WatchEventType.CHANGE

    def test_create_then_modify_stays_add(
        self, handler: DebouncedEventHandler, events: list[WatchEvent], tmp_path: Path
    ) -> None:
        """A new file still being written is reported as new."""
        path = str(tmp_path / "a.txt")
        handler.on_created(FileCreatedEvent(path))
        handler.on_modified(FileModifiedEvent(path))
        handler.flush()

        assert [e.type for e in events] == [WatchEventType.ADD]

    def test_delete_wins_over_change(
        self, handler: DebouncedEventHandler, events: list[WatchEvent], tmp_path: Path
    ) -> None:
        """The latest event of a path is the one reported."""
        path = str(tmp_path / "a.txt")
        handler.on_modified(FileModifiedEvent(path))
        handler.on_deleted(FileDeletedEvent(path))
        handler.flush()

        assert [e.type for e in events] == [WatchEventType.DELETE]

    def test_move_is_delete_plus_add(
        self, handler: DebouncedEventHandler, events: list[WatchEvent], tmp_path: Path
    ) -> None:
        """A rename deletes the old path and adds the new one."""
        handler.on_moved(FileMovedEvent(str(tmp_path / "old.txt"), str(tmp_path / "new.txt")))
        handler.flush()

        assert {(e.type, Path(e.path).name) for e in events} == {
            (WatchEventType.DELETE, "old.txt"),
            (WatchEventType.ADD, "new.txt"),
        }

    def test_directory_moves_are_ignored(
        self, handler: DebouncedEventHandler, events: list[WatchEvent], tmp_path: Path
    ) -> None:
        """Directory moves produce no file events."""
        handler.on_moved(DirMovedEvent(str(tmp_path / "a"), str(tmp_path / "b")))
        handler.flush()

        assert events == []

    def test_ignored_paths_are_dropped(
        self, tmp_path: Path, events: list[WatchEvent]
    ) -> None:
        """Should not report ignored files."""
        handler = DebouncedEventHandler(
            tmp_path, events.append, settle_s=60.0, ignore_patterns=IgnorePatterns(["*.log"])
        )
        handler.on_created(FileCreatedEvent(str(tmp_path / "app.log")))
        handler.on_created(FileCreatedEvent(str(tmp_path / "a.txt.downloading")))
        handler.flush()
        handler.stop()

        assert events == []

    def test_callback_errors_do_not_stop_flush(self, tmp_path: Path) -> None:
        """A failing callback does not prevent later events."""
        seen: list[str] = []

        def callback(event: WatchEvent) -> None:
            seen.append(Path(event.path).name)
            raise RuntimeError("observer broke")

        handler = DebouncedEventHandler(tmp_path, callback, settle_s=60.0)
        handler.on_created(FileCreatedEvent(str(tmp_path / "a.txt")))
        handler.on_created(FileCreatedEvent(str(tmp_path / "b.txt")))
        handler.flush()
        handler.stop()

        assert sorted(seen) == ["a.txt", "b.txt"]

    def test_settle_timer_flushes(self, tmp_path: Path) -> None:
        """Pending events are emitted once the folder is quiet."""
        received = threading.Event()
        handler = DebouncedEventHandler(tmp_path, lambda _: received.set(), settle_s=0.05)

        handler.on_created(FileCreatedEvent(str(tmp_path / "a.txt")))

        assert received.wait(timeout=5.0)
        handler.stop()


class TestFileWatcher:
    """Tests for the watch service."""

    def test_subscribe_requires_directory(self, tmp_path: Path) -> None:
        """Should refuse to watch a missing folder."""
        watcher = FileWatcher()

        with pytest.raises(ValueError):
            watcher.subscribe(tmp_path / "missing", lambda _: None)
        assert not watcher.is_running

    def test_unsubscribe_is_idempotent(self, tmp_path: Path) -> None:
        """Unsubscribing twice is harmless."""
        watcher = FileWatcher()
        watcher.subscribe(tmp_path, lambda _: None)
        assert watcher.is_running
        assert watcher.watch_path == tmp_path.resolve()

        watcher.unsubscribe()
        watcher.unsubscribe()

        assert not watcher.is_running
        assert watcher.watch_path is None

    def test_reports_new_file(self, tmp_path: Path) -> None:
        """Should deliver an event for a file written into the folder."""
        received: list[WatchEvent] = []
        arrived = threading.Event()

        def callback(event: WatchEvent) -> None:
            received.append(event)
            arrived.set()

        watcher = FileWatcher(settle_s=0.1)
        watcher.subscribe(tmp_path, callback)
        try:
            time.sleep(0.2)
            (tmp_path / "hello.txt").write_text("hi")
            assert arrived.wait(timeout=10.0)
        finally:
            watcher.unsubscribe()

        assert any(Path(e.path).name == "hello.txt" for e in received)
