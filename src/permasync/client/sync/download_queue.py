"""Download queue with bounded concurrency.

This module provides:
- is_stalled(): Predicate for downloads that stopped reporting progress
- DownloadQueue: Queued/downloading/paused/failed downloads of one drive

States:
    queued -> downloading -> completed (archived)
    downloading -> paused -> queued -> downloading
    downloading -> failed -> queued (retry)
    any non-terminal -> removed (cancel, marks the file cloud-only)

Promotion from queued to downloading is FIFO. Paused, resumed and retried
items go to the back of the line.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from permasync.core.config import STALL_THRESHOLD
from permasync.client.sync.progress import ProgressEvent, ProgressKind
from permasync.client.sync.types import DownloadStatus, FileDownload, QueueStatus
from permasync.client.sync.workers.download import DownloadJob, describe_download_error

if TYPE_CHECKING:
    from collections.abc import Callable

    from permasync.core.config import EngineConfig
    from permasync.client.sync.interfaces import MetadataStore, TaskRunner
    from permasync.client.sync.progress import ProgressBroadcaster
    from permasync.client.sync.types import DriveMapping
    from permasync.client.sync.workers.base import WorkerResult
    from permasync.client.sync.workers.download import DownloadWorker

logger = logging.getLogger(__name__)

COMPLETED_ARCHIVE_SIZE = 100


def is_stalled(now: float, last_update: float | None, threshold: float = STALL_THRESHOLD) -> bool:
    """Check if a download stopped reporting progress.

    A stalled download keeps its ``downloading`` status; it only stops
    counting as live for refresh decisions.

    Args:
        now: Current time in seconds.
        last_update: Time of the last progress report (None = never).
        threshold: Seconds without progress before the download is stalled.
    """
    if last_update is None:
        return True
    return now - last_update > threshold


@dataclass
class _Attempt:
    """One run of a download; results of superseded attempts are ignored."""

    download_id: str
    cancelled: bool = False


class DownloadQueue:
    """Downloads of one drive.

    Usage:
        queue = DownloadQueue(mapping, store, pool, worker_factory, config)
        queue.enqueue(file_id)
        queue.get_queue_status()
    """

    def __init__(
        self,
        mapping: DriveMapping,
        store: MetadataStore,
        runner: TaskRunner,
        worker_factory: Callable[[], DownloadWorker],
        config: EngineConfig,
        broadcaster: ProgressBroadcaster | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the download queue.

        Args:
            mapping: Drive the queue downloads from.
            store: Local metadata store.
            runner: Executes downloads in the background.
            worker_factory: Creates a DownloadWorker per attempt.
            config: Engine configuration.
            broadcaster: Optional progress channel.
            clock: Time source, replaceable in tests.
        """
        self._mapping = mapping
        self._store = store
        self._runner = runner
        self._worker_factory = worker_factory
        self._config = config
        self._broadcaster = broadcaster
        self._clock = clock

        self._lock = threading.RLock()
        self._entries: dict[str, FileDownload] = {}
        self._by_file: dict[str, str] = {}
        self._attempts: dict[str, _Attempt] = {}
        self._completed: deque[FileDownload] = deque(maxlen=COMPLETED_ARCHIVE_SIZE)
        self._suspended = False

        self._on_completed: Callable[[FileDownload], None] | None = None

    @property
    def drive_id(self) -> str:
        """Get the drive this queue downloads from."""
        return self._mapping.drive_id

    @property
    def max_concurrent(self) -> int:
        """Get the number of downloads allowed to run at once."""
        return self._config.max_concurrent_downloads

    def set_on_completed(self, callback: Callable[[FileDownload], None]) -> None:
        """Set callback for downloads that completed."""
        self._on_completed = callback

    # =========================================================================
    # Operations
    # =========================================================================

    def enqueue(self, file_id: str) -> bool:
        """Queue a remote file for download.

        A cloud-only file loses its marker. No-op if the file is already in
        the queue and not failed; a failed entry is re-queued.

        Returns:
            True if the file was queued.
        """
        with self._lock:
            existing_id = self._by_file.get(file_id)
            if existing_id is not None:
                if self._entries[existing_id].status == DownloadStatus.FAILED:
                    return self.retry(existing_id)
                return False

        entry = self._store.get_remote_entry_by_id(self.drive_id, file_id)
        if entry is None or entry.is_folder:
            logger.warning(f"Cannot download unknown file {file_id}")
            return False

        if self._store.is_cloud_only(self.drive_id, file_id):
            self._store.clear_cloud_only(self.drive_id, file_id)

        local_path = Path(self._mapping.folder_path) / entry.path
        download = FileDownload(
            file_id=file_id,
            file_name=entry.name,
            local_path=str(local_path),
            size=entry.size,
            tx_refs=list(entry.tx_refs),
            content_signature=entry.content_signature,
            relative_path=entry.path,
            queued_at=self._clock(),
        )

        with self._lock:
            if file_id in self._by_file:
                return False
            download.position = self._queued_count()
            self._entries[download.id] = download
            self._by_file[file_id] = download.id
            self._promote()

        logger.info(f"Queued download of {entry.path}")
        self._emit_queue()
        return True

    def pause(self, download_id: str) -> bool:
        """Pause a queued or running download.

        Returns:
            True if the download was paused.
        """
        with self._lock:
            download = self._entries.get(download_id)
            if download is None or download.status not in (
                DownloadStatus.QUEUED,
                DownloadStatus.DOWNLOADING,
            ):
                return False
            self._stop_attempt(download_id)
            download.status = DownloadStatus.PAUSED
            download.position = None
            self._promote()

        logger.info(f"Paused download of {download.relative_path}")
        self._emit_queue()
        return True

    def resume(self, download_id: str) -> bool:
        """Re-enter a paused download at the back of the queue.

        Returns:
            True if the download was resumed.
        """
        return self._requeue(download_id, DownloadStatus.PAUSED)

    def retry(self, download_id: str) -> bool:
        """Re-enter a failed download at the back of the queue.

        Returns:
            True if the download was re-queued.
        """
        return self._requeue(download_id, DownloadStatus.FAILED)

    def cancel(self, download_id: str) -> bool:
        """Remove a download and mark its file cloud-only.

        The entry leaves the queue immediately, even if the transfer takes a
        moment to stop.

        Returns:
            True if the download existed.
        """
        with self._lock:
            download = self._entries.get(download_id)
            if download is None:
                return False
            self._stop_attempt(download_id)
            del self._entries[download_id]
            self._by_file.pop(download.file_id, None)
            self._promote()

        self._store.mark_cloud_only(self.drive_id, download.file_id)
        logger.info(f"Cancelled download of {download.relative_path}, now cloud-only")
        self._emit_queue()
        return True

    def suspend(self) -> None:
        """Stop promoting and return running downloads to the queue."""
        with self._lock:
            self._suspended = True
            running = [
                d for d in self._entries.values() if d.status == DownloadStatus.DOWNLOADING
            ]
            for download in reversed(running):
                self._stop_attempt(download.id)
                download.status = DownloadStatus.QUEUED
                download.progress = 0.0
                download.started_at = None
                download.last_progress_at = None
                # Interrupted downloads keep their turn
                self._move_to_front(download.id)
            self._renumber()
        if running:
            self._emit_queue()

    def resume_processing(self) -> None:
        """Allow promotion again after suspend()."""
        with self._lock:
            self._suspended = False
            self._promote()
        self._emit_queue()

    # =========================================================================
    # Queries
    # =========================================================================

    def get_queue_status(self) -> QueueStatus:
        """Counts for UI polling."""
        with self._lock:
            return QueueStatus(
                queued=self._queued_count(),
                active=self._active_count(),
                total=len(self._entries),
            )

    def has_live_downloads(self, now: float | None = None) -> bool:
        """Check if any running download reported progress recently."""
        now = self._clock() if now is None else now
        with self._lock:
            return any(
                not is_stalled(
                    now,
                    d.last_progress_at or d.started_at,
                    self._config.stall_threshold,
                )
                for d in self._entries.values()
                if d.status == DownloadStatus.DOWNLOADING
            )

    def get(self, download_id: str) -> FileDownload | None:
        """Get a copy of a download."""
        with self._lock:
            download = self._entries.get(download_id)
            return dataclasses.replace(download) if download else None

    def get_by_file(self, file_id: str) -> FileDownload | None:
        """Get a copy of the download of a remote file."""
        with self._lock:
            download_id = self._by_file.get(file_id)
            return self.get(download_id) if download_id else None

    def downloads(self) -> list[FileDownload]:
        """Get copies of all downloads in queue order."""
        with self._lock:
            return [dataclasses.replace(d) for d in self._entries.values()]

    def recent_completed(self) -> list[FileDownload]:
        """Most recent completed downloads, newest first."""
        with self._lock:
            return list(reversed(self._completed))

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # =========================================================================
    # Scheduling
    # =========================================================================

    def _queued_count(self) -> int:
        return sum(1 for d in self._entries.values() if d.status == DownloadStatus.QUEUED)

    def _active_count(self) -> int:
        return sum(1 for d in self._entries.values() if d.status == DownloadStatus.DOWNLOADING)

    def _requeue(self, download_id: str, from_status: DownloadStatus) -> bool:
        with self._lock:
            download = self._entries.get(download_id)
            if download is None or download.status != from_status:
                return False
            download.status = DownloadStatus.QUEUED
            download.error = None
            download.progress = 0.0
            download.started_at = None
            download.last_progress_at = None
            download.queued_at = self._clock()
            # Loses its original position
            self._entries[download_id] = self._entries.pop(download_id)
            self._promote()
        self._emit_queue()
        return True

    def _move_to_front(self, download_id: str) -> None:
        download = self._entries.pop(download_id)
        self._entries = {download_id: download, **self._entries}

    def _renumber(self) -> None:
        position = 0
        for download in self._entries.values():
            if download.status == DownloadStatus.QUEUED:
                download.position = position
                position += 1
            else:
                download.position = None

    def _promote(self) -> None:
        """Start queued downloads in FIFO order up to the bound. Caller holds the lock."""
        if not self._suspended:
            active = self._active_count()
            for download in list(self._entries.values()):
                if active >= self.max_concurrent:
                    break
                if download.status == DownloadStatus.QUEUED:
                    self._start(download)
                    active += 1
        self._renumber()

    def _start(self, download: FileDownload) -> None:
        now = self._clock()
        download.status = DownloadStatus.DOWNLOADING
        download.started_at = now
        download.last_progress_at = now
        download.progress = 0.0
        download.error = None

        attempt = _Attempt(download.id)
        self._attempts[download.id] = attempt
        job = DownloadJob(
            download_id=download.id,
            drive_id=self._mapping.drive_id,
            file_id=download.file_id,
            local_path=download.local_path,
            size=download.size,
            content_signature=download.content_signature,
            tx_refs=list(download.tx_refs),
            private=self._mapping.is_private,
        )
        if not self._runner.submit(lambda: self._run(attempt, job)):
            del self._attempts[download.id]
            download.status = DownloadStatus.FAILED
            download.error = "Download workers are not running"

    def _stop_attempt(self, download_id: str) -> None:
        attempt = self._attempts.pop(download_id, None)
        if attempt is not None:
            attempt.cancelled = True

    def _run(self, attempt: _Attempt, job: DownloadJob) -> None:
        worker = self._worker_factory()
        result = worker.execute(
            job,
            on_progress=lambda pct: self._on_progress(attempt, pct),
            cancel_check=lambda: attempt.cancelled,
        )
        self._finish(attempt, job, result)

    def _on_progress(self, attempt: _Attempt, percent: float) -> None:
        with self._lock:
            if self._attempts.get(attempt.download_id) is not attempt:
                return
            download = self._entries.get(attempt.download_id)
            if download is None:
                return
            download.progress = percent
            download.last_progress_at = self._clock()

    def _finish(self, attempt: _Attempt, job: DownloadJob, result: WorkerResult) -> None:
        with self._lock:
            if self._attempts.get(attempt.download_id) is not attempt:
                # Paused, cancelled or suspended meanwhile
                return
            del self._attempts[attempt.download_id]
            download = self._entries.get(attempt.download_id)
            if download is None:
                return

            if result.success:
                download.status = DownloadStatus.COMPLETED
                download.progress = 100.0
                download.completed_at = self._clock()
                download.position = None
                del self._entries[download.id]
                self._by_file.pop(download.file_id, None)
                archived = dataclasses.replace(download)
                self._completed.append(archived)
            else:
                archived = None
                download.status = DownloadStatus.FAILED
                download.error = (
                    "Download cancelled"
                    if result.cancelled
                    else describe_download_error(result.exception, result.error)
                )
                logger.warning(f"Download of {download.relative_path} failed: {download.error}")
            self._promote()

        if archived is not None:
            try:
                self._store.set_synced_signature(
                    self.drive_id, archived.relative_path, result.result
                )
            except Exception:
                logger.exception(f"Could not record download of {archived.relative_path}")
            if self._on_completed:
                self._on_completed(archived)
        self._emit_queue()

    def _emit_queue(self) -> None:
        if self._broadcaster is not None:
            self._broadcaster.emit(
                ProgressEvent(ProgressKind.DOWNLOAD_QUEUE, self.drive_id, self.downloads())
            )
