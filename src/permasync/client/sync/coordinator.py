"""Sync coordinator: the per-drive sync state machine.

This module provides:
- SyncCoordinator: Owns the sync phase of one drive and runs the
  watch -> upload queue pipeline and the reconciliation passes

Phases:
    | From               | Event                       | To         |
    |--------------------|-----------------------------|------------|
    | idle / error       | start_sync()                | syncing    |
    | syncing            | initial pass done           | monitoring |
    | syncing            | enumeration failed          | error      |
    | monitoring         | authentication rejected     | error      |
    | syncing/monitoring | stop_sync()                 | idle       |

While monitoring, watch events and periodic or manual passes only update
the progress counters.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
import time
from pathlib import Path
from typing import TYPE_CHECKING

from permasync.client.api import AuthenticationError
from permasync.client.sync.progress import ProgressEvent, ProgressKind
from permasync.client.sync.reconcile import (
    assign_paths,
    cleanup_orphans,
    plan_reconciliation,
    scan_local_files,
)
from permasync.client.sync.types import (
    DownloadStatus,
    EnumerationError,
    SyncPhase,
    SyncResult,
    SyncSnapshotState,
    WatchEvent,
    WatchEventType,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from permasync.core.config import EngineConfig
    from permasync.client.sync.download_queue import DownloadQueue
    from permasync.client.sync.interfaces import LedgerService, MetadataStore, WatchService
    from permasync.client.sync.progress import ProgressBroadcaster
    from permasync.client.sync.types import DriveMapping, FileDownload, PendingUpload
    from permasync.client.sync.upload_queue import UploadQueue

logger = logging.getLogger(__name__)

STOP_JOIN_TIMEOUT = 5.0


class SyncCoordinator:
    """Sync state machine of one drive.

    Usage:
        coordinator = SyncCoordinator(mapping, ledger, store, uploads, downloads, watcher, config)
        if coordinator.start_sync():
            ...
            coordinator.manual_sync()
        coordinator.stop_sync()

    Only one sync runs at a time: a second start_sync() while syncing or
    monitoring returns False.
    """

    def __init__(
        self,
        mapping: DriveMapping,
        ledger: LedgerService,
        store: MetadataStore,
        uploads: UploadQueue,
        downloads: DownloadQueue,
        watch: WatchService,
        config: EngineConfig,
        broadcaster: ProgressBroadcaster | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the coordinator.

        Args:
            mapping: Drive and local folder to keep in sync.
            ledger: Remote storage used to enumerate the drive.
            store: Local metadata store.
            uploads: Upload queue of the drive.
            downloads: Download queue of the drive.
            watch: Filesystem watch service.
            config: Engine configuration.
            broadcaster: Optional progress channel.
            clock: Monotonic time source for the reconcile tick.
        """
        self._mapping = mapping
        self._ledger = ledger
        self._store = store
        self._uploads = uploads
        self._downloads = downloads
        self._watch = watch
        self._config = config
        self._broadcaster = broadcaster
        self._clock = clock

        self._root_folder_id = mapping.root_folder_id
        self._lock = threading.RLock()
        self._pass_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._tick_thread: threading.Thread | None = None
        self._state = SyncSnapshotState()
        self._pass_failures = 0

        uploads.set_on_use_remote(self._on_use_remote)
        uploads.set_on_completed(self._on_upload_completed)
        downloads.set_on_completed(self._on_download_completed)

    @property
    def drive_id(self) -> str:
        """Get the drive this coordinator syncs."""
        return self._mapping.drive_id

    @property
    def folder(self) -> Path:
        """Get the local sync folder."""
        return Path(self._mapping.folder_path)

    @property
    def state(self) -> SyncSnapshotState:
        """Get the current snapshot."""
        with self._lock:
            return self._state

    @property
    def phase(self) -> SyncPhase:
        """Get the current phase."""
        return self.state.phase

    @property
    def is_active(self) -> bool:
        """Check if a sync is running (syncing or monitoring)."""
        return self.phase in (SyncPhase.SYNCING, SyncPhase.MONITORING)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start_sync(self, drive_id: str | None = None, root_folder_id: str | None = None) -> bool:
        """Start syncing: run the initial pass, then monitor the folder.

        Args:
            drive_id: Drive to sync; must match the mapping when given.
            root_folder_id: Remote root folder; defaults to the mapping's.

        Returns:
            False if a sync is already running or the initial pass failed.
        """
        with self._lock:
            if self.is_active:
                logger.warning(f"Sync of {self._mapping.name} already running")
                return False
            if drive_id is not None and drive_id != self.drive_id:
                logger.warning(f"Coordinator of {self.drive_id} cannot sync drive {drive_id}")
                return False
            if root_folder_id:
                self._root_folder_id = root_folder_id
            self._stop_event.clear()
            self._pass_failures = 0
            self._replace_state(SyncSnapshotState(phase=SyncPhase.SYNCING, active=True))

        logger.info(f"Starting sync of {self._mapping.name} into {self.folder}")
        try:
            self.folder.mkdir(parents=True, exist_ok=True)
            cleanup_orphans(self.folder)
        except OSError as e:
            self._fail(f"Sync folder unavailable: {e}")
            return False

        self._downloads.resume_processing()
        with self._pass_lock:
            try:
                self._reconcile()
            except EnumerationError as e:
                self._fail(str(e))
                return False

        with self._lock:
            if self._stop_event.is_set():
                logger.info(f"Sync of {self._mapping.name} stopped during the initial pass")
                return False
            try:
                self._watch.subscribe(self.folder, self._on_watch_event)
            except (OSError, ValueError) as e:
                self._fail(f"Cannot watch {self.folder}: {e}")
                return False

            self._tick_thread = threading.Thread(
                target=self._tick_loop,
                name=f"SyncTick-{self.drive_id[:8]}",
                daemon=True,
            )
            self._tick_thread.start()
            self._update(phase=SyncPhase.MONITORING, progress=100.0, current_file=None)

        logger.info(f"Sync of {self._mapping.name} is monitoring for changes")
        return True

    def stop_sync(self) -> None:
        """Stop syncing; idempotent when idle.

        The watch and tick are torn down first, in-flight uploads return to
        awaiting approval, running downloads go back to queued.
        """
        with self._lock:
            if self._state.phase == SyncPhase.IDLE:
                return
        self._teardown()
        self._update(phase=SyncPhase.IDLE, active=False, current_file=None, error=None)
        logger.info(f"Sync of {self._mapping.name} stopped")

    def manual_sync(self) -> SyncResult:
        """Run an out-of-band reconciliation pass.

        The phase is left as is, except that a rejected authentication
        moves the coordinator to error.

        Returns:
            Success, or the error message of the failed pass.
        """
        if not self._pass_lock.acquire(blocking=False):
            return SyncResult(success=False, error="A sync pass is already running")
        try:
            self._reconcile()
        except EnumerationError as e:
            if e.fatal:
                self._fail(str(e))
            else:
                self._update(error=str(e))
            return SyncResult(success=False, error=str(e))
        finally:
            self._pass_lock.release()

        self._update(error=None, current_file=None)
        return SyncResult(success=True)

    def emit_progress(self, snapshot: SyncSnapshotState | None = None) -> None:
        """Broadcast a snapshot (the current one by default) to observers."""
        if self._broadcaster is None:
            return
        self._broadcaster.emit(
            ProgressEvent(ProgressKind.SNAPSHOT, self.drive_id, snapshot or self.state)
        )

    # =========================================================================
    # Reconciliation
    # =========================================================================

    def _reconcile(self) -> None:
        """One pass: enumerate the drive, materialize folders, feed both queues.

        Caller holds the pass lock.

        Raises:
            EnumerationError: If the drive could not be listed.
        """
        drive_id = self.drive_id
        try:
            entries = self._ledger.list_drive_contents(drive_id)
        except AuthenticationError as e:
            raise EnumerationError(f"Authentication failed: {e}", fatal=True) from e
        except Exception as e:
            raise EnumerationError(f"Could not list drive contents: {e}") from e

        entries = assign_paths(entries, self._root_folder_id)
        self._store.replace_remote_entries(drive_id, entries)

        folder = self.folder
        plan = plan_reconciliation(
            folder,
            entries,
            scan_local_files(folder),
            self._store.list_cloud_only(drive_id),
            self._store.list_synced_signatures(drive_id),
        )

        for rel in plan.folders:
            try:
                (folder / rel).mkdir(parents=True, exist_ok=True)
            except OSError as e:
                logger.warning(f"Could not create folder {rel}: {e}")

        for rel, signature in plan.adopted.items():
            self._store.set_synced_signature(drive_id, rel, signature)

        total = len(plan.downloads) + len(plan.uploads)
        logger.info(
            f"Reconciled {self._mapping.name}: {len(plan.downloads)} to download, "
            f"{len(plan.uploads)} local file(s) to check"
        )
        self._update(total_files=total, progress=0.0 if total else 100.0)

        done = 0
        failures = 0
        for entry in plan.downloads:
            self._update(current_file=entry.name)
            try:
                self._downloads.enqueue(entry.id)
            except Exception:
                logger.exception(f"Could not queue download of {entry.path}")
                failures += 1
            done += 1
            self._update(progress=100.0 * done / total)

        for path in plan.uploads:
            self._update(current_file=path.name)
            try:
                self._uploads.admit(path)
            except Exception:
                logger.exception(f"Could not queue {path.name} for upload")
                failures += 1
            done += 1
            self._update(progress=100.0 * done / total)

        with self._lock:
            self._pass_failures = failures
        self._refresh()

    # =========================================================================
    # Tick
    # =========================================================================

    def _tick_loop(self) -> None:
        """Refresh progress while transfers run and reconcile periodically."""
        interval = self._config.reconcile_interval
        next_pass = self._clock() + interval if interval > 0 else None

        while not self._stop_event.wait(self._config.progress_interval):
            try:
                if self._downloads.has_live_downloads() or self._uploads.in_flight_count():
                    self._refresh()
                if next_pass is not None and self._clock() >= next_pass:
                    next_pass = self._clock() + interval
                    result = self.manual_sync()
                    if not result.success:
                        logger.warning(
                            f"Periodic sync of {self._mapping.name} failed: {result.error}"
                        )
            except Exception:
                logger.exception("Error in sync tick")

        logger.debug(f"Sync tick of {self._mapping.name} ended")

    # =========================================================================
    # Events
    # =========================================================================

    def _on_watch_event(self, event: WatchEvent) -> None:
        path = Path(event.path)
        try:
            if event.type == WatchEventType.DELETE:
                self._uploads.discard_path(path)
            elif self._uploads.admit(path) is not None:
                self._update(current_file=path.name)
        except Exception:
            logger.exception(f"Error handling {event.type.value} of {path.name}")

    def _on_use_remote(self, remote_id: str) -> None:
        self._downloads.enqueue(remote_id)

    def _on_upload_completed(self, upload: PendingUpload) -> None:
        self._count_synced()

    def _on_download_completed(self, download: FileDownload) -> None:
        self._count_synced()

    def _count_synced(self) -> None:
        with self._lock:
            self._state = dataclasses.replace(
                self._state, synced_files=self._state.synced_files + 1
            )
            snapshot = self._state
        self.emit_progress(snapshot)
        self._refresh()

    # =========================================================================
    # State
    # =========================================================================

    def _refresh(self) -> None:
        """Recompute the failure count from the queues."""
        failed_downloads = sum(
            1 for d in self._downloads.downloads() if d.status == DownloadStatus.FAILED
        )
        failed = len(self._uploads.failed_ids()) + failed_downloads
        with self._lock:
            failed += self._pass_failures
        self._update(failed_files=failed)

    def _fail(self, message: str) -> None:
        logger.error(f"Sync of {self._mapping.name} failed: {message}")
        self._teardown()
        self._update(phase=SyncPhase.ERROR, active=False, current_file=None, error=message)

    def _teardown(self) -> None:
        """Unsubscribe the watch, stop the tick, cancel in-flight transfers."""
        self._stop_event.set()
        with self._lock:
            thread = self._tick_thread
            self._tick_thread = None

        self._watch.unsubscribe()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=STOP_JOIN_TIMEOUT)

        cancelled = self._uploads.cancel_in_flight()
        if cancelled:
            logger.info(f"Returned {cancelled} upload(s) to awaiting approval")
        self._downloads.suspend()

    def _update(self, **changes: object) -> None:
        with self._lock:
            self._state = dataclasses.replace(self._state, **changes)
            snapshot = self._state
        self.emit_progress(snapshot)

    def _replace_state(self, state: SyncSnapshotState) -> None:
        with self._lock:
            self._state = state
        self.emit_progress(state)
