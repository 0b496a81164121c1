"""Upload queue: approval gating, conflicts, settlement and submission.

This module provides:
- UploadQueue: Pending uploads of one drive and their in-flight submissions

Lifecycle of an entry:
    admit() -> awaiting_approval -> approve() -> approved (submitting)
        -> completed: removed after the grace period
        -> failed: stays, with the error on its progress record

Invariants:
- At most one entry per local path (a newer admission supersedes the old one).
- At most one in-flight submission per local path; an approval for a path
  that is still submitting waits behind it.
- Entries with a conflict cannot be approved until resolved.
"""

from __future__ import annotations

import dataclasses
import logging
import mimetypes
import threading
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

from permasync.core.crypto import compute_file_hash
from permasync.client.sync.conflict import ResolutionAction
from permasync.client.sync.cost import aggregate_costs, is_free
from permasync.client.sync.progress import ProgressEvent, ProgressKind
from permasync.client.sync.reconcile import join_remote_path, relative_key
from permasync.client.sync.types import (
    BatchResult,
    ConflictType,
    CostBreakdown,
    EntryType,
    InsufficientBalanceError,
    PendingUpload,
    ProgressStatus,
    RemoteEntry,
    ResolutionVerb,
    SettlementMethod,
    SyncError,
    UploadError,
    UploadProgressRecord,
    UploadRecord,
    UploadStatus,
)
from permasync.client.sync.workers.upload import UploadJob, UploadOutcome

if TYPE_CHECKING:
    from collections.abc import Callable

    from permasync.core.config import EngineConfig
    from permasync.client.sync.conflict import ConflictResolver
    from permasync.client.sync.cost import CostEstimator
    from permasync.client.sync.interfaces import MetadataStore, TaskRunner
    from permasync.client.sync.progress import ProgressBroadcaster
    from permasync.client.sync.types import DriveMapping
    from permasync.client.sync.workers.base import WorkerResult
    from permasync.client.sync.workers.upload import UploadWorker

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"


@dataclass
class _Submission:
    """Handle of one in-flight submission.

    ``cancelled`` is the cancel check handed to the worker. ``detached`` means
    the entry was superseded: the result is still recorded in the store but
    no longer reflected on any entry.
    """

    upload_id: str
    path: str
    cancelled: bool = False
    detached: bool = False


class UploadQueue:
    """Pending uploads of one drive.

    All state lives behind one RLock. Collaborators (estimator, store,
    runner) are called outside the lock, except ``runner.submit`` which only
    enqueues.
    """

    def __init__(
        self,
        mapping: DriveMapping,
        store: MetadataStore,
        estimator: CostEstimator,
        resolver: ConflictResolver,
        runner: TaskRunner,
        worker_factory: Callable[[], UploadWorker],
        config: EngineConfig,
        broadcaster: ProgressBroadcaster | None = None,
    ) -> None:
        """Initialize the upload queue.

        Args:
            mapping: Drive the queue uploads to.
            store: Local metadata store.
            estimator: Cost estimator used at admission and approval.
            resolver: Conflict resolver.
            runner: Executes submissions in the background.
            worker_factory: Creates an UploadWorker per submission.
            config: Engine configuration.
            broadcaster: Optional progress channel.
        """
        self._mapping = mapping
        self._store = store
        self._estimator = estimator
        self._resolver = resolver
        self._runner = runner
        self._worker_factory = worker_factory
        self._config = config
        self._broadcaster = broadcaster

        self._lock = threading.RLock()
        self._entries: dict[str, PendingUpload] = {}
        self._by_path: dict[str, str] = {}
        self._progress: dict[str, UploadProgressRecord] = {}
        self._inflight: dict[str, _Submission] = {}
        self._waiting: dict[str, str] = {}
        self._last_approval: dict[str, tuple[SettlementMethod, dict[str, str] | None]] = {}
        self._timers: dict[str, threading.Timer] = {}

        self._on_use_remote: Callable[[str], None] | None = None
        self._on_completed: Callable[[PendingUpload], None] | None = None

    @property
    def drive_id(self) -> str:
        """Get the drive this queue uploads to."""
        return self._mapping.drive_id

    def set_on_use_remote(self, callback: Callable[[str], None]) -> None:
        """Set callback receiving the remote file id chosen by use_remote."""
        self._on_use_remote = callback

    def set_on_completed(self, callback: Callable[[PendingUpload], None]) -> None:
        """Set callback for uploads that completed."""
        self._on_completed = callback

    # =========================================================================
    # Admission
    # =========================================================================

    def admit(self, local_path: Path) -> PendingUpload | None:
        """Add a new or changed local file as awaiting approval.

        Args:
            local_path: Absolute path of the file.

        Returns:
            The new entry, or None if the file was not admitted (missing,
            too large, outside the folder, or unchanged since the last sync).
        """
        folder = Path(self._mapping.folder_path)
        try:
            rel = relative_key(local_path, folder)
            stat = local_path.stat()
        except (ValueError, OSError) as e:
            logger.debug(f"Not admitting {local_path}: {e}")
            return None
        if not local_path.is_file():
            return None

        if stat.st_size > self._config.max_file_size:
            logger.warning(
                f"Skipping {rel}: {stat.st_size} bytes exceeds the "
                f"{self._config.max_file_size} byte limit"
            )
            return None

        try:
            signature = compute_file_hash(local_path)
        except OSError as e:
            logger.warning(f"Could not read {rel}: {e}")
            return None

        base = self._store.get_synced_signature(self.drive_id, rel)
        if base == signature:
            logger.debug(f"{rel} unchanged since last sync")
            self.discard_path(local_path)
            return None

        with self._lock:
            existing = self._entries.get(self._by_path.get(rel, ""))
            if existing is not None and existing.content_signature == signature:
                return dataclasses.replace(existing)

        remote = self._store.get_remote_entry(self.drive_id, rel)
        upload = PendingUpload(
            local_path=str(local_path),
            relative_path=rel,
            file_name=local_path.name,
            size=stat.st_size,
            mime_type=mimetypes.guess_type(local_path.name)[0] or DEFAULT_MIME_TYPE,
            content_signature=signature,
        )
        classification = self._resolver.classify(upload, remote, base)
        upload.conflict = classification.conflict
        upload.conflict_detail = classification.detail
        upload.remote_id = classification.remote_id

        try:
            estimate = self._estimator.estimate(upload.size)
        except Exception as e:
            # Priced again at approval
            logger.warning(f"Could not price {rel}: {e}")
        else:
            upload.estimate = estimate
            upload.native_cost = estimate.native_cost
            upload.credits_cost = estimate.credits_cost
            upload.sufficient_credits = estimate.sufficient_credits

        with self._lock:
            old_id = self._by_path.get(rel)
            if old_id is not None and self._entries[old_id].content_signature == signature:
                # Same content already queued; keep its approval state
                return dataclasses.replace(self._entries[old_id])
            if old_id is not None:
                logger.debug(f"Superseding pending upload for {rel}")
                self._drop(old_id)
            self._entries[upload.id] = upload
            self._by_path[rel] = upload.id

        logger.info(f"Queued {rel} for approval ({upload.conflict.value})")
        self._emit_queue()

        if self._config.auto_approve and not upload.has_conflict:
            try:
                self.approve(upload.id)
            except SyncError as e:
                logger.warning(f"Auto-approval of {rel} failed: {e}")

        return upload

    def discard_path(self, local_path: Path) -> bool:
        """Drop the pending entry of a path that is not submitting.

        Used when the file is deleted locally before approval.

        Returns:
            True if an entry was removed.
        """
        try:
            rel = relative_key(local_path, Path(self._mapping.folder_path))
        except ValueError:
            return False
        with self._lock:
            upload_id = self._by_path.get(rel)
            if upload_id is None:
                return False
            sub = self._inflight.get(rel)
            if sub is not None and sub.upload_id == upload_id and not sub.cancelled:
                return False
            self._drop(upload_id)
        self._emit_queue()
        return True

    # =========================================================================
    # Approval
    # =========================================================================

    def approve(
        self,
        upload_id: str,
        method: SettlementMethod | None = None,
        metadata: dict[str, str] | None = None,
    ) -> bool:
        """Approve an upload and submit it.

        Args:
            upload_id: Entry to approve.
            method: Settlement method (the re-validated estimate's choice if None).
            metadata: Custom metadata tags (the entry's own if None).

        Returns:
            True if approved; False for unknown ids, conflicted entries and
            entries that are not awaiting approval.

        Raises:
            InsufficientBalanceError: The chosen method cannot cover the cost.
            UploadError: FREE was requested for a file above the free tier, or
                the upload could not be priced.
        """
        with self._lock:
            entry = self._entries.get(upload_id)
            if entry is None:
                return False
            if entry.has_conflict:
                logger.info(f"Not approving {entry.relative_path}: {entry.conflict.value}")
                return False
            if entry.status != UploadStatus.AWAITING_APPROVAL:
                return False
            size = entry.size

        # Balances may have changed since admission
        balances = self._estimator.balances()
        try:
            estimate = self._estimator.estimate(size, balances)
        except Exception as e:
            raise UploadError(f"Could not price upload: {e}") from e
        chosen = method or estimate.method

        match chosen:
            case SettlementMethod.FREE:
                if not is_free(size, self._estimator.free_tier_threshold):
                    raise UploadError("File is too large for the free tier")
            case SettlementMethod.CREDITS:
                if not estimate.sufficient_credits:
                    raise InsufficientBalanceError(
                        f"Insufficient credits: {balances.credits} < {estimate.credits_cost}"
                    )
            case SettlementMethod.NATIVE_TOKEN:
                if balances.native < estimate.native_cost:
                    raise InsufficientBalanceError(
                        f"Insufficient balance: {balances.native} < {estimate.native_cost}"
                    )

        with self._lock:
            entry = self._entries.get(upload_id)
            if (
                entry is None
                or entry.has_conflict
                or entry.status != UploadStatus.AWAITING_APPROVAL
            ):
                return False
            entry.status = UploadStatus.APPROVED
            entry.method = chosen
            entry.estimate = estimate
            entry.native_cost = estimate.native_cost
            entry.credits_cost = estimate.credits_cost
            entry.sufficient_credits = estimate.sufficient_credits
            if metadata is not None:
                entry.metadata = dict(metadata)
            self._last_approval[upload_id] = (chosen, entry.metadata)

            if entry.relative_path in self._inflight:
                logger.info(f"{entry.relative_path} is submitting, approval queued behind it")
                self._waiting[entry.relative_path] = upload_id
            else:
                self._start(entry, chosen)

        logger.info(f"Approved {entry.relative_path} ({chosen.value})")
        self._emit_queue()
        return True

    def reject(self, upload_id: str) -> bool:
        """Remove an entry; no remote effect.

        Returns:
            True if the entry existed.
        """
        with self._lock:
            if upload_id not in self._entries:
                return False
            self._drop(upload_id, cancel=True)
        self._emit_queue()
        return True

    def approve_all(self) -> BatchResult:
        """Approve every conflict-free entry awaiting approval.

        Conflicted entries are neither approved nor errors. Per-item failures
        are collected without aborting the batch.
        """
        with self._lock:
            candidates = [
                e
                for e in self._entries.values()
                if e.status == UploadStatus.AWAITING_APPROVAL and not e.has_conflict
            ]

        approved = 0
        errors: list[str] = []
        for entry in candidates:
            try:
                if self.approve(entry.id):
                    approved += 1
            except Exception as e:
                errors.append(f"{entry.file_name}: {e}")

        return BatchResult(approved_count=approved, total_count=len(candidates), errors=errors)

    def reject_all(self) -> None:
        """Clear every entry, cancelling submissions in flight."""
        with self._lock:
            for upload_id in list(self._entries):
                self._drop(upload_id, cancel=True)
        self._emit_queue()

    def cancel(self, upload_id: str) -> bool:
        """Cancel the submission of an approved entry.

        The entry returns to awaiting approval; it is not re-submitted
        automatically. A failed entry is acknowledged the same way.

        Returns:
            True if there was something to cancel.
        """
        with self._lock:
            entry = self._entries.get(upload_id)
            if entry is None or entry.status != UploadStatus.APPROVED:
                return False
            record = self._progress.get(upload_id)
            if record is not None and record.status == ProgressStatus.COMPLETED:
                return False
            sub = self._inflight.get(entry.relative_path)
            if sub is not None and sub.upload_id == upload_id:
                # Stays registered until the worker returns, keeping the path serialized
                sub.cancelled = True
            if self._waiting.get(entry.relative_path) == upload_id:
                del self._waiting[entry.relative_path]
            entry.status = UploadStatus.AWAITING_APPROVAL
            self._progress.pop(upload_id, None)

        logger.info(f"Cancelled upload of {entry.relative_path}")
        self._emit_queue()
        return True

    def retry(self, upload_id: str) -> bool:
        """Re-approve a failed upload with its previous method and metadata.

        Returns:
            True if the upload was re-approved.

        Raises:
            InsufficientBalanceError: As for approve().
        """
        with self._lock:
            record = self._progress.get(upload_id)
            entry = self._entries.get(upload_id)
            if entry is None or record is None or record.status != ProgressStatus.FAILED:
                return False
            del self._progress[upload_id]
            entry.status = UploadStatus.AWAITING_APPROVAL
            method, metadata = self._last_approval.get(upload_id, (None, None))

        return self.approve(upload_id, method, metadata)

    def retry_all_failed(self) -> BatchResult:
        """Retry every failed upload, collecting per-item errors."""
        failed = self.failed_ids()
        retried = 0
        errors: list[str] = []
        for upload_id in failed:
            name = self._name_of(upload_id)
            try:
                if self.retry(upload_id):
                    retried += 1
            except Exception as e:
                errors.append(f"{name}: {e}")
        return BatchResult(approved_count=retried, total_count=len(failed), errors=errors)

    def resolve_conflict(self, upload_id: str, verb: ResolutionVerb) -> bool:
        """Apply a resolution verb to a conflicted entry.

        Returns:
            True if the entry had a conflict and the verb was applied.
        """
        remote_id = None
        with self._lock:
            entry = self._entries.get(upload_id)
            if entry is None or not entry.has_conflict:
                return False
            outcome = self._resolver.resolve(entry, verb)
            match outcome.action:
                case ResolutionAction.KEEP:
                    entry.conflict = ConflictType.NONE
                    entry.conflict_detail = ""
                case ResolutionAction.RENAME:
                    entry.conflict = ConflictType.NONE
                    entry.conflict_detail = ""
                    entry.upload_name = outcome.new_name
                case ResolutionAction.DISCARD:
                    self._drop(upload_id)
                case ResolutionAction.DOWNLOAD_REMOTE:
                    self._drop(upload_id)
                    remote_id = outcome.remote_id

        logger.info(f"Resolved conflict on {entry.relative_path}: {verb.value}")
        if remote_id is not None and self._on_use_remote:
            self._on_use_remote(remote_id)
        self._emit_queue()
        return True

    def cancel_in_flight(self) -> int:
        """Cancel every submission and queued approval (used on stop).

        Returns:
            Number of entries returned to awaiting approval.
        """
        count = 0
        with self._lock:
            for entry in self._entries.values():
                if entry.status != UploadStatus.APPROVED:
                    continue
                record = self._progress.get(entry.id)
                if record is not None and record.status != ProgressStatus.UPLOADING:
                    continue
                sub = self._inflight.get(entry.relative_path)
                if sub is not None and sub.upload_id == entry.id:
                    sub.cancelled = True
                self._waiting.pop(entry.relative_path, None)
                entry.status = UploadStatus.AWAITING_APPROVAL
                self._progress.pop(entry.id, None)
                count += 1
        if count:
            self._emit_queue()
        return count

    def close(self) -> None:
        """Cancel pending grace-period timers."""
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, upload_id: str) -> PendingUpload | None:
        """Get a copy of an entry."""
        with self._lock:
            entry = self._entries.get(upload_id)
            return dataclasses.replace(entry) if entry else None

    def get_by_path(self, relative_path: str) -> PendingUpload | None:
        """Get a copy of the entry of a relative path."""
        with self._lock:
            upload_id = self._by_path.get(relative_path)
            return self.get(upload_id) if upload_id else None

    def pending(self) -> list[PendingUpload]:
        """Get copies of all entries, oldest first."""
        with self._lock:
            return [dataclasses.replace(e) for e in self._entries.values()]

    def get_progress(self, upload_id: str) -> UploadProgressRecord | None:
        """Get a copy of the progress record of an entry."""
        with self._lock:
            record = self._progress.get(upload_id)
            return dataclasses.replace(record) if record else None

    def failed_ids(self) -> list[str]:
        """Ids of entries whose submission failed."""
        with self._lock:
            return [
                upload_id
                for upload_id, record in self._progress.items()
                if record.status == ProgressStatus.FAILED
            ]

    def in_flight_count(self) -> int:
        """Number of submissions currently running."""
        with self._lock:
            return len(self._inflight)

    def is_submitting(self, relative_path: str) -> bool:
        """Check if a path has a submission in flight."""
        with self._lock:
            return relative_path in self._inflight

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def cost_breakdown(self) -> CostBreakdown:
        """Aggregate cost of the entries that would be uploaded.

        Conflicted entries are excluded until resolved; approved entries are
        counted under the method chosen at approval.
        """
        with self._lock:
            items = [
                (e.estimate, e.method)
                for e in self._entries.values()
                if e.estimate is not None and not e.has_conflict
            ]
        return aggregate_costs(items)

    # =========================================================================
    # Submission
    # =========================================================================

    def _start(self, entry: PendingUpload, method: SettlementMethod) -> None:
        """Start the submission of an approved entry. Caller holds the lock."""
        sub = _Submission(upload_id=entry.id, path=entry.relative_path)
        self._inflight[entry.relative_path] = sub
        self._progress[entry.id] = UploadProgressRecord(upload_id=entry.id)

        job = UploadJob(
            upload_id=entry.id,
            drive_id=self._mapping.drive_id,
            parent_folder_id=self._mapping.root_folder_id,
            local_path=entry.local_path,
            relative_path=entry.relative_path,
            remote_name=entry.remote_name,
            mime_type=entry.mime_type,
            method=method,
            private=self._mapping.is_private,
            metadata=dict(entry.metadata or {}),
        )

        if not self._runner.submit(lambda: self._run(sub, job)):
            del self._inflight[entry.relative_path]
            self._progress[entry.id] = UploadProgressRecord(
                upload_id=entry.id,
                status=ProgressStatus.FAILED,
                error="Upload workers are not running",
            )

    def _run(self, sub: _Submission, job: UploadJob) -> None:
        job = dataclasses.replace(job, parent_folder_id=self._parent_folder_id(job.relative_path))
        worker = self._worker_factory()
        result = worker.execute(
            job,
            on_progress=lambda pct: self._on_progress(sub, pct),
            cancel_check=lambda: sub.cancelled,
        )
        self._finish(sub, job, result)

    def _parent_folder_id(self, relative_path: str) -> str:
        """Remote id of the folder a path uploads into; the root if unknown."""
        parent = str(PurePosixPath(relative_path).parent)
        if parent != ".":
            folder = self._store.get_remote_entry(self.drive_id, parent)
            if folder is not None and folder.is_folder:
                return folder.id
        return self._mapping.root_folder_id

    def _on_progress(self, sub: _Submission, percent: float) -> None:
        with self._lock:
            if sub.cancelled or sub.detached:
                return
            record = self._progress.get(sub.upload_id)
            if record is None or record.status != ProgressStatus.UPLOADING:
                return
            record.progress = percent
            snapshot = dataclasses.replace(record)
        self._emit(ProgressKind.UPLOAD_PROGRESS, snapshot)

    def _finish(self, sub: _Submission, job: UploadJob, result: WorkerResult) -> None:
        """Record the outcome of a submission and start the next one for the path."""
        with self._lock:
            if self._inflight.get(sub.path) is sub:
                del self._inflight[sub.path]
            next_id = self._waiting.pop(sub.path, None)

        if sub.cancelled or result.cancelled:
            logger.info(f"Upload of {sub.path} stopped after cancellation")
        elif result.success:
            self._record_success(sub, job, result.result)
        else:
            self._record_failure(sub, result.error or "Upload failed")

        if next_id is not None:
            with self._lock:
                entry = self._entries.get(next_id)
                if (
                    entry is not None
                    and entry.status == UploadStatus.APPROVED
                    and entry.method is not None
                ):
                    self._start(entry, entry.method)
        self._emit_queue()

    def _record_success(self, sub: _Submission, job: UploadJob, outcome: UploadOutcome) -> None:
        remote_path = join_remote_path(job.relative_path, job.remote_name)
        try:
            self._store.add_upload_record(
                UploadRecord(
                    upload_id=job.upload_id,
                    drive_id=job.drive_id,
                    relative_path=job.relative_path,
                    file_name=job.remote_name,
                    size=outcome.size,
                    method=job.method,
                    remote_id=outcome.submit.id,
                    content_signature=outcome.content_signature,
                    tx_refs=list(outcome.submit.tx_refs),
                )
            )
            self._store.upsert_remote_entry(
                job.drive_id,
                RemoteEntry(
                    id=outcome.submit.id,
                    name=job.remote_name,
                    type=EntryType.FILE,
                    size=outcome.size,
                    parent_id=job.parent_folder_id,
                    content_signature=outcome.content_signature,
                    tx_refs=list(outcome.submit.tx_refs),
                    path=remote_path,
                ),
            )
            self._store.set_synced_signature(
                job.drive_id, job.relative_path, outcome.content_signature
            )
        except Exception:
            logger.exception(f"Could not record upload of {job.relative_path}")

        logger.info(f"Uploaded {job.relative_path} as {outcome.submit.id}")
        if sub.detached:
            return

        with self._lock:
            entry = self._entries.get(sub.upload_id)
            record = self._progress.get(sub.upload_id)
            if record is not None:
                record.status = ProgressStatus.COMPLETED
                record.progress = 100.0
                snapshot = dataclasses.replace(record)
            else:
                snapshot = None
            self._schedule_removal(sub.upload_id)

        if snapshot is not None:
            self._emit(ProgressKind.UPLOAD_PROGRESS, snapshot)
        if entry is not None and self._on_completed:
            self._on_completed(dataclasses.replace(entry))

    def _record_failure(self, sub: _Submission, error: str) -> None:
        logger.warning(f"Upload of {sub.path} failed: {error}")
        if sub.detached:
            return
        with self._lock:
            record = self._progress.get(sub.upload_id)
            if record is None:
                return
            record.status = ProgressStatus.FAILED
            record.error = error
            snapshot = dataclasses.replace(record)
        self._emit(ProgressKind.UPLOAD_PROGRESS, snapshot)

    def _schedule_removal(self, upload_id: str) -> None:
        """Remove a completed entry after the grace period. Caller holds the lock."""
        grace = self._config.completion_grace
        if grace <= 0:
            self._remove_completed(upload_id)
            return
        timer = threading.Timer(grace, self._remove_completed, args=(upload_id,))
        timer.daemon = True
        self._timers[upload_id] = timer
        timer.start()

    def _remove_completed(self, upload_id: str) -> None:
        with self._lock:
            self._timers.pop(upload_id, None)
            record = self._progress.get(upload_id)
            if record is None or record.status != ProgressStatus.COMPLETED:
                return
            self._drop(upload_id)
        self._emit_queue()

    # =========================================================================
    # Internals
    # =========================================================================

    def _drop(self, upload_id: str, cancel: bool = False) -> None:
        """Forget an entry, detaching (or cancelling) its submission.

        Caller holds the lock.
        """
        entry = self._entries.pop(upload_id, None)
        if entry is None:
            return
        path = entry.relative_path
        if self._by_path.get(path) == upload_id:
            del self._by_path[path]
        sub = self._inflight.get(path)
        if sub is not None and sub.upload_id == upload_id:
            sub.detached = True
            sub.cancelled = sub.cancelled or cancel
        if self._waiting.get(path) == upload_id:
            del self._waiting[path]
        self._progress.pop(upload_id, None)
        self._last_approval.pop(upload_id, None)
        timer = self._timers.pop(upload_id, None)
        if timer is not None:
            timer.cancel()

    def _name_of(self, upload_id: str) -> str:
        with self._lock:
            entry = self._entries.get(upload_id)
            return entry.file_name if entry else upload_id

    def _emit_queue(self) -> None:
        if self._broadcaster is None:
            return
        self._emit(ProgressKind.UPLOAD_QUEUE, self.pending())

    def _emit(self, kind: ProgressKind, payload: object) -> None:
        if self._broadcaster is not None:
            self._broadcaster.emit(ProgressEvent(kind, self.drive_id, payload))
