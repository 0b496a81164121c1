"""Upload worker.

This module provides:
- UploadJob: Immutable description of one submission
- UploadOutcome: What the ledger returned for it
- UploadWorker: Reads the file and submits it with retry and cancellation
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from permasync.core.crypto import compute_signature
from permasync.client.sync.retry import NETWORK_EXCEPTIONS, retry_with_backoff
from permasync.client.sync.types import SettlementMethod, SubmitResult, UploadError
from permasync.client.sync.workers.base import BaseWorker, WorkerContext

if TYPE_CHECKING:
    from collections.abc import Callable

    from permasync.client.sync.interfaces import LedgerService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadJob:
    """A submission handed to the upload worker."""

    upload_id: str
    drive_id: str
    parent_folder_id: str
    local_path: str
    relative_path: str
    remote_name: str
    mime_type: str
    method: SettlementMethod
    private: bool = False
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class UploadOutcome:
    """Result of a successful submission."""

    submit: SubmitResult
    content_signature: str
    size: int


def build_tags(job: UploadJob, signature: str) -> dict[str, str]:
    """Build the ledger tags of an upload; custom metadata cannot override them."""
    tags = dict(job.metadata)
    tags.update(
        {
            "Content-Type": job.mime_type,
            "File-Name": job.remote_name,
            "Relative-Path": job.relative_path,
            "Drive-Id": job.drive_id,
            "Parent-Folder-Id": job.parent_folder_id,
            "Content-Signature": signature,
        }
    )
    return tags


class UploadWorker(BaseWorker):
    """Worker for submitting a file to the ledger.

    Usage:
        worker = UploadWorker(ledger, key_cache.get_key)
        result = worker.execute(job, on_progress=callback, cancel_check=check)
    """

    def __init__(
        self,
        ledger: LedgerService,
        key_provider: Callable[[str], bytes | None],
        max_retries: int = 3,
        initial_backoff: float = 1.0,
    ) -> None:
        """Initialize the upload worker.

        Args:
            ledger: Ledger storage service.
            key_provider: Returns the unlocked key of a drive, or None.
            max_retries: Retries for transient network errors.
            initial_backoff: First backoff delay in seconds.
        """
        super().__init__()
        self._ledger = ledger
        self._key_provider = key_provider
        self._max_retries = max_retries
        self._initial_backoff = initial_backoff

    @property
    def worker_type(self) -> str:
        """Return worker type name."""
        return "upload"

    def _do_work(self, ctx: WorkerContext) -> UploadOutcome:
        """Perform the upload.

        Raises:
            CancelledException: If the upload is cancelled.
            UploadError: If the drive is locked or the file is unreadable.
        """
        job: UploadJob = ctx.job

        drive_key = None
        if job.private:
            drive_key = self._key_provider(job.drive_id)
            if drive_key is None:
                raise UploadError("Drive is locked")

        try:
            data = Path(job.local_path).read_bytes()
        except FileNotFoundError as e:
            raise UploadError(f"File no longer exists: {job.relative_path}") from e

        ctx.check_cancelled()
        signature = compute_signature(data)
        tags = build_tags(job, signature)

        logger.info(f"Uploading {job.relative_path} ({len(data)} bytes, {job.method.value})")
        ctx.report(0.0)

        submit = retry_with_backoff(
            lambda: self._ledger.submit_upload(
                data,
                tags,
                drive_key=drive_key,
                settlement=job.method,
                on_progress=ctx.report,
                cancel_check=ctx.cancel_check,
            ),
            max_retries=self._max_retries,
            initial_backoff=self._initial_backoff,
            retryable_exceptions=NETWORK_EXCEPTIONS,
            cancel_check=ctx.cancel_check,
        )

        ctx.check_cancelled()
        ctx.report(100.0)
        return UploadOutcome(submit=submit, content_signature=signature, size=len(data))
