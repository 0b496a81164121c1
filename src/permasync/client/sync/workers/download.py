"""Download worker.

This module provides:
- DownloadJob: Immutable description of one download
- DownloadWorker: Fetches, verifies and atomically writes a remote file
- describe_download_error(): User-facing message for a download failure
"""

from __future__ import annotations

import errno
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import httpx

from permasync.core.crypto import compute_signature
from permasync.client.sync.ignore import DOWNLOAD_SUFFIX
from permasync.client.sync.types import DownloadError
from permasync.client.sync.workers.base import BaseWorker, WorkerContext

if TYPE_CHECKING:
    from collections.abc import Callable

    from permasync.client.sync.interfaces import LedgerService

logger = logging.getLogger(__name__)

WRITE_CHUNK_SIZE = 256 * 1024


class ChecksumMismatchError(DownloadError):
    """Downloaded bytes do not match the remote content signature."""


@dataclass(frozen=True)
class DownloadJob:
    """A download handed to the download worker."""

    download_id: str
    drive_id: str
    file_id: str
    local_path: str
    size: int
    content_signature: str | None = None
    tx_refs: list[str] = field(default_factory=list)
    private: bool = False


def temp_path_for(path: Path) -> Path:
    """Path of the in-progress file next to a download target."""
    return path.with_name(path.name + DOWNLOAD_SUFFIX)


def describe_download_error(error: BaseException | None, fallback: str | None = None) -> str:
    """Turn a download failure into a short user-facing message."""
    if isinstance(error, ChecksumMismatchError):
        return "Checksum mismatch: file integrity check failed"
    if isinstance(error, OSError) and error.errno == errno.ENOSPC:
        return "Insufficient disk space"
    if isinstance(error, PermissionError):
        return "Permission denied: check folder permissions"
    if isinstance(error, ConnectionError | TimeoutError | httpx.TransportError):
        return f"Network error: {error}"
    if error is not None:
        return str(error) or type(error).__name__
    return fallback or "Download failed"


class DownloadWorker(BaseWorker):
    """Worker for materializing a remote file locally.

    Bytes are written to ``<target>.downloading`` and moved into place only
    after the content signature checked out, so a partial file never
    appears under the real name.

    Usage:
        worker = DownloadWorker(ledger, key_cache.get_key)
        result = worker.execute(job, on_progress=callback, cancel_check=check)
    """

    def __init__(
        self,
        ledger: LedgerService,
        key_provider: Callable[[str], bytes | None],
    ) -> None:
        """Initialize the download worker.

        Args:
            ledger: Ledger storage service.
            key_provider: Returns the unlocked key of a drive, or None.
        """
        super().__init__()
        self._ledger = ledger
        self._key_provider = key_provider

    @property
    def worker_type(self) -> str:
        """Return worker type name."""
        return "download"

    def _do_work(self, ctx: WorkerContext) -> str:
        """Perform the download.

        Returns:
            Content signature of the written file.

        Raises:
            CancelledException: If the download is cancelled.
            DownloadError: If the drive is locked or the content is corrupt.
        """
        job: DownloadJob = ctx.job
        target = Path(job.local_path)

        drive_key = None
        if job.private:
            drive_key = self._key_provider(job.drive_id)
            if drive_key is None:
                raise DownloadError("Drive is locked")

        ctx.report(0.0)
        data = self._ledger.fetch_file_bytes(job.file_id, drive_key=drive_key)
        ctx.check_cancelled()
        ctx.report(50.0)

        signature = compute_signature(data)
        if job.content_signature and signature != job.content_signature:
            raise ChecksumMismatchError(
                f"Checksum mismatch for {target.name}: expected {job.content_signature[:12]}"
            )

        target.parent.mkdir(parents=True, exist_ok=True)
        temp = temp_path_for(target)
        try:
            with open(temp, "wb") as f:
                total = len(data) or 1
                for offset in range(0, len(data), WRITE_CHUNK_SIZE):
                    ctx.check_cancelled()
                    f.write(data[offset : offset + WRITE_CHUNK_SIZE])
                    ctx.report(50.0 + 50.0 * min(offset + WRITE_CHUNK_SIZE, total) / total)
            ctx.check_cancelled()
            os.replace(temp, target)
        finally:
            if temp.exists():
                temp.unlink()

        logger.info(f"Downloaded {target.name} ({len(data)} bytes)")
        ctx.report(100.0)
        return signature
