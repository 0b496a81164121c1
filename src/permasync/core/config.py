"""Shared configuration classes for permasync.

This module defines the configuration used by the sync engine and by the
HTTP adapters for the ledger and credits services.
"""

from __future__ import annotations

from dataclasses import dataclass

FREE_TIER_THRESHOLD = 100 * 1024  # 100 KB
MAX_FILE_SIZE = 100 * 1024 * 1024  # 100 MB
STALL_THRESHOLD = 30.0  # seconds


@dataclass
class ServiceConfig:
    """Configuration for connecting to the ledger and credits services.

    Attributes:
        ledger_url: Base URL of the ledger storage service.
        credits_url: Base URL of the credits service.
        token: Authentication token sent as a bearer header.
        timeout: Request/connection timeout in seconds.
        verify_ssl: Whether to verify SSL certificates (default True).
    """

    ledger_url: str
    credits_url: str
    token: str
    timeout: float = 30.0
    verify_ssl: bool = True

    def __post_init__(self) -> None:
        """Normalize service URLs."""
        self.ledger_url = self.ledger_url.rstrip("/")
        self.credits_url = self.credits_url.rstrip("/")

    @property
    def is_secure(self) -> bool:
        """Check if both services are reached over HTTPS.

        Returns:
            True if both URLs use HTTPS.
        """
        return self.ledger_url.startswith("https://") and self.credits_url.startswith(
            "https://"
        )


@dataclass
class EngineConfig:
    """Tunables for the sync engine.

    Attributes:
        free_tier_threshold: Files strictly smaller than this settle for free.
        max_file_size: Larger files are refused at admission.
        max_concurrent_downloads: Downloads running at the same time.
        max_concurrent_uploads: Upload submissions running at the same time.
        stall_threshold: Seconds without progress before a download counts as stalled.
        completion_grace: Seconds a completed upload stays visible.
        reconcile_interval: Seconds between periodic reconciliations (0 = off).
        progress_interval: Seconds between snapshot refreshes while downloads are live.
        upload_max_retries: Retries for transient network errors on submission.
        retry_initial_backoff: First backoff delay in seconds.
        auto_approve: Approve conflict-free uploads at admission.
    """

    free_tier_threshold: int = FREE_TIER_THRESHOLD
    max_file_size: int = MAX_FILE_SIZE
    max_concurrent_downloads: int = 3
    max_concurrent_uploads: int = 4
    stall_threshold: float = STALL_THRESHOLD
    completion_grace: float = 2.0
    reconcile_interval: float = 300.0
    progress_interval: float = 1.0
    upload_max_retries: int = 3
    retry_initial_backoff: float = 1.0
    auto_approve: bool = False

    def __post_init__(self) -> None:
        """Validate values."""
        if self.free_tier_threshold < 0:
            raise ValueError("free_tier_threshold must be >= 0")
        if self.max_file_size <= 0:
            raise ValueError("max_file_size must be > 0")
        if self.max_concurrent_downloads < 1:
            raise ValueError("max_concurrent_downloads must be >= 1")
        if self.max_concurrent_uploads < 1:
            raise ValueError("max_concurrent_uploads must be >= 1")
        if self.stall_threshold <= 0:
            raise ValueError("stall_threshold must be > 0")
        if self.progress_interval <= 0:
            raise ValueError("progress_interval must be > 0")
        for name in (
            "completion_grace",
            "reconcile_interval",
            "retry_initial_backoff",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")
        if self.upload_max_retries < 0:
            raise ValueError("upload_max_retries must be >= 0")
