"""Collaborators consumed by the sync engine.

The engine only talks to the outside world through these protocols. The
HTTP adapters in ``permasync.client.api``, the sqlite store in
``permasync.client.state`` and the watchdog watcher satisfy them in
production; tests substitute in-memory fakes.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Protocol

from permasync.client.sync.types import (
    CancelCheck,
    DriveMapping,
    ProgressCallback,
    RemoteEntry,
    SettlementMethod,
    SubmitResult,
    UploadRecord,
    WatchCallback,
)


class LedgerService(Protocol):
    """Permanent remote storage."""

    def list_drive_contents(self, drive_id: str) -> list[RemoteEntry]:
        """List every file and folder of a drive."""
        ...

    def submit_upload(
        self,
        data: bytes,
        tags: dict[str, str],
        drive_key: bytes | None = None,
        settlement: SettlementMethod = SettlementMethod.NATIVE_TOKEN,
        on_progress: ProgressCallback | None = None,
        cancel_check: CancelCheck | None = None,
    ) -> SubmitResult:
        """Submit a payload; blocks until the ledger accepted it."""
        ...

    def fetch_file_bytes(self, file_ref: str, drive_key: bytes | None = None) -> bytes:
        """Fetch the content of a file."""
        ...

    def get_native_balance(self) -> float:
        """Native-token balance of the account."""
        ...

    def estimate_native_cost(self, byte_count: int) -> float:
        """Native-token price of storing byte_count bytes."""
        ...


class CreditsService(Protocol):
    """Prepaid credits used as the alternative settlement path."""

    def get_balance(self) -> float:
        """Credits balance of the account."""
        ...

    def estimate_cost(self, byte_count: int) -> float:
        """Credits price of storing byte_count bytes."""
        ...

    def fiat_estimate(self, byte_count: int, currency: str) -> float:
        """Price of storing byte_count bytes in a fiat currency."""
        ...


class KeyDerivation(Protocol):
    """Derives the key of a private drive. May raise on failure."""

    def derive_key(self, password: str, drive_id: str, account_secret: bytes) -> bytes:
        """Return the key material for a drive."""
        ...


class WatchService(Protocol):
    """Push-based filesystem change notifications."""

    def subscribe(self, folder: Path, callback: WatchCallback) -> None:
        """Start delivering events for a folder."""
        ...

    def unsubscribe(self) -> None:
        """Stop delivering events."""
        ...


class TaskRunner(Protocol):
    """Executes background work (a worker pool in production)."""

    def submit(self, fn: Callable[[], None]) -> bool:
        """Schedule fn; return False if it was not accepted."""
        ...


class MetadataStore(Protocol):
    """Local metadata: drive mappings, remote snapshot, history and markers.

    Paths are slash-separated and relative to the drive's sync folder.
    """

    # Drive mappings
    def add_mapping(self, mapping: DriveMapping) -> None: ...

    def get_mapping(self, drive_id: str) -> DriveMapping | None: ...

    def list_mappings(self) -> list[DriveMapping]: ...

    def update_mapping(
        self, drive_id: str, name: str | None = None, folder_path: str | None = None
    ) -> bool: ...

    def remove_mapping(self, drive_id: str) -> bool: ...

    # Remote snapshot
    def replace_remote_entries(self, drive_id: str, entries: list[RemoteEntry]) -> None: ...

    def upsert_remote_entry(self, drive_id: str, entry: RemoteEntry) -> None: ...

    def get_remote_entry(self, drive_id: str, path: str) -> RemoteEntry | None: ...

    def get_remote_entry_by_id(self, drive_id: str, file_id: str) -> RemoteEntry | None: ...

    def list_remote_entries(self, drive_id: str) -> list[RemoteEntry]: ...

    # Synced content signatures
    def get_synced_signature(self, drive_id: str, path: str) -> str | None: ...

    def set_synced_signature(self, drive_id: str, path: str, signature: str) -> None: ...

    def remove_synced_signature(self, drive_id: str, path: str) -> None: ...

    def list_synced_signatures(self, drive_id: str) -> dict[str, str]: ...

    # Upload history
    def add_upload_record(self, record: UploadRecord) -> None: ...

    def list_upload_history(self, drive_id: str, limit: int = 100) -> list[UploadRecord]: ...

    # Cloud-only markers
    def mark_cloud_only(self, drive_id: str, file_id: str) -> None: ...

    def clear_cloud_only(self, drive_id: str, file_id: str) -> None: ...

    def is_cloud_only(self, drive_id: str, file_id: str) -> bool: ...

    def list_cloud_only(self, drive_id: str) -> set[str]: ...
