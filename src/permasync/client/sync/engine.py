"""Sync engine: one session of the sync client.

This module provides:
- DriveSession: Queues and coordinator of one drive
- SyncEngine: Builds and owns every sync component of a session

Nothing here is a module-level singleton: the key cache, the worker pools
and the per-drive queues are created by SyncEngine and destroyed by
SyncEngine.close() (logout, profile switch, process exit).
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from permasync.core.config import EngineConfig
from permasync.client.keycache import Argon2KeyDerivation, DriveKeyCache, make_key_check
from permasync.client.sync.conflict import ConflictResolver
from permasync.client.sync.coordinator import SyncCoordinator
from permasync.client.sync.cost import CostEstimator
from permasync.client.sync.download_queue import DownloadQueue
from permasync.client.sync.progress import ProgressBroadcaster
from permasync.client.sync.types import SyncError
from permasync.client.sync.upload_queue import UploadQueue
from permasync.client.sync.watcher import FileWatcher
from permasync.client.sync.workers import DownloadWorker, PoolState, TransferPool, UploadWorker

if TYPE_CHECKING:
    from permasync.client.state import LocalMetadataStore
    from permasync.client.sync.interfaces import (
        CreditsService,
        KeyDerivation,
        LedgerService,
        WatchService,
    )
    from permasync.client.sync.types import DriveMapping

logger = logging.getLogger(__name__)


@dataclass
class DriveSession:
    """Components syncing one drive."""

    mapping: DriveMapping
    uploads: UploadQueue
    downloads: DownloadQueue
    coordinator: SyncCoordinator


class SyncEngine:
    """Wiring of the sync components for one session.

    Usage:
        with SyncEngine(ledger, credits, store) as engine:
            engine.key_cache.set_account_secret(secret)
            engine.start(drive_id)
            engine.session(drive_id).uploads.approve_all()
    """

    def __init__(
        self,
        ledger: LedgerService,
        credits: CreditsService,
        store: LocalMetadataStore,
        config: EngineConfig | None = None,
        watch_factory: Callable[[], WatchService] | None = None,
        derivation: KeyDerivation | None = None,
        broadcaster: ProgressBroadcaster | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            ledger: Ledger storage service.
            credits: Credits service.
            store: Local metadata store.
            config: Engine configuration.
            watch_factory: Creates a watch service per drive.
            derivation: Drive key derivation; Argon2id by default.
            broadcaster: Progress channel shared by every drive.
        """
        self._ledger = ledger
        self._store = store
        self._config = config or EngineConfig()
        self._watch_factory = watch_factory or FileWatcher

        self.key_cache = DriveKeyCache(derivation or Argon2KeyDerivation(store.get_key_check))
        self.estimator = CostEstimator(ledger, credits, self._config.free_tier_threshold)
        self.resolver = ConflictResolver()
        self.broadcaster = broadcaster or ProgressBroadcaster()

        self._upload_pool = TransferPool(self._config.max_concurrent_uploads, name="UploadPool")
        self._download_pool = TransferPool(
            self._config.max_concurrent_downloads, name="DownloadPool"
        )
        self._sessions: dict[str, DriveSession] = {}
        self._lock = threading.Lock()
        self._closed = False

    @property
    def config(self) -> EngineConfig:
        """Get the engine configuration."""
        return self._config

    def __enter__(self) -> SyncEngine:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()

    # =========================================================================
    # Drives
    # =========================================================================

    def open_drive(self, drive_id: str) -> DriveSession:
        """Build (once) the queues and coordinator of a mapped drive.

        Raises:
            SyncError: If the drive has no mapping or the engine is closed.
        """
        with self._lock:
            if self._closed:
                raise SyncError("Sync engine is closed")
            existing = self._sessions.get(drive_id)
            if existing is not None:
                return existing

        mapping = self._store.get_mapping(drive_id)
        if mapping is None:
            raise SyncError(f"Drive {drive_id} is not mapped to a folder")

        uploads = UploadQueue(
            mapping,
            self._store,
            self.estimator,
            self.resolver,
            self._upload_pool,
            lambda: UploadWorker(
                self._ledger,
                self.key_cache.get_key,
                max_retries=self._config.upload_max_retries,
                initial_backoff=self._config.retry_initial_backoff,
            ),
            self._config,
            self.broadcaster,
        )
        downloads = DownloadQueue(
            mapping,
            self._store,
            self._download_pool,
            lambda: DownloadWorker(self._ledger, self.key_cache.get_key),
            self._config,
            self.broadcaster,
        )
        coordinator = SyncCoordinator(
            mapping,
            self._ledger,
            self._store,
            uploads,
            downloads,
            self._watch_factory(),
            self._config,
            self.broadcaster,
        )
        session = DriveSession(mapping, uploads, downloads, coordinator)

        with self._lock:
            session = self._sessions.setdefault(drive_id, session)
            self._start_pools()
        return session

    def session(self, drive_id: str) -> DriveSession | None:
        """Get the session of an opened drive."""
        with self._lock:
            return self._sessions.get(drive_id)

    def sessions(self) -> list[DriveSession]:
        """Get every opened drive session."""
        with self._lock:
            return list(self._sessions.values())

    def start(self, drive_id: str) -> bool:
        """Open a drive and start syncing it.

        Returns:
            The result of SyncCoordinator.start_sync().
        """
        session = self.open_drive(drive_id)
        return session.coordinator.start_sync(drive_id, session.mapping.root_folder_id)

    def stop(self, drive_id: str) -> None:
        """Stop syncing a drive; no-op if it was never opened."""
        session = self.session(drive_id)
        if session is not None:
            session.coordinator.stop_sync()

    # =========================================================================
    # Keys
    # =========================================================================

    def unlock_drive(self, drive_id: str, password: str) -> bool:
        """Unlock a private drive for this session.

        The first successful unlock stores a key-check blob so that later
        unlocks with a different password are refused.

        Returns:
            True if the drive is unlocked.
        """
        if not self.key_cache.unlock(drive_id, password):
            return False
        if self._store.get_key_check(drive_id) is None:
            key = self.key_cache.get_key(drive_id)
            if key is not None:
                self._store.set_key_check(drive_id, make_key_check(key))
        return True

    def lock_drive(self, drive_id: str) -> None:
        """Forget the key of a drive."""
        self.key_cache.lock(drive_id)

    # =========================================================================
    # Teardown
    # =========================================================================

    def close(self) -> None:
        """End the session: stop every drive, the pools and the key cache."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            sessions = list(self._sessions.values())
            self._sessions.clear()

        for session in sessions:
            try:
                session.coordinator.stop_sync()
            except Exception:
                logger.exception(f"Error stopping sync of {session.mapping.name}")
            session.uploads.close()

        self._upload_pool.stop()
        self._download_pool.stop()
        self.broadcaster.close()
        self.key_cache.clear_all()
        logger.info("Sync engine closed")

    def _start_pools(self) -> None:
        """Start the worker pools on first use. Caller holds the lock."""
        for pool in (self._upload_pool, self._download_pool):
            if pool.state == PoolState.STOPPED:
                pool.start()
