"""Tests for SyncEngine wiring and session lifecycle."""

from __future__ import annotations

import hashlib
import time
from collections.abc import Callable, Generator
from pathlib import Path

import pytest

from permasync.core.config import EngineConfig
from permasync.core.crypto import decrypt_payload
from permasync.client.keycache import KEY_CHECK_PLAINTEXT
from permasync.client.state import LocalMetadataStore
from permasync.client.sync.engine import SyncEngine
from permasync.client.sync.types import KeyDerivationError, SyncError, SyncPhase
from tests.fakes import DRIVE_ID, FakeCredits, FakeLedger, FakeWatch, remote_file


class FakeDerivation:
    """Fast derivation: any password but "wrong" yields a key."""

    def derive_key(self, password: str, drive_id: str, account_secret: bytes) -> bytes:
        if password == "wrong":
            raise KeyDerivationError("Wrong password")
        return hashlib.sha256(f"{password}:{drive_id}".encode() + account_secret).digest()


def wait_for(condition: Callable[[], bool], timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return condition()


@pytest.fixture
def watches() -> list[FakeWatch]:
    return []


@pytest.fixture
def engine(
    ledger: FakeLedger,
    credits: FakeCredits,
    store: LocalMetadataStore,
    watches: list[FakeWatch],
) -> Generator[SyncEngine, None, None]:
    def watch_factory() -> FakeWatch:
        watch = FakeWatch()
        watches.append(watch)
        return watch

    config = EngineConfig(reconcile_interval=0.0, completion_grace=0.0)
    sync_engine = SyncEngine(
        ledger,
        credits,
        store,
        config=config,
        watch_factory=watch_factory,
        derivation=FakeDerivation(),
    )
    yield sync_engine
    sync_engine.close()


class TestDriveSessions:
    """Tests for open_drive() and session lookup."""

    def test_unmapped_drive_is_refused(self, engine: SyncEngine) -> None:
        """Only mapped drives can be opened."""
        with pytest.raises(SyncError, match="not mapped"):
            engine.open_drive("unknown-drive")

    def test_open_is_idempotent(self, engine: SyncEngine) -> None:
        """A drive is wired once per session."""
        first = engine.open_drive(DRIVE_ID)
        second = engine.open_drive(DRIVE_ID)

        assert first is second
        assert engine.session(DRIVE_ID) is first
        assert engine.sessions() == [first]
        assert first.mapping.drive_id == DRIVE_ID

    def test_session_of_unopened_drive(self, engine: SyncEngine) -> None:
        """Unopened drives have no session."""
        assert engine.session(DRIVE_ID) is None
        engine.stop(DRIVE_ID)


class TestStartStop:
    """Tests for start() and stop()."""

    def test_start_downloads_remote_files(
        self,
        engine: SyncEngine,
        ledger: FakeLedger,
        sync_folder: Path,
        watches: list[FakeWatch],
    ) -> None:
        """Remote files are downloaded by the worker pool."""
        ledger.add_remote(remote_file("f1", "a.txt", b"remote"), b"remote")

        assert engine.start(DRIVE_ID) is True

        target = sync_folder / "a.txt"
        assert wait_for(target.exists)
        assert target.read_bytes() == b"remote"
        assert engine.session(DRIVE_ID).coordinator.phase == SyncPhase.MONITORING
        assert watches[0].subscribed

    def test_stop(self, engine: SyncEngine, watches: list[FakeWatch]) -> None:
        """Stopping returns the drive to idle."""
        engine.start(DRIVE_ID)

        engine.stop(DRIVE_ID)

        assert engine.session(DRIVE_ID).coordinator.phase == SyncPhase.IDLE
        assert not watches[0].subscribed


class TestKeys:
    """Tests for unlock_drive() and lock_drive()."""

    def test_unlock_requires_account(self, engine: SyncEngine) -> None:
        """Nothing can be unlocked before an account is loaded."""
        assert engine.unlock_drive(DRIVE_ID, "hunter2") is False

    def test_first_unlock_stores_key_check(
        self, engine: SyncEngine, store: LocalMetadataStore
    ) -> None:
        """The first unlock records a blob that the key decrypts."""
        engine.key_cache.set_account_secret(b"account")

        assert engine.unlock_drive(DRIVE_ID, "hunter2") is True

        key = engine.key_cache.get_key(DRIVE_ID)
        check = store.get_key_check(DRIVE_ID)
        assert decrypt_payload(check, key) == KEY_CHECK_PLAINTEXT

    def test_key_check_is_kept(self, engine: SyncEngine, store: LocalMetadataStore) -> None:
        """Later unlocks do not replace the stored blob."""
        engine.key_cache.set_account_secret(b"account")
        engine.unlock_drive(DRIVE_ID, "hunter2")
        check = store.get_key_check(DRIVE_ID)

        engine.lock_drive(DRIVE_ID)
        assert engine.unlock_drive(DRIVE_ID, "hunter2") is True

        assert store.get_key_check(DRIVE_ID) == check

    def test_wrong_password(self, engine: SyncEngine, store: LocalMetadataStore) -> None:
        """A failed derivation leaves the drive locked."""
        engine.key_cache.set_account_secret(b"account")

        assert engine.unlock_drive(DRIVE_ID, "wrong") is False
        assert store.get_key_check(DRIVE_ID) is None
        assert not engine.key_cache.is_unlocked(DRIVE_ID)

    def test_lock_drive(self, engine: SyncEngine) -> None:
        """A locked drive has no cached key."""
        engine.key_cache.set_account_secret(b"account")
        engine.unlock_drive(DRIVE_ID, "hunter2")

        engine.lock_drive(DRIVE_ID)

        assert engine.key_cache.get_key(DRIVE_ID) is None


class TestClose:
    """Tests for close()."""

    def test_close_ends_session(self, engine: SyncEngine, watches: list[FakeWatch]) -> None:
        """Closing stops every drive and forgets every key."""
        engine.key_cache.set_account_secret(b"account")
        engine.unlock_drive(DRIVE_ID, "hunter2")
        engine.start(DRIVE_ID)

        engine.close()

        assert not watches[0].subscribed
        assert engine.sessions() == []
        assert engine.key_cache.status().unlocked_drives == 0
        assert engine.key_cache.status().has_account_secret is False

    def test_closed_engine_refuses_drives(self, engine: SyncEngine) -> None:
        """No drive can be opened after close()."""
        engine.close()
        engine.close()

        with pytest.raises(SyncError, match="closed"):
            engine.open_drive(DRIVE_ID)

    def test_context_manager(
        self, ledger: FakeLedger, credits: FakeCredits, store: LocalMetadataStore
    ) -> None:
        """Leaving the with block closes the engine."""
        with SyncEngine(ledger, credits, store, derivation=FakeDerivation()) as engine:
            engine.key_cache.set_account_secret(b"account")

        assert engine.key_cache.status().has_account_secret is False
