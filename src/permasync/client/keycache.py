"""Session-scoped cache of private drive keys.

This module provides:
- Argon2KeyDerivation: Default key derivation collaborator
- DriveKeyCache: drive id -> derived key, held in memory only

Keys are never written to disk. The cache lives as long as the session
object that owns it; clear_all() ends it explicitly (logout, profile switch).
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from cryptography.exceptions import InvalidTag

from permasync.core.crypto import decrypt_payload, derive_key, drive_salt, encrypt_payload
from permasync.client.sync.types import KeyDerivationError

if TYPE_CHECKING:
    from permasync.client.sync.interfaces import KeyDerivation

logger = logging.getLogger(__name__)

KEY_CHECK_PLAINTEXT = b"permasync-drive-key-check"


def short_id(drive_id: str) -> str:
    """Truncate a drive id for logging."""
    return drive_id[:8]


def make_key_check(key: bytes) -> bytes:
    """Build the blob used to verify a derived key later."""
    return encrypt_payload(KEY_CHECK_PLAINTEXT, key)


class Argon2KeyDerivation:
    """Derives drive keys with Argon2id.

    When a key-check blob is known for a drive, the derived key must decrypt
    it; otherwise the password is wrong.
    """

    def __init__(self, key_checks: Callable[[str], bytes | None] | None = None) -> None:
        """Initialize the derivation.

        Args:
            key_checks: Returns the key-check blob of a drive, if any.
        """
        self._key_checks = key_checks

    def derive_key(self, password: str, drive_id: str, account_secret: bytes) -> bytes:
        """Derive the key of a drive.

        Raises:
            KeyDerivationError: If the password is empty or wrong.
        """
        if not password:
            raise KeyDerivationError("Password is empty")

        key = derive_key(password, drive_salt(drive_id, account_secret))

        check = self._key_checks(drive_id) if self._key_checks else None
        if check:
            try:
                if decrypt_payload(check, key) != KEY_CHECK_PLAINTEXT:
                    raise KeyDerivationError("Wrong password")
            except InvalidTag as e:
                raise KeyDerivationError("Wrong password") from e
        return key


@dataclass(frozen=True)
class KeyCacheStatus:
    """Summary of the cache for status displays."""

    unlocked_drives: int
    has_account_secret: bool


class DriveKeyCache:
    """In-memory map of drive id to derived key.

    Usage:
        cache = DriveKeyCache(Argon2KeyDerivation())
        cache.set_account_secret(secret)
        if cache.unlock(drive_id, password):
            key = cache.get_key(drive_id)
        cache.clear_all()
    """

    def __init__(
        self, derivation: KeyDerivation, account_secret: bytes | None = None
    ) -> None:
        self._derivation = derivation
        self._account_secret = account_secret
        self._keys: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def set_account_secret(self, secret: bytes | None) -> None:
        """Set the account secret used for derivation."""
        with self._lock:
            self._account_secret = secret

    def unlock(self, drive_id: str, password: str) -> bool:
        """Derive and cache the key of a drive.

        Never raises: any failure returns False.

        Returns:
            True if the drive is now unlocked.
        """
        with self._lock:
            secret = self._account_secret
        if secret is None:
            logger.warning(f"Cannot unlock drive {short_id(drive_id)}: no account loaded")
            return False

        try:
            key = self._derivation.derive_key(password, drive_id, secret)
        except Exception as e:
            # Exception text may echo inputs; log the type only
            logger.warning(f"Unlock failed for drive {short_id(drive_id)}: {type(e).__name__}")
            return False

        if not key:
            logger.warning(f"Unlock failed for drive {short_id(drive_id)}: empty key")
            return False

        with self._lock:
            self._keys[drive_id] = key
        logger.info(f"Drive {short_id(drive_id)} unlocked")
        return True

    def lock(self, drive_id: str) -> None:
        """Forget the key of a drive; idempotent."""
        with self._lock:
            removed = self._keys.pop(drive_id, None)
        if removed is not None:
            logger.info(f"Drive {short_id(drive_id)} locked")

    def is_unlocked(self, drive_id: str) -> bool:
        """Check if a drive key is cached."""
        with self._lock:
            return drive_id in self._keys

    def get_key(self, drive_id: str) -> bytes | None:
        """Get the cached key of a drive."""
        with self._lock:
            return self._keys.get(drive_id)

    def unlocked_drive_ids(self) -> list[str]:
        """Ids of drives currently unlocked."""
        with self._lock:
            return list(self._keys)

    def clear_all(self) -> None:
        """Forget every key and the account secret."""
        with self._lock:
            count = len(self._keys)
            self._keys.clear()
            self._account_secret = None
        logger.info(f"Cleared {count} drive key(s) and account secret")

    def status(self) -> KeyCacheStatus:
        """Summary for status displays."""
        with self._lock:
            return KeyCacheStatus(
                unlocked_drives=len(self._keys),
                has_account_secret=self._account_secret is not None,
            )
