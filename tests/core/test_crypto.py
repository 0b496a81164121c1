"""Tests for crypto module - Key derivation, encryption and signatures."""

import hashlib
import os
from pathlib import Path

import pytest
from cryptography.exceptions import InvalidTag

from permasync.core.crypto import (
    NONCE_SIZE,
    SALT_SIZE,
    compute_file_hash,
    compute_signature,
    decrypt_payload,
    derive_key,
    drive_salt,
    encrypt_payload,
)


class TestKeyDerivation:
    """Tests for Argon2id key derivation."""

    def test_derive_key_returns_32_bytes(self) -> None:
        """Key derivation should return exactly 32 bytes (256 bits)."""
        key = derive_key("test_password", drive_salt("drive-1", b"account"))
        assert len(key) == 32

    def test_derive_key_deterministic(self) -> None:
        """Same password and salt should produce same key."""
        salt = drive_salt("drive-1", b"account")
        assert derive_key("test_password", salt) == derive_key("test_password", salt)

    def test_derive_key_different_passwords(self) -> None:
        """Different passwords should produce different keys."""
        salt = drive_salt("drive-1", b"account")
        assert derive_key("password1", salt) != derive_key("password2", salt)

    def test_derive_key_unicode_password(self) -> None:
        """Unicode passwords should work."""
        key = derive_key("mot de passe été", drive_salt("drive-1", b"account"))
        assert len(key) == 32


class TestDriveSalt:
    """Tests for per-drive salts."""

    def test_salt_size(self) -> None:
        """Salts are 16 bytes."""
        assert len(drive_salt("drive-1", b"account")) == SALT_SIZE == 16

    def test_salt_binds_drive_and_account(self) -> None:
        """Another drive or another account yields another salt."""
        base = drive_salt("drive-1", b"account")
        assert drive_salt("drive-1", b"account") == base
        assert drive_salt("drive-2", b"account") != base
        assert drive_salt("drive-1", b"other") != base


class TestEncryption:
    """Tests for AES-256-GCM payload encryption."""

    @pytest.fixture
    def key(self) -> bytes:
        return os.urandom(32)

    def test_encrypt_decrypt_roundtrip(self, key: bytes) -> None:
        """Decrypting returns the original payload."""
        data = b"Hello, World!"
        assert decrypt_payload(encrypt_payload(data, key), key) == data

    def test_encrypt_produces_different_output(self, key: bytes) -> None:
        """Random nonces make every ciphertext different."""
        assert encrypt_payload(b"same", key) != encrypt_payload(b"same", key)

    def test_encrypted_size(self, key: bytes) -> None:
        """Ciphertext carries the nonce and a 16-byte tag."""
        assert len(encrypt_payload(b"x" * 10, key)) == NONCE_SIZE + 10 + 16

    def test_decrypt_with_wrong_key_fails(self, key: bytes) -> None:
        """A wrong key fails authentication."""
        encrypted = encrypt_payload(b"secret", key)
        with pytest.raises(InvalidTag):
            decrypt_payload(encrypted, os.urandom(32))

    def test_decrypt_tampered_data_fails(self, key: bytes) -> None:
        """Tampered ciphertext fails authentication."""
        encrypted = bytearray(encrypt_payload(b"secret", key))
        encrypted[-1] ^= 0xFF
        with pytest.raises(InvalidTag):
            decrypt_payload(bytes(encrypted), key)


class TestSignatures:
    """Tests for content signatures."""

    def test_signature_is_sha256(self) -> None:
        """Signatures are hex SHA-256 digests."""
        assert compute_signature(b"abc") == hashlib.sha256(b"abc").hexdigest()

    def test_file_hash_matches_signature(self, tmp_path: Path) -> None:
        """Hashing a file agrees with hashing its bytes."""
        data = os.urandom(20000)
        path = tmp_path / "blob.bin"
        path.write_bytes(data)

        assert compute_file_hash(path) == compute_signature(data)
