"""Core module - Shared config, crypto and logging."""

from permasync.core.config import EngineConfig, ServiceConfig
from permasync.core.crypto import (
    compute_file_hash,
    compute_signature,
    decrypt_payload,
    derive_key,
    drive_salt,
    encrypt_payload,
)
from permasync.core.logs import RedactingFilter, redact, setup_logging

__all__ = [
    # Config
    "EngineConfig",
    "ServiceConfig",
    # Crypto
    "compute_file_hash",
    "compute_signature",
    "decrypt_payload",
    "derive_key",
    "drive_salt",
    "encrypt_payload",
    # Logging
    "RedactingFilter",
    "redact",
    "setup_logging",
]
