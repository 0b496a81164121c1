"""Logging setup with secret redaction.

This module provides:
- redact(): Mask secrets, addresses and tokens in arbitrary values
- RedactingFilter: logging.Filter applied to every handler we install
- setup_logging(): Configure the ``permasync`` logger for the CLI
"""

from __future__ import annotations

import logging
import re
import sys
from pathlib import Path
from typing import Any

REDACTED = "[REDACTED]"

SENSITIVE_WORDS = (
    "password",
    "passphrase",
    "privatekey",
    "private_key",
    "seedphrase",
    "seed_phrase",
    "mnemonic",
    "secret",
    "token",
    "authorization",
    "bearer",
    "jwk",
)

_SENSITIVE_RE = re.compile(
    "|".join(SENSITIVE_WORDS) + r"|wallet.*json",
    re.IGNORECASE,
)

# Ledger addresses and transaction ids are 43-char base64url strings
_ADDRESS_RE = re.compile(r"(?<![A-Za-z0-9_-])[A-Za-z0-9_-]{43}(?![A-Za-z0-9_-])")

# key=value / key: value pairs where the key names a secret
_ASSIGNMENT_RE = re.compile(
    r"(?P<key>\b\w*(?:" + "|".join(SENSITIVE_WORDS) + r")\w*)(?P<sep>\s*[=:]\s*)(?P<value>\S+)",
    re.IGNORECASE,
)


def redact_address(address: str) -> str:
    """Shorten an address to its first and last 4 characters."""
    if not address or len(address) < 8:
        return REDACTED
    return f"{address[:4]}...{address[-4:]}"


def _redact_text(text: str) -> str:
    text = _ASSIGNMENT_RE.sub(lambda m: f"{m['key']}{m['sep']}{REDACTED}", text)
    return _ADDRESS_RE.sub(lambda m: redact_address(m.group(0)), text)


def redact(value: Any) -> Any:
    """Return a copy of value with sensitive data masked.

    Strings that look like a secret are replaced entirely, addresses are
    shortened, and mappings are masked by key name.
    """
    if isinstance(value, bytes | bytearray):
        return REDACTED
    if isinstance(value, str):
        if _ADDRESS_RE.fullmatch(value):
            return redact_address(value)
        if _SENSITIVE_RE.search(value):
            return REDACTED
        return _redact_text(value)
    if isinstance(value, dict):
        return {
            k: REDACTED if _SENSITIVE_RE.search(str(k)) else redact(v)
            for k, v in value.items()
        }
    if isinstance(value, list | tuple):
        return type(value)(redact(v) for v in value)
    return value


class RedactingFilter(logging.Filter):
    """Mask sensitive values in log records before they reach a sink."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.args:
            if isinstance(record.args, dict):
                record.args = redact(record.args)
            else:
                record.args = tuple(redact(arg) for arg in record.args)
        # Merge args first so masking the template cannot break %-formatting
        record.msg = _redact_text(record.getMessage())
        record.args = None
        return True


def setup_logging(level: int = logging.INFO, log_path: Path | None = None) -> None:
    """Configure logging to output to stdout and, optionally, a file.

    Args:
        level: Level for the ``permasync`` logger.
        log_path: Optional path to a log file.
    """
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    formatter = logging.Formatter(log_format)
    redactor = RedactingFilter()

    root_logger = logging.getLogger("permasync")
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        if not isinstance(handler, logging.NullHandler):
            root_logger.removeHandler(handler)

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(formatter)
    stdout_handler.addFilter(redactor)
    root_logger.addHandler(stdout_handler)

    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        file_handler.addFilter(redactor)
        root_logger.addHandler(file_handler)

    root_logger.propagate = False
