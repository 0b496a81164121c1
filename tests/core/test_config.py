"""Tests for core configuration classes."""

from __future__ import annotations

import pytest

from permasync.core.config import FREE_TIER_THRESHOLD, EngineConfig, ServiceConfig


class TestServiceConfig:
    """Tests for ServiceConfig class."""

    def test_init_basic(self) -> None:
        """Should initialize with required fields."""
        config = ServiceConfig(
            ledger_url="https://ledger.example.com",
            credits_url="https://credits.example.com",
            token="test-token",
        )
        assert config.ledger_url == "https://ledger.example.com"
        assert config.credits_url == "https://credits.example.com"
        assert config.token == "test-token"
        assert config.timeout == 30.0
        assert config.verify_ssl is True

    def test_url_trailing_slash_removed(self) -> None:
        """Should strip trailing slashes from both URLs."""
        config = ServiceConfig(
            ledger_url="https://ledger.example.com/",
            credits_url="https://credits.example.com/",
            token="t",
        )
        assert config.ledger_url == "https://ledger.example.com"
        assert config.credits_url == "https://credits.example.com"

    def test_is_secure_https(self) -> None:
        """Should return True when both services use HTTPS."""
        config = ServiceConfig(
            ledger_url="https://ledger.example.com",
            credits_url="https://credits.example.com",
            token="t",
        )
        assert config.is_secure is True

    def test_is_secure_mixed(self) -> None:
        """Should return False when one service uses plain HTTP."""
        config = ServiceConfig(
            ledger_url="https://ledger.example.com",
            credits_url="http://localhost:8001",
            token="t",
        )
        assert config.is_secure is False


class TestEngineConfig:
    """Tests for EngineConfig class."""

    def test_defaults(self) -> None:
        """Should use the documented defaults."""
        config = EngineConfig()
        assert config.free_tier_threshold == FREE_TIER_THRESHOLD == 100 * 1024
        assert config.max_concurrent_downloads == 3
        assert config.stall_threshold == 30.0
        assert config.auto_approve is False

    @pytest.mark.parametrize(
        "field,value",
        [
            ("free_tier_threshold", -1),
            ("max_file_size", 0),
            ("max_concurrent_downloads", 0),
            ("max_concurrent_uploads", 0),
            ("stall_threshold", 0),
            ("progress_interval", 0),
            ("completion_grace", -1.0),
            ("reconcile_interval", -1.0),
            ("upload_max_retries", -1),
        ],
    )
    def test_invalid_values(self, field: str, value: float) -> None:
        """Should reject out-of-range values."""
        with pytest.raises(ValueError, match=field):
            EngineConfig(**{field: value})

    def test_zero_reconcile_interval_allowed(self) -> None:
        """A zero interval disables periodic passes."""
        assert EngineConfig(reconcile_interval=0.0).reconcile_interval == 0.0
