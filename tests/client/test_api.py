"""Tests for the ledger and credits HTTP clients."""

import json
import os

import httpx
import pytest

from permasync.core.config import ServiceConfig
from permasync.core.crypto import decrypt_payload, encrypt_payload
from permasync.client.api import (
    UPLOAD_CHUNK_SIZE,
    APIError,
    AuthenticationError,
    CreditsClient,
    LedgerClient,
    NotFoundError,
)
from permasync.client.sync.types import EntryType, SettlementMethod
from permasync.client.sync.workers.base import CancelledException


def make_config(token: str = "token123") -> ServiceConfig:
    """Create a ServiceConfig for testing."""
    return ServiceConfig(ledger_url="http://ledger", credits_url="http://credits", token=token)


class TestLedgerClient:
    """Tests for LedgerClient."""

    def test_health_check_success(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should return True when the service is healthy."""
        httpx_mock.add_response(url="http://ledger/health", json={"status": "ok"})

        with LedgerClient.from_config(make_config()) as client:
            assert client.health_check() is True

    def test_health_check_failure(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should return False when the service is down."""
        httpx_mock.add_exception(httpx.ConnectError("refused"))

        with LedgerClient.from_config(make_config()) as client:
            assert client.health_check() is False

    def test_sends_bearer_token(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should authenticate every request."""
        httpx_mock.add_response(url="http://ledger/drives/d1/entries", json=[])

        with LedgerClient.from_config(make_config("secret-token")) as client:
            client.list_drive_contents("d1")

        request = httpx_mock.get_request()
        assert request.headers["Authorization"] == "Bearer secret-token"

    def test_list_drive_contents(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should parse the drive listing."""
        httpx_mock.add_response(
            url="http://ledger/drives/d1/entries",
            json=[
                {"id": "dir1", "name": "docs", "type": "folder", "parentId": "root"},
                {
                    "id": "f1",
                    "name": "a.txt",
                    "type": "file",
                    "size": 12,
                    "parentId": "dir1",
                    "contentSignature": "abc",
                    "txRefs": ["tx1"],
                },
            ],
        )

        with LedgerClient.from_config(make_config()) as client:
            entries = client.list_drive_contents("d1")

        assert [e.id for e in entries] == ["dir1", "f1"]
        assert entries[0].type == EntryType.FOLDER
        assert entries[1].size == 12
        assert entries[1].parent_id == "dir1"
        assert entries[1].content_signature == "abc"
        assert entries[1].tx_refs == ["tx1"]

    @pytest.mark.parametrize(
        "status,error",
        [(401, AuthenticationError), (404, NotFoundError), (500, APIError)],
    )
    def test_error_statuses(  # type: ignore[no-untyped-def]
        self, httpx_mock, status: int, error: type
    ) -> None:
        """Should map HTTP errors to exceptions."""
        httpx_mock.add_response(status_code=status, json={"detail": "nope"})

        with LedgerClient.from_config(make_config()) as client:
            with pytest.raises(error) as exc_info:
                client.list_drive_contents("d1")

        assert exc_info.value.status_code == status

    def test_error_detail(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should surface the service's error detail."""
        httpx_mock.add_response(status_code=402, json={"detail": "Insufficient funds"})

        with LedgerClient.from_config(make_config()) as client:
            with pytest.raises(APIError, match="Insufficient funds"):
                client.get_native_balance()

    def test_submit_public_upload(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should post the payload with tags and settlement headers."""
        received: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            request.read()
            received.append(request)
            return httpx.Response(200, json={"id": "f9", "txRefs": ["tx9"]})

        httpx_mock.add_callback(handler, url="http://ledger/uploads", method="POST")
        progress: list[float] = []

        with LedgerClient.from_config(make_config()) as client:
            result = client.submit_upload(
                b"hello",
                {"File-Name": "a.txt"},
                settlement=SettlementMethod.CREDITS,
                on_progress=progress.append,
            )

        assert result.id == "f9"
        assert result.tx_refs == ["tx9"]
        assert progress == [100.0]
        request = received[0]
        assert request.content == b"hello"
        assert json.loads(request.headers["X-Ledger-Tags"]) == {"File-Name": "a.txt"}
        assert request.headers["X-Settlement"] == "credits"
        assert "X-Cipher" not in request.headers

    def test_submit_private_encrypts(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Private payloads leave the machine encrypted."""
        bodies: list[bytes] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(request.read())
            assert request.headers["X-Cipher"] == "AES256-GCM"
            return httpx.Response(200, json={"id": "f9"})

        httpx_mock.add_callback(handler, url="http://ledger/uploads", method="POST")
        key = os.urandom(32)

        with LedgerClient.from_config(make_config()) as client:
            client.submit_upload(b"secret", {}, drive_key=key)

        assert bodies[0] != b"secret"
        assert decrypt_payload(bodies[0], key) == b"secret"

    def test_submit_cancelled(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """A cancellation stops the transfer."""

        def handler(request: httpx.Request) -> httpx.Response:
            request.read()
            return httpx.Response(200, json={"id": "f9"})

        httpx_mock.add_callback(handler, url="http://ledger/uploads", method="POST")
        calls = {"n": 0}

        def cancel_check() -> bool:
            calls["n"] += 1
            return calls["n"] > 1

        with LedgerClient.from_config(make_config()) as client:
            with pytest.raises(CancelledException):
                client.submit_upload(
                    b"x" * (UPLOAD_CHUNK_SIZE * 3), {}, cancel_check=cancel_check
                )

    def test_fetch_private_file(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Fetched private content is decrypted with the drive key."""
        key = os.urandom(32)
        httpx_mock.add_response(
            url="http://ledger/files/f1/data", content=encrypt_payload(b"plain", key)
        )

        with LedgerClient.from_config(make_config()) as client:
            assert client.fetch_file_bytes("f1", drive_key=key) == b"plain"

    def test_balance_and_price(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should read the native balance and price."""
        httpx_mock.add_response(url="http://ledger/balance", json={"balance": "1.5"})
        httpx_mock.add_response(url="http://ledger/price?bytes=2048", json={"price": 0.002})

        with LedgerClient.from_config(make_config()) as client:
            assert client.get_native_balance() == 1.5
            assert client.estimate_native_cost(2048) == 0.002


class TestCreditsClient:
    """Tests for CreditsClient."""

    def test_balance(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should read the credits balance."""
        httpx_mock.add_response(url="http://credits/balance", json={"credits": 42.5})

        with CreditsClient.from_config(make_config()) as client:
            assert client.get_balance() == 42.5

    def test_estimates(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should quote credits and fiat prices."""
        httpx_mock.add_response(url="http://credits/price/bytes/1000", json={"credits": 0.01})
        httpx_mock.add_response(url="http://credits/price/fiat/usd/1000", json={"amount": 0.05})

        with CreditsClient.from_config(make_config()) as client:
            assert client.estimate_cost(1000) == 0.01
            assert client.fiat_estimate(1000, "USD") == 0.05

    def test_authentication_error(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """A rejected token raises AuthenticationError."""
        httpx_mock.add_response(url="http://credits/balance", status_code=401)

        with CreditsClient.from_config(make_config()) as client:
            with pytest.raises(AuthenticationError):
                client.get_balance()
