"""HTTP clients for the ledger storage and credits services.

This module provides:
- LedgerClient: Drive listing, upload submission and file fetch
- CreditsClient: Credits balance and price quotes
- APIError, AuthenticationError, NotFoundError: Errors raised by both

Payloads of private drives are encrypted with AES-256-GCM under the drive
key before they leave the machine and decrypted after fetch.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from typing import TYPE_CHECKING, Any

import httpx

from permasync.core.crypto import decrypt_payload, encrypt_payload
from permasync.client.sync.types import RemoteEntry, SettlementMethod, SubmitResult
from permasync.client.sync.workers.base import CancelledException

if TYPE_CHECKING:
    from permasync.core.config import ServiceConfig
    from permasync.client.sync.types import CancelCheck, ProgressCallback

logger = logging.getLogger(__name__)

UPLOAD_CHUNK_SIZE = 64 * 1024


class APIError(Exception):
    """Base exception for API errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(APIError):
    """Authentication failed."""


class NotFoundError(APIError):
    """Resource not found."""


def _error_detail(response: httpx.Response, default: str) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or default
    if isinstance(body, dict):
        return str(body.get("detail", default))
    return default


class _ServiceClient:
    """Shared plumbing of the two service clients."""

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: float = 30.0,
        verify_ssl: bool = True,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Base URL of the service.
            token: Authentication token.
            timeout: Request timeout in seconds.
            verify_ssl: Whether to verify SSL certificates.
            transport: Optional custom transport.
        """
        self._base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self._base_url,
            timeout=timeout,
            verify=verify_ssl,
            headers={"Authorization": f"Bearer {token}"},
            transport=transport,
        )

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> _ServiceClient:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()

    def _handle_response(self, response: httpx.Response) -> httpx.Response:
        """Handle API response and raise appropriate exceptions."""
        if response.status_code == 401:
            raise AuthenticationError("Invalid or expired token", 401)
        if response.status_code == 404:
            raise NotFoundError("Resource not found", 404)
        if response.status_code >= 400:
            raise APIError(_error_detail(response, "Unknown error"), response.status_code)
        return response

    def health_check(self) -> bool:
        """Check if the service is reachable.

        Returns:
            True if the service answered the health probe.
        """
        try:
            response = self._client.get("/health")
            return response.status_code == 200
        except httpx.RequestError:
            return False


class LedgerClient(_ServiceClient):
    """HTTP client for the ledger storage service."""

    @classmethod
    def from_config(
        cls, config: ServiceConfig, transport: httpx.BaseTransport | None = None
    ) -> LedgerClient:
        """Create a client from the service configuration."""
        return cls(
            config.ledger_url,
            config.token,
            timeout=config.timeout,
            verify_ssl=config.verify_ssl,
            transport=transport,
        )

    def list_drive_contents(self, drive_id: str) -> list[RemoteEntry]:
        """List every file and folder of a drive.

        Raises:
            AuthenticationError: If the token is rejected.
            NotFoundError: If the drive does not exist.
        """
        response = self._handle_response(self._client.get(f"/drives/{drive_id}/entries"))
        return [RemoteEntry.from_dict(e) for e in response.json()]

    def submit_upload(
        self,
        data: bytes,
        tags: dict[str, str],
        drive_key: bytes | None = None,
        settlement: SettlementMethod = SettlementMethod.NATIVE_TOKEN,
        on_progress: ProgressCallback | None = None,
        cancel_check: CancelCheck | None = None,
    ) -> SubmitResult:
        """Submit a payload to the ledger.

        The body is streamed in chunks so progress can be reported and a
        cancellation stops the transfer mid-flight.

        Args:
            data: File content.
            tags: Ledger tags.
            drive_key: Key of a private drive; the payload is encrypted with it.
            settlement: How the upload is paid for.
            on_progress: Receives the percentage sent.
            cancel_check: Aborts the transfer when it returns True.

        Returns:
            Id and transaction references of the stored file.

        Raises:
            CancelledException: If cancel_check fired during the transfer.
        """
        payload = encrypt_payload(data, drive_key) if drive_key else data
        headers = {
            "Content-Type": "application/octet-stream",
            "X-Ledger-Tags": json.dumps(tags, sort_keys=True),
            "X-Settlement": settlement.value,
        }
        if drive_key:
            headers["X-Cipher"] = "AES256-GCM"

        def body() -> Iterator[bytes]:
            total = len(payload) or 1
            for offset in range(0, len(payload), UPLOAD_CHUNK_SIZE):
                if cancel_check and cancel_check():
                    raise CancelledException("Upload cancelled")
                yield payload[offset : offset + UPLOAD_CHUNK_SIZE]
                if on_progress:
                    on_progress(100.0 * min(offset + UPLOAD_CHUNK_SIZE, total) / total)

        response = self._handle_response(
            self._client.post("/uploads", content=body(), headers=headers)
        )
        result: dict[str, Any] = response.json()
        return SubmitResult(id=str(result["id"]), tx_refs=list(result.get("txRefs") or []))

    def fetch_file_bytes(self, file_ref: str, drive_key: bytes | None = None) -> bytes:
        """Fetch (and decrypt, for private drives) the content of a file.

        Raises:
            NotFoundError: If the file does not exist.
            cryptography.exceptions.InvalidTag: If the drive key is wrong.
        """
        response = self._handle_response(self._client.get(f"/files/{file_ref}/data"))
        content = response.content
        return decrypt_payload(content, drive_key) if drive_key else content

    def get_native_balance(self) -> float:
        """Native-token balance of the account."""
        response = self._handle_response(self._client.get("/balance"))
        return float(response.json()["balance"])

    def estimate_native_cost(self, byte_count: int) -> float:
        """Native-token price of storing byte_count bytes."""
        response = self._handle_response(
            self._client.get("/price", params={"bytes": byte_count})
        )
        return float(response.json()["price"])


class CreditsClient(_ServiceClient):
    """HTTP client for the credits service."""

    @classmethod
    def from_config(
        cls, config: ServiceConfig, transport: httpx.BaseTransport | None = None
    ) -> CreditsClient:
        """Create a client from the service configuration."""
        return cls(
            config.credits_url,
            config.token,
            timeout=config.timeout,
            verify_ssl=config.verify_ssl,
            transport=transport,
        )

    def get_balance(self) -> float:
        """Credits balance of the account."""
        response = self._handle_response(self._client.get("/balance"))
        return float(response.json()["credits"])

    def estimate_cost(self, byte_count: int) -> float:
        """Credits price of storing byte_count bytes."""
        response = self._handle_response(self._client.get(f"/price/bytes/{byte_count}"))
        return float(response.json()["credits"])

    def fiat_estimate(self, byte_count: int, currency: str) -> float:
        """Price of storing byte_count bytes in a fiat currency."""
        response = self._handle_response(
            self._client.get(f"/price/fiat/{currency.lower()}/{byte_count}")
        )
        return float(response.json()["amount"])
