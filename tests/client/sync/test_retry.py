"""Tests for retry with exponential backoff."""

import httpx
import pytest

from permasync.client.sync.retry import NETWORK_EXCEPTIONS, retry_with_backoff


class Flaky:
    """Callable failing a number of times before succeeding."""

    def __init__(self, failures: list[Exception]) -> None:
        self.failures = failures
        self.calls = 0

    def __call__(self) -> str:
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return "ok"


class TestRetryWithBackoff:
    """Tests for retry_with_backoff()."""

    def test_success_first_try(self) -> None:
        """Should return immediately on success."""
        func = Flaky([])

        assert retry_with_backoff(func, sleep=lambda _: None) == "ok"
        assert func.calls == 1

    def test_retries_network_errors(self) -> None:
        """Should retry transient errors with growing delays."""
        delays: list[float] = []
        func = Flaky([ConnectionError("reset"), httpx.ConnectError("refused")])

        result = retry_with_backoff(
            func, max_retries=3, initial_backoff=1.0, backoff_multiplier=2.0, sleep=delays.append
        )

        assert result == "ok"
        assert func.calls == 3
        assert delays == [1.0, 2.0]

    def test_backoff_is_capped(self) -> None:
        """Delays never exceed max_backoff."""
        delays: list[float] = []
        func = Flaky([TimeoutError()] * 4)

        retry_with_backoff(
            func, max_retries=4, initial_backoff=5.0, max_backoff=8.0, sleep=delays.append
        )

        assert delays == [5.0, 8.0, 8.0, 8.0]

    def test_gives_up_after_max_retries(self) -> None:
        """Should re-raise the last error once retries are exhausted."""
        func = Flaky([ConnectionError("1"), ConnectionError("2"), ConnectionError("3")])

        with pytest.raises(ConnectionError, match="2"):
            retry_with_backoff(func, max_retries=1, sleep=lambda _: None)
        assert func.calls == 2

    def test_non_retryable_errors_propagate(self) -> None:
        """Should not retry errors outside the retryable set."""
        func = Flaky([ValueError("bad request")])

        with pytest.raises(ValueError):
            retry_with_backoff(func, sleep=lambda _: None)
        assert func.calls == 1

    def test_cancel_stops_retrying(self) -> None:
        """A cancelled operation is not retried."""
        func = Flaky([ConnectionError("reset")])

        with pytest.raises(ConnectionError):
            retry_with_backoff(func, cancel_check=lambda: True, sleep=lambda _: None)
        assert func.calls == 1

    def test_network_exceptions_cover_httpx(self) -> None:
        """Transport errors from the HTTP client count as network errors."""
        assert issubclass(httpx.ReadTimeout, NETWORK_EXCEPTIONS)
