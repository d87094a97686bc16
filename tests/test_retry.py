"""Tests for the retry policy."""

import logging
from unittest.mock import AsyncMock

import pytest
from tenacity import RetryCallState, wait_exponential

from catalog_sync.core.exceptions import (
    CredentialError,
    MarketplaceTransportError,
    ProductNotFoundError,
)
from catalog_sync.core.retry import NO_RETRY, RetryPolicy, wait_retry_after
from tests.conftest import FAST_RETRY


class TestRetryPolicy:
    async def test_success_on_first_attempt(self) -> None:
        fn = AsyncMock(return_value="ok")

        outcome = await FAST_RETRY.call_with_attempts(fn, "a", key="b")

        assert outcome.value == "ok"
        assert outcome.attempts == 1
        fn.assert_awaited_once_with("a", key="b")

    async def test_transient_errors_are_retried(self) -> None:
        fn = AsyncMock(side_effect=[MarketplaceTransportError("timeout"), MarketplaceTransportError("503"), "ok"])

        outcome = await FAST_RETRY.call_with_attempts(fn)

        assert outcome.value == "ok"
        assert outcome.attempts == 3

    async def test_exhausted_budget_reraises_with_attempts(self) -> None:
        fn = AsyncMock(side_effect=MarketplaceTransportError("timeout"))

        with pytest.raises(MarketplaceTransportError) as exc_info:
            await FAST_RETRY.call(fn)

        assert exc_info.value.attempts == 3
        assert fn.await_count == 3

    @pytest.mark.parametrize(
        "error",
        [
            ProductNotFoundError("gone"),
            CredentialError("revoked"),
            MarketplaceTransportError("bad request", transient=False),
        ],
    )
    async def test_non_transient_errors_are_not_retried(self, error: Exception) -> None:
        fn = AsyncMock(side_effect=error)

        with pytest.raises(type(error)) as exc_info:
            await FAST_RETRY.call(fn)

        assert exc_info.value.attempts == 1
        assert fn.await_count == 1

    async def test_no_retry_policy(self) -> None:
        fn = AsyncMock(side_effect=MarketplaceTransportError("timeout"))

        with pytest.raises(MarketplaceTransportError):
            await NO_RETRY.call(fn)

        assert fn.await_count == 1

    async def test_retry_after_is_honoured(self, caplog: pytest.LogCaptureFixture) -> None:
        fn = AsyncMock(side_effect=[MarketplaceTransportError("429", status_code=429, retry_after=0.01), "ok"])
        policy = RetryPolicy(max_attempts=2, backoff_base=60, backoff_max=0.5)
        caplog.set_level(logging.WARNING, logger="catalog_sync.core.retry")

        outcome = await policy.call_with_attempts(fn)

        assert outcome.value == "ok"
        assert outcome.attempts == 2
        assert "in 0.01 seconds" in caplog.text


def _failed_state(exc: BaseException, attempt_number: int = 1) -> RetryCallState:
    state = RetryCallState(None, None, (), {})
    state.attempt_number = attempt_number
    state.set_exception((type(exc), exc, None))
    return state


class TestWaitRetryAfter:
    @pytest.fixture
    def wait(self) -> wait_retry_after:
        return wait_retry_after(wait_exponential(multiplier=1, max=30), 30)

    def test_uses_requested_delay(self, wait: wait_retry_after) -> None:
        state = _failed_state(MarketplaceTransportError("429", status_code=429, retry_after=2.5))

        assert wait(state) == 2.5

    def test_requested_delay_is_capped(self, wait: wait_retry_after) -> None:
        state = _failed_state(MarketplaceTransportError("503", status_code=503, retry_after=100))

        assert wait(state) == 30

    def test_falls_back_to_backoff(self, wait: wait_retry_after) -> None:
        state = _failed_state(MarketplaceTransportError("timeout"), attempt_number=3)

        assert wait(state) == 4
