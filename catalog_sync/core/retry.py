"""Centralized retry policy for marketplace calls."""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from catalog_sync.core.config import settings
from catalog_sync.core.exceptions import is_transient

logger = logging.getLogger(__name__)


class wait_retry_after(wait_base):  # noqa: N801
    """Wait what the marketplace asked for via Retry-After, else defer to ``fallback``.

    The requested delay is capped at ``maximum``.
    """

    def __init__(self, fallback: wait_base, maximum: float) -> None:
        self.fallback = fallback
        self.maximum = maximum

    def __call__(self, retry_state: RetryCallState) -> float:
        outcome = retry_state.outcome
        exc = outcome.exception() if outcome is not None and outcome.failed else None
        retry_after = getattr(exc, "retry_after", None)
        if retry_after is not None:
            return min(max(float(retry_after), 0.0), self.maximum)
        return self.fallback(retry_state)


@dataclass
class RetryOutcome[T]:
    """Result of a call made under a retry policy."""

    value: T
    attempts: int


@dataclass(frozen=True)
class RetryPolicy:
    """Retry transient failures with exponential backoff, honouring Retry-After.

    Non-transient errors (credentials, 404s, malformed data) are raised on the
    first attempt and never consume the retry budget.
    """

    max_attempts: int = field(default_factory=lambda: settings.retry_max_attempts)
    backoff_base: float = field(default_factory=lambda: settings.retry_backoff_base)
    backoff_max: float = field(default_factory=lambda: settings.retry_backoff_max)
    retryable: Callable[[BaseException], bool] = is_transient

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_retry_after(
                wait_exponential(multiplier=self.backoff_base, max=self.backoff_max),
                self.backoff_max,
            ),
            retry=retry_if_exception(self.retryable),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    async def call_with_attempts[T](
        self,
        fn: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> RetryOutcome[T]:
        """Await ``fn(*args, **kwargs)`` under the policy and report attempts used.

        On final failure the last exception is re-raised with an ``attempts``
        attribute set so callers can record how often the call was tried.
        """
        attempts = 0
        try:
            async for attempt in self._retrying():
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    value = await fn(*args, **kwargs)
        except Exception as exc:
            exc.attempts = attempts  # type: ignore[attr-defined]
            raise
        return RetryOutcome(value=value, attempts=attempts)

    async def call[T](self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Await ``fn(*args, **kwargs)`` under the policy."""
        outcome = await self.call_with_attempts(fn, *args, **kwargs)
        return outcome.value


NO_RETRY = RetryPolicy(max_attempts=1, backoff_base=0, backoff_max=0)
