"""
Alter Compatibility Backend — Caller Retry Policy
==================================================

What:  Optional retry around one compatibility evaluation.
How:   Tenacity AsyncRetrying with exponential backoff + jitter.
Who:   CompatibilityService, which is the caller of the scoring core.

What gets retried:
    ProviderError (network, non-2xx, timeout)   → yes, up to max_attempts
    CircuitBreakerOpenError                     → never (breaker says wait)
    MalformedResponse                           → only if retry_malformed
    ArgumentError / OutOfRangeScore / EmptyInsight → never

With max_attempts=1 (the default) the wrapped call runs exactly once. When
attempts run out, the last error is re-raised unchanged.
"""

import logging
from typing import Awaitable, Callable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from altermatch.config import settings
from altermatch.exceptions import CircuitBreakerOpenError, MalformedResponse, ProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy:
    """
    Args:
        max_attempts: Total attempts including the first (1 = no retry).
        retry_malformed: Also retry when the model returned invalid JSON.
        min_wait: Initial backoff in seconds.
        max_wait: Backoff ceiling in seconds.
        jitter: Max random seconds added to each wait.
    """

    def __init__(
        self,
        max_attempts: int = 1,
        retry_malformed: bool = False,
        min_wait: float = 2,
        max_wait: float = 10,
        jitter: float = 1,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.retry_malformed = retry_malformed
        self.min_wait = min_wait
        self.max_wait = max_wait
        self.jitter = jitter

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_attempts=settings.retry_max_attempts,
            retry_malformed=settings.retry_malformed_responses,
            min_wait=settings.retry_min_wait,
            max_wait=settings.retry_max_wait,
        )

    def is_retryable(self, error: BaseException) -> bool:
        if isinstance(error, CircuitBreakerOpenError):
            return False
        if isinstance(error, ProviderError):
            return True
        if isinstance(error, MalformedResponse):
            return self.retry_malformed
        return False

    def wait_strategy(self) -> wait_exponential_jitter:
        """min_wait * 2**n plus up to `jitter` seconds, capped at max_wait."""
        return wait_exponential_jitter(
            multiplier=self.min_wait,
            max=self.max_wait,
            jitter=self.jitter,
        )

    async def call(
        self,
        fn: Callable[..., Awaitable[T]],
        *args,
        operation: Optional[str] = None,
    ) -> T:
        """Run `await fn(*args)` under this policy and return its result."""
        retrying = AsyncRetrying(
            retry=retry_if_exception(self.is_retryable),
            stop=stop_after_attempt(self.max_attempts),
            wait=self.wait_strategy(),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.info(
                        "Retrying %s (attempt %d/%d)",
                        operation or getattr(fn, "__name__", "call"),
                        attempt.retry_state.attempt_number,
                        self.max_attempts,
                    )
                return await fn(*args)
