"""
Alter Compatibility Backend — Circuit Breaker
==============================================

What:  Stops calling an LLM provider after repeated consecutive failures.
How:   Three-state machine shared by every call made through one client.
Who:   Owned by each LLMClient implementation (GeminiClient, OpenRouterClient).

States:
    closed     calls flow; consecutive failures are counted
    open       calls fail fast with CircuitBreakerOpenError until the
               recovery timeout has passed since the last failure
    half_open  exactly one trial call is admitted; everyone else keeps
               failing fast until that call reports back

A trial call that never reports back (cancelled by the caller's timeout)
is abandoned after another recovery_timeout, and the next caller becomes
the trial.

Concurrency:
    No locks. can_execute() never awaits, so on a single asyncio loop the
    check-and-claim of the trial slot cannot interleave.
"""

import logging
import time
from typing import Optional

from altermatch.exceptions import CircuitBreakerOpenError

logger = logging.getLogger(__name__)


class CircuitBreaker:
    """Per-provider breaker: closed → open → half_open → closed."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 60):
        """
        Args:
            failure_threshold: Consecutive failures that open the circuit
            recovery_timeout: Seconds before a trial call is admitted
        """
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None
        self._trial_started_at: Optional[float] = None

    @property
    def trial_in_flight(self) -> bool:
        return self._trial_started_at is not None

    def _reject(self, since: float) -> None:
        remaining = max(int(self.recovery_timeout - (time.time() - since)), 1)
        raise CircuitBreakerOpenError(recovery_time=remaining)

    def _admit_trial(self) -> bool:
        self.state = self.HALF_OPEN
        self._trial_started_at = time.time()
        return True

    def can_execute(self) -> bool:
        """
        Admit or reject one provider call.

        Returns True when the call may proceed. The caller must then report
        the outcome with record_success() or record_failure().

        Raises:
            CircuitBreakerOpenError: open and still cooling down, or
                half_open with the trial call still outstanding
        """
        if self.state == self.CLOSED:
            return True

        now = time.time()

        if self.state == self.OPEN:
            since = self.last_failure_time or 0
            if now - since < self.recovery_timeout:
                self._reject(since)
            logger.info(
                "Circuit breaker half-open after %.1fs; admitting one trial call",
                now - since,
            )
            return self._admit_trial()

        # half_open
        if self.trial_in_flight and now - self._trial_started_at < self.recovery_timeout:
            self._reject(self._trial_started_at)
        logger.warning("Circuit breaker trial call never reported back; admitting another")
        return self._admit_trial()

    def record_success(self) -> None:
        """The provider answered. Close the circuit."""
        if self.state != self.CLOSED:
            logger.info("Circuit breaker closed (provider recovered)")
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None
        self._trial_started_at = None

    def record_failure(self) -> None:
        """The provider failed. A failed trial reopens immediately."""
        self.failure_count += 1
        self.last_failure_time = time.time()
        was_trial = self.state == self.HALF_OPEN
        self._trial_started_at = None

        if was_trial:
            logger.warning("Circuit breaker reopened (trial call failed)")
            self.state = self.OPEN
        elif self.state == self.CLOSED and self.failure_count >= self.failure_threshold:
            logger.warning(
                "Circuit breaker opened after %d consecutive failures",
                self.failure_count,
            )
            self.state = self.OPEN
