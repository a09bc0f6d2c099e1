"""
Alter Compatibility Backend — Google Gemini Client
===================================================

What:  LLMClient implementation backed by the Google Gemini API.
How:   Sends the compatibility prompt as a single-turn generation request
       with JSON output mode, guarded by a circuit breaker and a request
       timeout. Every SDK failure is translated into ProviderError.
Who:   Selected by services.providers when LLM_PROVIDER=gemini (default).

Error translation:
    DeadlineExceeded / asyncio.TimeoutError  → ProviderTimeoutError
    GoogleAPICallError (HTTP code known)     → ProviderError(status_code)
    Blocked / empty candidate (no .text)     → ProviderError
    Anything else from the SDK               → ProviderError
    Breaker open                             → CircuitBreakerOpenError
"""

import asyncio
import logging
import time
import uuid

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from altermatch.config import settings
from altermatch.exceptions import ProviderError, ProviderTimeoutError
from altermatch.services.circuit_breaker import CircuitBreaker
from altermatch.services.llm_base import LLMClient

logger = logging.getLogger(__name__)


class GeminiClient(LLMClient):
    """
    Google Gemini implementation of the LLM boundary.

    Error Handling Chain:
        API call fails → translated to ProviderError → breaker failure recorded
        → threshold reached → future calls rejected instantly
        → recovery timeout → one test call (HALF_OPEN)
        → test succeeds → normal operation (CLOSED)
    """

    name = "gemini"

    def __init__(self):
        # The SDK keeps auth in module-level state
        if settings.gemini_api_key and settings.gemini_api_key != "your_gemini_api_key_here":
            genai.configure(api_key=settings.gemini_api_key)

        self.model = genai.GenerativeModel(settings.gemini_model)
        self.generation_config = {
            "temperature": settings.llm_temperature,
            "max_output_tokens": settings.llm_max_tokens,
            "response_mime_type": "application/json",
        }
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        )

        logger.info(
            "GeminiClient initialized with model=%s, "
            "circuit_breaker(threshold=%d, recovery=%ds)",
            settings.gemini_model,
            settings.cb_failure_threshold,
            settings.cb_recovery_timeout,
        )

    async def complete(self, prompt: str) -> str:
        """
        Send the prompt to Gemini and return the raw completion text.

        Raises:
            CircuitBreakerOpenError: Circuit is open (too many recent failures)
            ProviderTimeoutError: No answer within llm_timeout_seconds
            ProviderError: Any other Gemini failure
        """
        request_id = str(uuid.uuid4())[:8]

        # Raises CircuitBreakerOpenError if open
        self.circuit_breaker.can_execute()

        start_time = time.time()
        try:
            response = await self.model.generate_content_async(
                prompt,
                generation_config=self.generation_config,
                request_options={"timeout": settings.llm_timeout_seconds},
            )
        except (google_exceptions.DeadlineExceeded, asyncio.TimeoutError) as e:
            self.circuit_breaker.record_failure()
            logger.warning(
                "[%s] Gemini call timed out after %.0fms",
                request_id,
                (time.time() - start_time) * 1000,
            )
            raise ProviderTimeoutError(
                timeout=settings.llm_timeout_seconds,
                context={"request_id": request_id, "provider": self.name},
            ) from e
        except google_exceptions.GoogleAPICallError as e:
            self.circuit_breaker.record_failure()
            logger.error("[%s] Gemini API error (code=%s): %s", request_id, e.code, str(e))
            raise ProviderError(
                message="The compatibility analysis provider returned an error.",
                status_code=int(e.code) if e.code else None,
                retry_after=self._retry_after(),
                context={"request_id": request_id, "provider": self.name},
            ) from e
        except Exception as e:
            self.circuit_breaker.record_failure()
            logger.error(
                "[%s] Unexpected Gemini error: %s",
                request_id,
                str(e),
                exc_info=True,
            )
            raise ProviderError(
                message="An unexpected error occurred while contacting the compatibility analysis provider.",
                retry_after=self._retry_after(),
                context={
                    "request_id": request_id,
                    "provider": self.name,
                    "error_type": type(e).__name__,
                },
            ) from e

        # The provider answered; what it said is judged by the parser
        self.circuit_breaker.record_success()

        try:
            text = response.text
        except ValueError as e:
            # .text raises when the candidate was blocked or has no parts
            logger.warning("[%s] Gemini returned no text: %s", request_id, str(e))
            raise ProviderError(
                message="The compatibility analysis provider returned no content.",
                context={"request_id": request_id, "provider": self.name},
            ) from e

        logger.info(
            "[%s] Gemini completion in %.0fms, %d chars",
            request_id,
            (time.time() - start_time) * 1000,
            len(text or ""),
        )
        return text or ""

    def _retry_after(self):
        if self.circuit_breaker.state == CircuitBreaker.OPEN:
            return self.circuit_breaker.recovery_timeout
        return None

    async def health_check(self) -> bool:
        """
        Check if Gemini is reachable by listing models (no token cost).
        Returns True if reachable and authenticated, False otherwise.
        """
        try:
            models = await asyncio.to_thread(lambda: list(genai.list_models()))
            model_names = [m.name for m in models]
            target = f"models/{settings.gemini_model}"
            if target not in model_names:
                logger.warning("Configured model %s not found in available models", target)
            return True
        except Exception as e:
            logger.warning("Gemini health check failed: %s", str(e))
            return False
