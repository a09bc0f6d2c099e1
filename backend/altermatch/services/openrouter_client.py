"""
Alter Compatibility Backend — OpenRouter Client
================================================

What:  LLMClient implementation for OpenRouter's OpenAI-compatible
       chat-completions endpoint.
How:   One async httpx client per process; the prompt is sent as a single
       system message with `response_format={"type": "json_object"}`.
Who:   Selected by services.providers when LLM_PROVIDER=openrouter.

Status mapping (all raised as ProviderError carrying status_code):
    401 → authentication failed (check OPENROUTER_API_KEY)
    402 → insufficient credits on the OpenRouter account
    429 → provider-side rate limit
    other non-2xx → generic provider failure
Transport timeouts become ProviderTimeoutError.
"""

import logging
import time
import uuid
from typing import Any, Dict, Optional

import httpx

from altermatch.config import settings
from altermatch.exceptions import ProviderError, ProviderTimeoutError
from altermatch.services.circuit_breaker import CircuitBreaker
from altermatch.services.llm_base import LLMClient

logger = logging.getLogger(__name__)


STATUS_MESSAGES = {
    401: "LLM provider authentication failed. Check OPENROUTER_API_KEY.",
    402: "LLM provider account has insufficient credits.",
    429: "LLM provider rate limit exceeded. Please try again later.",
}


class OpenRouterClient(LLMClient):
    """
    OpenRouter implementation of the LLM boundary.

    Args:
        http_client: Optional pre-built httpx.AsyncClient. Tests inject one
            backed by httpx.MockTransport; production builds its own.
    """

    name = "openrouter"

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None):
        self._client = http_client or httpx.AsyncClient(
            base_url=settings.openrouter_base_url,
            headers={
                "Authorization": f"Bearer {settings.openrouter_api_key}",
                "Content-Type": "application/json",
                "HTTP-Referer": settings.app_url,
                "X-Title": "Alter Dating App",
            },
            timeout=httpx.Timeout(settings.llm_timeout_seconds, connect=10.0),
        )
        self.model = settings.openrouter_model
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        )
        logger.info(
            "OpenRouterClient initialized with model=%s, base_url=%s",
            self.model,
            settings.openrouter_base_url,
        )

    def _payload(self, prompt: str) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [{"role": "system", "content": prompt}],
            "temperature": settings.llm_temperature,
            "max_tokens": settings.llm_max_tokens,
            "response_format": {"type": "json_object"},
        }

    async def complete(self, prompt: str) -> str:
        """
        POST /chat/completions and return choices[0].message.content.

        Raises:
            CircuitBreakerOpenError: Circuit is open
            ProviderTimeoutError: Transport timeout
            ProviderError: Non-2xx status, network failure or unexpected envelope
        """
        request_id = str(uuid.uuid4())[:8]
        self.circuit_breaker.can_execute()

        start_time = time.time()
        try:
            response = await self._client.post("/chat/completions", json=self._payload(prompt))
            response.raise_for_status()
        except httpx.TimeoutException as e:
            self.circuit_breaker.record_failure()
            logger.warning("[%s] OpenRouter call timed out: %s", request_id, str(e))
            raise ProviderTimeoutError(
                timeout=settings.llm_timeout_seconds,
                context={"request_id": request_id, "provider": self.name},
            ) from e
        except httpx.HTTPStatusError as e:
            self.circuit_breaker.record_failure()
            status = e.response.status_code
            logger.error(
                "[%s] OpenRouter returned HTTP %d: %s",
                request_id,
                status,
                e.response.text[:500],
            )
            raise ProviderError(
                message=STATUS_MESSAGES.get(status, f"LLM provider call failed with HTTP {status}."),
                status_code=status,
                retry_after=_parse_retry_after(e.response),
                context={"request_id": request_id, "provider": self.name},
            ) from e
        except httpx.HTTPError as e:
            self.circuit_breaker.record_failure()
            logger.error("[%s] OpenRouter transport error: %s", request_id, str(e))
            raise ProviderError(
                message="Could not reach the compatibility analysis provider.",
                context={
                    "request_id": request_id,
                    "provider": self.name,
                    "error_type": type(e).__name__,
                },
            ) from e

        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            self.circuit_breaker.record_failure()
            logger.error("[%s] Unexpected OpenRouter envelope: %s", request_id, str(e))
            raise ProviderError(
                message="The compatibility analysis provider returned an unexpected payload.",
                status_code=response.status_code,
                context={"request_id": request_id, "provider": self.name},
            ) from e

        self.circuit_breaker.record_success()

        usage = data.get("usage") or {}
        logger.info(
            "[%s] OpenRouter completion in %.0fms (tokens: total=%s prompt=%s completion=%s)",
            request_id,
            (time.time() - start_time) * 1000,
            usage.get("total_tokens", "n/a"),
            usage.get("prompt_tokens", "n/a"),
            usage.get("completion_tokens", "n/a"),
        )
        return content or ""

    async def health_check(self) -> bool:
        """GET /models — free, verifies connectivity."""
        try:
            response = await self._client.get("/models")
            return response.status_code < 400
        except httpx.HTTPError as e:
            logger.warning("OpenRouter health check failed: %s", str(e))
            return False

    async def aclose(self) -> None:
        await self._client.aclose()


def _parse_retry_after(response: httpx.Response) -> Optional[int]:
    value = response.headers.get("Retry-After")
    if value and value.isdigit():
        return int(value)
    return None
