"""
Alter Compatibility Backend — Abstract LLM Client Interface
============================================================

What:  Abstract base class for text-completion providers.
How:   Concrete implementations inherit from LLMClient and implement
       complete() and health_check().
Who:   Called by evaluate_compatibility(); health_check() by GET /health.

The contract is deliberately text-in / text-out: the provider is treated as
an untrusted, non-deterministic black box, and all structure is enforced by
the response parser. Tests replace it with a deterministic stub.
"""

from abc import ABC, abstractmethod


class LLMClient(ABC):
    """
    Abstract interface for an LLM completion provider.

    Contract:
        - complete() sends one prompt and returns the raw completion text
        - Every provider-specific failure is wrapped in ProviderError
          (ProviderTimeoutError for timeouts, CircuitBreakerOpenError when
          the breaker is open)
        - No retries: retry policy is the caller's decision

    Implementations:
        - GeminiClient: Google Gemini (default)
        - OpenRouterClient: OpenRouter chat completions over httpx
    """

    name: str = "llm"

    @abstractmethod
    async def complete(self, prompt: str) -> str:
        """
        Send a prompt to the model and return its text response.

        Args:
            prompt: Complete instruction text (UTF-8).

        Returns:
            The completion text, unmodified. May be empty.

        Raises:
            ProviderError: Network failure, timeout or non-2xx answer.
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check if the provider is reachable and operational.

        Lightweight connectivity test that does not consume completion quota.
        Returns True if reachable, False otherwise. Never raises.
        """
        ...

    async def aclose(self) -> None:
        """Release network resources. Called once during app shutdown."""
        return None
