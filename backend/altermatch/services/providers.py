"""
Alter Compatibility Backend — LLM Provider Selection
=====================================================

What:  Builds the configured LLMClient and keeps one instance per process.
Who:   FastAPI dependency for routes; CompatibilityService; GET /health.

One instance per process matters: each client owns the circuit breaker
state, which must be shared by every request.
"""

import logging
from functools import lru_cache

from altermatch.config import settings
from altermatch.services.llm_base import LLMClient

logger = logging.getLogger(__name__)


def create_llm_client(provider: str) -> LLMClient:
    """
    Instantiate the client for a provider name ("gemini" or "openrouter").

    Raises:
        ValueError: Unknown provider name.
    """
    provider = provider.lower()
    if provider == "gemini":
        from altermatch.services.gemini_client import GeminiClient
        return GeminiClient()
    if provider == "openrouter":
        from altermatch.services.openrouter_client import OpenRouterClient
        return OpenRouterClient()
    raise ValueError(f"Unknown LLM provider '{provider}'")


@lru_cache(maxsize=1)
def get_llm_client() -> LLMClient:
    """Process-wide LLM client for the provider named in settings."""
    logger.info("Using LLM provider: %s", settings.llm_provider)
    return create_llm_client(settings.llm_provider)
