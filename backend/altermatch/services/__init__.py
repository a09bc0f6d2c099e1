# Services package init
"""
Alter Compatibility Backend — Services Layer
=============================================

Service Inventory:
    - LLMClient (abstract): text-in / text-out provider interface
    - GeminiClient: Google Gemini (default provider)
    - OpenRouterClient: OpenRouter chat completions over httpx
    - CircuitBreaker: per-client failure isolation
    - RetryPolicy: caller-side retry (tenacity), off by default
    - profile_formatter: UserProfile → prompt text, profile hashing
    - CompatibilityService: timeout, retry and cache around the scoring core
"""
