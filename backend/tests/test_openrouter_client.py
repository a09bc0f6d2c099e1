"""
Alter Compatibility Backend — OpenRouter Client Unit Tests
===========================================================

What:  OpenRouterClient against an httpx.MockTransport, so every status code
       and transport failure can be produced without network access.
"""

import json

import httpx
import pytest

from altermatch.config import settings
from altermatch.exceptions import ProviderError, ProviderTimeoutError
from altermatch.services.openrouter_client import STATUS_MESSAGES, OpenRouterClient

BASE_URL = "https://openrouter.test/api/v1"


def make_client(handler) -> OpenRouterClient:
    http_client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler),
        base_url=BASE_URL,
    )
    return OpenRouterClient(http_client=http_client)


def completion_body(content: str) -> dict:
    return {
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": {"total_tokens": 420, "prompt_tokens": 380, "completion_tokens": 40},
    }


class TestOpenRouterClient:

    @pytest.mark.asyncio
    async def test_complete_sends_prompt_and_returns_content(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=completion_body('{"global": 77}'))

        client = make_client(handler)
        text = await client.complete("the prompt")

        assert text == '{"global": 77}'
        assert seen["path"] == "/api/v1/chat/completions"
        assert seen["body"]["model"] == settings.openrouter_model
        assert seen["body"]["messages"] == [{"role": "system", "content": "the prompt"}]
        assert seen["body"]["response_format"] == {"type": "json_object"}
        assert seen["body"]["max_tokens"] == settings.llm_max_tokens

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 402, 429])
    async def test_known_status_codes_mapped(self, status):
        client = make_client(lambda request: httpx.Response(status, json={"error": "x"}))

        with pytest.raises(ProviderError) as exc_info:
            await client.complete("prompt")

        assert exc_info.value.status_code == status
        assert exc_info.value.message == STATUS_MESSAGES[status]

    @pytest.mark.asyncio
    async def test_retry_after_header_propagated(self):
        client = make_client(
            lambda request: httpx.Response(429, headers={"Retry-After": "7"}, json={})
        )

        with pytest.raises(ProviderError) as exc_info:
            await client.complete("prompt")

        assert exc_info.value.retry_after == 7

    @pytest.mark.asyncio
    async def test_server_error_is_generic_provider_error(self):
        client = make_client(lambda request: httpx.Response(500, text="boom"))

        with pytest.raises(ProviderError) as exc_info:
            await client.complete("prompt")

        assert exc_info.value.status_code == 500
        assert "500" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_transport_timeout_becomes_timeout_error(self):
        def handler(request):
            raise httpx.ReadTimeout("read timed out", request=request)

        with pytest.raises(ProviderTimeoutError):
            await make_client(handler).complete("prompt")

    @pytest.mark.asyncio
    async def test_connection_error_becomes_provider_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ProviderError) as exc_info:
            await make_client(handler).complete("prompt")

        assert exc_info.value.context["error_type"] == "ConnectError"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [{"choices": []}, {"unexpected": True}, {"choices": [{}]}])
    async def test_unexpected_envelope_is_provider_error(self, body):
        client = make_client(lambda request: httpx.Response(200, json=body))

        with pytest.raises(ProviderError):
            await client.complete("prompt")

    @pytest.mark.asyncio
    async def test_failures_count_towards_breaker(self):
        client = make_client(lambda request: httpx.Response(503))

        for _ in range(2):
            with pytest.raises(ProviderError):
                await client.complete("prompt")

        assert client.circuit_breaker.failure_count == 2

    @pytest.mark.asyncio
    async def test_health_check(self):
        ok = make_client(lambda request: httpx.Response(200, json={"data": []}))
        unauthorized = make_client(lambda request: httpx.Response(401))

        assert await ok.health_check() is True
        assert await unauthorized.health_check() is False

    @pytest.mark.asyncio
    async def test_aclose_closes_http_client(self):
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        client = OpenRouterClient(http_client=http_client)

        await client.aclose()

        assert http_client.is_closed
