"""
Alter Compatibility Backend — Compatibility Evaluator Tests
============================================================

What:  evaluate_compatibility() end to end with a deterministic stub provider.

What we test:
    ✅ The prompt sent is exactly build_prompt(profile1, profile2)
    ✅ Valid output becomes a CompatibilityResult
    ✅ Invalid input never reaches the provider
    ✅ Provider and validation errors propagate unchanged
    ✅ Independent evaluations can run concurrently
"""

import asyncio

import pytest

from altermatch.exceptions import (
    ArgumentError,
    EmptyInsight,
    MalformedResponse,
    OutOfRangeScore,
    ProviderError,
    ProviderTimeoutError,
)
from altermatch.scoring import build_prompt, evaluate_compatibility

from conftest import StubLLMClient, valid_completion


class TestEvaluateCompatibility:

    @pytest.mark.asyncio
    async def test_returns_parsed_result(self):
        client = StubLLMClient([valid_completion(global_score=91, insight="Same sense of humour 😄")])

        result = await evaluate_compatibility("profile A", "profile B", client)

        assert result.global_score == 91
        assert result.insight == "Same sense of humour 😄"

    @pytest.mark.asyncio
    async def test_sends_built_prompt_once(self):
        client = StubLLMClient()

        await evaluate_compatibility("profile A", "profile B", client)

        assert client.prompts == [build_prompt("profile A", "profile B")]

    @pytest.mark.asyncio
    async def test_invalid_profile_never_calls_provider(self):
        client = StubLLMClient()

        with pytest.raises(ArgumentError):
            await evaluate_compatibility("   ", "profile B", client)

        assert client.calls == 0

    @pytest.mark.asyncio
    async def test_provider_error_propagates_unchanged(self):
        error = ProviderError(message="upstream 500", status_code=500)
        client = StubLLMClient([error])

        with pytest.raises(ProviderError) as exc_info:
            await evaluate_compatibility("profile A", "profile B", client)

        assert exc_info.value is error

    @pytest.mark.asyncio
    async def test_timeout_propagates_unchanged(self):
        client = StubLLMClient([ProviderTimeoutError(timeout=30)])

        with pytest.raises(ProviderTimeoutError):
            await evaluate_compatibility("profile A", "profile B", client)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "reply, error",
        [
            ("I think they are a great match!", MalformedResponse),
            (valid_completion(love=140), OutOfRangeScore),
            (valid_completion(insight=" "), EmptyInsight),
        ],
    )
    async def test_invalid_output_raises_typed_error(self, reply, error):
        client = StubLLMClient([reply])

        with pytest.raises(error):
            await evaluate_compatibility("profile A", "profile B", client)

    @pytest.mark.asyncio
    async def test_no_fallback_scores_on_failure(self):
        client = StubLLMClient(["{}"])

        with pytest.raises(MalformedResponse) as exc_info:
            await evaluate_compatibility("profile A", "profile B", client)

        assert set(exc_info.value.missing_fields) == {"global", "love", "friendship", "carnal", "insight"}

    @pytest.mark.asyncio
    async def test_concurrent_evaluations_are_independent(self):
        client = StubLLMClient(
            [valid_completion(global_score=10), valid_completion(global_score=20), valid_completion(global_score=30)],
            delay=0.01,
        )

        results = await asyncio.gather(
            *(evaluate_compatibility(f"profile {i}", "other", client) for i in range(3))
        )

        assert sorted(r.global_score for r in results) == [10, 20, 30]
        assert client.max_in_flight == 3
