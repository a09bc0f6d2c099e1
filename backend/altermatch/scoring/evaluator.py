"""
Alter Compatibility Backend — Compatibility Orchestrator
=========================================================

What:  One complete compatibility evaluation: prompt → provider → parse.
Who:   CompatibilityService (which adds timeout, retry and caching) and any
       caller holding two profile texts and an LLMClient.

Flow:
    ┌──────────────┐    ┌──────────────────┐    ┌─────────────────────┐
    │ build_prompt │───▶│ client.complete  │───▶│ parse_compatibility │
    └──────────────┘    └──────────────────┘    └─────────────────────┘
     ArgumentError       ProviderError           MalformedResponse
                                                 OutOfRangeScore
                                                 EmptyInsight

Every error propagates unchanged. There is no fallback result and no retry
here; each call is independent and safe to run concurrently.
"""

import logging

from altermatch.schemas.compatibility import CompatibilityResult
from altermatch.scoring.parser import parse_compatibility
from altermatch.scoring.prompt import build_prompt
from altermatch.services.llm_base import LLMClient

logger = logging.getLogger(__name__)


async def evaluate_compatibility(
    profile1: str,
    profile2: str,
    llm_client: LLMClient,
) -> CompatibilityResult:
    """
    Score two profiles with the given LLM client.

    Args:
        profile1: Text representation of the first user.
        profile2: Text representation of the second user.
        llm_client: Provider boundary; replaced by a stub in tests.

    Returns:
        The validated CompatibilityResult.

    Raises:
        ArgumentError, ProviderError, MalformedResponse, OutOfRangeScore,
        EmptyInsight, unchanged from the stage that raised them.
    """
    prompt = build_prompt(profile1, profile2)
    logger.debug("Built compatibility prompt (%d chars) for provider=%s", len(prompt), llm_client.name)

    raw_text = await llm_client.complete(prompt)
    logger.debug("Provider %s returned %s", llm_client.name, type(raw_text).__name__)

    result = parse_compatibility(raw_text)
    logger.info(
        "Compatibility evaluated: global=%d love=%d friendship=%d carnal=%d",
        result.global_score,
        result.love,
        result.friendship,
        result.carnal,
    )
    return result
