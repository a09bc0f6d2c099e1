"""
Alter Compatibility Backend — Compatibility Prompt Builder
==========================================================

What:  Fills the fixed compatibility-analysis template with two profiles.
How:   Plain str.format() on a static template; literal JSON braces in the
       example output are doubled. Profile text is substituted as a value,
       so braces inside a profile are never interpreted.
Who:   Called by evaluate_compatibility() before every provider call.
"""

from typing import Optional

from altermatch.exceptions import ArgumentError


COMPATIBILITY_PROMPT = """You are an expert in relationship psychology and algorithmic matching for a dating application.

# Context
You are analysing the compatibility between two users of a dating application based on detailed data from their profiles.

# USER PROFILE 1
{profile1}

# USER PROFILE 2
{profile2}

# Your task
Analyse the compatibility between these two profiles along 4 dimensions:

1. **Global** (0-100): overall compatibility
2. **Love** (0-100): potential for a romantic relationship
3. **Friendship** (0-100): potential for a deep friendship
4. **Carnal** (0-100): physical and sensual affinity

# Analysis criteria
- Values and vision of the future
- Shared interests and passions
- Communication style
- Life goals
- Humour and personality
- Lifestyle
- Energy level
- Open-mindedness
- Emotional depth
- Approach to intimacy

# Instructions
1. Analyse both profiles in depth
2. Identify what they have in common AND the differences that enrich the match
3. Be honest with your scores (50-60 = compatible, 70-80 = very compatible, 90+ = exceptional)
4. The insight must be concrete and personal, never generic
5. Focus on the positive aspects that create the compatibility

# Response format (JSON REQUIRED)
Respond ONLY with a valid JSON object, without markdown and without backticks.
The four scores MUST be integers between 0 and 100.

{{
  "global": 85,
  "love": 82,
  "friendship": 88,
  "carnal": 79,
  "insight": "Your family values and your vision of the future are closely aligned. You share a passion for travelling and discovering new cultures 🌍"
}}

# Rules for the insight
- At most 2 short sentences
- Mention 1-2 concrete points of compatibility
- End with a fitting emoji
- Be warm and encouraging
- Avoid clichés, be specific to the profiles analysed

Analyse now and respond in JSON:"""


def _require_profile(name: str, value: Optional[str]) -> str:
    if value is None:
        raise ArgumentError(message=f"{name} is required", argument=name)
    if not isinstance(value, str):
        raise ArgumentError(
            message=f"{name} must be text, got {type(value).__name__}",
            argument=name,
        )
    if not value.strip():
        raise ArgumentError(message=f"{name} must not be empty", argument=name)
    return value


def build_prompt(profile1: Optional[str], profile2: Optional[str]) -> str:
    """
    Build the complete instruction text for one compatibility analysis.

    Args:
        profile1: Text representation of the first user.
        profile2: Text representation of the second user.

    Returns:
        The template with both profiles substituted, ready for
        LLMClient.complete().

    Raises:
        ArgumentError: Either profile is None, not a string, or blank.
    """
    profile1 = _require_profile("profile1", profile1)
    profile2 = _require_profile("profile2", profile2)
    return COMPATIBILITY_PROMPT.format(profile1=profile1, profile2=profile2)
