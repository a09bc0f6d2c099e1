"""
Alter Compatibility Backend — Compatibility Response Parser
============================================================

What:  Turns raw provider text into a validated CompatibilityResult.
How:   Strict JSON parse → required keys → integer scores in [0, 100]
       → non-blank insight. Each violation raises its own typed error.
Who:   Called by evaluate_compatibility() on every provider response.

The provider is an untrusted, non-deterministic black box; this module is
the only place its output is checked. Nothing is clamped, defaulted or
repaired (no markdown fence stripping either): a model that misbehaves must
be visible to the caller.

Validation order:
    1. json.loads (NaN / Infinity rejected)       → MalformedResponse
    2. object with global/love/friendship/carnal/insight → MalformedResponse
    3. each score integral and 0 <= score <= 100  → OutOfRangeScore(field)
    4. insight is a str, non-blank after strip    → EmptyInsight
"""

import json
import math
from typing import Any, Dict

from altermatch.exceptions import EmptyInsight, MalformedResponse, OutOfRangeScore
from altermatch.schemas.compatibility import CompatibilityResult


SCORE_FIELDS = ("global", "love", "friendship", "carnal")
REQUIRED_FIELDS = SCORE_FIELDS + ("insight",)

SCORE_MIN = 0
SCORE_MAX = 100


def _reject_constant(name: str) -> Any:
    # json.loads accepts NaN/Infinity by default; strict JSON does not
    raise ValueError(f"non-standard JSON constant {name}")


def _load_object(raw_text: Any) -> Dict[str, Any]:
    if not isinstance(raw_text, str):
        raise MalformedResponse(
            message="The compatibility analysis response is not text",
            context={"type": type(raw_text).__name__},
        )

    try:
        payload = json.loads(raw_text, parse_constant=_reject_constant)
    except ValueError as e:
        # json.JSONDecodeError is a ValueError subclass
        raise MalformedResponse(context={"reason": str(e)}) from e

    if not isinstance(payload, dict):
        raise MalformedResponse(
            message="The compatibility analysis response is not a JSON object",
            context={"type": type(payload).__name__},
        )

    missing = [field for field in REQUIRED_FIELDS if field not in payload]
    if missing:
        raise MalformedResponse(
            message="The compatibility analysis response is missing required fields: "
            + ", ".join(missing),
            missing_fields=missing,
        )
    return payload


def _coerce_score(field: str, value: Any) -> int:
    """Accept ints and integral floats (85.0); reject bools, strings and fractions."""
    if isinstance(value, bool):
        raise OutOfRangeScore(field=field, value=value)

    if isinstance(value, int):
        score = value
    elif isinstance(value, float) and math.isfinite(value) and value.is_integer():
        score = int(value)
    else:
        raise OutOfRangeScore(field=field, value=value)

    if not SCORE_MIN <= score <= SCORE_MAX:
        raise OutOfRangeScore(field=field, value=value)
    return score


def _validate_insight(value: Any) -> str:
    if not isinstance(value, str):
        raise EmptyInsight(
            message="The compatibility insight must be text",
            context={"type": type(value).__name__},
        )
    if not value.strip():
        raise EmptyInsight()
    return value


def parse_compatibility(raw_text: str) -> CompatibilityResult:
    """
    Parse and validate one provider response.

    Pure function: the same input always yields the same result or the
    same failure kind.

    Args:
        raw_text: Text returned by LLMClient.complete().

    Returns:
        CompatibilityResult with the values exactly as the model sent them.

    Raises:
        MalformedResponse: Not strict JSON, not an object, or missing keys.
        OutOfRangeScore: A score is not an integer in [0, 100].
        EmptyInsight: The insight is not a string or is blank.
    """
    payload = _load_object(raw_text)

    scores = {field: _coerce_score(field, payload[field]) for field in SCORE_FIELDS}
    insight = _validate_insight(payload["insight"])

    return CompatibilityResult(
        global_score=scores["global"],
        love=scores["love"],
        friendship=scores["friendship"],
        carnal=scores["carnal"],
        insight=insight,
    )
