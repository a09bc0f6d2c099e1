"""
Alter Compatibility Backend — Scoring Core
===========================================

What:  The compatibility-scoring contract with the LLM provider.
How:   Three pieces, called in order by evaluate_compatibility():

           build_prompt()  →  LLMClient.complete()  →  parse_compatibility()

Everything here is stateless: no database, no retries, no logging-and-
swallowing. Failures are typed (see altermatch.exceptions) and propagate to
the caller, which owns caching, retry and timeout policy.
"""

from altermatch.scoring.evaluator import evaluate_compatibility
from altermatch.scoring.parser import SCORE_FIELDS, parse_compatibility
from altermatch.scoring.prompt import COMPATIBILITY_PROMPT, build_prompt

__all__ = [
    "COMPATIBILITY_PROMPT",
    "SCORE_FIELDS",
    "build_prompt",
    "evaluate_compatibility",
    "parse_compatibility",
]
