"""
Alter Compatibility Backend — Pydantic Request/Response Schemas
================================================================

What:  Pydantic models defining the scoring contract and the API contract.
How:   FastAPI uses these models to validate request bodies, serialize
       responses, and generate the OpenAPI documentation.
Who:   The scoring core (CompatibilityResult), the service layer and routes.

Field naming:
    The overall score is called `global` on the wire, which is a Python
    keyword. Models expose it as `global_score` with the alias "global";
    FastAPI serializes by alias, so clients always see `global`.
"""

from datetime import datetime
from typing import Annotated, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ══════════════════════════════════════════════════════════════════════════
# Scoring contract
# ══════════════════════════════════════════════════════════════════════════


class CompatibilityRequest(BaseModel):
    """
    What:  Two profile text blocks to compare.
    Who:   Body of POST /api/compatibility/evaluate.

    Emptiness is checked by the prompt builder (ArgumentError → 400), not
    here, so an empty profile produces the same error as a direct call.
    """
    profile1: str = Field(description="Text representation of the first profile")
    profile2: str = Field(description="Text representation of the second profile")


class CompatibilityResult(BaseModel):
    """
    What:  Validated output of one compatibility analysis.
    Who:   Produced by parse_compatibility(); returned to every caller.

    Invariant: four integer scores in [0, 100] and a non-blank insight.
    The parser enforces this with typed errors before constructing the
    model; the Field constraints here are a second line of defence.
    """
    global_score: int = Field(alias="global", ge=0, le=100, description="Overall compatibility")
    love: int = Field(ge=0, le=100, description="Romantic relationship potential")
    friendship: int = Field(ge=0, le=100, description="Deep friendship potential")
    carnal: int = Field(ge=0, le=100, description="Physical and sensual affinity")
    insight: str = Field(min_length=1, description="One or two sentences explaining the match")

    model_config = ConfigDict(populate_by_name=True, frozen=True)


# ══════════════════════════════════════════════════════════════════════════
# Structured profiles
# ══════════════════════════════════════════════════════════════════════════


class ProfileAI(BaseModel):
    """
    What:  Free-text profile sections written by the onboarding assistant.
    Why:   These sections carry most of the signal the model scores on, and
           are the main input of the profile hash.
    """
    personality: Optional[str] = None
    intention: Optional[str] = None
    identity: Optional[str] = None
    friendship: Optional[str] = None
    love: Optional[str] = None
    sexuality: Optional[str] = None


class UserProfile(BaseModel):
    """
    What:  Stored user data needed to score compatibility.
    Who:   Sent by the calling backend in /calculate and /calculate/batch.
    """
    id: str = Field(min_length=1, max_length=64, description="User identifier")
    first_name: Optional[str] = Field(default=None, max_length=100)
    age: int = Field(ge=18, le=120)
    gender: str = Field(min_length=1, max_length=50)
    sexual_orientation: Optional[str] = Field(default=None, max_length=50)
    bio: Optional[str] = Field(default=None, max_length=2000)
    interests: List[str] = Field(default_factory=list)
    search_objectives: List[str] = Field(default_factory=list)
    profile_ai: Optional[ProfileAI] = None


class CalculateRequest(BaseModel):
    """Body of POST /api/compatibility/calculate."""
    user: UserProfile
    target: UserProfile
    embedding_score: Optional[float] = Field(
        default=None, ge=0.0, le=1.0,
        description="Vector similarity computed upstream, stored alongside the scores",
    )

    @field_validator("target")
    @classmethod
    def validate_distinct_users(cls, v: UserProfile, info) -> UserProfile:
        """A user cannot be scored against themselves."""
        user = info.data.get("user")
        if user is not None and user.id == v.id:
            raise ValueError("target must be a different user than user")
        return v


class BatchCalculateRequest(BaseModel):
    """Body of POST /api/compatibility/calculate/batch."""
    user: UserProfile
    targets: List[UserProfile] = Field(min_length=1, max_length=50)
    embedding_scores: Dict[str, Annotated[float, Field(ge=0.0, le=1.0)]] = Field(
        default_factory=dict,
        description="Optional embedding similarity per target id",
    )

    @field_validator("targets")
    @classmethod
    def validate_targets_exclude_user(cls, v: List[UserProfile], info) -> List[UserProfile]:
        user = info.data.get("user")
        if user is not None and any(target.id == user.id for target in v):
            raise ValueError("targets must not include user")
        return v


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class CompatibilityScores(CompatibilityResult):
    """
    What:  Scores for one (user, target) pair plus cache metadata.
    Who:   Returned by /calculate, /calculate/batch and the cache lookup.
    """
    user_id: str
    target_user_id: str
    embedding_score: Optional[float] = None
    cached: bool = Field(description="True when served from the compatibility cache")
    calculated_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class BatchCompatibilityResponse(BaseModel):
    """Scores keyed by target user id."""
    user_id: str
    results: Dict[str, CompatibilityScores]
    cache_hits: int
    calculated: int


class CacheStatsResponse(BaseModel):
    total_entries: int
    oldest_entry: Optional[datetime] = None
    newest_entry: Optional[datetime] = None


class CacheInvalidationResponse(BaseModel):
    user_id: str
    invalidated: int


class CacheCleanupResponse(BaseModel):
    removed: int


# ══════════════════════════════════════════════════════════════════════════
# Error / Health
# ══════════════════════════════════════════════════════════════════════════


class ErrorResponse(BaseModel):
    """
    What:  Standardized error response format for all API errors.

    Example:
        {
            "error": "out_of_range_score",
            "message": "Score 'love' must be an integer between 0 and 100, got 101",
            "details": {"field": "love", "value": "101"},
            "request_id": "a1b2c3d4"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """
    What:  Health check response showing service and dependency status.
    Who:   Returned by GET /health for monitoring and load balancer probes.
    """
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    llm_provider: str = Field(description="Configured LLM provider name")
    llm: str = Field(description="LLM status: available, unavailable, circuit_open")
    uptime_seconds: float = Field(description="Seconds since service started")
