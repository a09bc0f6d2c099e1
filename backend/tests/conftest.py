"""
Alter Compatibility Backend — Test Configuration (conftest.py)
===============================================================

What:  Shared pytest fixtures for the entire test suite.
How:   pytest auto-discovers conftest.py and makes fixtures available to all tests.

Fixtures (function-scoped):
    ├── mock_db_session: AsyncSession stand-in (no real database needed)
    ├── stub_llm: deterministic LLMClient returning canned completions
    ├── alice / bob / carol: sample UserProfiles
    ├── make_cache_entry: factory for CompatibilityCache rows
    ├── service: CompatibilityService wired to stub_llm, no retry, short timeout
    └── test_client: HTTPX AsyncClient bound to the FastAPI app
"""

import asyncio
import json
import os
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Union
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient


# ══════════════════════════════════════════════════════════════════════════
# Environment Setup
# ══════════════════════════════════════════════════════════════════════════

# Must run before anything imports altermatch.config
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["LLM_PROVIDER"] = "gemini"
os.environ["GEMINI_API_KEY"] = "test-key-not-real"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["RATE_LIMIT_REQUESTS"] = "10000"

from altermatch.models.compatibility_cache import CompatibilityCache  # noqa: E402
from altermatch.schemas.compatibility import ProfileAI, UserProfile  # noqa: E402
from altermatch.services.compatibility_service import CompatibilityService  # noqa: E402
from altermatch.services.llm_base import LLMClient  # noqa: E402
from altermatch.services.profile_formatter import profile_hash  # noqa: E402
from altermatch.services.retry_policy import RetryPolicy  # noqa: E402


# ══════════════════════════════════════════════════════════════════════════
# Test Doubles
# ══════════════════════════════════════════════════════════════════════════

def valid_completion(
    global_score: int = 82,
    love: int = 78,
    friendship: int = 88,
    carnal: int = 70,
    insight: str = "You both love long hikes and value honesty 🌄",
) -> str:
    """Well-formed provider output."""
    return json.dumps(
        {
            "global": global_score,
            "love": love,
            "friendship": friendship,
            "carnal": carnal,
            "insight": insight,
        },
        ensure_ascii=False,
    )


class StubLLMClient(LLMClient):
    """
    Deterministic LLMClient.

    Each call pops the next scripted reply; the last one repeats. A reply
    that is an exception instance is raised instead of returned.
    """

    name = "stub"

    def __init__(
        self,
        replies: Optional[List[Union[str, Exception]]] = None,
        delay: float = 0.0,
    ):
        self.replies = list(replies or [valid_completion()])
        self.delay = delay
        self.prompts: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.healthy = True

    @property
    def calls(self) -> int:
        return len(self.prompts)

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
            if isinstance(reply, Exception):
                raise reply
            return reply
        finally:
            self.in_flight -= 1

    async def health_check(self) -> bool:
        return self.healthy


class _NestedTransaction:
    """Async context manager returned by the mocked session.begin_nested()."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


def db_result(scalar=None, scalars: Optional[list] = None, rowcount: int = 0, one=None):
    """Mimics the sqlalchemy Result shapes the service reads."""
    result = MagicMock()
    result.scalar_one_or_none.return_value = scalar
    result.scalars.return_value.all.return_value = scalars or []
    result.rowcount = rowcount
    result.one.return_value = one
    return result


# ══════════════════════════════════════════════════════════════════════════
# Function-Scoped Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def mock_db_session():
    """
    Provides a mock async database session.

    Usage:
        mock_db_session.execute.return_value = db_result(scalar=entry)
        mock_db_session.execute.side_effect = [db_result(), db_result(scalar=entry)]
    """
    session = AsyncMock()
    session.execute = AsyncMock(return_value=db_result())
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    session.begin_nested = MagicMock(side_effect=lambda: _NestedTransaction())
    return session


@pytest.fixture
def stub_llm():
    return StubLLMClient()


@pytest.fixture
def alice():
    return UserProfile(
        id="user-alice",
        first_name="Alice",
        age=29,
        gender="woman",
        sexual_orientation="heterosexual",
        bio="Climber and amateur baker.",
        interests=["climbing", "baking", "jazz"],
        search_objectives=["long-term relationship"],
        profile_ai=ProfileAI(
            personality="Curious, direct, warm",
            intention="Looking for a stable relationship",
            love="Values honesty and shared projects",
        ),
    )


@pytest.fixture
def bob():
    return UserProfile(
        id="user-bob",
        first_name="Bob",
        age=31,
        gender="man",
        sexual_orientation="heterosexual",
        bio="Hiker, reads too much science fiction.",
        interests=["hiking", "sci-fi", "jazz"],
        search_objectives=["long-term relationship", "friendship"],
        profile_ai=ProfileAI(
            personality="Calm, thoughtful",
            friendship="Loyal, likes deep conversations",
        ),
    )


@pytest.fixture
def carol():
    return UserProfile(id="user-carol", age=27, gender="woman")


@pytest.fixture
def make_cache_entry():
    """
    Factory for CompatibilityCache rows that match the given profiles.

    Usage:
        entry = make_cache_entry(alice, bob, score_global=64)
    """

    def _make(user: UserProfile, target: UserProfile, **overrides) -> CompatibilityCache:
        now = datetime.now(timezone.utc)
        values = dict(
            user_id=user.id,
            target_user_id=target.id,
            score_global=75,
            score_love=70,
            score_friendship=80,
            score_carnal=65,
            insight="Shared love of jazz and a calm pace of life 🎷",
            user_profile_hash=profile_hash(user),
            target_profile_hash=profile_hash(target),
            embedding_score=0.81,
            calculated_at=now - timedelta(days=1),
            expires_at=now + timedelta(days=29),
        )
        values.update(overrides)
        return CompatibilityCache(**values)

    return _make


@pytest.fixture
def service(stub_llm):
    return CompatibilityService(
        llm_client=stub_llm,
        retry_policy=RetryPolicy(max_attempts=1),
        timeout=5.0,
        batch_concurrency=5,
    )


@pytest_asyncio.fixture
async def test_client(service, mock_db_session):
    """
    HTTPX AsyncClient routed straight into the FastAPI app.

    The compatibility service and the DB session are overridden, so no
    provider or database is touched.
    """
    from altermatch.database import get_db_session
    from altermatch.main import app
    from altermatch.routes.compatibility import get_compatibility_service

    async def override_db_session():
        yield mock_db_session

    app.dependency_overrides[get_compatibility_service] = lambda: service
    app.dependency_overrides[get_db_session] = override_db_session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
