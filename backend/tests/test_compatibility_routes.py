"""
Alter Compatibility Backend — API Route Tests
==============================================

What:  HTTP-level tests through the real FastAPI app (middleware, exception
       handlers, serialization) with the provider and database replaced.

What we test:
    ✅ Wire format uses "global", not the Python attribute name
    ✅ Each error family maps to its status code and error code
    ✅ Cache management endpoints
    ✅ X-Request-ID propagation, rate limiting, /health
"""

from unittest.mock import patch

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from altermatch.exceptions import (
    CircuitBreakerOpenError,
    ProviderError,
    ProviderTimeoutError,
)
from altermatch.middleware.rate_limit import RateLimitMiddleware

from conftest import StubLLMClient, db_result, valid_completion


def pair_body(alice, bob, **extra):
    body = {"user": alice.model_dump(), "target": bob.model_dump()}
    body.update(extra)
    return body


class TestEvaluateEndpoint:

    @pytest.mark.asyncio
    async def test_returns_scores_with_wire_names(self, test_client):
        response = await test_client.post(
            "/api/compatibility/evaluate",
            json={"profile1": "Alice, 29, climber", "profile2": "Bob, 31, hiker"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data == {
            "global": 82,
            "love": 78,
            "friendship": 88,
            "carnal": 70,
            "insight": "You both love long hikes and value honesty 🌄",
        }

    @pytest.mark.asyncio
    async def test_blank_profile_is_400(self, test_client, stub_llm):
        response = await test_client.post(
            "/api/compatibility/evaluate",
            json={"profile1": "   ", "profile2": "Bob"},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_argument"
        assert response.json()["details"]["argument"] == "profile1"
        assert stub_llm.calls == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "reply, error_code",
        [
            ("```json\n{}\n```", "malformed_response"),
            (valid_completion(friendship=101), "out_of_range_score"),
            (valid_completion(insight=""), "empty_insight"),
        ],
    )
    async def test_invalid_model_output_is_502(self, test_client, service, reply, error_code):
        service._llm_client = StubLLMClient([reply])

        response = await test_client.post(
            "/api/compatibility/evaluate",
            json={"profile1": "Alice", "profile2": "Bob"},
        )

        assert response.status_code == 502
        assert response.json()["error"] == error_code

    @pytest.mark.asyncio
    async def test_out_of_range_reports_field(self, test_client, service):
        service._llm_client = StubLLMClient([valid_completion(carnal=-3)])

        response = await test_client.post(
            "/api/compatibility/evaluate",
            json={"profile1": "Alice", "profile2": "Bob"},
        )

        assert response.json()["details"]["field"] == "carnal"

    @pytest.mark.asyncio
    async def test_provider_timeout_is_504(self, test_client, service):
        service._llm_client = StubLLMClient([ProviderTimeoutError(timeout=30)])

        response = await test_client.post(
            "/api/compatibility/evaluate",
            json={"profile1": "Alice", "profile2": "Bob"},
        )

        assert response.status_code == 504
        assert response.json()["error"] == "llm_provider_timeout"

    @pytest.mark.asyncio
    async def test_open_circuit_is_503_with_retry_after(self, test_client, service):
        service._llm_client = StubLLMClient([CircuitBreakerOpenError(recovery_time=30)])

        response = await test_client.post(
            "/api/compatibility/evaluate",
            json={"profile1": "Alice", "profile2": "Bob"},
        )

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "30"
        assert response.json()["error"] == "service_unavailable"

    @pytest.mark.asyncio
    async def test_provider_error_is_503(self, test_client, service):
        service._llm_client = StubLLMClient([ProviderError(message="no credits", status_code=402)])

        response = await test_client.post(
            "/api/compatibility/evaluate",
            json={"profile1": "Alice", "profile2": "Bob"},
        )

        assert response.status_code == 503
        assert response.json()["error"] == "llm_provider_error"
        assert response.json()["details"]["status_code"] == 402

    @pytest.mark.asyncio
    async def test_missing_field_is_422(self, test_client):
        response = await test_client.post("/api/compatibility/evaluate", json={"profile1": "Alice"})
        assert response.status_code == 422


class TestCalculateEndpoints:

    @pytest.mark.asyncio
    async def test_calculate_miss(self, test_client, alice, bob):
        response = await test_client.post(
            "/api/compatibility/calculate", json=pair_body(alice, bob, embedding_score=0.7)
        )

        assert response.status_code == 200
        data = response.json()
        assert data["cached"] is False
        assert data["global"] == 82
        assert data["user_id"] == alice.id
        assert data["target_user_id"] == bob.id
        assert data["embedding_score"] == 0.7

    @pytest.mark.asyncio
    async def test_calculate_hit(self, test_client, stub_llm, mock_db_session, alice, bob, make_cache_entry):
        mock_db_session.execute.return_value = db_result(scalar=make_cache_entry(alice, bob))

        response = await test_client.post("/api/compatibility/calculate", json=pair_body(alice, bob))

        assert response.json()["cached"] is True
        assert stub_llm.calls == 0

    @pytest.mark.asyncio
    async def test_calculate_same_user_is_422(self, test_client, alice):
        response = await test_client.post("/api/compatibility/calculate", json=pair_body(alice, alice))
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_batch(self, test_client, alice, bob, carol):
        response = await test_client.post(
            "/api/compatibility/calculate/batch",
            json={"user": alice.model_dump(), "targets": [bob.model_dump(), carol.model_dump()]},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["calculated"] == 2
        assert data["cache_hits"] == 0
        assert set(data["results"]) == {bob.id, carol.id}
        assert data["results"][carol.id]["global"] == 82

    @pytest.mark.asyncio
    async def test_batch_same_user_is_422(self, test_client, stub_llm, alice, bob):
        response = await test_client.post(
            "/api/compatibility/calculate/batch",
            json={"user": alice.model_dump(), "targets": [bob.model_dump(), alice.model_dump()]},
        )

        assert response.status_code == 422
        assert stub_llm.calls == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("embedding", [-0.1, 1.5])
    async def test_batch_embedding_score_bounded(self, test_client, stub_llm, alice, bob, embedding):
        response = await test_client.post(
            "/api/compatibility/calculate/batch",
            json={
                "user": alice.model_dump(),
                "targets": [bob.model_dump()],
                "embedding_scores": {bob.id: embedding},
            },
        )

        assert response.status_code == 422
        assert stub_llm.calls == 0

    @pytest.mark.asyncio
    async def test_batch_requires_targets(self, test_client, alice):
        response = await test_client.post(
            "/api/compatibility/calculate/batch",
            json={"user": alice.model_dump(), "targets": []},
        )
        assert response.status_code == 422


class TestCacheEndpoints:

    @pytest.mark.asyncio
    async def test_get_cached_scores(self, test_client, mock_db_session, alice, bob, make_cache_entry):
        mock_db_session.execute.return_value = db_result(scalar=make_cache_entry(alice, bob))

        response = await test_client.get(f"/api/compatibility/cache/{alice.id}/{bob.id}")

        assert response.status_code == 200
        assert response.json()["cached"] is True
        assert response.json()["global"] == 75

    @pytest.mark.asyncio
    async def test_get_cached_scores_not_found(self, test_client):
        response = await test_client.get("/api/compatibility/cache/u1/u2")

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    @pytest.mark.asyncio
    async def test_invalidate_user(self, test_client, mock_db_session):
        mock_db_session.execute.return_value = db_result(rowcount=5)

        response = await test_client.delete("/api/compatibility/cache/users/user-alice")

        assert response.status_code == 200
        assert response.json() == {"user_id": "user-alice", "invalidated": 5}

    @pytest.mark.asyncio
    async def test_stats(self, test_client, mock_db_session):
        mock_db_session.execute.return_value = db_result(one=(0, None, None))

        response = await test_client.get("/api/compatibility/cache/stats")

        assert response.status_code == 200
        assert response.json()["total_entries"] == 0

    @pytest.mark.asyncio
    async def test_cleanup(self, test_client, mock_db_session):
        mock_db_session.execute.return_value = db_result(rowcount=2)

        response = await test_client.post("/api/compatibility/cache/cleanup")

        assert response.json() == {"removed": 2}


class TestCrossCutting:

    @pytest.mark.asyncio
    async def test_request_id_echoed(self, test_client):
        response = await test_client.post(
            "/api/compatibility/evaluate",
            json={"profile1": "Alice", "profile2": "Bob"},
            headers={"X-Request-ID": "trace-123"},
        )
        assert response.headers["X-Request-ID"] == "trace-123"

    @pytest.mark.asyncio
    async def test_request_id_in_error_body(self, test_client):
        response = await test_client.get(
            "/api/compatibility/cache/u1/u2", headers={"X-Request-ID": "trace-404"}
        )
        assert response.json()["request_id"] == "trace-404"

    @pytest.mark.asyncio
    async def test_health_reports_provider(self, test_client):
        with patch("altermatch.services.providers.get_llm_client", return_value=StubLLMClient()):
            response = await test_client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["llm_provider"] == "gemini"
        assert data["llm"] == "available"
        assert data["database"] == "connected"
        assert data["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_health_degraded_when_llm_down(self, test_client):
        client = StubLLMClient()
        client.healthy = False
        with patch("altermatch.services.providers.get_llm_client", return_value=client):
            response = await test_client.get("/health")

        assert response.json()["llm"] == "unavailable"
        assert response.json()["status"] == "degraded"

    @pytest.mark.asyncio
    async def test_rate_limit(self):
        app = FastAPI()
        app.add_middleware(RateLimitMiddleware, max_requests=2, window_seconds=60)

        @app.get("/ping")
        async def ping():
            return {"ok": True}

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            assert (await client.get("/ping")).status_code == 200
            assert (await client.get("/ping")).status_code == 200
            response = await client.get("/ping")

        assert response.status_code == 429
        assert int(response.headers["Retry-After"]) >= 1
        assert response.json()["error"] == "rate_limit_exceeded"
