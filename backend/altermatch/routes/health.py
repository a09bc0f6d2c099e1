"""
Alter Compatibility Backend — Health Check Route
=================================================

What:  Health check endpoint for monitoring and load balancer probes.
How:   Checks the database and the configured LLM provider.
Who:   Docker health checks, load balancers, monitoring.

Status levels:
    - healthy:   database and LLM reachable
    - degraded:  LLM unavailable or its circuit is open (cached reads still work)
    - unhealthy: database unreachable
"""

import logging
import time

from fastapi import APIRouter
from sqlalchemy import text

from altermatch import __version__
from altermatch.config import settings
from altermatch.schemas.compatibility import HealthResponse
from altermatch.services.circuit_breaker import CircuitBreaker

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check() -> HealthResponse:
    """
    Check the health of the service and its dependencies.

    Database: SELECT 1
    LLM: circuit breaker state first, then the provider's cheap
         health_check() (model listing, no completion quota used)
    """
    db_status = "connected"
    llm_status = "available"
    overall = "healthy"

    # ── Check Database ────────────────────────────────────────────────────
    try:
        from altermatch.database import engine
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    # ── Check LLM Provider ────────────────────────────────────────────────
    try:
        from altermatch.services.providers import get_llm_client
        client = get_llm_client()
        breaker = getattr(client, "circuit_breaker", None)
        if breaker is not None and breaker.state == CircuitBreaker.OPEN:
            llm_status = "circuit_open"
        elif not await client.health_check():
            llm_status = "unavailable"
    except Exception as e:
        llm_status = "unavailable"
        logger.warning("Health check: LLM provider unreachable: %s", str(e))

    if llm_status != "available" and overall == "healthy":
        overall = "degraded"

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        llm_provider=settings.llm_provider,
        llm=llm_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
