"""
Alter Compatibility Backend — FastAPI Application Factory
==========================================================

What:  Creates and configures the FastAPI application instance.
How:   Factory pattern: create_app() returns a configured FastAPI instance.
Who:   Called by uvicorn (uvicorn altermatch.main:app) and by the tests.
When:  Once at server startup.

Application Architecture:
    ┌─────────────────────────────────────────────────────────┐
    │                      FastAPI App                        │
    │                                                         │
    │  Middleware:  Rate Limit → Request ID → Logging         │
    │                                                         │
    │  Routes:                                                │
    │  ┌───────────────────────────────┐ ┌─────────────────┐  │
    │  │ /api/compatibility/*          │ │ GET /health     │  │
    │  └───────────────────────────────┘ └─────────────────┘  │
    │                                                         │
    │  Exception Handlers:                                    │
    │  Argument→400  NotFound→404  RateLimit→429              │
    │  InvalidLLMResponse→502  Provider→503  Timeout→504      │
    │  Database→500                                           │
    └─────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging, configuration check
    Shutdown: close the LLM client, dispose the database engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from altermatch import __version__
from altermatch.config import settings
from altermatch.database import dispose_engine
from altermatch.exceptions import (
    AlterMatchError,
    ArgumentError,
    CircuitBreakerOpenError,
    DatabaseError,
    NotFoundError,
    ProviderError,
    ProviderTimeoutError,
    RateLimitExceededError,
    ResponseValidationError,
)
from altermatch.middleware.logging import RequestLoggingMiddleware
from altermatch.middleware.rate_limit import RateLimitMiddleware
from altermatch.middleware.request_id import RequestIDMiddleware, request_id_var
from altermatch.routes import compatibility, health

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure logging for the whole application.

    Format: 2024-01-15T12:00:00 [INFO] altermatch.services...: message
    Output goes to stdout, which Docker collects.
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Third-party libraries that log every operation
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("=" * 60)
    logger.info("Alter Compatibility Backend %s starting up...", __version__)
    logger.info("LLM provider: %s", settings.llm_provider)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Keep serving: /health reports the provider as unavailable
        logger.error("Configuration error: %s", str(e))
        logger.error("Fix the configuration and restart the server.")

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("Alter Compatibility Backend shutting down...")

    from altermatch.services.providers import get_llm_client
    if get_llm_client.cache_info().currsize:
        await get_llm_client().aclose()

    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_response(
    status_code: int,
    exc: AlterMatchError,
    message: Optional[str] = None,
    include_details: bool = True,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    content = {
        "error": exc.error_code,
        "message": message or exc.message,
        "request_id": request_id_var.get(""),
    }
    if include_details and exc.context:
        content["details"] = exc.context
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map application exceptions to HTTP responses.

    Handler hierarchy (most specific class wins):
        ArgumentError            → 400 Bad Request
        NotFoundError            → 404 Not Found
        RateLimitExceededError   → 429 Too Many Requests
        ResponseValidationError  → 502 Bad Gateway
        CircuitBreakerOpenError  → 503 Service Unavailable + Retry-After
        ProviderTimeoutError     → 504 Gateway Timeout
        ProviderError            → 503 Service Unavailable
        DatabaseError            → 500 (generic message, context logged only)
        AlterMatchError          → 500
        Exception                → 500 (stack trace logged only)
    """

    @app.exception_handler(ArgumentError)
    async def handle_argument_error(request: Request, exc: ArgumentError):
        logger.warning("[%s] Invalid argument: %s", request_id_var.get(""), exc.message)
        return _error_response(400, exc)

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return _error_response(404, exc, include_details=False)

    @app.exception_handler(RateLimitExceededError)
    async def handle_rate_limit(request: Request, exc: RateLimitExceededError):
        return _error_response(429, exc, headers={"Retry-After": str(exc.retry_after)})

    @app.exception_handler(ResponseValidationError)
    async def handle_invalid_llm_response(request: Request, exc: ResponseValidationError):
        """The model answered, but not with a usable analysis."""
        logger.error(
            "[%s] Invalid LLM response (%s): %s | Context: %s",
            request_id_var.get(""),
            exc.error_code,
            exc.message,
            exc.context,
        )
        return _error_response(502, exc)

    @app.exception_handler(CircuitBreakerOpenError)
    async def handle_circuit_breaker(request: Request, exc: CircuitBreakerOpenError):
        logger.warning("[%s] Circuit breaker open: %s", request_id_var.get(""), exc.message)
        return _error_response(
            503,
            exc,
            headers={"Retry-After": str(exc.recovery_time)},
        )

    @app.exception_handler(ProviderTimeoutError)
    async def handle_provider_timeout(request: Request, exc: ProviderTimeoutError):
        logger.error("[%s] LLM provider timeout: %s", request_id_var.get(""), exc.message)
        return _error_response(504, exc)

    @app.exception_handler(ProviderError)
    async def handle_provider_error(request: Request, exc: ProviderError):
        logger.error("[%s] LLM provider error: %s", request_id_var.get(""), exc.message)
        headers = {}
        if exc.retry_after:
            headers["Retry-After"] = str(exc.retry_after)
        return _error_response(503, exc, headers=headers)

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        logger.error(
            "[%s] Database error: %s | Context: %s",
            request_id_var.get(""),
            exc.message,
            exc.context,
        )
        return _error_response(
            500,
            exc,
            message="An internal error occurred. Please try again later.",
            include_details=False,
        )

    @app.exception_handler(AlterMatchError)
    async def handle_application_error(request: Request, exc: AlterMatchError):
        logger.error("[%s] Application error: %s", request_id_var.get(""), exc.message)
        return _error_response(500, exc, include_details=False)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred. Please try again or contact support.",
                "request_id": rid,
            },
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    """Assemble middleware, exception handlers and routes."""
    app = FastAPI(
        title="Alter Compatibility API",
        description=(
            "LLM-backed compatibility scoring for the Alter dating app. "
            "Scores a pair of profiles on global, love, friendship and carnal "
            "axes (0-100) with a short insight, and caches the results."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Register Middleware ───────────────────────────────────────────────
    # Executed in reverse order of addition:
    # RateLimit → RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(RateLimitMiddleware)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(compatibility.router)
    app.include_router(health.router)

    return app


# ── Application Instance ─────────────────────────────────────────────────
app = create_app()
