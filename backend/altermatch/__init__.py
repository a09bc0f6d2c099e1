"""
Alter Compatibility Backend — Package Initializer
==================================================

What: Marks the `altermatch` directory as a Python package.
Who:  Imported by uvicorn, Alembic, pytest and every module in the service.

Architecture Note:
    The backend is a thin layered service around one contract: turn two
    user profiles into a set of compatibility scores using an LLM.

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │   Services (caching, retry, batch)  │  ← CompatibilityService
    ├─────────────────────────────────────┤
    │   Scoring core (prompt → LLM →      │  ← pure, stateless
    │   validate)                         │
    ├─────────────────────────────────────┤
    │   LLM clients (Gemini, OpenRouter)  │  ← external boundary
    ├─────────────────────────────────────┤
    │   Models & Schemas / Database       │  ← SQLAlchemy + Pydantic
    └─────────────────────────────────────┘

    The scoring core never touches the database and never retries; caching
    and retry policy belong to the service layer that calls it.
"""

__version__ = "1.0.0"
