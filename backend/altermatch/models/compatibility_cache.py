"""
Alter Compatibility Backend — Compatibility Cache SQLAlchemy Model
===================================================================

What:  ORM model for the `compatibility_cache` table.
Who:   CompatibilityService for lookups and writes; Alembic for migrations.

A row stores the scores for one ordered (user, target) pair together with
the profile hashes they were computed from. A row is valid only while both
hashes still match the current profiles and expires_at has not passed.

Indexes:
    uq_compatibility_cache_pair (user_id, target_user_id) UNIQUE
        → one row per ordered pair; writes update it in place
    idx_compatibility_cache_user_global (user_id, score_global)
        → "best matches for this user" listings
    idx_compatibility_cache_user_hashes (user_id, user_profile_hash, target_profile_hash)
        → batch cache lookups
    idx_compatibility_cache_expires_at (expires_at) WHERE expires_at IS NOT NULL
        → expired-row cleanup
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID, TIMESTAMP

from altermatch.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CompatibilityCache(Base):
    """Cached compatibility scores between two users."""

    __tablename__ = "compatibility_cache"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )

    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    target_user_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # ── Scores ────────────────────────────────────────────────────────────
    score_global: Mapped[int] = mapped_column(Integer, nullable=False)
    score_love: Mapped[int] = mapped_column(Integer, nullable=False)
    score_friendship: Mapped[int] = mapped_column(Integer, nullable=False)
    score_carnal: Mapped[int] = mapped_column(Integer, nullable=False)
    insight: Mapped[str] = mapped_column(Text, nullable=False)

    # ── Validity keys ─────────────────────────────────────────────────────
    # SHA-256 hex digests from services.profile_formatter.profile_hash
    user_profile_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    target_profile_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    # Embedding similarity supplied by the caller, kept for reference only
    embedding_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # ── Timestamps ────────────────────────────────────────────────────────
    calculated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    expires_at: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        UniqueConstraint("user_id", "target_user_id", name="uq_compatibility_cache_pair"),
        Index("idx_compatibility_cache_user_global", "user_id", "score_global"),
        Index(
            "idx_compatibility_cache_user_hashes",
            "user_id",
            "user_profile_hash",
            "target_profile_hash",
        ),
        Index(
            "idx_compatibility_cache_expires_at",
            "expires_at",
            postgresql_where=text("expires_at IS NOT NULL"),
        ),
        CheckConstraint(
            "score_global BETWEEN 0 AND 100 AND score_love BETWEEN 0 AND 100 "
            "AND score_friendship BETWEEN 0 AND 100 AND score_carnal BETWEEN 0 AND 100",
            name="ck_compatibility_cache_scores_range",
        ),
    )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        now = now or _utcnow()
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return now >= expires_at

    def __repr__(self) -> str:
        return (
            f"<CompatibilityCache(user_id='{self.user_id}', "
            f"target_user_id='{self.target_user_id}', global={self.score_global})>"
        )
