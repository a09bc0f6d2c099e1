"""Create compatibility_cache table

Revision ID: 001
Revises: None
Create Date: 2026-10-18 00:00:00.000000+00:00

What:  Table holding LLM compatibility scores per ordered (user, target)
       pair, keyed for validity by both profile hashes.

Rollback: downgrade() drops the table. Scores are recomputable, so nothing
is lost beyond LLM spend.
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "compatibility_cache",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("target_user_id", sa.String(64), nullable=False),

        sa.Column("score_global", sa.Integer(), nullable=False),
        sa.Column("score_love", sa.Integer(), nullable=False),
        sa.Column("score_friendship", sa.Integer(), nullable=False),
        sa.Column("score_carnal", sa.Integer(), nullable=False),
        sa.Column("insight", sa.Text(), nullable=False),

        sa.Column(
            "user_profile_hash",
            sa.String(64),
            nullable=False,
            comment="SHA-256 of the user's scoring-relevant profile fields",
        ),
        sa.Column(
            "target_profile_hash",
            sa.String(64),
            nullable=False,
            comment="SHA-256 of the target's scoring-relevant profile fields",
        ),
        sa.Column("embedding_score", sa.Float(), nullable=True),

        sa.Column(
            "calculated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column("expires_at", sa.TIMESTAMP(timezone=True), nullable=True),

        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "target_user_id", name="uq_compatibility_cache_pair"),
        sa.CheckConstraint(
            "score_global BETWEEN 0 AND 100 AND score_love BETWEEN 0 AND 100 "
            "AND score_friendship BETWEEN 0 AND 100 AND score_carnal BETWEEN 0 AND 100",
            name="ck_compatibility_cache_scores_range",
        ),
    )

    op.create_index(
        "idx_compatibility_cache_user_global",
        "compatibility_cache",
        ["user_id", sa.text("score_global DESC")],
    )
    op.create_index(
        "idx_compatibility_cache_user_hashes",
        "compatibility_cache",
        ["user_id", "user_profile_hash", "target_profile_hash"],
    )
    # Partial index: cleanup only ever scans rows that can expire
    op.create_index(
        "idx_compatibility_cache_expires_at",
        "compatibility_cache",
        ["expires_at"],
        postgresql_where=sa.text("expires_at IS NOT NULL"),
    )


def downgrade() -> None:
    op.drop_index("idx_compatibility_cache_expires_at", table_name="compatibility_cache")
    op.drop_index("idx_compatibility_cache_user_hashes", table_name="compatibility_cache")
    op.drop_index("idx_compatibility_cache_user_global", table_name="compatibility_cache")
    op.drop_table("compatibility_cache")
