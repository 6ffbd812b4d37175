"""Create ai_analysis_cache table.

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "ai_analysis_cache",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("owner_id", sa.String(128), nullable=False),
        sa.Column("analysis_type", sa.String(64), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("source_hash", sa.String(32), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("access_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_accessed_at", sa.DateTime(), nullable=True),
        sa.CheckConstraint("expires_at > created_at", name="ck_ai_cache_expiry_after_creation"),
    )
    op.create_unique_constraint(
        "uq_ai_cache_owner_type",
        "ai_analysis_cache",
        ["owner_id", "analysis_type"],
    )
    op.create_index("ix_ai_cache_expires", "ai_analysis_cache", ["expires_at"])
    op.create_index("ix_ai_cache_owner", "ai_analysis_cache", ["owner_id"])


def downgrade() -> None:
    op.drop_table("ai_analysis_cache")
