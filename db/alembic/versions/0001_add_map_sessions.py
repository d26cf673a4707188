"""add map_sessions table

Revision ID: 0001_add_map_sessions
Revises:
Create Date: 2026-10-18 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_add_map_sessions"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "map_sessions",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("chat_id", sa.String(length=160), nullable=False, unique=True),
        sa.Column("collection_json", postgresql.JSONB),
        sa.Column("settings_json", postgresql.JSONB),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )


def downgrade() -> None:
    op.drop_table("map_sessions")
