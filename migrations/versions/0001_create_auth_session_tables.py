"""create_auth_session_tables

Revision ID: 0001
Revises:
Create Date: 2026-10-18 09:00:00.000000

Create pending_auth_sessions (cross-device handshakes in flight) and
user_sessions (signed-in devices).
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "pending_auth_sessions",
        sa.Column("id", sa.String(length=21), nullable=False),
        sa.Column("session_token", sa.String(length=64), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("device_info", sa.String(length=1000), nullable=True),
        sa.Column("device_fingerprint", sa.String(length=255), nullable=True),
        sa.Column("is_authenticated", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("authenticated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_pending_auth_sessions_session_token",
        "pending_auth_sessions",
        ["session_token"],
        unique=True,
    )
    op.create_index("ix_pending_auth_sessions_email", "pending_auth_sessions", ["email"])
    op.create_index("ix_pending_auth_sessions_expires_at", "pending_auth_sessions", ["expires_at"])

    op.create_table(
        "user_sessions",
        sa.Column("id", sa.String(length=21), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column(
            "token_hash",
            sa.String(length=64),
            nullable=False,
            comment="SHA-256 of the access token",
        ),
        sa.Column("device_name", sa.String(length=100), nullable=True),
        sa.Column("device_type", sa.String(length=20), nullable=True),
        sa.Column("browser_name", sa.String(length=50), nullable=True),
        sa.Column("os_name", sa.String(length=50), nullable=True),
        sa.Column("user_agent", sa.String(length=1000), nullable=True),
        sa.Column("ip_address", sa.String(length=45), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_activity", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_user_sessions_email", "user_sessions", ["email"])
    op.create_index("ix_user_sessions_token_hash", "user_sessions", ["token_hash"], unique=True)


def downgrade() -> None:
    op.drop_index("ix_user_sessions_token_hash", table_name="user_sessions")
    op.drop_index("ix_user_sessions_email", table_name="user_sessions")
    op.drop_table("user_sessions")
    op.drop_index("ix_pending_auth_sessions_expires_at", table_name="pending_auth_sessions")
    op.drop_index("ix_pending_auth_sessions_email", table_name="pending_auth_sessions")
    op.drop_index("ix_pending_auth_sessions_session_token", table_name="pending_auth_sessions")
    op.drop_table("pending_auth_sessions")
