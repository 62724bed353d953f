"""Initial smartwindow schema: accounts and the token ledger.

Revision ID: 0001
Revises: None
Create Date: 2026-01-01 00:00:00.000000
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "smartwindow_users",
        sa.Column("id", sa.String(32), nullable=False),
        sa.Column("username", sa.String(100), nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("password_hash", sa.Text, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_smartwindow_users"),
    )
    op.create_index("ix_smartwindow_users_username", "smartwindow_users", ["username"], unique=True)
    op.create_index("ix_smartwindow_users_email", "smartwindow_users", ["email"], unique=True)

    op.create_table(
        "smartwindow_user_tokens",
        sa.Column("id", sa.String(32), nullable=False),
        sa.Column("user_id", sa.String(32), nullable=True),
        sa.Column("jti", sa.String(64), nullable=False),
        sa.Column("token_hash", sa.String(64), nullable=False),
        sa.Column("token_type", sa.String(20), nullable=False),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("revoked", sa.Boolean, nullable=False),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("user_agent", sa.Text, nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_smartwindow_user_tokens"),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["smartwindow_users.id"],
            name="fk_smartwindow_user_tokens_user_id_smartwindow_users",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("jti", name="uq_smartwindow_user_tokens_jti"),
        sa.UniqueConstraint("token_hash", name="uq_smartwindow_user_tokens_token_hash"),
    )
    op.create_index("ix_smartwindow_user_tokens_user_id", "smartwindow_user_tokens", ["user_id"])
    op.create_index("ix_smartwindow_user_tokens_revoked", "smartwindow_user_tokens", ["revoked"])
    op.create_index(
        "ix_smartwindow_user_tokens_expires_at", "smartwindow_user_tokens", ["expires_at"]
    )


def downgrade() -> None:
    op.drop_table("smartwindow_user_tokens")
    op.drop_table("smartwindow_users")
