"""Credential Store SQLAlchemy models.

``User`` holds password-auth accounts.  ``IssuedToken`` is the Token Ledger:
one row per credential ever handed out, keyed by the SHA-256 of the raw
token (the raw token itself is never stored).
"""

from __future__ import annotations

import enum
from datetime import UTC, datetime

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from smartwindow.db.base import Base
from smartwindow.ids import new_token_id, new_user_id


def _utcnow() -> datetime:
    return datetime.now(UTC)


class TokenType(str, enum.Enum):
    ACCESS = "access"
    ADMIN = "admin"


# ---------------------------------------------------------------------------
# User
# ---------------------------------------------------------------------------


class User(Base):
    __tablename__ = "smartwindow_users"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_user_id)
    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )


# ---------------------------------------------------------------------------
# IssuedToken  (Token Ledger)
# ---------------------------------------------------------------------------


class IssuedToken(Base):
    __tablename__ = "smartwindow_user_tokens"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_token_id)
    # NULL owner denotes an administrative credential.
    user_id: Mapped[str | None] = mapped_column(
        String(32),
        ForeignKey("smartwindow_users.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    jti: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    token_type: Mapped[TokenType] = mapped_column(
        Enum(
            TokenType,
            native_enum=False,
            length=20,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=TokenType.ACCESS,
    )
    issued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (Index("ix_smartwindow_user_tokens_expires_at", "expires_at"),)

    @property
    def is_admin(self) -> bool:
        return self.token_type is TokenType.ADMIN
