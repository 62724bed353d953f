"""Pydantic schemas for auth endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field


class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=100, description="Unique login name.")
    email: EmailStr = Field(..., description="Account email.")
    password: str = Field(..., min_length=1, description="Plaintext password, hashed server-side.")


class LoginRequest(BaseModel):
    username: str = Field(..., description="Login name.")
    password: str = Field(..., description="Plaintext password to verify.")


class AdminLoginRequest(BaseModel):
    password: str = Field(..., description="Operator password (SMARTWINDOW_ADMIN_PASSWORD).")


class TokenResponse(BaseModel):
    access_token: str = Field(..., description="Raw session token. Shown once, never stored.")
    token_type: str = Field("bearer", description="Always 'bearer'.")
    kind: str = Field(..., description="Ledger token type: 'access' or 'admin'.")
    expires_at: datetime = Field(..., description="Expiry instant recorded in the ledger.")
    user_id: str | None = Field(None, description="Owner, absent for admin credentials.")


class IdentityResponse(BaseModel):
    token_id: str = Field(..., description="Ledger row id of the presented token.")
    user_id: str | None = Field(None, description="Owner, absent for admin credentials.")
    username: str | None = Field(None, description="Owner's username when the owner exists.")
    kind: str = Field(..., description="Ledger token type.")
    expires_at: datetime = Field(..., description="Expiry instant.")


class RevokeRequest(BaseModel):
    token_hash: str = Field(..., description="SHA-256 hex of the token to revoke.")


class IssuedTokenSummary(BaseModel):
    id: str
    user_id: str | None
    token_hash: str
    kind: str
    issued_at: datetime
    expires_at: datetime
    revoked: bool
    last_used_at: datetime | None


class MessageResponse(BaseModel):
    message: str = Field(..., description="Human-readable response message.")


class ErrorResponse(BaseModel):
    """Standard error envelope for auth routes."""

    detail: str = Field(..., description="Error detail message.")
