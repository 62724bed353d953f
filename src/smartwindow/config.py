"""Environment-driven configuration using pydantic-settings."""

from __future__ import annotations

import secrets
import warnings

from pydantic import PrivateAttr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration. Every field can be set via a ``SMARTWINDOW_`` env var."""

    model_config = SettingsConfigDict(
        env_prefix="SMARTWINDOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- environment ---
    env: str = "development"
    log_level: str = "INFO"

    # --- database ---
    database_url: str = "sqlite:///./smartwindow.db"
    auto_upgrade: bool = False

    # --- auth / JWT ---
    auth_signing_key: str = ""
    auth_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24
    admin_token_expire_minutes: int = 60
    admin_password: str = ""

    # --- relay ---
    require_observer_token: bool = False
    outbox_size: int = 64

    # --- external collaborators ---
    telegram_token: str = ""
    telegram_chat_id: str = ""
    firebase_db_url: str = ""
    firebase_auth: str = ""
    collaborator_timeout_seconds: float = 5.0
    side_effect_queue_size: int = 256
    side_effect_workers: int = 2

    _ephemeral_key: str | None = PrivateAttr(default=None)

    def effective_signing_key(self) -> str:
        """Return signing key, generating an ephemeral one in dev mode.

        The ephemeral key is generated once per ``Settings`` instance so tokens
        issued by the running process keep verifying.
        """
        if self.auth_signing_key:
            return self.auth_signing_key
        if self.env == "production":
            raise RuntimeError("SMARTWINDOW_AUTH_SIGNING_KEY must be set in production mode.")
        if self._ephemeral_key is None:
            warnings.warn(
                "Using an ephemeral JWT signing key. "
                "Set SMARTWINDOW_AUTH_SIGNING_KEY for production.",
                UserWarning,
                stacklevel=2,
            )
            self._ephemeral_key = secrets.token_urlsafe(32)
        return self._ephemeral_key

    @property
    def telegram_enabled(self) -> bool:
        return bool(self.telegram_token and self.telegram_chat_id)

    @property
    def firebase_enabled(self) -> bool:
        return bool(self.firebase_db_url)
