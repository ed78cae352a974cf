"""Runtime settings for twitchdesk.

Values come from ``TWITCHDESK_*`` environment variables or a ``.env`` file.
An empty client id falls back to the bare ``TWITCH_CLIENT_ID`` variable the
desktop shell has always exported.
"""

from __future__ import annotations

import os
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SCOPES = [
    "chat:read",
    "chat:write",
    "moderator:manage:chat_messages",
    "user:read:moderated_channels",
    "channel:read:vips",
    "channel:read:editors",
]


class Settings(BaseSettings):
    """twitchdesk configuration."""

    model_config = SettingsConfigDict(
        env_prefix="TWITCHDESK_",
        env_file=".env",
        extra="ignore",
    )

    # OAuth client
    twitch_client_id: str = Field(default="", validate_default=True)
    scopes: list[str] = Field(default_factory=lambda: list(DEFAULT_SCOPES))

    # Loopback redirect receiver
    redirect_host: str = "127.0.0.1"
    redirect_port: int = Field(default=18200, ge=1, le=65535)
    redirect_path: str = "/callback"
    login_timeout: float = Field(default=300.0, gt=0)

    # Provider endpoints
    authorize_url: str = "https://id.twitch.tv/oauth2/authorize"
    token_url: str = "https://id.twitch.tv/oauth2/token"
    validate_url: str = "https://id.twitch.tv/oauth2/validate"
    fallback_login_url: str = "https://www.twitch.tv/login"
    http_timeout: float = Field(default=15.0, gt=0)

    # Chat
    chat_url: str = "wss://irc-ws.chat.twitch.tv:443"

    log_level: str = "INFO"

    @field_validator("twitch_client_id")
    @classmethod
    def _legacy_client_id(cls, value: str) -> str:
        value = value.strip()
        if not value:
            value = os.environ.get("TWITCH_CLIENT_ID", "").strip()
        return value

    @property
    def redirect_uri(self) -> str:
        return f"http://{self.redirect_host}:{self.redirect_port}{self.redirect_path}"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings, loaded once."""
    return Settings()
