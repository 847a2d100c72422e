"""wabridge process settings."""

import os
from pydantic_settings import BaseSettings
from pydantic import Field
from typing import Optional


class BridgeSettings(BaseSettings):
    """Settings loaded from environment variables or .env file."""

    # Telegram
    telegram_bot_token: Optional[str] = Field(default=None, description="Telegram bot token")
    telegram_chat_id: Optional[int] = Field(
        default=None,
        description="Control chat ID (seed only; /start claims it when unset)",
    )

    # WhatsApp (wacli)
    wacli_path: str = Field(default="wacli", description="wacli binary name or full path")
    wacli_db: Optional[str] = Field(default=None, description="wacli SQLite DB (default ~/.wacli/wacli.db)")
    wacli_session_db: Optional[str] = Field(
        default=None,
        description="whatsmeow session DB used to map @lid ids to phone numbers (default ~/.wacli/session.db)",
    )
    poll_interval: float = Field(default=2.0, description="Seconds between inbound DB polls")

    # Persisted operator config (control chat, auto-reply)
    config_file: str = Field(
        default="~/.wabridge/config.json",
        description="JSON file written by /start and /autoreply",
    )

    # Routing policy
    country_code: str = Field(default="62", description="Replaces a leading 0 in typed numbers")
    auto_reply_cooldown: float = Field(default=3600.0, description="Min seconds between auto-replies per sender")
    message_ttl: float = Field(default=24 * 60 * 60, description="Correlation id lifetime (seconds)")
    state_ttl: float = Field(default=10 * 60, description="Conversation state lifetime (seconds)")
    contacts_page_size: int = Field(default=8, ge=1, description="Contacts per picker page")
    recent_limit: int = Field(default=10, ge=1, description="Entries shown by /list")

    model_config = {"env_prefix": "WABRIDGE_", "env_file": ".env", "extra": "ignore"}

    @property
    def config_path(self) -> str:
        return os.path.expanduser(self.config_file)


def load_settings() -> BridgeSettings:
    """Load settings from environment."""
    settings = BridgeSettings()

    import logging
    logger = logging.getLogger("wabridge.config")
    if not settings.telegram_bot_token:
        logger.warning("WABRIDGE_TELEGRAM_BOT_TOKEN is not set — the bridge cannot reach Telegram.")

    return settings
