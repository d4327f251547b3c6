"""Configuration via pydantic-settings with .env support."""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class MailPollerSettings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(
        env_prefix="MAIL_POLLER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Account store
    database_path: Path = Path("data/mail_poller.db")

    # Scheduling
    watchdog_delay_seconds: int = 10 * 60
    force_one_minute_refresh: bool = False
    polled_protocols: set[str] = {"imap", "pop3"}
    background_data_enabled: bool = True

    # Logging
    log_level: str = "INFO"

    @property
    def watchdog_delay_ms(self) -> int:
        return self.watchdog_delay_seconds * 1000

    def ensure_directories(self) -> None:
        """Create the data directory if it doesn't exist."""
        self.database_path.parent.mkdir(parents=True, exist_ok=True)
