"""Application configuration via environment variables."""
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or .env file."""
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Application
    app_name: str = "Agenda"
    debug: bool = False
    log_dir: Path = Path.home() / ".logs" / "agenda"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    allowed_origins: str = "*"  # Comma-separated origins, or "*" for all

    # Database
    database_url: str = "sqlite:///./agenda.db"

    # Calendars
    default_calendar_name: str = "Personal"
    default_calendar_color: str = "#3b82f6"

    # ICS import
    import_max_events: int = 1000
    import_timezone: str = ""  # IANA name for floating times; empty = server local

    # Reminders
    reminder_window_default: int = 240
    reminder_grace_minutes: int = 5
    reminder_lookback_hours: int = 24
    reminder_lookahead_days: int = 30
    reminder_candidate_limit: int = 300

    # Server-side reminder poller (off: in-app clients fire their own reminders)
    reminder_dispatch_enabled: bool = False
    reminder_poll_seconds: int = 30


settings = Settings()
