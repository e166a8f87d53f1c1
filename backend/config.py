from datetime import UTC, date, datetime
from pathlib import Path

from pydantic_settings import BaseSettings

_ROOT = Path(__file__).resolve().parent.parent


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime.

    Replaces the deprecated ``datetime.utcnow()`` while keeping datetimes
    naive so they stay compatible with SQLite (which doesn't store tz info).
    """
    return datetime.now(UTC).replace(tzinfo=None)


def today() -> date:
    """Return the current UTC calendar date used for review scheduling."""
    return utcnow().date()


class Settings(BaseSettings):
    app_name: str = "Vocab SRS"
    database_url: str = f"sqlite+aiosqlite:///{_ROOT / 'data' / 'vocab_srs.db'}"
    set_size: int = 20
    due_review_limit: int = 200
    client_cache_path: str = str(Path.home() / ".vocab_srs" / "session.json")
    client_cache_ttl_seconds: int = 86400  # 24 hours
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:3000"]
    log_level: str = "INFO"
    debug: bool = False

    model_config = {"env_prefix": "VOCAB_SRS_", "env_file": ".env"}


settings = Settings()
