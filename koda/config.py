from datetime import UTC, datetime
from pathlib import Path

from pydantic_settings import BaseSettings


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime.

    Keeps datetimes naive so they compare cleanly with values read back
    from SQLite (which doesn't store tz info).
    """
    return datetime.now(UTC).replace(tzinfo=None)


class Settings(BaseSettings):
    app_name: str = "Koda"
    database_url: str = f"sqlite+aiosqlite:///{Path(__file__).resolve().parent.parent / 'data' / 'koda.db'}"
    api_base_url: str = "http://localhost:3000/api"
    api_timeout_seconds: float = 10.0
    api_max_retries: int = 3
    api_backoff_min_seconds: float = 0.5
    api_backoff_max_seconds: float = 8.0
    max_cards_per_session: int = 20
    default_session_type: str = "mixed"
    debug: bool = False

    model_config = {"env_prefix": "KODA_", "env_file": ".env"}


settings = Settings()
