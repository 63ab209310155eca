"""Application settings loaded from .env via pydantic-settings."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration — values come from environment / .env file."""

    # Spotify
    spotify_client_id: str = ""
    spotify_api_base: str = "https://api.spotify.com/v1"
    spotify_accounts_base: str = "https://accounts.spotify.com"

    # App
    base_url: str = "http://localhost:8000"
    log_level: str = "INFO"

    # Database (credential store)
    db_path: str = "./data/true_shuffle.db"

    # Tokens
    token_expiry_margin: int = 30  # seconds refreshed early

    # Bulk fetch
    page_size: int = 50
    fetch_concurrency: int = 5
    fetch_window_delay: float = 0.1
    fetch_max_retries: int = 0

    # Queue submission
    queue_max_size: int = 150
    queue_request_delay: float = 0.15
    queue_max_retries: int = 3
    queue_backoff_base: float = 1.0

    # Orchestration
    device_settle_delay: float = 1.5
    completion_banner_seconds: float = 2.0
    progress_buffer_size: int = 64
    # "Songs already queued" probe; off until the product decides on it.
    check_existing_queue: bool = False

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def redirect_uri(self) -> str:
        return f"{self.base_url}/callback"

    @property
    def db_abs_path(self) -> Path:
        """Return the database path as an absolute Path, creating parents if needed."""
        p = Path(self.db_path)
        p.parent.mkdir(parents=True, exist_ok=True)
        return p.resolve()


@lru_cache
def get_settings() -> Settings:
    """Cached singleton so .env is read only once."""
    return Settings()
