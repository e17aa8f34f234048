import os

from dotenv import load_dotenv
from pydantic import BaseModel

# Load .env if present
load_dotenv()


class Settings(BaseModel):
    timeout_seconds: float = 30.0
    type_timeout_seconds: float = 60.0
    session_timeout_minutes: int = 30
    session_cleanup_interval_seconds: float = 60.0
    max_pages: int = 1000
    items_per_page: int = 100
    retry_attempts: int = 2
    retry_backoff_base: float = 0.5
    log_level: str = "INFO"

    @property
    def session_timeout_seconds(self) -> float:
        return self.session_timeout_minutes * 60.0


def load_settings() -> Settings:
    return Settings(
        timeout_seconds=float(os.getenv("REST_BRIDGE_TIMEOUT_SECONDS", "30")),
        type_timeout_seconds=float(os.getenv("REST_BRIDGE_TYPE_TIMEOUT_SECONDS", "60")),
        session_timeout_minutes=int(os.getenv("REST_BRIDGE_SESSION_TIMEOUT_MINUTES", "30")),
        session_cleanup_interval_seconds=float(
            os.getenv("REST_BRIDGE_SESSION_CLEANUP_INTERVAL_SECONDS", "60")
        ),
        max_pages=int(os.getenv("REST_BRIDGE_MAX_PAGES", "1000")),
        items_per_page=int(os.getenv("REST_BRIDGE_ITEMS_PER_PAGE", "100")),
        retry_attempts=int(os.getenv("REST_BRIDGE_RETRY_ATTEMPTS", "2")),
        retry_backoff_base=float(os.getenv("REST_BRIDGE_RETRY_BACKOFF_BASE", "0.5")),
        log_level=os.getenv("REST_BRIDGE_LOG_LEVEL", "INFO"),
    )


settings = load_settings()
