"""Application configuration using Pydantic Settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "sqlite:///./data/goalwatch.db"

    # BetsAPI (b365api Soccer API)
    BETSAPI_TOKEN: str = ""
    BETSAPI_BASE_URL: str = "https://api.b365api.com"
    BETSAPI_TIMEOUT_SECONDS: float = 30.0
    BETSAPI_CACHE_TTL_SECONDS: float = 10.0  # Bounds upstream volume within one poll cycle

    # Telegram Bot API
    TELEGRAM_BOT_TOKEN: str = ""
    TELEGRAM_CHAT_ID: str = ""
    TELEGRAM_API_BASE: str = "https://api.telegram.org"

    # Leagues: "id,id,..." and per-league target goal lines "id:line,..."
    TARGET_LEAGUES: str = "23114,37298,38439,22614"
    LEAGUE_TARGET_LINES: str = "23114:2.5,37298:1.5,38439:3.5,22614:3.5"
    DEFAULT_TARGET_LINE: float = 1.5

    # Polling
    POLL_INTERVAL_SECONDS: int = 30
    POLL_SINGLE_FLIGHT: bool = True  # Next cycle waits for the previous one
    AUTO_START_TRACKER: bool = True

    # Rolling database: keep only the most recent matches
    MAX_TRACKED_MATCHES: int = 3200

    # Notification delivery
    NOTIFY_MAX_RETRIES: int = 3
    NOTIFY_RETRY_DELAY_SECONDS: float = 1.0  # Linear backoff unit (delay * retries)
    NOTIFY_PACING_SECONDS: float = 0.1  # Gateway rate limit spacing

    # Backfill
    BACKFILL_GOAL_LINE_LIMIT: int = 200
    BACKFILL_DELAY_SECONDS: float = 0.1

    # Ops
    JOB_RUNS_RETENTION_DAYS: int = 7
    METRICS_BEARER_TOKEN: str = ""  # Bearer token for /metrics (empty = open)

    # Sentry (optional)
    SENTRY_DSN: str = ""
    SENTRY_ENVIRONMENT: str = "development"
    SENTRY_TRACES_SAMPLE_RATE: float = 0.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def parse_league_ids(raw: str) -> list[int]:
    """Parse '23114,37298' -> [23114, 37298]. Non-numeric entries are skipped."""
    result = []
    for part in (raw or "").split(","):
        part = part.strip()
        if not part:
            continue
        try:
            result.append(int(part))
        except ValueError:
            continue
    return result


def parse_league_lines(raw: str) -> dict[int, float]:
    """Parse '23114:2.5,37298:1.5' -> {23114: 2.5, 37298: 1.5}."""
    if not raw:
        return {}
    result = {}
    for pair in raw.split(","):
        pair = pair.strip()
        if ":" not in pair:
            continue
        k, v = pair.split(":", 1)
        try:
            result[int(k.strip())] = float(v.strip())
        except (ValueError, TypeError):
            continue
    return result
