from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve .env from the project root so it loads regardless of cwd
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=(str(_ENV_FILE), ".env", "../.env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str
    db_pool_size: int = 5
    db_max_overflow: int = 10
    # Create tables on startup instead of running Alembic (tests, local dev)
    auto_create_tables: bool = False

    # JWT issued by the identity provider
    secret_key: str
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 15

    # CORS
    cors_origins: str = "http://localhost:3000"

    # Default working hours for shops without their own shop_hours rows
    business_start_hour: int = 9
    business_end_hour: int = 17  # exclusive, so the last appointment ends at 17:00
    business_days: str = "1,2,3,4,5"  # 0 = Sunday … 6 = Saturday

    # Calendar defaults for shops without calendar_settings
    slot_duration_minutes: int = 30
    buffer_time_minutes: int = 0
    reminder_hours_before: int = 24

    # Per-date appointment counts are cached in Redis per shop and dropped after every
    # committed mutation; leave REDIS_URL empty to disable the cache
    redis_url: str = ""
    counts_cache_ttl_seconds: int = 60

    # Per-subscriber queue size for the real-time appointment stream
    stream_queue_size: int = 100

    # Env
    env: str = "development"

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def business_days_set(self) -> set[int]:
        return {int(d) for d in self.business_days.split(",") if d.strip()}


settings = Settings()
