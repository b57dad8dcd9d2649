from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str = "postgresql://levelup:levelup@db:5432/levelup"
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # Comma-separated allowed origins, or "*" to allow all.
    # Example: "https://myapp.com,https://api.myapp.com"
    CORS_ORIGINS: str = "*"

    # Size of the recent-ledger window kept in each client snapshot.
    RECENT_EVENTS_LIMIT: int = 50

    # Extra attempts for inserting unlocked achievements before giving up.
    ACHIEVEMENT_INSERT_RETRIES: int = 1

    # Per-worker memory bounds: cached subject snapshots, and the number of
    # locks subjects are hashed onto.
    SNAPSHOT_CACHE_SIZE: int = 10_000
    SUBJECT_LOCK_STRIPES: int = 256

    @property
    def cors_origins_list(self) -> list[str]:
        if self.CORS_ORIGINS.strip() == "*":
            return ["*"]
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


settings = Settings()
