from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str = "postgresql://leaderboard:leaderboard@db:5432/leaderboard"
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # Bearer token required by prize pool administration endpoints.
    ADMIN_API_KEY: str = "changeme-admin-key"

    # Comma-separated allowed origins, or "*" to allow all.
    CORS_ORIGINS: str = "*"

    # Replay validation
    VERIFICATION_THRESHOLD: int = 10
    NETWORK_BUFFER_MS: int = 5_000
    MIN_GUESS_INTERVAL_MS: int = 100
    REPRIEVE_GRACE_MS: int = 120_000

    # Overtake detection
    OVERTAKE_LIMIT: int = 10
    OVERTAKE_SEARCH_WINDOW: int = 100

    # Identity resolution
    IDENTITY_SERVICE_URL: str | None = None
    IDENTITY_CACHE_TTL_SECONDS: int = 900
    IDENTITY_CACHE_MAX_SIZE: int = 1000
    IDENTITY_BATCH_SIZE: int = 5
    IDENTITY_TIMEOUT_SECONDS: float = 2.0

    # Anonymous players are never ranked.
    GUEST_PREFIX: str = "guest_"

    WEEKLY_RETENTION_DAYS: int = 8
    PRIZE_SNAPSHOT_LIMIT: int = 100

    @property
    def cors_origins_list(self) -> list[str]:
        if self.CORS_ORIGINS.strip() == "*":
            return ["*"]
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


settings = Settings()
