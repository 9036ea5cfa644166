from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str = "postgresql://citas:citas@db:5432/citas"
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # Comma-separated allowed origins, or "*" to allow all.
    # Example: "https://dashboard.example.com,https://api.example.com"
    CORS_ORIGINS: str = "*"

    # Reconciliation window: how far back an order may look for its appointment,
    # and how far past the period end appointments are fetched (timezone skew).
    LOOKBACK_DAYS: int = 90
    FORWARD_BUFFER_DAYS: int = 7

    # Read cache for pattern / insight queries.
    CACHE_TTL_SECONDS: int = 300
    CACHE_MAX_ENTRIES: int = 256

    @property
    def cors_origins_list(self) -> list[str]:
        if self.CORS_ORIGINS.strip() == "*":
            return ["*"]
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


settings = Settings()
