from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_NAME: str = "AI Backend Hub Console"
    version: str = "0.1.0"
    DEBUG: bool = False
    APP_DATABASE_DSN: str = "sqlite:////tmp/aihub.db"

    # Bearer token for the admin API; empty disables the check
    ADMIN_API_TOKEN: str = ""

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Statistics
    STATS_LOOKBACK_DAYS: int = 90
    STATS_DEFAULT_RANGE_DAYS: int = 30
    STATS_TOP_APPS_LIMIT: int = 5
    STATS_TOP_PAYING_USERS_LIMIT: int = 10
    STATS_QUERY_TIMEOUT_MS: int = 5000  # PostgreSQL only, 0 disables

    @property
    def admin_auth_enabled(self) -> bool:
        return bool(self.ADMIN_API_TOKEN)


settings = Settings()
