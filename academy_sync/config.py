from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be configured via .env file or environment variables.
    """

    # Document store
    DATABASE_URL: str = "sqlite+aiosqlite:///./academy.db"
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    STORE_TIMEOUT_SECONDS: float = 10.0
    STORE_WRITE_ATTEMPTS: int = 8

    # Cascade updates
    CASCADE_MAX_CONCURRENCY: int = 4
    DISABLED_COLLECTIONS: str = ""

    # Application
    APP_NAME: str = "Academy Sync API"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

    @property
    def disabled_collections_list(self) -> list[str]:
        """Parse DISABLED_COLLECTIONS from comma-separated string"""
        if not self.DISABLED_COLLECTIONS:
            return []
        return [name.strip() for name in self.DISABLED_COLLECTIONS.split(",") if name.strip()]


# Global settings instance
settings = Settings()
