"""Configuration settings for the Gigboard backend."""

from functools import lru_cache

from pydantic_settings import BaseSettings

from gigboard.config import DEFAULT_FRONT_PAGE_SIZE, DEFAULT_ROTATION_HOURS, FeedConfig


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Supabase
    supabase_url: str
    supabase_secret_key: str | None = None  # Backend/admin access
    supabase_publishable_key: str | None = None  # Client/public access
    # Legacy key name, still honoured
    supabase_service_role_key: str | None = None

    # JWT
    jwt_secret_key: str  # Required - no default for security
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60 * 24 * 7  # 1 week

    # Feed
    feed_front_page_size: int = DEFAULT_FRONT_PAGE_SIZE
    default_rotation_hours: float = DEFAULT_ROTATION_HOURS

    # App
    debug: bool = False
    log_level: str = "INFO"
    # CORS: Allowed origins for cross-origin requests
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra env vars not in model

    def feed_config(self) -> FeedConfig:
        """Core feed configuration derived from these settings."""
        return FeedConfig(
            front_page_size=self.feed_front_page_size,
            default_rotation_hours=self.default_rotation_hours,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
