from functools import lru_cache
from pathlib import Path

from pydantic import PostgresDsn, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database - allow both PostgreSQL and SQLite for development
    database_url: PostgresDsn | str = "sqlite:///./liveshelf.db"
    database_pool_size: int = 20
    database_max_overflow: int = 40

    # Application
    app_name: str = "LiveShelf"
    debug: bool = False
    log_level: str = "INFO"
    logs_dir: Path = Path("logs")

    # Auth tokens issued for the session cookies / bearer header
    JWT_SECRET_KEY: str = "change-me-in-production"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    REFRESH_TOKEN_EXPIRE_DAYS: int = 30
    session_cookie_secure: bool = True

    # Submission policy
    require_auth_for_add: bool = True
    note_duplicate_window_seconds: int = 60

    # Preview fetching
    preview_direct_timeout_seconds: float = 3.0
    preview_render_timeout_seconds: float = 10.0
    preview_max_body_bytes: int = 2 * 1024 * 1024
    preview_render_api_url: str = "https://api.microlink.io/"
    preview_user_agent: str = "LiveShelf-Preview/1.0"

    # Image proxy
    image_proxy_timeout_seconds: float = 4.0
    image_proxy_user_agent: str = "LiveShelf-ImageProxy/1.0"
    image_proxy_max_bytes: int = 10 * 1024 * 1024
    image_cache_max_age_seconds: int = 30 * 24 * 60 * 60
    image_cache_dir: Path = Path("cache/images")

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"  # Ignore extra fields from existing .env

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v):
        if not v:
            raise ValueError("DATABASE_URL must be set")
        # Allow SQLite for development
        if isinstance(v, str) and v.startswith("sqlite:"):
            return v
        return v


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
