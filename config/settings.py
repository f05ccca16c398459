"""
config/settings.py
Application settings loaded from environment variables.
Uses Pydantic BaseSettings for validation and type safety.
"""

from functools import lru_cache
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Application ──────────────────────────────────────────
    APP_NAME: str = "Saint Directory"
    APP_ENV: str = "development"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    SECRET_KEY: str
    TIMEZONE: str = "UTC"               # Calendar date in this zone is "today"

    # ── Server ───────────────────────────────────────────────
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    WORKERS: int = 4

    # ── Database ─────────────────────────────────────────────
    DATABASE_URL: str
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 40
    DATABASE_POOL_TIMEOUT: int = 30
    DATABASE_CONNECT_RETRIES: int = 5

    # ── Redis ────────────────────────────────────────────────
    REDIS_URL: str = "redis://localhost:6379/0"

    # ── JWT ──────────────────────────────────────────────────
    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 1440   # 24 hours

    # ── Bootstrap Admin ──────────────────────────────────────
    DEFAULT_ADMIN_USERNAME: str = "superadmin"
    DEFAULT_ADMIN_EMAIL: str = "admin@saintdirectory.app"
    DEFAULT_ADMIN_PASSWORD: str = ""   # Empty disables the bootstrap admin

    # ── Email ────────────────────────────────────────────────
    RESEND_API_KEY: str = ""
    EMAIL_FROM: str = "noreply@saintdirectory.app"
    EMAIL_FROM_NAME: str = "Saint Directory"
    SCHEDULE_NOTIFY_EMAILS: str = ""

    # ── Storage ──────────────────────────────────────────────
    STORAGE_PROVIDER: str = "local"     # "local" | "s3"
    LOCAL_STORAGE_PATH: str = "./uploads"
    PUBLIC_UPLOADS_URL: str = "/uploads"
    S3_ACCESS_KEY_ID: str = ""
    S3_SECRET_ACCESS_KEY: str = ""
    S3_BUCKET_PUBLIC: str = "saint-directory-public"
    S3_ENDPOINT_URL: str = ""
    S3_REGION: str = "auto"
    MAX_PHOTO_SIZE_BYTES: int = 5 * 1024 * 1024

    # ── Frontend ─────────────────────────────────────────────
    FRONTEND_URL: str = "http://localhost:3000"
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # ── Celery ───────────────────────────────────────────────
    CELERY_BROKER_URL: str = "redis://localhost:6379/1"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/2"

    # ── Rate Limiting ────────────────────────────────────────
    RATE_LIMIT_UNAUTH_PER_MINUTE: int = 100

    # ── Business Config ──────────────────────────────────────
    UPCOMING_DEFAULT_DAYS: int = 30
    UPCOMING_MAX_DAYS: int = 365
    PROFILE_UPCOMING_LIMIT: int = 5
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    @property
    def allowed_origins_list(self) -> List[str]:
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",")]

    @property
    def schedule_notify_list(self) -> List[str]:
        return [e.strip() for e in self.SCHEDULE_NOTIFY_EMAILS.split(",") if e.strip()]

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance. Call this everywhere."""
    return Settings()


settings = get_settings()
