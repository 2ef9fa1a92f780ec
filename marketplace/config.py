from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ==============================
    # Application
    # ==============================
    APP_NAME: str = "Lung Chaing Farm Marketplace"
    LOG_LEVEL: str = "INFO"

    # ==============================
    # Database
    # ==============================
    DATABASE_URL: str = "sqlite:///./marketplace.db"
    DB_LOCK_TIMEOUT_SECONDS: int = 5
    PURCHASE_MAX_RETRIES: int = 5

    # ==============================
    # Redis cache
    # ==============================
    REDIS_URL: str = "redis://localhost:6379/0"
    CACHE_TTL: int = 300
    CACHE_ENABLED: bool = True

    # ==============================
    # Celery
    # ==============================
    CELERY_BROKER_URL: str = "redis://localhost:6379/1"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/2"

    # ==============================
    # Auth
    # ==============================
    JWT_SECRET: str = "change-me"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    REFRESH_COOKIE_SECURE: bool = True

    # ==============================
    # Products & uploads
    # ==============================
    UPLOAD_DIR: str = "uploads"
    MAX_IMAGES_PER_PRODUCT: int = 5
    DEFAULT_LOW_STOCK_THRESHOLD: float = 7.0

    # ==============================
    # Low-stock email
    # ==============================
    NOTIFICATIONS_ENABLED: bool = True
    SMTP_HOST: str = "smtp.ethereal.email"
    SMTP_PORT: int = 587
    SMTP_USERNAME: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_USE_TLS: bool = True
    MAIL_FROM: str = '"Lung Chaing Farm" <no-reply@lungchaingfarm.com>'


@lru_cache
def get_settings() -> Settings:
    """Cached settings loader (once per process)."""
    return Settings()


__all__ = ["Settings", "get_settings"]
