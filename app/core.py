"""Application configuration and settings management.

This module defines the application settings loaded from environment
variables and provides helpers for accessing cached settings and
configuring process-wide logging.
"""

import logging
from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict

MIN_SECRET_KEY_LENGTH = 64


class Settings(BaseSettings):
    """Application configuration loaded from environment variables.

    Attributes:
        DATABASE_URL: Database connection string.
        SECRET_KEY: Key used for JWT signing, at least 64 characters.
        ALGORITHM: Algorithm used to encode JWT tokens.
        ACCESS_TOKEN_EXPIRE_MINUTES: Access token lifetime in minutes.
        ALLOWED_ORIGINS: Allowed origins for CORS.
        REDIS_URL: Redis connection URL for the identity cache.
        CLOUDINARY_URL: Cloudinary connection URL for photo uploads.
        MEDIA_ROOT: Directory for photos when Cloudinary is not configured.
        MEDIA_URL: URL prefix under which MEDIA_ROOT is served.
        MAX_PHOTO_BYTES: Upper bound for an uploaded photo.
        ALLOWED_PHOTO_EXTENSIONS: Accepted photo file extensions.
        MAX_MESSAGE_LENGTH: Upper bound for message content.
        LOG_LEVEL: Root log level.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="allow")

    DATABASE_URL: str = "sqlite:///./app.db"
    SECRET_KEY: str = (
        "dev-secret-change-me-dev-secret-change-me-dev-secret-change-me-0000"
    )
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7
    ALLOWED_ORIGINS: List[str] = ["*"]
    REDIS_URL: str = "redis://localhost:6379"
    CLOUDINARY_URL: str | None = None
    MEDIA_ROOT: str = "./media"
    MEDIA_URL: str = "/media"
    MAX_PHOTO_BYTES: int = 10 * 1024 * 1024
    ALLOWED_PHOTO_EXTENSIONS: List[str] = [".jpg", ".jpeg", ".png", ".gif", ".webp"]
    MAX_MESSAGE_LENGTH: int = 500
    LOG_LEVEL: str = "INFO"


@lru_cache()
def get_settings() -> Settings:
    """Return cached application settings.

    The settings object is cached to prevent reloading environment
    variables multiple times during application lifetime.
    """

    return Settings()


def configure_logging() -> None:
    """Install the process-wide log format and level."""

    logging.basicConfig(
        level=get_settings().LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
