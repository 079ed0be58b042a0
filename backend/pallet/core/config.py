# backend/pallet/core/config.py

from __future__ import annotations

from typing import List
from urllib.parse import urlsplit, urlunsplit, parse_qsl, urlencode

from pydantic_settings import BaseSettings, SettingsConfigDict

DEV_JWT_SECRET = "dev-secret-change-me"
# libpq-style options that asyncpg.connect() rejects as unexpected kwargs.
ASYNCPG_REJECTED_PARAMS = frozenset({"sslmode", "channel_binding"})
PRODUCTION_ENVIRONMENTS = frozenset({"staging", "production"})
MIN_JWT_SECRET_LENGTH = 32


def _drop_query_params(url: str, names: frozenset) -> str:
    parts = urlsplit(url)
    if not parts.query:
        return url
    kept = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k not in names]
    return urlunsplit(parts._replace(query=urlencode(kept, doseq=True)))


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # development | staging | production
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    CORS_ORIGINS: List[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

    # Database
    DATABASE_URL_ASYNC: str
    # Alembic only
    DATABASE_URL_SYNC: str = ""

    # Tokens
    JWT_SECRET: str = DEV_JWT_SECRET
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 30
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    # Uploads
    UPLOAD_DIR: str = "uploads"
    MAX_FILE_SIZE: int = 20  # MB, images
    MAX_ZIP_SIZE: int = 500  # MB, archives

    # Origin for share links; falls back to the request origin when empty.
    PUBLIC_BASE_URL: str = ""

    # Assigned by admin user creation and batch password reset.
    DEFAULT_PASSWORD: str = "123456"

    @property
    def DATABASE_URL_ASYNC_CLEAN(self) -> str:
        return _drop_query_params(self.DATABASE_URL_ASYNC, ASYNCPG_REJECTED_PARAMS)

    @property
    def is_production(self) -> bool:
        return (self.ENVIRONMENT or "").strip().lower() in PRODUCTION_ENVIRONMENTS

    def model_post_init(self, __context) -> None:  # pydantic v2 hook
        secret = (self.JWT_SECRET or "").strip()
        if self.is_production and (secret == DEV_JWT_SECRET or len(secret) < MIN_JWT_SECRET_LENGTH):
            raise ValueError(
                f"JWT_SECRET must be a non-default value of at least {MIN_JWT_SECRET_LENGTH} "
                "characters in staging/production."
            )
        if self.JWT_ALGORITHM != "HS256":
            raise ValueError(f"Unsupported JWT_ALGORITHM={self.JWT_ALGORITHM!r}. Allowed: HS256")
        if min(self.MAX_FILE_SIZE, self.MAX_ZIP_SIZE) <= 0:
            raise ValueError("MAX_FILE_SIZE and MAX_ZIP_SIZE must be positive (megabytes).")


settings = Settings()
