"""
Application settings and logging setup.
Values come from environment variables (or a local .env file).
"""
from __future__ import annotations

import logging
import sys
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_db_path() -> Path:
    return Path(__file__).resolve().parent.parent / "data" / "streetballer.db"


class Settings(BaseSettings):
    """Settings for the StreetBaller backend."""

    # Storage
    database_path: Path = _default_db_path()
    db_timeout_seconds: float = 10.0

    # Auth
    jwt_secret_key: str = "streetballer-dev-secret-change-in-production"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24 * 7  # 7 days

    # HTTP: comma-separated origins
    cors_origins: str = "http://localhost:5173,http://127.0.0.1:5173"

    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.upper()

    @property
    def cors_origin_list(self) -> list[str]:
        return [x.strip() for x in self.cors_origins.split(",") if x.strip()]

    model_config = SettingsConfigDict(
        env_prefix="STREETBALLER_",
        env_file=".env" if Path(".env").exists() else None,
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )


settings = Settings()


def configure_logging(level: str | None = None) -> None:
    """Configure root logging once at app startup."""
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
