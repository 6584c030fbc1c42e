"""Application configuration and logging setup."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class Settings(BaseSettings):
    """Centralized runtime configuration, read from ``NOTEBOOK_*`` variables."""

    database_path: str = "notebook.db"
    frontend_url: str = "http://localhost:8000/"

    session_ttl_minutes: int = Field(default=60, gt=0)
    reset_token_ttl_minutes: int = Field(default=30, gt=0)
    cookie_secure: bool = False

    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_use_tls: bool = True
    mail_from: str = "Support Team <no-reply@localhost>"

    # Upper bound for fetching the avatar embedded in exported PDFs.
    image_fetch_timeout: float = Field(default=10.0, gt=0)

    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000

    model_config = SettingsConfigDict(
        env_prefix="NOTEBOOK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings once from .env/environment."""
    return Settings()


def configure_logging(level: str = "INFO") -> None:
    """Install a stream handler on the root logger (no-op if one exists)."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT, handlers=[logging.StreamHandler()])


__all__ = ["Settings", "get_settings", "configure_logging"]
