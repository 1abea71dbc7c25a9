"""Centralized configuration via pydantic-settings, loaded from .env."""

from __future__ import annotations

import functools
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_PACKAGE_DIR = Path(__file__).resolve().parent

DEFAULT_TOKEN_ENV_KEYS: list[str] = [
    "TIINGO_KEY",
    "TIINGO_API_KEY",
    "TIINGO_API_TOKEN",
    "TIINGO_TOKEN",
    "TIINGO_ACCESS_TOKEN",
    "TIINGO_ACCESS_KEY",
    "TIINGO_AUTH_TOKEN",
    "TIINGO_SECRET",
    "TIINGO_API_SECRET",
    "REACT_APP_TIINGO_KEY",
    "REACT_APP_TIINGO_TOKEN",
    "REACT_APP_API_KEY",
    "VITE_TIINGO_KEY",
    "VITE_TIINGO_TOKEN",
    "VITE_APP_TIINGO_KEY",
    "VITE_APP_TIINGO_TOKEN",
]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="MARKETGATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Upstream provider ──────────────────────────────────────────────
    tiingo_base_url: str = "https://api.tiingo.com"
    tiingo_token_env_keys: list[str] = Field(default_factory=lambda: list(DEFAULT_TOKEN_ENV_KEYS))
    credential_scan_values: bool = True
    credential_scan_names: bool = True

    upstream_timeout_seconds: float = 10.0
    upstream_max_retries: int = 3
    upstream_retry_delay_seconds: float = 1.0

    # ── Admission control · cache ──────────────────────────────────────
    rate_limit_max_requests: int = 200
    rate_limit_window_seconds: float = 60.0
    cache_enabled: bool = True

    # ── Bundled sample data ────────────────────────────────────────────
    mock_data_dir: Path = _PACKAGE_DIR / "data" / "mock"

    # ── API Server ────────────────────────────────────────────────────
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    log_level: str = "INFO"


@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Singleton accessor for the global settings."""
    return Settings()
