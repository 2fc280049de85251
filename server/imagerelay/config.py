"""Configuration helpers for the image relay service."""
from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() == "true"


@dataclass(frozen=True)
class Settings:
    """Centralized environment-driven configuration.

    Values are read once when the module is imported and the instance is never
    mutated afterwards; callers receive it explicitly instead of reaching for
    module globals.
    """

    use_queue: bool = _env_flag("USE_QUEUE")
    ssl_enabled: bool = _env_flag("SSL_ENABLED")
    ssl_key_path: Optional[str] = os.getenv("SSL_KEY_PATH")
    ssl_cert_path: Optional[str] = os.getenv("SSL_CERT_PATH")
    # Rate window between upstream dispatches when the queue is enabled.
    wait_time_seconds: float = float(os.getenv("WAIT_TIME_SECONDS") or 0)
    wait_safety_margin: float = float(os.getenv("WAIT_SAFETY_MARGIN", "1.0"))
    poll_interval: float = float(os.getenv("POLL_INTERVAL", "2.0"))
    generation_timeout: float = float(os.getenv("MAX_GENERATION_TIMEOUT", "40.0"))
    broker_url: Optional[str] = os.getenv("REDIS_URL")
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "3000"))
    allowed_origin: str = os.getenv("ORIGIN", "*")
    location: Optional[str] = os.getenv("LOCATION")
    external_photo_url: Optional[str] = os.getenv("EXTERNAL_PHOTO_URL")
    upstream_base_url: str = os.getenv("UPSTREAM_BASE_URL", "https://ideogram.ai")
    asset_base_url: str = os.getenv(
        "ASSET_BASE_URL", "https://ideogram.ai/assets/image/lossless/response"
    )
    upstream_timeout: float = float(os.getenv("UPSTREAM_TIMEOUT", "30.0"))
    upstream_authorization: Optional[str] = os.getenv("UPSTREAM_AUTHORIZATION")
    upstream_cookie: Optional[str] = os.getenv("UPSTREAM_COOKIE")
    authorization_file: str = os.getenv("UPSTREAM_AUTHORIZATION_FILE", "authorization.txt")
    cookie_file: str = os.getenv("UPSTREAM_COOKIE_FILE", "cookie.txt")
    client_rate_limit: int = int(os.getenv("CLIENT_RATE_LIMIT", "100"))
    client_rate_window: float = float(os.getenv("CLIENT_RATE_WINDOW", "900"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    @property
    def rate_window_seconds(self) -> float:
        """Minimum spacing between two upstream dispatches."""

        return self.wait_time_seconds + self.wait_safety_margin

    def validate(self) -> None:
        """Reject configurations the server cannot start with."""

        if self.ssl_enabled and not (self.ssl_key_path and self.ssl_cert_path):
            raise RuntimeError("SSL enabled but certificate paths not provided")
        if self.poll_interval <= 0 or self.generation_timeout <= 0:
            raise RuntimeError("POLL_INTERVAL and MAX_GENERATION_TIMEOUT must be > 0")
        if self.wait_time_seconds < 0:
            raise RuntimeError("WAIT_TIME_SECONDS must be >= 0")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached settings instance to avoid repeated environment reads."""

    return Settings()


settings = get_settings()
