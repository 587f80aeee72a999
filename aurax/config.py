"""Configuration helpers for the AuraX client."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional

DEFAULT_BASE_URL = "https://backend.aurax.co.in"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass
class Settings:
    """Centralized environment-driven configuration.

    Every field can be overridden per client; these values only fill in what the
    caller leaves out.
    """

    api_key: Optional[str] = field(default_factory=lambda: os.getenv("AURAX_API_KEY"))
    key_id: Optional[str] = field(default_factory=lambda: os.getenv("AURAX_KEY_ID"))
    base_url: str = field(default_factory=lambda: os.getenv("AURAX_BASE_URL", DEFAULT_BASE_URL))
    # Per-request HTTP timeout in seconds
    timeout: float = field(default_factory=lambda: _env_float("AURAX_TIMEOUT", 30.0))
    poll_interval: float = field(default_factory=lambda: _env_float("AURAX_POLL_INTERVAL", 2.0))
    poll_timeout: float = field(default_factory=lambda: _env_float("AURAX_POLL_TIMEOUT", 300.0))
    stream_retry: float = field(default_factory=lambda: _env_float("AURAX_STREAM_RETRY", 3.0))
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached settings instance to avoid repeated environment reads."""

    return Settings()


settings = get_settings()
