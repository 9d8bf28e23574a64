from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Process settings.

    Notes:
    - Every field can be overridden with a ``GCPJWT_``-prefixed env var,
      e.g. ``GCPJWT_SERVICE_ACCOUNT`` or ``GCPJWT_KEY_PATH``.
    - ``cache_expiration_seconds`` is only the fallback used when the
      certificate endpoint sends no usable caching headers; 0 disables it.
    """

    model_config = SettingsConfigDict(env_prefix="GCPJWT_", extra="ignore")

    service_account: str | None = None
    key_path: str | None = None
    enable_cache: bool = True
    cache_expiration_seconds: float = 0.0
    http_timeout_seconds: float = 10.0
    iam_type: Literal["blob", "jwt"] = "blob"
    clock_skew_seconds: int = 0
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()
