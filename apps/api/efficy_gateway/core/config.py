from __future__ import annotations

from functools import lru_cache
from typing import Any

from pydantic import ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_POSITIVE_INT_DEFAULTS = {
    "efficy_connect_timeout_ms": 5000,
    "efficy_read_timeout_ms": 10000,
    "efficy_max_page_size": 100,
    "default_page_size": 20,
}

REQUIRED_UPSTREAM_KEYS = (
    "efficy_server",
    "efficy_app_context",
    "efficy_version",
    "efficy_advanced_resource",
    "efficy_base_resource",
    "efficy_service_resource",
)


class Settings(BaseSettings):
    app_name: str = "Efficy Gateway"
    app_env: str = "local"

    efficy_server: str = ""
    efficy_app_context: str = ""
    efficy_version: str = ""
    efficy_token: str = ""
    efficy_advanced_resource: str = ""
    efficy_base_resource: str = ""
    efficy_service_resource: str = ""
    efficy_connect_timeout_ms: int = 5000
    efficy_read_timeout_ms: int = 10000
    efficy_max_page_size: int = 100
    efficy_forward_client_authorization: bool = False

    default_page_size: int = 20
    session_cookie_name: str = "efficy_session"
    session_secret: str = "replace-me"
    session_algorithm: str = "HS256"

    metrics_enabled: bool = False
    otel_enabled: bool = False

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)

    @field_validator(
        "efficy_server",
        "efficy_app_context",
        "efficy_version",
        "efficy_token",
        "efficy_advanced_resource",
        "efficy_base_resource",
        "efficy_service_resource",
        mode="before",
    )
    @classmethod
    def _strip_strings(cls, value: Any) -> Any:
        if value is None:
            return ""
        return str(value).strip()

    @field_validator(
        "efficy_connect_timeout_ms",
        "efficy_read_timeout_ms",
        "efficy_max_page_size",
        "default_page_size",
        mode="before",
    )
    @classmethod
    def _positive_int_or_default(cls, value: Any, info: ValidationInfo) -> int:
        default = _POSITIVE_INT_DEFAULTS[info.field_name]
        if value is None:
            return default
        try:
            parsed = int(str(value).strip())
        except ValueError:
            return default
        return parsed if parsed > 0 else default

    def missing_upstream_keys(self) -> list[str]:
        return [key for key in REQUIRED_UPSTREAM_KEYS if not getattr(self, key)]


@lru_cache
def get_settings() -> Settings:
    return Settings()
