from __future__ import annotations

import math
import os
from dataclasses import dataclass
from typing import Literal
from urllib.parse import urlparse

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]

_TRUTHY = ("1", "true", "yes", "on")


def _getenv(name: str, default: str = "") -> str:
    return os.environ.get(name, default).strip()


def _require(name: str) -> str:
    value = _getenv(name)
    if not value:
        raise ValueError(f"{name} is required but not set")
    return value


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    database_url: str | None
    redis_url: str | None
    identity_url: str
    identity_service_key: str
    identity_timeout_seconds: float = 5.0
    invitation_ttl_days: int = 7
    cors_origins: tuple[str, ...] = ("http://localhost:3000",)

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"


def load_settings() -> Settings:
    """Read and validate settings from the environment.

    The identity-service URL and service key are mandatory; a missing
    value raises ValueError so the process never starts half-configured.
    """
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()
    port_raw = _getenv("PORT", "8000")

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    try:
        port = int(port_raw)
    except ValueError:
        raise ValueError(f"PORT must be an integer (got {port_raw!r})") from None

    identity_url = _require("IDENTITY_URL").rstrip("/")
    if urlparse(identity_url).scheme not in ("http", "https"):
        raise ValueError(f"IDENTITY_URL must be an http(s) URL (got {identity_url!r})")
    identity_service_key = _require("IDENTITY_SERVICE_KEY")

    timeout_raw = _getenv("IDENTITY_TIMEOUT_SECONDS", "5")
    try:
        identity_timeout = float(timeout_raw)
    except ValueError:
        identity_timeout = -1.0
    if not math.isfinite(identity_timeout) or identity_timeout <= 0:
        raise ValueError(
            f"IDENTITY_TIMEOUT_SECONDS must be a positive number (got {timeout_raw!r})"
        )

    ttl_raw = _getenv("INVITATION_TTL_DAYS", "7")
    try:
        ttl_days = int(ttl_raw)
    except ValueError:
        ttl_days = 0
    if ttl_days <= 0:
        raise ValueError(
            f"INVITATION_TTL_DAYS must be a positive integer (got {ttl_raw!r})"
        )

    cors_origins = tuple(
        o.strip()
        for o in _getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
        if o.strip()
    )

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=_getenv("LOG_JSON", "false").lower() in _TRUTHY,
        port=port,
        database_url=_getenv("DATABASE_URL") or None,
        redis_url=_getenv("REDIS_URL") or None,
        identity_url=identity_url,
        identity_service_key=identity_service_key,
        identity_timeout_seconds=identity_timeout,
        invitation_ttl_days=ttl_days,
        cors_origins=cors_origins,
    )


# Loaded at import: a bad environment stops the process before it serves.
SETTINGS = load_settings()
