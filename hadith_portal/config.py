"""Environment-driven settings for the portal."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from functools import lru_cache
from pathlib import Path
from typing import Mapping, Optional

ENV_PREFIX = "HADITH_PORTAL_"

DEFAULT_API_URL = "https://api.sunnah.com/v1"
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000
DEFAULT_LOG_LEVEL = "INFO"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _raw(environ: Mapping[str, str], name: str) -> Optional[str]:
    return environ.get(ENV_PREFIX + name)


def _resolve_str(environ: Mapping[str, str], name: str, default: str) -> str:
    value = _raw(environ, name)
    return default if value is None else value.strip()


def _resolve_float(environ: Mapping[str, str], name: str, default: float, *, minimum: float = 0.0) -> float:
    value = _raw(environ, name)
    if value is None or not value.strip():
        return default
    try:
        parsed = float(value)
    except ValueError as exc:
        raise ValueError(f"Invalid {ENV_PREFIX}{name} value: {value!r}") from exc
    if parsed < minimum:
        raise ValueError(f"{ENV_PREFIX}{name} must be >= {minimum}, got {value!r}")
    return parsed


def _resolve_int(environ: Mapping[str, str], name: str, default: int, *, minimum: int = 0) -> int:
    value = _raw(environ, name)
    if value is None or not value.strip():
        return default
    try:
        parsed = int(value)
    except ValueError as exc:
        raise ValueError(f"Invalid {ENV_PREFIX}{name} value: {value!r}") from exc
    if parsed < minimum:
        raise ValueError(f"{ENV_PREFIX}{name} must be >= {minimum}, got {value!r}")
    return parsed


@dataclass(frozen=True)
class Settings:
    """Runtime settings. An empty ``api_url`` disables the remote source."""

    api_url: str = DEFAULT_API_URL
    api_key: str = ""
    api_timeout: float = 5.0
    probe_timeout: float = 3.0
    probe_ttl: float = 30.0
    retry_attempts: int = 2
    min_interval: float = 0.0
    data_dir: Optional[Path] = None
    log_level: str = DEFAULT_LOG_LEVEL
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT

    @property
    def remote_enabled(self) -> bool:
        return bool(self.api_url)

    def offline(self) -> "Settings":
        return replace(self, api_url="")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        data_dir = _resolve_str(env, "DATA_DIR", "")
        return cls(
            api_url=_resolve_str(env, "API_URL", DEFAULT_API_URL).rstrip("/"),
            api_key=_resolve_str(env, "API_KEY", ""),
            api_timeout=_resolve_float(env, "API_TIMEOUT", 5.0, minimum=0.1),
            probe_timeout=_resolve_float(env, "PROBE_TIMEOUT", 3.0, minimum=0.1),
            probe_ttl=_resolve_float(env, "PROBE_TTL", 30.0),
            retry_attempts=_resolve_int(env, "RETRY_ATTEMPTS", 2, minimum=1),
            min_interval=_resolve_float(env, "MIN_INTERVAL", 0.0),
            data_dir=Path(data_dir).expanduser() if data_dir else None,
            log_level=_resolve_str(env, "LOG_LEVEL", DEFAULT_LOG_LEVEL).upper() or DEFAULT_LOG_LEVEL,
            host=_resolve_str(env, "HOST", DEFAULT_HOST) or DEFAULT_HOST,
            port=_resolve_int(env, "PORT", DEFAULT_PORT, minimum=1),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()


__all__ = ["Settings", "get_settings", "ENV_PREFIX", "DEFAULT_API_URL", "LOG_FORMAT"]
