from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from typing import Dict, Optional
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str) -> Optional[float]:
    raw = os.getenv(name)
    if not raw:
        return None
    return float(raw)


@dataclass(frozen=True)
class SessionConfig:
    """Transport options of the shared session."""
    accept_cookies: bool = False
    timeout: Optional[float] = None
    verify_tls: bool = True
    headers: Dict[str, str] = field(default_factory=dict)
    proxies: Dict[str, str] = field(default_factory=dict)
    max_workers: int = 8

    # Promote the silent paths (undecodable 200 body, unserializable POST body)
    # to reported failures.
    strict_decoding: bool = False
    strict_encoding: bool = False

    @classmethod
    def from_env(cls) -> "SessionConfig":
        headers: Dict[str, str] = {}
        user_agent = os.getenv("API_USER_AGENT") or None
        if user_agent:
            headers["User-Agent"] = user_agent

        return cls(
            accept_cookies=_env_bool("API_ACCEPT_COOKIES", False),
            timeout=_env_float("API_TIMEOUT"),
            verify_tls=_env_bool("API_VERIFY_TLS", True),
            headers=headers,
            max_workers=int(os.getenv("API_MAX_WORKERS", "8")),
            strict_decoding=_env_bool("API_STRICT_DECODING", False),
            strict_encoding=_env_bool("API_STRICT_ENCODING", False),
        )

    def with_options(self, **changes) -> "SessionConfig":
        return replace(self, **changes)


@dataclass(frozen=True)
class Settings:
    log_level: str
    session: SessionConfig


def get_settings() -> Settings:
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()

    return Settings(
        log_level=log_level,
        session=SessionConfig.from_env(),
    )
