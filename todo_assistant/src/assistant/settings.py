from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List, Optional


@dataclass(frozen=True)
class Settings:
    """
    Application settings loaded from environment variables.

    Env vars:
    - DATABASE_PATH: path to the sqlite db file, or ':memory:'. Default './data/assistant.db'
    - OPENAI_API_KEY: API key for the chat model provider
    - OPENAI_BASE_URL: optional OpenAI-compatible endpoint
    - OPENAI_MODEL: chat model name. Default 'gpt-4o-mini'
    - MAX_TOOL_STEPS: maximum model calls per chat turn. Default 10
    - ALLOWED_EMAILS: comma-separated allow-list of user emails; empty allows everyone
    - AUTH_PROXY_SECRET: shared secret the identity proxy sends in X-Auth-Proxy-Secret;
      when unset, identity headers are trusted as-is and the service must only be
      reachable through the proxy
    - CORS_ALLOW_ORIGINS: comma-separated list of allowed origins; '*' by default
    - LOG_LEVEL: log level name. Default 'INFO'
    - LOG_FORMAT: 'console' (default) or 'json'
    """

    database_path: str
    openai_api_key: Optional[str]
    openai_base_url: Optional[str]
    openai_model: str
    max_tool_steps: int
    allowed_emails: List[str]
    auth_proxy_secret: Optional[str]
    cors_allow_origins: List[str]
    log_level: str
    log_format: str


def _get_env(name: str, default: str) -> str:
    value = os.getenv(name, default)
    if value is None or value == "":
        return default
    return value


def _parse_int(value: str, default: int, minimum: int = 1) -> int:
    try:
        parsed = int(value.strip())
    except ValueError:
        return default
    return parsed if parsed >= minimum else default


def _parse_list(raw: str) -> List[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


def _parse_origins(origins_value: str) -> List[str]:
    """
    Parse CORS origins from env. Supports:
    - '*' to allow all origins
    - Comma-separated list of origins
    """
    value = origins_value.strip()
    if value == "*":
        return ["*"]
    return _parse_list(value)


# PUBLIC_INTERFACE
def get_settings() -> Settings:
    """Return application settings loaded from environment variables."""
    log_format = _get_env("LOG_FORMAT", "console").strip().lower()
    if log_format not in {"console", "json"}:
        log_format = "console"

    return Settings(
        database_path=_get_env("DATABASE_PATH", "./data/assistant.db").strip(),
        openai_api_key=os.getenv("OPENAI_API_KEY") or None,
        openai_base_url=os.getenv("OPENAI_BASE_URL") or None,
        openai_model=_get_env("OPENAI_MODEL", "gpt-4o-mini").strip(),
        max_tool_steps=_parse_int(_get_env("MAX_TOOL_STEPS", "10"), 10),
        allowed_emails=[e.lower() for e in _parse_list(_get_env("ALLOWED_EMAILS", ""))],
        auth_proxy_secret=os.getenv("AUTH_PROXY_SECRET") or None,
        cors_allow_origins=_parse_origins(_get_env("CORS_ALLOW_ORIGINS", "*")),
        log_level=_get_env("LOG_LEVEL", "INFO").strip().upper(),
        log_format=log_format,
    )
