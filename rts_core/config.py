from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


DEFAULT_SHEET_ID = "1WUPEzSJqMfNsNzDOPjtw3xAru572e0K7jFzPuZLp3no"
DEFAULT_TAB_NAME = "RTS Total Open"
DEFAULT_REFRESH_SECONDS = 5 * 60
DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_LOG_LEVEL = "INFO"


@dataclass(frozen=True)
class Settings:
    sheet_id: str = DEFAULT_SHEET_ID
    tab_name: str = DEFAULT_TAB_NAME
    refresh_seconds: int = DEFAULT_REFRESH_SECONDS
    request_timeout: Optional[float] = DEFAULT_REQUEST_TIMEOUT
    proxy_url: Optional[str] = None
    log_level: str = DEFAULT_LOG_LEVEL


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _env_timeout(name: str, default: Optional[float]) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    if raw.strip().lower() in {"none", "off", "0"}:
        return None
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def load_settings() -> Settings:
    """Read settings from the environment (and a local .env file, if present)."""
    load_dotenv()
    proxy_url = (os.getenv("RTS_PROXY_URL") or "").strip().rstrip("/") or None
    return Settings(
        sheet_id=(os.getenv("RTS_SHEET_ID") or "").strip() or DEFAULT_SHEET_ID,
        tab_name=(os.getenv("RTS_TAB_NAME") or "").strip() or DEFAULT_TAB_NAME,
        refresh_seconds=_env_int("RTS_REFRESH_SECONDS", DEFAULT_REFRESH_SECONDS),
        request_timeout=_env_timeout("RTS_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT),
        proxy_url=proxy_url,
        log_level=(os.getenv("RTS_LOG_LEVEL") or "").strip().upper() or DEFAULT_LOG_LEVEL,
    )


def configure_logging(level: str = DEFAULT_LOG_LEVEL) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
