from __future__ import annotations

import os

from dotenv import load_dotenv
from pydantic import BaseModel


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    v = (os.getenv(name) or "").strip().lower()
    if not v:
        return default
    return v in ("1", "true", "yes", "y", "on")


class Settings(BaseModel):
    # Relay (browser extension / remote-debugging bridge) address
    relay_host: str = "127.0.0.1"
    relay_port: int = 19988

    # Seconds
    connect_timeout: float = 30.0
    navigation_timeout: float = 30.0

    # Connection-refused backoff: retry_base_delay * 2^attempt
    max_retries: int = 3
    retry_base_delay: float = 0.1

    # Reconnect in the background after the relay drops us
    auto_reconnect: bool = True
    reconnect_delay: float = 2.0

    log_level: str = "WARNING"

    @property
    def ws_endpoint(self) -> str:
        return f"ws://{self.relay_host}:{self.relay_port}"

    @property
    def navigation_timeout_ms(self) -> int:
        return int(self.navigation_timeout * 1000)


def load_settings(env_file: str | None = None) -> Settings:
    # Load .env if present
    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()

    log_level = (os.getenv("SESSION_SCRAPER_LOG_LEVEL") or "WARNING").upper()
    if _env_bool("DEBUG"):
        log_level = "DEBUG"

    return Settings(
        relay_host=os.getenv("PLAYWRITER_HOST") or "127.0.0.1",
        relay_port=_env_int("PLAYWRITER_PORT", 19988),
        connect_timeout=_env_float("SESSION_SCRAPER_CONNECT_TIMEOUT", 30.0),
        navigation_timeout=_env_float("SESSION_SCRAPER_NAV_TIMEOUT", 30.0),
        max_retries=max(1, _env_int("SESSION_SCRAPER_MAX_RETRIES", 3)),
        retry_base_delay=_env_float("SESSION_SCRAPER_RETRY_DELAY", 0.1),
        auto_reconnect=_env_bool("SESSION_SCRAPER_AUTO_RECONNECT", True),
        reconnect_delay=_env_float("SESSION_SCRAPER_RECONNECT_DELAY", 2.0),
        log_level=log_level,
    )
