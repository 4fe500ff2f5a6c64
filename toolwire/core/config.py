"""Centralized configuration for the tool-invocation client.

This module consolidates environment-driven settings such as the MCP
endpoint, API key, HTTP timeouts, retry counts and the API bind address.

Other modules should import Settings via `get_settings()` and avoid
reading environment variables directly.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


# Load env once at import (idempotent if already loaded elsewhere)
load_dotenv()


@dataclass(frozen=True)
class Settings:
    # MCP server
    server_url: str
    server_name: str = "default"
    api_key: str = ""

    # Networking
    http_timeout_seconds: int = 30
    http_retries: int = 3

    # Logging
    log_level: str = "INFO"

    # HTTP API
    api_host: str = "127.0.0.1"
    api_port: int = 8000


_cached_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Return cached settings (loaded from environment) to be used across modules."""
    global _cached_settings
    if _cached_settings is not None:
        return _cached_settings

    _cached_settings = Settings(
        server_url=os.getenv("MCP_SERVER_URL", ""),
        server_name=os.getenv("MCP_SERVER_NAME", "default"),
        api_key=os.getenv("MCP_API_KEY", ""),
        http_timeout_seconds=int(os.getenv("HTTP_TIMEOUT_SECONDS", "30")),
        http_retries=max(1, int(os.getenv("HTTP_RETRIES", "3"))),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        api_host=os.getenv("API_HOST", "127.0.0.1"),
        api_port=int(os.getenv("API_PORT", "8000")),
    )
    return _cached_settings


def reset_settings() -> None:
    """Drop the cached settings so the next `get_settings()` re-reads the environment."""
    global _cached_settings
    _cached_settings = None
