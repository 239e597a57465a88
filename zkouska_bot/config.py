"""Configuration helpers for the zkouska bot."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


@dataclass(slots=True)
class Settings:
    """Runtime configuration values loaded from environment variables."""

    discord_token: str
    source_channel_id: int
    destination_channel_id: int
    api_key: Optional[str] = None
    poll_interval_seconds: float = 5.0
    command_name: str = "!zkouska"
    log_level: str = "info"


def _require_snowflake(name: str) -> int:
    value = os.getenv(name)
    if not value:
        raise RuntimeError(f"{name} must be configured")
    try:
        return int(value)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be a numeric Discord id, got {value!r}") from exc


def load_settings(env_file: str | None = None) -> Settings:
    """Load settings from the environment, optionally from a specific file."""

    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()

    token = os.getenv("DISCORD_TOKEN")
    if not token:
        raise RuntimeError("DISCORD_TOKEN must be configured")

    return Settings(
        discord_token=token,
        source_channel_id=_require_snowflake("SOURCE_CHANNEL_ID"),
        destination_channel_id=_require_snowflake("DESTINATION_CHANNEL_ID"),
        api_key=os.getenv("API_KEY") or None,
        poll_interval_seconds=float(os.getenv("POLL_INTERVAL_SECONDS", "5")),
        command_name=os.getenv("COMMAND_NAME", "!zkouska"),
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )


__all__ = ["Settings", "load_settings"]
