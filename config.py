# config.py

"""Application configuration utilities.

Values are primarily loaded from ``config.json`` and may be overridden by
environment variables. The :func:`get_settings` helper merges the two sources
and caches the result.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings merged from JSON and environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: str = "sqlite+aiosqlite:///./menusync.db"
    redis_url: str = "redis://localhost"
    change_channel: str = "catalog:changed"
    publish_changes: bool = True
    store_timeout_secs: float = 5.0
    currency_kinds: list[str] = ["kiss", "scratches", "massage", "dishes"]
    primary_currency: str = "kiss"
    legacy_currency_aliases: dict[str, str] = {"kisses": "kiss", "licks": "dishes"}
    legacy_price_fields: list[str] = ["kissPrice"]
    default_wallet: dict[str, int] = {
        "kiss": 10,
        "scratches": 5,
        "massage": 2,
        "dishes": 1,
    }
    task_credit_unit: int = 1
    ws_heartbeat_interval_sec: float = 30.0
    ws_liveness_timeout_sec: float = 0.0
    ws_send_timeout_sec: float = 5.0
    max_conn_per_ip: int = 20


def _env_value(raw: str):
    """Decode JSON containers given through the environment."""
    if raw[:1] in {"[", "{"}:
        try:
            return json.loads(raw)
        except ValueError:
            return raw
    return raw


# Cached singleton to avoid repeated file reads
@lru_cache
def get_settings() -> Settings:
    """Return merged settings with environment variable precedence.

    The configuration is read from ``config.json`` located alongside this file
    and fed into :class:`Settings`. Environment variables override any values
    from the JSON file. The result is cached to prevent repeated disk reads.
    """

    config_path = Path(__file__).with_name("config.json")
    data = json.loads(config_path.read_text()) if config_path.exists() else {}
    env_override = {
        k.lower(): _env_value(v)
        for k, v in os.environ.items()
        if k.lower() in Settings.model_fields
    }
    merged = {**data, **env_override}
    # Environment variables override values from the JSON file.
    return Settings(**merged)
