from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DEFAULT_DATABASE_PATH = "transfer_desk.db"
DEFAULT_TIMINGS_PAGE_SIZE = 20


@dataclass(frozen=True, slots=True)
class Config:
    discord_token: str
    guild_id: int
    timezone: ZoneInfo
    database_path: Path
    timings_page_size: int


def _required_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise ValueError(f"Missing required environment variable: {name}")
    return value.strip()


def _positive_int(name: str, raw: str) -> int:
    try:
        parsed = int(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc

    if parsed <= 0:
        raise ValueError(f"Environment variable {name} must be positive")
    return parsed


def _required_int_env(name: str) -> int:
    return _positive_int(name, _required_env(name))


def _timezone_from_env(name: str) -> ZoneInfo:
    tz_name = _required_env(name)
    try:
        return ZoneInfo(tz_name)
    except ZoneInfoNotFoundError as exc:
        raise ValueError(f"Invalid timezone in {name}: {tz_name}") from exc


def load_config() -> Config:
    page_size_raw = os.getenv("TIMINGS_PAGE_SIZE", str(DEFAULT_TIMINGS_PAGE_SIZE)).strip()
    database_path = os.getenv("DATABASE_PATH", "").strip() or DEFAULT_DATABASE_PATH

    return Config(
        discord_token=_required_env("DISCORD_TOKEN"),
        guild_id=_required_int_env("GUILD_ID"),
        timezone=_timezone_from_env("TIMEZONE"),
        database_path=Path(database_path),
        timings_page_size=_positive_int("TIMINGS_PAGE_SIZE", page_size_raw),
    )
