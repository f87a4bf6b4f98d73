from __future__ import annotations

import os
from dataclasses import dataclass

from .exceptions import ConfigurationError

DEFAULT_DB_URL = "http://localhost:19002/query/service"


def env(name: str, default: str | None = None) -> str | None:
    v = os.getenv(name)
    return v if v is not None else default


def env_bool(name: str, default: bool = False) -> bool:
    v = os.getenv(name)
    if v is None or not v.strip():
        return default
    return v.strip().lower() == "true"


def env_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None or not v.strip():
        return default
    try:
        return int(v)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {v!r}")


def env_float(name: str) -> float | None:
    v = os.getenv(name)
    if v is None or not v.strip():
        return None
    try:
        return float(v)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {v!r}")


@dataclass(frozen=True)
class Settings:
    db_url: str = DEFAULT_DB_URL
    dataverse: str = "ycsb"
    dataset: str = "usertable"
    log_level: str = "INFO"

    # Batch sizes; 1 disables batching
    batch_inserts: int = 1
    batch_updates: int = 1
    upsert: bool = False

    # Socket feed ingestion (inserts only)
    feed_enabled: bool = False
    feed_host: str = ""
    feed_port: int = -1

    print_cmd: bool = False

    connect_timeout: float | None = None
    read_timeout: float | None = None


def load_settings() -> Settings:
    return Settings(
        db_url=env("ASTERIX_DB_URL", DEFAULT_DB_URL) or DEFAULT_DB_URL,
        dataverse=env("ASTERIX_DATAVERSE", "ycsb") or "ycsb",
        dataset=env("ASTERIX_DATASET", "usertable") or "usertable",
        log_level=(env("ASTERIX_LOG_LEVEL", "INFO") or "INFO").upper(),
        batch_inserts=env_int("ASTERIX_BATCH_INSERTS", 1),
        batch_updates=env_int("ASTERIX_BATCH_UPDATES", 1),
        upsert=env_bool("ASTERIX_UPSERT"),
        feed_enabled=env_bool("ASTERIX_FEED_ENABLED"),
        feed_host=env("ASTERIX_FEED_HOST", "") or "",
        feed_port=env_int("ASTERIX_FEED_PORT", -1),
        print_cmd=env_bool("ASTERIX_PRINT_CMD"),
        connect_timeout=env_float("ASTERIX_CONNECT_TIMEOUT"),
        read_timeout=env_float("ASTERIX_READ_TIMEOUT"),
    )
