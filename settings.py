from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Tuple

from dotenv import load_dotenv


_ENV_FILE_ENV = "SENSOR_ENV_FILE"
_DATABASE_URL_ENV = "DATABASE_URL"
_DATABASE_AUTO_CREATE_ENV = "DATABASE_AUTO_CREATE"
_BROKER_HOST_ENV = "MQTT_BROKER_HOST"
_BROKER_PORT_ENV = "MQTT_BROKER_PORT"
_CLIENT_ID_ENV = "MQTT_CLIENT_ID"
_TOPIC_ENV = "MQTT_TOPIC"
_KEEPALIVE_ENV = "MQTT_KEEPALIVE"
_INGESTION_ENABLED_ENV = "INGESTION_ENABLED"
_CORS_ORIGINS_ENV = "CORS_ALLOW_ORIGINS"
_LOG_LEVEL_ENV = "LOG_LEVEL"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    database_url: str
    database_auto_create: bool
    broker_host: str
    broker_port: int
    client_id: str
    topic: str
    keepalive: int
    ingestion_enabled: bool
    cors_allow_origins: Tuple[str, ...]
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip().lower()
    if candidate in _TRUE_VALUES:
        return True
    if candidate in _FALSE_VALUES:
        return False
    return default


def _read_origins(default: Tuple[str, ...]) -> Tuple[str, ...]:
    value = os.getenv(_CORS_ORIGINS_ENV)
    if value is None:
        return default
    origins = tuple(part.strip() for part in value.split(",") if part.strip())
    return origins or default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


def _load_env_file() -> None:
    # Real environment variables always win over the file.
    env_file = os.getenv(_ENV_FILE_ENV, ".env")
    if env_file and Path(env_file).is_file():
        load_dotenv(env_file, override=False)


@lru_cache
def get_settings() -> Settings:
    _load_env_file()
    return Settings(
        database_url=_read_str_env(_DATABASE_URL_ENV, "sqlite:///./tmp/sensor_data.db"),
        database_auto_create=_read_bool(_DATABASE_AUTO_CREATE_ENV, True),
        broker_host=_read_str_env(_BROKER_HOST_ENV, "localhost"),
        broker_port=_read_positive_int(_BROKER_PORT_ENV, 1883),
        client_id=_read_str_env(_CLIENT_ID_ENV, "iot-server"),
        topic=_read_str_env(_TOPIC_ENV, "sensors/temperature"),
        keepalive=_read_positive_int(_KEEPALIVE_ENV, 10),
        ingestion_enabled=_read_bool(_INGESTION_ENABLED_ENV, True),
        cors_allow_origins=_read_origins(("*",)),
        log_level=_read_log_level("INFO"),
    )
