from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, TypeVar

from dotenv import load_dotenv
from platformdirs import user_data_dir

ENV_PREFIX = "POSSYNC_"
APP_NAME = "possync"

_Number = TypeVar("_Number", int, float)


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class ClientConfig:
    """Settings for one terminal.

    ``data_dir`` holds the pending queue, the quarantine, the stored session
    and telemetry. When unset it defaults to a per-environment directory under
    the platform's user data dir so a staging terminal never drains into
    production.
    """

    env_name: str
    api_base_url: str
    api_key: str | None = None
    connect_timeout_seconds: float = 5.0
    read_timeout_seconds: float = 15.0
    retries: int = 3
    retry_backoff_seconds: float = 0.3
    max_connections: int = 20
    verify_ssl: bool = True
    data_dir: str | None = None
    health_path: str = "/rest/v1/"
    probe_interval_seconds: float = 15.0
    quarantine_rejected: bool = True

    @property
    def normalized_env(self) -> str:
        return self.env_name.lower().strip()

    def resolved_data_dir(self) -> Path:
        if self.data_dir:
            return Path(self.data_dir).expanduser()
        return Path(user_data_dir(APP_NAME, APP_NAME)) / self.normalized_env


def _env(name: str) -> str | None:
    value = os.getenv(ENV_PREFIX + name)
    if value is None:
        return None
    return value.strip() or None


def _flag(name: str, default: bool) -> bool:
    raw = _env(name)
    if raw is None:
        return default
    return raw.lower() in {"1", "true", "yes", "on"}


def _number(
    name: str,
    default: _Number,
    cast: Callable[[str], _Number],
    *,
    minimum: _Number,
    inclusive: bool = True,
) -> _Number:
    key = ENV_PREFIX + name
    raw = _env(name)
    if raw is None:
        value = default
    else:
        try:
            value = cast(raw)
        except ValueError as exc:
            kind = "an integer" if cast is int else "a number"
            raise ConfigError(f"Invalid {key}: expected {kind}, got {raw!r}") from exc
    if value < minimum or (not inclusive and value == minimum):
        bound = ">=" if inclusive else ">"
        raise ConfigError(f"Invalid {key}: expected {bound} {minimum}, got {value}")
    return value


def load_config(env_file: str | None = None) -> ClientConfig:
    """Build a :class:`ClientConfig` from ``POSSYNC_*`` variables.

    A ``.env`` file, when given or found, fills in anything the process
    environment does not already set.
    """
    load_dotenv(env_file)

    env_name = _env("ENV") or "dev"
    api_base_url = _env(f"API_BASE_URL_{env_name.upper()}") or _env("API_BASE_URL")
    if not api_base_url:
        raise ConfigError(f"Missing required config values: {ENV_PREFIX}API_BASE_URL")

    timeout = _number("TIMEOUT_SECONDS", 10.0, float, minimum=0.0, inclusive=False)
    connect_timeout = _number(
        "CONNECT_TIMEOUT_SECONDS", min(timeout, 5.0), float, minimum=0.0, inclusive=False
    )
    read_timeout = _number(
        "READ_TIMEOUT_SECONDS", max(timeout, connect_timeout), float, minimum=0.0, inclusive=False
    )

    health_path = _env("HEALTH_PATH") or "/rest/v1/"
    if not health_path.startswith("/"):
        raise ConfigError(f"Invalid {ENV_PREFIX}HEALTH_PATH: expected an absolute path, got {health_path!r}")

    return ClientConfig(
        env_name=env_name,
        api_base_url=api_base_url.rstrip("/"),
        api_key=_env("API_KEY"),
        connect_timeout_seconds=connect_timeout,
        read_timeout_seconds=read_timeout,
        retries=_number("RETRIES", 3, int, minimum=0),
        retry_backoff_seconds=_number("RETRY_BACKOFF_SECONDS", 0.3, float, minimum=0.0),
        max_connections=_number("MAX_CONNECTIONS", 20, int, minimum=1),
        verify_ssl=_flag("VERIFY_SSL", True),
        data_dir=_env("DATA_DIR"),
        health_path=health_path,
        probe_interval_seconds=_number("PROBE_INTERVAL_SECONDS", 15.0, float, minimum=0.0, inclusive=False),
        quarantine_rejected=_flag("QUARANTINE_REJECTED", True),
    )
