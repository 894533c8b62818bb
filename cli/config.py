from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit

DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_TIMEOUT = 10.0

BASE_URL_ENV = "API_BASE_URL"
TIMEOUT_ENV = "CLI_HTTP_TIMEOUT"


@dataclass(frozen=True)
class CLIConfig:
    """Where the query API lives and how long to wait for it."""

    base_url: str = DEFAULT_BASE_URL
    timeout: float = DEFAULT_TIMEOUT


def normalize_base_url(raw: str) -> str:
    """Accept ``host:port`` shorthand and drop trailing slashes."""
    url = raw.strip()
    if urlsplit(url).scheme not in ("http", "https"):
        url = f"http://{url}"
    return url.rstrip("/")


def _timeout_from_env() -> float:
    raw = (os.getenv(TIMEOUT_ENV) or "").strip()
    try:
        timeout = float(raw)
    except ValueError:
        return DEFAULT_TIMEOUT
    return timeout if timeout > 0 else DEFAULT_TIMEOUT


def load_config(base_url: Optional[str] = None, timeout: Optional[float] = None) -> CLIConfig:
    """Command line flags win over the environment, which wins over defaults."""
    return CLIConfig(
        base_url=normalize_base_url(base_url or os.getenv(BASE_URL_ENV) or DEFAULT_BASE_URL),
        timeout=timeout if timeout is not None else _timeout_from_env(),
    )
