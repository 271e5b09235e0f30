from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


ENV_ROSTER_API_URL = "ROSTER_API_URL"
ENV_SERVICE_URL = "ROSTER_SERVICE_URL"  # auth + cache endpoints
ENV_HEALTH_URL = "ROSTER_HEALTH_URL"  # optional; defaults to the service URL
ENV_STATE_DIR = "ROSTER_STATE_DIR"
ENV_CACHE_TTL_MS = "ROSTER_CACHE_TTL_MS"
ENV_POLL_INTERVAL = "ROSTER_POLL_INTERVAL"
ENV_HTTP_TIMEOUT = "ROSTER_HTTP_TIMEOUT"

DEFAULT_CACHE_TTL_MS = 24 * 60 * 60 * 1000
DEFAULT_POLL_INTERVAL = 60.0
DEFAULT_HTTP_TIMEOUT = 15.0
DEFAULT_STATE_DIR = ".cache"


def _getenv(name: str, default: Optional[str] = None) -> Optional[str]:
    val = os.environ.get(name)
    return val if val not in (None, "") else default


def _require(v: Optional[str], what: str) -> str:
    if not v:
        raise RuntimeError(f"Missing required configuration: {what}")
    return v


def _parse_number(name: str, raw: Optional[str], default: float) -> float:
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError as ex:
        raise RuntimeError(f"Invalid numeric configuration for {name}: {raw!r}") from ex
    if value <= 0:
        raise RuntimeError(f"{name} must be > 0")
    return value


@dataclass(frozen=True)
class Settings:
    """
    Runtime configuration for the roster sync layer.

    - `roster_api_url`: base URL of the remote roster service (list/CRUD/meta).
    - `service_url`: base URL hosting `/auth/*` and `/cache/*`.
    - `health_url`: base URL probed by the roster health check.
    - `state_dir`: directory holding the persisted bearer token.
    """

    roster_api_url: str
    service_url: str
    health_url: str
    state_dir: Path
    cache_ttl_ms: int = DEFAULT_CACHE_TTL_MS
    poll_interval: float = DEFAULT_POLL_INTERVAL
    http_timeout: float = DEFAULT_HTTP_TIMEOUT

    @classmethod
    def from_env(cls) -> "Settings":
        roster = _require(_getenv(ENV_ROSTER_API_URL), ENV_ROSTER_API_URL)
        service = _require(_getenv(ENV_SERVICE_URL), ENV_SERVICE_URL)
        health = _getenv(ENV_HEALTH_URL, service) or service
        state_dir = Path(_getenv(ENV_STATE_DIR, DEFAULT_STATE_DIR) or DEFAULT_STATE_DIR)
        ttl = _parse_number(ENV_CACHE_TTL_MS, _getenv(ENV_CACHE_TTL_MS), DEFAULT_CACHE_TTL_MS)
        interval = _parse_number(ENV_POLL_INTERVAL, _getenv(ENV_POLL_INTERVAL), DEFAULT_POLL_INTERVAL)
        timeout = _parse_number(ENV_HTTP_TIMEOUT, _getenv(ENV_HTTP_TIMEOUT), DEFAULT_HTTP_TIMEOUT)
        return cls(
            roster_api_url=roster.rstrip("/"),
            service_url=service.rstrip("/"),
            health_url=health.rstrip("/"),
            state_dir=state_dir,
            cache_ttl_ms=int(ttl),
            poll_interval=interval,
            http_timeout=timeout,
        )
