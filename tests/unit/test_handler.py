from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List

import httpx
import pytest

from common.config import DEFAULT_CACHE_TTL_MS, Settings
from common.crypto import decrypt


def _settings(tmp_path: Path) -> Settings:
    return Settings(
        roster_api_url="http://roster.test/employees",
        service_url="http://svc.test/api",
        health_url="http://svc.test/api",
        state_dir=tmp_path,
    )


# ---------------- Settings ----------------

def test_settings_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("ROSTER_API_URL", "http://roster.test/employees/")
    monkeypatch.setenv("ROSTER_SERVICE_URL", "http://svc.test/api")
    monkeypatch.setenv("ROSTER_STATE_DIR", str(tmp_path))
    monkeypatch.setenv("ROSTER_POLL_INTERVAL", "30")
    monkeypatch.delenv("ROSTER_HEALTH_URL", raising=False)
    monkeypatch.delenv("ROSTER_CACHE_TTL_MS", raising=False)
    monkeypatch.delenv("ROSTER_HTTP_TIMEOUT", raising=False)

    s = Settings.from_env()

    assert s.roster_api_url == "http://roster.test/employees"
    assert s.health_url == "http://svc.test/api"
    assert s.state_dir == tmp_path
    assert s.cache_ttl_ms == DEFAULT_CACHE_TTL_MS
    assert s.poll_interval == 30.0
    assert s.http_timeout == 15.0


def test_settings_missing_required(monkeypatch):
    monkeypatch.delenv("ROSTER_API_URL", raising=False)
    monkeypatch.setenv("ROSTER_SERVICE_URL", "http://svc.test/api")
    with pytest.raises(RuntimeError, match="ROSTER_API_URL"):
        Settings.from_env()


def test_settings_invalid_number(monkeypatch):
    monkeypatch.setenv("ROSTER_API_URL", "http://roster.test")
    monkeypatch.setenv("ROSTER_SERVICE_URL", "http://svc.test")
    monkeypatch.setenv("ROSTER_CACHE_TTL_MS", "forever")
    with pytest.raises(RuntimeError, match="ROSTER_CACHE_TTL_MS"):
        Settings.from_env()


# ---------------- sync_once ----------------

class _Backend:
    """In-memory fake of the auth, cache and roster HTTP services."""

    def __init__(self) -> None:
        self.cache: Dict[str, Dict[str, Any]] = {}
        self.requests: List[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.requests.append(f"{request.method} {path}")
        if path == "/api/auth/login":
            ok = json.loads(request.content).get("password") == "letmein"
            return httpx.Response(200, json={"token": "tok"}) if ok else httpx.Response(401, json={"error": "bad"})
        if path == "/api/auth/verify":
            return httpx.Response(200 if request.headers.get("Authorization") == "Bearer tok" else 401)
        if path == "/api/cache/health":
            return httpx.Response(200)
        if path.startswith("/api/cache/"):
            key = path.rsplit("/", 1)[-1]
            if request.method == "POST":
                self.cache[key] = json.loads(request.content)["data"]
                return httpx.Response(200)
            if key in self.cache:
                return httpx.Response(200, json=self.cache[key])
            return httpx.Response(404)
        if path == "/employees":
            return httpx.Response(200, json=[{"id": 1, "firstName": "Ada"}])
        if path == "/employees/meta/last-update":
            return httpx.Response(200, json={"success": True, "timestampUnix": 1})
        return httpx.Response(404)


def test_sync_once_logs_in_fetches_and_writes_encrypted_cache(tmp_path):
    from sync.handler import build_components, sync_once

    backend = _Backend()

    async def scenario():
        components = build_components(
            _settings(tmp_path), http=httpx.AsyncClient(transport=httpx.MockTransport(backend))
        )
        try:
            return await sync_once(components, encryption_password="cache-pw", login_password="letmein")
        finally:
            await components.aclose()

    summary = asyncio.run(scenario())

    assert summary["ok"] is True
    assert summary["employees"] == 1
    assert summary["cache_available"] is True
    assert "POST /api/cache/employees" in backend.requests
    blob = backend.cache["employees"]
    cached = decrypt(blob["encrypted"], blob["iv"], "cache-pw")
    assert cached["employees"][0]["id"] == "1"
    # token persisted, passwords not
    saved = (tmp_path / "session.json").read_text(encoding="utf-8")
    assert "tok" in saved
    assert "cache-pw" not in saved and "letmein" not in saved


def test_sync_once_second_run_reuses_session_and_cache(tmp_path):
    from sync.handler import build_components, sync_once

    backend = _Backend()

    async def one_run(login_password):
        components = build_components(
            _settings(tmp_path), http=httpx.AsyncClient(transport=httpx.MockTransport(backend))
        )
        try:
            return await sync_once(components, encryption_password="cache-pw", login_password=login_password)
        finally:
            await components.aclose()

    asyncio.run(one_run("letmein"))
    backend.requests.clear()
    summary = asyncio.run(one_run(None))

    assert summary["ok"] is True
    assert summary["employees"] == 1
    assert "GET /api/auth/verify" in backend.requests
    assert "POST /api/auth/login" not in backend.requests
    assert "GET /employees" not in backend.requests  # served from cache


def test_sync_once_without_session_or_password(tmp_path):
    from sync.handler import build_components, sync_once

    backend = _Backend()

    async def scenario():
        components = build_components(
            _settings(tmp_path), http=httpx.AsyncClient(transport=httpx.MockTransport(backend))
        )
        try:
            return await sync_once(components, encryption_password="cache-pw")
        finally:
            await components.aclose()

    summary = asyncio.run(scenario())
    assert summary["ok"] is False
    assert backend.requests == []
