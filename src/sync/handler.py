from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from common.auth_api import AuthClient
from common.cache_client import CacheClient
from common.config import Settings, _getenv, _require
from common.roster_api import RosterClient
from session.manager import Session
from state.token_store import TokenStore

from .store import RosterSyncStore


logger = logging.getLogger(__name__)

# Secrets are read from the environment only for one-shot runs; never persisted
ENV_LOGIN_PASSWORD = "ROSTER_LOGIN_PASSWORD"
ENV_ENCRYPTION_PASSWORD = "ROSTER_ENCRYPTION_PASSWORD"


@dataclass
class Components:
    settings: Settings
    http: httpx.AsyncClient
    auth: AuthClient
    cache: CacheClient
    roster: RosterClient
    session: Session
    store: RosterSyncStore

    async def aclose(self) -> None:
        await self.http.aclose()


def build_components(
    settings: Settings,
    *,
    http: Optional[httpx.AsyncClient] = None,
) -> Components:
    """Wire session, clients and store around one shared HTTP client."""
    client = http or httpx.AsyncClient(timeout=settings.http_timeout)
    auth = AuthClient(settings.service_url, client=client)
    cache = CacheClient(settings.service_url, client=client)
    roster = RosterClient(settings.roster_api_url, health_url=settings.health_url, client=client)
    session = Session(auth, TokenStore(settings.state_dir / "session.json"))
    store = RosterSyncStore(session, cache, roster, cache_ttl_ms=settings.cache_ttl_ms)
    return Components(
        settings=settings,
        http=client,
        auth=auth,
        cache=cache,
        roster=roster,
        session=session,
        store=store,
    )


async def sync_once(
    components: Components,
    *,
    encryption_password: str,
    login_password: Optional[str] = None,
) -> Dict[str, Any]:
    """Restore or open a session, load the roster and report the sync state."""
    session = components.session
    await session.initialize()
    if not session.is_authenticated:
        if not login_password:
            return {"ok": False, "error": "No valid session and no login password configured"}
        if not await session.login(login_password):
            return {"ok": False, "error": session.error}
    session.set_encryption_password(encryption_password)

    store = components.store
    await store.load_employees()
    state = store.state
    return {
        "ok": state.error is None,
        "employees": len(store.employees),
        "last_update": state.last_update,
        "update_available": state.is_update_available,
        "cache_available": components.cache.available,
        "decryption_failed": state.decryption_failed,
        "error": state.error,
    }


async def _run(settings: Settings, encryption_password: str, login_password: Optional[str]) -> Dict[str, Any]:
    components = build_components(settings)
    try:
        return await sync_once(
            components,
            encryption_password=encryption_password,
            login_password=login_password,
        )
    finally:
        await components.aclose()


def run_once() -> Dict[str, Any]:
    settings = Settings.from_env()
    encryption_password = _require(_getenv(ENV_ENCRYPTION_PASSWORD), ENV_ENCRYPTION_PASSWORD)
    login_password = _getenv(ENV_LOGIN_PASSWORD)
    return asyncio.run(_run(settings, encryption_password, login_password))


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    summary = run_once()
    print(json.dumps(summary, indent=2))


if __name__ == "__main__":
    main()
