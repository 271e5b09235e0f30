from __future__ import annotations

import logging
from typing import Optional

import httpx

from .errors import AuthError


logger = logging.getLogger(__name__)


class AuthClient:
    """Login and token verification against the service's `/auth` endpoints."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if not base_url:
            raise ValueError("base_url is required")
        self._base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "AuthClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def login(self, password: str) -> str:
        """Exchange a password for a bearer token; raises `AuthError` on refusal."""
        try:
            resp = await self._client.post(f"{self._base_url}/auth/login", json={"password": password})
        except httpx.HTTPError as exc:
            raise AuthError(f"Authentication failed: {exc}") from exc

        if not resp.is_success:
            message = None
            try:
                body = resp.json()
                if isinstance(body, dict):
                    message = body.get("error")
            except ValueError:
                pass
            raise AuthError(message or f"Authentication failed: {resp.reason_phrase} {resp.status_code}")

        try:
            token = resp.json().get("token")
        except (ValueError, AttributeError) as ex:
            raise AuthError("Authentication failed: malformed response") from ex
        if not isinstance(token, str) or not token:
            raise AuthError("Authentication failed: no token in response")
        return token

    async def verify(self, token: str) -> bool:
        try:
            resp = await self._client.get(
                f"{self._base_url}/auth/verify",
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as exc:
            logger.warning("Token verification request failed: %s", exc)
            return False
        return resp.is_success


__all__ = ["AuthClient"]
