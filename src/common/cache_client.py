from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel, ValidationError

from .crypto import CryptoCodec
from .errors import CacheError, CacheUnavailable, DecryptionFailure, Forbidden, InvalidArgument


logger = logging.getLogger(__name__)


class CachedBlob(BaseModel):
    """Wire shape of an encrypted cache entry."""

    encrypted: str
    iv: str
    authTag: str = ""  # reserved, always empty


class CacheClient:
    """
    Async client for the remote key/value cache service.

    Notes
    - `available` starts True and only this client mutates it. A non-403 failure
      flips it to False; it stays False until the next `check_availability()`.
      While False, `get` returns None and `set` does nothing, without network calls.
    - Payloads are encrypted with `CryptoCodec` before upload and decrypted after
      download. The password is used per call and never stored.
    - 403 responses always raise `Forbidden` so the caller can invalidate the session.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 15.0,
        codec: Optional[CryptoCodec] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if not base_url:
            raise ValueError("base_url is required")
        self._base_url = base_url.rstrip("/")
        self._codec = codec or CryptoCodec()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self.available = True

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "CacheClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # --------------- Public API ---------------
    async def check_availability(self, token: str) -> bool:
        try:
            resp = await self._client.get(self._url("/cache/health"), headers=self._headers(token))
            ok = resp.status_code == 200
        except httpx.HTTPError as exc:
            logger.warning("Cache health check failed: %s", exc)
            ok = False
        if not ok:
            logger.warning("Cache service unavailable")
        self.available = ok
        return ok

    async def get(self, key: str, token: str, password: str) -> Optional[Any]:
        if not self.available:
            return None

        try:
            resp = await self._client.get(self._url(f"/cache/{key}"), headers=self._headers(token))
        except httpx.HTTPError as exc:
            self._mark_unavailable(f"GET {key}: {exc}")
            return None

        if resp.status_code == 404:
            logger.debug("Cache miss for %s", key)
            return None
        if resp.status_code == 403:
            raise Forbidden(f"Cache access forbidden for {key}")
        if not resp.is_success:
            self._mark_unavailable(f"GET {key}: HTTP {resp.status_code}")
            return None

        try:
            blob = CachedBlob.model_validate(resp.json())
        except (ValueError, ValidationError) as ex:
            raise DecryptionFailure(f"Malformed cache entry for {key}") from ex

        value = self._codec.decrypt(blob.encrypted, blob.iv, password)
        logger.debug("Cache hit for %s", key)
        return value

    async def set(
        self,
        key: str,
        value: Any,
        ttl: int,
        token: str,
        password: str,
    ) -> None:
        if not self.available:
            return
        if not password:
            raise InvalidArgument("encryption password is required to write the cache")

        payload = self._codec.encrypt(value, password)
        body: Dict[str, Any] = {
            "data": CachedBlob(encrypted=payload.ciphertext, iv=payload.salt).model_dump(),
            "ttl": ttl,
        }
        try:
            resp = await self._client.post(self._url(f"/cache/{key}"), headers=self._headers(token), json=body)
        except httpx.HTTPError as exc:
            self._mark_unavailable(f"POST {key}: {exc}")
            return

        if resp.status_code == 403:
            raise Forbidden(f"Cache write forbidden for {key}")
        if not resp.is_success:
            self._mark_unavailable(f"POST {key}: HTTP {resp.status_code}")

    async def delete(self, key: str, token: str) -> None:
        await self._delete(f"/cache/{key}", token, what=f"delete cache entry {key}")

    async def clear_all(self, token: str) -> None:
        await self._delete("/cache", token, what="clear cache")

    # --------------- Internal ---------------
    async def _delete(self, path: str, token: str, *, what: str) -> None:
        try:
            resp = await self._client.delete(self._url(path), headers=self._headers(token))
        except httpx.HTTPError as exc:
            self._mark_unavailable(f"{what}: {exc}")
            raise CacheUnavailable(f"Failed to {what}: cache service unreachable") from exc
        if resp.status_code == 403:
            raise Forbidden(f"Forbidden: {what}")
        if not resp.is_success:
            raise CacheError(f"Failed to {what}: HTTP {resp.status_code}")

    def _mark_unavailable(self, reason: str) -> None:
        logger.warning("Cache marked unavailable (%s)", reason)
        self.available = False

    def _url(self, path: str) -> str:
        return f"{self._base_url}{path}"

    @staticmethod
    def _headers(token: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}


__all__ = ["CacheClient", "CachedBlob"]
