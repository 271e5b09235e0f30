from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
from pydantic import TypeAdapter, ValidationError

from state.models import Employee, EmployeeDraft, LastUpdateResponse

from .errors import Forbidden, InvalidServerResponse, RemoteError


logger = logging.getLogger(__name__)

# A health probe slower than this means the backing database was asleep
WAKING_THRESHOLD_MS = 500

_employee_list = TypeAdapter(List[Employee])


@dataclass(frozen=True)
class HealthStatus:
    ready: bool
    waking: bool
    elapsed_ms: int


def parse_employee_list(payload: Any) -> List[Employee]:
    """Validate a roster payload: a list of records with unique ids."""
    try:
        employees = _employee_list.validate_python(payload)
    except ValidationError as ve:
        raise InvalidServerResponse(f"Malformed employee list: {ve.error_count()} error(s)") from ve
    seen: set[str] = set()
    for e in employees:
        if e.id in seen:
            raise InvalidServerResponse(f"Duplicate employee id in roster: {e.id}")
        seen.add(e.id)
    return employees


class RosterClient:
    """
    Async client for the remote roster service (the source of truth).

    Notes
    - 403 raises `Forbidden`; other non-2xx and transport failures raise `RemoteError`.
    - Responses are validated with pydantic; malformed bodies raise `InvalidServerResponse`.
    - No retries: callers decide when to try again.
    """

    def __init__(
        self,
        base_url: str,
        *,
        health_url: Optional[str] = None,
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
        clock=time.monotonic,
    ) -> None:
        if not base_url:
            raise ValueError("base_url is required")
        self._base_url = base_url.rstrip("/")
        self._health_url = (health_url or base_url).rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._clock = clock

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "RosterClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # --------------- Public API ---------------
    async def list_employees(self, token: Optional[str] = None) -> List[Employee]:
        payload = await self._request("GET", "/", token, what="fetch employees", headers={"Cache-Control": "no-store"})
        return parse_employee_list(payload)

    async def create_employee(self, draft: EmployeeDraft, token: Optional[str] = None) -> Employee:
        payload = await self._request("POST", "/new", token, what="create employee", json=draft.to_wire())
        return self._parse_employee(payload)

    async def update_employee(self, employee: Employee, token: Optional[str] = None) -> Employee:
        payload = await self._request(
            "PATCH", f"/{employee.id}", token, what="update employee", json=employee.to_wire()
        )
        return self._parse_employee(payload)

    async def delete_employee(self, employee_id: str, token: Optional[str] = None) -> None:
        await self._request("DELETE", f"/{employee_id}", token, what="delete employee", expect_body=False)

    async def last_update_timestamp(self, token: Optional[str] = None) -> int:
        payload = await self._request("GET", "/meta/last-update", token, what="fetch last update")
        try:
            meta = LastUpdateResponse.model_validate(payload)
        except ValidationError as ve:
            raise InvalidServerResponse("Malformed last-update response") from ve
        if not meta.success:
            raise InvalidServerResponse(meta.message or "Last-update lookup reported failure")
        return meta.timestampUnix

    async def health(self) -> HealthStatus:
        """Probe the service; a slow answer means the database is waking up."""
        start = self._clock()
        try:
            resp = await self._client.get(f"{self._health_url}/health")
            ok = resp.is_success
        except httpx.HTTPError as exc:
            logger.warning("Roster health check failed: %s", exc)
            ok = False
        elapsed_ms = int((self._clock() - start) * 1000)
        waking = not ok or elapsed_ms > WAKING_THRESHOLD_MS
        return HealthStatus(ready=ok and not waking, waking=waking, elapsed_ms=elapsed_ms)

    # --------------- Internal ---------------
    async def _request(
        self,
        method: str,
        path: str,
        token: Optional[str],
        *,
        what: str,
        expect_body: bool = True,
        headers: Optional[Dict[str, str]] = None,
        **kwargs: Any,
    ) -> Any:
        hdrs: Dict[str, str] = {"Content-Type": "application/json", **(headers or {})}
        if token:
            hdrs["Authorization"] = f"Bearer {token}"
        url = self._base_url + ("" if path == "/" else path)
        try:
            resp = await self._client.request(method, url, headers=hdrs, **kwargs)
        except httpx.HTTPError as exc:
            raise RemoteError(f"Failed to {what}: {exc}") from exc

        if resp.status_code == 403:
            raise Forbidden(f"Forbidden: {what}")
        if not resp.is_success:
            raise RemoteError(f"Failed to {what}: HTTP {resp.status_code}")
        if not expect_body:
            return None
        try:
            return resp.json()
        except ValueError as ex:
            raise InvalidServerResponse(f"Failed to {what}: response is not JSON") from ex

    @staticmethod
    def _parse_employee(payload: Any) -> Employee:
        try:
            return Employee.model_validate(payload)
        except ValidationError as ve:
            raise InvalidServerResponse("Malformed employee record") from ve


__all__ = ["RosterClient", "HealthStatus", "parse_employee_list", "WAKING_THRESHOLD_MS"]
