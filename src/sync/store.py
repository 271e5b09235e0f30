from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple, TypeVar

from pydantic import ValidationError

from common.cache_client import CacheClient
from common.config import DEFAULT_CACHE_TTL_MS
from common.errors import (
    AuthenticationRequired,
    DecryptionFailure,
    Forbidden,
    RosterSyncError,
)
from common.roster_api import RosterClient
from session.manager import SessionHandle
from state.models import CachedRoster, Employee, EmployeeDraft, SyncState


logger = logging.getLogger(__name__)

EMPLOYEES_KEY = "employees"
SESSION_EXPIRED = "Session expired, please login again"
AUTH_REQUIRED = "Authentication required"

T = TypeVar("T")


class Outcome(Enum):
    """How a failed operation ends: recorded in state, or recorded and re-raised."""

    RECOVERED = "recovered"
    PROPAGATED = "propagated"


def _now_ms() -> int:
    return int(time.time() * 1000)


class RosterSyncStore:
    """
    Local employee roster kept in sync with the roster service and an encrypted cache.

    Lifecycle
    - `load_employees()` tries the encrypted cache first and falls back to
      `fetch_employees()`; a cache hit is followed by `check_for_update()`.
    - `fetch_employees()` replaces the collection from the roster service and
      writes the snapshot through to the cache.
    - Mutations call the roster service, apply the result locally, then write the
      full collection through to the cache.

    Error policy
    - 403 from any collaborator logs the session out and sets `SESSION_EXPIRED`;
      it is never re-raised.
    - Fetch and update-check failures are recorded in `state.error`.
    - Mutation failures are recorded and re-raised.
    - Cache write failures never reach the caller.

    Ordering
    - Every local commit bumps a revision counter. A fetch or cache read that
      started before a commit is discarded when it returns, so it cannot undo a
      newer mutation; a discarded fetch sets `is_update_available`.
    - `last_update` only moves forward, except through `clear_cache()`.
    - Cache writes are serialized in commit order; a snapshot older than one
      already written is dropped.
    """

    def __init__(
        self,
        session: SessionHandle,
        cache: CacheClient,
        roster: RosterClient,
        *,
        cache_ttl_ms: int = DEFAULT_CACHE_TTL_MS,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._session = session
        self._cache = cache
        self._roster = roster
        self._cache_ttl_ms = cache_ttl_ms
        self._clock = clock
        self._employees: Dict[str, Employee] = {}
        self.state = SyncState()
        self._revision = 0
        self._written_revision = 0
        self._write_lock = asyncio.Lock()

    # --------------- Read-only views ---------------
    @property
    def employees(self) -> List[Employee]:
        return list(self._employees.values())

    @property
    def last_update(self) -> Optional[int]:
        return self.state.last_update

    @property
    def is_update_available(self) -> bool:
        return self.state.is_update_available

    @property
    def error(self) -> Optional[str]:
        return self.state.error

    # --------------- Sync operations ---------------
    async def load_employees(self) -> None:
        """Populate from the cache when possible, otherwise from the roster service."""
        token = self._require_token()
        started = self._revision
        self.state.loading = True
        self.state.error = None
        try:
            cached = await self._read_cache(token)
        except Forbidden as exc:
            self._handle_failure(exc, propagate=False)
            return
        finally:
            self.state.loading = False

        if cached is None:
            await self.fetch_employees()
            return
        if not self._is_current(token):
            logger.info("Discarding cached roster read for an expired session")
            return
        self.state.decryption_failed = False
        if self._revision != started:
            logger.info("Discarding cached roster read overtaken by a local change")
            return

        local = self.state.last_update
        if local is not None and (cached.lastUpdate is None or cached.lastUpdate < local):
            # last_update never moves backwards; the in-memory roster is newer
            logger.info("Cached roster (%s) is older than local state (%d); keeping local", cached.lastUpdate, local)
        else:
            self._replace(cached.employees)
            self.state.last_update = cached.lastUpdate
            self.state.is_update_available = False
            logger.info("Loaded %d employees from cache", len(self._employees))
        await self.check_for_update()

    async def fetch_employees(self) -> None:
        token, password = self._require_credentials()
        started = self._revision
        self.state.fetching = True
        self.state.error = None
        try:
            employees = await self._roster.list_employees(token)
        except RosterSyncError as exc:
            self._handle_failure(exc, propagate=False)
            return
        finally:
            self.state.fetching = False

        if not self._is_current(token):
            logger.info("Discarding roster fetched for an expired session")
            return
        if self._revision != started:
            # A local commit landed while the list was in flight; the list predates it
            logger.info("Discarding roster fetch overtaken by a local change")
            self.state.is_update_available = True
            return

        self._replace(employees)
        self._touch()
        self.state.is_update_available = False
        logger.info("Fetched %d employees from roster service", len(employees))
        if employees:
            await self._write_through(token, password)

    async def check_for_update(self) -> None:
        """Flag `is_update_available` when the remote roster changed after `last_update`."""
        token = self._session.token
        if not token or self.state.last_update is None:
            return
        try:
            remote = await self._roster.last_update_timestamp(token)
        except RosterSyncError as exc:
            self._handle_failure(exc, propagate=False)
            if not isinstance(exc, Forbidden):
                logger.warning("Update check failed: %s", exc)
                self.state.is_update_available = False
            return

        local = self.state.last_update
        if not self._is_current(token) or local is None:
            return
        if remote > local:
            logger.info("Remote roster updated at %d (local %d)", remote, local)
            self.state.is_update_available = True

    def acknowledge_update(self) -> None:
        self.state.is_update_available = False

    def clear_error(self) -> None:
        self.state.error = None

    def clear_cache(self) -> None:
        """Forget the local roster. The remote cache entry is left alone."""
        self._employees = {}
        self.state.last_update = None
        self.state.is_update_available = False

    # --------------- Mutations ---------------
    async def add_employee(self, draft: EmployeeDraft) -> Optional[Employee]:
        token, password = self._require_credentials()

        def apply(created: Employee) -> None:
            self._employees[created.id] = created

        return await self._mutate(token, password, self._roster.create_employee(draft, token), apply)

    async def update_employee(self, employee: Employee) -> Optional[Employee]:
        token, password = self._require_credentials()

        def apply(updated: Employee) -> None:
            if employee.id not in self._employees:
                self._employees[updated.id] = updated
                return
            self._employees = {
                (updated.id if k == employee.id else k): (updated if k == employee.id else v)
                for k, v in self._employees.items()
            }

        return await self._mutate(token, password, self._roster.update_employee(employee, token), apply)

    async def remove_employee(self, employee_id: str) -> None:
        token, password = self._require_credentials()

        def apply(_: Any) -> None:
            self._employees.pop(employee_id, None)

        await self._mutate(token, password, self._roster.delete_employee(employee_id, token), apply)

    # --------------- Internal ---------------
    async def _mutate(
        self,
        token: str,
        password: str,
        call: Awaitable[T],
        apply: Callable[[T], None],
    ) -> Optional[T]:
        self.state.loading = True
        self.state.error = None
        try:
            result = await call
        except RosterSyncError as exc:
            if self._handle_failure(exc, propagate=True) is Outcome.PROPAGATED:
                raise
            return None
        finally:
            self.state.loading = False

        # The remote change happened; reflect it even if the session ended meanwhile
        apply(result)
        self._touch()
        if self._is_current(token):
            await self._write_through(token, password)
        return result

    def _handle_failure(self, exc: RosterSyncError, *, propagate: bool) -> Outcome:
        if isinstance(exc, Forbidden):
            logger.warning("Session rejected by server; logging out")
            self._session.logout()
            self.state.error = SESSION_EXPIRED
            return Outcome.RECOVERED
        self.state.error = str(exc) or exc.__class__.__name__
        return Outcome.PROPAGATED if propagate else Outcome.RECOVERED

    async def _read_cache(self, token: str) -> Optional[CachedRoster]:
        reachable = await self._cache.check_availability(token)
        password = self._session.encryption_password
        if not reachable or not password:
            return None
        try:
            raw = await self._cache.get(EMPLOYEES_KEY, token, password)
        except Forbidden:
            raise
        except DecryptionFailure as exc:
            logger.warning("Cached roster could not be decrypted: %s", exc)
            self.state.decryption_failed = True
            return None
        except RosterSyncError as exc:
            logger.warning("Cache read failed: %s", exc)
            return None
        if raw is None:
            return None
        try:
            return CachedRoster.from_cache(raw)
        except ValidationError:
            logger.warning("Ignoring malformed cached roster")
            return None

    async def _write_through(self, token: str, password: str) -> None:
        revision = self._revision
        snapshot = CachedRoster(employees=self.employees, lastUpdate=self.state.last_update).to_cache()
        async with self._write_lock:
            if revision < self._written_revision:
                logger.debug("Skipping stale cache snapshot r%d (r%d written)", revision, self._written_revision)
                return
            try:
                await self._cache.set(EMPLOYEES_KEY, snapshot, self._cache_ttl_ms, token, password)
            except Forbidden as exc:
                self._handle_failure(exc, propagate=False)
                return
            except RosterSyncError as exc:
                logger.warning("Cache write-through failed: %s", exc)
                return
            self._written_revision = revision

    def _replace(self, employees: Iterable[Employee]) -> None:
        self._employees = {e.id: e for e in employees}
        self._revision += 1

    def _touch(self) -> None:
        now = self._clock()
        prev = self.state.last_update
        self.state.last_update = now if prev is None else max(prev, now)
        self._revision += 1

    def _is_current(self, token: str) -> bool:
        return self._session.token == token

    def _require_token(self) -> str:
        token = self._session.token
        if not token:
            self.state.error = AUTH_REQUIRED
            raise AuthenticationRequired(AUTH_REQUIRED)
        return token

    def _require_credentials(self) -> Tuple[str, str]:
        token = self._require_token()
        password = self._session.encryption_password
        if not password:
            self.state.error = AUTH_REQUIRED
            raise AuthenticationRequired("Encryption password required")
        return token, password
