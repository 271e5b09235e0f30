from __future__ import annotations

import asyncio
import logging
from typing import Optional

from session.manager import SessionHandle

from .store import RosterSyncStore


logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 60.0


class UpdatePoller:
    """
    Periodically asks the store whether the remote roster changed.

    - Ticks only while the session holds a token; a tick never raises (the store
      records failures in its own state).
    - Stops on `stop()` or when the owning event loop cancels the task.
    """

    def __init__(
        self,
        store: RosterSyncStore,
        session: SessionHandle,
        *,
        interval: float = DEFAULT_INTERVAL,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self._store = store
        self._session = session
        self._interval = interval
        self._task: Optional[asyncio.Task[None]] = None
        self._stopped = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> bool:
        """Run one update check; returns False when skipped for lack of a session."""
        if not self._session.token:
            return False
        try:
            await self._store.check_for_update()
        except Exception:
            logger.exception("Unexpected error during update check")
        return True

    async def _loop(self) -> None:
        while not self._stopped.is_set():
            await self.run_once()
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                continue

    def start(self) -> None:
        if self.running:
            return
        self._stopped.clear()
        self._task = asyncio.get_running_loop().create_task(self._loop())

    async def stop(self) -> None:
        self._stopped.set()
        if self._task is not None:
            await self._task
            self._task = None
