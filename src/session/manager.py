from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol, Tuple

from common.auth_api import AuthClient
from common.errors import AuthError, AuthenticationRequired, InvalidArgument
from state.token_store import TokenStore


logger = logging.getLogger(__name__)


class SessionHandle(Protocol):
    """What the sync store needs from a session."""

    @property
    def token(self) -> Optional[str]: ...

    @property
    def encryption_password(self) -> Optional[str]: ...

    def logout(self) -> None: ...


class Session:
    """
    Bearer-token session plus the in-memory encryption password.

    - The token is persisted through `TokenStore` so a restart can resume the
      session after `initialize()` re-verifies it.
    - The encryption password is distinct from the login password, is set with
      `set_encryption_password()` and is never written anywhere.
    - Any component receiving a 403 calls `logout()`; from then on
      `require_token()` raises `AuthenticationRequired` until the next login.
    """

    def __init__(self, auth: AuthClient, token_store: TokenStore) -> None:
        self._auth = auth
        self._store = token_store
        self._token: Optional[str] = None
        self._encryption_password: Optional[str] = None
        self.error: Optional[str] = None
        self.is_initialized = False
        self._init_task: Optional[asyncio.Task[None]] = None

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def encryption_password(self) -> Optional[str]:
        return self._encryption_password

    @property
    def is_authenticated(self) -> bool:
        return self._token is not None

    async def login(self, password: str) -> bool:
        try:
            token = await self._auth.login(password)
        except AuthError as ex:
            self.error = str(ex)
            self._token = None
            logger.info("Login failed")
            return False
        self._token = token
        self.error = None
        self._store.save_token(token)
        logger.info("Logged in")
        return True

    def set_encryption_password(self, password: str) -> None:
        if not password:
            raise InvalidArgument("encryption password must not be empty")
        self._encryption_password = password

    def logout(self) -> None:
        was_authenticated = self._token is not None
        self._token = None
        self._encryption_password = None
        self._store.clear_token()
        if was_authenticated:
            logger.info("Logged out")

    async def initialize(self) -> None:
        """Restore a persisted session; concurrent callers share one run."""
        if self.is_initialized:
            return
        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._restore())
        await asyncio.shield(self._init_task)

    async def _restore(self) -> None:
        try:
            token = self._store.load_token()
            if token:
                if await self._auth.verify(token):
                    self._token = token
                    logger.info("Restored persisted session")
                else:
                    logger.info("Discarding invalid persisted token")
                    self._store.clear_token()
                    self._token = None
        finally:
            self.is_initialized = True

    def require_token(self) -> str:
        if not self._token:
            raise AuthenticationRequired("Authentication required")
        return self._token

    def require_credentials(self) -> Tuple[str, str]:
        token = self.require_token()
        if not self._encryption_password:
            raise AuthenticationRequired("Encryption password required")
        return token, self._encryption_password
