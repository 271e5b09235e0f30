from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Dict, Optional

from common.config import DEFAULT_STATE_DIR, ENV_STATE_DIR


logger = logging.getLogger(__name__)

TOKEN_KEY = "authToken"


def _default_token_file() -> Path:
    # Prefer explicit env var, else project-local .cache folder
    base = os.environ.get(ENV_STATE_DIR)
    if base:
        return Path(base) / "session.json"
    return Path(DEFAULT_STATE_DIR) / "session.json"


class TokenStore:
    """
    Tiny JSON file holding the bearer token so a restart does not force re-login.

    - Backed by a single JSON object: {"authToken": "<token>"}.
    - Only the bearer token is ever written; the encryption password is not.
    - A corrupt or unreadable file reads as "no token".
    """

    def __init__(self, path: Optional[os.PathLike[str] | str] = None) -> None:
        self._path = Path(path) if path else _default_token_file()

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> Dict[str, str]:
        try:
            if not self._path.exists():
                return {}
            with self._path.open("r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, ValueError) as ex:
            logger.warning("Ignoring unreadable session file %s: %s", self._path, ex)
            return {}
        if not isinstance(raw, dict):
            return {}
        return {str(k): str(v) for k, v in raw.items() if isinstance(v, str)}

    def load_token(self) -> Optional[str]:
        return self._read().get(TOKEN_KEY) or None

    def save_token(self, token: str) -> None:
        data = self._read()
        data[TOKEN_KEY] = token
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, sort_keys=True)

    def clear_token(self) -> None:
        data = self._read()
        if TOKEN_KEY not in data:
            return
        del data[TOKEN_KEY]
        if not data:
            self._path.unlink(missing_ok=True)
            return
        with self._path.open("w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, sort_keys=True)
