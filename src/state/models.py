from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EmployeeDraft(BaseModel):
    """
    Employee record as entered by a user, before the roster service assigns an id.

    Field names follow the roster service's camelCase JSON. Unknown fields sent
    by the server are kept so a cache round trip does not drop them.
    """

    model_config = ConfigDict(extra="allow")

    firstName: str = ""
    lastName: str = ""
    dateOfBirth: str = ""
    startDate: str = ""
    street: str = ""
    city: str = ""
    state: str = ""
    zipCode: Optional[str] = None
    department: str = ""

    @field_validator("zipCode", mode="before")
    @classmethod
    def _zip_as_text(cls, v: Any) -> Any:
        # The service stores zip codes as numbers
        if isinstance(v, int) and not isinstance(v, bool):
            return f"{v:05d}"
        return v

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class Employee(EmployeeDraft):
    id: str

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_text(cls, v: Any) -> Any:
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


class CachedRoster(BaseModel):
    """
    Plaintext stored (encrypted) under the single `employees` cache key.

    Older writers used `lastUpdated`; both spellings are accepted on read.
    """

    employees: List[Employee] = Field(default_factory=list)
    lastUpdate: Optional[int] = Field(default=None)

    @classmethod
    def from_cache(cls, raw: Any) -> "CachedRoster":
        if isinstance(raw, dict) and raw.get("lastUpdate") is None and "lastUpdated" in raw:
            raw = {**raw, "lastUpdate": raw["lastUpdated"]}
        return cls.model_validate(raw)

    def to_cache(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class LastUpdateResponse(BaseModel):
    success: bool
    message: Optional[str] = None
    timestampUnix: int


@dataclass
class SyncState:
    """
    Progress and freshness flags of the roster sync store.

    - `last_update`: epoch ms of the last known-good sync point (None before first load).
    - `is_update_available`: set by the update check, cleared by a fetch or acknowledgement.
    - `loading`: initial load or a mutation in progress; `fetching`: remote refresh in progress.
    - `error`: last user-visible failure.
    - `decryption_failed`: the cached blob could not be decrypted with the current password.
    """

    last_update: Optional[int] = None
    is_update_available: bool = False
    loading: bool = False
    fetching: bool = False
    error: Optional[str] = None
    decryption_failed: bool = False


__all__ = [
    "EmployeeDraft",
    "Employee",
    "CachedRoster",
    "LastUpdateResponse",
    "SyncState",
]
