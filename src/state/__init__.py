"""
Roster state models and local persistence.

`models` defines the employee records, the encrypted cache payload and the
sync flags; `token_store` persists the bearer token between runs.
"""

from .models import CachedRoster, Employee, EmployeeDraft, SyncState
from .token_store import TokenStore

__all__ = ["CachedRoster", "Employee", "EmployeeDraft", "SyncState", "TokenStore"]
