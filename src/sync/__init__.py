"""
Roster synchronization.

- store: the sync state machine over session, cache and roster service
- poller: periodic remote update checks
- handler: wiring from environment configuration and a one-shot sync run
"""

from .poller import UpdatePoller
from .store import Outcome, RosterSyncStore

__all__ = ["Outcome", "RosterSyncStore", "UpdatePoller"]
