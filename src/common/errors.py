from __future__ import annotations


class RosterSyncError(RuntimeError):
    """Base error for the roster synchronization layer."""


class AuthenticationRequired(RosterSyncError):
    """No bearer token or encryption password is present for the operation."""


class Forbidden(RosterSyncError):
    """A protected endpoint rejected the bearer token (HTTP 403)."""


class AuthError(RosterSyncError):
    """Login was refused or the auth endpoint failed."""


class CacheError(RosterSyncError):
    """A delete/clear call against the cache service failed."""


class CacheUnavailable(CacheError):
    """The cache service is unreachable; reads and writes degrade to misses and no-ops."""


class DecryptionFailure(RosterSyncError):
    """Wrong encryption password or corrupted cache blob."""


class InvalidServerResponse(RosterSyncError):
    """The roster service returned a malformed payload."""


class RemoteError(RosterSyncError):
    """Network or HTTP failure not covered by a more specific error."""


class InvalidArgument(RosterSyncError, ValueError):
    """A caller supplied an unusable argument (e.g. an empty password)."""


__all__ = [
    "RosterSyncError",
    "AuthenticationRequired",
    "Forbidden",
    "AuthError",
    "CacheUnavailable",
    "CacheError",
    "DecryptionFailure",
    "InvalidServerResponse",
    "RemoteError",
    "InvalidArgument",
]
