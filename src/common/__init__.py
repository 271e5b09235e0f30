"""
Common building blocks for roster-sync.

Modules:
- errors: error taxonomy shared by clients and the sync store
- config: environment-driven settings
- crypto: password-based encryption of cache payloads
- cache_client: remote encrypted key/value cache client
- auth_api: login and token verification client
- roster_api: remote roster service client
"""

__all__ = [
    "errors",
    "config",
    "crypto",
    "cache_client",
    "auth_api",
    "roster_api",
]
