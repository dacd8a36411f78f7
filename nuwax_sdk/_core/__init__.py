"""
Core engine connection management for nuwax-sdk.

This package handles:
- Engine process launch and supervision (lifecycle)
- Liveness probing (health)
- The HTTP dispatcher behind the typed client (client)

Only the version constants are re-exported here; they are imported by
nuwax_sdk.types, which the other core modules depend on.
"""

from nuwax_sdk._core.version import (
    SDK_VERSION,
    DEFAULT_BASE_URL,
    DEFAULT_HOSTNAME,
    DEFAULT_PORT,
    HEALTH_PATH,
)

__all__ = [
    "SDK_VERSION",
    "DEFAULT_BASE_URL",
    "DEFAULT_HOSTNAME",
    "DEFAULT_PORT",
    "HEALTH_PATH",
]
