"""
Version and wire constants for nuwax-sdk.

- SDK_VERSION: User-facing SDK version
- DEFAULT_*: Connection defaults shared by the supervisor and the client
- HEALTH_PATH: Liveness probe route exposed by every engine
"""

from __future__ import annotations

SDK_VERSION = "0.1.0"

DEFAULT_HOSTNAME = "127.0.0.1"
DEFAULT_PORT = 4096
DEFAULT_BASE_URL = f"http://{DEFAULT_HOSTNAME}:{DEFAULT_PORT}"

# Seconds
DEFAULT_STARTUP_TIMEOUT = 10.0
POLL_INTERVAL = 0.5
STOP_TIMEOUT = 5.0

HEALTH_PATH = "/global/health"

# Subcommand that makes an engine listen on HTTP
SERVE_SUBCOMMAND = "serve"


def build_base_url(hostname: str, port: int) -> str:
    """
    Build the engine base URL from hostname and port.

    Args:
        hostname: Host the engine listens on (e.g., "127.0.0.1")
        port: TCP port

    Returns:
        Base URL without trailing slash
    """
    return f"http://{hostname}:{port}"
