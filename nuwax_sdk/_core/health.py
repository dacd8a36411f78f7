"""
Liveness probing for engine HTTP endpoints.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional, Tuple

import requests

from nuwax_sdk._core.version import HEALTH_PATH, POLL_INTERVAL
from nuwax_sdk.errors import HealthTimeoutError

logger = logging.getLogger(__name__)


def _probe_health_sync(base_url: str, timeout: float) -> Tuple[bool, Optional[str]]:
    """Sync implementation of probe_health, also reporting why it failed."""
    url = f"{base_url.rstrip('/')}{HEALTH_PATH}"
    try:
        response = requests.get(url, timeout=timeout)
    except requests.RequestException as e:
        return False, str(e)

    if 200 <= response.status_code < 300:
        return True, None
    return False, f"Health probe returned status {response.status_code}"


async def probe_health(base_url: str, timeout: float = POLL_INTERVAL) -> bool:
    """
    Send a single liveness probe to an engine.

    Args:
        base_url: Engine base URL
        timeout: Maximum time for the probe in seconds

    Returns:
        True if GET /global/health answered with a 2xx status
    """
    loop = asyncio.get_event_loop()
    healthy, _ = await loop.run_in_executor(None, _probe_health_sync, base_url, timeout)
    return healthy


async def wait_healthy(
    base_url: str,
    timeout: float,
    interval: float = POLL_INTERVAL,
    should_abort: Optional[Callable[[], bool]] = None,
) -> None:
    """
    Wait for an engine endpoint to become healthy.

    Polls the liveness probe until it succeeds or the deadline passes.
    Connection errors and non-2xx answers are treated as "not ready yet".
    Each probe and each pause is capped by the remaining time, so this
    returns or raises within timeout + interval.

    Args:
        base_url: Engine base URL
        timeout: Maximum time to wait in seconds
        interval: Time between probes in seconds
        should_abort: Checked before every probe; polling stops quietly
            when it returns True

    Raises:
        HealthTimeoutError: If the deadline expires before the endpoint
            becomes healthy
    """
    loop = asyncio.get_event_loop()
    deadline = loop.time() + timeout
    last_error = None

    while True:
        if should_abort is not None and should_abort():
            return

        remaining = deadline - loop.time()
        probe_timeout = max(min(interval, remaining), 0.05)
        healthy, error = await loop.run_in_executor(
            None, _probe_health_sync, base_url, probe_timeout
        )
        if healthy:
            logger.debug(f"{base_url} is healthy")
            return

        last_error = error
        logger.debug(f"{base_url} not ready: {error}")

        remaining = deadline - loop.time()
        if remaining <= 0:
            break
        await asyncio.sleep(min(interval, remaining))

    raise HealthTimeoutError(
        f"{base_url} did not become healthy within {timeout:g}s. "
        f"Last error: {last_error}",
        last_error=last_error,
    )
