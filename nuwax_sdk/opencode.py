"""
Entry points: start an engine and connect, or connect to a running one.

Usage:
    # Start a local engine and get a client for it
    client, server = await create_opencode(engine="nuwaxcode", port=4500)
    try:
        session = await client.session.create()
        ...
    finally:
        await server.close()

    # Connect to an engine that is already running
    client = create_opencode_client("http://127.0.0.1:4096")
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Tuple, Union

from nuwax_sdk._core.client import OpencodeClient
from nuwax_sdk._core.lifecycle import ProcessSupervisor
from nuwax_sdk._core.version import DEFAULT_BASE_URL
from nuwax_sdk.types import (
    EngineDescriptor,
    EngineOptions,
    ProcessState,
    ResponseStyle,
)

logger = logging.getLogger(__name__)


class OpencodeServer:
    """
    Handle on a started engine.

    Attributes:
        url: Engine base URL
    """

    def __init__(self, supervisor: ProcessSupervisor) -> None:
        self._supervisor = supervisor
        self.url = supervisor.base_url

    @property
    def state(self) -> ProcessState:
        return self._supervisor.state

    @property
    def pid(self) -> Optional[int]:
        return self._supervisor.pid

    @property
    def supervisor(self) -> ProcessSupervisor:
        return self._supervisor

    async def close(self) -> bool:
        """
        Stop the engine. Safe to call more than once.

        Returns:
            True if the engine process exit was confirmed
        """
        return await self._supervisor.stop()

    async def __aenter__(self) -> "OpencodeServer":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"OpencodeServer(url={self.url!r}, state={self.state.value!r})"


async def create_opencode(
    options: Optional[EngineOptions] = None,
    **kwargs: Any,
) -> Tuple[OpencodeClient, OpencodeServer]:
    """
    Start an engine and return a client connected to it.

    Args:
        options: Startup options; keyword arguments build one if omitted
            (e.g., create_opencode(engine="nuwaxcode", port=4500))

    Returns:
        (client, server) tuple; call server.close() when done

    Raises:
        SpawnError: If the engine binary could not be launched
        StartupTimeoutError: If the engine did not become healthy in time
        StartupAbortedError: If the abort signal fired during startup
    """
    if options is None:
        options = EngineOptions(**kwargs)
    elif kwargs:
        raise TypeError("Pass either an EngineOptions instance or keyword arguments, not both")

    descriptor = EngineDescriptor.from_options(options)
    engine = descriptor.engine.value

    logger.info(f"Starting {engine} at {descriptor.binary_path} on port {descriptor.port}...")

    supervisor = ProcessSupervisor(descriptor, model=options.model)
    url = await supervisor.start(options.timeout, abort_signal=options.signal)

    logger.info(f"{engine} ready at {url}")

    return OpencodeClient(url), OpencodeServer(supervisor)


def create_opencode_client(
    base_url: str = DEFAULT_BASE_URL,
    response_style: Union[ResponseStyle, str] = ResponseStyle.RAW,
    throw_on_error: bool = True,
) -> OpencodeClient:
    """
    Create a client for an engine that is already running.

    Performs no I/O and no liveness check.

    Args:
        base_url: Engine base URL
        response_style: Response shaping knob (see ResponseStyle)
        throw_on_error: Raise ApiError on non-2xx instead of returning {}

    Returns:
        OpencodeClient
    """
    return OpencodeClient(
        base_url,
        response_style=response_style,
        throw_on_error=throw_on_error,
    )
