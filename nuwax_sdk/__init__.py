"""
nuwax-sdk: Start and talk to opencode / nuwaxcode engines from Python.

This package provides:
- create_opencode() to launch an engine, wait until it is healthy and
  return a typed client plus a server handle
- create_opencode_client() to talk to an engine that is already running
- nuwaxcode-http, an HTTP wrapper for the stdio-only nuwaxcode binary

Installation:
    pip install nuwax-sdk

Quickstart:
    from nuwax_sdk import create_opencode, text_part

    client, server = await create_opencode(engine="nuwaxcode")
    try:
        created = await client.session.create()
        session_id = created["data"]["id"]
        reply = await client.session.prompt(
            session_id, {"parts": [text_part("list the files here")]}
        )
    finally:
        await server.close()
"""

from nuwax_sdk.types import (
    EngineKind,
    ProcessState,
    ResponseStyle,
    EngineOptions,
    EngineDescriptor,
    DispatcherConfig,
)
from nuwax_sdk.errors import (
    NuwaxSDKError,
    EngineStartError,
    SpawnError,
    StartupTimeoutError,
    StartupAbortedError,
    HealthTimeoutError,
    ApiError,
    TransportError,
    BodyValidationError,
)
from nuwax_sdk.bodies import (
    AppLogBody,
    SessionCreateBody,
    SessionPromptBody,
    CommandBody,
    text_part,
)
from nuwax_sdk.opencode import (
    create_opencode,
    create_opencode_client,
    OpencodeServer,
)
from nuwax_sdk._core.client import OpencodeClient, Dispatcher
from nuwax_sdk._core.lifecycle import ProcessSupervisor
from nuwax_sdk._core.version import SDK_VERSION

__version__ = SDK_VERSION

__all__ = [
    # Version
    "__version__",
    "SDK_VERSION",
    # Types
    "EngineKind",
    "ProcessState",
    "ResponseStyle",
    "EngineOptions",
    "EngineDescriptor",
    "DispatcherConfig",
    # Errors
    "NuwaxSDKError",
    "EngineStartError",
    "SpawnError",
    "StartupTimeoutError",
    "StartupAbortedError",
    "HealthTimeoutError",
    "ApiError",
    "TransportError",
    "BodyValidationError",
    # Bodies
    "AppLogBody",
    "SessionCreateBody",
    "SessionPromptBody",
    "CommandBody",
    "text_part",
    # Entry points
    "create_opencode",
    "create_opencode_client",
    "OpencodeServer",
    "OpencodeClient",
    "Dispatcher",
    "ProcessSupervisor",
]
