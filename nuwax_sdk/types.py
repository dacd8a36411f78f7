"""
Type definitions for nuwax-sdk.

Defines enums and dataclasses used across the package for:
- Engine selection and process state
- Engine startup options and the resolved engine descriptor
- Dispatcher configuration
"""

from __future__ import annotations

import asyncio
import os
import shutil
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, Tuple

from nuwax_sdk._core.version import (
    DEFAULT_HOSTNAME,
    DEFAULT_PORT,
    DEFAULT_STARTUP_TIMEOUT,
    build_base_url,
)


# =============================================================================
# Enums
# =============================================================================


class EngineKind(str, Enum):
    """
    Known engine binaries.

    The value doubles as the binary's conventional name on PATH.
    """
    OPENCODE = "opencode"
    NUWAXCODE = "nuwaxcode"


class ProcessState(str, Enum):
    """
    Lifecycle state of a supervised engine process.

    - PENDING: Supervisor created, nothing spawned yet
    - STARTING: Process spawned, waiting for the liveness probe
    - READY: Liveness probe succeeded
    - FAILED: Start failed (spawn error or timeout)
    - STOPPED: Process terminated by stop() or the abort signal
    """
    PENDING = "pending"
    STARTING = "starting"
    READY = "ready"
    FAILED = "failed"
    STOPPED = "stopped"


class ResponseStyle(str, Enum):
    """
    How successful responses are handed back to the caller.

    Both styles currently return the parsed JSON body unchanged.
    """
    RAW = "raw"
    UNWRAPPED = "unwrapped"


def resolve_binary(engine: EngineKind, override: Optional[str] = None) -> str:
    """
    Resolve the executable for an engine.

    Args:
        engine: Engine kind
        override: Explicit binary path; takes precedence over the engine's
            conventional name

    Returns:
        Absolute path when found on PATH, otherwise the name unchanged so
        that the spawn reports the failure.
    """
    name = override or engine.value
    return shutil.which(name) or name


# =============================================================================
# Startup Options
# =============================================================================


@dataclass
class EngineOptions:
    """
    Caller-supplied configuration for starting an engine.

    Attributes:
        engine: Which engine to start (default: opencode)
        hostname: Host the engine listens on
        port: TCP port passed to the engine via --port
        timeout: Startup window in seconds
        opencode_path: Binary override used when engine is opencode
        nuwaxcode_path: Binary override used when engine is nuwaxcode
        config: Engine config; only config["model"] is interpreted
        signal: Abort signal; setting it stops the engine
    """
    engine: EngineKind = EngineKind.OPENCODE
    hostname: str = DEFAULT_HOSTNAME
    port: int = DEFAULT_PORT
    timeout: float = DEFAULT_STARTUP_TIMEOUT
    opencode_path: Optional[str] = None
    nuwaxcode_path: Optional[str] = None
    config: Optional[Mapping[str, Any]] = None
    signal: Optional[asyncio.Event] = None

    def __post_init__(self) -> None:
        """Normalize and validate option values."""
        self.engine = EngineKind(self.engine)
        if not 0 < self.port < 65536:
            raise ValueError(f"port must be 1-65535, got {self.port}")
        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")

    @property
    def model(self) -> Optional[str]:
        """Model selection passed to the engine, if configured."""
        if not self.config:
            return None
        return self.config.get("model") or None

    @property
    def binary_override(self) -> Optional[str]:
        """The binary override that applies to the selected engine."""
        if self.engine is EngineKind.NUWAXCODE:
            return self.nuwaxcode_path
        return self.opencode_path

    @classmethod
    def from_env(cls, **overrides: Any) -> "EngineOptions":
        """
        Build options from environment variables.

        Environment Variables:
            NUWAX_ENGINE: opencode | nuwaxcode
            NUWAX_HOSTNAME: Listen host
            NUWAX_PORT: Listen port
            NUWAX_TIMEOUT: Startup timeout in seconds
            NUWAX_MODEL: Model passed to the engine via --model
            OPENCODE_PATH: opencode binary override
            NUWAXCODE_PATH: nuwaxcode binary override

        Args:
            **overrides: Explicit values that win over the environment

        Returns:
            EngineOptions instance
        """
        values: dict[str, Any] = {}
        env = os.environ

        if env.get("NUWAX_ENGINE"):
            values["engine"] = EngineKind(env["NUWAX_ENGINE"].lower())
        if env.get("NUWAX_HOSTNAME"):
            values["hostname"] = env["NUWAX_HOSTNAME"]
        if env.get("NUWAX_PORT"):
            values["port"] = int(env["NUWAX_PORT"])
        if env.get("NUWAX_TIMEOUT"):
            values["timeout"] = float(env["NUWAX_TIMEOUT"])
        if env.get("NUWAX_MODEL"):
            values["config"] = {"model": env["NUWAX_MODEL"]}
        if env.get("OPENCODE_PATH"):
            values["opencode_path"] = env["OPENCODE_PATH"]
        if env.get("NUWAXCODE_PATH"):
            values["nuwaxcode_path"] = env["NUWAXCODE_PATH"]

        values.update(overrides)
        return cls(**values)


@dataclass(frozen=True)
class EngineDescriptor:
    """
    Identifies which binary to run and how to reach it.

    Immutable once handed to a ProcessSupervisor.
    """
    engine: EngineKind
    binary_path: str
    hostname: str = DEFAULT_HOSTNAME
    port: int = DEFAULT_PORT
    extra_args: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def base_url(self) -> str:
        return build_base_url(self.hostname, self.port)

    @classmethod
    def from_options(cls, options: EngineOptions) -> "EngineDescriptor":
        """Fill in defaults and resolve the binary path from options."""
        return cls(
            engine=options.engine,
            binary_path=resolve_binary(options.engine, options.binary_override),
            hostname=options.hostname,
            port=options.port,
        )


# =============================================================================
# Dispatcher Configuration
# =============================================================================


@dataclass(frozen=True)
class DispatcherConfig:
    """
    Governs how every call on a Dispatcher is sent and interpreted.

    Attributes:
        base_url: Engine base URL (no trailing slash required)
        response_style: Forward-compatible response shaping knob
        throw_on_error: Raise ApiError on non-2xx (else return {})
    """
    base_url: str
    response_style: ResponseStyle = ResponseStyle.RAW
    throw_on_error: bool = True

    def __post_init__(self) -> None:
        # frozen: normalize through object.__setattr__
        object.__setattr__(self, "base_url", self.base_url.rstrip("/"))
        object.__setattr__(self, "response_style", ResponseStyle(self.response_style))
