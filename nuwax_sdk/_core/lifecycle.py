"""
Engine process lifecycle management for nuwax-sdk.

Handles:
- Command construction for the engine's HTTP server mode
- Process launch with captured output
- Supervision: readiness polling, abort signal, bounded teardown
"""

from __future__ import annotations

import asyncio
import atexit
import logging
import os
import signal
from collections import deque
from typing import List, Mapping, Optional

from nuwax_sdk._core.health import wait_healthy
from nuwax_sdk._core.version import POLL_INTERVAL, SERVE_SUBCOMMAND, STOP_TIMEOUT
from nuwax_sdk.errors import (
    HealthTimeoutError,
    SpawnError,
    StartupAbortedError,
    StartupTimeoutError,
)
from nuwax_sdk.types import EngineDescriptor, ProcessState

logger = logging.getLogger(__name__)

_KILL_SIGNAL = getattr(signal, "SIGKILL", signal.SIGTERM)

_EXIT_POLL_INTERVAL = 0.05


def build_command(descriptor: EngineDescriptor, model: Optional[str] = None) -> List[str]:
    """
    Build the argument list that starts an engine's HTTP server.

    Args:
        descriptor: Engine to start
        model: Optional model selection, passed as --model

    Returns:
        Command list suitable for create_subprocess_exec
    """
    cmd = [
        descriptor.binary_path,
        SERVE_SUBCOMMAND,
        "--port", str(descriptor.port),
        *descriptor.extra_args,
    ]
    if model:
        cmd.extend(["--model", model])
    return cmd


async def start_engine_process(
    cmd: List[str],
    env: Optional[Mapping[str, str]] = None,
) -> asyncio.subprocess.Process:
    """
    Launch an engine process.

    stdin is closed; stdout and stderr are captured.

    Args:
        cmd: Command list (binary first)
        env: Environment for the child (default: inherited unmodified)

    Returns:
        The asyncio subprocess

    Raises:
        SpawnError: If the binary is missing or the OS refuses to launch it
    """
    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=dict(env) if env is not None else None,
            start_new_session=True,
        )
    except FileNotFoundError as e:
        raise SpawnError(f"Engine binary not found: {cmd[0]}", binary_path=cmd[0]) from e
    except OSError as e:
        raise SpawnError(f"Failed to launch {cmd[0]}: {e}", binary_path=cmd[0]) from e

    logger.debug(f"Started {cmd[0]} (PID: {process.pid})")
    return process


def signal_process_group(process: asyncio.subprocess.Process, sig: int) -> None:
    """
    Send sig to every process in the group led by process.

    The process must have been started with start_new_session=True. Does
    nothing where process groups are unavailable or the group is gone.
    """
    if not hasattr(os, "killpg"):
        return
    try:
        os.killpg(process.pid, sig)
    except (ProcessLookupError, PermissionError):
        pass


async def wait_for_exit(
    process: asyncio.subprocess.Process,
    timeout: Optional[float] = None,
) -> bool:
    """
    Wait until the process itself has exited.

    Unlike process.wait(), this does not wait for the output pipes to
    close, which descendants of the process may still hold open.

    Args:
        process: Process to watch
        timeout: Seconds to wait (None: no limit)

    Returns:
        True if the process exited in time
    """
    loop = asyncio.get_running_loop()
    deadline = None if timeout is None else loop.time() + timeout
    while process.returncode is None:
        if deadline is None:
            await asyncio.sleep(_EXIT_POLL_INTERVAL)
            continue
        remaining = deadline - loop.time()
        if remaining <= 0:
            return False
        await asyncio.sleep(min(_EXIT_POLL_INTERVAL, remaining))
    return True


class ProcessSupervisor:
    """
    Supervises one engine process from spawn to teardown.

    Handles:
    - Process startup and readiness detection
    - Abort signal (asyncio.Event) triggering stop() once
    - Graceful termination with kill escalation
    - Killing the child if the interpreter exits first

    A supervisor starts at most one process; create a new one to retry.
    """

    def __init__(
        self,
        descriptor: EngineDescriptor,
        model: Optional[str] = None,
        poll_interval: float = POLL_INTERVAL,
        stop_timeout: float = STOP_TIMEOUT,
    ):
        self.descriptor = descriptor
        self.model = model
        self.poll_interval = poll_interval
        self.stop_timeout = stop_timeout

        self._state = ProcessState.PENDING
        self._process: Optional[asyncio.subprocess.Process] = None
        self._stop_task: Optional[asyncio.Future] = None
        self._tasks: List[asyncio.Task] = []
        self._stderr_tail: deque = deque(maxlen=20)
        self._spawned = asyncio.Event()

    @property
    def state(self) -> ProcessState:
        """Current lifecycle state."""
        return self._state

    @property
    def base_url(self) -> str:
        return self.descriptor.base_url

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    @property
    def returncode(self) -> Optional[int]:
        return self._process.returncode if self._process else None

    @property
    def is_running(self) -> bool:
        """Check if the process is alive."""
        return self._process is not None and self._process.returncode is None

    @property
    def stderr_tail(self) -> List[str]:
        """Last lines the engine wrote to stderr."""
        return list(self._stderr_tail)

    async def start(
        self,
        timeout: float,
        abort_signal: Optional[asyncio.Event] = None,
    ) -> str:
        """
        Spawn the engine and wait until its liveness probe succeeds.

        Args:
            timeout: Startup window in seconds
            abort_signal: Optional abort signal; setting it calls stop() once

        Returns:
            The engine base URL

        Raises:
            RuntimeError: If this supervisor was already started
            SpawnError: If the binary could not be launched
            StartupTimeoutError: If the engine never became healthy
            StartupAbortedError: If stop() ran before the engine was ready
        """
        if self._state is not ProcessState.PENDING:
            raise RuntimeError(
                f"Supervisor for {self.descriptor.engine.value} already started "
                f"(state: {self._state.value})"
            )

        self._state = ProcessState.STARTING
        cmd = build_command(self.descriptor, self.model)

        try:
            self._process = await start_engine_process(cmd)
        except SpawnError:
            self._state = ProcessState.FAILED
            raise
        finally:
            self._spawned.set()

        if self._stop_task is not None:
            await self._stop_task
            raise StartupAbortedError(
                f"{self.descriptor.engine.value} was stopped before it became ready"
            )

        atexit.register(self._kill_at_exit)
        self._tasks = [
            asyncio.create_task(self._drain(self._process.stdout, logging.DEBUG)),
            asyncio.create_task(self._drain(self._process.stderr, logging.WARNING)),
            asyncio.create_task(self._watch_exit()),
        ]
        if abort_signal is not None:
            self._tasks.append(asyncio.create_task(self._watch_signal(abort_signal)))

        try:
            await wait_healthy(
                self.base_url,
                timeout=timeout,
                interval=self.poll_interval,
                should_abort=lambda: self._stop_task is not None,
            )
        except HealthTimeoutError as e:
            await self._terminate(ProcessState.FAILED)
            raise StartupTimeoutError(
                self.descriptor.engine.value,
                self.descriptor.binary_path,
                timeout,
                last_error=e.last_error,
            ) from e
        except asyncio.CancelledError:
            await self._terminate(ProcessState.FAILED)
            raise

        if self._stop_task is not None:
            await self._stop_task
            raise StartupAbortedError(
                f"{self.descriptor.engine.value} was stopped before it became ready"
            )

        self._state = ProcessState.READY
        return self.base_url

    async def stop(self) -> bool:
        """
        Stop the engine. Idempotent and never raises.

        Sends SIGTERM to the engine and everything it started, waits up to
        stop_timeout for the engine to exit, then escalates to SIGKILL. A
        stop() issued while the engine is still being spawned takes effect
        as soon as the spawn completes.

        Returns:
            True if the process exit was confirmed (or nothing was running)
        """
        if self._state in (ProcessState.PENDING, ProcessState.FAILED):
            return True
        if self._stop_task is None:
            self._stop_task = asyncio.ensure_future(self._stop())
        return await asyncio.shield(self._stop_task)

    async def _stop(self) -> bool:
        if self._process is None:
            await self._spawned.wait()
            if self._process is None:
                return True
        return await self._terminate(ProcessState.STOPPED)

    async def _terminate(self, final_state: ProcessState) -> bool:
        """Terminate the process group and move to final_state."""
        process = self._process
        name = self.descriptor.engine.value
        exited = True

        current = asyncio.current_task()
        for task in self._tasks:
            if task is not current and not task.done():
                task.cancel()

        if process is not None and process.returncode is None:
            logger.debug(f"Terminating {name} (PID: {process.pid})")
            exited = await self._signal_and_wait(process, kill=False)
            if not exited:
                logger.warning(f"{name} ignored SIGTERM, killing (PID: {process.pid})")
                exited = await self._signal_and_wait(process, kill=True)
                if not exited:
                    logger.error(f"{name} did not exit after SIGKILL")
        elif process is not None:
            # leftovers of an engine that already exited
            signal_process_group(process, _KILL_SIGNAL)

        atexit.unregister(self._kill_at_exit)
        self._state = final_state
        if final_state is ProcessState.STOPPED:
            logger.info(f"{name} stopped")
        return exited

    async def _signal_and_wait(self, process: asyncio.subprocess.Process, kill: bool) -> bool:
        try:
            if kill:
                process.kill()
            else:
                process.terminate()
        except ProcessLookupError:
            pass
        except OSError as e:
            logger.warning(f"Failed to signal {self.descriptor.engine.value}: {e}")
        signal_process_group(process, _KILL_SIGNAL if kill else signal.SIGTERM)
        return await wait_for_exit(process, self.stop_timeout)

    async def _watch_signal(self, abort: asyncio.Event) -> None:
        """Stop the engine once the abort signal is set."""
        await abort.wait()
        logger.info(f"Abort signal received, stopping {self.descriptor.engine.value}")
        await self.stop()

    async def _watch_exit(self) -> None:
        """Log an engine exit that nobody asked for."""
        process = self._process
        if process is None:
            return
        await wait_for_exit(process)
        atexit.unregister(self._kill_at_exit)
        if self._stop_task is None and self._state in (ProcessState.STARTING, ProcessState.READY):
            logger.warning(
                f"{self.descriptor.engine.value} exited with code {process.returncode}"
            )

    async def _drain(self, stream: Optional[asyncio.StreamReader], level: int) -> None:
        """Forward engine output to the logger so the pipe never fills up."""
        if stream is None:
            return
        name = self.descriptor.engine.value
        while True:
            line = await stream.readline()
            if not line:
                break
            text = line.decode(errors="replace").rstrip()
            if level >= logging.WARNING:
                self._stderr_tail.append(text)
            logger.log(level, f"[{name}] {text}")

    def _kill_at_exit(self) -> None:
        """atexit hook: kill the engine group if it outlives the interpreter."""
        if self._process is not None and self._process.returncode is None:
            signal_process_group(self._process, _KILL_SIGNAL)
            try:
                os.kill(self._process.pid, _KILL_SIGNAL)
            except OSError:
                pass
