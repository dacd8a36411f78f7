"""
HTTP wrapper for stdio-only nuwaxcode.

Exposes the part of the engine API that the SDK client needs on top of
nuwaxcode's one-shot ``exec`` mode:

- GET  /global/health          -> {"healthy": true, "version": ...}
- POST /session/create         -> {"data": {"id": ...}}
- POST /session/{id}/prompt    -> {"parts": [{"type": "text", "text": ...}], "info": {...}}
- POST /session/{id}/abort     -> {"data": {"id": ..., "aborted": bool}}

Each prompt runs ``nuwaxcode exec <text>`` in the workspace and answers
once the run exits or exec_timeout elapses. ``info.truncated`` tells the
two apart.

Run with:
    nuwaxcode-http                    # PORT=4097 NUWAXCODE_PATH=nuwaxcode WORKSPACE=$PWD
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError, StarletteHTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from nuwax_sdk._core.lifecycle import signal_process_group, wait_for_exit
from nuwax_sdk._core.version import SDK_VERSION, STOP_TIMEOUT
from nuwax_sdk.errors import SpawnError

logger = logging.getLogger(__name__)

_KILL_SIGNAL = getattr(signal, "SIGKILL", signal.SIGTERM)

# Time left for the readers to pick up output after the run has exited
_READ_GRACE = 1.0


@dataclass
class WrapperSettings:
    """
    Settings for the HTTP wrapper.

    Attributes:
        host: Interface to bind
        port: Port to listen on
        nuwaxcode_path: nuwaxcode binary
        workspace: Working directory for every exec run
        exec_timeout: Upper bound for one exec run in seconds
    """
    host: str = "127.0.0.1"
    port: int = 4097
    nuwaxcode_path: str = "nuwaxcode"
    workspace: str = field(default_factory=os.getcwd)
    exec_timeout: float = 120.0

    @classmethod
    def from_env(cls) -> "WrapperSettings":
        """
        Build settings from environment variables.

        Environment Variables:
            HOST, PORT, NUWAXCODE_PATH, WORKSPACE, EXEC_TIMEOUT
        """
        env = os.environ
        settings = cls()
        if env.get("HOST"):
            settings.host = env["HOST"]
        if env.get("PORT"):
            settings.port = int(env["PORT"])
        if env.get("NUWAXCODE_PATH"):
            settings.nuwaxcode_path = env["NUWAXCODE_PATH"]
        if env.get("WORKSPACE"):
            settings.workspace = env["WORKSPACE"]
        if env.get("EXEC_TIMEOUT"):
            settings.exec_timeout = float(env["EXEC_TIMEOUT"])
        return settings


@dataclass
class ExecResult:
    """Outcome of one exec run."""

    stdout: str
    stderr: str
    exit_code: Optional[int]
    truncated: bool = False

    @property
    def errored(self) -> bool:
        """The run finished on its own with a non-zero exit code."""
        return not self.truncated and self.exit_code != 0

    @property
    def text(self) -> str:
        """stdout, or stderr when the run errored with diagnostics or printed nothing."""
        if self.stderr and (self.errored or not self.stdout):
            return self.stderr
        return self.stdout


class SessionBusyError(RuntimeError):
    """Raised when a session already has a prompt running."""
    pass


class SessionRegistry:
    """
    Sessions known to one wrapper instance and their running exec processes.

    Owned by the app that created it; close() terminates everything still
    running.
    """

    def __init__(
        self,
        nuwaxcode_path: str,
        workspace: str,
        exec_timeout: float,
    ) -> None:
        self.nuwaxcode_path = nuwaxcode_path
        self.workspace = workspace
        self.exec_timeout = exec_timeout
        self._sessions: Dict[str, Optional[asyncio.subprocess.Process]] = {}

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def create(self) -> str:
        """Register a new session and return its id."""
        session_id = f"session-{uuid.uuid4().hex[:12]}"
        self._sessions[session_id] = None
        return session_id

    def is_busy(self, session_id: str) -> bool:
        process = self._sessions.get(session_id)
        return process is not None and process.returncode is None

    async def run_prompt(self, session_id: str, text: str) -> ExecResult:
        """
        Run ``nuwaxcode exec <text>`` for a session.

        Raises:
            KeyError: Unknown session
            SessionBusyError: A prompt is already running for the session
            SpawnError: nuwaxcode could not be launched
        """
        if session_id not in self._sessions:
            raise KeyError(session_id)
        if self.is_busy(session_id):
            raise SessionBusyError(f"Session {session_id} is already running a prompt")

        try:
            process = await asyncio.create_subprocess_exec(
                self.nuwaxcode_path, "exec", text,
                cwd=self.workspace,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as e:
            raise SpawnError(
                f"Failed to launch {self.nuwaxcode_path}: {e}",
                binary_path=self.nuwaxcode_path,
            ) from e

        self._sessions[session_id] = process
        logger.debug(f"Session {session_id}: exec started (PID: {process.pid})")

        stdout: List[bytes] = []
        stderr: List[bytes] = []
        readers = [
            asyncio.create_task(_collect(process.stdout, stdout)),
            asyncio.create_task(_collect(process.stderr, stderr)),
        ]

        truncated = False
        if not await wait_for_exit(process, self.exec_timeout):
            truncated = True
            logger.warning(
                f"Session {session_id}: exec exceeded {self.exec_timeout:g}s, killing"
            )
            await _terminate(process)
        else:
            # background processes left behind by the run
            signal_process_group(process, _KILL_SIGNAL)

        _, pending = await asyncio.wait(readers, timeout=_READ_GRACE)
        for reader in pending:
            reader.cancel()
        await asyncio.gather(*readers, return_exceptions=True)

        result = ExecResult(
            stdout=b"".join(stdout).decode(errors="replace"),
            stderr=b"".join(stderr).decode(errors="replace"),
            exit_code=process.returncode,
            truncated=truncated,
        )
        logger.info(
            f"Session {session_id}: exec finished "
            f"(exit={result.exit_code}, truncated={result.truncated})"
        )
        return result

    async def abort(self, session_id: str) -> bool:
        """
        Kill the running prompt of a session.

        Returns:
            True if a running process was stopped

        Raises:
            KeyError: Unknown session
        """
        if session_id not in self._sessions:
            raise KeyError(session_id)
        process = self._sessions[session_id]
        if process is None or process.returncode is not None:
            return False
        await _terminate(process)
        return True

    async def close(self) -> None:
        """Terminate every running exec and forget all sessions."""
        running = [p for p in self._sessions.values() if p is not None and p.returncode is None]
        if running:
            logger.info(f"Terminating {len(running)} running session(s)")
        await asyncio.gather(*(_terminate(p) for p in running), return_exceptions=True)
        self._sessions.clear()


async def _collect(stream: Optional[asyncio.StreamReader], sink: List[bytes]) -> None:
    if stream is None:
        return
    while True:
        chunk = await stream.read(4096)
        if not chunk:
            break
        sink.append(chunk)


async def _terminate(process: asyncio.subprocess.Process) -> None:
    """SIGTERM the run and its descendants, then SIGKILL if it does not exit in time."""
    try:
        process.terminate()
    except ProcessLookupError:
        pass
    signal_process_group(process, signal.SIGTERM)
    if await wait_for_exit(process, STOP_TIMEOUT):
        signal_process_group(process, _KILL_SIGNAL)
        return

    try:
        process.kill()
    except ProcessLookupError:
        pass
    signal_process_group(process, _KILL_SIGNAL)
    await wait_for_exit(process, STOP_TIMEOUT)


# =============================================================================
# HTTP API
# =============================================================================


class PromptPart(BaseModel):
    """One prompt part; only text is used, other fields are ignored."""

    model_config = ConfigDict(extra="allow")

    type: str = "text"
    text: str = ""


class PromptRequest(BaseModel):
    parts: List[PromptPart] = Field(default_factory=list)


def create_app(settings: Optional[WrapperSettings] = None) -> FastAPI:
    """
    Build a wrapper app with its own session registry.

    Args:
        settings: Wrapper settings (default: from environment)

    Returns:
        FastAPI application; ``app.state.registry`` holds the registry
    """
    settings = settings or WrapperSettings.from_env()
    registry = SessionRegistry(
        settings.nuwaxcode_path,
        settings.workspace,
        settings.exec_timeout,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await registry.close()

    app = FastAPI(
        title="nuwaxcode HTTP wrapper",
        description="HTTP facade over nuwaxcode exec",
        version=SDK_VERSION,
        lifespan=lifespan,
    )
    app.state.registry = registry
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"{request.method} {request.url.path} failed")
        return JSONResponse(status_code=500, content={"error": str(exc)})

    @app.get("/global/health")
    async def health() -> Dict[str, Any]:
        return {"healthy": True, "version": SDK_VERSION}

    @app.post("/session/create")
    async def create_session() -> Dict[str, Any]:
        session_id = registry.create()
        logger.info(f"Created {session_id}")
        return {"data": {"id": session_id}}

    @app.post("/session/{session_id}/prompt")
    async def prompt(session_id: str, request: PromptRequest) -> Dict[str, Any]:
        text = "".join(part.text for part in request.parts)
        try:
            result = await registry.run_prompt(session_id, text)
        except KeyError:
            raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
        except SessionBusyError as e:
            raise HTTPException(status_code=409, detail=str(e))
        except SpawnError as e:
            raise HTTPException(status_code=500, detail=str(e))

        return {
            "parts": [{"type": "text", "text": result.text}],
            "info": {"exitCode": result.exit_code, "truncated": result.truncated},
        }

    @app.post("/session/{session_id}/abort")
    async def abort(session_id: str) -> Dict[str, Any]:
        try:
            aborted = await registry.abort(session_id)
        except KeyError:
            raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
        return {"data": {"id": session_id, "aborted": aborted}}

    return app


def main() -> None:
    """Console entry point: serve the wrapper with uvicorn."""
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    settings = WrapperSettings.from_env()
    logger.info(f"Server running at http://{settings.host}:{settings.port}")
    logger.info(f"Using nuwaxcode at: {settings.nuwaxcode_path}")
    logger.info(f"Workspace: {settings.workspace}")

    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
