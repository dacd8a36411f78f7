"""
Pytest configuration for nuwax-sdk tests.
"""

import json
import socket
import stat
import sys
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import pytest

# Note: With pytest-asyncio in auto mode, no event_loop fixture needed


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def free_port():
    """An unused localhost TCP port."""
    return _free_port()


class StubEndpoint:
    """
    Minimal engine API stand-in running in a background thread.

    Records every request as (method, path, json_body) and answers with the
    response configured for the path (default: 200 {}).
    """

    def __init__(self) -> None:
        self.requests = []
        self.responses = {}
        self.default = (200, {})
        self._server = None
        self._thread = None

    @property
    def url(self) -> str:
        host, port = self._server.server_address[:2]
        return f"http://{host}:{port}"

    def respond(self, path, status=200, body=None):
        self.responses[path] = (status, body)

    def start(self) -> None:
        stub = self

        class Handler(BaseHTTPRequestHandler):
            def _handle(self):
                length = int(self.headers.get("Content-Length") or 0)
                raw = self.rfile.read(length) if length else b""
                body = json.loads(raw) if raw else None
                stub.requests.append((self.command, self.path, body))

                status, payload = stub.responses.get(self.path, stub.default)
                data = b"" if payload is None else json.dumps(payload).encode()
                self.send_response(status)
                self.send_header("Content-Type", "application/json")
                self.send_header("Content-Length", str(len(data)))
                self.end_headers()
                self.wfile.write(data)

            do_GET = _handle
            do_POST = _handle
            do_DELETE = _handle

            def log_message(self, format, *args):
                pass

        self._server = ThreadingHTTPServer(("127.0.0.1", 0), Handler)
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._server.shutdown()
        self._server.server_close()


@pytest.fixture
def stub_endpoint():
    """A running StubEndpoint."""
    endpoint = StubEndpoint()
    endpoint.start()
    yield endpoint
    endpoint.stop()


_HEALTHY_ENGINE = """\
#!{python}
import sys
import time
from http.server import BaseHTTPRequestHandler, HTTPServer

port = int(sys.argv[sys.argv.index("--port") + 1])
time.sleep({delay})


class Handler(BaseHTTPRequestHandler):
    def do_GET(self):
        status = 200 if self.path == "/global/health" else 404
        data = b'{{"healthy": true, "version": "stub"}}'
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(data)))
        self.end_headers()
        self.wfile.write(data)

    def log_message(self, format, *args):
        pass


HTTPServer(("127.0.0.1", port), Handler).serve_forever()
"""

_SILENT_ENGINE = """\
#!{python}
import time

time.sleep(30)
"""

_FORKING_ENGINE = """\
#!{python}
import subprocess
import sys
import time

# The child inherits stdout and stderr and outlives a plain SIGTERM to this process
subprocess.Popen([sys.executable, "-c", "import time; time.sleep(30)"])
time.sleep(30)
"""

_EXEC_ENGINE = """\
#!{python}
import subprocess
import sys
import time

mode, text = sys.argv[1], sys.argv[2]
if "bg" in text:
    subprocess.Popen([sys.executable, "-c", "import time; time.sleep(30)"])
if text.startswith("fail"):
    sys.stderr.write("boom: " + text)
    sys.exit(3)
if text.startswith("slow"):
    sys.stdout.write("partial")
    sys.stdout.flush()
    time.sleep(30)
sys.stdout.write(mode + ":" + text)
"""


def _write_script(path: Path, source: str) -> str:
    path.write_text(source)
    path.chmod(path.stat().st_mode | stat.S_IEXEC | stat.S_IXGRP | stat.S_IXOTH)
    return str(path)


@pytest.fixture
def healthy_engine(tmp_path):
    """Factory for a stub engine binary that serves /global/health after a delay."""
    if sys.platform == "win32":
        pytest.skip("Script engines need a POSIX shebang")

    def factory(delay: float = 0.0) -> str:
        source = _HEALTHY_ENGINE.format(python=sys.executable, delay=delay)
        return _write_script(tmp_path / f"engine-{delay}", source)

    return factory


@pytest.fixture
def silent_engine(tmp_path):
    """Stub engine binary that never opens a listening socket."""
    if sys.platform == "win32":
        pytest.skip("Script engines need a POSIX shebang")
    return _write_script(tmp_path / "silent-engine", _SILENT_ENGINE.format(python=sys.executable))


@pytest.fixture
def forking_engine(tmp_path):
    """Stub engine binary that starts a long-lived child and never listens."""
    if sys.platform == "win32":
        pytest.skip("Script engines need a POSIX shebang")
    return _write_script(tmp_path / "forking-engine", _FORKING_ENGINE.format(python=sys.executable))


@pytest.fixture
def exec_engine(tmp_path):
    """Stub nuwaxcode binary for the HTTP wrapper's exec mode."""
    if sys.platform == "win32":
        pytest.skip("Script engines need a POSIX shebang")
    return _write_script(tmp_path / "nuwaxcode", _EXEC_ENGINE.format(python=sys.executable))
