"""
pytest configuration and fixtures.
"""

import asyncio
import random
import socket
import threading
from pathlib import Path
from typing import Generator, List, Optional, Tuple

import pytest

# Add src to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from httpapp import Application, HTTPServer, ServerConfig, build_app
from httpapp.http import HTTPRequest, HTTPResponse, parse_request
from httpapp.middleware import MiddlewarePipeline


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /posts/new?draft=1&tag=a&tag=b HTTP/1.1\r\n"
        b"Host: localhost:5001\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: text/html\r\n"
        b"Cookie: luckyNumber=42; things=j%3A%5B%22Mouse%22%5D\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request with a form body."""
    body = b"title=Hello&content=First+post"
    head = (
        b"POST /posts HTTP/1.1\r\n"
        b"Host: localhost:5001\r\n"
        b"Content-Type: application/x-www-form-urlencoded\r\n"
    )
    return (
        head
        + f"Content-Length: {len(body)}\r\n".encode()
        + b"Connection: close\r\n\r\n"
        + body
    )


@pytest.fixture
def public_dir(tmp_path: Path) -> Path:
    """A small static root."""
    root = tmp_path / "public"
    (root / "css").mkdir(parents=True)
    (root / "css" / "style.css").write_text("body { color: red; }")
    (root / "hello.txt").write_text("static hello")
    (root / "docs").mkdir()
    (root / "docs" / "index.html").write_text("<h1>docs</h1>")
    (root / ".secret").write_text("hidden")
    (tmp_path / "outside.txt").write_text("outside the root")
    return root


@pytest.fixture
def config(public_dir: Path) -> ServerConfig:
    """Test configuration: bundled templates, temporary public dir."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,  # Let the OS pick a free port
        public_dir=public_dir,
        timeout=5.0,
        keep_alive_timeout=2.0,
        log_level="WARNING",
    )


@pytest.fixture
def app(config: ServerConfig) -> Application:
    """The website, with a seeded lucky-number generator."""
    return build_app(config, rng=random.Random(1234))


def make_request(
    method: str = "GET",
    path: str = "/",
    headers: Optional[dict] = None,
    body: bytes = b"",
) -> HTTPRequest:
    """Build a request the way the server would, from raw bytes."""
    headers = dict(headers or {})
    if body and "Content-Length" not in headers:
        headers["Content-Length"] = str(len(body))
    lines = [f"{method} {path} HTTP/1.1", "Host: localhost"]
    lines += [f"{name}: {value}" for name, value in headers.items()]
    raw = ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1") + body
    return parse_request(raw, ("127.0.0.1", 50000))


def dispatch(app: Application, method: str = "GET", path: str = "/", **kwargs) -> HTTPResponse:
    """Run one request through an application synchronously."""
    return asyncio.run(app.handle(make_request(method, path, **kwargs)))


def run_chain(request: HTTPRequest, *stages, response: Optional[HTTPResponse] = None):
    """
    Run stages in a pipeline.

    Returns (response, outcome): outcome is "final" when every stage passed
    control on, the error when one reached the end, None when a stage
    answered.
    """
    outcome = {}

    async def final(request, response):
        outcome["result"] = "final"

    async def final_error(error, request, response):
        outcome["result"] = error

    response = response if response is not None else HTTPResponse()
    chain = MiddlewarePipeline().use(*stages).wrap(final, final_error)
    asyncio.run(chain(request, response))
    return response, outcome.get("result")


def set_cookie_headers(response: HTTPResponse) -> List[str]:
    """The Set-Cookie header lines a response would write."""
    head = response.to_bytes(include_body=False).decode("latin-1")
    return [line.split(": ", 1)[1] for line in head.split("\r\n") if line.lower().startswith("set-cookie:")]


class LiveServer:
    """Runs an HTTPServer on its own event loop in a background thread."""

    def __init__(self, server: HTTPServer):
        self.server = server
        self.port: int = 0
        self._ready = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def _run(self):
        def on_ready(server: HTTPServer):
            self.port = server.port
            self._ready.set()

        asyncio.run(self.server.serve(install_signals=False, on_ready=on_ready))

    def start(self):
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()
        if not self._ready.wait(timeout=5.0):
            raise RuntimeError("Server failed to start")

    def stop(self):
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=10.0)

    def connect(self) -> socket.socket:
        sock = socket.create_connection(("127.0.0.1", self.port), timeout=5.0)
        return sock

    def request(self, raw: bytes) -> bytes:
        """Send raw bytes on a fresh connection; read until the server closes."""
        with self.connect() as sock:
            sock.sendall(raw)
            return read_until_closed(sock)


def read_until_closed(sock: socket.socket) -> bytes:
    chunks = []
    while True:
        chunk = sock.recv(65536)
        if not chunk:
            break
        chunks.append(chunk)
    return b"".join(chunks)


def read_response(sock: socket.socket, buffer: bytes = b"") -> Tuple[bytes, bytes, bytes]:
    """
    Read one response with a Content-Length body from a kept-alive socket.

    Returns (head, body, leftover bytes of the next response).
    """
    while b"\r\n\r\n" not in buffer:
        chunk = sock.recv(65536)
        if not chunk:
            raise ConnectionError("connection closed before a full response head")
        buffer += chunk

    head, rest = buffer.split(b"\r\n\r\n", 1)
    length = 0
    for line in head.split(b"\r\n")[1:]:
        name, _, value = line.partition(b":")
        if name.strip().lower() == b"content-length":
            length = int(value.strip())

    while len(rest) < length:
        chunk = sock.recv(65536)
        if not chunk:
            raise ConnectionError("connection closed before the full body")
        rest += chunk

    return head, rest[:length], rest[length:]


@pytest.fixture
def live_server(app: Application, config: ServerConfig) -> Generator[LiveServer, None, None]:
    """The website on a real socket."""
    server = LiveServer(HTTPServer(app, config))
    server.start()
    yield server
    server.stop()
