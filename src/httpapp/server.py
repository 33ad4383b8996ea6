"""
=============================================================================
HTTP SERVER
=============================================================================

Ties the socket server to an Application: reads requests from each
connection, hands them to the application, writes the responses back.

=============================================================================
ARCHITECTURE OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    HTTP SERVER ARCHITECTURE                         │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │                        ┌─────────────────┐                          │
    │                        │   HTTPServer    │                          │
    │                        │ (Orchestrator)  │                          │
    │                        └────────┬────────┘                          │
    │                                 │                                    │
    │            ┌────────────────────┴────────────────────┐              │
    │            ▼                                         ▼              │
    │    ┌──────────────┐                          ┌──────────────┐       │
    │    │ SocketServer │                          │ Application  │       │
    │    │  (asyncio)   │                          │ (middleware  │       │
    │    └──────┬───────┘                          │  + routers)  │       │
    │           │                                  └──────────────┘       │
    │           ▼                                                          │
    │    ┌──────────────┐                                                  │
    │    │  Connection  │  one task per client                             │
    │    └──────────────┘                                                  │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
REQUEST LIFECYCLE
=============================================================================

    1. Connection.read_request()  → HTTPRequest (or a parse error)
    2. Application.handle()       → HTTPResponse (never raises)
    3. Connection / Keep-Alive headers decided here
    4. Connection.send_response() → bytes on the wire
    5. keep-alive? back to 1 : close

One connection handles one request at a time, so responses leave in the
order the requests arrived even when a client pipelines them.

Parse errors are answered here, before the application sees anything,
and the connection is closed: after a malformed head there is no telling
where the next request would start.

=============================================================================
INTERVIEW QUESTIONS ABOUT THE SERVER
=============================================================================

Q: "What happens to a HEAD request?"
A: "It runs through the application like a GET, so the handler sets the
   same headers, including Content-Length. The server then writes the
   head and drops the body."

Q: "Why does a handler exception not kill the process?"
A: "Application.handle() converts anything escaping the middleware chain
   into a 500 response. The connection loop has its own last-resort
   except clause that logs and closes just that connection."

=============================================================================
"""

import asyncio
import logging
from typing import Callable, Optional

from .app import Application
from .config import ServerConfig
from .core.connection import Connection
from .core.socket_server import SocketServer
from .http.errors import HTTPParseError
from .http.response import HTTPResponse, ResponseBuilder
from .http.status_codes import status_phrase


logger = logging.getLogger(__name__)


class HTTPServer:
    """
    Serves an Application over HTTP/1.1.

    Example:
        app = build_app(config)
        server = HTTPServer(app, config)
        server.run()                  # blocks until Ctrl+C / SIGTERM
    """

    def __init__(self, app: Application, config: Optional[ServerConfig] = None):
        self.app = app
        self.config = config or app.config
        self._socket_server = SocketServer(self.config)

    @property
    def port(self) -> int:
        return self._socket_server.port

    @property
    def is_running(self) -> bool:
        return self._socket_server.is_running

    # =========================================================================
    # SERVER LIFECYCLE
    # =========================================================================

    def run(self) -> None:
        """Start the server and block until it is stopped."""
        self._setup_logging()
        try:
            asyncio.run(self.serve())
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        logger.info("Server stopped")

    async def serve(
        self,
        install_signals: bool = True,
        on_ready: Optional[Callable[["HTTPServer"], None]] = None,
    ) -> None:
        """
        Serve until shutdown() or a signal.

        on_ready is called once the socket is listening, which lets a
        test running the server in a thread learn the chosen port.
        """
        self.app.build()
        await self._socket_server.start(self._handle_connection, install_signals=install_signals)

        print(f"Server listening on http://localhost:{self.port}...", flush=True)
        if on_ready is not None:
            on_ready(self)

        await self._socket_server.serve_forever()

    def shutdown(self) -> None:
        """Stop the server from another thread."""
        self._socket_server.shutdown_threadsafe()

    def _setup_logging(self) -> None:
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)
        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.getLogger("httpapp").setLevel(level)

    # =========================================================================
    # REQUEST HANDLING
    # =========================================================================

    async def _handle_connection(self, conn: Connection) -> None:
        """The keep-alive loop for one client."""
        while True:
            try:
                try:
                    request = await conn.read_request()
                except HTTPParseError as e:
                    logger.info(f"[{conn.id}] Bad request from {conn.client_ip}: {e}")
                    await self._send_error(conn, e.status_code)
                    break

                if request is None:
                    break

                response = await self.app.handle(request)

                keep_alive = self._keep_alive(request.is_keep_alive, response)
                if keep_alive:
                    response.set_header("Connection", "keep-alive")
                    response.set_header("Keep-Alive", f"timeout={int(self.config.keep_alive_timeout)}")
                else:
                    response.set_header("Connection", "close")

                data = response.to_bytes(self.config.server_name, include_body=request.method != "HEAD")
                if not await conn.send_response(data):
                    break

                if not keep_alive:
                    break
                conn.set_keep_alive()

            except Exception as e:
                logger.exception(f"[{conn.id}] Connection error: {e}")
                break

    def _keep_alive(self, requested: bool, response: HTTPResponse) -> bool:
        if not (self.config.keep_alive and requested and self.is_running):
            return False
        return (response.get_header("Connection") or "").lower() != "close"

    async def _send_error(self, conn: Connection, status: int) -> None:
        """Answer a request the parser rejected, then let the caller close."""
        data = (ResponseBuilder(self.config.server_name)
            .status(status)
            .text(status_phrase(status))
            .close_connection()
            .to_bytes())
        await conn.send_response(data)
