"""
=============================================================================
ASYNCIO TCP SERVER
=============================================================================

The listening side of the server: binds the port, accepts clients and
hands each one, wrapped in a Connection, to a coroutine.

=============================================================================
ONE THREAD, MANY CONNECTIONS
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         event loop (1 thread)                        │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   listening socket ──accept──► task: handle(conn A)  ── awaits read │
    │                    ──accept──► task: handle(conn B)  ── awaits write│
    │                    ──accept──► task: handle(conn C)  ── running     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Each connection is a task. A task gives the loop back whenever it waits
for the network (or for a file read in a worker thread), so one slow
client never blocks the others. There is no thread pool and no locking:
nothing mutable is shared between connections.

=============================================================================
SOCKET OPTIONS
=============================================================================

SO_REUSEADDR (reuse_address=True):
    Restarting the server right after stopping it does not fail with
    "Address already in use" while old sockets sit in TIME_WAIT.

limit=max_header_size:
    The StreamReader refuses to buffer a request head larger than this.
    readuntil() raises LimitOverrunError, answered with 431.

=============================================================================
SHUTDOWN
=============================================================================

SIGTERM (docker stop, systemd) and SIGINT (Ctrl+C) set the shutdown
event. The server stops accepting, gives open connections a grace period
to finish the request they are on, then cancels the rest.

=============================================================================
"""

import asyncio
import logging
import signal
from typing import Awaitable, Callable, Optional, Set, Tuple

from ..config import ServerConfig
from .connection import Connection


logger = logging.getLogger(__name__)

ConnectionHandler = Callable[[Connection], Awaitable[None]]


class SocketServer:
    """
    Accepts TCP connections on the configured host and port.

    Usage:
        async def handle(conn: Connection):
            ...

        server = SocketServer(config)
        await server.start(handle)
        await server.serve_forever()   # returns after shutdown()
    """

    def __init__(self, config: ServerConfig, shutdown_grace: float = 5.0):
        self.config = config
        self.shutdown_grace = shutdown_grace
        self._server: Optional[asyncio.AbstractServer] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._shutdown_event: Optional[asyncio.Event] = None
        self._tasks: Set[asyncio.Task] = set()
        self._signals: list = []

    @property
    def is_running(self) -> bool:
        return self._server is not None and self._server.is_serving()

    @property
    def address(self) -> Tuple[str, int]:
        """The bound (host, port); the real port when config.port is 0."""
        if self._server and self._server.sockets:
            sockname = self._server.sockets[0].getsockname()
            return sockname[0], sockname[1]
        return self.config.host, self.config.port

    @property
    def port(self) -> int:
        return self.address[1]

    @property
    def connection_count(self) -> int:
        return len(self._tasks)

    async def start(self, handler: ConnectionHandler, install_signals: bool = True) -> None:
        """
        Bind and start accepting. Returns once the socket is listening.

        Raises:
            OSError: The address could not be bound.
        """
        self._loop = asyncio.get_running_loop()
        self._shutdown_event = asyncio.Event()

        async def on_client(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
            conn = Connection(
                reader,
                writer,
                timeout=self.config.timeout,
                keep_alive_timeout=self.config.keep_alive_timeout,
                max_request_size=self.config.max_request_size,
                max_header_size=self.config.max_header_size,
            )
            logger.debug(f"[{conn.id}] Accepted connection from {conn.client_ip}:{conn.client_port}")

            task = asyncio.current_task()
            self._tasks.add(task)
            try:
                await handler(conn)
            finally:
                self._tasks.discard(task)
                await conn.close()

        try:
            self._server = await asyncio.start_server(
                on_client,
                host=self.config.host,
                port=self.config.port,
                backlog=self.config.backlog,
                limit=self.config.max_header_size,
                reuse_address=True,
            )
        except OSError as e:
            logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            raise

        if install_signals:
            self._setup_signals()

        host, port = self.address
        logger.info(f"Listening on {host}:{port}")

    def _setup_signals(self) -> None:
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                self._loop.add_signal_handler(sig, self._on_signal, sig)
                self._signals.append(sig)
            except (NotImplementedError, RuntimeError, ValueError):
                # Windows, or a loop that is not in the main thread
                logger.debug(f"Cannot install a handler for {sig.name}")

    def _on_signal(self, sig: signal.Signals) -> None:
        logger.info(f"Received {sig.name}, initiating shutdown...")
        self.shutdown()

    def _restore_signals(self) -> None:
        for sig in self._signals:
            self._loop.remove_signal_handler(sig)
        self._signals.clear()

    async def serve_forever(self) -> None:
        """Wait until shutdown() is called, then close everything."""
        if self._server is None:
            raise RuntimeError("start() must be called before serve_forever()")
        try:
            await self._shutdown_event.wait()
        finally:
            await self._cleanup()

    def shutdown(self) -> None:
        """Ask the server to stop. Callable from the loop thread only."""
        if self._shutdown_event is not None:
            self._shutdown_event.set()

    def shutdown_threadsafe(self) -> None:
        """Ask the server to stop from another thread."""
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self.shutdown)

    async def _cleanup(self) -> None:
        logger.info("Shutting down socket server...")
        self._server.close()

        if self._tasks:
            logger.info(f"Waiting for {len(self._tasks)} open connection(s)")
            _, pending = await asyncio.wait(set(self._tasks), timeout=self.shutdown_grace)
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        await self._server.wait_closed()
        self._restore_signals()
        logger.info("Socket server stopped")
