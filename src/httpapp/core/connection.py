"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

Wraps one accepted client (an asyncio StreamReader/StreamWriter pair)
with an API that reads whole HTTP requests and writes whole responses.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL
=============================================================================

TCP does not preserve message boundaries. One request may arrive in
several pieces, and two pipelined requests may arrive in one:

    Client sends:                     Server might receive:
        GET / HTTP/1.1\\r\\n              "GET / HT"
        Host: localhost\\r\\n             "TP/1.1\\r\\nHost: localhost\\r\\n\\r\\nGET /a"
        \\r\\n                            ...

So the connection reads up to the blank line that ends the head, parses
the head, and then reads exactly Content-Length more bytes. Anything
after that stays in the StreamReader buffer for the next request.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         read_request()                              │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   readuntil(b"\\r\\n\\r\\n")   ── timeout ──►  None (close quietly)     │
    │        │                  ── too long ──►  HTTPParseError(431)      │
    │        │                  ── EOF ──────►  None                      │
    │        ▼                                                             │
    │   parser.parse_head(head)  ── bad ──────►  HTTPParseError(400/501)  │
    │        │                                                             │
    │        ▼                                                             │
    │   readexactly(content_length)                                        │
    │        │                                                             │
    │        ▼                                                             │
    │   HTTPRequest (with body)                                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
INTERVIEW QUESTIONS ABOUT CONNECTIONS
=============================================================================

Q: "How do you notice that the client went away?"
A: "On write. transport.is_closing() is checked first, and drain()
   raises ConnectionResetError or BrokenPipeError when the peer reset
   the connection. In both cases the connection is abandoned and no
   more requests are read from it."

Q: "Why a shorter timeout between requests?"
A: "An idle kept-alive connection costs a socket and a coroutine. A
   client that wants to send another request does so quickly; one that
   does not should not hold resources for the full request timeout."

=============================================================================
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from ..http.errors import HTTPParseError
from ..http.request import HTTPRequest, RequestParser
from ..http.status_codes import HTTPStatus


logger = logging.getLogger(__name__)

HEAD_TERMINATOR = b"\r\n\r\n"


class ConnectionState(Enum):
    """Connection lifecycle states, for logging and cleanup."""
    NEW = "new"
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    KEEP_ALIVE = "keep_alive"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class Connection:
    """
    One client connection.

    Attributes:
        reader: Stream the request bytes come from.
        writer: Stream the response bytes go to.
        address: Client's (ip, port) tuple.
        id: Short identifier used in log lines.
        requests_handled: Responses written on this connection so far.
    """

    reader: asyncio.StreamReader
    writer: asyncio.StreamWriter
    address: Tuple[str, int] = ("", 0)

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)
    requests_handled: int = 0

    timeout: Optional[float] = 30.0
    keep_alive_timeout: float = 5.0
    max_request_size: int = 10 * 1024 * 1024
    max_header_size: int = 16 * 1024

    _parser: RequestParser = field(init=False, repr=False)

    def __post_init__(self):
        self._parser = RequestParser(max_request_size=self.max_request_size)
        if not self.address or not self.address[0]:
            peer = self.writer.get_extra_info("peername")
            if peer:
                self.address = (peer[0], peer[1])

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def client_port(self) -> int:
        return self.address[1]

    @property
    def age(self) -> float:
        return time.time() - self.created_at

    @property
    def is_closed(self) -> bool:
        return self.state == ConnectionState.CLOSED or self.writer.is_closing()

    # =========================================================================
    # READING
    # =========================================================================

    async def read_request(self) -> Optional[HTTPRequest]:
        """
        Read and parse the next request.

        Returns:
            The request, or None when the client closed the connection or
            stayed idle past the timeout.

        Raises:
            HTTPParseError: The bytes are not an acceptable request. The
                caller answers with its status and closes.
        """
        timeout = self.keep_alive_timeout if self.requests_handled else self.timeout
        self.state = ConnectionState.READING

        try:
            head = await asyncio.wait_for(self._read_head(), timeout)
        except asyncio.TimeoutError:
            logger.debug(f"[{self.id}] Timed out waiting for a request")
            return None
        except asyncio.IncompleteReadError as e:
            if e.partial.strip():
                logger.debug(f"[{self.id}] Client closed mid-request")
            return None
        except asyncio.LimitOverrunError:
            raise HTTPParseError("Request header fields too large", HTTPStatus.REQUEST_HEADER_FIELDS_TOO_LARGE)
        except (ConnectionResetError, BrokenPipeError):
            return None

        if len(head) > self.max_header_size:
            raise HTTPParseError("Request header fields too large", HTTPStatus.REQUEST_HEADER_FIELDS_TOO_LARGE)

        request = self._parser.parse_head(head, self.address)

        length = request.content_length
        if length > self.max_request_size:
            raise HTTPParseError(
                f"Request body too large: {length} bytes (max: {self.max_request_size})",
                HTTPStatus.PAYLOAD_TOO_LARGE,
            )

        if length:
            try:
                request.body = await asyncio.wait_for(self.reader.readexactly(length), self.timeout)
            except asyncio.IncompleteReadError:
                raise HTTPParseError("Incomplete request body")
            except asyncio.TimeoutError:
                raise HTTPParseError("Request body timeout", HTTPStatus.REQUEST_TIMEOUT)

        self.last_activity = time.time()
        self.state = ConnectionState.PROCESSING
        return request

    async def _read_head(self) -> bytes:
        # A bare CRLF pair between requests is not a request
        while True:
            head = await self.reader.readuntil(HEAD_TERMINATOR)
            if head.strip():
                return head

    # =========================================================================
    # WRITING
    # =========================================================================

    async def send_response(self, data: bytes) -> bool:
        """
        Write response bytes and wait until they are flushed.

        Returns:
            True if the write succeeded, False if the client is gone.
        """
        if self.writer.is_closing():
            logger.debug(f"[{self.id}] Client gone before the response was written")
            return False

        self.state = ConnectionState.WRITING
        try:
            self.writer.write(data)
            await self.writer.drain()
        except (ConnectionResetError, BrokenPipeError) as e:
            logger.debug(f"[{self.id}] Send failed: {e}")
            return False

        self.last_activity = time.time()
        self.requests_handled += 1
        return True

    def set_keep_alive(self) -> None:
        self.state = ConnectionState.KEEP_ALIVE

    # =========================================================================
    # CLOSING
    # =========================================================================

    async def close(self) -> None:
        """Close the transport and wait for it to finish. Safe to call twice."""
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except (ConnectionResetError, BrokenPipeError):
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.requests_handled} requests")

    async def __aenter__(self) -> "Connection":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        await self.close()
        return False
