"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

The networking plumbing underneath the application.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         SOCKET SERVER                                │
    │  ─────────────────────────────────────────────────────────────────  │
    │  • asyncio.start_server on host:port                                 │
    │  • One task per accepted client                                      │
    │  • SIGTERM / SIGINT trigger a graceful shutdown                      │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ Wraps each client
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          CONNECTION                                  │
    │  ─────────────────────────────────────────────────────────────────  │
    │  • Reads one complete request at a time (head, then body)            │
    │  • Writes responses and notices a vanished client                    │
    │  • Tracks state: NEW → READING → PROCESSING → WRITING → KEEP_ALIVE  │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .connection import Connection, ConnectionState
from .socket_server import SocketServer

__all__ = [
    "Connection",
    "ConnectionState",
    "SocketServer",
]
