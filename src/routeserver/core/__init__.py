"""
=============================================================================
CORE - Transport Layer
=============================================================================

Sockets and threads. Nothing in here knows about routes.

    socket_server.py   listening socket and accept loop
    connection.py      per-client socket, request framing, keep-alive
    thread_pool.py     bounded worker pool the connections run on

=============================================================================
"""

from .connection import Connection, ConnectionState
from .socket_server import SocketServer
from .thread_pool import ThreadPool

__all__ = [
    "SocketServer",
    "Connection",
    "ConnectionState",
    "ThreadPool",
]
