"""
=============================================================================
CLIENT CONNECTION
=============================================================================

Wraps one accepted socket and frames the byte stream into complete
HTTP/1.x requests.

=============================================================================
FRAMING
=============================================================================

TCP preserves order, not message boundaries. A request may arrive in
several recv() chunks, and one chunk may carry the tail of one request
plus the start of the next (pipelining):

    recv() #1   "GET /api HTT"
    recv() #2   "P/1.1\\r\\nHost: x\\r\\n\\r\\nGET /us"
                                          └── kept in _buffer for the
                                              next read_request()

read_request() therefore:

    1. reads until the head terminator \\r\\n\\r\\n is buffered
    2. takes Content-Length from the head (0 when absent)
    3. reads until the body is complete
    4. returns exactly one request, leaving any extra bytes buffered

The size limit is enforced while buffering, so a client streaming an
endless head is cut off at max_request_size with a 413.

=============================================================================
LIFECYCLE
=============================================================================

    NEW ──► READING ──► PROCESSING ──► WRITING ──► KEEP_ALIVE ──┐
     │         │                          │            │        │
     │         ▼                          ▼            └────────┘
     └─────► CLOSING ◄────────────────────┘          (next request)
               │
               ▼
             CLOSED

=============================================================================
"""

import logging
import socket
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from ..http.request import HTTPParseError
from ..http.status_codes import HTTPStatus


logger = logging.getLogger(__name__)

HEAD_TERMINATOR = b"\r\n\r\n"


class ConnectionState(Enum):
    """Where a connection is in its lifecycle; shown in debug logs."""

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

    The first request is read with `timeout`; follow-up requests on a
    kept-alive connection use the shorter `keep_alive_timeout`, and an
    idle client hitting that timeout simply ends the connection.

    Attributes:
        socket: The accepted client socket.
        address: Peer (ip, port).
        id: Short random id that prefixes every log line.
        requests_handled: Requests read so far on this connection.
    """

    socket: socket.socket
    address: Tuple[str, int]

    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    state: ConnectionState = ConnectionState.NEW
    last_activity: float = field(default_factory=time.time)
    requests_handled: int = 0

    buffer_size: int = 8192
    timeout: Optional[float] = 30.0
    keep_alive_timeout: float = 5.0
    max_request_size: int = 10 * 1024 * 1024

    _buffer: bytes = field(default=b"", repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        self.socket.settimeout(self.timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0]

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self) -> Optional[bytes]:
        """
        Read exactly one request (head plus Content-Length body).

        Returns:
            The request bytes, or None when the client closed the
            connection or went idle between keep-alive requests.

        Raises:
            HTTPParseError: 413 when the request exceeds max_request_size,
                400 when Content-Length is not a non-negative integer.
            TimeoutError: The first request did not arrive in time.
        """
        self.state = ConnectionState.READING
        self.last_activity = time.time()

        if self.requests_handled > 0:
            self.socket.settimeout(self.keep_alive_timeout)

        try:
            while HEAD_TERMINATOR not in self._buffer:
                if not self._fill():
                    return None

            header_end = self._buffer.find(HEAD_TERMINATOR)
            body_start = header_end + len(HEAD_TERMINATOR)
            content_length = self._content_length(self._buffer[:header_end])

            if body_start + content_length > self.max_request_size:
                raise HTTPParseError(
                    f"Request too large: {body_start + content_length} bytes",
                    status_code=HTTPStatus.PAYLOAD_TOO_LARGE,
                )

            while len(self._buffer) - body_start < content_length:
                if not self._fill():
                    # Peer closed mid-body; the parser reports the short body
                    break

            request_end = body_start + content_length
            data = self._buffer[:request_end]
            self._buffer = self._buffer[request_end:]

            self.requests_handled += 1
            self.last_activity = time.time()
            return data

        except socket.timeout:
            if self.requests_handled > 0:
                logger.debug(f"[{self.id}] Keep-alive timeout")
                return None
            raise TimeoutError("Request read timeout")

        finally:
            if self.state != ConnectionState.CLOSED:
                self.socket.settimeout(self.timeout)

    def _fill(self) -> bool:
        """
        Append one recv() chunk to the buffer.

        Returns:
            False if the peer closed the connection.
        """
        try:
            chunk = self.socket.recv(self.buffer_size)
        except (ConnectionResetError, BrokenPipeError):
            return False

        if not chunk:
            return False

        self._buffer += chunk
        self.last_activity = time.time()

        if len(self._buffer) > self.max_request_size:
            raise HTTPParseError(
                f"Request too large: more than {self.max_request_size} bytes",
                status_code=HTTPStatus.PAYLOAD_TOO_LARGE,
            )
        return True

    @staticmethod
    def _content_length(head: bytes) -> int:
        """
        Content-Length from a raw head, 0 when absent.

        Needed before the head is parsed, to know how much body to read.
        """
        for line in head.decode("latin-1").split("\r\n")[1:]:
            name, sep, value = line.partition(":")
            if sep and name.strip().lower() == "content-length":
                try:
                    length = int(value.strip())
                except ValueError:
                    raise HTTPParseError(f"Invalid Content-Length: {value.strip()!r}")
                if length < 0:
                    raise HTTPParseError(f"Invalid Content-Length: {length}")
                return length
        return 0

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_response(self, data: bytes) -> bool:
        """
        Write a serialized response with sendall().

        Returns:
            True on success, False if the client has gone away.
        """
        self.state = ConnectionState.WRITING
        try:
            self.socket.sendall(data)
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False
        self.last_activity = time.time()
        return True

    def set_keep_alive(self):
        self.state = ConnectionState.KEEP_ALIVE

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Shut down the write side, drain briefly, then close. Idempotent.

        Draining keeps unread client bytes from turning our close into a
        RST, which could discard the response we just sent.
        """
        if self.state == ConnectionState.CLOSED:
            return
        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass

        try:
            self.socket.settimeout(0.5)
            while self.socket.recv(1024):
                pass
        except OSError:
            pass

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Closed after {self.requests_handled} requests")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
