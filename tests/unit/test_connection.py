"""
Unit tests for request framing on a Connection.

Uses socket.socketpair() so no port is needed.
"""

import socket

import pytest

from routeserver.core.connection import Connection, ConnectionState
from routeserver.http.request import HTTPParseError


@pytest.fixture
def pair():
    server_side, client_side = socket.socketpair()
    yield server_side, client_side
    client_side.close()
    server_side.close()


def make_connection(sock, **kwargs) -> Connection:
    kwargs.setdefault("timeout", 2.0)
    return Connection(socket=sock, address=("127.0.0.1", 50000), **kwargs)


class TestReadRequest:
    """Tests for Connection.read_request."""

    def test_reads_one_request(self, pair):
        server_side, client_side = pair
        conn = make_connection(server_side)

        client_side.sendall(b"GET /api HTTP/1.1\r\nHost: x\r\n\r\n")

        assert conn.read_request() == b"GET /api HTTP/1.1\r\nHost: x\r\n\r\n"
        assert conn.requests_handled == 1

    def test_reads_body_by_content_length(self, pair):
        server_side, client_side = pair
        conn = make_connection(server_side)

        client_side.sendall(b"POST / HTTP/1.1\r\nContent-Length: 5\r\n\r\nhel")
        client_side.sendall(b"lo")

        assert conn.read_request().endswith(b"\r\n\r\nhello")

    def test_pipelined_requests_split(self, pair):
        server_side, client_side = pair
        conn = make_connection(server_side)

        client_side.sendall(
            b"GET /a HTTP/1.1\r\n\r\n"
            b"GET /b HTTP/1.1\r\n\r\n"
        )

        assert conn.read_request() == b"GET /a HTTP/1.1\r\n\r\n"
        assert conn.read_request() == b"GET /b HTTP/1.1\r\n\r\n"

    def test_peer_closed(self, pair):
        server_side, client_side = pair
        conn = make_connection(server_side)

        client_side.close()

        assert conn.read_request() is None

    def test_oversized_head(self, pair):
        server_side, client_side = pair
        conn = make_connection(server_side, max_request_size=1024, buffer_size=256)

        client_side.sendall(b"GET / HTTP/1.1\r\nX-Big: " + b"a" * 2048)

        with pytest.raises(HTTPParseError) as exc_info:
            conn.read_request()

        assert exc_info.value.status_code == 413

    def test_oversized_declared_body(self, pair):
        server_side, client_side = pair
        conn = make_connection(server_side, max_request_size=1024)

        client_side.sendall(b"POST / HTTP/1.1\r\nContent-Length: 999999\r\n\r\n")

        with pytest.raises(HTTPParseError) as exc_info:
            conn.read_request()

        assert exc_info.value.status_code == 413

    def test_bad_content_length(self, pair):
        server_side, client_side = pair
        conn = make_connection(server_side)

        client_side.sendall(b"POST / HTTP/1.1\r\nContent-Length: lots\r\n\r\n")

        with pytest.raises(HTTPParseError) as exc_info:
            conn.read_request()

        assert exc_info.value.status_code == 400

    def test_first_request_timeout(self, pair):
        server_side, _ = pair
        conn = make_connection(server_side, timeout=0.1)

        with pytest.raises(TimeoutError):
            conn.read_request()

    def test_keep_alive_timeout_ends_quietly(self, pair):
        server_side, client_side = pair
        conn = make_connection(server_side, keep_alive_timeout=0.1)

        client_side.sendall(b"GET / HTTP/1.1\r\n\r\n")
        assert conn.read_request() is not None

        assert conn.read_request() is None


class TestSendAndClose:
    """Tests for writing and closing."""

    def test_send_response(self, pair):
        server_side, client_side = pair
        conn = make_connection(server_side)

        assert conn.send_response(b"HTTP/1.1 200 OK\r\n\r\n")
        assert client_side.recv(1024) == b"HTTP/1.1 200 OK\r\n\r\n"

    def test_close_is_idempotent(self, pair):
        server_side, _ = pair
        conn = make_connection(server_side)

        conn.close()
        conn.close()

        assert conn.state == ConnectionState.CLOSED

    def test_context_manager_closes(self, pair):
        server_side, _ = pair

        with make_connection(server_side) as conn:
            pass

        assert conn.state == ConnectionState.CLOSED
