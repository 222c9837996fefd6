"""
Integration tests: a real HTTPServer on a free port, spoken to over raw
sockets.
"""

import json
import socket

import pytest
from conftest import TestServer, http_get, send_raw, split_response

from routeserver import HTTPServer, ServerConfig
from routeserver.app import create_app


class TestHelloWorld:
    """The shipped route, end to end."""

    def test_get_api(self, test_server):
        status, headers, body = split_response(http_get(test_server.port, "/api"))

        assert status == 200
        assert body == b"Hello world"
        assert headers["content-type"] == "text/plain; charset=utf-8"
        assert headers["content-length"] == "11"
        assert headers["server"] == "routeserver/1.0"

    def test_post_api_not_allowed(self, test_server):
        status, headers, body = split_response(http_get(test_server.port, "/api", method="POST"))

        assert status == 405
        assert headers["allow"] == "GET"
        assert body == b""

    def test_unknown_path(self, test_server):
        status, _, body = split_response(http_get(test_server.port, "/missing"))

        assert status == 404
        assert body == b""

    def test_head_without_route(self, test_server):
        status, headers, _ = split_response(http_get(test_server.port, "/api", method="HEAD"))

        assert status == 405
        assert headers["allow"] == "GET"

    def test_head_sends_headers_only(self, test_server):
        status, headers, body = split_response(http_get(test_server.port, "/users/7", method="HEAD"))

        assert status == 200
        assert headers["content-length"] == str(len(b'{"id": "7"}'))
        assert body == b""


class TestRouting:
    """Parameters, bodies and failures through the full stack."""

    def test_path_params(self, test_server):
        status, _, body = split_response(http_get(test_server.port, "/users/42"))

        assert status == 200
        assert json.loads(body) == {"id": "42"}

    def test_post_json(self, test_server):
        payload = b'{"name": "Ada"}'
        raw = send_raw(
            test_server.port,
            b"POST /echo HTTP/1.1\r\n"
            b"Content-Type: application/json\r\n"
            + f"Content-Length: {len(payload)}\r\n".encode()
            + b"Connection: close\r\n\r\n"
            + payload,
        )

        status, _, body = split_response(raw)
        assert status == 200
        assert json.loads(body) == {"received": {"name": "Ada"}}

    def test_handler_failure_then_recovery(self, test_server):
        status, _, body = split_response(http_get(test_server.port, "/boom"))

        assert status == 500
        assert body == b"Internal Server Error"
        assert b"secret" not in body

        status, _, body = split_response(http_get(test_server.port, "/api"))
        assert status == 200
        assert body == b"Hello world"

    def test_invalid_json_answers_400(self, test_server):
        payload = b"{oops"
        raw = send_raw(
            test_server.port,
            b"POST /echo HTTP/1.1\r\n"
            + f"Content-Length: {len(payload)}\r\n".encode()
            + b"Connection: close\r\n\r\n"
            + payload,
        )

        status, headers, body = split_response(raw)
        assert status == 400
        assert headers["content-type"] == "application/json; charset=utf-8"
        assert json.loads(body)["error"]["code"] == "BAD_REQUEST"

    def test_encoded_slash_stays_in_param(self, test_server):
        status, _, body = split_response(http_get(test_server.port, "/users/a%2Fb"))

        assert status == 200
        assert json.loads(body) == {"id": "a/b"}


class TestProtocol:
    """Wire-level behavior of the transport."""

    def test_keep_alive_serves_several_requests(self, test_server):
        with socket.create_connection(("127.0.0.1", test_server.port), timeout=5.0) as s:
            s.sendall(b"GET /api HTTP/1.1\r\nHost: x\r\n\r\n")
            first = s.recv(4096)

            s.sendall(b"GET /api HTTP/1.1\r\nHost: x\r\nConnection: close\r\n\r\n")
            second = b""
            while True:
                chunk = s.recv(4096)
                if not chunk:
                    break
                second += chunk

        assert split_response(first)[0] == 200
        assert split_response(first)[1]["connection"] == "keep-alive"
        assert split_response(second)[0] == 200
        assert split_response(second)[1]["connection"] == "close"

    def test_http10_closes(self, test_server):
        status, headers, _ = split_response(send_raw(test_server.port, b"GET /api HTTP/1.0\r\n\r\n"))

        assert status == 200
        assert headers["connection"] == "close"

    def test_reused_response_keeps_its_headers(self, test_server):
        # HTTP/1.0 first: the transport answers with Connection: close
        _, headers, _ = split_response(
            send_raw(test_server.port, b"GET /shared HTTP/1.0\r\n\r\n")
        )
        assert headers["connection"] == "close"

        # The same response object must still go out as keep-alive afterwards
        with socket.create_connection(("127.0.0.1", test_server.port), timeout=5.0) as s:
            s.sendall(b"GET /shared HTTP/1.1\r\nHost: x\r\n\r\n")
            first = s.recv(4096)
            s.sendall(b"GET /shared HTTP/1.1\r\nHost: x\r\n\r\n")
            second = s.recv(4096)

        for raw in (first, second):
            status, headers, body = split_response(raw)
            assert status == 200
            assert headers["connection"] == "keep-alive"
            assert body == b"same object every time"

    def test_malformed_request(self, test_server):
        status, headers, body = split_response(send_raw(test_server.port, b"NONSENSE\r\n\r\n"))

        assert status == 400
        assert headers["connection"] == "close"
        assert json.loads(body)["error"]["type"] == "BadRequest"

    def test_unknown_method(self, test_server):
        status, _, _ = split_response(send_raw(test_server.port, b"BREW /api HTTP/1.1\r\n\r\n"))
        assert status == 405

    def test_unsupported_version(self, test_server):
        status, _, _ = split_response(send_raw(test_server.port, b"GET /api HTTP/2.0\r\n\r\n"))
        assert status == 505

    def test_chunked_not_implemented(self, test_server):
        raw = send_raw(
            test_server.port,
            b"POST /echo HTTP/1.1\r\nTransfer-Encoding: chunked\r\n\r\n0\r\n\r\n",
        )
        assert split_response(raw)[0] == 501


class TestLifecycle:
    """Startup and shutdown."""

    def test_router_sealed_when_serving(self, test_server, router):
        assert router.sealed

    def test_request_too_large(self, router):
        config = ServerConfig(port=0, min_workers=1, max_workers=2,
                              max_request_size=1024, log_level="WARNING")
        srv = TestServer(HTTPServer(router, config))
        srv.start()
        try:
            raw = send_raw(srv.port, b"GET /api HTTP/1.1\r\nX-Big: " + b"a" * 4096 + b"\r\n\r\n")
            assert split_response(raw)[0] == 413
        finally:
            srv.stop()

    def test_stop_and_restart_fresh_app(self, config):
        for _ in range(2):
            srv = TestServer(HTTPServer(create_app(), config))
            srv.start()
            try:
                assert split_response(http_get(srv.port, "/api"))[0] == 200
            finally:
                srv.stop()


class TestStaticAndCORS:
    """The optional static file fallback and CORS headers."""

    @pytest.fixture
    def static_server(self, tmp_path):
        (tmp_path / "index.html").write_text("<h1>home</h1>")
        (tmp_path / "app.js").write_text("console.log(1);")
        config = ServerConfig(port=0, min_workers=1, max_workers=2, log_level="WARNING",
                              static_dir=str(tmp_path), cors_origin="*")
        srv = TestServer(HTTPServer(create_app(config), config))
        srv.start()
        yield srv
        srv.stop()

    def test_root_serves_index(self, static_server):
        status, headers, body = split_response(http_get(static_server.port, "/"))

        assert status == 200
        assert body == b"<h1>home</h1>"
        assert headers["content-type"] == "text/html; charset=utf-8"

    def test_file_by_path(self, static_server):
        status, headers, body = split_response(http_get(static_server.port, "/app.js"))

        assert status == 200
        assert body == b"console.log(1);"
        assert headers["content-type"] == "application/javascript; charset=utf-8"

    def test_api_route_wins(self, static_server):
        status, _, body = split_response(http_get(static_server.port, "/api"))

        assert status == 200
        assert body == b"Hello world"

    def test_missing_file(self, static_server):
        status, _, body = split_response(http_get(static_server.port, "/nope.css"))

        assert status == 404
        assert body == b""

    def test_cors_headers_on_every_response(self, static_server):
        for path in ("/api", "/nope.css"):
            _, headers, _ = split_response(http_get(static_server.port, path))
            assert headers["access-control-allow-origin"] == "*"
            assert headers["access-control-allow-methods"] == "GET, POST, OPTIONS"

    def test_preflight(self, static_server):
        status, headers, body = split_response(
            http_get(static_server.port, "/api", method="OPTIONS")
        )

        assert status == 204
        assert body == b""
        assert headers["access-control-max-age"] == "86400"
        assert headers["access-control-allow-origin"] == "*"
