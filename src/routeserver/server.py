"""
=============================================================================
HTTP SERVER
=============================================================================

Glues the transport to a Router:

    ┌─────────────────────────────────────────────────────────────────────┐
    │   SocketServer ──accept──► HTTPServer._handle_connection            │
    │                                  │                                  │
    │                                  │ ThreadPool.submit (full → 503)   │
    │                                  ▼                                  │
    │                            _process_connection  (worker thread)     │
    │                                  │                                  │
    │              ┌───────────────────┴───────── keep-alive loop ──┐     │
    │              │  Connection.read_request()                     │     │
    │              │  RequestParser.parse()      error → 4xx/5xx,   │     │
    │              │                                 close          │     │
    │              │  Router.dispatch()          never raises       │     │
    │              │  Connection.send_response()                    │     │
    │              │  access log line                               │     │
    │              └────────────────────────────────────────────────┘     │
    └─────────────────────────────────────────────────────────────────────┘

The server owns no routes. It is handed a Router, seals it before the
first connection is accepted, and from then on only calls dispatch().

=============================================================================
"""

import logging
import time
from dataclasses import replace
from typing import Optional

from .accesslog import AccessLogger
from .config import ServerConfig
from .cors import CORSPolicy
from .core import Connection, ConnectionState, SocketServer, ThreadPool
from .http import (
    HTTPParseError,
    HTTPRequest,
    HTTPResponse,
    HTTPStatus,
    RequestParser,
    Router,
    error_response,
)


logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

SHUTDOWN_DRAIN_TIMEOUT = 30.0


class HTTPServer:
    """
    Threaded HTTP/1.1 server dispatching every request to one Router.

        router = Router()
        router.register("GET", "/api", hello)

        server = HTTPServer(router, ServerConfig(port=18080))
        server.run()        # blocks until SIGINT / SIGTERM / shutdown()

    For tests, run() can be started on a background thread; use
    wait_until_ready() and .address to find the bound port, and
    shutdown() to stop it.
    """

    def __init__(self, router: Router, config: Optional[ServerConfig] = None):
        """
        Raises:
            ValueError: The configuration is invalid.
        """
        self.router = router
        self.config = config or ServerConfig()
        self.config.validate()

        self._socket_server = SocketServer(self.config)
        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
            queue_size=self.config.queue_size,
        )
        self._parser = RequestParser(max_request_size=self.config.max_request_size)
        self._access_log = AccessLogger(log_format=self.config.log_format)
        self._cors = CORSPolicy.from_config(self.config)
        self._running = False

    @property
    def address(self):
        """(host, port) actually bound; meaningful once the server is ready."""
        return self._socket_server.address

    @property
    def is_running(self) -> bool:
        return self._running

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def run(self, host: Optional[str] = None, port: Optional[int] = None):
        """
        Serve until shut down. Blocks.

        Args:
            host: Override config.host.
            port: Override config.port (0 picks a free port).

        Raises:
            OSError: The address could not be bound.
        """
        if host is not None:
            self.config.host = host
        if port is not None:
            self.config.port = port
            self.config.validate()

        self._setup_logging()

        # Registration is over: from here on the table is read-only and
        # shared by every worker.
        self.router.seal()

        self._running = True
        self._thread_pool.start()

        logger.info(
            f"Starting HTTP server on {self.config.host}:{self.config.port} "
            f"with {len(self.router)} routes"
        )
        self._print_startup_banner()

        try:
            self._socket_server.start(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def shutdown(self):
        """Ask a running server to stop; run() returns once it has."""
        self._socket_server.shutdown()

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        return self._socket_server.wait_until_ready(timeout)

    def _setup_logging(self):
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)
        logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
        logging.getLogger("routeserver").setLevel(level)

    def _print_startup_banner(self):
        print()
        print("=" * 64)
        print(f"  {self.config.server_name} running")
        print(f"  http://{self.config.host}:{self.config.port}")
        print(f"  Workers: {self.config.min_workers}-{self.config.max_workers} threads")
        print("  Press Ctrl+C to stop")
        print("=" * 64)
        self.router.print_routes()

    def _shutdown(self):
        logger.info("Shutting down server...")
        self._running = False
        tasks = self._thread_pool.stats["tasks"]
        logger.info(
            f"Connections handled: {tasks['completed']} completed, "
            f"{tasks['failed']} failed, {tasks['queued']} queued"
        )
        self._thread_pool.shutdown(wait=True, timeout=SHUTDOWN_DRAIN_TIMEOUT)
        logger.info("Server stopped")

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        """Runs on the accept thread: hand the connection to a worker."""
        try:
            submitted = self._thread_pool.submit(
                self._process_connection,
                args=(conn,),
                timeout=self.config.timeout,
                block=False,
            )
        except RuntimeError:
            submitted = False

        if not submitted:
            logger.warning(f"[{conn.id}] Thread pool full, rejecting connection")
            self._send_error(conn, HTTPStatus.SERVICE_UNAVAILABLE, "Server overloaded", time.time())
            conn.close()

    def _process_connection(self, conn: Connection):
        """
        Keep-alive loop for one connection (worker thread).

        Any failure here ends this connection only; the worker goes back
        to the pool.
        """
        with conn:
            while self._running:
                try:
                    raw_request = conn.read_request()
                except HTTPParseError as e:
                    self._send_error(conn, e.status_code, str(e), time.time())
                    break
                except TimeoutError:
                    self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT, "Request timeout", time.time())
                    break
                except OSError as e:
                    logger.debug(f"[{conn.id}] Read failed: {e}")
                    break

                if raw_request is None:
                    break

                started = time.time()
                try:
                    request = self._parser.parse(raw_request, conn.address)
                except HTTPParseError as e:
                    logger.debug(f"[{conn.id}] Bad request: {e}")
                    self._send_error(conn, e.status_code, str(e), started)
                    break

                conn.state = ConnectionState.PROCESSING
                try:
                    response = self.router.dispatch(request)
                    keep_alive = self.config.keep_alive and request.is_keep_alive and self._running
                    sent = self._send(conn, request, response, keep_alive, started)
                except Exception:
                    logger.exception(f"[{conn.id}] Connection error")
                    break

                if not sent or not keep_alive:
                    break
                conn.set_keep_alive()

    def _send(self, conn: Connection, request: HTTPRequest, response: HTTPResponse,
              keep_alive: bool, started: float) -> bool:
        # The handler may hand out the same response object to every request
        headers = dict(response.headers)
        if self._cors is not None:
            for name, value in self._cors.headers(request.get_header("origin")).items():
                headers.setdefault(name, value)
        if keep_alive:
            headers.setdefault("Connection", "keep-alive")
            headers.setdefault("Keep-Alive", f"timeout={int(self.config.keep_alive_timeout)}")
        else:
            headers["Connection"] = "close"
        response = replace(response, headers=headers)

        data = response.to_bytes(self.config.server_name)
        if request.method == "HEAD" and response.body:
            data = data[:-len(response.body)]

        sent = conn.send_response(data)
        self._access_log.log(
            f"{conn.id}-{conn.requests_handled}",
            conn.client_ip,
            request,
            response.status,
            len(response.body),
            started,
        )
        return sent

    def _send_error(self, conn: Connection, status: int, message: str, started: float):
        """Answer a request that never reached the router."""
        response = error_response(status, message)
        conn.send_response(response.to_bytes(self.config.server_name))
        self._access_log.log(
            f"{conn.id}-{conn.requests_handled}",
            conn.client_ip,
            None,
            status,
            len(response.body),
            started,
        )
