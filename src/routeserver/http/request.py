"""
=============================================================================
HTTP REQUEST MODEL AND PARSER
=============================================================================

Turns raw request bytes from a connection into an immutable HTTPRequest,
the only thing the router ever sees.

=============================================================================
WHAT THE ROUTER RECEIVES
=============================================================================

    Raw bytes                        HTTPRequest (frozen)
    ─────────                        ────────────────────
    GET /users/42?x=1 HTTP/1.1\r\n   method="GET"
    Host: localhost\r\n      ──►     path="/users/42"
    \r\n                             headers={"host": "localhost"}
                                     query_params={"x": ("1",)}
                                     body=b""

The router never mutates a request. When a pattern captures parameters
(/users/:id), the router hands the handler a COPY carrying path_params:

    dataclasses.replace(request, path_params={"id": "42"})

Two worker threads can therefore never observe each other's state
through a shared request object.

=============================================================================
PARSER CHECKS
=============================================================================

    Oversized request         → 413 Payload Too Large
    No \r\n\r\n terminator     → 400 Bad Request
    Malformed request line    → 400 Bad Request
    Unknown method            → 405 Method Not Allowed
    HTTP/2, HTTP/0.9, ...     → 505 HTTP Version Not Supported
    ".." in the path          → 400 Bad Request
    Bad Content-Length        → 400 Bad Request
    Transfer-Encoding         → 501 Not Implemented (only Content-Length
                                framing is understood)

=============================================================================
"""

import json
import re
from dataclasses import dataclass, field
from functools import cached_property
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple
from urllib.parse import parse_qs, quote, unquote, urlparse

from .status_codes import HTTPStatus


# Standard methods (RFC 7231 + PATCH). Routes can only be registered for
# these, and the parser rejects anything else.
HTTP_METHODS = frozenset({
    "GET",
    "POST",
    "PUT",
    "DELETE",
    "PATCH",
    "HEAD",
    "OPTIONS",
    "TRACE",
    "CONNECT",
})

SUPPORTED_VERSIONS = ("HTTP/1.0", "HTTP/1.1")

DEFAULT_MAX_REQUEST_SIZE = 10 * 1024 * 1024  # 10 MB


class HTTPParseError(Exception):
    """
    Raised when request bytes cannot be turned into an HTTPRequest.

    Carries the status code the server should answer with before it
    closes the connection.
    """

    def __init__(self, message: str, status_code: int = HTTPStatus.BAD_REQUEST):
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class HTTPRequest:
    """
    An immutable, parsed HTTP request.

    Attributes:
        method:         Upper-case verb ("GET")
        path:           URL-decoded path without query string ("/api")
        version:        "HTTP/1.1" or "HTTP/1.0"
        headers:        Read-only mapping with lower-case names
        query_params:   Read-only mapping name → tuple of values
        body:           Raw body bytes (Content-Length framed)
        path_params:    Values captured by the route pattern (:id, *rest)
        client_address: (ip, port) of the peer, for logging
        raw_path:       Path as sent, percent-encoding kept. The router
                        splits this one, so "/users/a%2Fb" is two segments.
                        Derived from path when not given.
    """

    method: str
    path: str
    version: str = "HTTP/1.1"
    headers: Mapping[str, str] = field(default_factory=dict)
    query_params: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    body: bytes = b""
    path_params: Mapping[str, str] = field(default_factory=dict)
    client_address: Tuple[str, int] = ("", 0)
    raw_path: str = ""

    def __post_init__(self):
        # Freeze the containers too; a frozen dataclass only stops
        # attribute assignment, not dict mutation.
        object.__setattr__(self, "method", self.method.upper())
        object.__setattr__(
            self,
            "headers",
            MappingProxyType({k.lower(): v for k, v in self.headers.items()}),
        )
        object.__setattr__(
            self,
            "query_params",
            MappingProxyType({k: tuple(v) for k, v in self.query_params.items()}),
        )
        object.__setattr__(self, "path_params", MappingProxyType(dict(self.path_params)))
        if not self.raw_path:
            object.__setattr__(self, "raw_path", quote(self.path, safe="/"))

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def content_type(self) -> Optional[str]:
        """Content-Type without parameters ("application/json"), or None."""
        ct = self.headers.get("content-type", "")
        return ct.split(";")[0].strip().lower() or None

    @property
    def content_length(self) -> int:
        """Content-Length as int, 0 when missing or invalid."""
        try:
            return int(self.headers.get("content-length", 0))
        except ValueError:
            return 0

    @property
    def host(self) -> str:
        return self.headers.get("host", "")

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")

    @property
    def is_json(self) -> bool:
        return self.content_type == "application/json"

    @cached_property
    def json(self) -> Any:
        """
        The body decoded as JSON (None for an empty body).

        cached_property writes straight into the instance __dict__, so it
        works on a frozen dataclass and the body is decoded once.

        A malformed body is a client error, but dispatch() turns anything a
        handler lets escape into a 500. Handlers that want to answer 400
        catch it:

            try:
                data = request.json
            except HTTPParseError as e:
                return json_error(e.status_code, "Invalid JSON body")

        Raises:
            HTTPParseError: If the body is not valid JSON (status_code 400).
        """
        if not self.body:
            return None
        try:
            return json.loads(self.body.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise HTTPParseError(f"Invalid JSON body: {e}")

    @property
    def is_keep_alive(self) -> bool:
        """
        Whether the connection should stay open after the response.

        HTTP/1.1 keeps alive unless "Connection: close";
        HTTP/1.0 closes unless "Connection: keep-alive".
        """
        connection = self.headers.get("connection", "").lower()
        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"

    # =========================================================================
    # ACCESSORS
    # =========================================================================

    def get_header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)

    def get_query(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """First value of a query parameter."""
        values = self.query_params.get(name, ())
        return values[0] if values else default

    def get_query_list(self, name: str) -> list[str]:
        """All values of a query parameter (?id=1&id=2 → ["1", "2"])."""
        return list(self.query_params.get(name, ()))


class RequestParser:
    """
    Parses one complete HTTP/1.x request (as framed by Connection).

    The regexes are compiled once at class load:

        REQUEST_LINE_PATTERN  ^([A-Z]+) ([^ ]+) (HTTP/\\d\\.\\d)$
                                 method    target    version

        HEADER_PATTERN        ^([^:]+):\\s*(.*)$
                                 name        value
    """

    VALID_METHODS = HTTP_METHODS

    REQUEST_LINE_PATTERN = re.compile(r"^([A-Z]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")

    def __init__(self, max_request_size: int = DEFAULT_MAX_REQUEST_SIZE):
        self.max_request_size = max_request_size

    def parse(self, data: bytes, client_address: Tuple[str, int] = ("", 0)) -> HTTPRequest:
        """
        Parse raw request bytes.

        Args:
            data: Request bytes, headers plus Content-Length body.
            client_address: Peer (ip, port), copied onto the request.

        Returns:
            The parsed, immutable HTTPRequest.

        Raises:
            HTTPParseError: If the request is malformed or too large.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(
                f"Request too large: {len(data)} bytes",
                status_code=HTTPStatus.PAYLOAD_TOO_LARGE,
            )

        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        # Latin-1 maps every byte, so decoding the head can't fail
        header_section = data[:header_end].decode("latin-1")
        body = data[header_end + 4:]

        lines = header_section.split("\r\n")
        method, raw_path, query_params, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        if "transfer-encoding" in headers:
            raise HTTPParseError(
                "Transfer-Encoding is not supported",
                status_code=HTTPStatus.NOT_IMPLEMENTED,
            )

        content_length = self._content_length(headers)
        if len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )

        return HTTPRequest(
            method=method,
            path=unquote(raw_path),
            version=version,
            headers=headers,
            query_params=query_params,
            body=body[:content_length],
            client_address=client_address,
            raw_path=raw_path,
        )

    def _parse_request_line(self, line: str) -> Tuple[str, str, Dict[str, list], str]:
        """
        Split "GET /users/42?page=1 HTTP/1.1" into its parts.

        Returns:
            (method, raw_path, query_params, version). raw_path keeps its
            percent-encoding; segments are decoded one by one when routed.
        """
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line!r}")

        method, target, version = match.groups()

        if method not in self.VALID_METHODS:
            raise HTTPParseError(
                f"Invalid method: {method}",
                status_code=HTTPStatus.METHOD_NOT_ALLOWED,
            )

        if version not in SUPPORTED_VERSIONS:
            raise HTTPParseError(
                f"Unsupported HTTP version: {version}",
                status_code=HTTPStatus.HTTP_VERSION_NOT_SUPPORTED,
            )

        parsed = urlparse(target)
        raw_path = parsed.path or "/"
        query_params = parse_qs(parsed.query, keep_blank_values=True)

        # "GET /../../etc/passwd" never reaches a handler
        if ".." in unquote(raw_path).split("/"):
            raise HTTPParseError("Invalid path: contains ..")

        return method, raw_path, query_params, version

    def _parse_headers(self, lines: Sequence[str]) -> Dict[str, str]:
        """
        Parse header lines into a dict with lower-case names.

        Repeated headers are joined with ", " (RFC 7230 section 3.2.2);
        obsolete folded continuation lines are appended to the previous
        value; lines without a colon are skipped.
        """
        headers: Dict[str, str] = {}
        current_name = None

        for line in lines:
            if not line:
                continue

            if line[0] in (" ", "\t"):
                if current_name is not None:
                    headers[current_name] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue

            name = match.group(1).strip().lower()
            value = match.group(2).strip()
            current_name = name

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers

    @staticmethod
    def _content_length(headers: Mapping[str, str]) -> int:
        raw = headers.get("content-length")
        if raw is None:
            return 0
        try:
            length = int(raw)
        except ValueError:
            raise HTTPParseError(f"Invalid Content-Length: {raw!r}")
        if length < 0:
            raise HTTPParseError(f"Invalid Content-Length: {raw!r}")
        return length


def parse_request(
    data: bytes,
    client_address: Tuple[str, int] = ("", 0),
    max_size: int = DEFAULT_MAX_REQUEST_SIZE,
) -> HTTPRequest:
    """One-shot helper around RequestParser."""
    return RequestParser(max_request_size=max_size).parse(data, client_address)
