"""
=============================================================================
HTTP RESPONSE MODEL AND SERIALIZATION
=============================================================================

What a handler returns and what the server writes back to the socket.

=============================================================================
RESPONSE ON THE WIRE
=============================================================================

    HTTPResponse(status=200,                  HTTP/1.1 200 OK\r\n
                 headers={"Content-Type":     Content-Type: text/plain; ...\r\n
                          "text/plain; ..."}, Content-Length: 11\r\n
                 body=b"Hello world")  ──►    Date: Sat, 17 Oct 2026 ...\r\n
                                              Server: routeserver/1.0\r\n
                                              \r\n
                                              Hello world

to_bytes() fills in Content-Length, Date and Server when the handler did
not set them. The transport adds Connection / Keep-Alive.

=============================================================================
ROUTER RESPONSES
=============================================================================

The router answers by itself in three cases, always with an empty body
or a generic one, never with internal error text:

    404  no route matches the path          (empty body)
    405  path matches, method doesn't       (empty body, Allow header)
    500  handler raised                     ("Internal Server Error")

=============================================================================
"""

import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional, Union

from .status_codes import HTTPStatus, reason_phrase


DEFAULT_SERVER_NAME = "routeserver/1.0"

TEXT_PLAIN = "text/plain; charset=utf-8"
APPLICATION_JSON = "application/json; charset=utf-8"


@dataclass
class HTTPResponse:
    """
    A response produced by a handler.

    status may be an HTTPStatus member or a plain int; the router replaces
    anything outside [100, 599] before the response leaves dispatch().
    """

    status: int = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        """e.g. "HTTP/1.1 404 Not Found"."""
        return f"{self.version} {int(self.status)} {reason_phrase(self.status)}"

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        """Set a header; returns self for chaining."""
        self.headers[name] = value
        return self

    def set_body(self, body: Union[str, bytes]) -> "HTTPResponse":
        """Set the body; str is encoded as UTF-8."""
        self.body = body.encode("utf-8") if isinstance(body, str) else body
        return self

    def to_bytes(self, server_name: str = DEFAULT_SERVER_NAME) -> bytes:
        """
        Serialize status line, headers and body.

        Args:
            server_name: Value for the Server header if not already set.

        Returns:
            Bytes ready for socket.sendall().
        """
        response_headers = dict(self.headers)
        response_headers.setdefault("Content-Length", str(len(self.body)))
        response_headers.setdefault("Date", format_http_date(datetime.now(timezone.utc)))
        response_headers.setdefault("Server", server_name)

        lines = [self.status_line]
        lines.extend(f"{name}: {value}" for name, value in response_headers.items())
        lines.append("")

        head = "\r\n".join(lines).encode("latin-1") + b"\r\n"
        return head + self.body


class ResponseBuilder:
    """
    Fluent builder for HTTPResponse.

        response = (ResponseBuilder()
            .status(HTTPStatus.CREATED)
            .json({"id": 42})
            .header("Location", "/users/42")
            .build())

    Every method except build() returns self.
    """

    def __init__(self):
        self._status: int = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body: bytes = b""

    def status(self, status: int) -> "ResponseBuilder":
        self._status = status
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def headers(self, headers: Dict[str, str]) -> "ResponseBuilder":
        self._headers.update(headers)
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        return self.header("Content-Type", content_type)

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        """Raw body; prefer text() or json() for typed content."""
        self._body = body.encode("utf-8") if isinstance(body, str) else body
        return self

    def text(self, text: str, content_type: str = TEXT_PLAIN) -> "ResponseBuilder":
        self._body = text.encode("utf-8")
        self._headers["Content-Type"] = content_type
        return self

    def json(self, data: Any, pretty: bool = False) -> "ResponseBuilder":
        """Serialize data as JSON; ensure_ascii=False keeps non-ASCII readable."""
        indent = 2 if pretty else None
        self._body = json.dumps(data, indent=indent, ensure_ascii=False).encode("utf-8")
        self._headers["Content-Type"] = APPLICATION_JSON
        return self

    def close_connection(self) -> "ResponseBuilder":
        self._headers["Connection"] = "close"
        return self

    def build(self) -> HTTPResponse:
        return HTTPResponse(status=self._status, headers=self._headers, body=self._body)


def format_http_date(dt: datetime) -> str:
    """
    Format a UTC datetime as an RFC 7231 HTTP-date.

    Built by hand because strftime's %a/%b follow the process locale.

        >>> format_http_date(datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc))
        'Thu, 01 Jan 2026 12:00:00 GMT'
    """
    days = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
    return (
        f"{days[dt.weekday()]}, "
        f"{dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================
#
#     return ok("Hello world")          # 200 text/plain
#     return ok({"id": 1})              # 200 application/json
#     return created({"id": 1}, location="/users/1")
#
# =============================================================================


def ok(body: Union[str, bytes, dict, list] = "", content_type: Optional[str] = None) -> HTTPResponse:
    """
    200 OK with the body type picked from the value:
    dict/list → JSON, str → text/plain, bytes → raw.
    """
    builder = ResponseBuilder().status(HTTPStatus.OK)
    if isinstance(body, (dict, list)):
        builder.json(body)
    elif isinstance(body, str):
        builder.text(body, content_type or TEXT_PLAIN)
    else:
        builder.body(body)
        if content_type:
            builder.content_type(content_type)
    return builder.build()


def created(body: Union[str, dict, list] = "", location: Optional[str] = None) -> HTTPResponse:
    """201 Created, optionally with a Location header."""
    response = ok(body)
    response.status = HTTPStatus.CREATED
    if location:
        response.set_header("Location", location)
    return response


def no_content() -> HTTPResponse:
    return HTTPResponse(status=HTTPStatus.NO_CONTENT)


def not_found() -> HTTPResponse:
    """404 with an empty body."""
    return HTTPResponse(status=HTTPStatus.NOT_FOUND)


def method_not_allowed(allowed_methods: Iterable[str]) -> HTTPResponse:
    """405 with an empty body and the Allow header (RFC 7231 section 6.5.5)."""
    return HTTPResponse(
        status=HTTPStatus.METHOD_NOT_ALLOWED,
        headers={"Allow": ", ".join(allowed_methods)},
    )


def internal_error() -> HTTPResponse:
    """500 with a generic body; the real error goes to the log only."""
    return ResponseBuilder().status(HTTPStatus.INTERNAL_SERVER_ERROR).text(
        HTTPStatus.INTERNAL_SERVER_ERROR.phrase
    ).build()


def forbidden() -> HTTPResponse:
    """403 with an empty body."""
    return HTTPResponse(status=HTTPStatus.FORBIDDEN)


def error_body(status: int, message: str) -> Dict[str, Any]:
    """
    The JSON error shape:

        {"error": {"type": "PayloadTooLarge",
                   "code": "PAYLOAD_TOO_LARGE",
                   "message": "Request too large: 11000000 bytes"}}

    type and code are derived from the reason phrase.
    """
    words = re.findall(r"[A-Za-z0-9]+", reason_phrase(status))
    return {
        "error": {
            "type": "".join(w[0].upper() + w[1:] for w in words),
            "code": "_".join(w.upper() for w in words),
            "message": message,
        }
    }


def json_error(status: int, message: str) -> HTTPResponse:
    """Error response with an error_body() JSON payload."""
    return ResponseBuilder().status(status).json(error_body(status, message)).build()


def error_response(status: int, message: str) -> HTTPResponse:
    """
    JSON error sent by the transport itself (parse errors, timeouts,
    overload). These happen before any route is involved, and the
    connection is closed afterwards.
    """
    response = json_error(status, message)
    response.headers["Connection"] = "close"
    return response
