"""
=============================================================================
HTTP STATUS CODES
=============================================================================

Status codes the server and its handlers produce, with reason phrases.

=============================================================================
STATUS CODE RANGE
=============================================================================

Every response leaving the router carries a code in [100, 599]:

    ┌────────┬─────────────────────────────────────────────────────────┐
    │ 1xx    │ Informational - request received, continuing            │
    │ 2xx    │ Success - e.g. 200 for GET /api                         │
    │ 3xx    │ Redirection                                             │
    │ 4xx    │ Client error - 404 unknown path, 405 wrong method       │
    │ 5xx    │ Server error - 500 when a handler blows up              │
    └────────┴─────────────────────────────────────────────────────────┘

Handlers may also return a plain int that is not listed here (e.g. 299).
reason_phrase() falls back to the class name of the range for those.

=============================================================================
"""

from enum import IntEnum


MIN_STATUS = 100
MAX_STATUS = 599


class HTTPStatus(IntEnum):
    """
    HTTP status codes as integers with a .phrase property.

        >>> HTTPStatus.NOT_FOUND == 404
        True
        >>> HTTPStatus.NOT_FOUND.phrase
        'Not Found'
    """

    CONTINUE = 100
    SWITCHING_PROTOCOLS = 101

    OK = 200
    CREATED = 201
    ACCEPTED = 202
    NO_CONTENT = 204

    MOVED_PERMANENTLY = 301
    FOUND = 302
    NOT_MODIFIED = 304

    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405
    REQUEST_TIMEOUT = 408
    CONFLICT = 409
    PAYLOAD_TOO_LARGE = 413
    URI_TOO_LONG = 414
    UNPROCESSABLE_ENTITY = 422
    TOO_MANY_REQUESTS = 429
    REQUEST_HEADER_FIELDS_TOO_LARGE = 431

    INTERNAL_SERVER_ERROR = 500
    NOT_IMPLEMENTED = 501
    BAD_GATEWAY = 502
    SERVICE_UNAVAILABLE = 503
    GATEWAY_TIMEOUT = 504
    HTTP_VERSION_NOT_SUPPORTED = 505

    @property
    def phrase(self) -> str:
        """Reason phrase used in the status line ("HTTP/1.1 404 Not Found")."""
        return _PHRASES[self]

    @property
    def is_error(self) -> bool:
        """True for 4xx and 5xx codes."""
        return self >= 400


_PHRASES = {
    HTTPStatus.CONTINUE: "Continue",
    HTTPStatus.SWITCHING_PROTOCOLS: "Switching Protocols",
    HTTPStatus.OK: "OK",
    HTTPStatus.CREATED: "Created",
    HTTPStatus.ACCEPTED: "Accepted",
    HTTPStatus.NO_CONTENT: "No Content",
    HTTPStatus.MOVED_PERMANENTLY: "Moved Permanently",
    HTTPStatus.FOUND: "Found",
    HTTPStatus.NOT_MODIFIED: "Not Modified",
    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.UNAUTHORIZED: "Unauthorized",
    HTTPStatus.FORBIDDEN: "Forbidden",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.METHOD_NOT_ALLOWED: "Method Not Allowed",
    HTTPStatus.REQUEST_TIMEOUT: "Request Timeout",
    HTTPStatus.CONFLICT: "Conflict",
    HTTPStatus.PAYLOAD_TOO_LARGE: "Payload Too Large",
    HTTPStatus.URI_TOO_LONG: "URI Too Long",
    HTTPStatus.UNPROCESSABLE_ENTITY: "Unprocessable Entity",
    HTTPStatus.TOO_MANY_REQUESTS: "Too Many Requests",
    HTTPStatus.REQUEST_HEADER_FIELDS_TOO_LARGE: "Request Header Fields Too Large",
    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
    HTTPStatus.NOT_IMPLEMENTED: "Not Implemented",
    HTTPStatus.BAD_GATEWAY: "Bad Gateway",
    HTTPStatus.SERVICE_UNAVAILABLE: "Service Unavailable",
    HTTPStatus.GATEWAY_TIMEOUT: "Gateway Timeout",
    HTTPStatus.HTTP_VERSION_NOT_SUPPORTED: "HTTP Version Not Supported",
}

# Fallback phrases by leading digit for codes missing from HTTPStatus
_CLASS_PHRASES = {
    1: "Informational",
    2: "Success",
    3: "Redirection",
    4: "Client Error",
    5: "Server Error",
}


def is_valid_status(code: object) -> bool:
    """
    Check that a value can be sent as a status code.

    bool is rejected even though it is an int subclass: a handler
    returning status=True is a bug, not a 1.
    """
    if isinstance(code, bool) or not isinstance(code, int):
        return False
    return MIN_STATUS <= code <= MAX_STATUS


def reason_phrase(code: int) -> str:
    """
    Reason phrase for any code in [100, 599].

    Args:
        code: Status code (HTTPStatus member or plain int)

    Returns:
        The registered phrase, or the phrase of the code's class.
    """
    try:
        return HTTPStatus(code).phrase
    except ValueError:
        return _CLASS_PHRASES.get(code // 100, "Unknown")
