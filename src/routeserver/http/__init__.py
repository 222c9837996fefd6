"""
=============================================================================
HTTP - Protocol and Routing
=============================================================================

Everything between raw request bytes and response bytes:

    ┌─────────────────────────────────────────────────────────────────────┐
    │ request.py       bytes → HTTPRequest (frozen)                       │
    │ router.py        HTTPRequest → handler → HTTPResponse               │
    │ response.py      HTTPResponse → bytes, plus ok()/not_found()/...    │
    │ status_codes.py  HTTPStatus and reason phrases                      │
    └─────────────────────────────────────────────────────────────────────┘

Nothing here touches a socket, so every piece can be exercised directly:

    router = Router()
    router.register("GET", "/api", lambda request: "Hello world")
    response = router.dispatch(HTTPRequest("GET", "/api"))

=============================================================================
"""

from .request import (
    HTTP_METHODS,
    HTTPParseError,
    HTTPRequest,
    RequestParser,
    parse_request,
)
from .response import (
    HTTPResponse,
    ResponseBuilder,
    created,
    error_body,
    error_response,
    forbidden,
    internal_error,
    json_error,
    method_not_allowed,
    no_content,
    not_found,
    ok,
)
from .router import (
    DuplicateRouteError,
    InvalidMethodError,
    InvalidPatternError,
    Route,
    RouteMatch,
    Router,
    RouterError,
    RouterSealedError,
    SegmentKind,
)
from .status_codes import HTTPStatus

__all__ = [
    # Request
    "HTTP_METHODS",
    "HTTPRequest",
    "HTTPParseError",
    "RequestParser",
    "parse_request",
    # Response
    "HTTPResponse",
    "ResponseBuilder",
    "ok",
    "created",
    "no_content",
    "not_found",
    "method_not_allowed",
    "forbidden",
    "internal_error",
    "error_body",
    "json_error",
    "error_response",
    # Routing
    "Router",
    "Route",
    "RouteMatch",
    "SegmentKind",
    "RouterError",
    "InvalidPatternError",
    "InvalidMethodError",
    "DuplicateRouteError",
    "RouterSealedError",
    # Status
    "HTTPStatus",
]
