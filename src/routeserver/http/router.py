"""
=============================================================================
URL ROUTER
=============================================================================

Maps (method, path) to a handler and turns whatever the handler does into
a well-formed HTTPResponse.

=============================================================================
ROUTING FLOW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                     │
    │   Transport delivers HTTPRequest(GET, /users/42)                    │
    │        │                                                            │
    │        ▼                                                            │
    │   ┌─────────────────────────────────────────────────────────────┐   │
    │   │  ROUTER (sealed)                                            │   │
    │   │                                                             │   │
    │   │  Route table, scanned in registration order:                │   │
    │   │  ┌───────────────────────────────────────────────────────┐  │   │
    │   │  │ GET   /api         → hello                            │  │   │
    │   │  │ GET   /users/:id   → get_user      ← FIRST MATCH      │  │   │
    │   │  │ POST  /users       → create_user                      │  │   │
    │   │  └───────────────────────────────────────────────────────┘  │   │
    │   │                                                             │   │
    │   │  Captured: path_params = {"id": "42"}                       │   │
    │   └─────────────────────────────────────────────────────────────┘   │
    │        │                                                            │
    │        ▼                                                            │
    │   get_user(request')   request' = copy of request + path_params     │
    │        │                                                            │
    │        ▼                                                            │
    │   HTTPResponse back to the transport                                │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

dispatch() is TOTAL: it always returns a response and never raises.

    handler returned a response   → that response (status fixed if invalid,
                                    str body encoded, other bodies → 500)
    handler returned str          → 200 text/plain
    handler returned bytes        → 200, raw body
    handler returned dict / list  → 200 JSON
    handler raised / returned junk → 500 "Internal Server Error"
    path unknown                  → 404, empty body
    path known, method not        → 405, empty body, Allow: GET, POST

=============================================================================
PATTERNS
=============================================================================

A pattern is split on "/" into segments, each tagged with a SegmentKind.
One function (_match_segments) evaluates every kind.

    Pattern segment   Kind       Matches
    ───────────────   ────       ───────────────────────────────────────
    users             STATIC     exactly "users"
    :id               PARAM      any ONE non-empty segment, captured
    *filepath         WILDCARD   the rest of the path (at least one
                                 segment, slashes included), captured

    /users/:id   matches  /users/42          → {"id": "42"}
                 rejects  /users, /users/42/profile
    /files/*p    matches  /files/a/b.txt     → {"p": "a/b.txt"}

A trailing slash is insignificant on both sides: /users/ == /users.

Request paths are split before they are percent-decoded, so an encoded
slash stays inside its segment: /users/a%2Fb captures {"id": "a/b"}.

=============================================================================
TABLE LIFECYCLE
=============================================================================

    OPEN ──── seal() or first dispatch() ───► SEALED
     │                                          │
     register() appends                         register() → RouterSealedError
     dispatch() seals, then routes              dispatch() routes

Once sealed the table is a tuple and nothing writes to the router again,
so any number of worker threads may call dispatch() without a lock.

PRECONDITION: register() must not run concurrently with dispatch().
Registration belongs to single-threaded startup; HTTPServer.run() seals
the router before it accepts the first connection.

=============================================================================
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union
from urllib.parse import unquote

from .request import HTTP_METHODS, HTTPRequest
from .response import (
    HTTPResponse,
    internal_error,
    method_not_allowed,
    not_found,
    ok,
)
from .status_codes import HTTPStatus, is_valid_status


logger = logging.getLogger(__name__)


# A handler takes a request and returns a response. str, bytes, dict and
# list results are accepted as shorthand for a 200 response.
HandlerResult = Union[HTTPResponse, str, bytes, dict, list]
Handler = Callable[[HTTPRequest], HandlerResult]


# =============================================================================
# ERRORS
# =============================================================================


class RouterError(Exception):
    """Base class for route registration errors. Fatal at startup."""


class InvalidPatternError(RouterError, ValueError):
    """The path pattern is malformed (e.g. does not start with "/")."""

    def __init__(self, pattern: Any, reason: str):
        super().__init__(f"Invalid route pattern {pattern!r}: {reason}")
        self.pattern = pattern
        self.reason = reason


class InvalidMethodError(RouterError, ValueError):
    """The HTTP method is not a standard verb."""

    def __init__(self, method: Any):
        super().__init__(f"Invalid HTTP method {method!r}")
        self.method = method


class DuplicateRouteError(RouterError):
    """A route with the same (method, pattern) is already registered."""

    def __init__(self, method: str, pattern: str):
        super().__init__(f"Route already registered: {method} {pattern}")
        self.method = method
        self.pattern = pattern


class RouterSealedError(RouterError):
    """register() was called after the table was sealed."""


# =============================================================================
# ROUTE MODEL
# =============================================================================


class SegmentKind(Enum):
    """How one pattern segment is compared against one path segment."""

    STATIC = "static"       # users      - exact match
    PARAM = "param"         # :id        - one segment, captured
    WILDCARD = "wildcard"   # *filepath  - remaining segments, captured


@dataclass(frozen=True)
class Segment:
    kind: SegmentKind
    value: str  # literal text for STATIC, parameter name otherwise


@dataclass(frozen=True)
class Route:
    """
    A registered route.

    Identity is (method, pattern); the router rejects a second route with
    the same pair.
    """

    method: str
    pattern: str
    handler: Handler
    segments: Tuple[Segment, ...]

    @property
    def key(self) -> Tuple[str, str]:
        return (self.method, self.pattern)


@dataclass(frozen=True)
class RouteMatch:
    """A route and the parameters captured from the path."""

    route: Route
    params: Dict[str, str]


# =============================================================================
# PATTERN COMPILATION AND MATCHING
# =============================================================================


def _split_path(path: str) -> List[str]:
    """
    "/users/42/" → ["users", "42"];  "/" → [].

    Inner empty segments are kept ("/a//b" → ["a", "", "b"]) so they can
    never satisfy a PARAM segment.
    """
    stripped = path.strip("/")
    return stripped.split("/") if stripped else []


def _path_parts(raw_path: str) -> List[str]:
    """
    Split a request path as sent, then decode each segment.

    Splitting first keeps an encoded slash inside its segment:
    "/users/a%2Fb" → ["users", "a/b"].
    """
    return [unquote(part) for part in _split_path(raw_path)]


def compile_pattern(pattern: Any) -> Tuple[str, Tuple[Segment, ...]]:
    """
    Validate a pattern and break it into segments.

    Args:
        pattern: Route pattern such as "/users/:id" or "/static/*path"

    Returns:
        (normalized pattern, segments). The normalized form drops the
        trailing slash and is what route identity is based on.

    Raises:
        InvalidPatternError: If the pattern is malformed.
    """
    if not isinstance(pattern, str) or not pattern.startswith("/"):
        raise InvalidPatternError(pattern, "must be a string starting with '/'")

    parts = _split_path(pattern)
    segments: List[Segment] = []
    seen_names = set()

    for index, part in enumerate(parts):
        if not part:
            raise InvalidPatternError(pattern, "empty path segment")

        if part[0] in (":", "*"):
            kind = SegmentKind.PARAM if part[0] == ":" else SegmentKind.WILDCARD
            name = part[1:]
            if kind is SegmentKind.WILDCARD:
                name = name or "wildcard"
                if index != len(parts) - 1:
                    raise InvalidPatternError(pattern, "wildcard must be the last segment")
            if not name.isidentifier():
                raise InvalidPatternError(pattern, f"bad parameter name {name!r}")
            if name in seen_names:
                raise InvalidPatternError(pattern, f"parameter {name!r} used twice")
            seen_names.add(name)
            segments.append(Segment(kind, name))
        else:
            segments.append(Segment(SegmentKind.STATIC, part))

    normalized = "/" + "/".join(parts)
    return normalized, tuple(segments)


def _match_segments(
    segments: Sequence[Segment],
    parts: Sequence[str],
) -> Optional[Dict[str, str]]:
    """
    Match path parts against pattern segments.

    Returns:
        Captured parameters on success (empty dict for literal routes),
        None if the path does not match.
    """
    params: Dict[str, str] = {}

    for index, segment in enumerate(segments):
        if segment.kind is SegmentKind.WILDCARD:
            rest = parts[index:]
            if not rest or not all(rest):
                return None
            params[segment.value] = "/".join(rest)
            return params

        if index >= len(parts):
            return None
        part = parts[index]

        if segment.kind is SegmentKind.STATIC:
            if part != segment.value:
                return None
        elif not part:
            return None
        else:
            params[segment.value] = part

    if len(parts) != len(segments):
        return None
    return params


# =============================================================================
# ROUTER
# =============================================================================


class Router:
    """
    Route table plus dispatch.

        router = Router()

        @router.get("/api")
        def hello(request):
            return "Hello world"

        @router.get("/users/:id")
        def get_user(request):
            return ok({"id": request.path_params["id"]})

        router.seal()
        response = router.dispatch(HTTPRequest("GET", "/users/42"))

    An instance is built explicitly and handed to HTTPServer; there is no
    module-level route table.
    """

    def __init__(self):
        # List while open, tuple once sealed
        self._routes: Union[List[Route], Tuple[Route, ...]] = []
        self._keys = set()
        self._sealed = False

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    def register(self, method: str, pattern: str, handler: Handler) -> Route:
        """
        Add a route to the table.

        Args:
            method: HTTP verb, case-insensitive ("get" == "GET")
            pattern: Path pattern starting with "/"
            handler: Callable taking an HTTPRequest

        Returns:
            The registered Route.

        Raises:
            RouterSealedError: The table no longer accepts routes.
            InvalidMethodError: method is not a standard verb.
            InvalidPatternError: pattern is malformed.
            DuplicateRouteError: (method, pattern) is already registered.
            TypeError: handler is not callable.
        """
        if self._sealed:
            raise RouterSealedError(
                f"Cannot register {method} {pattern}: router is sealed"
            )

        if not isinstance(method, str) or method.upper() not in HTTP_METHODS:
            raise InvalidMethodError(method)
        method = method.upper()

        normalized, segments = compile_pattern(pattern)

        if not callable(handler):
            raise TypeError(f"Handler for {method} {pattern} is not callable")

        route = Route(method=method, pattern=normalized, handler=handler, segments=segments)
        if route.key in self._keys:
            raise DuplicateRouteError(method, normalized)

        self._keys.add(route.key)
        self._routes.append(route)
        logger.debug(f"Registered route {method} {normalized}")
        return route

    def route(self, method: str, pattern: str) -> Callable[[Handler], Handler]:
        """
        Decorator form of register().

            @router.route("PUT", "/users/:id")
            def replace_user(request):
                ...

        The handler is returned unchanged so decorators can be stacked.
        """
        def decorator(handler: Handler) -> Handler:
            self.register(method, pattern, handler)
            return handler
        return decorator

    def get(self, pattern: str) -> Callable[[Handler], Handler]:
        return self.route("GET", pattern)

    def post(self, pattern: str) -> Callable[[Handler], Handler]:
        return self.route("POST", pattern)

    def put(self, pattern: str) -> Callable[[Handler], Handler]:
        return self.route("PUT", pattern)

    def delete(self, pattern: str) -> Callable[[Handler], Handler]:
        return self.route("DELETE", pattern)

    def patch(self, pattern: str) -> Callable[[Handler], Handler]:
        return self.route("PATCH", pattern)

    def head(self, pattern: str) -> Callable[[Handler], Handler]:
        return self.route("HEAD", pattern)

    def options(self, pattern: str) -> Callable[[Handler], Handler]:
        return self.route("OPTIONS", pattern)

    # =========================================================================
    # SEALING
    # =========================================================================

    def seal(self) -> None:
        """
        Close the registration phase. Idempotent.

        Swapping the list for a tuple is the whole transition: after this
        the table is never written again.
        """
        if self._sealed:
            return
        self._routes = tuple(self._routes)
        self._sealed = True
        logger.debug(f"Router sealed with {len(self._routes)} routes")

    @property
    def sealed(self) -> bool:
        return self._sealed

    # =========================================================================
    # MATCHING
    # =========================================================================

    def match(self, method: str, path: str) -> Optional[RouteMatch]:
        """
        First route, in registration order, matching both method and path.

        path is the request path as sent (percent-encoded); see _path_parts.

        Returns:
            RouteMatch, or None if nothing matches.
        """
        method = method.upper()
        parts = _path_parts(path)

        for route in self._routes:
            if route.method != method:
                continue
            params = _match_segments(route.segments, parts)
            if params is not None:
                return RouteMatch(route=route, params=params)

        return None

    def allowed_methods(self, path: str) -> List[str]:
        """
        Methods of all routes whose pattern matches the path, sorted.

        An empty list means the path is unknown (404 rather than 405).
        """
        parts = _path_parts(path)
        methods = {
            route.method
            for route in self._routes
            if _match_segments(route.segments, parts) is not None
        }
        return sorted(methods)

    # =========================================================================
    # DISPATCH
    # =========================================================================

    def dispatch(self, request: HTTPRequest) -> HTTPResponse:
        """
        Route a request and produce its response. Never raises.

        The first call seals the table if seal() was not called yet.

        Args:
            request: The parsed request.

        Returns:
            The handler's response, or a 404 / 405 / 500 response.
        """
        self.seal()

        try:
            match = self.match(request.method, request.raw_path)

            if match is None:
                allowed = self.allowed_methods(request.raw_path)
                if allowed:
                    return method_not_allowed(allowed)
                return not_found()

            routed = replace(request, path_params=match.params)
            result = match.route.handler(routed)
            return self._to_response(result, match.route)

        except Exception:
            # The traceback goes to the log, never to the client
            logger.exception(f"Handler failed for {request.method} {request.path}")
            return internal_error()

    def _to_response(self, result: Any, route: Route) -> HTTPResponse:
        """
        Turn a handler result into a response with a valid status.

        Raises:
            TypeError: The result cannot be turned into a response.
        """
        if isinstance(result, HTTPResponse):
            if not isinstance(result.headers, dict):
                raise TypeError(
                    f"{route.method} {route.pattern} returned headers of type "
                    f"{type(result.headers).__name__}, expected dict"
                )
            if isinstance(result.body, str):
                result = replace(result, body=result.body.encode("utf-8"))
            elif isinstance(result.body, bytearray):
                result = replace(result, body=bytes(result.body))
            elif not isinstance(result.body, bytes):
                raise TypeError(
                    f"{route.method} {route.pattern} returned a body of type "
                    f"{type(result.body).__name__}, expected bytes"
                )

            if not is_valid_status(result.status):
                logger.warning(
                    f"{route.method} {route.pattern} returned invalid status "
                    f"{result.status!r}, sending 200"
                )
                return replace(result, status=HTTPStatus.OK)
            return result

        if isinstance(result, (str, bytes, dict, list)):
            return ok(result)

        raise TypeError(
            f"{route.method} {route.pattern} returned {type(result).__name__}, "
            f"expected HTTPResponse"
        )

    # =========================================================================
    # INTROSPECTION
    # =========================================================================

    def routes(self) -> Tuple[Route, ...]:
        """All routes in registration order."""
        return tuple(self._routes)

    def __len__(self) -> int:
        return len(self._routes)

    def print_routes(self) -> None:
        """
        Print the table, e.g. in the startup banner:

            Registered Routes:
            ------------------------------------------------------------
              GET      /api
            ------------------------------------------------------------
        """
        print("\nRegistered Routes:")
        print("-" * 60)
        for route in self._routes:
            print(f"  {route.method:8} {route.pattern}")
        print("-" * 60)
