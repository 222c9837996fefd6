"""
=============================================================================
ROUTESERVER - Minimal Routing HTTP/1.1 Server
=============================================================================

A from-scratch HTTP server whose one structural decision is how a request
finds its handler.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    routeserver/
    ├── __init__.py          # Package exports
    ├── __main__.py          # CLI entry point (python -m routeserver)
    ├── app.py               # create_app(): the shipped routes (GET /api, ...)
    ├── server.py            # HTTPServer: transport → Router.dispatch
    ├── config.py            # ServerConfig dataclass, env parsing
    ├── accesslog.py         # One log line per request
    ├── static.py            # Static file fallback (optional)
    ├── cors.py              # CORS response headers (optional)
    ├── core/                # Sockets and threads
    │   ├── socket_server.py
    │   ├── connection.py
    │   └── thread_pool.py
    └── http/                # Protocol and routing
        ├── request.py
        ├── response.py
        ├── router.py
        └── status_codes.py

=============================================================================
QUICK START
=============================================================================

    from routeserver import HTTPServer, Router, ServerConfig

    router = Router()

    @router.get("/users/:id")
    def get_user(request):
        return {"id": request.path_params["id"]}

    HTTPServer(router, ServerConfig(port=18080)).run()

=============================================================================
"""

__version__ = "1.0.0"

from .app import create_app
from .config import ServerConfig
from .http import HTTPRequest, HTTPResponse, HTTPStatus, Router, ok
from .server import HTTPServer

__all__ = [
    "__version__",
    "HTTPServer",
    "ServerConfig",
    "Router",
    "HTTPRequest",
    "HTTPResponse",
    "HTTPStatus",
    "ok",
    "create_app",
]
