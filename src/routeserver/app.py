"""
The application: the route table this server ships with.

    GET /api          →  200 "Hello world"
    GET /             →  static index.html       (config.static_dir set)
    GET /*filepath    →  static file             (config.static_dir set)
    OPTIONS / , /*p   →  204 CORS preflight      (config.cors_origin set)

/api is registered first, so it always wins over the static fallback.

create_app() builds a fresh Router on every call, so tests and embedding
code never share a table.
"""

import logging
from typing import Optional

from .config import ServerConfig
from .cors import CORSPolicy
from .http import HTTPRequest, HTTPResponse, Router, ok
from .static import StaticFiles


logger = logging.getLogger(__name__)

GREETING = "Hello world"


def hello(request: HTTPRequest) -> HTTPResponse:
    """GET /api"""
    return ok(GREETING)


def create_app(config: Optional[ServerConfig] = None) -> Router:
    """
    Build the application's router, still open for more routes.

    Args:
        config: Enables the static file and CORS preflight routes when
            static_dir / cors_origin are set. Only GET /api without it.

    Raises:
        RouterError: A route failed to register. Fatal at startup.
        ValueError: static_dir is not a directory.
    """
    router = Router()
    router.register("GET", "/api", hello)

    if config is not None and config.static_dir:
        static = StaticFiles(config.static_dir)
        router.register("GET", "/", static.handle)
        router.register("GET", "/*filepath", static.handle)
        logger.debug(f"Serving static files from {static.root_dir}")

    cors = CORSPolicy.from_config(config) if config is not None else None
    if cors is not None:
        router.register("OPTIONS", "/", cors.preflight)
        router.register("OPTIONS", "/*path", cors.preflight)

    logger.debug(f"Application routes registered: {len(router)}")
    return router
