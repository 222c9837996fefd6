"""
=============================================================================
COMMAND-LINE ENTRY POINT
=============================================================================

    python -m routeserver                     # 127.0.0.1:18080
    python -m routeserver --port 3000
    PORT=3000 routeserver                     # console script
    routeserver --host 0.0.0.0 --workers 8 --log-format json

Flags override environment variables, which override the defaults in
ServerConfig. Bad configuration or a failing route registration is
reported and the process exits with status 1 before any port is bound.

=============================================================================
"""

import argparse
import logging
import sys
from typing import List, Optional

from . import __version__
from .app import create_app
from .config import LOG_FORMATS, LOG_LEVELS, ServerConfig
from .http import RouterError
from .server import LOG_DATE_FORMAT, LOG_FORMAT, HTTPServer


logger = logging.getLogger("routeserver")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="routeserver",
        description="Minimal routing HTTP/1.1 server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment:
  PORT, HOST, WORKERS, TIMEOUT, LOG_LEVEL, LOG_FORMAT, STATIC_DIR, CORS_ORIGIN

Examples:
  python -m routeserver                     # Run with defaults
  python -m routeserver --port 3000         # Custom port
  python -m routeserver --host 0.0.0.0      # Listen on all interfaces
  python -m routeserver --static-dir ./static --cors-origin "*"
        """,
    )

    # Defaults are None so that "not given" falls through to the environment
    parser.add_argument(
        "--host", "-H",
        default=None,
        help="Host to bind to (default: 127.0.0.1, use 0.0.0.0 for containers)",
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        default=None,
        help="Port to listen on (default: 18080)",
    )
    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=None,
        help="Maximum number of worker threads (default: 16)",
    )
    parser.add_argument(
        "--log-level", "-l",
        type=str.upper,
        choices=LOG_LEVELS,
        default=None,
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--log-format",
        choices=LOG_FORMATS,
        default=None,
        help="Access log format (default: text)",
    )
    parser.add_argument(
        "--static-dir",
        default=None,
        help="Serve files from this directory for unrouted GETs (default: off)",
    )
    parser.add_argument(
        "--cors-origin",
        default=None,
        help='Send CORS headers for this origin, "*" or a comma-separated list (default: off)',
    )
    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"routeserver {__version__}",
    )
    return parser


def load_config(args: argparse.Namespace, environ=None) -> ServerConfig:
    """
    Environment first, then flags on top.

    Raises:
        ValueError: An environment variable or flag value is invalid.
    """
    config = ServerConfig.from_env(environ)

    if args.host is not None:
        config.host = args.host
    if args.port is not None:
        config.port = args.port
    if args.workers is not None:
        config.max_workers = args.workers
        config.min_workers = min(config.min_workers, args.workers)
    if args.log_level is not None:
        config.log_level = args.log_level
    if args.log_format is not None:
        config.log_format = args.log_format
    if args.static_dir is not None:
        config.static_dir = args.static_dir
    if args.cors_origin is not None:
        config.cors_origin = args.cors_origin

    config.validate()
    return config


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args)
        router = create_app(config)
        server = HTTPServer(router, config)
    except (RouterError, ValueError) as e:
        logging.basicConfig(level=logging.ERROR, format=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
        logger.error(f"Startup failed: {e}")
        sys.exit(1)

    try:
        server.run()
    except OSError as e:
        logger.error(f"Server error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
