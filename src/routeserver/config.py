"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Everything the transport needs to know, in one dataclass. The router
reads none of it.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │   Priority (highest to lowest):                                     │
    │                                                                     │
    │   1. Command-line arguments                                         │
    │      └── python -m routeserver --port 3000                          │
    │                                                                     │
    │   2. Environment variables                                          │
    │      └── PORT=3000 python -m routeserver                            │
    │                                                                     │
    │   3. Dataclass defaults                                             │
    │      └── port=18080                                                 │
    └─────────────────────────────────────────────────────────────────────┘

Values are validated once, at startup, so a typo in PORT stops the
process before any socket is bound.

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Callable, Mapping, Optional, TypeVar


T = TypeVar("T")

DEFAULT_PORT = 18080

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("text", "json")


@dataclass
class ServerConfig:
    """
    Configuration for the HTTP server.

    Development:
        ServerConfig(log_level="DEBUG")

    Container:
        ServerConfig(host="0.0.0.0", max_workers=32)
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    """Address to bind. "0.0.0.0" listens on every interface."""

    port: int = DEFAULT_PORT
    """Listening port. 0 lets the OS pick a free one."""

    backlog: int = 128
    """Queued, not yet accepted connections before the OS refuses more."""

    buffer_size: int = 8192
    """Bytes per recv() call."""

    timeout: Optional[float] = 30.0
    """Socket timeout for reading a request. None blocks forever."""

    # ─────────────────────────────────────────────────────────────────────
    # HTTP
    # ─────────────────────────────────────────────────────────────────────

    keep_alive: bool = True
    """Serve several requests per connection when the client allows it."""

    keep_alive_timeout: float = 5.0
    """Idle seconds before a kept-alive connection is closed."""

    max_request_size: int = 10 * 1024 * 1024
    """Upper bound for headers plus body, in bytes. Larger → 413."""

    # ─────────────────────────────────────────────────────────────────────
    # THREAD POOL
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 4
    """Worker threads started with the server."""

    max_workers: int = 16
    """Upper bound the pool may scale to under load."""

    queue_size: int = 100
    """Connections waiting for a worker. When full, clients get 503."""

    # ─────────────────────────────────────────────────────────────────────
    # APPLICATION
    # ─────────────────────────────────────────────────────────────────────

    static_dir: Optional[str] = None
    """Directory served for paths no other route handles. None disables it."""

    cors_origin: Optional[str] = None
    """Allowed CORS origin(s), "*" or comma-separated. None sends no CORS headers."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """DEBUG, INFO, WARNING, ERROR or CRITICAL."""

    log_format: str = "text"
    """Access log format: "text" (Apache-like) or "json"."""

    server_name: str = "routeserver/1.0"
    """Value of the Server response header."""

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ServerConfig":
        """
        Build a configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        PORT        Listening port (default: 18080)
        HOST        Bind address (default: 127.0.0.1)
        WORKERS     Max worker threads (default: 16)
        TIMEOUT     Request read timeout in seconds (default: 30)
        LOG_LEVEL   Logging level (default: INFO)
        LOG_FORMAT  Access log format, text or json (default: text)
        STATIC_DIR  Directory of static files (default: none)
        CORS_ORIGIN Allowed CORS origin(s) (default: none)

        =====================================================================

        Args:
            environ: Mapping to read from; os.environ when omitted.

        Raises:
            ValueError: If a numeric variable does not parse.
        """
        env = os.environ if environ is None else environ
        defaults = cls()

        max_workers = _env_value(env, "WORKERS", int, defaults.max_workers)
        return cls(
            host=env.get("HOST", defaults.host),
            port=_env_value(env, "PORT", int, defaults.port),
            timeout=_env_value(env, "TIMEOUT", float, defaults.timeout),
            min_workers=min(defaults.min_workers, max_workers),
            max_workers=max_workers,
            log_level=env.get("LOG_LEVEL", defaults.log_level).upper(),
            log_format=env.get("LOG_FORMAT", defaults.log_format).lower(),
            static_dir=env.get("STATIC_DIR") or defaults.static_dir,
            cors_origin=env.get("CORS_ORIGIN") or defaults.cors_origin,
        )

    def validate(self) -> None:
        """
        Check value ranges. Called by HTTPServer before it binds anything.

        Raises:
            ValueError: On the first invalid setting.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.min_workers < 1:
            raise ValueError("min_workers must be >= 1")

        if self.max_workers < self.min_workers:
            raise ValueError("max_workers must be >= min_workers")

        if self.queue_size < 1:
            raise ValueError("queue_size must be >= 1")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if self.keep_alive_timeout <= 0:
            raise ValueError("keep_alive_timeout must be > 0")

        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")

        if self.log_format not in LOG_FORMATS:
            raise ValueError(f"log_format must be one of {', '.join(LOG_FORMATS)}")

        if self.static_dir is not None and not os.path.isdir(self.static_dir):
            raise ValueError(f"static_dir is not a directory: {self.static_dir}")


def _env_value(env: Mapping[str, str], name: str, convert: Callable[[str], T], default: T) -> T:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return convert(raw.strip())
    except ValueError:
        raise ValueError(f"Invalid value for {name}: {raw!r}") from None
