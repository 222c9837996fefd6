"""
=============================================================================
ACCESS LOG
=============================================================================

One line per request on the "routeserver.access" logger, written by the
transport after the response is sent. Handlers never see it.

    text:  127.0.0.1 - - [18/Oct/2026:10:00:00 +0000] "GET /api" 200 11 0.42ms
    json:  {"request_id": "a1b2c3d4", "method": "GET", "path": "/api", ...}

Requests that never reached the router (parse errors, 503) are logged
too, with whatever method and path could be recovered ("-" otherwise).

=============================================================================
"""

import json
import logging
import time
from dataclasses import asdict, dataclass
from typing import Optional

from .http.request import HTTPRequest


logger = logging.getLogger("routeserver.access")


@dataclass
class RequestLog:
    """
    Structured access log entry.

    Attributes:
        request_id:     Connection id plus request number ("a1b2c3d4-1")
        client_ip:      Peer address
        status_code:    Status actually sent
        content_length: Response body size in bytes
        duration_ms:    Parse + dispatch + send time
        timestamp:      Common Log Format time ("18/Oct/2026:10:00:00 +0000")
    """

    request_id: str
    method: str
    path: str
    query: str
    client_ip: str
    user_agent: str
    status_code: int
    content_length: int
    duration_ms: float
    timestamp: str

    def to_dict(self) -> dict:
        entry = asdict(self)
        entry["duration_ms"] = round(self.duration_ms, 2)
        return entry

    def to_text(self) -> str:
        """Apache-style line, readable by the usual log tools."""
        path = f"{self.path}?{self.query}" if self.query else self.path
        return (
            f'{self.client_ip} - - [{self.timestamp}] '
            f'"{self.method} {path}" {self.status_code} '
            f'{self.content_length} {self.duration_ms:.2f}ms'
        )


class AccessLogger:
    """
    Formats and emits RequestLog entries.

        access = AccessLogger(log_format="json")
        access.log(request_id, client_ip, request, status, size, started)
    """

    def __init__(self, log_format: str = "text", level: int = logging.INFO):
        if log_format not in ("text", "json"):
            raise ValueError(f"Unknown access log format: {log_format!r}")
        self.log_format = log_format
        self.level = level

    def build_entry(
        self,
        request_id: str,
        client_ip: str,
        request: Optional[HTTPRequest],
        status_code: int,
        content_length: int,
        started: float,
    ) -> RequestLog:
        """
        Args:
            request: The parsed request, or None if parsing failed.
            started: time.time() when reading the request finished.
        """
        if request is not None:
            method, path = request.method, request.path
            query = "&".join(
                f"{name}={value}"
                for name, values in request.query_params.items()
                for value in values
            )
            user_agent = request.user_agent or "-"
        else:
            method, path, query, user_agent = "-", "-", "", "-"

        return RequestLog(
            request_id=request_id,
            method=method,
            path=path,
            query=query,
            client_ip=client_ip,
            user_agent=user_agent,
            status_code=int(status_code),
            content_length=content_length,
            duration_ms=(time.time() - started) * 1000,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )

    def format(self, entry: RequestLog) -> str:
        if self.log_format == "json":
            return json.dumps(entry.to_dict())
        return entry.to_text()

    def log(self, *args, **kwargs) -> RequestLog:
        """build_entry() and emit it; returns the entry."""
        entry = self.build_entry(*args, **kwargs)
        if logger.isEnabledFor(self.level):
            logger.log(self.level, self.format(entry))
        return entry
