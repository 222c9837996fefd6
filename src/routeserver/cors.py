"""
=============================================================================
CORS RESPONSE HEADERS
=============================================================================

Cross-Origin Resource Sharing lets a page served from one origin call
this server from the browser. There is no middleware chain: the policy
is a plain object whose headers the server merges into every response it
sends, and whose preflight() is registered as an ordinary OPTIONS route.

    SIMPLE REQUEST:

    ┌─────────┐                                          ┌─────────┐
    │ Browser │─────────── GET /api ────────────────────▶│ Server  │
    │         │           Origin: https://app.com        │         │
    │         │◀──────────────────────────────────────────│         │
    │         │    Access-Control-Allow-Origin: *        │         │
    └─────────┘                                          └─────────┘

    PREFLIGHT:

    ┌─────────┐                                          ┌─────────┐
    │ Browser │─────────── OPTIONS /api ────────────────▶│ Server  │
    │         │           Access-Control-Request-Method: │         │
    │         │             POST                         │         │
    │         │◀──────────────────────────────────────────│         │
    │         │    204 No Content                        │         │
    │         │    Access-Control-Allow-Methods: ...     │         │
    │         │    Access-Control-Max-Age: 86400         │         │
    └─────────┘                                          └─────────┘

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .config import ServerConfig
from .http import HTTPRequest, HTTPResponse, HTTPStatus


@dataclass
class CORSPolicy:
    """
    Which origins may call the server, and with what.

        CORSPolicy()                                    # any origin
        CORSPolicy(allow_origins=["https://app.com"])   # one origin
    """

    allow_origins: List[str] = field(default_factory=lambda: ["*"])
    allow_methods: List[str] = field(default_factory=lambda: ["GET", "POST", "OPTIONS"])
    allow_headers: List[str] = field(default_factory=lambda: ["Content-Type"])
    max_age: int = 86400

    @classmethod
    def from_config(cls, config: ServerConfig) -> Optional["CORSPolicy"]:
        """Policy for config.cors_origin, or None when CORS is off."""
        if not config.cors_origin:
            return None
        origins = [o.strip() for o in config.cors_origin.split(",") if o.strip()]
        return cls(allow_origins=origins or ["*"])

    def headers(self, origin: str = "") -> Dict[str, str]:
        """
        Headers to add to a response for a request from origin.

        A wildcard policy answers "*". A list echoes the origin back when it
        is listed and adds nothing otherwise, so the browser blocks the call.
        """
        if "*" in self.allow_origins:
            allowed = "*"
        elif origin in self.allow_origins:
            allowed = origin
        else:
            return {}

        headers = {
            "Access-Control-Allow-Origin": allowed,
            "Access-Control-Allow-Headers": ", ".join(self.allow_headers),
            "Access-Control-Allow-Methods": ", ".join(self.allow_methods),
        }
        if allowed != "*":
            # Caches must not reuse this answer for another origin
            headers["Vary"] = "Origin"
        return headers

    def preflight(self, request: HTTPRequest) -> HTTPResponse:
        """OPTIONS handler: 204 with the policy headers and Max-Age."""
        headers = self.headers(request.get_header("origin"))
        if headers:
            headers["Access-Control-Max-Age"] = str(self.max_age)
        return HTTPResponse(status=HTTPStatus.NO_CONTENT, headers=headers)
