"""
=============================================================================
STATIC FILE HANDLER
=============================================================================

Serves files from one directory for every GET that no other route claims.
It is an ordinary handler on two routes registered after the application's
own, so first-match order decides who answers:

    GET /api          → hello              (registered first)
    GET /             → StaticFiles.handle  → index.html
    GET /*filepath    → StaticFiles.handle  → <root>/<filepath>

=============================================================================
SECURITY: PATH TRAVERSAL
=============================================================================

    full_path = (root_dir / filepath).resolve()
    full_path.relative_to(root_dir)     # ValueError when outside → 403

The parser already answers 400 to any ".." segment. The check here also
covers symlinks, since resolve() follows them, and callers that build an
HTTPRequest by hand.

=============================================================================
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Union

from .http import (
    HTTPRequest,
    HTTPResponse,
    HTTPStatus,
    ResponseBuilder,
    forbidden,
    not_found,
)
from .http.response import format_http_date


logger = logging.getLogger(__name__)


MIME_TYPES = {
    ".html": "text/html",
    ".htm": "text/html",
    ".css": "text/css",
    ".js": "application/javascript",
    ".mjs": "application/javascript",
    ".json": "application/json",
    ".map": "application/json",
    ".txt": "text/plain",
    ".svg": "image/svg+xml",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".ico": "image/x-icon",
    ".webp": "image/webp",
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".wav": "audio/wav",
    ".mp3": "audio/mpeg",
}

DEFAULT_MIME_TYPE = "application/octet-stream"

TEXT_TYPES = {"application/javascript", "application/json", "image/svg+xml"}


def get_content_type(path: Union[str, Path], charset: str = "utf-8") -> str:
    """
    Content-Type for a file name, with a charset for text types.

        >>> get_content_type("index.html")
        'text/html; charset=utf-8'
        >>> get_content_type("logo.png")
        'image/png'
    """
    mime_type = MIME_TYPES.get(Path(path).suffix.lower(), DEFAULT_MIME_TYPE)
    if mime_type.startswith("text/") or mime_type in TEXT_TYPES:
        return f"{mime_type}; charset={charset}"
    return mime_type


class StaticFiles:
    """
    Handler serving files below root_dir.

        static = StaticFiles("./static")
        router.get("/")(static.handle)
        router.get("/*filepath")(static.handle)

    Missing files get the router's empty 404; paths escaping the root and
    directories without an index get an empty 403.
    """

    def __init__(self, root_dir: str, index_file: str = "index.html",
                 cache_max_age: int = 3600):
        """
        Raises:
            ValueError: root_dir is not a directory.
        """
        self.root_dir = Path(root_dir).resolve()
        self.index_file = index_file
        self.cache_max_age = cache_max_age

        if not self.root_dir.is_dir():
            raise ValueError(f"Static root directory does not exist: {root_dir}")

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        file_path = request.path_params.get("filepath", "").lstrip("/")
        full_path = (self.root_dir / file_path).resolve()

        try:
            full_path.relative_to(self.root_dir)
        except ValueError:
            logger.warning(f"Path traversal attempt: {file_path!r}")
            return forbidden()

        if full_path.is_dir():
            full_path = full_path / self.index_file
            if not full_path.is_file():
                return forbidden()

        if not full_path.is_file():
            return not_found()

        return self._serve_file(full_path, request)

    def _serve_file(self, path: Path, request: HTTPRequest) -> HTTPResponse:
        """
        200 with the file, or 304 when If-None-Match carries our ETag.

        The ETag is "<mtime>-<size>" from stat().
        """
        try:
            stat = path.stat()
            etag = f'"{int(stat.st_mtime)}-{stat.st_size}"'

            if request.get_header("if-none-match") == etag:
                return (ResponseBuilder()
                    .status(HTTPStatus.NOT_MODIFIED)
                    .header("ETag", etag)
                    .build())

            content = path.read_bytes()
        except PermissionError:
            return forbidden()

        modified = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
        return (ResponseBuilder()
            .status(HTTPStatus.OK)
            .content_type(get_content_type(path))
            .header("ETag", etag)
            .header("Last-Modified", format_http_date(modified))
            .header("Cache-Control", f"public, max-age={self.cache_max_age}")
            .body(content)
            .build())
