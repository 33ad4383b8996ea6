"""
=============================================================================
STATIC FILE MIDDLEWARE
=============================================================================

Serves files from the public directory. When no file matches, it steps
aside and lets the rest of the chain handle the request.

=============================================================================
SHORT-CIRCUIT OR FALL THROUGH
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   GET /css/style.css                 GET /hello-world               │
    │        │                                  │                          │
    │        ▼                                  ▼                          │
    │   public/css/style.css exists?       public/hello-world exists?     │
    │        │ yes                              │ no                       │
    │        ▼                                  ▼                          │
    │   200 + file bytes                   proceed()                      │
    │   chain stops here,                  cookies, body, router run      │
    │   router never runs                                                  │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Everything that is not a plain hit falls through with proceed(): other
methods than GET/HEAD, missing files, dotfiles, directories without an
index file, paths that resolve outside the root, and read errors such as
a permission problem. A static miss is never an error by itself; the
404 comes from the end of the chain if nothing else answers either.

=============================================================================
SECURITY: PATH TRAVERSAL
=============================================================================

    GET /../../etc/passwd HTTP/1.1

Two layers keep this inside the root:

    1. The request parser resolves dot segments: the path arrives here
       as "/etc/passwd", which is looked up as public/etc/passwd.
    2. The joined path is resolve()d (following symlinks) and must
       still be relative_to() the root. A symlink pointing outside the
       root fails this check and falls through.

=============================================================================
CACHING
=============================================================================

    ETag: "1760788800-1234"        mtime-size fingerprint
    Last-Modified: Sun, 18 Oct 2026 12:00:00 GMT
    Cache-Control: public, max-age=0

    If-None-Match: "1760788800-1234"   →  304 Not Modified, no body

max-age=0 means "cache it, but ask before reusing it", which is what the
ETag round trip is for.

=============================================================================
INTERVIEW QUESTIONS ABOUT STATIC FILES
=============================================================================

Q: "Why read files in a worker thread?"
A: "The event loop is single-threaded. A slow disk read on the loop
   thread stalls every other connection. asyncio.to_thread() moves the
   read off the loop and resumes the coroutine when the bytes are in."

Q: "What's the difference between ETag and Last-Modified?"
A: "Last-Modified is a timestamp with one-second resolution. The ETag
   here also includes the size, so it changes for edits within the same
   second that change the length."

Q: "Why redirect /docs to /docs/?"
A: "Relative links inside docs/index.html (like style.css) resolve
   against the directory only when the URL ends in a slash."

=============================================================================
"""

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Tuple, Union

from .base import Middleware
from ..http.chain import Proceed
from ..http.mime_types import get_content_type
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, format_http_date
from ..http.status_codes import HTTPStatus


logger = logging.getLogger(__name__)


class StaticFilesMiddleware(Middleware):
    """
    Serve files under `root_dir`.

    =========================================================================
    OPTIONS
    =========================================================================

        root_dir:    Directory to serve. Must exist.
        index_file:  File served for a directory URL ending in "/".
                     None disables directory indexes.
        max_age:     Cache-Control max-age in seconds.
        dotfiles:    "ignore" (fall through, the default) or "allow".
        redirect:    Redirect "/dir" to "/dir/" when dir has an index.

    =========================================================================
    """

    def __init__(
        self,
        root_dir: Union[str, Path],
        index_file: Optional[str] = "index.html",
        max_age: int = 0,
        dotfiles: str = "ignore",
        redirect: bool = True,
    ):
        self.root_dir = Path(root_dir).resolve()
        if not self.root_dir.is_dir():
            raise ValueError(f"Static root directory does not exist: {root_dir}")
        if dotfiles not in ("ignore", "allow"):
            raise ValueError(f"dotfiles must be 'ignore' or 'allow', got {dotfiles!r}")

        self.index_file = index_file
        self.max_age = max_age
        self.dotfiles = dotfiles
        self.redirect = redirect

    async def __call__(self, request: HTTPRequest, response: HTTPResponse, proceed: Proceed) -> None:
        if request.method not in ("GET", "HEAD"):
            await proceed()
            return

        full_path = self._resolve(request.path)
        if full_path is None:
            await proceed()
            return

        # ─────────────────────────────────────────────────────────────────
        # LOOKUP
        # ─────────────────────────────────────────────────────────────────
        try:
            found = self._locate(full_path)
        except OSError as e:
            logger.debug(f"Static lookup failed for {request.path}: {e}")
            found = None

        if found is None:
            await proceed()
            return

        file_path, is_index = found
        if is_index and not request.path.endswith("/"):
            if not self.redirect:
                await proceed()
                return
            location = request.original_path + "/"
            if request.query_string:
                location += "?" + request.query_string
            response.redirect(location, status=HTTPStatus.MOVED_PERMANENTLY)
            return

        # ─────────────────────────────────────────────────────────────────
        # SERVE THE FILE
        # ─────────────────────────────────────────────────────────────────
        try:
            await self._serve_file(file_path, request, response)
        except OSError as e:
            logger.debug(f"Static read failed for {file_path}: {e}")
            await proceed()

    def _locate(self, full_path: Path) -> Optional[Tuple[Path, bool]]:
        """The file to send and whether it is a directory index, or None."""
        if full_path.is_dir():
            if not self.index_file:
                return None
            index_path = full_path / self.index_file
            return (index_path, True) if index_path.is_file() else None
        return (full_path, False) if full_path.is_file() else None

    def _resolve(self, url_path: str) -> Optional[Path]:
        """
        Map a URL path onto the filesystem, or None if it must not be served.
        """
        relative = url_path.lstrip("/")
        segments = [s for s in relative.split("/") if s]

        if self.dotfiles == "ignore" and any(s.startswith(".") for s in segments):
            return None

        try:
            full_path = (self.root_dir / relative).resolve()
        except (OSError, RuntimeError):
            return None

        try:
            full_path.relative_to(self.root_dir)
        except ValueError:
            logger.warning(f"Path traversal attempt: {url_path}")
            return None

        return full_path

    async def _serve_file(self, path: Path, request: HTTPRequest, response: HTTPResponse) -> None:
        """Send one file with caching headers; OSError propagates to the caller."""
        stat = path.stat()
        size = stat.st_size
        mtime = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
        etag = f'"{int(stat.st_mtime)}-{size}"'

        # ─────────────────────────────────────────────────────────────────
        # CONDITIONAL REQUEST
        # ─────────────────────────────────────────────────────────────────
        if _etag_matches(request.get_header("if-none-match"), etag):
            response.set_header("ETag", etag)
            response.set_header("Cache-Control", f"public, max-age={self.max_age}")
            response.set_status(HTTPStatus.NOT_MODIFIED)
            response.end()
            return

        # HEAD needs the headers only
        if request.method == "HEAD":
            content = b""
            response.set_header("Content-Length", str(size))
        else:
            content = await asyncio.to_thread(path.read_bytes)

        response.set_header("Content-Type", get_content_type(path))
        response.set_header("ETag", etag)
        response.set_header("Last-Modified", format_http_date(mtime))
        response.set_header("Cache-Control", f"public, max-age={self.max_age}")
        response.set_status(HTTPStatus.OK)
        response.send(content)


def _etag_matches(if_none_match: str, etag: str) -> bool:
    """
    Weak comparison against an If-None-Match list.

        'W/"1-2", "3-4"' matches '"3-4"'
        '*' matches anything
    """
    if not if_none_match:
        return False
    if if_none_match.strip() == "*":
        return True
    for candidate in if_none_match.split(","):
        candidate = candidate.strip()
        if candidate.startswith("W/"):
            candidate = candidate[2:]
        if candidate == etag:
            return True
    return False
