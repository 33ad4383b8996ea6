"""
=============================================================================
LOGGING MIDDLEWARE
=============================================================================

One access-log line per request, written to the "httpapp.access" logger
after the rest of the chain has answered.

=============================================================================
LOG FORMATS
=============================================================================

    DEV (default), short and colored by status category:
    ┌─────────────────────────────────────────────────────────────────────┐
    │ GET /hello-world 127.0.0.1 200 0.412 ms - 12                        │
    │ ─── ──────────── ───────── ─── ──────── ──                          │
    │ method  url      client ip status time  body length                 │
    └─────────────────────────────────────────────────────────────────────┘

    COMBINED, Apache style:
    ┌─────────────────────────────────────────────────────────────────────┐
    │ 127.0.0.1 - - [18/Oct/2026:12:00:00 +0000] "GET /posts/new          │
    │ HTTP/1.1" 200 734 "-" "curl/8.5.0" 1.02ms                          │
    └─────────────────────────────────────────────────────────────────────┘

    BASIC, the four facts and nothing else:
    ┌─────────────────────────────────────────────────────────────────────┐
    │ GET /posts/new 127.0.0.1 [18/Oct/2026:12:00:00 +0000]              │
    └─────────────────────────────────────────────────────────────────────┘

    JSON, one object per line, for log aggregators:
    ┌─────────────────────────────────────────────────────────────────────┐
    │ {"method": "GET", "url": "/posts/new", "status_code": 200, ...}    │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
POSITION IN THE CHAIN
=============================================================================

Logging is registered FIRST. It awaits proceed(), so by the time it logs,
every later stage (static files, routers, the 404 handler, error
handlers) has finished and the status is final. A request the static
middleware answers is still logged, because logging sits before it.

=============================================================================
INTERVIEW QUESTIONS ABOUT LOGGING
=============================================================================

Q: "Why log after the handler instead of before?"
A: "The interesting facts, status and duration, only exist afterwards.
   A line before the handler is useful only when requests hang, and
   stalled requests are turned into errors here anyway."

Q: "What should you NOT log?"
A: "Cookie values, form bodies, anything with credentials. This logger
   writes the URL and the status, never headers or bodies."

=============================================================================
"""

import json
import logging
import time
from dataclasses import asdict, dataclass

from .base import Middleware
from ..http.chain import Proceed
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger("httpapp.access")

LOG_FORMATS = ("dev", "combined", "basic", "json")

# ANSI colors by status category, as terminal dev loggers use them
_STATUS_COLORS = {5: 31, 4: 33, 3: 36, 2: 32}


@dataclass
class RequestLog:
    """
    Everything known about one finished request.

        method        GET, POST, ...
        url           Path plus query string, as the client sent it
        version       HTTP/1.1
        client_ip     Peer address
        user_agent    "-" when absent
        referrer      "-" when absent
        status_code   Final status
        content_length  Body size in bytes, None when nothing was sent
        duration_ms   Time spent in the chain after this stage
        timestamp     [18/Oct/2026:12:00:00 +0000] style
    """

    method: str
    url: str
    version: str
    client_ip: str
    user_agent: str
    referrer: str
    status_code: int
    content_length: object
    duration_ms: float
    timestamp: str

    def to_dict(self) -> dict:
        data = asdict(self)
        data["duration_ms"] = round(self.duration_ms, 3)
        return data

    def to_dev(self, colorize: bool = False) -> str:
        length = "-" if self.content_length is None else self.content_length
        status = str(self.status_code)
        if colorize:
            color = _STATUS_COLORS.get(self.status_code // 100, 0)
            status = f"\x1b[{color}m{status}\x1b[0m"
        return f"{self.method} {self.url} {self.client_ip} {status} {self.duration_ms:.3f} ms - {length}"

    def to_combined(self) -> str:
        length = "-" if self.content_length is None else self.content_length
        return (
            f'{self.client_ip} - - [{self.timestamp}] '
            f'"{self.method} {self.url} {self.version}" {self.status_code} '
            f'{length} "{self.referrer}" "{self.user_agent}" {self.duration_ms:.2f}ms'
        )

    def to_basic(self) -> str:
        return f"{self.method} {self.url} {self.client_ip} [{self.timestamp}]"


class LoggingMiddleware(Middleware):
    """
    Access logging.

    =========================================================================
    USAGE
    =========================================================================

        app.use(LoggingMiddleware())                       # dev format
        app.use(LoggingMiddleware(log_format="combined"))
        app.use(LoggingMiddleware(log_format="json", skip_paths=["/favicon.ico"]))

    =========================================================================
    """

    def __init__(
        self,
        log_format: str = "dev",
        log_level: int = logging.INFO,
        colorize: bool = False,
        skip_paths=None,
    ):
        if log_format not in LOG_FORMATS:
            raise ValueError(f"log_format must be one of {LOG_FORMATS}, got {log_format!r}")
        self.log_format = log_format
        self.log_level = log_level
        self.colorize = colorize
        self.skip_paths = set(skip_paths or [])

    async def __call__(self, request: HTTPRequest, response: HTTPResponse, proceed: Proceed) -> None:
        start_time = time.perf_counter()

        # ═══════════════════════════════════════════════════════════════════
        # RUN THE REST OF THE CHAIN
        # ═══════════════════════════════════════════════════════════════════
        try:
            await proceed()
        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                f"Request failed: {request.method} {request.original_url} "
                f"- {type(e).__name__}: {e} ({duration_ms:.2f}ms)"
            )
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000

        if request.original_path in self.skip_paths:
            return

        entry = RequestLog(
            method=request.method,
            url=request.original_url,
            version=request.version,
            client_ip=request.ip or "-",
            user_agent=request.user_agent or "-",
            referrer=request.get_header("referer") or "-",
            status_code=int(response.status),
            content_length=len(response.body) if response.finished else None,
            duration_ms=duration_ms,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )

        logger.log(self.log_level, self.format(entry))

    def format(self, entry: RequestLog) -> str:
        if self.log_format == "json":
            return json.dumps(entry.to_dict())
        if self.log_format == "combined":
            return entry.to_combined()
        if self.log_format == "basic":
            return entry.to_basic()
        return entry.to_dev(self.colorize)
