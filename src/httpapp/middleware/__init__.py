"""
=============================================================================
MIDDLEWARE
=============================================================================

Stages that run between receiving a request and the router.

=============================================================================
THE APPLICATION'S CHAIN
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   Incoming Request                                                   │
    │        │                                                             │
    │        ▼                                                             │
    │   ┌──────────────────────────┐                                      │
    │   │ LoggingMiddleware        │ ──► one access line per request      │
    │   └────────────┬─────────────┘                                      │
    │                ▼                                                     │
    │   ┌──────────────────────────┐                                      │
    │   │ StaticFilesMiddleware    │ ──► answers if public/<path> exists  │
    │   └────────────┬─────────────┘                                      │
    │                ▼                                                     │
    │   ┌──────────────────────────┐                                      │
    │   │ CookieParserMiddleware   │ ──► request.cookies                  │
    │   └────────────┬─────────────┘                                      │
    │                ▼                                                     │
    │   ┌──────────────────────────┐                                      │
    │   │ VisitorCookiesMiddleware │ ──► luckyNumber, things              │
    │   └────────────┬─────────────┘                                      │
    │                ▼                                                     │
    │   ┌──────────────────────────┐                                      │
    │   │ UrlencodedBodyMiddleware │ ──► request.form                     │
    │   └────────────┬─────────────┘                                      │
    │                ▼                                                     │
    │   routes: /hello-world, / (home), /posts (posts)                    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Each stage only relies on what earlier stages did. The visitor cookie
stage reads request.cookies, so it must come after the cookie parser.

=============================================================================
"""

from .base import (
    Middleware,
    ErrorMiddleware,
    FunctionMiddleware,
    FunctionErrorMiddleware,
    MiddlewarePipeline,
    function_middleware,
    error_middleware,
)
from .logging import LoggingMiddleware
from .static import StaticFilesMiddleware
from .cookies import CookieParserMiddleware
from .body import UrlencodedBodyMiddleware

__all__ = [
    # Base classes
    "Middleware",
    "ErrorMiddleware",
    "FunctionMiddleware",
    "FunctionErrorMiddleware",
    "MiddlewarePipeline",
    "function_middleware",
    "error_middleware",

    # Built-in middleware
    "LoggingMiddleware",
    "StaticFilesMiddleware",
    "CookieParserMiddleware",
    "UrlencodedBodyMiddleware",
]
