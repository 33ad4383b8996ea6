"""
=============================================================================
HTTP PROTOCOL AND REQUEST HANDLING
=============================================================================

The HTTP/1.1 pieces of the application: the message types, the cookie
codec, the stage-invocation protocol and the router.

=============================================================================
MODULE COMPONENTS
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │ REQUEST (request.py)                                                │
    │   bytes → HTTPRequest (method, path, headers, body)                 │
    │   dot segments resolved, framing errors → HTTPParseError            │
    ├─────────────────────────────────────────────────────────────────────┤
    │ RESPONSE (response.py)                                              │
    │   mutable HTTPResponse shared by all stages                         │
    │   send / text / html / json / redirect / render / set_cookie        │
    ├─────────────────────────────────────────────────────────────────────┤
    │ COOKIES (cookies.py)                                                │
    │   Cookie header ↔ mapping, 'j:' JSON values, 's:' signed values     │
    ├─────────────────────────────────────────────────────────────────────┤
    │ CHAIN (chain.py)                                                    │
    │   proceed(), Continuation, stall and double-proceed detection       │
    ├─────────────────────────────────────────────────────────────────────┤
    │ ROUTER (router.py)                                                  │
    │   method + pattern → handler, first match wins, mounting            │
    ├─────────────────────────────────────────────────────────────────────┤
    │ ERRORS, STATUS CODES, MIME TYPES                                    │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .status_codes import HTTPStatus, status_phrase
from .errors import (
    HTTPError,
    BadRequest,
    NotFound,
    PayloadTooLarge,
    UnsupportedMediaType,
    TemplateRenderError,
    HTTPParseError,
    ResponseAlreadySentError,
)
from .mime_types import get_mime_type, get_content_type
from .cookies import Cookie
from .request import HTTPRequest, RequestParser, parse_request
from .response import HTTPResponse, ResponseBuilder
from .chain import MiddlewareContractError, StalledRequestError

# router imports the middleware package, which needs the modules above
from .router import Router, Route, Mount

__all__ = [
    "HTTPStatus",
    "status_phrase",

    # Errors
    "HTTPError",
    "BadRequest",
    "NotFound",
    "PayloadTooLarge",
    "UnsupportedMediaType",
    "TemplateRenderError",
    "HTTPParseError",
    "ResponseAlreadySentError",
    "MiddlewareContractError",
    "StalledRequestError",

    # Messages
    "HTTPRequest",
    "RequestParser",
    "parse_request",
    "HTTPResponse",
    "ResponseBuilder",
    "Cookie",

    # Routing
    "Router",
    "Route",
    "Mount",

    "get_mime_type",
    "get_content_type",
]
