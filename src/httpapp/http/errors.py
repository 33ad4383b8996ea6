"""
=============================================================================
HTTP ERRORS
=============================================================================

Exceptions that know which status code they should turn into.

=============================================================================
HOW ERRORS TRAVEL
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   stage raises / calls proceed(error)                               │
    │        │                                                             │
    │        ▼                                                             │
    │   next ErrorMiddleware in the chain (if any)                        │
    │        │  proceed(error)                                             │
    │        ▼                                                             │
    │   default error handler                                              │
    │        status = error.status_code  if isinstance(error, HTTPError)  │
    │                 500                otherwise                         │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

HTTPParseError is the odd one out: it is raised by the wire parser before
the application has a request object, so the server answers it directly
and closes the connection.

=============================================================================
"""

from typing import Optional

from .status_codes import HTTPStatus, status_phrase


class HTTPError(Exception):
    """
    Base class for errors that map onto an HTTP status.

    Raise it (or a subclass) from any handler, or pass it to proceed():

        def handler(request, response, proceed):
            proceed(NotFound("no such post"))
    """

    status_code: int = HTTPStatus.INTERNAL_SERVER_ERROR

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None):
        if status_code is not None:
            self.status_code = status_code
        self.message = message or status_phrase(self.status_code)
        super().__init__(self.message)

    @property
    def expose(self) -> bool:
        """
        Whether the message is safe to show the client.

        Client errors describe the client's own request; server errors
        may describe internals, so only the reason phrase is shown.
        """
        return self.status_code < 500


class BadRequest(HTTPError):
    status_code = HTTPStatus.BAD_REQUEST


class NotFound(HTTPError):
    status_code = HTTPStatus.NOT_FOUND


class PayloadTooLarge(HTTPError):
    status_code = HTTPStatus.PAYLOAD_TOO_LARGE


class UnsupportedMediaType(HTTPError):
    status_code = HTTPStatus.UNSUPPORTED_MEDIA_TYPE


class TemplateRenderError(HTTPError):
    """A view failed to render (undefined variable, syntax error, missing file)."""

    status_code = HTTPStatus.INTERNAL_SERVER_ERROR

    def __init__(self, template: str, reason: str):
        self.template = template
        super().__init__(f"Failed to render {template!r}: {reason}")


class HTTPParseError(Exception):
    """
    Raised when raw bytes cannot be parsed into a request.

    The status code tells the server what to answer before closing
    the connection (400 for garbage, 413 for size, 505 for version...).
    """

    def __init__(self, message: str, status_code: int = HTTPStatus.BAD_REQUEST):
        super().__init__(message)
        self.status_code = status_code


class ResponseAlreadySentError(RuntimeError):
    """A stage tried to write a response that has already been sent."""
