"""
=============================================================================
HTTP STATUS CODES
=============================================================================

The status codes this application actually sends, with their reason
phrases.

=============================================================================
WHERE EACH CODE COMES FROM
=============================================================================

    ┌────────┬───────────────────────────────────────────────────────────┐
    │  Code  │  Produced by                                              │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  200   │  Route handlers, static files                             │
    │  301   │  Static middleware redirecting /dir to /dir/              │
    │  304   │  Static middleware when If-None-Match matches the ETag    │
    │  400   │  Request parser (bad request line), body decoder          │
    │  404   │  Final handler when nothing responded                     │
    │  413   │  Body decoder (limit), request parser (max size)          │
    │  415   │  Body decoder (unsupported charset)                       │
    │  431   │  Connection (header block too large)                      │
    │  500   │  Uncaught errors, template failures, stalled middleware   │
    │  501   │  Unknown methods, Transfer-Encoding bodies                │
    │  505   │  Anything other than HTTP/1.0 or HTTP/1.1                 │
    └────────┴───────────────────────────────────────────────────────────┘

The first digit is the category, and the access logger colors its output
by category (2xx green, 3xx cyan, 4xx yellow, 5xx red).

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    HTTP status codes and reason phrases.

    Being an IntEnum, a member compares equal to its number:

        >>> HTTPStatus.NOT_FOUND == 404
        True
        >>> HTTPStatus.NOT_FOUND.phrase
        'Not Found'
    """

    # 1xx
    CONTINUE = 100

    # 2xx
    OK = 200
    CREATED = 201
    NO_CONTENT = 204

    # 3xx
    MOVED_PERMANENTLY = 301
    FOUND = 302
    SEE_OTHER = 303
    NOT_MODIFIED = 304
    TEMPORARY_REDIRECT = 307

    # 4xx
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405
    REQUEST_TIMEOUT = 408
    LENGTH_REQUIRED = 411
    PAYLOAD_TOO_LARGE = 413
    URI_TOO_LONG = 414
    UNSUPPORTED_MEDIA_TYPE = 415
    REQUEST_HEADER_FIELDS_TOO_LARGE = 431

    # 5xx
    INTERNAL_SERVER_ERROR = 500
    NOT_IMPLEMENTED = 501
    SERVICE_UNAVAILABLE = 503
    HTTP_VERSION_NOT_SUPPORTED = 505

    @property
    def phrase(self) -> str:
        """
        The reason phrase that follows the number on the status line:

            HTTP/1.1 404 Not Found
                     ─── ─────────
                      │      └── phrase
                      └───────── code
        """
        return _STATUS_PHRASES.get(self, "Unknown")

    @property
    def category(self) -> int:
        """First digit of the code: 2 for 2xx, 4 for 4xx and so on."""
        return int(self) // 100

    @property
    def is_redirect(self) -> bool:
        return self.category == 3

    @property
    def is_error(self) -> bool:
        """True for 4xx and 5xx."""
        return self >= 400


def status_phrase(code: int) -> str:
    """
    Reason phrase for any integer code, known to the enum or not.

    Handlers may set a bare int (``response.status = 418``); the
    serializer still needs something to print after the number.
    """
    try:
        return HTTPStatus(code).phrase
    except ValueError:
        return "Unknown"


_STATUS_PHRASES = {
    HTTPStatus.CONTINUE: "Continue",
    HTTPStatus.OK: "OK",
    HTTPStatus.CREATED: "Created",
    HTTPStatus.NO_CONTENT: "No Content",
    HTTPStatus.MOVED_PERMANENTLY: "Moved Permanently",
    HTTPStatus.FOUND: "Found",
    HTTPStatus.SEE_OTHER: "See Other",
    HTTPStatus.NOT_MODIFIED: "Not Modified",
    HTTPStatus.TEMPORARY_REDIRECT: "Temporary Redirect",
    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.UNAUTHORIZED: "Unauthorized",
    HTTPStatus.FORBIDDEN: "Forbidden",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.METHOD_NOT_ALLOWED: "Method Not Allowed",
    HTTPStatus.REQUEST_TIMEOUT: "Request Timeout",
    HTTPStatus.LENGTH_REQUIRED: "Length Required",
    HTTPStatus.PAYLOAD_TOO_LARGE: "Payload Too Large",
    HTTPStatus.URI_TOO_LONG: "URI Too Long",
    HTTPStatus.UNSUPPORTED_MEDIA_TYPE: "Unsupported Media Type",
    HTTPStatus.REQUEST_HEADER_FIELDS_TOO_LARGE: "Request Header Fields Too Large",
    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
    HTTPStatus.NOT_IMPLEMENTED: "Not Implemented",
    HTTPStatus.SERVICE_UNAVAILABLE: "Service Unavailable",
    HTTPStatus.HTTP_VERSION_NOT_SUPPORTED: "HTTP Version Not Supported",
}
