"""
=============================================================================
HTTP RESPONSE
=============================================================================

The response object every stage of the chain shares, and its
serialization to bytes.

=============================================================================
ONE OBJECT, MANY WRITERS
=============================================================================

A response is created empty when the request arrives and travels through
the chain next to the request. Stages change it in place:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   VisitorCookiesMiddleware    response.set_cookie("things", [...])  │
    │            │                                                         │
    │            ▼                                                         │
    │   some route handler          response.locals["title"] = "Posts"    │
    │            │                                                         │
    │            ▼                                                         │
    │   final route handler         response.render("posts/index")        │
    │                                     │                                │
    │                                     └── finished = True             │
    │                                                                      │
    │   server                      response.to_bytes()                   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Cookies and headers may be added freely until the response is sent.
Sending (send, text, html, json, redirect, render, end) marks it finished.
Sending a second time raises ResponseAlreadySentError, because the bytes
for the first answer are already committed.

=============================================================================
WHAT to_bytes() ADDS
=============================================================================

    HTTP/1.1 200 OK\r\n
    Content-Type: text/html; charset=utf-8\r\n     ◄── set by the stage
    Set-Cookie: luckyNumber=42; ...\r\n            ◄── one line per cookie
    Set-Cookie: things=j%3A%5B...; Path=/\r\n
    Content-Length: 12\r\n                         ◄── computed
    Date: Sun, 18 Oct 2026 12:00:00 GMT\r\n        ◄── computed
    Server: pyhttpapp/1.0\r\n                      ◄── computed
    \r\n
    Hello World!

Set-Cookie is the one header that must NOT be joined with commas:
cookie dates contain commas ("Sun, 18 Oct ..."), so each cookie gets its
own line.

=============================================================================
INTERVIEW QUESTIONS ABOUT HTTP RESPONSES
=============================================================================

Q: "What does a HEAD response look like?"
A: "Exactly like the GET response, Content-Length included, minus the
   body bytes. The server asks for to_bytes(include_body=False)."

Q: "Why do 204 and 304 never carry a body?"
A: "The protocol says they end at the blank line. A client that sees a
   Content-Length on them may wait for bytes that never come."

=============================================================================
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from .cookies import Cookie, SIGNED_PREFIX, encode_value, format_http_date, quote_value, sign
from .errors import ResponseAlreadySentError
from .status_codes import HTTPStatus, status_phrase


DEFAULT_SERVER_NAME = "pyhttpapp/1.0"

# Statuses whose responses end at the blank line
_BODYLESS_STATUSES = {HTTPStatus.NO_CONTENT, HTTPStatus.NOT_MODIFIED}

_COOKIE_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass
class HTTPResponse:
    """
    Mutable HTTP response.

        status:   Integer status code, 200 until a stage changes it.
        headers:  Header name → value, names kept as written.
        body:     Bytes to send.
        cookies:  Cookies to set, in the order they were added.
        locals:   Values every template rendered through this response
                  can see (response.render merges them into the context).
        finished: True once a stage has sent the response.
    """

    status: int = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"
    cookies: List[Cookie] = field(default_factory=list)
    locals: Dict[str, Any] = field(default_factory=dict)
    finished: bool = False

    # Set by the application for each request
    renderer: Optional[Any] = field(default=None, repr=False)
    cookie_secret: Optional[str] = field(default=None, repr=False)

    @property
    def status_line(self) -> str:
        return f"{self.version} {int(self.status)} {status_phrase(self.status)}"

    # =========================================================================
    # HEADERS
    # =========================================================================

    def _find_header(self, name: str) -> Optional[str]:
        lowered = name.lower()
        for existing in self.headers:
            if existing.lower() == lowered:
                return existing
        return None

    def set_header(self, name: str, value: Any) -> "HTTPResponse":
        """Set a header, replacing any existing one whatever its case."""
        existing = self._find_header(name)
        if existing is not None:
            del self.headers[existing]
        self.headers[name] = str(value)
        return self

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        existing = self._find_header(name)
        return self.headers[existing] if existing is not None else default

    def has_header(self, name: str) -> bool:
        return self._find_header(name) is not None

    def remove_header(self, name: str) -> "HTTPResponse":
        existing = self._find_header(name)
        if existing is not None:
            del self.headers[existing]
        return self

    def set_status(self, status: int) -> "HTTPResponse":
        self.status = status
        return self

    def set_content_type(self, content_type: str) -> "HTTPResponse":
        return self.set_header("Content-Type", content_type)

    # =========================================================================
    # COOKIES
    # =========================================================================

    def set_cookie(
        self,
        name: str,
        value: Any,
        *,
        max_age: Optional[int] = None,
        expires: Optional[datetime] = None,
        path: Optional[str] = "/",
        domain: Optional[str] = None,
        secure: bool = False,
        http_only: bool = False,
        same_site: Optional[str] = None,
        signed: bool = False,
    ) -> "HTTPResponse":
        """
        Queue a Set-Cookie header.

            response.set_cookie("luckyNumber", 42, max_age=86400)
            response.set_cookie("things", ["Mouse", "Pen"])   # 'j:' JSON
            response.set_cookie("user", "alice", signed=True) # needs a secret

        max_age is in seconds. Structured values are JSON-encoded behind a
        'j:' marker so CookieParserMiddleware can turn them back into the
        same Python value.
        """
        self._ensure_not_finished("set a cookie")

        encoded = encode_value(value)
        if signed:
            if not self.cookie_secret:
                raise RuntimeError("set_cookie(signed=True) requires a cookie secret")
            encoded = SIGNED_PREFIX + sign(encoded, self.cookie_secret)

        self.cookies.append(Cookie(
            name=name,
            value=quote_value(encoded),
            max_age=max_age,
            expires=expires,
            path=path,
            domain=domain,
            secure=secure,
            http_only=http_only,
            same_site=same_site,
        ))
        return self

    def clear_cookie(
        self, name: str, path: Optional[str] = "/", domain: Optional[str] = None
    ) -> "HTTPResponse":
        """Tell the client to drop a cookie by expiring it in the past."""
        return self.set_cookie(name, "", expires=_COOKIE_EPOCH, path=path, domain=domain)

    # =========================================================================
    # SENDING
    # =========================================================================

    def send(self, body: Union[str, bytes, dict, list, None] = b"", status: Optional[int] = None) -> "HTTPResponse":
        """
        Send the response. Only one send per response.

        The Content-Type defaults depend on the body type:

            str          → text/html; charset=utf-8
            bytes        → application/octet-stream
            dict / list  → JSON (see json())
        """
        if isinstance(body, (dict, list)):
            return self.json(body, status=status)

        self._ensure_not_finished("send")
        if status is not None:
            self.status = status

        if body is None:
            body = b""
        if isinstance(body, str):
            if not self.has_header("Content-Type"):
                self.set_content_type("text/html; charset=utf-8")
            body = body.encode("utf-8")
        elif body and not self.has_header("Content-Type"):
            self.set_content_type("application/octet-stream")

        self.body = body
        self.finished = True
        return self

    def end(self) -> "HTTPResponse":
        """Send with whatever status and headers are set, and no body."""
        return self.send(b"")

    def text(self, text: str, status: Optional[int] = None) -> "HTTPResponse":
        self.set_content_type("text/plain; charset=utf-8")
        return self.send(text, status=status)

    def html(self, html: str, status: Optional[int] = None) -> "HTTPResponse":
        self.set_content_type("text/html; charset=utf-8")
        return self.send(html, status=status)

    def json(self, data: Any, status: Optional[int] = None) -> "HTTPResponse":
        self.set_content_type("application/json; charset=utf-8")
        return self.send(json.dumps(data).encode("utf-8"), status=status)

    def redirect(self, location: str, status: int = HTTPStatus.FOUND) -> "HTTPResponse":
        """
        Redirect the client.

            302 Found            temporary, the default
            301 Moved Permanently
            303 See Other        after a form POST, tells the browser to GET
        """
        self.set_header("Location", location)
        return self.text(f"{status_phrase(status)}. Redirecting to {location}", status=status)

    def render(self, name: str, context: Optional[Dict[str, Any]] = None) -> "HTTPResponse":
        """
        Render a template and send it as HTML.

        The template sees response.locals first, then `context` on top,
        so a handler can override anything a middleware put in locals.

        Raises:
            TemplateRenderError: Missing template, syntax error or an
                undefined variable. It becomes a 500 response.
        """
        if self.renderer is None:
            raise RuntimeError("No view renderer configured for this response")

        merged = dict(self.locals)
        if context:
            merged.update(context)
        return self.html(self.renderer.render(name, merged))

    def _ensure_not_finished(self, action: str) -> None:
        if self.finished:
            raise ResponseAlreadySentError(f"Cannot {action}: response already sent")

    # =========================================================================
    # SERIALIZATION
    # =========================================================================

    def to_bytes(self, server_name: str = DEFAULT_SERVER_NAME, include_body: bool = True) -> bytes:
        """
        Serialize status line, headers and (optionally) body.

        include_body=False is for HEAD: headers stay identical to GET,
        Content-Length included.
        """
        headers = dict(self.headers)
        body = self.body

        bodyless = self.status in _BODYLESS_STATUSES or 100 <= self.status < 200
        if bodyless:
            body = b""
            for name in list(headers):
                if name.lower() in ("content-length", "content-type"):
                    del headers[name]
        elif not self.has_header("Content-Length"):
            headers["Content-Length"] = str(len(body))

        if not self.has_header("Date"):
            headers["Date"] = format_http_date(datetime.now(timezone.utc))
        if not self.has_header("Server"):
            headers["Server"] = server_name

        lines = [self.status_line]
        lines.extend(f"{name}: {value}" for name, value in headers.items())
        lines.extend(f"Set-Cookie: {cookie.to_header()}" for cookie in self.cookies)
        lines.append("")

        head = "\r\n".join(lines).encode("latin-1", errors="replace") + b"\r\n"
        return head + body if include_body else head


class ResponseBuilder:
    """
    Fluent builder for responses the server writes on its own, before any
    application stage has run (a request it could not parse, for example).

        response = (ResponseBuilder()
            .status(HTTPStatus.BAD_REQUEST)
            .text("Bad Request")
            .close_connection()
            .build())

    Every method returns the builder, except build() and to_bytes().
    """

    def __init__(self, server_name: str = DEFAULT_SERVER_NAME):
        self._status = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body = b""
        self._server_name = server_name

    def status(self, status: int) -> "ResponseBuilder":
        self._status = status
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def text(self, text: str) -> "ResponseBuilder":
        self._headers["Content-Type"] = "text/plain; charset=utf-8"
        self._body = text.encode("utf-8")
        return self

    def html(self, html: str) -> "ResponseBuilder":
        self._headers["Content-Type"] = "text/html; charset=utf-8"
        self._body = html.encode("utf-8")
        return self

    def close_connection(self) -> "ResponseBuilder":
        self._headers["Connection"] = "close"
        return self

    def build(self) -> HTTPResponse:
        return HTTPResponse(
            status=self._status,
            headers=dict(self._headers),
            body=self._body,
            finished=True,
        )

    def to_bytes(self) -> bytes:
        return self.build().to_bytes(self._server_name)

