"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Turns the bytes a browser sends into an HTTPRequest object that the
middleware chain can read from and write to.

=============================================================================
WHAT ARRIVES ON THE WIRE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │  POST /posts?draft=1 HTTP/1.1\r\n          ◄── request line         │
    │  Host: localhost:5001\r\n                  ◄── headers              │
    │  Cookie: luckyNumber=42; things=j%3A...\r\n                          │
    │  Content-Type: application/x-www-form-urlencoded\r\n                 │
    │  Content-Length: 27\r\n                                              │
    │  \r\n                                      ◄── blank line           │
    │  title=Hello&body=First+post               ◄── body (27 bytes)      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The parser only understands the message framing. It does NOT look inside
the Cookie header or the form body: those are decoded by middleware
further down the chain, which fills in request.cookies and request.form.

    parser             CookieParserMiddleware     UrlencodedBodyMiddleware
    ──────             ──────────────────────     ────────────────────────
    method, path,      request.cookies            request.form
    headers, body      request.signed_cookies

=============================================================================
WHAT THE PARSER REJECTS
=============================================================================

    ┌──────────────────────────────────────────┬──────────────────────────┐
    │  Problem                                 │  Answer                  │
    ├──────────────────────────────────────────┼──────────────────────────┤
    │  Request line not METHOD SP URI SP VER   │  400 Bad Request         │
    │  Header line without a colon             │  400 Bad Request         │
    │  Content-Length not a number, or two     │  400 Bad Request         │
    │  different Content-Length values         │                          │
    │  Method we do not know                   │  501 Not Implemented     │
    │  Transfer-Encoding (chunked bodies)      │  501 Not Implemented     │
    │  Version other than HTTP/1.0 or 1.1      │  505 Version Not Supp.   │
    └──────────────────────────────────────────┴──────────────────────────┘

Paths are NOT rejected for containing "..". Instead dot segments are
resolved the way RFC 3986 section 5.2.4 describes, so "/css/../x.css"
becomes "/x.css" and "/../../etc/passwd" becomes "/etc/passwd". A path
can never climb above "/", and the static middleware then checks the
resolved file is still inside its root.

=============================================================================
INTERVIEW QUESTIONS ABOUT HTTP PARSING
=============================================================================

Q: "How do you know when the headers end?"
A: "An empty line, \\r\\n\\r\\n. The connection reads up to that marker,
   hands the head to the parser, then reads exactly Content-Length more
   bytes for the body."

Q: "Why keep raw_headers when you already have a dict?"
A: "A header may legally repeat. The dict joins repeats into one value,
   which is what most code wants, but the ordered list keeps the exact
   pairs for anything that needs them."

Q: "Why refuse Transfer-Encoding instead of ignoring it?"
A: "If the server ignores it and the proxy in front does not, the two
   disagree on where the body ends. That disagreement is request
   smuggling. Refusing is the safe answer when chunked bodies are not
   supported."

=============================================================================
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import parse_qs, unquote, urlsplit

from .errors import HTTPParseError
from .status_codes import HTTPStatus


@dataclass
class HTTPRequest:
    """
    A parsed HTTP request, shared by every stage of the chain.

    =========================================================================
    ATTRIBUTES
    =========================================================================

        method:         "GET", "POST", ...
        path:           Path with dot segments removed. Inside a mounted
                        router the mount prefix is stripped:
                        "/posts/new" is seen as "/new" by the posts router.
        original_path:  The path as it arrived, never stripped.
        base_path:      The prefix stripped so far ("" at the top level).
        version:        "HTTP/1.1" or "HTTP/1.0".
        headers:        Lower-cased name → value. Repeats are joined.
        raw_headers:    Ordered (name, value) pairs exactly as received.
        query_string:   Text after "?", undecoded.
        query_params:   "?a=1&a=2" → {"a": ["1", "2"]}
        body:           Raw body bytes.
        cookies:        Filled by CookieParserMiddleware.
        signed_cookies: Filled by CookieParserMiddleware when a secret is set.
        form:           Filled by UrlencodedBodyMiddleware. None means the
                        request carried no URL-encoded form at all, which
                        is different from an empty form ({}).
        path_params:    Filled by the router: "/users/:id" → {"id": "7"}.
        client_address: (ip, port) of the peer.

    =========================================================================
    """

    method: str
    path: str
    version: str = "HTTP/1.1"

    headers: Dict[str, str] = field(default_factory=dict)
    raw_headers: List[Tuple[str, str]] = field(default_factory=list)
    query_string: str = ""
    query_params: Dict[str, List[str]] = field(default_factory=dict)
    body: bytes = b""

    # Filled in by middleware and the router
    cookies: Dict[str, Any] = field(default_factory=dict)
    signed_cookies: Dict[str, Any] = field(default_factory=dict)
    form: Optional[Dict[str, Any]] = None
    path_params: Dict[str, str] = field(default_factory=dict)
    base_path: str = ""
    original_path: str = ""

    client_address: Tuple[str, int] = ("", 0)

    def __post_init__(self):
        if not self.original_path:
            self.original_path = self.path

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def url(self) -> str:
        """Path plus query string, relative to the current mount."""
        if self.query_string:
            return f"{self.path}?{self.query_string}"
        return self.path

    @property
    def original_url(self) -> str:
        """Path plus query string as the client sent them."""
        if self.query_string:
            return f"{self.original_path}?{self.query_string}"
        return self.original_path

    @property
    def ip(self) -> str:
        return self.client_address[0]

    @property
    def content_type(self) -> Optional[str]:
        """
        Media type without parameters, lower-cased.

            "application/x-www-form-urlencoded; charset=UTF-8"
                → "application/x-www-form-urlencoded"
        """
        value = self.headers.get("content-type", "")
        media_type = value.split(";", 1)[0].strip().lower()
        return media_type or None

    @property
    def charset(self) -> Optional[str]:
        """The charset parameter of Content-Type, if any, lower-cased."""
        value = self.headers.get("content-type", "")
        for param in value.split(";")[1:]:
            name, _, param_value = param.partition("=")
            if name.strip().lower() == "charset":
                return param_value.strip().strip('"').lower() or None
        return None

    @property
    def content_length(self) -> int:
        """Content-Length as an int; 0 when missing (the parser validated it)."""
        try:
            return int(self.headers.get("content-length", 0))
        except ValueError:
            return 0

    @property
    def has_body(self) -> bool:
        return self.content_length > 0

    @property
    def host(self) -> str:
        return self.headers.get("host", "")

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")

    @property
    def is_keep_alive(self) -> bool:
        """
        Whether the connection should stay open after the response.

            HTTP/1.1: open unless "Connection: close"
            HTTP/1.0: closed unless "Connection: keep-alive"
        """
        tokens = {
            token.strip().lower()
            for token in self.headers.get("connection", "").split(",")
        }
        if self.version == "HTTP/1.1":
            return "close" not in tokens
        return "keep-alive" in tokens

    # =========================================================================
    # ACCESSORS
    # =========================================================================

    def get_header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)

    def get_query(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """First value of a query parameter."""
        values = self.query_params.get(name, [])
        return values[0] if values else default

    def get_query_list(self, name: str) -> List[str]:
        return self.query_params.get(name, [])


class RequestParser:
    """
    Parses the request head (and optionally the body) into HTTPRequest.

    ==========================================================================
    TWO ENTRY POINTS
    ==========================================================================

        parse_head(head)     Used by the connection. It gets the bytes up
                             to the blank line, learns Content-Length from
                             the result, then reads the body itself.

        parse(data)          Whole message in one buffer. Handy for tests
                             and for parse_request().

    ==========================================================================
    """

    VALID_METHODS = {
        "GET",
        "HEAD",
        "POST",
        "PUT",
        "DELETE",
        "PATCH",
        "OPTIONS",
    }

    REQUEST_LINE_PATTERN = re.compile(r"^([A-Z]+) (\S+) (HTTP/\d\.\d)$")

    # field-name is an RFC 7230 token; no whitespace before the colon
    HEADER_PATTERN = re.compile(r"^([!#$%&'*+\-.^_`|~0-9A-Za-z]+):[ \t]*(.*?)[ \t]*$")

    def __init__(self, max_request_size: int = 10 * 1024 * 1024):
        self.max_request_size = max_request_size

    def parse(self, data: bytes, client_address: Tuple[str, int] = ("", 0)) -> HTTPRequest:
        """
        Parse a complete request (head, blank line, body).

        Raises:
            HTTPParseError: With the status code the server should answer.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(
                f"Request too large: {len(data)} bytes",
                status_code=HTTPStatus.PAYLOAD_TOO_LARGE,
            )

        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        request = self.parse_head(data[:header_end], client_address)

        body = data[header_end + 4:]
        if len(body) < request.content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {request.content_length} bytes, got {len(body)}"
            )
        request.body = body[:request.content_length]
        return request

    def parse_head(self, head: bytes, client_address: Tuple[str, int] = ("", 0)) -> HTTPRequest:
        """
        Parse the request line and headers. The body is left empty.

        `head` may or may not include the trailing blank line.
        """
        try:
            text = head.decode("latin-1")
        except UnicodeDecodeError as e:
            raise HTTPParseError(f"Failed to decode request: {e}") from e

        lines = text.rstrip("\r\n").split("\r\n")
        # Tolerate stray empty lines before the request line (RFC 7230 3.5)
        while lines and not lines[0]:
            lines.pop(0)
        if not lines:
            raise HTTPParseError("Empty request")

        method, path, query_string, version = self._parse_request_line(lines[0])
        headers, raw_headers = self._parse_headers(lines[1:])
        self._check_framing(headers)

        return HTTPRequest(
            method=method,
            path=path,
            version=version,
            headers=headers,
            raw_headers=raw_headers,
            query_string=query_string,
            query_params=parse_qs(query_string, keep_blank_values=True),
            client_address=client_address,
        )

    def _parse_request_line(self, line: str) -> Tuple[str, str, str, str]:
        """
        METHOD SP REQUEST-TARGET SP HTTP-VERSION

            "GET /posts/new?x=1 HTTP/1.1"
             ─┬─ ──────┬─────── ────┬───
              │        │            └── version
              │        └─────────────── target → path + query string
              └──────────────────────── method
        """
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line!r}")

        method, target, version = match.groups()

        if method not in self.VALID_METHODS:
            raise HTTPParseError(
                f"Unsupported method: {method}",
                status_code=HTTPStatus.NOT_IMPLEMENTED,
            )

        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(
                f"Unsupported HTTP version: {version}",
                status_code=HTTPStatus.HTTP_VERSION_NOT_SUPPORTED,
            )

        # Origin form "/path?q" is what browsers send. Absolute form
        # "http://host/path?q" is what they send to proxies.
        if target == "*" and method == "OPTIONS":
            return method, "*", "", version
        parts = urlsplit(target)
        if parts.scheme and parts.scheme not in ("http", "https"):
            raise HTTPParseError(f"Invalid request target: {target!r}")
        raw_path = parts.path
        if not raw_path:
            raw_path = "/"
        if not raw_path.startswith("/"):
            raise HTTPParseError(f"Invalid request target: {target!r}")

        try:
            path = unquote(raw_path, errors="strict")
        except UnicodeDecodeError as e:
            raise HTTPParseError(f"Invalid percent-encoding in path: {e}") from e
        if "\x00" in path:
            raise HTTPParseError("Invalid path: contains NUL byte")

        return method, remove_dot_segments(path), parts.query, version

    def _parse_headers(
        self, lines: List[str]
    ) -> Tuple[Dict[str, str], List[Tuple[str, str]]]:
        """
        Parse header lines into a lower-cased dict and an ordered list.

        Repeats are joined with ", " (RFC 7230 3.2.2), except Cookie,
        whose pairs are separated by "; ".

        Obsolete line folding (a line starting with whitespace continues
        the previous header) is still accepted.
        """
        headers: Dict[str, str] = {}
        raw_headers: List[Tuple[str, str]] = []

        for line in lines:
            if not line:
                continue

            if line[0] in (" ", "\t"):
                if not raw_headers:
                    raise HTTPParseError("Header continuation without a header")
                name, value = raw_headers[-1]
                raw_headers[-1] = (name, f"{value} {line.strip()}")
                key = name.lower()
                headers[key] = _join_repeats(
                    key, [v for n, v in raw_headers if n.lower() == key]
                )
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                raise HTTPParseError(f"Malformed header line: {line!r}")

            name, value = match.groups()
            raw_headers.append((name, value))

            key = name.lower()
            if key in headers:
                headers[key] = _join_repeats(key, [headers[key], value])
            else:
                headers[key] = value

        return headers, raw_headers

    def _check_framing(self, headers: Dict[str, str]) -> None:
        """Reject bodies whose length we cannot determine safely."""
        if "transfer-encoding" in headers:
            raise HTTPParseError(
                "Transfer-Encoding is not supported",
                status_code=HTTPStatus.NOT_IMPLEMENTED,
            )

        if "content-length" not in headers:
            return

        # Repeated headers arrive joined: "12, 12" is fine, "12, 13" is not
        values = {v.strip() for v in headers["content-length"].split(",")}
        if len(values) != 1:
            raise HTTPParseError("Conflicting Content-Length values")
        value = values.pop()
        if not value.isdigit():
            raise HTTPParseError(f"Invalid Content-Length: {value!r}")
        headers["content-length"] = value


def _join_repeats(name: str, values: List[str]) -> str:
    separator = "; " if name == "cookie" else ", "
    return separator.join(values)


def remove_dot_segments(path: str) -> str:
    """
    Resolve "." and ".." segments (RFC 3986 section 5.2.4).

        >>> remove_dot_segments("/a/b/../c/./d")
        '/a/c/d'
        >>> remove_dot_segments("/../../etc/passwd")
        '/etc/passwd'
        >>> remove_dot_segments("/css/")
        '/css/'

    A trailing "." or ".." keeps the trailing slash, since it names a
    directory.
    """
    segments = path.split("/")
    output: List[str] = []

    for segment in segments[1:]:
        if segment == "..":
            if output:
                output.pop()
        elif segment != ".":
            output.append(segment)

    result = "/" + "/".join(output)
    if segments[-1] in (".", "..") and not result.endswith("/"):
        result += "/"
    return result


def parse_request(
    data: bytes,
    client_address: Tuple[str, int] = ("", 0),
    max_size: int = 10 * 1024 * 1024,
) -> HTTPRequest:
    """Parse a complete request with a throwaway RequestParser."""
    return RequestParser(max_request_size=max_size).parse(data, client_address)
