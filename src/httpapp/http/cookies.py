"""
=============================================================================
COOKIE CODEC
=============================================================================

Turns the Cookie request header into a mapping, and cookies-to-set into
Set-Cookie header lines. Set-Cookie rendering goes through the standard
library's http.cookies Morsel; this module adds the value encoding on top
of it.

=============================================================================
THE ROUND TRIP
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │  response.set_cookie("things", ["Mouse", "Pen", "Bow", "Dagger"])   │
    │        │                                                             │
    │        │  encode_value()      structured → 'j:' + compact JSON       │
    │        │  quote()             percent-encode for the header          │
    │        ▼                                                             │
    │  Set-Cookie: things=j%3A%5B%22Mouse%22%2C%22Pen%22...; Path=/       │
    │                                                                      │
    │        ~~~ browser stores it and sends it back ~~~                   │
    │                                                                      │
    │  Cookie: things=j%3A%5B%22Mouse%22%2C%22Pen%22...                   │
    │        │                                                             │
    │        │  parse_cookie_header()   unquote                            │
    │        │  decode_json_cookies()   'j:' + JSON → list                 │
    │        ▼                                                             │
    │  request.cookies["things"] == ["Mouse", "Pen", "Bow", "Dagger"]     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

A cookie can only hold a string, so structured values (lists, dicts) are
written as JSON behind a 'j:' marker. The marker tells the parser which
values to decode; a plain string that happens to look like JSON is left
alone.

=============================================================================
SIGNED COOKIES
=============================================================================

A signed cookie carries an HMAC of its value so the server can tell if
the client changed it:

    s:<value>.<base64 HMAC-SHA256(secret, value) without padding>

The value is still readable by the client. Signing detects tampering, it
does not hide anything. A signature that fails to verify decodes to
False, so handlers can tell "missing" (key absent) from "tampered"
(False).

=============================================================================
"""

import base64
import hashlib
import hmac
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import format_datetime
from http.cookies import CookieError, Morsel
from typing import Any, Dict, Iterable, Optional, Tuple, Union
from urllib.parse import quote, unquote


logger = logging.getLogger(__name__)

JSON_PREFIX = "j:"
SIGNED_PREFIX = "s:"

# Characters encodeURIComponent leaves alone
_URI_COMPONENT_SAFE = "!'()*-._~"


@dataclass
class Cookie:
    """
    One cookie the server wants the client to store.

    `value` is already encoded for transport; build cookies through
    HTTPResponse.set_cookie() rather than by hand.
    """

    name: str
    value: str
    max_age: Optional[int] = None        # seconds
    expires: Optional[datetime] = None
    path: Optional[str] = "/"
    domain: Optional[str] = None
    secure: bool = False
    http_only: bool = False
    same_site: Optional[str] = None

    def to_header(self) -> str:
        """
        Render the Set-Cookie header value.

            >>> Cookie("luckyNumber", "42", max_age=86400).to_header()
            'luckyNumber=42; expires=...; Max-Age=86400; Path=/'

        When only max_age is given, Expires is derived from it so older
        clients that ignore Max-Age still expire the cookie.
        """
        morsel = Morsel()
        try:
            morsel.set(self.name, self.value, self.value)
        except CookieError as e:
            raise ValueError(f"Invalid cookie name {self.name!r}: {e}") from e

        if self.max_age is not None:
            morsel["max-age"] = int(self.max_age)
        if self.expires is not None:
            morsel["expires"] = format_http_date(self.expires)
        elif self.max_age is not None:
            # Morsel turns an int into "now + seconds" as an HTTP date
            morsel["expires"] = int(self.max_age)
        if self.path:
            morsel["path"] = self.path
        if self.domain:
            morsel["domain"] = self.domain
        if self.secure:
            morsel["secure"] = True
        if self.http_only:
            morsel["httponly"] = True
        if self.same_site:
            morsel["samesite"] = self.same_site
        return morsel.OutputString()


# =============================================================================
# HTTP DATES
# =============================================================================

def format_http_date(dt: datetime) -> str:
    """
    Format a datetime as an HTTP-date (RFC 7231), always in GMT.

        >>> format_http_date(datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc))
        'Sun, 18 Oct 2026 12:00:00 GMT'

    Naive datetimes are taken to be UTC.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return format_datetime(dt.astimezone(timezone.utc), usegmt=True)


# =============================================================================
# VALUE ENCODING
# =============================================================================

def encode_value(value: Any) -> str:
    """
    Turn a Python value into the string stored in a cookie.

        "abc"                 → "abc"
        42                    → "42"
        True                  → "true"
        ["Mouse", "Pen"]      → 'j:["Mouse","Pen"]'
        {"a": 1}              → 'j:{"a":1}'
    """
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return json.dumps(value)
    if isinstance(value, (int, float)):
        return str(value)
    return JSON_PREFIX + json.dumps(value, separators=(",", ":"))


def decode_value(value: str) -> Any:
    """
    Inverse of encode_value() for 'j:' values; other strings pass through.

    Invalid JSON after the marker leaves the raw string in place rather
    than failing the request.
    """
    if not value.startswith(JSON_PREFIX):
        return value
    try:
        return json.loads(value[len(JSON_PREFIX):])
    except ValueError:
        return value


def quote_value(value: str) -> str:
    """Percent-encode a cookie value for the Set-Cookie header."""
    return quote(value, safe=_URI_COMPONENT_SAFE)


def unquote_value(value: str) -> str:
    """Undo quote_value(). Values without '%' are returned untouched."""
    if len(value) >= 2 and value[0] == value[-1] == '"':
        value = value[1:-1]
    if "%" not in value:
        return value
    try:
        return unquote(value, errors="strict")
    except UnicodeDecodeError:
        return value


# =============================================================================
# SIGNING
# =============================================================================

def sign(value: str, secret: str) -> str:
    """Append an HMAC-SHA256 signature: 'value.signature'."""
    mac = hmac.new(secret.encode("utf-8"), value.encode("utf-8"), hashlib.sha256)
    signature = base64.b64encode(mac.digest()).decode("ascii").rstrip("=")
    return f"{value}.{signature}"


def unsign(signed_value: str, secret: str) -> Optional[str]:
    """
    Return the original value if the signature verifies, otherwise None.

    compare_digest keeps the comparison time independent of where the
    first differing byte is.
    """
    value, dot, _ = signed_value.rpartition(".")
    if not dot:
        return None
    expected = sign(value, secret)
    if hmac.compare_digest(expected.encode("utf-8"), signed_value.encode("utf-8")):
        return value
    return None


def unsign_any(signed_value: str, secrets: Iterable[str]) -> Optional[str]:
    """Try each secret in turn; rotating secrets keeps old cookies valid."""
    for secret in secrets:
        value = unsign(signed_value, secret)
        if value is not None:
            return value
    return None


# =============================================================================
# PARSING THE REQUEST HEADER
# =============================================================================

def parse_cookie_header(header: Optional[str]) -> Dict[str, str]:
    """
    Parse a Cookie header into name → decoded string.

        >>> parse_cookie_header("luckyNumber=42; name=J%C3%BCrgen")
        {'luckyNumber': '42', 'name': 'Jürgen'}

    Each ';'-separated pair is read on its own, so a malformed pair is
    skipped without hiding its neighbours. Request cookies carry no
    attributes: names like 'path' or 'version' are ordinary cookies. The
    first value wins when a name repeats. A missing or empty header gives
    an empty mapping.
    """
    cookies: Dict[str, str] = {}
    if not header:
        return cookies

    for pair in header.split(";"):
        name, eq, value = pair.partition("=")
        name = name.strip()
        if not eq or not name:
            logger.debug(f"Skipping malformed cookie pair: {pair.strip()!r}")
            continue
        if name in cookies:
            continue
        cookies[name] = unquote_value(value.strip())

    return cookies


def decode_json_cookies(cookies: Dict[str, Any]) -> Dict[str, Any]:
    """Decode every 'j:' value in place and return the mapping."""
    for name, value in cookies.items():
        if isinstance(value, str):
            cookies[name] = decode_value(value)
    return cookies


def split_signed_cookies(
    cookies: Dict[str, str],
    secrets: Iterable[str],
) -> Tuple[Dict[str, str], Dict[str, Union[str, bool]]]:
    """
    Move 's:' cookies out of `cookies` into a separate signed mapping.

    Returns (plain, signed). Signed values that fail verification map to
    False.
    """
    secrets = list(secrets)
    plain: Dict[str, str] = {}
    signed: Dict[str, Union[str, bool]] = {}

    for name, value in cookies.items():
        if value.startswith(SIGNED_PREFIX):
            original = unsign_any(value[len(SIGNED_PREFIX):], secrets)
            signed[name] = original if original is not None else False
        else:
            plain[name] = value

    return plain, signed
