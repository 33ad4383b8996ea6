"""
=============================================================================
COOKIE PARSER MIDDLEWARE
=============================================================================

Fills request.cookies (and request.signed_cookies) from the Cookie header.

    Cookie: luckyNumber=42; things=j%3A%5B%22Mouse%22%2C%22Pen%22%5D
                    │
                    ▼
    request.cookies == {"luckyNumber": "42", "things": ["Mouse", "Pen"]}

Numbers stay strings: the header carries text, and only values marked
with 'j:' are decoded as JSON. See http/cookies.py for the encoding.

With a secret configured, 's:' values are checked and moved to
request.signed_cookies:

    secret="keyboard cat"
    Cookie: user=s%3Aalice.<signature>; plain=1

    request.cookies        == {"plain": "1"}
    request.signed_cookies == {"user": "alice"}     (False if tampered)

A missing or malformed header gives empty mappings. The middleware never
answers and never fails; it always calls proceed().

=============================================================================
"""

import logging
from typing import Iterable, Optional, Union

from .base import Middleware
from ..http.chain import Proceed
from ..http.cookies import decode_json_cookies, parse_cookie_header, split_signed_cookies
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger(__name__)


class CookieParserMiddleware(Middleware):
    """
    Parse the Cookie header.

    `secret` may be a single string or a list of strings. With a list,
    new cookies are signed with the first one and any of them verifies,
    so a secret can be rotated without logging everyone out.
    """

    def __init__(self, secret: Optional[Union[str, Iterable[str]]] = None):
        if secret is None:
            self.secrets = []
        elif isinstance(secret, str):
            self.secrets = [secret]
        else:
            self.secrets = list(secret)

    @property
    def secret(self) -> Optional[str]:
        return self.secrets[0] if self.secrets else None

    def __call__(self, request: HTTPRequest, response: HTTPResponse, proceed: Proceed):
        cookies = parse_cookie_header(request.get_header("cookie"))

        if self.secrets:
            cookies, signed = split_signed_cookies(cookies, self.secrets)
            request.signed_cookies = decode_json_cookies(signed)
            # Lets response.set_cookie(..., signed=True) sign with the same key
            if response.cookie_secret is None:
                response.cookie_secret = self.secret

        request.cookies = decode_json_cookies(cookies)
        return proceed()
