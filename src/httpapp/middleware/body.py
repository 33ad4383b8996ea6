"""
=============================================================================
URL-ENCODED BODY MIDDLEWARE
=============================================================================

Decodes HTML form submissions into request.form.

    POST /posts HTTP/1.1
    Content-Type: application/x-www-form-urlencoded
    Content-Length: 27

    title=Hello&body=First+post
                │
                ▼
    request.form == {"title": "Hello", "body": "First post"}

Requests with another content type, or without a body at all, pass
through untouched and request.form stays None.

=============================================================================
SIMPLE AND EXTENDED MODES
=============================================================================

    ┌─────────────────────────┬──────────────────────┬────────────────────────┐
    │  body                   │  simple (default)    │  extended              │
    ├─────────────────────────┼──────────────────────┼────────────────────────┤
    │  a=1&b=2                │  {a: "1", b: "2"}    │  {a: "1", b: "2"}      │
    │  tag=x&tag=y            │  {tag: ["x", "y"]}   │  {tag: ["x", "y"]}     │
    │  post[title]=Hi         │  {"post[title]": "Hi"} │ {post: {title: "Hi"}} │
    │  ids[]=1&ids[]=2        │  {"ids[]": ["1","2"]}│  {ids: ["1", "2"]}     │
    └─────────────────────────┴──────────────────────┴────────────────────────┘

Simple mode never builds nested structures: brackets are just characters
in the key.

=============================================================================
ERRORS
=============================================================================

Problems are passed on with proceed(error), never raised:

    body longer than `limit`             → 413 Payload Too Large
    more than `parameter_limit` pairs    → 413 Payload Too Large
    charset other than utf-8             → 415 Unsupported Media Type
    bytes that are not valid UTF-8       → 400 Bad Request

=============================================================================
"""

import logging
import re
from typing import Any, Dict, List
from urllib.parse import parse_qsl

from .base import Middleware
from ..http.chain import Proceed
from ..http.errors import BadRequest, PayloadTooLarge, UnsupportedMediaType
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger(__name__)

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

# name[a][b][] : a plain head followed only by bracket groups
_NESTED_KEY = re.compile(r"^([^\[\]]+)((?:\[[^\[\]]*\])+)$")
_BRACKET = re.compile(r"\[([^\[\]]*)\]")

# Deeper nesting than this keeps the rest of the key literal
MAX_DEPTH = 5


class UrlencodedBodyMiddleware(Middleware):
    """
    Decode application/x-www-form-urlencoded bodies.

        extended:         Parse bracketed keys into dicts and lists.
        limit:            Maximum body size in bytes (default 100 KiB).
        parameter_limit:  Maximum number of name=value pairs.
    """

    def __init__(self, extended: bool = False, limit: int = 100 * 1024, parameter_limit: int = 1000):
        self.extended = extended
        self.limit = limit
        self.parameter_limit = parameter_limit

    def __call__(self, request: HTTPRequest, response: HTTPResponse, proceed: Proceed):
        if request.content_type != FORM_CONTENT_TYPE or "content-length" not in request.headers:
            return proceed()

        if len(request.body) > self.limit:
            return proceed(PayloadTooLarge(
                f"Form body of {len(request.body)} bytes exceeds the {self.limit} byte limit"
            ))

        charset = request.charset or "utf-8"
        if charset not in ("utf-8", "utf8"):
            return proceed(UnsupportedMediaType(f'Unsupported charset "{charset.upper()}"'))

        try:
            text = request.body.decode("utf-8")
        except UnicodeDecodeError:
            return proceed(BadRequest("Form body is not valid UTF-8"))

        if text and text.count("&") + 1 > self.parameter_limit:
            return proceed(PayloadTooLarge("Too many parameters"))

        try:
            pairs = parse_qsl(text, keep_blank_values=True, encoding="utf-8", errors="strict")
        except UnicodeDecodeError:
            return proceed(BadRequest("Form body has invalid percent-encoding"))

        request.form = parse_extended(pairs) if self.extended else parse_simple(pairs)
        logger.debug(f"Decoded form with {len(pairs)} fields")
        return proceed()


def _add(container: Dict[str, Any], key: str, value: Any) -> None:
    """Set a value; a repeated key turns into a list of values."""
    if key not in container:
        container[key] = value
    elif isinstance(container[key], list):
        container[key].append(value)
    else:
        container[key] = [container[key], value]


def parse_simple(pairs: List[tuple]) -> Dict[str, Any]:
    """
    Flat mapping from decoded pairs.

        >>> parse_simple([("a", "1"), ("b", "2"), ("a", "3")])
        {'a': ['1', '3'], 'b': '2'}
    """
    form: Dict[str, Any] = {}
    for key, value in pairs:
        _add(form, key, value)
    return form


def split_key(key: str) -> List[str]:
    """
    Split a bracketed key into its path.

        >>> split_key("post[author][name]")
        ['post', 'author', 'name']
        >>> split_key("ids[]")
        ['ids', '']
        >>> split_key("plain")
        ['plain']
        >>> split_key("broken[key")
        ['broken[key']
    """
    match = _NESTED_KEY.match(key)
    if not match:
        return [key]

    head, brackets = match.groups()
    parts = [head] + _BRACKET.findall(brackets)
    if len(parts) > MAX_DEPTH + 1:
        rest = "".join(f"[{p}]" for p in parts[MAX_DEPTH + 1:])
        parts = parts[:MAX_DEPTH + 1] + [rest]
    return parts


def _assign(container: Dict[str, Any], parts: List[str], value: Any) -> None:
    key = parts[0]
    if len(parts) == 1:
        _add(container, key, value)
        return

    child = container.get(key)

    if parts[1] == "":
        # key[] appends to a list; an earlier plain value joins the list
        if not isinstance(child, list):
            child = [] if child is None else [child]
        container[key] = child
        if len(parts) == 2:
            child.append(value)
        else:
            item: Dict[str, Any] = {}
            _assign(item, parts[2:], value)
            child.append(item)
        return

    if not isinstance(child, dict):
        child = {}
    container[key] = child
    _assign(child, parts[1:], value)


def parse_extended(pairs: List[tuple]) -> Dict[str, Any]:
    """
    Nested mapping from decoded pairs.

        >>> parse_extended([("post[title]", "Hi"), ("tags[]", "a"), ("tags[]", "b")])
        {'post': {'title': 'Hi'}, 'tags': ['a', 'b']}

    A key written as both a plain value and a nested one ends up nested;
    the later form wins.
    """
    form: Dict[str, Any] = {}
    for key, value in pairs:
        _assign(form, split_key(key), value)
    return form
