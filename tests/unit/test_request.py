"""
Unit tests for HTTP request parsing.
"""

import pytest

from httpapp.http.errors import HTTPParseError
from httpapp.http.request import (
    HTTPRequest,
    RequestParser,
    parse_request,
    remove_dot_segments,
)


class TestRequestParser:
    """Tests for RequestParser class."""

    def test_parse_simple_get(self, sample_get_request: bytes):
        """Test parsing a simple GET request."""
        parser = RequestParser()
        request = parser.parse(sample_get_request, ("127.0.0.1", 12345))

        assert request.method == "GET"
        assert request.path == "/posts/new"
        assert request.original_path == "/posts/new"
        assert request.version == "HTTP/1.1"
        assert request.client_address == ("127.0.0.1", 12345)
        assert request.ip == "127.0.0.1"

    def test_parse_headers(self, sample_get_request: bytes):
        """Test that headers are parsed correctly."""
        request = parse_request(sample_get_request)

        assert request.host == "localhost:5001"
        assert request.user_agent == "pytest"
        assert request.headers["accept"] == "text/html"
        assert request.is_keep_alive is True

    def test_raw_headers_keep_order_and_case(self, sample_get_request: bytes):
        """Test that raw_headers preserves the original names and order."""
        request = parse_request(sample_get_request)

        names = [name for name, _ in request.raw_headers]
        assert names == ["Host", "User-Agent", "Accept", "Cookie", "Connection"]

    def test_parse_query_params(self, sample_get_request: bytes):
        """Test query parameter parsing."""
        request = parse_request(sample_get_request)

        assert request.query_string == "draft=1&tag=a&tag=b"
        assert request.get_query("draft") == "1"
        assert request.get_query_list("tag") == ["a", "b"]
        assert request.get_query("missing") is None
        assert request.get_query("missing", "default") == "default"
        assert request.url == "/posts/new?draft=1&tag=a&tag=b"

    def test_parse_post_with_form_body(self, sample_post_request: bytes):
        """Test parsing a POST request with a URL-encoded body."""
        request = parse_request(sample_post_request)

        assert request.method == "POST"
        assert request.path == "/posts"
        assert request.content_type == "application/x-www-form-urlencoded"
        assert request.content_length == len(request.body)
        assert request.body == b"title=Hello&content=First+post"
        assert request.has_body is True
        assert request.form is None  # The body middleware fills it

    def test_parse_path_with_special_chars(self):
        """Test URL-encoded path parsing."""
        raw = b"GET /search%20page?q=hello%20world HTTP/1.1\r\nHost: test\r\n\r\n"
        request = parse_request(raw)

        assert request.path == "/search page"
        assert request.get_query("q") == "hello world"

    def test_parse_absolute_form_target(self):
        """Test that an absolute-form target is reduced to its path."""
        raw = b"GET http://example.com/hello-world?x=1 HTTP/1.1\r\n\r\n"
        request = parse_request(raw)

        assert request.path == "/hello-world"
        assert request.query_string == "x=1"

    def test_parse_unknown_method(self):
        """Test that unknown methods are answered with 501."""
        raw = b"BREW /pot HTTP/1.1\r\nHost: test\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(raw)

        assert exc_info.value.status_code == 501

    def test_parse_unsupported_version(self):
        """Test that HTTP/2.0 in a request line is rejected with 505."""
        raw = b"GET / HTTP/2.0\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(raw)

        assert exc_info.value.status_code == 505

    def test_parse_invalid_request_line(self):
        """Test handling of malformed request line."""
        raw = b"GET\r\nHost: test\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(raw)

        assert exc_info.value.status_code == 400

    def test_parse_lowercase_method_rejected(self):
        """Test that methods are case-sensitive."""
        with pytest.raises(HTTPParseError):
            parse_request(b"get / HTTP/1.1\r\n\r\n")

    def test_parse_missing_headers(self):
        """Test parsing request with no headers."""
        raw = b"GET / HTTP/1.1\r\n\r\n"
        request = parse_request(raw)

        assert request.method == "GET"
        assert request.path == "/"
        assert len(request.headers) == 0

    def test_parse_skips_leading_empty_lines(self):
        """Test that stray CRLFs before the request line are ignored."""
        request = RequestParser().parse_head(b"\r\n\r\nGET /a HTTP/1.1\r\n\r\n")
        assert request.path == "/a"

    def test_parse_malformed_header(self):
        """Test that a header line without a colon is rejected."""
        raw = b"GET / HTTP/1.1\r\nNot a header\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(raw)

        assert exc_info.value.status_code == 400

    def test_parse_space_before_colon_rejected(self):
        """Test that whitespace between field name and colon is rejected."""
        with pytest.raises(HTTPParseError):
            parse_request(b"GET / HTTP/1.1\r\nHost : test\r\n\r\n")

    def test_parse_folded_header(self):
        """Test that obsolete line folding continues the previous header."""
        raw = b"GET / HTTP/1.1\r\nX-Long: first\r\n  second\r\n\r\n"
        request = parse_request(raw)

        assert request.headers["x-long"] == "first second"

    def test_repeated_headers_are_joined(self):
        """Test that repeated headers are joined, cookies with '; '."""
        raw = (
            b"GET / HTTP/1.1\r\n"
            b"Accept: text/html\r\n"
            b"Accept: text/plain\r\n"
            b"Cookie: a=1\r\n"
            b"Cookie: b=2\r\n"
            b"\r\n"
        )
        request = parse_request(raw)

        assert request.headers["accept"] == "text/html, text/plain"
        assert request.headers["cookie"] == "a=1; b=2"
        assert len(request.raw_headers) == 4

    def test_parse_path_traversal_normalized(self):
        """Test that dot segments cannot climb above the root."""
        raw = b"GET /../../../etc/passwd HTTP/1.1\r\nHost: test\r\n\r\n"
        request = parse_request(raw)

        assert request.path == "/etc/passwd"

    def test_parse_encoded_traversal_normalized(self):
        """Test that percent-encoded dots are decoded before normalizing."""
        raw = b"GET /css/%2e%2e/%2e%2e/secret HTTP/1.1\r\n\r\n"
        request = parse_request(raw)

        assert request.path == "/secret"

    def test_parse_nul_in_path_rejected(self):
        """Test that an encoded NUL byte in the path is rejected."""
        with pytest.raises(HTTPParseError):
            parse_request(b"GET /a%00b HTTP/1.1\r\n\r\n")

    def test_parse_invalid_utf8_path_rejected(self):
        """Test that a path that is not UTF-8 after decoding is rejected."""
        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(b"GET /%ff%fe HTTP/1.1\r\n\r\n")

        assert exc_info.value.status_code == 400

    def test_parse_request_too_large(self):
        """Test that oversized requests are rejected."""
        parser = RequestParser(max_request_size=100)
        raw = b"GET / HTTP/1.1\r\n" + b"X-Large: " + b"A" * 200 + b"\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parser.parse(raw)

        assert exc_info.value.status_code == 413

    def test_parse_incomplete_head(self):
        """Test that a head without the blank line is rejected."""
        with pytest.raises(HTTPParseError):
            parse_request(b"GET / HTTP/1.1\r\nHost: test\r\n")

    def test_http_version_parsing(self):
        """Test HTTP/1.0 and HTTP/1.1 version handling."""
        # HTTP/1.0 (Connection: close by default)
        request_10 = parse_request(b"GET / HTTP/1.0\r\nHost: test\r\n\r\n")
        assert request_10.version == "HTTP/1.0"
        assert request_10.is_keep_alive is False

        request_10_ka = parse_request(b"GET / HTTP/1.0\r\nConnection: keep-alive\r\n\r\n")
        assert request_10_ka.is_keep_alive is True

        # HTTP/1.1 (keep-alive by default)
        request_11 = parse_request(b"GET / HTTP/1.1\r\nHost: test\r\n\r\n")
        assert request_11.version == "HTTP/1.1"
        assert request_11.is_keep_alive is True

        request_11_close = parse_request(b"GET / HTTP/1.1\r\nConnection: Close\r\n\r\n")
        assert request_11_close.is_keep_alive is False

    def test_content_length_handling(self):
        """Test Content-Length validation."""
        body = b"test body"
        raw = (
            b"POST / HTTP/1.1\r\n"
            b"Content-Length: 9\r\n"
            b"\r\n"
        ) + body

        request = parse_request(raw)
        assert request.content_length == 9
        assert request.body == body

    def test_incomplete_body_rejected(self):
        """Test that a body shorter than Content-Length is rejected."""
        raw = b"POST / HTTP/1.1\r\nContent-Length: 20\r\n\r\nshort"

        with pytest.raises(HTTPParseError):
            parse_request(raw)

    @pytest.mark.parametrize("value", [b"abc", b"-1", b"5, 6"])
    def test_invalid_content_length(self, value: bytes):
        """Test that unusable Content-Length values are rejected."""
        raw = b"POST / HTTP/1.1\r\nContent-Length: " + value + b"\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(raw)

        assert exc_info.value.status_code == 400

    def test_transfer_encoding_not_implemented(self):
        """Test that chunked bodies are answered with 501."""
        raw = b"POST / HTTP/1.1\r\nTransfer-Encoding: chunked\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(raw)

        assert exc_info.value.status_code == 501

    def test_case_insensitive_headers(self):
        """Test that header names are case-insensitive."""
        raw = b"GET / HTTP/1.1\r\nCONTENT-TYPE: text/html\r\n\r\n"
        request = parse_request(raw)

        assert request.content_type == "text/html"
        assert request.get_header("Content-Type") == "text/html"
        assert request.get_header("content-type") == "text/html"


class TestHTTPRequest:
    """Tests for HTTPRequest dataclass."""

    def test_get_header_default(self):
        """Test get_header with default value."""
        request = HTTPRequest(method="GET", path="/")

        assert request.get_header("X-Missing") == ""
        assert request.get_header("X-Missing", "default") == "default"

    def test_query_list(self):
        """Test getting multiple values for same query param."""
        request = HTTPRequest(
            method="GET",
            path="/",
            query_params={"tags": ["python", "http", "server"]},
        )

        assert request.get_query_list("tags") == ["python", "http", "server"]
        assert request.get_query("tags") == "python"  # First value

    def test_content_type_parameters(self):
        """Test that content_type drops parameters and charset reads them."""
        request = HTTPRequest(
            method="POST",
            path="/",
            headers={"content-type": "Application/X-WWW-Form-Urlencoded; Charset=\"UTF-8\""},
        )

        assert request.content_type == "application/x-www-form-urlencoded"
        assert request.charset == "utf-8"

    def test_original_path_defaults_to_path(self):
        """Test that original_path is filled from path."""
        request = HTTPRequest(method="GET", path="/posts/new", query_string="a=1")

        assert request.original_path == "/posts/new"
        assert request.original_url == "/posts/new?a=1"

    def test_defaults_are_empty(self):
        """Test the defaults a fresh request carries."""
        request = HTTPRequest(method="GET", path="/")

        assert request.cookies == {}
        assert request.signed_cookies == {}
        assert request.form is None
        assert request.path_params == {}
        assert request.base_path == ""
        assert request.content_length == 0
        assert request.has_body is False


class TestRemoveDotSegments:
    """Tests for path normalization."""

    @pytest.mark.parametrize("path, expected", [
        ("/", "/"),
        ("/a/b/c", "/a/b/c"),
        ("/a/./b", "/a/b"),
        ("/a/b/../c", "/a/c"),
        ("/../../etc/passwd", "/etc/passwd"),
        ("/css/", "/css/"),
        ("/a/b/..", "/a/"),
        ("/a/.", "/a/"),
    ])
    def test_remove_dot_segments(self, path: str, expected: str):
        assert remove_dot_segments(path) == expected
