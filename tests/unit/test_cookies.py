"""
Unit tests for cookie encoding, signing and the cookie parser middleware.
"""

from datetime import datetime, timezone

import pytest

from httpapp.http.cookies import (
    Cookie,
    decode_json_cookies,
    decode_value,
    encode_value,
    parse_cookie_header,
    quote_value,
    sign,
    split_signed_cookies,
    unquote_value,
    unsign,
    unsign_any,
)
from httpapp.http.response import HTTPResponse
from httpapp.middleware import CookieParserMiddleware

from conftest import make_request, run_chain


class TestValueEncoding:
    """Tests for turning values into cookie strings and back."""

    @pytest.mark.parametrize("value,expected", [
        ("abc", "abc"),
        (42, "42"),
        (0, "0"),
        (True, "true"),
        (["Mouse", "Pen"], 'j:["Mouse","Pen"]'),
        ({"a": 1}, 'j:{"a":1}'),
    ])
    def test_encode_value(self, value, expected):
        assert encode_value(value) == expected

    def test_decode_json_value(self):
        assert decode_value('j:["Mouse","Pen","Bow","Dagger"]') == ["Mouse", "Pen", "Bow", "Dagger"]

    def test_decode_plain_value_passes_through(self):
        assert decode_value("42") == "42"

    def test_decode_invalid_json_keeps_raw_string(self):
        assert decode_value("j:{broken") == "j:{broken"

    def test_quote_value(self):
        """Test percent-encoding matches what browsers expect."""
        assert quote_value('j:["Mouse"]') == "j%3A%5B%22Mouse%22%5D"
        assert quote_value("a b") == "a%20b"
        assert quote_value("keep-these_.~!*()'") == "keep-these_.~!*()'"

    def test_unquote_value(self):
        assert unquote_value("J%C3%BCrgen") == "Jürgen"
        assert unquote_value('"quoted"') == "quoted"
        assert unquote_value("plain") == "plain"

    def test_unquote_invalid_utf8_keeps_raw(self):
        assert unquote_value("%ff") == "%ff"


class TestSigning:
    """Tests for HMAC cookie signatures."""

    def test_sign_and_unsign(self):
        signed = sign("alice", "keyboard cat")

        assert signed.startswith("alice.")
        assert "=" not in signed
        assert unsign(signed, "keyboard cat") == "alice"

    def test_value_containing_dots(self):
        signed = sign("a.b.c", "secret")
        assert unsign(signed, "secret") == "a.b.c"

    def test_tampered_value(self):
        signed = sign("alice", "secret")
        tampered = "mallory" + signed[len("alice"):]

        assert unsign(tampered, "secret") is None

    def test_wrong_secret(self):
        assert unsign(sign("alice", "one"), "two") is None

    def test_missing_signature(self):
        assert unsign("alice", "secret") is None

    def test_rotated_secrets(self):
        """Test that any secret in the list verifies."""
        signed = sign("alice", "old")

        assert unsign_any(signed, ["new", "old"]) == "alice"
        assert unsign_any(signed, ["new"]) is None


class TestParseCookieHeader:
    """Tests for reading the Cookie request header."""

    def test_parse(self):
        assert parse_cookie_header("luckyNumber=42; name=J%C3%BCrgen") == {
            "luckyNumber": "42",
            "name": "Jürgen",
        }

    @pytest.mark.parametrize("header", [None, ""])
    def test_empty(self, header):
        assert parse_cookie_header(header) == {}

    @pytest.mark.parametrize("header", [
        "version=2; luckyNumber=42",
        "path=/; domain=example.com; luckyNumber=42",
        'prefs={"a":1}; luckyNumber=42',
        "broken; luckyNumber=42",
    ])
    def test_pair_does_not_hide_later_cookies(self, header):
        assert parse_cookie_header(header)["luckyNumber"] == "42"

    def test_attribute_names_are_plain_cookies(self):
        assert parse_cookie_header("version=2; path=/") == {"version": "2", "path": "/"}

    def test_first_value_wins(self):
        assert parse_cookie_header("a=1; a=2") == {"a": "1"}

    def test_whitespace_and_quotes(self):
        assert parse_cookie_header('  a = "x y" ;b=;; =c') == {"a": "x y", "b": ""}

    def test_things_cookie_round_trip(self):
        """Test that a list set by the server reads back as the same list."""
        response = HTTPResponse().set_cookie("things", ["Mouse", "Pen", "Bow", "Dagger"])
        header = f"things={response.cookies[0].value}"

        cookies = decode_json_cookies(parse_cookie_header(header))

        assert cookies == {"things": ["Mouse", "Pen", "Bow", "Dagger"]}

    def test_split_signed_cookies(self):
        """Test that signed cookies are separated and bad signatures become False."""
        cookies = {
            "user": "s:" + sign("alice", "k"),
            "forged": "s:alice.not-a-signature",
            "plain": "1",
        }

        plain, signed = split_signed_cookies(cookies, ["k"])

        assert plain == {"plain": "1"}
        assert signed == {"user": "alice", "forged": False}


class TestCookie:
    """Tests for Set-Cookie header values."""

    def test_minimal(self):
        assert Cookie("a", "1").to_header() == "a=1; Path=/"

    def test_explicit_expires(self):
        expires = datetime(2026, 10, 18, 12, 0, 0, tzinfo=timezone.utc)
        header = Cookie("a", "1", expires=expires).to_header()

        assert header == "a=1; expires=Sun, 18 Oct 2026 12:00:00 GMT; Path=/"

    def test_naive_expires_is_utc(self):
        header = Cookie("a", "1", expires=datetime(2026, 10, 18, 12, 0, 0)).to_header()
        assert header == "a=1; expires=Sun, 18 Oct 2026 12:00:00 GMT; Path=/"

    def test_all_attributes(self):
        header = Cookie(
            "session", "x", max_age=60, domain="example.com",
            secure=True, http_only=True, same_site="Strict",
        ).to_header()

        assert "Max-Age=60" in header
        assert "Domain=example.com" in header
        assert "Secure" in header
        assert "HttpOnly" in header
        assert "SameSite=Strict" in header

    def test_no_path(self):
        assert Cookie("a", "1", path=None).to_header() == "a=1"

    def test_invalid_name(self):
        with pytest.raises(ValueError):
            Cookie("bad name", "1").to_header()


class TestCookieParserMiddleware:
    """Tests for CookieParserMiddleware."""

    def test_no_cookie_header(self):
        request = make_request("GET", "/")
        response, outcome = run_chain(request, CookieParserMiddleware())

        assert outcome == "final"
        assert request.cookies == {}
        assert request.signed_cookies == {}

    def test_plain_and_json_cookies(self):
        request = make_request("GET", "/", headers={
            "Cookie": "luckyNumber=42; things=j%3A%5B%22Mouse%22%2C%22Pen%22%5D",
        })
        run_chain(request, CookieParserMiddleware())

        assert request.cookies == {"luckyNumber": "42", "things": ["Mouse", "Pen"]}

    def test_without_secret_signed_values_stay_plain(self):
        value = quote_value("s:" + sign("alice", "k"))
        request = make_request("GET", "/", headers={"Cookie": f"user={value}"})
        run_chain(request, CookieParserMiddleware())

        assert request.cookies["user"].startswith("s:alice.")
        assert request.signed_cookies == {}

    def test_signed_cookies(self):
        good = quote_value("s:" + sign("alice", "k"))
        bad = quote_value("s:alice.forged")
        request = make_request("GET", "/", headers={
            "Cookie": f"user={good}; admin={bad}; theme=dark",
        })
        run_chain(request, CookieParserMiddleware("k"))

        assert request.cookies == {"theme": "dark"}
        assert request.signed_cookies == {"user": "alice", "admin": False}

    def test_secret_is_shared_with_the_response(self):
        """Test that set_cookie(signed=True) works after the parser ran."""
        request = make_request("GET", "/")

        def set_signed(request, response, proceed):
            response.set_cookie("user", "alice", signed=True)
            response.send("ok")

        response, _ = run_chain(request, CookieParserMiddleware(["new", "old"]), set_signed)

        assert response.cookie_secret == "new"
        assert response.cookies[0].value.startswith("s%3Aalice.")
