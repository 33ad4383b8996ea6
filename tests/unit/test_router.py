"""
Unit tests for the URL router.
"""

import asyncio

import pytest

from httpapp.http.errors import NotFound
from httpapp.http.request import HTTPRequest
from httpapp.http.response import HTTPResponse
from httpapp.http.router import Mount, Router, compile_pattern
from httpapp.middleware.base import MiddlewarePipeline


def make_request(method: str, path: str) -> HTTPRequest:
    """Helper to create a request for testing."""
    return HTTPRequest(method=method, path=path)


def run(router, method: str, path: str):
    """
    Dispatch one request through `router` inside a pipeline.

    Returns (request, response, outcome) where outcome is "final" when the
    request fell through, or the error that reached the end.
    """
    outcome = {}

    async def final(request, response):
        outcome["result"] = "final"

    async def final_error(error, request, response):
        outcome["result"] = error

    request = make_request(method, path)
    response = HTTPResponse()
    chain = MiddlewarePipeline().add(router).wrap(final, final_error)
    asyncio.run(chain(request, response))
    return request, response, outcome.get("result")


def dummy_handler(request, response):
    response.send(f"path={request.path}")


class TestCompilePattern:
    """Tests for route pattern compilation."""

    def test_root(self):
        pattern, names = compile_pattern("/")
        assert pattern.match("/")
        assert not pattern.match("/x")
        assert names == []

    def test_optional_trailing_slash(self):
        pattern, _ = compile_pattern("/hello-world")
        assert pattern.match("/hello-world")
        assert pattern.match("/hello-world/")
        assert not pattern.match("/hello-world/x")

    def test_named_parameter(self):
        pattern, names = compile_pattern("/posts/:id")
        assert names == ["id"]
        assert pattern.match("/posts/7").groupdict() == {"id": "7"}
        assert not pattern.match("/posts/7/edit")

    def test_wildcard(self):
        pattern, names = compile_pattern("/files/*path")
        assert names == ["path"]
        assert pattern.match("/files/a/b/c.txt").groupdict() == {"path": "a/b/c.txt"}

    def test_literal_segments_are_escaped(self):
        pattern, _ = compile_pattern("/a.b")
        assert pattern.match("/a.b")
        assert not pattern.match("/aXb")


class TestRouter:
    """Tests for Router class."""

    def test_add_route(self):
        """Test adding routes."""
        router = Router()
        route = router.add_route("/posts", dummy_handler, method="get")

        assert route.path == "/posts"
        assert route.method == "GET"
        assert router.routes() == [("GET", "/posts")]

    def test_match_static_path(self):
        """Test matching static paths."""
        router = Router()
        router.add_route("/users", dummy_handler, method="GET")
        router.add_route("/posts", dummy_handler, method="GET")

        match = router.match("GET", "/users")
        assert match is not None
        assert match.route.path == "/users"

        match = router.match("GET", "/posts")
        assert match is not None
        assert match.route.path == "/posts"

        assert router.match("GET", "/nothing") is None

    def test_match_with_method(self):
        """Test method-based routing."""
        router = Router()
        router.add_route("/posts", dummy_handler, method="GET")
        router.add_route("/posts", dummy_handler, method="POST")

        assert router.match("GET", "/posts").route.method == "GET"
        assert router.match("POST", "/posts").route.method == "POST"
        assert router.match("DELETE", "/posts") is None

    def test_get_route_answers_head(self):
        router = Router()
        router.add_route("/", dummy_handler, method="GET")

        assert router.match("HEAD", "/") is not None

    def test_match_path_params(self):
        router = Router()
        router.add_route("/posts/:id", dummy_handler, method="GET")

        match = router.match("GET", "/posts/42")
        assert match.params == {"id": "42"}

    def test_allowed_methods(self):
        router = Router()
        router.add_route("/posts", dummy_handler, method="GET")
        router.add_route("/posts", dummy_handler, method="POST")

        assert router.get_allowed_methods("/posts") == ["GET", "HEAD", "POST"]
        assert router.get_allowed_methods("/other") == []

    def test_decorators(self):
        """Test decorator registration returns the handler unchanged."""
        router = Router()

        @router.get("/a")
        def a(request, response):
            response.send("a")

        @router.post("/b")
        def b(request, response):
            response.send("b")

        @router.all("/c")
        def c(request, response):
            response.send("c")

        assert a.__name__ == "a"
        assert router.routes() == [("GET", "/a"), ("POST", "/b"), ("ALL", "/c")]

    def test_url_for(self):
        router = Router()
        router.add_route("/posts/:id", dummy_handler, method="GET", name="show_post")

        assert router.url_for("show_post", id=7) == "/posts/7"
        assert router.url_for("missing") is None

    def test_routes_include_mounted_routers(self):
        """Test that routes() lists mounted routers with their prefix."""
        posts = Router()
        posts.add_route("/", dummy_handler, method="GET")
        posts.add_route("/new", dummy_handler, method="GET")

        root = Router()
        root.add_route("/hello-world", dummy_handler, method="GET")
        root.mount("/posts", posts)

        assert root.routes() == [
            ("GET", "/hello-world"),
            ("GET", "/posts/"),
            ("GET", "/posts/new"),
        ]


class TestRouterDispatch:
    """Tests for running requests through a router."""

    def test_dispatch_runs_handler(self):
        router = Router()
        router.add_route("/hello-world", dummy_handler, method="GET")

        _, response, outcome = run(router, "GET", "/hello-world")

        assert outcome is None
        assert response.body == b"path=/hello-world"

    def test_unmatched_falls_through(self):
        """Test that a miss leaves the router through proceed()."""
        router = Router()
        router.add_route("/a", dummy_handler, method="GET")

        _, response, outcome = run(router, "GET", "/b")

        assert outcome == "final"
        assert response.finished is False

    def test_first_match_wins(self):
        router = Router()

        @router.get("/x")
        def first(request, response):
            response.send("first")

        @router.get("/x")
        def second(request, response):
            response.send("second")

        _, response, _ = run(router, "GET", "/x")
        assert response.body == b"first"

    def test_handler_can_pass_to_next_route(self):
        """Test that proceed() moves on to the next matching route."""
        router = Router()

        @router.get("/posts/:id")
        def only_numbers(request, response, proceed):
            if not request.path_params["id"].isdigit():
                return proceed()
            response.send("number")

        @router.get("/posts/:slug")
        def by_slug(request, response):
            response.send(f"slug {request.path_params['slug']}")

        _, response, _ = run(router, "GET", "/posts/hello")
        assert response.body == b"slug hello"

    def test_handler_exception_becomes_error(self):
        """Test that an exception inside a handler leaves as proceed(error)."""
        router = Router()

        @router.get("/boom")
        def boom(request, response):
            raise NotFound("no such thing")

        _, response, outcome = run(router, "GET", "/boom")

        assert isinstance(outcome, NotFound)
        assert response.finished is False

    def test_router_error_middleware(self):
        """Test that an error middleware inside the router can answer."""
        router = Router()

        @router.get("/boom")
        def boom(request, response):
            raise ValueError("bad")

        def handle(error, request, response, proceed):
            response.text(f"handled {error}", status=500)

        router.use(handle)

        _, response, outcome = run(router, "GET", "/boom")

        assert outcome is None
        assert response.status == 500
        assert response.body == b"handled bad"

    def test_method_mismatch_is_a_miss(self):
        router = Router()
        router.add_route("/posts", dummy_handler, method="POST")

        _, response, outcome = run(router, "GET", "/posts")
        assert outcome == "final"

    def test_automatic_options(self):
        """Test that OPTIONS is answered with the allowed methods."""
        router = Router()
        router.add_route("/posts", dummy_handler, method="GET")
        router.add_route("/posts", dummy_handler, method="POST")

        _, response, outcome = run(router, "OPTIONS", "/posts")

        assert outcome is None
        assert response.get_header("Allow") == "GET,HEAD,POST"
        assert response.body == b"GET,HEAD,POST"


class TestMount:
    """Tests for prefix mounting."""

    def test_prefix_stripped_inside_and_restored_after(self):
        """Test that the mounted router sees the path without its prefix."""
        seen = {}

        posts = Router()

        @posts.get("/new")
        def new(request, response):
            seen["path"] = request.path
            seen["base_path"] = request.base_path
            response.send("form")

        request, response, _ = run(Mount("/posts", posts), "GET", "/posts/new")

        assert seen == {"path": "/new", "base_path": "/posts"}
        assert response.body == b"form"
        assert request.path == "/posts/new"
        assert request.base_path == ""

    def test_prefix_alone_maps_to_root(self):
        posts = Router()
        posts.add_route("/", dummy_handler, method="GET")

        _, response, _ = run(Mount("/posts", posts), "GET", "/posts")
        assert response.body == b"path=/"

    def test_prefix_matches_whole_segments(self):
        """Test that /posts does not capture /postsXYZ."""
        posts = Router()
        posts.add_route("/*rest", dummy_handler, method="GET")

        request, response, outcome = run(Mount("/posts", posts), "GET", "/postsXYZ")

        assert outcome == "final"
        assert response.finished is False
        assert request.path == "/postsXYZ"

    def test_miss_inside_mount_restores_path(self):
        """Test that falling out of a mount restores the original path."""
        posts = Router()
        posts.add_route("/new", dummy_handler, method="GET")

        seen = {}

        async def final(request, response):
            seen["path"] = request.path

        async def final_error(error, request, response):
            seen["error"] = error

        request = make_request("GET", "/posts/missing")
        chain = MiddlewarePipeline().add(Mount("/posts", posts)).wrap(final, final_error)
        asyncio.run(chain(request, HTTPResponse()))

        assert seen == {"path": "/posts/missing"}

    @pytest.mark.parametrize("prefix", ["/posts", "/posts/", "posts"])
    def test_prefix_normalized(self, prefix: str):
        assert Mount(prefix, Router()).prefix == "/posts"

    def test_root_mount_matches_everything(self):
        mount = Mount("/", Router())
        assert mount.matches("/")
        assert mount.matches("/anything/at/all")
