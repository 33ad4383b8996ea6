"""
=============================================================================
URL ROUTER
=============================================================================

Path-based routing with support for:
- Static paths: /hello-world, /posts/new
- Dynamic parameters: /posts/:id
- Wildcard paths: /files/*filepath
- Method-based routing: GET, POST, PUT, DELETE, ...
- Mounting one router inside another under a prefix

A Router is itself a middleware stage. It is dropped into the chain like
any other stage, and passes control on when none of its routes answer.

=============================================================================
ROUTING ARCHITECTURE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   GET /posts/new                                                     │
    │        │                                                             │
    │        ▼                                                             │
    │   ┌─────────────────────────────────────────────────────────────┐   │
    │   │ app router                                                   │   │
    │   │   GET  /hello-world          no                              │   │
    │   │   USE  /        → home       home has no "/posts/new"        │   │
    │   │   USE  /posts   → posts ─────────────┐                       │   │
    │   └──────────────────────────────────────┼───────────────────────┘   │
    │                                          ▼                           │
    │                        ┌───────────────────────────────────┐        │
    │                        │ posts router  sees path "/new"    │        │
    │                        │   GET  /      no                  │        │
    │                        │   GET  /new   ◄── MATCH           │        │
    │                        │   POST /      no                  │        │
    │                        └───────────────────────────────────┘        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

A mounted router never sees its prefix. "/posts/new" reaches the posts
router as "/new", with request.base_path == "/posts". The original path
is restored when control leaves the mount, so stages after it see the
full path again.

=============================================================================
ROUTE PATTERNS
=============================================================================

1. STATIC:    /posts        matches /posts and /posts/
2. PARAMETER: /posts/:id    matches /posts/7 → {"id": "7"}
3. WILDCARD:  /files/*path  matches /files/a/b.txt → {"path": "a/b.txt"}

Patterns compile to regular expressions once, at registration:

    /posts/:id/comments/:cid
    ^/posts/(?P<id>[^/]+)/comments/(?P<cid>[^/]+)/?$

=============================================================================
FIRST MATCH WINS, AND proceed() MOVES ON
=============================================================================

Routes are tried in registration order. A route handler that calls
proceed() hands the request to the NEXT matching route, and after the
last one, out of the router:

    @router.get("/posts/:id")
    def maybe(request, response, proceed):
        if request.path_params["id"] == "new":
            proceed()                 # let a later route answer
            return
        ...

A path that matches routes but no route for the method is NOT a 405 here;
the request simply falls through, and ends as a 404 if nothing else
answers. OPTIONS is the exception: it is answered automatically with an
Allow header listing the methods registered for that path.

=============================================================================
INTERVIEW QUESTIONS ABOUT ROUTING
=============================================================================

Q: "How would you implement URL routing?"
A: "Compile each pattern to a regex with named groups, then try them in
   order. Dynamic segments become capture groups."

Q: "How do you handle route conflicts?"
A: "First match wins. Register /posts/new before /posts/:id."

Q: "How does mounting differ from prefixing every route?"
A: "A mounted router is written without knowing where it will live. The
   same posts router could be mounted at /posts or /blog."

=============================================================================
"""

import inspect
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from ..middleware.base import Middleware, as_stage
from .chain import Proceed, run_stage
from .request import HTTPRequest
from .response import HTTPResponse


logger = logging.getLogger(__name__)


# A route handler: (request, response, proceed), or (request, response)
# when the handler always answers.
Handler = Callable[..., Any]

ALL_METHODS = ("GET", "HEAD", "POST", "PUT", "DELETE", "PATCH", "OPTIONS")


@dataclass
class Route:
    """
    A registered route.

        @router.get("/posts/:id", name="show_post")
        def show_post(request, response): ...

        Route(path="/posts/:id", method="GET", handler=show_post,
              name="show_post", _param_names=["id"])

    method None means any method.
    """

    path: str
    method: Optional[str]
    handler: Handler
    name: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)

    _pattern: Optional[re.Pattern] = field(default=None, repr=False)
    _param_names: List[str] = field(default_factory=list, repr=False)

    def match_path(self, path: str) -> Optional[Dict[str, str]]:
        """Path parameters when the path matches, otherwise None."""
        if self._pattern is None:
            return None
        match = self._pattern.match(path)
        return match.groupdict() if match else None

    def handles_method(self, method: str) -> bool:
        """GET routes answer HEAD too; the server drops the body."""
        if self.method is None or self.method == method:
            return True
        return self.method == "GET" and method == "HEAD"


@dataclass
class RouteMatch:
    route: Route
    params: Dict[str, str]


def compile_pattern(path: str) -> Tuple[re.Pattern, List[str]]:
    """
    Compile a route pattern into a regex.

        "/posts/:id"    → ^/posts/(?P<id>[^/]+)/?$
        "/files/*path"  → ^/files/(?P<path>.*)$
        "/"             → ^/$

    A trailing slash on the request path is optional.
    """
    param_names: List[str] = []
    regex_parts = ["^"]
    wildcard = False

    for segment in path.split("/"):
        if not segment:
            continue

        regex_parts.append("/")

        if segment.startswith(":"):
            # :id → one segment, no slashes
            name = segment[1:]
            param_names.append(name)
            regex_parts.append(f"(?P<{name}>[^/]+)")

        elif segment.startswith("*"):
            # *path → everything that is left
            name = segment[1:] or "wildcard"
            param_names.append(name)
            regex_parts.append(f"(?P<{name}>.*)")
            wildcard = True
            break

        else:
            regex_parts.append(re.escape(segment))

    if len(regex_parts) == 1:
        regex_parts.append("/")
    elif not wildcard:
        regex_parts.append("/?")
    regex_parts.append("$")

    return re.compile("".join(regex_parts)), param_names


def _normalize_prefix(prefix: str) -> str:
    """"/posts/" → "/posts", "" and "/" → "/"."""
    return "/" + prefix.strip("/")


def _adapt_handler(handler: Handler) -> Callable[[HTTPRequest, HTTPResponse, Proceed], Any]:
    """
    Let handlers that never pass control on leave out `proceed`.

        def hello(request, response):             # two parameters
            response.send("Hello World!")
    """
    try:
        params = [
            p for p in inspect.signature(handler).parameters.values()
            if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD)
        ]
    except (TypeError, ValueError):
        return handler

    if len(params) != 2:
        return handler

    def call(request, response, proceed):
        return handler(request, response)

    call.__name__ = getattr(handler, "__name__", "handler")
    return call


class Mount(Middleware):
    """
    Runs `handler` only for paths under `prefix`, with the prefix stripped.

    =========================================================================
    PATH BOOKKEEPING
    =========================================================================

        mounted at "/posts", request for "/posts/new?x=1"

                         before      inside          after
        path             /posts/new  /new            /posts/new
        base_path        ""          /posts          ""
        original_path    /posts/new  /posts/new      /posts/new

    The prefix must end at a segment boundary: "/posts" matches "/posts"
    and "/posts/1" but not "/postscript".

    =========================================================================
    """

    def __init__(self, prefix: str, handler: Any):
        self.prefix = _normalize_prefix(prefix)
        self.handler = as_stage(handler)

    @property
    def name(self) -> str:
        return f"Mount({self.prefix} → {self.handler.name})"

    def matches(self, path: str) -> bool:
        if self.prefix == "/":
            return True
        return path == self.prefix or path.startswith(self.prefix + "/")

    async def __call__(self, request: HTTPRequest, response: HTTPResponse, proceed: Proceed) -> None:
        if not self.matches(request.path):
            await proceed()
            return

        saved = (request.path, request.base_path)

        def restore() -> None:
            request.path, request.base_path = saved

        if self.prefix != "/":
            request.path = request.path[len(self.prefix):] or "/"
            request.base_path = request.base_path + self.prefix

        async def leave(error: Optional[BaseException]) -> None:
            restore()
            await proceed(error)

        def invoke(inner_proceed: Proceed) -> Any:
            return self.handler(request, response, inner_proceed)

        try:
            await run_stage(self.handler.name, invoke, leave, response)
        finally:
            restore()


class Router(Middleware):
    """
    Ordered routes and middleware, usable as a middleware stage itself.

    ==========================================================================
    DECORATOR-BASED API
    ==========================================================================

        router = Router()

        @router.get("/")
        def index(request, response):
            response.render("posts/index")

        @router.post("/")
        def create(request, response):
            response.render("posts/show", {"post": request.form})

        app.use("/posts", router)

    ==========================================================================
    REVERSE ROUTING
    ==========================================================================

        @router.get("/posts/:id", name="show_post")
        def show_post(request, response): ...

        router.url_for("show_post", id="7")   # "/posts/7"

    ==========================================================================
    """

    def __init__(self, name: Optional[str] = None):
        self._name = name
        self._layers: List[Any] = []
        self._named_routes: Dict[str, Route] = {}

    @property
    def name(self) -> str:
        return self._name or "Router"

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    def add_route(
        self,
        path: str,
        handler: Handler,
        method: Optional[str] = None,
        name: Optional[str] = None,
        **meta: Any,
    ) -> Route:
        pattern, param_names = compile_pattern(path)
        route = Route(
            path=path,
            method=method.upper() if method else None,
            handler=_adapt_handler(handler),
            name=name,
            meta=meta,
            _pattern=pattern,
            _param_names=param_names,
        )
        self._layers.append(route)
        if name:
            self._named_routes[name] = route
        logger.debug(f"Route registered: {route.method or 'ALL'} {path}")
        return route

    def use(self, *args: Any) -> "Router":
        """
        Add middleware to this router, optionally under a prefix.

            router.use(stage)              # every request reaching the router
            router.use("/admin", stage)    # only under /admin, prefix stripped
        """
        if args and isinstance(args[0], str):
            prefix, stages = args[0], args[1:]
            for stage in stages:
                self._layers.append(Mount(prefix, stage))
        else:
            for stage in args:
                self._layers.append(as_stage(stage))
        return self

    def mount(self, prefix: str, router: "Router") -> "Router":
        """Mount another router under a prefix."""
        return self.use(prefix, router)

    def route(
        self,
        path: str,
        method: Optional[str] = None,
        name: Optional[str] = None,
        **meta: Any,
    ) -> Callable[[Handler], Handler]:
        """Decorator for registering a route; returns the handler unchanged."""
        def decorator(handler: Handler) -> Handler:
            self.add_route(path, handler, method, name, **meta)
            return handler
        return decorator

    def get(self, path: str, name: Optional[str] = None, **meta: Any) -> Callable[[Handler], Handler]:
        """Register a GET route (also answers HEAD)."""
        return self.route(path, "GET", name, **meta)

    def post(self, path: str, name: Optional[str] = None, **meta: Any) -> Callable[[Handler], Handler]:
        return self.route(path, "POST", name, **meta)

    def put(self, path: str, name: Optional[str] = None, **meta: Any) -> Callable[[Handler], Handler]:
        return self.route(path, "PUT", name, **meta)

    def delete(self, path: str, name: Optional[str] = None, **meta: Any) -> Callable[[Handler], Handler]:
        return self.route(path, "DELETE", name, **meta)

    def patch(self, path: str, name: Optional[str] = None, **meta: Any) -> Callable[[Handler], Handler]:
        return self.route(path, "PATCH", name, **meta)

    def head(self, path: str, name: Optional[str] = None, **meta: Any) -> Callable[[Handler], Handler]:
        return self.route(path, "HEAD", name, **meta)

    def options(self, path: str, name: Optional[str] = None, **meta: Any) -> Callable[[Handler], Handler]:
        return self.route(path, "OPTIONS", name, **meta)

    def all(self, path: str, name: Optional[str] = None, **meta: Any) -> Callable[[Handler], Handler]:
        """Register a route for every method."""
        return self.route(path, None, name, **meta)

    # =========================================================================
    # MATCHING
    # =========================================================================

    def match(self, method: str, path: str) -> Optional[RouteMatch]:
        """First route of THIS router matching method and path (mounts ignored)."""
        for layer in self._layers:
            if isinstance(layer, Route) and layer.handles_method(method.upper()):
                params = layer.match_path(path)
                if params is not None:
                    return RouteMatch(route=layer, params=params)
        return None

    def get_allowed_methods(self, path: str) -> List[str]:
        """Methods with a route for `path`; used for the Allow header."""
        methods: Set[str] = set()
        for layer in self._layers:
            if isinstance(layer, Route) and layer.match_path(path) is not None:
                if layer.method is None:
                    return list(ALL_METHODS)
                methods.add(layer.method)
                if layer.method == "GET":
                    methods.add("HEAD")
        return sorted(methods)

    # =========================================================================
    # DISPATCH
    # =========================================================================

    async def __call__(self, request: HTTPRequest, response: HTTPResponse, proceed: Proceed) -> None:
        """
        Walk the layers for one request.

        =====================================================================
        LAYER WALK
        =====================================================================

            for each layer, in order:
                Route       path and method match?        → run handler
                Middleware  right kind for current flow?  → run it
                Mount       path under prefix?            → run inside

            fell off the end:
                OPTIONS with known routes → answer with Allow
                otherwise                 → proceed(error) outward

        =====================================================================
        """
        layers = tuple(self._layers)
        allowed: Set[str] = set()

        async def dispatch(index: int, error: Optional[BaseException]) -> None:
            while index < len(layers):
                layer = layers[index]
                index += 1

                if isinstance(layer, Route):
                    if error is not None:
                        continue
                    params = layer.match_path(request.path)
                    if params is None:
                        continue
                    if not layer.handles_method(request.method):
                        allowed.update(self.get_allowed_methods(request.path))
                        continue
                    request.path_params = params
                    stage_name = f"{layer.method or 'ALL'} {layer.path}"
                    handler = layer.handler

                    def invoke(p: Proceed, handler=handler) -> Any:
                        return handler(request, response, p)

                else:
                    if layer.is_error_handler != (error is not None):
                        continue
                    stage_name = layer.name

                    def invoke(p: Proceed, stage=layer) -> Any:
                        if error is None:
                            return stage(request, response, p)
                        return stage(error, request, response, p)

                next_index = index

                async def forward(next_error: Optional[BaseException]) -> None:
                    await dispatch(next_index, next_error)

                await run_stage(stage_name, invoke, forward, response)
                return

            if error is None and request.method == "OPTIONS" and allowed:
                allow = ",".join(sorted(allowed))
                response.set_header("Allow", allow)
                response.text(allow)
                return

            await proceed(error)

        await dispatch(0, None)

    # =========================================================================
    # UTILITY METHODS
    # =========================================================================

    def url_for(self, name: str, **params: str) -> Optional[str]:
        """
        Build the path of a named route, relative to where this router is
        mounted. None when no route has that name.
        """
        route = self._named_routes.get(name)
        if not route:
            return None

        url = route.path
        for param_name, value in params.items():
            url = url.replace(f":{param_name}", str(value))
            url = url.replace(f"*{param_name}", str(value))
        return url

    def routes(self, prefix: str = "") -> List[Tuple[str, str]]:
        """
        (method, full path) for every route, including mounted routers.

            [("GET", "/hello-world"), ("GET", "/"), ("GET", "/posts/"), ...]
        """
        result: List[Tuple[str, str]] = []
        for layer in self._layers:
            if isinstance(layer, Route):
                path = (prefix + layer.path) if prefix else layer.path
                result.append((layer.method or "ALL", path))
            elif isinstance(layer, Mount) and isinstance(layer.handler, Router):
                inner = "" if layer.prefix == "/" else layer.prefix
                result.extend(layer.handler.routes(prefix + inner))
        return result

    def print_routes(self) -> None:
        """
        Print all registered routes.

            Registered Routes:
            ------------------------------------------------------------
              GET      /hello-world
              GET      /
              GET      /posts/
            ------------------------------------------------------------
        """
        print("\nRegistered Routes:")
        print("-" * 60)
        for method, path in self.routes():
            print(f"  {method:8} {path}")
        print("-" * 60)
