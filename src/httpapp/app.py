"""
=============================================================================
APPLICATION
=============================================================================

The Application collects middleware and routes, freezes them into one
dispatch coroutine, and turns each parsed request into a response.

    app = Application(config, renderer=ViewRenderer("templates"))
    app.use(LoggingMiddleware())
    app.use(StaticFilesMiddleware("public"))

    @app.get("/hello-world")
    def hello(request, response):
        response.send("Hello World!")

    app.use("/posts", posts_router)

    response = await app.handle(request)

=============================================================================
REGISTRATION ORDER IS EXECUTION ORDER
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   app.use(logger)            ──►  stage 0                            │
    │   app.use(static)            ──►  stage 1                            │
    │   @app.get("/hello-world")   ──►  stage 2  (an app-level Router)     │
    │   app.use("/", home)         ──►  stage 3  Mount("/", home)          │
    │   app.use("/posts", posts)   ──►  stage 4  Mount("/posts", posts)    │
    │                                                                      │
    │   ... past the last stage:  final handler (404)                      │
    │   ... on error:             default error handler (status or 500)    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Route decorators go to an app-level Router. A new one is started whenever
middleware was added after the last route, so a route registered after
app.use(x) also runs after x.

=============================================================================
FREEZING
=============================================================================

build() snapshots the stage list into an immutable tuple. From then on
the application is read-only: use() and the route decorators raise
RuntimeError. Every connection shares the same frozen dispatch, and no
request can change what the next one sees.

=============================================================================
INTERVIEW QUESTIONS ABOUT THE APPLICATION OBJECT
=============================================================================

Q: "What happens to an exception nobody handles?"
A: "Exceptions inside a stage are caught at the stage boundary and sent
   down the error path. If no error stage answers, the default handler
   sends the error's status (500 for anything that is not an HTTPError)
   and logs it. Anything that still escapes, like a stalled stage, is
   caught in handle() and becomes a 500. One bad request never takes
   the server down."

Q: "What does a stalled request look like to the client?"
A: "A 500 page, immediately. The stage that returned without answering
   and without calling proceed() is named in the error log."

=============================================================================
"""

import html
import logging
import traceback
from typing import Any, Callable, Optional

from .config import ServerConfig
from .http.chain import MiddlewareContractError, StalledRequestError
from .http.errors import HTTPError
from .http.request import HTTPRequest
from .http.response import HTTPResponse
from .http.router import Mount, Router
from .http.status_codes import HTTPStatus, status_phrase
from .middleware.base import Dispatch, MiddlewarePipeline


logger = logging.getLogger(__name__)


def error_page(message: str) -> str:
    """
    The HTML document used for the default 404 and error responses.

    The message is escaped, and line breaks and runs of spaces survive
    so a traceback stays readable.
    """
    escaped = html.escape(message).replace("\n", "<br>").replace("  ", " &nbsp;")
    return (
        "<!DOCTYPE html>\n"
        '<html lang="en">\n'
        "<head>\n"
        '<meta charset="utf-8">\n'
        "<title>Error</title>\n"
        "</head>\n"
        "<body>\n"
        f"<pre>{escaped}</pre>\n"
        "</body>\n"
        "</html>\n"
    )


class Application:
    """
    Middleware, routes and the request entry point.

    Attributes:
        config: Settings the application reads (cookie secret, debug).
        renderer: View renderer handed to every response, or None.
    """

    def __init__(self, config: Optional[ServerConfig] = None, renderer: Optional[Any] = None):
        self.config = config or ServerConfig()
        self.renderer = renderer
        self._pipeline = MiddlewarePipeline()
        self._route_router: Optional[Router] = None
        self._dispatch: Optional[Dispatch] = None

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    @property
    def built(self) -> bool:
        return self._dispatch is not None

    def _ensure_not_built(self) -> None:
        if self.built:
            raise RuntimeError("Application is already built; register stages before build()")

    def use(self, *args: Any) -> "Application":
        """
        Add middleware, or mount a router under a prefix.

            app.use(stage)                 # every request
            app.use("/posts", router)      # under /posts, prefix stripped
        """
        self._ensure_not_built()
        if args and isinstance(args[0], str):
            prefix, stages = args[0], args[1:]
            for stage in stages:
                self._pipeline.add(Mount(prefix, stage))
        else:
            self._pipeline.use(*args)
        self._route_router = None
        return self

    def _routes(self) -> Router:
        self._ensure_not_built()
        if self._route_router is None:
            self._route_router = Router(name="app")
            self._pipeline.add(self._route_router)
        return self._route_router

    def route(self, path: str, method: Optional[str] = None, **kwargs: Any) -> Callable:
        return self._routes().route(path, method, **kwargs)

    def get(self, path: str, **kwargs: Any) -> Callable:
        return self._routes().get(path, **kwargs)

    def post(self, path: str, **kwargs: Any) -> Callable:
        return self._routes().post(path, **kwargs)

    def put(self, path: str, **kwargs: Any) -> Callable:
        return self._routes().put(path, **kwargs)

    def delete(self, path: str, **kwargs: Any) -> Callable:
        return self._routes().delete(path, **kwargs)

    def patch(self, path: str, **kwargs: Any) -> Callable:
        return self._routes().patch(path, **kwargs)

    def all(self, path: str, **kwargs: Any) -> Callable:
        return self._routes().all(path, **kwargs)

    def routes(self) -> list:
        """(method, path) pairs of every route, in registration order."""
        found = []
        for stage in self._pipeline:
            if isinstance(stage, Router):
                found.extend(stage.routes())
            elif isinstance(stage, Mount) and isinstance(stage.handler, Router):
                prefix = "" if stage.prefix == "/" else stage.prefix
                found.extend(stage.handler.routes(prefix))
        return found

    def print_routes(self) -> None:
        print("\nRegistered Routes:")
        print("-" * 60)
        for method, path in self.routes():
            print(f"  {method:8} {path}")
        print("-" * 60)

    # =========================================================================
    # FREEZING AND DISPATCH
    # =========================================================================

    def build(self) -> Dispatch:
        """Freeze the stage list. Safe to call more than once."""
        if self._dispatch is None:
            self._dispatch = self._pipeline.wrap(self._not_found, self._default_error)
            logger.debug(f"Application built with {len(self._pipeline)} stages")
        return self._dispatch

    async def handle(self, request: HTTPRequest) -> HTTPResponse:
        """
        Run one request through the frozen chain.

        Always returns a response. Contract violations and anything else
        escaping the chain become a 500.
        """
        dispatch = self.build()
        response = HTTPResponse(renderer=self.renderer, cookie_secret=self.config.cookie_secret)

        try:
            await dispatch(request, response)
        except (StalledRequestError, MiddlewareContractError) as e:
            logger.error(f"{request.method} {request.original_url}: {e}")
            self._send_error(response, HTTPStatus.INTERNAL_SERVER_ERROR, e)
        except Exception as e:
            logger.exception(f"Unhandled error for {request.method} {request.original_url}: {e}")
            self._send_error(response, HTTPStatus.INTERNAL_SERVER_ERROR, e)

        return response

    async def _not_found(self, request: HTTPRequest, response: HTTPResponse) -> None:
        if response.finished:
            return
        message = f"Cannot {request.method} {request.original_path}"
        self._send_page(response, HTTPStatus.NOT_FOUND, message)

    async def _default_error(self, error: BaseException, request: HTTPRequest, response: HTTPResponse) -> None:
        status = error.status_code if isinstance(error, HTTPError) else HTTPStatus.INTERNAL_SERVER_ERROR

        if status >= 500:
            logger.error(
                f"{request.method} {request.original_url} failed: {error}",
                exc_info=(type(error), error, error.__traceback__),
            )
        else:
            logger.info(f"{request.method} {request.original_url} → {status}: {error}")

        self._send_error(response, status, error)

    def _send_error(self, response: HTTPResponse, status: int, error: BaseException) -> None:
        if response.finished:
            logger.warning(f"Error after the response was sent: {error}")
            return

        if self.config.debug:
            message = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        elif isinstance(error, HTTPError) and error.expose:
            message = error.message
        else:
            message = status_phrase(status)
        self._send_page(response, status, message)

    @staticmethod
    def _send_page(response: HTTPResponse, status: int, message: str) -> None:
        response.set_header("Content-Security-Policy", "default-src 'none'")
        response.set_header("X-Content-Type-Options", "nosniff")
        response.html(error_page(message), status=status)
