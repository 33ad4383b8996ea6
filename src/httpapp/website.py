"""
=============================================================================
THE WEBSITE
=============================================================================

Assembles the application this package serves:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   1. LoggingMiddleware          one access line per request          │
    │   2. StaticFilesMiddleware      public/                              │
    │   3. CookieParserMiddleware     request.cookies                      │
    │   4. VisitorCookiesMiddleware   luckyNumber (once), things (always)  │
    │   5. UrlencodedBodyMiddleware   request.form, simple mode            │
    │   6. GET /hello-world           "Hello World!"                       │
    │   7. /       → routes.home                                           │
    │   8. /posts  → routes.posts                                          │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Nothing after build_app() changes the chain: the server builds the
application once and every request goes through the same frozen stages.

=============================================================================
THE VISITOR COOKIES
=============================================================================

    First visit                         Later visits
    ───────────                         ────────────
    Set-Cookie: luckyNumber=42;         (luckyNumber left alone)
      Max-Age=86400; ...
    Set-Cookie: things=j%3A%5B...       Set-Cookie: things=j%3A%5B...

`things` is a list, so it travels as 'j:' + JSON. When the browser sends
it back, the cookie parser decodes it into the same list:

    request.cookies["things"] == ["Mouse", "Pen", "Bow", "Dagger"]

=============================================================================
"""

import logging
import random
import sys
from typing import Optional

from .app import Application
from .config import ServerConfig
from .http.chain import Proceed
from .http.request import HTTPRequest
from .http.response import HTTPResponse
from .middleware import (
    CookieParserMiddleware,
    LoggingMiddleware,
    Middleware,
    StaticFilesMiddleware,
    UrlencodedBodyMiddleware,
)
from .routes import home, posts
from .views import ViewRenderer


logger = logging.getLogger(__name__)

SITE_NAME = "pyhttpapp"

LUCKY_NUMBER_COOKIE = "luckyNumber"
LUCKY_NUMBER_MAX_AGE = 24 * 60 * 60
THINGS_COOKIE = "things"
THINGS = ["Mouse", "Pen", "Bow", "Dagger"]


class VisitorCookiesMiddleware(Middleware):
    """
    Give every visitor a lucky number and a list of things.

    `rng` is any object with randrange(); tests pass a seeded
    random.Random to get a known number.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def __call__(self, request: HTTPRequest, response: HTTPResponse, proceed: Proceed):
        # Present and non-empty counts as set, "0" included
        if not request.cookies.get(LUCKY_NUMBER_COOKIE):
            response.set_cookie(
                LUCKY_NUMBER_COOKIE,
                self.rng.randrange(100),
                max_age=LUCKY_NUMBER_MAX_AGE,
            )

        response.set_cookie(THINGS_COOKIE, list(THINGS))
        logger.debug(f"things cookie received: {request.cookies.get(THINGS_COOKIE)!r}")
        return proceed()


def hello_world(request: HTTPRequest, response: HTTPResponse) -> None:
    response.send("Hello World!")


def build_app(config: Optional[ServerConfig] = None, rng: Optional[random.Random] = None) -> Application:
    """Wire up the site. Returns an Application that is not built yet."""
    config = config or ServerConfig()

    renderer = ViewRenderer(
        config.views_dir,
        extension=config.view_extension,
        template_globals={"site_name": SITE_NAME},
        auto_reload=config.debug,
    )
    app = Application(config, renderer=renderer)

    app.use(LoggingMiddleware(log_format=config.log_format, colorize=sys.stderr.isatty()))
    app.use(StaticFilesMiddleware(config.public_dir))
    app.use(CookieParserMiddleware(config.cookie_secret))
    app.use(VisitorCookiesMiddleware(rng))
    app.use(UrlencodedBodyMiddleware(extended=False, limit=config.body_limit))

    app.get("/hello-world")(hello_world)

    app.use("/", home.router)
    app.use("/posts", posts.router)

    return app
