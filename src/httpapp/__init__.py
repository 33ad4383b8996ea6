"""
=============================================================================
PYHTTPAPP
=============================================================================

A small website served by an HTTP/1.1 server written from scratch on
asyncio, with an Express-style middleware chain in front of the routers.

=============================================================================
PACKAGE LAYOUT
=============================================================================

    httpapp/
    ├── http/           Wire format and routing
    │   ├── request.py      request parser (RFC 7230)
    │   ├── response.py     response object, Set-Cookie, serialization
    │   ├── cookies.py      cookie encoding, 'j:' JSON values, signing
    │   ├── chain.py        the proceed() protocol
    │   └── router.py       routes, mounts, Router
    ├── middleware/     Logging, static files, cookies, form bodies
    ├── core/           asyncio socket server and connections
    ├── routes/         The site's route sets (home, posts)
    ├── templates/      Jinja2 views
    ├── public/         Static assets
    ├── app.py          Application: stages, freezing, 404/500
    ├── views.py        Jinja2 renderer
    ├── website.py      build_app(): the site's chain
    ├── server.py       HTTPServer: keep-alive loop
    └── config.py       ServerConfig

=============================================================================
QUICK START
=============================================================================

    python -m httpapp
    Server listening on http://localhost:5001...

    curl http://localhost:5001/hello-world
    Hello World!

=============================================================================
"""

__version__ = "1.0.0"

# http first: the middleware package imports from its submodules
from . import http
from .config import PORT, ServerConfig
from .app import Application
from .server import HTTPServer
from .website import build_app

__all__ = ["Application", "HTTPServer", "ServerConfig", "PORT", "build_app", "__version__"]
