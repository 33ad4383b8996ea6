"""
=============================================================================
CLI ENTRY POINT
=============================================================================

    # Run with defaults (http://localhost:5001)
    python -m httpapp

    # Another port (the only way to change it)
    python -m httpapp --port 3000

    # Listen on all interfaces (for containers)
    python -m httpapp --host 0.0.0.0

    # Apache-style access log, tracebacks on error pages
    python -m httpapp --log-format combined --debug

    # Print the route table and exit
    python -m httpapp --routes

=============================================================================
12-FACTOR APP: ENTRY POINT
=============================================================================

1. ServerConfig.from_env() reads the environment, CLI flags override it
2. build_app() assembles the middleware chain and routers
3. HTTPServer(app).run() serves until Ctrl+C or SIGTERM

=============================================================================
"""

import argparse
import sys

from . import __version__
from .config import PORT, ServerConfig
from .server import HTTPServer
from .website import build_app


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="httpapp",
        description="A small website on a from-scratch asyncio HTTP server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m httpapp                         # http://localhost:5001
  python -m httpapp --port 3000             # Custom port
  python -m httpapp --host 0.0.0.0          # Listen on all interfaces
  python -m httpapp --log-format json       # One JSON object per request
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--host", "-H",
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1, use 0.0.0.0 for containers)"
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=PORT,
        help=f"Port to listen on (default: {PORT})"
    )

    # ─────────────────────────────────────────────────────────────────────
    # APPLICATION ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--public", "-s",
        default=None,
        help="Directory to serve static files from (default: bundled public/)"
    )

    parser.add_argument(
        "--views",
        default=None,
        help="Directory holding the templates (default: bundled templates/)"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        default=None,
        help="Show tracebacks on error pages"
    )

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--log-format",
        choices=["dev", "combined", "basic", "json"],
        default=None,
        help="Access log format (default: dev)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # META ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--routes",
        action="store_true",
        help="Print the registered routes and exit"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"pyhttpapp {__version__}"
    )

    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    config = ServerConfig.from_env(
        host=args.host,
        port=args.port,
        public_dir=args.public,
        views_dir=args.views,
        log_level=args.log_level,
        log_format=args.log_format,
        debug=args.debug,
    )

    try:
        config.validate()
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    app = build_app(config)

    if args.routes:
        app.print_routes()
        return 0

    HTTPServer(app, config).run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
