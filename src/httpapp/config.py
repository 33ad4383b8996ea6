"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration for the server and the application it runs.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m httpapp --port 3000 --log-format combined       │
    │                                                                      │
    │   2. Environment variables (everything except the network)         │
    │      └── HTTPAPP_LOG_LEVEL=DEBUG python -m httpapp                 │
    │                                                                      │
    │   3. Default values (in this dataclass)                             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The listening port is a constant, PORT = 5001. Only the --port flag
changes it; no environment variable does. Everything that changes how
the application behaves, rather than where it listens, may come from the
environment.

=============================================================================
INTERVIEW QUESTIONS ABOUT CONFIGURATION
=============================================================================

Q: "How do you handle secrets in configuration?"
A: "The cookie signing secret comes from HTTPAPP_COOKIE_SECRET, never
   from a file in the repository."

Q: "How do you validate configuration?"
A: "Eagerly, at startup. validate() raises before the socket is bound,
   so a typo in a log format fails the launch instead of the first
   request."

=============================================================================
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


PORT = 5001

PACKAGE_DIR = Path(__file__).resolve().parent
DEFAULT_PUBLIC_DIR = PACKAGE_DIR / "public"
DEFAULT_VIEWS_DIR = PACKAGE_DIR / "templates"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_LOG_FORMATS = ("dev", "combined", "basic", "json")
_TRUTHY = ("1", "true", "yes", "on")


@dataclass
class ServerConfig:
    """
    Configuration for the server and the application.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK
    - host, port, backlog, timeout

    HTTP
    - keep_alive, keep_alive_timeout, max_request_size, max_header_size

    APPLICATION
    - public_dir, views_dir, view_extension, cookie_secret, body_limit,
      debug

    LOGGING
    - log_level, log_format

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    """
    The IP address to bind to.
    - "127.0.0.1" - Localhost only (development)
    - "0.0.0.0" - All network interfaces
    """

    port: int = PORT
    """Port to listen on. 0 lets the OS pick a free one (tests use this)."""

    backlog: int = 128
    """Maximum number of connections waiting to be accepted."""

    timeout: Optional[float] = 30.0
    """
    Seconds to wait for a complete request head before giving up.
    None waits forever.
    """

    # ─────────────────────────────────────────────────────────────────────
    # HTTP SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    keep_alive: bool = True
    """Serve several requests on one TCP connection."""

    keep_alive_timeout: float = 5.0
    """Idle seconds before a kept-alive connection is closed."""

    max_request_size: int = 10 * 1024 * 1024
    """Largest accepted request body, in bytes. Larger gets 413."""

    max_header_size: int = 16 * 1024
    """Largest accepted request head, in bytes. Larger gets 431."""

    # ─────────────────────────────────────────────────────────────────────
    # APPLICATION
    # ─────────────────────────────────────────────────────────────────────

    public_dir: Path = field(default_factory=lambda: DEFAULT_PUBLIC_DIR)
    """Directory the static middleware serves."""

    views_dir: Path = field(default_factory=lambda: DEFAULT_VIEWS_DIR)
    """Directory holding the Jinja2 templates."""

    view_extension: str = ".html"
    """Extension added to template names that have none."""

    cookie_secret: Optional[str] = None
    """Secret for signed cookies. None disables signing."""

    body_limit: int = 100 * 1024
    """Largest URL-encoded form body, in bytes."""

    debug: bool = False
    """Show tracebacks on error pages. Never in production."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)."""

    log_format: str = "dev"
    """Access log format: dev, combined, basic or json."""

    # ─────────────────────────────────────────────────────────────────────
    # SERVER IDENTITY
    # ─────────────────────────────────────────────────────────────────────

    server_name: str = "pyhttpapp/1.0"
    """Value of the Server response header."""

    def __post_init__(self):
        self.public_dir = Path(self.public_dir)
        self.views_dir = Path(self.views_dir)

    @classmethod
    def from_env(cls, **overrides) -> "ServerConfig":
        """
        Build a configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        HTTPAPP_LOG_LEVEL      Logging level (default: INFO)
        HTTPAPP_LOG_FORMAT     dev, combined, basic, json (default: dev)
        HTTPAPP_PUBLIC_DIR     Static files directory
        HTTPAPP_VIEWS_DIR      Templates directory
        HTTPAPP_COOKIE_SECRET  Secret for signed cookies
        HTTPAPP_DEBUG          1/true/yes/on to show tracebacks

        Keyword arguments win over the environment:

            ServerConfig.from_env(port=args.port)

        =====================================================================
        """
        values = {
            "log_level": os.getenv("HTTPAPP_LOG_LEVEL", "INFO").upper(),
            "log_format": os.getenv("HTTPAPP_LOG_FORMAT", "dev").lower(),
            "public_dir": Path(os.getenv("HTTPAPP_PUBLIC_DIR", str(DEFAULT_PUBLIC_DIR))),
            "views_dir": Path(os.getenv("HTTPAPP_VIEWS_DIR", str(DEFAULT_VIEWS_DIR))),
            "cookie_secret": os.getenv("HTTPAPP_COOKIE_SECRET") or None,
            "debug": os.getenv("HTTPAPP_DEBUG", "").lower() in _TRUTHY,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def validate(self) -> None:
        """Fail fast on values that cannot work."""
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if self.keep_alive_timeout <= 0:
            raise ValueError("keep_alive_timeout must be > 0")

        if self.max_header_size < 1024:
            raise ValueError("max_header_size must be >= 1024")

        if self.log_level.upper() not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {_LOG_LEVELS}, got {self.log_level!r}")

        if self.log_format not in _LOG_FORMATS:
            raise ValueError(f"log_format must be one of {_LOG_FORMATS}, got {self.log_format!r}")

        if not self.public_dir.is_dir():
            raise ValueError(f"public_dir does not exist: {self.public_dir}")

        if not self.views_dir.is_dir():
            raise ValueError(f"views_dir does not exist: {self.views_dir}")
