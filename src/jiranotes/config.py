"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration for the JiraNotes helper server.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    1. Defaults       ServerConfig()                  (port 18427, loopback)
    2. Environment    ServerConfig.from_env()         (JIRANOTES_* variables)
    3. CLI flags      python -m jiranotes --port ...  (see __main__.py)

Later sources override earlier ones. The CLI starts from from_env() and
then applies whatever flags were given.

=============================================================================
LOOPBACK ONLY
=============================================================================

The server exists so a browser extension on the same machine can read and
write note files. It is never meant to be reachable from the network, so
validate() refuses any host that is not a loopback address.

=============================================================================
"""

import ipaddress
import os
from dataclasses import dataclass
from typing import Optional


DEFAULT_PORT = 18427

LOG_FORMATS = ("text", "json")


@dataclass
class ServerConfig:
    """
    Configuration for the notes server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK SETTINGS
    - host, port, backlog

    READING
    - buffer_size, max_request_size, read_timeout

    STORAGE
    - notes_dir

    LOGGING
    - log_level, log_format

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    """Address to bind. Must be a loopback address."""

    port: int = DEFAULT_PORT
    """
    Port to listen on. 0 lets the OS pick a free port (used by tests);
    the bound port is then available from ServerHandle.port.
    """

    backlog: int = 128
    """Maximum number of queued, not yet accepted connections."""

    # ─────────────────────────────────────────────────────────────────────
    # READING
    # ─────────────────────────────────────────────────────────────────────

    buffer_size: int = 64 * 1024
    """Upper bound for a single recv() call (64 KiB)."""

    max_request_size: int = 1024 * 1024
    """
    Upper bound on the total bytes buffered for one request (1 MiB).
    Notes are small JSON documents; anything bigger is rejected with 413.
    """

    read_timeout: Optional[float] = None
    """
    Per-connection socket timeout in seconds.
    None = no deadline, an idle client may hold its connection open.
    """

    # ─────────────────────────────────────────────────────────────────────
    # STORAGE
    # ─────────────────────────────────────────────────────────────────────

    notes_dir: Optional[str] = None
    """Folder holding one <TICKET>.json file per ticket. May be chosen later."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    log_format: str = "text"
    """Access log format: 'text' (Apache-like) or 'json'."""

    server_name: str = "JiraNotes/1.0"

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        JIRANOTES_HOST              Bind address (default: 127.0.0.1)
        JIRANOTES_PORT              Port (default: 18427)
        JIRANOTES_NOTES_DIR         Notes folder (default: unset)
        JIRANOTES_LOG_LEVEL         Logging level (default: INFO)
        JIRANOTES_LOG_FORMAT        text | json (default: text)
        JIRANOTES_MAX_REQUEST_SIZE  Bytes (default: 1048576)
        JIRANOTES_READ_TIMEOUT      Seconds (default: unset)

        =====================================================================
        """
        read_timeout = os.getenv("JIRANOTES_READ_TIMEOUT")
        return cls(
            host=os.getenv("JIRANOTES_HOST", "127.0.0.1"),
            port=int(os.getenv("JIRANOTES_PORT", str(DEFAULT_PORT))),
            notes_dir=os.getenv("JIRANOTES_NOTES_DIR") or None,
            log_level=os.getenv("JIRANOTES_LOG_LEVEL", "INFO"),
            log_format=os.getenv("JIRANOTES_LOG_FORMAT", "text"),
            max_request_size=int(os.getenv("JIRANOTES_MAX_REQUEST_SIZE", str(1024 * 1024))),
            read_timeout=float(read_timeout) if read_timeout else None,
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Called once at startup so a bad value fails immediately instead
        of on the first request.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if not _is_loopback(self.host):
            raise ValueError(f"Refusing to bind non-loopback host: {self.host}")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.max_request_size < self.buffer_size:
            raise ValueError("max_request_size must be >= buffer_size")

        if self.read_timeout is not None and self.read_timeout <= 0:
            raise ValueError("read_timeout must be > 0")

        if self.log_format not in LOG_FORMATS:
            raise ValueError(f"log_format must be one of {', '.join(LOG_FORMATS)}")


def _is_loopback(host: str) -> bool:
    if host == "localhost":
        return True
    try:
        return ipaddress.ip_address(host).is_loopback
    except ValueError:
        return False
