"""
=============================================================================
JIRANOTES CLI ENTRY POINT
=============================================================================

    # Serve notes from a folder (blocks until Ctrl+C)
    python -m jiranotes --notes-dir ~/Notes/Jira

    # Another port, JSON access logs
    python -m jiranotes -p 18500 --log-format json

    # Is a server already answering?
    python -m jiranotes --ping

    # Print curl examples for every endpoint
    python -m jiranotes --endpoints

Configuration starts from ServerConfig.from_env() (JIRANOTES_* variables)
and flags override it.

=============================================================================
"""

import argparse
import logging
import socket
import sys
from typing import List, Optional

from . import __version__
from .config import DEFAULT_PORT, ServerConfig
from .core.listener import BindError
from .server import NotesServer


logger = logging.getLogger("jiranotes")


ENDPOINTS_TEMPLATE = """\
JiraNotes HTTP endpoints

GET  /ping
  curl -i http://127.0.0.1:{port}/ping

GET  /load?ticketId=ABC-123
  curl -i "http://127.0.0.1:{port}/load?ticketId=ABC-123"

POST /save?ticketId=ABC-123
  curl -i -X POST "http://127.0.0.1:{port}/save?ticketId=ABC-123" \\
    -H "Content-Type: application/json" \\
    --data '{{"ticketId":"ABC-123","text":"Hello","updatedAt":"2025-01-01T00:00:00Z"}}'

POST /choose
  curl -i -X POST http://127.0.0.1:{port}/choose
"""


def endpoints_text(port: int) -> str:
    return ENDPOINTS_TEMPLATE.format(port=port)


def ping_server(port: int, host: str = "127.0.0.1", timeout: float = 2.0) -> bool:
    """
    GET /ping over a raw socket.

    Returns:
        True if the server answered with a 200 status line.
    """
    request = f"GET /ping HTTP/1.1\r\nHost: {host}:{port}\r\nConnection: close\r\n\r\n"
    try:
        with socket.create_connection((host, port), timeout=timeout) as sock:
            sock.sendall(request.encode("ascii"))
            response = b""
            while True:
                chunk = sock.recv(4096)
                if not chunk:
                    break
                response += chunk
    except OSError as e:
        logger.debug(f"Ping failed: {e}")
        return False

    status_line = response.split(b"\r\n", 1)[0]
    return status_line.startswith(b"HTTP/1.1 200")


def headless_picker():
    """Stands in for a folder dialog when running from a terminal."""
    logger.warning(
        "Folder choice requested. Restart with --notes-dir <folder> "
        "or set JIRANOTES_NOTES_DIR to choose where notes are stored."
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="jiranotes",
        description="Loopback note server for the JiraNotes browser extension",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m jiranotes --notes-dir ~/Notes/Jira   # Serve notes
  python -m jiranotes --port 18500               # Custom port
  python -m jiranotes --ping                     # Check a running server
  python -m jiranotes --endpoints                # curl cheat sheet
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # SERVER ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=None,
        help=f"Port to listen on (default: {DEFAULT_PORT})"
    )

    parser.add_argument(
        "--notes-dir", "-d",
        default=None,
        help="Folder where <TICKET>.json notes are stored"
    )

    parser.add_argument(
        "--read-timeout",
        type=float,
        default=None,
        help="Seconds to wait for a request before giving up (default: no limit)"
    )

    parser.add_argument(
        "--max-request-size",
        type=int,
        default=None,
        help="Largest accepted request in bytes (default: 1048576)"
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
        choices=["text", "json"],
        default=None,
        help="Access log format (default: text)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # ACTIONS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--endpoints",
        action="store_true",
        help="Print curl examples for every endpoint and exit"
    )

    parser.add_argument(
        "--ping",
        action="store_true",
        help="Ping a running server and exit (0 = OK, 1 = failed)"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"JiraNotes {__version__}"
    )

    return parser


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    """Environment first, then any flag that was given."""
    config = ServerConfig.from_env()
    if args.port is not None:
        config.port = args.port
    if args.notes_dir is not None:
        config.notes_dir = args.notes_dir
    if args.read_timeout is not None:
        config.read_timeout = args.read_timeout
    if args.max_request_size is not None:
        config.max_request_size = args.max_request_size
    if args.log_level is not None:
        config.log_level = args.log_level
    if args.log_format is not None:
        config.log_format = args.log_format
    return config


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = config_from_args(args)
        config.validate()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    if args.endpoints:
        print(endpoints_text(config.port), end="")
        return 0

    if args.ping:
        ok = ping_server(config.port, config.host)
        print("Ping OK" if ok else "Ping Failed")
        print(f"Folder: {config.notes_dir or '(not set)'}")
        print(f"Port:   {config.port}")
        return 0 if ok else 1

    server = NotesServer(config, picker=headless_picker)
    try:
        server.run()
    except BindError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
