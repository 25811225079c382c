"""
=============================================================================
NOTES SERVER
=============================================================================

Wires the pieces together:

    ┌──────────┐   ┌────────────┐   ┌───────────────┐   ┌────────┐   ┌────────┐
    │ Listener │──►│ Connection │──►│ parse_request │──►│ Router │──►│ Writer │
    │ accept() │   │ read bytes │   │ bytes→Request │   │ +MW    │   │ send   │
    └──────────┘   └────────────┘   └───────────────┘   └────────┘   └────────┘

Each connection runs read → parse → dispatch → write strictly in order on
its own thread, then closes. Nothing here is retried; a failure on one
connection is logged and the server keeps running. Only a bind failure
stops the server from starting.

=============================================================================
USAGE
=============================================================================

    # Embedded (tests, other apps)
    server = NotesServer(ServerConfig(port=0, notes_dir="/tmp/notes"))
    handle = server.start()
    ...
    server.stop()

    # Standalone (blocks until SIGINT/SIGTERM)
    NotesServer(ServerConfig.from_env()).run()

=============================================================================
"""

import logging
import signal
import socket
import threading
from http import HTTPStatus
from typing import Callable, Optional

from .config import ServerConfig
from .core import listener
from .core.connection import Connection, ConnectionState
from .core.listener import ServerHandle
from .core.reader import RequestTooLarge
from .handlers.notes import Capabilities, LocalCapabilities, NotesAPI
from .http.request import Request, parse_request
from .http.response import Response, error_response, write_response
from .http.router import Router
from .middleware import AccessLogMiddleware, Middleware, MiddlewarePipeline
from .store import FileNoteStore


logger = logging.getLogger(__name__)


class NotesServer:
    """
    The JiraNotes loopback HTTP server.

    Args:
        config: Server configuration; validated immediately.
        capabilities: Side effects for the handlers. Defaults to a
                      LocalCapabilities over a FileNoteStore rooted at
                      config.notes_dir.
        picker: Folder picker used by the default capabilities.
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        capabilities: Optional[Capabilities] = None,
        picker: Optional[Callable[[], None]] = None,
    ):
        self.config = config or ServerConfig()
        self.config.validate()

        # ─────────────────────────────────────────────────────────────────
        # APPLICATION COMPONENTS
        # ─────────────────────────────────────────────────────────────────

        self.store: Optional[FileNoteStore] = None
        if capabilities is None:
            self.store = FileNoteStore(self.config.notes_dir)
            capabilities = LocalCapabilities(self.store, picker=picker)
        self.capabilities = capabilities

        self._router = NotesAPI(capabilities).register(Router())

        self._middleware = MiddlewarePipeline()
        self._middleware.add(AccessLogMiddleware(log_format=self.config.log_format))

        # ─────────────────────────────────────────────────────────────────
        # RUNTIME STATE
        # ─────────────────────────────────────────────────────────────────

        self._handler: Optional[Callable[[Request], Response]] = None
        self._handle: Optional[ServerHandle] = None
        self._lock = threading.Lock()
        self._shutdown_event = threading.Event()
        self._original_handlers: dict = {}

    # =========================================================================
    # CONFIGURATION
    # =========================================================================

    @property
    def router(self) -> Router:
        return self._router

    def use(self, middleware: Middleware) -> "NotesServer":
        """Add middleware; must be called before start()."""
        self._middleware.add(middleware)
        self._handler = None
        return self

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @property
    def handle(self) -> Optional[ServerHandle]:
        return self._handle

    @property
    def is_running(self) -> bool:
        return self._handle is not None and self._handle.is_running

    @property
    def port(self) -> Optional[int]:
        return self._handle.port if self._handle else None

    def start(self) -> ServerHandle:
        """
        Bind and start accepting in the background.

        Raises:
            BindError: If the port is unavailable.
            RuntimeError: If already running.
        """
        with self._lock:
            if self._handle is not None and self._handle.is_running:
                raise RuntimeError("Server is already running")

            self._handler = self._middleware.wrap(self._router.dispatch)
            self._handle = listener.start(self.config.port, self._process_connection, self.config)
            self._shutdown_event.clear()
            return self._handle

    def stop(self):
        """Stop accepting; in-flight connections finish on their own."""
        self._stop_listener()
        self._shutdown_event.set()

    def restart(self) -> ServerHandle:
        """
        Stop and start again on the same port.

        A blocking run() keeps running across the restart.
        """
        port = self.port
        self._stop_listener()
        if port and not self.config.port:
            # Keep the OS-assigned port across the restart
            self.config.port = port
        return self.start()

    def _stop_listener(self):
        with self._lock:
            handle, self._handle = self._handle, None
        if handle is not None:
            listener.stop(handle)

    def run(self):
        """
        Run until SIGINT/SIGTERM (or stop() from another thread).

        Raises:
            BindError: If the port is unavailable.
        """
        self._setup_logging()
        handle = self.start()
        self._print_startup_banner(handle)

        self._setup_signals()
        try:
            while not self._shutdown_event.wait(0.5):
                # Re-read the handle each time; restart() swaps it
                current = self._handle
                if current is not None and not current.is_running:
                    logger.error("Listener stopped unexpectedly")
                    break
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._restore_signals()
            self.stop()
            logger.info("Server stopped")

    def _setup_logging(self):
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)
        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.getLogger("jiranotes").setLevel(level)

    def _print_startup_banner(self, handle: ServerHandle):
        folder = self.store.directory if self.store else None
        logger.info(f"{self.config.server_name} running on http://{handle.address[0]}:{handle.port}")
        logger.info(f"Notes folder: {folder or '(not set)'}")
        for route in self._router.routes:
            logger.debug(f"  {route.method:<6} {route.path}")

    def _setup_signals(self):
        # signal.signal() only works in the main thread
        if threading.current_thread() is not threading.main_thread():
            return

        def shutdown_handler(signum, frame):
            logger.info(f"Received {signal.Signals(signum).name}, shutting down...")
            self._shutdown_event.set()

        for sig in (signal.SIGTERM, signal.SIGINT):
            self._original_handlers[sig] = signal.signal(sig, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    # =========================================================================
    # REQUEST HANDLING
    # =========================================================================

    def dispatch(self, request: Request) -> Response:
        """Run a request through middleware and router."""
        if self._handler is None:
            self._handler = self._middleware.wrap(self._router.dispatch)
        return self._handler(request)

    def _process_connection(self, conn: Connection):
        """
        One request/response cycle (runs on the connection's thread).

        Every path ends with the connection closed; write_response()
        closes after sending and the listener closes again regardless.
        """
        try:
            raw = conn.read_request()
        except RequestTooLarge as e:
            logger.warning(f"[{conn.id}] {e}")
            write_response(error_response(HTTPStatus.REQUEST_ENTITY_TOO_LARGE, "request too large"), conn)
            return
        except socket.timeout:
            logger.info(f"[{conn.id}] Read timed out")
            write_response(error_response(HTTPStatus.REQUEST_TIMEOUT, "request timeout"), conn)
            return

        if raw is None:
            # Peer connected and left without sending anything
            return

        request = parse_request(raw, conn.address)

        conn.state = ConnectionState.DISPATCHING
        try:
            response = self.dispatch(request)
        except Exception as e:
            logger.exception(f"[{conn.id}] Handler error: {e}")
            response = error_response(HTTPStatus.INTERNAL_SERVER_ERROR, "Internal Server Error")

        write_response(response, conn)

