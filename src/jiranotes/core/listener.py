"""
=============================================================================
CONNECTION LISTENER
=============================================================================

Binds a loopback TCP port, accepts connections and hands each one to its
own thread.

=============================================================================
OWNERSHIP
=============================================================================

    handle = start(18427, on_connection)     # bind + listen + accept thread
    ...
    stop(handle)                             # close the listening socket

start() returns an explicit ServerHandle; there is no module-level
"current server". Whoever calls start() owns the handle and is the only
one who can stop it.

    ┌──────────────┐  accept()   ┌────────────┐  Thread   ┌────────────────┐
    │ accept loop  │────────────►│ Connection │──────────►│ on_connection  │
    │ (1 thread)   │             └────────────┘           │ (1 per client) │
    └──────────────┘                                      └────────────────┘

The accept loop never runs connection work itself, so a slow client
never delays the next accept().

=============================================================================
SOCKET OPTIONS
=============================================================================

SO_REUSEADDR: A restart right after stop() must not fail with "Address
already in use" because of sockets lingering in TIME_WAIT.

SO_REUSEPORT is deliberately NOT set: with it, two processes could bind
the same port and a second instance would silently split traffic instead
of failing with BindError.

TCP_NODELAY: Responses are small and sent once; don't wait for Nagle.

=============================================================================
"""

import logging
import socket
import threading
from typing import Callable, Optional, Set, Tuple

from ..config import ServerConfig
from .connection import Connection


logger = logging.getLogger(__name__)


ConnectionHandler = Callable[[Connection], None]

# How often the accept loop wakes up to check whether it should stop
ACCEPT_POLL_INTERVAL = 1.0


class BindError(OSError):
    """The listening port could not be bound. Fatal to server start."""

    def __init__(self, host: str, port: int, cause: OSError):
        super().__init__(cause.errno, f"Cannot bind {host}:{port}: {cause.strerror or cause}")
        self.host = host
        self.port = port
        self.cause = cause


class ServerHandle:
    """
    A running listener.

    Returned by start(); pass it to stop(). Exposes the bound address
    (useful with port 0) and the set of connection threads in flight.
    """

    def __init__(self, sock: socket.socket, config: ServerConfig, on_connection: ConnectionHandler):
        self._socket = sock
        self._config = config
        self._on_connection = on_connection
        self._running = threading.Event()
        self._stopped = threading.Event()
        self._workers: Set[threading.Thread] = set()
        self._workers_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self.address: Tuple[str, int] = sock.getsockname()[:2]

    @property
    def port(self) -> int:
        return self.address[1]

    @property
    def is_running(self) -> bool:
        return self._running.is_set()

    @property
    def active_connections(self) -> int:
        with self._workers_lock:
            return len(self._workers)

    def wait_stopped(self, timeout: Optional[float] = None) -> bool:
        """Block until the accept loop has exited."""
        return self._stopped.wait(timeout)

    # =========================================================================
    # ACCEPT LOOP
    # =========================================================================

    def _serve(self):
        self._running.set()
        self._thread = threading.Thread(
            target=self._accept_loop,
            name=f"jiranotes-accept-{self.port}",
            daemon=True,
        )
        self._thread.start()

    def _accept_loop(self):
        try:
            while self._running.is_set():
                try:
                    client_socket, client_address = self._socket.accept()
                except socket.timeout:
                    continue  # Poll the running flag
                except OSError as e:
                    # The listening socket was closed by stop()
                    if self._running.is_set():
                        logger.error(f"Accept error: {e}")
                    break

                logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

                conn = Connection(
                    socket=client_socket,
                    address=client_address,
                    buffer_size=self._config.buffer_size,
                    max_request_size=self._config.max_request_size,
                    timeout=self._config.read_timeout,
                )
                self._spawn(conn)
        finally:
            self._running.clear()
            self._close_socket()
            self._stopped.set()

    def _spawn(self, conn: Connection):
        worker = threading.Thread(
            target=self._run_connection,
            args=(conn,),
            name=f"jiranotes-conn-{conn.id}",
            daemon=True,
        )
        with self._workers_lock:
            self._workers.add(worker)
        worker.start()

    def _run_connection(self, conn: Connection):
        try:
            self._on_connection(conn)
        except Exception as e:
            logger.exception(f"[{conn.id}] Unhandled connection error: {e}")
        finally:
            conn.close()
            with self._workers_lock:
                self._workers.discard(threading.current_thread())

    # =========================================================================
    # SHUTDOWN
    # =========================================================================

    def _shutdown(self, timeout: float):
        self._running.clear()

        # shutdown() wakes a thread blocked in accept() on Linux; elsewhere
        # the poll interval bounds the wait.
        try:
            self._socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self._close_socket()

        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)
        self._stopped.set()

    def _close_socket(self):
        try:
            self._socket.close()
        except OSError:
            pass


def _create_socket(host: str) -> socket.socket:
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
    sock.settimeout(ACCEPT_POLL_INTERVAL)
    return sock


def start(
    port: int,
    on_connection: ConnectionHandler,
    config: Optional[ServerConfig] = None,
) -> ServerHandle:
    """
    Bind <config.host>:<port> and start accepting in a background thread.

    Args:
        port: TCP port, 0 for an OS-assigned one.
        on_connection: Called on a fresh thread for every accepted
                       connection. The connection is closed after it
                       returns, whatever happens.
        config: Read sizes and timeouts; defaults to ServerConfig().

    Returns:
        The handle for the running listener.

    Raises:
        BindError: If the port is unavailable.
    """
    config = config or ServerConfig()
    host = config.host

    sock = _create_socket(host)
    try:
        sock.bind((host, port))
        sock.listen(config.backlog)
    except OSError as e:
        sock.close()
        logger.error(f"Failed to bind to {host}:{port}: {e}")
        raise BindError(host, port, e) from e

    handle = ServerHandle(sock, config, on_connection)
    handle._serve()

    logger.info(f"Listening on {handle.address[0]}:{handle.port}")
    return handle


def stop(handle: ServerHandle, timeout: float = 2.0) -> None:
    """
    Stop accepting connections.

    Connections already being handled are left to finish on their own
    threads; stop() does not wait for them. Idempotent.
    """
    if handle._stopped.is_set() and not handle.is_running:
        return
    handle._shutdown(timeout)
    logger.info(f"Listener on port {handle.port} stopped")
