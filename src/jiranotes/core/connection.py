"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

Wraps one accepted client socket for exactly one request/response cycle.

=============================================================================
CONNECTION LIFECYCLE
=============================================================================

    ┌──────────┐   ┌─────────┐   ┌─────────────┐   ┌─────────┐   ┌────────┐
    │ ACCEPTED │──►│ READING │──►│ DISPATCHING │──►│ WRITING │──►│ CLOSED │
    └──────────┘   └─────────┘   └─────────────┘   └─────────┘   └────────┘
         │              │               │                │            ▲
         └──────────────┴───────────────┴────────────────┴────────────┘
                          any error closes immediately

There is no keep-alive: the response carries "Connection: close" and the
socket is closed right after it is sent.

=============================================================================
"""

import logging
import socket
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .reader import RequestReader


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    ACCEPTED = "accepted"        # Just accepted, nothing read yet
    READING = "reading"          # Receiving request bytes
    DISPATCHING = "dispatching"  # Request parsed, handler running
    WRITING = "writing"          # Sending the response
    CLOSED = "closed"            # Socket released


@dataclass
class Connection:
    """
    A client connection.

    Attributes:
        socket: The accepted client socket.
        address: Client's (ip, port) tuple.
        id: Short identifier used in log lines.
        state: Current lifecycle state.
        buffer_size: Upper bound for one recv() call.
        max_request_size: Upper bound for the whole request.
        timeout: Socket timeout in seconds, None for blocking reads.
    """

    socket: socket.socket
    address: tuple

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.ACCEPTED
    created_at: float = field(default_factory=time.time)

    buffer_size: int = 64 * 1024
    max_request_size: int = 1024 * 1024
    timeout: Optional[float] = None

    def __post_init__(self):
        # settimeout(None) puts the socket in blocking mode
        self.socket.settimeout(self.timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0] if self.address else ""

    @property
    def age(self) -> float:
        """Seconds since the connection was accepted."""
        return time.time() - self.created_at

    @property
    def is_closed(self) -> bool:
        return self.state is ConnectionState.CLOSED

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self) -> Optional[bytes]:
        """
        Read one HTTP request from the socket.

        Loops over recv() until the RequestReader reports COMPLETE or the
        peer stops sending.

        Returns:
            The request bytes, possibly partial if the peer closed early,
            or None if the peer closed without sending anything.

        Raises:
            RequestTooLarge: If the request exceeds max_request_size.
            socket.timeout: If a read timeout is configured and expires.
        """
        self.state = ConnectionState.READING
        reader = RequestReader(max_request_size=self.max_request_size)

        while not reader.is_complete:
            chunk = self._recv()
            if not chunk:
                break  # Peer closed (or reset) mid-request
            reader.feed(chunk)

        if reader.buffered == 0:
            return None

        return reader.message()

    def _recv(self) -> bytes:
        try:
            return self.socket.recv(self.buffer_size)
        except (ConnectionResetError, BrokenPipeError):
            return b""

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_response(self, data: bytes) -> bool:
        """
        Send a complete response with a single sendall().

        Returns:
            True if the bytes were handed to the OS, False if the send
            failed. Failures are not retried.
        """
        self.state = ConnectionState.WRITING
        try:
            self.socket.sendall(data)
            return True
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close the connection.

        shutdown(SHUT_WR) sends FIN so the client sees end-of-response
        before the descriptor is released. Safe to call more than once.
        """
        if self.state is ConnectionState.CLOSED:
            return

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # Peer already gone

        # Drain what the client still sends so close() does not turn into
        # a RST that discards the response before the client reads it.
        try:
            self.socket.settimeout(0.5)
            drained = 0
            while drained < self.max_request_size:
                data = self.socket.recv(self.buffer_size)
                if not data:
                    break
                drained += len(data)
        except OSError:
            pass

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.age * 1000:.1f}ms")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
