"""
=============================================================================
REQUEST READER
=============================================================================

Accumulates bytes from a TCP stream until one complete HTTP request is
available.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL
=============================================================================

A browser that sends

    POST /save?ticketId=ABC-123 HTTP/1.1\r\n
    Content-Length: 61\r\n
    \r\n
    {"ticketId":"ABC-123","text":"hello","updatedAt":"..."}

may have it arrive as one recv() or as several, split anywhere. The body
in particular often arrives in a later segment than the headers. We
buffer and look for the protocol delimiters ourselves.

=============================================================================
STATE MACHINE
=============================================================================

    ┌──────────────────┐   \r\n\r\n seen,        ┌──────────────────┐
    │ AWAITING_HEADERS │──  Content-Length > 0 ─►│  AWAITING_BODY   │
    └────────┬─────────┘                         └────────┬─────────┘
             │ \r\n\r\n seen,                             │ body bytes
             │ no body declared                           │ >= length
             ▼                                            ▼
    ┌─────────────────────────────────────────────────────────────────┐
    │                            COMPLETE                             │
    └─────────────────────────────────────────────────────────────────┘

The reader never touches a socket; Connection feeds it chunks. That keeps
the buffering logic testable with plain byte strings.

=============================================================================
"""

from enum import Enum
from typing import Optional


HEADER_TERMINATOR = b"\r\n\r\n"


class RequestTooLarge(ValueError):
    """Raised when the buffered request exceeds the configured maximum."""

    def __init__(self, size: int, limit: int):
        super().__init__(f"Request too large: {size} bytes (limit {limit})")
        self.size = size
        self.limit = limit


class ReaderState(Enum):
    AWAITING_HEADERS = "awaiting_headers"
    AWAITING_BODY = "awaiting_body"
    COMPLETE = "complete"


class RequestReader:
    """
    Incremental buffer for a single HTTP request.

    Usage:
        reader = RequestReader(max_request_size=1024 * 1024)
        while not reader.is_complete:
            chunk = sock.recv(65536)
            if not chunk:
                break
            reader.feed(chunk)
        raw = reader.message()
    """

    def __init__(self, max_request_size: int = 1024 * 1024):
        self.max_request_size = max_request_size
        self.state = ReaderState.AWAITING_HEADERS
        self._buffer = bytearray()
        self._header_end: Optional[int] = None
        self._content_length = 0

    @property
    def is_complete(self) -> bool:
        return self.state is ReaderState.COMPLETE

    @property
    def buffered(self) -> int:
        """Number of bytes received so far."""
        return len(self._buffer)

    @property
    def content_length(self) -> int:
        """Declared body length (0 until headers are complete)."""
        return self._content_length

    def feed(self, chunk: bytes) -> ReaderState:
        """
        Append a chunk and advance the state machine.

        Bytes fed after COMPLETE are ignored: a connection carries exactly
        one request.

        Raises:
            RequestTooLarge: If the buffer grows past max_request_size.
        """
        if self.is_complete or not chunk:
            return self.state

        self._buffer += chunk
        if len(self._buffer) > self.max_request_size:
            raise RequestTooLarge(len(self._buffer), self.max_request_size)

        if self.state is ReaderState.AWAITING_HEADERS:
            # Search only the tail that could contain a new terminator
            start = max(0, len(self._buffer) - len(chunk) - len(HEADER_TERMINATOR) + 1)
            header_end = self._buffer.find(HEADER_TERMINATOR, start)
            if header_end == -1:
                return self.state

            self._header_end = header_end
            self._content_length = parse_content_length(bytes(self._buffer[:header_end]))

            # A declared body that can never fit is rejected up front
            total = self._body_start + self._content_length
            if total > self.max_request_size:
                raise RequestTooLarge(total, self.max_request_size)

            self.state = ReaderState.AWAITING_BODY

        if len(self._buffer) - self._body_start >= self._content_length:
            self.state = ReaderState.COMPLETE

        return self.state

    def message(self) -> bytes:
        """
        Return the request bytes.

        When COMPLETE this is headers + declared body. Without a
        Content-Length, whatever arrived together with the headers is kept
        as the body. Before COMPLETE (peer closed early) it is everything
        buffered so far, which the parser handles through its fallback rules.
        """
        if self._header_end is None or self._content_length == 0:
            return bytes(self._buffer)
        return bytes(self._buffer[:self._body_start + self._content_length])

    @property
    def _body_start(self) -> int:
        return self._header_end + len(HEADER_TERMINATOR)


def parse_content_length(headers: bytes) -> int:
    """
    Find Content-Length in a raw header block.

    A plain line scan, because the reader needs this before the request
    is parsed. Missing, negative or non-numeric values count as 0.
    """
    text = headers.decode("latin-1").lower()
    for line in text.split("\r\n")[1:]:
        if line.startswith("content-length:"):
            try:
                value = int(line.split(":", 1)[1].strip())
            except ValueError:
                return 0
            return max(value, 0)
    return 0
