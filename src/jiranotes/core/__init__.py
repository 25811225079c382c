"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                            LISTENER                                  │
    │  • Binds 127.0.0.1:<port> with SO_REUSEADDR                          │
    │  • Accept loop on its own thread                                     │
    │  • One thread per accepted connection                                │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                           CONNECTION                                 │
    │  • Wraps the client socket for a single request/response             │
    │  • ACCEPTED → READING → DISPATCHING → WRITING → CLOSED               │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                         REQUEST READER                               │
    │  • Buffers recv() chunks until headers + declared body are present   │
    │  • Bounded by max_request_size                                       │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .connection import Connection, ConnectionState
from .listener import BindError, ServerHandle, start, stop
from .reader import ReaderState, RequestReader, RequestTooLarge

__all__ = [
    "Connection",
    "ConnectionState",
    "BindError",
    "ServerHandle",
    "start",
    "stop",
    "ReaderState",
    "RequestReader",
    "RequestTooLarge",
]
