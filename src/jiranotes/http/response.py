"""
=============================================================================
HTTP RESPONSE WRITER
=============================================================================

Response values built by handlers, and their serialization onto the wire.

=============================================================================
WIRE FORMAT
=============================================================================

    HTTP/1.1 200 OK\r\n                              ← status line
    Content-Type: application/json\r\n               ← handler headers, in order
    Access-Control-Allow-Origin: *\r\n               ┐
    Access-Control-Allow-Headers: Content-Type\r\n   ├ always added (CORS)
    Access-Control-Allow-Methods: GET, POST, OPTIONS\r\n ┘
    Content-Length: 11\r\n                           ← len(body), always computed
    Connection: close\r\n                            ← one request per connection
    \r\n
    {"ok":true}                                      ← body

The browser extension calls http://127.0.0.1:18427 from a page on another
origin, so every response, errors included, must carry the CORS headers
or the browser hides it from the extension.

=============================================================================
"""

import json
import logging
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any, Tuple, Union

from ..core.connection import Connection


logger = logging.getLogger(__name__)


Header = Tuple[str, str]

CORS_HEADERS: Tuple[Header, ...] = (
    ("Access-Control-Allow-Origin", "*"),
    ("Access-Control-Allow-Headers", "Content-Type"),
    ("Access-Control-Allow-Methods", "GET, POST, OPTIONS"),
)

# Computed by the writer; a handler-supplied value is dropped
_WRITER_OWNED = {"content-length", "connection"}

JSON_CONTENT_TYPE = "application/json"
TEXT_CONTENT_TYPE = "text/plain"


def status_text(status: Union[int, HTTPStatus]) -> str:
    """200 -> "200 OK"."""
    status = HTTPStatus(status)
    return f"{status.value} {status.phrase}"


@dataclass(frozen=True)
class Response:
    """
    An HTTP response.

    Attributes:
        status: "<code> <reason>", e.g. "404 Not Found".
        headers: Ordered (name, value) pairs; duplicates allowed.
        body: Response body bytes.
    """

    status: str = "200 OK"
    headers: Tuple[Header, ...] = field(default_factory=tuple)
    body: bytes = b""

    def __post_init__(self):
        object.__setattr__(self, "headers", tuple((str(k), str(v)) for k, v in self.headers))

    @property
    def status_code(self) -> int:
        return int(self.status.split(" ", 1)[0])

    def get_header(self, name: str, default: str = "") -> str:
        """First header value with this name (case-insensitive)."""
        name = name.lower()
        for key, value in self.headers:
            if key.lower() == name:
                return value
        return default

    def with_header(self, name: str, value: str) -> "Response":
        """Copy of this response with one more header appended."""
        return Response(self.status, self.headers + ((name, value),), self.body)


# =============================================================================
# SERIALIZATION
# =============================================================================

def wire_headers(response: Response) -> Tuple[Header, ...]:
    """The full header list as sent: handler headers, CORS, length, close."""
    headers = [(k, v) for k, v in response.headers if k.lower() not in _WRITER_OWNED]
    headers.extend(CORS_HEADERS)
    headers.append(("Content-Length", str(len(response.body))))
    headers.append(("Connection", "close"))
    return tuple(headers)


def serialize(response: Response) -> bytes:
    """Serialize to bytes ready for a single sendall()."""
    lines = [f"HTTP/1.1 {response.status}"]
    lines.extend(f"{name}: {value}" for name, value in wire_headers(response))
    head = "\r\n".join(lines) + "\r\n\r\n"
    return head.encode("utf-8") + response.body


def write_response(response: Response, conn: Connection) -> bool:
    """
    Send the response and close the connection.

    A failed send is not retried; the connection is closed either way.

    Returns:
        True if the response was sent.
    """
    try:
        return conn.send_response(serialize(response))
    finally:
        conn.close()


# =============================================================================
# CONVENIENCE CONSTRUCTORS
# =============================================================================
#
#     return ok_json({"ok": True})
#     return bad("missing params")
#     return not_found()
#
# =============================================================================

def json_bytes(data: Any) -> bytes:
    """Compact JSON, UTF-8 encoded."""
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def json_response(status: Union[int, HTTPStatus], data: Any) -> Response:
    return Response(
        status=status_text(status),
        headers=(("Content-Type", JSON_CONTENT_TYPE),),
        body=json_bytes(data),
    )


def ok_json(data: Any) -> Response:
    """200 with a JSON-serialized body."""
    return json_response(HTTPStatus.OK, data)


def ok_json_raw(body: Union[str, bytes]) -> Response:
    """200 with a body that already is JSON text (sent as-is)."""
    if isinstance(body, str):
        body = body.encode("utf-8")
    return Response(
        status=status_text(HTTPStatus.OK),
        headers=(("Content-Type", JSON_CONTENT_TYPE),),
        body=body,
    )


def bad(message: str) -> Response:
    """400 with {"error": message}."""
    return json_response(HTTPStatus.BAD_REQUEST, {"error": message})


def not_found() -> Response:
    """404 with a plain-text body."""
    return Response(
        status=status_text(HTTPStatus.NOT_FOUND),
        headers=(("Content-Type", TEXT_CONTENT_TYPE),),
        body=b"Not Found",
    )


def preflight() -> Response:
    """204 for a CORS preflight; the writer adds the CORS headers."""
    return Response(
        status=status_text(HTTPStatus.NO_CONTENT),
        headers=(("Content-Type", TEXT_CONTENT_TYPE),),
        body=b"",
    )


def error_response(status: Union[int, HTTPStatus], message: str) -> Response:
    """JSON error for failures outside the handlers (413, 500, ...)."""
    return json_response(status, {"error": message})
