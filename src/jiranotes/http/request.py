"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Turns the raw bytes of one request into a Request value.

=============================================================================
WHAT WE ACTUALLY NEED FROM A REQUEST
=============================================================================

    POST /save?ticketId=ABC-123 HTTP/1.1\r\n      ← request line
    Host: 127.0.0.1:18427\r\n                     ← headers (ignored)
    Content-Type: application/json\r\n
    Content-Length: 61\r\n
    \r\n                                          ← separator
    {"ticketId":"ABC-123","text":"hello",...}     ← body

Routing needs the method, the path and a couple of query parameters; the
save handler needs the body. Header values are not used by any route, so
they are not parsed into the Request (the reader already took
Content-Length from them).

=============================================================================
NEVER FAILS
=============================================================================

parse_request() has no error path. Input that cannot be understood (not
UTF-8, empty, no request line) yields the default request GET / with no
query and no body. The router has no "/" GET route, so such input ends up
as a 404 rather than an exception.

=============================================================================
"""

import logging
import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional, Tuple
from urllib.parse import unquote


logger = logging.getLogger(__name__)


HEADER_SEPARATOR = b"\r\n\r\n"

# A '%' not followed by two hex digits makes the whole value undecodable
_BAD_PERCENT = re.compile(r"%(?![0-9A-Fa-f]{2})")


def _frozen(mapping: Mapping[str, str]) -> Mapping[str, str]:
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True)
class Request:
    """
    A parsed HTTP request.

    Attributes:
        method: Uppercase HTTP verb ("GET", "POST", "OPTIONS", ...).
        path: Percent-decoded path, without the query string.
        query: Decoded query parameters; the last value wins on duplicates.
        body: Bytes after the header separator, or None if there was no
              separator at all.
        client_address: (ip, port) of the peer, for logging only.
    """

    method: str = "GET"
    path: str = "/"
    query: Mapping[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None
    client_address: Tuple[str, int] = field(default=("", 0), compare=False)

    def __post_init__(self):
        # Read-only view so handlers cannot mutate a shared request
        object.__setattr__(self, "query", _frozen(self.query))

    @property
    def body_text(self) -> Optional[str]:
        """The body decoded as UTF-8, or None if absent or not UTF-8."""
        if self.body is None:
            return None
        try:
            return self.body.decode("utf-8")
        except UnicodeDecodeError:
            return None

    def get_query(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.query.get(name, default)


def default_request(client_address: Tuple[str, int] = ("", 0)) -> Request:
    """The request used when the input cannot be parsed."""
    return Request(method="GET", path="/", query={}, body=None, client_address=client_address)


def parse_request(data: bytes, client_address: Tuple[str, int] = ("", 0)) -> Request:
    """
    Parse raw request bytes.

    =====================================================================
    ALGORITHM
    =====================================================================

    1. Split on the first \\r\\n\\r\\n into head and body
    2. First line of the head is the request line
    3. Split the request line on whitespace: METHOD TARGET [VERSION]
    4. Split TARGET on the first '?' into path and query string
    5. Parse the query string (see parse_query)

    =====================================================================

    Never raises; see the module docstring for the fallback.
    """
    head, sep, rest = data.partition(HEADER_SEPARATOR)
    body = rest if sep else None

    try:
        head_text = head.decode("utf-8")
    except UnicodeDecodeError:
        logger.debug("Request head is not UTF-8, using default request")
        return default_request(client_address)

    request_line = head_text.split("\r\n", 1)[0]
    parts = request_line.split()
    if not parts:
        logger.debug("Empty request line, using default request")
        return default_request(client_address)

    method = parts[0].upper()
    target = parts[1] if len(parts) > 1 else "/"

    raw_path, _, query_string = target.partition("?")
    return Request(
        method=method,
        path=percent_decode(raw_path) or "/",
        query=parse_query(query_string),
        body=body,
        client_address=client_address,
    )


def parse_query(query_string: str) -> dict:
    """
    Parse "a=1&b=x%20y" into {"a": "1", "b": "x y"}.

    - Pairs are split on '&', then on the first '='.
    - Only values are percent-decoded; keys are taken verbatim.
    - '+' is NOT treated as a space.
    - Pairs without '=' and pairs with an empty key or value are dropped.
    - Duplicate keys: the last one wins.
    """
    query = {}
    for pair in query_string.split("&"):
        key, sep, value = pair.partition("=")
        if not sep or not key or not value:
            continue
        query[key] = percent_decode(value)
    return query


def percent_decode(value: str) -> str:
    """
    Decode %XX escapes as UTF-8.

    A malformed escape or an invalid UTF-8 sequence returns the value
    unchanged instead of raising or inserting replacement characters.
    """
    if not _decodable(value):
        return value
    try:
        return unquote(value, errors="strict")
    except UnicodeDecodeError:
        return value


def _decodable(value: str) -> bool:
    return _BAD_PERCENT.search(value) is None
