"""
=============================================================================
HTTP LAYER
=============================================================================

    request.py   raw bytes → Request   (never fails, falls back to GET /)
    router.py    Request → Response    (OPTIONS preflight, exact match, 404)
    response.py  Response → raw bytes  (CORS, Content-Length, Connection: close)

=============================================================================
"""

from .request import Request, parse_request, parse_query, percent_decode, default_request
from .response import (
    Response,
    CORS_HEADERS,
    serialize,
    write_response,
    status_text,
    ok_json,
    ok_json_raw,
    bad,
    not_found,
    preflight,
    error_response,
)
from .router import Router, Route, Handler

__all__ = [
    # Parsing
    "Request",
    "parse_request",
    "parse_query",
    "percent_decode",
    "default_request",

    # Responses
    "Response",
    "CORS_HEADERS",
    "serialize",
    "write_response",
    "status_text",
    "ok_json",
    "ok_json_raw",
    "bad",
    "not_found",
    "preflight",
    "error_response",

    # Routing
    "Router",
    "Route",
    "Handler",
]
