"""
=============================================================================
ACCESS LOGGING MIDDLEWARE
=============================================================================

One log line per dispatched request on the "jiranotes.access" logger.

    text:  127.0.0.1 - - [19/Oct/2026:10:00:00 +0000] "GET /load" 200 61 0.42ms
    json:  {"request_id": "1a2b3c4d", "method": "GET", "path": "/load", ...}

Configure it like any other logger:

    logging.getLogger("jiranotes.access").setLevel(logging.WARNING)

=============================================================================
"""

import json
import logging
import time
import uuid
from dataclasses import asdict, dataclass
from typing import Iterable, Optional

from ..http.request import Request
from ..http.response import Response
from .base import Middleware, NextHandler


logger = logging.getLogger("jiranotes.access")


@dataclass
class RequestLog:
    """Structured access log entry."""

    request_id: str
    method: str
    path: str
    ticket_id: str
    client_ip: str
    status_code: int
    content_length: int
    duration_ms: float
    timestamp: str

    def to_dict(self) -> dict:
        data = asdict(self)
        data["duration_ms"] = round(self.duration_ms, 2)
        return data

    def to_text(self) -> str:
        return (
            f'{self.client_ip or "-"} - - [{self.timestamp}] '
            f'"{self.method} {self.path}" {self.status_code} '
            f'{self.content_length} {self.duration_ms:.2f}ms'
        )


class AccessLogMiddleware(Middleware):
    """
    Request logging middleware.

    Args:
        log_format: "text" or "json".
        include_request_id: Add an X-Request-ID header to responses.
        log_level: Level used for access lines.
        skip_paths: Paths not logged (e.g. {"/ping"}, the extension
                    pings on every page load).
    """

    def __init__(
        self,
        log_format: str = "text",
        include_request_id: bool = False,
        log_level: int = logging.INFO,
        skip_paths: Optional[Iterable[str]] = None,
    ):
        self.log_format = log_format
        self.include_request_id = include_request_id
        self.log_level = log_level
        self.skip_paths = set(skip_paths or ())

    def __call__(self, request: Request, next: NextHandler) -> Response:
        request_id = str(uuid.uuid4())[:8]
        start_time = time.time()

        try:
            response = next(request)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"Request failed: {request.method} {request.path} "
                f"- {type(e).__name__}: {e} ({duration_ms:.2f}ms)"
            )
            raise

        duration_ms = (time.time() - start_time) * 1000

        if request.path not in self.skip_paths:
            entry = RequestLog(
                request_id=request_id,
                method=request.method,
                path=request.path,
                ticket_id=request.get_query("ticketId", "") or "",
                client_ip=request.client_address[0],
                status_code=response.status_code,
                content_length=len(response.body),
                duration_ms=duration_ms,
                timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
            )
            if self.log_format == "json":
                logger.log(self.log_level, json.dumps(entry.to_dict()))
            else:
                logger.log(self.log_level, entry.to_text())

        if self.include_request_id:
            response = response.with_header("X-Request-ID", request_id)

        return response
