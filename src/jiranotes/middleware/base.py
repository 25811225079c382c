"""
=============================================================================
MIDDLEWARE FOUNDATION
=============================================================================

Middleware wraps the router to add cross-cutting behavior (access logging)
without touching the handlers.

    request ──► MW1 ──► MW2 ──► router.dispatch
    response ◄── MW1 ◄── MW2 ◄──┘

First added = outermost.

=============================================================================
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, List

from ..http.request import Request
from ..http.response import Response


logger = logging.getLogger(__name__)


# The next middleware or the final handler
NextHandler = Callable[[Request], Response]


class Middleware(ABC):
    """
    Base class for middleware.

        class Timing(Middleware):
            def __call__(self, request, next):
                started = time.time()
                response = next(request)
                return response.with_header("X-Elapsed", f"{time.time() - started:.3f}")

    Responses are immutable: post-processing returns a new Response.
    """

    @abstractmethod
    def __call__(self, request: Request, next: NextHandler) -> Response:
        """Handle request, usually by calling next(request)."""

    @property
    def name(self) -> str:
        return self.__class__.__name__


class MiddlewarePipeline:
    """Ordered middleware chain around a final handler."""

    def __init__(self):
        self._middleware: List[Middleware] = []

    def add(self, middleware: Middleware) -> "MiddlewarePipeline":
        """Append middleware (runs inside everything added before it)."""
        self._middleware.append(middleware)
        logger.debug(f"Added middleware: {middleware.name}")
        return self

    def wrap(self, handler: NextHandler) -> NextHandler:
        """
        Build the chain around handler.

        Wrapped in reverse so that [A, B, C] becomes A(B(C(handler))).
        """
        current = handler
        for middleware in reversed(self._middleware):
            current = self._bind(middleware, current)
        return current

    @staticmethod
    def _bind(middleware: Middleware, next_handler: NextHandler) -> NextHandler:
        def wrapped(request: Request) -> Response:
            return middleware(request, next_handler)
        return wrapped

    def __len__(self) -> int:
        return len(self._middleware)

    def __iter__(self):
        return iter(self._middleware)
