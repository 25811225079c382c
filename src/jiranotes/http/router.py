"""
=============================================================================
ROUTER / DISPATCHER
=============================================================================

Maps (method, path) to a handler.

=============================================================================
MATCHING RULES
=============================================================================

    1. OPTIONS on ANY path      → 204 preflight, before anything else
    2. exact (METHOD, path)     → the registered handler
    3. anything else            → 404 "Not Found"

There are no path parameters, no wildcards and no 405: the extension only
ever calls four literal endpoints, and a wrong method is simply an unknown
route.

=============================================================================
REGISTRATION
=============================================================================

    router = Router()

    @router.get("/ping")
    def ping(request):
        return ok_json({"ok": True})

    router.add_route("POST", "/save", save_handler)

=============================================================================
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from .request import Request
from .response import Response, not_found, preflight


# A handler takes the parsed request and returns the response to send
Handler = Callable[[Request], Response]


@dataclass(frozen=True)
class Route:
    method: str
    path: str
    handler: Handler
    name: Optional[str] = None


class Router:
    """Exact-match routing table."""

    def __init__(self):
        self._routes: Dict[Tuple[str, str], Route] = {}

    def add_route(self, method: str, path: str, handler: Handler, name: Optional[str] = None) -> Route:
        """
        Register a handler for an exact (method, path) pair.

        Registering the same pair twice replaces the earlier handler.
        OPTIONS routes are accepted but never reached: preflight always
        wins.
        """
        route = Route(method=method.upper(), path=path, handler=handler, name=name or getattr(handler, "__name__", None))
        self._routes[(route.method, route.path)] = route
        return route

    def match(self, method: str, path: str) -> Optional[Route]:
        return self._routes.get((method.upper(), path))

    @property
    def routes(self) -> List[Route]:
        return list(self._routes.values())

    def dispatch(self, request: Request) -> Response:
        """
        Route a request to its handler.

        Pure with respect to the routing table; any side effects belong
        to the handlers.
        """
        if request.method == "OPTIONS":
            return preflight()

        route = self.match(request.method, request.path)
        if route is None:
            return not_found()

        return route.handler(request)

    # Routers are used as the final handler of the middleware pipeline
    __call__ = dispatch

    # =========================================================================
    # DECORATORS
    # =========================================================================

    def route(self, method: str, path: str, name: Optional[str] = None) -> Callable[[Handler], Handler]:
        def decorator(handler: Handler) -> Handler:
            self.add_route(method, path, handler, name=name)
            return handler
        return decorator

    def get(self, path: str, name: Optional[str] = None) -> Callable[[Handler], Handler]:
        """Register a GET route."""
        return self.route("GET", path, name=name)

    def post(self, path: str, name: Optional[str] = None) -> Callable[[Handler], Handler]:
        """Register a POST route."""
        return self.route("POST", path, name=name)
