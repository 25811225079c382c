"""Middleware wrapped around the router."""

from .base import Middleware, MiddlewarePipeline, NextHandler
from .logging import AccessLogMiddleware, RequestLog

__all__ = [
    "Middleware",
    "MiddlewarePipeline",
    "NextHandler",
    "AccessLogMiddleware",
    "RequestLog",
]
