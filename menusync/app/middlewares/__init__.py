from . import realtime_guard
from .logging import LoggingMiddleware
from .request_id import RequestIdMiddleware

__all__ = ["LoggingMiddleware", "RequestIdMiddleware", "realtime_guard"]
