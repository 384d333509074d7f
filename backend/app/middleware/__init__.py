"""HTTP middleware: request ids, request/response logging and request metrics"""
from app.middleware.logging_middleware import RequestLoggingMiddleware

__all__ = ["RequestLoggingMiddleware"]
