"""
Paperfolio Middleware Package
"""

from paperfolio.middleware.logging import (
    ErrorLoggingMiddleware,
    RequestLoggingMiddleware,
    StructuredLoggingMiddleware,
)

__all__ = [
    "RequestLoggingMiddleware",
    "StructuredLoggingMiddleware",
    "ErrorLoggingMiddleware",
]
