"""API middleware components.

This module provides middleware for:
- Request ID tracking for request correlation
- Consistent error response formatting
- Actor identity from gateway headers
"""

from autologistics.api.middleware.auth import CurrentActor, require_actor
from autologistics.api.middleware.errors import (
    APIError,
    AuthenticationError,
    ErrorHandlerMiddleware,
    request_validation_handler,
)
from autologistics.api.middleware.request_id import RequestIDMiddleware, get_request_id

__all__ = [
    "APIError",
    "AuthenticationError",
    "CurrentActor",
    "ErrorHandlerMiddleware",
    "RequestIDMiddleware",
    "get_request_id",
    "request_validation_handler",
    "require_actor",
]
