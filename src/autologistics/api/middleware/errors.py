"""Error handling middleware for consistent JSON error responses.

All errors are converted to the same JSON structure:
- error: Error type/code
- message: Human-readable description
- detail: Optional additional information
- request_id: Correlation ID for debugging

Lifecycle errors carry their own ``code``; ``ERROR_STATUS_CODES`` maps each
code to the HTTP status returned for it.
"""

import logging
from collections.abc import Callable
from typing import Any

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from autologistics.api.middleware.request_id import get_request_id
from autologistics.services.errors import DeliveryRequestError

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES: dict[str, int] = {
    "validation_error": 400,
    "pricing_required": 422,
    "self_approval": 422,
    "precondition_failed": 422,
    "invalid_transition": 409,
    "concurrent_modification": 409,
    "actor_not_permitted": 403,
    "not_found": 404,
    "store_unavailable": 503,
}


class APIError(Exception):
    """Base exception for API-level errors with structured details."""

    def __init__(
        self,
        error: str,
        message: str,
        status_code: int = 400,
        detail: dict[str, Any] | None = None,
    ) -> None:
        """Initialize API error.

        Args:
            error: Machine-readable error code (e.g., "unauthorized").
            message: Human-readable error description.
            status_code: HTTP status code to return.
            detail: Optional additional details for debugging.
        """
        self.error = error
        self.message = message
        self.status_code = status_code
        self.detail = detail
        super().__init__(message)


class AuthenticationError(APIError):
    """Missing or malformed actor identity (401)."""

    def __init__(
        self, message: str = "Authentication required", detail: dict[str, Any] | None = None
    ) -> None:
        super().__init__(
            error="unauthorized",
            message=message,
            status_code=401,
            detail=detail,
        )


def build_error_response(
    error: str,
    message: str,
    status_code: int,
    detail: dict[str, Any] | None = None,
) -> JSONResponse:
    """Build a standardized error response."""
    body: dict[str, Any] = {
        "error": error,
        "message": message,
    }

    request_id = get_request_id()
    if request_id:
        body["request_id"] = request_id

    if detail:
        body["detail"] = detail

    return JSONResponse(status_code=status_code, content=body)


def delivery_error_response(exc: DeliveryRequestError) -> JSONResponse:
    """Translate a lifecycle error into the JSON envelope."""
    status_code = ERROR_STATUS_CODES.get(exc.code, 400)
    if status_code >= 500:
        logger.error("Lifecycle error %s: %s", exc.code, exc.message)
    return build_error_response(
        error=exc.code,
        message=exc.message,
        status_code=status_code,
        detail=exc.details or None,
    )


async def request_validation_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report malformed request bodies and parameters as 400 validation errors."""
    return build_error_response(
        error="validation_error",
        message="Request validation failed",
        status_code=400,
        detail={"errors": _json_safe_errors(exc.errors())},
    )


def _json_safe_errors(errors: Any) -> list[dict[str, Any]]:
    # pydantic may put the raised exception object in ``ctx``
    safe = []
    for error in errors:
        item = {k: v for k, v in error.items() if k not in ("ctx", "input", "url")}
        if "ctx" in error:
            item["ctx"] = {k: str(v) for k, v in error["ctx"].items()}
        safe.append(item)
    return safe


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Middleware that catches exceptions and returns consistent JSON errors.

    Handles:
    - DeliveryRequestError and subclasses: lifecycle errors by code
    - APIError and subclasses: API-level errors (authentication)
    - HTTPException: FastAPI's built-in HTTP errors
    - ValidationError: Pydantic validation failures
    - Generic exceptions: Unexpected errors (logged, returns 500)
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Response]
    ) -> Response:
        try:
            return await call_next(request)
        except DeliveryRequestError as exc:
            return delivery_error_response(exc)
        except APIError as exc:
            return build_error_response(
                error=exc.error,
                message=exc.message,
                status_code=exc.status_code,
                detail=exc.detail,
            )
        except HTTPException as exc:
            return build_error_response(
                error="http_error",
                message=str(exc.detail),
                status_code=exc.status_code,
            )
        except ValidationError as exc:
            return build_error_response(
                error="validation_error",
                message="Request validation failed",
                status_code=400,
                detail={"errors": _json_safe_errors(exc.errors())},
            )
        except Exception:
            logger.exception(
                "Unexpected error processing request: %s %s",
                request.method,
                request.url.path,
            )
            return build_error_response(
                error="internal_error",
                message="An internal error occurred",
                status_code=500,
            )
