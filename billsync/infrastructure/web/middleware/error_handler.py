"""
Error handling for the HTTP layer.
Maps use case error codes to status codes and catches anything left uncaught.
"""

import logging
import traceback
from typing import Any, Dict, Optional, TypeVar

from fastapi import HTTPException, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from billsync.application.use_cases.base_use_case import UseCaseResult

logger = logging.getLogger(__name__)

T = TypeVar("T")

STATUS_BY_ERROR_CODE: Dict[str, int] = {
    "INVALID_INPUT": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "DUPLICATE_EPIC": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "EMPTY_SET": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "IMMUTABLE": status.HTTP_409_CONFLICT,
    "NOT_BILLABLE": status.HTTP_409_CONFLICT,
    "ALREADY_INVOICED": status.HTTP_409_CONFLICT,
    "INVALID_TRANSITION": status.HTTP_409_CONFLICT,
    "BUSINESS_RULE_VIOLATION": status.HTTP_409_CONFLICT,
    "CONFLICT": status.HTTP_409_CONFLICT,
    "NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "TIMEOUT": status.HTTP_504_GATEWAY_TIMEOUT,
    "TRACKER_ERROR": status.HTTP_502_BAD_GATEWAY,
    "PARTIAL_FAILURE": status.HTTP_207_MULTI_STATUS,
}


def status_for_error_code(error_code: Optional[str]) -> int:
    """HTTP status for a use case error code; unknown codes are server errors."""
    return STATUS_BY_ERROR_CODE.get(error_code or "", status.HTTP_500_INTERNAL_SERVER_ERROR)


def unwrap_result(result: UseCaseResult[T]) -> T:
    """
    Return the data of a successful result.

    Raises:
        HTTPException: carrying the error code, message and retryable flag
    """
    if result.success:
        return result.data

    detail: Dict[str, Any] = {
        "error_code": result.error_code or "UNKNOWN_ERROR",
        "message": result.error,
        "retryable": result.retryable,
    }
    failures = (result.metadata or {}).get("failures")
    if failures:
        detail["failures"] = failures

    raise HTTPException(status_code=status_for_error_code(result.error_code), detail=detail)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Middleware to handle all uncaught exceptions and format error responses.
    """

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            return await self.handle_exception(request, exc)

    async def handle_exception(self, request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            f"Unhandled exception: {type(exc).__name__}: {str(exc)}",
            exc_info=True,
            extra={
                "request_path": request.url.path,
                "request_method": request.method,
                "client_host": request.client.host if request.client else None
            }
        )

        content: Dict[str, Any] = {
            "detail": {
                "error_code": "UNKNOWN_ERROR",
                "message": "An unexpected error occurred",
                "retryable": False,
            }
        }

        settings = getattr(request.app.state, "settings", None)
        if settings is not None and settings.debug:
            content["debug"] = {
                "exception_type": type(exc).__name__,
                "traceback": traceback.format_exc().split("\n")
            }

        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)
