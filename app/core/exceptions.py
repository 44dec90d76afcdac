from typing import Any

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse

from app.core.logging import get_logger

log = get_logger(__name__)


class AppError(Exception):
    """Base application error with consistent schema."""

    def __init__(
        self,
        message: str,
        code: str = "ERROR",
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class UnauthorizedError(AppError):
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, code="UNAUTHORIZED", status_code=status.HTTP_401_UNAUTHORIZED)


class ForbiddenError(AppError):
    def __init__(self, message: str = "Forbidden"):
        super().__init__(message, code="FORBIDDEN", status_code=status.HTTP_403_FORBIDDEN)


class NotFoundError(AppError):
    def __init__(self, message: str = "Not found"):
        super().__init__(message, code="NOT_FOUND", status_code=status.HTTP_404_NOT_FOUND)


class ConflictError(AppError):
    def __init__(self, message: str = "Conflict", details: dict[str, Any] | None = None):
        super().__init__(message, code="CONFLICT", status_code=status.HTTP_409_CONFLICT, details=details)


class BadRequestError(AppError):
    def __init__(self, message: str = "Bad request", details: dict[str, Any] | None = None):
        super().__init__(message, code="BAD_REQUEST", status_code=status.HTTP_400_BAD_REQUEST, details=details)


class InsufficientBalanceError(AppError):
    """Withdrawal exceeds the user's available balance. A validation error, not a fault."""

    def __init__(self, message: str = "Insufficient balance", details: dict[str, Any] | None = None):
        super().__init__(
            message,
            code="INSUFFICIENT_BALANCE",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details,
        )


def _envelope(request: Request, message: str, code: str, details: dict[str, Any]) -> dict[str, Any]:
    body: dict[str, Any] = {"error": {"message": message, "code": code, "details": details}}
    if hasattr(request.state, "request_id"):
        body["request_id"] = request.state.request_id
    return body


def error_response(request: Request, exc: AppError) -> ORJSONResponse:
    return ORJSONResponse(
        status_code=exc.status_code,
        content=_envelope(request, exc.message, exc.code, exc.details),
    )


async def app_exception_handler(request: Request, exc: AppError) -> ORJSONResponse:
    if exc.status_code >= 500:
        log.error("app_error", code=exc.code, message=exc.message)
    return error_response(request, exc)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> ORJSONResponse:
    return ORJSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=_envelope(request, "Validation error", "VALIDATION_ERROR", {"errors": exc.errors()}),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> ORJSONResponse:
    log.exception("unhandled_exception", exc_info=exc, path=request.url.path)
    return ORJSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_envelope(request, "Internal server error", "INTERNAL_ERROR", {}),
    )
