from typing import List, Optional
from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError
from framework.logging.logger import get_logger
from framework.response import ErrorCode, Result, http_status_for
from framework.config import settings

logger = get_logger("exception_handler")


class BusinessException(Exception):
    """Raised at the HTTP edge (auth and role checks); handlers return Result instead."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INVALID_OPERATION,
        status_code: Optional[int] = None,
        errors: Optional[List[str]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code or http_status_for(error_code)
        self.errors = errors


def _envelope(status_code: int, message: str, error_code: ErrorCode, errors=None) -> JSONResponse:
    result = Result.failure(message, error_code, errors)
    response = result.to_response()
    response.status_code = status_code
    return response


def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler."""
    trace_id = getattr(request.state, "trace_id", "unknown")

    if isinstance(exc, BusinessException):
        logger.warning(f"Trace[{trace_id}] - BusinessError: {exc.message}")
        response = _envelope(exc.status_code, exc.message, exc.error_code, exc.errors)
        if exc.status_code == status.HTTP_401_UNAUTHORIZED:
            response.headers["WWW-Authenticate"] = "Bearer"
        return response

    if isinstance(exc, RequestValidationError):
        logger.error(f"Trace[{trace_id}] - ValidationError: {exc.errors()}")
        details = [
            f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg')}"
            for err in exc.errors()
        ]
        return _envelope(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "Invalid request parameters",
            ErrorCode.VALIDATION_FAILED,
            details,
        )

    if isinstance(exc, SQLAlchemyError):
        logger.critical(f"Trace[{trace_id}] - DatabaseError: {str(exc)}")
        return _envelope(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Service temporarily unavailable",
            ErrorCode.DATABASE_ERROR,
        )

    logger.opt(exception=exc).error(f"Trace[{trace_id}] - UncaughtException: {str(exc)}")

    return _envelope(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "System busy, please try again later",
        ErrorCode.INTERNAL_ERROR,
        [f"trace_id: {trace_id}"] if settings.DEBUG else None,
    )
