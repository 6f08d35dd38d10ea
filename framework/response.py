"""
Uniform response envelope returned by every handler.

Handlers never raise past their own boundary; they return ``Result`` or
``PaginationResult`` and routers turn that into a JSON response whose HTTP
status is derived from the error code.
"""

import math
from enum import Enum
from typing import Any, Generic, List, Optional, TypeVar

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel
from sqlalchemy.exc import SQLAlchemyError

T = TypeVar("T")


class ErrorCode(str, Enum):
    """Stable error classification carried by failed results."""
    UNAUTHORIZED = "Unauthorized"
    FORBIDDEN = "Forbidden"
    INSUFFICIENT_PERMISSIONS = "InsufficientPermissions"
    NOT_FOUND = "NotFound"
    VALIDATION_FAILED = "ValidationFailed"
    CONFLICT = "Conflict"
    DUPLICATE_ENTRY = "DuplicateEntry"
    RESOURCE_CONFLICT = "ResourceConflict"
    INVALID_OPERATION = "InvalidOperation"
    INVALID_CREDENTIALS = "InvalidCredentials"
    DATABASE_ERROR = "DatabaseError"
    INTERNAL_ERROR = "InternalError"


_HTTP_STATUS = {
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.INSUFFICIENT_PERMISSIONS: 403,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.VALIDATION_FAILED: 400,
    ErrorCode.CONFLICT: 409,
    ErrorCode.DUPLICATE_ENTRY: 409,
    ErrorCode.RESOURCE_CONFLICT: 409,
    ErrorCode.INVALID_OPERATION: 400,
    ErrorCode.INVALID_CREDENTIALS: 401,
    ErrorCode.DATABASE_ERROR: 500,
    ErrorCode.INTERNAL_ERROR: 500,
}


def http_status_for(error_code: Optional[ErrorCode]) -> int:
    """HTTP status for an error code (500 for unknown)."""
    return _HTTP_STATUS.get(error_code, 500)


class CamelModel(BaseModel):
    """Base for DTOs serialized with camelCase keys."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class _Envelope(CamelModel):
    is_success: bool
    message: Optional[str] = None
    error_code: Optional[ErrorCode] = None
    errors: Optional[List[str]] = None

    @model_validator(mode="after")
    def _failure_has_code(self):
        if not self.is_success and self.error_code is None:
            raise ValueError("A failed result must carry an error_code")
        return self

    @classmethod
    def failure(
        cls,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        errors: Optional[List[str]] = None,
    ):
        return cls(is_success=False, message=message, error_code=error_code, errors=errors)

    @classmethod
    def from_exception(cls, exc: Exception, message: str):
        """Failure for an unexpected exception caught at a handler boundary."""
        if isinstance(exc, SQLAlchemyError):
            return cls.failure(message, ErrorCode.DATABASE_ERROR)
        return cls.failure(message, ErrorCode.INTERNAL_ERROR)

    @property
    def http_status(self) -> int:
        if self.is_success:
            return 200
        return http_status_for(self.error_code)

    def to_response(self) -> JSONResponse:
        return JSONResponse(
            status_code=self.http_status,
            content=jsonable_encoder(self, by_alias=True),
        )


class Result(_Envelope, Generic[T]):
    data: Optional[T] = None

    @classmethod
    def success(cls, data: Any = None, message: str = "Success"):
        return cls(is_success=True, data=data, message=message)


class PaginationResult(_Envelope, Generic[T]):
    items: List[T] = []
    page_number: int = 1
    page_size: int = 0
    total_items: int = 0
    total_pages: int = 0
    has_previous: bool = False
    has_next: bool = False

    @classmethod
    def success(
        cls,
        items: List[Any],
        page_number: int,
        page_size: int,
        total_count: int,
        message: str = "Success",
    ):
        total_pages = math.ceil(total_count / page_size) if page_size > 0 else 0
        return cls(
            is_success=True,
            message=message,
            items=list(items),
            page_number=page_number,
            page_size=page_size,
            total_items=total_count,
            total_pages=total_pages,
            has_previous=page_number > 1,
            has_next=page_number < total_pages,
        )
