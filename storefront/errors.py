from enum import Enum
from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    UPSTREAM = "upstream"


class StorefrontError(Exception):
    kind: ErrorKind

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(StorefrontError):
    kind = ErrorKind.VALIDATION


class NotFoundError(StorefrontError):
    kind = ErrorKind.NOT_FOUND


class ConflictError(StorefrontError):
    """Domain guard violation, e.g. paying an order twice. Not retryable."""

    kind = ErrorKind.CONFLICT


class UpstreamServiceError(StorefrontError):
    kind = ErrorKind.UPSTREAM


def format_error(exc: Exception) -> str:
    if isinstance(exc, PydanticValidationError):
        parts = []
        for err in exc.errors():
            field = ".".join(str(p) for p in err.get("loc", ()))
            parts.append(f"{field}: {err.get('msg')}" if field else str(err.get("msg")))
        return "; ".join(parts)
    if isinstance(exc, StorefrontError):
        return exc.message
    if isinstance(exc, SQLAlchemyError):
        return "Database error"
    return str(exc)


class ActionResult(BaseModel):
    """Uniform `{success, message, data}` result returned by storefront actions."""

    success: bool
    message: str
    kind: ErrorKind | None = None
    data: Any = None

    @classmethod
    def ok(cls, message: str, data: Any = None) -> "ActionResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, exc: Exception) -> "ActionResult":
        if isinstance(exc, PydanticValidationError):
            kind = ErrorKind.VALIDATION
        elif isinstance(exc, StorefrontError):
            kind = exc.kind
        else:
            kind = None
        return cls(success=False, message=format_error(exc), kind=kind)
