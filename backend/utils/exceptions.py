from typing import Any, Optional
from fastapi import Request, HTTPException, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from backend.middleware.tracing import TRACE_ID_CTX_VAR


class NormalizationError(Exception):
    """Base class for errors raised by the item taxonomy services."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(NormalizationError):
    """Missing required field or malformed id; nothing was written."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(NormalizationError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(NormalizationError):
    """Operation blocked by existing references. `count` is the blocking count."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str, count: int = 0):
        super().__init__(message, details={"result_count": count})
        self.count = count


class PermissionDeniedError(NormalizationError):
    status_code = status.HTTP_403_FORBIDDEN


def status_to_code(status_code: int) -> str:
    mapping = {
        400: "BAD_REQUEST",
        401: "UNAUTHORIZED",
        403: "FORBIDDEN",
        404: "NOT_FOUND",
        405: "METHOD_NOT_ALLOWED",
        409: "CONFLICT",
        422: "UNPROCESSABLE_ENTITY",
        500: "INTERNAL_SERVER_ERROR",
    }
    return mapping.get(status_code, f"HTTP_{status_code}")


def _envelope(status_code: int, message: str, details: Any = None, headers: Optional[dict] = None) -> JSONResponse:
    body = {
        "success": False,
        "code": status_to_code(status_code),
        "message": message,
        "trace_id": TRACE_ID_CTX_VAR.get(),
    }
    if details is not None:
        body["details"] = details
    return JSONResponse(status_code=status_code, content=body, headers=headers)


async def handle_normalization_error(request: Request, exc: NormalizationError):
    return _envelope(exc.status_code, exc.message, exc.details)


async def handle_http_exception(request: Request, exc: HTTPException):
    detail: Any = exc.detail
    message = detail if isinstance(detail, str) else "HTTP error"
    return _envelope(exc.status_code, message, detail, getattr(exc, "headers", None))


async def handle_request_validation_error(request: Request, exc: RequestValidationError):
    return _envelope(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Request validation failed",
        jsonable_errors(exc),
    )


async def handle_unhandled_exception(request: Request, exc: Exception):
    return _envelope(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "An unexpected error occurred",
        str(exc),
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    out = []
    for err in exc.errors():
        out.append({
            "loc": [str(p) for p in err.get("loc", ())],
            "msg": err.get("msg"),
            "type": err.get("type"),
        })
    return out
