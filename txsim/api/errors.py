"""Structured error responses for the txsim API.

Simulation failures are not HTTP errors: ``/api/v1/simulate`` always answers
200 with a ``SimulationResult``. This envelope covers everything else
(unknown routes, oversized bodies, unexpected exceptions):

    {
        "error": {
            "code": "PAYLOAD_TOO_LARGE",
            "message": "Human-readable description",
            "details": [...optional field-level errors...],
            "request_id": "abc-123"
        }
    }
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from txsim.core.errors import RPCError, RPCUnavailableError, TxsimError

logger = logging.getLogger(__name__)


# ── Error Codes ──────────────────────────────────────────────────────────────


class ErrorCode(str, Enum):
    """Standard error codes returned in the error envelope."""

    # 4xx client errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"
    BAD_REQUEST = "BAD_REQUEST"
    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"

    # 5xx server errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    DEPENDENCY_ERROR = "DEPENDENCY_ERROR"


# ── Error Schemas ────────────────────────────────────────────────────────────


class FieldError(BaseModel):
    field: str
    message: str
    type: str


class ErrorEnvelope(BaseModel):
    """Standard error response envelope."""

    code: str
    message: str
    details: list[FieldError] | list[dict[str, Any]] | None = None
    request_id: str | None = None


class ErrorResponse(BaseModel):
    error: ErrorEnvelope


_STATUS_TO_CODE: dict[int, ErrorCode] = {
    400: ErrorCode.BAD_REQUEST,
    404: ErrorCode.NOT_FOUND,
    405: ErrorCode.METHOD_NOT_ALLOWED,
    413: ErrorCode.PAYLOAD_TOO_LARGE,
    422: ErrorCode.VALIDATION_ERROR,
    500: ErrorCode.INTERNAL_ERROR,
    502: ErrorCode.DEPENDENCY_ERROR,
    503: ErrorCode.SERVICE_UNAVAILABLE,
}


def _get_request_id(request: Request) -> str | None:
    """Extract request ID from headers (set by RequestIDMiddleware)."""
    return request.headers.get("X-Request-ID") or getattr(request.state, "request_id", None)


def error_response(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    details: list[dict[str, Any]] | None = None,
) -> JSONResponse:
    body = ErrorResponse(
        error=ErrorEnvelope(
            code=code,
            message=message,
            details=details,
            request_id=_get_request_id(request),
        )
    )
    return JSONResponse(status_code=status_code, content=body.model_dump())


# ── Exception Handlers ──────────────────────────────────────────────────────


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = []
    for err in exc.errors():
        loc = err.get("loc", [])
        field = ".".join(str(part) for part in loc if part != "body")
        details.append(
            FieldError(
                field=field or "unknown",
                message=err.get("msg", "Invalid value"),
                type=err.get("type", "value_error"),
            ).model_dump()
        )
    return error_response(
        request,
        422,
        ErrorCode.VALIDATION_ERROR.value,
        f"Request validation failed: {len(details)} error(s)",
        details,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = _STATUS_TO_CODE.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
    message = str(exc.detail) if exc.detail else code.value
    return error_response(request, exc.status_code, code.value, message)


async def txsim_error_handler(request: Request, exc: TxsimError) -> JSONResponse:
    """Simulator errors that escaped a route keep their own code."""
    if isinstance(exc, RPCUnavailableError):
        status_code = 503
    elif isinstance(exc, RPCError):
        status_code = 502
    else:
        status_code = 400
    logger.warning("%s on %s %s: %s", exc.code.value, request.method, request.url.path, exc.message)
    return error_response(request, status_code, exc.code.value, exc.message)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log the full traceback, return a generic error."""
    logger.exception("Unhandled exception on %s %s: %s", request.method, request.url.path, exc)
    return error_response(
        request,
        500,
        ErrorCode.INTERNAL_ERROR.value,
        "An internal server error occurred. Please try again later.",
    )


def register_error_handlers(app: Any) -> None:
    """Register all structured error handlers on a FastAPI app."""
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(TxsimError, txsim_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
