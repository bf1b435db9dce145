"""Request middleware: request ID tracking and body size limits."""

from __future__ import annotations

import logging
import uuid
from typing import Callable

from fastapi import Request, Response, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from txsim.api.errors import ErrorCode, error_response

logger = logging.getLogger(__name__)

DEFAULT_MAX_REQUEST_SIZE = 10 * 1024 * 1024  # 10 MB


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Propagate or generate X-Request-ID for every request."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject bodies whose declared length exceeds ``max_size``."""

    def __init__(self, app: ASGIApp, max_size: int = DEFAULT_MAX_REQUEST_SIZE) -> None:
        super().__init__(app)
        self.max_size = max_size

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.method not in ("POST", "PUT", "PATCH"):
            return await call_next(request)

        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit():
            size = int(content_length)
            if size > self.max_size:
                logger.warning("Rejected %s body of %d bytes", request.url.path, size)
                return error_response(
                    request,
                    status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                    ErrorCode.PAYLOAD_TOO_LARGE.value,
                    f"Request body too large: {size} bytes (max: {self.max_size})",
                )

        return await call_next(request)
