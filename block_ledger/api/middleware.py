"""
BlockLedger - API Middleware
==============================
Custom middleware for the FastAPI application.
"""

import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from block_ledger.logging_setup import get_logger

logger = get_logger("api.middleware")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Add unique request ID to each request.

    An incoming X-Request-ID header is reused so callers can correlate
    their own logs with ours.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        response = await call_next(request)

        response.headers["X-Request-ID"] = request_id
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Log all API requests with timing information.

    Logs:
    - Request method and path
    - Response status code
    - Request duration
    - Client IP
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()

        request_id = getattr(request.state, "request_id", "unknown")
        client_ip = request.client.host if request.client else "unknown"

        response = await call_next(request)

        duration = time.perf_counter() - start_time

        logger.info(
            f"[{request_id}] {request.method} {request.url.path} -> {response.status_code}",
            extra_data={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "duration_ms": round(duration * 1000, 2),
                "client": client_ip,
            }
        )

        response.headers["X-Process-Time"] = f"{duration:.6f}"
        return response


__all__ = [
    'RequestIDMiddleware',
    'RequestLoggingMiddleware',
]
