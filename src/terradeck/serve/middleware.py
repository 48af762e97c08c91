"""HTTP middleware for the deployment server."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from terradeck.lib.logging_config import get_logger
from terradeck.serve.models import ProblemDetail

logger = get_logger(__name__)

PROBLEM_JSON = "application/problem+json"

CallNext = Callable[[Request], Awaitable[Response]]


def problem_response(
    status: int, title: str, detail: str | None = None, instance: str | None = None
) -> JSONResponse:
    """Build an RFC 7807 problem+json response."""
    problem = ProblemDetail(
        title=title, status=status, detail=detail, instance=instance
    )
    return JSONResponse(
        status_code=status,
        content=problem.model_dump(exclude_none=True),
        media_type=PROBLEM_JSON,
    )


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Convert unhandled exceptions into 500 problem documents."""

    def __init__(self, app: ASGIApp, debug: bool = False) -> None:
        """Initialize the middleware.

        Args:
            app: The wrapped ASGI application.
            debug: Include exception text in responses.
        """
        super().__init__(app)
        self.debug = debug

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        """Run the handler, converting exceptions to problem responses."""
        try:
            return await call_next(request)
        except Exception as exc:
            logger.exception(f"Unhandled error on {request.method} {request.url.path}")
            return problem_response(
                500,
                "Internal Server Error",
                detail=str(exc) if self.debug else None,
                instance=request.url.path,
            )


class LoggingMiddleware(BaseHTTPMiddleware):
    """Log each request with its status code and duration."""

    def __init__(self, app: ASGIApp, debug: bool = False) -> None:
        """Initialize the middleware."""
        super().__init__(app)
        self.debug = debug

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        """Log the request after the handler returns."""
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000

        message = (
            f"{request.method} {request.url.path} -> {response.status_code} "
            f"({elapsed_ms:.1f} ms)"
        )
        # Polling endpoints are hit every few seconds
        if request.method == "GET" and response.status_code < 400 and not self.debug:
            logger.debug(message)
        else:
            logger.info(message)
        return response
