"""Error handler middleware with PII redaction."""

import logging
from typing import Callable

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from fedauth.config import settings
from fedauth.services.omniauth.session import ACCOUNT_ID_KEY

logger = logging.getLogger(__name__)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Middleware for handling uncaught exceptions.

    - Logs errors without query strings (they may carry provider codes)
    - Returns safe error messages to clients (no stack traces in production)
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Handle request and catch any uncaught exceptions."""
        try:
            return await call_next(request)

        except Exception as exc:
            account_id = None
            if "session" in request.scope:
                account_id = request.session.get(ACCOUNT_ID_KEY)

            logger.error(
                "Unhandled %s | method=%s | path=%s | account_id=%s",
                type(exc).__name__,
                request.method,
                request.url.path,
                account_id,
                exc_info=exc,
            )

            if settings.DEBUG:
                # Development: Show detailed error
                error_detail = {
                    "error": str(exc),
                    "type": type(exc).__name__,
                    "detail": "An error occurred processing your request",
                }
            else:
                # Production: Generic error message (never expose internals)
                error_detail = {
                    "error": "Internal server error",
                    "detail": "An unexpected error occurred. Please try again later.",
                }

            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=error_detail
            )
