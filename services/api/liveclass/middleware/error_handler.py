"""Global error handling middleware."""

import logging
import traceback

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from liveclass.exceptions import ConfigurationError, StorageError
from liveclass.middleware.logging import redact_push_tokens

logger = logging.getLogger(__name__)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Catch unhandled exceptions and return safe error responses."""

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except (ConfigurationError, StorageError) as exc:
            logger.error("Service unavailable: %s", redact_push_tokens(str(exc)))
            return JSONResponse(
                status_code=503,
                content={
                    "detail": "Service temporarily unavailable.",
                    "error_type": type(exc).__name__,
                },
            )
        except Exception as exc:
            logger.error(
                "Unhandled exception: %s\n%s",
                redact_push_tokens(str(exc)),
                redact_push_tokens(traceback.format_exc()),
            )
            return JSONResponse(
                status_code=500,
                content={
                    "detail": "An internal error occurred. Please try again later.",
                    "error_type": type(exc).__name__,
                },
            )
