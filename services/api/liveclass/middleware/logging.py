"""Structured logging middleware with push-token redaction."""

import logging
import re
import time
import uuid
from typing import Callable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

# APNs device and activity tokens are long hex strings
PUSH_TOKEN_PATTERN = re.compile(r"\b[0-9a-fA-F]{32,}\b")


def redact_push_tokens(text: str) -> str:
    """Replace push tokens in ``text``, keeping an 8-character prefix for correlation."""
    return PUSH_TOKEN_PATTERN.sub(lambda m: m.group(0)[:8] + "[REDACTED]", text)


def setup_logging(debug: bool = False) -> None:
    """Configure structlog for JSON output."""
    log_level = logging.DEBUG if debug else logging.INFO

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        level=log_level,
    )
    # httpx logs every request URL, which embeds the device token
    logging.getLogger("httpx").setLevel(logging.WARNING)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Log each request with a request id; push tokens never reach the log."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())[:8]
        start_time = time.time()
        path = redact_push_tokens(str(request.url.path))

        logger = structlog.get_logger()
        structlog.contextvars.bind_contextvars(request_id=request_id)
        try:
            await logger.ainfo(
                "request_started",
                method=request.method,
                path=path,
                client=request.client.host if request.client else "unknown",
            )

            response = await call_next(request)

            await logger.ainfo(
                "request_completed",
                method=request.method,
                path=path,
                status_code=response.status_code,
                duration_ms=round((time.time() - start_time) * 1000, 2),
            )
        finally:
            structlog.contextvars.unbind_contextvars("request_id")

        response.headers["X-Request-ID"] = request_id
        return response
