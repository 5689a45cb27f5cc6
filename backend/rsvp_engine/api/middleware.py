"""
Request middleware for logging, timing, and request ID tracking.
"""

import re
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
import structlog

from rsvp_engine.core.logging import get_logger

logger = get_logger(__name__)

_EVENT_PATH = re.compile(r"/events/([^/]+)")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware that:
    1. Reuses the gateway's X-Request-ID or assigns a new one
    2. Binds request, caller and event context to structlog, so every
       admission and waitlist log line of the request carries them
    3. Logs status code and duration, with a warning for 5xx responses
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:8]
        start_time = time.perf_counter()

        context = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
        }
        user_id = request.headers.get("X-User-ID")
        if user_id:
            context["user_id"] = user_id
        match = _EVENT_PATH.search(request.url.path)
        if match:
            context["event_id"] = match.group(1)

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(**context)

        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
            logger.error("request_failed", error=str(e), duration_ms=duration_ms)
            raise

        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
        log = logger.warning if response.status_code >= 500 else logger.info
        log("request_completed", status_code=response.status_code, duration_ms=duration_ms)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{duration_ms}ms"
        return response
