"""
Request tracing for the workday ops API.

Every response carries X-Request-ID (the caller's, when it sent one) and
X-Process-Time. One access-log line is written per request; its level follows
the outcome so failed report submissions and task transitions stand out.
"""
import os
import time
import uuid
import logging
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("workday-api.access")

REQUEST_ID_HEADER = "X-Request-ID"
QUIET_PATHS = {"/health"}
SLOW_REQUEST_MS = float(os.getenv("SLOW_REQUEST_MS", "1000"))


def access_log_level(status_code: int, duration_ms: float) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400 or duration_ms >= SLOW_REQUEST_MS:
        return logging.WARNING
    return logging.INFO


class RequestTimingMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        start_time = time.perf_counter()

        try:
            response: Response = await call_next(request)
        except Exception:
            # Unhandled errors still get an access line before propagating
            self._log(request, request_id, 500, start_time)
            raise

        duration_ms = self._log(request, request_id, response.status_code, start_time)
        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Process-Time"] = str(duration_ms)
        return response

    def _log(self, request: Request, request_id: str, status_code: int, start_time: float) -> float:
        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
        if request.url.path in QUIET_PATHS and status_code < 400:
            return duration_ms
        logger.log(
            access_log_level(status_code, duration_ms),
            f"{request.method} {request.url.path} -> {status_code}",
            extra={
                "http_method": request.method,
                "http_path": request.url.path,
                "http_status": status_code,
                "request_id": request_id,
                "duration_ms": duration_ms,
            },
        )
        return duration_ms
