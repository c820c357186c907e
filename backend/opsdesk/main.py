"""
Workday Ops API
FastAPI backend for daily reports, task tracking and KPI entries over async
PostgreSQL, with JWT auth.
"""
import os
import logging
import time
import collections
from contextlib import asynccontextmanager
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

load_dotenv()

from opsdesk.services.clock import WORKDAY_TIMEZONE
from opsdesk.services.errors import NotFoundError, PersistenceError, ValidationError
from opsdesk.services.logging_config import setup_logging
from opsdesk.services.middleware import RequestTimingMiddleware

_log_level = os.getenv("LOG_LEVEL", "INFO")
_json_logs = os.getenv("LOG_FORMAT", "json").lower() != "text"
setup_logging(level=_log_level, json_output=_json_logs)
logger = logging.getLogger("workday-api")

_PROCESS_START = time.monotonic()
APP_VERSION = "1.0.0"

for var in ["DATABASE_URL", "JWT_SECRET_KEY"]:
    if not os.getenv(var):
        logger.warning(f"MISSING env var: {var} — running in dev mode")


@asynccontextmanager
async def lifespan(app: FastAPI):
    from opsdesk.db import init_db, engine
    try:
        await init_db()
        logger.info("SQLAlchemy models synced.")
    except Exception as e:
        logger.warning(f"Table init warning (OK if using Alembic): {e}")
    yield
    await engine.dispose()


app = FastAPI(
    title="Workday Ops API",
    version=APP_VERSION,
    description="Daily reports, tasks and KPIs for field and training staff",
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# Domain error → HTTP mapping
# ---------------------------------------------------------------------------
@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=422, content=exc.to_dict())


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError):
    logger.error(
        f"Persistence failure in {exc.operation}: {exc.cause!r}",
        extra={"request_id": getattr(request.state, "request_id", None)},
    )
    return JSONResponse(status_code=503, content={"detail": PersistenceError.USER_MESSAGE})


# ---------------------------------------------------------------------------
# Rate Limiting Middleware
# ---------------------------------------------------------------------------
class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    In-memory sliding-window rate limiter.
    Idle buckets are swept once per window so the map tracks active clients only.
    Buckets:
      - /api/auth/login, /api/auth/register : 5 req/min per IP
      - everything else                     : 120 req/min per IP
    """
    def __init__(self, app):
        super().__init__(app)
        self._windows: dict = collections.defaultdict(collections.deque)
        self._last_sweep = time.monotonic()

    def _sweep(self, now: float) -> None:
        stale = [key for key, window in self._windows.items() if not window or now - window[-1] > 60]
        for key in stale:
            del self._windows[key]
        self._last_sweep = now

    def _get_limit(self, path: str) -> int:
        if path in ("/api/auth/login", "/api/auth/register"):
            return 5
        return 120

    async def dispatch(self, request: Request, call_next):
        ip = request.client.host if request.client else "unknown"
        path = request.url.path
        limit = self._get_limit(path)
        bucket = f"{ip}:{path if limit <= 10 else 'general'}"
        now = time.monotonic()
        if now - self._last_sweep > 60:
            self._sweep(now)
        window = self._windows[bucket]
        while window and now - window[0] > 60:
            window.popleft()
        if len(window) >= limit:
            return JSONResponse(
                status_code=429,
                content={"detail": "Too many requests. Please slow down."},
                headers={"Retry-After": "60"},
            )
        window.append(now)
        return await call_next(request)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds standard security headers to every response."""
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response


_cors_default = "http://localhost:3000,http://localhost:8000"
cors_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", _cors_default).split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", "X-Requested-With", "X-Request-ID"],
)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RateLimitMiddleware)
# Outermost, so the request id and timing wrap everything else
app.add_middleware(RequestTimingMiddleware)

# Routers
from opsdesk.api.auth_routes import router as auth_router
from opsdesk.api.report_routes import router as report_router
from opsdesk.api.task_routes import router as task_router
from opsdesk.api.kpi_routes import router as kpi_router
from opsdesk.api.lead_routes import router as lead_router

app.include_router(auth_router)
app.include_router(report_router)
app.include_router(task_router)
app.include_router(kpi_router)
app.include_router(lead_router)


@app.get("/health")
async def health_check():
    return {
        "status": "active",
        "version": APP_VERSION,
        "db_configured": bool(os.getenv("DATABASE_URL")),
        "timezone": WORKDAY_TIMEZONE,
        "uptime_seconds": round(time.monotonic() - _PROCESS_START, 1),
    }
