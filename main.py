"""
main.py
FastAPI application entry point.
Registers all routers, middleware, exception handlers and the
startup/shutdown lifecycle.
"""

import json
import logging
import os
import time
import uuid
from contextlib import asynccontextmanager
from datetime import timedelta
from logging import LogRecord
from pathlib import Path

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import AsyncSessionLocal, close_db, get_db, init_db
from config.redis_client import RedisCache, close_redis, init_redis
from config.settings import settings
from shared.utils.errors import register_exception_handlers

# Service routers
from services.admin.router import router as admin_router
from services.auth.router import router as auth_router
from services.location.router import router as location_router
from services.saint.router import router as saint_router
from services.schedule.router import router as schedule_router
from services.search.router import router as search_router


# ── Logging ──────────────────────────────────────────────────

class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: LogRecord) -> str:
        log_data = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "instance": os.getenv("INSTANCE_NAME", "unknown"),
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data)


def configure_logging() -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)


configure_logging()
logger = logging.getLogger(__name__)


# ── Bootstrap ─────────────────────────────────────────────────

async def bootstrap(db: AsyncSession) -> None:
    """
    One-off startup routine. Creates the default super admin when
    configured and missing; in development seeds a few saints, locations
    and schedules into an empty database. Safe to run on every start.
    """
    from services.schedule.engine import today
    from shared.models.models import AdminRole, AdminUser, Location, Saint, Schedule
    from shared.utils.security import hash_password

    if settings.DEFAULT_ADMIN_PASSWORD:
        existing = await db.scalar(
            select(AdminUser).where(AdminUser.role == AdminRole.SUPER_ADMIN).limit(1)
        )
        if not existing:
            db.add(AdminUser(
                username=settings.DEFAULT_ADMIN_USERNAME,
                email=settings.DEFAULT_ADMIN_EMAIL,
                password_hash=hash_password(settings.DEFAULT_ADMIN_PASSWORD),
                role=AdminRole.SUPER_ADMIN,
                is_active=True,
            ))
            logger.info(f"Created default super admin {settings.DEFAULT_ADMIN_USERNAME!r}")

    if settings.APP_ENV == "development":
        count = await db.scalar(select(func.count(Saint.id)))
        if not count:
            saints = [
                Saint(name="Acharya Vidyasagar", title="Acharya", spiritual_lineage="Digambar"),
                Saint(name="Muni Pramansagar", title="Muni", spiritual_lineage="Digambar"),
                Saint(name="Sadhvi Kanakprabha", title="Sadhvi", spiritual_lineage="Shwetambar"),
            ]
            locations = [
                Location(name="Shri Digambar Jain Mandir", address="Chandni Chowk", city="Delhi", state="Delhi"),
                Location(name="Jain Bhawan", address="C.G. Road", city="Ahmedabad", state="Gujarat"),
                Location(name="Shri Mahavir Jinalaya", address="Malabar Hill", city="Mumbai", state="Maharashtra"),
            ]
            db.add_all(saints + locations)
            await db.flush()

            start = today()
            db.add_all([
                Schedule(saint_id=saints[0].id, location_id=locations[0].id,
                         start_date=start - timedelta(days=3), end_date=start + timedelta(days=10),
                         purpose="Pravachan"),
                Schedule(saint_id=saints[0].id, location_id=locations[1].id,
                         start_date=start + timedelta(days=15), end_date=start + timedelta(days=20),
                         purpose="Vihar halt"),
                Schedule(saint_id=saints[1].id, location_id=locations[2].id,
                         start_date=start + timedelta(days=5), end_date=start + timedelta(days=125),
                         purpose="Chaturmas"),
            ])
            logger.info(f"Seeded {len(saints)} saints and {len(locations)} locations")

    await db.commit()


# ── Lifespan (startup/shutdown) ───────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle handler."""
    logger.info(f"Starting {settings.APP_NAME} API...")

    await init_db()
    logger.info("Database connected")

    await init_redis()
    logger.info("Redis connected")

    async with AsyncSessionLocal() as db:
        await bootstrap(db)

    logger.info(f"{settings.APP_NAME} v{settings.APP_VERSION} is ready")
    yield

    await close_redis()
    await close_db()
    logger.info("Server shutdown complete")


# ── App Factory ───────────────────────────────────────────────

def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="""
## Saint Directory API

Where saints are staying, and where they are headed next:
- **Saints**: profiles with the current stay and the next upcoming stays
- **Locations**: temples and centers hosting stays
- **Schedules**: date-ranged stays; a saint never has two overlapping stays
- **Search**: cities, typeahead suggestions, combined search
- **Admin**: admin accounts and the activity log

### Authentication
Admin endpoints require `Authorization: Bearer <token>`.
Get a token from `POST /auth/login`.

### Roles
- `admin`: manage saints, locations and schedules
- `super_admin`: everything above, plus admin accounts and the activity log
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Middleware (order matters: outermost first) ────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Process-Time"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        """Add unique X-Request-ID to every request for tracing."""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    @app.middleware("http")
    async def process_time_middleware(request: Request, call_next):
        """Track and expose request processing time."""
        start = time.perf_counter()
        response = await call_next(request)
        process_time = round((time.perf_counter() - start) * 1000, 2)
        response.headers["X-Process-Time"] = f"{process_time}ms"
        return response

    @app.middleware("http")
    async def rate_limit_middleware(request: Request, call_next):
        """
        Per-IP fixed window for unauthenticated requests.
        Authenticated admin traffic and health/metrics are not limited.
        Fails open when Redis is unavailable.
        """
        skip_paths = {"/health", "/docs", "/redoc", "/openapi.json", "/metrics"}
        if request.url.path in skip_paths:
            return await call_next(request)
        if request.headers.get("Authorization", "").startswith("Bearer "):
            return await call_next(request)

        try:
            from config.redis_client import redis_client
            if redis_client:
                client_ip = request.client.host if request.client else "unknown"
                allowed = await RedisCache(redis_client).check_rate_limit(
                    client_ip, settings.RATE_LIMIT_UNAUTH_PER_MINUTE
                )
                if not allowed:
                    logger.warning(f"Rate limit exceeded for IP {client_ip}")
                    return JSONResponse(
                        status_code=429,
                        content={"detail": "Rate limit exceeded. Please slow down.", "code": "RATE_LIMITED"},
                        headers={"Retry-After": "60"},
                    )
        except Exception as e:
            logger.error(f"Rate limit check failed: {e}")

        return await call_next(request)

    # ── Exception Handlers ─────────────────────────────────────
    register_exception_handlers(app)

    # ── Routes ─────────────────────────────────────────────────

    @app.get("/health", tags=["Health"], include_in_schema=False)
    async def health_check(db: AsyncSession = Depends(get_db)):
        from config.redis_client import redis_client

        checks = {"status": "ok", "version": settings.APP_VERSION}

        try:
            await db.execute(text("SELECT 1"))
            checks["database"] = "ok"
        except Exception:
            logger.error("Health check: database unavailable", exc_info=True)
            checks["database"] = "error"
            checks["status"] = "degraded"

        try:
            if not redis_client:
                raise RuntimeError("Redis not initialized")
            await redis_client.ping()
            checks["redis"] = "ok"
        except Exception:
            checks["redis"] = "error"
            checks["status"] = "degraded"

        status_code = 200 if checks["status"] == "ok" else 503
        return JSONResponse(content=checks, status_code=status_code)

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "name": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "docs": "/docs",
            "health": "/health",
        }

    app.include_router(auth_router)
    app.include_router(saint_router)
    app.include_router(location_router)
    app.include_router(schedule_router)
    app.include_router(search_router)
    app.include_router(admin_router)

    if settings.STORAGE_PROVIDER == "local":
        uploads = Path(settings.LOCAL_STORAGE_PATH)
        uploads.mkdir(parents=True, exist_ok=True)
        app.mount(settings.PUBLIC_UPLOADS_URL, StaticFiles(directory=uploads), name="uploads")

    # ── Prometheus Metrics ─────────────────────────────────────
    Instrumentator().instrument(app).expose(app, endpoint="/metrics", tags=["Monitoring"])

    return app


# ── Entry Point ───────────────────────────────────────────────

app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        workers=1 if settings.DEBUG else settings.WORKERS,
        log_level="debug" if settings.DEBUG else "info",
        access_log=True,
    )
