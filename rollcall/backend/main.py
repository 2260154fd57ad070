# rollcall/backend/main.py
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import redis.asyncio as redis
import asyncpg
from apscheduler.schedulers.asyncio import AsyncIOScheduler as Scheduler
import logging

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from .config.config import settings
from .logging.logging_config import setup_logging
from .api import admin, attendance, auth, batches, leaves, reports, sessions
from .api.dependencies import get_clock
from .api.utilities.limiter import limiter
from .db.db_client import AsyncPostgresClient
from .services.errors import ServiceError
from .tasks.cron import finalize_finished_occurrences

from fastapi.middleware.cors import CORSMiddleware

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Creates the connection pools and the scheduler on startup and releases them on shutdown.
    """
    logger.info("Application starting...")

    postgres_pool = None
    redis_pool = None
    scheduler = None

    try:
        postgres_pool = await asyncpg.create_pool(
            dsn=settings.DATABASE_URL, min_size=5, max_size=20
        )
        redis_pool = redis.ConnectionPool.from_url(
            settings.APPLICATION_REDIS_URL, decode_responses=True
        )

        app.state.postgres_pool = postgres_pool
        app.state.redis_pool = redis_pool
        logger.info("PostgreSQL and Redis connection pools created.")

        db_client = AsyncPostgresClient(pool=postgres_pool)
        await db_client.create_schema()

        scheduler = Scheduler()
        scheduler.add_job(
            finalize_finished_occurrences, "interval", minutes=settings.LEAVE_SWEEP_INTERVAL_MINUTES,
            args=[db_client, get_clock()], id="finalize_finished_occurrences"
        )
        scheduler.start()

        app.state.scheduler = scheduler
        logger.info("Scheduled jobs started.")

    except Exception as e:
        logger.error(f"Error during startup: {e}", exc_info=True)
        app.state.postgres_pool = None
        app.state.redis_pool = None
        app.state.scheduler = None

    yield

    logger.info("Application shutting down...")
    if getattr(app.state, "scheduler", None):
        app.state.scheduler.shutdown()
        logger.info("Scheduler stopped.")
    if getattr(app.state, "postgres_pool", None):
        await app.state.postgres_pool.close()
        logger.info("PostgreSQL connection pool closed.")
    if getattr(app.state, "redis_pool", None):
        await app.state.redis_pool.disconnect()
        logger.info("Redis connection pool closed.")


app = FastAPI(
    title="Rollcall API",
    description="Attendance for recurring sessions: geofenced, device-bound check-ins and reports.",
    version="1.0.0",
    lifespan=lifespan
)
app.state.limiter = limiter

origins = [
   "*"
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"kind": exc.kind, "detail": exc.detail})


app.include_router(auth.router, prefix="/api/v1")
app.include_router(sessions.router, prefix="/api/v1")
app.include_router(batches.router, prefix="/api/v1")
app.include_router(attendance.router, prefix="/api/v1")
app.include_router(leaves.router, prefix="/api/v1")
app.include_router(reports.router, prefix="/api/v1")
app.include_router(admin.router, prefix="/api/v1")

@app.get("/health", tags=["System"])
def health_check():
    """Simple liveness probe."""
    return {"status": "ok", "message": "Rollcall API is running."}
