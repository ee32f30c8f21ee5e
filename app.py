"""
Hostel complaint tracker API: students file complaints, admins triage and purge them.
"""
import shutil
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text
from starlette.exceptions import HTTPException as StarletteHTTPException

import config
from database.connection import init_database
from storage.local_storage import LocalMediaStorage
from services.retention_sweeper import RetentionSweeper
from core.exceptions import ComplaintTrackerError
from core.logger import logger
from middleware.security import (
    RateLimitMiddleware, SecurityHeadersMiddleware,
    setup_cors, setup_trusted_hosts
)
from routers.auth import router as auth_router
from routers.complaints import router as complaints_router
from routers.students import router as students_router


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan events for FastAPI app.
    Initialize database and media storage, start the retention sweeper.
    """
    logger.info("=" * 60)
    logger.info(f"Starting {config.APP_NAME}...")
    logger.info("=" * 60)

    if config.db is None:
        try:
            config.db = init_database(
                database_url=config.DATABASE_URL,
                pool_size=config.DB_POOL_SIZE,
                max_overflow=config.DB_MAX_OVERFLOW
            )
            logger.info("Database initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize database: {e}", exc_info=True)
            raise

    if config.media_storage is None:
        config.media_storage = LocalMediaStorage(config.UPLOADS_DIR, config.UPLOADS_URL_PREFIX)
    logger.info(f"Complaint images stored in {config.UPLOADS_DIR}")

    if config.RETENTION_SWEEP_ENABLED:
        config.sweeper = RetentionSweeper(
            database=config.db,
            storage=config.media_storage,
            retention_days=config.RETENTION_DAYS,
            interval_hours=config.RETENTION_SWEEP_INTERVAL_HOURS,
        )
        await config.sweeper.start()
    else:
        logger.info("Retention sweeper disabled")

    logger.info(f"Environment: {config.ENVIRONMENT}")
    logger.info("Server ready!")

    yield

    logger.info("Shutting down...")
    if config.sweeper:
        await config.sweeper.stop()
        config.sweeper = None
    if config.db:
        config.db.engine.dispose()
        logger.info("Database connections closed")


# Initialize FastAPI app
app = FastAPI(
    title=config.APP_NAME,
    description="Hostel complaint tracking API with role-based access and automatic retention",
    version=config.APP_VERSION,
    lifespan=lifespan
)

# Setup security middleware
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    RateLimitMiddleware,
    requests_per_minute=config.RATE_LIMIT_PER_MINUTE,
    requests_per_hour=config.RATE_LIMIT_PER_HOUR,
    auth_requests_per_minute=config.AUTH_RATE_LIMIT_PER_MINUTE,
)
setup_cors(app, config.CORS_ORIGINS)
if config.ENVIRONMENT == "production":
    setup_trusted_hosts(app, config.TRUSTED_HOSTS)


# Error responses use the {"message": ...} shape the front end reads
@app.exception_handler(ComplaintTrackerError)
async def complaint_tracker_error_handler(request: Request, exc: ComplaintTrackerError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ())[1:]) or "request"
    return JSONResponse(
        status_code=400,
        content={"message": f"Invalid {field}: {first.get('msg', 'invalid value')}"},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"message": "Server error"})


# Include routers
app.include_router(auth_router)
app.include_router(complaints_router)
app.include_router(students_router)

# Stored complaint images are public, keyed by generated filename
app.mount(
    f"/{config.UPLOADS_URL_PREFIX}",
    StaticFiles(directory=str(config.UPLOADS_DIR), check_dir=False),
    name="uploads",
)


@app.get("/")
async def root():
    """Root endpoint with API information. Public endpoint."""
    return {
        "message": config.APP_NAME,
        "version": config.APP_VERSION,
        "environment": config.ENVIRONMENT,
        "docs": "/docs",
    }


@app.get("/health")
def health_check():
    """Health check endpoint for monitoring. Public endpoint."""
    health_status = {
        "status": "healthy",
        "timestamp": time.time(),
        "checks": {}
    }

    try:
        if config.db is None:
            health_status["checks"]["database"] = {"status": "error", "error": "not initialized"}
            health_status["status"] = "degraded"
        else:
            with config.db.get_session() as db:
                db.execute(text("SELECT 1"))
            health_status["checks"]["database"] = {"status": "ok"}
    except Exception as e:
        health_status["checks"]["database"] = {"status": "error", "error": str(e)}
        health_status["status"] = "degraded"

    if config.sweeper:
        health_status["checks"]["retention_sweeper"] = {
            "running": config.sweeper.running,
            **config.sweeper.stats,
        }
    else:
        health_status["checks"]["retention_sweeper"] = {"running": False}

    try:
        disk_usage = shutil.disk_usage(config.UPLOADS_DIR)
        free_gb = disk_usage.free / (1024 ** 3)
        health_status["checks"]["disk"] = {
            "free_gb": round(free_gb, 2),
            "percent_free": round((disk_usage.free / disk_usage.total) * 100, 2)
        }
        if free_gb < 1:
            health_status["status"] = "degraded"
    except OSError as e:
        health_status["checks"]["disk"] = {"error": str(e)}

    return health_status


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
