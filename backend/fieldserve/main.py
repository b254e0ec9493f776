"""FastAPI application for the field-service dispatch backend."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from fieldserve.config import get_settings
from fieldserve.database import check_db_ready
from fieldserve.dependencies import build_mirror_store
from fieldserve.errors import DispatchError
from fieldserve.routers import (
    admin_router,
    customers_router,
    health_router,
    requests_router,
    workers_router,
)
from fieldserve.tasks.scheduler import setup_scheduler, shutdown_scheduler

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

settings = get_settings()

# Rate limiter
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[f"{settings.rate_limit_per_minute}/minute"],
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    logger.info("Starting dispatch backend...")

    # Verify database is ready
    try:
        await check_db_ready()
        logger.info("Database ready")
    except Exception as e:
        logger.error(f"Database not ready: {e}")
        raise

    mirror = build_mirror_store()
    app.state.mirror_store = mirror
    if not mirror.enabled:
        logger.warning("Mirror store disabled; reads fall back to the database only")

    if settings.sync_schedule_enabled and mirror.enabled:
        setup_scheduler(mirror)

    yield

    # Shutdown
    shutdown_scheduler()
    logger.info("Dispatch backend shut down")


# Create FastAPI app
app = FastAPI(
    title="Field Service Dispatch API",
    description="Dispatch, claim and track electrician service requests",
    version="0.1.0",
    lifespan=lifespan,
)

# Add rate limiter
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DispatchError)
async def dispatch_error_handler(request: Request, exc: DispatchError):
    """Render domain errors as ``{"success": false, "error": ...}``."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.detail},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies and query parameters are 400s like any missing field."""
    errors = exc.errors()
    message = errors[0]["msg"] if errors else "Invalid request"
    return JSONResponse(status_code=400, content={"success": False, "error": message})


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unhandled exceptions."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Internal server error"},
    )


# Include routers
app.include_router(health_router)
app.include_router(requests_router, prefix=settings.api_prefix)
app.include_router(workers_router, prefix=settings.api_prefix)
app.include_router(customers_router, prefix=settings.api_prefix)
app.include_router(admin_router, prefix=settings.api_prefix)


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "name": "Field Service Dispatch API",
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "fieldserve.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
