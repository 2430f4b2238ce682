"""
FastAPI application with Redis lifecycle management.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from mailgraph.config import settings
from mailgraph.features.contact_scan import contact_scan_router, contact_scan_service
from mailgraph.infrastructure.observability.logging import get_logger, log_request, setup_logging
from mailgraph.routes import health
from mailgraph.services.infrastructure.redis_client import fast_redis

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown."""
    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    redis_needed = settings.get_progress_store_type() == "redis"
    if redis_needed:
        logger.info("Initializing Redis connection")
        try:
            await fast_redis.initialize()
        except Exception as e:
            logger.error("Failed to initialize Redis", error=str(e))
            raise

    yield

    logger.info("Application shutting down")

    # Let in-flight scans reach their next checkpoint before the store goes away
    await contact_scan_service.wait_for_all()

    if redis_needed:
        try:
            logger.info("Closing Redis connection")
            await fast_redis.close()
        except Exception as e:
            logger.error("Error closing Redis", error=str(e))


app = FastAPI(
    title="Mailgraph",
    description="Resumable Gmail contact scanning",
    version="0.1.0",
    lifespan=lifespan,
)

# Include routers
app.include_router(health.router)
app.include_router(contact_scan_router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log HTTP requests with timing."""
    start_time = time.time()
    response = await call_next(request)
    process_time = (time.time() - start_time) * 1000

    log_request(
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(process_time, 2),
    )
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
