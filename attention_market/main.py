# attention_market/main.py
"""
FastAPI application with database pool, Redis and engine lifecycle management.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from attention_market.bootstrap import Collaborators, build_engine
from attention_market.config import settings
from attention_market.db.pool import db_pool
from attention_market.db.schema import apply_schema
from attention_market.features.debounce.api.router import router as inbound_router
from attention_market.features.debounce.coordinator import DebounceCoordinator
from attention_market.features.notification_queue.api.router import (
    messages_router,
    prioritization_router,
)
from attention_market.infrastructure.observability.logging import get_logger, setup_logging
from attention_market.routes import health
from attention_market.services.redis_client import fast_redis

# Setup logging before creating the app
setup_logging(log_level="DEBUG" if settings.debug else "INFO")
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown with proper resource management."""

    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    startup_tasks = []
    collaborators = None

    try:
        # Database pool first, schema right after
        logger.info("Initializing database pool")
        await db_pool.initialize()
        startup_tasks.append("database_pool")

        await apply_schema()
        startup_tasks.append("schema")

        logger.info("Initializing Redis connection")
        await fast_redis.initialize()
        startup_tasks.append("redis")

        collaborators = Collaborators.from_settings()
        app.state.engine = build_engine(collaborators)
        app.state.debounce = DebounceCoordinator(fast_redis, collaborators.response_pipeline)
        startup_tasks.append("engine")

        logger.info("All services initialized successfully", services=startup_tasks)

    except Exception as e:
        logger.error("Failed to initialize services", error=str(e), completed_tasks=startup_tasks)

        # Clean up any successfully initialized services in reverse order
        if collaborators is not None:
            await collaborators.close()

        if "redis" in startup_tasks:
            try:
                await fast_redis.close()
            except Exception as cleanup_error:
                logger.error("Error cleaning up Redis", error=str(cleanup_error))

        if "database_pool" in startup_tasks:
            try:
                await db_pool.close()
            except Exception as cleanup_error:
                logger.error("Error cleaning up database pool", error=str(cleanup_error))

        raise

    yield

    # Shutdown sequence (reverse order)
    logger.info("Application shutting down")

    shutdown_errors = []

    try:
        await app.state.debounce.close()
    except Exception as e:
        logger.error("Error cancelling debounce triggers", error=str(e))
        shutdown_errors.append(f"Debounce: {e}")

    await collaborators.close()

    try:
        logger.info("Closing Redis connection")
        await fast_redis.close()
    except Exception as e:
        logger.error("Error closing Redis", error=str(e))
        shutdown_errors.append(f"Redis: {e}")

    # Close database pool last (may have active connections)
    try:
        logger.info("Closing database pool")
        await db_pool.close()
    except Exception as e:
        logger.error("Error closing database pool", error=str(e))
        shutdown_errors.append(f"Database: {e}")

    if shutdown_errors:
        logger.warning("Some services had shutdown errors", errors=shutdown_errors)
    else:
        logger.info("All services closed successfully")


app = FastAPI(
    title="Attention Market",
    description="Prioritized notification delivery with paid admission",
    version="0.1.0",
    lifespan=lifespan,
)

# Include routers
app.include_router(health.router)
app.include_router(messages_router)
app.include_router(prioritization_router)
app.include_router(inbound_router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log HTTP requests with timing."""
    start_time = time.time()
    response = await call_next(request)
    process_time = (time.time() - start_time) * 1000

    logger.info(
        "HTTP request completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(process_time, 2),
    )
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
