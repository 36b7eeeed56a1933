# timesync/main.py
"""
FastAPI application with storage initialization and ledger migration at startup.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from timesync.config import settings
from timesync.infrastructure.observability.logging import get_logger, log_request, setup_logging
from timesync.routes import health, meetings, reviews
from timesync.services.container import Services, build_services, prepare_storage

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


def create_app(services: Services | None = None) -> FastAPI:
    """
    Build the application.

    Args:
        services: Pre-built service graph (tests); built from settings when None
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Application starting", environment=settings.environment, debug=settings.debug)

        container = services or build_services()

        try:
            migrated = prepare_storage(container)
            logger.info("Storage ready", base_dir=str(container.store.base_dir), migrated_records=migrated)
        except Exception as e:
            logger.error("Failed to initialize storage", error=str(e))
            await container.close()
            raise

        app.state.services = container
        yield

        logger.info("Application shutting down")
        try:
            await container.close()
        except Exception as e:
            logger.error("Error closing services", error=str(e))

    app = FastAPI(
        title="Meeting Timesync",
        description="Turns calendar meetings into deduplicated time entries",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(health.router)
    app.include_router(meetings.router)
    app.include_router(reviews.router)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log HTTP requests with timing."""
        start_time = time.time()
        response = await call_next(request)
        log_request(
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round((time.time() - start_time) * 1000, 2),
            user_id=request.headers.get("x-user-email"),
        )
        return response

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
