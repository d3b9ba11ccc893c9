"""Main FastAPI application - HTTP API plus the probing scheduler."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .config import settings
from .database import init_db, close_db, async_session
from .routers import endpoints_router, hits_router
from .services import Prober, SchedulerService, Storage

# Configure logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    logger.info("Starting Pinger")

    await init_db()

    storage = Storage(async_session)
    prober = Prober(storage, record_transport_errors=settings.record_transport_errors)
    scheduler = SchedulerService(storage, prober, shutdown_timeout=settings.shutdown_timeout_seconds)

    app.state.storage = storage
    app.state.scheduler = scheduler

    try:
        # A scheduler that cannot load its endpoints aborts startup
        await scheduler.start()
        yield
    finally:
        await scheduler.shutdown()
        await prober.aclose()
        await close_db()
        logger.info("Shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Pinger",
        description="Periodic HTTP endpoint probing with latency history",
        version="1.0.0",
        lifespan=lifespan,
        root_path=settings.base_path.rstrip("/"),
    )

    app.include_router(endpoints_router)
    app.include_router(hits_router)

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        scheduler = getattr(app.state, "scheduler", None)
        return {
            "status": "healthy",
            "scheduler": scheduler.state.value if scheduler else None,
        }

    return app


# Create the application instance
app = create_app()


def run():
    """Console entry point."""
    import uvicorn

    uvicorn.run(app, host=settings.web_host, port=settings.web_port)


if __name__ == "__main__":
    run()
