"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from clipcast import __version__
from clipcast.config import settings
from clipcast.db.database import init_db, close_db
from clipcast.api.routes import router
from clipcast.container import build_upload_worker

# Configure logging
logging.basicConfig(
    level=logging.INFO if not settings.debug else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info(f"Starting {settings.app_name}...")

    await init_db()
    logger.info("Database initialized")

    upload_worker = build_upload_worker()
    upload_worker.start()
    app.state.upload_worker = upload_worker

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.app_name}...")
    await upload_worker.shutdown()
    await close_db()
    logger.info("Shutdown complete")


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Podcast episode to short-form clip pipeline",
    version=__version__,
    lifespan=lifespan
)

# Include API routes
app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "app": settings.app_name,
        "version": __version__,
        "api": "/api",
        "docs": "/docs"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "clipcast.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
