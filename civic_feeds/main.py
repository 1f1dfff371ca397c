"""Main entry point for the civic feeds service."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import get_settings
from .lib.json_logger import setup_json_logging, setup_text_logging
from .routes import collection, discovery, health, sources
from .service import get_service

logger = logging.getLogger(__name__)

# Configure logging based on settings
settings = get_settings()

if settings.log_format == "json":
    setup_json_logging(level=settings.log_level)
else:
    setup_text_logging(level=settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the service on startup; close its HTTP client on shutdown."""
    service = get_service()
    logger.info(f"Calendar feed service started with {len(service.registry)} sources")
    yield
    await service.close()
    get_service.cache_clear()
    logger.info("Calendar feed service stopped")


app = FastAPI(
    title="Civic Feeds",
    description="Discovery, validation and ingestion of municipal event calendar feeds",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware - origins from environment variable
cors_origins = [origin.strip() for origin in settings.cors_origins.split(",") if origin.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, prefix="/health", tags=["Health"])
app.include_router(discovery.router, prefix="/discovery", tags=["Discovery"])
app.include_router(sources.router, prefix="/sources", tags=["Sources"])
app.include_router(collection.router, prefix="/collect", tags=["Collection"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "Civic Feeds",
        "version": "0.1.0",
        "status": "running"
    }


if __name__ == "__main__":
    uvicorn.run(
        "civic_feeds.main:app",
        host="0.0.0.0",
        port=settings.port,
        reload=settings.debug
    )
