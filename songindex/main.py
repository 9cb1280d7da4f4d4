"""Song Index Service — FastAPI application entry point.

Loads the store catalog, initializes the Redis and row store clients on
startup, and registers API routers.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from songindex.api import health, indexes, invalidation, songs
from songindex.core import redis_client, row_store
from songindex.core.catalog import load_catalog
from songindex.core.config import settings
from songindex.core.errors import IndexServiceError

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize service connections on startup, close on shutdown."""
    logger.info("Starting song index service...")

    # The catalog is required; an invalid one aborts startup
    app.state.catalog = load_catalog()

    row_store.init_row_store(app.state.catalog.doc_id)

    try:
        redis_client.init_redis_client()
    except Exception as e:
        logger.error(f"Failed to initialize Redis client: {e}")

    logger.info("Song index service ready")
    yield

    # Shutdown
    logger.info("Shutting down song index service...")
    await row_store.close_row_store()
    redis_client.close_redis_client()
    logger.info("Song index service stopped")


app = FastAPI(
    title="Song Index Service",
    version="0.1.0",
    description="Cached, denormalized song, recording and category indexes "
                "derived from a paginated row store.",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.exception_handler(IndexServiceError)
async def index_service_error_handler(request: Request, exc: IndexServiceError):
    logger.error(f"{exc.kind.value} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


app.include_router(health.router, prefix="/api", tags=["health"])
app.include_router(indexes.router, prefix="/api", tags=["indexes"])
app.include_router(invalidation.router, prefix="/api", tags=["cache"])
app.include_router(songs.router, prefix="/api", tags=["songs"])


def run() -> None:
    """Serve the app with uvicorn on the configured host and port."""
    uvicorn.run(app, host=settings.backend_host, port=settings.backend_port)
