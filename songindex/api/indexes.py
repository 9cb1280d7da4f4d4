"""Derived index endpoints — song, recordings and category indexes.

Each read first asks the edge cache for a hit. On a miss the index is rebuilt
from the row store, returned immediately, and written back to the cache in a
background task that Starlette runs to completion after the response is sent.
"""

import logging
from typing import Awaitable, Callable

from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response
from pydantic import BaseModel

from songindex.api.deps import get_cache_coordinator, get_catalog, get_row_store_client
from songindex.core.cache import CacheCoordinator, CachedResponse, request_identity
from songindex.core.catalog import Catalog
from songindex.core.config import settings
from songindex.core.errors import NotFound
from songindex.core.index_builders import (
    load_category_index,
    load_recordings_index,
    load_song_index,
)
from songindex.core.models import (
    CategoryIndexResponse,
    LastUpdatedResponse,
    RecordingsIndexResponse,
    SongIndexResponse,
)
from songindex.core.row_store import RowStoreClient

logger = logging.getLogger(__name__)

router = APIRouter()

JSON_MEDIA_TYPE = "application/json"


async def serve_index(
    request: Request,
    background_tasks: BackgroundTasks,
    coordinator: CacheCoordinator,
    build: Callable[[str], Awaitable[BaseModel]],
) -> Response:
    """Serve a cached index body, or build it, return it and cache it."""
    identity = request_identity(request.method, str(request.url))
    cached = coordinator.get(identity)
    if cached is not None:
        return Response(
            content=cached.body,
            status_code=cached.status_code,
            media_type=JSON_MEDIA_TYPE,
            headers={**cached.headers, "X-Cache": "HIT"},
        )

    generation = coordinator.current_generation()
    payload = await build(generation)
    body = payload.model_dump_json()

    ttl = settings.index_cache_ttl
    headers = {"Cache-Control": f"public, max-age={ttl}"}
    background_tasks.add_task(
        coordinator.put, identity, CachedResponse(body=body, headers=headers), ttl
    )
    return Response(
        content=body,
        media_type=JSON_MEDIA_TYPE,
        headers={**headers, "X-Cache": "MISS"},
    )


@router.get("/song-index", name="song_index", response_model=SongIndexResponse)
async def song_index(
    request: Request,
    background_tasks: BackgroundTasks,
    catalog: Catalog = Depends(get_catalog),
    row_store: RowStoreClient = Depends(get_row_store_client),
    coordinator: CacheCoordinator = Depends(get_cache_coordinator),
):
    """Every named song with its best recording summary."""

    async def build(generation: str) -> SongIndexResponse:
        songs = await load_song_index(row_store, catalog)
        return SongIndexResponse(last_updated=generation, count=len(songs), songs=songs)

    return await serve_index(request, background_tasks, coordinator, build)


@router.get(
    "/recordings-index",
    name="recordings_index",
    response_model=RecordingsIndexResponse,
)
async def recordings_index(
    request: Request,
    background_tasks: BackgroundTasks,
    catalog: Catalog = Depends(get_catalog),
    row_store: RowStoreClient = Depends(get_row_store_client),
    coordinator: CacheCoordinator = Depends(get_cache_coordinator),
):
    """Playable recordings grouped by song custom id, best rated first."""

    async def build(generation: str) -> RecordingsIndexResponse:
        recordings = await load_recordings_index(row_store, catalog)
        return RecordingsIndexResponse(
            last_updated=generation,
            song_count=len(recordings),
            recordings=recordings,
        )

    return await serve_index(request, background_tasks, coordinator, build)


@router.get(
    "/category-index/{category}",
    name="category_index",
    response_model=CategoryIndexResponse,
)
async def category_index(
    category: str,
    request: Request,
    background_tasks: BackgroundTasks,
    catalog: Catalog = Depends(get_catalog),
    row_store: RowStoreClient = Depends(get_row_store_client),
    coordinator: CacheCoordinator = Depends(get_cache_coordinator),
):
    """Name -> ids/image lookup for one category table."""
    if catalog.category(category) is None:
        raise NotFound(f"Unknown category '{category}'", category=category)

    async def build(generation: str) -> CategoryIndexResponse:
        index = await load_category_index(row_store, catalog, category)
        return CategoryIndexResponse(
            last_updated=generation,
            category=category,
            count=len(index),
            index=index,
        )

    return await serve_index(request, background_tasks, coordinator, build)


@router.get("/last-updated", response_model=LastUpdatedResponse)
def last_updated(
    response: Response,
    coordinator: CacheCoordinator = Depends(get_cache_coordinator),
):
    """Current generation marker, never cached."""
    response.headers["Cache-Control"] = "no-cache"
    return LastUpdatedResponse(last_updated=coordinator.current_generation())
