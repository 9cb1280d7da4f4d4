"""Single song and recording endpoints, plus the rating write."""

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse

from songindex.api.deps import get_catalog, get_row_store_client
from songindex.core.catalog import Catalog
from songindex.core.lookup import find_song, get_recording
from songindex.core.models import RecordingDetail
from songindex.core.ratings import apply_rating_update
from songindex.core.row_store import RowStoreClient

logger = logging.getLogger(__name__)

router = APIRouter()

DETAIL_CACHE_CONTROL = "public, max-age=300"


@router.get("/song/{song_id}")
async def get_song(
    song_id: str,
    catalog: Catalog = Depends(get_catalog),
    row_store: RowStoreClient = Depends(get_row_store_client),
):
    """Full song row by row id ('i-...') or custom id ('152')."""
    song = await find_song(row_store, catalog, song_id)
    return JSONResponse(
        content=song.model_dump(mode="json"),
        headers={"Cache-Control": DETAIL_CACHE_CONTROL},
    )


@router.get("/recording/{row_id}", response_model=RecordingDetail)
async def recording_detail(
    row_id: str,
    catalog: Catalog = Depends(get_catalog),
    row_store: RowStoreClient = Depends(get_row_store_client),
):
    recording = await get_recording(row_store, catalog, row_id)
    return JSONResponse(
        content=recording.model_dump(mode="json"),
        headers={"Cache-Control": DETAIL_CACHE_CONTROL},
    )


@router.put("/recording/{row_id}/rating")
async def update_rating(
    row_id: str,
    payload: Any = Body(...),
    catalog: Catalog = Depends(get_catalog),
    row_store: RowStoreClient = Depends(get_row_store_client),
):
    """Write a recording's rating. Only allow-listed rating columns are accepted."""
    return await apply_rating_update(row_store, catalog, row_id, payload)
