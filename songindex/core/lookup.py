"""Single-row lookups — one song by row id or custom id, one recording by row id.

Custom ids are stored in the song table in several textual shapes, so a
custom-id lookup runs a fixed, ordered list of search strategies against the
custom-id column and stops at the first that yields a row:

1. ```#{id}```   (code-formatted, the canonical stored form)
2. #{id}
3. {id}
"""

import logging
from typing import Callable, Optional

from songindex.core.best_match import parse_rank
from songindex.core.catalog import Catalog
from songindex.core.cells import (
    extract_attachments,
    extract_custom_id,
    extract_text,
)
from songindex.core.errors import NotFound, UpstreamUnavailable
from songindex.core.models import RecordingDetail, Row
from songindex.core.row_store import RowStoreClient

logger = logging.getLogger(__name__)

ROW_ID_PREFIX = "i-"
SEARCH_LIMIT = 5


def is_row_id(song_id: str) -> bool:
    return song_id.startswith(ROW_ID_PREFIX)


def custom_id_search_values(custom_id: str) -> list[str]:
    """Stored shapes to try for a custom id, in authoritative order."""
    return [f"```#{custom_id}```", f"#{custom_id}", custom_id]


def _pick_match(rows: list[Row], column_id: str, custom_id: str) -> Optional[Row]:
    """Prefer a row whose custom id extracts exactly; else the store's first hit."""
    for row in rows:
        if extract_custom_id(row.cell(column_id)) == custom_id:
            return row
    return rows[0] if rows else None


async def find_song(
    row_store: RowStoreClient,
    catalog: Catalog,
    song_id: str,
    search_values: Callable[[str], list[str]] = custom_id_search_values,
) -> Row:
    """Resolve a song by row id ('i-...') or by custom id ('152', '#152')."""
    songs = catalog.songs
    if is_row_id(song_id):
        return await row_store.get_row(songs.table, song_id)

    custom_id = song_id.lstrip("#").strip()
    if not custom_id:
        raise NotFound("Song not found", song_id=song_id)

    column_id = songs.columns.custom_id
    tried = search_values(custom_id)
    for search_value in tried:
        query = f'{column_id}:"{search_value}"'
        logger.info(f"Trying song query: {query}")
        try:
            rows = await row_store.search_rows(songs.table, query, limit=SEARCH_LIMIT)
        except UpstreamUnavailable as e:
            logger.warning(f"Song search failed for '{search_value}': {e.message}")
            continue
        song = _pick_match(rows, column_id, custom_id)
        if song is not None:
            logger.info(f"Found song {custom_id} with query: {query}")
            return song

    logger.info(f"Song {custom_id} not found after trying all query formats")
    raise NotFound("Song not found", song_id=song_id, tried_formats=tried)


async def get_recording(
    row_store: RowStoreClient,
    catalog: Catalog,
    row_id: str,
) -> RecordingDetail:
    """Summarize one recording row: its first playable file plus metadata."""
    recordings = catalog.recordings
    columns = recordings.columns
    row = await row_store.get_row(recordings.table, row_id)

    attachments = extract_attachments(row.cell(columns.file))
    first = attachments[0] if attachments else None

    return RecordingDetail(
        row_id=row.id,
        url=first.url if first else None,
        name=(first.name if first and first.name else recordings.default_name),
        details=extract_text(row.cell(columns.details)),
        personalities=extract_text(row.cell(columns.personalities)),
        album=extract_text(row.cell(columns.album)),
        rating=parse_rank(
            extract_text(row.cell(columns.rating)),
            recordings.rating_range.min,
            recordings.rating_range.max,
        ),
    )
