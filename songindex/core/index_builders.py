"""Index builders — derive compact, JSON-serializable indexes from store rows.

The build_* functions are pure: the same rows and catalog always produce the
same index, in source order. The load_* coroutines fetch the source tables
and hand the rows to a builder; when a builder needs two tables they are
fetched concurrently and a failure in either aborts the build.

Rows without a renderable name are left out of every index.
"""

import asyncio
import logging
import re
from typing import Optional

from songindex.core.best_match import (
    BestMatchSummary,
    ChildRecord,
    parse_rank,
    rank_group,
    select_best,
)
from songindex.core.catalog import Catalog, CategoryTable
from songindex.core.cells import (
    Scalar,
    extract_attachment_url,
    extract_attachments,
    extract_custom_id,
    extract_text,
    strip_markers,
)
from songindex.core.errors import NotFound
from songindex.core.models import CategoryEntry, RecordingEntry, Row, SongIndexRecord
from songindex.core.relations import EMPTY_RELATION, resolve_all, resolve_key, resolve_relation
from songindex.core.row_store import RowStoreClient

logger = logging.getLogger(__name__)

TRUNCATION_SUFFIX = "..."


def _optional(text: str) -> Optional[str]:
    return text or None


def _truncate(text: str, length: int) -> str:
    if len(text) > length:
        return text[:length] + TRUNCATION_SUFFIX
    return text


def _rating(row: Row, catalog: Catalog) -> int:
    recordings = catalog.recordings
    return parse_rank(
        extract_text(row.cell(recordings.columns.rating)),
        recordings.rating_range.min,
        recordings.rating_range.max,
    )


# ---------------------------------------------------------------------------
# Song index (entity index)
# ---------------------------------------------------------------------------

def build_best_recordings(
    recording_rows: list[Row],
    catalog: Catalog,
) -> dict[str, BestMatchSummary]:
    """Best-rated playable recording per song custom id."""
    columns = catalog.recordings.columns
    children = (
        (
            resolve_key(row.cell(columns.song)),
            ChildRecord(
                row_id=row.id,
                rank=_rating(row, catalog),
                payload=extract_attachment_url(row.cell(columns.file)),
            ),
        )
        for row in recording_rows
    )
    return select_best(children)


def build_song_index(
    song_rows: list[Row],
    recording_rows: list[Row],
    catalog: Catalog,
) -> list[SongIndexRecord]:
    columns = catalog.songs.columns
    best = build_best_recordings(recording_rows, catalog)

    records: list[SongIndexRecord] = []
    for row in song_rows:
        name = extract_text(row.cell(columns.name))
        if not name:
            continue

        custom_id = extract_custom_id(row.cell(columns.custom_id))
        composer = resolve_relation(row.cell(columns.composer))
        courts = resolve_all(row.cell(columns.court))
        court = courts[0] if courts else EMPTY_RELATION
        match = best.get(custom_id) if custom_id else None

        lyrics = _truncate(
            extract_text(row.cell(columns.lyrics)),
            catalog.songs.lyrics_preview_length,
        )

        records.append(SongIndexRecord(
            id=custom_id or row.id,
            row_id=row.id,
            name=name,
            composer=composer.display_text,
            composer_id=composer.custom_id or _optional(composer.display_text),
            composer_row_id=composer.row_id,
            court=court.display_text,
            court_id=court.custom_id or _optional(court.display_text),
            court_row_id=court.row_id,
            courts=[c.display_text for c in courts if c.display_text],
            scale=_optional(extract_text(row.cell(columns.scale))),
            rhythm=_optional(extract_text(row.cell(columns.rhythm))),
            lyrics=_optional(lyrics),
            collections=_optional(extract_text(row.cell(columns.collections))),
            occasions=_optional(extract_text(row.cell(columns.occasions))),
            sung_at=_optional(extract_text(row.cell(columns.sung_at))),
            has_recordings=match is not None,
            recording_count=match.count if match else 0,
            best_recording_row_id=match.row_id if match else None,
            best_recording_rating=match.rank if match else 0,
        ))
    return records


# ---------------------------------------------------------------------------
# Recordings index (relation-only index)
# ---------------------------------------------------------------------------

def build_recordings_index(
    recording_rows: list[Row],
    catalog: Catalog,
) -> dict[str, list[RecordingEntry]]:
    """Every playable file grouped by song custom id, best rated first."""
    recordings = catalog.recordings
    columns = recordings.columns

    grouped: dict[str, list[RecordingEntry]] = {}
    for row in recording_rows:
        song_key = resolve_key(row.cell(columns.song))
        if not song_key:
            continue
        file_cell = row.cell(columns.file)
        if extract_attachment_url(file_cell) is None:
            continue

        details = extract_text(row.cell(columns.details))
        personalities = extract_text(row.cell(columns.personalities))
        album = extract_text(row.cell(columns.album))
        rating = _rating(row, catalog)

        for attachment in extract_attachments(file_cell):
            grouped.setdefault(song_key, []).append(RecordingEntry(
                row_id=row.id,
                url=attachment.url,
                name=attachment.name or recordings.default_name,
                details=details,
                personalities=personalities,
                album=album,
                rating=rating,
            ))

    return {
        song_key: [
            entry.model_copy(update={"recording_number": number})
            for number, entry in enumerate(rank_group(entries, lambda e: e.rating), start=1)
        ]
        for song_key, entries in grouped.items()
    }


# ---------------------------------------------------------------------------
# Category index (lookup index) and its best-effort heuristics
# ---------------------------------------------------------------------------

# Heuristics below scan whole rows because category tables have no fixed
# schema. They are best effort: no match yields None, never an error, and
# nothing outside the category index may rely on them.

CUSTOM_ID_PATTERN = re.compile(r"#\s*(\d+)")
MIN_TAG_NAME_LENGTH = 3


def guess_custom_id(row: Row) -> Optional[str]:
    """First text cell holding '#' followed by digits, e.g. '```#12```' -> '12'."""
    for _, cell in row.cells():
        if isinstance(cell, Scalar) and isinstance(cell.value, str):
            match = CUSTOM_ID_PATTERN.search(strip_markers(cell.value))
            if match:
                return match.group(1)
    return None


def guess_image_url(row: Row, markers: list[str]) -> Optional[str]:
    """First attachment URL that looks like a hosted image."""
    for _, cell in row.cells():
        url = extract_attachment_url(cell)
        if url and any(marker in url for marker in markers):
            return url
    return None


def guess_tag_name(row: Row, name: str) -> Optional[str]:
    """First cell text shorter than the row name (a short label), if any."""
    for _, cell in row.cells():
        text = extract_text(cell)
        if MIN_TAG_NAME_LENGTH <= len(text) < len(name):
            return text
    return None


def build_category_index(
    rows: list[Row],
    category: CategoryTable,
    catalog: Catalog,
) -> dict[str, CategoryEntry]:
    """Lookup entries keyed by display name. The first row with a name wins."""
    index: dict[str, CategoryEntry] = {}
    for row in rows:
        name = strip_markers(row.name)
        if not name:
            continue
        if name in index:
            logger.debug(f"Duplicate category name '{name}' in {category.table}, keeping first")
            continue
        index[name] = CategoryEntry(
            id=row.id,
            row_id=row.id,
            custom_id=guess_custom_id(row),
            image=guess_image_url(row, catalog.image_url_markers),
            tag_name=guess_tag_name(row, name) if category.derive_tag_name else None,
        )
    return index


# ---------------------------------------------------------------------------
# Loaders
# ---------------------------------------------------------------------------

async def fetch_tables(row_store: RowStoreClient, *table_ids: str) -> list[list[Row]]:
    """Fetch several tables concurrently. Any failure cancels the rest and propagates."""
    tasks = [asyncio.ensure_future(row_store.fetch_all(table_id)) for table_id in table_ids]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        raise


async def load_song_index(row_store: RowStoreClient, catalog: Catalog) -> list[SongIndexRecord]:
    logger.info("Building song index...")
    song_rows, recording_rows = await fetch_tables(
        row_store, catalog.songs.table, catalog.recordings.table
    )
    logger.info(f"Fetched {len(song_rows)} songs and {len(recording_rows)} recordings")
    return build_song_index(song_rows, recording_rows, catalog)


async def load_recordings_index(
    row_store: RowStoreClient,
    catalog: Catalog,
) -> dict[str, list[RecordingEntry]]:
    logger.info("Building recordings index...")
    recording_rows = await row_store.fetch_all(catalog.recordings.table)
    return build_recordings_index(recording_rows, catalog)


async def load_category_index(
    row_store: RowStoreClient,
    catalog: Catalog,
    slug: str,
) -> dict[str, CategoryEntry]:
    category = catalog.category(slug)
    if category is None:
        raise NotFound(f"Unknown category '{slug}'", category=slug)
    logger.info(f"Building {slug} index...")
    rows = await row_store.fetch_all(category.table)
    return build_category_index(rows, category, catalog)
