"""Pydantic models for store rows and derived index request/response schemas."""

from typing import Any, Optional

from pydantic import BaseModel, Field

from songindex.core.cells import Cell, parse_cell


# --- Row store models ---


class Row(BaseModel):
    id: str
    name: Optional[str] = None
    values: dict[str, Any] = {}

    model_config = {"extra": "ignore"}

    def cell(self, column_id: Optional[str]) -> Optional[Cell]:
        """Parsed cell for a column id (None when the column is absent)."""
        if not column_id:
            return None
        return parse_cell(self.values.get(column_id))

    def cells(self) -> list[tuple[str, Cell]]:
        """Every parsed, non-empty cell in source column order."""
        parsed = [(col, parse_cell(raw)) for col, raw in self.values.items()]
        return [(col, cell) for col, cell in parsed if cell is not None]


class RowPage(BaseModel):
    items: list[Row] = []
    next_page_token: Optional[str] = Field(default=None, alias="nextPageToken")

    model_config = {"extra": "ignore", "populate_by_name": True}


# --- Derived index records ---


class SongIndexRecord(BaseModel):
    id: str
    row_id: str
    name: str
    composer: str = ""
    composer_id: Optional[str] = None
    composer_row_id: Optional[str] = None
    court: str = ""
    court_id: Optional[str] = None
    court_row_id: Optional[str] = None
    courts: list[str] = []
    scale: Optional[str] = None
    rhythm: Optional[str] = None
    lyrics: Optional[str] = None
    collections: Optional[str] = None
    occasions: Optional[str] = None
    sung_at: Optional[str] = None
    has_recordings: bool = False
    recording_count: int = 0
    best_recording_row_id: Optional[str] = None
    best_recording_rating: int = 0


class RecordingEntry(BaseModel):
    row_id: str
    url: str
    name: str
    details: str = ""
    personalities: str = ""
    album: str = ""
    rating: int = 0
    recording_number: int = 0


class CategoryEntry(BaseModel):
    id: str
    row_id: str
    custom_id: Optional[str] = None
    image: Optional[str] = None
    tag_name: Optional[str] = None


class RecordingDetail(BaseModel):
    row_id: str
    url: Optional[str] = None
    name: str
    details: str = ""
    personalities: str = ""
    album: str = ""
    rating: int = 0


# --- API response models ---


class SongIndexResponse(BaseModel):
    last_updated: str
    count: int
    songs: list[SongIndexRecord]


class RecordingsIndexResponse(BaseModel):
    last_updated: str
    song_count: int
    recordings: dict[str, list[RecordingEntry]]


class CategoryIndexResponse(BaseModel):
    last_updated: str
    category: str
    count: int
    index: dict[str, CategoryEntry]


class LastUpdatedResponse(BaseModel):
    last_updated: str


class InvalidationResponse(BaseModel):
    success: bool
    last_updated: str
    purged_urls: int
    removed_entries: int


# --- Write request models ---


class CellUpdate(BaseModel):
    column: str
    value: Any = None


class RowUpdateBody(BaseModel):
    cells: list[CellUpdate] = []


class RowUpdateRequest(BaseModel):
    row: RowUpdateBody
