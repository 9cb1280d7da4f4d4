"""Store Catalog — loads and validates the YAML map of table and column ids.

The catalog names every store identifier the index pipeline touches: the doc,
the songs and recordings tables with their columns, the lookup category
tables, and the rating allow-list for writes. It is loaded once at startup
and injected into builders, lookups and validators.
"""

import logging
import re
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ValidationError

from songindex.core.config import settings

logger = logging.getLogger(__name__)

CATEGORY_SLUG = re.compile(r"^[a-z0-9][a-z0-9_-]*$")


class SongColumns(BaseModel):
    name: str
    custom_id: str
    composer: str
    court: str
    scale: Optional[str] = None
    rhythm: Optional[str] = None
    lyrics: Optional[str] = None
    collections: Optional[str] = None
    occasions: Optional[str] = None
    sung_at: Optional[str] = None

    model_config = {"extra": "forbid"}


class SongsTable(BaseModel):
    table: str
    columns: SongColumns
    lyrics_preview_length: int = 80

    model_config = {"extra": "forbid"}


class RecordingColumns(BaseModel):
    song: str
    file: str
    rating: str
    personalities: Optional[str] = None
    details: Optional[str] = None
    album: Optional[str] = None

    model_config = {"extra": "forbid"}


class RatingRange(BaseModel):
    min: int = 1
    max: int = 5

    model_config = {"extra": "forbid"}


class RecordingsTable(BaseModel):
    table: str
    columns: RecordingColumns
    rating_range: RatingRange = RatingRange()
    rating_columns: list[str] = []
    default_name: str = "Recording"

    model_config = {"extra": "forbid"}


class CategoryTable(BaseModel):
    table: str
    derive_tag_name: bool = False
    description: Optional[str] = None

    model_config = {"extra": "forbid"}


class Catalog(BaseModel):
    doc_id: str
    songs: SongsTable
    recordings: RecordingsTable
    categories: dict[str, CategoryTable] = {}
    image_url_markers: list[str] = ["codahosted.io", "image"]

    model_config = {"extra": "forbid"}

    def category(self, slug: str) -> Optional[CategoryTable]:
        return self.categories.get(slug)


def validate_catalog(catalog: Catalog) -> list[str]:
    """Validate catalog integrity. Returns list of error messages (empty = valid)."""
    errors: list[str] = []

    if not catalog.doc_id.strip():
        errors.append("doc_id must not be empty")

    for section, table in (("songs", catalog.songs), ("recordings", catalog.recordings)):
        if not table.table.strip():
            errors.append(f"{section}.table must not be empty")
        for key, column_id in table.columns.model_dump().items():
            if column_id is not None and not column_id.strip():
                errors.append(f"{section}.columns.{key} must not be empty")

    if catalog.songs.lyrics_preview_length < 1:
        errors.append("songs.lyrics_preview_length must be positive")

    rating_range = catalog.recordings.rating_range
    if rating_range.min > rating_range.max:
        errors.append(
            f"recordings.rating_range: min {rating_range.min} exceeds max {rating_range.max}"
        )
    if not catalog.recordings.rating_columns:
        errors.append("recordings.rating_columns must list at least one writable column")

    for slug, category in catalog.categories.items():
        if not CATEGORY_SLUG.match(slug):
            errors.append(
                f"Category '{slug}': slug must be lowercase alphanumeric, '-' or '_'"
            )
        if not category.table.strip():
            errors.append(f"Category '{slug}': table must not be empty")

    return errors


def load_catalog_from_yaml(yaml_content: str) -> Catalog:
    """Parse and validate a catalog from a YAML string."""
    raw = yaml.safe_load(yaml_content)
    if not isinstance(raw, dict):
        raise ValueError("Catalog YAML must be a mapping")

    try:
        catalog = Catalog(**raw)
    except ValidationError as e:
        raise ValueError(f"Invalid catalog: {e}") from e

    errors = validate_catalog(catalog)
    if errors:
        raise ValueError(f"Catalog validation errors: {errors}")
    return catalog


def resolve_catalog_path(path: Optional[str] = None) -> Path:
    catalog_path = Path(path or settings.catalog_file)
    if not catalog_path.is_absolute():
        catalog_path = settings.project_root / catalog_path
    return catalog_path


def load_catalog(path: Optional[str] = None) -> Catalog:
    """Load the catalog file (settings.catalog_file unless a path is given)."""
    catalog_path = resolve_catalog_path(path)
    if not catalog_path.exists():
        raise FileNotFoundError(f"Catalog file not found: {catalog_path}")

    catalog = load_catalog_from_yaml(catalog_path.read_text(encoding="utf-8"))
    logger.info(
        f"Loaded catalog from {catalog_path} "
        f"({len(catalog.categories)} categories)"
    )
    return catalog
