"""Shared test fixtures for the song index test suite."""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import pytest
import redis as redis_lib

from songindex.core.catalog import (
    Catalog,
    CategoryTable,
    RecordingColumns,
    RecordingsTable,
    SongColumns,
    SongsTable,
)
from songindex.core.models import Row


SONGS_TABLE = "grid-songs"
RECORDINGS_TABLE = "grid-recs"
COMPOSERS_TABLE = "grid-composers"
ALBUMS_TABLE = "grid-albums"
RATING_COLUMN = "c-rating"


def make_catalog() -> Catalog:
    """Small catalog with readable column ids."""
    return Catalog(
        doc_id="doc1",
        songs=SongsTable(
            table=SONGS_TABLE,
            lyrics_preview_length=20,
            columns=SongColumns(
                name="c-name",
                custom_id="c-cid",
                composer="c-composer",
                court="c-court",
                scale="c-scale",
                rhythm="c-rhythm",
                lyrics="c-lyrics",
                collections="c-collections",
                occasions="c-occasions",
                sung_at="c-sung",
            ),
        ),
        recordings=RecordingsTable(
            table=RECORDINGS_TABLE,
            rating_columns=[RATING_COLUMN],
            columns=RecordingColumns(
                song="c-song",
                file="c-file",
                rating=RATING_COLUMN,
                personalities="c-people",
                details="c-details",
                album="c-album",
            ),
        ),
        categories={
            "composers": CategoryTable(table=COMPOSERS_TABLE, derive_tag_name=True),
            "albums": CategoryTable(table=ALBUMS_TABLE),
        },
    )


@pytest.fixture
def catalog() -> Catalog:
    return make_catalog()


def make_row(row_id: str, values: Optional[dict[str, Any]] = None, name: Optional[str] = None) -> dict:
    """Raw row JSON as returned by the store's rich value format."""
    return {
        "id": row_id,
        "type": "row",
        "name": name,
        "values": values or {},
    }


def ref(row_id: str, name: str, table_id: str = "grid-other") -> dict:
    """Raw row reference value."""
    return {
        "@context": "http://schema.org/",
        "@type": "StructuredValue",
        "additionalType": "row",
        "name": name,
        "rowId": row_id,
        "tableId": table_id,
    }


def attachment(url: str, name: str = "") -> dict:
    """Raw attachment/image value."""
    return {"@context": "http://schema.org/", "@type": "ImageObject", "name": name, "url": url}


def song(
    row_id: str,
    name: Optional[str],
    custom_id: Optional[str] = None,
    **extra: Any,
) -> dict:
    values: dict[str, Any] = {"c-name": name if name is not None else ""}
    if custom_id is not None:
        values["c-cid"] = f"```#{custom_id}```"
    values.update(extra)
    return make_row(row_id, values)


def recording(
    row_id: str,
    song_key: Optional[str],
    rating: Any = "",
    url: Optional[str] = "https://files.example/r.mp3",
    **extra: Any,
) -> dict:
    values: dict[str, Any] = {"c-rating": rating}
    if song_key is not None:
        values["c-song"] = ref(f"i-song-{song_key}", f"```#{song_key}```", SONGS_TABLE)
    if url is not None:
        values["c-file"] = [attachment(url, f"{row_id}.mp3")]
    values.update(extra)
    return make_row(row_id, values)


def as_rows(*raw_rows: dict) -> list[Row]:
    return [Row.model_validate(raw) for raw in raw_rows]


class FakeRedis:
    """In-memory stand-in for the subset of redis.Redis the cache uses."""

    def __init__(self):
        self.data: dict[str, str] = {}
        self.expiry: dict[str, int] = {}
        self.deleted: list[str] = []

    def get(self, name: str) -> Optional[str]:
        return self.data.get(name)

    def set(self, name: str, value: str, ex: Optional[int] = None, nx: bool = False):
        if nx and name in self.data:
            return None
        self.data[name] = value
        if ex is not None:
            self.expiry[name] = ex
        return True

    def delete(self, *names: str) -> int:
        removed = 0
        for name in names:
            self.deleted.append(name)
            if self.data.pop(name, None) is not None:
                removed += 1
        return removed

    def ping(self) -> bool:
        return True


class FailingRedis(FakeRedis):
    """FakeRedis whose listed operations raise redis.ConnectionError."""

    def __init__(self, *failing: str):
        super().__init__()
        self.failing = set(failing or ("get", "set", "delete", "ping"))

    def _check(self, operation: str) -> None:
        if operation in self.failing:
            raise redis_lib.ConnectionError("Connection refused")

    def get(self, name):
        self._check("get")
        return super().get(name)

    def set(self, name, value, ex=None, nx=False):
        self._check("set")
        return super().set(name, value, ex=ex, nx=nx)

    def delete(self, *names):
        self._check("delete")
        return super().delete(*names)

    def ping(self):
        self._check("ping")
        return super().ping()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


class StepClock:
    """Deterministic clock; advance() moves it forward."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)
