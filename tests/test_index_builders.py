"""Tests for the song, recordings and category index builders."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from songindex.core.catalog import CategoryTable
from songindex.core.errors import NotFound, UpstreamTimeout
from songindex.core.index_builders import (
    build_best_recordings,
    build_category_index,
    build_recordings_index,
    build_song_index,
    fetch_tables,
    guess_custom_id,
    guess_image_url,
    guess_tag_name,
    load_category_index,
    load_song_index,
)
from tests.conftest import (
    COMPOSERS_TABLE,
    RECORDINGS_TABLE,
    SONGS_TABLE,
    as_rows,
    attachment,
    make_row,
    recording,
    ref,
    song,
)


class TestBuildSongIndex:
    def test_basic_record(self, catalog):
        songs = as_rows(song(
            "i-1", "Nigun Simcha", "12",
            **{
                "c-composer": ref("i-c1", "Reb Yoel", COMPOSERS_TABLE),
                "c-court": [ref("i-k1", "Satmar"), ref("i-k2", "Belz")],
                "c-scale": "Freygish",
                "c-sung": "",
            },
        ))
        [record] = build_song_index(songs, [], catalog)

        assert record.id == "12"
        assert record.row_id == "i-1"
        assert record.name == "Nigun Simcha"
        assert record.composer == "Reb Yoel"
        assert record.composer_row_id == "i-c1"
        assert record.court == "Satmar"
        assert record.court_row_id == "i-k1"
        assert record.courts == ["Satmar", "Belz"]
        assert record.scale == "Freygish"
        assert record.sung_at is None
        assert record.has_recordings is False
        assert record.recording_count == 0
        assert record.best_recording_row_id is None

    def test_odd_reference_ids_do_not_abort_build(self, catalog):
        songs = as_rows(
            song("i-1", "Numeric Id", "1", **{
                "c-composer": {"rowId": 123, "tableId": "grid-c", "name": "X"},
            }),
            song("i-2", "Object Id", "2", **{
                "c-court": {"rowId": {"id": 9}, "tableId": "grid-k", "name": "Belz"},
            }),
            song("i-3", "Plain", "3"),
        )
        first, second, third = build_song_index(songs, [], catalog)

        assert first.composer_row_id == "123"
        assert first.composer == "X"
        assert second.court_row_id is None
        assert second.court == "Belz"
        assert third.name == "Plain"

    def test_rows_without_name_are_excluded(self, catalog):
        songs = as_rows(song("i-1", "Kept", "1"), song("i-2", "", "2"), song("i-3", "```  ```", "3"))
        assert [r.row_id for r in build_song_index(songs, [], catalog)] == ["i-1"]

    def test_missing_custom_id_falls_back_to_row_id(self, catalog):
        [record] = build_song_index(as_rows(song("i-9", "No Id")), [], catalog)
        assert record.id == "i-9"

    def test_source_order_preserved(self, catalog):
        songs = as_rows(*(song(f"i-{n}", f"Song {n}", str(n)) for n in (5, 1, 3)))
        assert [r.id for r in build_song_index(songs, [], catalog)] == ["5", "1", "3"]

    def test_best_recording_joined(self, catalog):
        songs = as_rows(song("i-10", "Tish Nigun", "10"), song("i-11", "Other", "11"))
        recordings = as_rows(
            recording("r-a", "10", rating="3"),
            recording("r-b", "10", rating="5"),
            recording("r-c", "10", rating="5", url=None),
            recording("r-d", "99", rating="4"),
        )
        first, second = build_song_index(songs, recordings, catalog)

        assert first.has_recordings is True
        assert first.recording_count == 2
        assert first.best_recording_row_id == "r-b"
        assert first.best_recording_rating == 5
        assert second.has_recordings is False

    def test_lyrics_truncated(self, catalog):
        lyrics = "Ai di di di dai, ai di di di dai"
        [record] = build_song_index(as_rows(song("i-1", "S", "1", **{"c-lyrics": lyrics})), [], catalog)
        assert record.lyrics == lyrics[:20] + "..."

    def test_short_lyrics_untouched(self, catalog):
        [record] = build_song_index(as_rows(song("i-1", "S", "1", **{"c-lyrics": "Yom"})), [], catalog)
        assert record.lyrics == "Yom"

    def test_rebuild_is_identical(self, catalog):
        songs = as_rows(*(song(f"i-{n}", f"Song {n}", str(n)) for n in range(10)))
        recordings = as_rows(*(recording(f"r-{n}", str(n % 4), rating=str(n % 5 + 1)) for n in range(20)))
        first = [r.model_dump_json() for r in build_song_index(songs, recordings, catalog)]
        second = [r.model_dump_json() for r in build_song_index(songs, recordings, catalog)]
        assert first == second


class TestBuildBestRecordings:
    def test_unparseable_rating_ranks_zero(self, catalog):
        recordings = as_rows(
            recording("r-a", "1", rating="great"),
            recording("r-b", "1", rating="9"),
        )
        best = build_best_recordings(recordings, catalog)
        assert best["1"].row_id == "r-a"
        assert best["1"].rank == 0
        assert best["1"].count == 2

    def test_recording_without_song_ignored(self, catalog):
        assert build_best_recordings(as_rows(recording("r-a", None, rating="5")), catalog) == {}


class TestBuildRecordingsIndex:
    def test_grouped_and_numbered_best_first(self, catalog):
        recordings = as_rows(
            recording("r-a", "7", rating="2", **{"c-album": ref("i-al", "Live 2019")}),
            recording("r-b", "7", rating="4"),
            recording("r-c", "8", rating="1"),
        )
        index = build_recordings_index(recordings, catalog)

        assert list(index) == ["7", "8"]
        assert [e.row_id for e in index["7"]] == ["r-b", "r-a"]
        assert [e.recording_number for e in index["7"]] == [1, 2]
        assert index["7"][1].album == "Live 2019"
        assert index["8"][0].rating == 1

    def test_one_entry_per_attachment(self, catalog):
        raw = recording("r-a", "7", rating="3")
        raw["values"]["c-file"] = [
            attachment("https://files.example/a.mp3", "a.mp3"),
            attachment("https://files.example/b.mp3", ""),
        ]
        entries = build_recordings_index(as_rows(raw), catalog)["7"]
        assert [e.url for e in entries] == [
            "https://files.example/a.mp3",
            "https://files.example/b.mp3",
        ]
        assert entries[1].name == "Recording"
        assert [e.recording_number for e in entries] == [1, 2]

    def test_rows_without_file_or_song_skipped(self, catalog):
        recordings = as_rows(
            recording("r-a", "7", url=None),
            recording("r-b", None),
        )
        assert build_recordings_index(recordings, catalog) == {}


class TestCategoryHeuristics:
    def test_custom_id(self):
        [row] = as_rows(make_row("i-1", {"c-a": "Reb Yoel", "c-b": "```#12```"}, name="Reb Yoel"))
        assert guess_custom_id(row) == "12"

    def test_custom_id_absent(self):
        [row] = as_rows(make_row("i-1", {"c-a": "no number"}, name="X"))
        assert guess_custom_id(row) is None

    def test_image_url(self):
        [row] = as_rows(make_row("i-1", {
            "c-doc": [attachment("https://files.example/notes.pdf")],
            "c-img": [attachment("https://codahosted.io/docs/x/portrait.png")],
        }, name="X"))
        assert guess_image_url(row, ["codahosted.io"]) == "https://codahosted.io/docs/x/portrait.png"

    def test_tag_name_shorter_than_name(self):
        [row] = as_rows(make_row("i-1", {
            "c-name": "Reb Yoel Teitelbaum",
            "c-x": "RY",
            "c-tag": "Reb Yoel",
        }, name="Reb Yoel Teitelbaum"))
        assert guess_tag_name(row, "Reb Yoel Teitelbaum") == "Reb Yoel"

    def test_tag_name_absent(self):
        [row] = as_rows(make_row("i-1", {"c-name": "Belz"}, name="Belz"))
        assert guess_tag_name(row, "Belz") is None


class TestBuildCategoryIndex:
    def test_keyed_by_name_first_wins(self, catalog):
        rows = as_rows(
            make_row("i-1", {"c-id": "#3"}, name="Satmar"),
            make_row("i-2", {}, name="```Belz```"),
            make_row("i-3", {"c-id": "#4"}, name="Satmar"),
            make_row("i-4", {}, name=""),
        )
        index = build_category_index(rows, CategoryTable(table="grid-courts"), catalog)

        assert list(index) == ["Satmar", "Belz"]
        assert index["Satmar"].row_id == "i-1"
        assert index["Satmar"].custom_id == "3"
        assert index["Satmar"].tag_name is None

    def test_tag_name_only_when_enabled(self, catalog):
        rows = as_rows(make_row("i-1", {"c-tag": "Reb Yoel"}, name="Reb Yoel Teitelbaum"))
        index = build_category_index(rows, catalog.category("composers"), catalog)
        assert index["Reb Yoel Teitelbaum"].tag_name == "Reb Yoel"


class TestLoaders:
    @pytest.mark.asyncio
    async def test_load_song_index_fetches_both_tables(self, catalog):
        tables = {
            SONGS_TABLE: as_rows(song("i-1", "Nigun", "1")),
            RECORDINGS_TABLE: as_rows(recording("r-1", "1", rating="4")),
        }
        row_store = AsyncMock()
        row_store.fetch_all.side_effect = lambda table_id: tables[table_id]

        [record] = await load_song_index(row_store, catalog)

        assert record.best_recording_row_id == "r-1"
        fetched = sorted(call.args[0] for call in row_store.fetch_all.call_args_list)
        assert fetched == sorted([SONGS_TABLE, RECORDINGS_TABLE])

    @pytest.mark.asyncio
    async def test_one_failed_table_fails_the_build(self, catalog):
        row_store = AsyncMock()

        async def fetch_all(table_id):
            if table_id == RECORDINGS_TABLE:
                raise UpstreamTimeout("slow", table_id=table_id)
            return as_rows(song("i-1", "Nigun", "1"))

        row_store.fetch_all.side_effect = fetch_all
        with pytest.raises(UpstreamTimeout):
            await load_song_index(row_store, catalog)

    @pytest.mark.asyncio
    async def test_failure_cancels_sibling_fetch(self):
        cancelled = asyncio.Event()

        async def fetch_all(table_id):
            if table_id == "fails":
                raise UpstreamTimeout("slow", table_id=table_id)
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise
            return []

        row_store = AsyncMock()
        row_store.fetch_all.side_effect = fetch_all
        with pytest.raises(UpstreamTimeout):
            await fetch_tables(row_store, "slow", "fails")
        await asyncio.wait_for(cancelled.wait(), timeout=1)

    @pytest.mark.asyncio
    async def test_unknown_category(self, catalog):
        row_store = AsyncMock()
        with pytest.raises(NotFound):
            await load_category_index(row_store, catalog, "nonexistent")
        row_store.fetch_all.assert_not_called()
