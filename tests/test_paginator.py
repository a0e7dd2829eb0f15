"""Tests for windowed blank search pagination."""

from __future__ import annotations

import sqlite3
from unittest.mock import AsyncMock

import pytest

from memex_search.models import (
    DAY_MS,
    Annotation,
    Bookmark,
    Page,
    PaginationCursor,
    Visit,
)
from memex_search.paginator import aggregate_by_page, blank_search, has_data_between
from memex_search.query import Collection
from memex_search.store import SQLiteStore
from search_data import P8, P10, P11, P12, UNTIL, ago


# ---------------------------------------------------------------------------
# aggregate_by_page tests
# ---------------------------------------------------------------------------


class TestAggregateByPage:
    """Tests for aggregate_by_page function."""

    def test_merges_rows_per_page(self) -> None:
        """Visits, bookmarks and annotations on one page share an entry."""
        result = aggregate_by_page(
            visits=[Visit("a.com", 10), Visit("a.com", 25)],
            bookmarks=[Bookmark("a.com", 20)],
            annotations=[
                Annotation.create("n1", "a.com", 15),
                Annotation.create("n2", "b.com", 5),
            ],
        )
        assert set(result) == {"a.com", "b.com"}
        assert result["a.com"].page_timestamp == 25
        assert result["a.com"].annotation_ids == ["n1"]
        assert result["a.com"].timestamp == 25
        assert result["b.com"].page_timestamp == 0
        assert result["b.com"].timestamp == 5

    def test_annotations_sorted_within_page(self) -> None:
        """Annotations end up most recently edited first."""
        result = aggregate_by_page(
            visits=[],
            bookmarks=[],
            annotations=[
                Annotation.create("old", "a.com", 1),
                Annotation.create("new", "a.com", 3),
                Annotation.create("mid", "a.com", 2),
            ],
        )
        assert result["a.com"].annotation_ids == ["new", "mid", "old"]

    def test_empty(self) -> None:
        """No rows means no pages."""
        assert aggregate_by_page([], [], []) == {}


# ---------------------------------------------------------------------------
# has_data_between tests
# ---------------------------------------------------------------------------


class TestHasDataBetween:
    """Tests for the older-data check."""

    @pytest.mark.asyncio
    async def test_finds_bookmark(self, seeded_store: SQLiteStore) -> None:
        """A lone bookmark in the range counts as data."""
        assert await has_data_between(seeded_store, 0, ago(days=6))

    @pytest.mark.asyncio
    async def test_finds_annotation(self, seeded_store: SQLiteStore) -> None:
        """An annotation edit in the range counts as data."""
        assert await has_data_between(seeded_store, ago(days=4, hours=3), ago(days=4, hours=2))

    @pytest.mark.asyncio
    async def test_empty_range(self, seeded_store: SQLiteStore) -> None:
        """A gap in activity has no data."""
        assert not await has_data_between(seeded_store, ago(days=2), ago(days=1))
        assert not await has_data_between(seeded_store, 0, ago(days=35))

    @pytest.mark.asyncio
    async def test_upper_bound_exclusive(self, seeded_store: SQLiteStore) -> None:
        """Data exactly at the upper bound is outside the range."""
        assert not await has_data_between(seeded_store, ago(days=36), ago(days=35))

    @pytest.mark.asyncio
    async def test_inverted_range_skips_storage(self) -> None:
        """An empty or inverted range is answered without storage calls."""
        reader = AsyncMock()
        assert not await has_data_between(reader, 10, 10)
        assert not await has_data_between(reader, 10, 5)
        reader.exists.assert_not_called()


# ---------------------------------------------------------------------------
# blank_search tests
# ---------------------------------------------------------------------------


class TestBlankSearch:
    """Tests for blank_search on explicit cursors."""

    @pytest.mark.asyncio
    async def test_empty_store_is_exhausted(self, store: SQLiteStore) -> None:
        """With no data at all, the first window is also the last."""
        result = await blank_search(store, PaginationCursor(until_when=UNTIL))
        assert result.result_data_by_page == {}
        assert result.results_exhausted is True
        assert result.window_lower_bound == UNTIL - DAY_MS

    @pytest.mark.asyncio
    async def test_bookmark_and_annotation_on_same_page(self, store: SQLiteStore) -> None:
        """The newer annotation edit sets the page timestamp."""
        await store.put_page(Page.create("test.com/a"))
        await store.put_bookmark(Bookmark("test.com/a", 10))
        await store.put_annotation(Annotation.create("n1", "test.com/a", 30))

        result = await blank_search(store, PaginationCursor(until_when=40))

        assert result.to_dict() == {
            "resultDataByPage": [["test.com/a", {"annotIds": ["n1"], "timestamp": 30}]],
            "resultsExhausted": True,
            "nextUntilWhen": 0,
        }

    @pytest.mark.asyncio
    async def test_window_is_half_open(self, store: SQLiteStore) -> None:
        """Activity at the lower bound is included, at until_when excluded."""
        await store.add_visit(Visit("test.com/lower", DAY_MS))
        await store.add_visit(Visit("test.com/upper", 2 * DAY_MS))

        result = await blank_search(store, PaginationCursor(until_when=2 * DAY_MS))

        assert set(result.result_data_by_page) == {"test.com/lower"}
        assert result.results_exhausted is True

    @pytest.mark.asyncio
    async def test_clamped_to_from_when(self, seeded_store: SQLiteStore) -> None:
        """Reaching from_when ends pagination regardless of older data."""
        cursor = PaginationCursor(until_when=UNTIL, from_when=ago(hours=3))
        result = await blank_search(seeded_store, cursor)

        assert list(result.result_data_by_page) == [P11, P8, P10]
        assert result.results_exhausted is True
        assert result.window_lower_bound == ago(hours=3)

    @pytest.mark.asyncio
    async def test_no_data_between_from_when_and_window(self, seeded_store: SQLiteStore) -> None:
        """Exhausted when nothing lies between from_when and the window."""
        cursor = PaginationCursor(until_when=UNTIL, from_when=ago(days=2))
        result = await blank_search(seeded_store, cursor)

        assert result.results_exhausted is True
        assert result.window_lower_bound == ago(days=1)

    @pytest.mark.asyncio
    async def test_older_bookmark_keeps_pagination_open(self, seeded_store: SQLiteStore) -> None:
        """A single bookmark far in the past keeps results non-exhausted."""
        result = await blank_search(seeded_store, PaginationCursor(until_when=ago(days=6)))
        assert result.result_data_by_page == {}
        assert result.results_exhausted is False

        result = await blank_search(
            seeded_store, PaginationCursor(until_when=ago(days=6), days_to_search=30)
        )
        assert list(result.result_data_by_page) == [P12]
        assert result.result_data_by_page[P12].annotation_ids == []
        assert result.results_exhausted is True

    @pytest.mark.asyncio
    async def test_floor_reached_skips_older_data_check(self) -> None:
        """The older-data check only runs while the floor is not reached."""
        reader = AsyncMock()
        reader.find.return_value = []
        await blank_search(reader, PaginationCursor(until_when=100, from_when=50))
        reader.exists.assert_not_called()
        assert reader.find.await_count == 3

    @pytest.mark.asyncio
    async def test_window_queries_each_collection(self) -> None:
        """One time-range fetch per collection, plus one existence check per collection."""
        reader = AsyncMock()
        reader.find.return_value = []
        reader.exists.return_value = False
        await blank_search(reader, PaginationCursor(until_when=3 * DAY_MS))

        found = {call.args[0].collection for call in reader.find.call_args_list}
        checked = {call.args[0].collection for call in reader.exists.call_args_list}
        expected = {Collection.VISITS, Collection.BOOKMARKS, Collection.ANNOTATIONS}
        assert found == checked == expected

    @pytest.mark.asyncio
    async def test_storage_error_propagates(self) -> None:
        """A failing sub-query fails the whole search call."""
        reader = AsyncMock()
        reader.find.side_effect = sqlite3.OperationalError("unable to open database file")
        reader.exists.return_value = False
        with pytest.raises(sqlite3.OperationalError, match="unable to open"):
            await blank_search(reader, PaginationCursor(until_when=UNTIL))
