"""Tests for recency ranking."""

from __future__ import annotations

from memex_search.models import Annotation, PageResultEntry
from memex_search.ranking import rank_results


class TestRankResults:
    """Tests for rank_results function."""

    def test_most_recent_first(self) -> None:
        """Pages are ordered by activity timestamp, descending."""
        ranked = rank_results(
            {
                "a.com": PageResultEntry(page_timestamp=100),
                "b.com": PageResultEntry(page_timestamp=50),
                "c.com": PageResultEntry(page_timestamp=200),
            }
        )
        assert [page_id for page_id, _ in ranked] == ["c.com", "a.com", "b.com"]

    def test_annotation_edit_counts_as_activity(self) -> None:
        """An annotation newer than the page's visits lifts the page."""
        annotated = PageResultEntry(page_timestamp=10)
        annotated.add_annotation(Annotation.create("n1", "a.com", 300))
        ranked = rank_results({"b.com": PageResultEntry(page_timestamp=200), "a.com": annotated})
        assert [page_id for page_id, _ in ranked] == ["a.com", "b.com"]

    def test_ties_keep_insertion_order(self) -> None:
        """Equal timestamps keep the order pages were inserted in."""
        ranked = rank_results(
            {
                "first.com": PageResultEntry(page_timestamp=5),
                "second.com": PageResultEntry(page_timestamp=5),
                "third.com": PageResultEntry(page_timestamp=5),
            }
        )
        assert [page_id for page_id, _ in ranked] == ["first.com", "second.com", "third.com"]

    def test_empty(self) -> None:
        """No pages means no ranking."""
        assert rank_results({}) == []

    def test_entries_are_preserved(self) -> None:
        """Ranking returns the same entry objects."""
        entry = PageResultEntry(page_timestamp=1)
        assert rank_results({"a.com": entry}) == [("a.com", entry)]
