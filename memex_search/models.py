"""Data model for the unified search engine.

This module provides:
- Page, Visit, Bookmark, Annotation: immutable rows read from the store
- PageResultEntry: per-page aggregation built during a single search call
- PaginationCursor: validated parameters for one blank search window
- BlankSearchResult, TermsSearchResult: search outputs
- SearchError hierarchy
"""

from __future__ import annotations

import bisect
from dataclasses import dataclass, field
from typing import Union

import aiosqlite

from .text import extract_domain, extract_terms, extract_url_terms

DAY_MS = 86_400_000


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class SearchError(Exception):
    """Base class for search engine errors."""


class InvalidCursorError(SearchError, ValueError):
    """Raised when blank search pagination parameters are malformed."""


class UnknownFieldError(SearchError, KeyError):
    """Raised when a query descriptor names a field the collection lacks."""


# ---------------------------------------------------------------------------
# Stored entities
# ---------------------------------------------------------------------------


def _terms_from_column(value: str | None) -> frozenset[str]:
    if not value:
        return frozenset()
    return frozenset(value.split(" "))


@dataclass(frozen=True)
class Page:
    """A visited or bookmarked page, identified by its normalized URL."""

    url: str
    full_url: str
    domain: str
    title: str | None = None
    text: str | None = None
    terms: frozenset[str] = frozenset()
    url_terms: frozenset[str] = frozenset()
    title_terms: frozenset[str] = frozenset()

    @classmethod
    def create(
        cls,
        url: str,
        full_url: str | None = None,
        title: str | None = None,
        text: str | None = None,
    ) -> Page:
        """Build a page with term sets and domain derived from its content."""
        return cls(
            url=url,
            full_url=full_url or url,
            domain=extract_domain(url),
            title=title,
            text=text,
            terms=frozenset(extract_terms(text)),
            url_terms=frozenset(extract_url_terms(url)),
            title_terms=frozenset(extract_terms(title)),
        )

    def to_row(self) -> tuple:
        """Convert to SQLite row tuple (term sets are stored separately)."""
        return (self.url, self.full_url, self.domain, self.title, self.text)

    @classmethod
    def from_row(cls, row: aiosqlite.Row) -> Page:
        """Create from SQLite row with space-joined term columns."""
        return cls(
            url=row["url"],
            full_url=row["full_url"],
            domain=row["domain"],
            title=row["title"],
            text=row["text"],
            terms=_terms_from_column(row["terms"]),
            url_terms=_terms_from_column(row["url_terms"]),
            title_terms=_terms_from_column(row["title_terms"]),
        )

    @property
    def term_fields(self) -> dict[str, frozenset[str]]:
        return {
            "terms": self.terms,
            "url_terms": self.url_terms,
            "title_terms": self.title_terms,
        }


@dataclass(frozen=True)
class Visit:
    """A single visit to a page."""

    url: str
    time: int

    def to_row(self) -> tuple:
        return (self.url, self.time)

    @classmethod
    def from_row(cls, row: aiosqlite.Row) -> Visit:
        return cls(url=row["url"], time=row["time"])


@dataclass(frozen=True)
class Bookmark:
    """A bookmark on a page. A page has at most one."""

    url: str
    time: int

    def to_row(self) -> tuple:
        return (self.url, self.time)

    @classmethod
    def from_row(cls, row: aiosqlite.Row) -> Bookmark:
        return cls(url=row["url"], time=row["time"])


@dataclass(frozen=True)
class Annotation:
    """A highlight and/or comment attached to a page."""

    url: str
    page_url: str
    last_edited: int
    created_when: int
    body: str | None = None
    comment: str | None = None
    body_terms: frozenset[str] = frozenset()
    comment_terms: frozenset[str] = frozenset()

    @classmethod
    def create(
        cls,
        url: str,
        page_url: str,
        last_edited: int,
        body: str | None = None,
        comment: str | None = None,
        created_when: int | None = None,
    ) -> Annotation:
        """Build an annotation with term sets derived from body and comment."""
        return cls(
            url=url,
            page_url=page_url,
            last_edited=last_edited,
            created_when=created_when if created_when is not None else last_edited,
            body=body,
            comment=comment,
            body_terms=frozenset(extract_terms(body)),
            comment_terms=frozenset(extract_terms(comment)),
        )

    def to_row(self) -> tuple:
        """Convert to SQLite row tuple (term sets are stored separately)."""
        return (
            self.url,
            self.page_url,
            self.body,
            self.comment,
            self.created_when,
            self.last_edited,
        )

    @classmethod
    def from_row(cls, row: aiosqlite.Row) -> Annotation:
        return cls(
            url=row["url"],
            page_url=row["page_url"],
            body=row["body"],
            comment=row["comment"],
            created_when=row["created_when"],
            last_edited=row["last_edited"],
            body_terms=_terms_from_column(row["body_terms"]),
            comment_terms=_terms_from_column(row["comment_terms"]),
        )

    @property
    def term_fields(self) -> dict[str, frozenset[str]]:
        return {"body_terms": self.body_terms, "comment_terms": self.comment_terms}


Record = Union[Page, Visit, Bookmark, Annotation]


# ---------------------------------------------------------------------------
# Per-call derived structures
# ---------------------------------------------------------------------------


def _newest_first(annotation: Annotation) -> int:
    return -annotation.last_edited


@dataclass
class PageResultEntry:
    """Search result data for one page.

    Annotations are kept ordered by last_edited, most recent first.
    The page timestamp is the latest qualifying visit/bookmark time.
    """

    page_timestamp: int = 0
    annotations: list[Annotation] = field(default_factory=list)
    _annotation_ids: set[str] = field(default_factory=set, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self._annotation_ids = {a.url for a in self.annotations}

    @property
    def annotation_ids(self) -> list[str]:
        return [a.url for a in self.annotations]

    @property
    def timestamp(self) -> int:
        """Activity timestamp: newest of page-level time and annotation edits."""
        newest_annotation = self.annotations[0].last_edited if self.annotations else 0
        return max(self.page_timestamp, newest_annotation)

    def track_page_timestamp(self, time: int) -> None:
        self.page_timestamp = max(self.page_timestamp, time)

    def add_annotation(self, annotation: Annotation) -> None:
        """Insert an annotation, keeping last_edited-descending order."""
        if annotation.url in self._annotation_ids:
            return
        self._annotation_ids.add(annotation.url)
        bisect.insort_right(self.annotations, annotation, key=_newest_first)

    def to_dict(self) -> dict:
        return {"annotIds": self.annotation_ids, "timestamp": self.timestamp}


ResultDataByPage = dict[str, PageResultEntry]


@dataclass(frozen=True)
class PaginationCursor:
    """Parameters of one blank search window.

    Raises:
        InvalidCursorError: If days_to_search <= 0 or until_when < from_when.
    """

    until_when: int
    from_when: int = 0
    days_to_search: int = 1

    def __post_init__(self) -> None:
        if self.days_to_search <= 0:
            raise InvalidCursorError(
                f"days_to_search must be positive, got {self.days_to_search}"
            )
        if self.until_when < self.from_when:
            raise InvalidCursorError(
                f"until_when ({self.until_when}) is before from_when ({self.from_when})"
            )

    @property
    def window_lower_bound(self) -> int:
        return max(self.until_when - self.days_to_search * DAY_MS, self.from_when)


@dataclass
class BlankSearchResult:
    """Result of one blank search window."""

    result_data_by_page: ResultDataByPage
    results_exhausted: bool
    window_lower_bound: int

    def to_dict(self) -> dict:
        from .ranking import rank_results

        return {
            "resultDataByPage": [
                [page_id, entry.to_dict()]
                for page_id, entry in rank_results(self.result_data_by_page)
            ],
            "resultsExhausted": self.results_exhausted,
            "nextUntilWhen": self.window_lower_bound,
        }


@dataclass
class TermsSearchResult:
    """Result of a terms search, already ranked and sliced."""

    result_data_by_page: ResultDataByPage
    total: int

    def to_dict(self) -> dict:
        return {
            "resultDataByPage": [
                [page_id, entry.to_dict()]
                for page_id, entry in self.result_data_by_page.items()
            ],
            "total": self.total,
        }
