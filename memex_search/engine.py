"""Unified search engine: blank and terms search over the multi-collection store.

This module provides:
- UnifiedSearchEngine: the exposed search interface
- current_time_ms: the default clock
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Sequence

from .config import SearchConfig
from .models import (
    BlankSearchResult,
    PageResultEntry,
    PaginationCursor,
    ResultDataByPage,
    TermsSearchResult,
)
from .paginator import blank_search
from .query import Collection, Op, Query, StorageReader, time_range
from .ranking import rank_results
from .terms import query_annotations_by_terms, query_pages_by_terms
from .tokenizer import split_query

logger = logging.getLogger(__name__)

Clock = Callable[[], int]


def current_time_ms() -> int:
    """Current epoch time in milliseconds."""
    return int(time.time() * 1000)


class UnifiedSearchEngine:
    """Answers blank and terms searches against a storage reader.

    Holds no per-search state; concurrent calls are independent.

    Usage:
        engine = UnifiedSearchEngine(store)
        page = await engine.unified_blank_search(days_to_search=1)
        while not page.results_exhausted:
            page = await engine.unified_blank_search(until_when=page.window_lower_bound)
    """

    def __init__(
        self,
        reader: StorageReader,
        config: SearchConfig | None = None,
        clock: Clock = current_time_ms,
    ) -> None:
        """Initialize the engine.

        Args:
            reader: Storage reader capability to query.
            config: Search defaults (window size, prefix matching, limit).
            clock: Source of "now" in epoch ms, used when until_when is omitted.
        """
        self.reader = reader
        self.config = config or SearchConfig()
        self.clock = clock

    async def unified_blank_search(
        self,
        from_when: int = 0,
        until_when: int | None = None,
        days_to_search: int | None = None,
    ) -> BlankSearchResult:
        """Return recent activity in one window ending at until_when.

        Args:
            from_when: Absolute lower bound (inclusive), default 0.
            until_when: Window upper bound (exclusive), default now.
            days_to_search: Window size in days, default from config.

        Returns:
            BlankSearchResult for the window.

        Raises:
            InvalidCursorError: If days_to_search <= 0 or until_when < from_when.
        """
        cursor = PaginationCursor(
            until_when=self.clock() if until_when is None else until_when,
            from_when=from_when,
            days_to_search=(
                self.config.days_to_search if days_to_search is None else days_to_search
            ),
        )
        return await blank_search(self.reader, cursor)

    async def unified_terms_search(
        self,
        query: str,
        *,
        from_when: int | None = None,
        until_when: int | None = None,
        domains: Sequence[str] = (),
        domains_exclude: Sequence[str] = (),
        bookmarks_only: bool = False,
        terms_exclude: Sequence[str] = (),
        starts_with_matching: bool | None = None,
        limit: int | None = None,
        skip: int = 0,
    ) -> TermsSearchResult:
        """Search pages and annotations for every term and phrase in the query.

        Args:
            query: Raw query; quoted parts are matched as phrases.
            from_when: Only pages/annotations with activity at or after this time.
            until_when: Only pages/annotations with activity before this time.
            domains: Restrict to pages on these domains.
            domains_exclude: Drop pages on these domains.
            bookmarks_only: Restrict to bookmarked pages and their annotations.
            terms_exclude: Drop pages and annotations containing any of these terms.
            starts_with_matching: Prefix-match page terms (default from config).
            limit: Maximum number of pages to return (default from config).
            skip: Number of ranked pages to skip.

        Returns:
            TermsSearchResult ranked by recency.
        """
        if skip < 0:
            raise ValueError(f"skip must be non-negative: {skip}")
        if limit is not None and limit <= 0:
            raise ValueError(f"limit must be positive: {limit}")
        if from_when is not None and until_when is not None and until_when < from_when:
            raise ValueError(f"until_when ({until_when}) is before from_when ({from_when})")

        query_terms = split_query(query)
        if query_terms.is_empty:
            logger.debug("Terms search with no terms or phrases, returning nothing")
            return TermsSearchResult(result_data_by_page={}, total=0)

        if starts_with_matching is None:
            starts_with_matching = self.config.starts_with_matching
        if limit is None:
            limit = self.config.default_limit

        page_constraints, annotation_constraints = await self._filter_constraints(
            from_when, until_when, domains, domains_exclude, bookmarks_only
        )
        excluded_terms = list(
            dict.fromkeys(term.strip().lower() for term in terms_exclude if term.strip())
        )

        pages, annotations = await asyncio.gather(
            query_pages_by_terms(
                self.reader,
                query_terms.terms,
                query_terms.phrases,
                starts_with_matching=starts_with_matching,
                constraints=page_constraints,
                excluded_terms=excluded_terms,
            ),
            query_annotations_by_terms(
                self.reader,
                query_terms.terms,
                query_terms.phrases,
                constraints=annotation_constraints,
                excluded_terms=excluded_terms,
            ),
        )

        result_data_by_page: ResultDataByPage = {}
        for page in pages:
            entry = result_data_by_page.setdefault(page.id, PageResultEntry())
            entry.track_page_timestamp(page.latest_timestamp)
        for annotation in annotations:
            entry = result_data_by_page.setdefault(annotation.page_url, PageResultEntry())
            entry.add_annotation(annotation)

        ranked = rank_results(result_data_by_page)
        end = None if limit is None else skip + limit
        logger.debug(
            f"Terms search {query_terms.terms}/{query_terms.phrases}: "
            f"{len(pages)} pages, {len(annotations)} annotations, {len(ranked)} results"
        )
        return TermsSearchResult(
            result_data_by_page=dict(ranked[skip:end]),
            total=len(ranked),
        )

    async def _filter_constraints(
        self,
        from_when: int | None,
        until_when: int | None,
        domains: Sequence[str],
        domains_exclude: Sequence[str],
        bookmarks_only: bool = False,
    ) -> tuple[list[list[str]], list[list[str]]]:
        """Build extra page and annotation id sets implied by the filters."""
        page_constraints: list[list[str]] = []
        annotation_constraints: list[list[str]] = []

        page_set_queries = []
        if domains:
            page_set_queries.append(
                Query.where(Collection.PAGES, "domain", Op.ANY_OF, list(domains))
            )
        if domains_exclude:
            page_set_queries.append(
                Query.where(Collection.PAGES, "domain", Op.NONE_OF, list(domains_exclude))
            )
        if bookmarks_only:
            # Bookmark keys are page URLs
            page_set_queries.append(Query(Collection.BOOKMARKS, ()))

        has_date_filter = from_when is not None or until_when is not None
        lower = from_when if from_when is not None else 0
        upper = until_when if until_when is not None else self.clock()

        page_set_lookup = asyncio.gather(*(self.reader.find_keys(q) for q in page_set_queries))
        if has_date_filter:
            page_sets, date_sets = await asyncio.gather(
                page_set_lookup, self._date_constraints(lower, upper)
            )
        else:
            page_sets, date_sets = await page_set_lookup, None

        for page_ids in page_sets:
            page_constraints.append(page_ids)
        if page_sets:
            annotation_sets = await asyncio.gather(
                *(
                    self.reader.find_keys(
                        Query.where(Collection.ANNOTATIONS, "page_url", Op.ANY_OF, page_ids)
                    )
                    for page_ids in page_sets
                )
            )
            annotation_constraints.extend(annotation_sets)

        if date_sets is not None:
            page_ids, annotation_ids = date_sets
            page_constraints.append(page_ids)
            annotation_constraints.append(annotation_ids)

        return page_constraints, annotation_constraints

    async def _date_constraints(self, lower: int, upper: int) -> tuple[list[str], list[str]]:
        visit_pages, bookmark_pages, annotation_ids = await asyncio.gather(
            self.reader.find_keys(time_range(Collection.VISITS, "time", lower, upper)),
            self.reader.find_keys(time_range(Collection.BOOKMARKS, "time", lower, upper)),
            self.reader.find_keys(time_range(Collection.ANNOTATIONS, "last_edited", lower, upper)),
        )
        page_ids = list(dict.fromkeys([*visit_pages, *bookmark_pages]))
        return page_ids, annotation_ids
