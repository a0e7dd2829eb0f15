"""Memex Search: unified blank and terms search over a local knowledge store."""

from memex_search.config import ConfigManager, SearchConfig, apply_env_overrides
from memex_search.engine import UnifiedSearchEngine, current_time_ms
from memex_search.models import (
    DAY_MS,
    Annotation,
    BlankSearchResult,
    Bookmark,
    InvalidCursorError,
    Page,
    PageResultEntry,
    PaginationCursor,
    SearchError,
    TermsSearchResult,
    UnknownFieldError,
    Visit,
)
from memex_search.paginator import blank_search
from memex_search.query import Collection, Condition, Op, Query, StorageReader
from memex_search.ranking import rank_results
from memex_search.store import SQLiteStore
from memex_search.terms import (
    PageMatch,
    intersect_results,
    query_annotations_by_terms,
    query_pages_by_terms,
    subtract_results,
)
from memex_search.timestamps import latest_activity
from memex_search.tokenizer import QueryTerms, split_query

__version__ = "0.1.0"

__all__ = [
    # Config
    "apply_env_overrides",
    "ConfigManager",
    "SearchConfig",
    # Data model
    "Annotation",
    "BlankSearchResult",
    "Bookmark",
    "DAY_MS",
    "Page",
    "PageResultEntry",
    "PaginationCursor",
    "TermsSearchResult",
    "Visit",
    # Errors
    "InvalidCursorError",
    "SearchError",
    "UnknownFieldError",
    # Query descriptors
    "Collection",
    "Condition",
    "Op",
    "Query",
    "StorageReader",
    # Search core
    "blank_search",
    "intersect_results",
    "latest_activity",
    "PageMatch",
    "query_annotations_by_terms",
    "query_pages_by_terms",
    "QueryTerms",
    "rank_results",
    "split_query",
    "subtract_results",
    # Engine and storage
    "current_time_ms",
    "SQLiteStore",
    "UnifiedSearchEngine",
]
