"""Blank (queryless) search, paged backward through time in day windows.

Each call is stateless: it scans the window [until_when - days, until_when),
clamped to from_when, and reports whether any older data remains. To fetch
the next page, call again with until_when set to the previous window's
lower bound.

A page active on several days legitimately shows up once per window it was
active in, each time carrying only that window's annotations and timestamp.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable

from .models import (
    Annotation,
    BlankSearchResult,
    Bookmark,
    PageResultEntry,
    PaginationCursor,
    ResultDataByPage,
    Visit,
)
from .query import Collection, StorageReader, time_range

logger = logging.getLogger(__name__)


def aggregate_by_page(
    visits: Iterable[Visit],
    bookmarks: Iterable[Bookmark],
    annotations: Iterable[Annotation],
) -> ResultDataByPage:
    """Merge in-window rows into one result entry per page."""
    result_data_by_page: ResultDataByPage = {}

    for row in (*visits, *bookmarks):
        entry = result_data_by_page.setdefault(row.url, PageResultEntry())
        entry.track_page_timestamp(row.time)

    for annotation in annotations:
        entry = result_data_by_page.setdefault(annotation.page_url, PageResultEntry())
        entry.add_annotation(annotation)

    return result_data_by_page


async def has_data_between(reader: StorageReader, lower: int, upper: int) -> bool:
    """Check whether any visit, bookmark or annotation falls in [lower, upper)."""
    if upper <= lower:
        return False
    found = await asyncio.gather(
        reader.exists(time_range(Collection.VISITS, "time", lower, upper)),
        reader.exists(time_range(Collection.BOOKMARKS, "time", lower, upper)),
        reader.exists(time_range(Collection.ANNOTATIONS, "last_edited", lower, upper)),
    )
    return any(found)


async def _fetch_window(
    reader: StorageReader,
    lower: int,
    upper: int,
) -> tuple[list[Visit], list[Bookmark], list[Annotation]]:
    visits, bookmarks, annotations = await asyncio.gather(
        reader.find(time_range(Collection.VISITS, "time", lower, upper)),
        reader.find(time_range(Collection.BOOKMARKS, "time", lower, upper)),
        reader.find(time_range(Collection.ANNOTATIONS, "last_edited", lower, upper)),
    )
    return visits, bookmarks, annotations


async def blank_search(reader: StorageReader, cursor: PaginationCursor) -> BlankSearchResult:
    """Run one window of blank search.

    Args:
        reader: Storage reader capability.
        cursor: Validated window parameters.

    Returns:
        BlankSearchResult with per-page data for the window, the exhaustion
        flag, and the window lower bound to use as the next until_when.
    """
    lower = cursor.window_lower_bound
    upper = cursor.until_when
    reached_floor = lower <= cursor.from_when

    if reached_floor:
        visits, bookmarks, annotations = await _fetch_window(reader, lower, upper)
        older_data = False
    else:
        (visits, bookmarks, annotations), older_data = await asyncio.gather(
            _fetch_window(reader, lower, upper),
            has_data_between(reader, cursor.from_when, lower),
        )

    result_data_by_page = aggregate_by_page(visits, bookmarks, annotations)
    results_exhausted = reached_floor or not older_data

    logger.debug(
        f"Blank search window [{lower}, {upper}): {len(visits)} visits, "
        f"{len(bookmarks)} bookmarks, {len(annotations)} annotations across "
        f"{len(result_data_by_page)} pages (exhausted={results_exhausted})"
    )

    return BlankSearchResult(
        result_data_by_page=result_data_by_page,
        results_exhausted=results_exhausted,
        window_lower_bound=lower,
    )
