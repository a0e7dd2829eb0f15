"""Latest visit/bookmark timestamp lookup per page."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable

from .models import Bookmark, Visit
from .query import Collection, Op, Query, StorageReader

logger = logging.getLogger(__name__)


def track_latest(latest: dict[str, int], rows: Iterable[Visit | Bookmark]) -> None:
    """Fold rows into a page -> max(time) mapping in place."""
    for row in rows:
        previous = latest.get(row.url)
        if previous is None or row.time > previous:
            latest[row.url] = row.time


async def latest_activity(
    reader: StorageReader,
    page_ids: Iterable[str],
) -> dict[str, int]:
    """Find the most recent visit or bookmark time for each page.

    Args:
        reader: Storage reader capability.
        page_ids: Page identifiers to look up.

    Returns:
        Mapping of page id to latest epoch-ms timestamp. Pages without any
        visit or bookmark are absent.
    """
    ids = list(dict.fromkeys(page_ids))
    if not ids:
        return {}

    visits, bookmarks = await asyncio.gather(
        reader.find(Query.where(Collection.VISITS, "url", Op.ANY_OF, ids)),
        reader.find(Query.where(Collection.BOOKMARKS, "url", Op.ANY_OF, ids)),
    )

    latest: dict[str, int] = {}
    track_latest(latest, visits)
    track_latest(latest, bookmarks)

    logger.debug(
        f"Reconciled timestamps for {len(latest)}/{len(ids)} pages "
        f"from {len(visits)} visits and {len(bookmarks)} bookmarks"
    )
    return latest
