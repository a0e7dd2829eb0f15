"""Recency ranking of per-page search results."""

from __future__ import annotations

from collections.abc import Mapping

from .models import PageResultEntry


def rank_results(
    result_data_by_page: Mapping[str, PageResultEntry],
) -> list[tuple[str, PageResultEntry]]:
    """Order pages by activity timestamp, most recent first.

    The sort is stable, so pages with equal timestamps keep insertion order.
    """
    return sorted(
        result_data_by_page.items(),
        key=lambda item: item[1].timestamp,
        reverse=True,
    )
