"""Indexed term and phrase lookups over pages and annotations.

This module provides:
- intersect_results: ANDs identifier sets together
- subtract_results: drops identifiers found by excluded-term lookups
- query_pages_by_terms: term/phrase lookup on pages, with latest timestamps
- query_annotations_by_terms: term/phrase lookup on annotations
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass

from .models import Annotation
from .query import Collection, Op, Query, StorageReader
from .timestamps import latest_activity

logger = logging.getLogger(__name__)

PAGE_TERM_FIELDS = ("terms", "url_terms", "title_terms")
PAGE_TEXT_FIELDS = ("text",)
ANNOTATION_TERM_FIELDS = ("body_terms", "comment_terms")
ANNOTATION_TEXT_FIELDS = ("comment", "body")


@dataclass(frozen=True)
class PageMatch:
    """A page that matched every term and phrase."""

    id: str
    latest_timestamp: int


def intersect_results(results: Sequence[Sequence[str]]) -> list[str]:
    """AND together identifier sets.

    The first set is the candidate pool, so survivors keep its order.
    No sets means no constraints were given, which yields nothing; callers
    decide whether that should mean "match everything".
    """
    if not results:
        return []
    matching = list(results[0])
    for other in results[1:]:
        ids = set(other)
        matching = [id_ for id_ in matching if id_ in ids]
    return matching


def subtract_results(ids: Sequence[str], excluded: Sequence[Sequence[str]]) -> list[str]:
    """Remove every id that appears in any of the excluded sets, keeping order."""
    dropped = {id_ for ids_ in excluded for id_ in ids_}
    if not dropped:
        return list(ids)
    return [id_ for id_ in ids if id_ not in dropped]


async def query_pages_by_terms(
    reader: StorageReader,
    terms: Sequence[str],
    phrases: Sequence[str] = (),
    *,
    starts_with_matching: bool = False,
    constraints: Sequence[Sequence[str]] = (),
    excluded_terms: Sequence[str] = (),
) -> list[PageMatch]:
    """Find pages containing every term and phrase.

    Terms are looked up against the body, URL and title term indexes.
    Phrases are scanned for in the page text.

    Args:
        reader: Storage reader capability.
        terms: Discrete lower-cased terms.
        phrases: Lower-cased phrases.
        starts_with_matching: Use prefix instead of exact term lookups.
        constraints: Extra page id sets (from filters) to intersect with.
        excluded_terms: Lower-cased terms no matching page may contain
            (always matched exactly).

    Returns:
        Matching pages with their latest visit/bookmark timestamp (0 if none).
    """
    if not terms and not phrases:
        return []
    term_op = Op.STARTS_WITH if starts_with_matching else Op.EQUALS
    lookups = [
        *(Query.any_field(Collection.PAGES, PAGE_TERM_FIELDS, term_op, term) for term in terms),
        *(
            Query.any_field(Collection.PAGES, PAGE_TEXT_FIELDS, Op.CONTAINS_TEXT, phrase)
            for phrase in phrases
        ),
    ]
    exclusions = [
        Query.any_field(Collection.PAGES, PAGE_TERM_FIELDS, Op.EQUALS, term)
        for term in excluded_terms
    ]
    results = await asyncio.gather(*(reader.find_keys(q) for q in [*lookups, *exclusions]))

    matching_ids = intersect_results([*results[: len(lookups)], *constraints])
    matching_ids = subtract_results(matching_ids, results[len(lookups) :])
    logger.debug(
        f"Pages matching {len(terms)} terms and {len(phrases)} phrases "
        f"({len(excluded_terms)} excluded): {len(matching_ids)}"
    )

    latest = await latest_activity(reader, matching_ids)
    return [PageMatch(id=id_, latest_timestamp=latest.get(id_, 0)) for id_ in matching_ids]


async def query_annotations_by_terms(
    reader: StorageReader,
    terms: Sequence[str],
    phrases: Sequence[str] = (),
    *,
    constraints: Sequence[Sequence[str]] = (),
    excluded_terms: Sequence[str] = (),
) -> list[Annotation]:
    """Find annotations containing every term and phrase.

    Terms are looked up against the highlight body and comment term indexes.
    Phrases are scanned for in the comment and highlight text.

    Args:
        reader: Storage reader capability.
        terms: Discrete lower-cased terms.
        phrases: Lower-cased phrases.
        constraints: Extra annotation id sets (from filters) to intersect with.
        excluded_terms: Lower-cased terms no matching annotation may contain.

    Returns:
        Matching annotations.
    """
    if not terms and not phrases:
        return []
    lookups = [
        *(
            Query.any_field(Collection.ANNOTATIONS, ANNOTATION_TERM_FIELDS, Op.EQUALS, term)
            for term in terms
        ),
        *(
            Query.any_field(
                Collection.ANNOTATIONS, ANNOTATION_TEXT_FIELDS, Op.CONTAINS_TEXT, phrase
            )
            for phrase in phrases
        ),
    ]
    exclusions = [
        Query.any_field(Collection.ANNOTATIONS, ANNOTATION_TERM_FIELDS, Op.EQUALS, term)
        for term in excluded_terms
    ]
    results = await asyncio.gather(*(reader.find_keys(q) for q in [*lookups, *exclusions]))

    matching_ids = intersect_results([*results[: len(lookups)], *constraints])
    matching_ids = subtract_results(matching_ids, results[len(lookups) :])
    logger.debug(
        f"Annotations matching {len(terms)} terms and {len(phrases)} phrases "
        f"({len(excluded_terms)} excluded): {len(matching_ids)}"
    )
    if not matching_ids:
        return []
    return await reader.get_many(Collection.ANNOTATIONS, matching_ids)
