"""Declarative query descriptors and the storage reader protocol.

The search core never issues raw index calls. It builds Query descriptors
and hands them to a StorageReader, which evaluates them against whatever
engine backs the store.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal, Protocol

from .models import Record


class Collection(str, Enum):
    """Collections the search core reads from."""

    PAGES = "pages"
    VISITS = "visits"
    BOOKMARKS = "bookmarks"
    ANNOTATIONS = "annotations"


class Op(str, Enum):
    """Operators a storage reader must support."""

    EQUALS = "equals"
    STARTS_WITH = "starts_with"
    ANY_OF = "any_of"
    NONE_OF = "none_of"
    BETWEEN = "between"  # value is (lower inclusive, upper exclusive)
    CONTAINS_TEXT = "contains_text"  # case-insensitive substring scan


@dataclass(frozen=True)
class Condition:
    """A single (field, operator, value) predicate."""

    field: str
    op: Op
    value: Any


@dataclass(frozen=True)
class Query:
    """Conditions on one collection, combined with OR ("any") or AND ("all")."""

    collection: Collection
    conditions: tuple[Condition, ...]
    match: Literal["any", "all"] = "any"

    @classmethod
    def where(
        cls,
        collection: Collection,
        field: str,
        op: Op,
        value: Any,
    ) -> Query:
        """Shortcut for a single-condition query."""
        return cls(collection, (Condition(field, op, value),))

    @classmethod
    def any_field(
        cls,
        collection: Collection,
        fields: Sequence[str],
        op: Op,
        value: Any,
    ) -> Query:
        """Match when any of the given fields satisfies the same predicate."""
        return cls(collection, tuple(Condition(f, op, value) for f in fields))


def time_range(
    collection: Collection,
    field: str,
    lower: int,
    upper: int,
) -> Query:
    """Rows whose timestamp field falls within [lower, upper)."""
    return Query.where(collection, field, Op.BETWEEN, (lower, upper))


class StorageReader(Protocol):
    """Read capability the search core requires from the store.

    A single search call may issue several of these concurrently; the
    store is responsible for giving them a consistent view.
    """

    async def find(self, query: Query) -> list[Record]:
        """Return rows matching the query."""
        ...

    async def find_keys(self, query: Query) -> list[str]:
        """Return distinct primary keys of rows matching the query."""
        ...

    async def get_many(self, collection: Collection, keys: Sequence[str]) -> list[Record]:
        """Return rows for the given primary keys, in key order, skipping missing."""
        ...

    async def exists(self, query: Query) -> bool:
        """Return True if at least one row matches the query."""
        ...
