"""SQLite-backed store for pages, visits, bookmarks and annotations.

This module provides:
- SQLiteStore: aiosqlite implementation of the StorageReader protocol,
  plus the write operations used to populate it

Multi-valued term fields (page terms, annotation body/comment terms) live
in a shared `terms` side table indexed on (collection, field, term), which
gives exact and prefix lookups per term. Phrase scans run a Unicode-aware
lower() over the raw text columns.

Usage:
    store = SQLiteStore(Path("~/.memex-search/state"))
    await store.initialize()

    await store.put_page(Page.create("test.com/a", title="A page"))
    await store.add_visit(Visit("test.com/a", 1711396800000))

    engine = UnifiedSearchEngine(store)
    ...

    await store.close()
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Callable, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import aiosqlite

from .models import Annotation, Bookmark, Page, Record, UnknownFieldError, Visit
from .query import Collection, Condition, Op, Query

logger = logging.getLogger(__name__)

# Upper bound for prefix range scans
_MAX_CHAR = "\U0010ffff"

# Membership lists are bound as one JSON array parameter, so their length
# is not capped by SQLITE_LIMIT_VARIABLE_NUMBER
_JSON_VALUES = "(SELECT value FROM json_each(?))"


# ---------------------------------------------------------------------------
# SQL Schema Constants
# ---------------------------------------------------------------------------


SCHEMA = """
CREATE TABLE IF NOT EXISTS pages (
    url TEXT PRIMARY KEY,
    full_url TEXT NOT NULL,
    domain TEXT NOT NULL,
    title TEXT,
    text TEXT
);

CREATE INDEX IF NOT EXISTS idx_pages_domain ON pages(domain);

CREATE TABLE IF NOT EXISTS visits (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    url TEXT NOT NULL,
    time INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_visits_time ON visits(time DESC);
CREATE INDEX IF NOT EXISTS idx_visits_url ON visits(url);

CREATE TABLE IF NOT EXISTS bookmarks (
    url TEXT PRIMARY KEY,
    time INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_bookmarks_time ON bookmarks(time DESC);

CREATE TABLE IF NOT EXISTS annotations (
    url TEXT PRIMARY KEY,
    page_url TEXT NOT NULL,
    body TEXT,
    comment TEXT,
    created_when INTEGER NOT NULL,
    last_edited INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_annotations_last_edited ON annotations(last_edited DESC);
CREATE INDEX IF NOT EXISTS idx_annotations_page_url ON annotations(page_url);

-- Multi-valued term indexes for pages and annotations
CREATE TABLE IF NOT EXISTS terms (
    collection TEXT NOT NULL,
    field TEXT NOT NULL,
    term TEXT NOT NULL,
    key TEXT NOT NULL,
    PRIMARY KEY (collection, field, term, key)
) WITHOUT ROWID;

CREATE INDEX IF NOT EXISTS idx_terms_key ON terms(collection, key);
"""


@dataclass(frozen=True)
class _CollectionSchema:
    table: str
    key: str
    columns: frozenset[str]
    order_by: str
    from_row: Callable[[aiosqlite.Row], Record]
    term_fields: tuple[str, ...] = field(default=())


_SCHEMAS: dict[Collection, _CollectionSchema] = {
    Collection.PAGES: _CollectionSchema(
        table="pages",
        key="url",
        columns=frozenset({"url", "full_url", "domain", "title", "text"}),
        order_by="t.rowid",
        from_row=Page.from_row,
        term_fields=("terms", "url_terms", "title_terms"),
    ),
    Collection.VISITS: _CollectionSchema(
        table="visits",
        key="url",
        columns=frozenset({"url", "time"}),
        order_by="t.time DESC, t.id",
        from_row=Visit.from_row,
    ),
    Collection.BOOKMARKS: _CollectionSchema(
        table="bookmarks",
        key="url",
        columns=frozenset({"url", "time"}),
        order_by="t.time DESC, t.rowid",
        from_row=Bookmark.from_row,
    ),
    Collection.ANNOTATIONS: _CollectionSchema(
        table="annotations",
        key="url",
        columns=frozenset({"url", "page_url", "body", "comment", "created_when", "last_edited"}),
        order_by="t.last_edited DESC, t.rowid",
        from_row=Annotation.from_row,
        term_fields=("body_terms", "comment_terms"),
    ),
}


def _py_lower(value: str | None) -> str | None:
    """Unicode-aware lower() for SQL (SQLite's own LOWER is ASCII-only)."""
    return value.lower() if value is not None else None


def _select_columns(collection: Collection, schema: _CollectionSchema) -> str:
    """Columns to select, with term fields folded into space-joined strings."""
    parts = ["t.*"]
    for term_field in schema.term_fields:
        parts.append(
            f"(SELECT group_concat(term, ' ') FROM terms "
            f"WHERE collection = '{collection.value}' AND field = '{term_field}' "
            f"AND key = t.{schema.key}) AS {term_field}"
        )
    return ", ".join(parts)


def _term_condition_sql(
    collection: Collection,
    schema: _CollectionSchema,
    condition: Condition,
) -> tuple[str, list[Any]]:
    params: list[Any] = [collection.value, condition.field]
    if condition.op == Op.EQUALS:
        term_sql = "term = ?"
        params.append(condition.value)
    elif condition.op == Op.STARTS_WITH:
        term_sql = "term >= ? AND term < ?"
        params.extend([condition.value, condition.value + _MAX_CHAR])
    elif condition.op == Op.ANY_OF:
        values = list(condition.value)
        if not values:
            return "0", []
        term_sql = f"term IN {_JSON_VALUES}"
        params.append(json.dumps(values))
    else:
        raise ValueError(
            f"Operator {condition.op.value} not supported on term field {condition.field}"
        )
    sql = (
        f"t.{schema.key} IN (SELECT key FROM terms "
        f"WHERE collection = ? AND field = ? AND {term_sql})"
    )
    return sql, params


def _column_condition_sql(condition: Condition) -> tuple[str, list[Any]]:
    column = f"t.{condition.field}"
    op = condition.op
    value = condition.value

    if op == Op.EQUALS:
        return f"{column} = ?", [value]
    if op == Op.STARTS_WITH:
        return f"{column} >= ? AND {column} < ?", [value, value + _MAX_CHAR]
    if op == Op.ANY_OF:
        values = list(value)
        if not values:
            return "0", []
        return f"{column} IN {_JSON_VALUES}", [json.dumps(values)]
    if op == Op.NONE_OF:
        values = list(value)
        if not values:
            return "1", []
        return f"{column} NOT IN {_JSON_VALUES}", [json.dumps(values)]
    if op == Op.BETWEEN:
        lower, upper = value
        return f"{column} >= ? AND {column} < ?", [lower, upper]
    if op == Op.CONTAINS_TEXT:
        return f"INSTR(py_lower({column}), ?) > 0", [value.lower()]
    raise ValueError(f"Unsupported operator: {op}")


def _where_clause(query: Query) -> tuple[_CollectionSchema, str, list[Any]]:
    """Translate a query descriptor into a WHERE clause over alias `t`.

    Raises:
        UnknownFieldError: If a condition names a field outside the schema.
    """
    schema = _SCHEMAS[query.collection]
    clauses: list[str] = []
    params: list[Any] = []

    for condition in query.conditions:
        if condition.field in schema.term_fields:
            sql, cond_params = _term_condition_sql(query.collection, schema, condition)
        elif condition.field in schema.columns:
            sql, cond_params = _column_condition_sql(condition)
        else:
            raise UnknownFieldError(
                f"Unknown field {condition.field!r} for collection {query.collection.value}"
            )
        clauses.append(f"({sql})")
        params.extend(cond_params)

    joiner = " AND " if query.match == "all" else " OR "
    where = joiner.join(clauses) if clauses else "1=1"
    return schema, where, params


# ---------------------------------------------------------------------------
# SQLiteStore Class
# ---------------------------------------------------------------------------


class SQLiteStore:
    """SQLite store implementing the StorageReader protocol.

    Outside read_snapshot() each statement is its own autocommit read, so
    a writer on another connection can land between two sub-queries of one
    search call. Wrap the call in read_snapshot() to pin a single view.
    """

    def __init__(self, state_dir: Path) -> None:
        """Initialize the store.

        Args:
            state_dir: Directory for storing the database file.
        """
        self.state_dir = Path(state_dir)
        self.db_path = self.state_dir / "memex.db"
        self._connection: aiosqlite.Connection | None = None
        # Held by snapshots and writes, which must not share a transaction
        self._lock = asyncio.Lock()

    # ================================================================
    # Lifecycle
    # ================================================================

    async def initialize(self) -> None:
        """Create the state directory, open the connection and create the schema."""
        self.state_dir.mkdir(parents=True, exist_ok=True)

        conn = await self._get_connection()

        await conn.execute("PRAGMA journal_mode = WAL")
        await conn.execute("PRAGMA busy_timeout = 5000")
        await conn.execute("PRAGMA synchronous = NORMAL")

        await conn.executescript(SCHEMA)
        await conn.commit()

        logger.info(f"SQLiteStore initialized at {self.db_path}")

    async def close(self) -> None:
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None
            logger.debug("SQLiteStore connection closed")

    async def _get_connection(self) -> aiosqlite.Connection:
        if self._connection is None:
            self._connection = await aiosqlite.connect(self.db_path)
            self._connection.row_factory = aiosqlite.Row
            await self._connection.create_function("py_lower", 1, _py_lower, deterministic=True)
        return self._connection

    @asynccontextmanager
    async def read_snapshot(self) -> AsyncIterator[SQLiteStore]:
        """Run the reads made inside the block against one point-in-time view.

        Opens a read transaction on the store's connection; WAL keeps the
        view fixed from the first read until the block exits, even while
        other connections commit. Writes through this store wait for the
        block to finish, so do not write from inside it.

        Usage:
            async with store.read_snapshot():
                result = await engine.unified_terms_search("memex")
        """
        async with self._lock:
            conn = await self._get_connection()
            await conn.execute("BEGIN")
            try:
                yield self
            finally:
                if conn.in_transaction:
                    await conn.execute("COMMIT")

    @asynccontextmanager
    async def _writing(self) -> AsyncIterator[aiosqlite.Connection]:
        async with self._lock:
            conn = await self._get_connection()
            try:
                yield conn
            except Exception:
                await conn.rollback()
                raise
            await conn.commit()

    # ================================================================
    # StorageReader
    # ================================================================

    async def find(self, query: Query) -> list[Record]:
        """Return rows matching the query descriptor."""
        schema, where, params = _where_clause(query)
        sql = (
            f"SELECT {_select_columns(query.collection, schema)} "
            f"FROM {schema.table} AS t WHERE {where} ORDER BY {schema.order_by}"
        )
        conn = await self._get_connection()
        async with conn.execute(sql, params) as cursor:
            rows = await cursor.fetchall()
        return [schema.from_row(row) for row in rows]

    async def find_keys(self, query: Query) -> list[str]:
        """Return distinct keys (page URL for visits/bookmarks) of matching rows."""
        schema, where, params = _where_clause(query)
        sql = (
            f"SELECT t.{schema.key} AS key FROM {schema.table} AS t "
            f"WHERE {where} ORDER BY {schema.order_by}"
        )
        conn = await self._get_connection()
        async with conn.execute(sql, params) as cursor:
            rows = await cursor.fetchall()
        return list(dict.fromkeys(row["key"] for row in rows))

    async def get_many(self, collection: Collection, keys: Sequence[str]) -> list[Record]:
        """Return rows for the given keys in key order, skipping missing keys.

        Visits share their page URL as key, so only the latest visit per
        key is returned for that collection.
        """
        keys = list(keys)
        if not keys:
            return []
        rows = await self.find(Query.where(collection, _SCHEMAS[collection].key, Op.ANY_OF, keys))
        by_key: dict[str, Record] = {}
        for row in rows:
            by_key.setdefault(row.url, row)
        return [by_key[key] for key in keys if key in by_key]

    async def exists(self, query: Query) -> bool:
        """Return True if any row matches the query descriptor."""
        schema, where, params = _where_clause(query)
        sql = f"SELECT 1 FROM {schema.table} AS t WHERE {where} LIMIT 1"
        conn = await self._get_connection()
        async with conn.execute(sql, params) as cursor:
            return await cursor.fetchone() is not None

    # ================================================================
    # Write Operations
    # ================================================================

    async def _replace_terms(
        self,
        conn: aiosqlite.Connection,
        collection: Collection,
        key: str,
        term_fields: dict[str, frozenset[str]],
    ) -> None:
        await conn.execute(
            "DELETE FROM terms WHERE collection = ? AND key = ?",
            (collection.value, key),
        )
        await conn.executemany(
            "INSERT INTO terms (collection, field, term, key) VALUES (?, ?, ?, ?)",
            [
                (collection.value, field_name, term, key)
                for field_name, terms in term_fields.items()
                for term in sorted(terms)
            ],
        )

    async def put_page(self, page: Page) -> None:
        """Insert or update a page and its term indexes."""
        async with self._writing() as conn:
            await conn.execute(
                """
                INSERT INTO pages (url, full_url, domain, title, text)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(url) DO UPDATE SET
                    full_url = excluded.full_url,
                    domain = excluded.domain,
                    title = excluded.title,
                    text = excluded.text
                """,
                page.to_row(),
            )
            await self._replace_terms(conn, Collection.PAGES, page.url, page.term_fields)

    async def add_visit(self, visit: Visit) -> None:
        """Record a visit."""
        async with self._writing() as conn:
            await conn.execute("INSERT INTO visits (url, time) VALUES (?, ?)", visit.to_row())

    async def put_bookmark(self, bookmark: Bookmark) -> None:
        """Insert or replace the bookmark for a page."""
        async with self._writing() as conn:
            await conn.execute(
                """
                INSERT INTO bookmarks (url, time) VALUES (?, ?)
                ON CONFLICT(url) DO UPDATE SET time = excluded.time
                """,
                bookmark.to_row(),
            )

    async def delete_bookmark(self, url: str) -> bool:
        """Delete a page's bookmark.

        Returns:
            True if a bookmark was deleted, False if not found.
        """
        async with self._writing() as conn:
            cursor = await conn.execute("DELETE FROM bookmarks WHERE url = ?", (url,))
        return cursor.rowcount > 0

    async def put_annotation(self, annotation: Annotation) -> None:
        """Insert or update (edit) an annotation and its term indexes."""
        async with self._writing() as conn:
            await conn.execute(
                """
                INSERT INTO annotations (url, page_url, body, comment, created_when, last_edited)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(url) DO UPDATE SET
                    body = excluded.body,
                    comment = excluded.comment,
                    last_edited = excluded.last_edited
                """,
                annotation.to_row(),
            )
            await self._replace_terms(
                conn, Collection.ANNOTATIONS, annotation.url, annotation.term_fields
            )

    async def delete_annotation(self, url: str) -> bool:
        """Delete an annotation and its term indexes.

        Returns:
            True if an annotation was deleted, False if not found.
        """
        async with self._writing() as conn:
            cursor = await conn.execute("DELETE FROM annotations WHERE url = ?", (url,))
            await conn.execute(
                "DELETE FROM terms WHERE collection = ? AND key = ?",
                (Collection.ANNOTATIONS.value, url),
            )
        return cursor.rowcount > 0

    # ================================================================
    # Maintenance Operations
    # ================================================================

    async def verify_integrity(self) -> bool:
        """Check database integrity."""
        conn = await self._get_connection()
        async with conn.execute("PRAGMA integrity_check") as cursor:
            result = await cursor.fetchone()
            return result[0] == "ok"

    async def get_stats(self) -> dict:
        """Get row counts per collection.

        Returns:
            Dict with keys pages, visits, bookmarks, annotations.
        """
        conn = await self._get_connection()
        stats: dict = {}
        for collection, schema in _SCHEMAS.items():
            async with conn.execute(f"SELECT COUNT(*) FROM {schema.table}") as cursor:
                stats[collection.value] = (await cursor.fetchone())[0]
        return stats
